"""
Outcome types returned by the state machines.

A proposal yields either ``Accepted`` or ``Rejected``; the two are a
discriminated union on ``outcome`` so callers can branch or serialise
without isinstance checks.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from freight_lifecycle.data.models.history import EntityType
from freight_lifecycle.engine.side_effects import SideEffects


class RejectionReason(str, Enum):
    """Why a transition was refused."""

    INVALID_TRANSITION = "invalid_transition"
    MISSING_EVIDENCE = "missing_evidence"
    INVALID_VALUE = "invalid_value"
    UNAUTHORIZED = "unauthorized"
    TERMINAL_STATE = "terminal_state"
    CONCURRENT_MODIFICATION = "concurrent_modification"


class VersionGuard(BaseModel):
    """Another row the decision depended on, pinned to the version it was read at."""

    entity_type: EntityType
    entity_id: str
    expected_version: int


class Accepted(BaseModel):
    """A transition that may be written, together with what it must produce."""

    outcome: Literal["accepted"] = "accepted"
    entity_type: EntityType
    entity_id: str
    previous_status: str
    new_status: str
    expected_version: int = Field(..., description="Version the write must be conditional on")
    guards: list[VersionGuard] = Field(
        default_factory=list, description="Related rows that must be unchanged when the write lands"
    )
    field_updates: dict[str, Any] = Field(default_factory=dict)
    side_effects: SideEffects

    @property
    def accepted(self) -> bool:
        return True


class Rejected(BaseModel):
    """A refused transition with enough detail to build a user-facing message."""

    outcome: Literal["rejected"] = "rejected"
    reason: RejectionReason
    entity_type: EntityType
    entity_id: str
    current_status: str
    target_status: str
    field: Optional[str] = Field(None, description="Evidence or snapshot field at fault")
    message: str = ""

    @property
    def accepted(self) -> bool:
        return False


TransitionResult = Annotated[Union[Accepted, Rejected], Field(discriminator="outcome")]
