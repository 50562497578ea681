"""
Actor model - the user proposing a transition.
"""

from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, Field


class ActorRole(str, Enum):
    """Roles supplied by the identity provider."""

    OWNER = "owner"
    COMPANY = "company"
    DRIVER = "driver"
    CARRIER = "carrier"


class Actor(BaseModel):
    """Acting user and the roles they hold."""

    actor_id: str = Field(..., min_length=1)
    roles: frozenset[ActorRole] = Field(default_factory=frozenset)

    @classmethod
    def with_role(cls, actor_id: str, *roles: ActorRole) -> "Actor":
        """Shorthand for building an actor from positional roles."""
        return cls(actor_id=actor_id, roles=frozenset(roles))

    def has_any_role(self, allowed: Iterable[ActorRole]) -> bool:
        return not self.roles.isdisjoint(allowed)
