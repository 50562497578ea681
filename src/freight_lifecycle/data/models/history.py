"""
Status history - append-only audit of accepted transitions.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class EntityType(str, Enum):
    """Entities governed by a state machine."""

    LOAD = "load"
    TRIP = "trip"


class StatusHistoryEntry(BaseModel):
    """One accepted status change."""

    entity_type: EntityType
    entity_id: str
    previous_status: str
    new_status: str
    actor_id: str
    timestamp: datetime = Field(..., description="UTC time the transition was accepted")
    note: Optional[str] = None
