"""
Trip data model - a driver's scheduled movement carrying loads.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field


class TripStatus(str, Enum):
    """Trip status enumeration."""

    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TRIP_TERMINAL_STATUSES = frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED})


class Trip(BaseModel):
    """Snapshot of a trip as read from storage."""

    trip_id: str = Field(..., min_length=1, description="Unique trip identifier")
    trip_number: Optional[str] = None

    status: TripStatus = Field(..., description="Current trip status")
    version: int = Field(1, ge=1, description="Row version for optimistic concurrency")

    owner_id: Optional[str] = None
    driver_id: Optional[str] = None
    settlement_id: Optional[str] = None

    # Odometer evidence
    odometer_start: Optional[float] = Field(None, allow_inf_nan=False)
    odometer_start_photo: Optional[str] = None
    odometer_end: Optional[float] = Field(None, allow_inf_nan=False)
    odometer_end_photo: Optional[str] = None

    load_ids: list[str] = Field(default_factory=list, description="Loads carried on this trip")

    @computed_field
    @property
    def actual_miles(self) -> Optional[float]:
        """Odometer distance, once both readings are known."""
        if self.odometer_start is None or self.odometer_end is None:
            return None
        return self.odometer_end - self.odometer_start

    @property
    def is_terminal(self) -> bool:
        return self.status in TRIP_TERMINAL_STATUSES
