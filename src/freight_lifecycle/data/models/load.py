"""
Load data model - represents a freight shipment.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field


class LoadStatus(str, Enum):
    """Load status enumeration."""

    DRAFT = "draft"
    POSTED = "posted"
    REQUESTED = "requested"
    ASSIGNED = "assigned"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    DELETED = "deleted"


# Statuses that accept no further transitions apart from soft-delete of a cancelled load.
LOAD_TERMINAL_STATUSES = frozenset({LoadStatus.CANCELLED, LoadStatus.DELETED})


class LoadSource(str, Enum):
    """Where the load was published."""

    INTERNAL = "internal"
    MARKETPLACE = "marketplace"


class Location(BaseModel):
    """Geographic location."""

    city: str
    state: str
    zip_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def __str__(self) -> str:
        """String representation."""
        return f"{self.city}, {self.state}"


class Load(BaseModel):
    """
    Snapshot of a freight load as read from storage.

    Only ``load_id`` and ``status`` are required; everything else is
    optional so that partially-selected rows can still be evaluated.
    """

    # Identification
    load_id: str = Field(..., min_length=1, description="Unique load identifier")
    reference_number: Optional[str] = Field(None, description="Customer reference number")

    # Status
    status: LoadStatus = Field(..., description="Current load status")
    version: int = Field(1, ge=1, description="Row version for optimistic concurrency")
    is_deleted: bool = Field(False, description="Soft-delete flag")

    # Parties
    owner_id: Optional[str] = Field(None, description="Owner who created the load")
    company_id: Optional[str] = Field(None, description="Requesting or assigned company/carrier")
    driver_id: Optional[str] = Field(None, description="Assigned driver")
    trip_id: Optional[str] = Field(None, description="Trip carrying this load")

    # Locations
    origin: Optional[Location] = Field(None, description="Pickup location")
    destination: Optional[Location] = Field(None, description="Delivery location")

    # Financial
    rate: Decimal = Field(Decimal("0"), ge=0, description="Linehaul rate (USD)")
    accessorials: Decimal = Field(Decimal("0"), ge=0, description="Accessorial charges (USD)")

    source: LoadSource = Field(LoadSource.INTERNAL, description="Internal board or marketplace")

    # Pickup and delivery evidence
    actual_cuft_loaded: Optional[float] = Field(None, allow_inf_nan=False, description="Cubic feet loaded at pickup")
    load_report_photo: Optional[str] = Field(None, description="Photo of the signed load report")
    delivery_photos: list[str] = Field(default_factory=list, description="Delivery photos")

    # Notes
    notes: Optional[str] = Field(None, description="Additional load details")

    @computed_field
    @property
    def gross_revenue(self) -> Decimal:
        """Total revenue including accessorials."""
        return self.rate + self.accessorials

    @property
    def is_terminal(self) -> bool:
        """True when the load accepts no ordinary transitions."""
        return self.is_deleted or self.status in LOAD_TERMINAL_STATUSES
