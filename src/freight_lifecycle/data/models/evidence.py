"""
Evidence bundle - photo references and readings captured by the driver app.
"""

from typing import Optional

from pydantic import BaseModel, Field


class EvidenceBundle(BaseModel):
    """
    Proof supplied alongside a proposed transition.

    Every field is optional. Values present here take precedence over the
    ones already stored on the snapshot.
    """

    # Trip odometer
    odometer_start: Optional[float] = Field(None, allow_inf_nan=False)
    odometer_start_photo: Optional[str] = None
    odometer_end: Optional[float] = Field(None, allow_inf_nan=False)
    odometer_end_photo: Optional[str] = None

    # Load assignment
    driver_id: Optional[str] = None
    company_id: Optional[str] = None

    # Pickup / delivery
    actual_cuft_loaded: Optional[float] = Field(None, allow_inf_nan=False)
    load_report_photo: Optional[str] = None
    delivery_photos: list[str] = Field(default_factory=list)

    note: Optional[str] = Field(None, description="Free text recorded on the history entry")

    class Config:
        """Pydantic configuration."""

        extra = "ignore"


def has_text(value: Optional[str]) -> bool:
    """True for a non-blank string."""
    return value is not None and value.strip() != ""
