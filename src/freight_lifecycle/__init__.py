"""
Load and trip lifecycle engine for trucking back-office operations.

Decides whether a proposed status change is allowed and what it must
produce (audit entry, notifications, financial recalculation), and
provides stores and a service that commit decisions safely.
"""

from freight_lifecycle.data.models import (
    Actor,
    ActorRole,
    EntityType,
    EvidenceBundle,
    Load,
    LoadStatus,
    StatusHistoryEntry,
    Trip,
    TripStatus,
)
from freight_lifecycle.engine import (
    Accepted,
    LoadStateMachine,
    Rejected,
    RejectionReason,
    TripStateMachine,
    propose_load_transition,
    propose_trip_transition,
)
from freight_lifecycle.service import LifecycleService

__version__ = "0.1.0"

__all__ = [
    "Actor",
    "ActorRole",
    "EntityType",
    "EvidenceBundle",
    "Load",
    "LoadStatus",
    "StatusHistoryEntry",
    "Trip",
    "TripStatus",
    "Accepted",
    "Rejected",
    "RejectionReason",
    "LoadStateMachine",
    "TripStateMachine",
    "propose_load_transition",
    "propose_trip_transition",
    "LifecycleService",
]
