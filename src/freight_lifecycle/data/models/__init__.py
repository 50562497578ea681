"""
Pydantic data models for the lifecycle engine.

Core models:
- Load: Freight shipment snapshot
- Trip: Driver movement carrying loads
- Actor: Acting user and roles
- EvidenceBundle: Photos and readings backing a transition
- StatusHistoryEntry: Audit record of an accepted transition
"""

from .actor import Actor, ActorRole
from .evidence import EvidenceBundle
from .history import EntityType, StatusHistoryEntry
from .load import LOAD_TERMINAL_STATUSES, Load, LoadSource, LoadStatus, Location
from .trip import TRIP_TERMINAL_STATUSES, Trip, TripStatus

__all__ = [
    "Actor",
    "ActorRole",
    "EvidenceBundle",
    "EntityType",
    "StatusHistoryEntry",
    "Load",
    "LoadSource",
    "LoadStatus",
    "Location",
    "LOAD_TERMINAL_STATUSES",
    "Trip",
    "TripStatus",
    "TRIP_TERMINAL_STATUSES",
]
