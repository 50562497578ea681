"""
Lifecycle engine for loads and trips.

This module contains:
- LoadStateMachine: Posting, requests, assignment, pickup and delivery
- TripStateMachine: Start, completion and cancellation with odometer evidence
- SideEffectComputer: History, notification and recalculation triggers
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any, Optional, Union

from freight_lifecycle.data.models import Actor, EvidenceBundle, Load, Trip

from .base import BaseStateMachine, TransitionRule
from .load_machine import LOAD_TRANSITIONS, LoadStateMachine
from .results import Accepted, Rejected, RejectionReason, TransitionResult, VersionGuard
from .side_effects import (
    NotificationEvent,
    NotificationTrigger,
    RecalculationKind,
    RecalculationTrigger,
    RecipientRole,
    SideEffectComputer,
    SideEffects,
)
from .trip_machine import TRIP_TRANSITIONS, TripStateMachine

_load_machine: Optional[LoadStateMachine] = None
_trip_machine: Optional[TripStateMachine] = None


def get_load_machine() -> LoadStateMachine:
    """Process-wide default load machine."""
    global _load_machine
    if _load_machine is None:
        _load_machine = LoadStateMachine()
    return _load_machine


def get_trip_machine() -> TripStateMachine:
    """Process-wide default trip machine."""
    global _trip_machine
    if _trip_machine is None:
        _trip_machine = TripStateMachine()
    return _trip_machine


def propose_load_transition(
    load: Union[Load, Mapping[str, Any]],
    target_status: Union[Enum, str],
    actor: Actor,
    evidence: Union[EvidenceBundle, Mapping[str, Any], None] = None,
    trip: Union[Trip, Mapping[str, Any], None] = None,
) -> TransitionResult:
    """Evaluate a load transition with the default machine."""
    return get_load_machine().propose_transition(load, target_status, actor, evidence, trip=trip)


def propose_trip_transition(
    trip: Union[Trip, Mapping[str, Any]],
    target_status: Union[Enum, str],
    actor: Actor,
    evidence: Union[EvidenceBundle, Mapping[str, Any], None] = None,
) -> TransitionResult:
    """Evaluate a trip transition with the default machine."""
    return get_trip_machine().propose_transition(trip, target_status, actor, evidence)


__all__ = [
    "BaseStateMachine",
    "TransitionRule",
    "LoadStateMachine",
    "TripStateMachine",
    "LOAD_TRANSITIONS",
    "TRIP_TRANSITIONS",
    "Accepted",
    "Rejected",
    "RejectionReason",
    "TransitionResult",
    "VersionGuard",
    "SideEffectComputer",
    "SideEffects",
    "NotificationEvent",
    "NotificationTrigger",
    "RecipientRole",
    "RecalculationKind",
    "RecalculationTrigger",
    "get_load_machine",
    "get_trip_machine",
    "propose_load_transition",
    "propose_trip_transition",
]
