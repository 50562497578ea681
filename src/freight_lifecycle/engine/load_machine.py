"""
Load lifecycle state machine.

Graph:
    draft -> posted -> requested -> assigned -> in_transit -> delivered
    requested -> posted (request declined)
    any non-terminal status -> cancelled (owner)
    any status except deleted -> deleted (soft-delete, irreversible)
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any, Optional, Union

from freight_lifecycle.core.errors import MalformedSnapshotError
from freight_lifecycle.data.models.actor import Actor, ActorRole
from freight_lifecycle.data.models.evidence import EvidenceBundle
from freight_lifecycle.data.models.history import EntityType
from freight_lifecycle.data.models.load import Load, LoadStatus
from freight_lifecycle.data.models.trip import Trip, TripStatus
from freight_lifecycle.engine.base import BaseStateMachine, TransitionRule, build_table, status_value
from freight_lifecycle.engine.results import Rejected, RejectionReason, TransitionResult, VersionGuard

OWNER_SIDE = frozenset({ActorRole.OWNER, ActorRole.COMPANY})
REQUESTERS = frozenset({ActorRole.CARRIER, ActorRole.COMPANY})
HAULERS = frozenset({ActorRole.DRIVER, ActorRole.OWNER})
OWNER_ONLY = frozenset({ActorRole.OWNER})

CANCELLABLE = (
    LoadStatus.DRAFT,
    LoadStatus.POSTED,
    LoadStatus.REQUESTED,
    LoadStatus.ASSIGNED,
    LoadStatus.IN_TRANSIT,
    LoadStatus.DELIVERED,
)

# Statuses from which a load may be put on a trip.
TRIP_ATTACHABLE = frozenset({LoadStatus.ASSIGNED})
ATTACHABLE_TRIP_STATUSES = frozenset({TripStatus.PLANNED, TripStatus.ACTIVE})


def _rule(
    source: LoadStatus,
    target: LoadStatus,
    action: str,
    roles: frozenset[ActorRole],
    requires_active_trip: bool = False,
) -> TransitionRule:
    return TransitionRule(
        source=source.value,
        target=target.value,
        action=action,
        roles=roles,
        requires_active_trip=requires_active_trip,
    )


LOAD_TRANSITIONS = build_table(
    [
        _rule(LoadStatus.DRAFT, LoadStatus.POSTED, "publish", OWNER_SIDE),
        _rule(LoadStatus.POSTED, LoadStatus.REQUESTED, "request", REQUESTERS),
        _rule(LoadStatus.REQUESTED, LoadStatus.ASSIGNED, "accept a request for", OWNER_SIDE),
        _rule(LoadStatus.REQUESTED, LoadStatus.POSTED, "decline a request for", OWNER_SIDE),
        _rule(LoadStatus.ASSIGNED, LoadStatus.IN_TRANSIT, "pick up", HAULERS, requires_active_trip=True),
        _rule(LoadStatus.IN_TRANSIT, LoadStatus.DELIVERED, "deliver", HAULERS, requires_active_trip=True),
        *[_rule(status, LoadStatus.CANCELLED, "cancel", OWNER_ONLY) for status in CANCELLABLE],
        *[
            _rule(status, LoadStatus.DELETED, "delete", OWNER_ONLY)
            for status in LoadStatus
            if status != LoadStatus.DELETED
        ],
    ]
)


class LoadStateMachine(BaseStateMachine):
    """
    Lifecycle for loads.

    Pickup and delivery are only valid while the owning trip is active;
    callers pass the trip snapshot when the load sits on one.
    """

    entity_type = EntityType.LOAD
    snapshot_model = Load
    transitions = LOAD_TRANSITIONS

    def entity_id(self, snapshot: Load) -> str:
        return snapshot.load_id

    def is_terminal(self, snapshot: Load) -> bool:
        return snapshot.is_terminal

    def allows_from_terminal(self, snapshot: Load, target: str) -> bool:
        # A cancelled record may still be soft-deleted.
        return (
            not snapshot.is_deleted
            and snapshot.status == LoadStatus.CANCELLED
            and target == LoadStatus.DELETED.value
        )

    def propose_transition(
        self,
        snapshot: Union[Load, Mapping[str, Any]],
        target_status: Union[Enum, str],
        actor: Actor,
        evidence: Union[EvidenceBundle, Mapping[str, Any], None] = None,
        trip: Union[Trip, Mapping[str, Any], None] = None,
    ) -> TransitionResult:
        """
        Evaluate a proposed load status change.

        Args:
            snapshot: Current load
            target_status: Requested status
            actor: Acting user
            evidence: Optional evidence bundle
            trip: Owning trip snapshot, if the load is on a trip

        Returns:
            Accepted or Rejected

        Raises:
            MalformedSnapshotError: If the load is on a trip, the edge depends
                on that trip, and no matching trip snapshot was given
        """
        load = self.coerce_snapshot(snapshot)
        trip_snapshot = self._coerce_trip(load, trip)

        rule = self.transitions.get((status_value(load.status), status_value(target_status)))
        needs_trip = rule is not None and rule.requires_active_trip and not load.is_terminal
        if needs_trip and load.trip_id and trip_snapshot is None:
            raise MalformedSnapshotError(
                EntityType.LOAD.value,
                f"load {load.load_id} is on trip {load.trip_id}; "
                f"its trip snapshot is required to {rule.action} it",
            )

        return super().propose_transition(load, target_status, actor, evidence, trip=trip_snapshot)

    def check_preconditions(
        self,
        rule: TransitionRule,
        snapshot: Load,
        evidence: EvidenceBundle,
        context: dict[str, Any],
    ) -> Optional[Rejected]:
        trip: Optional[Trip] = context.get("trip")
        if rule.requires_active_trip and trip is not None and trip.status != TripStatus.ACTIVE:
            return self.reject(
                snapshot,
                rule.target,
                RejectionReason.INVALID_TRANSITION,
                f"Trip {trip.trip_id} is {trip.status.value}; loads can only {rule.action} on an active trip",
                field="trip_status",
            )

        if rule.target == LoadStatus.ASSIGNED.value:
            driver_id = evidence.driver_id or snapshot.driver_id
            company_id = evidence.company_id or snapshot.company_id
            if not driver_id and not company_id:
                return self.reject(
                    snapshot,
                    rule.target,
                    RejectionReason.MISSING_EVIDENCE,
                    "A driver or company must be bound when accepting a request",
                    field="driver_id",
                )

        if rule.target == LoadStatus.IN_TRANSIT.value:
            if evidence.actual_cuft_loaded is None:
                return self.reject(
                    snapshot,
                    rule.target,
                    RejectionReason.MISSING_EVIDENCE,
                    "Loaded cubic feet are required to mark pickup complete",
                    field="actual_cuft_loaded",
                )
            if evidence.actual_cuft_loaded <= 0:
                return self.reject(
                    snapshot,
                    rule.target,
                    RejectionReason.INVALID_VALUE,
                    "Loaded cubic feet must be greater than zero",
                    field="actual_cuft_loaded",
                )

        return None

    def field_updates(
        self,
        rule: TransitionRule,
        snapshot: Load,
        evidence: EvidenceBundle,
        actor: Actor,
    ) -> dict[str, Any]:
        target = rule.target
        updates: dict[str, Any] = {}

        if target == LoadStatus.REQUESTED.value:
            updates["company_id"] = evidence.company_id or actor.actor_id
        elif target == LoadStatus.ASSIGNED.value:
            if evidence.driver_id:
                updates["driver_id"] = evidence.driver_id
            if evidence.company_id:
                updates["company_id"] = evidence.company_id
        elif target == LoadStatus.POSTED.value and rule.source == LoadStatus.REQUESTED.value:
            updates["company_id"] = None
        elif target == LoadStatus.IN_TRANSIT.value:
            updates["actual_cuft_loaded"] = evidence.actual_cuft_loaded
            if evidence.load_report_photo:
                updates["load_report_photo"] = evidence.load_report_photo
        elif target == LoadStatus.DELIVERED.value:
            if evidence.delivery_photos:
                updates["delivery_photos"] = list(evidence.delivery_photos)
        elif target == LoadStatus.DELETED.value:
            updates["is_deleted"] = True

        return updates

    def version_guards(
        self,
        rule: TransitionRule,
        snapshot: Load,
        context: dict[str, Any],
    ) -> list[VersionGuard]:
        trip: Optional[Trip] = context.get("trip")
        if not rule.requires_active_trip or trip is None:
            return []
        # Pickup and delivery are only valid while the trip stays as it was read.
        return [VersionGuard(entity_type=EntityType.TRIP, entity_id=trip.trip_id, expected_version=trip.version)]

    def check_trip_attachment(
        self,
        load: Union[Load, Mapping[str, Any]],
        trip: Union[Trip, Mapping[str, Any]],
        actor: Actor,
    ) -> Optional[Rejected]:
        """
        Decide whether a load may be put on a trip.

        Args:
            load: Load snapshot
            trip: Target trip snapshot
            actor: Acting user

        Returns:
            None when allowed, otherwise the rejection
        """
        load = self.coerce_snapshot(load)
        trip = _coerce_trip_model(trip)
        target = f"trip:{trip.trip_id}"

        if load.is_terminal:
            return self.reject(
                load,
                target,
                RejectionReason.TERMINAL_STATE,
                f"Load is {load.status.value} and cannot be scheduled",
            )
        if not actor.has_any_role(OWNER_SIDE):
            return self.reject(
                load, target, RejectionReason.UNAUTHORIZED, "Only owner, company may schedule a load"
            )
        if load.status not in TRIP_ATTACHABLE:
            return self.reject(
                load,
                target,
                RejectionReason.INVALID_TRANSITION,
                f"Load must be assigned before it is scheduled (currently {load.status.value})",
                field="status",
            )
        if trip.status not in ATTACHABLE_TRIP_STATUSES:
            return self.reject(
                load,
                target,
                RejectionReason.INVALID_TRANSITION,
                f"Trip {trip.trip_id} is {trip.status.value} and takes no new loads",
                field="trip_status",
            )
        return None

    def _coerce_trip(
        self, load: Load, trip: Union[Trip, Mapping[str, Any], None]
    ) -> Optional[Trip]:
        if trip is None:
            return None
        trip = _coerce_trip_model(trip)
        if load.trip_id is not None and trip.trip_id != load.trip_id:
            raise MalformedSnapshotError(
                EntityType.LOAD.value,
                f"load {load.load_id} is on trip {load.trip_id}, got snapshot for {trip.trip_id}",
            )
        return trip


def _coerce_trip_model(trip: Union[Trip, Mapping[str, Any]]) -> Trip:
    if isinstance(trip, Trip):
        return trip
    try:
        return Trip.model_validate(trip)
    except ValueError as e:
        raise MalformedSnapshotError(EntityType.TRIP.value, str(e)) from e


__all__ = ["LoadStateMachine", "LOAD_TRANSITIONS", "TRIP_ATTACHABLE"]
