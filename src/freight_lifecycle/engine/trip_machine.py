"""
Trip lifecycle state machine.

Graph:
    planned -> active -> completed
    planned | active -> cancelled (owner only)

Activation needs a start odometer reading with photo; completion needs an
end reading with photo that is not below the start reading.
"""

from typing import Any, Optional

from freight_lifecycle.data.models.actor import Actor, ActorRole
from freight_lifecycle.data.models.evidence import EvidenceBundle, has_text
from freight_lifecycle.data.models.history import EntityType
from freight_lifecycle.data.models.trip import Trip, TripStatus
from freight_lifecycle.engine.base import BaseStateMachine, TransitionRule, build_table
from freight_lifecycle.engine.results import Rejected, RejectionReason

DRIVING_ROLES = frozenset({ActorRole.DRIVER, ActorRole.OWNER})
OWNER_ONLY = frozenset({ActorRole.OWNER})

TRIP_TRANSITIONS = build_table(
    [
        TransitionRule(
            source=TripStatus.PLANNED.value,
            target=TripStatus.ACTIVE.value,
            action="start",
            roles=DRIVING_ROLES,
        ),
        TransitionRule(
            source=TripStatus.ACTIVE.value,
            target=TripStatus.COMPLETED.value,
            action="complete",
            roles=DRIVING_ROLES,
        ),
        TransitionRule(
            source=TripStatus.PLANNED.value,
            target=TripStatus.CANCELLED.value,
            action="cancel",
            roles=OWNER_ONLY,
        ),
        TransitionRule(
            source=TripStatus.ACTIVE.value,
            target=TripStatus.CANCELLED.value,
            action="cancel",
            roles=OWNER_ONLY,
        ),
    ]
)


class TripStateMachine(BaseStateMachine):
    """Lifecycle for trips."""

    entity_type = EntityType.TRIP
    snapshot_model = Trip
    transitions = TRIP_TRANSITIONS

    def entity_id(self, snapshot: Trip) -> str:
        return snapshot.trip_id

    def is_terminal(self, snapshot: Trip) -> bool:
        return snapshot.is_terminal

    def check_preconditions(
        self,
        rule: TransitionRule,
        snapshot: Trip,
        evidence: EvidenceBundle,
        context: dict[str, Any],
    ) -> Optional[Rejected]:
        if rule.target == TripStatus.ACTIVE.value:
            return self._check_start(rule, snapshot, evidence)
        if rule.target == TripStatus.COMPLETED.value:
            return self._check_completion(rule, snapshot, evidence)
        return None

    def _check_start(self, rule: TransitionRule, trip: Trip, evidence: EvidenceBundle) -> Optional[Rejected]:
        photo = _prefer(evidence.odometer_start_photo, trip.odometer_start_photo)
        reading = _prefer(evidence.odometer_start, trip.odometer_start)

        # Photo first: a missing photo is reported whatever the reading says.
        if not has_text(photo):
            return self.reject(
                trip,
                rule.target,
                RejectionReason.MISSING_EVIDENCE,
                "A starting odometer photo is required to start this trip",
                field="odometer_start_photo",
            )
        if reading is None:
            return self.reject(
                trip,
                rule.target,
                RejectionReason.MISSING_EVIDENCE,
                "A starting odometer reading is required to start this trip",
                field="odometer_start",
            )
        if reading < 0:
            return self.reject(
                trip,
                rule.target,
                RejectionReason.INVALID_VALUE,
                "Starting odometer cannot be negative",
                field="odometer_start",
            )
        return None

    def _check_completion(self, rule: TransitionRule, trip: Trip, evidence: EvidenceBundle) -> Optional[Rejected]:
        end = _prefer(evidence.odometer_end, trip.odometer_end)
        # The start reading is fixed at activation; evidence cannot restate it.
        start = trip.odometer_start
        photo = _prefer(evidence.odometer_end_photo, trip.odometer_end_photo)

        if end is None:
            return self.reject(
                trip,
                rule.target,
                RejectionReason.MISSING_EVIDENCE,
                "An ending odometer reading is required to complete this trip",
                field="odometer_end",
            )
        if start is None:
            return self.reject(
                trip,
                rule.target,
                RejectionReason.MISSING_EVIDENCE,
                "Trip has no starting odometer reading",
                field="odometer_start",
            )
        if end < start:
            return self.reject(
                trip,
                rule.target,
                RejectionReason.INVALID_VALUE,
                f"Ending odometer ({end:g}) is below starting odometer ({start:g})",
                field="odometer_end",
            )
        if not has_text(photo):
            return self.reject(
                trip,
                rule.target,
                RejectionReason.MISSING_EVIDENCE,
                "An ending odometer photo is required to complete this trip",
                field="odometer_end_photo",
            )
        return None

    def field_updates(
        self,
        rule: TransitionRule,
        snapshot: Trip,
        evidence: EvidenceBundle,
        actor: Actor,
    ) -> dict[str, Any]:
        updates: dict[str, Any] = {}

        if rule.target == TripStatus.ACTIVE.value:
            updates["odometer_start"] = _prefer(evidence.odometer_start, snapshot.odometer_start)
            updates["odometer_start_photo"] = _prefer(evidence.odometer_start_photo, snapshot.odometer_start_photo)
            if evidence.driver_id:
                updates["driver_id"] = evidence.driver_id
        elif rule.target == TripStatus.COMPLETED.value:
            start = snapshot.odometer_start
            end = _prefer(evidence.odometer_end, snapshot.odometer_end)
            updates["odometer_end"] = end
            updates["odometer_end_photo"] = _prefer(evidence.odometer_end_photo, snapshot.odometer_end_photo)
            updates["actual_miles"] = end - start

        return updates


def _prefer(value: Any, fallback: Any) -> Any:
    """Evidence value when supplied, otherwise the stored one."""
    return value if value is not None else fallback
