"""
Lifecycle Service - the caller side of the engine.

This service:
- Reads the current snapshot from the store
- Asks the state machine for a decision
- Writes accepted transitions with a version-checked, atomic store call
- Re-evaluates against fresh state when another writer got there first
- Hands notification and recalculation triggers to their collaborators
"""

from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, Optional, Union

import structlog

from freight_lifecycle.collaborators import NotificationSink, RecalculationSink
from freight_lifecycle.core.config import ConfigManager, get_config
from freight_lifecycle.core.errors import ConcurrentModificationError
from freight_lifecycle.data.models.actor import Actor
from freight_lifecycle.data.models.evidence import EvidenceBundle
from freight_lifecycle.data.models.history import EntityType, StatusHistoryEntry
from freight_lifecycle.engine.base import status_value
from freight_lifecycle.engine.load_machine import LoadStateMachine
from freight_lifecycle.engine.results import Accepted, Rejected, RejectionReason, TransitionResult
from freight_lifecycle.engine.trip_machine import TripStateMachine
from freight_lifecycle.store.base import TransitionStore

Evidence = Union[EvidenceBundle, Mapping[str, Any], None]


class LifecycleService:
    """
    Orchestrates read, decide, conditional write and dispatch.

    Notification and recalculation failures are logged and never undo a
    committed transition.
    """

    def __init__(
        self,
        store: TransitionStore,
        notifier: Optional[NotificationSink] = None,
        recalculator: Optional[RecalculationSink] = None,
        load_machine: Optional[LoadStateMachine] = None,
        trip_machine: Optional[TripStateMachine] = None,
        config_manager: Optional[ConfigManager] = None,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            store: Persistence collaborator
            notifier: Optional notification collaborator
            recalculator: Optional financial collaborator
            load_machine: Optional load machine (defaults to a new instance)
            trip_machine: Optional trip machine (defaults to a new instance)
            config_manager: Optional config manager (defaults to global instance)
            logger: Optional structured logger
        """
        self.store = store
        self.notifier = notifier
        self.recalculator = recalculator
        self.load_machine = load_machine or LoadStateMachine()
        self.trip_machine = trip_machine or TripStateMachine()
        self.config_manager = config_manager or get_config()
        self.settings = self.config_manager.get_lifecycle_settings()
        self.logger = logger or structlog.get_logger(component="lifecycle_service")

    def transition_load(
        self,
        load_id: str,
        target_status: Union[Enum, str],
        actor: Actor,
        evidence: Evidence = None,
    ) -> TransitionResult:
        """
        Move a load to a new status.

        Args:
            load_id: Load identifier
            target_status: Requested status
            actor: Acting user
            evidence: Optional evidence bundle

        Returns:
            The committed Accepted result, or a Rejected one

        Raises:
            EntityNotFoundError: If the load (or its trip) does not exist
        """

        def propose() -> TransitionResult:
            load = self.store.get_load(load_id)
            trip = self.store.get_trip(load.trip_id) if load.trip_id else None
            return self.load_machine.propose_transition(load, target_status, actor, evidence, trip=trip)

        return self._commit(EntityType.LOAD, load_id, status_value(target_status), propose)

    def transition_trip(
        self,
        trip_id: str,
        target_status: Union[Enum, str],
        actor: Actor,
        evidence: Evidence = None,
    ) -> TransitionResult:
        """
        Move a trip to a new status.

        Args:
            trip_id: Trip identifier
            target_status: Requested status
            actor: Acting user
            evidence: Optional evidence bundle

        Returns:
            The committed Accepted result, or a Rejected one
        """

        def propose() -> TransitionResult:
            trip = self.store.get_trip(trip_id)
            return self.trip_machine.propose_transition(trip, target_status, actor, evidence)

        return self._commit(EntityType.TRIP, trip_id, status_value(target_status), propose)

    def check_trip_attachment(self, load_id: str, trip_id: str, actor: Actor) -> Optional[Rejected]:
        """Whether a stored load may be scheduled onto a stored trip."""
        load = self.store.get_load(load_id)
        trip = self.store.get_trip(trip_id)
        return self.load_machine.check_trip_attachment(load, trip, actor)

    def history(self, entity_type: EntityType, entity_id: str) -> list[StatusHistoryEntry]:
        """Status history for an entity, oldest first."""
        return self.store.history(entity_type, entity_id)

    def _commit(
        self,
        entity_type: EntityType,
        entity_id: str,
        target: str,
        propose: Callable[[], TransitionResult],
    ) -> TransitionResult:
        attempts = self.settings.max_conflict_retries + 1
        last_result: Optional[Accepted] = None
        last_conflict: Optional[ConcurrentModificationError] = None

        for attempt in range(1, attempts + 1):
            result = propose()
            if isinstance(result, Rejected):
                return result

            last_result = result
            try:
                version = self.store.apply_transition(result)
            except ConcurrentModificationError as e:
                last_conflict = e
                self.logger.warning(
                    "transition_conflict",
                    entity_type=entity_type.value,
                    entity_id=entity_id,
                    attempt=attempt,
                    conflicting_entity=f"{e.entity_type}:{e.entity_id}",
                    expected_version=e.expected_version,
                    actual_version=e.actual_version,
                )
                continue

            self.logger.info(
                "transition_committed",
                entity_type=entity_type.value,
                entity_id=entity_id,
                from_status=result.previous_status,
                to_status=result.new_status,
                version=version,
            )
            self._dispatch(result)
            return result

        self.logger.error(
            "transition_conflict_retries_exhausted",
            entity_type=entity_type.value,
            entity_id=entity_id,
            attempts=attempts,
        )
        return Rejected(
            reason=RejectionReason.CONCURRENT_MODIFICATION,
            entity_type=entity_type,
            entity_id=entity_id,
            current_status=last_result.previous_status if last_result else "",
            target_status=target,
            field="version",
            message=str(last_conflict) if last_conflict else "Concurrent modification",
        )

    def _dispatch(self, accepted: Accepted) -> None:
        effects = accepted.side_effects

        if self.notifier is not None and self.settings.notifications_enabled and effects.notification_triggers:
            try:
                self.notifier.dispatch(effects.notification_triggers)
            except Exception as e:
                self.logger.error(
                    "notification_dispatch_failed",
                    entity_id=accepted.entity_id,
                    error=str(e),
                    count=len(effects.notification_triggers),
                )

        if self.recalculator is not None and self.settings.recalculations_enabled and effects.recalculation_triggers:
            try:
                self.recalculator.enqueue(effects.recalculation_triggers)
            except Exception as e:
                self.logger.error(
                    "recalculation_enqueue_failed",
                    entity_id=accepted.entity_id,
                    error=str(e),
                    count=len(effects.recalculation_triggers),
                )


def main() -> None:
    """Example usage: run a trip from planned to completed."""
    from freight_lifecycle.collaborators import LoggingNotificationSink, QueueRecalculationSink
    from freight_lifecycle.core.logging import configure_logging
    from freight_lifecycle.data.models.actor import ActorRole
    from freight_lifecycle.data.models.trip import Trip, TripStatus
    from freight_lifecycle.store.memory import InMemoryTransitionStore

    config = get_config()
    logging_settings = config.get_logging_settings()
    configure_logging(logging_settings.level, logging_settings.format)

    store = InMemoryTransitionStore()
    recalculations = QueueRecalculationSink()
    service = LifecycleService(
        store,
        notifier=LoggingNotificationSink(),
        recalculator=recalculations,
        config_manager=config,
    )

    store.save_trip(Trip(trip_id="TRIP-001", status=TripStatus.PLANNED, owner_id="owner-1", driver_id="driver-1"))
    driver = Actor.with_role("driver-1", ActorRole.DRIVER)

    started = service.transition_trip(
        "TRIP-001",
        TripStatus.ACTIVE,
        driver,
        {"odometer_start": 120500, "odometer_start_photo": "photos/trip-001/start.jpg"},
    )
    completed = service.transition_trip(
        "TRIP-001",
        TripStatus.COMPLETED,
        driver,
        {"odometer_end": 121340, "odometer_end_photo": "photos/trip-001/end.jpg"},
    )

    print("\n" + "=" * 80)
    print("TRIP LIFECYCLE")
    print("=" * 80)
    print(f"Start:    {started.outcome}")
    print(f"Complete: {completed.outcome}")
    for entry in service.history(EntityType.TRIP, "TRIP-001"):
        print(f"  {entry.timestamp.isoformat()}  {entry.previous_status} -> {entry.new_status} by {entry.actor_id}")
    for trigger in recalculations.drain():
        print(f"  recalculation: {trigger.kind.value} {trigger.payload}")
    print("=" * 80 + "\n")


if __name__ == "__main__":
    main()
