"""
Side-effect computation for accepted transitions.

Given an accepted status change, decides:
- The status history entry to append
- Which notifications should fire, for whom, with what payload
- Which financial recalculations downstream must run

Nothing here sends or persists anything; collaborators consume the output.
"""

from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from freight_lifecycle.data.models.actor import Actor
from freight_lifecycle.data.models.history import EntityType, StatusHistoryEntry
from freight_lifecycle.data.models.load import Load, LoadStatus
from freight_lifecycle.data.models.trip import Trip, TripStatus


class NotificationEvent(str, Enum):
    """Kinds of notification a transition can raise."""

    LOAD_REQUESTED = "LoadRequested"
    REQUEST_ACCEPTED = "RequestAccepted"
    REQUEST_DECLINED = "RequestDeclined"
    DRIVER_ASSIGNED = "DriverAssigned"
    LOAD_PICKED_UP = "LoadPickedUp"
    LOAD_DELIVERED = "LoadDelivered"
    LOAD_CANCELLED = "LoadCancelled"
    TRIP_STARTED = "TripStarted"
    TRIP_COMPLETED = "TripCompleted"
    TRIP_CANCELLED = "TripCancelled"


class RecipientRole(str, Enum):
    """Who a notification is addressed to."""

    OWNER = "owner"
    DRIVER = "driver"
    COMPANY = "company"


class RecalculationKind(str, Enum):
    """Financial recomputations the engine can request."""

    TRIP_SETTLEMENT = "trip_settlement"
    LOAD_FINANCIALS = "load_financials"


class NotificationTrigger(BaseModel):
    """A notification the notification collaborator should deliver."""

    event: NotificationEvent
    recipient_role: RecipientRole
    recipient_id: str
    payload: dict[str, Any] = Field(default_factory=dict)


class RecalculationTrigger(BaseModel):
    """A request for the financial collaborator to recompute figures."""

    kind: RecalculationKind
    entity_type: EntityType
    entity_id: str
    payload: dict[str, Any] = Field(default_factory=dict)


class SideEffects(BaseModel):
    """Everything a caller must apply together with the status write."""

    history_entry: StatusHistoryEntry
    notification_triggers: list[NotificationTrigger] = Field(default_factory=list)
    recalculation_triggers: list[RecalculationTrigger] = Field(default_factory=list)

    def ordered(self) -> list[Union[StatusHistoryEntry, NotificationTrigger, RecalculationTrigger]]:
        """Effects in apply order: history, notifications, recalculations."""
        return [self.history_entry, *self.notification_triggers, *self.recalculation_triggers]


# (source or None for "any source", target) -> [(event, recipient role, snapshot attribute holding the id)]
NotificationRules = dict[tuple[Optional[str], str], list[tuple[NotificationEvent, RecipientRole, str]]]

LOAD_NOTIFICATION_RULES: NotificationRules = {
    (LoadStatus.POSTED.value, LoadStatus.REQUESTED.value): [
        (NotificationEvent.LOAD_REQUESTED, RecipientRole.OWNER, "owner_id"),
    ],
    (LoadStatus.REQUESTED.value, LoadStatus.ASSIGNED.value): [
        (NotificationEvent.REQUEST_ACCEPTED, RecipientRole.COMPANY, "company_id"),
        (NotificationEvent.DRIVER_ASSIGNED, RecipientRole.DRIVER, "driver_id"),
    ],
    (LoadStatus.REQUESTED.value, LoadStatus.POSTED.value): [
        (NotificationEvent.REQUEST_DECLINED, RecipientRole.COMPANY, "company_id"),
    ],
    (LoadStatus.ASSIGNED.value, LoadStatus.IN_TRANSIT.value): [
        (NotificationEvent.LOAD_PICKED_UP, RecipientRole.OWNER, "owner_id"),
        (NotificationEvent.LOAD_PICKED_UP, RecipientRole.COMPANY, "company_id"),
    ],
    (LoadStatus.IN_TRANSIT.value, LoadStatus.DELIVERED.value): [
        (NotificationEvent.LOAD_DELIVERED, RecipientRole.OWNER, "owner_id"),
        (NotificationEvent.LOAD_DELIVERED, RecipientRole.COMPANY, "company_id"),
    ],
    (None, LoadStatus.CANCELLED.value): [
        (NotificationEvent.LOAD_CANCELLED, RecipientRole.COMPANY, "company_id"),
        (NotificationEvent.LOAD_CANCELLED, RecipientRole.DRIVER, "driver_id"),
    ],
}

TRIP_NOTIFICATION_RULES: NotificationRules = {
    (TripStatus.PLANNED.value, TripStatus.ACTIVE.value): [
        (NotificationEvent.TRIP_STARTED, RecipientRole.OWNER, "owner_id"),
    ],
    (TripStatus.ACTIVE.value, TripStatus.COMPLETED.value): [
        (NotificationEvent.TRIP_COMPLETED, RecipientRole.OWNER, "owner_id"),
    ],
    (None, TripStatus.CANCELLED.value): [
        (NotificationEvent.TRIP_CANCELLED, RecipientRole.DRIVER, "driver_id"),
    ],
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SideEffectComputer:
    """
    Deterministic mapping from an accepted transition to its side effects.

    The clock is injectable so the history timestamp is reproducible in tests.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.clock = clock or _utc_now

    def compute(
        self,
        entity_type: EntityType,
        snapshot: Union[Load, Trip],
        previous_status: str,
        new_status: str,
        actor: Actor,
        field_updates: Optional[dict[str, Any]] = None,
        note: Optional[str] = None,
    ) -> SideEffects:
        """
        Build the side-effect set for one accepted transition.

        Args:
            entity_type: Load or trip
            snapshot: Entity as read before the transition
            previous_status: Status before the transition
            new_status: Status after the transition
            actor: Who performed it
            field_updates: Fields the caller will write alongside the status
            note: Optional free text for the history entry

        Returns:
            SideEffects with history, notifications and recalculations
        """
        field_updates = field_updates or {}
        entity_id = _entity_id(snapshot)

        history_entry = StatusHistoryEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            previous_status=previous_status,
            new_status=new_status,
            actor_id=actor.actor_id,
            timestamp=self.clock(),
            note=note,
        )

        rules = LOAD_NOTIFICATION_RULES if entity_type == EntityType.LOAD else TRIP_NOTIFICATION_RULES
        base_payload = {
            f"{entity_type.value}_id": entity_id,
            "previous_status": previous_status,
            "new_status": new_status,
            "actor_id": actor.actor_id,
        }
        notifications = self._notifications(rules, snapshot, previous_status, new_status, field_updates, base_payload)

        if entity_type == EntityType.LOAD:
            recalculations = self._load_recalculations(snapshot, previous_status, new_status)
        else:
            recalculations = self._trip_recalculations(snapshot, previous_status, new_status, field_updates)

        return SideEffects(
            history_entry=history_entry,
            notification_triggers=notifications,
            recalculation_triggers=recalculations,
        )

    def _notifications(
        self,
        rules: NotificationRules,
        snapshot: Union[Load, Trip],
        previous_status: str,
        new_status: str,
        field_updates: dict[str, Any],
        base_payload: dict[str, Any],
    ) -> list[NotificationTrigger]:
        matched = rules.get((previous_status, new_status)) or rules.get((None, new_status)) or []

        triggers = []
        for event, role, attribute in matched:
            # A cleared field still addresses whoever held it before the transition.
            recipient_id = field_updates.get(attribute) or getattr(snapshot, attribute, None)
            if not recipient_id:
                continue
            payload = dict(base_payload)
            if "actual_miles" in field_updates:
                payload["actual_miles"] = field_updates["actual_miles"]
            triggers.append(
                NotificationTrigger(
                    event=event,
                    recipient_role=role,
                    recipient_id=recipient_id,
                    payload=payload,
                )
            )
        return triggers

    def _load_recalculations(
        self, load: Load, previous_status: str, new_status: str
    ) -> list[RecalculationTrigger]:
        if (previous_status, new_status) != (LoadStatus.IN_TRANSIT.value, LoadStatus.DELIVERED.value):
            return []
        return [
            RecalculationTrigger(
                kind=RecalculationKind.LOAD_FINANCIALS,
                entity_type=EntityType.LOAD,
                entity_id=load.load_id,
                payload={
                    "load_id": load.load_id,
                    "trip_id": load.trip_id,
                    "gross_revenue": str(load.gross_revenue),
                },
            )
        ]

    def _trip_recalculations(
        self, trip: Trip, previous_status: str, new_status: str, field_updates: dict[str, Any]
    ) -> list[RecalculationTrigger]:
        if (previous_status, new_status) != (TripStatus.ACTIVE.value, TripStatus.COMPLETED.value):
            return []
        return [
            RecalculationTrigger(
                kind=RecalculationKind.TRIP_SETTLEMENT,
                entity_type=EntityType.TRIP,
                entity_id=trip.trip_id,
                payload={
                    "trip_id": trip.trip_id,
                    "driver_id": trip.driver_id,
                    "actual_miles": field_updates.get("actual_miles", trip.actual_miles),
                    "load_ids": list(trip.load_ids),
                },
            )
        ]


def _entity_id(snapshot: Union[Load, Trip]) -> str:
    if isinstance(snapshot, Load):
        return snapshot.load_id
    return snapshot.trip_id
