"""Tests for side-effect computation."""

from conftest import FIXED_NOW, make_load, make_trip
from freight_lifecycle.data.models import Actor, ActorRole, EntityType, LoadStatus, StatusHistoryEntry, TripStatus
from freight_lifecycle.engine import (
    NotificationTrigger,
    RecalculationTrigger,
    SideEffectComputer,
)


def test_output_is_deterministic_for_fixed_clock(clock):
    computer = SideEffectComputer(clock=clock)
    trip = make_trip(TripStatus.ACTIVE, odometer_start=100, load_ids=["LOAD-001"])
    actor = Actor.with_role("driver-1", ActorRole.DRIVER)
    updates = {"odometer_end": 300, "odometer_end_photo": "e.jpg", "actual_miles": 200}

    first = computer.compute(EntityType.TRIP, trip, "active", "completed", actor, updates)
    second = computer.compute(EntityType.TRIP, trip, "active", "completed", actor, updates)

    assert first == second
    assert first.history_entry.timestamp == FIXED_NOW


def test_ordered_puts_history_first(clock):
    computer = SideEffectComputer(clock=clock)
    trip = make_trip(TripStatus.ACTIVE, odometer_start=100)
    actor = Actor.with_role("driver-1", ActorRole.DRIVER)

    effects = computer.compute(
        EntityType.TRIP, trip, "active", "completed", actor, {"actual_miles": 50, "odometer_end": 150}
    )
    ordered = effects.ordered()

    assert isinstance(ordered[0], StatusHistoryEntry)
    assert isinstance(ordered[1], NotificationTrigger)
    assert isinstance(ordered[-1], RecalculationTrigger)
    assert len(ordered) == 3


def test_recipients_without_ids_are_skipped(clock):
    computer = SideEffectComputer(clock=clock)
    load = make_load(LoadStatus.ASSIGNED, owner_id=None, company_id=None, driver_id=None)
    actor = Actor.with_role("owner-1", ActorRole.OWNER)

    effects = computer.compute(EntityType.LOAD, load, "assigned", "cancelled", actor)

    assert effects.notification_triggers == []
    assert effects.recalculation_triggers == []
    assert effects.history_entry.actor_id == "owner-1"


def test_soft_delete_has_history_only(clock):
    computer = SideEffectComputer(clock=clock)
    actor = Actor.with_role("owner-1", ActorRole.OWNER)

    effects = computer.compute(EntityType.LOAD, make_load(LoadStatus.DELIVERED), "delivered", "deleted", actor)

    assert effects.ordered() == [effects.history_entry]
