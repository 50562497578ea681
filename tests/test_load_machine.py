"""Tests for the load lifecycle."""

import pytest

from conftest import make_load, make_trip
from freight_lifecycle.core.errors import MalformedSnapshotError
from freight_lifecycle.data.models import Actor, ActorRole, EntityType, LoadStatus, TripStatus
from freight_lifecycle.engine import (
    LOAD_TRANSITIONS,
    Accepted,
    NotificationEvent,
    RecalculationKind,
    Rejected,
    RejectionReason,
    RecipientRole,
    propose_load_transition,
)

EVERYONE = Actor.with_role("anyone", *ActorRole)
LIVE_STATUSES = [status for status in LoadStatus if status not in (LoadStatus.CANCELLED, LoadStatus.DELETED)]
MISSING_EDGES = [
    (current, target)
    for current in LIVE_STATUSES
    for target in LoadStatus
    if (current.value, target.value) not in LOAD_TRANSITIONS
]


@pytest.mark.parametrize("current,target", MISSING_EDGES)
def test_edges_outside_graph_are_invalid(load_machine, current, target):
    result = load_machine.propose_transition(make_load(current), target, EVERYONE)

    assert isinstance(result, Rejected)
    assert result.reason == RejectionReason.INVALID_TRANSITION


def test_posted_straight_to_assigned_is_invalid(load_machine, owner):
    result = load_machine.propose_transition(
        {"load_id": "LOAD-9", "status": "posted"}, LoadStatus.ASSIGNED, owner, {"driver_id": "driver-1"}
    )

    assert result.outcome == "rejected"
    assert result.reason == RejectionReason.INVALID_TRANSITION
    assert result.current_status == "posted"
    assert result.target_status == "assigned"


@pytest.mark.parametrize("target", list(LoadStatus))
def test_deleted_load_accepts_nothing(load_machine, owner, target):
    result = load_machine.propose_transition(make_load(LoadStatus.DELETED), target, owner)

    assert result.reason == RejectionReason.TERMINAL_STATE


def test_soft_delete_flag_makes_load_terminal(load_machine, owner):
    load = make_load(LoadStatus.POSTED, is_deleted=True)

    result = load_machine.propose_transition(load, LoadStatus.DELETED, owner)

    assert result.reason == RejectionReason.TERMINAL_STATE


def test_cancelled_load_can_only_be_deleted(load_machine, owner):
    cancelled = make_load(LoadStatus.CANCELLED)

    assert load_machine.propose_transition(cancelled, LoadStatus.POSTED, owner).reason == RejectionReason.TERMINAL_STATE
    deleted = load_machine.propose_transition(cancelled, LoadStatus.DELETED, owner)
    assert isinstance(deleted, Accepted)
    assert deleted.field_updates == {"is_deleted": True}


def test_delivered_load_can_be_cancelled_by_owner(load_machine, owner, driver):
    load = make_load(LoadStatus.DELIVERED, company_id="company-1", driver_id="driver-1")

    result = load_machine.propose_transition(load, LoadStatus.CANCELLED, owner)

    assert isinstance(result, Accepted)
    assert result.previous_status == "delivered"
    assert len(result.side_effects.notification_triggers) == 2
    assert load_machine.propose_transition(load, LoadStatus.CANCELLED, driver).reason == RejectionReason.UNAUTHORIZED


def test_driver_cannot_publish(load_machine, driver):
    result = load_machine.propose_transition(make_load(LoadStatus.DRAFT), LoadStatus.POSTED, driver)

    assert result.reason == RejectionReason.UNAUTHORIZED
    assert "publish" in result.message


def test_only_owner_cancels(load_machine, company, driver):
    load = make_load(LoadStatus.ASSIGNED)

    assert load_machine.propose_transition(load, LoadStatus.CANCELLED, company).reason == RejectionReason.UNAUTHORIZED
    assert load_machine.propose_transition(load, LoadStatus.CANCELLED, driver).reason == RejectionReason.UNAUTHORIZED


def test_reproposing_applied_transition_is_never_accepted(load_machine, owner):
    result = load_machine.propose_transition(make_load(LoadStatus.POSTED), LoadStatus.POSTED, owner)

    assert result.reason == RejectionReason.INVALID_TRANSITION


def test_request_records_requesting_company_and_notifies_owner(load_machine, carrier, clock):
    result = load_machine.propose_transition(make_load(LoadStatus.POSTED), LoadStatus.REQUESTED, carrier)

    assert isinstance(result, Accepted)
    assert result.field_updates == {"company_id": "carrier-1"}
    [notification] = result.side_effects.notification_triggers
    assert notification.event == NotificationEvent.LOAD_REQUESTED
    assert notification.recipient_role == RecipientRole.OWNER
    assert notification.recipient_id == "owner-1"
    entry = result.side_effects.history_entry
    assert entry.entity_type == EntityType.LOAD
    assert (entry.previous_status, entry.new_status, entry.actor_id) == ("posted", "requested", "carrier-1")
    assert entry.timestamp == clock()


def test_accepting_request_needs_someone_to_bind(load_machine, owner):
    result = load_machine.propose_transition(make_load(LoadStatus.REQUESTED), LoadStatus.ASSIGNED, owner)

    assert result.reason == RejectionReason.MISSING_EVIDENCE
    assert result.field == "driver_id"


def test_accepting_request_notifies_company_and_driver(load_machine, owner):
    load = make_load(LoadStatus.REQUESTED, company_id="carrier-1")

    result = load_machine.propose_transition(load, LoadStatus.ASSIGNED, owner, {"driver_id": "driver-7"})

    assert isinstance(result, Accepted)
    assert result.field_updates == {"driver_id": "driver-7"}
    sent = [(n.event, n.recipient_role, n.recipient_id) for n in result.side_effects.notification_triggers]
    assert sent == [
        (NotificationEvent.REQUEST_ACCEPTED, RecipientRole.COMPANY, "carrier-1"),
        (NotificationEvent.DRIVER_ASSIGNED, RecipientRole.DRIVER, "driver-7"),
    ]


def test_declining_request_reposts_and_tells_former_requester(load_machine, owner):
    load = make_load(LoadStatus.REQUESTED, company_id="carrier-1")

    result = load_machine.propose_transition(load, LoadStatus.POSTED, owner)

    assert result.field_updates == {"company_id": None}
    [notification] = result.side_effects.notification_triggers
    assert notification.event == NotificationEvent.REQUEST_DECLINED
    assert notification.recipient_id == "carrier-1"


def test_pickup_requires_loaded_volume(load_machine, driver):
    load = make_load(LoadStatus.ASSIGNED, driver_id="driver-1")

    missing = load_machine.propose_transition(load, LoadStatus.IN_TRANSIT, driver)
    zero = load_machine.propose_transition(load, LoadStatus.IN_TRANSIT, driver, {"actual_cuft_loaded": 0})

    assert missing.reason == RejectionReason.MISSING_EVIDENCE
    assert missing.field == "actual_cuft_loaded"
    assert zero.reason == RejectionReason.INVALID_VALUE


def test_malformed_evidence_is_an_invalid_value(load_machine, driver):
    load = make_load(LoadStatus.ASSIGNED)

    result = load_machine.propose_transition(load, LoadStatus.IN_TRANSIT, driver, {"actual_cuft_loaded": "lots"})

    assert result.reason == RejectionReason.INVALID_VALUE
    assert result.field == "actual_cuft_loaded"


@pytest.mark.parametrize("volume", ["nan", "inf", float("nan"), float("-inf")])
def test_non_finite_volume_is_an_invalid_value(load_machine, driver, volume):
    load = make_load(LoadStatus.ASSIGNED)

    result = load_machine.propose_transition(load, LoadStatus.IN_TRANSIT, driver, {"actual_cuft_loaded": volume})

    assert result.reason == RejectionReason.INVALID_VALUE
    assert result.field == "actual_cuft_loaded"


@pytest.mark.parametrize(
    "current,target,evidence",
    [
        (LoadStatus.ASSIGNED, LoadStatus.IN_TRANSIT, {"actual_cuft_loaded": 850}),
        (LoadStatus.IN_TRANSIT, LoadStatus.DELIVERED, None),
    ],
)
def test_trip_bound_edges_require_the_trip_snapshot(load_machine, driver, current, target, evidence):
    load = make_load(current, trip_id="TRIP-001")

    with pytest.raises(MalformedSnapshotError):
        load_machine.propose_transition(load, target, driver, evidence)


def test_trip_snapshot_not_needed_for_other_edges(load_machine, owner):
    load = make_load(LoadStatus.ASSIGNED, trip_id="TRIP-001")

    assert load_machine.propose_transition(load, LoadStatus.CANCELLED, owner).accepted


def test_pickup_blocked_while_trip_not_active(load_machine, driver):
    load = make_load(LoadStatus.ASSIGNED, trip_id="TRIP-001")

    result = load_machine.propose_transition(
        load, LoadStatus.IN_TRANSIT, driver, {"actual_cuft_loaded": 850}, trip=make_trip(TripStatus.PLANNED)
    )

    assert result.reason == RejectionReason.INVALID_TRANSITION
    assert result.field == "trip_status"


def test_pickup_on_active_trip(load_machine, driver):
    load = make_load(LoadStatus.ASSIGNED, trip_id="TRIP-001", company_id="company-1")

    result = load_machine.propose_transition(
        load, LoadStatus.IN_TRANSIT, driver, {"actual_cuft_loaded": 850}, trip=make_trip(TripStatus.ACTIVE)
    )

    assert isinstance(result, Accepted)
    assert result.field_updates["actual_cuft_loaded"] == 850
    roles = [n.recipient_role for n in result.side_effects.notification_triggers]
    assert roles == [RecipientRole.OWNER, RecipientRole.COMPANY]
    [guard] = result.guards
    assert (guard.entity_type, guard.entity_id, guard.expected_version) == (EntityType.TRIP, "TRIP-001", 1)


def test_transitions_off_trip_carry_no_guards(load_machine, owner):
    result = load_machine.propose_transition(make_load(LoadStatus.DRAFT), LoadStatus.POSTED, owner)

    assert result.guards == []


def test_trip_snapshot_must_match_load(load_machine, driver):
    load = make_load(LoadStatus.ASSIGNED, trip_id="TRIP-001")

    with pytest.raises(MalformedSnapshotError):
        load_machine.propose_transition(
            load, LoadStatus.IN_TRANSIT, driver, {"actual_cuft_loaded": 1}, trip=make_trip(trip_id="TRIP-002")
        )


def test_delivery_requests_financial_recalculation(load_machine, driver):
    load = make_load(LoadStatus.IN_TRANSIT, rate="1800", accessorials="150")

    result = load_machine.propose_transition(load, LoadStatus.DELIVERED, driver)

    [recalc] = result.side_effects.recalculation_triggers
    assert recalc.kind == RecalculationKind.LOAD_FINANCIALS
    assert recalc.payload["gross_revenue"] == "1950"


def test_cancellation_notifies_assigned_parties(load_machine, owner):
    load = make_load(LoadStatus.ASSIGNED, company_id="company-1", driver_id="driver-1")

    result = load_machine.propose_transition(load, LoadStatus.CANCELLED, owner, {"note": "shipper postponed"})

    events = {(n.event, n.recipient_role) for n in result.side_effects.notification_triggers}
    assert events == {
        (NotificationEvent.LOAD_CANCELLED, RecipientRole.COMPANY),
        (NotificationEvent.LOAD_CANCELLED, RecipientRole.DRIVER),
    }
    assert result.side_effects.history_entry.note == "shipper postponed"


def test_missing_core_fields_raise(load_machine, owner):
    with pytest.raises(MalformedSnapshotError):
        load_machine.propose_transition({"status": "posted"}, LoadStatus.REQUESTED, owner)


def test_unknown_target_is_invalid(load_machine, owner):
    result = load_machine.propose_transition(make_load(LoadStatus.POSTED), "teleported", owner)

    assert result.reason == RejectionReason.INVALID_TRANSITION


def test_available_transitions_respect_roles(load_machine, driver, owner):
    load = make_load(LoadStatus.ASSIGNED)

    assert load_machine.available_transitions(load, driver) == ["in_transit"]
    assert set(load_machine.available_transitions(load, owner)) == {"in_transit", "cancelled", "deleted"}


def test_trip_attachment_rules(load_machine, owner, driver):
    trip = make_trip(TripStatus.PLANNED)

    assert load_machine.check_trip_attachment(make_load(LoadStatus.ASSIGNED), trip, owner) is None
    assert (
        load_machine.check_trip_attachment(make_load(LoadStatus.POSTED), trip, owner).reason
        == RejectionReason.INVALID_TRANSITION
    )
    assert (
        load_machine.check_trip_attachment(make_load(LoadStatus.DELETED), trip, owner).reason
        == RejectionReason.TERMINAL_STATE
    )
    assert (
        load_machine.check_trip_attachment(make_load(LoadStatus.ASSIGNED), make_trip(TripStatus.COMPLETED), owner).field
        == "trip_status"
    )
    assert (
        load_machine.check_trip_attachment(make_load(LoadStatus.ASSIGNED), trip, driver).reason
        == RejectionReason.UNAUTHORIZED
    )


def test_module_level_helper(owner):
    result = propose_load_transition(make_load(LoadStatus.DRAFT), LoadStatus.POSTED, owner)

    assert result.accepted
    assert result.new_status == LoadStatus.POSTED
