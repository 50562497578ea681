"""Tests for the persistence collaborators."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import make_load, make_trip
from freight_lifecycle.core.errors import ConcurrentModificationError, EntityNotFoundError
from freight_lifecycle.data.models import EntityType, LoadStatus, TripStatus
from freight_lifecycle.store import InMemoryTransitionStore, SqliteTransitionStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryTransitionStore()
    else:
        sqlite_store = SqliteTransitionStore(db_path=tmp_path / "lifecycle.db")
        yield sqlite_store
        sqlite_store.close()


def test_round_trips_snapshots(store):
    store.save_load(make_load(LoadStatus.DRAFT, rate="1200.50", trip_id="TRIP-001"))
    store.save_trip(make_trip(load_ids=["LOAD-001"]))

    load = store.get_load("LOAD-001")
    trip = store.get_trip("TRIP-001")

    assert load.status == LoadStatus.DRAFT
    assert str(load.rate) == "1200.50"
    assert load.version == 1
    assert trip.load_ids == ["LOAD-001"]


def test_unknown_ids_raise(store):
    with pytest.raises(EntityNotFoundError):
        store.get_load("nope")
    with pytest.raises(EntityNotFoundError):
        store.get_trip("nope")


def test_apply_writes_status_updates_and_history(store, load_machine, owner):
    store.save_load(make_load(LoadStatus.REQUESTED, company_id="carrier-1"))
    accepted = load_machine.propose_transition(store.get_load("LOAD-001"), LoadStatus.ASSIGNED, owner, {"driver_id": "d-9"})

    version = store.apply_transition(accepted)

    load = store.get_load("LOAD-001")
    assert version == 2
    assert load.version == 2
    assert load.status == LoadStatus.ASSIGNED
    assert load.driver_id == "d-9"
    [entry] = store.history(EntityType.LOAD, "LOAD-001")
    assert (entry.previous_status, entry.new_status) == ("requested", "assigned")


def test_stale_version_is_refused_and_nothing_written(store, trip_machine, owner, driver):
    store.save_trip(make_trip(TripStatus.PLANNED))
    snapshot = store.get_trip("TRIP-001")

    cancel = trip_machine.propose_transition(snapshot, TripStatus.CANCELLED, owner)
    start = trip_machine.propose_transition(
        snapshot, TripStatus.ACTIVE, driver, {"odometer_start": 10, "odometer_start_photo": "s.jpg"}
    )
    store.apply_transition(cancel)

    with pytest.raises(ConcurrentModificationError) as excinfo:
        store.apply_transition(start)

    assert excinfo.value.expected_version == 1
    assert excinfo.value.actual_version == 2
    assert store.get_trip("TRIP-001").status == TripStatus.CANCELLED
    assert len(store.history(EntityType.TRIP, "TRIP-001")) == 1


def test_concurrent_writers_only_one_wins(store, load_machine, owner):
    store.save_load(make_load(LoadStatus.DRAFT))
    snapshot = store.get_load("LOAD-001")
    accepted = load_machine.propose_transition(snapshot, LoadStatus.POSTED, owner)

    def _apply(_):
        try:
            store.apply_transition(accepted)
            return True
        except ConcurrentModificationError:
            return False

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(_apply, range(16)))

    assert outcomes.count(True) == 1
    assert len(store.history(EntityType.LOAD, "LOAD-001")) == 1


def test_sqlite_store_persists_across_instances(tmp_path, load_machine, owner):
    path = tmp_path / "lifecycle.db"
    first = SqliteTransitionStore(db_path=path)
    first.save_load(make_load(LoadStatus.DRAFT))
    first.apply_transition(load_machine.propose_transition(first.get_load("LOAD-001"), LoadStatus.POSTED, owner))
    first.close()

    second = SqliteTransitionStore(db_path=path)
    try:
        assert second.get_load("LOAD-001").status == LoadStatus.POSTED
        assert second.history(EntityType.LOAD, "LOAD-001")[0].actor_id == "owner-1"
    finally:
        second.close()


def test_sqlite_store_defaults_to_database_url(config_manager, tmp_path):
    store = SqliteTransitionStore(config_manager=config_manager)
    try:
        store.save_trip(make_trip())
    finally:
        store.close()

    assert (tmp_path / "lifecycle.db").exists()


def test_stale_guard_is_refused_and_nothing_written(store, load_machine, trip_machine, owner, driver):
    store.save_trip(make_trip(TripStatus.ACTIVE, odometer_start=1000, odometer_start_photo="s.jpg"))
    store.save_load(make_load(LoadStatus.ASSIGNED, trip_id="TRIP-001"))
    pickup = load_machine.propose_transition(
        store.get_load("LOAD-001"),
        LoadStatus.IN_TRANSIT,
        driver,
        {"actual_cuft_loaded": 640},
        trip=store.get_trip("TRIP-001"),
    )
    store.apply_transition(trip_machine.propose_transition(store.get_trip("TRIP-001"), TripStatus.CANCELLED, owner))

    with pytest.raises(ConcurrentModificationError) as excinfo:
        store.apply_transition(pickup)

    assert (excinfo.value.entity_type, excinfo.value.entity_id) == ("trip", "TRIP-001")
    load = store.get_load("LOAD-001")
    assert (load.status, load.version) == (LoadStatus.ASSIGNED, 1)
    assert store.history(EntityType.LOAD, "LOAD-001") == []


def test_current_guard_lets_write_through(store, load_machine, driver):
    store.save_trip(make_trip(TripStatus.ACTIVE, odometer_start=1000, odometer_start_photo="s.jpg"))
    store.save_load(make_load(LoadStatus.ASSIGNED, trip_id="TRIP-001"))
    pickup = load_machine.propose_transition(
        store.get_load("LOAD-001"),
        LoadStatus.IN_TRANSIT,
        driver,
        {"actual_cuft_loaded": 640},
        trip=store.get_trip("TRIP-001"),
    )

    assert store.apply_transition(pickup) == 2
    assert store.get_load("LOAD-001").actual_cuft_loaded == 640
    assert store.get_trip("TRIP-001").version == 1
