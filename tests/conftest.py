"""Shared fixtures for lifecycle tests."""

from datetime import datetime, timezone

import pytest

from freight_lifecycle.core.config import ConfigManager, EnvironmentSettings
from freight_lifecycle.data.models import Actor, ActorRole, Load, LoadStatus, Trip, TripStatus
from freight_lifecycle.engine import LoadStateMachine, SideEffectComputer, TripStateMachine

FIXED_NOW = datetime(2025, 11, 28, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def load_machine(clock):
    return LoadStateMachine(side_effects=SideEffectComputer(clock=clock))


@pytest.fixture
def trip_machine(clock):
    return TripStateMachine(side_effects=SideEffectComputer(clock=clock))


@pytest.fixture
def owner():
    return Actor.with_role("owner-1", ActorRole.OWNER)


@pytest.fixture
def driver():
    return Actor.with_role("driver-1", ActorRole.DRIVER)


@pytest.fixture
def carrier():
    return Actor.with_role("carrier-1", ActorRole.CARRIER)


@pytest.fixture
def company():
    return Actor.with_role("company-1", ActorRole.COMPANY)


@pytest.fixture
def config_manager(tmp_path):
    """Config rooted in an empty directory, so every setting is a default."""
    env = EnvironmentSettings(DATABASE_URL=f"sqlite:///{tmp_path / 'lifecycle.db'}")
    return ConfigManager(config_dir=tmp_path, env_settings=env)


def make_load(status=LoadStatus.POSTED, **overrides) -> Load:
    fields = {
        "load_id": "LOAD-001",
        "status": status,
        "owner_id": "owner-1",
    }
    fields.update(overrides)
    return Load(**fields)


def make_trip(status=TripStatus.PLANNED, **overrides) -> Trip:
    fields = {
        "trip_id": "TRIP-001",
        "status": status,
        "owner_id": "owner-1",
        "driver_id": "driver-1",
    }
    fields.update(overrides)
    return Trip(**fields)
