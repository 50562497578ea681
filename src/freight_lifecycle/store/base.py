"""
Persistence contract for the lifecycle engine.

A store hands out snapshots and applies accepted transitions atomically,
conditional on the version the snapshot was read at.
"""

from abc import ABC, abstractmethod
from typing import Any

from freight_lifecycle.data.models.history import EntityType, StatusHistoryEntry
from freight_lifecycle.data.models.load import Load
from freight_lifecycle.data.models.trip import Trip
from freight_lifecycle.engine.results import Accepted


class TransitionStore(ABC):
    """
    Persistence collaborator.

    Implementations must make ``apply_transition`` a single atomic step:
    re-check the version and every guard version, write status plus field
    updates, bump the version and append the history entry, or do nothing
    at all.
    """

    @abstractmethod
    def get_load(self, load_id: str) -> Load:
        """Return the current load snapshot or raise EntityNotFoundError."""

    @abstractmethod
    def get_trip(self, trip_id: str) -> Trip:
        """Return the current trip snapshot or raise EntityNotFoundError."""

    @abstractmethod
    def save_load(self, load: Load) -> Load:
        """Insert or overwrite a load row as given (used for creation and seeding)."""

    @abstractmethod
    def save_trip(self, trip: Trip) -> Trip:
        """Insert or overwrite a trip row as given."""

    @abstractmethod
    def apply_transition(self, accepted: Accepted) -> int:
        """
        Write an accepted transition.

        Returns:
            The new row version

        Raises:
            EntityNotFoundError: If the entity no longer exists
            ConcurrentModificationError: If the stored version differs from
                ``accepted.expected_version``, or a guarded row moved on
        """

    @abstractmethod
    def history(self, entity_type: EntityType, entity_id: str) -> list[StatusHistoryEntry]:
        """Status history for one entity, oldest first."""


def merge_transition(row: dict[str, Any], accepted: Accepted) -> dict[str, Any]:
    """Apply an accepted transition to a stored row, returning the new row."""
    merged = dict(row)
    merged.update(accepted.field_updates)
    merged["status"] = accepted.new_status
    merged["version"] = accepted.expected_version + 1
    return merged


def snapshot_row(model: Load | Trip) -> dict[str, Any]:
    """JSON-safe row for a snapshot."""
    return model.model_dump(mode="json")
