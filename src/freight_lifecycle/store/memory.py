"""In-process transition store guarded by a lock."""

from threading import RLock
from typing import Any, Optional

import structlog

from freight_lifecycle.core.errors import ConcurrentModificationError, EntityNotFoundError
from freight_lifecycle.data.models.history import EntityType, StatusHistoryEntry
from freight_lifecycle.data.models.load import Load
from freight_lifecycle.data.models.trip import Trip
from freight_lifecycle.engine.results import Accepted
from freight_lifecycle.store.base import TransitionStore, merge_transition, snapshot_row


class InMemoryTransitionStore(TransitionStore):
    """Dictionary-backed store for tests and single-process use."""

    def __init__(self, logger: Optional[structlog.BoundLogger] = None) -> None:
        self._lock = RLock()
        self._rows: dict[tuple[EntityType, str], dict[str, Any]] = {}
        self._history: list[StatusHistoryEntry] = []
        self.logger = logger or structlog.get_logger(store="memory")

    def get_load(self, load_id: str) -> Load:
        return Load.model_validate(self._get_row(EntityType.LOAD, load_id))

    def get_trip(self, trip_id: str) -> Trip:
        return Trip.model_validate(self._get_row(EntityType.TRIP, trip_id))

    def save_load(self, load: Load) -> Load:
        with self._lock:
            self._rows[(EntityType.LOAD, load.load_id)] = snapshot_row(load)
        return load

    def save_trip(self, trip: Trip) -> Trip:
        with self._lock:
            self._rows[(EntityType.TRIP, trip.trip_id)] = snapshot_row(trip)
        return trip

    def apply_transition(self, accepted: Accepted) -> int:
        key = (accepted.entity_type, accepted.entity_id)
        with self._lock:
            row = self._rows.get(key)
            if row is None:
                raise EntityNotFoundError(accepted.entity_type.value, accepted.entity_id)

            stored_version = int(row.get("version") or 1)
            if stored_version != accepted.expected_version:
                raise ConcurrentModificationError(
                    accepted.entity_type.value,
                    accepted.entity_id,
                    accepted.expected_version,
                    stored_version,
                )

            for guard in accepted.guards:
                guarded = self._rows.get((guard.entity_type, guard.entity_id))
                if guarded is None:
                    raise EntityNotFoundError(guard.entity_type.value, guard.entity_id)
                guarded_version = int(guarded.get("version") or 1)
                if guarded_version != guard.expected_version:
                    raise ConcurrentModificationError(
                        guard.entity_type.value,
                        guard.entity_id,
                        guard.expected_version,
                        guarded_version,
                    )

            merged = merge_transition(row, accepted)
            self._rows[key] = merged
            self._history.append(accepted.side_effects.history_entry)

        self.logger.debug(
            "transition_applied",
            entity_type=accepted.entity_type.value,
            entity_id=accepted.entity_id,
            version=merged["version"],
        )
        return merged["version"]

    def history(self, entity_type: EntityType, entity_id: str) -> list[StatusHistoryEntry]:
        with self._lock:
            return [
                entry
                for entry in self._history
                if entry.entity_type == entity_type and entry.entity_id == entity_id
            ]

    def _get_row(self, entity_type: EntityType, entity_id: str) -> dict[str, Any]:
        with self._lock:
            row = self._rows.get((entity_type, entity_id))
            if row is None:
                raise EntityNotFoundError(entity_type.value, entity_id)
            return dict(row)
