"""SQLite-backed transition store with version-checked writes."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock, RLock
from typing import Any, Optional

import structlog

from freight_lifecycle.core.config import ConfigManager, get_config
from freight_lifecycle.core.errors import ConcurrentModificationError, EntityNotFoundError
from freight_lifecycle.data.models.history import EntityType, StatusHistoryEntry
from freight_lifecycle.data.models.load import Load
from freight_lifecycle.data.models.trip import Trip
from freight_lifecycle.engine.results import Accepted
from freight_lifecycle.store.base import TransitionStore, merge_transition, snapshot_row

_TABLES = {
    EntityType.LOAD: "loads",
    EntityType.TRIP: "trips",
}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=True)


class SqliteTransitionStore(TransitionStore):
    """Durable store for loads, trips and their status history."""

    _lock_registry: dict[str, RLock] = {}
    _lock_registry_guard = Lock()

    def __init__(
        self,
        db_path: Optional[str | Path] = None,
        config_manager: Optional[ConfigManager] = None,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        """
        Open (and if needed create) the database.

        Args:
            db_path: SQLite file, or ":memory:". Defaults to DATABASE_URL.
            config_manager: Optional config manager (defaults to global instance)
            logger: Optional structured logger
        """
        if db_path is None:
            db_path = (config_manager or get_config()).get_database_path()

        self._db_path = str(db_path)
        self.logger = logger or structlog.get_logger(store="sqlite")

        if self._db_path == ":memory:":
            lock_key = f":memory:{id(self)}"
        else:
            path = Path(self._db_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            lock_key = str(path.resolve())

        self._lock = self._get_shared_lock(lock_key)
        self._conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,
            timeout=30.0,
            isolation_level=None,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode = WAL")
        self._conn.execute("PRAGMA synchronous = NORMAL")
        self._conn.execute("PRAGMA busy_timeout = 30000")
        self._initialize_schema()

    @classmethod
    def _get_shared_lock(cls, key: str) -> RLock:
        with cls._lock_registry_guard:
            lock = cls._lock_registry.get(key)
            if lock is None:
                lock = RLock()
                cls._lock_registry[key] = lock
            return lock

    def _initialize_schema(self) -> None:
        with self._lock:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS loads (
                    entity_id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    data_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS trips (
                    entity_id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    data_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS status_history (
                    history_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    entity_type TEXT NOT NULL,
                    entity_id TEXT NOT NULL,
                    previous_status TEXT NOT NULL,
                    new_status TEXT NOT NULL,
                    actor_id TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    note TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_history_entity
                    ON status_history (entity_type, entity_id, history_id);
                """
            )

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def get_load(self, load_id: str) -> Load:
        return Load.model_validate(self._get_row(EntityType.LOAD, load_id))

    def get_trip(self, trip_id: str) -> Trip:
        return Trip.model_validate(self._get_row(EntityType.TRIP, trip_id))

    def save_load(self, load: Load) -> Load:
        self._upsert(EntityType.LOAD, load.load_id, snapshot_row(load))
        return load

    def save_trip(self, trip: Trip) -> Trip:
        self._upsert(EntityType.TRIP, trip.trip_id, snapshot_row(trip))
        return trip

    def apply_transition(self, accepted: Accepted) -> int:
        table = _TABLES[accepted.entity_type]
        entry = accepted.side_effects.history_entry

        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                current = self._conn.execute(
                    f"SELECT version, data_json FROM {table} WHERE entity_id = ?",
                    (accepted.entity_id,),
                ).fetchone()
                if current is None:
                    raise EntityNotFoundError(accepted.entity_type.value, accepted.entity_id)

                for guard in accepted.guards:
                    guarded = self._conn.execute(
                        f"SELECT version FROM {_TABLES[guard.entity_type]} WHERE entity_id = ?",
                        (guard.entity_id,),
                    ).fetchone()
                    if guarded is None:
                        raise EntityNotFoundError(guard.entity_type.value, guard.entity_id)
                    if int(guarded["version"]) != guard.expected_version:
                        raise ConcurrentModificationError(
                            guard.entity_type.value,
                            guard.entity_id,
                            guard.expected_version,
                            int(guarded["version"]),
                        )

                merged = merge_transition(json.loads(current["data_json"]), accepted)
                cursor = self._conn.execute(
                    f"""
                    UPDATE {table}
                    SET status = ?, version = version + 1, data_json = ?, updated_at = ?
                    WHERE entity_id = ? AND version = ?
                    """,
                    (
                        accepted.new_status,
                        _json_dumps(merged),
                        _utc_now_iso(),
                        accepted.entity_id,
                        accepted.expected_version,
                    ),
                )
                if cursor.rowcount != 1:
                    raise ConcurrentModificationError(
                        accepted.entity_type.value,
                        accepted.entity_id,
                        accepted.expected_version,
                        int(current["version"]),
                    )

                self._conn.execute(
                    """
                    INSERT INTO status_history
                        (entity_type, entity_id, previous_status, new_status, actor_id, timestamp, note)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry.entity_type.value,
                        entry.entity_id,
                        entry.previous_status,
                        entry.new_status,
                        entry.actor_id,
                        entry.timestamp.isoformat(),
                        entry.note,
                    ),
                )
                self._conn.execute("COMMIT")
            except Exception:
                self._conn.execute("ROLLBACK")
                raise

        self.logger.debug(
            "transition_applied",
            entity_type=accepted.entity_type.value,
            entity_id=accepted.entity_id,
            version=merged["version"],
        )
        return merged["version"]

    def history(self, entity_type: EntityType, entity_id: str) -> list[StatusHistoryEntry]:
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT entity_type, entity_id, previous_status, new_status, actor_id, timestamp, note
                FROM status_history
                WHERE entity_type = ? AND entity_id = ?
                ORDER BY history_id ASC
                """,
                (entity_type.value, entity_id),
            ).fetchall()
        return [
            StatusHistoryEntry(
                entity_type=row["entity_type"],
                entity_id=row["entity_id"],
                previous_status=row["previous_status"],
                new_status=row["new_status"],
                actor_id=row["actor_id"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
                note=row["note"],
            )
            for row in rows
        ]

    def _get_row(self, entity_type: EntityType, entity_id: str) -> dict[str, Any]:
        table = _TABLES[entity_type]
        with self._lock:
            row = self._conn.execute(
                f"SELECT version, data_json FROM {table} WHERE entity_id = ?",
                (entity_id,),
            ).fetchone()
        if row is None:
            raise EntityNotFoundError(entity_type.value, entity_id)
        data = json.loads(row["data_json"])
        data["version"] = int(row["version"])
        return data

    def _upsert(self, entity_type: EntityType, entity_id: str, data: dict[str, Any]) -> None:
        table = _TABLES[entity_type]
        with self._lock:
            self._conn.execute(
                f"""
                INSERT INTO {table} (entity_id, status, version, data_json, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(entity_id)
                DO UPDATE SET status = excluded.status, version = excluded.version,
                              data_json = excluded.data_json, updated_at = excluded.updated_at
                """,
                (entity_id, data["status"], int(data.get("version") or 1), _json_dumps(data), _utc_now_iso()),
            )
