"""
Exceptions for conditions that are not domain rejections.

Expected outcomes of a proposed transition are returned as ``Rejected``
values. The types here cover programmer errors and storage failures.
"""

from typing import Optional


class LifecycleError(Exception):
    """Base class for lifecycle engine errors."""


class MalformedSnapshotError(LifecycleError, ValueError):
    """A snapshot handed to a state machine is missing core fields or is inconsistent."""

    def __init__(self, entity_type: str, detail: str) -> None:
        self.entity_type = entity_type
        self.detail = detail
        super().__init__(f"Malformed {entity_type} snapshot: {detail}")


class EntityNotFoundError(LifecycleError, LookupError):
    """The store has no row for the requested id."""

    def __init__(self, entity_type: str, entity_id: str) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class ConcurrentModificationError(LifecycleError):
    """The stored version moved on since the snapshot was read."""

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int,
        actual_version: Optional[int] = None,
    ) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
