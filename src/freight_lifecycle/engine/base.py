"""
Base state machine shared by the load and trip lifecycles.

Provides common functionality:
- Snapshot and evidence coercion
- Ordered guard evaluation (terminal, edge, role, evidence shape, preconditions)
- Side-effect computation for accepted transitions
- Structured logging of every decision
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any, Optional, Union

import structlog
from pydantic import BaseModel, ValidationError

from freight_lifecycle.core.errors import MalformedSnapshotError
from freight_lifecycle.data.models.actor import Actor, ActorRole
from freight_lifecycle.data.models.evidence import EvidenceBundle
from freight_lifecycle.data.models.history import EntityType
from freight_lifecycle.engine.results import Accepted, Rejected, RejectionReason, TransitionResult, VersionGuard
from freight_lifecycle.engine.side_effects import SideEffectComputer


class TransitionRule(BaseModel):
    """One allowed edge of a lifecycle graph."""

    source: str
    target: str
    action: str
    roles: frozenset[ActorRole]
    requires_active_trip: bool = False


def build_table(rules: Iterable[TransitionRule]) -> dict[tuple[str, str], TransitionRule]:
    """Index rules by (source, target), refusing duplicates."""
    table: dict[tuple[str, str], TransitionRule] = {}
    for rule in rules:
        key = (rule.source, rule.target)
        if key in table:
            raise ValueError(f"Duplicate transition rule: {rule.source} -> {rule.target}")
        table[key] = rule
    return table


def status_value(status: Union[Enum, str]) -> str:
    """Normalise an enum member or raw string to its stored value."""
    if isinstance(status, Enum):
        return str(status.value)
    return str(status)


class BaseStateMachine(ABC):
    """
    Base class for entity lifecycles.

    Subclasses declare the snapshot model, the transition table and the
    edge-specific preconditions. ``propose_transition`` never raises for a
    domain condition; it returns ``Accepted`` or ``Rejected``.
    """

    entity_type: EntityType
    snapshot_model: type[BaseModel]
    transitions: dict[tuple[str, str], TransitionRule]

    def __init__(
        self,
        side_effects: Optional[SideEffectComputer] = None,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        """
        Initialize the state machine.

        Args:
            side_effects: Optional side-effect computer (defaults to a UTC clock)
            logger: Optional structured logger
        """
        self.side_effects = side_effects or SideEffectComputer()
        self.logger = logger or structlog.get_logger(machine=self.entity_type.value)

    # Hooks for subclasses

    @abstractmethod
    def entity_id(self, snapshot: Any) -> str:
        """Identifier of the snapshot."""

    @abstractmethod
    def is_terminal(self, snapshot: Any) -> bool:
        """True when the snapshot accepts no ordinary transitions."""

    def allows_from_terminal(self, snapshot: Any, target: str) -> bool:
        """Whether a terminal snapshot may still take the given edge."""
        return False

    @abstractmethod
    def check_preconditions(
        self,
        rule: TransitionRule,
        snapshot: Any,
        evidence: EvidenceBundle,
        context: dict[str, Any],
    ) -> Optional[Rejected]:
        """Edge-specific evidence and value checks."""

    @abstractmethod
    def field_updates(
        self,
        rule: TransitionRule,
        snapshot: Any,
        evidence: EvidenceBundle,
        actor: Actor,
    ) -> dict[str, Any]:
        """Fields the caller should write together with the new status."""

    def version_guards(
        self,
        rule: TransitionRule,
        snapshot: Any,
        context: dict[str, Any],
    ) -> list[VersionGuard]:
        """Other rows the decision read, which the store must re-check on write."""
        return []

    # Public API

    def coerce_snapshot(self, snapshot: Any) -> Any:
        """
        Validate a snapshot into the machine's model.

        Raises:
            MalformedSnapshotError: If core fields are missing or invalid
        """
        if isinstance(snapshot, self.snapshot_model):
            return snapshot
        if not isinstance(snapshot, Mapping):
            raise MalformedSnapshotError(
                self.entity_type.value, f"expected mapping or {self.snapshot_model.__name__}, got {type(snapshot).__name__}"
            )
        try:
            return self.snapshot_model.model_validate(snapshot)
        except ValidationError as e:
            raise MalformedSnapshotError(self.entity_type.value, str(e)) from e

    def propose_transition(
        self,
        snapshot: Any,
        target_status: Union[Enum, str],
        actor: Actor,
        evidence: Union[EvidenceBundle, Mapping[str, Any], None] = None,
        **context: Any,
    ) -> TransitionResult:
        """
        Evaluate a proposed status change.

        Args:
            snapshot: Current entity snapshot (model instance or mapping)
            target_status: Requested status
            actor: Acting user with roles
            evidence: Optional evidence bundle or mapping
            **context: Extra snapshots a subclass needs (e.g. the owning trip)

        Returns:
            Accepted with side effects, or Rejected with a typed reason

        Raises:
            MalformedSnapshotError: If the snapshot is missing core fields
        """
        snapshot = self.coerce_snapshot(snapshot)
        if not isinstance(actor, Actor):
            actor = Actor.model_validate(actor)

        current = status_value(snapshot.status)
        target = status_value(target_status)

        if self.is_terminal(snapshot) and not self.allows_from_terminal(snapshot, target):
            return self.reject(
                snapshot,
                target,
                RejectionReason.TERMINAL_STATE,
                f"{self.entity_type.value} is {current} and accepts no further transitions",
            )

        rule = self.transitions.get((current, target))
        if rule is None:
            return self.reject(
                snapshot,
                target,
                RejectionReason.INVALID_TRANSITION,
                f"Cannot move {self.entity_type.value} from {current} to {target}",
            )

        if not actor.has_any_role(rule.roles):
            allowed = ", ".join(sorted(role.value for role in rule.roles))
            return self.reject(
                snapshot,
                target,
                RejectionReason.UNAUTHORIZED,
                f"Only {allowed} may {rule.action} a {self.entity_type.value}",
            )

        try:
            bundle = self._coerce_evidence(evidence)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ()))
            return self.reject(
                snapshot,
                target,
                RejectionReason.INVALID_VALUE,
                f"Evidence field {field} is invalid: {first.get('msg', '')}",
                field=field or None,
            )

        rejection = self.check_preconditions(rule, snapshot, bundle, context)
        if rejection is not None:
            return rejection

        updates = self.field_updates(rule, snapshot, bundle, actor)
        effects = self.side_effects.compute(
            entity_type=self.entity_type,
            snapshot=snapshot,
            previous_status=current,
            new_status=target,
            actor=actor,
            field_updates=updates,
            note=bundle.note,
        )

        self.logger.info(
            "transition_accepted",
            entity_id=self.entity_id(snapshot),
            from_status=current,
            to_status=target,
            action=rule.action,
            actor_id=actor.actor_id,
            notifications=len(effects.notification_triggers),
            recalculations=len(effects.recalculation_triggers),
        )

        return Accepted(
            entity_type=self.entity_type,
            entity_id=self.entity_id(snapshot),
            previous_status=current,
            new_status=target,
            expected_version=snapshot.version,
            guards=self.version_guards(rule, snapshot, context),
            field_updates=updates,
            side_effects=effects,
        )

    def available_transitions(self, snapshot: Any, actor: Optional[Actor] = None) -> list[str]:
        """
        List target statuses reachable from the snapshot's current status.

        Only the graph and roles are considered; evidence checks are not.

        Args:
            snapshot: Current entity snapshot
            actor: If given, keep only edges the actor's roles permit
        """
        snapshot = self.coerce_snapshot(snapshot)
        current = status_value(snapshot.status)
        targets = []
        for (source, target), rule in self.transitions.items():
            if source != current:
                continue
            if self.is_terminal(snapshot) and not self.allows_from_terminal(snapshot, target):
                continue
            if actor is not None and not actor.has_any_role(rule.roles):
                continue
            targets.append(target)
        return targets

    def reject(
        self,
        snapshot: Any,
        target: str,
        reason: RejectionReason,
        message: str,
        field: Optional[str] = None,
    ) -> Rejected:
        """Build and log a rejection for the snapshot."""
        rejected = Rejected(
            reason=reason,
            entity_type=self.entity_type,
            entity_id=self.entity_id(snapshot),
            current_status=status_value(snapshot.status),
            target_status=target,
            field=field,
            message=message,
        )
        self.logger.info(
            "transition_rejected",
            entity_id=rejected.entity_id,
            from_status=rejected.current_status,
            to_status=target,
            reason=reason.value,
            field=field,
        )
        return rejected

    def _coerce_evidence(
        self, evidence: Union[EvidenceBundle, Mapping[str, Any], None]
    ) -> EvidenceBundle:
        if evidence is None:
            return EvidenceBundle()
        if isinstance(evidence, EvidenceBundle):
            return evidence
        return EvidenceBundle.model_validate(dict(evidence))

    def __repr__(self) -> str:
        """String representation of the machine."""
        return f"{self.__class__.__name__}(entity_type='{self.entity_type.value}', edges={len(self.transitions)})"
