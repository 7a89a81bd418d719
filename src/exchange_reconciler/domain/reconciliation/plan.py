"""Correction plan types shared by detectors, the executor and the verifier.

A detector never talks to the store. It turns a scanned working set into a
:class:`CorrectionPlan`: what it found, what it wants to change, and which
records it had to skip. Keeping this contract explicit lets the executor and
the verifier stay ignorant of individual rules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from exchange_reconciler.domain.model import ChangeSet, Entity, EntityType, Operation


@dataclass(frozen=True, slots=True, kw_only=True)
class Finding:
    """One entity that violates the invariant a pass is checking."""

    entity_type: EntityType
    entity_id: str
    reason: str
    detail: str | None = None

    @classmethod
    def for_entity(cls, entity: Entity, reason: str, detail: str | None = None) -> Finding:
        return cls(
            entity_type=entity.entity_type,
            entity_id=entity.id,
            reason=reason,
            detail=detail,
        )

    def describe(self) -> str:
        suffix = f" ({self.detail})" if self.detail else ""
        return f"{self.entity_type}/{self.entity_id}: {self.reason}{suffix}"


@dataclass(frozen=True, slots=True)
class TransformError:
    """A record skipped because its shape did not match what a rule expects."""

    entity_id: str
    message: str


@dataclass(slots=True)
class CorrectionPlan:
    """Aggregate output of one detector run."""

    scanned: int = 0
    findings: list[Finding] = field(default_factory=list["Finding"])
    change_sets: list[ChangeSet] = field(default_factory=list["ChangeSet"])
    errors: list[TransformError] = field(default_factory=list["TransformError"])
    subjects: dict[str, Entity] = field(default_factory=dict["str", "Entity"])

    @property
    def flagged(self) -> int:
        return len(self.findings)

    @property
    def operations(self) -> list[Operation]:
        return [operation for change_set in self.change_sets for operation in change_set]

    @property
    def is_destructive(self) -> bool:
        return any(change_set.is_destructive for change_set in self.change_sets)

    @property
    def is_empty(self) -> bool:
        return not self.change_sets

    def add(
        self,
        finding: Finding,
        change_set: ChangeSet | None = None,
        *,
        subject: Entity | None = None,
    ) -> None:
        """Record a finding and, when given, the change set correcting it.

        ``subject`` is the scanned state of the entity the change set touches; it
        is kept so destructive plans can be backed up before they run.
        """

        self.findings.append(finding)
        if change_set is not None:
            self.change_sets.append(change_set)
        if subject is not None:
            self.subjects[subject.id] = subject

    def skip(self, entity_id: str, message: str) -> None:
        self.errors.append(TransformError(entity_id=entity_id, message=message))
