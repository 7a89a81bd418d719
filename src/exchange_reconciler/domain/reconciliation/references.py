"""Reference validation for foreign-key-shaped fields.

The target id set is materialized once per pass, so checking ``n`` dependents
is a sequence of set lookups rather than a scan of the target collection per
dependent.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from exchange_reconciler.domain.model import Operation, single

from .plan import CorrectionPlan, Finding

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from exchange_reconciler.domain.model import Entity, EntityType

log = getLogger(__name__)


class OrphanAction(StrEnum):
    """What a pass does with a dependent whose reference does not resolve."""

    DELETE = "delete"
    REPORT = "report"


@dataclass(frozen=True, slots=True)
class ReferenceRule:
    """``field`` on ``dependent_type`` must name an existing ``target_type`` id."""

    dependent_type: EntityType
    field: str
    target_type: EntityType
    action: OrphanAction = OrphanAction.REPORT
    applies_to: Callable[[Entity], bool] | None = None

    @property
    def name(self) -> str:
        return f"{self.dependent_type}.{self.field} -> {self.target_type}"


@dataclass(frozen=True, slots=True)
class OrphanedReference:
    entity: Entity
    field: str
    missing_id: str


@dataclass(frozen=True, slots=True)
class ReferenceCheck:
    matched: tuple[Entity, ...]
    orphaned: tuple[OrphanedReference, ...]
    unset: tuple[Entity, ...]


def reference_value(entity: Entity, field: str) -> str | None:
    value = entity.get(field)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def check_references(
    dependents: Iterable[Entity],
    *,
    field: str,
    target_ids: frozenset[str],
) -> ReferenceCheck:
    """Classify each dependent as matched, orphaned, or not referencing anything."""

    matched: list[Entity] = []
    orphaned: list[OrphanedReference] = []
    unset: list[Entity] = []
    for entity in dependents:
        value = reference_value(entity, field)
        if value is None:
            unset.append(entity)
        elif value in target_ids:
            matched.append(entity)
        else:
            orphaned.append(OrphanedReference(entity=entity, field=field, missing_id=value))
    return ReferenceCheck(matched=tuple(matched), orphaned=tuple(orphaned), unset=tuple(unset))


def detect_orphans(
    dependents: Sequence[Entity],
    *,
    rules: Sequence[ReferenceRule],
    target_ids: dict[EntityType, frozenset[str]],
) -> CorrectionPlan:
    """Flag every broken reference; plan deletes only for ``DELETE`` rules.

    A dependent broken under several rules is flagged once per rule but deleted
    at most once.
    """

    plan = CorrectionPlan(scanned=len(dependents))
    deleted: set[str] = set()
    for rule in rules:
        candidates = [
            entity
            for entity in dependents
            if entity.entity_type == rule.dependent_type
            and (rule.applies_to is None or rule.applies_to(entity))
        ]
        result = check_references(
            candidates,
            field=rule.field,
            target_ids=target_ids.get(rule.target_type, frozenset()),
        )
        log.info(
            "%s: %s matched, %s orphaned, %s unset",
            rule.name,
            len(result.matched),
            len(result.orphaned),
            len(result.unset),
        )
        for orphan in result.orphaned:
            entity = orphan.entity
            finding = Finding.for_entity(
                entity,
                f"broken reference {orphan.field}",
                detail=f"missing {rule.target_type} {orphan.missing_id}",
            )
            if rule.action is OrphanAction.DELETE and entity.id not in deleted:
                deleted.add(entity.id)
                plan.add(
                    finding,
                    single(Operation.delete(entity.entity_type, entity.id), label=rule.name),
                    subject=entity,
                )
            else:
                plan.add(finding)
    return plan
