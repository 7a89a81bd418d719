"""Duplicate detection for scanned entities.

Responsibilities of this stage:
- derive a composite equivalence key per entity (all components required)
- group entities sharing a key
- pick the canonical members of each group and mark the rest redundant
- never mark an entity carrying a protected role

The resolution policy, applied per group:
1) if some members have a dependent record and some do not, every member
   without one is redundant and all linked members are kept
2) otherwise the group is ordered by the tie-break rule (newest update first
   by default) and only the first member is kept
"""

from __future__ import annotations

import re
import unicodedata
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from exchange_reconciler.domain.model import PROTECTED_ROLES, Operation, single

from .plan import CorrectionPlan, Finding

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from exchange_reconciler.domain.model import Entity

log = getLogger(__name__)

type EquivalenceKey = tuple[str, ...]
type KeyComponent = Callable[[Entity], str | None]
type TieBreak = Callable[[Sequence[Entity]], list[Entity]]
type DependentCheck = Callable[[Entity], bool]
type ProtectedCheck = Callable[[Entity], bool]

_DIGITS = re.compile(r"\d+")
_OLDEST = datetime.min.replace(tzinfo=UTC)


class RedundancyReason(StrEnum):
    NO_DEPENDENT_RECORD = "no dependent record"
    OLDER_DUPLICATE = "older duplicate"


@dataclass(frozen=True, slots=True)
class Redundant:
    entity: Entity
    reason: RedundancyReason


@dataclass(frozen=True, slots=True)
class DuplicateGroup:
    key: EquivalenceKey
    members: tuple[Entity, ...]
    kept: tuple[Entity, ...]
    redundant: tuple[Redundant, ...]


def normalize_text(value: object) -> str | None:
    if value is None:
        return None
    text = unicodedata.normalize("NFKC", str(value))
    text = text.casefold()
    text = "".join(ch for ch in text if not unicodedata.category(ch).startswith("P"))
    text = " ".join(text.split())
    return text or None


def full_name(entity: Entity) -> str | None:
    """Normalized display name; first and last name must both be present."""

    first = entity.get("firstName") or entity.get("data.first_name")
    last = entity.get("lastName") or entity.get("data.last_name")
    if normalize_text(first) and normalize_text(last):
        return normalize_text(f"{first} {last}")
    if first or last:
        return None
    return normalize_text(entity.get("name") or entity.get("data.name"))


def email_address(entity: Entity) -> str | None:
    email = entity.text("email") or entity.text("data.email")
    return email.casefold() or None


def email_pattern(entity: Entity) -> str | None:
    """Email with digit runs removed, so ``erik1@x`` and ``erik2@x`` collide."""

    email = email_address(entity)
    if email is None:
        return None
    return _DIGITS.sub("", email) or None


def owner_user_id(entity: Entity) -> str | None:
    return entity.text("userId") or None


KEY_STRATEGIES: dict[str, tuple[KeyComponent, ...]] = {
    "name+email-pattern": (full_name, email_pattern),
    "name+email": (full_name, email_address),
    "user-id": (owner_user_id,),
}


def equivalence_key(entity: Entity, components: Sequence[KeyComponent]) -> EquivalenceKey | None:
    """Return the composite key, or ``None`` when any component is empty."""

    values: list[str] = []
    for component in components:
        value = component(entity)
        if not value:
            return None
        values.append(value)
    return tuple(values)


def newest_first(group: Sequence[Entity]) -> list[Entity]:
    """Order by last update descending; undated records sort last, ties by id."""

    by_id = sorted(group, key=lambda entity: entity.id)
    return sorted(by_id, key=lambda entity: entity.updated_at or _OLDEST, reverse=True)


def has_protected_role(entity: Entity) -> bool:
    role = entity.text("role") or entity.text("type")
    return role in PROTECTED_ROLES


def group_by_key(
    entities: Iterable[Entity], components: Sequence[KeyComponent]
) -> dict[EquivalenceKey, list[Entity]]:
    groups: dict[EquivalenceKey, list[Entity]] = defaultdict(list)
    for entity in entities:
        key = equivalence_key(entity, components)
        if key is not None:
            groups[key].append(entity)
    return dict(groups)


def find_duplicate_groups(
    entities: Iterable[Entity],
    *,
    components: Sequence[KeyComponent],
    has_dependent: DependentCheck,
    tie_break: TieBreak = newest_first,
    is_protected: ProtectedCheck = has_protected_role,
) -> list[DuplicateGroup]:
    if not components:
        raise ValueError("At least one equivalence key component is required")

    duplicate_groups: list[DuplicateGroup] = []
    for key, members in group_by_key(entities, components).items():
        if len(members) < 2:  # noqa: PLR2004
            continue
        kept, redundant = _resolve_group(members, has_dependent=has_dependent, tie_break=tie_break)
        protected = [item.entity for item in redundant if is_protected(item.entity)]
        if protected:
            log.info(
                "Keeping protected duplicate(s) %s in group %s",
                [entity.id for entity in protected],
                key,
            )
            kept = [*kept, *protected]
            redundant = [item for item in redundant if not is_protected(item.entity)]
        duplicate_groups.append(
            DuplicateGroup(
                key=key,
                members=tuple(members),
                kept=tuple(kept),
                redundant=tuple(redundant),
            )
        )
    return duplicate_groups


def _resolve_group(
    members: Sequence[Entity],
    *,
    has_dependent: DependentCheck,
    tie_break: TieBreak,
) -> tuple[list[Entity], list[Redundant]]:
    linked = [entity for entity in members if has_dependent(entity)]
    unlinked = [entity for entity in members if not has_dependent(entity)]

    if linked and unlinked:
        return linked, [
            Redundant(entity=entity, reason=RedundancyReason.NO_DEPENDENT_RECORD)
            for entity in unlinked
        ]

    ordered = tie_break(members)
    return ordered[:1], [
        Redundant(entity=entity, reason=RedundancyReason.OLDER_DUPLICATE) for entity in ordered[1:]
    ]


def detect_duplicates(
    entities: Sequence[Entity],
    *,
    components: Sequence[KeyComponent],
    has_dependent: DependentCheck,
    tie_break: TieBreak = newest_first,
    is_protected: ProtectedCheck = has_protected_role,
) -> CorrectionPlan:
    """Plan deletion of every redundant duplicate in ``entities``."""

    plan = CorrectionPlan(scanned=len(entities))
    groups = find_duplicate_groups(
        entities,
        components=components,
        has_dependent=has_dependent,
        tie_break=tie_break,
        is_protected=is_protected,
    )
    for group in groups:
        kept_ids = ", ".join(entity.id for entity in group.kept)
        for item in group.redundant:
            entity = item.entity
            plan.add(
                Finding.for_entity(entity, item.reason.value, detail=f"kept {kept_ids}"),
                single(Operation.delete(entity.entity_type, entity.id), label=item.reason.value),
                subject=entity,
            )
    log.info(
        "Duplicate detection: %s groups, %s redundant of %s scanned",
        len(groups),
        plan.flagged,
        plan.scanned,
    )
    return plan
