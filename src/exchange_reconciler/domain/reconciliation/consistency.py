"""Field consistency rules and the fixer that folds them into patches.

A rule is a predicate over one entity plus a repair that returns corrected
attributes. The fixer runs every rule in order against a working copy, so a
later rule sees what an earlier one repaired, and emits at most one update per
entity. Repairs never look at anything but current state, which keeps a second
run a no-op: once repaired, the predicate no longer matches.

Repairs that would have to invent a value (an approver, an approval date) take
a strategy callable. A strategy that returns ``None`` leaves the record
untouched and only flags it for human review.
"""

from __future__ import annotations

import copy
import random
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from logging import getLogger
from typing import TYPE_CHECKING, Final, cast

from exchange_reconciler.domain.model import (
    ApplicationStatus,
    ChangeStatus,
    DocumentShapeError,
    Operation,
    as_document,
    format_timestamp,
    parse_timestamp,
    single,
)

from .plan import CorrectionPlan, Finding

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from exchange_reconciler.domain.model import Entity

log = getLogger(__name__)

type Attributes = dict[str, object]
type Predicate = Callable[[Entity, Attributes, RuleContext], bool]
type Repair = Callable[[Entity, Attributes, RuleContext], Attributes | None]
type ApproverStrategy = Callable[[Entity], str | None]
type ApprovalDateStrategy = Callable[[Entity, RuleContext], str | None]

DEFAULT_REVIEWERS: Final[tuple[str, ...]] = (
    "Sarah Johnson",
    "Michael Chen",
    "Emily Rodriguez",
    "David Thompson",
    "Lisa Wang",
)
PLACEHOLDER_MARKERS: Final[tuple[str, ...]] = ("system", "migration")
BLANK_MARKERS: Final[frozenset[str]] = frozenset({"", "unknown"})


@dataclass(frozen=True, slots=True)
class RuleContext:
    now: datetime = field(default_factory=lambda: datetime.now(UTC))
    recent_window: timedelta = timedelta(days=180)
    owner_roles: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ConsistencyRule:
    name: str
    applies: Predicate
    repair: Repair


# --- field readers -----------------------------------------------------------


def _text_field(document: Mapping[str, object], key: str, *, entity_id: str) -> str | None:
    value = document.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise DocumentShapeError(
            f"{key} must be a string, got {type(value).__name__}", entity_id=entity_id
        )
    return value


def application_status(document: Mapping[str, object]) -> ApplicationStatus | None:
    value = document.get("applicationStatus")
    if not isinstance(value, str):
        return None
    try:
        return ApplicationStatus(value.strip())
    except ValueError:
        return None


def is_blank(value: str | None) -> bool:
    return value is None or value.strip().casefold() in BLANK_MARKERS


def is_placeholder_actor(value: str | None) -> bool:
    if value is None:
        return False
    lowered = value.casefold()
    return any(marker in lowered for marker in PLACEHOLDER_MARKERS)


def is_real_actor(value: str | None) -> bool:
    return not is_blank(value) and not is_placeholder_actor(value)


def _data(attrs: Attributes) -> dict[str, object]:
    return cast(dict[str, object], attrs["data"])


# --- strategies --------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RosterApprover:
    """Pick a reviewer from a fixed roster, stable per entity id."""

    roster: tuple[str, ...] = DEFAULT_REVIEWERS
    seed: str = "approver"

    def __post_init__(self) -> None:
        if not self.roster:
            raise ValueError("Reviewer roster must not be empty")

    def __call__(self, entity: Entity) -> str | None:
        return random.Random(f"{self.seed}:{entity.id}").choice(self.roster)  # noqa: S311


def flag_for_review(_entity: Entity) -> str | None:
    return None


def derive_approval_date(entity: Entity, context: RuleContext) -> str | None:
    """Derive a plausible ``YYYY-MM-DD`` between creation and last update.

    The interval is narrowed to the recent window when that leaves a non-empty
    range, and is never allowed to extend past ``now``.
    """

    now = context.now
    created = entity.created_at or (now - context.recent_window)
    updated = entity.updated_at or now
    end = min(updated, now)
    start = max(created, now - context.recent_window)
    if start > end:
        start = min(created, end)
    span = (end - start).total_seconds()
    offset = random.Random(f"approved_on:{entity.id}").random() * span  # noqa: S311
    return (start + timedelta(seconds=offset)).date().isoformat()


# --- rules -------------------------------------------------------------------


def placeholder_approver_rule(strategy: ApproverStrategy | None = None) -> ConsistencyRule:
    """Replace automated placeholder approvers; real approvers are never touched."""

    assign = strategy or RosterApprover()

    def applies(entity: Entity, attrs: Attributes, _context: RuleContext) -> bool:
        return is_placeholder_actor(_text_field(_data(attrs), "approved_by", entity_id=entity.id))

    def repair(entity: Entity, attrs: Attributes, _context: RuleContext) -> Attributes | None:
        approver = assign(entity)
        if approver is None:
            return None
        _data(attrs)["approved_by"] = approver
        return attrs

    return ConsistencyRule(name="placeholder-approver", applies=applies, repair=repair)


def missing_approval_date_rule(strategy: ApprovalDateStrategy | None = None) -> ConsistencyRule:
    """A completed review with a real approver must carry an approval date."""

    derive = strategy or derive_approval_date

    def applies(entity: Entity, attrs: Attributes, _context: RuleContext) -> bool:
        document = _data(attrs)
        status = application_status(document)
        if status is None or not status.is_review_complete:
            return False
        approved_by = _text_field(document, "approved_by", entity_id=entity.id)
        approved_on = _text_field(document, "approved_on", entity_id=entity.id)
        return is_real_actor(approved_by) and is_blank(approved_on)

    def repair(entity: Entity, attrs: Attributes, context: RuleContext) -> Attributes | None:
        approved_on = derive(entity, context)
        if approved_on is None:
            return None
        _data(attrs)["approved_on"] = approved_on
        return attrs

    return ConsistencyRule(name="missing-approval-date", applies=applies, repair=repair)


def stale_approval_date_rule() -> ConsistencyRule:
    """A record still pending review may not carry an approval date."""

    def applies(entity: Entity, attrs: Attributes, _context: RuleContext) -> bool:
        document = _data(attrs)
        status = application_status(document)
        if status is None or not status.is_pending:
            return False
        if not is_blank(_text_field(document, "approved_on", entity_id=entity.id)):
            return True
        nested = document.get("application")
        if isinstance(nested, Mapping):
            nested_map = cast(Mapping[str, object], nested)
            return not is_blank(_text_field(nested_map, "approved_on", entity_id=entity.id))
        return False

    def repair(_entity: Entity, attrs: Attributes, _context: RuleContext) -> Attributes | None:
        document = _data(attrs)
        document["approved_on"] = None
        nested = document.get("application")
        if isinstance(nested, Mapping):
            document["application"] = {
                **cast(Mapping[str, object], nested),
                "approved_on": None,
            }
        return attrs

    return ConsistencyRule(name="stale-approval-date", applies=applies, repair=repair)


def profile_type_rule() -> ConsistencyRule:
    """``profile.type`` must equal the owning user's role."""

    def applies(entity: Entity, attrs: Attributes, context: RuleContext) -> bool:
        role = context.owner_roles.get(entity.text("userId"))
        return role is not None and attrs.get("type") != role

    def repair(entity: Entity, attrs: Attributes, context: RuleContext) -> Attributes | None:
        attrs["type"] = context.owner_roles[entity.text("userId")]
        return attrs

    return ConsistencyRule(name="profile-type-matches-role", applies=applies, repair=repair)


def change_status(attrs: Attributes) -> ChangeStatus | None:
    value = attrs.get("status")
    if not isinstance(value, str):
        return None
    try:
        return ChangeStatus(value.strip().casefold())
    except ValueError:
        return None


def decision_actor_rule(strategy: ApproverStrategy | None = None) -> ConsistencyRule:
    """A decided change-queue item must name the actor who decided it."""

    assign = strategy or flag_for_review

    def applies(entity: Entity, attrs: Attributes, _context: RuleContext) -> bool:
        status = change_status(attrs)
        if status is None or not status.is_decided:
            return False
        return not is_real_actor(_text_field(attrs, "assignedTo", entity_id=entity.id))

    def repair(entity: Entity, attrs: Attributes, _context: RuleContext) -> Attributes | None:
        actor = assign(entity)
        if actor is None:
            return None
        attrs["assignedTo"] = actor
        return attrs

    return ConsistencyRule(name="decision-actor", applies=applies, repair=repair)


def decision_date_rule() -> ConsistencyRule:
    """A decided change-queue item carries its completion timestamp."""

    def applies(entity: Entity, attrs: Attributes, _context: RuleContext) -> bool:
        status = change_status(attrs)
        if status is None or not status.is_decided:
            return False
        return is_real_actor(
            _text_field(attrs, "assignedTo", entity_id=entity.id)
        ) and parse_timestamp(attrs.get("completedDate")) is None

    def repair(entity: Entity, attrs: Attributes, context: RuleContext) -> Attributes | None:
        decided = entity.updated_at or context.now
        attrs["completedDate"] = format_timestamp(min(decided, context.now))
        return attrs

    return ConsistencyRule(name="decision-date", applies=applies, repair=repair)


def pending_decision_rule() -> ConsistencyRule:
    """A change-queue item still pending may not carry a completion timestamp."""

    def applies(_entity: Entity, attrs: Attributes, _context: RuleContext) -> bool:
        if change_status(attrs) is not ChangeStatus.PENDING:
            return False
        return attrs.get("completedDate") is not None

    def repair(_entity: Entity, attrs: Attributes, _context: RuleContext) -> Attributes | None:
        attrs["completedDate"] = None
        return attrs

    return ConsistencyRule(name="pending-decision", applies=applies, repair=repair)


def change_queue_rules(*, actor: ApproverStrategy | None = None) -> tuple[ConsistencyRule, ...]:
    return (decision_actor_rule(actor), decision_date_rule(), pending_decision_rule())


def approval_rules(
    *,
    approver: ApproverStrategy | None = None,
    approval_date: ApprovalDateStrategy | None = None,
) -> tuple[ConsistencyRule, ...]:
    # Placeholder approvers go first so the date rule sees the repaired actor.
    return (
        placeholder_approver_rule(approver),
        missing_approval_date_rule(approval_date),
        stale_approval_date_rule(),
    )


# --- fixer -------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Patch:
    entity: Entity
    changes: Attributes
    rules: tuple[str, ...]


def evaluate(
    entity: Entity,
    rules: Sequence[ConsistencyRule],
    context: RuleContext,
) -> tuple[Patch | None, tuple[str, ...]]:
    """Return the folded patch (if any) and the rules that need human review."""

    attrs: Attributes = copy.deepcopy(dict(entity.attrs))
    attrs["data"] = as_document(attrs.get("data"), entity_id=entity.id)

    applied: list[str] = []
    needs_review: list[str] = []
    for rule in rules:
        if not rule.applies(entity, attrs, context):
            continue
        repaired = rule.repair(entity, attrs, context)
        if repaired is None:
            needs_review.append(rule.name)
            continue
        attrs = repaired
        applied.append(rule.name)

    if not applied:
        return None, tuple(needs_review)

    original_data = entity.attrs.get("data")
    changes: Attributes = {
        key: value
        for key, value in attrs.items()
        if key != "data" and entity.attrs.get(key) != value
    }
    if attrs["data"] != (original_data if original_data is not None else {}):
        changes["data"] = attrs["data"]
    return Patch(entity=entity, changes=changes, rules=tuple(applied)), tuple(needs_review)


def fix_consistency(
    entities: Sequence[Entity],
    *,
    rules: Sequence[ConsistencyRule],
    context: RuleContext | None = None,
    touch_updated_at: bool = True,
) -> CorrectionPlan:
    """Plan one update per entity violating any of ``rules``."""

    effective_context = context or RuleContext()
    plan = CorrectionPlan(scanned=len(entities))
    for entity in entities:
        try:
            patch, needs_review = evaluate(entity, rules, effective_context)
        except DocumentShapeError as exc:
            log.warning("Skipping %s %s: %s", entity.entity_type, entity.id, exc)
            plan.skip(entity.id, str(exc))
            continue

        for rule_name in needs_review:
            plan.add(Finding.for_entity(entity, rule_name, detail="needs human review"))

        if patch is None or not patch.changes:
            continue
        changes = dict(patch.changes)
        if touch_updated_at:
            changes["updatedAt"] = format_timestamp(effective_context.now)
        plan.add(
            Finding.for_entity(entity, ", ".join(patch.rules)),
            single(
                Operation.update(entity.entity_type, entity.id, changes),
                label=", ".join(patch.rules),
            ),
            subject=entity,
        )
    log.info(
        "Consistency check: %s flagged, %s patches, %s skipped of %s scanned",
        plan.flagged,
        len(plan.change_sets),
        len(plan.errors),
        plan.scanned,
    )
    return plan
