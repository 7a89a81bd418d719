"""Registry of reconciliation passes.

Each pass binds a scan of the collections it needs to one detector. The bound
detector is a plain ``store -> CorrectionPlan`` callable, so the engine can run
it once to plan and once more to verify.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Final

from exchange_reconciler.domain.model import EntityType, Role

from .consistency import (
    RuleContext,
    approval_rules,
    change_queue_rules,
    fix_consistency,
    profile_type_rule,
)
from .deduplicate import KEY_STRATEGIES, detect_duplicates
from .migrate import migrate_profiles
from .references import OrphanAction, ReferenceRule, detect_orphans
from .scan import ids_of, scan

if TYPE_CHECKING:
    from collections.abc import Callable

    from exchange_reconciler.domain.model import Entity
    from exchange_reconciler.domain.ports import EntityStore, Filter

    from .consistency import ApproverStrategy
    from .deduplicate import KeyComponent
    from .plan import CorrectionPlan

type Detector = Callable[[EntityStore], CorrectionPlan]
type DetectorFactory = Callable[[PassOptions], Detector]

DEFAULT_KEY_STRATEGY: Final[str] = "name+email-pattern"
PLACEMENT_PROFILE_FIELDS: Final[tuple[str, ...]] = (
    "studentProfileId",
    "hostFamilyProfileId",
    "coordinatorProfileId",
)
USER_ENTITY_TAGS: Final[frozenset[str]] = frozenset({"user", "users"})


class UnknownPassError(LookupError):
    """Raised when a pass name is not registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown pass: {name!r} (known: {', '.join(sorted(PASSES))})")


@dataclass(frozen=True, slots=True, kw_only=True)
class PassOptions:
    """Knobs shared by every pass; each pass reads the ones it cares about.

    ``role`` narrows user scans by ``role`` and profile scans by ``type``;
    ``None`` scans every record. ``now`` pins the clock, otherwise each
    detection reads the current time.
    """

    role: str | None = Role.STUDENT
    key_strategy: str = DEFAULT_KEY_STRATEGY
    approver: ApproverStrategy | None = None
    recent_window: timedelta = timedelta(days=180)
    now: datetime | None = None

    def __post_init__(self) -> None:
        if self.key_strategy not in KEY_STRATEGIES:
            raise ValueError(
                f"Unknown key strategy {self.key_strategy!r} "
                f"(known: {', '.join(sorted(KEY_STRATEGIES))})"
            )

    @property
    def key_components(self) -> tuple[KeyComponent, ...]:
        return KEY_STRATEGIES[self.key_strategy]

    def clock(self) -> datetime:
        return self.now or datetime.now(UTC)

    def rule_context(self, *, owner_roles: dict[str, str] | None = None) -> RuleContext:
        return RuleContext(
            now=self.clock(),
            recent_window=self.recent_window,
            owner_roles=owner_roles or {},
        )


@dataclass(frozen=True, slots=True)
class ReconciliationPass:
    name: str
    description: str
    build: DetectorFactory
    scans: tuple[EntityType, ...] = ()


def _role_filter(options: PassOptions) -> Filter | None:
    return {"role": options.role} if options.role else None


def _type_filter(options: PassOptions) -> Filter | None:
    return {"type": options.role} if options.role else None


def _referenced_ids(entities: list[Entity], *fields: str) -> frozenset[str]:
    return frozenset(
        value for entity in entities for name in fields if (value := entity.text(name))
    )


# --- pass builders -----------------------------------------------------------


def _fix_approvals(options: PassOptions) -> Detector:
    rules = approval_rules(approver=options.approver)

    def detect(store: EntityStore) -> CorrectionPlan:
        profiles = scan(store, EntityType.PROFILE, _type_filter(options))
        return fix_consistency(profiles, rules=rules, context=options.rule_context())

    return detect


def _remove_duplicate_users(options: PassOptions) -> Detector:
    def detect(store: EntityStore) -> CorrectionPlan:
        users = scan(store, EntityType.USER, _role_filter(options))
        profiles = scan(store, EntityType.PROFILE)
        owners = _referenced_ids(profiles, "userId")
        return detect_duplicates(
            users,
            components=options.key_components,
            has_dependent=lambda user: user.id in owners,
        )

    return detect


def _remove_duplicate_profiles(options: PassOptions) -> Detector:
    def detect(store: EntityStore) -> CorrectionPlan:
        profiles = scan(store, EntityType.PROFILE, _type_filter(options))
        applications = scan(store, EntityType.APPLICATION)
        placements = scan(store, EntityType.PLACEMENT)
        linked = _referenced_ids(applications, "profileId") | _referenced_ids(
            placements, *PLACEMENT_PROFILE_FIELDS
        )
        return detect_duplicates(
            profiles,
            components=KEY_STRATEGIES["user-id"],
            has_dependent=lambda profile: profile.id in linked,
        )

    return detect


def _cleanup_orphaned_profiles(options: PassOptions) -> Detector:
    rules = (
        ReferenceRule(EntityType.PROFILE, "userId", EntityType.USER, action=OrphanAction.DELETE),
    )

    def detect(store: EntityStore) -> CorrectionPlan:
        profiles = scan(store, EntityType.PROFILE, _type_filter(options))
        users = scan(store, EntityType.USER)
        return detect_orphans(profiles, rules=rules, target_ids={EntityType.USER: ids_of(users)})

    return detect


def _targets_user(entity: Entity) -> bool:
    return entity.text("entityType").casefold() in USER_ENTITY_TAGS


def broken_reference_rules() -> tuple[ReferenceRule, ...]:
    placement_rules = tuple(
        ReferenceRule(EntityType.PLACEMENT, name, EntityType.PROFILE)
        for name in PLACEMENT_PROFILE_FIELDS
    )
    return (
        *placement_rules,
        ReferenceRule(EntityType.PLACEMENT, "applicationId", EntityType.APPLICATION),
        ReferenceRule(
            EntityType.CHANGE_QUEUE_ITEM,
            "entityId",
            EntityType.USER,
            applies_to=_targets_user,
        ),
        ReferenceRule(
            EntityType.CHANGE_QUEUE_ITEM,
            "entityId",
            EntityType.PROFILE,
            applies_to=lambda entity: not _targets_user(entity),
        ),
    )


def _report_broken_references(_options: PassOptions) -> Detector:
    rules = broken_reference_rules()

    def detect(store: EntityStore) -> CorrectionPlan:
        placements = scan(store, EntityType.PLACEMENT)
        queue = scan(store, EntityType.CHANGE_QUEUE_ITEM)
        targets = {
            entity_type: ids_of(scan(store, entity_type))
            for entity_type in (EntityType.PROFILE, EntityType.USER, EntityType.APPLICATION)
        }
        return detect_orphans([*placements, *queue], rules=rules, target_ids=targets)

    return detect


def _fix_profile_types(options: PassOptions) -> Detector:
    rules = (profile_type_rule(),)

    def detect(store: EntityStore) -> CorrectionPlan:
        users = scan(store, EntityType.USER)
        profiles = scan(store, EntityType.PROFILE)
        owner_roles = {user.id: role for user in users if (role := user.text("role"))}
        return fix_consistency(
            profiles,
            rules=rules,
            context=options.rule_context(owner_roles=owner_roles),
        )

    return detect


def _fix_change_queue(options: PassOptions) -> Detector:
    rules = change_queue_rules()

    def detect(store: EntityStore) -> CorrectionPlan:
        items = scan(store, EntityType.CHANGE_QUEUE_ITEM)
        return fix_consistency(items, rules=rules, context=options.rule_context())

    return detect


def _migrate_comprehensive_data(options: PassOptions) -> Detector:
    def detect(store: EntityStore) -> CorrectionPlan:
        profiles = scan(store, EntityType.PROFILE, _type_filter(options))
        applications = scan(store, EntityType.APPLICATION)
        return migrate_profiles(profiles, applications=applications, now=options.clock())

    return detect


PASSES: dict[str, ReconciliationPass] = {
    reconciliation_pass.name: reconciliation_pass
    for reconciliation_pass in (
        ReconciliationPass(
            "fix-approvals",
            "Replace placeholder approvers and repair approval dates on profiles",
            _fix_approvals,
            (EntityType.PROFILE,),
        ),
        ReconciliationPass(
            "remove-duplicate-users",
            "Delete duplicate users, keeping those that own a profile",
            _remove_duplicate_users,
            (EntityType.USER, EntityType.PROFILE),
        ),
        ReconciliationPass(
            "remove-duplicate-profiles",
            "Delete duplicate profiles per user, keeping linked ones",
            _remove_duplicate_profiles,
            (EntityType.PROFILE, EntityType.APPLICATION, EntityType.PLACEMENT),
        ),
        ReconciliationPass(
            "cleanup-orphaned-profiles",
            "Delete profiles whose user no longer exists",
            _cleanup_orphaned_profiles,
            (EntityType.PROFILE, EntityType.USER),
        ),
        ReconciliationPass(
            "report-broken-references",
            "Report placements and change-queue items pointing at missing records",
            _report_broken_references,
            (
                EntityType.PLACEMENT,
                EntityType.CHANGE_QUEUE_ITEM,
                EntityType.PROFILE,
                EntityType.USER,
                EntityType.APPLICATION,
            ),
        ),
        ReconciliationPass(
            "fix-profile-types",
            "Align profile type with the owning user's role",
            _fix_profile_types,
            (EntityType.USER, EntityType.PROFILE),
        ),
        ReconciliationPass(
            "fix-change-queue",
            "Stamp decided change-queue items and clear dates on pending ones",
            _fix_change_queue,
            (EntityType.CHANGE_QUEUE_ITEM,),
        ),
        ReconciliationPass(
            "migrate-comprehensive-data",
            "Split nested application data out of profiles into applications",
            _migrate_comprehensive_data,
            (EntityType.PROFILE, EntityType.APPLICATION),
        ),
    )
}


def get_pass(name: str) -> ReconciliationPass:
    try:
        return PASSES[name]
    except KeyError:
        raise UnknownPassError(name) from None
