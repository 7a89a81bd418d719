"""Split the nested application record out of profile documents.

For every profile still carrying ``data.comprehensive_application_data`` the
migrator plans one change set holding both halves of the split: create the
Application holding the record verbatim, then rewrite the profile document to
its allow-listed core fields. The executor never splits a change set across
transactions, so a profile can never lose its record without the Application
having been written in the same transaction.

Application ids are derived from the profile id, so resubmitting a split after
an unknown outcome upserts the same Application instead of adding a second one.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Final
from uuid import NAMESPACE_URL, UUID, uuid5

from exchange_reconciler.domain.model import (
    ChangeSet,
    DocumentShapeError,
    EntityType,
    Operation,
    as_document,
    format_timestamp,
    has_subdocument,
    single,
    split_document,
)

from .plan import CorrectionPlan, Finding

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from exchange_reconciler.domain.model import (
        ComprehensiveApplicationData,
        CoreProfileFields,
        Entity,
    )

log = getLogger(__name__)

APPLICATION_NAMESPACE: Final[UUID] = uuid5(NAMESPACE_URL, "exchange-reconciler/studentApplications")


def application_id_for(profile_id: str) -> str:
    return str(uuid5(APPLICATION_NAMESPACE, profile_id))


@dataclass(frozen=True, slots=True)
class ProfileSplit:
    profile: Entity
    core: CoreProfileFields
    subdocument: ComprehensiveApplicationData


def plan_split(profile: Entity) -> ProfileSplit | None:
    """Return the split for ``profile`` or ``None`` when there is nothing to move."""

    document = as_document(profile.data, entity_id=profile.id)
    if not has_subdocument(document):
        return None
    core, subdocument = split_document(document, entity_id=profile.id)
    if subdocument is None:
        return None
    return ProfileSplit(profile=profile, core=core, subdocument=subdocument)


def split_change_set(split: ProfileSplit, *, now: datetime) -> ChangeSet:
    """Append-then-rewrite: both operations travel in one atomic change set."""

    timestamp = format_timestamp(now)
    profile = split.profile
    application_id = application_id_for(profile.id)
    return ChangeSet(
        operations=(
            Operation.create(
                EntityType.APPLICATION,
                application_id,
                {
                    "profileId": profile.id,
                    "comprehensiveData": split.subdocument.to_document(),
                    "createdAt": timestamp,
                    "updatedAt": timestamp,
                },
            ),
            Operation.update(
                EntityType.PROFILE,
                profile.id,
                {"data": split.core.to_document(), "updatedAt": timestamp},
            ),
        ),
        label=f"split {profile.id} -> {application_id}",
    )


def applications_by_profile(applications: Iterable[Entity]) -> dict[str, list[Entity]]:
    grouped: dict[str, list[Entity]] = defaultdict(list)
    for application in applications:
        profile_id = application.text("profileId")
        if profile_id:
            grouped[profile_id].append(application)
    return dict(grouped)


def migrate_profiles(
    profiles: Sequence[Entity],
    *,
    applications: Sequence[Entity] = (),
    now: datetime | None = None,
) -> CorrectionPlan:
    """Plan the split of every unmigrated profile in ``profiles``.

    Profiles without the nested record are left alone. When an Application for
    the profile already exists, the profile is only stripped if the stored
    record is identical; anything else is reported as a conflict.
    """

    effective_now = now or datetime.now(UTC)
    existing = applications_by_profile(applications)
    plan = CorrectionPlan(scanned=len(profiles))

    for profile in profiles:
        try:
            split = plan_split(profile)
        except DocumentShapeError as exc:
            log.warning("Skipping profile %s: %s", profile.id, exc)
            plan.skip(profile.id, str(exc))
            continue
        if split is None:
            continue

        linked = existing.get(profile.id, [])
        if not linked:
            plan.add(
                Finding.for_entity(profile, "unmigrated application data"),
                split_change_set(split, now=effective_now),
                subject=profile,
            )
            continue

        if _stored_record_matches(linked, split.subdocument.to_document()):
            plan.add(
                Finding.for_entity(
                    profile,
                    "application data already extracted",
                    detail=f"application {linked[0].id}",
                ),
                single(
                    Operation.update(
                        EntityType.PROFILE,
                        profile.id,
                        {
                            "data": split.core.to_document(),
                            "updatedAt": format_timestamp(effective_now),
                        },
                    ),
                    label=f"strip {profile.id}",
                ),
                subject=profile,
            )
            continue

        log.warning(
            "Profile %s has application data that differs from application(s) %s",
            profile.id,
            [application.id for application in linked],
        )
        plan.add(
            Finding.for_entity(
                profile,
                "conflicting application data",
                detail="needs human review",
            )
        )

    log.info(
        "Migration planning: %s to split, %s skipped of %s scanned",
        len(plan.change_sets),
        len(plan.errors),
        plan.scanned,
    )
    return plan


def _stored_record_matches(applications: Sequence[Entity], record: Mapping[str, object]) -> bool:
    return len(applications) == 1 and applications[0].get("comprehensiveData") == record


def unmigrated_profiles(profiles: Iterable[Entity]) -> list[Entity]:
    """Profiles still carrying the nested record (used for verification)."""

    remaining: list[Entity] = []
    for profile in profiles:
        try:
            document = as_document(profile.data, entity_id=profile.id)
        except DocumentShapeError:
            continue
        if has_subdocument(document):
            remaining.append(profile)
    return remaining
