from __future__ import annotations

import pytest

from exchange_reconciler.domain.model import Entity, EntityType, OperationKind
from exchange_reconciler.domain.reconciliation.deduplicate import (
    KEY_STRATEGIES,
    RedundancyReason,
    detect_duplicates,
    email_pattern,
    equivalence_key,
    find_duplicate_groups,
    full_name,
    newest_first,
)

NAME_AND_EMAIL_PATTERN = KEY_STRATEGIES["name+email-pattern"]


def _user(entity_id: str, **attrs: object) -> Entity:
    return Entity(EntityType.USER, entity_id, attrs)


def test_numbered_email_duplicates_keep_the_user_with_a_profile() -> None:
    first = _user("u-1", name="Erik Hansson", email="student.erik1@x.com")
    second = _user("u-2", name="Erik Hansson", email="student.erik2@x.com")

    plan = detect_duplicates(
        [first, second],
        components=NAME_AND_EMAIL_PATTERN,
        has_dependent=lambda user: user.id == "u-2",
    )

    assert [finding.entity_id for finding in plan.findings] == ["u-1"]
    assert plan.findings[0].reason == RedundancyReason.NO_DEPENDENT_RECORD
    assert plan.findings[0].detail == "kept u-2"
    (change_set,) = plan.change_sets
    (operation,) = change_set.operations
    assert operation.kind is OperationKind.DELETE
    assert operation.entity_id == "u-1"


def test_all_linked_members_are_kept_when_group_is_mixed() -> None:
    users = [
        _user("u-1", name="Ana Lima", email="ana1@x.com"),
        _user("u-2", name="Ana Lima", email="ana2@x.com"),
        _user("u-3", name="Ana Lima", email="ana3@x.com"),
    ]

    (group,) = find_duplicate_groups(
        users,
        components=NAME_AND_EMAIL_PATTERN,
        has_dependent=lambda user: user.id in {"u-1", "u-3"},
    )

    assert [entity.id for entity in group.kept] == ["u-1", "u-3"]
    assert [item.entity.id for item in group.redundant] == ["u-2"]


def test_unlinked_group_keeps_most_recently_updated() -> None:
    users = [
        _user("u-1", name="Ana Lima", email="ana@x.com", updatedAt="2025-01-01T00:00:00Z"),
        _user("u-2", name="Ana Lima", email="ana@x.com", updatedAt="2025-03-01T00:00:00Z"),
        _user("u-3", name="Ana Lima", email="ana@x.com"),
    ]

    plan = detect_duplicates(
        users,
        components=NAME_AND_EMAIL_PATTERN,
        has_dependent=lambda _user: False,
    )

    assert sorted(finding.entity_id for finding in plan.findings) == ["u-1", "u-3"]
    assert {finding.reason for finding in plan.findings} == {RedundancyReason.OLDER_DUPLICATE}
    assert all(finding.detail == "kept u-2" for finding in plan.findings)


def test_admin_is_never_marked_redundant() -> None:
    users = [
        _user("u-1", name="Ana Lima", email="ana@x.com", role="admin"),
        _user("u-2", name="Ana Lima", email="ana@x.com", role="student"),
    ]

    plan = detect_duplicates(
        users,
        components=NAME_AND_EMAIL_PATTERN,
        has_dependent=lambda user: user.id == "u-2",
    )

    assert plan.findings == []
    assert plan.is_empty


@pytest.mark.parametrize(
    "attrs",
    [
        {"name": "", "email": "x@x.com"},
        {"name": "Ana Lima", "email": ""},
        {"name": "Ana Lima"},
        {"firstName": "Ana", "email": "x@x.com"},
        {"name": "Ana Lima", "email": "123"},
    ],
)
def test_empty_key_components_never_participate(attrs: dict[str, object]) -> None:
    entity = _user("u-1", **attrs)

    assert equivalence_key(entity, NAME_AND_EMAIL_PATTERN) is None


def test_records_with_empty_fields_are_not_grouped_together() -> None:
    users = [_user("u-1", name="", email=""), _user("u-2", name="", email="")]

    plan = detect_duplicates(
        users,
        components=NAME_AND_EMAIL_PATTERN,
        has_dependent=lambda _user: False,
    )

    assert plan.flagged == 0


def test_key_helpers_normalize_values() -> None:
    entity = _user("u-1", firstName=" Érik ", lastName="HANSSON", email="Student.Erik12@X.com")

    assert full_name(entity) == "érik hansson"
    assert email_pattern(entity) == "student.erik@x.com"


def test_profiles_group_by_owner() -> None:
    profiles = [
        Entity(EntityType.PROFILE, "p-1", {"userId": "u-1", "updatedAt": "2025-01-01T00:00:00Z"}),
        Entity(EntityType.PROFILE, "p-2", {"userId": "u-1", "updatedAt": "2025-02-01T00:00:00Z"}),
        Entity(EntityType.PROFILE, "p-3", {"userId": ""}),
        Entity(EntityType.PROFILE, "p-4", {"userId": ""}),
    ]

    plan = detect_duplicates(
        profiles,
        components=KEY_STRATEGIES["user-id"],
        has_dependent=lambda _profile: False,
    )

    assert [finding.entity_id for finding in plan.findings] == ["p-1"]


def test_newest_first_breaks_ties_by_id() -> None:
    same_time = "2025-01-01T00:00:00Z"
    ordered = newest_first(
        [
            _user("u-b", updatedAt=same_time),
            _user("u-none"),
            _user("u-a", updatedAt=same_time),
        ]
    )

    assert [entity.id for entity in ordered] == ["u-a", "u-b", "u-none"]


def test_second_run_finds_nothing_once_redundant_users_are_gone() -> None:
    users = [
        _user("u-1", name="Erik Hansson", email="student.erik1@x.com"),
        _user("u-2", name="Erik Hansson", email="student.erik2@x.com"),
    ]
    first_plan = detect_duplicates(
        users,
        components=NAME_AND_EMAIL_PATTERN,
        has_dependent=lambda user: user.id == "u-2",
    )
    deleted = {operation.entity_id for operation in first_plan.operations}

    second_plan = detect_duplicates(
        [user for user in users if user.id not in deleted],
        components=NAME_AND_EMAIL_PATTERN,
        has_dependent=lambda user: user.id == "u-2",
    )

    assert second_plan.is_empty
    assert second_plan.flagged == 0


def test_unreadable_update_time_sorts_as_undated() -> None:
    users = [
        _user("u-1", name="Ana Lima", email="ana@x.com", updatedAt=1_700_000_000_000_000_000),
        _user("u-2", name="Ana Lima", email="ana@x.com", updatedAt="2025-03-01T00:00:00Z"),
    ]

    plan = detect_duplicates(
        users,
        components=NAME_AND_EMAIL_PATTERN,
        has_dependent=lambda _user: False,
    )

    assert [finding.entity_id for finding in plan.findings] == ["u-1"]


def test_email_pattern_strips_digits_from_the_whole_address() -> None:
    assert email_pattern(_user("u-1", email="ana1@mail2.x.com")) == "ana@mail.x.com"
    assert email_pattern(_user("u-2", email="ana7@mail9.x.com")) == "ana@mail.x.com"


def test_mixed_group_with_several_linked_members_settles_on_the_second_run() -> None:
    users = [
        _user("u-1", name="Ana Lima", email="ana1@x.com", updatedAt="2025-01-01T00:00:00Z"),
        _user("u-2", name="Ana Lima", email="ana2@x.com", updatedAt="2025-03-01T00:00:00Z"),
        _user("u-3", name="Ana Lima", email="ana3@x.com", updatedAt="2025-05-01T00:00:00Z"),
    ]
    linked = {"u-1", "u-2"}
    remaining = list(users)
    deleted_per_run: list[list[str]] = []

    for _ in range(3):
        plan = detect_duplicates(
            remaining,
            components=NAME_AND_EMAIL_PATTERN,
            has_dependent=lambda user: user.id in linked,
        )
        deleted = sorted(operation.entity_id for operation in plan.operations)
        deleted_per_run.append(deleted)
        remaining = [user for user in remaining if user.id not in deleted]

    assert deleted_per_run == [["u-3"], ["u-1"], []]
    assert [user.id for user in remaining] == ["u-2"]
