from __future__ import annotations

from datetime import UTC, datetime

from exchange_reconciler.domain.model import (
    COMPREHENSIVE_DATA_KEY,
    Entity,
    EntityType,
    OperationKind,
)
from exchange_reconciler.domain.reconciliation.migrate import (
    application_id_for,
    migrate_profiles,
    unmigrated_profiles,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)
RECORD = {"parents": [{"name": "Rita"}], "address": {"city": "Recife"}}


def _profile(entity_id: str, data: object) -> Entity:
    return Entity(EntityType.PROFILE, entity_id, {"userId": "u-1", "data": data})


def _unmigrated(entity_id: str = "p-1") -> Entity:
    return _profile(
        entity_id,
        {"first_name": "Ana", "applicationStatus": "approved", COMPREHENSIVE_DATA_KEY: RECORD},
    )


def test_profile_is_split_into_application_and_core_document() -> None:
    plan = migrate_profiles([_unmigrated()], now=NOW)

    (change_set,) = plan.change_sets
    create, update = change_set.operations
    assert create.kind is OperationKind.CREATE
    assert create.entity_type is EntityType.APPLICATION
    assert create.entity_id == application_id_for("p-1")
    assert create.attrs == {
        "profileId": "p-1",
        "comprehensiveData": RECORD,
        "createdAt": "2025-06-01T12:00:00Z",
        "updatedAt": "2025-06-01T12:00:00Z",
    }
    assert update.kind is OperationKind.UPDATE
    assert update.entity_id == "p-1"
    assert update.attrs == {
        "data": {"first_name": "Ana", "applicationStatus": "approved"},
        "updatedAt": "2025-06-01T12:00:00Z",
    }
    assert plan.subjects["p-1"].id == "p-1"


def test_application_id_is_stable_per_profile() -> None:
    assert application_id_for("p-1") == application_id_for("p-1")
    assert application_id_for("p-1") != application_id_for("p-2")


def test_profiles_without_nested_record_are_left_alone() -> None:
    plan = migrate_profiles(
        [_profile("p-1", {"first_name": "Ana"}), _profile("p-2", None)],
        now=NOW,
    )

    assert plan.scanned == 2
    assert plan.flagged == 0
    assert plan.is_empty


def test_existing_identical_application_only_strips_profile() -> None:
    application = Entity(
        EntityType.APPLICATION,
        "a-1",
        {"profileId": "p-1", "comprehensiveData": RECORD},
    )

    plan = migrate_profiles([_unmigrated()], applications=[application], now=NOW)

    (operation,) = plan.operations
    assert operation.kind is OperationKind.UPDATE
    assert operation.entity_type is EntityType.PROFILE
    assert plan.findings[0].detail == "application a-1"


def test_existing_different_application_is_a_conflict() -> None:
    application = Entity(
        EntityType.APPLICATION,
        "a-1",
        {"profileId": "p-1", "comprehensiveData": {"address": {"city": "Natal"}}},
    )

    plan = migrate_profiles([_unmigrated()], applications=[application], now=NOW)

    assert plan.is_empty
    (finding,) = plan.findings
    assert finding.reason == "conflicting application data"
    assert finding.detail == "needs human review"


def test_malformed_record_is_skipped_and_others_continue() -> None:
    broken = _profile("p-1", {COMPREHENSIVE_DATA_KEY: "not an object"})

    plan = migrate_profiles([broken, _unmigrated("p-2")], now=NOW)

    assert [error.entity_id for error in plan.errors] == ["p-1"]
    assert [change_set.entity_ids[1] for change_set in plan.change_sets] == ["p-2"]


def test_unmigrated_profiles_ignores_malformed_documents() -> None:
    profiles = [
        _unmigrated("p-1"),
        _profile("p-2", {"first_name": "Ana"}),
        _profile("p-3", ["not", "a", "document"]),
    ]

    assert [profile.id for profile in unmigrated_profiles(profiles)] == ["p-1"]
