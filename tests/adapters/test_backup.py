from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from exchange_reconciler.adapters.backup import JsonBackupWriter
from exchange_reconciler.domain.model import Entity, EntityType

if TYPE_CHECKING:
    from pathlib import Path


def test_backup_file_holds_the_entities(tmp_path: Path) -> None:
    taken_at = datetime(2025, 6, 1, 12, 30, 5, tzinfo=UTC)
    writer = JsonBackupWriter(tmp_path / "backups", now=lambda: taken_at)
    entities = [
        Entity(EntityType.PROFILE, "p-1", {"userId": "u-1", "data": {"first_name": "Ana"}}),
        Entity(EntityType.USER, "u-2", {"name": "Erik Hansson"}),
    ]

    path = writer("cleanup-orphaned-profiles", entities)

    assert path == tmp_path / "backups" / "cleanup-orphaned-profiles-20250601T123005Z.json"
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload == {
        "pass": "cleanup-orphaned-profiles",
        "takenAt": "2025-06-01T12:30:05Z",
        "count": 2,
        "entities": [
            {
                "type": "profiles",
                "id": "p-1",
                "attrs": {"userId": "u-1", "data": {"first_name": "Ana"}},
            },
            {"type": "users", "id": "u-2", "attrs": {"name": "Erik Hansson"}},
        ],
    }
