"""Pre-apply JSON snapshots of the entities a pass is about to change."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from exchange_reconciler.domain.model import format_timestamp

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

    from exchange_reconciler.domain.model import Entity

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def snapshot(
    pass_name: str,
    entities: Sequence[Entity],
    *,
    taken_at: datetime,
) -> dict[str, object]:
    return {
        "pass": pass_name,
        "takenAt": format_timestamp(taken_at),
        "count": len(entities),
        "entities": [
            {"type": str(entity.entity_type), "id": entity.id, "attrs": dict(entity.attrs)}
            for entity in entities
        ],
    }


@dataclass(slots=True)
class JsonBackupWriter:
    """Write one timestamped file per backup into ``directory``."""

    directory: Path
    now: Callable[[], datetime] = _utcnow

    def __call__(self, pass_name: str, entities: Sequence[Entity]) -> Path:
        taken_at = self.now()
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"{pass_name}-{taken_at.strftime('%Y%m%dT%H%M%SZ')}.json"
        payload = snapshot(pass_name, entities, taken_at=taken_at)
        path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
        log.debug("Wrote backup of %s entities to %s", len(entities), path)
        return path
