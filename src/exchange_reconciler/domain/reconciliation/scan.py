"""Scanner: load the working set for one entity type into memory."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from exchange_reconciler.domain.ports import StoreQueryError

if TYPE_CHECKING:
    from exchange_reconciler.domain.model import Entity, EntityType
    from exchange_reconciler.domain.ports import EntityStore, Filter

log = getLogger(__name__)


class ScanError(RuntimeError):
    """Raised when the store cannot return a working set; the pass must stop."""

    def __init__(self, entity_type: EntityType, where: Filter | None, cause: Exception) -> None:
        self.entity_type = entity_type
        self.where = dict(where) if where else {}
        super().__init__(f"Scan of {entity_type} failed (filter={self.where}): {cause}")


def scan(
    store: EntityStore,
    entity_type: EntityType,
    where: Filter | None = None,
) -> list[Entity]:
    """Return every entity of ``entity_type`` matching ``where``, ordered by id.

    Query failures are not retried here; a rejected filter would only fail again.
    """

    try:
        entities = store.query(entity_type, where)
    except StoreQueryError as exc:
        log.error("Query for %s failed with filter %s: %s", entity_type, dict(where or {}), exc)
        raise ScanError(entity_type, where, exc) from exc

    ordered = sorted(entities, key=lambda entity: entity.id)
    log.info("Scanned %s %s (filter=%s)", len(ordered), entity_type, dict(where or {}))
    return ordered


def ids_of(entities: list[Entity]) -> frozenset[str]:
    return frozenset(entity.id for entity in entities)
