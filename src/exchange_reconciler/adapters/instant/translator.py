"""Translate between domain operations/filters and Instant admin API payloads."""

from __future__ import annotations

from typing import TYPE_CHECKING

from exchange_reconciler.domain.model import Entity, OperationKind, has_path, lookup_path

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from exchange_reconciler.domain.model import EntityType, Operation
    from exchange_reconciler.domain.ports import Filter

    from .schema import InstantRecord

type Step = list[object]


def operation_to_step(operation: Operation) -> Step:
    """Create and update both become an ``update`` step, which upserts."""

    namespace = str(operation.entity_type)
    if operation.kind is OperationKind.DELETE:
        return ["delete", namespace, operation.entity_id]
    return ["update", namespace, operation.entity_id, dict(operation.attrs or {})]


def operations_to_steps(operations: Sequence[Operation]) -> list[Step]:
    return [operation_to_step(operation) for operation in operations]


def split_filter(where: Filter | None) -> tuple[dict[str, object], dict[str, object]]:
    """Separate constraints the server can evaluate from dotted document paths."""

    server: dict[str, object] = {}
    local: dict[str, object] = {}
    for key, value in (where or {}).items():
        (local if "." in key else server)[key] = value
    return server, local


def build_query(entity_type: EntityType, server_where: Mapping[str, object]) -> dict[str, object]:
    clause: dict[str, object] = {"where": dict(server_where)} if server_where else {}
    return {"query": {str(entity_type): {"$": clause}}}


def record_to_entity(entity_type: EntityType, record: InstantRecord) -> Entity:
    return Entity(entity_type=entity_type, id=record.id, attrs=record.attributes())


def matches_locally(entity: Entity, local: Mapping[str, object]) -> bool:
    return all(
        has_path(entity.attrs, path) and lookup_path(entity.attrs, path) == expected
        for path, expected in local.items()
    )


def records_to_entities(
    entity_type: EntityType,
    records: Iterable[InstantRecord],
    local: Mapping[str, object],
) -> list[Entity]:
    entities = (record_to_entity(entity_type, record) for record in records)
    return [entity for entity in entities if matches_locally(entity, local)]
