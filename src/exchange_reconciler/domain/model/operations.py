"""Corrective operations and the atomic change sets that group them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .enums import OperationKind

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from .enums import EntityType


@dataclass(frozen=True, slots=True)
class Operation:
    """One create/update/delete against a single entity."""

    kind: OperationKind
    entity_type: EntityType
    entity_id: str
    attrs: Mapping[str, object] | None = None

    def __post_init__(self) -> None:
        if self.kind is OperationKind.DELETE and self.attrs is not None:
            raise ValueError("Delete operations carry no attributes")
        if self.kind is not OperationKind.DELETE and self.attrs is None:
            raise ValueError(f"{self.kind.value} operations require attributes")

    @classmethod
    def create(
        cls, entity_type: EntityType, entity_id: str, attrs: Mapping[str, object]
    ) -> Operation:
        return cls(OperationKind.CREATE, entity_type, entity_id, dict(attrs))

    @classmethod
    def update(
        cls, entity_type: EntityType, entity_id: str, attrs: Mapping[str, object]
    ) -> Operation:
        return cls(OperationKind.UPDATE, entity_type, entity_id, dict(attrs))

    @classmethod
    def delete(cls, entity_type: EntityType, entity_id: str) -> Operation:
        return cls(OperationKind.DELETE, entity_type, entity_id)


@dataclass(frozen=True, slots=True)
class ChangeSet:
    """Operations that must land in the same transaction or not at all."""

    operations: tuple[Operation, ...]
    label: str | None = None

    def __post_init__(self) -> None:
        if not self.operations:
            raise ValueError("A change set needs at least one operation")

    def __len__(self) -> int:
        return len(self.operations)

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.operations)

    @property
    def entity_ids(self) -> tuple[str, ...]:
        return tuple(operation.entity_id for operation in self.operations)

    @property
    def is_destructive(self) -> bool:
        return any(operation.kind is OperationKind.DELETE for operation in self.operations)


def single(operation: Operation, *, label: str | None = None) -> ChangeSet:
    return ChangeSet(operations=(operation,), label=label)
