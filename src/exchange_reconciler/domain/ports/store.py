"""Port for the remote entity store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from exchange_reconciler.domain.model import Entity, EntityType, Operation


type Filter = Mapping[str, object]


class StoreError(RuntimeError):
    """Base class for failures reported by an entity store."""


class StoreQueryError(StoreError):
    """Raised when the store cannot answer a query (unreachable, filter rejected)."""

    def __init__(
        self,
        message: str,
        *,
        entity_type: EntityType,
        where: Filter | None = None,
    ) -> None:
        super().__init__(message)
        self.entity_type = entity_type
        self.where = dict(where) if where else {}


class StoreTransactionError(StoreError):
    """Raised when the store rejects a transaction; nothing in it was applied."""

    def __init__(self, message: str, *, entity_ids: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.entity_ids = tuple(entity_ids)


@runtime_checkable
class EntityStore(Protocol):
    """Query/transact capability of the document store.

    ``where`` holds equality constraints keyed by attribute name; dotted keys
    address fields inside embedded documents. ``transact`` applies all
    operations atomically or raises :class:`StoreTransactionError`.
    """

    def query(self, entity_type: EntityType, where: Filter | None = None) -> list[Entity]: ...

    def transact(self, operations: Sequence[Operation]) -> None: ...
