"""Batch executor: apply change sets in bounded, rate-limited transactions.

Change sets are packed into chunks of at most ``chunk_size`` operations
without ever splitting a change set; one that is larger than the limit is sent
alone. A rejected chunk is logged with its entity ids and counted as failed,
and the run moves on: every detector re-derives its plan from current state,
so a second run picks up whatever failed.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from exchange_reconciler.domain.ports import StoreTransactionError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from exchange_reconciler.domain.model import ChangeSet, Operation
    from exchange_reconciler.domain.ports import EntityStore

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Chunk:
    index: int
    change_sets: tuple[ChangeSet, ...]

    @property
    def operations(self) -> list[Operation]:
        return [operation for change_set in self.change_sets for operation in change_set]

    @property
    def entity_ids(self) -> list[str]:
        return [entity_id for change_set in self.change_sets for entity_id in change_set.entity_ids]


@dataclass(frozen=True, slots=True)
class ChunkFailure:
    index: int
    entity_ids: tuple[str, ...]
    message: str


@dataclass(slots=True)
class ExecutionResult:
    """Summary of one executor run. ``applied`` never exceeds ``submitted``."""

    submitted: int = 0
    applied: int = 0
    failed: int = 0
    applied_sets: int = 0
    failed_sets: int = 0
    chunks: int = 0
    failures: list[ChunkFailure] = field(default_factory=list["ChunkFailure"])

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def failed_entity_ids(self) -> list[str]:
        return [entity_id for failure in self.failures for entity_id in failure.entity_ids]


def chunk_change_sets(change_sets: Sequence[ChangeSet], chunk_size: int) -> list[Chunk]:
    if chunk_size < 1:
        raise ValueError("Chunk size must be positive")

    chunks: list[Chunk] = []
    current: list[ChangeSet] = []
    current_size = 0
    for change_set in change_sets:
        if current and current_size + len(change_set) > chunk_size:
            chunks.append(Chunk(index=len(chunks) + 1, change_sets=tuple(current)))
            current, current_size = [], 0
        current.append(change_set)
        current_size += len(change_set)
    if current:
        chunks.append(Chunk(index=len(chunks) + 1, change_sets=tuple(current)))
    return chunks


@dataclass(slots=True)
class BatchExecutor:
    store: EntityStore
    chunk_size: int
    delay_seconds: float
    sleep: Callable[[float], None] = time.sleep

    def execute(self, change_sets: Sequence[ChangeSet]) -> ExecutionResult:
        chunks = chunk_change_sets(change_sets, self.chunk_size)
        result = ExecutionResult(
            submitted=sum(len(change_set) for change_set in change_sets),
            chunks=len(chunks),
        )
        for position, chunk in enumerate(chunks):
            if position and self.delay_seconds:
                self.sleep(self.delay_seconds)
            self._apply(chunk, result, total=len(chunks))
        return result

    def _apply(self, chunk: Chunk, result: ExecutionResult, *, total: int) -> None:
        operations = chunk.operations
        try:
            self.store.transact(operations)
        except StoreTransactionError as exc:
            entity_ids = tuple(chunk.entity_ids)
            log.error("Chunk %s/%s failed for entities %s: %s", chunk.index, total, entity_ids, exc)
            result.failed += len(operations)
            result.failed_sets += len(chunk.change_sets)
            result.failures.append(
                ChunkFailure(index=chunk.index, entity_ids=entity_ids, message=str(exc))
            )
            return
        result.applied += len(operations)
        result.applied_sets += len(chunk.change_sets)
        log.info(
            "Chunk %s/%s applied: %s operations (%s/%s)",
            chunk.index,
            total,
            len(operations),
            result.applied,
            result.submitted,
        )
