"""Application orchestration entry points."""

from __future__ import annotations

import time
from logging import getLogger
from typing import TYPE_CHECKING

from exchange_reconciler.adapters.backup import JsonBackupWriter
from exchange_reconciler.adapters.instant import InstantStoreClient
from exchange_reconciler.config import get_pass_config, get_storage_config, get_store_config
from exchange_reconciler.domain.reconciliation import (
    PASSES,
    BatchExecutor,
    PassOptions,
    ReconciliationEngine,
    get_pass,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from exchange_reconciler.config import PassConfig, StorageConfig, StoreConfig
    from exchange_reconciler.domain.ports import EntityStore
    from exchange_reconciler.domain.reconciliation import PassReport, ReconciliationPass
    from exchange_reconciler.domain.reconciliation.engine import PreviewHook

log = getLogger(__name__)


def build_store(config: StoreConfig | None = None) -> InstantStoreClient:
    """Create the remote store client; credentials are read from the environment."""

    return InstantStoreClient(config=config or get_store_config())


def list_passes() -> list[ReconciliationPass]:
    return [PASSES[name] for name in sorted(PASSES)]


def run_pass(
    name: str,
    *,
    store: EntityStore | None = None,
    pass_config: PassConfig | None = None,
    options: PassOptions | None = None,
    storage: StorageConfig | None = None,
    dry_run: bool = False,
    backup: bool = False,
    preview: PreviewHook | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PassReport:
    """Run one registered pass against a single store client."""

    reconciliation_pass = get_pass(name)
    effective_config = pass_config or get_pass_config()
    effective_options = options or PassOptions(recent_window=effective_config.recent_window)
    owned_store: InstantStoreClient | None = None
    if store is None:
        owned_store = build_store()
        store = owned_store

    backup_writer = None
    if backup:
        backup_writer = JsonBackupWriter((storage or get_storage_config()).backup_dir(ensure=False))

    log.info(
        "Running %s: chunk_size=%s, delay=%ss, dry_run=%s, backup=%s",
        name,
        effective_config.chunk_size,
        effective_config.chunk_delay_seconds,
        dry_run,
        backup,
    )
    engine = ReconciliationEngine(
        store=store,
        executor=BatchExecutor(
            store=store,
            chunk_size=effective_config.chunk_size,
            delay_seconds=effective_config.chunk_delay_seconds,
            sleep=sleep,
        ),
        sample_size=effective_config.sample_size,
        preview=preview,
        backup=backup_writer,
    )
    try:
        return engine.run(reconciliation_pass, effective_options, dry_run=dry_run, backup=backup)
    finally:
        if owned_store is not None:
            owned_store.close()
