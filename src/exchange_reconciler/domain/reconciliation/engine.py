"""Orchestrator for one reconciliation pass.

The engine composes the stages (scan and detect, preview, backup, apply in
chunks, verify) but does not prescribe concrete adapters: the store, the backup
writer and the preview hook are injected, so passes run unchanged against the
remote store or an in-memory fake.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from .scan import ScanError
from .verify import verify

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

    from exchange_reconciler.domain.model import Entity
    from exchange_reconciler.domain.ports import EntityStore

    from .execute import BatchExecutor, ExecutionResult
    from .passes import PassOptions, ReconciliationPass
    from .plan import CorrectionPlan, Finding
    from .verify import VerificationResult

type PreviewHook = Callable[[ReconciliationPass, CorrectionPlan], None]
type BackupWriter = Callable[[str, Sequence[Entity]], Path]

log = getLogger(__name__)


@dataclass(slots=True)
class PassReport:
    """Counts for the plain-text summary of one pass."""

    name: str
    dry_run: bool
    scanned: int = 0
    flagged: int = 0
    planned: int = 0
    skipped: int = 0
    samples: list[Finding] = field(default_factory=list["Finding"])
    execution: ExecutionResult | None = None
    verification: VerificationResult | None = None
    backup_path: Path | None = None
    verification_error: str | None = None

    @property
    def fixed(self) -> int:
        return self.execution.applied_sets if self.execution else 0

    @property
    def failed(self) -> int:
        return self.execution.failed_sets if self.execution else 0

    @property
    def ok(self) -> bool:
        execution_ok = self.execution is None or self.execution.ok
        return execution_ok and self.verification_error is None


@dataclass(slots=True)
class ReconciliationEngine:
    """Run a registered pass end to end against ``store``."""

    store: EntityStore
    executor: BatchExecutor
    sample_size: int = 5
    preview: PreviewHook | None = None
    backup: BackupWriter | None = None

    def run(
        self,
        reconciliation_pass: ReconciliationPass,
        options: PassOptions,
        *,
        dry_run: bool = False,
        backup: bool = False,
    ) -> PassReport:
        """Plan, apply and verify ``reconciliation_pass``.

        A scan failure during detection propagates and nothing is applied. Chunk
        failures and a failed verification scan are recorded in the report; the
        caller decides the exit status.
        """

        detect = reconciliation_pass.build(options)
        log.info("Starting pass %s (dry_run=%s)", reconciliation_pass.name, dry_run)

        plan = detect(self.store)
        report = PassReport(
            name=reconciliation_pass.name,
            dry_run=dry_run,
            scanned=plan.scanned,
            flagged=plan.flagged,
            planned=len(plan.change_sets),
            skipped=len(plan.errors),
            samples=plan.findings[: self.sample_size],
        )
        if self.preview is not None:
            self.preview(reconciliation_pass, plan)

        if dry_run or plan.is_empty:
            log.info(
                "Pass %s: nothing applied (%s change set(s) planned)",
                reconciliation_pass.name,
                report.planned,
            )
            return report

        if backup:
            report.backup_path = self._write_backup(reconciliation_pass.name, plan)

        report.execution = self.executor.execute(plan.change_sets)
        try:
            report.verification = verify(self.store, detect)
        except ScanError as exc:
            log.error("Verification of pass %s failed: %s", reconciliation_pass.name, exc)
            report.verification_error = str(exc)
        log.info(
            "Finished pass %s: scanned=%s, flagged=%s, fixed=%s, failed=%s",
            reconciliation_pass.name,
            report.scanned,
            report.flagged,
            report.fixed,
            report.failed,
        )
        return report

    def _write_backup(self, name: str, plan: CorrectionPlan) -> Path | None:
        if self.backup is None:
            log.warning("Backup requested for %s but no backup writer is configured", name)
            return None
        entities = list(plan.subjects.values())
        path = self.backup(name, entities)
        log.info("Backed up %s entities to %s", len(entities), path)
        return path
