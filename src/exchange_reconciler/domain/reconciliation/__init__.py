"""Reconciliation core: detect data defects and correct them in bounded batches.

Layered flow of one pass:
1) scan the collections the pass needs into memory
2) run a detector (duplicates, references, field consistency, normalization)
   to produce a correction plan
3) apply the plan's change sets in rate-limited chunks
4) re-run the detector read-only to verify what remains
"""

from __future__ import annotations

from .engine import PassReport, ReconciliationEngine
from .execute import BatchExecutor, ExecutionResult, chunk_change_sets
from .passes import PASSES, PassOptions, ReconciliationPass, UnknownPassError, get_pass
from .plan import CorrectionPlan, Finding, TransformError
from .scan import ScanError, scan
from .verify import VerificationResult, verify

__all__ = [
    "PASSES",
    "BatchExecutor",
    "CorrectionPlan",
    "ExecutionResult",
    "Finding",
    "PassOptions",
    "PassReport",
    "ReconciliationEngine",
    "ReconciliationPass",
    "ScanError",
    "TransformError",
    "UnknownPassError",
    "VerificationResult",
    "chunk_change_sets",
    "get_pass",
    "scan",
    "verify",
]
