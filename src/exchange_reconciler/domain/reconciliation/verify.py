"""Verifier: re-run a detector against post-pass state without applying anything."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from exchange_reconciler.domain.ports import EntityStore

    from .plan import CorrectionPlan

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VerificationResult:
    """How many violations a fresh detection still finds.

    ``remaining`` counts every finding, including ones only flagged for human
    review; ``correctable`` counts those a re-run would still try to fix.
    """

    scanned: int
    remaining: int
    correctable: int

    @property
    def ok(self) -> bool:
        return self.remaining == 0

    @classmethod
    def from_plan(cls, plan: CorrectionPlan) -> VerificationResult:
        return cls(scanned=plan.scanned, remaining=plan.flagged, correctable=len(plan.change_sets))


def verify(
    store: EntityStore,
    detect: Callable[[EntityStore], CorrectionPlan],
) -> VerificationResult:
    """Detect again against ``store`` and summarize what is left.

    A mismatch is reported, not raised: some violations need more than one pass.
    """

    result = VerificationResult.from_plan(detect(store))
    if result.ok:
        log.info("Verification passed: no violations among %s scanned", result.scanned)
    else:
        log.warning(
            "Verification found %s remaining violation(s) (%s correctable); re-run recommended",
            result.remaining,
            result.correctable,
        )
    return result
