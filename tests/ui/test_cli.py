from __future__ import annotations

from datetime import timedelta

import pytest

from exchange_reconciler.domain.model import EntityType
from exchange_reconciler.domain.ports import StoreQueryError
from exchange_reconciler.domain.reconciliation import (
    CorrectionPlan,
    ExecutionResult,
    Finding,
    PassOptions,
    PassReport,
    ScanError,
    VerificationResult,
    get_pass,
)
from exchange_reconciler.domain.reconciliation.consistency import flag_for_review
from exchange_reconciler.domain.reconciliation.execute import ChunkFailure
from exchange_reconciler.ui import cli as cli_module


def _report(name: str, *, failed_sets: int = 0) -> PassReport:
    execution = ExecutionResult(
        submitted=3,
        applied=3 - failed_sets,
        failed=failed_sets,
        applied_sets=3 - failed_sets,
        failed_sets=failed_sets,
        chunks=1,
    )
    if failed_sets:
        execution.failures.append(ChunkFailure(index=1, entity_ids=("u-1",), message="rejected"))
    return PassReport(
        name=name,
        dry_run=False,
        scanned=10,
        flagged=3,
        planned=3,
        execution=execution,
        verification=VerificationResult(scanned=10, remaining=failed_sets, correctable=0),
    )


def _capture_run_pass(
    monkeypatch: pytest.MonkeyPatch,
    report: PassReport | None = None,
) -> dict[str, object]:
    captured: dict[str, object] = {}

    def fake_run_pass(name: str, **kwargs: object) -> PassReport:
        captured["name"] = name
        captured.update(kwargs)
        return report or _report(name)

    monkeypatch.setattr(cli_module, "run_pass", fake_run_pass)
    return captured


def test_pass_defaults(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    captured = _capture_run_pass(monkeypatch)

    cli_module.main(["remove-duplicate-users"])

    assert captured["name"] == "remove-duplicate-users"
    assert captured["dry_run"] is False
    assert captured["backup"] is False
    options = captured["options"]
    assert isinstance(options, PassOptions)
    assert options.role == "student"
    assert options.key_strategy == "name+email-pattern"
    assert options.approver is None
    assert options.recent_window == timedelta(days=180)
    pass_config = captured["pass_config"]
    assert pass_config.chunk_size == 20  # type: ignore[attr-defined]
    out = capsys.readouterr().out
    assert "Pass remove-duplicate-users" in out
    assert "fixed:   3" in out
    assert "verify:  ok" in out


def test_pass_with_flags(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture_run_pass(monkeypatch)

    cli_module.main(
        [
            "fix-approvals",
            "--dry-run",
            "--backup",
            "--chunk-size",
            "5",
            "--delay",
            "0",
            "--role",
            "all",
            "--approver",
            "flag",
        ]
    )

    options: PassOptions = captured["options"]  # type: ignore[assignment]
    assert captured["dry_run"] is True
    assert captured["backup"] is True
    assert options.role is None
    assert options.approver is flag_for_review
    pass_config = captured["pass_config"]
    assert pass_config.chunk_size == 5  # type: ignore[attr-defined]
    assert pass_config.chunk_delay_seconds == 0  # type: ignore[attr-defined]


def test_invalid_chunk_size_exits_with_usage_error(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture_run_pass(monkeypatch)

    with pytest.raises(SystemExit) as exc:
        cli_module.main(["fix-approvals", "--chunk-size", "0"])

    assert exc.value.code == 2
    assert captured == {}


def test_unknown_key_strategy_is_rejected_by_argparse() -> None:
    with pytest.raises(SystemExit) as exc:
        cli_module.main(["remove-duplicate-users", "--key-strategy", "shoe-size"])

    assert exc.value.code == 2


def test_failed_chunks_exit_non_zero(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _capture_run_pass(monkeypatch, _report("fix-approvals", failed_sets=1))

    with pytest.raises(SystemExit) as exc:
        cli_module.main(["fix-approvals"])

    assert exc.value.code == 1
    out = capsys.readouterr().out
    assert "failed:  1" in out
    assert "verify:  1 remaining (re-run recommended)" in out


def test_scan_failure_exits_non_zero(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run_pass(_name: str, **_kwargs: object) -> PassReport:
        cause = StoreQueryError("unreachable", entity_type=EntityType.USER)
        raise ScanError(EntityType.USER, None, cause)

    monkeypatch.setattr(cli_module, "run_pass", fake_run_pass)

    with pytest.raises(SystemExit) as exc:
        cli_module.main(["remove-duplicate-users"])

    assert exc.value.code == 1


def test_missing_store_credentials_exit_non_zero() -> None:
    with pytest.raises(SystemExit) as exc:
        cli_module.main(["fix-approvals", "--dry-run"])

    assert exc.value.code == 1


def test_preview_prints_sample_before_applying(capsys: pytest.CaptureFixture[str]) -> None:
    plan = CorrectionPlan(scanned=4)
    for index in range(3):
        plan.add(Finding(entity_type=EntityType.USER, entity_id=f"u-{index}", reason="dup"))

    cli_module._make_preview(2)(get_pass("remove-duplicate-users"), plan)  # noqa: SLF001

    out = capsys.readouterr().out
    assert "remove-duplicate-users: 3 flagged, 0 change set(s), 0 operation(s)" in out
    assert "users/u-0: dup" in out
    assert "users/u-2" not in out
    assert "... and 1 more" in out


def test_list_prints_every_pass(capsys: pytest.CaptureFixture[str]) -> None:
    cli_module.main(["list"])

    out = capsys.readouterr().out
    assert "migrate-comprehensive-data" in out
    assert "fix-change-queue" in out
    assert len(out.strip().splitlines()) == 8


def test_failed_verification_still_prints_counts(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    report = _report("fix-approvals")
    report.verification = None
    report.verification_error = "Scan of profiles failed (filter={}): store unreachable"
    _capture_run_pass(monkeypatch, report)

    with pytest.raises(SystemExit) as exc:
        cli_module.main(["fix-approvals"])

    assert exc.value.code == 1
    out = capsys.readouterr().out
    assert "fixed:   3" in out
    assert "verify:  failed (Scan of profiles failed" in out
