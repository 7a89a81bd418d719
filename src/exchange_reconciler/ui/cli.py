# ruff: noqa: T201

from __future__ import annotations

import argparse
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from exchange_reconciler.app import list_passes, run_pass
from exchange_reconciler.config import ConfigurationError, configure_logging, get_pass_config
from exchange_reconciler.domain.model import Role
from exchange_reconciler.domain.reconciliation import PassOptions, ScanError
from exchange_reconciler.domain.reconciliation.consistency import flag_for_review
from exchange_reconciler.domain.reconciliation.deduplicate import KEY_STRATEGIES
from exchange_reconciler.domain.reconciliation.passes import DEFAULT_KEY_STRATEGY

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from exchange_reconciler.config import PassConfig
    from exchange_reconciler.domain.reconciliation import (
        CorrectionPlan,
        PassReport,
        ReconciliationPass,
    )
    from exchange_reconciler.domain.reconciliation.engine import PreviewHook

log = logging.getLogger(__name__)

ALL_ROLES = "all"


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Detect and correct exchange program data defects")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List available reconciliation passes")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute and print the plan without applying anything",
    )
    common.add_argument(
        "--backup",
        action="store_true",
        help="Write the records about to change to a JSON file in the data directory first",
    )
    common.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Operations per transaction (defaults to config)",
    )
    common.add_argument(
        "--delay",
        type=float,
        default=None,
        help="Seconds to wait between transactions (defaults to config)",
    )
    common.add_argument(
        "--role",
        type=str,
        default=Role.STUDENT.value,
        help=(
            f"Restrict scans to one role or profile type, or '{ALL_ROLES}' "
            "(default: %(default)s)"
        ),
    )

    for reconciliation_pass in list_passes():
        sub = subparsers.add_parser(
            reconciliation_pass.name,
            help=reconciliation_pass.description,
            parents=[common],
        )
        if reconciliation_pass.name == "remove-duplicate-users":
            sub.add_argument(
                "--key-strategy",
                choices=sorted(KEY_STRATEGIES),
                default=DEFAULT_KEY_STRATEGY,
                help="Fields that make two users equivalent (default: %(default)s)",
            )
        if reconciliation_pass.name == "fix-approvals":
            sub.add_argument(
                "--approver",
                choices=("roster", "flag"),
                default="roster",
                help="Replace placeholder approvers from the reviewer roster, or only flag them",
            )

    return parser.parse_args(list(argv))


def _build_pass_config(args: argparse.Namespace) -> PassConfig:
    return get_pass_config(chunk_size=args.chunk_size, chunk_delay_seconds=args.delay)


def _build_options(args: argparse.Namespace, config: PassConfig) -> PassOptions:
    role = None if args.role == ALL_ROLES else args.role
    approver = flag_for_review if getattr(args, "approver", "roster") == "flag" else None
    return PassOptions(
        role=role,
        key_strategy=getattr(args, "key_strategy", DEFAULT_KEY_STRATEGY),
        approver=approver,
        recent_window=config.recent_window,
    )


def _make_preview(sample_size: int) -> PreviewHook:
    def preview(reconciliation_pass: ReconciliationPass, plan: CorrectionPlan) -> None:
        print(
            f"{reconciliation_pass.name}: {plan.flagged} flagged, "
            f"{len(plan.change_sets)} change set(s), {len(plan.operations)} operation(s)"
        )
        if not plan.findings or not sample_size:
            return
        heading = "Sample of destructive changes" if plan.is_destructive else "Sample of findings"
        print(f"{heading}:")
        for finding in plan.findings[:sample_size]:
            print(f"  - {finding.describe()}")
        if plan.flagged > sample_size:
            print(f"  ... and {plan.flagged - sample_size} more")

    return preview


def _print_passes() -> None:
    for reconciliation_pass in list_passes():
        reads = ", ".join(str(entity_type) for entity_type in reconciliation_pass.scans)
        print(f"{reconciliation_pass.name:<28} {reconciliation_pass.description} [{reads}]")


def _print_report(report: PassReport) -> None:
    mode = " (dry run)" if report.dry_run else ""
    print(f"Pass {report.name}{mode}")
    print(f"  scanned: {report.scanned}")
    print(f"  flagged: {report.flagged}")
    print(f"  fixed:   {report.fixed}")
    print(f"  failed:  {report.failed}")
    if report.skipped:
        print(f"  skipped: {report.skipped} (malformed records, see log)")
    if report.backup_path is not None:
        print(f"  backup:  {report.backup_path}")
    verification = report.verification
    if report.verification_error is not None:
        print(f"  verify:  failed ({report.verification_error})")
    elif verification is None:
        print("  verify:  not run")
    elif verification.ok:
        print("  verify:  ok")
    else:
        print(f"  verify:  {verification.remaining} remaining (re-run recommended)")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    if parsed_args.command == "list":
        _print_passes()
        return

    try:
        pass_config = _build_pass_config(parsed_args)
        options = _build_options(parsed_args, pass_config)
    except (ConfigurationError, ValueError):
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        report = run_pass(
            parsed_args.command,
            pass_config=pass_config,
            options=options,
            dry_run=parsed_args.dry_run,
            backup=parsed_args.backup,
            preview=_make_preview(pass_config.sample_size),
        )
    except ConfigurationError:
        log.exception("Configuration error")
        sys.exit(1)
    except ScanError:
        log.exception("Scan failed; nothing was applied")
        sys.exit(1)
    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(1)

    _print_report(report)
    if not report.ok:
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
