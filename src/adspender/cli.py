"""Command line entry point: ``adspender {ingest,combine,coverage,audit}``."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .combiner import run_combiner
from .config import PipelineConfig, resolve_config
from .coverage import analyze_coverage, parse_query_date
from .errors import ConfigurationError
from .ingestion import run_ingestion
from .lifecycle import audit_layout
from .logging_utils import end_phase_timer, get_logger, log_error, log_system_event, start_phase_timer
from .path_utils import get_layout


def _confirm_gate(assume_yes: bool, noun: str):
    def confirm(count: int, root: Path) -> bool:
        if assume_yes:
            return True
        choice = input(f"Found {count} {noun} in {root}. Do you want to proceed? (y/n): ").strip()
        if choice not in ("y", "Y"):
            print("No selection made.")
            return False
        return True

    return confirm


def _load(args: argparse.Namespace) -> PipelineConfig:
    config = resolve_config(args.config)
    auto_delete = True if getattr(args, "auto_delete", False) else None
    return config.with_overrides(root_dir=args.root, auto_delete=auto_delete)


def _cmd_ingest(config: PipelineConfig, args: argparse.Namespace) -> int:
    result = run_ingestion(config, confirm=_confirm_gate(args.yes, "CSV files"))
    print(result.summary("files", "converted"))
    return 1 if result.had_errors else 0


def _cmd_combine(config: PipelineConfig, args: argparse.Namespace) -> int:
    result = run_combiner(config, confirm=_confirm_gate(args.yes, "candidate CSV files"))
    print(result.summary("groups", "combined"))
    return 1 if result.had_errors else 0


def _cmd_coverage(config: PipelineConfig, args: argparse.Namespace) -> int:
    try:
        start = parse_query_date(args.start)
        end = parse_query_date(args.end)
    except ValueError:
        print("Invalid date format. Please use MM-DD-YYYY.")
        return 2
    report = analyze_coverage(config, start, end)
    print(report.summary())
    return 0


def _cmd_audit(config: PipelineConfig, args: argparse.Namespace) -> int:
    issues = audit_layout(get_layout(config))
    if not issues:
        print("Layout is consistent.")
        return 0
    for issue in issues:
        print(f"[{issue.kind}] {issue.name}: {issue.detail}")
    return 1


COMMANDS = {
    "ingest": _cmd_ingest,
    "combine": _cmd_combine,
    "coverage": _cmd_coverage,
    "audit": _cmd_audit,
}


def build_arg_parser() -> argparse.ArgumentParser:
    """Create a CLI argument parser."""

    parser = argparse.ArgumentParser(description="VIVVIX AdSpender export converter")
    parser.add_argument("--config", default="config.yaml", help="Path to the configuration file")
    parser.add_argument("--root", default=None, help="Override the configured root directory")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Convert raw exports in the root directory")
    combine = sub.add_parser("combine", help="Combine files covering the same date range")
    for p in (ingest, combine):
        p.add_argument("--yes", "-y", action="store_true", help="Skip the confirmation prompt")
        p.add_argument("--auto-delete", action="store_true", help="Delete sources instead of archiving them")

    coverage = sub.add_parser("coverage", help="Report missing and overlapping days")
    coverage.add_argument("start", help="Start date (MM-DD-YYYY)")
    coverage.add_argument("end", help="End date (MM-DD-YYYY)")

    sub.add_parser("audit", help="Check stage directories, sidecars and the lifecycle manifest")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""

    parser = build_arg_parser()
    args = parser.parse_args(argv)
    config = _load(args)
    logger = get_logger(config)
    timings: Dict[str, float] = {}

    try:
        config.require_root_dir()
    except ConfigurationError as exc:
        log_error(logger, str(exc))
        return 2

    log_system_event(logger, f"{args.command} started (root={config.root_dir})")
    started = start_phase_timer(args.command)
    code = COMMANDS[args.command](config, args)
    end_phase_timer(args.command, started, timings, logger)
    return code


if __name__ == "__main__":
    sys.exit(main())
