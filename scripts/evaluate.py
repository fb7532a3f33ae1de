#!/usr/bin/env python3
"""
scripts/evaluate.py — Evaluate a run of collected health check results.

Reads the check catalog, the thresholds and the collectors' execution
results, runs the evaluation engine and prints a per-category summary.

Inputs (settings, overridable on the command line):
  CHECKS_FILE      check catalog (YAML/JSON)          --checks
  THRESHOLDS_FILE  named thresholds (YAML/JSON)       --thresholds
  RESULTS_FILE     execution results (JSON)           --results
  OUTPUT_FILE      evaluated results + summary (JSON) --output

Usage:
    python3 scripts/evaluate.py --results build/run_results.json
    python3 scripts/evaluate.py --env-file env/lab.env --output build/evaluated.json

Exit code:
    0 = all checks Pass
    1 = at least one Warning, no Fail (0 when FAIL_ON_WARNING=false)
    2 = at least one Fail
    3 = invalid input or configuration

Importable (used by integration tests):
    from scripts.evaluate import evaluate_files, main
"""

from __future__ import annotations

import argparse
import logging
import pathlib
import sys
from logging.handlers import RotatingFileHandler

# Add project root to path so the engine and config are importable
_ROOT = pathlib.Path(__file__).parent.parent
sys.path.insert(0, str(_ROOT))

try:
    from config.settings import Settings, load_settings
except ImportError:
    print(
        "ERROR: pydantic-settings not installed.\n"
        "Run: pip install -e '.[test]'"
    )
    sys.exit(3)

import orjson  # noqa: E402
from pydantic import ValidationError  # noqa: E402

from scripts.check_catalog import (  # noqa: E402
    load_check_definitions,
    load_execution_results,
    load_thresholds,
)
from scripts.evaluation import Status  # noqa: E402
from scripts.evaluation.orchestrator import EvaluationReport, run_evaluation  # noqa: E402

EXIT_CODES = {Status.PASS: 0, Status.WARNING: 1, Status.FAIL: 2}
EXIT_INPUT_ERROR = 3
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"

log = logging.getLogger("scripts")


def setup_logging(cfg: Settings) -> logging.Logger:
    log.setLevel(cfg.log_level_value)

    # Avoid duplicate handlers when main() runs more than once per process
    if log.handlers:
        return log

    fmt = logging.Formatter(LOG_FORMAT)

    sh = logging.StreamHandler(sys.stderr)
    sh.setFormatter(fmt)
    log.addHandler(sh)

    if cfg.LOG_FILE:
        log_path = pathlib.Path(cfg.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            log_path,
            maxBytes=cfg.LOG_MAX_BYTES,
            backupCount=cfg.LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        fh.setFormatter(fmt)
        log.addHandler(fh)

    return log


def evaluate_files(cfg: Settings) -> EvaluationReport:
    """Load every input named by cfg and evaluate it.

    Raises:
        FileNotFoundError: if an input file is missing.
        ValueError: if an input file is malformed or RESULTS_FILE is unset.
    """
    if not cfg.RESULTS_FILE:
        raise ValueError("RESULTS_FILE is not set (use --results or RESULTS_FILE=...)")

    definitions = load_check_definitions(pathlib.Path(cfg.CHECKS_FILE))
    thresholds = load_thresholds(pathlib.Path(cfg.THRESHOLDS_FILE)) if cfg.THRESHOLDS_FILE else {}
    executions = load_execution_results(pathlib.Path(cfg.RESULTS_FILE))
    log.info(
        "Loaded %d check definition(s), %d threshold(s), %d execution result(s)",
        len(definitions),
        len(thresholds),
        len(executions),
    )
    return run_evaluation(executions, definitions, thresholds)


def write_report(report: EvaluationReport, path: pathlib.Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(orjson.dumps(report.to_dict(), option=orjson.OPT_INDENT_2))
    log.info("Evaluated results written to %s", path)


def exit_code_for(report: EvaluationReport, fail_on_warning: bool = True) -> int:
    status = report.summary.overall_status
    if status is Status.WARNING and not fail_on_warning:
        return 0
    return EXIT_CODES[status]


def _print_results(report: EvaluationReport) -> None:
    summary = report.summary

    print()
    print("╔══════════════════════════════════════════════════════════╗")
    print("  Health Check Evaluation")
    print(f"  {summary.total_checks} check(s) evaluated, {summary.skipped_count} skipped")
    print("╚══════════════════════════════════════════════════════════╝")

    current_category = None
    for result in sorted(report.results, key=lambda r: r.category_id):
        if result.category_id != current_category:
            current_category = result.category_id
            counts = summary.categories[current_category]
            print(
                f"\n━━━ {current_category}  "
                f"(pass {counts['Pass']} / warning {counts['Warning']} / fail {counts['Fail']}) ━━━"
            )
        print(result)
        for issue in result.issues:
            print(issue)

    print()
    print("╔══════════════════════════════════════════════════════════╗")
    print(
        f"  Pass: {summary.pass_count}  Warning: {summary.warning_count}  "
        f"Fail: {summary.fail_count}  Issues: {summary.total_issues}"
    )
    sev = summary.to_dict()
    print(
        f"  Critical: {sev['CriticalIssues']}  High: {sev['HighIssues']}  "
        f"Medium: {sev['MediumIssues']}  Low: {sev['LowIssues']}"
    )
    print(f"  Overall: {summary.overall_status.value.upper()}")
    print("╚══════════════════════════════════════════════════════════╝")


def _apply_overrides(cfg: Settings, args: argparse.Namespace) -> Settings:
    overrides = {
        "CHECKS_FILE": args.checks,
        "THRESHOLDS_FILE": args.thresholds,
        "RESULTS_FILE": args.results,
        "OUTPUT_FILE": args.output,
        "LOG_LEVEL": args.log_level,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if not overrides:
        return cfg
    return Settings(**{**cfg.model_dump(), **overrides})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Evaluate collected health check results.")
    parser.add_argument("--env-file", default=".env", help="env file with settings (default: .env)")
    parser.add_argument("--checks", help="check catalog file (overrides CHECKS_FILE)")
    parser.add_argument("--thresholds", help="thresholds file (overrides THRESHOLDS_FILE)")
    parser.add_argument("--results", help="execution results JSON (overrides RESULTS_FILE)")
    parser.add_argument("--output", help="write evaluated results JSON here (overrides OUTPUT_FILE)")
    parser.add_argument(
        "--log-level",
        help="Verbose | Information | Warning | Error (overrides LOG_LEVEL)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = _apply_overrides(load_settings(args.env_file), args)
    except (ValidationError, ValueError) as exc:
        print(f"ERROR: invalid configuration\n{exc}", file=sys.stderr)
        return EXIT_INPUT_ERROR

    setup_logging(cfg)

    try:
        report = evaluate_files(cfg)
    except (FileNotFoundError, ValueError, TypeError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_INPUT_ERROR

    if cfg.OUTPUT_FILE:
        write_report(report, pathlib.Path(cfg.OUTPUT_FILE))

    _print_results(report)
    return exit_code_for(report, cfg.FAIL_ON_WARNING)


if __name__ == "__main__":
    sys.exit(main())
