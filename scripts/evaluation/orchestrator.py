"""
scripts/evaluation/orchestrator.py — Evaluate a whole run of check executions.

Pairs every execution record with its check definition and produces one
EvaluatedResult per matched record, plus run-level summary counters.

Per-item problems never abort the batch:
  - invalid check definition    → definition ignored, warning logged
  - no matching definition      → record skipped, warning logged
  - invalid execution record    → Fail + one synthetic issue when its CheckId
                                  is readable and known, else skipped
  - check execution failed      → forced Fail + one synthetic issue
  - evaluator raised            → Fail result carrying the error message
Only structurally invalid top-level input raises TypeError (None, a string or
a mapping where a list is expected, or non-mapping thresholds).

Importable:
    from scripts.evaluation.orchestrator import run_evaluation
    report = run_evaluation(results, definitions, thresholds)
    report.summary.fail_count
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from scripts.check_catalog import (
    CheckDefinition,
    ExecutionResult,
    record_check_id,
    record_list,
    validate_record,
)
from scripts.evaluation import (
    Classification,
    EvaluatedResult,
    Issue,
    Severity,
    Status,
)
from scripts.evaluation.resolvers import affected_object
from scripts.evaluation.rules import evaluate_rules

logger = logging.getLogger(__name__)

EXECUTION_FAILURE_TITLE = "Check execution failed"
EXECUTION_FAILURE_RECOMMENDATION = (
    "Review the check's execution log and the target's reachability, then re-run the check."
)
EVALUATION_FAILURE_TITLE = "Evaluation error"
EVALUATION_FAILURE_RECOMMENDATION = "Review the check's EvaluationRules and raw output."
INVALID_RECORD_TITLE = "Invalid execution record"
INVALID_RECORD_RECOMMENDATION = "Fix the collector so it emits a well-formed result record."
INVALID_RECORD_STATUS = "Invalid"


@dataclass
class EvaluationSummary:
    total_checks: int = 0
    pass_count: int = 0
    warning_count: int = 0
    fail_count: int = 0
    total_issues: int = 0
    skipped_count: int = 0
    issues_by_severity: dict[Severity, int] = field(
        default_factory=lambda: {severity: 0 for severity in Severity}
    )
    categories: dict[str, dict[str, int]] = field(default_factory=dict)

    @classmethod
    def from_results(cls, results: Iterable[EvaluatedResult], skipped: int = 0) -> EvaluationSummary:
        summary = cls(skipped_count=skipped)
        for result in results:
            summary.total_checks += 1
            if result.evaluation_status is Status.FAIL:
                summary.fail_count += 1
            elif result.evaluation_status is Status.WARNING:
                summary.warning_count += 1
            else:
                summary.pass_count += 1

            category = summary.categories.setdefault(
                result.category_id, {status.value: 0 for status in Status}
            )
            category[result.evaluation_status.value] += 1

            summary.total_issues += result.issue_count
            for issue in result.issues:
                summary.issues_by_severity[issue.severity] += 1
        return summary

    @property
    def overall_status(self) -> Status:
        if self.fail_count:
            return Status.FAIL
        if self.warning_count:
            return Status.WARNING
        return Status.PASS

    def to_dict(self) -> dict[str, Any]:
        return {
            "TotalChecks": self.total_checks,
            "PassCount": self.pass_count,
            "WarningCount": self.warning_count,
            "FailCount": self.fail_count,
            "TotalIssues": self.total_issues,
            "SkippedCount": self.skipped_count,
            "CriticalIssues": self.issues_by_severity[Severity.CRITICAL],
            "HighIssues": self.issues_by_severity[Severity.HIGH],
            "MediumIssues": self.issues_by_severity[Severity.MEDIUM],
            "LowIssues": self.issues_by_severity[Severity.LOW],
            "InfoIssues": self.issues_by_severity[Severity.INFO],
            "Categories": self.categories,
            "OverallStatus": self.overall_status.value,
        }


@dataclass
class EvaluationReport:
    results: list[EvaluatedResult]
    summary: EvaluationSummary

    def to_dict(self) -> dict[str, Any]:
        return {
            "Summary": self.summary.to_dict(),
            "Results": [result.to_dict() for result in self.results],
        }


def _index_definitions(records: list[Any]) -> dict[str, CheckDefinition]:
    lookup: dict[str, CheckDefinition] = {}
    for idx, record in enumerate(records):
        try:
            definition = validate_record(CheckDefinition, record, f"check definitions[{idx}]")
        except ValueError as exc:
            logger.warning("%s; definition ignored", exc)
            continue
        if definition.check_id in lookup:
            logger.warning(
                "Duplicate check definition %s; the later entry replaces the earlier one",
                definition.check_id,
            )
        lookup[definition.check_id] = definition
    return lookup


def _result(
    execution: ExecutionResult,
    definition: CheckDefinition,
    status: Status,
    issues: list[Issue],
    error_message: str | None = None,
) -> EvaluatedResult:
    return EvaluatedResult(
        check_id=definition.check_id,
        check_name=definition.check_name,
        category_id=definition.category_id,
        severity=definition.severity,
        execution_status=execution.status,
        evaluation_status=status,
        raw_output=execution.raw_output,
        issues=issues,
        start_time=execution.start_time,
        end_time=execution.end_time,
        duration_ms=execution.duration_ms,
        error_message=error_message,
    )


def _execution_failure(execution: ExecutionResult, definition: CheckDefinition) -> EvaluatedResult:
    message = execution.error_message or f"check reported status '{execution.status}'"
    issue = Issue(
        severity=definition.severity,
        title=EXECUTION_FAILURE_TITLE,
        description=f"{definition.check_name} did not complete: {message}",
        affected_object=affected_object(execution.output),
        evidence={
            "Status": execution.status,
            "ErrorMessage": execution.error_message,
            "ExitCode": execution.exit_code,
        },
        recommendation=EXECUTION_FAILURE_RECOMMENDATION,
        check_id=definition.check_id,
        impact=definition.impact,
    )
    return _result(execution, definition, Status.FAIL, [issue], error_message=message)


def _evaluation_failure(
    execution: ExecutionResult, definition: CheckDefinition, exc: Exception
) -> EvaluatedResult:
    message = f"Evaluation error: {exc}"
    issue = Issue(
        severity=definition.severity,
        title=EVALUATION_FAILURE_TITLE,
        description=f"{definition.check_name} could not be evaluated: {exc}",
        affected_object="N/A",
        evidence={"Error": str(exc), "ErrorType": type(exc).__name__},
        recommendation=EVALUATION_FAILURE_RECOMMENDATION,
        check_id=definition.check_id,
        impact=definition.impact,
    )
    return _result(execution, definition, Status.FAIL, [issue], error_message=message)


def _invalid_execution(record: Any, definition: CheckDefinition, exc: ValueError) -> EvaluatedResult:
    raw_output = record.get("RawOutput") if isinstance(record, Mapping) else None
    issue = Issue(
        severity=definition.severity,
        title=INVALID_RECORD_TITLE,
        description=f"{definition.check_name} result could not be read: {exc}",
        affected_object="N/A",
        evidence=dict(record) if isinstance(record, Mapping) else record,
        recommendation=INVALID_RECORD_RECOMMENDATION,
        check_id=definition.check_id,
        impact=definition.impact,
    )
    return EvaluatedResult(
        check_id=definition.check_id,
        check_name=definition.check_name,
        category_id=definition.category_id,
        severity=definition.severity,
        execution_status=INVALID_RECORD_STATUS,
        evaluation_status=Status.FAIL,
        raw_output=raw_output,
        issues=[issue],
        error_message=f"{INVALID_RECORD_TITLE}: {exc}",
    )


def evaluate_execution(
    execution: ExecutionResult,
    definition: CheckDefinition,
    thresholds: Mapping[str, Any],
) -> EvaluatedResult:
    """Evaluate one execution record against its definition. Never raises."""
    if execution.failed:
        logger.info(
            "Check %s execution failed (%s); forcing Fail",
            definition.check_id,
            execution.error_message or execution.status,
        )
        return _execution_failure(execution, definition)

    try:
        classification: Classification = evaluate_rules(definition, execution.output, thresholds)
        return _result(execution, definition, classification.status, classification.issues)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Check %s: evaluation failed", definition.check_id)
        return _evaluation_failure(execution, definition, exc)


def run_evaluation(
    execution_results: Iterable[ExecutionResult | Mapping[str, Any]],
    check_definitions: Iterable[CheckDefinition | Mapping[str, Any]],
    thresholds: Mapping[str, Any] | None = None,
) -> EvaluationReport:
    """Evaluate every execution record and return results + summary counters."""
    if thresholds is not None and not isinstance(thresholds, Mapping):
        raise TypeError(f"thresholds must be a mapping, got {type(thresholds).__name__}")

    records = record_list(execution_results, "execution results")
    lookup = _index_definitions(record_list(check_definitions, "check definitions"))
    read_only_thresholds = MappingProxyType(dict(thresholds or {}))

    evaluated: list[EvaluatedResult] = []
    skipped = 0
    for idx, record in enumerate(records):
        try:
            execution = validate_record(ExecutionResult, record, f"execution results[{idx}]")
        except ValueError as exc:
            check_id = record_check_id(record)
            definition = lookup.get(check_id) if check_id else None
            if definition is None:
                logger.warning("%s; result skipped", exc)
                skipped += 1
            else:
                logger.warning("%s; reported as Fail", exc)
                evaluated.append(_invalid_execution(record, definition, exc))
            continue

        definition = lookup.get(execution.check_id)
        if definition is None:
            logger.warning("No check definition for CheckId %r; result skipped", execution.check_id)
            skipped += 1
            continue
        evaluated.append(evaluate_execution(execution, definition, read_only_thresholds))

    summary = EvaluationSummary.from_results(evaluated, skipped=skipped)
    logger.info(
        "Evaluated %d result(s): %d pass, %d warning, %d fail, %d issue(s), %d skipped",
        summary.total_checks,
        summary.pass_count,
        summary.warning_count,
        summary.fail_count,
        summary.total_issues,
        summary.skipped_count,
    )
    return EvaluationReport(evaluated, summary)
