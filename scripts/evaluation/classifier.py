"""
scripts/evaluation/classifier.py — Fallback classification for checks without rules.

Relies on the field names collectors conventionally emit (Status, IsHealthy,
HasIssue, Message, Name, ComputerName). It never grades a sequence output as
Warning: any unhealthy element is a hard failure. Checks that need graded
severities ship explicit EvaluationRules instead.

Status values are matched case-insensitively, like string comparisons in
rule conditions. A Status that is not a string (an object, a list) carries
no verdict.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from scripts.evaluation import Classification, Issue, ScalarOutput, Status, to_raw_output

if TYPE_CHECKING:
    from scripts.check_catalog import CheckDefinition

SCALAR_FAIL_STATUSES = frozenset({"failed", "error", "critical"})
ITEM_FAIL_STATUSES = frozenset({"failed", "error"})
WARNING_STATUS = "warning"


def _status_of(record: dict[str, Any]) -> str | None:
    value = record.get("Status")
    if isinstance(value, str):
        return value.strip().casefold()
    return None


def is_failing_item(item: dict[str, Any]) -> bool:
    return (
        _status_of(item) in ITEM_FAIL_STATUSES
        or item.get("IsHealthy") is False
        or item.get("HasIssue") is True
    )


def classify(definition: CheckDefinition, raw_output: Any) -> Classification:
    output = to_raw_output(raw_output)
    if isinstance(output, ScalarOutput):
        return _classify_record(definition, output.record)
    return _classify_items(definition, output.records)


def _classify_record(definition: CheckDefinition, record: dict[str, Any]) -> Classification:
    status = _status_of(record)
    if status in SCALAR_FAIL_STATUSES:
        issue = Issue(
            severity=definition.severity,
            title=definition.check_name,
            description=str(record.get("Message") or "N/A"),
            affected_object=str(record.get("AffectedObject") or "N/A"),
            evidence=record,
            recommendation=definition.remediation_steps,
            check_id=definition.check_id,
            impact=definition.impact,
        )
        return Classification(Status.FAIL, [issue])
    if status == WARNING_STATUS:
        return Classification(Status.WARNING)
    return Classification(Status.PASS)


def _classify_items(definition: CheckDefinition, items: tuple[dict[str, Any], ...]) -> Classification:
    issues = []
    for item in items:
        if not is_failing_item(item):
            continue
        label = str(item.get("Name") or item.get("ComputerName") or "Unknown")
        issues.append(
            Issue(
                severity=definition.severity,
                title=definition.check_name,
                description=str(item.get("Message") or f"{label} reported an unhealthy state"),
                affected_object=label,
                evidence=item,
                recommendation=definition.remediation_steps,
                check_id=definition.check_id,
                impact=definition.impact,
            )
        )
    if issues:
        return Classification(Status.FAIL, issues)
    return Classification(Status.PASS)
