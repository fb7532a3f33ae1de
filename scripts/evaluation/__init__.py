"""
scripts/evaluation — Result evaluation engine for directory-service health checks.

Turns raw check-execution records into Pass/Warning/Fail verdicts with
structured issues. The modules in this package do no I/O: callers hand in
already-collected results, check definitions and thresholds.

Usage:
    from scripts.evaluation import EvaluatedResult, Status
    from scripts.evaluation.orchestrator import run_evaluation
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union


class Status(str, Enum):
    """Evaluation verdict. Ordering is total: FAIL > WARNING > PASS."""

    PASS = "Pass"
    WARNING = "Warning"
    FAIL = "Fail"

    @classmethod
    def parse(cls, value: str | Status) -> Status:
        if isinstance(value, Status):
            return value
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        raise ValueError(f"unknown status '{value}' (expected Pass, Warning or Fail)")


class Severity(str, Enum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    INFO = "Info"

    @classmethod
    def parse(cls, value: str | Severity) -> Severity:
        if isinstance(value, Severity):
            return value
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        raise ValueError(
            f"unknown severity '{value}' (expected Critical, High, Medium, Low or Info)"
        )


# -------------------------------------------------------------------------
# Raw output: a check returns either one record or a list of records
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class ScalarOutput:
    record: dict[str, Any]

    def to_json(self) -> dict[str, Any]:
        return self.record


@dataclass(frozen=True)
class SequenceOutput:
    records: tuple[dict[str, Any], ...]

    def __len__(self) -> int:
        return len(self.records)

    def to_json(self) -> list[dict[str, Any]]:
        return list(self.records)


RawOutput = Union[ScalarOutput, SequenceOutput]


def to_raw_output(value: Any) -> RawOutput:
    """Wrap decoded JSON into the RawOutput variant it represents.

    Objects become a ScalarOutput, arrays a SequenceOutput. Array elements
    that are not objects and bare primitives are wrapped as {"Value": x};
    null becomes an empty record.
    """
    if isinstance(value, (ScalarOutput, SequenceOutput)):
        return value
    if value is None:
        return ScalarOutput({})
    if isinstance(value, dict):
        return ScalarOutput(dict(value))
    if isinstance(value, (list, tuple)):
        return SequenceOutput(
            tuple(dict(item) if isinstance(item, dict) else {"Value": item} for item in value)
        )
    return ScalarOutput({"Value": value})


# -------------------------------------------------------------------------
# Evaluation output
# -------------------------------------------------------------------------


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Issue:
    severity: Severity
    title: str
    description: str
    affected_object: str
    evidence: Any
    recommendation: str | None = None
    check_id: str | None = None
    impact: str | None = None
    status: str = "Open"
    issue_id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "IssueId": self.issue_id,
            "CheckId": self.check_id,
            "Severity": self.severity.value,
            "Status": self.status,
            "Title": self.title,
            "Description": self.description,
            "AffectedObject": self.affected_object,
            "Evidence": self.evidence,
            "Impact": self.impact,
            "Recommendation": self.recommendation,
        }

    def __str__(self) -> str:
        return f"    - [{self.severity.value}] {self.title} ({self.affected_object})"


@dataclass
class Classification:
    """Verdict for one check's output, before it is wrapped into an EvaluatedResult."""

    status: Status
    issues: list[Issue] = field(default_factory=list)
    used_rules: bool = False


@dataclass
class EvaluatedResult:
    check_id: str
    check_name: str
    category_id: str
    severity: Severity
    execution_status: str
    evaluation_status: Status
    raw_output: Any
    issues: list[Issue] = field(default_factory=list)
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_ms: int | None = None
    error_message: str | None = None
    result_id: str = field(default_factory=_new_id)

    @property
    def issue_count(self) -> int:
        return len(self.issues)

    @property
    def execution_failed(self) -> bool:
        return self.execution_status != "Completed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "ResultId": self.result_id,
            "CheckId": self.check_id,
            "CheckName": self.check_name,
            "CategoryId": self.category_id,
            "Severity": self.severity.value,
            "StartTime": self.start_time.isoformat() if self.start_time else None,
            "EndTime": self.end_time.isoformat() if self.end_time else None,
            "DurationMs": self.duration_ms,
            "ExecutionStatus": self.execution_status,
            "EvaluationStatus": self.evaluation_status.value,
            "RawOutput": self.raw_output,
            "ErrorMessage": self.error_message,
            "IssueCount": self.issue_count,
            "Issues": [issue.to_dict() for issue in self.issues],
        }

    def __str__(self) -> str:
        line = f"  [{self.evaluation_status.value.upper()}] {self.check_id} {self.check_name}"
        if self.issues:
            line += f": {self.issue_count} issue(s)"
        if self.error_message:
            line += f"\n         {self.error_message}"
        return line
