"""
scripts/evaluation/resolvers.py — Status → severity and record → affected-object mapping.
"""

from __future__ import annotations

from typing import Any

from scripts.evaluation import ScalarOutput, SequenceOutput, Severity, Status, to_raw_output

# First populated field wins.
AFFECTED_OBJECT_FIELDS = (
    "Name",
    "ComputerName",
    "ServerName",
    "DomainController",
    "DN",
    "DistinguishedName",
)

_STATUS_SEVERITY = {
    Status.FAIL: Severity.CRITICAL,
    Status.WARNING: Severity.MEDIUM,
    Status.PASS: Severity.LOW,
}


def severity_from_status(status: Status | str | None, default_severity: Severity | str) -> Severity:
    """Map a rule status to an issue severity, falling back to the check's baseline."""
    try:
        return _STATUS_SEVERITY[Status.parse(status)]
    except (ValueError, TypeError, KeyError):
        return Severity.parse(default_severity)


def _populated(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def affected_object(raw_output: Any) -> str:
    """Human-readable label for what an issue is about, derived from the output."""
    output = to_raw_output(raw_output)
    if isinstance(output, SequenceOutput):
        return f"{len(output)} objects"
    if isinstance(output, ScalarOutput):
        for name in AFFECTED_OBJECT_FIELDS:
            value = output.record.get(name)
            if _populated(value):
                return str(value)
    return "N/A"
