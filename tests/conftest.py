"""
tests/conftest.py — Shared fixtures and path setup for all tests.

Adds the project root to sys.path so unit tests can import:
    from config.settings import Settings
    from scripts.check_catalog import CheckDefinition
    from scripts.evaluation.orchestrator import run_evaluation
"""
import pathlib
import sys

import pytest

# Make project root importable without installing as a package
PROJECT_ROOT = pathlib.Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from scripts.check_catalog import CheckDefinition  # noqa: E402


@pytest.fixture
def make_definition():
    """Build a CheckDefinition from PascalCase overrides."""

    def _make(**overrides):
        record = {
            "CheckId": "TIME-001",
            "CheckName": "Time Synchronization",
            "CategoryId": "TIME",
            "Severity": "High",
            "RemediationSteps": "Resync the clock",
        }
        record.update(overrides)
        return CheckDefinition.model_validate(record)

    return _make


@pytest.fixture
def time_skew_rules():
    return (
        '{"Rules": [{"Condition": "OffsetSeconds > MaxTimeOffsetSeconds",'
        ' "Status": "Fail", "Title": "Time skew"}]}'
    )
