"""Unit tests for severity_from_status and affected_object."""

import inspect

import pytest

from scripts.evaluation import ScalarOutput, SequenceOutput, Severity, Status
from scripts.evaluation.resolvers import affected_object, severity_from_status


@pytest.mark.parametrize(
    "status, expected",
    [
        (Status.FAIL, Severity.CRITICAL),
        (Status.WARNING, Severity.MEDIUM),
        (Status.PASS, Severity.LOW),
        ("fail", Severity.CRITICAL),
        (" Warning ", Severity.MEDIUM),
    ],
)
def test_severity_from_status(status, expected):
    assert severity_from_status(status, Severity.INFO) is expected


@pytest.mark.parametrize("status", ["Unknown", "", None, 42])
def test_unknown_status_falls_back_to_default(status):
    assert severity_from_status(status, Severity.HIGH) is Severity.HIGH
    assert severity_from_status(status, "low") is Severity.LOW


def test_affected_object_prefers_name():
    record = {"DistinguishedName": "CN=DC01,OU=DCs", "ComputerName": "DC01.corp", "Name": "DC01"}
    assert affected_object(ScalarOutput(record)) == "DC01"


def test_affected_object_skips_blank_fields():
    record = {"Name": "  ", "ComputerName": None, "ServerName": "SRV01"}
    assert affected_object(record) == "SRV01"


def test_affected_object_uses_distinguished_name_last():
    assert affected_object({"DistinguishedName": "CN=DC01"}) == "CN=DC01"


def test_affected_object_for_sequence_is_a_count():
    output = SequenceOutput(({"Name": "a"}, {"Name": "b"}))
    assert affected_object(output) == "2 objects"
    assert affected_object([]) == "0 objects"


def test_affected_object_without_identifying_field():
    assert affected_object({"OffsetSeconds": 400}) == "N/A"
    assert affected_object(None) == "N/A"


def test_affected_object_depends_only_on_output():
    assert list(inspect.signature(affected_object).parameters) == ["raw_output"]
