"""
tests/unit/test_conditions.py — Unit tests for the rule condition language.

Run: pytest tests/unit/test_conditions.py -v
"""

import logging

import pytest

from scripts.evaluation import ScalarOutput, SequenceOutput
from scripts.evaluation.conditions import (
    And,
    AnyMatch,
    Compare,
    ConditionError,
    Literal,
    Not,
    Or,
    TokenKind,
    evaluate_condition,
    parse_condition,
    tokenize,
)

# ---------------------------------------------------------------------------
# Tokenizer / parser
# ---------------------------------------------------------------------------


class TestParser:
    def test_tokenize_powershell_comparison(self):
        kinds = [tok.kind for tok in tokenize("Count -ge 2")]
        assert kinds == [TokenKind.COUNT, TokenKind.CMP, TokenKind.NUMBER, TokenKind.EOF]

    def test_tokenize_negative_number(self):
        tokens = tokenize("Delta > -1")
        assert tokens[2].kind == TokenKind.NUMBER
        assert tokens[2].value == -1

    def test_and_binds_tighter_than_or(self):
        tree = parse_condition("a == 1 OR b == 2 AND c == 3")
        assert isinstance(tree, Or)
        assert isinstance(tree.operands[1], And)

    def test_not_binds_tighter_than_and(self):
        tree = parse_condition("NOT a AND b")
        assert isinstance(tree, And)
        assert isinstance(tree.operands[0], Not)

    def test_parentheses_override_precedence(self):
        tree = parse_condition("(a OR b) AND c")
        assert isinstance(tree, And)
        assert isinstance(tree.operands[0], Or)

    def test_any_form_parses(self):
        tree = parse_condition("Any(Status == 'Failed')")
        assert tree == AnyMatch("Status", "eq", Literal("Failed"))

    def test_all_comparison_spellings_collapse(self):
        for text in ("x == 1", "x = 1", "x -eq 1", "x -EQ 1"):
            tree = parse_condition(text)
            assert isinstance(tree, Compare)
            assert tree.op == "eq"

    def test_parsed_trees_are_cached(self):
        assert parse_condition("Lag > 60") is parse_condition("Lag > 60")

    @pytest.mark.parametrize(
        "text",
        ["", "   ", "OffsetSeconds >", "(a == 1", "a == 1)", "a # b", "Any(Status)", "a == == 1"],
    )
    def test_malformed_conditions_raise(self, text):
        with pytest.raises(ConditionError):
            parse_condition(text)

    def test_moderate_nesting_parses(self):
        assert evaluate_condition("(" * 10 + "true" + ")" * 10, {}, {}) is True
        assert evaluate_condition("NOT " * 10 + "true", {}, {}) is True

    @pytest.mark.parametrize(
        "text",
        ["(" * 400 + "1 == 1" + ")" * 400, "NOT " * 100 + "true", "(NOT " * 40 + "true" + ")" * 40],
    )
    def test_excessive_nesting_is_rejected(self, text):
        with pytest.raises(ConditionError, match="nests deeper"):
            parse_condition(text)

    def test_excessive_nesting_evaluates_false(self):
        assert evaluate_condition("(" * 400 + "1 == 1" + ")" * 400, {}, {}) is False


# ---------------------------------------------------------------------------
# Evaluation against scalar output
# ---------------------------------------------------------------------------


class TestScalarEvaluation:
    def test_threshold_comparison(self):
        assert evaluate_condition(
            "OffsetSeconds > MaxTimeOffsetSeconds",
            ScalarOutput({"OffsetSeconds": 400}),
            {"MaxTimeOffsetSeconds": 300},
        )
        assert not evaluate_condition(
            "OffsetSeconds > MaxTimeOffsetSeconds",
            ScalarOutput({"OffsetSeconds": 50}),
            {"MaxTimeOffsetSeconds": 300},
        )

    def test_plain_dict_output_is_accepted(self):
        assert evaluate_condition("Lag >= 60", {"Lag": 60})

    def test_thresholds_shadow_record_fields(self):
        assert evaluate_condition("Value == 10", {"Value": 1}, {"Value": 10})

    def test_precedence_is_respected(self):
        assert evaluate_condition("true OR false AND false", {})
        assert not evaluate_condition("NOT false AND false", {})
        assert not evaluate_condition("(true OR false) AND false", {})

    def test_powershell_operators_and_literals(self):
        record = {"IsHealthy": False, "QueueLength": 75}
        assert evaluate_condition("QueueLength -gt 50 -and IsHealthy -eq $false", record)
        assert evaluate_condition("-not IsHealthy", record)
        assert evaluate_condition("QueueLength -lt 10 -or $true", record)

    def test_symbolic_connectives(self):
        assert evaluate_condition("!IsHealthy && QueueLength != 0", {"IsHealthy": False, "QueueLength": 3})
        assert evaluate_condition("QueueLength <> 0 || false", {"QueueLength": 3})

    def test_keywords_are_case_insensitive(self):
        assert evaluate_condition("TRUE and not FALSE", {})

    def test_quoted_strings_compare_case_insensitively(self):
        assert evaluate_condition('State == "Running"', {"State": "running"})
        assert evaluate_condition("State == 'RUNNING'", {"State": "Running"})
        assert not evaluate_condition("State != 'running'", {"State": "Running"})

    def test_numeric_strings_are_coerced(self):
        assert evaluate_condition("Lag > 60", {"Lag": "75"})
        assert evaluate_condition("Ratio <= 0.5", {"Ratio": 0.25})

    def test_boolean_strings_are_coerced(self):
        assert evaluate_condition("Enabled == true", {"Enabled": "True"})

    def test_null_handling(self):
        assert evaluate_condition("Owner == null", {"Owner": None})
        assert evaluate_condition("Owner != $null", {"Owner": "admin"})
        assert not evaluate_condition("Owner > 1", {"Owner": None})

    def test_incomparable_values_are_unequal(self):
        assert not evaluate_condition("Name == 5", {"Name": "dc1"})
        assert evaluate_condition("Name != 5", {"Name": "dc1"})

    def test_ordering_across_types_is_not_matched(self):
        assert not evaluate_condition("Name > 5", {"Name": "dc1"})
        assert not evaluate_condition("NOT (Name > 5)", {"Name": "dc1"})

    def test_bare_operand_uses_truthiness(self):
        assert not evaluate_condition("IsHealthy", {"IsHealthy": False})
        assert evaluate_condition("NOT IsHealthy", {"IsHealthy": False})
        assert evaluate_condition("Errors", {"Errors": ["E1"]})

    def test_unresolved_name_is_not_matched(self):
        assert not evaluate_condition("Missing > 1", {"Present": 2})

    def test_short_circuit_skips_unresolved_operand(self):
        assert evaluate_condition("true OR Missing > 1", {})
        assert not evaluate_condition("false AND Missing > 1", {})

    def test_syntax_error_is_not_matched(self):
        assert not evaluate_condition("OffsetSeconds >", {"OffsetSeconds": 5})
        assert not evaluate_condition(None, {"OffsetSeconds": 5})

    def test_any_against_scalar_is_not_matched(self):
        assert not evaluate_condition("Any(Status == 'Failed')", {"Status": "Failed"})

    def test_count_against_scalar_needs_a_field(self):
        assert not evaluate_condition("Count > 0", {"Name": "dc1"})
        assert evaluate_condition("Count == 3", {"Count": 3})

    def test_errors_are_logged_at_debug(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="scripts.evaluation.conditions"):
            evaluate_condition("Missing > 1", {})
        assert any("unresolved name 'Missing'" in rec.getMessage() for rec in caplog.records)
        assert all(rec.levelno == logging.DEBUG for rec in caplog.records)


# ---------------------------------------------------------------------------
# Evaluation against sequence output
# ---------------------------------------------------------------------------


class TestSequenceEvaluation:
    def test_count_is_element_count(self):
        output = SequenceOutput(({"Name": "a"}, {"Name": "b"}, {"Name": "c"}))
        assert evaluate_condition("Count > 2", output)
        assert evaluate_condition("Count == 0", [])

    def test_count_threshold_takes_precedence(self):
        assert evaluate_condition("Count == 99", [{"Name": "a"}], {"Count": 99})

    def test_any_matches_one_element(self):
        records = [{"Name": "dc1", "Status": "OK"}, {"Name": "dc2", "Status": "Failed"}]
        assert evaluate_condition("Any(Status == 'Failed')", records)
        assert not evaluate_condition("Any(Status == 'Error')", records)

    def test_any_with_threshold_operand(self):
        records = [{"LagMinutes": 10}, {"LagMinutes": 90}]
        assert evaluate_condition("Any(LagMinutes -gt MaxLag)", records, {"MaxLag": 60})
        assert not evaluate_condition("Any(LagMinutes -gt MaxLag)", records, {"MaxLag": 120})

    def test_any_skips_missing_and_malformed_elements(self):
        records = [{"Other": 1}, {"LagMinutes": "abc"}, {"LagMinutes": 5}]
        assert evaluate_condition("Any(LagMinutes > 1)", records)

    def test_count_and_any_combine(self):
        records = [{"Status": "Failed"}]
        assert evaluate_condition("Count -gt 0 -and Any(Status -eq 'Failed')", records)

    def test_plain_field_does_not_resolve_against_sequence(self):
        assert not evaluate_condition("Status == 'Failed'", [{"Status": "Failed"}])

    def test_count_and_any_keywords_are_case_sensitive(self):
        # lowercase spellings are ordinary field names, which a sequence cannot resolve
        assert not evaluate_condition("count > 0", [{"Name": "a"}])
        assert not evaluate_condition("any(Status == 'Failed')", [{"Status": "Failed"}])
