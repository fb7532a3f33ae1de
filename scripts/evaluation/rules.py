"""
scripts/evaluation/rules.py — Classify one check's output with its EvaluationRules.

Rules run in declaration order. A matching rule escalates the running status
(a Fail rule always wins, a Warning rule only replaces Pass) and, when it is a
Warning or Fail rule, records one issue. Checks without usable rules are
handed to the default classifier.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from scripts.check_catalog import EvaluationRule, parse_rule_set
from scripts.evaluation import Classification, Issue, RawOutput, Status, to_raw_output
from scripts.evaluation.classifier import classify
from scripts.evaluation.conditions import evaluate_condition
from scripts.evaluation.resolvers import affected_object, severity_from_status

if TYPE_CHECKING:
    from scripts.check_catalog import CheckDefinition

logger = logging.getLogger(__name__)


def escalate(current: Status, rule_status: Status) -> Status:
    """Running-status update for one matched rule.

    Not a plain max(): the rule's status is taken iff it is Fail or nothing
    has been raised yet. Pass rules therefore never move the status.
    """
    if rule_status is Status.FAIL or current is Status.PASS:
        return rule_status
    return current


def evaluate_rules(
    definition: CheckDefinition,
    raw_output: RawOutput | Any,
    thresholds: Mapping[str, Any] | None = None,
) -> Classification:
    output = to_raw_output(raw_output)
    try:
        rule_set = parse_rule_set(definition.evaluation_rules)
    except ValueError as exc:
        logger.warning(
            "Check %s: EvaluationRules could not be parsed, using default classification: %s",
            definition.check_id,
            exc,
        )
        return classify(definition, output)

    if rule_set is None:
        logger.debug("Check %s: no evaluation rules, using default classification", definition.check_id)
        return classify(definition, output)

    return apply_rules(definition, rule_set.rules, output, thresholds or {})


def apply_rules(
    definition: CheckDefinition,
    rules: Sequence[EvaluationRule],
    output: RawOutput,
    thresholds: Mapping[str, Any],
) -> Classification:
    status = Status.PASS
    issues: list[Issue] = []

    for idx, rule in enumerate(rules):
        try:
            matched = evaluate_condition(rule.condition, output, thresholds)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Check %s: rule %d (%r) raised during evaluation, treated as not matched: %s",
                definition.check_id,
                idx,
                rule.condition,
                exc,
            )
            continue
        if not matched:
            continue

        logger.debug("Check %s: rule %d matched -> %s", definition.check_id, idx, rule.status.value)
        status = escalate(status, rule.status)
        if rule.status in (Status.WARNING, Status.FAIL):
            issues.append(_issue_for_rule(definition, rule, output))

    return Classification(status, issues, used_rules=True)


def _issue_for_rule(definition: CheckDefinition, rule: EvaluationRule, output: RawOutput) -> Issue:
    return Issue(
        severity=severity_from_status(rule.status, definition.severity),
        title=rule.title or definition.check_name,
        description=rule.description or rule.title or f"Condition matched: {rule.condition}",
        affected_object=affected_object(output),
        evidence=output.to_json(),
        recommendation=definition.remediation_steps,
        check_id=definition.check_id,
        impact=definition.impact,
    )
