"""
Typed input contracts for the evaluation engine.

Check definitions, execution results and thresholds arrive as JSON-shaped
records with PascalCase field names (CheckId, RawOutput, ...). They are
validated here with pydantic so the engine only ever sees well-formed
inputs:
  - CheckDefinition  — one catalog entry, incl. optional EvaluationRules
  - ExecutionResult  — one collector run for one check
  - EvaluationRuleSet — the decoded {"Rules": [...]} document

Records are validated one at a time so a single bad record never rejects the
whole batch. The loaders read YAML or JSON files and raise FileNotFoundError /
ValueError with readable messages, never a bare pydantic ValidationError.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

import orjson
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_pascal

from scripts.evaluation import RawOutput, Severity, Status, to_raw_output

logger = logging.getLogger(__name__)

_RECORD_CONFIG = ConfigDict(
    alias_generator=to_pascal,
    populate_by_name=True,
    extra="ignore",
)


class EvaluationRule(BaseModel):
    """{Condition, Status, Title, Description} — one classification rule."""

    model_config = ConfigDict(**_RECORD_CONFIG, frozen=True)

    # A blank or missing condition is kept: it never matches, and the other
    # rules of the set still apply.
    condition: str = ""
    status: Status
    title: str = ""
    description: str = ""

    @field_validator("condition", mode="before")
    @classmethod
    def strip_condition(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value.strip() if isinstance(value, str) else value

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, value: Any) -> Status:
        return Status.parse(value)

    @field_validator("title", "description", mode="before")
    @classmethod
    def none_as_blank(cls, value: Any) -> Any:
        return "" if value is None else value


class EvaluationRuleSet(BaseModel):
    model_config = ConfigDict(**_RECORD_CONFIG, frozen=True)

    rules: list[EvaluationRule]


def parse_rule_set(value: Any) -> EvaluationRuleSet | None:
    """Decode a check's EvaluationRules.

    Returns None when the check ships no rules (absent, blank or an empty
    Rules list).

    Raises:
        ValueError: if the rules are present but malformed.
    """
    if value is None:
        return None
    if isinstance(value, EvaluationRuleSet):
        rule_set = value
    else:
        if isinstance(value, (str, bytes)):
            if not value.strip():
                return None
            try:
                value = orjson.loads(value)
            except orjson.JSONDecodeError as exc:
                raise ValueError(f"EvaluationRules is not valid JSON: {exc}") from exc
        if not isinstance(value, dict):
            raise ValueError("EvaluationRules must be a JSON object with a 'Rules' list")
        try:
            rule_set = EvaluationRuleSet.model_validate(value)
        except ValidationError as exc:
            raise ValueError(exc) from exc
    return rule_set if rule_set.rules else None


def _json_list(value: Any) -> Any:
    """KBArticles/Tags may be stored as JSON-encoded text."""
    if value is None:
        return []
    if isinstance(value, str):
        if not value.strip():
            return []
        try:
            return orjson.loads(value)
        except orjson.JSONDecodeError as exc:
            raise ValueError(f"must be a JSON array: {exc}") from exc
    return value


class CheckDefinition(BaseModel):
    """One entry of the check catalog."""

    model_config = ConfigDict(**_RECORD_CONFIG, frozen=True)

    check_id: str
    check_name: str
    category_id: str
    severity: Severity
    # Kept raw: malformed rules must not reject the whole catalog, the rule
    # evaluator falls back to default classification for that check instead.
    evaluation_rules: Any = None
    remediation_steps: str | None = None
    description: str | None = None
    impact: str | None = None
    kb_articles: list[str] = Field(default_factory=list, alias="KBArticles")
    tags: list[str] = Field(default_factory=list)
    is_enabled: bool = True
    version: str = "1.0"

    @field_validator("check_id", "check_name", "category_id", mode="before")
    @classmethod
    def strip_required_strings(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("must be a string")
        value = value.strip()
        if not value:
            raise ValueError("must be a non-empty string")
        return value

    @field_validator("severity", mode="before")
    @classmethod
    def parse_severity(cls, value: Any) -> Severity:
        return Severity.parse(value)

    @field_validator("kb_articles", "tags", mode="before")
    @classmethod
    def decode_json_lists(cls, value: Any) -> Any:
        return _json_list(value)


class ExecutionResult(BaseModel):
    """One collector run: {CheckId, Status, StartTime, EndTime, DurationMs, RawOutput, ErrorMessage?}."""

    model_config = ConfigDict(**_RECORD_CONFIG)

    check_id: str
    status: str
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_ms: int | None = None
    raw_output: Any = None
    error_message: str | None = None
    exit_code: int | None = None

    @field_validator("check_id", "status", mode="before")
    @classmethod
    def strip_whitespace(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("must be a string")
        return value.strip()

    @field_validator("duration_ms", mode="before")
    @classmethod
    def round_duration(cls, value: Any) -> Any:
        if isinstance(value, float):
            return int(round(value))
        return value

    @model_validator(mode="after")
    def derive_duration(self) -> ExecutionResult:
        if self.duration_ms is None and self.start_time and self.end_time:
            # naive and aware timestamps cannot be subtracted
            if (self.start_time.tzinfo is None) == (self.end_time.tzinfo is None):
                delta = self.end_time - self.start_time
                self.duration_ms = int(delta.total_seconds() * 1000)
        return self

    @property
    def failed(self) -> bool:
        """Completed is the only status meaning the check itself ran successfully."""
        return self.status != "Completed"

    @property
    def output(self) -> RawOutput:
        return to_raw_output(self.raw_output)


# ---------------------------------------------------------------------------
# Validation of in-memory collections
# ---------------------------------------------------------------------------


def record_list(records: Any, label: str) -> list:
    """Materialize a batch argument. Only the outer shape is checked here.

    Raises:
        TypeError: if records is None, a string or a mapping instead of a list.
    """
    if records is None or isinstance(records, (str, bytes, Mapping)) or not isinstance(records, Iterable):
        raise TypeError(f"{label} must be a list of records, got {type(records).__name__}")
    return list(records)


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'record'}: {err['msg']}" for err in exc.errors()
    )


def validate_record(model: type[BaseModel], record: Any, label: str) -> Any:
    """Validate one record, raising ValueError with a one-line reason."""
    if isinstance(record, model):
        return record
    try:
        return model.model_validate(record)
    except ValidationError as exc:
        raise ValueError(f"{label} is invalid: {_describe(exc)}") from exc


def record_check_id(record: Any) -> str | None:
    """CheckId of a record that may have failed validation, if it is readable."""
    if isinstance(record, BaseModel):
        value = getattr(record, "check_id", None)
    elif isinstance(record, Mapping):
        value = record.get("CheckId", record.get("check_id"))
    else:
        return None
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_thresholds(payload: Any) -> dict[str, Any]:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError("thresholds must be a mapping of name -> value")
    if set(payload) == {"Thresholds"}:
        payload = payload["Thresholds"] or {}
        if not isinstance(payload, dict):
            raise ValueError("'Thresholds' must be a mapping of name -> value")
    thresholds: dict[str, Any] = {}
    for name, value in payload.items():
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"threshold name {name!r} must be a non-empty string")
        if value is not None and not isinstance(value, (bool, int, float, str)):
            raise ValueError(f"threshold '{name}' must be a number, boolean or string")
        thresholds[name.strip()] = value
    return thresholds


# ---------------------------------------------------------------------------
# File loaders
# ---------------------------------------------------------------------------


def load_document(path: Path) -> Any:
    """Read a YAML or JSON file (chosen by suffix; .json → orjson, else YAML)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if path.suffix.lower() == ".json":
        try:
            return orjson.loads(path.read_bytes())
        except orjson.JSONDecodeError as exc:
            raise ValueError(f"{path.name} is not valid JSON: {exc}") from exc
    with open(path, encoding="utf-8") as handle:
        try:
            return yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise ValueError(f"{path.name} is not valid YAML: {exc}") from exc


def _unwrap_list(payload: Any, key: str, path: Path) -> Any:
    if isinstance(payload, dict):
        if key not in payload:
            raise ValueError(f"{path.name}: root mapping must contain a '{key}' list")
        payload = payload[key]
    if not isinstance(payload, list):
        raise ValueError(f"{path.name}: expected a list (or a mapping with a '{key}' list)")
    return payload


def load_check_definitions(path: Path) -> list[CheckDefinition]:
    """Load the catalog. Invalid entries are logged and left out.

    Raises:
        FileNotFoundError: if the file is missing.
        ValueError: if the file cannot be decoded or repeats a CheckId.
    """
    path = Path(path)
    definitions: list[CheckDefinition] = []
    for idx, record in enumerate(_unwrap_list(load_document(path), "Checks", path)):
        try:
            definitions.append(validate_record(CheckDefinition, record, f"{path.name}: Checks[{idx}]"))
        except ValueError as exc:
            logger.warning("%s; definition ignored", exc)

    ids = [d.check_id for d in definitions]
    if len(ids) != len(set(ids)):
        duplicates = sorted({check_id for check_id in ids if ids.count(check_id) > 1})
        raise ValueError(f"{path.name}: duplicate CheckId(s): {', '.join(duplicates)}")
    return definitions


def load_thresholds(path: Path) -> dict[str, Any]:
    path = Path(path)
    try:
        return parse_thresholds(load_document(path))
    except ValueError as exc:
        raise ValueError(f"{path.name}: {exc}") from exc


def load_execution_results(path: Path) -> list[Any]:
    """Load the raw execution records.

    Records are validated by run_evaluation, which reports an unreadable
    record of a known check as a Fail result instead of dropping it.
    """
    path = Path(path)
    return _unwrap_list(load_document(path), "Results", path)
