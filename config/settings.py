"""
config/settings.py — Configuration contract for the health check evaluator.

Uses pydantic-settings to load, validate, and type-check the run
configuration: where the check catalog, thresholds and collected results
live, where evaluated output goes, and how verbose logging is.

Two usage modes:
  Production / scripts:
      cfg = load_settings()              # reads from .env + os.environ
      cfg = load_settings("env/lab.env") # override env file path

  Tests (isolated — no env file, no os.environ bleed):
      cfg = Settings(CHECKS_FILE="...", RESULTS_FILE="...")
      # All values come exclusively from kwargs → clean, reproducible.
"""
from __future__ import annotations

import logging
import os
import re
from typing import Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

# Level names as used in the product's Configuration table.
LOG_LEVELS = {
    "Verbose": logging.DEBUG,
    "Information": logging.INFO,
    "Warning": logging.WARNING,
    "Error": logging.ERROR,
}


class Settings(BaseSettings):
    # Sources are restricted to init kwargs so Settings() never reads
    # os.environ or a dotenv file on its own. load_settings() is the explicit
    # production entry point that reads both and passes them in as kwargs.
    model_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings,)

    # -------------------------------------------------------------------------
    # Inputs
    # -------------------------------------------------------------------------
    CHECKS_FILE: Optional[str] = "config/checks.yml"
    THRESHOLDS_FILE: Optional[str] = "config/thresholds.yml"
    RESULTS_FILE: Optional[str] = None

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------
    OUTPUT_FILE: Optional[str] = None
    FAIL_ON_WARNING: bool = True

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    LOG_LEVEL: Literal["Verbose", "Information", "Warning", "Error"] = "Information"
    LOG_FILE: Optional[str] = None
    LOG_MAX_BYTES: int = 5 * 1024 * 1024
    LOG_BACKUP_COUNT: int = 5

    # -------------------------------------------------------------------------
    # Convenience properties
    # -------------------------------------------------------------------------

    @property
    def log_level_value(self) -> int:
        """LOG_LEVEL as a stdlib logging level (Verbose → DEBUG)."""
        return LOG_LEVELS[self.LOG_LEVEL]

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept any casing (`verbose`, `INFORMATION`) and trailing whitespace."""
        if not isinstance(v, str):
            return v
        stripped = v.strip()
        for name in LOG_LEVELS:
            if name.lower() == stripped.lower():
                return name
        return stripped

    @field_validator("CHECKS_FILE", "THRESHOLDS_FILE", "RESULTS_FILE", "OUTPUT_FILE", "LOG_FILE", mode="before")
    @classmethod
    def blank_paths_are_unset(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @model_validator(mode="after")
    def validate_paths_and_rotation(self) -> Settings:
        if not self.CHECKS_FILE:
            raise ValueError("CHECKS_FILE is required (path to the check catalog YAML/JSON)")
        if self.LOG_MAX_BYTES < 1:
            raise ValueError("LOG_MAX_BYTES must be >= 1")
        if self.LOG_BACKUP_COUNT < 0:
            raise ValueError("LOG_BACKUP_COUNT must be >= 0")
        if self.OUTPUT_FILE and self.RESULTS_FILE and os.path.abspath(self.OUTPUT_FILE) == os.path.abspath(
            self.RESULTS_FILE
        ):
            raise ValueError("OUTPUT_FILE must not overwrite RESULTS_FILE")
        return self


def load_settings(env_file: str = ".env") -> Settings:
    """Load and validate settings from an env file + os.environ.

    Manually parses the env file and merges with os.environ (os.environ wins),
    then passes only known Settings fields as explicit kwargs. The
    pydantic-settings dotenv and env sources are disabled on Settings itself,
    so Settings() stays a pure validation contract.

    Raises:
        ValidationError: if a value has the wrong type or LOG_LEVEL is unknown.
        ValueError: if a cross-field rule is violated (e.g. OUTPUT_FILE == RESULTS_FILE).
    """
    file_vals: dict[str, str] = {}
    try:
        with open(env_file, encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                k, _, v = line.partition("=")
                k = k.strip()
                # Strip inline comments: "Verbose   # Verbose | Information" → "Verbose"
                v = re.sub(r"\s+#.*$", "", v.strip())
                if k:
                    file_vals[k] = v
    except FileNotFoundError:
        pass
    merged = {**file_vals, **os.environ}  # os.environ wins
    known = {k: v for k, v in merged.items() if k in Settings.model_fields}
    return Settings(**known)
