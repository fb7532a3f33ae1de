"""
tests/unit/test_settings.py — Unit tests for config/settings.py.

These tests validate the Pydantic Settings schema with no file or network
dependencies. They run in under 1 second.

Run: pytest tests/unit/test_settings.py -v
"""

import logging

import pytest

# conftest.py adds project root to sys.path
from config.settings import Settings, load_settings

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _kwargs(**overrides):
    base = dict(
        CHECKS_FILE="config/checks.yml",
        THRESHOLDS_FILE="config/thresholds.yml",
        RESULTS_FILE="build/run_results.json",
    )
    base.update(overrides)
    return base


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_defaults(self):
        s = Settings()
        assert s.CHECKS_FILE == "config/checks.yml"
        assert s.THRESHOLDS_FILE == "config/thresholds.yml"
        assert s.RESULTS_FILE is None
        assert s.OUTPUT_FILE is None
        assert s.FAIL_ON_WARNING is True
        assert s.LOG_LEVEL == "Information"
        assert s.LOG_FILE is None

    def test_rotation_defaults(self):
        s = Settings()
        assert s.LOG_MAX_BYTES == 5 * 1024 * 1024
        assert s.LOG_BACKUP_COUNT == 5

    def test_fail_on_warning_parses_false_string(self):
        s = Settings(**_kwargs(FAIL_ON_WARNING="false"))
        assert s.FAIL_ON_WARNING is False


# ---------------------------------------------------------------------------
# Log level
# ---------------------------------------------------------------------------


class TestLogLevel:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("Verbose", logging.DEBUG),
            ("Information", logging.INFO),
            ("Warning", logging.WARNING),
            ("Error", logging.ERROR),
        ],
    )
    def test_log_level_value(self, value, expected):
        assert Settings(**_kwargs(LOG_LEVEL=value)).log_level_value == expected

    def test_log_level_is_case_insensitive(self):
        """GNU make leaves trailing whitespace after `include .env`."""
        s = Settings(**_kwargs(LOG_LEVEL="verbose  "))
        assert s.LOG_LEVEL == "Verbose"

    def test_invalid_log_level_raises(self):
        with pytest.raises(Exception):  # pydantic ValidationError
            Settings(**_kwargs(LOG_LEVEL="Trace"))


# ---------------------------------------------------------------------------
# Path and rotation validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_blank_paths_are_unset(self):
        s = Settings(**_kwargs(THRESHOLDS_FILE="  ", OUTPUT_FILE=""))
        assert s.THRESHOLDS_FILE is None
        assert s.OUTPUT_FILE is None

    def test_checks_file_is_required(self):
        with pytest.raises(ValueError, match="CHECKS_FILE"):
            Settings(**_kwargs(CHECKS_FILE=" "))

    def test_output_must_not_overwrite_results(self):
        with pytest.raises(ValueError, match="OUTPUT_FILE"):
            Settings(**_kwargs(OUTPUT_FILE="build/../build/run_results.json"))

    def test_log_max_bytes_must_be_positive(self):
        with pytest.raises(ValueError, match="LOG_MAX_BYTES"):
            Settings(**_kwargs(LOG_MAX_BYTES=0))

    def test_log_backup_count_must_be_non_negative(self):
        with pytest.raises(ValueError, match="LOG_BACKUP_COUNT"):
            Settings(**_kwargs(LOG_BACKUP_COUNT=-1))


# ---------------------------------------------------------------------------
# load_settings
# ---------------------------------------------------------------------------


class TestLoadSettings:
    def test_reads_env_file_and_strips_inline_comments(self, tmp_path, monkeypatch):
        for name in Settings.model_fields:
            monkeypatch.delenv(name, raising=False)
        env_file = tmp_path / "lab.env"
        env_file.write_text(
            "# evaluator settings\n"
            "RESULTS_FILE=build/results.json\n"
            "LOG_LEVEL=Verbose   # Verbose | Information | Warning | Error\n"
            "UNRELATED=ignored\n"
        )
        s = load_settings(str(env_file))
        assert s.RESULTS_FILE == "build/results.json"
        assert s.LOG_LEVEL == "Verbose"

    def test_environment_wins_over_env_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / "lab.env"
        env_file.write_text("LOG_LEVEL=Verbose\n")
        monkeypatch.setenv("LOG_LEVEL", "Error")
        assert load_settings(str(env_file)).LOG_LEVEL == "Error"

    def test_missing_env_file_uses_defaults(self, tmp_path, monkeypatch):
        for name in Settings.model_fields:
            monkeypatch.delenv(name, raising=False)
        s = load_settings(str(tmp_path / "absent.env"))
        assert s.CHECKS_FILE == "config/checks.yml"
