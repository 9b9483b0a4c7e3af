"""
Tests for the configuration module.

This test module validates:
- Configuration loading from YAML files
- Environment variable overrides
- CLI argument overrides
- Configuration precedence (defaults < YAML < env vars < CLI args)
- Pydantic model validation with invalid inputs
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from unittest import mock

import pytest
import yaml
from pydantic import ValidationError

from sysrecorder.config import (
    AppConfig,
    LoggingConfig,
    SamplingConfig,
    StorageConfig,
    _deep_merge,
    _load_env_config,
    _load_yaml_config,
    _parse_cli_args,
    _parse_env_value,
    load_config,
)

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def sample_yaml_config() -> dict[str, Any]:
    """Sample YAML configuration for testing."""
    return {
        "storage": {"db_path": "/tmp/recorder/sysinfo.db"},
        "sampling": {"interval_seconds": 30},
        "logging": {"level": "debug", "log_to_stdout": True},
    }


@pytest.fixture
def config_file(tmp_path: Path, sample_yaml_config: dict[str, Any]) -> Path:
    """Write the sample configuration to a YAML file."""
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump(sample_yaml_config))
    return path


@pytest.fixture
def clean_env() -> Any:
    """Run the test without SYSRECORDER_* variables from the outer environment."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("SYSRECORDER_")}
    with mock.patch.dict(os.environ, env, clear=True):
        yield


# =============================================================================
# Tests for Default Configuration
# =============================================================================


class TestDefaults:
    """Tests for built-in defaults."""

    def test_default_sampling_interval_is_ten_seconds(self) -> None:
        """Test that the sampling interval defaults to 10 seconds."""
        assert AppConfig().sampling.interval_seconds == 10.0

    def test_default_storage_path(self) -> None:
        """Test the default database location."""
        assert AppConfig().storage.db_path.endswith("sysinfo.db")

    def test_default_logging_keeps_stdout_free(self) -> None:
        """Test that logs do not go to the console by default."""
        config = LoggingConfig()
        assert config.log_to_stdout is False
        assert config.app_log_path is not None


# =============================================================================
# Tests for Model Validation
# =============================================================================


class TestValidation:
    """Tests for Pydantic validation."""

    @pytest.mark.parametrize("interval", [0, -1, -0.5])
    def test_interval_must_be_positive(self, interval: float) -> None:
        """Test that a non-positive interval is rejected."""
        with pytest.raises(ValidationError):
            SamplingConfig(interval_seconds=interval)

    def test_fractional_interval_allowed(self) -> None:
        """Test that sub-second intervals are accepted."""
        assert SamplingConfig(interval_seconds=0.5).interval_seconds == 0.5

    def test_invalid_log_level(self) -> None:
        """Test that an unknown log level is rejected."""
        with pytest.raises(ValidationError):
            LoggingConfig(level="verbose")

    def test_warn_normalized(self) -> None:
        """Test that 'WARN' is normalized to 'warning'."""
        assert LoggingConfig(level="WARN").level == "warning"


# =============================================================================
# Tests for Loading Helpers
# =============================================================================


class TestHelpers:
    """Tests for the loading helper functions."""

    def test_deep_merge_nested(self) -> None:
        """Test that nested dictionaries are merged key by key."""
        base = {"logging": {"level": "info", "log_to_stdout": False}}
        override = {"logging": {"level": "debug"}}

        assert _deep_merge(base, override) == {
            "logging": {"level": "debug", "log_to_stdout": False}
        }

    def test_load_yaml_missing_file(self, tmp_path: Path) -> None:
        """Test that a missing YAML file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            _load_yaml_config(tmp_path / "missing.yml")

    def test_load_yaml_empty_file(self, tmp_path: Path) -> None:
        """Test that an empty YAML file yields an empty dict."""
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert _load_yaml_config(path) == {}

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("true", True), ("off", False), ("5", 5), ("2.5", 2.5), ("/tmp/x.db", "/tmp/x.db")],
    )
    def test_parse_env_value(self, raw: str, expected: Any) -> None:
        """Test environment value coercion."""
        assert _parse_env_value(raw) == expected

    def test_load_env_config_nesting(self, clean_env: None) -> None:  # noqa: ARG002
        """Test that double underscores nest keys."""
        with mock.patch.dict(
            os.environ, {"SYSRECORDER_SAMPLING__INTERVAL_SECONDS": "3"}
        ):
            assert _load_env_config() == {"sampling": {"interval_seconds": 3}}

    def test_parse_cli_args(self) -> None:
        """Test CLI flags map onto config sections."""
        result = _parse_cli_args(
            ["--db", "/tmp/a.db", "--interval", "2.5", "--log-level", "warning"]
        )

        assert result == {
            "storage": {"db_path": "/tmp/a.db"},
            "sampling": {"interval_seconds": 2.5},
            "logging": {"level": "warning"},
        }

    def test_parse_cli_debug(self) -> None:
        """Test that --debug enables debug mode and level."""
        result = _parse_cli_args(["--debug"])

        assert result["logging"] == {"debug_mode": True, "level": "debug"}


# =============================================================================
# Tests for load_config Precedence
# =============================================================================


class TestLoadConfig:
    """Tests for layered loading."""

    def test_yaml_overrides_defaults(
        self, config_file: Path, clean_env: None  # noqa: ARG002
    ) -> None:
        """Test that YAML values override defaults."""
        config = load_config(config_path=config_file, cli_args=[])

        assert config.storage.db_path == "/tmp/recorder/sysinfo.db"
        assert config.sampling.interval_seconds == 30
        assert config.logging.level == "debug"

    def test_env_overrides_yaml(
        self, config_file: Path, clean_env: None  # noqa: ARG002
    ) -> None:
        """Test that environment variables override YAML."""
        with mock.patch.dict(
            os.environ, {"SYSRECORDER_SAMPLING__INTERVAL_SECONDS": "15"}
        ):
            config = load_config(config_path=config_file, cli_args=[])

        assert config.sampling.interval_seconds == 15

    def test_cli_overrides_env(
        self, config_file: Path, clean_env: None  # noqa: ARG002
    ) -> None:
        """Test that CLI arguments have the highest precedence."""
        with mock.patch.dict(
            os.environ, {"SYSRECORDER_SAMPLING__INTERVAL_SECONDS": "15"}
        ):
            config = load_config(
                config_path=config_file, cli_args=["--interval", "1"]
            )

        assert config.sampling.interval_seconds == 1

    def test_config_path_from_cli(
        self, config_file: Path, clean_env: None  # noqa: ARG002
    ) -> None:
        """Test that --config selects the YAML file."""
        config = load_config(cli_args=["--config", str(config_file)])

        assert config.storage.db_path == "/tmp/recorder/sysinfo.db"

    def test_invalid_value_raises(
        self, tmp_path: Path, clean_env: None  # noqa: ARG002
    ) -> None:
        """Test that an invalid value fails validation."""
        path = tmp_path / "bad.yml"
        path.write_text(yaml.safe_dump({"sampling": {"interval_seconds": 0}}))

        with pytest.raises(ValidationError):
            load_config(config_path=path, cli_args=[])

    def test_returns_app_config(
        self, tmp_path: Path, clean_env: None  # noqa: ARG002
    ) -> None:
        """Test that an empty file yields defaults."""
        path = tmp_path / "empty.yml"
        path.write_text("")

        config = load_config(config_path=path, cli_args=[])

        assert isinstance(config, AppConfig)
        assert isinstance(config.storage, StorageConfig)
        assert config.sampling.interval_seconds == 10.0
