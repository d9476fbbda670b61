"""Unit tests for environment-driven settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from codecbench.core.settings import Settings


class TestSettingsFromEnv:
    """Tests for Settings.from_env."""

    def test_defaults(self) -> None:
        """No variables gives the defaults."""
        settings: Settings = Settings.from_env({})
        assert settings.log_level == "INFO"
        assert settings.runner_label is None
        assert settings.fixture_dir is None
        assert settings.docker_binary == "docker"
        assert settings.asdf_binary == "asdf"
        assert settings.project_root == Path.cwd()

    def test_reads_prefixed_variables(self) -> None:
        """Every field maps to CODECBENCH_<FIELD>."""
        settings: Settings = Settings.from_env(
            {
                "CODECBENCH_LOG_LEVEL": "debug",
                "CODECBENCH_RUNNER_LABEL": "macos-14",
                "CODECBENCH_FIXTURE_DIR": "/tmp/fixtures",
                "CODECBENCH_DOCKER_BINARY": "podman",
                "CODECBENCH_ASDF_BINARY": "/opt/asdf/bin/asdf",
                "CODECBENCH_PROJECT_ROOT": "/src/codecbench",
                "LOG_LEVEL": "ERROR",
            }
        )
        assert settings.log_level == "DEBUG"
        assert settings.runner_label == "macos-14"
        assert settings.fixture_dir == Path("/tmp/fixtures")
        assert settings.docker_binary == "podman"
        assert settings.asdf_binary == "/opt/asdf/bin/asdf"
        assert settings.project_root == Path("/src/codecbench")

    def test_empty_values_are_unset(self) -> None:
        """An empty variable falls back to the default."""
        settings: Settings = Settings.from_env(
            {"CODECBENCH_LOG_LEVEL": "", "CODECBENCH_DOCKER_BINARY": ""}
        )
        assert settings.log_level == "INFO"
        assert settings.docker_binary == "docker"

    def test_unknown_log_level(self) -> None:
        """An unknown level is rejected."""
        with pytest.raises(ValidationError, match="unknown log level"):
            Settings.from_env({"CODECBENCH_LOG_LEVEL": "chatty"})

    def test_frozen(self) -> None:
        """Settings are immutable."""
        settings: Settings = Settings()
        with pytest.raises(ValidationError):
            settings.log_level = "DEBUG"  # type: ignore[misc]
