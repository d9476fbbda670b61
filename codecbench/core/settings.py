"""Process-level settings read from environment variables.

Scripts call ``dotenv.load_dotenv()`` first, so values may come from a
``.env`` file in the working directory (see ``.env.sample``). Library
code never reads ``os.environ`` directly; it receives a
:class:`Settings` instance.

Variables:
    CODECBENCH_LOG_LEVEL: Root log level for scripts (default INFO).
    CODECBENCH_RUNNER_LABEL: CI runner label used for OS/arch
        detection, e.g. ``macos-14`` or ``ubuntu-24.04-arm``.
    CODECBENCH_FIXTURE_DIR: Directory holding ``{size}.{format}``
        fixture overrides.
    CODECBENCH_DOCKER_BINARY: Docker CLI (default ``docker``).
    CODECBENCH_ASDF_BINARY: asdf CLI (default ``asdf``).
    CODECBENCH_PROJECT_ROOT: Build context and install source for
        Docker and asdf environments (default: current directory).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

ENV_PREFIX: str = "CODECBENCH_"


class Settings(BaseModel):
    """Immutable process settings.

    Example:
        >>> settings = Settings.from_env({"CODECBENCH_LOG_LEVEL": "debug"})
        >>> settings.log_level
        'DEBUG'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    log_level: str = Field(default="INFO", description="Script log level")
    runner_label: str | None = Field(default=None, description="CI runner label")
    fixture_dir: Path | None = Field(default=None, description="Fixture overrides")
    docker_binary: str = Field(default="docker", min_length=1)
    asdf_binary: str = Field(default="asdf", min_length=1)
    project_root: Path = Field(default_factory=Path.cwd)

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        level: str = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {v!r}")
        return level

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from ``CODECBENCH_*`` variables.

        Empty values count as unset.
        """
        source: Mapping[str, str] = os.environ if environ is None else environ
        values: dict[str, str] = {}
        for field_name in cls.model_fields:
            raw: str | None = source.get(f"{ENV_PREFIX}{field_name.upper()}")
            if raw:
                values[field_name] = raw
        return cls.model_validate(values)
