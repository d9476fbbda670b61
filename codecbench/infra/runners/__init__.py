"""Environment runner strategies and the factory selecting one."""

from __future__ import annotations

from codecbench.core.models import EnvironmentConfig, EnvironmentKind
from codecbench.core.settings import Settings
from codecbench.infra.process import ProcessExecutor
from codecbench.infra.runners.asdf import AsdfRunner
from codecbench.infra.runners.base import EnvironmentRunner
from codecbench.infra.runners.docker import DockerRunner
from codecbench.infra.runners.local import LocalRunner

RUNNER_TYPES: dict[EnvironmentKind, type[EnvironmentRunner]] = {
    EnvironmentKind.LOCAL: LocalRunner,
    EnvironmentKind.DOCKER: DockerRunner,
    EnvironmentKind.ASDF: AsdfRunner,
}


def create_runner(
    environment_config: EnvironmentConfig,
    *,
    settings: Settings | None = None,
    executor: ProcessExecutor | None = None,
    timeout: float | None = None,
) -> EnvironmentRunner:
    """Runner for ``environment_config.kind``."""
    return RUNNER_TYPES[environment_config.kind](
        environment_config,
        settings=settings,
        executor=executor,
        timeout=timeout,
    )


__all__: list[str] = [
    "AsdfRunner",
    "DockerRunner",
    "EnvironmentRunner",
    "LocalRunner",
    "RUNNER_TYPES",
    "create_runner",
]
