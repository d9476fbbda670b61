"""Infrastructure layer for codecbench.

This package provides the child-process primitive, the environment
runners (local, Docker, asdf) and the batch orchestrator that drives
them concurrently.
"""

from codecbench.infra.batch import (
    BatchConfig,
    BatchOrchestrator,
    BatchReport,
    EnvironmentOutcome,
    OutcomeStatus,
)
from codecbench.infra.process import CommandResult, ProcessExecutor
from codecbench.infra.runners import (
    AsdfRunner,
    DockerRunner,
    EnvironmentRunner,
    LocalRunner,
    create_runner,
)

__all__: list[str] = [
    "AsdfRunner",
    "BatchConfig",
    "BatchOrchestrator",
    "BatchReport",
    "CommandResult",
    "DockerRunner",
    "EnvironmentOutcome",
    "EnvironmentRunner",
    "LocalRunner",
    "OutcomeStatus",
    "ProcessExecutor",
    "create_runner",
]
