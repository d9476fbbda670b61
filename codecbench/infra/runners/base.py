"""Environment runner strategy.

Every runner has a two-phase lifecycle:

1. :meth:`EnvironmentRunner.prepare` makes the context usable (build an
   image, install a runtime, or nothing for local). It is idempotent:
   a second call on a prepared runner returns immediately, and a fresh
   runner for an existing context reuses what is there.
2. :meth:`EnvironmentRunner.run_benchmark` executes the measurement
   engine inside the context and leaves a result file at
   ``output_path``. The file's suffix selects the codec.

Failures are environment-scoped:
:class:`~codecbench.core.errors.EnvironmentPrepareFailure` from
``prepare`` and :class:`~codecbench.core.errors.EnvironmentRunFailure`
from ``run_benchmark``. A child that dies, times out, or writes no
result is a run failure; nothing is retried.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from codecbench.core.errors import EnvironmentRunFailure
from codecbench.core.models import BenchmarkConfig, EnvironmentConfig
from codecbench.core.result import Result
from codecbench.core.settings import Settings
from codecbench.infra.process import CommandResult, ProcessExecutor

logger: logging.Logger = logging.getLogger(__name__)

BENCHMARK_SNAPSHOT: str = "benchmark.yaml"
ENVIRONMENT_SNAPSHOT: str = "environment.yaml"
LOG_FILENAME: str = "benchmark.log"
CHILD_MODULE: str = "scripts.run_benchmark"


class EnvironmentRunner(ABC):
    """Prepares one execution context and runs the engine inside it.

    Args:
        environment_config: Environment to run in.
        settings: Process settings (binaries, project root).
        executor: Child-process primitive shared across runners so a
            batch can cancel every child at once.
        timeout: Deadline in seconds for each child process of
            ``run_benchmark``. ``None`` waits forever.
    """

    def __init__(
        self,
        environment_config: EnvironmentConfig,
        *,
        settings: Settings | None = None,
        executor: ProcessExecutor | None = None,
        timeout: float | None = None,
    ) -> None:
        self.environment_config: EnvironmentConfig = environment_config
        self.settings: Settings = settings or Settings.from_env()
        self.executor: ProcessExecutor = executor or ProcessExecutor()
        self.timeout: float | None = timeout
        self._prepared: bool = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"

    @property
    def name(self) -> str:
        return self.environment_config.name

    @property
    def prepared(self) -> bool:
        return self._prepared

    @abstractmethod
    def prepare(self) -> None:
        """Make the context usable. Safe to call repeatedly."""

    @abstractmethod
    def run_benchmark(
        self,
        benchmark_config: BenchmarkConfig,
        output_path: Path,
        *,
        benchmark_config_path: Path | str | None = None,
    ) -> Result:
        """Run the engine in the context and write the result file."""

    # -- shared helpers for child-process runners -----------------------------

    def write_snapshots(
        self,
        benchmark_config: BenchmarkConfig,
        output_dir: Path,
    ) -> tuple[Path, Path]:
        """Write config snapshots the child reads. Returns their paths."""
        output_dir.mkdir(parents=True, exist_ok=True)
        benchmark_path: Path = output_dir / BENCHMARK_SNAPSHOT
        environment_path: Path = output_dir / ENVIRONMENT_SNAPSHOT
        benchmark_config.to_file(benchmark_path)
        self.environment_config.to_file(environment_path)
        return benchmark_path, environment_path

    def child_arguments(
        self,
        benchmark_path: str,
        environment_path: str,
        output_path: str,
        benchmark_config_path: Path | str | None,
    ) -> list[str]:
        """Arguments for ``scripts.run_benchmark`` inside the child."""
        args: list[str] = [
            "--benchmark-config", benchmark_path,
            "--environment-config", environment_path,
            "--output", output_path,
        ]
        if benchmark_config_path:
            args.extend(["--benchmark-config-ref", str(benchmark_config_path)])
        source: Path | None = self.environment_config.source_path
        if source:
            args.extend(["--environment-config-ref", str(source)])
        return args

    def collect_result(self, command: CommandResult, output_path: Path) -> Result:
        """Turn a finished child into a loaded result or a run failure.

        Raises:
            EnvironmentRunFailure: Child timed out, was cancelled,
                exited non-zero, or wrote no (readable) result file.
        """
        if command.timed_out:
            raise EnvironmentRunFailure(
                self.name, f"benchmark timed out after {command.duration:.0f}s",
            )
        if command.cancelled:
            raise EnvironmentRunFailure(self.name, "benchmark cancelled")
        if command.returncode != 0:
            raise EnvironmentRunFailure(
                self.name,
                f"benchmark exited with code {command.returncode}: {command.tail(5)}",
            )
        if not output_path.is_file():
            raise EnvironmentRunFailure(
                self.name, f"benchmark produced no result file at {output_path}",
            )
        try:
            return Result.load(output_path)
        except (OSError, ValueError) as exc:
            raise EnvironmentRunFailure(
                self.name, f"unreadable result file {output_path}: {exc}",
            ) from exc
