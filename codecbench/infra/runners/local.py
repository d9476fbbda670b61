"""Local runner: the engine runs in the current interpreter."""

from __future__ import annotations

import logging
from pathlib import Path

from codecbench.core import execution
from codecbench.core.errors import EnvironmentRunFailure
from codecbench.core.models import BenchmarkConfig
from codecbench.core.result import Result, ResultCodec
from codecbench.infra.runners.base import EnvironmentRunner

logger: logging.Logger = logging.getLogger(__name__)


class LocalRunner(EnvironmentRunner):
    """Runs in-process. ``prepare`` has nothing to do.

    The ``timeout`` is not enforced: an in-process run cannot be
    killed without killing the caller.
    """

    def prepare(self) -> None:
        if not self._prepared:
            logger.info("[%s] Local environment, nothing to prepare", self.name)
        self._prepared = True

    def run_benchmark(
        self,
        benchmark_config: BenchmarkConfig,
        output_path: Path,
        *,
        benchmark_config_path: Path | str | None = None,
    ) -> Result:
        output_path = Path(output_path)
        try:
            result: Result = execution.run(
                benchmark_config,
                self.environment_config,
                settings=self.settings,
                benchmark_config_path=benchmark_config_path,
            )
            result.save(output_path, ResultCodec.for_path(output_path))
        except (OSError, ValueError, RuntimeError) as exc:
            raise EnvironmentRunFailure(
                self.name, f"local benchmark failed: {exc}",
            ) from exc
        return result
