"""Batch orchestration across many environments.

Runs one :class:`~codecbench.infra.runners.EnvironmentRunner` per
environment configuration, waits for every one of them to reach a
terminal state, then folds the successful results into a single
:class:`~codecbench.core.resultset.ResultSet`.

Scheduling:
    Local environments run first, one after another, in the calling
    thread: they measure in-process and must not compete with each
    other (or with image builds) for the CPU. Container and asdf
    environments then run concurrently in a thread pool. Their threads
    only block on child processes, and each child measures in
    isolation.

Failure isolation:
    A failing ``prepare`` or ``run_benchmark`` marks only that
    environment as failed; siblings keep going. The batch as a whole
    fails with :class:`~codecbench.core.errors.BatchExhaustionError`
    only when zero environments succeeded.

Deadline and cancellation:
    ``deadline_seconds`` bounds every child process of a run; expiry
    kills the child and fails that environment. :meth:`cancel` (safe
    from any thread, e.g. a signal handler) terminates children that
    are still running and skips environments that have not started.
    Results already written stay on disk and are still aggregated.

Output layout::

    {output_dir}/{environment name}/results.yaml
    {output_dir}/{environment name}/benchmark.log
    {output_dir}/resultset.yaml
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

from pydantic import BaseModel, ConfigDict, Field

from codecbench.core.errors import (
    BatchExhaustionError,
    DuplicateResultError,
    EnvironmentPrepareFailure,
    EnvironmentRunFailure,
    ResultValidationError,
)
from codecbench.core.models import BenchmarkConfig, EnvironmentConfig, EnvironmentKind
from codecbench.core.platform import sanitize_segment
from codecbench.core.result import Result, ResultCodec
from codecbench.core.resultset import ResultSet
from codecbench.core.settings import Settings
from codecbench.infra.process import ProcessExecutor
from codecbench.infra.runners import EnvironmentRunner, create_runner

logger: logging.Logger = logging.getLogger(__name__)

RunnerFactory = Callable[[EnvironmentConfig], EnvironmentRunner]
"""Builds the runner for one environment configuration."""


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class OutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    PREPARE_FAILED = "prepare_failed"
    RUN_FAILED = "run_failed"
    CANCELLED = "cancelled"


class EnvironmentOutcome(BaseModel):
    """Terminal state of one environment in a batch.

    Attributes:
        environment: Environment name.
        kind: Environment kind.
        status: Terminal status.
        output_path: Result file path (set when a run was attempted).
        platform_string: Fingerprint of the produced result.
        error: Failure message, ``None`` on success.
        duration: Seconds spent on prepare and run.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    environment: str
    kind: EnvironmentKind
    status: OutcomeStatus
    output_path: str | None = None
    platform_string: str | None = None
    error: str | None = None
    duration: float = Field(default=0.0, ge=0.0)

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCEEDED


class BatchConfig(BaseModel):
    """Batch-level settings.

    Attributes:
        output_dir: Root directory; each environment gets a subdirectory.
        max_workers: Concurrent non-local environments.
        deadline_seconds: Per-child deadline, ``None`` for no deadline.
        result_codec: Codec of per-environment result files.
        resultset_name: Name of the aggregated result set.
        resultset_description: Description of the aggregated result set.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    output_dir: Path = Field(default=Path("results"))
    max_workers: int = Field(default=2, gt=0)
    deadline_seconds: float | None = Field(default=None, gt=0.0)
    result_codec: ResultCodec = Field(default=ResultCodec.YAML)
    resultset_name: str = Field(default="batch", min_length=1)
    resultset_description: str = Field(default="")

    @property
    def result_filename(self) -> str:
        return f"results.{self.result_codec.value}"

    def output_path_for(self, environment: EnvironmentConfig) -> Path:
        return self.output_dir / sanitize_segment(environment.name) / self.result_filename


class BatchReport:
    """Aggregated results plus the outcome of every environment."""

    def __init__(self, result_set: ResultSet, outcomes: Sequence[EnvironmentOutcome]) -> None:
        self.result_set: ResultSet = result_set
        self.outcomes: list[EnvironmentOutcome] = list(outcomes)

    @property
    def succeeded(self) -> list[EnvironmentOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> list[EnvironmentOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    def summary(self) -> str:
        """Human-readable per-environment summary."""
        lines: list[str] = [
            f"Batch {self.result_set.name!r}: "
            f"{len(self.succeeded)}/{len(self.outcomes)} environment(s) succeeded",
        ]
        for outcome in self.outcomes:
            detail: str = outcome.platform_string or ""
            if outcome.error:
                detail = outcome.error
            lines.append(
                f"  {outcome.status.value:<15} {outcome.environment:<24} {detail}"
            )
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class BatchOrchestrator:
    """Runs a benchmark across environments and aggregates the results.

    Args:
        config: Batch settings.
        runner_factory: Runner builder. Defaults to
            :func:`~codecbench.infra.runners.create_runner` sharing this
            orchestrator's executor and deadline.
        executor: Child-process primitive shared by default runners.
        settings: Process settings for default runners.
    """

    def __init__(
        self,
        config: BatchConfig,
        *,
        runner_factory: RunnerFactory | None = None,
        executor: ProcessExecutor | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._config: BatchConfig = config
        self._executor: ProcessExecutor = executor or ProcessExecutor()
        self._settings: Settings | None = settings
        self._runner_factory: RunnerFactory = runner_factory or self._default_runner
        self._cancelled: threading.Event = threading.Event()

    @property
    def config(self) -> BatchConfig:
        return self._config

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _default_runner(self, environment: EnvironmentConfig) -> EnvironmentRunner:
        return create_runner(
            environment,
            settings=self._settings,
            executor=self._executor,
            timeout=self._config.deadline_seconds,
        )

    def cancel(self) -> None:
        """Stop running children and skip environments not yet started."""
        if self._cancelled.is_set():
            return
        self._cancelled.set()
        terminated: int = self._executor.terminate_all()
        logger.warning("Batch cancelled, %d child process(es) terminated", terminated)

    def run(
        self,
        benchmark_config: BenchmarkConfig,
        environments: Sequence[EnvironmentConfig],
        *,
        benchmark_config_path: Path | str | None = None,
    ) -> BatchReport:
        """Run every environment and aggregate the successful results.

        Args:
            benchmark_config: Benchmark to run everywhere.
            environments: Environments, names must be unique.
            benchmark_config_path: Recorded in result metadata.

        Returns:
            :class:`BatchReport` with the result set and all outcomes.

        Raises:
            ValueError: No environments, duplicate names, or names
                that sanitize to the same output directory.
            BatchExhaustionError: Every environment failed.
        """
        if not environments:
            raise ValueError("no environments to run")
        names: list[str] = [e.name for e in environments]
        duplicates: set[str] = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"duplicate environment names: {', '.join(sorted(duplicates))}")
        sharing: dict[Path, list[str]] = {}
        for environment in environments:
            output_dir: Path = self._config.output_path_for(environment).parent
            sharing.setdefault(output_dir, []).append(environment.name)
        clashes: list[list[str]] = [n for n in sharing.values() if len(n) > 1]
        if clashes:
            raise ValueError(
                "environment names share an output directory: "
                + "; ".join(", ".join(names) for names in clashes)
            )

        logger.info(
            "Starting batch %r: %d environment(s), max_workers=%d",
            self._config.resultset_name, len(environments), self._config.max_workers,
        )
        finished: dict[str, tuple[EnvironmentOutcome, Result | None]] = {}

        for environment in environments:
            if environment.kind is EnvironmentKind.LOCAL:
                finished[environment.name] = self._run_environment(
                    environment, benchmark_config, benchmark_config_path,
                )

        remote: list[EnvironmentConfig] = [
            e for e in environments if e.kind is not EnvironmentKind.LOCAL
        ]
        if remote:
            with concurrent.futures.ThreadPoolExecutor(
                max_workers=self._config.max_workers,
                thread_name_prefix="codecbench-env",
            ) as pool:
                futures: dict[
                    concurrent.futures.Future[tuple[EnvironmentOutcome, Result | None]],
                    EnvironmentConfig,
                ] = {
                    pool.submit(
                        self._run_environment,
                        environment, benchmark_config, benchmark_config_path,
                    ): environment
                    for environment in remote
                }
                try:
                    for future in concurrent.futures.as_completed(futures):
                        environment = futures[future]
                        finished[environment.name] = future.result()
                except KeyboardInterrupt:
                    # Pool shutdown waits for workers, so children must die first.
                    self.cancel()
                    raise

        return self._aggregate(
            [finished[e.name] for e in environments],
        )

    def _run_environment(
        self,
        environment: EnvironmentConfig,
        benchmark_config: BenchmarkConfig,
        benchmark_config_path: Path | str | None,
    ) -> tuple[EnvironmentOutcome, Result | None]:
        """Prepare and run one environment. Never raises."""
        start: float = time.perf_counter()
        output_path: Path = self._config.output_path_for(environment)

        def outcome(
            status: OutcomeStatus,
            error: str | None = None,
            result: Result | None = None,
            attempted: bool = False,
        ) -> tuple[EnvironmentOutcome, Result | None]:
            return (
                EnvironmentOutcome(
                    environment=environment.name,
                    kind=environment.kind,
                    status=status,
                    output_path=str(output_path) if attempted else None,
                    platform_string=result.platform_string if result else None,
                    error=error,
                    duration=time.perf_counter() - start,
                ),
                result,
            )

        if self._cancelled.is_set():
            return outcome(OutcomeStatus.CANCELLED, "batch cancelled before start")

        try:
            runner: EnvironmentRunner = self._runner_factory(environment)
            runner.prepare()
        except EnvironmentPrepareFailure as exc:
            logger.error("Prepare failed for %s: %s", environment.name, exc)
            return outcome(OutcomeStatus.PREPARE_FAILED, str(exc))
        except Exception as exc:
            logger.exception("Unexpected prepare error for %s", environment.name)
            return outcome(
                OutcomeStatus.PREPARE_FAILED, f"{type(exc).__name__}: {exc}",
            )

        if self._cancelled.is_set():
            return outcome(OutcomeStatus.CANCELLED, "batch cancelled after prepare")

        try:
            result: Result = runner.run_benchmark(
                benchmark_config,
                output_path,
                benchmark_config_path=benchmark_config_path,
            )
        except EnvironmentRunFailure as exc:
            if self._cancelled.is_set():
                return outcome(OutcomeStatus.CANCELLED, str(exc), attempted=True)
            logger.error("Run failed for %s: %s", environment.name, exc)
            return outcome(OutcomeStatus.RUN_FAILED, str(exc), attempted=True)
        except Exception as exc:
            logger.exception("Unexpected run error for %s", environment.name)
            return outcome(
                OutcomeStatus.RUN_FAILED, f"{type(exc).__name__}: {exc}", attempted=True,
            )

        logger.info(
            "Environment %s succeeded as %s", environment.name, result.platform_string,
        )
        return outcome(OutcomeStatus.SUCCEEDED, result=result, attempted=True)

    def _aggregate(
        self,
        finished: list[tuple[EnvironmentOutcome, Result | None]],
    ) -> BatchReport:
        result_set: ResultSet = ResultSet(
            name=self._config.resultset_name,
            description=self._config.resultset_description,
        )
        outcomes: list[EnvironmentOutcome] = []
        for outcome, result in finished:
            if result is not None:
                try:
                    result_set.add_result(result)
                except (DuplicateResultError, ResultValidationError) as exc:
                    logger.error("Rejected result of %s: %s", outcome.environment, exc)
                    outcome = outcome.model_copy(
                        update={"status": OutcomeStatus.RUN_FAILED, "error": str(exc)},
                    )
            outcomes.append(outcome)

        report: BatchReport = BatchReport(result_set, outcomes)
        if not report.succeeded:
            raise BatchExhaustionError(outcomes)
        logger.info(report.summary())
        return report
