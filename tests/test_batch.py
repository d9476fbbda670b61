"""Unit tests for batch orchestration.

Runners are replaced with in-memory fakes through ``runner_factory``;
no child process is started.
"""

import threading
from pathlib import Path
from typing import Callable

import pytest

from codecbench.core.errors import (
    BatchExhaustionError,
    EnvironmentPrepareFailure,
    EnvironmentRunFailure,
)
from codecbench.core.models import (
    BenchmarkConfig,
    DataSize,
    EnvironmentConfig,
    EnvironmentKind,
    Format,
)
from codecbench.core.result import Result, ResultCodec
from codecbench.core.settings import Settings
from codecbench.infra.batch import (
    BatchConfig,
    BatchOrchestrator,
    BatchReport,
    EnvironmentOutcome,
    OutcomeStatus,
)
from codecbench.infra.runners.base import EnvironmentRunner
from conftest import ResultFactory

Behaviour = Callable[[EnvironmentConfig], None]


class FakeRunner(EnvironmentRunner):
    """Runner returning a canned result, or failing on request."""

    def __init__(
        self,
        environment_config: EnvironmentConfig,
        result: Result | None,
        fail_prepare: bool = False,
        fail_run: bool = False,
        on_run: Behaviour | None = None,
    ) -> None:
        super().__init__(environment_config, settings=Settings())
        self.result: Result | None = result
        self.fail_prepare: bool = fail_prepare
        self.fail_run: bool = fail_run
        self.on_run: Behaviour | None = on_run

    def prepare(self) -> None:
        if self.fail_prepare:
            raise EnvironmentPrepareFailure(self.name, "image build failed")
        self._prepared = True

    def run_benchmark(
        self,
        benchmark_config: BenchmarkConfig,
        output_path: Path,
        *,
        benchmark_config_path: Path | str | None = None,
    ) -> Result:
        if self.on_run is not None:
            self.on_run(self.environment_config)
        if self.fail_run or self.result is None:
            raise EnvironmentRunFailure(self.name, "benchmark exited with code 1")
        self.result.save(output_path, ResultCodec.for_path(output_path))
        return self.result


def docker_env(name: str) -> EnvironmentConfig:
    return EnvironmentConfig(
        name=name,
        kind=EnvironmentKind.DOCKER,
        runtime_tag="3.12",
        docker={"image": f"python:3.12-{name}"},
    )


@pytest.fixture()
def benchmark_config() -> BenchmarkConfig:
    return BenchmarkConfig(
        formats=[Format.JSON],
        data_sizes=[DataSize.SMALL],
        iterations={DataSize.SMALL: 3},
    )


@pytest.fixture()
def batch_config(tmp_path: Path) -> BatchConfig:
    return BatchConfig(output_dir=tmp_path / "results", max_workers=2)


@pytest.fixture()
def environments() -> list[EnvironmentConfig]:
    return [
        EnvironmentConfig(name="local", kind=EnvironmentKind.LOCAL),
        docker_env("slim"),
        docker_env("alpine"),
    ]


@pytest.fixture()
def results(result_factory: ResultFactory) -> dict[str, Result]:
    return {
        "local": result_factory(),
        "slim": result_factory(kind=EnvironmentKind.DOCKER, variant="slim"),
        "alpine": result_factory(kind=EnvironmentKind.DOCKER, variant="alpine"),
    }


def statuses(
    source: BatchReport | list[EnvironmentOutcome],
) -> dict[str, OutcomeStatus]:
    outcomes: list[EnvironmentOutcome] = (
        source.outcomes if isinstance(source, BatchReport) else source
    )
    return {o.environment: o.status for o in outcomes}


class TestBatchConfig:
    """Tests for output layout."""

    def test_output_path(self, tmp_path: Path) -> None:
        config: BatchConfig = BatchConfig(
            output_dir=tmp_path, result_codec=ResultCodec.JSON,
        )
        assert config.output_path_for(docker_env("slim")) == tmp_path / "slim" / "results.json"

    def test_rejects_zero_workers(self) -> None:
        with pytest.raises(ValueError):
            BatchConfig(max_workers=0)


class TestBatchOrchestrator:
    """Tests for failure isolation, aggregation and cancellation."""

    def test_all_succeed(
        self,
        batch_config: BatchConfig,
        benchmark_config: BenchmarkConfig,
        environments: list[EnvironmentConfig],
        results: dict[str, Result],
    ) -> None:
        """Every environment contributes a result file and a set member."""
        orchestrator: BatchOrchestrator = BatchOrchestrator(
            batch_config,
            runner_factory=lambda env: FakeRunner(env, results[env.name]),
        )
        report: BatchReport = orchestrator.run(benchmark_config, environments)

        assert len(report.result_set) == 3
        assert report.failed == []
        assert [o.environment for o in report.outcomes] == ["local", "slim", "alpine"]
        for outcome in report.outcomes:
            assert outcome.output_path is not None
            assert Path(outcome.output_path).is_file()
        assert report.outcomes[1].platform_string == "docker-slim-linux-x86_64-python-3.12.4"
        assert report.summary().startswith("Batch 'batch': 3/3 environment(s) succeeded")

    def test_prepare_failure_isolated(
        self,
        batch_config: BatchConfig,
        benchmark_config: BenchmarkConfig,
        environments: list[EnvironmentConfig],
        results: dict[str, Result],
    ) -> None:
        """One failed prepare leaves the other two results aggregated."""
        orchestrator: BatchOrchestrator = BatchOrchestrator(
            batch_config,
            runner_factory=lambda env: FakeRunner(
                env, results[env.name], fail_prepare=env.name == "alpine",
            ),
        )
        report: BatchReport = orchestrator.run(benchmark_config, environments)

        assert len(report.result_set) == 2
        assert statuses(report) == {
            "local": OutcomeStatus.SUCCEEDED,
            "slim": OutcomeStatus.SUCCEEDED,
            "alpine": OutcomeStatus.PREPARE_FAILED,
        }
        (failure,) = report.failed
        assert "image build failed" in (failure.error or "")
        assert failure.output_path is None

    def test_run_failure_isolated(
        self,
        batch_config: BatchConfig,
        benchmark_config: BenchmarkConfig,
        environments: list[EnvironmentConfig],
        results: dict[str, Result],
    ) -> None:
        orchestrator: BatchOrchestrator = BatchOrchestrator(
            batch_config,
            runner_factory=lambda env: FakeRunner(
                env, results[env.name], fail_run=env.name == "slim",
            ),
        )
        report: BatchReport = orchestrator.run(benchmark_config, environments)
        assert statuses(report)["slim"] is OutcomeStatus.RUN_FAILED
        assert report.failed[0].output_path is not None
        assert len(report.result_set) == 2

    def test_unexpected_error_isolated(
        self,
        batch_config: BatchConfig,
        benchmark_config: BenchmarkConfig,
        environments: list[EnvironmentConfig],
        results: dict[str, Result],
    ) -> None:
        """A runner factory blowing up fails only that environment."""

        def factory(env: EnvironmentConfig) -> EnvironmentRunner:
            if env.name == "slim":
                raise KeyError("no runner")
            return FakeRunner(env, results[env.name])

        report: BatchReport = BatchOrchestrator(
            batch_config, runner_factory=factory,
        ).run(benchmark_config, environments)
        assert statuses(report)["slim"] is OutcomeStatus.PREPARE_FAILED
        assert "KeyError" in (report.failed[0].error or "")

    def test_all_failed(
        self,
        batch_config: BatchConfig,
        benchmark_config: BenchmarkConfig,
        environments: list[EnvironmentConfig],
    ) -> None:
        """Zero successes raises with every outcome attached."""
        orchestrator: BatchOrchestrator = BatchOrchestrator(
            batch_config,
            runner_factory=lambda env: FakeRunner(env, None, fail_prepare=True),
        )
        with pytest.raises(BatchExhaustionError) as excinfo:
            orchestrator.run(benchmark_config, environments)
        assert len(excinfo.value.outcomes) == 3
        assert set(statuses(excinfo.value.outcomes).values()) == {
            OutcomeStatus.PREPARE_FAILED,
        }

    def test_duplicate_platform_rejected(
        self,
        batch_config: BatchConfig,
        benchmark_config: BenchmarkConfig,
        result_factory: ResultFactory,
    ) -> None:
        """Two environments fingerprinting identically keep the first."""
        same: Result = result_factory(kind=EnvironmentKind.DOCKER, variant="slim")
        orchestrator: BatchOrchestrator = BatchOrchestrator(
            batch_config,
            runner_factory=lambda env: FakeRunner(env, same),
        )
        report: BatchReport = orchestrator.run(
            benchmark_config, [docker_env("slim"), docker_env("slim2")],
        )
        assert len(report.result_set) == 1
        assert statuses(report) == {
            "slim": OutcomeStatus.SUCCEEDED,
            "slim2": OutcomeStatus.RUN_FAILED,
        }
        assert "already exists" in (report.failed[0].error or "")

    def test_rejects_bad_input(
        self, batch_config: BatchConfig, benchmark_config: BenchmarkConfig,
    ) -> None:
        orchestrator: BatchOrchestrator = BatchOrchestrator(batch_config)
        with pytest.raises(ValueError, match="no environments"):
            orchestrator.run(benchmark_config, [])
        with pytest.raises(ValueError, match="duplicate environment names: slim"):
            orchestrator.run(benchmark_config, [docker_env("slim"), docker_env("slim")])

    def test_rejects_names_sharing_output_dir(
        self,
        batch_config: BatchConfig,
        benchmark_config: BenchmarkConfig,
        results: dict[str, Result],
    ) -> None:
        """Names that sanitize alike would overwrite each other's files."""
        started: list[str] = []

        def factory(env: EnvironmentConfig) -> EnvironmentRunner:
            started.append(env.name)
            return FakeRunner(env, results["slim"])

        orchestrator: BatchOrchestrator = BatchOrchestrator(
            batch_config, runner_factory=factory,
        )
        first: EnvironmentConfig = docker_env("docker-slim")
        second: EnvironmentConfig = docker_env("Docker_Slim")
        assert (
            batch_config.output_path_for(first) == batch_config.output_path_for(second)
        )
        with pytest.raises(
            ValueError, match="share an output directory: docker-slim, Docker_Slim",
        ):
            orchestrator.run(benchmark_config, [first, second])
        assert started == []

    def test_local_runs_before_pool(
        self,
        batch_config: BatchConfig,
        benchmark_config: BenchmarkConfig,
        environments: list[EnvironmentConfig],
        results: dict[str, Result],
    ) -> None:
        """Local environments run first, in the calling thread."""
        seen: list[tuple[str, str]] = []
        lock: threading.Lock = threading.Lock()

        def record(env: EnvironmentConfig) -> None:
            with lock:
                seen.append((env.name, threading.current_thread().name))

        orchestrator: BatchOrchestrator = BatchOrchestrator(
            batch_config,
            runner_factory=lambda env: FakeRunner(env, results[env.name], on_run=record),
        )
        orchestrator.run(benchmark_config, list(reversed(environments)))

        assert seen[0] == ("local", threading.current_thread().name)
        assert all(name.startswith("codecbench-env") for _, name in seen[1:])

    def test_cancel_before_run(
        self,
        batch_config: BatchConfig,
        benchmark_config: BenchmarkConfig,
        environments: list[EnvironmentConfig],
        results: dict[str, Result],
    ) -> None:
        """A cancelled orchestrator starts nothing."""
        orchestrator: BatchOrchestrator = BatchOrchestrator(
            batch_config,
            runner_factory=lambda env: FakeRunner(env, results[env.name]),
        )
        orchestrator.cancel()
        orchestrator.cancel()
        assert orchestrator.cancelled
        with pytest.raises(BatchExhaustionError) as excinfo:
            orchestrator.run(benchmark_config, environments)
        assert set(statuses(excinfo.value.outcomes).values()) == {OutcomeStatus.CANCELLED}

    def test_cancel_mid_batch(
        self,
        batch_config: BatchConfig,
        benchmark_config: BenchmarkConfig,
        environments: list[EnvironmentConfig],
        results: dict[str, Result],
    ) -> None:
        """Cancelling during the local run skips the remaining environments."""

        def cancel_after_local(env: EnvironmentConfig) -> None:
            if env.kind is EnvironmentKind.LOCAL:
                orchestrator.cancel()

        orchestrator: BatchOrchestrator = BatchOrchestrator(
            BatchConfig(output_dir=batch_config.output_dir, max_workers=1),
            runner_factory=lambda env: FakeRunner(
                env, results[env.name], on_run=cancel_after_local,
            ),
        )
        report: BatchReport = orchestrator.run(benchmark_config, environments)

        assert statuses(report) == {
            "local": OutcomeStatus.SUCCEEDED,
            "slim": OutcomeStatus.CANCELLED,
            "alpine": OutcomeStatus.CANCELLED,
        }
        assert len(report.result_set) == 1
