"""Shared fixtures: synthetic results with hand-picked cells."""

from typing import Callable

import pytest

from codecbench.core.models import (
    BenchmarkConfig,
    BenchmarkResult,
    DataSize,
    EnvironmentConfig,
    EnvironmentKind,
    Format,
    IterationCell,
    MemoryCell,
    RunMetadata,
)
from codecbench.core.platform import PlatformFingerprint
from codecbench.core.result import Result

ResultFactory = Callable[..., Result]


def make_cell(
    adapter: str,
    iterations_per_second: float,
    format: Format = Format.JSON,
    data_size: DataSize = DataSize.SMALL,
    iterations: int = 10,
) -> IterationCell:
    """Timing cell whose derived fields are consistent with its throughput."""
    total: float = iterations / iterations_per_second
    return IterationCell(
        adapter=adapter,
        format=format,
        data_size=data_size,
        time_per_iteration=total / iterations,
        iterations_per_second=iterations_per_second,
        iterations_count=iterations,
        total_time=total,
        p50_time=total / iterations,
        p99_time=total / iterations,
    )


def make_memory_cell(
    adapter: str,
    allocated_bytes: int,
    format: Format = Format.JSON,
    data_size: DataSize = DataSize.SMALL,
) -> MemoryCell:
    return MemoryCell(
        adapter=adapter,
        format=format,
        data_size=data_size,
        total_allocated=allocated_bytes // 64,
        total_retained=0,
        allocated_bytes=allocated_bytes,
        retained_bytes=0,
        parse_calls=10,
    )


@pytest.fixture()
def result_factory() -> ResultFactory:
    """Build a complete :class:`Result` for a given platform."""

    def factory(
        kind: EnvironmentKind = EnvironmentKind.LOCAL,
        os: str = "linux",
        arch: str = "x86_64",
        runtime_version: str = "3.12.4",
        variant: str | None = None,
        parsing: list[IterationCell] | None = None,
        memory: list[MemoryCell] | None = None,
    ) -> Result:
        fingerprint: PlatformFingerprint = PlatformFingerprint.build(
            kind=kind,
            os=os,
            arch=arch,
            runtime_version=runtime_version,
            variant=variant,
        )
        environment: EnvironmentConfig = (
            EnvironmentConfig(name="local", kind=EnvironmentKind.LOCAL)
            if kind is EnvironmentKind.LOCAL
            else EnvironmentConfig(
                name=f"{kind.value}-{runtime_version}",
                kind=kind,
                runtime_tag=runtime_version,
                docker=(
                    {"image": f"python:{runtime_version}"}
                    if kind is EnvironmentKind.DOCKER
                    else None
                ),
            )
        )
        return Result(
            platform=fingerprint,
            metadata=RunMetadata(tags=fingerprint.tags),
            environment_config=environment,
            benchmark_config=BenchmarkConfig(
                formats=[Format.JSON],
                data_sizes=[DataSize.SMALL],
                iterations={DataSize.SMALL: 10},
            ),
            benchmark_result=BenchmarkResult(
                parsing=parsing if parsing is not None else [make_cell("json", 1000.0)],
                memory=memory or [],
            ),
        )

    return factory
