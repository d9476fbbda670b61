"""In-process entry point: configuration in, :class:`Result` out.

:func:`run` is what the local runner calls directly and what the
container and asdf children call through ``scripts.run_benchmark``.
The fingerprint is always computed in the process that measured, so a
container run reports the container's OS, architecture and interpreter.
"""

from __future__ import annotations

import logging
from pathlib import Path

from codecbench.core.engine import MeasurementEngine
from codecbench.core.fixtures import FixtureProvider
from codecbench.core.models import (
    BenchmarkConfig,
    BenchmarkResult,
    EnvironmentConfig,
    EnvironmentKind,
    RunMetadata,
    utc_now,
)
from codecbench.core.platform import PlatformFingerprint, detect_fingerprint, docker_variant
from codecbench.core.registry import AdapterRegistry
from codecbench.core.result import Result
from codecbench.core.settings import Settings

logger: logging.Logger = logging.getLogger(__name__)


def fingerprint_for(
    environment_config: EnvironmentConfig,
    settings: Settings,
) -> PlatformFingerprint:
    """Fingerprint the current process as a member of ``environment_config``."""
    variant: str | None = None
    if environment_config.kind is EnvironmentKind.DOCKER and environment_config.docker:
        variant = docker_variant(environment_config.docker.image)
    return detect_fingerprint(
        environment_config.kind,
        runner_label=settings.runner_label,
        variant=variant,
    )


def run(
    benchmark_config: BenchmarkConfig,
    environment_config: EnvironmentConfig,
    *,
    registry: AdapterRegistry | None = None,
    fixtures: FixtureProvider | None = None,
    settings: Settings | None = None,
    benchmark_config_path: Path | str | None = None,
    environment_config_path: Path | str | None = None,
    in_child: bool = False,
) -> Result:
    """Run the measurement engine here and assemble a :class:`Result`.

    A docker or asdf environment is only measured inside its own child
    process. Called from the host for such an environment this raises,
    since the fingerprint and timings would describe the host instead.
    Use :func:`codecbench.infra.create_runner` to go through the
    environment's runner.

    Args:
        benchmark_config: What to measure.
        environment_config: Environment this process represents.
        registry: Adapter registry. Defaults to every known adapter,
            with compatibility rules evaluated for this interpreter.
        fixtures: Fixture provider. Defaults to generated fixtures,
            honouring ``settings.fixture_dir``.
        settings: Process settings. Defaults to the environment.
        benchmark_config_path: Recorded in the result metadata.
        environment_config_path: Recorded in the result metadata.
        in_child: True when this process is the docker or asdf child.

    Returns:
        The complete result. Nothing is written to disk.

    Raises:
        ValueError: A non-local environment run outside its child.
    """
    if environment_config.kind is not EnvironmentKind.LOCAL and not in_child:
        raise ValueError(
            f"environment {environment_config.name!r} is {environment_config.kind.value}; "
            "run it through create_runner() instead of in this process"
        )
    settings = settings or Settings.from_env()
    environment_config_path = environment_config_path or environment_config.source_path
    fingerprint: PlatformFingerprint = fingerprint_for(environment_config, settings)
    logger.info(
        "Running %r in environment %r as %s",
        benchmark_config.name,
        environment_config.name,
        fingerprint.platform_string,
    )

    engine: MeasurementEngine = MeasurementEngine(
        registry=registry or AdapterRegistry(arch=fingerprint.arch),
        fixtures=fixtures or FixtureProvider(settings.fixture_dir),
    )
    benchmark_result: BenchmarkResult = engine.run(benchmark_config)

    return Result(
        platform=fingerprint,
        metadata=RunMetadata(
            created_at=utc_now(),
            benchmark_config_path=(
                str(benchmark_config_path) if benchmark_config_path else None
            ),
            environment_config_path=(
                str(environment_config_path) if environment_config_path else None
            ),
            tags=fingerprint.tags,
        ),
        environment_config=environment_config,
        benchmark_config=benchmark_config,
        benchmark_result=benchmark_result,
    )
