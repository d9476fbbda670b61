"""Docker runner: build or reuse an image, run the engine as entrypoint.

Image naming:
    ``codecbench:{runtime_tag}[-{variant}]``, e.g. ``codecbench:3.12-slim``
    for ``python:3.12-slim``. The base image reaches the Dockerfile as
    the ``BASE_IMAGE`` build argument.

Output hand-off:
    The directory containing ``output_path`` is mounted at ``/results``.
    Config snapshots are written there before the container starts and
    the container writes its result file next to them. Everything the
    ``docker`` CLI prints goes to ``benchmark.log`` in the same place.

Containers are named, so a container whose ``docker run`` client
timed out can be killed explicitly rather than left running.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

from codecbench.core.errors import EnvironmentPrepareFailure
from codecbench.core.models import BenchmarkConfig, DockerSettings
from codecbench.core.platform import docker_variant, sanitize_segment
from codecbench.core.result import Result
from codecbench.infra.process import EXIT_COMMAND_NOT_FOUND, CommandResult
from codecbench.infra.runners.base import LOG_FILENAME, EnvironmentRunner

logger: logging.Logger = logging.getLogger(__name__)

CONTAINER_RESULTS_DIR: str = "/results"
IMAGE_REPOSITORY: str = "codecbench"


class DockerRunner(EnvironmentRunner):
    """Runs the engine inside a container built from the project."""

    @property
    def docker(self) -> DockerSettings:
        settings: DockerSettings | None = self.environment_config.docker
        if settings is None:
            raise EnvironmentPrepareFailure(self.name, "no docker section configured")
        return settings

    @property
    def image_tag(self) -> str:
        tag: str = sanitize_segment(self.environment_config.runtime_tag)
        variant: str | None = docker_variant(self.docker.image)
        if variant:
            tag = f"{tag}-{variant}"
        return f"{IMAGE_REPOSITORY}:{tag}"

    def _docker(
        self,
        *args: str,
        timeout: float | None = None,
        log_path: Path | None = None,
    ) -> CommandResult:
        return self.executor.run(
            [self.settings.docker_binary, *args], timeout=timeout, log_path=log_path,
        )

    def image_exists(self) -> bool:
        return self._docker("image", "inspect", self.image_tag).succeeded

    def prepare(self) -> None:
        """Build the image unless it already exists.

        Raises:
            EnvironmentPrepareFailure: Docker is missing or the build
                failed.
        """
        if self._prepared:
            return

        if not self.docker.force_rebuild and self.image_exists():
            logger.info("[%s] Reusing image %s", self.name, self.image_tag)
            self._prepared = True
            return

        dockerfile: Path = self.environment_config.resolve_dockerfile()
        logger.info(
            "[%s] Building %s from %s (base %s)",
            self.name, self.image_tag, dockerfile, self.docker.image,
        )
        build: CommandResult = self._docker(
            "build",
            "--build-arg", f"BASE_IMAGE={self.docker.image}",
            "-t", self.image_tag,
            "-f", str(dockerfile),
            str(self.settings.project_root),
        )
        if build.returncode == EXIT_COMMAND_NOT_FOUND:
            raise EnvironmentPrepareFailure(
                self.name, f"docker binary {self.settings.docker_binary!r} not found",
            )
        if not build.succeeded:
            raise EnvironmentPrepareFailure(
                self.name,
                f"docker build failed with code {build.returncode}: {build.tail(5)}",
            )
        self._prepared = True
        logger.info("[%s] Built %s in %.0fs", self.name, self.image_tag, build.duration)

    def run_benchmark(
        self,
        benchmark_config: BenchmarkConfig,
        output_path: Path,
        *,
        benchmark_config_path: Path | str | None = None,
    ) -> Result:
        output_path = Path(output_path).resolve()
        output_dir: Path = output_path.parent
        benchmark_path, environment_path = self.write_snapshots(
            benchmark_config, output_dir,
        )
        container_name: str = (
            f"codecbench-{sanitize_segment(self.name)}-{uuid.uuid4().hex[:8]}"
        )

        command: list[str] = [
            "run", "--rm",
            "--name", container_name,
            "-v", f"{output_dir}:{CONTAINER_RESULTS_DIR}",
        ]
        if self.settings.runner_label:
            command.extend(["-e", f"CODECBENCH_RUNNER_LABEL={self.settings.runner_label}"])
        command.append(self.image_tag)
        command.extend(
            self.child_arguments(
                f"{CONTAINER_RESULTS_DIR}/{benchmark_path.name}",
                f"{CONTAINER_RESULTS_DIR}/{environment_path.name}",
                f"{CONTAINER_RESULTS_DIR}/{output_path.name}",
                benchmark_config_path,
            )
        )

        logger.info("[%s] Running benchmark in %s", self.name, self.image_tag)
        result: CommandResult = self._docker(
            *command,
            timeout=self.timeout,
            log_path=output_dir / LOG_FILENAME,
        )
        if result.timed_out:
            self._docker("kill", container_name)
        return self.collect_result(result, output_path)
