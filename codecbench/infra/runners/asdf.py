"""asdf runner: run the engine under a specific managed interpreter.

``prepare`` checks that asdf and its python plugin exist, installs the
requested version when it is missing and ``auto_install`` is on, then
installs the project into that interpreter. The optional codec
libraries are installed best-effort: a codec that fails to build just
shows up as an unavailable adapter in the result.

Every asdf command runs with ``ASDF_PYTHON_VERSION`` set, so the
project's own ``.tool-versions`` never decides the interpreter.
"""

from __future__ import annotations

import logging
from pathlib import Path

from codecbench.core.errors import EnvironmentPrepareFailure
from codecbench.core.models import BenchmarkConfig, VersionManagerSettings
from codecbench.core.result import Result
from codecbench.infra.process import EXIT_COMMAND_NOT_FOUND, CommandResult
from codecbench.infra.runners.base import CHILD_MODULE, LOG_FILENAME, EnvironmentRunner

logger: logging.Logger = logging.getLogger(__name__)

PLUGIN: str = "python"


def parse_installed_versions(output: str) -> list[str]:
    """Versions from ``asdf list python`` output.

    Example:
        >>> parse_installed_versions("  3.11.9\\n *3.12.4\\n")
        ['3.11.9', '3.12.4']
    """
    versions: list[str] = []
    for line in output.splitlines():
        version: str = line.strip().lstrip("*").strip()
        if version and not version.startswith("No versions"):
            versions.append(version)
    return versions


class AsdfRunner(EnvironmentRunner):
    """Runs the engine in a subprocess under an asdf-managed python."""

    @property
    def version(self) -> str:
        return self.environment_config.runtime_tag

    @property
    def version_manager(self) -> VersionManagerSettings:
        return self.environment_config.version_manager or VersionManagerSettings()

    @property
    def _env(self) -> dict[str, str]:
        return {"ASDF_PYTHON_VERSION": self.version}

    def _asdf(
        self,
        *args: str,
        cwd: Path | None = None,
        extra_env: dict[str, str] | None = None,
        timeout: float | None = None,
        log_path: Path | None = None,
    ) -> CommandResult:
        return self.executor.run(
            [self.settings.asdf_binary, *args],
            cwd=cwd,
            extra_env=extra_env,
            timeout=timeout,
            log_path=log_path,
        )

    def installed_versions(self) -> list[str]:
        listed: CommandResult = self._asdf("list", PLUGIN)
        if not listed.succeeded:
            return []
        return parse_installed_versions(listed.stdout)

    def prepare(self) -> None:
        """Ensure asdf, the plugin, the version and the project exist.

        Raises:
            EnvironmentPrepareFailure: asdf missing, version missing with
                ``auto_install`` off, or an install step failed.
        """
        if self._prepared:
            return

        available: CommandResult = self._asdf("--version")
        if available.returncode == EXIT_COMMAND_NOT_FOUND or not available.succeeded:
            raise EnvironmentPrepareFailure(
                self.name, f"asdf binary {self.settings.asdf_binary!r} is not available",
            )

        plugins: CommandResult = self._asdf("plugin", "list")
        if PLUGIN not in plugins.stdout.split():
            self._require_auto_install(f"asdf plugin {PLUGIN!r} is not installed")
            self._checked(self._asdf("plugin", "add", PLUGIN), "plugin add")

        if self.version in self.installed_versions():
            logger.info("[%s] python %s already installed", self.name, self.version)
        else:
            self._require_auto_install(
                f"python {self.version} is not installed and auto_install is disabled"
            )
            logger.info("[%s] Installing python %s", self.name, self.version)
            self._checked(self._asdf("install", PLUGIN, self.version), "install")

        root: Path = self.settings.project_root
        self._checked(
            self._asdf(
                "exec", "python", "-m", "pip", "install", "--quiet", str(root),
                extra_env=self._env, cwd=root,
            ),
            "project install",
        )
        codecs: CommandResult = self._asdf(
            "exec", "python", "-m", "pip", "install", "--quiet", f"{root}[codecs]",
            extra_env=self._env, cwd=root,
        )
        if not codecs.succeeded:
            logger.warning(
                "[%s] Some codec libraries failed to install on python %s: %s",
                self.name, self.version, codecs.tail(3),
            )
        self._prepared = True

    def _require_auto_install(self, message: str) -> None:
        if not self.version_manager.auto_install:
            raise EnvironmentPrepareFailure(self.name, message)

    def _checked(self, result: CommandResult, step: str) -> None:
        if not result.succeeded:
            raise EnvironmentPrepareFailure(
                self.name,
                f"asdf {step} failed with code {result.returncode}: {result.tail(5)}",
            )

    def run_benchmark(
        self,
        benchmark_config: BenchmarkConfig,
        output_path: Path,
        *,
        benchmark_config_path: Path | str | None = None,
    ) -> Result:
        output_path = Path(output_path).resolve()
        benchmark_path, environment_path = self.write_snapshots(
            benchmark_config, output_path.parent,
        )
        logger.info("[%s] Running benchmark on python %s", self.name, self.version)
        result: CommandResult = self._asdf(
            "exec", "python", "-m", CHILD_MODULE,
            *self.child_arguments(
                str(benchmark_path),
                str(environment_path),
                str(output_path),
                benchmark_config_path,
            ),
            cwd=self.settings.project_root,
            extra_env=self._env,
            timeout=self.timeout,
            log_path=output_path.parent / LOG_FILENAME,
        )
        return self.collect_result(result, output_path)
