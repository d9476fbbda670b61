"""Error taxonomy for the benchmark pipeline.

Errors fall into three scopes:

- **Adapter scope** (:class:`AdapterUnavailable`, :class:`MeasurementFailure`):
  recovered inside the registry or engine, logged, and recorded as an
  omission. They never escape a measurement run.
- **Environment scope** (:class:`EnvironmentPrepareFailure`,
  :class:`EnvironmentRunFailure`): fatal for one environment only. The
  batch orchestrator records them per environment and keeps going.
- **Caller scope** (:class:`ResultValidationError`,
  :class:`DuplicateResultError`, :class:`BatchExhaustionError`):
  propagated to the caller with enough context to act on.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from codecbench.infra.batch import EnvironmentOutcome


class CodecBenchError(Exception):
    """Base class for every error raised by codecbench."""


# ---------------------------------------------------------------------------
# Adapter scope
# ---------------------------------------------------------------------------


class AdapterUnavailable(CodecBenchError):
    """Backing library of an adapter could not be loaded."""

    def __init__(self, adapter: str, reason: str) -> None:
        self.adapter: str = adapter
        self.reason: str = reason
        super().__init__(f"Adapter {adapter!r} unavailable: {reason}")


class MeasurementFailure(CodecBenchError):
    """One adapter raised while being timed or profiled.

    Attributes:
        adapter: Adapter name.
        operation: Operation being measured.
        cause: Original exception.
    """

    def __init__(self, adapter: str, operation: str, cause: BaseException) -> None:
        self.adapter: str = adapter
        self.operation: str = operation
        self.cause: BaseException = cause
        super().__init__(
            f"{operation} measurement failed for {adapter!r}: "
            f"{type(cause).__name__}: {cause}"
        )


# ---------------------------------------------------------------------------
# Environment scope
# ---------------------------------------------------------------------------


class EnvironmentFailure(CodecBenchError, RuntimeError):
    """Common base for environment-scoped failures.

    Attributes:
        environment: Name of the environment configuration that failed.
    """

    def __init__(self, environment: str, message: str) -> None:
        self.environment: str = environment
        super().__init__(f"[{environment}] {message}")


class EnvironmentPrepareFailure(EnvironmentFailure):
    """Image build, runtime install or dependency install did not complete."""


class EnvironmentRunFailure(EnvironmentFailure):
    """Child process crashed, timed out, or produced no result file."""


# ---------------------------------------------------------------------------
# Caller scope
# ---------------------------------------------------------------------------


class ResultValidationError(CodecBenchError, ValueError):
    """A result is missing a required top-level field.

    The message always names both the missing field and the file the
    result was loaded from, e.g.::

        Result from results/docker-slim/results.yaml is missing platform
    """

    def __init__(self, field: str, source_path: Path | str | None = None) -> None:
        self.field: str = field
        self.source_path: str = str(source_path) if source_path else "<memory>"
        super().__init__(f"Result from {self.source_path} is missing {field}")


class DuplicateResultError(CodecBenchError, ValueError):
    """A result for the same platform string is already part of the set."""

    def __init__(self, platform_string: str) -> None:
        self.platform_string: str = platform_string
        super().__init__(
            f"Result for platform {platform_string!r} already exists "
            "(pass replace=True to overwrite)"
        )


class BatchExhaustionError(CodecBenchError):
    """Every environment of a batch failed, nothing left to aggregate.

    Attributes:
        outcomes: Terminal outcome of each requested environment.
    """

    def __init__(self, outcomes: Sequence[EnvironmentOutcome]) -> None:
        self.outcomes: list[EnvironmentOutcome] = list(outcomes)
        details: str = "; ".join(
            f"{o.environment}: {o.status.value} ({o.error})" for o in self.outcomes
        )
        super().__init__(
            f"All {len(self.outcomes)} environment(s) failed: {details}"
        )
