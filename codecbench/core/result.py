"""Persisted result of one environment run.

A :class:`Result` is the only hand-off artifact between an environment
runner and the result-set aggregator. Its top-level keys are the
external contract::

    platform, metadata, environment_config, benchmark_config,
    benchmark_result

Codec selection:
    The on-disk codec is always chosen explicitly by the caller through
    :class:`ResultCodec`. YAML goes through ``yaml.safe_dump`` of a
    JSON-mode model dump and JSON through Pydantic's own serializer, so
    no process-wide default serializer is ever consulted. :meth:`load`
    infers the codec from the file suffix unless one is passed.

Validation:
    Top-level fields load as optional so that incomplete historical
    files can still be read. Completeness is enforced when a result is
    added to a :class:`~codecbench.core.resultset.ResultSet`, where the
    error names the missing field and the source file.

Example:
    >>> result.save(Path("out/results.yaml"), ResultCodec.YAML)
    >>> Result.load(Path("out/results.yaml")).platform_string
    'local-linux-x86_64-python-3.12.4'
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from codecbench.core.models import (
    BenchmarkConfig,
    BenchmarkResult,
    DataSize,
    EnvironmentConfig,
    Format,
    IterationCell,
    Operation,
    RunMetadata,
)
from codecbench.core.platform import PlatformFingerprint

logger: logging.Logger = logging.getLogger(__name__)

REQUIRED_FIELDS: tuple[str, ...] = ("platform", "environment_config", "benchmark_config")


class ResultCodec(str, Enum):
    """On-disk encoding of a result file."""

    YAML = "yaml"
    JSON = "json"

    @classmethod
    def for_path(cls, path: Path) -> "ResultCodec":
        """Codec implied by a file suffix (``.json`` or YAML otherwise)."""
        return cls.JSON if path.suffix.lower() == ".json" else cls.YAML


class Result(BaseModel):
    """Fingerprint, configs and measurement matrix of one run.

    Attributes:
        platform: Platform fingerprint, the aggregation key.
        metadata: Provenance and fingerprint tags.
        environment_config: Snapshot of the environment configuration.
        benchmark_config: Snapshot of the benchmark configuration.
        benchmark_result: Measurement matrix.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    platform: PlatformFingerprint | None = Field(default=None)
    metadata: RunMetadata = Field(default_factory=RunMetadata)
    environment_config: EnvironmentConfig | None = Field(default=None)
    benchmark_config: BenchmarkConfig | None = Field(default=None)
    benchmark_result: BenchmarkResult = Field(default_factory=BenchmarkResult)

    _source_path: Path | None = PrivateAttr(default=None)

    @property
    def source_path(self) -> Path | None:
        """File this result was loaded from or last saved to."""
        return self._source_path

    @property
    def platform_string(self) -> str | None:
        return self.platform.platform_string if self.platform else None

    def missing_fields(self) -> list[str]:
        """Names of required top-level fields that are absent."""
        return [name for name in REQUIRED_FIELDS if getattr(self, name) is None]

    # -- queries -------------------------------------------------------------

    def timing_cells(
        self,
        operation: Operation,
        format: Format,
        data_size: DataSize,
    ) -> list[IterationCell]:
        if operation is Operation.MEMORY:
            raise ValueError("memory cells carry no timing")
        return [
            c for c in self.benchmark_result.cells(operation)
            if c.format is format and c.data_size is data_size
        ]

    def fastest_adapter(
        self,
        operation: Operation,
        format: Format,
        data_size: DataSize,
    ) -> IterationCell | None:
        """Cell with the highest throughput, ``None`` if nothing ran."""
        cells: list[IterationCell] = self.timing_cells(operation, format, data_size)
        return max(cells, key=lambda c: c.iterations_per_second, default=None)

    def slowest_adapter(
        self,
        operation: Operation,
        format: Format,
        data_size: DataSize,
    ) -> IterationCell | None:
        """Cell with the lowest throughput, ``None`` if nothing ran."""
        cells: list[IterationCell] = self.timing_cells(operation, format, data_size)
        return min(cells, key=lambda c: c.iterations_per_second, default=None)

    # -- persistence ---------------------------------------------------------

    def to_document(self) -> dict[str, Any]:
        """JSON-compatible mapping with the external top-level keys."""
        return self.model_dump(mode="json", exclude_none=True)

    def dumps(self, codec: ResultCodec) -> str:
        if codec is ResultCodec.JSON:
            return self.model_dump_json(indent=2, exclude_none=True)
        return yaml.safe_dump(self.to_document(), sort_keys=False)

    def save(self, path: Path | str, codec: ResultCodec) -> Path:
        """Write this result to ``path`` using ``codec``.

        Returns:
            The path written.
        """
        target: Path = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.dumps(codec), encoding="utf-8")
        self._source_path = target
        logger.info("Saved result %s to %s", self.platform_string, target)
        return target

    @classmethod
    def loads(cls, text: str, codec: ResultCodec) -> "Result":
        if codec is ResultCodec.JSON:
            return cls.model_validate_json(text)
        data: Any = yaml.safe_load(text)
        if not isinstance(data, dict):
            raise ValueError("result document is not a mapping")
        return cls.model_validate(data)

    @classmethod
    def from_document(
        cls, data: dict[str, Any], source_path: Path | None = None,
    ) -> "Result":
        result: Result = cls.model_validate(data)
        result._source_path = source_path
        return result

    @classmethod
    def load(cls, path: Path | str, codec: ResultCodec | None = None) -> "Result":
        """Read a result file.

        Args:
            path: Result file.
            codec: Explicit codec. Inferred from the suffix when None.
        """
        source: Path = Path(path)
        result: Result = cls.loads(
            source.read_text(encoding="utf-8"),
            codec or ResultCodec.for_path(source),
        )
        result._source_path = source
        return result

