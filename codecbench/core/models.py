"""Configuration and measurement models for the benchmark pipeline.

Every model here is Pydantic-based. Measurement records are frozen
(``frozen=True, extra="forbid"``) because a cell is produced exactly
once per run and never mutated afterwards; configuration models are
frozen too so that a snapshot embedded in a result cannot drift from
what the engine actually ran.

Config files:
    :class:`BenchmarkConfig` and :class:`EnvironmentConfig` are loaded
    from YAML with :meth:`from_file` (``yaml.safe_load`` then model
    validation) and written back with :meth:`to_file`.

Aliases:
    Historical config files spell some values differently. Enum
    lookups accept ``streaming`` for :attr:`Operation.STREAM`,
    ``container`` for :attr:`EnvironmentKind.DOCKER` and
    ``version-manager`` for :attr:`EnvironmentKind.ASDF`. Environment
    files may use an ``asdf`` section instead of ``version_manager``.

Example:
    >>> config = BenchmarkConfig(
    ...     formats=["json"],
    ...     data_sizes=["small"],
    ...     iterations={"small": 5},
    ...     warmup=2,
    ...     operations=["parse"],
    ... )
    >>> config.iterations_for(DataSize.SMALL)
    5
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    field_validator,
    model_validator,
)


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Format(str, Enum):
    """Serialization formats covered by the benchmark."""

    JSON = "json"
    XML = "xml"
    YAML = "yaml"
    TOML = "toml"


class DataSize(str, Enum):
    """Fixture payload sizes.

    Attributes:
        SMALL: A single configuration-style document.
        MEDIUM: Around a thousand user records.
        LARGE: Around ten thousand dataset records.
    """

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class Operation(str, Enum):
    """Benchmark operations.

    ``MEMORY`` is measured in its own allocation-tracking pass and never
    shares iterations with the timing operations.
    """

    PARSE = "parse"
    GENERATE = "generate"
    STREAM = "stream"
    MEMORY = "memory"

    @classmethod
    def _missing_(cls, value: object) -> "Operation | None":
        aliases: dict[str, Operation] = {
            "parsing": cls.PARSE,
            "generation": cls.GENERATE,
            "streaming": cls.STREAM,
        }
        if isinstance(value, str):
            return aliases.get(value.lower())
        return None


class EnvironmentKind(str, Enum):
    """Execution context a benchmark run happens in."""

    LOCAL = "local"
    DOCKER = "docker"
    ASDF = "asdf"

    @classmethod
    def _missing_(cls, value: object) -> "EnvironmentKind | None":
        aliases: dict[str, EnvironmentKind] = {
            "container": cls.DOCKER,
            "version-manager": cls.ASDF,
            "version_manager": cls.ASDF,
        }
        if isinstance(value, str):
            return aliases.get(value.lower())
        return None


class OmissionReason(str, Enum):
    """Why a measurement cell was intentionally not produced.

    Attributes:
        UNSUPPORTED: The adapter does not implement the operation
            (e.g. a read-only codec asked to generate).
        INCOMPATIBLE: A static compatibility rule excluded the adapter
            on this runtime and architecture before it was loaded.
        FAILED: The adapter raised during its pass.
        UNMEASURABLE: Total elapsed time rounded to zero.
        NO_ITERATIONS: The configuration asked for zero iterations.
    """

    UNSUPPORTED = "unsupported"
    INCOMPATIBLE = "incompatible"
    FAILED = "failed"
    UNMEASURABLE = "unmeasurable"
    NO_ITERATIONS = "no_iterations"


DEFAULT_ITERATIONS: dict[DataSize, int] = {
    DataSize.SMALL: 20,
    DataSize.MEDIUM: 5,
    DataSize.LARGE: 2,
}


def _read_yaml_mapping(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data: Any = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a YAML mapping")
    return data


def _write_yaml_mapping(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False)


# ---------------------------------------------------------------------------
# Benchmark Configuration
# ---------------------------------------------------------------------------


class BenchmarkConfig(BaseModel):
    """What to measure and how many times.

    Attributes:
        name: Configuration name, copied into results.
        description: Free-form description.
        formats: Formats to exercise.
        data_sizes: Fixture sizes to exercise.
        iterations: Timed iterations per data size. Every declared
            size must have an entry and every count must be ``>= 0``.
            A zero count is legal and produces no timing cells.
        warmup: Untimed iterations run before each timed pass.
        operations: Operations to exercise.
        memory_iterations: Parse calls made inside the single
            allocation-tracking pass of the memory operation.
        gc_disabled: If True, automatic GC is disabled during timed
            passes. Default False (realistic mode, GC enabled).

    Example:
        >>> config = BenchmarkConfig()
        >>> config.iterations_for(DataSize.LARGE)
        2
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(default="default", min_length=1, description="Config name")
    description: str = Field(default="", description="Free-form description")
    formats: list[Format] = Field(
        default_factory=lambda: list(Format),
        min_length=1,
        description="Formats to benchmark",
    )
    data_sizes: list[DataSize] = Field(
        default_factory=lambda: list(DataSize),
        min_length=1,
        description="Fixture sizes to benchmark",
    )
    iterations: dict[DataSize, int] = Field(
        default_factory=lambda: dict(DEFAULT_ITERATIONS),
        description="Timed iterations per data size (>= 0)",
    )
    warmup: int = Field(default=1, ge=0, description="Warmup iterations (>= 0)")
    operations: list[Operation] = Field(
        default_factory=lambda: [Operation.PARSE, Operation.GENERATE],
        min_length=1,
        description="Operations to benchmark",
    )
    memory_iterations: int = Field(
        default=10,
        gt=0,
        description="Parse calls inside the allocation-tracking pass",
    )
    gc_disabled: bool = Field(
        default=False,
        description="Disable automatic GC during timed passes",
    )

    @field_validator("iterations")
    @classmethod
    def _validate_iteration_counts(
        cls, value: dict[DataSize, int],
    ) -> dict[DataSize, int]:
        for size, count in value.items():
            if count < 0:
                raise ValueError(
                    f"iterations for {size.value} must be >= 0, got {count}"
                )
        return value

    @model_validator(mode="after")
    def _validate_sizes_have_iterations(self) -> "BenchmarkConfig":
        missing: list[str] = [
            s.value for s in self.data_sizes if s not in self.iterations
        ]
        if missing:
            raise ValueError(
                f"iterations missing for declared data sizes: {', '.join(missing)}"
            )
        return self

    def iterations_for(self, size: DataSize) -> int:
        """Timed iteration count for ``size``."""
        return self.iterations[size]

    @classmethod
    def from_file(cls, path: Path | str) -> "BenchmarkConfig":
        """Load and validate a benchmark configuration YAML file."""
        return cls.model_validate(_read_yaml_mapping(Path(path)))

    def to_file(self, path: Path | str) -> None:
        """Write this configuration as YAML."""
        _write_yaml_mapping(Path(path), self.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Environment Configuration
# ---------------------------------------------------------------------------


class DockerSettings(BaseModel):
    """Container section of an environment configuration.

    Attributes:
        image: Base image passed to the build as ``BASE_IMAGE``
            (e.g. ``python:3.12-slim``).
        dockerfile: Dockerfile path, relative to the environment
            configuration file when not absolute.
        force_rebuild: Rebuild even when the tagged image exists.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    image: str = Field(min_length=1, description="Base image")
    dockerfile: str = Field(default="Dockerfile", description="Dockerfile path")
    force_rebuild: bool = Field(default=False, description="Always rebuild")


class VersionManagerSettings(BaseModel):
    """asdf section of an environment configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    auto_install: bool = Field(
        default=True,
        description="Install the runtime version when it is missing",
    )


class EnvironmentConfig(BaseModel):
    """Where a benchmark runs.

    Attributes:
        name: Unique environment name. Also the name of the output
            subdirectory in a batch.
        kind: Execution context kind.
        runtime_tag: Interpreter version for asdf (``3.12.3``) or the
            image tag fragment for Docker (``3.12``). Ignored for local
            runs, which always use the running interpreter.
        description: Free-form description.
        created_at: When the configuration was written.
        docker: Container settings, required for ``kind: docker``.
        version_manager: asdf settings (``asdf`` accepted as alias).

    Example:
        >>> env = EnvironmentConfig(
        ...     name="slim-312",
        ...     kind="container",
        ...     runtime_tag="3.12",
        ...     docker={"image": "python:3.12-slim"},
        ... )
        >>> env.kind
        <EnvironmentKind.DOCKER: 'docker'>
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    name: str = Field(min_length=1, description="Environment name")
    kind: EnvironmentKind = Field(description="local, docker or asdf")
    runtime_tag: str = Field(default="", description="Runtime version tag")
    description: str = Field(default="", description="Free-form description")
    created_at: datetime | None = Field(default=None, description="Creation time")
    docker: DockerSettings | None = Field(default=None, description="Docker")
    version_manager: VersionManagerSettings | None = Field(
        default=None,
        validation_alias=AliasChoices("version_manager", "asdf"),
        description="asdf settings",
    )

    _source_path: Path | None = PrivateAttr(default=None)

    @model_validator(mode="after")
    def _validate_kind_sections(self) -> "EnvironmentConfig":
        if self.kind is EnvironmentKind.DOCKER and self.docker is None:
            raise ValueError(
                f"environment {self.name!r} has kind docker but no docker section"
            )
        if self.kind is not EnvironmentKind.LOCAL and not self.runtime_tag:
            raise ValueError(
                f"environment {self.name!r} of kind {self.kind.value} "
                "requires runtime_tag"
            )
        return self

    @property
    def source_path(self) -> Path | None:
        """File this configuration was loaded from, if any."""
        return self._source_path

    def resolve_dockerfile(self) -> Path:
        """Dockerfile path resolved against the configuration file location.

        Raises:
            ValueError: If this is not a docker environment.
        """
        if self.docker is None:
            raise ValueError(f"environment {self.name!r} has no docker section")
        dockerfile: Path = Path(self.docker.dockerfile)
        if dockerfile.is_absolute() or self._source_path is None:
            return dockerfile
        return self._source_path.parent / dockerfile

    @classmethod
    def from_file(cls, path: Path | str) -> "EnvironmentConfig":
        """Load and validate an environment configuration YAML file."""
        source: Path = Path(path)
        config: EnvironmentConfig = cls.model_validate(_read_yaml_mapping(source))
        config._source_path = source
        return config

    def to_file(self, path: Path | str) -> None:
        """Write this configuration as YAML."""
        _write_yaml_mapping(
            Path(path), self.model_dump(mode="json", exclude_none=True),
        )


# ---------------------------------------------------------------------------
# Measurement Records
# ---------------------------------------------------------------------------


class AdapterInfo(BaseModel):
    """Identity and capabilities of one available adapter."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    format: Format
    name: str
    version: str | None = None
    supports_parse: bool = False
    supports_generate: bool = False
    supports_streaming: bool = False


class IterationCell(BaseModel):
    """Timing measurement for one ``(operation, format, size, adapter)``.

    All times are floating-point seconds.

    Attributes:
        adapter: Adapter name.
        format: Serialization format.
        data_size: Fixture size.
        time_per_iteration: Mean seconds per timed iteration.
        iterations_per_second: ``iterations_count / total_time``.
        iterations_count: Number of timed iterations.
        total_time: Sum of the timed iterations in seconds.
        p50_time: Median iteration time in seconds.
        p99_time: 99th percentile iteration time in seconds.
        stddev_time: Sample standard deviation of iteration times.
        gc_collections: Gen-0 collections observed during the pass.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    adapter: str = Field(description="Adapter name")
    format: Format = Field(description="Serialization format")
    data_size: DataSize = Field(description="Fixture size")
    time_per_iteration: float = Field(gt=0.0, description="Mean seconds/iteration")
    iterations_per_second: float = Field(gt=0.0, description="Throughput")
    iterations_count: int = Field(gt=0, description="Timed iterations")
    total_time: float = Field(gt=0.0, description="Total timed seconds")
    p50_time: float = Field(default=0.0, ge=0.0, description="P50 seconds")
    p99_time: float = Field(default=0.0, ge=0.0, description="P99 seconds")
    stddev_time: float = Field(default=0.0, ge=0.0, description="Stddev seconds")
    gc_collections: int = Field(default=0, ge=0, description="Gen-0 collections")


class MemoryCell(BaseModel):
    """Allocation measurement for one ``(format, size, adapter)``.

    Attributes:
        total_allocated: Number of memory blocks allocated during the
            profiled parse calls.
        total_retained: Blocks still alive after the parsed documents
            were released and a full collection ran.
        allocated_bytes: Bytes allocated during the profiled calls.
        retained_bytes: Bytes still held after release and collection.
        parse_calls: Parse calls made inside the tracking scope.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    adapter: str
    format: Format
    data_size: DataSize
    total_allocated: int = Field(ge=0)
    total_retained: int = Field(ge=0)
    allocated_bytes: int = Field(ge=0)
    retained_bytes: int = Field(ge=0)
    parse_calls: int = Field(default=1, gt=0)


class Omission(BaseModel):
    """Structured record of a cell that was intentionally not produced."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    operation: Operation
    format: Format
    data_size: DataSize
    adapter: str
    reason: OmissionReason
    detail: str = ""


class BenchmarkResult(BaseModel):
    """Full measurement matrix of one run.

    Attributes:
        serializers: Adapters that were available during the run.
        parsing: Parse timing cells.
        generation: Generate timing cells.
        streaming: Stream timing cells.
        memory: Allocation cells.
        omissions: Cells intentionally left out, with the reason.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    serializers: list[AdapterInfo] = Field(default_factory=list)
    parsing: list[IterationCell] = Field(default_factory=list)
    generation: list[IterationCell] = Field(default_factory=list)
    streaming: list[IterationCell] = Field(default_factory=list)
    memory: list[MemoryCell] = Field(default_factory=list)
    omissions: list[Omission] = Field(default_factory=list)

    def cells(self, operation: Operation) -> list[IterationCell] | list[MemoryCell]:
        """Cells produced for ``operation``."""
        if operation is Operation.PARSE:
            return self.parsing
        if operation is Operation.GENERATE:
            return self.generation
        if operation is Operation.STREAM:
            return self.streaming
        return self.memory


class RunMetadata(BaseModel):
    """Provenance of a result.

    Tags are copied from the platform fingerprint, never chosen freely,
    so grouping by tag is reproducible.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    created_at: datetime = Field(default_factory=utc_now)
    benchmark_config_path: str | None = None
    environment_config_path: str | None = None
    tags: list[str] = Field(default_factory=list)
