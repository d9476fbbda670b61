"""Core domain layer for codecbench.

This package provides the adapter abstraction and registry, the
measurement engine, platform fingerprints, the persisted result record
and the result-set aggregator. All configuration and measurement
records are Pydantic-based with frozen configuration for immutability.
"""

from codecbench.core.engine import MeasurementEngine
from codecbench.core.execution import run
from codecbench.core.models import (
    BenchmarkConfig,
    BenchmarkResult,
    DataSize,
    EnvironmentConfig,
    EnvironmentKind,
    Format,
    IterationCell,
    MemoryCell,
    Omission,
    OmissionReason,
    Operation,
)
from codecbench.core.platform import PlatformFingerprint
from codecbench.core.registry import AdapterRegistry
from codecbench.core.result import Result, ResultCodec
from codecbench.core.resultset import MeasurementKey, MergedMeasurements, ResultSet, merge

__all__: list[str] = [
    "AdapterRegistry",
    "BenchmarkConfig",
    "BenchmarkResult",
    "DataSize",
    "EnvironmentConfig",
    "EnvironmentKind",
    "Format",
    "IterationCell",
    "MeasurementEngine",
    "MeasurementKey",
    "MemoryCell",
    "MergedMeasurements",
    "Omission",
    "OmissionReason",
    "Operation",
    "PlatformFingerprint",
    "Result",
    "ResultCodec",
    "ResultSet",
    "merge",
    "run",
]
