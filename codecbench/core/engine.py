"""Measurement engine: times every usable adapter under a configuration.

For each ``(operation, format, data_size)`` triple the engine selects
the deterministic fixture, then for each available adapter supporting
the operation runs ``warmup`` untimed calls followed by the configured
number of timed calls. The result is a flat matrix of append-only
cells plus a list of structured omissions.

Architecture note:
    The engine is single-threaded on purpose. Timing two adapters at
    once on the same machine contaminates both numbers through cache
    pressure and scheduler noise, so adapters are measured strictly one
    after another. Parallelism only exists across environments (see
    :mod:`codecbench.infra.batch`).

Omission semantics:
    A cell that is not produced is never zero-filled. Instead an
    :class:`~codecbench.core.models.Omission` names the reason:

    - ``unsupported``: adapter lacks the capability (read-only codec
      asked to generate). Skipped, never faked.
    - ``incompatible``: a static compatibility rule excluded it before
      import.
    - ``failed``: the adapter raised; the run continues.
    - ``unmeasurable``: the pass took zero measurable time.
    - ``no_iterations``: the configuration asked for zero iterations.

Memory:
    The memory operation runs its own ``tracemalloc`` pass of
    ``memory_iterations`` parse calls. It never shares iterations with
    a timed pass, since tracing overhead would corrupt the timings.

Example:
    >>> engine = MeasurementEngine()
    >>> result = engine.run(BenchmarkConfig(
    ...     formats=["json"], data_sizes=["small"],
    ...     iterations={"small": 5}, warmup=2, operations=["parse"],
    ... ))
    >>> result.parsing[0].iterations_count
    5
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from codecbench.core.adapters import Adapter
from codecbench.core.errors import MeasurementFailure
from codecbench.core.fixtures import Fixture, FixtureProvider
from codecbench.core.measurement import (
    AllocationStats,
    Clock,
    TimingStats,
    measure_allocations,
    time_iterations,
)
from codecbench.core.models import (
    BenchmarkConfig,
    BenchmarkResult,
    DataSize,
    Format,
    IterationCell,
    MemoryCell,
    Omission,
    OmissionReason,
    Operation,
)
from codecbench.core.registry import AdapterRegistry

logger: logging.Logger = logging.getLogger(__name__)

# Timing operations run before the memory pass regardless of config order.
OPERATION_ORDER: tuple[Operation, ...] = (
    Operation.PARSE,
    Operation.GENERATE,
    Operation.STREAM,
    Operation.MEMORY,
)


def supports(adapter: Adapter, operation: Operation) -> bool:
    """Whether ``adapter`` implements what ``operation`` needs."""
    if operation is Operation.GENERATE:
        return adapter.supports_generate
    if operation is Operation.STREAM:
        return adapter.supports_streaming
    return adapter.supports_parse


class _Matrix:
    """Append-only accumulator for one engine run."""

    def __init__(self) -> None:
        self.timing: dict[Operation, list[IterationCell]] = {
            Operation.PARSE: [],
            Operation.GENERATE: [],
            Operation.STREAM: [],
        }
        self.memory: list[MemoryCell] = []
        self.omissions: list[Omission] = []

    def omit(
        self,
        operation: Operation,
        format: Format,
        data_size: DataSize,
        adapter: Adapter,
        reason: OmissionReason,
        detail: str = "",
    ) -> None:
        self.omissions.append(
            Omission(
                operation=operation,
                format=format,
                data_size=data_size,
                adapter=adapter.name,
                reason=reason,
                detail=detail,
            )
        )


class MeasurementEngine:
    """Produces the measurement matrix for a benchmark configuration.

    Args:
        registry: Adapter registry. Defaults to every known adapter.
        fixtures: Fixture provider. Defaults to generated fixtures.
        clock: Nanosecond clock used for timed passes.
    """

    def __init__(
        self,
        registry: AdapterRegistry | None = None,
        fixtures: FixtureProvider | None = None,
        *,
        clock: Clock = time.perf_counter_ns,
    ) -> None:
        self._registry: AdapterRegistry = registry or AdapterRegistry()
        self._fixtures: FixtureProvider = fixtures or FixtureProvider()
        self._clock: Clock = clock

    @property
    def registry(self) -> AdapterRegistry:
        return self._registry

    def run(self, config: BenchmarkConfig) -> BenchmarkResult:
        """Measure every requested triple and return the full matrix."""
        matrix: _Matrix = _Matrix()
        requested: set[Operation] = set(config.operations)

        logger.info(
            "Benchmark %r: formats=%s sizes=%s operations=%s",
            config.name,
            ",".join(f.value for f in config.formats),
            ",".join(s.value for s in config.data_sizes),
            ",".join(o.value for o in OPERATION_ORDER if o in requested),
        )

        for operation in OPERATION_ORDER:
            if operation not in requested:
                continue
            for format in config.formats:
                for data_size in config.data_sizes:
                    self._measure_triple(config, operation, format, data_size, matrix)

        return BenchmarkResult(
            serializers=self._registry.information(config.formats),
            parsing=matrix.timing[Operation.PARSE],
            generation=matrix.timing[Operation.GENERATE],
            streaming=matrix.timing[Operation.STREAM],
            memory=matrix.memory,
            omissions=matrix.omissions,
        )

    # -- per triple ----------------------------------------------------------

    def _measure_triple(
        self,
        config: BenchmarkConfig,
        operation: Operation,
        format: Format,
        data_size: DataSize,
        matrix: _Matrix,
    ) -> None:
        for adapter, rule in self._registry.incompatible_adapters(format):
            logger.info(
                "Skipping %s/%s for %s: %s",
                format.value, adapter.name, operation.value, rule.reason,
            )
            matrix.omit(
                operation, format, data_size, adapter,
                OmissionReason.INCOMPATIBLE, rule.reason,
            )

        adapters: list[Adapter] = self._registry.available_adapters(format)
        if not adapters:
            logger.info("No available %s adapters, skipping", format.value)
            return

        fixture: Fixture = self._fixtures.get(format, data_size)

        for adapter in adapters:
            if not supports(adapter, operation):
                logger.debug(
                    "%s/%s does not support %s",
                    format.value, adapter.name, operation.value,
                )
                matrix.omit(
                    operation, format, data_size, adapter,
                    OmissionReason.UNSUPPORTED,
                )
                continue

            if operation is Operation.MEMORY:
                self._measure_memory(config, adapter, fixture, matrix)
            else:
                self._measure_timing(config, operation, adapter, fixture, matrix)

    def _measure_timing(
        self,
        config: BenchmarkConfig,
        operation: Operation,
        adapter: Adapter,
        fixture: Fixture,
        matrix: _Matrix,
    ) -> None:
        format: Format = fixture.format
        data_size: DataSize = fixture.data_size
        iterations: int = config.iterations_for(data_size)
        if iterations == 0:
            matrix.omit(
                operation, format, data_size, adapter,
                OmissionReason.NO_ITERATIONS,
            )
            return

        try:
            call: Callable[[], Any] = operation_callable(adapter, operation, fixture)
            stats: TimingStats = time_iterations(
                call,
                iterations=iterations,
                warmup=config.warmup,
                clock=self._clock,
                gc_disabled=config.gc_disabled,
            )
        except Exception as exc:
            failure: MeasurementFailure = MeasurementFailure(
                adapter.name, operation.value, exc,
            )
            logger.warning("%s (%s/%s)", failure, format.value, data_size.value)
            matrix.omit(
                operation, format, data_size, adapter,
                OmissionReason.FAILED, str(failure),
            )
            return

        if not stats.measurable:
            logger.warning(
                "%s %s/%s %s: elapsed time rounded to zero, omitting",
                operation.value, format.value, data_size.value, adapter.name,
            )
            matrix.omit(
                operation, format, data_size, adapter,
                OmissionReason.UNMEASURABLE,
            )
            return

        cell: IterationCell = IterationCell(
            adapter=adapter.name,
            format=format,
            data_size=data_size,
            time_per_iteration=stats.time_per_iteration,
            iterations_per_second=stats.iterations_per_second,
            iterations_count=stats.iterations_count,
            total_time=stats.total_time,
            p50_time=stats.p50_time,
            p99_time=stats.p99_time,
            stddev_time=stats.stddev_time,
            gc_collections=stats.gc_collections,
        )
        matrix.timing[operation].append(cell)
        logger.info(
            "%s %s/%s %s: %.2f it/s (%d iterations)",
            operation.value, format.value, data_size.value, adapter.name,
            cell.iterations_per_second, cell.iterations_count,
        )

    def _measure_memory(
        self,
        config: BenchmarkConfig,
        adapter: Adapter,
        fixture: Fixture,
        matrix: _Matrix,
    ) -> None:
        format: Format = fixture.format
        data_size: DataSize = fixture.data_size
        payload: bytes | str = fixture.payload_for(adapter.consumes_text)
        try:
            stats: AllocationStats = measure_allocations(
                lambda: adapter.parse(payload),
                calls=config.memory_iterations,
            )
        except Exception as exc:
            failure: MeasurementFailure = MeasurementFailure(
                adapter.name, Operation.MEMORY.value, exc,
            )
            logger.warning("%s (%s/%s)", failure, format.value, data_size.value)
            matrix.omit(
                Operation.MEMORY, format, data_size, adapter,
                OmissionReason.FAILED, str(failure),
            )
            return

        matrix.memory.append(
            MemoryCell(
                adapter=adapter.name,
                format=format,
                data_size=data_size,
                total_allocated=stats.total_allocated,
                total_retained=stats.total_retained,
                allocated_bytes=stats.allocated_bytes,
                retained_bytes=stats.retained_bytes,
                parse_calls=stats.calls,
            )
        )
        logger.info(
            "memory %s/%s %s: %d bytes allocated, %d retained",
            format.value, data_size.value, adapter.name,
            stats.allocated_bytes, stats.retained_bytes,
        )


def operation_callable(
    adapter: Adapter,
    operation: Operation,
    fixture: Fixture,
) -> Callable[[], Any]:
    """Zero-argument callable performing ``operation`` once.

    For generation the document is prepared here, outside any timed
    region: the adapter's own parse output when it can parse, the
    fixture's canonical document otherwise.

    Raises:
        ValueError: If a generate-only adapter meets a fixture without
            a canonical document.
    """
    payload: bytes | str = fixture.payload_for(adapter.consumes_text)
    if operation is Operation.PARSE:
        return lambda: adapter.parse(payload)
    if operation is Operation.STREAM:
        return lambda: adapter.stream(payload)
    if operation is Operation.GENERATE:
        document: Any = (
            adapter.parse(payload) if adapter.supports_parse else fixture.document
        )
        if document is None:
            raise ValueError(f"{fixture!r} has no canonical document to generate")
        return lambda: adapter.generate(document)
    raise ValueError(f"{operation.value} is not a timed operation")
