"""Timing and allocation primitives used by the measurement engine.

Design principles:
    - Pure Python, no numpy or external benchmark dependencies
    - Pydantic models for every statistic handed back to the engine
    - Monotonic ``time.perf_counter_ns()`` for timing, never wall clock
    - GC enabled by default for realistic measurement
    - Allocation tracking (``tracemalloc``) never overlaps a timed pass

Percentile method:
    Linear interpolation between adjacent sorted ranks. Matches
    ``numpy.percentile(method='linear')``.
    Algorithm: ``k = (n-1) * p; f = floor(k); c = ceil(k);
    result = sorted[f] + (sorted[c] - sorted[f]) * (k - f)``

Zero-time passes:
    On coarse clocks a very fast adapter can report ``0`` ns for a
    whole pass. :attr:`TimingStats.measurable` is False in that case
    and the engine omits the cell instead of dividing by zero.

Example:
    >>> stats = time_iterations(lambda: sum(range(100)), iterations=5)
    >>> stats.iterations_count
    5
"""

from __future__ import annotations

import gc
import math
import statistics
import time
import tracemalloc
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

Clock = Callable[[], int]
"""Monotonic nanosecond clock, ``time.perf_counter_ns`` by default."""

NS_PER_SECOND: float = 1e9


# ---------------------------------------------------------------------------
# Result Models
# ---------------------------------------------------------------------------


class TimingStats(BaseModel):
    """Statistics of one timed pass, in seconds.

    Attributes:
        iterations_count: Timed iterations (warmup excluded).
        total_time: Sum of iteration durations.
        time_per_iteration: Mean iteration duration.
        p50_time: Median iteration duration.
        p99_time: 99th percentile iteration duration.
        stddev_time: Sample standard deviation (0 for one iteration).
        gc_collections: Gen-0 collections during the pass.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    iterations_count: int = Field(gt=0)
    total_time: float = Field(ge=0.0)
    time_per_iteration: float = Field(ge=0.0)
    p50_time: float = Field(ge=0.0)
    p99_time: float = Field(ge=0.0)
    stddev_time: float = Field(ge=0.0)
    gc_collections: int = Field(default=0, ge=0)

    @property
    def measurable(self) -> bool:
        """True when the pass took a non-zero amount of time."""
        return self.total_time > 0.0

    @property
    def iterations_per_second(self) -> float:
        """Throughput. ``0.0`` when the pass is not measurable."""
        if not self.measurable:
            return 0.0
        return self.iterations_count / self.total_time


class AllocationStats(BaseModel):
    """Allocation footprint of one tracked pass.

    Attributes:
        total_allocated: Memory blocks allocated by the tracked calls
            and still alive when they returned.
        allocated_bytes: Peak traced bytes above the starting point.
        total_retained: Blocks still alive after the call results were
            dropped and a full collection ran.
        retained_bytes: Bytes still alive at that point.
        calls: Number of tracked calls.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    total_allocated: int = Field(ge=0)
    allocated_bytes: int = Field(ge=0)
    total_retained: int = Field(ge=0)
    retained_bytes: int = Field(ge=0)
    calls: int = Field(gt=0)


# ---------------------------------------------------------------------------
# Percentile Calculation (Linear Interpolation)
# ---------------------------------------------------------------------------


def calculate_percentile(sorted_values: list[float], percentile: float) -> float:
    """Calculate percentile using linear interpolation.

    Args:
        sorted_values: Pre-sorted list of values (ascending).
            Must not be empty.
        percentile: Percentile to compute, in range [0.0, 1.0].

    Returns:
        Interpolated percentile value.

    Raises:
        ValueError: If sorted_values is empty or percentile is
            out of [0.0, 1.0] range.

    Example:
        >>> calculate_percentile([1.0, 2.0, 3.0, 4.0, 5.0], 0.5)
        3.0
        >>> calculate_percentile([1.0, 2.0, 3.0, 4.0, 5.0], 0.99)
        4.96
    """
    if not sorted_values:
        raise ValueError("sorted_values must not be empty")
    if not 0.0 <= percentile <= 1.0:
        raise ValueError(f"percentile must be in [0.0, 1.0], got {percentile}")

    n: int = len(sorted_values)
    if n == 1:
        return sorted_values[0]

    k: float = (n - 1) * percentile
    f: int = math.floor(k)
    c: int = math.ceil(k)

    if f == c:
        return sorted_values[f]

    return sorted_values[f] + (sorted_values[c] - sorted_values[f]) * (k - f)


def calculate_timing_stats(
    durations_ns: list[int],
    gc_collections: int = 0,
) -> TimingStats:
    """Compute timing statistics from nanosecond durations.

    Args:
        durations_ns: Per-iteration durations in nanoseconds.
            Must contain at least one value.
        gc_collections: Gen-0 collection delta for the pass.

    Returns:
        :class:`TimingStats` with all values in seconds.

    Raises:
        ValueError: If durations_ns is empty.

    Example:
        >>> stats = calculate_timing_stats([1000, 2000, 3000])
        >>> stats.p50_time
        2e-06
    """
    if not durations_ns:
        raise ValueError("durations_ns must not be empty")

    sorted_floats: list[float] = sorted(float(d) for d in durations_ns)
    total_ns: float = math.fsum(sorted_floats)
    stddev_ns: float = (
        statistics.stdev(sorted_floats) if len(sorted_floats) > 1 else 0.0
    )

    return TimingStats(
        iterations_count=len(sorted_floats),
        total_time=total_ns / NS_PER_SECOND,
        time_per_iteration=total_ns / len(sorted_floats) / NS_PER_SECOND,
        p50_time=calculate_percentile(sorted_floats, 0.50) / NS_PER_SECOND,
        p99_time=calculate_percentile(sorted_floats, 0.99) / NS_PER_SECOND,
        stddev_time=stddev_ns / NS_PER_SECOND,
        gc_collections=max(gc_collections, 0),
    )


# ---------------------------------------------------------------------------
# GC Measurement
# ---------------------------------------------------------------------------


class GCBaseline:
    """Captured GC state before a timed pass.

    Attributes:
        gen0_collections: Generation-0 collection count at capture.
        gc_was_enabled: Whether GC was enabled at capture time.
    """

    __slots__ = ("gen0_collections", "gc_was_enabled")

    def __init__(self, gen0_collections: int, gc_was_enabled: bool) -> None:
        self.gen0_collections: int = gen0_collections
        self.gc_was_enabled: bool = gc_was_enabled


def capture_gc_baseline(gc_disabled: bool = False) -> GCBaseline:
    """Capture GC baseline state before measurement.

    Always calls ``gc.collect()`` first to clear garbage left by
    fixture construction or the previous adapter.

    Args:
        gc_disabled: If True, disable automatic GC until
            :func:`measure_gc_delta` restores it.

    Returns:
        :class:`GCBaseline` with captured state.
    """
    gc.collect()
    gc_was_enabled: bool = gc.isenabled()

    if gc_disabled:
        gc.disable()

    return GCBaseline(
        gen0_collections=gc.get_stats()[0]["collections"],
        gc_was_enabled=gc_was_enabled,
    )


def measure_gc_delta(baseline: GCBaseline) -> int:
    """Count generation-0 collections since baseline and restore GC state."""
    gen0_now: int = gc.get_stats()[0]["collections"]

    if baseline.gc_was_enabled:
        gc.enable()
    else:
        gc.disable()

    return gen0_now - baseline.gen0_collections


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------


def time_iterations(
    fn: Callable[[], Any],
    iterations: int,
    warmup: int = 0,
    *,
    clock: Clock = time.perf_counter_ns,
    gc_disabled: bool = False,
) -> TimingStats:
    """Run ``fn`` for ``warmup`` untimed then ``iterations`` timed calls.

    Each timed call is measured individually so percentiles are
    available; the sum of those durations is the pass total.

    Args:
        fn: Zero-argument callable under test.
        iterations: Timed calls. Must be > 0.
        warmup: Untimed calls made first.
        clock: Nanosecond clock.
        gc_disabled: Disable automatic GC during the timed calls.

    Returns:
        :class:`TimingStats` for the timed calls.

    Raises:
        ValueError: If iterations <= 0 or warmup < 0.
        Exception: Whatever ``fn`` raises, unchanged.
    """
    if iterations <= 0:
        raise ValueError(f"iterations must be > 0, got {iterations}")
    if warmup < 0:
        raise ValueError(f"warmup must be >= 0, got {warmup}")

    for _ in range(warmup):
        fn()

    durations_ns: list[int] = []
    baseline: GCBaseline = capture_gc_baseline(gc_disabled=gc_disabled)
    try:
        for _ in range(iterations):
            t0: int = clock()
            fn()
            durations_ns.append(clock() - t0)
    finally:
        gc_delta: int = measure_gc_delta(baseline)

    return calculate_timing_stats(durations_ns, gc_collections=gc_delta)


# ---------------------------------------------------------------------------
# Allocation Tracking
# ---------------------------------------------------------------------------

_SNAPSHOT_FILTERS: tuple[tracemalloc.Filter, ...] = (
    tracemalloc.Filter(False, tracemalloc.__file__),
    tracemalloc.Filter(False, "<frozen importlib._bootstrap>"),
    tracemalloc.Filter(False, "<unknown>"),
)


def _positive_diff(
    after: tracemalloc.Snapshot,
    before: tracemalloc.Snapshot,
) -> tuple[int, int]:
    stats: list[tracemalloc.StatisticDiff] = after.compare_to(before, "lineno")
    blocks: int = sum(s.count_diff for s in stats if s.count_diff > 0)
    size: int = sum(s.size_diff for s in stats if s.size_diff > 0)
    return blocks, size


def measure_allocations(fn: Callable[[], Any], calls: int = 1) -> AllocationStats:
    """Track allocations of ``calls`` invocations of ``fn``.

    Results of every call are kept alive until all calls are done, then
    dropped before the retained snapshot, so "allocated" describes what
    the calls produced and "retained" what survives them.

    Tracing is started and stopped here unless it was already active,
    in which case the caller's tracing session is left running.

    Args:
        fn: Zero-argument callable under test.
        calls: Invocations inside the tracked scope. Must be > 0.

    Returns:
        :class:`AllocationStats` for the tracked scope.

    Raises:
        ValueError: If calls <= 0.
    """
    if calls <= 0:
        raise ValueError(f"calls must be > 0, got {calls}")

    started_here: bool = not tracemalloc.is_tracing()
    if started_here:
        tracemalloc.start()
    try:
        gc.collect()
        before: tracemalloc.Snapshot = tracemalloc.take_snapshot().filter_traces(
            _SNAPSHOT_FILTERS,
        )
        baseline_bytes, _ = tracemalloc.get_traced_memory()
        tracemalloc.reset_peak()

        outputs: list[Any] = [fn() for _ in range(calls)]

        _, peak_bytes = tracemalloc.get_traced_memory()
        held: tracemalloc.Snapshot = tracemalloc.take_snapshot().filter_traces(
            _SNAPSHOT_FILTERS,
        )
        del outputs
        gc.collect()
        released: tracemalloc.Snapshot = tracemalloc.take_snapshot().filter_traces(
            _SNAPSHOT_FILTERS,
        )
    finally:
        if started_here:
            tracemalloc.stop()

    allocated_blocks, allocated_size = _positive_diff(held, before)
    retained_blocks, retained_size = _positive_diff(released, before)

    return AllocationStats(
        total_allocated=allocated_blocks,
        allocated_bytes=max(peak_bytes - baseline_bytes, allocated_size),
        total_retained=retained_blocks,
        retained_bytes=retained_size,
        calls=calls,
    )
