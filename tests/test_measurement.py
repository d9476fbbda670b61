"""Unit tests for timing and allocation primitives.

Tests cover:
    - Linear interpolation percentile calculation
    - Timing statistics from nanosecond durations
    - Timed passes with an injected clock
    - GC baseline capture and restore
    - Allocation tracking with tracemalloc
"""

import gc
import math
import tracemalloc
from typing import Callable, Iterator

import pytest

from codecbench.core.measurement import (
    AllocationStats,
    GCBaseline,
    TimingStats,
    calculate_percentile,
    calculate_timing_stats,
    capture_gc_baseline,
    measure_allocations,
    measure_gc_delta,
    time_iterations,
)


def stepping_clock(step_ns: int) -> Callable[[], int]:
    """Clock advancing by ``step_ns`` on every read."""
    ticks: Iterator[int] = iter(range(0, 10**12, step_ns))
    return lambda: next(ticks)


# -----------------------------------------------------------------------
# Percentile Calculation
# -----------------------------------------------------------------------


class TestCalculatePercentile:
    """Tests for linear interpolation percentile."""

    def test_p50_odd_count(self) -> None:
        """P50 of [1,2,3,4,5] should be 3.0 (exact middle)."""
        result: float = calculate_percentile(
            sorted_values=[1.0, 2.0, 3.0, 4.0, 5.0],
            percentile=0.5,
        )
        assert result == 3.0

    def test_p50_even_count(self) -> None:
        """P50 of [1,2,3,4] should interpolate to 2.5."""
        result: float = calculate_percentile(
            sorted_values=[1.0, 2.0, 3.0, 4.0],
            percentile=0.5,
        )
        assert result == 2.5

    def test_p99_interpolation(self) -> None:
        """P99 of [1,2,3,4,5] should interpolate near 5.0."""
        result: float = calculate_percentile(
            sorted_values=[1.0, 2.0, 3.0, 4.0, 5.0],
            percentile=0.99,
        )
        # k = (5-1) * 0.99 = 3.96; f=3, c=4
        assert math.isclose(result, 4.96, rel_tol=1e-9)

    def test_single_element(self) -> None:
        """Single element should be returned for any percentile."""
        for p in (0.0, 0.5, 1.0):
            assert calculate_percentile(sorted_values=[42.0], percentile=p) == 42.0

    def test_empty_raises_value_error(self) -> None:
        """Empty list should raise ValueError."""
        with pytest.raises(ValueError, match="must not be empty"):
            calculate_percentile(sorted_values=[], percentile=0.5)

    def test_percentile_out_of_range_raises(self) -> None:
        """Percentile outside [0, 1] should raise ValueError."""
        with pytest.raises(ValueError, match="must be in"):
            calculate_percentile(sorted_values=[1.0], percentile=1.1)
        with pytest.raises(ValueError, match="must be in"):
            calculate_percentile(sorted_values=[1.0], percentile=-0.1)


# -----------------------------------------------------------------------
# Timing statistics
# -----------------------------------------------------------------------


class TestCalculateTimingStats:
    """Tests for nanosecond to seconds statistics."""

    def test_basic_stats(self) -> None:
        """Totals, mean and percentiles are converted to seconds."""
        stats: TimingStats = calculate_timing_stats([1000, 2000, 3000])
        assert stats.iterations_count == 3
        assert math.isclose(stats.total_time, 6e-6)
        assert math.isclose(stats.time_per_iteration, 2e-6)
        assert math.isclose(stats.p50_time, 2e-6)
        assert math.isclose(stats.stddev_time, 1e-6)
        assert math.isclose(stats.iterations_per_second, 3 / 6e-6)

    def test_single_iteration_stddev_zero(self) -> None:
        """One sample has zero deviation."""
        assert calculate_timing_stats([500]).stddev_time == 0.0

    def test_zero_duration_not_measurable(self) -> None:
        """All-zero durations produce an unmeasurable pass."""
        stats: TimingStats = calculate_timing_stats([0, 0, 0])
        assert stats.measurable is False
        assert stats.iterations_per_second == 0.0

    def test_empty_raises(self) -> None:
        """No durations is an error."""
        with pytest.raises(ValueError, match="must not be empty"):
            calculate_timing_stats([])


class TestTimeIterations:
    """Tests for timed passes."""

    def test_counts_exclude_warmup(self) -> None:
        """Warmup calls run but are not timed."""
        calls: list[int] = []
        stats: TimingStats = time_iterations(
            lambda: calls.append(1), iterations=5, warmup=3,
            clock=stepping_clock(100),
        )
        assert len(calls) == 8
        assert stats.iterations_count == 5
        assert math.isclose(stats.total_time, 5 * 100 / 1e9)

    def test_zero_clock_unmeasurable(self) -> None:
        """A clock that never advances yields zero total time."""
        stats: TimingStats = time_iterations(lambda: None, iterations=4, clock=lambda: 0)
        assert stats.total_time == 0.0
        assert not stats.measurable

    def test_invalid_iterations(self) -> None:
        """iterations must be positive."""
        with pytest.raises(ValueError, match="iterations must be > 0"):
            time_iterations(lambda: None, iterations=0)
        with pytest.raises(ValueError, match="warmup must be >= 0"):
            time_iterations(lambda: None, iterations=1, warmup=-1)

    def test_exception_propagates_and_restores_gc(self) -> None:
        """A raising callable propagates and GC is re-enabled."""

        def boom() -> None:
            raise RuntimeError("adapter crashed")

        assert gc.isenabled()
        with pytest.raises(RuntimeError, match="adapter crashed"):
            time_iterations(boom, iterations=2, gc_disabled=True)
        assert gc.isenabled()


# -----------------------------------------------------------------------
# GC Measurement
# -----------------------------------------------------------------------


class TestGCBaseline:
    """Tests for GC baseline capture and restore."""

    def test_restores_enabled(self) -> None:
        """GC is re-enabled after a gc_disabled pass."""
        baseline: GCBaseline = capture_gc_baseline(gc_disabled=True)
        assert not gc.isenabled()
        gen0_delta: int = measure_gc_delta(baseline)
        assert gc.isenabled()
        assert isinstance(gen0_delta, int)
        assert gen0_delta >= 0

    def test_delta_counts_forced_collections(self) -> None:
        """Collections run during the pass show up in the gen0 delta."""
        baseline: GCBaseline = capture_gc_baseline()
        gc.collect(0)
        gc.collect(0)
        assert measure_gc_delta(baseline) >= 1

    def test_baseline_holds_only_gc_state(self) -> None:
        """The baseline carries the gen0 count and the enabled flag, nothing else."""
        assert GCBaseline.__slots__ == ("gen0_collections", "gc_was_enabled")

    def test_keeps_disabled(self) -> None:
        """GC stays disabled if it was disabled before capture."""
        gc.disable()
        try:
            baseline: GCBaseline = capture_gc_baseline()
            measure_gc_delta(baseline)
            assert not gc.isenabled()
        finally:
            gc.enable()


# -----------------------------------------------------------------------
# Allocation tracking
# -----------------------------------------------------------------------


class TestMeasureAllocations:
    """Tests for tracemalloc-based allocation tracking."""

    def test_allocations_seen(self) -> None:
        """Building objects shows up as allocated but not retained."""
        stats: AllocationStats = measure_allocations(
            lambda: [str(i) * 10 for i in range(2000)], calls=3,
        )
        assert stats.calls == 3
        assert stats.allocated_bytes > 2000 * 3 * 10
        assert stats.total_allocated > 0
        assert stats.retained_bytes < stats.allocated_bytes

    def test_retained_when_kept(self) -> None:
        """Objects kept alive by the callable count as retained."""
        keep: list[list[str]] = []
        stats: AllocationStats = measure_allocations(
            lambda: keep.append([str(i) * 10 for i in range(2000)]), calls=1,
        )
        assert stats.retained_bytes > 2000 * 10

    def test_tracing_stopped_afterwards(self) -> None:
        """Tracing started by the measurement is stopped again."""
        assert not tracemalloc.is_tracing()
        measure_allocations(lambda: None)
        assert not tracemalloc.is_tracing()

    def test_invalid_calls(self) -> None:
        """calls must be positive."""
        with pytest.raises(ValueError, match="calls must be > 0"):
            measure_allocations(lambda: None, calls=0)
