"""Plain-text comparison tables over a result set.

Example:
    >>> print(format_comparison_table(
    ...     result_set, Operation.PARSE, DataSize.SMALL, Format.JSON,
    ... ))
    ======================================================================
    PARSE - json / small
    ======================================================================
    ...
"""

from __future__ import annotations

from codecbench.core.models import (
    DataSize,
    Format,
    IterationCell,
    MemoryCell,
    Operation,
)
from codecbench.core.resultset import Cell, ResultSet

WIDTH: int = 70


def _ratio(fastest: float, value: float) -> str:
    if value > 0:
        return f"{fastest / value:.2f}x"
    return "N/A"


def format_comparison_table(
    result_set: ResultSet,
    operation: Operation,
    data_size: DataSize,
    format: Format,
) -> str:
    """Generate an ASCII table of one triple across every platform.

    Timing rows are sorted by throughput (fastest first) and show how
    many times slower each row is than the fastest. Memory rows are
    sorted by allocated bytes.

    Args:
        result_set: Results to compare.
        operation: Operation to show.
        data_size: Data size to show.
        format: Format to show.

    Returns:
        Formatted multi-line string.
    """
    selected: dict[str, dict[str, Cell]] = result_set.merge_measurements().select(
        operation, data_size, format,
    )
    rows: list[tuple[str, str, Cell]] = [
        (adapter, platform_string, cell)
        for adapter, by_platform in selected.items()
        for platform_string, cell in by_platform.items()
    ]

    lines: list[str] = []
    lines.append("=" * WIDTH)
    lines.append(f"{operation.value.upper()} - {format.value} / {data_size.value}")
    lines.append("=" * WIDTH)
    lines.append(f"Result set:   {result_set.name}")
    lines.append(f"Platforms:    {len(result_set)}")
    lines.append("")

    if not rows:
        lines.append("No measurements.")
        lines.append("=" * WIDTH)
        return "\n".join(lines)

    if operation is Operation.MEMORY:
        memory_rows: list[tuple[str, str, MemoryCell]] = sorted(
            ((a, p, c) for a, p, c in rows if isinstance(c, MemoryCell)),
            key=lambda row: row[2].allocated_bytes,
        )
        lines.append(
            f"{'Adapter':<16} {'Platform':<30} {'Alloc KiB':>10} {'Ret KiB':>10}"
        )
        lines.append("-" * WIDTH)
        for adapter, platform_string, cell in memory_rows:
            lines.append(
                f"{adapter:<16} {platform_string:<30} "
                f"{cell.allocated_bytes / 1024:>10,.1f} "
                f"{cell.retained_bytes / 1024:>10,.1f}"
            )
    else:
        timing_rows: list[tuple[str, str, IterationCell]] = sorted(
            ((a, p, c) for a, p, c in rows if isinstance(c, IterationCell)),
            key=lambda row: row[2].iterations_per_second,
            reverse=True,
        )
        fastest: float = timing_rows[0][2].iterations_per_second if timing_rows else 0.0
        lines.append(
            f"{'Adapter':<16} {'Platform':<30} {'it/s':>10} {'Slower':>10}"
        )
        lines.append("-" * WIDTH)
        for adapter, platform_string, cell in timing_rows:
            lines.append(
                f"{adapter:<16} {platform_string:<30} "
                f"{cell.iterations_per_second:>10,.1f} "
                f"{_ratio(fastest, cell.iterations_per_second):>10}"
            )

    lines.append("")
    lines.append("=" * WIDTH)
    lines.append("Limitations:")
    lines.append("  - Numbers are environment-scoped, compare across the platform key")
    lines.append("  - Timing resolution is bounded by time.perf_counter_ns()")
    return "\n".join(lines)
