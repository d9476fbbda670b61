"""Aggregation of many results into one comparison dataset.

A :class:`ResultSet` owns an ordered mapping ``platform_string ->
Result``. Insertion order only matters for display; every query is
order-independent.

Validation:
    :meth:`ResultSet.add_result` rejects a result that lacks
    ``platform``, ``environment_config`` or ``benchmark_config``. The
    :class:`~codecbench.core.errors.ResultValidationError` names the
    missing field and the file the result came from. Incomplete data is
    never absorbed as nulls.

Duplicates:
    Two results with the same ``platform_string`` are two runs of the
    same environment. Adding the second one raises
    :class:`~codecbench.core.errors.DuplicateResultError` unless
    ``replace=True`` is given.

Merged view:
    :meth:`ResultSet.merge_measurements` returns
    :class:`MergedMeasurements`, a read-only mapping keyed by
    :class:`MeasurementKey` ``(operation, data_size, format, adapter,
    platform_string)``. Its :meth:`~MergedMeasurements.nested` form is
    ``operation -> data_size -> format -> adapter -> platform_string ->
    cell``. Both are built with :func:`merge_nested`, a single
    recursive merge that is associative and commutative, so the order
    of ``add_result`` calls never changes the outcome. The view is
    cached and dropped on every mutation.

Persistence:
    The set file holds ``{name, description, created_at, updated_at,
    results}`` where each entry is either a path to a member result
    file (relative to the set file) or an embedded result document.
    Member files stay on disk independently and must remain readable.

Example:
    >>> result_set = merge([result_a, result_b], name="weekly")
    >>> merged = result_set.merge_measurements()
    >>> merged.nested()[Operation.PARSE][DataSize.SMALL][Format.JSON]["json"]
    {'local-linux-x86_64-python-3.12.4': IterationCell(...), ...}
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any, NamedTuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field

from codecbench.core.errors import DuplicateResultError, ResultValidationError
from codecbench.core.models import (
    DataSize,
    Format,
    IterationCell,
    MemoryCell,
    Operation,
    utc_now,
)
from codecbench.core.result import Result, ResultCodec

logger: logging.Logger = logging.getLogger(__name__)

Cell = Union[IterationCell, MemoryCell]
NestedMeasurements = dict[
    Operation, dict[DataSize, dict[Format, dict[str, dict[str, Cell]]]]
]


# ---------------------------------------------------------------------------
# Merged measurements
# ---------------------------------------------------------------------------


class MeasurementKey(NamedTuple):
    """Coordinates of one cell across a whole result set."""

    operation: Operation
    data_size: DataSize
    format: Format
    adapter: str
    platform_string: str


def merge_nested(left: Mapping[Any, Any], right: Mapping[Any, Any]) -> dict[Any, Any]:
    """Recursively merge two nested mappings into a new dict.

    Sub-mappings present on both sides are merged; leaves present on
    both sides must be equal. Neither input is modified.

    Raises:
        ValueError: If the same leaf coordinate holds different values.

    Example:
        >>> merge_nested({"a": {"x": 1}}, {"a": {"y": 2}})
        {'a': {'x': 1, 'y': 2}}
    """
    merged: dict[Any, Any] = dict(left)
    for key, value in right.items():
        if key not in merged:
            merged[key] = value
            continue
        existing: Any = merged[key]
        if isinstance(existing, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_nested(existing, value)
        elif existing != value:
            raise ValueError(f"conflicting values for coordinate {key!r}")
    return merged


def _nest(key: MeasurementKey, cell: Cell) -> dict[Any, Any]:
    node: dict[Any, Any] = {key.platform_string: cell}
    for coordinate in (key.adapter, key.format, key.data_size, key.operation):
        node = {coordinate: node}
    return node


class MergedMeasurements(Mapping[MeasurementKey, Cell]):
    """Read-only mapping of every cell in a result set by coordinates."""

    def __init__(self, cells: Mapping[MeasurementKey, Cell] | None = None) -> None:
        self._cells: dict[MeasurementKey, Cell] = dict(cells or {})

    def __getitem__(self, key: MeasurementKey) -> Cell:
        return self._cells[key]

    def __iter__(self) -> Iterator[MeasurementKey]:
        return iter(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    def __repr__(self) -> str:
        return f"<MergedMeasurements {len(self._cells)} cells>"

    @classmethod
    def from_result(cls, result: Result) -> "MergedMeasurements":
        """Key every cell of one result by its coordinates."""
        platform_string: str | None = result.platform_string
        if platform_string is None:
            raise ResultValidationError("platform", result.source_path)
        cells: dict[MeasurementKey, Cell] = {}
        for operation in Operation:
            for cell in result.benchmark_result.cells(operation):
                key: MeasurementKey = MeasurementKey(
                    operation=operation,
                    data_size=cell.data_size,
                    format=cell.format,
                    adapter=cell.adapter,
                    platform_string=platform_string,
                )
                cells[key] = cell
        return cls(cells)

    def merge(self, other: "MergedMeasurements") -> "MergedMeasurements":
        """Union of two views; a shared key must hold the same cell."""
        return MergedMeasurements(merge_nested(self._cells, other._cells))

    def nested(self) -> NestedMeasurements:
        """``operation -> data_size -> format -> adapter -> platform -> cell``."""
        tree: dict[Any, Any] = {}
        for key, cell in self._cells.items():
            tree = merge_nested(tree, _nest(key, cell))
        return tree

    def platforms(self) -> list[str]:
        return sorted({k.platform_string for k in self._cells})

    def select(
        self,
        operation: Operation,
        data_size: DataSize,
        format: Format,
    ) -> dict[str, dict[str, Cell]]:
        """``adapter -> platform_string -> cell`` for one triple."""
        selected: dict[str, dict[str, Cell]] = {}
        for key, cell in self._cells.items():
            if (key.operation, key.data_size, key.format) == (
                operation, data_size, format,
            ):
                selected.setdefault(key.adapter, {})[key.platform_string] = cell
        return selected


# ---------------------------------------------------------------------------
# Persisted form
# ---------------------------------------------------------------------------


class ResultSetDocument(BaseModel):
    """On-disk shape of a result set file."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    description: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    results: list[Union[str, dict[str, Any]]] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# ResultSet
# ---------------------------------------------------------------------------


class ResultSet:
    """Validated collection of results keyed by platform string.

    Not thread-safe. Mutations are expected from one CLI-driven
    operation at a time.

    Args:
        name: Set name.
        description: Free-form description.
        created_at: Creation time, now by default.
        updated_at: Last mutation time, ``created_at`` by default.
    """

    def __init__(
        self,
        name: str = "resultset",
        description: str = "",
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> None:
        self.name: str = name
        self.description: str = description
        self.created_at: datetime = created_at or utc_now()
        self.updated_at: datetime = updated_at or self.created_at
        self._results: dict[str, Result] = {}
        self._merged: MergedMeasurements | None = None

    def __repr__(self) -> str:
        return f"<ResultSet {self.name!r} {len(self._results)} results>"

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[Result]:
        return iter(list(self._results.values()))

    def __contains__(self, platform_string: object) -> bool:
        return platform_string in self._results

    @property
    def results(self) -> list[Result]:
        return list(self._results.values())

    @property
    def platform_strings(self) -> list[str]:
        return list(self._results)

    def get(self, platform_string: str) -> Result | None:
        return self._results.get(platform_string)

    # -- mutation ------------------------------------------------------------

    @staticmethod
    def validate_result(result: Result) -> None:
        """Raise if ``result`` lacks a required top-level field.

        Raises:
            ResultValidationError: Naming the first missing field and
                the result's source path.
        """
        missing: list[str] = result.missing_fields()
        if missing:
            raise ResultValidationError(missing[0], result.source_path)

    def add_result(self, result: Result, replace: bool = False) -> None:
        """Validate and add ``result``.

        Args:
            result: Result to add.
            replace: Overwrite an existing result with the same
                platform string instead of raising.

        Raises:
            ResultValidationError: A required field is missing.
            DuplicateResultError: Same platform already present and
                ``replace`` is False.
        """
        self.validate_result(result)
        platform_string: str = result.platform.platform_string  # type: ignore[union-attr]
        if platform_string in self._results and not replace:
            raise DuplicateResultError(platform_string)
        if platform_string in self._results:
            logger.info("Replacing result for %s", platform_string)
        self._results[platform_string] = result
        self._touch()
        logger.info("Added result for %s", platform_string)

    def add_result_file(
        self,
        path: Path | str,
        replace: bool = False,
        codec: ResultCodec | None = None,
    ) -> Result:
        """Load a result file and add it. Returns the loaded result."""
        result: Result = Result.load(path, codec)
        self.add_result(result, replace=replace)
        return result

    def remove_result(self, platform_string: str) -> Result:
        """Remove and return the result for ``platform_string``.

        Raises:
            KeyError: If no such result exists.
        """
        if platform_string not in self._results:
            raise KeyError(f"no result for platform {platform_string!r}")
        removed: Result = self._results.pop(platform_string)
        self._touch()
        logger.info("Removed result for %s", platform_string)
        return removed

    def _touch(self) -> None:
        self._merged = None
        self.updated_at = utc_now()

    # -- queries -------------------------------------------------------------

    def merge_measurements(self) -> MergedMeasurements:
        """Every member cell keyed by its five coordinates (cached)."""
        if self._merged is None:
            merged: MergedMeasurements = MergedMeasurements()
            for result in self._results.values():
                merged = merged.merge(MergedMeasurements.from_result(result))
            self._merged = merged
        return self._merged

    def find_by_tags(self, tags: Iterable[str], match_all: bool = True) -> list[Result]:
        """Results whose fingerprint tags contain all (or any) of ``tags``."""
        wanted: set[str] = set(tags)
        found: list[Result] = []
        for result in self._results.values():
            have: set[str] = set(result.metadata.tags)
            if (wanted <= have) if match_all else bool(wanted & have):
                found.append(result)
        return found

    # -- persistence ---------------------------------------------------------

    def to_document(self, base_dir: Path, embed: bool = False) -> ResultSetDocument:
        entries: list[str | dict[str, Any]] = []
        for result in self._results.values():
            source: Path | None = result.source_path
            if embed or source is None:
                entries.append(result.to_document())
            else:
                entries.append(Path(os.path.relpath(source, base_dir)).as_posix())
        return ResultSetDocument(
            name=self.name,
            description=self.description,
            created_at=self.created_at,
            updated_at=self.updated_at,
            results=entries,
        )

    def save(self, path: Path | str, embed: bool = False) -> Path:
        """Write the set file.

        Members with a source file are stored as relative paths, the
        rest (or all, with ``embed=True``) as embedded documents.
        """
        target: Path = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        document: ResultSetDocument = self.to_document(
            target.parent.resolve(), embed=embed,
        )
        with target.open("w", encoding="utf-8") as f:
            yaml.safe_dump(document.model_dump(mode="json"), f, sort_keys=False)
        logger.info("Saved result set %r (%d results) to %s", self.name, len(self), target)
        return target

    @classmethod
    def load(cls, path: Path | str) -> "ResultSet":
        """Read a set file and every member result it references.

        Raises:
            ResultValidationError: A member lacks a required field.
            DuplicateResultError: Two members share a platform string.
            FileNotFoundError: A referenced member file is gone.
        """
        source: Path = Path(path)
        with source.open("r", encoding="utf-8") as f:
            document: ResultSetDocument = ResultSetDocument.model_validate(
                yaml.safe_load(f) or {},
            )

        result_set: ResultSet = cls(
            name=document.name,
            description=document.description,
            created_at=document.created_at,
        )
        for entry in document.results:
            if isinstance(entry, str):
                member: Path = Path(entry)
                if not member.is_absolute():
                    member = source.parent / member
                result_set.add_result(Result.load(member))
            else:
                result_set.add_result(Result.from_document(entry, source_path=source))
        result_set.updated_at = document.updated_at
        return result_set


def merge(
    results: Iterable[Result],
    name: str = "resultset",
    description: str = "",
) -> ResultSet:
    """Fold results into a new :class:`ResultSet`.

    Raises:
        ResultValidationError: A result lacks a required field.
        DuplicateResultError: Two results share a platform string.
    """
    result_set: ResultSet = ResultSet(name=name, description=description)
    for result in results:
        result_set.add_result(result)
    return result_set
