"""Deterministic fixture payloads per ``(format, data_size)``.

Every payload is rendered from the same canonical Python document, so
a given format and size produce byte-identical input on every run and
in every environment. Three document shapes exist:

- **small**: one configuration document (database and cache sections).
- **medium**: 1000 user records with nested profile preferences.
- **large**: a dataset header plus 10000 records with nested items.

TOML payloads use the first 100 users / 1000 records. The format has
no compact array-of-tables syntax and the full sizes produce payloads
far larger than the other formats for the same data.

Overrides:
    When a fixture directory is configured and contains
    ``{size}.{format}`` (e.g. ``medium.json``), that file replaces the
    generated payload. The canonical document is then re-read from the
    file for JSON, YAML and TOML; XML overrides have no document.

Example:
    >>> provider = FixtureProvider()
    >>> fixture = provider.get(Format.JSON, DataSize.SMALL)
    >>> fixture.document["config"]["database"]["port"]
    5432
"""

from __future__ import annotations

import json
import logging
import tomllib
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any

import yaml

from codecbench.core.models import DataSize, Format

logger: logging.Logger = logging.getLogger(__name__)

MEDIUM_USERS: int = 1_000
LARGE_RECORDS: int = 10_000
TOML_MEDIUM_USERS: int = 100
TOML_LARGE_RECORDS: int = 1_000


# ---------------------------------------------------------------------------
# Fixture
# ---------------------------------------------------------------------------


class Fixture:
    """One payload in both byte and text form, plus its document.

    Attributes:
        format: Payload format.
        data_size: Payload size class.
        data: UTF-8 encoded payload.
        text: Decoded payload.
        document: Canonical Python object the payload encodes, or
            ``None`` for XML file overrides.
        source: File the payload was read from, ``None`` if generated.
    """

    __slots__ = ("format", "data_size", "data", "text", "document", "source")

    def __init__(
        self,
        format: Format,
        data_size: DataSize,
        data: bytes,
        document: Any,
        source: Path | None = None,
    ) -> None:
        self.format: Format = format
        self.data_size: DataSize = data_size
        self.data: bytes = data
        self.text: str = data.decode("utf-8")
        self.document: Any = document
        self.source: Path | None = source

    def __repr__(self) -> str:
        return (
            f"<Fixture {self.data_size.value}.{self.format.value} "
            f"{len(self.data)} bytes>"
        )

    def payload_for(self, consumes_text: bool) -> bytes | str:
        return self.text if consumes_text else self.data


# ---------------------------------------------------------------------------
# Canonical documents
# ---------------------------------------------------------------------------


def small_document() -> dict[str, Any]:
    return {
        "config": {
            "database": {
                "host": "localhost",
                "port": 5432,
                "name": "myapp",
                "user": "admin",
                "password": "secret",
            },
            "cache": {
                "enabled": True,
                "ttl": 3600,
            },
        }
    }


def medium_document(count: int = MEDIUM_USERS) -> dict[str, Any]:
    return {
        "users": [
            {
                "id": i,
                "name": f"User {i}",
                "email": f"user{i}@example.com",
                "created_at": f"2023-01-{(i % 28) + 1:02d}T10:00:00Z",
                "profile": {
                    "age": 20 + (i % 50),
                    "city": f"City {i % 100}",
                    "preferences": {
                        "theme": "dark" if i % 2 == 0 else "light",
                        "notifications": i % 3 == 0,
                    },
                },
            }
            for i in range(1, count + 1)
        ]
    }


def large_document(count: int = LARGE_RECORDS) -> dict[str, Any]:
    return {
        "dataset": {
            "header": {
                "created": "2023-01-01T00:00:00Z",
                "count": count,
                "format": "data",
            },
            "records": [
                {
                    "id": i,
                    "timestamp": (
                        f"2023-01-01T{i % 24:02d}:{i % 60:02d}:{i % 60:02d}Z"
                    ),
                    "data": {
                        "field1": f"Value {i}",
                        "field2": i * 2,
                        "field3": "special" if i % 100 == 0 else "normal",
                        "nested": [f"Item {i}-1", f"Item {i}-2", f"Item {i}-3"],
                    },
                    "metadata": {
                        "source": "generator",
                        "version": "1.0",
                        "checksum": format(i, "x"),
                    },
                }
                for i in range(1, count + 1)
            ],
        }
    }


def build_document(data_size: DataSize, format: Format) -> dict[str, Any]:
    """Canonical document for a size, trimmed for TOML."""
    if data_size is DataSize.SMALL:
        return small_document()
    if data_size is DataSize.MEDIUM:
        return medium_document(
            TOML_MEDIUM_USERS if format is Format.TOML else MEDIUM_USERS
        )
    return large_document(
        TOML_LARGE_RECORDS if format is Format.TOML else LARGE_RECORDS
    )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _xml_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _xml_item_tag(container: str) -> str:
    return container[:-1] if container.endswith("s") else "item"


def _xml_fill_items(container: ET.Element, items: list[Any]) -> None:
    for item in items:
        child: ET.Element = ET.SubElement(container, _xml_item_tag(container.tag))
        if isinstance(item, dict) and "id" in item:
            child.set("id", _xml_scalar(item["id"]))
            item = {k: v for k, v in item.items() if k != "id"}
        _xml_fill(child, item)


def _xml_fill(element: ET.Element, value: Any) -> None:
    if isinstance(value, dict):
        for key, child_value in value.items():
            child: ET.Element = ET.SubElement(element, key)
            if isinstance(child_value, list):
                _xml_fill_items(child, child_value)
            else:
                _xml_fill(child, child_value)
    elif isinstance(value, list):
        _xml_fill_items(element, value)
    else:
        element.text = _xml_scalar(value)


def render_xml(document: dict[str, Any]) -> str:
    """Render a single-root document as XML.

    Lists become a container element whose children are named after the
    singular of the container (``users`` -> ``user``, otherwise
    ``item``); an ``id`` key on list items becomes an attribute.
    """
    (root_tag, root_value), = document.items()
    root: ET.Element = ET.Element(root_tag)
    _xml_fill(root, root_value)
    ET.indent(root)
    body: str = ET.tostring(root, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(v) for v in value) + "]"
    raise TypeError(f"cannot render {type(value).__name__} as a TOML value")


def _is_table_array(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(
        isinstance(v, dict) for v in value
    )


def _toml_emit(
    lines: list[str],
    path: list[str],
    table: dict[str, Any],
    array_item: bool = False,
) -> None:
    scalars: list[tuple[str, Any]] = []
    tables: list[tuple[str, dict[str, Any]]] = []
    arrays: list[tuple[str, list[dict[str, Any]]]] = []
    for key, value in table.items():
        if isinstance(value, dict):
            tables.append((key, value))
        elif _is_table_array(value):
            arrays.append((key, value))
        else:
            scalars.append((key, value))

    if path:
        header: str = ".".join(path)
        if array_item:
            lines.extend(["", f"[[{header}]]"])
        elif scalars:
            lines.extend(["", f"[{header}]"])

    lines.extend(f"{key} = {_toml_value(value)}" for key, value in scalars)
    for key, sub in tables:
        _toml_emit(lines, [*path, key], sub)
    for key, items in arrays:
        for item in items:
            _toml_emit(lines, [*path, key], item, array_item=True)


def render_toml(document: dict[str, Any]) -> str:
    """Render nested tables, arrays of tables and scalar arrays as TOML."""
    lines: list[str] = []
    _toml_emit(lines, [], document)
    return "\n".join(lines).lstrip("\n") + "\n"


def render(document: dict[str, Any], format: Format) -> str:
    if format is Format.JSON:
        return json.dumps(document, indent=2) + "\n"
    if format is Format.YAML:
        return yaml.safe_dump(document, sort_keys=False, default_flow_style=False)
    if format is Format.TOML:
        return render_toml(document)
    return render_xml(document)


def load_document(text: str, format: Format) -> Any:
    """Canonical document of an override file, ``None`` for XML."""
    if format is Format.JSON:
        return json.loads(text)
    if format is Format.YAML:
        return yaml.safe_load(text)
    if format is Format.TOML:
        return tomllib.loads(text)
    return None


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class FixtureProvider:
    """Builds and caches fixtures, honouring an optional override dir.

    Args:
        fixture_dir: Directory searched for ``{size}.{format}`` files.
    """

    def __init__(self, fixture_dir: Path | str | None = None) -> None:
        self._fixture_dir: Path | None = Path(fixture_dir) if fixture_dir else None
        self._cache: dict[tuple[Format, DataSize], Fixture] = {}

    @property
    def fixture_dir(self) -> Path | None:
        return self._fixture_dir

    def get(self, format: Format, data_size: DataSize) -> Fixture:
        key: tuple[Format, DataSize] = (format, data_size)
        fixture: Fixture | None = self._cache.get(key)
        if fixture is None:
            fixture = self._load(format, data_size)
            self._cache[key] = fixture
        return fixture

    def _load(self, format: Format, data_size: DataSize) -> Fixture:
        if self._fixture_dir is not None:
            path: Path = self._fixture_dir / f"{data_size.value}.{format.value}"
            if path.is_file():
                data: bytes = path.read_bytes()
                logger.info("Using fixture override %s", path)
                return Fixture(
                    format=format,
                    data_size=data_size,
                    data=data,
                    document=load_document(data.decode("utf-8"), format),
                    source=path,
                )

        document: dict[str, Any] = build_document(data_size, format)
        return Fixture(
            format=format,
            data_size=data_size,
            data=render(document, format).encode("utf-8"),
            document=document,
        )
