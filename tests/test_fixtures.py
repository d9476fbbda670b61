"""Unit tests for deterministic fixture payloads."""

import json
import tomllib
import xml.etree.ElementTree as ET
from pathlib import Path

import pytest
import yaml

from codecbench.core.fixtures import (
    TOML_MEDIUM_USERS,
    Fixture,
    FixtureProvider,
    build_document,
    large_document,
    medium_document,
    render,
    render_toml,
    render_xml,
)
from codecbench.core.models import DataSize, Format


class TestDocuments:
    """Tests for the canonical document shapes."""

    def test_medium_shape(self) -> None:
        """Medium holds the requested number of users, ids from 1."""
        document: dict = medium_document(3)
        assert [u["id"] for u in document["users"]] == [1, 2, 3]
        assert document["users"][0]["profile"]["preferences"]["theme"] == "light"

    def test_large_header_count(self) -> None:
        """Large header count matches its records."""
        document: dict = large_document(5)
        assert document["dataset"]["header"]["count"] == 5
        assert len(document["dataset"]["records"]) == 5

    def test_toml_trimmed(self) -> None:
        """TOML medium uses fewer users than the other formats."""
        assert len(build_document(DataSize.MEDIUM, Format.TOML)["users"]) == TOML_MEDIUM_USERS
        assert len(build_document(DataSize.MEDIUM, Format.JSON)["users"]) == 1_000


class TestRendering:
    """Tests for the format renderers."""

    def test_json_round_trip(self) -> None:
        """JSON output loads back to the document."""
        document: dict = medium_document(10)
        assert json.loads(render(document, Format.JSON)) == document

    def test_yaml_round_trip(self) -> None:
        """YAML output loads back to the document."""
        document: dict = large_document(10)
        assert yaml.safe_load(render(document, Format.YAML)) == document

    def test_toml_arrays_of_tables(self) -> None:
        """Nested lists of dicts become arrays of tables."""
        text: str = render_toml(medium_document(2))
        assert text.count("[[users]]") == 2
        assert "[users.profile.preferences]" in text
        assert tomllib.loads(text) == medium_document(2)

    def test_toml_scalar_arrays(self) -> None:
        """Lists of strings stay inline arrays."""
        text: str = render_toml(large_document(1))
        assert 'nested = ["Item 1-1", "Item 1-2", "Item 1-3"]' in text

    def test_xml_structure(self) -> None:
        """List items use the singular tag and carry id as an attribute."""
        root: ET.Element = ET.fromstring(render_xml(medium_document(2)).encode("utf-8"))
        users: list[ET.Element] = root.findall("user")
        assert root.tag == "users"
        assert [u.get("id") for u in users] == ["1", "2"]
        assert users[0].findtext("profile/preferences/notifications") == "false"

    def test_xml_declaration(self) -> None:
        """Output starts with an XML declaration."""
        assert render_xml({"root": {"a": 1}}).startswith('<?xml version="1.0"')


class TestFixtureProvider:
    """Tests for fixture caching and overrides."""

    def test_deterministic(self) -> None:
        """Two providers produce byte-identical payloads."""
        first: Fixture = FixtureProvider().get(Format.XML, DataSize.SMALL)
        second: Fixture = FixtureProvider().get(Format.XML, DataSize.SMALL)
        assert first.data == second.data

    def test_cached(self) -> None:
        """The same fixture object is returned on repeat calls."""
        provider: FixtureProvider = FixtureProvider()
        assert provider.get(Format.JSON, DataSize.SMALL) is provider.get(
            Format.JSON, DataSize.SMALL,
        )

    def test_payload_forms(self) -> None:
        """payload_for returns text or bytes of the same content."""
        fixture: Fixture = FixtureProvider().get(Format.JSON, DataSize.SMALL)
        assert fixture.payload_for(True) == fixture.text
        assert fixture.payload_for(False) == fixture.text.encode("utf-8")
        assert fixture.source is None

    def test_override_file(self, tmp_path: Path) -> None:
        """A {size}.{format} file replaces the generated payload."""
        (tmp_path / "small.json").write_text('{"override": true}', encoding="utf-8")
        fixture: Fixture = FixtureProvider(tmp_path).get(Format.JSON, DataSize.SMALL)
        assert fixture.document == {"override": True}
        assert fixture.source == tmp_path / "small.json"

    def test_xml_override_has_no_document(self, tmp_path: Path) -> None:
        """XML overrides carry bytes but no canonical document."""
        (tmp_path / "small.xml").write_text("<a><b>1</b></a>", encoding="utf-8")
        fixture: Fixture = FixtureProvider(tmp_path).get(Format.XML, DataSize.SMALL)
        assert fixture.document is None
        assert fixture.data == b"<a><b>1</b></a>"

    @pytest.mark.parametrize("format", list(Format))
    def test_missing_override_generates(self, tmp_path: Path, format: Format) -> None:
        """Without a matching file the payload is generated."""
        fixture: Fixture = FixtureProvider(tmp_path).get(format, DataSize.SMALL)
        assert fixture.source is None
        assert len(fixture.data) > 0
