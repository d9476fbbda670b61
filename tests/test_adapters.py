"""Unit tests for codec adapters and the adapter registry.

Tests cover:
    - Capability detection from implemented methods
    - Lazy, memoized probing and unavailable adapters
    - Standard library adapters against generated fixtures
    - Compatibility rules excluding adapters before import
    - Registry queries and duplicate detection
"""

import importlib
from typing import Any
from unittest.mock import patch

import pytest

from codecbench.core.adapters import KNOWN_ADAPTERS, Adapter
from codecbench.core.adapters.json_adapters import IjsonAdapter, StdlibJsonAdapter
from codecbench.core.adapters.toml_adapters import TomliWAdapter, TomllibAdapter
from codecbench.core.adapters.xml_adapters import ElementTreeAdapter, MinidomAdapter
from codecbench.core.adapters.yaml_adapters import PyyamlAdapter
from codecbench.core.errors import AdapterUnavailable
from codecbench.core.fixtures import Fixture, FixtureProvider
from codecbench.core.models import AdapterInfo, DataSize, Format
from codecbench.core.registry import (
    AdapterRegistry,
    CompatibilityRule,
    blocking_rule,
    is_compatible,
    parse_runtime,
)


class MissingJsonAdapter(Adapter):
    """Adapter whose backing module does not exist."""

    format = Format.JSON
    name = "missing"
    module_name = "codecbench_no_such_module"

    def parse(self, data: bytes | str) -> Any:
        return self.module.loads(data)


class ParseOnlyJsonAdapter(Adapter):
    format = Format.JSON
    name = "parse-only"
    module_name = "json"
    consumes_text = True

    def parse(self, data: bytes | str) -> Any:
        return self.module.loads(data)


@pytest.fixture()
def provider() -> FixtureProvider:
    return FixtureProvider()


# -----------------------------------------------------------------------
# Adapter capabilities and probing
# -----------------------------------------------------------------------


class TestAdapterCapabilities:
    """Tests for protocol-derived capabilities."""

    def test_full_adapter(self) -> None:
        """json parses and generates but does not stream."""
        adapter: StdlibJsonAdapter = StdlibJsonAdapter()
        assert adapter.supports_parse
        assert adapter.supports_generate
        assert not adapter.supports_streaming

    def test_stream_only_adapter(self) -> None:
        """ijson only streams."""
        adapter: IjsonAdapter = IjsonAdapter()
        assert not adapter.supports_parse
        assert not adapter.supports_generate
        assert adapter.supports_streaming

    def test_read_only_and_write_only(self) -> None:
        """tomllib only reads and tomli-w only writes."""
        assert TomllibAdapter().supports_parse
        assert not TomllibAdapter().supports_generate
        assert TomliWAdapter().supports_generate
        assert not TomliWAdapter().supports_parse

    def test_known_adapters_unique(self) -> None:
        """Every (format, name) pair is listed once."""
        keys: list[tuple[Format, str]] = [(c.format, c.name) for c in KNOWN_ADAPTERS]
        assert len(keys) == len(set(keys))


class TestAdapterProbe:
    """Tests for lazy availability probing."""

    def test_stdlib_available(self) -> None:
        """Standard library adapters are always available."""
        adapter: StdlibJsonAdapter = StdlibJsonAdapter()
        assert adapter.probe() is True
        assert adapter.unavailable_reason == ""

    def test_missing_module_unavailable(self) -> None:
        """A missing module makes the adapter unavailable without raising."""
        adapter: MissingJsonAdapter = MissingJsonAdapter()
        assert adapter.probe() is False
        assert "ModuleNotFoundError" in adapter.unavailable_reason
        assert adapter.version is None

    def test_module_access_raises_when_unavailable(self) -> None:
        """Using an unavailable adapter raises AdapterUnavailable."""
        adapter: MissingJsonAdapter = MissingJsonAdapter()
        with pytest.raises(AdapterUnavailable, match="missing"):
            adapter.parse("{}")

    def test_probe_memoized(self) -> None:
        """The module is imported at most once per instance."""
        adapter: StdlibJsonAdapter = StdlibJsonAdapter()
        with patch(
            "codecbench.core.adapters.base.importlib.import_module",
            wraps=importlib.import_module,
        ) as importer:
            adapter.probe()
            adapter.probe()
        assert importer.call_count == 1

    def test_broken_import_unavailable(self) -> None:
        """Arbitrary import-time errors are contained."""
        adapter: StdlibJsonAdapter = StdlibJsonAdapter()
        with patch(
            "codecbench.core.adapters.base.importlib.import_module",
            side_effect=RuntimeError("bad native init"),
        ):
            assert adapter.probe() is False
        assert "bad native init" in adapter.unavailable_reason

    def test_required_symbol_missing(self) -> None:
        """A module without the required symbol counts as unavailable."""

        class NeedsSymbol(ParseOnlyJsonAdapter):
            name = "needs-symbol"
            required_symbol = "definitely_not_there"

        adapter: NeedsSymbol = NeedsSymbol()
        assert adapter.probe() is False
        assert "definitely_not_there" in adapter.unavailable_reason

    def test_info(self) -> None:
        """info() describes identity and capabilities."""
        info: AdapterInfo = ParseOnlyJsonAdapter().info()
        assert info.format is Format.JSON
        assert info.name == "parse-only"
        assert info.supports_parse is True
        assert info.supports_generate is False


# -----------------------------------------------------------------------
# Standard library adapters on real fixtures
# -----------------------------------------------------------------------


class TestStdlibAdapters:
    """Standard library adapters agree with the canonical documents."""

    @pytest.mark.parametrize("data_size", list(DataSize))
    def test_json_parse_matches_document(
        self, provider: FixtureProvider, data_size: DataSize,
    ) -> None:
        """json parses the fixture back to its document."""
        fixture: Fixture = provider.get(Format.JSON, data_size)
        assert StdlibJsonAdapter().parse(fixture.text) == fixture.document

    @pytest.mark.parametrize("data_size", list(DataSize))
    def test_tomllib_parse_matches_document(
        self, provider: FixtureProvider, data_size: DataSize,
    ) -> None:
        """tomllib parses the hand-rendered TOML back to its document."""
        fixture: Fixture = provider.get(Format.TOML, data_size)
        assert TomllibAdapter().parse(fixture.text) == fixture.document

    def test_pyyaml_round_trip(self, provider: FixtureProvider) -> None:
        """PyYAML parses and regenerates the small fixture."""
        adapter: PyyamlAdapter = PyyamlAdapter()
        fixture: Fixture = provider.get(Format.YAML, DataSize.SMALL)
        document: Any = adapter.parse(fixture.text)
        assert document == fixture.document
        assert adapter.parse(adapter.generate(document)) == document
        assert adapter.stream(fixture.text) > 0

    def test_etree_stream_counts_elements(self, provider: FixtureProvider) -> None:
        """iterparse emits one end event per element."""
        fixture: Fixture = provider.get(Format.XML, DataSize.SMALL)
        # config, database(5 children), cache(2 children)
        assert ElementTreeAdapter().stream(fixture.data) == 10

    def test_xml_generate_from_own_tree(self, provider: FixtureProvider) -> None:
        """XML adapters generate from their own parse output."""
        fixture: Fixture = provider.get(Format.XML, DataSize.MEDIUM)
        for adapter in (ElementTreeAdapter(), MinidomAdapter()):
            output: bytes | str = adapter.generate(adapter.parse(fixture.data))
            assert len(output) > 0


# -----------------------------------------------------------------------
# Registry and compatibility rules
# -----------------------------------------------------------------------


RULE: CompatibilityRule = CompatibilityRule(
    format=Format.JSON,
    adapter="missing",
    min_runtime=(3, 13),
    arch="arm64",
    reason="crashes on import",
)


class TestCompatibility:
    """Tests for static compatibility rules."""

    def test_parse_runtime(self) -> None:
        """major.minor is extracted from full versions."""
        assert parse_runtime("3.12.4") == (3, 12)
        assert parse_runtime("3.13.0rc1") == (3, 13)
        with pytest.raises(ValueError, match="cannot parse"):
            parse_runtime("latest")

    def test_rule_matches_range(self) -> None:
        """Rules apply from min_runtime upward on their architecture only."""
        adapter: MissingJsonAdapter = MissingJsonAdapter()
        assert blocking_rule(adapter, "3.13.0", "aarch64", [RULE]) is RULE
        assert blocking_rule(adapter, "3.14.1", "arm64", [RULE]) is RULE
        assert is_compatible(adapter, "3.12.9", "arm64", [RULE])
        assert is_compatible(adapter, "3.13.0", "x86_64", [RULE])

    def test_rule_ignores_other_adapters(self) -> None:
        """A rule names exactly one adapter."""
        assert is_compatible(StdlibJsonAdapter(), "3.13.0", "arm64", [RULE])


class TestAdapterRegistry:
    """Tests for registry queries."""

    def test_default_registry_has_stdlib(self) -> None:
        """The default registry always offers the stdlib codecs."""
        registry: AdapterRegistry = AdapterRegistry()
        assert "json" in [a.name for a in registry.available_adapters(Format.JSON)]
        assert "etree" in [a.name for a in registry.available_adapters(Format.XML)]
        assert "tomllib" in [a.name for a in registry.available_adapters(Format.TOML)]

    def test_unavailable_excluded(self) -> None:
        """Adapters that fail to probe are not offered."""
        registry: AdapterRegistry = AdapterRegistry(
            [StdlibJsonAdapter(), MissingJsonAdapter()],
        )
        assert [a.name for a in registry.available_adapters(Format.JSON)] == ["json"]
        assert len(registry.adapters(Format.JSON)) == 2

    def test_incompatible_never_imported(self) -> None:
        """A rule-blocked adapter is excluded without probing."""
        adapter: MissingJsonAdapter = MissingJsonAdapter()
        registry: AdapterRegistry = AdapterRegistry(
            [adapter], runtime_version="3.13.1", arch="aarch64", rules=[RULE],
        )
        with patch.object(adapter, "probe") as probe:
            assert registry.available_adapters(Format.JSON) == []
        probe.assert_not_called()
        assert registry.incompatible_adapters(Format.JSON) == [(adapter, RULE)]

    def test_arch_normalized(self) -> None:
        """Registry arch uses the normalized spelling."""
        registry: AdapterRegistry = AdapterRegistry([], arch="AMD64")
        assert registry.arch == "x86_64"

    def test_duplicate_rejected(self) -> None:
        """Two adapters with the same format and name are rejected."""
        with pytest.raises(ValueError, match="duplicate adapter json/json"):
            AdapterRegistry([StdlibJsonAdapter(), StdlibJsonAdapter()])

    def test_information_lists_available(self) -> None:
        """information() describes available adapters per format."""
        registry: AdapterRegistry = AdapterRegistry(
            [StdlibJsonAdapter(), MissingJsonAdapter(), TomllibAdapter()],
        )
        names: list[str] = [i.name for i in registry.information([Format.JSON])]
        assert names == ["json"]
