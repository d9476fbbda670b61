"""Codec adapters and the fixed enumeration of known variants.

:data:`KNOWN_ADAPTERS` is the complete list of adapter classes the
registry instantiates by default. Adding a codec means adding a class
and listing it here; nothing is discovered by reflection.
"""

from codecbench.core.adapters.base import Adapter, Generates, Parses, Streams
from codecbench.core.adapters.json_adapters import (
    IjsonAdapter,
    OrjsonAdapter,
    RapidjsonAdapter,
    SimplejsonAdapter,
    StdlibJsonAdapter,
    UjsonAdapter,
)
from codecbench.core.adapters.toml_adapters import (
    TomlAdapter,
    TomliAdapter,
    TomliWAdapter,
    TomlkitAdapter,
    TomllibAdapter,
)
from codecbench.core.adapters.xml_adapters import (
    ElementTreeAdapter,
    LxmlAdapter,
    MinidomAdapter,
    XmltodictAdapter,
)
from codecbench.core.adapters.yaml_adapters import (
    LibyamlAdapter,
    PyyamlAdapter,
    RuamelAdapter,
)

KNOWN_ADAPTERS: tuple[type[Adapter], ...] = (
    StdlibJsonAdapter,
    SimplejsonAdapter,
    OrjsonAdapter,
    UjsonAdapter,
    RapidjsonAdapter,
    IjsonAdapter,
    ElementTreeAdapter,
    MinidomAdapter,
    LxmlAdapter,
    XmltodictAdapter,
    PyyamlAdapter,
    LibyamlAdapter,
    RuamelAdapter,
    TomllibAdapter,
    TomliAdapter,
    TomliWAdapter,
    TomlAdapter,
    TomlkitAdapter,
)

__all__: list[str] = [
    "Adapter",
    "Generates",
    "KNOWN_ADAPTERS",
    "Parses",
    "Streams",
]
