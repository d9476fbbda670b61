"""TOML adapters.

``tomllib`` and ``tomli`` only read; ``tomli_w`` only writes. The
write-only adapter is fed the fixture's canonical document, since it
has no parse output of its own.
"""

from __future__ import annotations

from typing import Any

from codecbench.core.adapters.base import Adapter
from codecbench.core.models import Format


class TomllibAdapter(Adapter):
    format = Format.TOML
    name = "tomllib"
    module_name = "tomllib"
    consumes_text = True

    def parse(self, data: bytes | str) -> Any:
        return self.module.loads(data)


class TomliAdapter(Adapter):
    format = Format.TOML
    name = "tomli"
    module_name = "tomli"
    distribution = "tomli"
    consumes_text = True

    def parse(self, data: bytes | str) -> Any:
        return self.module.loads(data)


class TomliWAdapter(Adapter):
    format = Format.TOML
    name = "tomli-w"
    module_name = "tomli_w"
    distribution = "tomli-w"

    def generate(self, document: Any) -> str:
        return self.module.dumps(document)


class TomlAdapter(Adapter):
    format = Format.TOML
    name = "toml"
    module_name = "toml"
    distribution = "toml"
    consumes_text = True

    def parse(self, data: bytes | str) -> Any:
        return self.module.loads(data)

    def generate(self, document: Any) -> str:
        return self.module.dumps(document)


class TomlkitAdapter(Adapter):
    format = Format.TOML
    name = "tomlkit"
    module_name = "tomlkit"
    distribution = "tomlkit"
    consumes_text = True

    def parse(self, data: bytes | str) -> Any:
        return self.module.parse(data)

    def generate(self, document: Any) -> str:
        return self.module.dumps(document)
