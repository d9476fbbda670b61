"""YAML adapters.

PyYAML is registered twice: once with the pure-Python safe loader and
once with the libyaml bindings. The libyaml variant is only available
when PyYAML was built against libyaml (``yaml.CSafeLoader`` exists).
"""

from __future__ import annotations

import io
from typing import Any

from codecbench.core.adapters.base import Adapter
from codecbench.core.models import Format


class PyyamlAdapter(Adapter):
    format = Format.YAML
    name = "pyyaml"
    module_name = "yaml"
    distribution = "PyYAML"
    consumes_text = True

    def parse(self, data: bytes | str) -> Any:
        return self.module.load(data, Loader=self.module.SafeLoader)

    def generate(self, document: Any) -> str:
        return self.module.dump(document, Dumper=self.module.SafeDumper)

    def stream(self, data: bytes | str) -> int:
        count: int = 0
        for _ in self.module.parse(data, Loader=self.module.SafeLoader):
            count += 1
        return count


class LibyamlAdapter(Adapter):
    format = Format.YAML
    name = "pyyaml-libyaml"
    module_name = "yaml"
    required_symbol = "CSafeLoader"
    distribution = "PyYAML"
    consumes_text = True

    def parse(self, data: bytes | str) -> Any:
        return self.module.load(data, Loader=self.module.CSafeLoader)

    def generate(self, document: Any) -> str:
        return self.module.dump(document, Dumper=self.module.CSafeDumper)

    def stream(self, data: bytes | str) -> int:
        count: int = 0
        for _ in self.module.parse(data, Loader=self.module.CSafeLoader):
            count += 1
        return count


class RuamelAdapter(Adapter):
    format = Format.YAML
    name = "ruamel"
    module_name = "ruamel.yaml"
    distribution = "ruamel.yaml"
    consumes_text = True

    def parse(self, data: bytes | str) -> Any:
        return self.module.YAML(typ="safe").load(data)

    def generate(self, document: Any) -> str:
        buffer: io.StringIO = io.StringIO()
        self.module.YAML(typ="safe").dump(document, buffer)
        return buffer.getvalue()
