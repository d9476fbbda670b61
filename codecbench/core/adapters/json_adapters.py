"""JSON adapters."""

from __future__ import annotations

import io
from typing import Any

from codecbench.core.adapters.base import Adapter
from codecbench.core.models import Format


class StdlibJsonAdapter(Adapter):
    format = Format.JSON
    name = "json"
    module_name = "json"
    consumes_text = True

    def parse(self, data: bytes | str) -> Any:
        return self.module.loads(data)

    def generate(self, document: Any) -> str:
        return self.module.dumps(document)


class SimplejsonAdapter(Adapter):
    format = Format.JSON
    name = "simplejson"
    module_name = "simplejson"
    consumes_text = True

    def parse(self, data: bytes | str) -> Any:
        return self.module.loads(data)

    def generate(self, document: Any) -> str:
        return self.module.dumps(document)


class OrjsonAdapter(Adapter):
    format = Format.JSON
    name = "orjson"
    module_name = "orjson"
    distribution = "orjson"

    def parse(self, data: bytes | str) -> Any:
        return self.module.loads(data)

    def generate(self, document: Any) -> bytes:
        return self.module.dumps(document)


class UjsonAdapter(Adapter):
    format = Format.JSON
    name = "ujson"
    module_name = "ujson"
    distribution = "ujson"
    consumes_text = True

    def parse(self, data: bytes | str) -> Any:
        return self.module.loads(data)

    def generate(self, document: Any) -> str:
        return self.module.dumps(document)


class RapidjsonAdapter(Adapter):
    format = Format.JSON
    name = "rapidjson"
    module_name = "rapidjson"
    distribution = "python-rapidjson"
    consumes_text = True

    def parse(self, data: bytes | str) -> Any:
        return self.module.loads(data)

    def generate(self, document: Any) -> str:
        return self.module.dumps(document)


class IjsonAdapter(Adapter):
    """Event-streaming reader; it cannot build or emit whole documents."""

    format = Format.JSON
    name = "ijson"
    module_name = "ijson"
    distribution = "ijson"

    def stream(self, data: bytes | str) -> int:
        raw: bytes = data.encode("utf-8") if isinstance(data, str) else data
        count: int = 0
        for _ in self.module.parse(io.BytesIO(raw)):
            count += 1
        return count
