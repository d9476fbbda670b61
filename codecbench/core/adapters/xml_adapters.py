"""XML adapters.

Generation always receives the adapter's own parse output (an
``Element`` for ElementTree and lxml, a ``Document`` for minidom, a
dict for xmltodict), so every adapter emits its native tree type.
"""

from __future__ import annotations

import io
from typing import Any

from codecbench.core.adapters.base import Adapter
from codecbench.core.models import Format


def _as_bytes(data: bytes | str) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else data


class ElementTreeAdapter(Adapter):
    format = Format.XML
    name = "etree"
    module_name = "xml.etree.ElementTree"

    def parse(self, data: bytes | str) -> Any:
        return self.module.fromstring(data)

    def generate(self, document: Any) -> bytes:
        return self.module.tostring(document, encoding="utf-8")

    def stream(self, data: bytes | str) -> int:
        count: int = 0
        for _, element in self.module.iterparse(io.BytesIO(_as_bytes(data))):
            count += 1
            element.clear()
        return count


class MinidomAdapter(Adapter):
    format = Format.XML
    name = "minidom"
    module_name = "xml.dom.minidom"

    def parse(self, data: bytes | str) -> Any:
        return self.module.parseString(data)

    def generate(self, document: Any) -> str:
        return document.toxml()


class LxmlAdapter(Adapter):
    format = Format.XML
    name = "lxml"
    module_name = "lxml.etree"
    distribution = "lxml"

    def parse(self, data: bytes | str) -> Any:
        return self.module.fromstring(_as_bytes(data))

    def generate(self, document: Any) -> bytes:
        return self.module.tostring(document, encoding="utf-8")

    def stream(self, data: bytes | str) -> int:
        count: int = 0
        for _, element in self.module.iterparse(io.BytesIO(_as_bytes(data))):
            count += 1
            element.clear()
        return count


class XmltodictAdapter(Adapter):
    format = Format.XML
    name = "xmltodict"
    module_name = "xmltodict"
    distribution = "xmltodict"

    def parse(self, data: bytes | str) -> Any:
        return self.module.parse(data)

    def generate(self, document: Any) -> str:
        return self.module.unparse(document)
