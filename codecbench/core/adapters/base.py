"""Adapter base class and capability protocols.

An adapter wraps exactly one third-party codec behind up to three
independent capabilities:

- :class:`Parses`: ``parse(data) -> document``
- :class:`Generates`: ``generate(document) -> str | bytes``
- :class:`Streams`: ``stream(data) -> int`` (number of events consumed)

Capabilities are declared by implementing the method, nothing else.
``supports_parse`` and friends are derived from protocol membership,
so a read-only codec that has no ``generate`` cannot be asked to
generate by accident.

Availability:
    The backing module is imported lazily on the first :meth:`probe`.
    A missing or broken native library makes the adapter unavailable;
    it never raises out of :meth:`probe`. The outcome is memoized per
    instance, so probing twice never re-imports.

Example:
    >>> from codecbench.core.adapters.json_adapters import StdlibJsonAdapter
    >>> adapter = StdlibJsonAdapter()
    >>> adapter.probe()
    True
    >>> adapter.parse('{"a": 1}')
    {'a': 1}
"""

from __future__ import annotations

import importlib
import importlib.metadata
import logging
from types import ModuleType
from typing import Any, ClassVar, Protocol, runtime_checkable

from codecbench.core.errors import AdapterUnavailable
from codecbench.core.models import AdapterInfo, Format

logger: logging.Logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Capability protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class Parses(Protocol):
    def parse(self, data: bytes | str) -> Any: ...


@runtime_checkable
class Generates(Protocol):
    def generate(self, document: Any) -> bytes | str: ...


@runtime_checkable
class Streams(Protocol):
    def stream(self, data: bytes | str) -> int: ...


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class Adapter:
    """Base class for every codec adapter.

    Subclasses set the class attributes and implement one or more of
    ``parse``, ``generate`` and ``stream``.

    Attributes:
        format: Format handled by the adapter.
        name: Adapter name, unique within a format.
        module_name: Module imported by :meth:`probe`.
        required_symbol: Attribute that must exist on the module for
            the adapter to count as available (e.g. ``CSafeLoader``
            for the libyaml bindings).
        distribution: Distribution name used to look up the version
            when the module has no ``__version__``.
        consumes_text: If True the engine feeds ``str`` payloads,
            otherwise ``bytes``.
    """

    format: ClassVar[Format]
    name: ClassVar[str]
    module_name: ClassVar[str]
    required_symbol: ClassVar[str | None] = None
    distribution: ClassVar[str | None] = None
    consumes_text: ClassVar[bool] = False

    def __init__(self) -> None:
        self._available: bool | None = None
        self._module: ModuleType | None = None
        self._unavailable_reason: str = ""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.format.value}/{self.name}>"

    # -- availability --------------------------------------------------------

    def probe(self) -> bool:
        """Import the backing module once and report availability.

        Returns:
            True if the module imported and exposes ``required_symbol``.
        """
        if self._available is not None:
            return self._available

        try:
            module: ModuleType = importlib.import_module(self.module_name)
        except (ImportError, OSError) as exc:
            self._mark_unavailable(f"{type(exc).__name__}: {exc}")
            logger.debug("Adapter %r unavailable: %s", self, exc)
            return False
        except Exception as exc:
            # Some native extensions fail on import with arbitrary errors.
            self._mark_unavailable(f"{type(exc).__name__}: {exc}")
            logger.warning("Adapter %r failed to import", self, exc_info=True)
            return False

        if self.required_symbol and not hasattr(module, self.required_symbol):
            self._mark_unavailable(
                f"{self.module_name} has no attribute {self.required_symbol}"
            )
            logger.debug("Adapter %r unavailable: missing symbol", self)
            return False

        self._module = module
        self._available = True
        return True

    def _mark_unavailable(self, reason: str) -> None:
        self._available = False
        self._unavailable_reason = reason

    @property
    def unavailable_reason(self) -> str:
        return self._unavailable_reason

    @property
    def module(self) -> ModuleType:
        """Backing module.

        Raises:
            AdapterUnavailable: If the module could not be loaded.
        """
        if not self.probe() or self._module is None:
            raise AdapterUnavailable(self.name, self._unavailable_reason)
        return self._module

    @property
    def version(self) -> str | None:
        if not self.probe():
            return None
        version: Any = getattr(self._module, "__version__", None)
        if isinstance(version, str):
            return version
        if self.distribution:
            try:
                return importlib.metadata.version(self.distribution)
            except importlib.metadata.PackageNotFoundError:
                return None
        return None

    # -- capabilities --------------------------------------------------------

    @property
    def supports_parse(self) -> bool:
        return isinstance(self, Parses)

    @property
    def supports_generate(self) -> bool:
        return isinstance(self, Generates)

    @property
    def supports_streaming(self) -> bool:
        return isinstance(self, Streams)

    def info(self) -> AdapterInfo:
        return AdapterInfo(
            format=self.format,
            name=self.name,
            version=self.version,
            supports_parse=self.supports_parse,
            supports_generate=self.supports_generate,
            supports_streaming=self.supports_streaming,
        )
