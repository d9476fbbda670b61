"""Adapter registry with static compatibility rules.

The registry answers one question: which adapters can be used for a
format in *this* process. It never raises for an unusable adapter.
An adapter is excluded when either

1. a :class:`CompatibilityRule` matches the current runtime version and
   architecture, checked *before* any import is attempted, or
2. its lazy :meth:`~codecbench.core.adapters.base.Adapter.probe` fails.

Rules exist for codecs known to take the whole interpreter down on
specific runtimes. Such a crash cannot be caught in-process, so the
only safe handling is never importing the library there.

Example:
    >>> registry = AdapterRegistry()
    >>> [a.name for a in registry.available_adapters(Format.JSON)][:1]
    ['json']
"""

from __future__ import annotations

import logging
import platform
import re
from typing import Iterable, NamedTuple

from codecbench.core.adapters import KNOWN_ADAPTERS, Adapter
from codecbench.core.models import AdapterInfo, Format
from codecbench.core.platform import normalize_arch

logger: logging.Logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Compatibility rules
# ---------------------------------------------------------------------------


class CompatibilityRule(NamedTuple):
    """Static exclusion of one adapter on a runtime/architecture range.

    Attributes:
        format: Adapter format.
        adapter: Adapter name.
        min_runtime: First ``(major, minor)`` the rule applies to.
        arch: Architecture the rule applies to, ``None`` for all.
        reason: Operator-facing explanation.
    """

    format: Format
    adapter: str
    min_runtime: tuple[int, int]
    arch: str | None
    reason: str

    def matches(self, adapter: Adapter, runtime: tuple[int, int], arch: str) -> bool:
        if adapter.format is not self.format or adapter.name != self.adapter:
            return False
        if runtime < self.min_runtime:
            return False
        return self.arch is None or self.arch == arch


KNOWN_INCOMPATIBLE: tuple[CompatibilityRule, ...] = (
    CompatibilityRule(
        format=Format.JSON,
        adapter="rapidjson",
        min_runtime=(3, 13),
        arch="arm64",
        reason="native extension aborts the interpreter on arm64 with 3.13+",
    ),
)

_RUNTIME_RE: re.Pattern[str] = re.compile(r"^(\d+)\.(\d+)")


def parse_runtime(version: str) -> tuple[int, int]:
    """Parse ``major.minor`` from a version string.

    Raises:
        ValueError: If the string does not start with ``major.minor``.

    Example:
        >>> parse_runtime("3.13.0rc1")
        (3, 13)
    """
    match: re.Match[str] | None = _RUNTIME_RE.match(version)
    if match is None:
        raise ValueError(f"cannot parse runtime version {version!r}")
    return int(match.group(1)), int(match.group(2))


def blocking_rule(
    adapter: Adapter,
    runtime_version: str,
    arch: str,
    rules: Iterable[CompatibilityRule] = KNOWN_INCOMPATIBLE,
) -> CompatibilityRule | None:
    """First rule that excludes ``adapter`` here, or ``None``."""
    runtime: tuple[int, int] = parse_runtime(runtime_version)
    normalized_arch: str = normalize_arch(arch)
    for rule in rules:
        if rule.matches(adapter, runtime, normalized_arch):
            return rule
    return None


def is_compatible(
    adapter: Adapter,
    runtime_version: str,
    arch: str,
    rules: Iterable[CompatibilityRule] = KNOWN_INCOMPATIBLE,
) -> bool:
    return blocking_rule(adapter, runtime_version, arch, rules) is None


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class AdapterRegistry:
    """Fixed set of adapter instances, one per ``(format, name)``.

    Args:
        adapters: Adapter instances. Defaults to one instance of each
            class in :data:`KNOWN_ADAPTERS`.
        runtime_version: Version used for compatibility rules.
            Defaults to the running interpreter.
        arch: Architecture used for compatibility rules. Defaults to
            ``platform.machine()``.
        rules: Compatibility rules. Defaults to
            :data:`KNOWN_INCOMPATIBLE`.

    Raises:
        ValueError: If two adapters share a ``(format, name)`` pair.
    """

    def __init__(
        self,
        adapters: Iterable[Adapter] | None = None,
        *,
        runtime_version: str | None = None,
        arch: str | None = None,
        rules: Iterable[CompatibilityRule] = KNOWN_INCOMPATIBLE,
    ) -> None:
        self._adapters: list[Adapter] = (
            list(adapters) if adapters is not None
            else [cls() for cls in KNOWN_ADAPTERS]
        )
        self._runtime_version: str = runtime_version or platform.python_version()
        self._arch: str = normalize_arch(arch or platform.machine())
        self._rules: tuple[CompatibilityRule, ...] = tuple(rules)

        seen: set[tuple[Format, str]] = set()
        for adapter in self._adapters:
            key: tuple[Format, str] = (adapter.format, adapter.name)
            if key in seen:
                raise ValueError(
                    f"duplicate adapter {adapter.format.value}/{adapter.name}"
                )
            seen.add(key)

    @property
    def runtime_version(self) -> str:
        return self._runtime_version

    @property
    def arch(self) -> str:
        return self._arch

    def adapters(self, format: Format | None = None) -> list[Adapter]:
        """Registered adapters, available or not."""
        if format is None:
            return list(self._adapters)
        return [a for a in self._adapters if a.format is format]

    def blocking_rule(self, adapter: Adapter) -> CompatibilityRule | None:
        return blocking_rule(adapter, self._runtime_version, self._arch, self._rules)

    def probe(self, adapter: Adapter) -> bool:
        """Availability of ``adapter``, consulting compatibility rules first.

        An adapter excluded by a rule is never imported.
        """
        rule: CompatibilityRule | None = self.blocking_rule(adapter)
        if rule is not None:
            logger.debug("Skipping %r: %s", adapter, rule.reason)
            return False
        return adapter.probe()

    def available_adapters(self, format: Format) -> list[Adapter]:
        """Adapters for ``format`` that are usable in this process."""
        return [a for a in self.adapters(format) if self.probe(a)]

    def incompatible_adapters(
        self, format: Format,
    ) -> list[tuple[Adapter, CompatibilityRule]]:
        """Adapters for ``format`` excluded by a compatibility rule."""
        excluded: list[tuple[Adapter, CompatibilityRule]] = []
        for adapter in self.adapters(format):
            rule: CompatibilityRule | None = self.blocking_rule(adapter)
            if rule is not None:
                excluded.append((adapter, rule))
        return excluded

    def information(self, formats: Iterable[Format]) -> list[AdapterInfo]:
        """Descriptors of every available adapter for ``formats``."""
        infos: list[AdapterInfo] = []
        for format in formats:
            infos.extend(a.info() for a in self.available_adapters(format))
        return infos
