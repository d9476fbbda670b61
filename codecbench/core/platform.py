"""Platform fingerprint: the identity of an execution context.

A :class:`PlatformFingerprint` is the aggregation key of the whole
pipeline. Two results with the same ``platform_string`` are considered
two runs of the same environment, so the string must be deterministic
for identical inputs and must change whenever any input changes.

String format::

    {kind}[-{variant}]-{os}-{arch}-python-{runtime_version}

Every segment is lowercased and any character outside ``[a-z0-9._]``
becomes ``_``. The ``-`` separator therefore never appears inside a
segment, which keeps strings with and without a variant apart.

OS/arch detection:
    CI jobs usually know their runner label before the interpreter does
    (cross-architecture runners report emulated machines). When a label
    is supplied it is matched against :data:`RUNNER_LABEL_TABLE`, an
    explicit ordered pattern table. Unknown labels fall back to
    ``platform.system()`` / ``platform.machine()``.

Example:
    >>> fp = PlatformFingerprint.build(
    ...     kind=EnvironmentKind.DOCKER,
    ...     os="linux",
    ...     arch="arm64",
    ...     runtime_version="3.12.4",
    ...     variant="alpine",
    ... )
    >>> fp.platform_string
    'docker-alpine-linux-arm64-python-3.12.4'
    >>> fp.tags
    ['docker', 'linux', 'arm64', 'python-3.12', 'alpine']
"""

from __future__ import annotations

import fnmatch
import logging
import platform
import re

from pydantic import BaseModel, ConfigDict, Field

from codecbench.core.models import EnvironmentKind

logger: logging.Logger = logging.getLogger(__name__)

RUNTIME_LABEL: str = "python"

# Checked in order, first match wins. Patterns are lowercase fnmatch globs.
RUNNER_LABEL_TABLE: tuple[tuple[str, str, str], ...] = (
    ("macos-*-xlarge", "macos", "arm64"),
    ("macos-*-large", "macos", "x86_64"),
    ("macos-12*", "macos", "x86_64"),
    ("macos-13*", "macos", "x86_64"),
    ("macos-14*", "macos", "arm64"),
    ("macos-15*", "macos", "arm64"),
    ("macos-latest", "macos", "arm64"),
    ("ubuntu-*-arm", "linux", "arm64"),
    ("ubuntu-*", "linux", "x86_64"),
    ("windows-*-arm", "windows", "arm64"),
    ("windows-*", "windows", "x86_64"),
)

_UNSAFE_SEGMENT_CHARS: re.Pattern[str] = re.compile(r"[^a-z0-9._]+")


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def sanitize_segment(value: str) -> str:
    """Lowercase ``value`` and replace separator-unsafe characters."""
    cleaned: str = _UNSAFE_SEGMENT_CHARS.sub("_", value.strip().lower())
    return cleaned or "unknown"


def normalize_arch(value: str) -> str:
    arch: str = (value or "").lower()
    if arch in {"x86_64", "amd64", "x64"}:
        return "x86_64"
    if arch in {"arm64", "aarch64", "armv8", "armv8l"}:
        return "arm64"
    if arch in {"i386", "i486", "i586", "i686", "x86"}:
        return "x86"
    return sanitize_segment(arch)


def normalize_os(system: str) -> str:
    return {
        "Linux": "linux",
        "Darwin": "macos",
        "Windows": "windows",
    }.get(system, sanitize_segment(system))


def parse_runner_label(label: str) -> tuple[str, str] | None:
    """Map a CI runner label to ``(os, arch)`` using the explicit table.

    Args:
        label: Runner label such as ``"macos-14"`` or
            ``"ubuntu-24.04-arm"``.

    Returns:
        ``(os, arch)`` for a known label, otherwise ``None``.

    Example:
        >>> parse_runner_label("macos-13")
        ('macos', 'x86_64')
        >>> parse_runner_label("ubuntu-22.04-arm")
        ('linux', 'arm64')
        >>> parse_runner_label("self-hosted") is None
        True
    """
    normalized: str = label.strip().lower()
    for pattern, os_name, arch in RUNNER_LABEL_TABLE:
        if fnmatch.fnmatchcase(normalized, pattern):
            return os_name, arch
    return None


def detect_os_arch(runner_label: str | None = None) -> tuple[str, str]:
    """Resolve ``(os, arch)`` from a runner label or by introspection."""
    if runner_label:
        parsed: tuple[str, str] | None = parse_runner_label(runner_label)
        if parsed is not None:
            return parsed
        logger.info(
            "Unknown runner label %r, falling back to host introspection",
            runner_label,
        )
    return normalize_os(platform.system()), normalize_arch(platform.machine())


def docker_variant(image: str) -> str | None:
    """Derive the image variant from a tag suffix.

    Example:
        >>> docker_variant("python:3.12-alpine")
        'alpine'
        >>> docker_variant("python:3.12") is None
        True
    """
    reference: str = image.rsplit("/", maxsplit=1)[-1]
    if ":" not in reference:
        return None
    tag: str = reference.split(":", maxsplit=1)[1]
    _, _, suffix = tag.partition("-")
    return sanitize_segment(suffix) if suffix else None


def runtime_series(runtime_version: str) -> str:
    """``major.minor`` part of a version string."""
    return ".".join(runtime_version.split(".")[:2])


# ---------------------------------------------------------------------------
# Fingerprint
# ---------------------------------------------------------------------------


class PlatformFingerprint(BaseModel):
    """Canonical identity of an execution context.

    Use :meth:`build` or :func:`detect_fingerprint` rather than setting
    ``platform_string`` by hand.

    Attributes:
        platform_string: Derived aggregation key.
        kind: local, docker or asdf.
        os: Normalized operating system (``linux``, ``macos``,
            ``windows``).
        arch: Normalized architecture (``x86_64``, ``arm64``).
        runtime_version: Full interpreter version (``3.12.4``).
        variant: Docker image variant (``slim``, ``alpine``), if any.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    platform_string: str = Field(min_length=1, description="Aggregation key")
    kind: EnvironmentKind = Field(description="Environment kind")
    os: str = Field(description="Normalized OS")
    arch: str = Field(description="Normalized architecture")
    runtime_version: str = Field(description="Interpreter version")
    variant: str | None = Field(default=None, description="Image variant")

    @staticmethod
    def compose(
        kind: EnvironmentKind,
        os: str,
        arch: str,
        runtime_version: str,
        variant: str | None = None,
    ) -> str:
        segments: list[str] = [kind.value]
        if variant:
            segments.append(sanitize_segment(variant))
        segments.extend(
            [
                sanitize_segment(os),
                sanitize_segment(arch),
                RUNTIME_LABEL,
                sanitize_segment(runtime_version),
            ]
        )
        return "-".join(segments)

    @classmethod
    def build(
        cls,
        kind: EnvironmentKind,
        os: str,
        arch: str,
        runtime_version: str,
        variant: str | None = None,
    ) -> "PlatformFingerprint":
        return cls(
            platform_string=cls.compose(kind, os, arch, runtime_version, variant),
            kind=kind,
            os=os,
            arch=arch,
            runtime_version=runtime_version,
            variant=variant,
        )

    @property
    def tags(self) -> list[str]:
        """Deterministic tags: kind, os, arch, runtime series, variant."""
        tags: list[str] = [
            self.kind.value,
            self.os,
            self.arch,
            f"{RUNTIME_LABEL}-{runtime_series(self.runtime_version)}",
        ]
        if self.variant:
            tags.append(self.variant)
        return tags


def detect_fingerprint(
    kind: EnvironmentKind,
    *,
    runner_label: str | None = None,
    variant: str | None = None,
    runtime_version: str | None = None,
) -> PlatformFingerprint:
    """Fingerprint the running process.

    Args:
        kind: Environment kind the process runs under.
        runner_label: Optional CI runner label.
        variant: Optional image variant.
        runtime_version: Override the interpreter version. Defaults to
            ``platform.python_version()``.

    Returns:
        :class:`PlatformFingerprint` for this process.
    """
    os_name, arch = detect_os_arch(runner_label)
    return PlatformFingerprint.build(
        kind=kind,
        os=os_name,
        arch=arch,
        runtime_version=runtime_version or platform.python_version(),
        variant=variant,
    )
