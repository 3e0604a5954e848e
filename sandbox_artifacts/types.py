"""Shared type definitions for sandbox_artifacts.

This module contains enums and dataclasses shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum


class Architecture(str, Enum):
    """Target architecture of a build."""

    AMD64 = "amd64"
    ARM64 = "arm64"


class BuildProfile(str, Enum):
    """Named preset of QEMU configure features."""

    MINIMAL = "minimal"
    DEFAULT = "default"
    FULL = "full"


class LibcVariant(str, Enum):
    """C library the static QEMU build links against."""

    GLIBC = "glibc"
    MUSL = "musl"


class FeatureState(str, Enum):
    """State requested for a single configure feature."""

    ENABLED = "enabled"
    DISABLED = "disabled"


class Severity(str, Enum):
    """Importance of a kernel configuration check."""

    REQUIRED = "required"
    RECOMMENDED = "recommended"


@dataclass
class StepResult:
    """Result of a single build step (one external command)."""

    name: str
    command: str
    exit_code: int
    log_path: str
    duration_seconds: float


@dataclass
class ArtifactInfo:
    """Information about a bundled artifact."""

    filename: str
    relative_path: str
    size_bytes: int
    sha256: str
    kind: str | None = None
    labels: list[str] = field(default_factory=list)


__all__ = [
    "Architecture",
    "ArtifactInfo",
    "BuildProfile",
    "FeatureState",
    "LibcVariant",
    "Severity",
    "StepResult",
]
