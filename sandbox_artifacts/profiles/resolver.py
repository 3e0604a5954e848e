"""Build profile resolver.

Turns (architecture, profile, libc variant) into an immutable
ResolvedConfig: the ordered QEMU configure directives, the link flags,
the architecture's toolchain and the host packages the build needs.

The resolver is a pure table lookup. It performs no I/O and reads no
environment, so identical inputs always produce identical output.
Inputs are validated before anything is assembled; a failed resolve
never returns a partial configuration.
"""

from collections.abc import Iterable

from sandbox_artifacts.profiles.schema import ResolvedConfig
from sandbox_artifacts.profiles.tables import (
    BASE_BUILD_PACKAGES,
    LIBC_PACKAGES,
    LINK_FLAGS,
    PROFILE_DIRECTIVES,
    QEMU_LIBRARY_PACKAGES,
    TOOLCHAINS,
)
from sandbox_artifacts.types import Architecture, BuildProfile, LibcVariant


class ResolverError(ValueError):
    """Base class for resolver validation failures."""

    code = "resolver_error"

    def __init__(self, value: object, valid: Iterable[str]) -> None:
        self.value = value
        self.valid = sorted(valid)
        super().__init__(self._describe())

    def _describe(self) -> str:
        return f"Invalid value {self.value!r}. Valid values: {', '.join(self.valid)}"


class UnsupportedArchitecture(ResolverError):
    """Raised when the requested architecture is not supported."""

    code = "unsupported_architecture"

    def _describe(self) -> str:
        return (
            f"Unsupported architecture: {self.value!r}. "
            f"Valid architectures: {', '.join(self.valid)}"
        )


class UnsupportedProfile(ResolverError):
    """Raised when the requested build profile is not supported."""

    code = "unsupported_profile"

    def _describe(self) -> str:
        return (
            f"Unsupported build profile: {self.value!r}. "
            f"Valid profiles: {', '.join(self.valid)}"
        )


class UnsupportedLibcVariant(ResolverError):
    """Raised when the requested libc variant is not supported."""

    code = "unsupported_libc"

    def _describe(self) -> str:
        return (
            f"Unsupported libc variant: {self.value!r}. "
            f"Valid variants: {', '.join(self.valid)}"
        )


def parse_architecture(value: Architecture | str) -> Architecture:
    """Parse an architecture name.

    Raises:
        UnsupportedArchitecture: If the value is not a supported architecture.
    """
    try:
        return Architecture(value)
    except ValueError:
        raise UnsupportedArchitecture(value, (a.value for a in Architecture)) from None


def parse_profile(value: BuildProfile | str) -> BuildProfile:
    """Parse a build profile name.

    Raises:
        UnsupportedProfile: If the value is not a supported profile.
    """
    try:
        return BuildProfile(value)
    except ValueError:
        raise UnsupportedProfile(value, (p.value for p in BuildProfile)) from None


def parse_libc(value: LibcVariant | str) -> LibcVariant:
    """Parse a libc variant name.

    Raises:
        UnsupportedLibcVariant: If the value is not a supported variant.
    """
    try:
        return LibcVariant(value)
    except ValueError:
        raise UnsupportedLibcVariant(value, (v.value for v in LibcVariant)) from None


def merge_packages(*groups: Iterable[str]) -> tuple[str, ...]:
    """Union package groups, keeping first-seen order and dropping duplicates."""
    seen: dict[str, None] = {}
    for group in groups:
        for pkg in group:
            seen.setdefault(pkg, None)
    return tuple(seen)


def resolve(
    architecture: Architecture | str,
    profile: BuildProfile | str,
    libc: LibcVariant | str = LibcVariant.GLIBC,
) -> ResolvedConfig:
    """Resolve the build configuration for one invocation.

    Args:
        architecture: Target architecture ('amd64' or 'arm64').
        profile: QEMU build profile ('minimal', 'default' or 'full').
        libc: C library variant ('glibc' or 'musl').

    Returns:
        Immutable ResolvedConfig.

    Raises:
        UnsupportedArchitecture: If architecture is not supported.
        UnsupportedProfile: If profile is not supported.
        UnsupportedLibcVariant: If libc is not supported.
    """
    arch = parse_architecture(architecture)
    build_profile = parse_profile(profile)
    libc_variant = parse_libc(libc)

    return ResolvedConfig(
        architecture=arch,
        profile=build_profile,
        libc=libc_variant,
        directives=PROFILE_DIRECTIVES[build_profile],
        link_flags=LINK_FLAGS[libc_variant],
        toolchain=TOOLCHAINS[arch],
        packages=merge_packages(
            BASE_BUILD_PACKAGES,
            QEMU_LIBRARY_PACKAGES,
            LIBC_PACKAGES[libc_variant],
        ),
    )


__all__ = [
    "ResolverError",
    "UnsupportedArchitecture",
    "UnsupportedLibcVariant",
    "UnsupportedProfile",
    "merge_packages",
    "parse_architecture",
    "parse_libc",
    "parse_profile",
    "resolve",
]
