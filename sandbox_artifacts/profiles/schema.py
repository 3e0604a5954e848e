"""Pydantic models for resolved build configuration.

This module defines the immutable value types produced by the profile
resolver: feature directives, the per-architecture toolchain description
and the resolved configuration itself. All models are frozen so a
resolved configuration can be handed to every build step without being
changed along the way.
"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sandbox_artifacts.types import (
    Architecture,
    BuildProfile,
    FeatureState,
    LibcVariant,
)

# QEMU meson option names: lowercase words joined by '-'
FEATURE_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9\-]*$")


class FeatureDirective(BaseModel):
    """A single enable/disable request for one named configure feature.

    Attributes:
        name: Feature name as understood by QEMU's configure (e.g., 'slirp').
        state: Whether the feature is enabled or disabled.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(description="Configure feature name")
    state: FeatureState = Field(description="Requested state")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate name is a bare configure feature name."""
        if not FEATURE_NAME_PATTERN.match(v):
            raise ValueError(
                f"feature name must match {FEATURE_NAME_PATTERN.pattern}, got '{v}'"
            )
        return v

    @property
    def enabled(self) -> bool:
        """Return True if the directive enables its feature."""
        return self.state is FeatureState.ENABLED

    def as_flag(self) -> str:
        """Render as a configure command-line flag."""
        verb = "enable" if self.enabled else "disable"
        return f"--{verb}-{self.name}"


class ToolchainSchema(BaseModel):
    """Architecture-specific toolchain and output conventions.

    Attributes:
        architecture: Architecture this toolchain targets.
        kernel_arch: Value passed as ARCH= to the kernel build.
        cross_compile: CROSS_COMPILE prefix ('' for a native build).
        kernel_image: Kernel image path relative to the kernel source tree.
        kernel_target: Kernel make target producing the image.
        host_triple: autotools --host triple for e2fsprogs (None when native).
        qemu_target: Default QEMU softmmu target for this architecture.
        qemu_binary: Name of the matching qemu-system binary.
        debian_arch: Debian installer architecture name for the initrd.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    architecture: Architecture
    kernel_arch: str
    cross_compile: str = ""
    kernel_image: str
    kernel_target: str
    host_triple: str | None = None
    qemu_target: str
    qemu_binary: str
    debian_arch: str

    @property
    def is_cross(self) -> bool:
        """Return True if building for this architecture needs a cross toolchain."""
        return bool(self.cross_compile)

    @property
    def cross_cc(self) -> str | None:
        """Return the cross C compiler name, or None when native."""
        if self.host_triple is None:
            return None
        return f"{self.host_triple}-gcc"


class ResolvedConfig(BaseModel):
    """Fully resolved build configuration for one invocation.

    Attributes:
        architecture: Selected target architecture.
        profile: Selected QEMU build profile.
        libc: Selected C library variant.
        directives: Ordered configure feature directives.
        link_flags: Link-mode configure flags appended after the directives.
        toolchain: Architecture-specific toolchain description.
        packages: Host packages needed for the QEMU build.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    architecture: Architecture
    profile: BuildProfile
    libc: LibcVariant
    directives: tuple[FeatureDirective, ...]
    link_flags: tuple[str, ...]
    toolchain: ToolchainSchema
    packages: tuple[str, ...]

    def feature_flags(self) -> list[str]:
        """Render the directives as configure flags, in order."""
        return [d.as_flag() for d in self.directives]

    def enabled_features(self) -> set[str]:
        """Return the names of features left enabled after last-write-wins."""
        return {
            name
            for name, state in effective_states(self.directives).items()
            if state is FeatureState.ENABLED
        }

    def configure_args(self, prefix: str, targets: list[str] | None = None) -> list[str]:
        """Compose the full argument list for QEMU's configure script.

        The prefix and target list are supplied by the caller; the resolver
        contributes only directives and link flags.

        Args:
            prefix: Installation prefix (absolute path).
            targets: Softmmu targets; defaults to the architecture's own target.

        Returns:
            Arguments to pass after the configure script path.
        """
        target_list = targets or [self.toolchain.qemu_target]
        args = [f"--prefix={prefix}", f"--target-list={','.join(target_list)}"]
        args.extend(self.feature_flags())
        args.extend(self.link_flags)
        return args


def effective_states(
    directives: tuple[FeatureDirective, ...] | list[FeatureDirective],
) -> dict[str, FeatureState]:
    """Collapse a directive sequence to one state per feature name.

    Later directives for the same name override earlier ones.

    Args:
        directives: Ordered directives.

    Returns:
        Mapping of feature name to its final state, in first-seen order.
    """
    states: dict[str, FeatureState] = {}
    for directive in directives:
        states[directive.name] = directive.state
    return states


__all__ = [
    "FEATURE_NAME_PATTERN",
    "FeatureDirective",
    "ResolvedConfig",
    "ToolchainSchema",
    "effective_states",
]
