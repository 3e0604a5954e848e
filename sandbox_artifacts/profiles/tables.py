"""Static resolver tables.

The QEMU feature tables per build profile, the per-architecture toolchain
table and the host package lists. Everything here is built once at import
time and never mutated.

Enabled features are nested across profiles (minimal <= default <= full).
That is maintained by hand and checked by the test suite.
"""

from types import MappingProxyType
from typing import Mapping

from sandbox_artifacts.profiles.schema import FeatureDirective, ToolchainSchema
from sandbox_artifacts.types import (
    Architecture,
    BuildProfile,
    FeatureState,
    LibcVariant,
)


def _enable(*names: str) -> tuple[FeatureDirective, ...]:
    return tuple(FeatureDirective(name=n, state=FeatureState.ENABLED) for n in names)


def _disable(*names: str) -> tuple[FeatureDirective, ...]:
    return tuple(FeatureDirective(name=n, state=FeatureState.DISABLED) for n in names)


# Applied to every profile, ahead of the profile's own directives
BASE_DIRECTIVES: tuple[FeatureDirective, ...] = _enable("kvm") + _disable("werror")

GUI_FEATURES = ("gtk", "sdl", "vnc", "opengl", "spice", "cocoa", "curses")
REMOTE_DISPLAY_FEATURES = frozenset({"vnc", "spice"})

_MINIMAL: tuple[FeatureDirective, ...] = (
    # user-mode networking only
    _enable("slirp")
    + _disable(*GUI_FEATURES)
    # storage backends and image formats
    + _disable(
        "rbd",
        "glusterfs",
        "libiscsi",
        "libnfs",
        "vvfat",
        "vdi",
        "vhdx",
        "vmdk",
        "vpc",
        "cloop",
        "dmg",
        "qcow1",
        "parallels",
    )
    + _disable("usb-redir", "libusb", "smartcard")
    + _disable("tpm", "numa", "xen", "rdma")
    + _disable("alsa", "pa", "oss", "jack", "sndio")
    + _disable("docs", "tools", "guest-agent")
)

_DEFAULT: tuple[FeatureDirective, ...] = (
    _enable("slirp")
    + _disable(*GUI_FEATURES)
    + _disable("rbd", "glusterfs", "libiscsi", "libnfs")
    + _disable("usb-redir", "libusb", "smartcard")
    + _disable("tpm", "numa", "xen", "rdma")
    + _disable("alsa", "pa", "oss", "jack")
    + _disable("docs", "guest-agent")
)

# Everything upstream auto-detects stays on; docs are still skipped
_FULL: tuple[FeatureDirective, ...] = _enable("slirp") + _disable("docs")

PROFILE_DIRECTIVES: Mapping[BuildProfile, tuple[FeatureDirective, ...]] = (
    MappingProxyType(
        {
            BuildProfile.MINIMAL: BASE_DIRECTIVES + _MINIMAL,
            BuildProfile.DEFAULT: BASE_DIRECTIVES + _DEFAULT,
            BuildProfile.FULL: BASE_DIRECTIVES + _FULL,
        }
    )
)

TOOLCHAINS: Mapping[Architecture, ToolchainSchema] = MappingProxyType(
    {
        Architecture.AMD64: ToolchainSchema(
            architecture=Architecture.AMD64,
            kernel_arch="x86_64",
            cross_compile="",
            kernel_image="arch/x86_64/boot/bzImage",
            kernel_target="bzImage",
            host_triple=None,
            qemu_target="x86_64-softmmu",
            qemu_binary="qemu-system-x86_64",
            debian_arch="amd64",
        ),
        Architecture.ARM64: ToolchainSchema(
            architecture=Architecture.ARM64,
            kernel_arch="arm64",
            cross_compile="aarch64-linux-gnu-",
            kernel_image="arch/arm64/boot/Image",
            kernel_target="Image",
            host_triple="aarch64-linux-gnu",
            qemu_target="aarch64-softmmu",
            qemu_binary="qemu-system-aarch64",
            debian_arch="arm64",
        ),
    }
)

# Package names are Debian's; hostdeps translates them for other distros.
BASE_BUILD_PACKAGES: tuple[str, ...] = (
    "build-essential",
    "pkg-config",
    "ninja-build",
    "python3",
    "python3-pip",
    "git",
    "wget",
    "curl",
)

QEMU_LIBRARY_PACKAGES: tuple[str, ...] = (
    "libglib2.0-dev",
    "libpixman-1-dev",
    "libslirp-dev",
    "libcap-ng-dev",
    "libattr1-dev",
    "flex",
    "bison",
)

LIBC_PACKAGES: Mapping[LibcVariant, tuple[str, ...]] = MappingProxyType(
    {
        LibcVariant.GLIBC: (),
        # musl-tools ships the musl-gcc wrapper used as the --cc override
        LibcVariant.MUSL: ("musl-tools", "musl-dev"),
    }
)

MUSL_CC = "musl-gcc"

LINK_FLAGS: Mapping[LibcVariant, tuple[str, ...]] = MappingProxyType(
    {
        # glibc cannot be linked fully statically; the result is mostly-static
        LibcVariant.GLIBC: ("--static",),
        LibcVariant.MUSL: ("--static", f"--cc={MUSL_CC}"),
    }
)

KERNEL_BUILD_PACKAGES: tuple[str, ...] = (
    "build-essential",
    "bc",
    "bison",
    "flex",
    "libelf-dev",
    "libssl-dev",
    "libncurses-dev",
    "kmod",
    "cpio",
    "wget",
    "xz-utils",
    "git",
    "fakeroot",
    "dwarves",
    "rsync",
    "python3",
)

KERNEL_CROSS_PACKAGES: Mapping[Architecture, tuple[str, ...]] = MappingProxyType(
    {
        Architecture.AMD64: (),
        Architecture.ARM64: ("gcc-aarch64-linux-gnu", "binutils-aarch64-linux-gnu"),
    }
)

E2FSPROGS_BUILD_PACKAGES: tuple[str, ...] = (
    "build-essential",
    "curl",
    "wget",
    "pkg-config",
    "libblkid-dev",
    "uuid-dev",
    "libssl-dev",
)

E2FSPROGS_CROSS_PACKAGES: Mapping[Architecture, tuple[str, ...]] = MappingProxyType(
    {
        Architecture.AMD64: (),
        Architecture.ARM64: ("crossbuild-essential-arm64",),
    }
)


__all__ = [
    "BASE_BUILD_PACKAGES",
    "BASE_DIRECTIVES",
    "E2FSPROGS_BUILD_PACKAGES",
    "E2FSPROGS_CROSS_PACKAGES",
    "GUI_FEATURES",
    "KERNEL_BUILD_PACKAGES",
    "KERNEL_CROSS_PACKAGES",
    "LIBC_PACKAGES",
    "LINK_FLAGS",
    "MUSL_CC",
    "PROFILE_DIRECTIVES",
    "QEMU_LIBRARY_PACKAGES",
    "REMOTE_DISPLAY_FEATURES",
    "TOOLCHAINS",
]
