"""Host build dependency installation.

Package lists are written with Debian package names. This module detects
the host distribution, translates the names for its package manager and
runs the install.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

OS_RELEASE_PATH = Path("/etc/os-release")
DEBIAN_VERSION_PATH = Path("/etc/debian_version")
REDHAT_RELEASE_PATH = Path("/etc/redhat-release")

DEBIAN_FAMILY = frozenset({"debian", "ubuntu"})
REDHAT_FAMILY = frozenset({"fedora", "rhel", "centos"})
ARCH_FAMILY = frozenset({"arch", "manjaro"})

# Debian name -> Fedora names; an empty tuple drops the package.
REDHAT_PACKAGE_NAMES: dict[str, tuple[str, ...]] = {
    "build-essential": ("gcc", "gcc-c++", "make"),
    "libglib2.0-dev": ("glib2-devel",),
    "libpixman-1-dev": ("pixman-devel",),
    "libslirp-dev": ("libslirp-devel",),
    "libcap-ng-dev": ("libcap-ng-devel",),
    "libattr1-dev": ("libattr-devel",),
    "libelf-dev": ("elfutils-libelf-devel",),
    "libssl-dev": ("openssl-devel",),
    "libncurses-dev": ("ncurses-devel",),
    "libblkid-dev": ("libblkid-devel",),
    "uuid-dev": ("libuuid-devel",),
    "xz-utils": ("xz",),
    # musl is not packaged for RHEL-family hosts
    "musl-tools": (),
    "musl-dev": (),
}

ARCH_PACKAGE_NAMES: dict[str, tuple[str, ...]] = {
    "build-essential": ("base-devel",),
    "ninja-build": ("ninja",),
    "python3": ("python",),
    "python3-pip": ("python-pip",),
    "libglib2.0-dev": ("glib2",),
    "libpixman-1-dev": ("pixman",),
    "libslirp-dev": ("libslirp",),
    "libcap-ng-dev": ("libcap-ng",),
    "libattr1-dev": ("attr",),
    "libelf-dev": ("libelf",),
    "libssl-dev": ("openssl",),
    "libncurses-dev": ("ncurses",),
    "libblkid-dev": ("util-linux-libs",),
    "uuid-dev": ("util-linux-libs",),
    "xz-utils": ("xz",),
    "musl-tools": ("musl",),
    "musl-dev": ("musl",),
}


class InstallError(Exception):
    """Raised when host dependencies cannot be installed."""

    def __init__(self, message: str, code: str = "install_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class InstallPlan:
    """Commands that install a package set on one host.

    Attributes:
        distro: Detected distribution ID.
        packages: Translated package names.
        commands: Commands to run in order.
    """

    distro: str
    packages: list[str]
    commands: list[list[str]]

    def render(self) -> list[str]:
        """Render the commands as shell lines."""
        return [shlex.join(cmd) for cmd in self.commands]


def _read_os_release_id(path: Path) -> str | None:
    for line in path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.partition("=")
        if sep and key.strip() == "ID":
            return value.strip().strip("\"'").lower() or None
    return None


def detect_distro(
    os_release: Path = OS_RELEASE_PATH,
    debian_version: Path = DEBIAN_VERSION_PATH,
    redhat_release: Path = REDHAT_RELEASE_PATH,
) -> str:
    """Detect the host Linux distribution ID.

    Returns:
        Distribution ID (e.g., 'ubuntu', 'fedora'), or 'unknown'.
    """
    if os_release.is_file():
        distro_id = _read_os_release_id(os_release)
        if distro_id:
            return distro_id
    if debian_version.is_file():
        return "debian"
    if redhat_release.is_file():
        return "rhel"
    return "unknown"


def translate_packages(packages: Iterable[str], distro: str) -> list[str]:
    """Translate Debian package names for a distribution.

    Names without a translation are passed through unchanged. Duplicates
    created by the translation are dropped.

    Raises:
        InstallError: If the distribution is not supported.
    """
    if distro in DEBIAN_FAMILY:
        table: dict[str, tuple[str, ...]] = {}
    elif distro in REDHAT_FAMILY:
        table = REDHAT_PACKAGE_NAMES
    elif distro in ARCH_FAMILY:
        table = ARCH_PACKAGE_NAMES
    else:
        raise InstallError(
            f"Unsupported distribution: {distro}. "
            "Install the build dependencies manually and use --skip-install",
            code="unsupported_distro",
        )

    translated: dict[str, None] = {}
    for pkg in packages:
        names = table.get(pkg, (pkg,))
        if not names:
            logger.warning("Package %s is not available on %s; skipping", pkg, distro)
        for name in names:
            translated.setdefault(name, None)
    return list(translated)


def plan_install(
    packages: Iterable[str],
    distro: str,
    as_root: bool | None = None,
) -> InstallPlan:
    """Build the install commands for a package set.

    Args:
        packages: Debian package names.
        distro: Distribution ID from detect_distro().
        as_root: Whether the process runs as root; sudo is prepended otherwise.
                 Defaults to checking the effective UID.

    Returns:
        InstallPlan for the host.

    Raises:
        InstallError: If the distribution is not supported.
    """
    if as_root is None:
        as_root = os.geteuid() == 0
    sudo = [] if as_root else ["sudo"]
    names = translate_packages(packages, distro)

    if distro in DEBIAN_FAMILY:
        commands = [
            [*sudo, "apt-get", "update"],
            [*sudo, "apt-get", "install", "-y", *names],
        ]
    elif distro in REDHAT_FAMILY:
        manager = "dnf" if shutil.which("dnf") or not shutil.which("yum") else "yum"
        commands = [[*sudo, manager, "install", "-y", *names]]
    else:
        commands = [[*sudo, "pacman", "-Sy", "--noconfirm", *names]]

    return InstallPlan(distro=distro, packages=names, commands=commands)


def run_install(plan: InstallPlan, timeout: int | None = None) -> None:
    """Execute an install plan.

    Raises:
        InstallError: If a command fails or cannot be started.
    """
    for cmd in plan.commands:
        cmd_str = shlex.join(cmd)
        logger.info("Running: %s", cmd_str)
        try:
            subprocess.run(cmd, check=True, timeout=timeout)
        except subprocess.CalledProcessError as e:
            raise InstallError(
                f"Command failed with exit code {e.returncode}: {cmd_str}",
                code="install_failed",
            ) from e
        except subprocess.TimeoutExpired as e:
            raise InstallError(
                f"Command timed out after {timeout}s: {cmd_str}",
                code="install_timeout",
            ) from e
        except OSError as e:
            raise InstallError(
                f"Failed to run {cmd_str}: {e}",
                code="execution_error",
            ) from e
    logger.info("Installed %d package(s) on %s", len(plan.packages), plan.distro)


def install_packages(
    packages: Iterable[str],
    distro: str | None = None,
    timeout: int | None = None,
) -> InstallPlan:
    """Detect the host, plan and run the install of a package set.

    Returns:
        The executed InstallPlan.

    Raises:
        InstallError: If the host is unsupported or a command fails.
    """
    if distro is None:
        distro = detect_distro()
    logger.info("Installing build dependencies on %s", distro)
    plan = plan_install(packages, distro)
    run_install(plan, timeout=timeout)
    return plan


def ensure_meson(timeout: int | None = None) -> dict[str, str] | None:
    """Install meson for the current user when it is not on PATH.

    pip --user installs into ~/.local/bin, which is often not on PATH.

    Returns:
        Environment overrides putting ~/.local/bin first on PATH, or None
        when the current PATH already finds meson.

    Raises:
        InstallError: If the pip install fails.
    """
    if shutil.which("meson") is not None:
        return None
    logger.info("Installing meson build system")
    plan = InstallPlan(
        distro="pip",
        packages=["meson"],
        commands=[["pip3", "install", "--user", "meson"]],
    )
    run_install(plan, timeout=timeout)

    user_bin = str(Path.home() / ".local" / "bin")
    path = os.environ.get("PATH", "")
    if user_bin in path.split(os.pathsep):
        return None
    logger.info("Adding %s to PATH for the build steps", user_bin)
    return {"PATH": os.pathsep.join([user_bin, path]) if path else user_bin}


__all__ = [
    "ARCH_FAMILY",
    "DEBIAN_FAMILY",
    "InstallError",
    "InstallPlan",
    "REDHAT_FAMILY",
    "detect_distro",
    "ensure_meson",
    "install_packages",
    "plan_install",
    "run_install",
    "translate_packages",
]
