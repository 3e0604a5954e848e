"""Kernel configuration verification.

Checks a kernel .config against the features the QEMU sandbox needs.
An option counts as present when it is built in (=y) or a module (=m).
Missing required options fail verification; missing recommended options
are reported but do not.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from sandbox_artifacts.types import Severity

logger = logging.getLogger(__name__)

CONFIG_LINE_PATTERN = re.compile(r"^(CONFIG_[A-Za-z0-9_]+)=(.*)$")


class KernelConfigError(Exception):
    """Raised when a kernel config file cannot be read."""

    def __init__(self, message: str, code: str = "kernel_config_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class ConfigCheck:
    """One expected kernel option."""

    symbol: str
    severity: Severity
    description: str


def _req(symbol: str, description: str) -> ConfigCheck:
    return ConfigCheck(symbol, Severity.REQUIRED, description)


def _rec(symbol: str, description: str) -> ConfigCheck:
    return ConfigCheck(symbol, Severity.RECOMMENDED, description)


CONFIG_CHECKS: dict[str, tuple[ConfigCheck, ...]] = {
    "Core Virtualization": (
        _req("CONFIG_HYPERVISOR_GUEST", "Detect and optimize for VM environments"),
        _req("CONFIG_PARAVIRT", "Paravirtualization support"),
        _rec("CONFIG_KVM_GUEST", "KVM-specific optimizations"),
    ),
    "VirtIO Core": (
        _req("CONFIG_VIRTIO", "Core VirtIO support"),
        _req("CONFIG_VIRTIO_PCI", "VirtIO over PCI bus"),
        _rec("CONFIG_VIRTIO_MMIO", "VirtIO over MMIO"),
    ),
    "VirtIO Drivers": (
        _req("CONFIG_VIRTIO_BLK", "VirtIO block device driver"),
        _req("CONFIG_VIRTIO_NET", "VirtIO network device driver"),
        _rec("CONFIG_VIRTIO_CONSOLE", "VirtIO console/serial driver"),
        _rec("CONFIG_HW_RANDOM_VIRTIO", "VirtIO RNG for entropy"),
        _rec("CONFIG_VIRTIO_BALLOON", "Memory balloon for dynamic memory"),
    ),
    "9P Filesystem": (
        _req("CONFIG_NET_9P", "9P protocol support"),
        _req("CONFIG_NET_9P_VIRTIO", "9P over VirtIO transport"),
        _req("CONFIG_9P_FS", "9P filesystem driver"),
        _rec("CONFIG_9P_FS_POSIX_ACL", "POSIX ACL support for 9P"),
        _rec("CONFIG_9P_FS_SECURITY", "Security features for 9P"),
    ),
    "Networking": (
        _req("CONFIG_NET", "Networking support"),
        _req("CONFIG_INET", "TCP/IP networking"),
        _rec("CONFIG_PACKET", "Packet sockets"),
        _rec("CONFIG_UNIX", "Unix domain sockets"),
    ),
    "Filesystems": (
        _req("CONFIG_EXT4_FS", "Ext4 filesystem"),
        _req("CONFIG_TMPFS", "tmpfs (RAM-based filesystem)"),
        _req("CONFIG_PROC_FS", "/proc filesystem"),
        _req("CONFIG_SYSFS", "/sys filesystem"),
        _req("CONFIG_DEVTMPFS", "Automatic device node creation"),
    ),
    "Console and TTY": (
        _req("CONFIG_TTY", "TTY support"),
        _rec("CONFIG_SERIAL_8250", "8250/16550 serial driver"),
        _rec("CONFIG_SERIAL_8250_CONSOLE", "Serial console support"),
    ),
    "Initrd Support": (
        _req("CONFIG_BLK_DEV_INITRD", "Initial RAM disk support"),
        _rec("CONFIG_RD_GZIP", "gzip compressed initrd"),
        _rec("CONFIG_RD_XZ", "XZ compressed initrd"),
    ),
    "Hardware Support": (
        _req("CONFIG_PCI", "PCI bus support"),
        _rec("CONFIG_ACPI", "ACPI support"),
    ),
}


@dataclass
class CheckOutcome:
    """Outcome of one check against a config."""

    group: str
    check: ConfigCheck
    present: bool


@dataclass
class VerificationReport:
    """Result of verifying a kernel config.

    Attributes:
        config_path: The verified file.
        outcomes: Per-check outcomes, in check order.
    """

    config_path: Path
    outcomes: list[CheckOutcome] = field(default_factory=list)

    @property
    def missing_required(self) -> list[CheckOutcome]:
        return [
            o
            for o in self.outcomes
            if not o.present and o.check.severity is Severity.REQUIRED
        ]

    @property
    def missing_recommended(self) -> list[CheckOutcome]:
        return [
            o
            for o in self.outcomes
            if not o.present and o.check.severity is Severity.RECOMMENDED
        ]

    @property
    def passed(self) -> bool:
        """True when every required option is present."""
        return not self.missing_required

    def to_dict(self) -> dict[str, object]:
        return {
            "config_path": str(self.config_path),
            "passed": self.passed,
            "missing_required": [o.check.symbol for o in self.missing_required],
            "missing_recommended": [o.check.symbol for o in self.missing_recommended],
            "checks": [
                {
                    "group": o.group,
                    "symbol": o.check.symbol,
                    "severity": o.check.severity.value,
                    "present": o.present,
                }
                for o in self.outcomes
            ],
        }


def parse_kernel_config(text: str) -> dict[str, str]:
    """Parse .config content into a symbol -> value mapping.

    Comment lines (including '# CONFIG_X is not set') are ignored.
    """
    values: dict[str, str] = {}
    for line in text.splitlines():
        match = CONFIG_LINE_PATTERN.match(line.strip())
        if match:
            values[match.group(1)] = match.group(2)
    return values


def is_option_enabled(values: dict[str, str], symbol: str) -> bool:
    """Return True if the option is built in or built as a module."""
    return values.get(symbol) in ("y", "m")


def verify_kernel_config(config_path: Path) -> VerificationReport:
    """Verify a kernel config file against the sandbox checks.

    Args:
        config_path: Path to a kernel .config file.

    Returns:
        VerificationReport with per-check outcomes.

    Raises:
        KernelConfigError: If the file does not exist or cannot be read.
    """
    if not config_path.is_file():
        raise KernelConfigError(
            f"Config file not found: {config_path}", code="config_not_found"
        )
    try:
        text = config_path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise KernelConfigError(
            f"Failed to read {config_path}: {e}", code="config_unreadable"
        ) from e

    values = parse_kernel_config(text)
    report = VerificationReport(config_path=config_path)
    for group, checks in CONFIG_CHECKS.items():
        for check in checks:
            report.outcomes.append(
                CheckOutcome(
                    group=group,
                    check=check,
                    present=is_option_enabled(values, check.symbol),
                )
            )

    logger.info(
        "Verified %s: %d required and %d recommended option(s) missing",
        config_path,
        len(report.missing_required),
        len(report.missing_recommended),
    )
    return report


__all__ = [
    "CONFIG_CHECKS",
    "CheckOutcome",
    "ConfigCheck",
    "KernelConfigError",
    "VerificationReport",
    "is_option_enabled",
    "parse_kernel_config",
    "verify_kernel_config",
]
