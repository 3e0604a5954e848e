"""Kernel configuration options for the sandbox guest kernel.

The kernel is configured from the architecture's defconfig plus one fixed
set of options. Unlike QEMU, the kernel has no build profile axis: the
same options are applied whatever QEMU profile was chosen.
"""

from sandbox_artifacts.profiles.schema import FeatureDirective
from sandbox_artifacts.types import FeatureState


def _opts(state: FeatureState, *names: str) -> tuple[FeatureDirective, ...]:
    return tuple(FeatureDirective(name=n, state=state) for n in names)


_ON = FeatureState.ENABLED
_OFF = FeatureState.DISABLED

# Names are lowercase and '-'-separated; config_symbol() maps them to Kconfig.
KERNEL_OPTION_GROUPS: dict[str, tuple[FeatureDirective, ...]] = {
    "virtualization": _opts(
        _ON, "hypervisor-guest", "paravirt", "paravirt-spinlocks", "kvm-guest"
    ),
    "virtio": _opts(
        _ON,
        "virtio",
        "virtio-pci",
        "virtio-pci-legacy",
        "virtio-balloon",
        "virtio-input",
        "virtio-mmio",
        "virtio-mmio-cmdline-devices",
        "virtio-blk",
        "scsi-virtio",
        "virtio-net",
        "virtio-console",
        "hw-random-virtio",
    ),
    "9p": _opts(
        _ON, "net-9p", "net-9p-virtio", "9p-fs", "9p-fs-posix-acl", "9p-fs-security"
    ),
    "networking": _opts(
        _ON, "net", "inet", "packet", "unix", "ipv6", "netdevices", "net-core"
    ),
    "filesystems": _opts(
        _ON,
        "ext4-fs",
        "ext4-fs-posix-acl",
        "ext4-fs-security",
        "ext3-fs",
        "ext2-fs",
        "tmpfs",
        "tmpfs-posix-acl",
        "proc-fs",
        "sysfs",
        "devtmpfs",
        "devtmpfs-mount",
    ),
    "console": _opts(_ON, "tty", "serial-8250", "serial-8250-console", "printk"),
    "initrd": _opts(
        _ON,
        "blk-dev",
        "blk-dev-initrd",
        "rd-gzip",
        "rd-bzip2",
        "rd-lzma",
        "rd-xz",
        "rd-lzo",
        "rd-lz4",
        "rd-zstd",
    ),
    "hardware": _opts(_ON, "pci", "pci-msi", "acpi"),
    "modules": _opts(_ON, "modules", "module-unload"),
    "debug": _opts(_OFF, "debug-kernel", "debug-info", "debug-info-btf", "gdb-scripts"),
    "userspace": _opts(
        _ON,
        "binfmt-elf",
        "binfmt-script",
        "posix-timers",
        "futex",
        "epoll",
        "signalfd",
        "timerfd",
        "eventfd",
    ),
}

KERNEL_OPTIONS: tuple[FeatureDirective, ...] = tuple(
    opt for group in KERNEL_OPTION_GROUPS.values() for opt in group
)


def config_symbol(name: str) -> str:
    """Convert an option name to its Kconfig symbol (e.g., 'virtio-net' -> 'CONFIG_VIRTIO_NET')."""
    return "CONFIG_" + name.replace("-", "_").upper()


def scripts_config_args(
    options: tuple[FeatureDirective, ...] = KERNEL_OPTIONS,
) -> list[str]:
    """Compose the arguments for a single `scripts/config` invocation.

    Args:
        options: Kernel options to apply, in order.

    Returns:
        Argument list, e.g. ['--enable', 'CONFIG_VIRTIO', '--disable', ...].
    """
    args: list[str] = []
    for opt in options:
        args.append("--enable" if opt.enabled else "--disable")
        args.append(config_symbol(opt.name))
    return args


__all__ = [
    "KERNEL_OPTIONS",
    "KERNEL_OPTION_GROUPS",
    "config_symbol",
    "scripts_config_args",
]
