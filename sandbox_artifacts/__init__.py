"""QEMU sandbox artifacts - build tooling for sandbox boot bundles.

This package drives the upstream Linux kernel, QEMU and e2fsprogs build
systems to produce the kernel image, initrd and filesystem utilities that
the QEMU-based sandbox boots from.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
