"""Guest kernel configuration.

This module handles:
- The fixed kernel option set applied on top of defconfig
- Verifying an existing .config against the sandbox requirements
"""

from sandbox_artifacts.kernel.options import (
    KERNEL_OPTION_GROUPS,
    KERNEL_OPTIONS,
    config_symbol,
    scripts_config_args,
)
from sandbox_artifacts.kernel.verify import (
    CONFIG_CHECKS,
    KernelConfigError,
    VerificationReport,
    parse_kernel_config,
    verify_kernel_config,
)

__all__ = [
    "CONFIG_CHECKS",
    "KERNEL_OPTIONS",
    "KERNEL_OPTION_GROUPS",
    "KernelConfigError",
    "VerificationReport",
    "config_symbol",
    "parse_kernel_config",
    "scripts_config_args",
    "verify_kernel_config",
]
