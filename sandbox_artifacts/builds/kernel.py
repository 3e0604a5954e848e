"""Guest kernel build.

Configures the kernel from the architecture's defconfig plus the fixed
sandbox option set, builds the image and modules, and installs them into
an output directory:

    <output>/vmlinuz-<version>, config-<version>, System.map-<version>
    <output>/vmlinuz, config, System.map   (symlinks)
    <output>/lib/modules/<version>/
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from sandbox_artifacts.builds.runner import run_step
from sandbox_artifacts.hostdeps import install_packages
from sandbox_artifacts.kernel.options import scripts_config_args
from sandbox_artifacts.profiles.resolver import merge_packages
from sandbox_artifacts.profiles.tables import (
    KERNEL_BUILD_PACKAGES,
    KERNEL_CROSS_PACKAGES,
    TOOLCHAINS,
)
from sandbox_artifacts.sources import ensure_source, kernel_source
from sandbox_artifacts.types import Architecture, StepResult

if TYPE_CHECKING:
    import httpx

    from sandbox_artifacts.config import Settings
    from sandbox_artifacts.profiles.schema import ToolchainSchema

logger = logging.getLogger(__name__)


@dataclass
class KernelBuildResult:
    """Result of a kernel build."""

    architecture: Architecture
    version: str
    image_path: Path
    config_path: Path
    output_dir: Path
    steps: list[StepResult] = field(default_factory=list)


def kernel_packages(architecture: Architecture) -> tuple[str, ...]:
    """Return host packages needed to build the kernel for an architecture."""
    return merge_packages(KERNEL_BUILD_PACKAGES, KERNEL_CROSS_PACKAGES[architecture])


def kernel_make(toolchain: ToolchainSchema, *args: str) -> list[str]:
    """Compose a kernel `make` invocation for a toolchain."""
    return [
        "make",
        f"ARCH={toolchain.kernel_arch}",
        f"CROSS_COMPILE={toolchain.cross_compile}",
        *args,
    ]


def configure_kernel(
    kernel_dir: Path,
    toolchain: ToolchainSchema,
    log_dir: Path,
    timeout: int | None = None,
) -> list[StepResult]:
    """Run defconfig, apply the sandbox options, then olddefconfig."""
    logger.info("Configuring kernel for QEMU in %s", kernel_dir)
    return [
        run_step(
            "kernel-defconfig",
            kernel_make(toolchain, "defconfig"),
            kernel_dir,
            log_dir,
            timeout,
        ),
        run_step(
            "kernel-options",
            ["scripts/config", *scripts_config_args()],
            kernel_dir,
            log_dir,
            timeout,
        ),
        run_step(
            "kernel-olddefconfig",
            kernel_make(toolchain, "olddefconfig"),
            kernel_dir,
            log_dir,
            timeout,
        ),
    ]


def compile_kernel(
    kernel_dir: Path,
    toolchain: ToolchainSchema,
    jobs: int,
    log_dir: Path,
    timeout: int | None = None,
) -> StepResult:
    """Build the kernel image and modules."""
    logger.info("Building kernel with %d parallel jobs", jobs)
    return run_step(
        "kernel-build",
        kernel_make(toolchain, f"-j{jobs}", toolchain.kernel_target, "modules"),
        kernel_dir,
        log_dir,
        timeout,
    )


def _relink(link: Path, target_name: str) -> None:
    if link.is_symlink() or link.exists():
        link.unlink()
    link.symlink_to(target_name)


def install_kernel(
    kernel_dir: Path,
    toolchain: ToolchainSchema,
    version: str,
    output_dir: Path,
    log_dir: Path,
    timeout: int | None = None,
) -> tuple[Path, Path, StepResult]:
    """Copy the image, config and System.map and install modules.

    Returns:
        Tuple of (image symlink path, config symlink path, modules step result).
    """
    output_dir = output_dir.resolve()
    output_dir.mkdir(parents=True, exist_ok=True)

    shutil.copyfile(kernel_dir / toolchain.kernel_image, output_dir / f"vmlinuz-{version}")
    step = run_step(
        "kernel-modules-install",
        kernel_make(toolchain, f"INSTALL_MOD_PATH={output_dir}", "modules_install"),
        kernel_dir,
        log_dir,
        timeout,
    )
    shutil.copyfile(kernel_dir / ".config", output_dir / f"config-{version}")
    shutil.copyfile(kernel_dir / "System.map", output_dir / f"System.map-{version}")

    for name in ("vmlinuz", "config", "System.map"):
        _relink(output_dir / name, f"{name}-{version}")

    logger.info("Kernel installed to %s", output_dir)
    return output_dir / "vmlinuz", output_dir / "config", step


def build_kernel(
    settings: Settings,
    architecture: Architecture,
    client: httpx.Client,
    output_dir: Path,
    log_dir: Path | None = None,
) -> KernelBuildResult:
    """Download, configure, build and install the guest kernel.

    Args:
        settings: Effective settings for this invocation.
        architecture: Target architecture.
        client: HTTPX client used for the source download.
        output_dir: Directory receiving the installed kernel.
        log_dir: Directory for step logs; defaults to output_dir/logs.

    Returns:
        KernelBuildResult.

    Raises:
        InstallError: If host dependencies cannot be installed.
        DownloadError: If the source download fails.
        ExtractionError: If the source cannot be extracted.
        BuildExecutionError: If a build step fails.
    """
    toolchain = TOOLCHAINS[architecture]
    version = settings.kernel_version
    log_dir = log_dir or output_dir / "logs"
    logger.info(
        "Building kernel %s for %s (cross compile: %s)",
        version,
        architecture.value,
        toolchain.cross_compile or "native",
    )

    if settings.skip_install:
        logger.warning("Skipping dependency installation (--skip-install)")
    else:
        install_packages(kernel_packages(architecture), timeout=settings.build_timeout)

    kernel_dir = ensure_source(
        client,
        kernel_source(version),
        settings.source_dir,
        clean=settings.clean,
        timeout=settings.download_timeout,
    )

    steps = configure_kernel(kernel_dir, toolchain, log_dir, settings.build_timeout)
    steps.append(
        compile_kernel(
            kernel_dir, toolchain, settings.jobs, log_dir, settings.build_timeout
        )
    )
    image_path, config_path, install_step = install_kernel(
        kernel_dir, toolchain, version, output_dir, log_dir, settings.build_timeout
    )
    steps.append(install_step)

    return KernelBuildResult(
        architecture=architecture,
        version=version,
        image_path=image_path,
        config_path=config_path,
        output_dir=output_dir.resolve(),
        steps=steps,
    )


__all__ = [
    "KernelBuildResult",
    "build_kernel",
    "compile_kernel",
    "configure_kernel",
    "install_kernel",
    "kernel_make",
    "kernel_packages",
]
