"""Bundle build service.

High-level entry points that assemble the per-architecture boot bundle:
- download_bundle_initrd(): fetch the Debian netboot initrd
- build_bundle_kernel(): build the kernel and copy vmlinuz into the bundle
- build_bundle_e2fsprogs(): build mke2fs/e2fsck and copy them into the bundle
- build_bundle(): all of the above plus the bundle manifest

Each component is built in a scratch directory under the build directory
and only the final files are copied into <build_dir>/<arch>/. Step logs are
written to <build_dir>/logs/<arch>/ so they outlive the scratch directory.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sandbox_artifacts.builds.artifacts import (
    MANIFEST_NAME,
    arch_dir,
    discover_artifacts,
    generate_manifest,
    write_manifest,
)
from sandbox_artifacts.builds.e2fsprogs import E2FSPROGS_BINARIES, build_e2fsprogs
from sandbox_artifacts.builds.kernel import build_kernel
from sandbox_artifacts.profiles.tables import TOOLCHAINS
from sandbox_artifacts.sources import download_initrd
from sandbox_artifacts.types import Architecture, ArtifactInfo

if TYPE_CHECKING:
    import httpx

    from sandbox_artifacts.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class BundleResult:
    """Result of assembling one architecture bundle."""

    architecture: Architecture
    bundle_dir: Path
    manifest_path: Path
    artifacts: list[ArtifactInfo] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)


def bundle_log_dir(settings: Settings, architecture: Architecture) -> Path:
    """Return the directory holding step logs for an architecture bundle."""
    return settings.build_dir / "logs" / architecture.value


def bundle_inputs(settings: Settings) -> dict[str, Any]:
    """Return the build inputs recorded in a bundle manifest."""
    return {
        "kernel_version": settings.kernel_version,
        "e2fsprogs_version": settings.e2fsprogs_version,
        "source_date_epoch": settings.source_date_epoch,
    }


def download_bundle_initrd(
    settings: Settings,
    architecture: Architecture,
    client: httpx.Client,
) -> Path:
    """Download the initrd into the architecture bundle."""
    bundle_dir = arch_dir(settings.build_dir, architecture)
    result = download_initrd(
        client,
        TOOLCHAINS[architecture].debian_arch,
        bundle_dir,
        timeout=settings.download_timeout,
    )
    return result.path


def build_bundle_kernel(
    settings: Settings,
    architecture: Architecture,
    client: httpx.Client,
) -> Path:
    """Build the kernel and copy the image into the bundle as vmlinuz."""
    bundle_dir = arch_dir(settings.build_dir, architecture)
    scratch = settings.build_dir / f"{architecture.value}-kernel-tmp"
    try:
        result = build_kernel(
            settings,
            architecture,
            client,
            scratch,
            log_dir=bundle_log_dir(settings, architecture),
        )
        bundle_dir.mkdir(parents=True, exist_ok=True)
        dest = bundle_dir / "vmlinuz"
        shutil.copyfile(result.image_path, dest)
    finally:
        shutil.rmtree(scratch, ignore_errors=True)
    logger.info("Kernel image copied to %s", dest)
    return dest


def build_bundle_e2fsprogs(
    settings: Settings,
    architecture: Architecture,
    client: httpx.Client,
) -> list[Path]:
    """Build e2fsprogs and copy mke2fs/e2fsck into the bundle."""
    bundle_dir = arch_dir(settings.build_dir, architecture)
    scratch = settings.build_dir / "e2fsprogs-tmp"
    copied: list[Path] = []
    try:
        result = build_e2fsprogs(
            settings,
            architecture,
            client,
            scratch,
            log_dir=bundle_log_dir(settings, architecture),
        )
        bundle_dir.mkdir(parents=True, exist_ok=True)
        for name in E2FSPROGS_BINARIES:
            dest = bundle_dir / name
            shutil.copy2(result.binaries[name], dest)
            copied.append(dest)
    finally:
        shutil.rmtree(scratch, ignore_errors=True)
    logger.info("e2fsprogs binaries copied to %s", bundle_dir)
    return copied


def write_bundle_manifest(settings: Settings, architecture: Architecture) -> BundleResult:
    """Discover the bundle files and write manifest.json."""
    bundle_dir = arch_dir(settings.build_dir, architecture)
    artifacts = discover_artifacts(bundle_dir)
    manifest = generate_manifest(artifacts, architecture, bundle_inputs(settings))
    manifest_path = write_manifest(manifest, bundle_dir / MANIFEST_NAME)
    missing = manifest["summary"]["missing"]
    if missing:
        logger.warning(
            "Bundle %s is missing: %s", architecture.value, ", ".join(missing)
        )
    return BundleResult(
        architecture=architecture,
        bundle_dir=bundle_dir,
        manifest_path=manifest_path,
        artifacts=artifacts,
        missing=missing,
    )


def build_bundle(
    settings: Settings,
    architecture: Architecture,
    client: httpx.Client,
) -> BundleResult:
    """Assemble the complete boot bundle for one architecture.

    Components are produced in order: initrd, kernel, e2fsprogs. The first
    failure aborts the bundle.

    Raises:
        InstallError, DownloadError, ExtractionError, BuildExecutionError:
            From the failing component.
    """
    logger.info("Building %s bundle in %s", architecture.value, settings.build_dir)
    arch_dir(settings.build_dir, architecture).mkdir(parents=True, exist_ok=True)

    download_bundle_initrd(settings, architecture, client)
    build_bundle_kernel(settings, architecture, client)
    build_bundle_e2fsprogs(settings, architecture, client)

    return write_bundle_manifest(settings, architecture)


__all__ = [
    "BundleResult",
    "build_bundle",
    "build_bundle_e2fsprogs",
    "build_bundle_kernel",
    "bundle_inputs",
    "bundle_log_dir",
    "download_bundle_initrd",
    "write_bundle_manifest",
]
