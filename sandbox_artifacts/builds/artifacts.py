"""Bundle artifact discovery, manifests and release tarballs.

The bundle layout is one directory per architecture:

    <build_dir>/<arch>/vmlinuz
    <build_dir>/<arch>/initrd.gz
    <build_dir>/<arch>/e2fsck
    <build_dir>/<arch>/mke2fs
    <build_dir>/<arch>/manifest.json

and a release tarball <build_dir>/release.tar.gz holding the arch
directories.
"""

from __future__ import annotations

import hashlib
import json
import logging
import tarfile
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sandbox_artifacts.types import Architecture, ArtifactInfo

logger = logging.getLogger(__name__)

# Filename -> artifact kind for the files a bundle is made of
BUNDLE_FILES: dict[str, str] = {
    "vmlinuz": "kernel",
    "initrd.gz": "initrd",
    "e2fsck": "e2fsprogs",
    "mke2fs": "e2fsprogs",
}

MANIFEST_NAME = "manifest.json"
RELEASE_TARBALL_NAME = "release.tar.gz"

# Default chunk size for hashing
HASH_CHUNK_SIZE = 64 * 1024  # 64KB


class BundleError(Exception):
    """Raised when a bundle is incomplete or cannot be packaged."""

    def __init__(self, message: str, code: str = "bundle_error") -> None:
        super().__init__(message)
        self.code = code


def classify_artifact(filename: str) -> str:
    """Classify a bundle file by name.

    Returns:
        Artifact kind (kernel, initrd, e2fsprogs, other).
    """
    return BUNDLE_FILES.get(filename, "other")


def compute_file_hash(
    file_path: Path,
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def arch_dir(build_dir: Path, architecture: Architecture) -> Path:
    """Return the bundle directory for an architecture."""
    return build_dir / architecture.value


def discover_artifacts(bundle_dir: Path) -> list[ArtifactInfo]:
    """Discover bundle files in an architecture directory.

    Only the known bundle files are reported; logs and the manifest itself
    are skipped.

    Args:
        bundle_dir: Architecture bundle directory.

    Returns:
        List of ArtifactInfo, sorted by filename.
    """
    if not bundle_dir.exists():
        logger.warning("Bundle directory does not exist: %s", bundle_dir)
        return []

    artifacts: list[ArtifactInfo] = []
    for path in sorted(bundle_dir.iterdir()):
        if not path.is_file() or path.name not in BUNDLE_FILES:
            continue
        artifacts.append(
            ArtifactInfo(
                filename=path.name,
                relative_path=f"{bundle_dir.name}/{path.name}",
                size_bytes=path.stat().st_size,
                sha256=compute_file_hash(path),
                kind=classify_artifact(path.name),
            )
        )

    logger.info("Discovered %d artifacts in %s", len(artifacts), bundle_dir)
    return artifacts


def missing_artifacts(artifacts: list[ArtifactInfo]) -> list[str]:
    """Return the bundle files not present in a discovered artifact list."""
    present = {a.filename for a in artifacts}
    return [name for name in BUNDLE_FILES if name not in present]


def generate_manifest(
    artifacts: list[ArtifactInfo],
    architecture: Architecture,
    build_inputs: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Generate a bundle manifest.

    Args:
        artifacts: Discovered artifacts.
        architecture: Bundle architecture.
        build_inputs: Optional versions/profile used for the build.

    Returns:
        Manifest dictionary suitable for JSON serialization.
    """
    manifest: dict[str, Any] = {
        "version": "1.0",
        "architecture": architecture.value,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "artifacts": [asdict(a) for a in artifacts],
    }
    if build_inputs:
        manifest["build_inputs"] = build_inputs

    manifest["summary"] = {
        "total_artifacts": len(artifacts),
        "total_size_bytes": sum(a.size_bytes for a in artifacts),
        "missing": missing_artifacts(artifacts),
    }
    return manifest


def write_manifest(
    manifest: dict[str, Any],
    output_path: Path,
) -> Path:
    """Write manifest to a JSON file.

    Args:
        manifest: Manifest dictionary.
        output_path: Output file path.

    Returns:
        Path to written manifest file.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with output_path.open("w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, sort_keys=True)

    logger.info("Wrote manifest to %s", output_path)
    return output_path


def create_release_tarball(
    build_dir: Path,
    architectures: list[Architecture] | None = None,
) -> Path:
    """Pack the architecture bundle directories into release.tar.gz.

    Args:
        build_dir: Root build directory.
        architectures: Architectures to include (default: all).

    Returns:
        Path to the created tarball.

    Raises:
        BundleError: If an architecture directory is missing.
    """
    arches = architectures or list(Architecture)
    missing = [a.value for a in arches if not arch_dir(build_dir, a).is_dir()]
    if missing:
        raise BundleError(
            f"Missing bundle directories in {build_dir}: {', '.join(missing)}",
            code="missing_bundle",
        )

    tarball = build_dir / RELEASE_TARBALL_NAME
    logger.info("Creating release tarball %s", tarball)
    with tarfile.open(tarball, "w:gz") as tar:
        for arch in arches:
            tar.add(arch_dir(build_dir, arch), arcname=arch.value)

    logger.info("Release tarball created: %s (%d bytes)", tarball, tarball.stat().st_size)
    return tarball


__all__ = [
    "BUNDLE_FILES",
    "BundleError",
    "HASH_CHUNK_SIZE",
    "MANIFEST_NAME",
    "RELEASE_TARBALL_NAME",
    "arch_dir",
    "classify_artifact",
    "compute_file_hash",
    "create_release_tarball",
    "discover_artifacts",
    "generate_manifest",
    "missing_artifacts",
    "write_manifest",
]
