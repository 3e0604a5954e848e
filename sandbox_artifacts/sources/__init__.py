"""Upstream source management.

This module handles:
- Building download URLs for upstream sources and the initrd
- Downloading with checksum computation
- Extracting tarballs and reusing cached trees
"""

from sandbox_artifacts.sources.fetch import (
    DownloadError,
    DownloadResult,
    ExtractionError,
    SourceArchive,
    VerificationError,
    download_file,
    download_initrd,
    e2fsprogs_source,
    ensure_source,
    extract_archive,
    initrd_url,
    kernel_source,
    qemu_source,
)

__all__ = [
    "DownloadError",
    "DownloadResult",
    "ExtractionError",
    "SourceArchive",
    "VerificationError",
    "download_file",
    "download_initrd",
    "e2fsprogs_source",
    "ensure_source",
    "extract_archive",
    "initrd_url",
    "kernel_source",
    "qemu_source",
]
