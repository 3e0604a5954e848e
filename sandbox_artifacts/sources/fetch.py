"""Upstream source fetching.

This module handles:
- URL construction for kernel, QEMU, e2fsprogs and initrd downloads
- Streaming download with optional checksum verification
- Extraction of source tarballs with path traversal checks
- Reuse of cached tarballs and extracted trees
"""

from __future__ import annotations

import hashlib
import logging
import lzma
import shutil
import tarfile
import tempfile
import zlib
from dataclasses import dataclass
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)

KERNEL_DOWNLOAD_BASE = "https://cdn.kernel.org/pub/linux/kernel"
QEMU_DOWNLOAD_BASE = "https://download.qemu.org"
E2FSPROGS_DOWNLOAD_BASE = (
    "https://mirrors.edge.kernel.org/pub/linux/kernel/people/tytso/e2fsprogs"
)
DEBIAN_MIRROR_BASE = "http://ftp.us.debian.org/debian"
DEBIAN_SUITE = "trixie"

# Timeout for downloads (seconds)
DOWNLOAD_TIMEOUT = 3600

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

SUPPORTED_ARCHIVE_SUFFIXES = (".tar.xz", ".tar.gz", ".tgz", ".tar")


class DownloadError(Exception):
    """Raised when a download fails."""

    def __init__(self, message: str, code: str = "download_error") -> None:
        """Initialize DownloadError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class VerificationError(Exception):
    """Raised when checksum verification fails."""

    def __init__(self, message: str, code: str = "verification_error") -> None:
        """Initialize VerificationError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class ExtractionError(Exception):
    """Raised when archive extraction fails."""

    def __init__(self, message: str, code: str = "extraction_error") -> None:
        """Initialize ExtractionError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class SourceArchive:
    """An upstream source tarball and the tree it extracts to."""

    url: str
    tree_name: str

    @property
    def filename(self) -> str:
        return self.url.rsplit("/", 1)[-1]


@dataclass
class DownloadResult:
    """Result of a download."""

    path: Path
    checksum: str
    size_bytes: int


def kernel_major_version(version: str) -> str:
    """Return the major component of a kernel version ('6.12.4' -> '6')."""
    major = version.split(".", 1)[0]
    if not major.isdigit():
        raise ValueError(f"Invalid kernel version: {version!r}")
    return major


def kernel_source(version: str, base_url: str = KERNEL_DOWNLOAD_BASE) -> SourceArchive:
    """Describe the Linux kernel source tarball for a version."""
    major = kernel_major_version(version)
    return SourceArchive(
        url=f"{base_url}/v{major}.x/linux-{version}.tar.xz",
        tree_name=f"linux-{version}",
    )


def qemu_source(version: str, base_url: str = QEMU_DOWNLOAD_BASE) -> SourceArchive:
    """Describe the QEMU source tarball for a version."""
    return SourceArchive(
        url=f"{base_url}/qemu-{version}.tar.xz",
        tree_name=f"qemu-{version}",
    )


def e2fsprogs_source(
    version: str, base_url: str = E2FSPROGS_DOWNLOAD_BASE
) -> SourceArchive:
    """Describe the e2fsprogs source tarball for a version."""
    return SourceArchive(
        url=f"{base_url}/v{version}/e2fsprogs-{version}.tar.gz",
        tree_name=f"e2fsprogs-{version}",
    )


def initrd_url(
    debian_arch: str,
    base_url: str = DEBIAN_MIRROR_BASE,
    suite: str = DEBIAN_SUITE,
) -> str:
    """Build the Debian netboot initrd URL for an architecture."""
    return (
        f"{base_url}/dists/{suite}/main/installer-{debian_arch}/current/images/"
        f"netboot/debian-installer/{debian_arch}/initrd.gz"
    )


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    expected_checksum: str | None = None,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> DownloadResult:
    """Download a file with optional checksum verification.

    The file is written to a temporary sibling first and moved into place
    only after the download (and checksum) succeeded.

    Args:
        client: HTTPX client instance.
        url: URL to download from.
        dest_path: Destination path for the downloaded file.
        expected_checksum: Expected SHA256 checksum (optional).
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.

    Returns:
        DownloadResult with path, checksum, and size.

    Raises:
        DownloadError: If download fails.
        VerificationError: If checksum verification fails.
    """
    logger.info("Downloading %s to %s", url, dest_path)

    dest_path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        dir=dest_path.parent, suffix=".tmp", delete=False
    ) as tmp_file:
        tmp_path = Path(tmp_file.name)

    try:
        with client.stream("GET", url, timeout=timeout) as response:
            response.raise_for_status()

            total_bytes = 0
            sha256 = hashlib.sha256()

            with tmp_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    sha256.update(chunk)
                    total_bytes += len(chunk)

        computed_checksum = sha256.hexdigest()

        if expected_checksum and computed_checksum != expected_checksum.lower():
            raise VerificationError(
                f"Checksum mismatch for {url}: "
                f"expected {expected_checksum}, got {computed_checksum}"
            )

        shutil.move(str(tmp_path), str(dest_path))

        logger.info(
            "Downloaded %s (%d bytes, checksum: %s)",
            dest_path.name,
            total_bytes,
            computed_checksum[:16] + "...",
        )

        return DownloadResult(
            path=dest_path,
            checksum=computed_checksum,
            size_bytes=total_bytes,
        )

    except httpx.HTTPStatusError as e:
        raise DownloadError(
            f"HTTP error downloading {url}: {e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise DownloadError(
            f"Timeout downloading {url}",
            code="timeout",
        ) from e
    except httpx.RequestError as e:
        raise DownloadError(
            f"Network error downloading {url}: {e}",
            code="network_error",
        ) from e
    finally:
        tmp_path.unlink(missing_ok=True)


def _tar_mode(archive_path: Path) -> str:
    suffixes = "".join(archive_path.suffixes).lower()
    if suffixes.endswith(".tar.xz"):
        return "r:xz"
    if suffixes.endswith(".tar.gz") or suffixes.endswith(".tgz"):
        return "r:gz"
    if suffixes.endswith(".tar"):
        return "r:"
    raise ExtractionError(
        f"Unsupported archive format: {archive_path.name}",
        code="unsupported_format",
    )


def extract_archive(archive_path: Path, dest_dir: Path) -> None:
    """Extract a source tarball into dest_dir.

    Args:
        archive_path: Path to the archive file.
        dest_dir: Destination directory for extraction.

    Raises:
        ExtractionError: If extraction fails or the archive is unsafe.
    """
    logger.info("Extracting %s to %s", archive_path.name, dest_dir)

    mode = _tar_mode(archive_path)
    dest_dir.mkdir(parents=True, exist_ok=True)

    try:
        with tarfile.open(archive_path, mode) as tar:
            members = tar.getmembers()
            if not members:
                raise ExtractionError(
                    f"Archive {archive_path} is empty",
                    code="empty_archive",
                )

            for member in members:
                member_path = Path(member.name)
                if member_path.is_absolute() or ".." in member_path.parts:
                    raise ExtractionError(
                        f"Refusing to extract {member.name}: path traversal detected",
                        code="path_traversal",
                    )

            tar.extractall(dest_dir, filter="data")

    except tarfile.TarError as e:
        raise ExtractionError(
            f"Failed to extract {archive_path}: {e}",
            code="tar_error",
        ) from e
    except (EOFError, lzma.LZMAError, zlib.error) as e:
        raise ExtractionError(
            f"Archive {archive_path} is truncated or corrupt: {e}",
            code="corrupt_archive",
        ) from e
    except OSError as e:
        raise ExtractionError(
            f"OS error extracting {archive_path}: {e}",
            code="os_error",
        ) from e


def ensure_source(
    client: httpx.Client,
    archive: SourceArchive,
    source_dir: Path,
    clean: bool = False,
    timeout: float = DOWNLOAD_TIMEOUT,
) -> Path:
    """Make an extracted upstream source tree available.

    An existing tree is reused unless clean is set, in which case it is
    removed and re-extracted. A previously downloaded tarball is reused;
    if it fails to extract, the tarball and any partial tree are removed
    so the next run downloads a fresh copy.

    Args:
        client: HTTPX client instance.
        archive: Source tarball description.
        source_dir: Directory holding tarballs and extracted trees.
        clean: Remove an existing tree before extracting.
        timeout: Download timeout in seconds.

    Returns:
        Absolute path to the extracted tree.

    Raises:
        DownloadError: If download fails.
        ExtractionError: If extraction fails or the tree is missing afterwards.
    """
    source_dir = source_dir.resolve()
    tree = source_dir / archive.tree_name
    tarball = source_dir / archive.filename

    if tree.is_dir():
        if not clean:
            logger.info("Using existing source directory %s", tree)
            return tree
        logger.info("Cleaning existing source directory %s", tree)
        shutil.rmtree(tree)

    if tarball.is_file():
        logger.info("Using cached tarball %s", tarball.name)
    else:
        download_file(client, archive.url, tarball, timeout=timeout)

    try:
        extract_archive(tarball, source_dir)
        if not tree.is_dir():
            raise ExtractionError(
                f"Expected {archive.tree_name} in {source_dir} after extracting {tarball.name}",
                code="missing_tree",
            )
    except ExtractionError as e:
        logger.warning("Discarding unusable tarball %s (%s)", tarball.name, e.code)
        tarball.unlink(missing_ok=True)
        shutil.rmtree(tree, ignore_errors=True)
        raise
    logger.info("Source ready at %s", tree)
    return tree


def download_initrd(
    client: httpx.Client,
    debian_arch: str,
    output_dir: Path,
    timeout: float = DOWNLOAD_TIMEOUT,
) -> DownloadResult:
    """Download the Debian netboot initrd into output_dir/initrd.gz."""
    return download_file(
        client,
        initrd_url(debian_arch),
        output_dir / "initrd.gz",
        timeout=timeout,
    )


__all__ = [
    "DEBIAN_MIRROR_BASE",
    "DOWNLOAD_TIMEOUT",
    "DownloadError",
    "DownloadResult",
    "E2FSPROGS_DOWNLOAD_BASE",
    "ExtractionError",
    "KERNEL_DOWNLOAD_BASE",
    "QEMU_DOWNLOAD_BASE",
    "SourceArchive",
    "VerificationError",
    "download_file",
    "download_initrd",
    "e2fsprogs_source",
    "ensure_source",
    "extract_archive",
    "initrd_url",
    "kernel_major_version",
    "kernel_source",
    "qemu_source",
]
