"""Static e2fsprogs build.

Builds statically linked mke2fs and e2fsck for one architecture and
copies them to <output>/<arch>/.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from sandbox_artifacts.builds.runner import probe_output, run_step
from sandbox_artifacts.hostdeps import install_packages
from sandbox_artifacts.profiles.resolver import merge_packages
from sandbox_artifacts.profiles.tables import (
    E2FSPROGS_BUILD_PACKAGES,
    E2FSPROGS_CROSS_PACKAGES,
    TOOLCHAINS,
)
from sandbox_artifacts.sources import e2fsprogs_source, ensure_source
from sandbox_artifacts.types import Architecture, StepResult

if TYPE_CHECKING:
    import httpx

    from sandbox_artifacts.config import Settings
    from sandbox_artifacts.profiles.schema import ToolchainSchema

logger = logging.getLogger(__name__)

# Binary name -> path inside the e2fsprogs build tree
E2FSPROGS_BINARIES: dict[str, str] = {
    "mke2fs": "misc/mke2fs",
    "e2fsck": "e2fsck/e2fsck",
}


@dataclass
class E2fsprogsBuildResult:
    """Result of an e2fsprogs build."""

    architecture: Architecture
    version: str
    binaries: dict[str, Path]
    static: dict[str, bool]
    steps: list[StepResult] = field(default_factory=list)


def e2fsprogs_packages(architecture: Architecture) -> tuple[str, ...]:
    """Return host packages needed to build e2fsprogs for an architecture."""
    return merge_packages(
        E2FSPROGS_BUILD_PACKAGES, E2FSPROGS_CROSS_PACKAGES[architecture]
    )


def e2fsprogs_configure_command(toolchain: ToolchainSchema) -> list[str]:
    """Compose the static configure command for a toolchain."""
    cmd = ["./configure", "CFLAGS=-O2 -static", "LDFLAGS=-static"]
    if toolchain.cross_cc is not None:
        cmd.append(f"CC={toolchain.cross_cc}")
        cmd.append(f"--host={toolchain.host_triple}")
    cmd.extend(["--disable-nls", "--disable-threads"])
    return cmd


def is_static_binary(path: Path) -> bool:
    """Return True if `file` reports the binary as statically linked."""
    output = probe_output(["file", str(path)])
    return output is not None and (
        "statically linked" in output or "static-pie linked" in output
    )


def build_e2fsprogs(
    settings: Settings,
    architecture: Architecture,
    client: httpx.Client,
    output_dir: Path,
    log_dir: Path | None = None,
) -> E2fsprogsBuildResult:
    """Download, configure and build static e2fsprogs binaries.

    Args:
        settings: Effective settings for this invocation.
        architecture: Target architecture.
        client: HTTPX client used for the source download.
        output_dir: Root directory; binaries land in output_dir/<arch>/.
        log_dir: Directory for step logs; defaults to output_dir/logs/<arch>.

    Returns:
        E2fsprogsBuildResult.

    Raises:
        InstallError: If host dependencies cannot be installed.
        DownloadError: If the source download fails.
        BuildExecutionError: If a build step fails.
    """
    toolchain = TOOLCHAINS[architecture]
    version = settings.e2fsprogs_version
    arch_dir = output_dir.resolve() / architecture.value
    log_dir = (log_dir or output_dir / "logs" / architecture.value).resolve()
    env = {"SOURCE_DATE_EPOCH": str(settings.source_date_epoch)}

    logger.info("Building e2fsprogs %s for %s", version, architecture.value)

    if settings.skip_install:
        logger.warning("Skipping dependency installation (--skip-install)")
    else:
        install_packages(
            e2fsprogs_packages(architecture), timeout=settings.build_timeout
        )

    source_path = ensure_source(
        client,
        e2fsprogs_source(version),
        settings.source_dir,
        clean=settings.clean,
        timeout=settings.download_timeout,
    )

    # A previous build may have left the tree configured for another host
    probe_output(["make", "-C", str(source_path), "distclean"])

    steps = [
        run_step(
            "e2fsprogs-configure",
            e2fsprogs_configure_command(toolchain),
            source_path,
            log_dir,
            settings.build_timeout,
            env,
        ),
        run_step(
            "e2fsprogs-build",
            ["make", f"-j{settings.jobs}"],
            source_path,
            log_dir,
            settings.build_timeout,
            env,
        ),
    ]

    arch_dir.mkdir(parents=True, exist_ok=True)
    binaries: dict[str, Path] = {}
    static: dict[str, bool] = {}
    for name, rel_path in E2FSPROGS_BINARIES.items():
        dest = arch_dir / name
        shutil.copy2(source_path / rel_path, dest)
        binaries[name] = dest
        static[name] = is_static_binary(dest)
        if static[name]:
            logger.info("%s %s is statically linked", architecture.value, name)
        else:
            logger.warning(
                "%s %s may not be statically linked", architecture.value, name
            )

    steps.append(
        run_step(
            "e2fsprogs-distclean",
            ["make", "distclean"],
            source_path,
            log_dir,
            settings.build_timeout,
        )
    )

    logger.info("e2fsprogs build complete for %s", architecture.value)
    return E2fsprogsBuildResult(
        architecture=architecture,
        version=version,
        binaries=binaries,
        static=static,
        steps=steps,
    )


__all__ = [
    "E2FSPROGS_BINARIES",
    "E2fsprogsBuildResult",
    "build_e2fsprogs",
    "e2fsprogs_configure_command",
    "e2fsprogs_packages",
    "is_static_binary",
]
