"""Static QEMU build.

Builds QEMU from source with the configure arguments of a ResolvedConfig
and installs it under an output prefix. The resolver decides which
features are compiled in and how the result is linked; this module only
runs the upstream build.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from sandbox_artifacts.builds.runner import probe_output, run_step
from sandbox_artifacts.hostdeps import ensure_meson, install_packages
from sandbox_artifacts.sources import ensure_source, qemu_source
from sandbox_artifacts.types import LibcVariant, StepResult

if TYPE_CHECKING:
    import httpx

    from sandbox_artifacts.config import Settings
    from sandbox_artifacts.profiles.schema import ResolvedConfig

logger = logging.getLogger(__name__)


@dataclass
class QemuBuildResult:
    """Result of a QEMU build.

    Attributes:
        version: QEMU version built.
        prefix: Installation prefix.
        targets: Softmmu targets built.
        configure_args: Arguments passed to configure.
        binary: Path to the primary qemu-system binary, if it was found.
        fully_static: True if ldd reports no dynamic dependencies.
        steps: Executed build steps.
    """

    version: str
    prefix: Path
    targets: list[str]
    configure_args: list[str]
    binary: Path | None = None
    fully_static: bool | None = None
    steps: list[StepResult] = field(default_factory=list)


def target_binary_name(target: str) -> str:
    """Map a softmmu target to its binary name ('x86_64-softmmu' -> 'qemu-system-x86_64')."""
    return "qemu-system-" + target.removesuffix("-softmmu")


def check_static_linkage(binary: Path) -> bool | None:
    """Report whether a binary is fully static according to ldd.

    Returns:
        True if static, False if dynamic, None if ldd is unavailable.
    """
    output = probe_output(["ldd", str(binary)])
    if output is None:
        return None
    return "not a dynamic executable" in output or "statically linked" in output


def render_build_report(
    resolved: ResolvedConfig,
    result: QemuBuildResult,
) -> str:
    """Render the README.md describing a QEMU build."""
    build_type = (
        "Static (musl)"
        if resolved.libc is LibcVariant.MUSL
        else "Mostly-static (glibc)"
    )
    binaries = [target_binary_name(t) for t in result.targets]
    lines = [
        "# Static QEMU Build",
        "",
        "## Build Information",
        "",
        f"- **QEMU Version**: {result.version}",
        f"- **Build Profile**: {resolved.profile.value}",
        f"- **Targets**: {','.join(result.targets)}",
        f"- **Build Type**: {build_type}",
        "",
        "## Binaries",
        "",
        *[f"- `bin/{name}`" for name in binaries],
        "",
        "## Configure Arguments",
        "",
        "```",
        *result.configure_args,
        "```",
        "",
        "## Linking",
        "",
    ]
    if resolved.libc is LibcVariant.MUSL:
        lines.append(
            "This build uses musl-libc for fully static linking and should run "
            "on any Linux system without additional dependencies."
        )
    else:
        lines.append(
            "This build uses glibc with mostly-static linking. glibc itself may "
            "still be linked dynamically; rebuild with musl for fully portable "
            "binaries."
        )
    lines.append("")
    return "\n".join(lines)


def build_qemu(
    settings: Settings,
    resolved: ResolvedConfig,
    client: httpx.Client,
    output_dir: Path,
    targets: list[str] | None = None,
) -> QemuBuildResult:
    """Download, configure, build and install QEMU.

    Args:
        settings: Effective settings for this invocation.
        resolved: Resolved configuration (profile, libc, architecture).
        client: HTTPX client used for the source download.
        output_dir: Installation prefix.
        targets: Softmmu targets; defaults to the resolved architecture's target.

    Returns:
        QemuBuildResult.

    Raises:
        InstallError: If host dependencies cannot be installed.
        DownloadError: If the source download fails.
        BuildExecutionError: If a build step fails.
    """
    prefix = output_dir.resolve()
    prefix.mkdir(parents=True, exist_ok=True)
    log_dir = prefix / "logs"
    target_list = targets or [resolved.toolchain.qemu_target]
    configure_args = resolved.configure_args(str(prefix), target_list)

    logger.info(
        "Building QEMU %s with profile %s (%s)",
        settings.qemu_version,
        resolved.profile.value,
        resolved.libc.value,
    )

    step_env: dict[str, str] | None = None
    if settings.skip_install:
        logger.warning("Skipping dependency installation (--skip-install)")
    else:
        install_packages(resolved.packages, timeout=settings.build_timeout)
        step_env = ensure_meson(timeout=settings.build_timeout)

    qemu_dir = ensure_source(
        client,
        qemu_source(settings.qemu_version),
        settings.source_dir,
        clean=settings.clean,
        timeout=settings.download_timeout,
    )

    build_dir = qemu_dir / "build"
    if build_dir.exists():
        shutil.rmtree(build_dir)
    build_dir.mkdir()

    logger.info("Configuration options: %s", " ".join(configure_args))
    result = QemuBuildResult(
        version=settings.qemu_version,
        prefix=prefix,
        targets=target_list,
        configure_args=configure_args,
    )
    result.steps.append(
        run_step(
            "qemu-configure",
            ["../configure", *configure_args],
            build_dir,
            log_dir,
            settings.build_timeout,
            env_override=step_env,
        )
    )
    result.steps.append(
        run_step(
            "qemu-build",
            ["make", f"-j{settings.jobs}"],
            build_dir,
            log_dir,
            settings.build_timeout,
            env_override=step_env,
        )
    )
    result.steps.append(
        run_step(
            "qemu-install",
            ["make", "install"],
            build_dir,
            log_dir,
            settings.build_timeout,
            env_override=step_env,
        )
    )

    binary = prefix / "bin" / target_binary_name(target_list[0])
    if binary.is_file():
        result.binary = binary
        result.fully_static = check_static_linkage(binary)
        if result.fully_static is False:
            logger.warning(
                "%s is not fully static; use the musl libc variant for a fully "
                "static build",
                binary.name,
            )
    else:
        logger.warning("%s not found under %s", binary.name, prefix / "bin")

    (prefix / "README.md").write_text(
        render_build_report(resolved, result), encoding="utf-8"
    )
    logger.info("QEMU installed to %s", prefix)
    return result


__all__ = [
    "QemuBuildResult",
    "build_qemu",
    "check_static_linkage",
    "render_build_report",
    "target_binary_name",
]
