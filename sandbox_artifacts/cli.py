"""Thin CLI wrapper for sandbox_artifacts.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Any, NoReturn

import click
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from sandbox_artifacts import __version__
from sandbox_artifacts.config import (
    LOG_LEVELS,
    Settings,
    get_settings,
    print_settings_json,
)
from sandbox_artifacts.profiles import (
    ResolverError,
    parse_architecture,
    parse_libc,
    parse_profile,
    resolve,
)

app = typer.Typer(
    name="sandbox-artifacts",
    help="QEMU sandbox artifacts - build kernel, initrd, e2fsprogs and QEMU bundles",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"qemu-sandbox-artifacts version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Route log records through rich at the given level."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            help="Override the configured log level",
            click_type=click.Choice(LOG_LEVELS, case_sensitive=False),
        ),
    ] = None,
) -> None:
    """QEMU sandbox artifacts - build kernel, initrd, e2fsprogs and QEMU bundles."""
    settings = _settings()
    configure_logging((log_level or settings.log_level).upper())


def _fail(message: str, code: int = 1) -> NoReturn:
    console.print(f"[red]{escape(message)}[/red]")
    raise typer.Exit(code=code)


def _settings(**overrides: Any) -> Settings:
    """Return settings with CLI overrides applied on top of env/defaults."""
    update = {k: v for k, v in overrides.items() if v is not None}
    try:
        settings = get_settings()
        if not update:
            return settings
        return Settings(**{**settings.model_dump(), **update})
    except ValidationError as e:
        _fail(f"Invalid settings: {e}")


def _run_guarded(func: Any, *args: Any, **kwargs: Any) -> Any:
    """Call a build entry point, turning known errors into a CLI failure."""
    from sandbox_artifacts.builds.artifacts import BundleError
    from sandbox_artifacts.builds.runner import BuildExecutionError
    from sandbox_artifacts.hostdeps import InstallError
    from sandbox_artifacts.sources import (
        DownloadError,
        ExtractionError,
        VerificationError,
    )

    try:
        return func(*args, **kwargs)
    except BuildExecutionError as e:
        console.print(f"[red]Build failed ({e.code}): {e}[/red]")
        if e.log_path:
            console.print(f"  Log: {e.log_path}")
        raise typer.Exit(code=1) from None
    except (
        ResolverError,
        InstallError,
        DownloadError,
        VerificationError,
        ExtractionError,
        BundleError,
    ) as e:
        _fail(f"Error ({e.code}): {e}")


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings), soft_wrap=True)
        return
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Build directory:     {settings.build_dir}")
    console.print(f"  Source directory:    {settings.source_dir}")
    console.print()
    console.print("[bold]Versions:[/bold]")
    console.print(f"  Kernel:              {settings.kernel_version}")
    console.print(f"  e2fsprogs:           {settings.e2fsprogs_version}")
    console.print(f"  QEMU:                {settings.qemu_version}")
    console.print()
    console.print("[bold]QEMU build:[/bold]")
    console.print(f"  Profile:             {settings.profile.value}")
    console.print(f"  Libc:                {settings.libc.value}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Jobs:                {settings.jobs}")
    console.print(f"  Skip install:        {settings.skip_install}")
    console.print(f"  Clean:               {settings.clean}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print(f"  SOURCE_DATE_EPOCH:   {settings.source_date_epoch}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Download timeout:    {settings.download_timeout}")
    console.print(f"  Build timeout:       {settings.build_timeout}")


ProfileOption = Annotated[
    str | None,
    typer.Option("--profile", "-p", help="Build profile: minimal, default or full"),
]
LibcOption = Annotated[
    str | None,
    typer.Option("--libc", help="C library: glibc or musl"),
]
TargetOption = Annotated[
    list[str] | None,
    typer.Option(
        "--target", "--targets", "-t", help="QEMU softmmu target (can be repeated)"
    ),
]


@app.command("resolve")
def resolve_cmd(
    arch: Annotated[str, typer.Argument(help="Target architecture: amd64 or arm64")],
    profile: ProfileOption = None,
    libc: LibcOption = None,
    prefix: Annotated[
        str,
        typer.Option("--prefix", help="Installation prefix for configure"),
    ] = "/usr/local",
    targets: TargetOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
    yaml_output: Annotated[
        bool,
        typer.Option("--yaml", help="Output as YAML"),
    ] = False,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Also write to a .json/.yaml file"),
    ] = None,
) -> None:
    """Resolve configure flags and host packages for a build."""
    from sandbox_artifacts.profiles import (
        export_resolved,
        resolved_to_json_string,
        resolved_to_yaml_string,
    )

    settings = get_settings()
    try:
        resolved = resolve(arch, profile or settings.profile, libc or settings.libc)
    except ResolverError as e:
        _fail(str(e))

    if output is not None:
        try:
            export_resolved(resolved, output)
        except ValueError as e:
            _fail(f"Error: {e}")

    if json_output:
        console.print(resolved_to_json_string(resolved), soft_wrap=True)
        return
    if yaml_output:
        console.print(resolved_to_yaml_string(resolved), soft_wrap=True)
        return

    tc = resolved.toolchain
    console.print(
        f"[bold]{resolved.architecture.value} / {resolved.profile.value} / "
        f"{resolved.libc.value}[/bold]"
    )
    console.print()
    console.print("[bold]Configure:[/bold]")
    console.print(f"  ../configure {' '.join(resolved.configure_args(prefix, targets))}")
    console.print()
    console.print("[bold]Toolchain:[/bold]")
    console.print(f"  Kernel ARCH:         {tc.kernel_arch}")
    console.print(f"  CROSS_COMPILE:       {tc.cross_compile or '(native)'}")
    console.print(f"  Kernel image:        {tc.kernel_image}")
    console.print(f"  Kernel target:       {tc.kernel_target}")
    console.print(f"  e2fsprogs host:      {tc.host_triple or '(native)'}")
    console.print()
    console.print(f"[bold]Packages ({len(resolved.packages)}):[/bold]")
    console.print(f"  {' '.join(resolved.packages)}")


@app.command("packages")
def packages_cmd(
    arch: Annotated[str, typer.Argument(help="Target architecture: amd64 or arm64")],
    component: Annotated[
        str,
        typer.Option("--component", "-c", help="qemu, kernel or e2fsprogs"),
    ] = "qemu",
    profile: ProfileOption = None,
    libc: LibcOption = None,
    distro: Annotated[
        str | None,
        typer.Option("--distro", help="Distribution ID (default: detect)"),
    ] = None,
) -> None:
    """Show the host package install commands for a component."""
    from sandbox_artifacts.builds.e2fsprogs import e2fsprogs_packages
    from sandbox_artifacts.builds.kernel import kernel_packages
    from sandbox_artifacts.hostdeps import InstallError, detect_distro, plan_install

    settings = get_settings()
    try:
        architecture = parse_architecture(arch)
        if component == "qemu":
            packages: tuple[str, ...] = resolve(
                architecture, profile or settings.profile, libc or settings.libc
            ).packages
        elif component == "kernel":
            packages = kernel_packages(architecture)
        elif component == "e2fsprogs":
            packages = e2fsprogs_packages(architecture)
        else:
            _fail(f"Unknown component: {component}. Valid: qemu, kernel, e2fsprogs")
        plan = plan_install(packages, distro or detect_distro())
    except (ResolverError, InstallError) as e:
        _fail(str(e))

    console.print(f"[bold]{component} on {plan.distro}:[/bold]")
    for line in plan.render():
        console.print(f"  {line}")


qemu_app = typer.Typer(help="Build static QEMU")
app.add_typer(qemu_app, name="qemu")


@qemu_app.command("build")
def qemu_build(
    arch: Annotated[
        str, typer.Option("--arch", "-a", help="Architecture whose target to build")
    ] = "amd64",
    profile: ProfileOption = None,
    libc: LibcOption = None,
    targets: TargetOption = None,
    qemu_version: Annotated[
        str | None, typer.Option("--qemu-version", "-v", help="QEMU version")
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Install prefix (default: <build>/qemu)"),
    ] = None,
    jobs: Annotated[int | None, typer.Option("--jobs", "-j", help="Parallel jobs")] = None,
    skip_install: Annotated[
        bool | None, typer.Option("--skip-install", help="Skip installing dependencies")
    ] = None,
    clean: Annotated[
        bool | None, typer.Option("--clean", help="Re-extract the source tree")
    ] = None,
) -> None:
    """Build a static QEMU with a build profile."""
    import httpx

    from sandbox_artifacts.builds.qemu import build_qemu

    try:
        settings = _settings(
            qemu_version=qemu_version,
            profile=parse_profile(profile) if profile else None,
            libc=parse_libc(libc) if libc else None,
            jobs=jobs,
            skip_install=skip_install,
            clean=clean,
        )
        resolved = resolve(arch, settings.profile, settings.libc)
    except ResolverError as e:
        _fail(str(e))

    prefix = output or settings.build_dir / "qemu"
    with httpx.Client(follow_redirects=True) as client:
        result = _run_guarded(build_qemu, settings, resolved, client, prefix, targets)

    console.print(f"[green]✓ QEMU {result.version} installed to {result.prefix}[/green]")
    if result.binary:
        console.print(f"  Binary: {result.binary}")
        if result.fully_static is False:
            console.print("  [yellow]Binary is not fully static (glibc)[/yellow]")
    console.print(f"  Report: {result.prefix / 'README.md'}")


kernel_app = typer.Typer(help="Build and verify the guest kernel")
app.add_typer(kernel_app, name="kernel")


@kernel_app.command("build")
def kernel_build(
    arch: Annotated[str, typer.Option("--arch", "-a", help="amd64 or arm64")] = "amd64",
    kernel_version: Annotated[
        str | None, typer.Option("--kernel-version", "-k", help="Kernel version")
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Output directory (default: <build>/kernel)"),
    ] = None,
    jobs: Annotated[int | None, typer.Option("--jobs", "-j", help="Parallel jobs")] = None,
    skip_install: Annotated[
        bool | None, typer.Option("--skip-install", help="Skip installing dependencies")
    ] = None,
    clean: Annotated[
        bool | None, typer.Option("--clean", help="Re-extract the source tree")
    ] = None,
) -> None:
    """Build the guest kernel for QEMU."""
    import httpx

    from sandbox_artifacts.builds.kernel import build_kernel

    try:
        architecture = parse_architecture(arch)
    except ResolverError as e:
        _fail(str(e))
    settings = _settings(
        kernel_version=kernel_version, jobs=jobs, skip_install=skip_install, clean=clean
    )
    output_dir = output or settings.build_dir / "kernel"

    with httpx.Client(follow_redirects=True) as client:
        result = _run_guarded(build_kernel, settings, architecture, client, output_dir)

    console.print(f"[green]✓ Kernel {result.version} built for {arch}[/green]")
    console.print(f"  Image: {result.image_path}")
    console.print(f"  Modules: {result.output_dir / 'lib' / 'modules' / result.version}")


@kernel_app.command("verify")
def kernel_verify(
    config_path: Annotated[Path, typer.Argument(help="Path to kernel .config file")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Verify a kernel config has the features the sandbox needs.

    Exits 0 when all required options are present, 1 when any is missing
    and 2 when the file cannot be read.
    """
    from sandbox_artifacts.kernel import KernelConfigError, verify_kernel_config

    try:
        report = verify_kernel_config(config_path)
    except KernelConfigError as e:
        _fail(f"Error: {e}", code=2)

    if json_output:
        console.print(json.dumps(report.to_dict(), indent=2), soft_wrap=True)
    else:
        console.print(f"[blue]Verifying kernel configuration: {config_path}[/blue]")
        current_group = None
        for outcome in report.outcomes:
            if outcome.group != current_group:
                current_group = outcome.group
                console.print()
                console.print(f"[blue]=== {current_group} ===[/blue]")
            check = outcome.check
            if outcome.present:
                console.print(f"[green]✓[/green] {check.symbol}")
            elif check.severity.value == "required":
                console.print(f"[red]✗[/red] {check.symbol} (REQUIRED)")
            else:
                console.print(f"[yellow]⚠[/yellow] {check.symbol} (RECOMMENDED)")
            console.print(f"  {check.description}")
        console.print()
        if report.passed and not report.missing_recommended:
            console.print("[green]✓ All checks passed![/green]")
        elif report.passed:
            console.print(
                "[yellow]⚠ All required features present, but "
                f"{len(report.missing_recommended)} recommended feature(s) are missing."
                "[/yellow]"
            )
        else:
            console.print("[red]✗ Verification failed![/red]")
            console.print(f"  Missing required features: {len(report.missing_required)}")
            console.print(
                f"  Missing recommended features: {len(report.missing_recommended)}"
            )

    if not report.passed:
        raise typer.Exit(code=1)


@kernel_app.command("options")
def kernel_options(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List the kernel options applied on top of defconfig."""
    from sandbox_artifacts.kernel import KERNEL_OPTION_GROUPS, config_symbol

    if json_output:
        output = {
            group: [
                {"symbol": config_symbol(o.name), "state": o.state.value} for o in opts
            ]
            for group, opts in KERNEL_OPTION_GROUPS.items()
        }
        console.print(json.dumps(output, indent=2), soft_wrap=True)
        return
    for group, opts in KERNEL_OPTION_GROUPS.items():
        console.print(f"[bold]{group}[/bold]")
        for o in opts:
            mark = "[green]+[/green]" if o.enabled else "[red]-[/red]"
            console.print(f"  {mark} {config_symbol(o.name)}")


e2fsprogs_app = typer.Typer(help="Build static e2fsprogs")
app.add_typer(e2fsprogs_app, name="e2fsprogs")


@e2fsprogs_app.command("build")
def e2fsprogs_build(
    arch: Annotated[str, typer.Option("--arch", "-a", help="amd64 or arm64")] = "amd64",
    e2fsprogs_version: Annotated[
        str | None, typer.Option("--version", "-v", help="e2fsprogs version")
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Output root (default: <build>/e2fsprogs)"),
    ] = None,
    jobs: Annotated[int | None, typer.Option("--jobs", "-j", help="Parallel jobs")] = None,
    skip_install: Annotated[
        bool | None, typer.Option("--skip-install", help="Skip installing dependencies")
    ] = None,
    clean: Annotated[
        bool | None, typer.Option("--clean", help="Re-extract the source tree")
    ] = None,
) -> None:
    """Build static mke2fs and e2fsck."""
    import httpx

    from sandbox_artifacts.builds.e2fsprogs import build_e2fsprogs

    try:
        architecture = parse_architecture(arch)
    except ResolverError as e:
        _fail(str(e))
    settings = _settings(
        e2fsprogs_version=e2fsprogs_version,
        jobs=jobs,
        skip_install=skip_install,
        clean=clean,
    )
    output_dir = output or settings.build_dir / "e2fsprogs"

    with httpx.Client(follow_redirects=True) as client:
        result = _run_guarded(build_e2fsprogs, settings, architecture, client, output_dir)

    console.print(f"[green]✓ e2fsprogs {result.version} built for {arch}[/green]")
    for name, path in result.binaries.items():
        linkage = "static" if result.static[name] else "[yellow]not static[/yellow]"
        console.print(f"  {name}: {path} ({linkage})")


initrd_app = typer.Typer(help="Fetch the guest initrd")
app.add_typer(initrd_app, name="initrd")


@initrd_app.command("download")
def initrd_download(
    arch: Annotated[str, typer.Option("--arch", "-a", help="amd64 or arm64")] = "amd64",
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Output directory (default: <build>/<arch>)"),
    ] = None,
) -> None:
    """Download the Debian netboot initrd."""
    import httpx

    from sandbox_artifacts.profiles.tables import TOOLCHAINS
    from sandbox_artifacts.sources import download_initrd

    try:
        architecture = parse_architecture(arch)
    except ResolverError as e:
        _fail(str(e))
    settings = get_settings()
    output_dir = output or settings.build_dir / architecture.value

    with httpx.Client(follow_redirects=True) as client:
        result = _run_guarded(
            download_initrd,
            client,
            TOOLCHAINS[architecture].debian_arch,
            output_dir,
            timeout=settings.download_timeout,
        )
    console.print(f"[green]✓ initrd saved to {result.path}[/green]")
    console.print(f"  SHA256: {result.checksum}")


@app.command("bundle")
def bundle_cmd(
    arches: Annotated[
        list[str] | None,
        typer.Argument(help="Architectures to build (default: all)"),
    ] = None,
    kernel_version: Annotated[
        str | None, typer.Option("--kernel-version", "-k", help="Kernel version")
    ] = None,
    e2fsprogs_version: Annotated[
        str | None, typer.Option("--e2fsprogs-version", help="e2fsprogs version")
    ] = None,
    jobs: Annotated[int | None, typer.Option("--jobs", "-j", help="Parallel jobs")] = None,
    skip_install: Annotated[
        bool | None, typer.Option("--skip-install", help="Skip installing dependencies")
    ] = None,
    clean: Annotated[
        bool | None, typer.Option("--clean", help="Re-extract the source trees")
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Build the boot bundle (initrd, kernel, e2fsprogs) per architecture."""
    from dataclasses import asdict

    import httpx

    from sandbox_artifacts.builds.service import build_bundle
    from sandbox_artifacts.types import Architecture

    try:
        architectures = (
            [parse_architecture(a) for a in arches] if arches else list(Architecture)
        )
    except ResolverError as e:
        _fail(str(e))
    settings = _settings(
        kernel_version=kernel_version,
        e2fsprogs_version=e2fsprogs_version,
        jobs=jobs,
        skip_install=skip_install,
        clean=clean,
    )

    results = []
    with httpx.Client(follow_redirects=True) as client:
        for architecture in architectures:
            results.append(_run_guarded(build_bundle, settings, architecture, client))

    if json_output:
        output = [
            {
                "architecture": r.architecture.value,
                "bundle_dir": str(r.bundle_dir),
                "manifest": str(r.manifest_path),
                "artifacts": [asdict(a) for a in r.artifacts],
                "missing": r.missing,
            }
            for r in results
        ]
        console.print(json.dumps(output, indent=2), soft_wrap=True)
        return
    for r in results:
        console.print(f"[green]✓ {r.architecture.value} bundle: {r.bundle_dir}[/green]")
        for a in r.artifacts:
            console.print(f"  {a.filename:<10} {a.size_bytes:>12} bytes  {a.sha256[:16]}...")


@app.command("release")
def release_cmd() -> None:
    """Pack the built bundles into release.tar.gz."""
    from sandbox_artifacts.builds.artifacts import create_release_tarball

    settings = get_settings()
    tarball = _run_guarded(create_release_tarball, settings.build_dir)
    console.print(f"[green]✓ Release tarball created: {tarball}[/green]")


__all__ = ["app"]
