"""Configuration settings for sandbox_artifacts.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.

A Settings instance is built once per invocation and passed down to the
build steps; nothing reads the environment after that.
"""

import os
from pathlib import Path
from typing import Literal, get_args

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from sandbox_artifacts.types import BuildProfile, LibcVariant

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LOG_LEVELS: tuple[str, ...] = get_args(LogLevel)


def _default_jobs() -> int:
    """Return the default number of parallel make jobs."""
    return os.cpu_count() or 1


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the SBX_ART_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="SBX_ART_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    build_dir: Path = Field(
        default=Path("build"),
        description="Root directory for bundled artifacts",
    )
    source_dir: Path = Field(
        default=Path("build") / "sources",
        description="Directory for downloaded and extracted upstream sources",
    )

    # Upstream versions
    kernel_version: str = Field(default="6.12.4", description="Linux kernel version")
    e2fsprogs_version: str = Field(default="1.47.1", description="e2fsprogs version")
    qemu_version: str = Field(default="9.1.0", description="QEMU version")

    # QEMU build selection
    profile: BuildProfile = Field(
        default=BuildProfile.DEFAULT,
        description="QEMU build profile",
    )
    libc: LibcVariant = Field(
        default=LibcVariant.GLIBC,
        description="C library for the static QEMU build",
    )

    # Operational modes
    jobs: int = Field(
        default_factory=_default_jobs,
        ge=1,
        description="Parallel make jobs",
    )
    skip_install: bool = Field(
        default=False,
        description="Do not install host build dependencies",
    )
    clean: bool = Field(
        default=False,
        description="Remove existing source trees before building",
    )
    log_level: LogLevel = Field(
        default="INFO",
        description="Logging level",
    )

    # Reproducibility
    source_date_epoch: int = Field(
        default=1600000000,
        ge=0,
        description="SOURCE_DATE_EPOCH exported to upstream builds",
    )

    # Timeouts (in seconds)
    download_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for source downloads",
    )
    build_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for a single build step",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["LOG_LEVELS", "LogLevel", "Settings", "get_settings", "print_settings_json"]
