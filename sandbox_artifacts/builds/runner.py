"""Build step runner.

This module handles:
- Executing one upstream build command (make, configure, ...)
- Capturing stdout/stderr to a per-step log file
- Enforcing step timeouts

Steps run sequentially; a failing step stops the surrounding build.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from datetime import datetime, timezone
from pathlib import Path

from sandbox_artifacts.types import StepResult

logger = logging.getLogger(__name__)


class BuildExecutionError(Exception):
    """Raised when a build step fails."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "build_error",
        log_path: Path | None = None,
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code
        self.log_path = log_path


def make_env(
    env_override: dict[str, str] | None = None,
) -> dict[str, str] | None:
    """Return the environment for a step, or None to inherit unchanged."""
    if not env_override:
        return None
    env = dict(os.environ)
    env.update(env_override)
    return env


def run_step(
    name: str,
    cmd: list[str],
    cwd: Path,
    log_dir: Path,
    timeout: int | None = None,
    env_override: dict[str, str] | None = None,
) -> StepResult:
    """Execute one build step.

    Args:
        name: Step name; also the log file stem.
        cmd: Command as a list of strings.
        cwd: Working directory.
        log_dir: Directory for the step log.
        timeout: Step timeout in seconds (None = no timeout).
        env_override: Optional environment variable overrides.

    Returns:
        StepResult describing the successful step.

    Raises:
        BuildExecutionError: If the step exits non-zero, times out or
            cannot be started.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"{name}.log"

    cmd_str = shlex.join(cmd)
    logger.info("[%s] %s", name, cmd_str)
    logger.debug("[%s] cwd=%s log=%s", name, cwd, log_path)

    started_at = datetime.now(timezone.utc)

    try:
        with log_path.open("w") as log_file:
            log_file.write(f"# Command: {cmd_str}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write(f"# CWD: {cwd}\n")
            log_file.write("# " + "=" * 70 + "\n\n")
            log_file.flush()

            result = subprocess.run(
                cmd,
                cwd=cwd,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                timeout=timeout,
                env=make_env(env_override),
                check=False,
            )
            exit_code = result.returncode

    except subprocess.TimeoutExpired as e:
        message = f"Step '{name}' timed out after {timeout} seconds"
        logger.error("%s. See log: %s", message, log_path)
        with log_path.open("a") as log_file:
            log_file.write(f"\n# TIMEOUT after {timeout} seconds\n")
        raise BuildExecutionError(
            message, exit_code=-1, code="build_timeout", log_path=log_path
        ) from e

    except OSError as e:
        message = f"Failed to execute step '{name}': {e}"
        logger.error(message)
        raise BuildExecutionError(
            message, exit_code=None, code="execution_error", log_path=log_path
        ) from e

    finished_at = datetime.now(timezone.utc)
    duration = (finished_at - started_at).total_seconds()

    with log_path.open("a") as log_file:
        log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
        log_file.write(f"# Exit code: {exit_code}\n")
        log_file.write(f"# Duration: {duration:.1f}s\n")

    if exit_code != 0:
        message = f"Step '{name}' failed with exit code {exit_code}"
        logger.error("%s. See log: %s", message, log_path)
        raise BuildExecutionError(
            message, exit_code=exit_code, code="step_failed", log_path=log_path
        )

    return StepResult(
        name=name,
        command=cmd_str,
        exit_code=exit_code,
        log_path=str(log_path),
        duration_seconds=duration,
    )


def probe_output(cmd: list[str], timeout: int = 60) -> str | None:
    """Run a short inspection command and return its stdout.

    Used for informational checks (file, ldd, --version) whose failure
    must not fail the build.

    Returns:
        Combined stdout/stderr text, or None if the command is unavailable.
    """
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("Probe %s unavailable: %s", shlex.join(cmd), e)
        return None
    return result.stdout + result.stderr


__all__ = [
    "BuildExecutionError",
    "make_env",
    "probe_output",
    "run_step",
]
