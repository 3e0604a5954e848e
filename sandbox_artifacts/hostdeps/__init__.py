"""Host build dependency installation."""

from sandbox_artifacts.hostdeps.installer import (
    InstallError,
    InstallPlan,
    detect_distro,
    ensure_meson,
    install_packages,
    plan_install,
    run_install,
    translate_packages,
)

__all__ = [
    "InstallError",
    "InstallPlan",
    "detect_distro",
    "ensure_meson",
    "install_packages",
    "plan_install",
    "run_install",
    "translate_packages",
]
