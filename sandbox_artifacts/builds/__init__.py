"""Build orchestration module.

This module handles:
- Running upstream build steps with per-step logs
- Building the guest kernel, static e2fsprogs and static QEMU
- Assembling per-architecture bundles, manifests and release tarballs
"""

from sandbox_artifacts.builds.runner import BuildExecutionError, run_step

__all__ = ["BuildExecutionError", "run_step"]

# Component builders are imported from their submodules
# (sandbox_artifacts.builds.kernel, .qemu, .e2fsprogs, .service).
