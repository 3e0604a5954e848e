"""Tests for builds/kernel.py module.

Build steps are mocked; the tests check command composition and the
installed file layout.
"""

from unittest.mock import MagicMock, patch

import pytest

from sandbox_artifacts.builds.kernel import (
    build_kernel,
    compile_kernel,
    configure_kernel,
    install_kernel,
    kernel_make,
    kernel_packages,
)
from sandbox_artifacts.config import Settings
from sandbox_artifacts.profiles.tables import TOOLCHAINS
from sandbox_artifacts.types import Architecture, StepResult


def fake_step(name, cmd, cwd, log_dir, timeout=None, env_override=None):
    return StepResult(
        name=name,
        command=" ".join(cmd),
        exit_code=0,
        log_path=str(log_dir / f"{name}.log"),
        duration_seconds=0.0,
    )


@pytest.fixture
def kernel_tree(tmp_path):
    """A fake built kernel tree with both architecture images."""
    tree = tmp_path / "linux-6.12.4"
    for tc in TOOLCHAINS.values():
        image = tree / tc.kernel_image
        image.parent.mkdir(parents=True, exist_ok=True)
        image.write_bytes(b"kernel-" + tc.kernel_target.encode())
    (tree / ".config").write_text("CONFIG_VIRTIO=y\n")
    (tree / "System.map").write_text("ffffffff81000000 T _text\n")
    return tree


class TestKernelPackages:
    """Tests for kernel_packages function."""

    def test_amd64_native(self):
        packages = kernel_packages(Architecture.AMD64)
        assert "libelf-dev" in packages
        assert "gcc-aarch64-linux-gnu" not in packages

    def test_arm64_cross(self):
        """arm64 should add the cross compiler packages."""
        packages = kernel_packages(Architecture.ARM64)
        assert packages[-2:] == ("gcc-aarch64-linux-gnu", "binutils-aarch64-linux-gnu")


class TestKernelMake:
    """Tests for kernel_make function."""

    def test_amd64(self):
        assert kernel_make(TOOLCHAINS[Architecture.AMD64], "defconfig") == [
            "make",
            "ARCH=x86_64",
            "CROSS_COMPILE=",
            "defconfig",
        ]

    def test_arm64(self):
        assert kernel_make(TOOLCHAINS[Architecture.ARM64], "-j4", "Image") == [
            "make",
            "ARCH=arm64",
            "CROSS_COMPILE=aarch64-linux-gnu-",
            "-j4",
            "Image",
        ]


class TestConfigureAndCompile:
    """Tests for configure_kernel and compile_kernel."""

    def test_configure_sequence(self, tmp_path):
        """defconfig, scripts/config and olddefconfig should run in order."""
        with patch("sandbox_artifacts.builds.kernel.run_step", side_effect=fake_step) as m:
            steps = configure_kernel(
                tmp_path, TOOLCHAINS[Architecture.ARM64], tmp_path / "logs"
            )

        assert [s.name for s in steps] == [
            "kernel-defconfig",
            "kernel-options",
            "kernel-olddefconfig",
        ]
        options_cmd = m.call_args_list[1].args[1]
        assert options_cmd[0] == "scripts/config"
        assert options_cmd[1:3] == ["--enable", "CONFIG_HYPERVISOR_GUEST"]
        assert m.call_args_list[2].args[1][-1] == "olddefconfig"

    def test_compile_target(self, tmp_path):
        """The image target and modules should be built with -jN."""
        with patch("sandbox_artifacts.builds.kernel.run_step", side_effect=fake_step) as m:
            compile_kernel(tmp_path, TOOLCHAINS[Architecture.AMD64], 8, tmp_path / "logs")

        assert m.call_args.args[1][-3:] == ["-j8", "bzImage", "modules"]


class TestInstallKernel:
    """Tests for install_kernel function."""

    def test_layout(self, tmp_path, kernel_tree):
        """Versioned files and symlinks should be created."""
        output_dir = tmp_path / "out"
        with patch("sandbox_artifacts.builds.kernel.run_step", side_effect=fake_step) as m:
            image, config, _ = install_kernel(
                kernel_tree,
                TOOLCHAINS[Architecture.ARM64],
                "6.12.4",
                output_dir,
                tmp_path / "logs",
            )

        assert (output_dir / "vmlinuz-6.12.4").read_bytes() == b"kernel-Image"
        assert (output_dir / "config-6.12.4").exists()
        assert (output_dir / "System.map-6.12.4").exists()
        for name in ("vmlinuz", "config", "System.map"):
            link = output_dir / name
            assert link.is_symlink()
            assert str(link.readlink()) == f"{name}-6.12.4"
        assert image == output_dir.resolve() / "vmlinuz"
        assert config == output_dir.resolve() / "config"
        modules_cmd = m.call_args.args[1]
        assert f"INSTALL_MOD_PATH={output_dir.resolve()}" in modules_cmd
        assert modules_cmd[-1] == "modules_install"

    def test_reinstall_replaces_links(self, tmp_path, kernel_tree):
        """Installing twice should replace existing symlinks."""
        output_dir = tmp_path / "out"
        tc = TOOLCHAINS[Architecture.AMD64]
        with patch("sandbox_artifacts.builds.kernel.run_step", side_effect=fake_step):
            install_kernel(kernel_tree, tc, "6.12.4", output_dir, tmp_path / "logs")
            install_kernel(kernel_tree, tc, "6.12.4", output_dir, tmp_path / "logs")

        assert (output_dir / "vmlinuz").read_bytes() == b"kernel-bzImage"


class TestBuildKernel:
    """Tests for build_kernel orchestration."""

    def test_full_flow(self, tmp_path, kernel_tree):
        """Dependencies, source, configure, build and install should all run."""
        settings = Settings(source_dir=tmp_path, jobs=2)
        client = MagicMock()

        with (
            patch("sandbox_artifacts.builds.kernel.install_packages") as mock_install,
            patch(
                "sandbox_artifacts.builds.kernel.ensure_source", return_value=kernel_tree
            ) as mock_source,
            patch("sandbox_artifacts.builds.kernel.run_step", side_effect=fake_step),
        ):
            result = build_kernel(settings, Architecture.AMD64, client, tmp_path / "out")

        mock_install.assert_called_once()
        assert mock_install.call_args.args[0] == kernel_packages(Architecture.AMD64)
        archive = mock_source.call_args.args[1]
        assert archive.tree_name == "linux-6.12.4"
        assert result.version == "6.12.4"
        assert [s.name for s in result.steps] == [
            "kernel-defconfig",
            "kernel-options",
            "kernel-olddefconfig",
            "kernel-build",
            "kernel-modules-install",
        ]
        assert result.image_path.read_bytes() == b"kernel-bzImage"

    def test_skip_install(self, tmp_path, kernel_tree):
        """skip_install should not touch host packages."""
        settings = Settings(source_dir=tmp_path, skip_install=True)

        with (
            patch("sandbox_artifacts.builds.kernel.install_packages") as mock_install,
            patch(
                "sandbox_artifacts.builds.kernel.ensure_source", return_value=kernel_tree
            ),
            patch("sandbox_artifacts.builds.kernel.run_step", side_effect=fake_step),
        ):
            build_kernel(settings, Architecture.ARM64, MagicMock(), tmp_path / "out")

        mock_install.assert_not_called()
