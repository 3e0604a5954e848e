"""Tests for builds/qemu.py module."""

from unittest.mock import MagicMock, patch

import pytest

from sandbox_artifacts.builds.qemu import (
    QemuBuildResult,
    build_qemu,
    check_static_linkage,
    render_build_report,
    target_binary_name,
)
from sandbox_artifacts.config import Settings
from sandbox_artifacts.profiles import resolve
from sandbox_artifacts.types import StepResult


def fake_step(name, cmd, cwd, log_dir, timeout=None, env_override=None):
    return StepResult(name, " ".join(cmd), 0, str(log_dir / f"{name}.log"), 0.0)


class TestTargetBinaryName:
    """Tests for target_binary_name function."""

    def test_names(self):
        assert target_binary_name("x86_64-softmmu") == "qemu-system-x86_64"
        assert target_binary_name("aarch64-softmmu") == "qemu-system-aarch64"


class TestCheckStaticLinkage:
    """Tests for check_static_linkage function."""

    @pytest.mark.parametrize(
        ("output", "expected"),
        [
            ("\tnot a dynamic executable\n", True),
            ("\tstatically linked\n", True),
            ("\tlibc.so.6 => /lib/x86_64-linux-gnu/libc.so.6\n", False),
            (None, None),
        ],
    )
    def test_ldd_output(self, tmp_path, output, expected):
        with patch("sandbox_artifacts.builds.qemu.probe_output", return_value=output):
            assert check_static_linkage(tmp_path / "qemu") is expected


class TestRenderBuildReport:
    """Tests for render_build_report function."""

    def test_musl_report(self, tmp_path):
        """musl builds should be reported as fully static."""
        resolved = resolve("amd64", "minimal", "musl")
        result = QemuBuildResult(
            version="9.1.0",
            prefix=tmp_path,
            targets=["x86_64-softmmu"],
            configure_args=resolved.configure_args(str(tmp_path)),
        )
        report = render_build_report(resolved, result)

        assert "- **QEMU Version**: 9.1.0" in report
        assert "- **Build Profile**: minimal" in report
        assert "Static (musl)" in report
        assert "`bin/qemu-system-x86_64`" in report
        assert "--cc=musl-gcc" in report

    def test_glibc_report(self, tmp_path):
        resolved = resolve("arm64", "full", "glibc")
        result = QemuBuildResult("9.1.0", tmp_path, ["aarch64-softmmu"], [])

        assert "Mostly-static (glibc)" in render_build_report(resolved, result)


class TestBuildQemu:
    """Tests for build_qemu orchestration."""

    @pytest.fixture
    def qemu_tree(self, tmp_path):
        tree = tmp_path / "src" / "qemu-9.1.0"
        (tree / "build").mkdir(parents=True)
        (tree / "build" / "stale.o").write_bytes(b"")
        return tree

    def test_full_flow(self, tmp_path, qemu_tree):
        """configure, make and install should run in a fresh build directory."""
        settings = Settings(source_dir=tmp_path / "src", jobs=4)
        resolved = resolve("amd64", "default", "musl")
        prefix = tmp_path / "prefix"

        def install_binary(*args, **kwargs):
            step = fake_step(*args, **kwargs)
            if step.name == "qemu-install":
                (prefix / "bin").mkdir(parents=True, exist_ok=True)
                (prefix / "bin" / "qemu-system-x86_64").write_bytes(b"\x7fELF")
            return step

        with (
            patch("sandbox_artifacts.builds.qemu.install_packages") as mock_install,
            patch(
                "sandbox_artifacts.builds.qemu.ensure_meson",
                return_value={"PATH": "/home/builder/.local/bin:/usr/bin"},
            ) as mock_meson,
            patch(
                "sandbox_artifacts.builds.qemu.ensure_source", return_value=qemu_tree
            ),
            patch(
                "sandbox_artifacts.builds.qemu.run_step", side_effect=install_binary
            ) as mock_step,
            patch(
                "sandbox_artifacts.builds.qemu.probe_output",
                return_value="not a dynamic executable",
            ),
        ):
            result = build_qemu(settings, resolved, MagicMock(), prefix)

        assert mock_install.call_args.args[0] == resolved.packages
        mock_meson.assert_called_once()
        assert not (qemu_tree / "build" / "stale.o").exists()

        configure_cmd = mock_step.call_args_list[0].args[1]
        assert configure_cmd[0] == "../configure"
        assert configure_cmd[1:] == resolved.configure_args(
            str(prefix.resolve()), ["x86_64-softmmu"]
        )
        assert mock_step.call_args_list[0].args[2] == qemu_tree / "build"
        assert mock_step.call_args_list[1].args[1] == ["make", "-j4"]
        assert mock_step.call_args_list[2].args[1] == ["make", "install"]
        for call in mock_step.call_args_list:
            assert call.kwargs["env_override"] == {
                "PATH": "/home/builder/.local/bin:/usr/bin"
            }

        assert result.binary == prefix.resolve() / "bin" / "qemu-system-x86_64"
        assert result.fully_static is True
        assert "Static (musl)" in (prefix / "README.md").read_text()

    def test_custom_targets(self, tmp_path, qemu_tree):
        """Explicit targets should override the architecture default."""
        settings = Settings(source_dir=tmp_path / "src", skip_install=True)
        resolved = resolve("amd64", "minimal")

        with (
            patch("sandbox_artifacts.builds.qemu.install_packages") as mock_install,
            patch(
                "sandbox_artifacts.builds.qemu.ensure_source", return_value=qemu_tree
            ),
            patch("sandbox_artifacts.builds.qemu.run_step", side_effect=fake_step),
        ):
            result = build_qemu(
                settings,
                resolved,
                MagicMock(),
                tmp_path / "prefix",
                targets=["aarch64-softmmu", "x86_64-softmmu"],
            )

        mock_install.assert_not_called()
        assert result.targets == ["aarch64-softmmu", "x86_64-softmmu"]
        assert "--target-list=aarch64-softmmu,x86_64-softmmu" in result.configure_args
        # No binary was installed by the mocked steps
        assert result.binary is None
        assert result.fully_static is None
