"""Tests for builds/e2fsprogs.py module."""

from unittest.mock import MagicMock, patch

import pytest

from sandbox_artifacts.builds.e2fsprogs import (
    E2FSPROGS_BINARIES,
    build_e2fsprogs,
    e2fsprogs_configure_command,
    e2fsprogs_packages,
    is_static_binary,
)
from sandbox_artifacts.config import Settings
from sandbox_artifacts.profiles.tables import TOOLCHAINS
from sandbox_artifacts.types import Architecture, StepResult


def fake_step(name, cmd, cwd, log_dir, timeout=None, env_override=None):
    return StepResult(name, " ".join(cmd), 0, str(log_dir / f"{name}.log"), 0.0)


@pytest.fixture
def e2fs_tree(tmp_path):
    """A fake built e2fsprogs tree."""
    tree = tmp_path / "e2fsprogs-1.47.1"
    for rel_path in E2FSPROGS_BINARIES.values():
        binary = tree / rel_path
        binary.parent.mkdir(parents=True, exist_ok=True)
        binary.write_bytes(b"\x7fELF" + rel_path.encode())
    return tree


class TestConfigureCommand:
    """Tests for e2fsprogs_configure_command function."""

    def test_native(self):
        """amd64 should configure statically without a host triple."""
        assert e2fsprogs_configure_command(TOOLCHAINS[Architecture.AMD64]) == [
            "./configure",
            "CFLAGS=-O2 -static",
            "LDFLAGS=-static",
            "--disable-nls",
            "--disable-threads",
        ]

    def test_cross(self):
        """arm64 should set CC and --host."""
        cmd = e2fsprogs_configure_command(TOOLCHAINS[Architecture.ARM64])

        assert "CC=aarch64-linux-gnu-gcc" in cmd
        assert "--host=aarch64-linux-gnu" in cmd
        assert cmd[-2:] == ["--disable-nls", "--disable-threads"]


class TestPackages:
    """Tests for e2fsprogs_packages function."""

    def test_cross_packages(self):
        assert "crossbuild-essential-arm64" in e2fsprogs_packages(Architecture.ARM64)
        assert "crossbuild-essential-arm64" not in e2fsprogs_packages(
            Architecture.AMD64
        )


class TestIsStaticBinary:
    """Tests for is_static_binary function."""

    @pytest.mark.parametrize(
        ("output", "expected"),
        [
            ("ELF 64-bit LSB executable, x86-64, statically linked, stripped", True),
            ("ELF 64-bit LSB pie executable, static-pie linked", True),
            ("ELF 64-bit LSB executable, dynamically linked", False),
            (None, False),
        ],
    )
    def test_file_output(self, tmp_path, output, expected):
        with patch(
            "sandbox_artifacts.builds.e2fsprogs.probe_output", return_value=output
        ):
            assert is_static_binary(tmp_path / "mke2fs") is expected


class TestBuildE2fsprogs:
    """Tests for build_e2fsprogs orchestration."""

    def test_full_flow(self, tmp_path, e2fs_tree):
        """Binaries should be copied to <output>/<arch> with SOURCE_DATE_EPOCH set."""
        settings = Settings(source_dir=tmp_path, skip_install=True, jobs=3)
        output_dir = tmp_path / "out"

        with (
            patch(
                "sandbox_artifacts.builds.e2fsprogs.ensure_source",
                return_value=e2fs_tree,
            ),
            patch(
                "sandbox_artifacts.builds.e2fsprogs.run_step", side_effect=fake_step
            ) as mock_step,
            patch(
                "sandbox_artifacts.builds.e2fsprogs.probe_output",
                return_value="statically linked",
            ),
        ):
            result = build_e2fsprogs(
                settings, Architecture.ARM64, MagicMock(), output_dir
            )

        arch_dir = output_dir.resolve() / "arm64"
        assert result.binaries == {
            "mke2fs": arch_dir / "mke2fs",
            "e2fsck": arch_dir / "e2fsck",
        }
        assert (arch_dir / "mke2fs").read_bytes() == b"\x7fELFmisc/mke2fs"
        assert result.static == {"mke2fs": True, "e2fsck": True}
        assert [s.name for s in result.steps] == [
            "e2fsprogs-configure",
            "e2fsprogs-build",
            "e2fsprogs-distclean",
        ]
        configure_call = mock_step.call_args_list[0]
        assert configure_call.args[5] == {"SOURCE_DATE_EPOCH": "1600000000"}
        assert mock_step.call_args_list[1].args[1] == ["make", "-j3"]

    def test_installs_dependencies(self, tmp_path, e2fs_tree):
        """Host packages should be installed unless skipped."""
        settings = Settings(source_dir=tmp_path)

        with (
            patch("sandbox_artifacts.builds.e2fsprogs.install_packages") as mock_install,
            patch(
                "sandbox_artifacts.builds.e2fsprogs.ensure_source",
                return_value=e2fs_tree,
            ),
            patch("sandbox_artifacts.builds.e2fsprogs.run_step", side_effect=fake_step),
            patch("sandbox_artifacts.builds.e2fsprogs.probe_output", return_value=None),
        ):
            result = build_e2fsprogs(
                settings, Architecture.AMD64, MagicMock(), tmp_path / "out"
            )

        assert mock_install.call_args.args[0] == e2fsprogs_packages(Architecture.AMD64)
        assert result.static == {"mke2fs": False, "e2fsck": False}
