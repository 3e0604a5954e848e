"""Tests for the build profile resolver.

Covers the resolver contract: every supported combination resolves,
bad names are rejected before anything is assembled, enabled features
nest across profiles and output is deterministic.
"""

import itertools

import pytest
from pydantic import ValidationError

from sandbox_artifacts.profiles import (
    FeatureDirective,
    ResolverError,
    UnsupportedArchitecture,
    UnsupportedLibcVariant,
    UnsupportedProfile,
    effective_states,
    parse_architecture,
    parse_libc,
    parse_profile,
    resolve,
)
from sandbox_artifacts.profiles.resolver import merge_packages
from sandbox_artifacts.profiles.tables import (
    BASE_BUILD_PACKAGES,
    PROFILE_DIRECTIVES,
    QEMU_LIBRARY_PACKAGES,
    REMOTE_DISPLAY_FEATURES,
)
from sandbox_artifacts.types import (
    Architecture,
    BuildProfile,
    FeatureState,
    LibcVariant,
)

ALL_COMBINATIONS = list(itertools.product(Architecture, BuildProfile, LibcVariant))


def enabled_names(profile: BuildProfile) -> set[str]:
    return {
        name
        for name, state in effective_states(PROFILE_DIRECTIVES[profile]).items()
        if state is FeatureState.ENABLED
    }


class TestResolveAllCombinations:
    """Every (architecture, profile, libc) combination should resolve."""

    @pytest.mark.parametrize(("arch", "profile", "libc"), ALL_COMBINATIONS)
    def test_non_empty_directives(self, arch, profile, libc):
        """Each combination should produce a non-empty directive list."""
        resolved = resolve(arch, profile, libc)

        assert resolved.directives
        assert resolved.architecture is arch
        assert resolved.profile is profile
        assert resolved.libc is libc

    @pytest.mark.parametrize(("arch", "profile", "libc"), ALL_COMBINATIONS)
    def test_packages_deduplicated(self, arch, profile, libc):
        """The package list should contain no duplicates."""
        packages = resolve(arch, profile, libc).packages
        assert len(packages) == len(set(packages))

    def test_accepts_string_names(self):
        """Plain strings should be parsed into the enums."""
        resolved = resolve("arm64", "minimal", "musl")
        assert resolved.architecture is Architecture.ARM64
        assert resolved.profile is BuildProfile.MINIMAL
        assert resolved.libc is LibcVariant.MUSL

    def test_libc_defaults_to_glibc(self):
        """libc should default to glibc."""
        assert resolve("amd64", "default").libc is LibcVariant.GLIBC


class TestResolverErrors:
    """Unsupported inputs should raise the matching error."""

    def test_unsupported_architecture(self):
        """Unknown architectures should raise UnsupportedArchitecture."""
        with pytest.raises(UnsupportedArchitecture) as exc_info:
            resolve("riscv64", "default")

        assert exc_info.value.code == "unsupported_architecture"
        assert exc_info.value.value == "riscv64"
        assert exc_info.value.valid == ["amd64", "arm64"]
        assert "riscv64" in str(exc_info.value)

    def test_unsupported_profile(self):
        """Unknown profiles should raise UnsupportedProfile."""
        with pytest.raises(UnsupportedProfile) as exc_info:
            resolve("amd64", "huge")

        assert exc_info.value.code == "unsupported_profile"
        assert exc_info.value.valid == ["default", "full", "minimal"]

    def test_unsupported_libc(self):
        """Unknown libc variants should raise UnsupportedLibcVariant."""
        with pytest.raises(UnsupportedLibcVariant) as exc_info:
            resolve("amd64", "default", "uclibc")

        assert exc_info.value.code == "unsupported_libc"

    def test_errors_share_base_class(self):
        """All resolver errors should be ResolverError and ValueError."""
        for exc_type in (
            UnsupportedArchitecture,
            UnsupportedProfile,
            UnsupportedLibcVariant,
        ):
            assert issubclass(exc_type, ResolverError)
            assert issubclass(exc_type, ValueError)

    def test_architecture_validated_first(self):
        """With several bad inputs the architecture should be reported."""
        with pytest.raises(UnsupportedArchitecture):
            resolve("mips", "huge", "uclibc")

    def test_case_sensitive(self):
        """Names should not be case-folded."""
        with pytest.raises(UnsupportedArchitecture):
            parse_architecture("AMD64")
        with pytest.raises(UnsupportedProfile):
            parse_profile("Default")
        with pytest.raises(UnsupportedLibcVariant):
            parse_libc("MUSL")

    def test_error_is_not_chained(self):
        """The enum ValueError should be suppressed."""
        with pytest.raises(UnsupportedProfile) as exc_info:
            parse_profile("tiny")
        assert exc_info.value.__cause__ is None
        assert exc_info.value.__suppress_context__ is True


class TestProfileTables:
    """Invariants of the static profile tables."""

    def test_enabled_sets_nested(self):
        """Enabled features should satisfy minimal <= default <= full."""
        minimal = enabled_names(BuildProfile.MINIMAL)
        default = enabled_names(BuildProfile.DEFAULT)
        full = enabled_names(BuildProfile.FULL)

        assert minimal <= default
        assert default <= full

    @pytest.mark.parametrize("profile", list(BuildProfile))
    def test_no_repeated_names(self, profile):
        """No feature name should appear twice within one profile."""
        names = [d.name for d in PROFILE_DIRECTIVES[profile]]
        assert len(names) == len(set(names))

    @pytest.mark.parametrize("profile", list(BuildProfile))
    def test_one_state_per_name(self, profile):
        """Last-write-wins resolution should give one state per name."""
        directives = PROFILE_DIRECTIVES[profile]
        states = effective_states(directives)
        assert len(states) == len({d.name for d in directives})

    @pytest.mark.parametrize("profile", list(BuildProfile))
    def test_kvm_and_slirp_everywhere(self, profile):
        """Every profile should enable KVM and user-mode networking."""
        names = enabled_names(profile)
        assert "kvm" in names
        assert "slirp" in names

    def test_every_profile_covered(self):
        """The table should have an entry for every profile."""
        assert set(PROFILE_DIRECTIVES) == set(BuildProfile)


class TestEffectiveStates:
    """Tests for last-write-wins collapsing."""

    def test_later_directive_wins(self):
        """A repeated name should take the last state."""
        directives = [
            FeatureDirective(name="vnc", state=FeatureState.ENABLED),
            FeatureDirective(name="slirp", state=FeatureState.ENABLED),
            FeatureDirective(name="vnc", state=FeatureState.DISABLED),
        ]
        states = effective_states(directives)

        assert states == {"vnc": FeatureState.DISABLED, "slirp": FeatureState.ENABLED}
        assert list(states) == ["vnc", "slirp"]


class TestFeatureDirective:
    """Tests for FeatureDirective model."""

    def test_as_flag(self):
        """Directives should render as configure flags."""
        assert FeatureDirective(name="kvm", state="enabled").as_flag() == "--enable-kvm"
        assert (
            FeatureDirective(name="usb-redir", state="disabled").as_flag()
            == "--disable-usb-redir"
        )

    def test_invalid_name(self):
        """Names with flag syntax or uppercase should be rejected."""
        for bad in ("--enable-kvm", "KVM", "", "a b"):
            with pytest.raises(ValidationError):
                FeatureDirective(name=bad, state="enabled")

    def test_frozen(self):
        """Directives should be immutable."""
        directive = FeatureDirective(name="kvm", state="enabled")
        with pytest.raises(ValidationError):
            directive.name = "xen"


class TestResolvedConfig:
    """Tests for the resolved configuration contents."""

    def test_glibc_link_flags(self):
        """glibc should link with --static only."""
        resolved = resolve("amd64", "default", "glibc")
        assert resolved.link_flags == ("--static",)
        assert "musl-tools" not in resolved.packages

    def test_musl_link_flags(self):
        """musl should add the musl-gcc compiler override."""
        resolved = resolve("amd64", "default", "musl")
        assert resolved.link_flags == ("--static", "--cc=musl-gcc")
        assert "musl-tools" in resolved.packages
        assert "musl-dev" in resolved.packages

    def test_package_order(self):
        """Packages should be base tools, then libraries, then libc extras."""
        resolved = resolve("amd64", "minimal", "musl")
        expected = merge_packages(
            BASE_BUILD_PACKAGES, QEMU_LIBRARY_PACKAGES, ("musl-tools", "musl-dev")
        )
        assert resolved.packages == expected
        assert resolved.packages[0] == "build-essential"

    def test_directives_architecture_agnostic(self):
        """Directives should depend only on the profile."""
        for profile in BuildProfile:
            assert (
                resolve("amd64", profile).directives
                == resolve("arm64", profile).directives
            )

    def test_amd64_toolchain(self):
        """amd64 should build natively with bzImage."""
        tc = resolve("amd64", "default").toolchain
        assert tc.kernel_arch == "x86_64"
        assert tc.cross_compile == ""
        assert tc.is_cross is False
        assert tc.kernel_image == "arch/x86_64/boot/bzImage"
        assert tc.kernel_target == "bzImage"
        assert tc.host_triple is None
        assert tc.cross_cc is None

    def test_arm64_toolchain(self):
        """arm64 should cross compile to an Image."""
        tc = resolve("arm64", "default").toolchain
        assert tc.kernel_arch == "arm64"
        assert tc.cross_compile == "aarch64-linux-gnu-"
        assert tc.is_cross is True
        assert tc.kernel_image == "arch/arm64/boot/Image"
        assert tc.kernel_target == "Image"
        assert tc.host_triple == "aarch64-linux-gnu"
        assert tc.cross_cc == "aarch64-linux-gnu-gcc"
        assert tc.qemu_binary == "qemu-system-aarch64"

    def test_configure_args(self):
        """configure_args should put prefix and targets before the flags."""
        resolved = resolve("amd64", "full", "musl")
        args = resolved.configure_args("/opt/qemu", ["x86_64-softmmu", "aarch64-softmmu"])

        assert args[0] == "--prefix=/opt/qemu"
        assert args[1] == "--target-list=x86_64-softmmu,aarch64-softmmu"
        assert args[2:-2] == resolved.feature_flags()
        assert args[-2:] == ["--static", "--cc=musl-gcc"]

    def test_configure_args_default_target(self):
        """Without targets the architecture's own target should be used."""
        args = resolve("arm64", "minimal").configure_args("/usr/local")
        assert "--target-list=aarch64-softmmu" in args

    def test_frozen(self):
        """A resolved config should be immutable."""
        resolved = resolve("amd64", "default")
        with pytest.raises(ValidationError):
            resolved.profile = BuildProfile.FULL


class TestDeterminism:
    """Identical inputs should give identical output."""

    @pytest.mark.parametrize(("arch", "profile", "libc"), ALL_COMBINATIONS)
    def test_byte_identical(self, arch, profile, libc):
        """Two resolves should serialize identically."""
        first = resolve(arch, profile, libc).model_dump_json()
        second = resolve(arch.value, profile.value, libc.value).model_dump_json()
        assert first == second


class TestScenarios:
    """Concrete expectations for selected combinations."""

    def test_minimal_amd64_glibc(self):
        """minimal should drop graphics, keep slirp and enable no remote display."""
        resolved = resolve("amd64", "minimal", "glibc")
        flags = resolved.feature_flags()

        assert "--disable-gtk" in flags
        assert "--disable-sdl" in flags
        assert "--enable-slirp" in flags
        assert not any(
            d.enabled and d.name in REMOTE_DISPLAY_FEATURES for d in resolved.directives
        )
        assert resolved.enabled_features().isdisjoint(REMOTE_DISPLAY_FEATURES)

    def test_full_arm64_musl(self):
        """full/musl should need musl-tools and keep every default feature on."""
        resolved = resolve("arm64", "full", "musl")

        assert "musl-tools" in resolved.packages
        default_enabled = resolve("arm64", "default", "musl").enabled_features()
        assert default_enabled <= resolved.enabled_features()
