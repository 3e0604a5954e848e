"""Build profile resolution.

This module handles:
- Static QEMU feature tables per build profile
- Per-architecture toolchain conventions
- Resolving (architecture, profile, libc) into a ResolvedConfig
- Exporting resolved configurations to YAML/JSON
"""

from sandbox_artifacts.profiles.io import (
    export_resolved,
    resolved_to_dict,
    resolved_to_json_string,
    resolved_to_yaml_string,
)
from sandbox_artifacts.profiles.resolver import (
    ResolverError,
    UnsupportedArchitecture,
    UnsupportedLibcVariant,
    UnsupportedProfile,
    parse_architecture,
    parse_libc,
    parse_profile,
    resolve,
)
from sandbox_artifacts.profiles.schema import (
    FeatureDirective,
    ResolvedConfig,
    ToolchainSchema,
    effective_states,
)

__all__ = [
    # Schema
    "FeatureDirective",
    "ResolvedConfig",
    "ToolchainSchema",
    "effective_states",
    # Resolver
    "ResolverError",
    "UnsupportedArchitecture",
    "UnsupportedLibcVariant",
    "UnsupportedProfile",
    "parse_architecture",
    "parse_libc",
    "parse_profile",
    "resolve",
    # IO functions
    "export_resolved",
    "resolved_to_dict",
    "resolved_to_json_string",
    "resolved_to_yaml_string",
]
