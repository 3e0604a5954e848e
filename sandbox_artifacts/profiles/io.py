"""Resolved configuration export.

Helpers for rendering a ResolvedConfig as JSON or YAML, either as a string
for the CLI or to a file kept next to the build outputs.
"""

import json
from pathlib import Path
from typing import Any

import yaml

from sandbox_artifacts.profiles.schema import ResolvedConfig


def resolved_to_dict(resolved: ResolvedConfig) -> dict[str, Any]:
    """Convert a resolved configuration to plain JSON-compatible data.

    Directives are rendered both structurally and as configure flags so the
    export can be read without knowing the flag syntax.
    """
    data = resolved.model_dump(mode="json")
    data["configure_flags"] = resolved.feature_flags() + list(resolved.link_flags)
    return data


def resolved_to_json_string(resolved: ResolvedConfig) -> str:
    """Render a resolved configuration as a JSON string."""
    return json.dumps(resolved_to_dict(resolved), indent=2, ensure_ascii=False)


def resolved_to_yaml_string(resolved: ResolvedConfig) -> str:
    """Render a resolved configuration as a YAML string."""
    return yaml.dump(
        resolved_to_dict(resolved),
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
    )


def export_resolved(resolved: ResolvedConfig, path: Path) -> None:
    """Export a resolved configuration to a file (YAML or JSON).

    File format is determined by extension (.yaml, .yml for YAML,
    .json for JSON).

    Args:
        resolved: Configuration to export.
        path: Path where file should be written.

    Raises:
        ValueError: If file extension is not supported.
    """
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        content = resolved_to_yaml_string(resolved)
    elif suffix == ".json":
        content = resolved_to_json_string(resolved) + "\n"
    else:
        raise ValueError(
            f"Unsupported file extension '{suffix}'. Use .yaml, .yml, or .json"
        )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


__all__ = [
    "export_resolved",
    "resolved_to_dict",
    "resolved_to_json_string",
    "resolved_to_yaml_string",
]
