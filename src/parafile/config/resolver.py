"""Configuration resolution and repair helpers."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Mapping

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import (
    FORMATTING_MODES,
    GENERAL_CATEGORY,
    ORIGINAL_NAME_VARIABLE,
    ParafileConfig,
    default_general_category,
    default_original_name_variable,
)

_ENV_PREFIX = "PARAFILE__"


def resolve_with_precedence(
    *,
    defaults: ParafileConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> ParafileConfig:
    """Merge configuration sources (defaults < file < environment < CLI) and repair the result."""
    baseline = defaults.model_dump(mode="python")

    merged = deepcopy(baseline)
    for name, source in (
        ("file", file_overrides),
        ("environment", env_overrides),
        ("cli", cli_overrides),
    ):
        if source is None:
            continue
        overrides = _normalize_mapping(source, source_name=name)
        merged = _deep_merge(merged, overrides)

    return validate_and_repair(merged)


def validate_and_repair(config: ParafileConfig | Mapping[str, Any] | None) -> ParafileConfig:
    """Return a valid configuration that always holds the reserved entries.

    Malformed categories (missing name, description, or naming pattern) and
    malformed variables (missing name or description) are dropped, duplicate
    names keep their first occurrence, unknown formatting modes fall back to
    ``none``, and the ``General`` category and ``original_name`` variable are
    re-inserted when absent. Applying the repair twice yields the same result.

    Args:
        config: Parsed configuration data or an existing model.

    Returns:
        ParafileConfig: Repaired configuration.

    Raises:
        ConfigError: If non-collection fields hold invalid values.
    """

    if isinstance(config, ParafileConfig):
        data = config.model_dump(mode="python")
    elif isinstance(config, MappingABC):
        data = deepcopy(dict(config))
    else:
        return ParafileConfig()

    if data.get("watched_folder") is None:
        data["watched_folder"] = ""
    if data.get("enable_organization") is None:
        data["enable_organization"] = True
    data["categories"] = _repair_categories(data.get("categories"))
    data["variables"] = _repair_variables(data.get("variables"))

    try:
        return ParafileConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def flatten_for_env(config: ParafileConfig) -> Dict[str, str]:
    """Flatten the config into `PARAFILE__SECTION__KEY` environment variable mappings."""
    flat: Dict[str, str] = {}
    data = config.model_dump(mode="python")

    def _recurse(prefix: list[str], value: Any) -> None:
        if isinstance(value, dict):
            for key, child in value.items():
                _recurse(prefix + [str(key)], child)
        else:
            env_key = _ENV_PREFIX + "__".join(part.upper() for part in prefix)
            if isinstance(value, list):
                rendered = yaml.safe_dump(value, default_flow_style=True).strip()
            else:
                rendered = "null" if value is None else str(value)
            flat[env_key] = rendered

    for top_key, child_value in data.items():
        _recurse([str(top_key)], child_value)

    return flat


def _has_text(entry: Mapping[str, Any], key: str) -> bool:
    value = entry.get(key)
    return isinstance(value, str) and bool(value.strip())


def _repair_categories(raw: Any) -> list[dict[str, Any]]:
    repaired: list[dict[str, Any]] = []
    seen: set[str] = set()
    for entry in raw if isinstance(raw, list) else []:
        if not isinstance(entry, MappingABC):
            continue
        if not all(_has_text(entry, key) for key in ("name", "description", "naming_pattern")):
            continue
        if entry["name"] in seen:
            continue
        seen.add(entry["name"])
        repaired.append(
            {
                "name": entry["name"],
                "description": entry["description"],
                "naming_pattern": entry["naming_pattern"],
            }
        )

    if GENERAL_CATEGORY not in seen:
        repaired.append(default_general_category().model_dump(mode="python"))
    return repaired


def _repair_variables(raw: Any) -> list[dict[str, Any]]:
    repaired: list[dict[str, Any]] = []
    seen: set[str] = set()
    for entry in raw if isinstance(raw, list) else []:
        if not isinstance(entry, MappingABC):
            continue
        if not all(_has_text(entry, key) for key in ("name", "description")):
            continue
        if entry["name"] in seen:
            continue
        seen.add(entry["name"])
        formatting = entry.get("formatting")
        repaired.append(
            {
                "name": entry["name"],
                "description": entry["description"],
                "formatting": formatting if formatting in FORMATTING_MODES else "none",
            }
        )

    if ORIGINAL_NAME_VARIABLE not in seen:
        repaired.append(default_original_name_variable().model_dump(mode="python"))
    return repaired


def _normalize_mapping(source: Mapping[str, Any], *, source_name: str) -> dict[str, Any]:
    if not isinstance(source, MappingABC):
        raise ConfigError(f"{source_name.capitalize()} overrides must be a mapping.")

    result: dict[str, Any] = {}
    for key, value in dict(source).items():
        if not isinstance(key, str):
            raise ConfigError(f"{source_name.capitalize()} override keys must be strings.")
        path = key.split(".") if "." in key else [key]
        _assign(result, path, value, source_name=source_name)
    return result


def _assign(target: dict[str, Any], path: list[str], value: Any, *, source_name: str) -> None:
    node = target
    for segment in path[:-1]:
        existing = node.get(segment)
        if existing is None:
            existing = {}
            node[segment] = existing
        elif not isinstance(existing, dict):
            joined = ".".join(path)
            raise ConfigError(
                f"{source_name.capitalize()} override for {joined} conflicts with existing value."
            )
        node = existing
    leaf = path[-1]
    if isinstance(value, MappingABC):
        nested = _normalize_mapping(value, source_name=source_name)
        existing_leaf = node.get(leaf, {})
        if not isinstance(existing_leaf, MappingABC):
            existing_leaf = {}
        node[leaf] = _deep_merge(existing_leaf, nested)
    else:
        node[leaf] = value


def _deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for key, value in base.items():
        merged[key] = deepcopy(value)
    for key, value in overrides.items():
        if isinstance(value, MappingABC) and isinstance(merged.get(key), MappingABC):
            merged[key] = _deep_merge(dict(merged[key]), value)  # type: ignore[arg-type]
        else:
            merged[key] = deepcopy(value)
    return merged


__all__ = ["resolve_with_precedence", "validate_and_repair", "flatten_for_env"]
