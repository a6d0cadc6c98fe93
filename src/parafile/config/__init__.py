"""Configuration management for ParaFile."""

from __future__ import annotations

import logging
import os
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError, DuplicateEntryError, ReservedEntryError
from .models import (
    GENERAL_CATEGORY,
    ORIGINAL_NAME_VARIABLE,
    CategoryDefinition,
    ParafileConfig,
    VariableDefinition,
)
from .resolver import flatten_for_env, resolve_with_precedence, validate_and_repair

LOGGER = logging.getLogger(__name__)

DEFAULT_APP_DIR = Path("~/.parafile")
DEFAULT_CONFIG_PATH = DEFAULT_APP_DIR / "config.yaml"
_CONFIG_HEADER = textwrap.dedent(
    """\
    # ParaFile configuration file
    # Generated automatically; manage via `parafile config edit` or `parafile config set`.
    """
)


class ConfigManager:
    """Load and persist configuration data, applying precedence and repair rules."""

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._config_path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = env if env is not None else os.environ

    @property
    def config_path(self) -> Path:
        """Return the resolved configuration path."""
        return self._config_path

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
        ensure_file: bool = True,
        env_overrides: Mapping[str, str] | None = None,
    ) -> ParafileConfig:
        """Load configuration data from disk, applying precedence and repair rules."""
        if ensure_file:
            self.ensure_exists()

        file_data = self._read_file()
        env_data: Mapping[str, str] | None
        if include_env:
            env_data = env_overrides if env_overrides is not None else self._env
        else:
            env_data = None

        return resolve_with_precedence(
            defaults=ParafileConfig(),
            file_overrides=file_data,
            env_overrides=self._extract_env(env_data) if env_data else None,
            cli_overrides=cli_overrides,
        )

    def load_file_overrides(self) -> dict[str, Any]:
        """Return raw overrides stored on disk."""
        return self._read_file()

    def save(self, config: ParafileConfig | Mapping[str, Any]) -> bool:
        """Repair and persist configuration data to disk.

        Returns:
            bool: ``True`` when the file was written, ``False`` otherwise.
        """
        try:
            repaired = validate_and_repair(self._coerce_to_dict(config))
            self._write_file(repaired.model_dump(mode="python"), include_header=True)
        except (ConfigError, OSError) as exc:
            LOGGER.error("Error saving config to %s: %s", self._config_path, exc)
            return False
        return True

    def ensure_exists(self) -> Path:
        """Create a configuration file with defaults if one does not exist."""
        path = self._config_path
        if path.exists():
            return path

        self._write_file(ParafileConfig().model_dump(mode="python"), include_header=True)
        return path

    def read_text(self) -> str:
        """Return the current configuration file contents."""
        if not self._config_path.exists():
            return ""
        return self._config_path.read_text(encoding="utf-8")

    # Category and variable editing ------------------------------------

    def add_category(self, category: CategoryDefinition | Mapping[str, Any]) -> ParafileConfig:
        """Append a new category; names must be unique."""
        entry = CategoryDefinition.model_validate(category)
        config = self.load(include_env=False)
        if config.find_category(entry.name) is not None:
            raise DuplicateEntryError(f"Category '{entry.name}' already exists.")
        config.categories.append(entry)
        return self._persist(config)

    def update_category(
        self, name: str, category: CategoryDefinition | Mapping[str, Any]
    ) -> ParafileConfig:
        """Replace the category called ``name``; the General category is read-only."""
        if name == GENERAL_CATEGORY:
            raise ReservedEntryError(f"The '{GENERAL_CATEGORY}' category cannot be modified.")
        entry = CategoryDefinition.model_validate(category)
        config = self.load(include_env=False)
        index = self._index_of(config.categories, name, kind="Category")
        if entry.name != name and config.find_category(entry.name) is not None:
            raise DuplicateEntryError(f"Category '{entry.name}' already exists.")
        config.categories[index] = entry
        return self._persist(config)

    def delete_category(self, name: str) -> ParafileConfig:
        """Remove the category called ``name``; the General category is undeletable."""
        if name == GENERAL_CATEGORY:
            raise ReservedEntryError(f"The '{GENERAL_CATEGORY}' category cannot be deleted.")
        config = self.load(include_env=False)
        index = self._index_of(config.categories, name, kind="Category")
        del config.categories[index]
        return self._persist(config)

    def add_variable(self, variable: VariableDefinition | Mapping[str, Any]) -> ParafileConfig:
        """Append a new variable; names must be unique."""
        entry = VariableDefinition.model_validate(variable)
        config = self.load(include_env=False)
        if config.find_variable(entry.name) is not None:
            raise DuplicateEntryError(f"Variable '{entry.name}' already exists.")
        config.variables.append(entry)
        return self._persist(config)

    def update_variable(
        self, name: str, variable: VariableDefinition | Mapping[str, Any]
    ) -> ParafileConfig:
        """Replace the variable called ``name``; ``original_name`` is read-only."""
        if name == ORIGINAL_NAME_VARIABLE:
            raise ReservedEntryError(
                f"The '{ORIGINAL_NAME_VARIABLE}' variable cannot be modified."
            )
        entry = VariableDefinition.model_validate(variable)
        config = self.load(include_env=False)
        index = self._index_of(config.variables, name, kind="Variable")
        if entry.name != name and config.find_variable(entry.name) is not None:
            raise DuplicateEntryError(f"Variable '{entry.name}' already exists.")
        config.variables[index] = entry
        return self._persist(config)

    def delete_variable(self, name: str) -> ParafileConfig:
        """Remove the variable called ``name``; ``original_name`` is undeletable."""
        if name == ORIGINAL_NAME_VARIABLE:
            raise ReservedEntryError(
                f"The '{ORIGINAL_NAME_VARIABLE}' variable cannot be deleted."
            )
        config = self.load(include_env=False)
        index = self._index_of(config.variables, name, kind="Variable")
        del config.variables[index]
        return self._persist(config)

    def update_settings(self, **settings: Any) -> ParafileConfig:
        """Update top-level scalar settings such as ``watched_folder`` or ``expertise``."""
        allowed = {"watched_folder", "enable_organization", "expertise"}
        unknown = set(settings) - allowed
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(sorted(unknown))}")
        config = self.load(include_env=False)
        updated = config.model_copy(
            update={key: value for key, value in settings.items() if value is not None}
        )
        return self._persist(updated)

    # Internal helpers -------------------------------------------------

    def _persist(self, config: ParafileConfig) -> ParafileConfig:
        if not self.save(config):
            raise ConfigError(f"Failed to write configuration file {self._config_path}")
        return validate_and_repair(config)

    def _index_of(self, entries: list[Any], name: str, *, kind: str) -> int:
        for index, entry in enumerate(entries):
            if entry.name == name:
                return index
        raise ConfigError(f"{kind} '{name}' does not exist.")

    def _coerce_to_dict(self, value: ParafileConfig | Mapping[str, Any]) -> dict[str, Any]:
        if isinstance(value, ParafileConfig):
            return value.model_dump(mode="python")
        return dict(value)

    def _read_file(self) -> dict[str, Any]:
        if not self._config_path.exists():
            return {}

        try:
            raw = yaml.safe_load(self._config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse configuration file: {exc}") from exc

        if not isinstance(raw, dict):
            raise ConfigError("Configuration file must contain a mapping at the top level.")

        return raw

    def _write_file(self, data: Mapping[str, Any], *, include_header: bool = False) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        serialized = yaml.safe_dump(dict(data), sort_keys=False)
        header = _CONFIG_HEADER if include_header else ""
        stamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        timestamp = f"# Last updated: {stamp}\n"
        self._config_path.write_text(header + timestamp + serialized, encoding="utf-8")

    def _extract_env(self, env: Mapping[str, str]) -> dict[str, Any]:
        prefix = "PARAFILE__"
        overrides: dict[str, Any] = {}
        for key, raw_value in env.items():
            if not key.startswith(prefix):
                continue
            path = key[len(prefix) :].split("__")
            if not path:
                continue
            parsed_value: Any
            try:
                parsed_value = yaml.safe_load(raw_value)
            except yaml.YAMLError:
                parsed_value = raw_value

            self._assign_nested(overrides, [segment.lower() for segment in path], parsed_value)

        return overrides

    def _assign_nested(self, target: dict[str, Any], path: list[str], value: Any) -> None:
        current = target
        for segment in path[:-1]:
            existing = current.get(segment)
            if not isinstance(existing, dict):
                existing = {}
                current[segment] = existing
            current = existing
        current[path[-1]] = value


__all__ = [
    "ConfigManager",
    "DEFAULT_APP_DIR",
    "DEFAULT_CONFIG_PATH",
    "ParafileConfig",
    "CategoryDefinition",
    "VariableDefinition",
    "resolve_with_precedence",
    "validate_and_repair",
    "flatten_for_env",
    "ConfigError",
    "DuplicateEntryError",
    "ReservedEntryError",
]
