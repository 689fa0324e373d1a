"""Configuration management for Chartdex."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .exceptions import ConfigError
from .models import ChartdexConfig, LibrarySettings
from .resolver import (
    ENV_PREFIX,
    flatten_for_env,
    get_dotted,
    parse_assignments,
    parse_env_overrides,
    parse_literal,
    resolve_with_precedence,
    set_dotted,
    split_key,
)

DEFAULT_CONFIG_PATH = Path("~/.chartdex/config.yaml")
_CONFIG_HEADER = (
    "# Chartdex configuration file\n"
    "# Edit by hand or with `chartdex config set KEY --value VALUE`.\n"
    f"# Any setting can be overridden per run with {ENV_PREFIX}SECTION__KEY variables\n"
    "# or `chartdex --set section.key=value`.\n"
)


@dataclass(slots=True)
class ConfigUpdate:
    """Effective value of one key before and after ``ConfigManager.set_value``."""

    key: str
    before: Any
    after: Any

    @property
    def changed(self) -> bool:
        return self.before != self.after


class ConfigManager:
    """Read, layer, and persist the YAML configuration file.

    Precedence, lowest first: model defaults, the file, ``CHARTDEX__*``
    environment variables, command-line overrides.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        *,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._config_path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = env if env is not None else os.environ

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(
        self,
        *,
        cli_overrides: Optional[Mapping[str, Any]] = None,
        include_env: bool = True,
        ensure_file: bool = True,
    ) -> ChartdexConfig:
        """Return the effective configuration.

        Args:
            cli_overrides: Highest-precedence overrides, nested or keyed by dotted path.
            include_env: Whether ``CHARTDEX__*`` variables are applied.
            ensure_file: Create the file with defaults when it is missing.

        Raises:
            ConfigError: If the file cannot be parsed or a value is invalid.
        """
        if ensure_file:
            self.ensure_exists()
        return resolve_with_precedence(
            defaults=ChartdexConfig(),
            file_overrides=self.file_data(),
            env_overrides=parse_env_overrides(self._env) if include_env else None,
            cli_overrides=cli_overrides,
        )

    def file_data(self) -> dict[str, Any]:
        """Return the raw mapping stored in the configuration file.

        Raises:
            ConfigError: If the file is not valid YAML or not a mapping.
        """
        if not self._config_path.exists():
            return {}
        try:
            raw = yaml.safe_load(self._config_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse {self._config_path}: {exc}") from exc
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ConfigError(f"{self._config_path} must contain a mapping at the top level.")
        return raw

    def save(self, config: ChartdexConfig | Mapping[str, Any]) -> None:
        data = config.model_dump(mode="json") if isinstance(config, ChartdexConfig) else dict(config)
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")
        self._config_path.write_text(
            f"{_CONFIG_HEADER}# Last updated: {stamp}\n{yaml.safe_dump(data, sort_keys=False)}",
            encoding="utf-8",
        )

    def ensure_exists(self) -> Path:
        """Write a file holding the defaults unless one exists already."""
        if not self._config_path.exists():
            self.save(ChartdexConfig())
        return self._config_path

    def set_value(self, key: str, raw_value: str) -> ConfigUpdate:
        """Persist one dotted ``key`` in the file, parsing ``raw_value`` as YAML.

        The file is left untouched when the effective value does not change.

        Raises:
            ConfigError: If the key is malformed or the new value is invalid.
        """
        path = split_key(key)
        data = self.file_data()
        try:
            before = get_dotted(_effective(data), path)
        except ConfigError:
            before = get_dotted(data, path)

        set_dotted(data, path, parse_literal(raw_value))
        update = ConfigUpdate(
            key=".".join(path),
            before=before,
            after=get_dotted(_effective(data), path),
        )
        if update.changed:
            self.save(data)
        return update


def _effective(file_data: Mapping[str, Any]) -> dict[str, Any]:
    return resolve_with_precedence(
        defaults=ChartdexConfig(), file_overrides=file_data
    ).model_dump(mode="json")


def validate_library(config: ChartdexConfig) -> LibrarySettings:
    """Return the library settings, raising when they cannot drive an index.

    Args:
        config: Resolved configuration.

    Returns:
        LibrarySettings: Settings with a base path and non-empty asset/timeframe lists.

    Raises:
        ConfigError: If the base path is missing or either list is empty.
    """
    library = config.library
    if not library.base_path or not library.base_path.strip():
        raise ConfigError("library.base_path is missing from the configuration.")
    if not library.assets:
        raise ConfigError("library.assets must be a non-empty list.")
    if not library.timeframes:
        raise ConfigError("library.timeframes must be a non-empty list.")
    return library


__all__ = [
    "ConfigManager",
    "ConfigUpdate",
    "DEFAULT_CONFIG_PATH",
    "ChartdexConfig",
    "ConfigError",
    "flatten_for_env",
    "parse_assignments",
    "resolve_with_precedence",
    "validate_library",
]
