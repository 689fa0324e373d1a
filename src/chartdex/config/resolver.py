"""Layered configuration: defaults, then file, then environment, then command line."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import ChartdexConfig

ENV_PREFIX = "CHARTDEX__"


def parse_literal(raw: str) -> Any:
    """Read an override value as a YAML literal, so ``[BTC, ETH]`` becomes a list."""
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def split_key(key: str) -> list[str]:
    """Split a dotted key such as ``library.base_path`` into its segments.

    Raises:
        ConfigError: If the key is empty or has an empty segment.
    """
    segments = [segment.strip() for segment in key.split(".")]
    if not all(segments):
        raise ConfigError(
            f"Invalid configuration key {key!r}; use a dotted path such as library.base_path."
        )
    return segments


def set_dotted(target: dict[str, Any], path: Sequence[str], value: Any) -> None:
    """Store ``value`` at ``path`` inside ``target``, creating sections as needed.

    Raises:
        ConfigError: If a segment along the path already holds a plain value.
    """
    node = target
    for depth, segment in enumerate(path[:-1], start=1):
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            section = ".".join(path[:depth])
            raise ConfigError(f"Cannot set {'.'.join(path)}: {section} is not a section.")
        node = child
    node[path[-1]] = value


def get_dotted(source: Mapping[str, Any], path: Sequence[str]) -> Any:
    """Return the value at ``path`` or ``None`` when any segment is missing."""
    node: Any = source
    for segment in path:
        if not isinstance(node, MappingABC) or segment not in node:
            return None
        node = node[segment]
    return node


def parse_env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``CHARTDEX__SECTION__KEY`` variables into a nested override mapping."""
    overrides: dict[str, Any] = {}
    for name in sorted(env):
        if not name.startswith(ENV_PREFIX):
            continue
        path = [segment.lower() for segment in name[len(ENV_PREFIX) :].split("__") if segment]
        if path:
            set_dotted(overrides, path, parse_literal(env[name]))
    return overrides


def parse_assignments(assignments: Iterable[str]) -> dict[str, Any]:
    """Turn ``KEY=VALUE`` strings from the command line into a nested override mapping.

    Raises:
        ConfigError: If an assignment has no ``=`` or an invalid key.
    """
    overrides: dict[str, Any] = {}
    for assignment in assignments:
        key, sep, raw_value = assignment.partition("=")
        if not sep:
            raise ConfigError(f"Expected KEY=VALUE, got {assignment!r}.")
        set_dotted(overrides, split_key(key), parse_literal(raw_value.strip()))
    return overrides


def resolve_with_precedence(
    *,
    defaults: ChartdexConfig,
    file_overrides: Optional[Mapping[str, Any]] = None,
    env_overrides: Optional[Mapping[str, Any]] = None,
    cli_overrides: Optional[Mapping[str, Any]] = None,
) -> ChartdexConfig:
    """Merge override layers onto ``defaults`` and validate the result.

    Later layers win. Keys may be nested mappings or dotted paths.

    Raises:
        ConfigError: If a layer is malformed or the merged values are invalid;
            the message names each offending key and the layer it came from.
    """
    layers: dict[str, dict[str, Any]] = {}
    for name, layer in (
        ("file", file_overrides),
        ("environment", env_overrides),
        ("command line", cli_overrides),
    ):
        if layer is None:
            continue
        if not isinstance(layer, MappingABC):
            raise ConfigError(f"Overrides from the {name} must be a mapping.")
        layers[name] = _expand(layer)

    merged = defaults.model_dump(mode="json")
    for layer in layers.values():
        merged = _merge(merged, layer)

    try:
        return ChartdexConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(_describe(exc, layers)) from exc


def flatten_for_env(config: ChartdexConfig) -> Dict[str, str]:
    """Render every setting as a ``CHARTDEX__SECTION__KEY`` environment assignment."""
    flat: Dict[str, str] = {}
    for section, values in config.model_dump(mode="json").items():
        for key, value in values.items():
            flat[f"{ENV_PREFIX}{section.upper()}__{key.upper()}"] = _render_literal(value)
    return flat


def _render_literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, (list, dict)):
        return yaml.safe_dump(value, default_flow_style=True).strip()
    return str(value)


def _expand(layer: Mapping[Any, Any]) -> dict[str, Any]:
    expanded: dict[str, Any] = {}
    for key, value in layer.items():
        if isinstance(value, MappingABC):
            value = _expand(value)
        for segment in reversed(split_key(str(key))):
            value = {segment: value}
        expanded = _merge(expanded, value)
    return expanded


def _merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _merge(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _describe(exc: ValidationError, layers: Mapping[str, Mapping[str, Any]]) -> str:
    problems = []
    for error in exc.errors():
        path = [str(part) for part in error["loc"] if isinstance(part, str)]
        origin = next(
            (name for name in reversed(list(layers)) if get_dotted(layers[name], path) is not None),
            "defaults",
        )
        problems.append(f"{'.'.join(path)} ({origin}): {error['msg']}")
    return "Invalid configuration values: " + "; ".join(problems)


__all__ = [
    "ENV_PREFIX",
    "flatten_for_env",
    "get_dotted",
    "parse_assignments",
    "parse_env_overrides",
    "parse_literal",
    "resolve_with_precedence",
    "set_dotted",
    "split_key",
]
