"""Configuration cascade: defaults, global file, project file, then CLI flags."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from gumloop.agents.registry import AgentRegistry
from gumloop.errors import ConfigError
from gumloop.logging import get_logger

logger = get_logger(__name__)

PROJECT_CONFIG_NAME = ".gumloop.yaml"
DEFAULT_PROMPT_FILE = "PROMPT.md"


@dataclass(frozen=True)
class Config:
    cli: str = "claude"
    model: str = ""
    prompt_file: str = DEFAULT_PROMPT_FILE
    auto_push: bool = True
    stuck_threshold: int = 3
    verify: str = ""
    memory: bool = False

    @classmethod
    def defaults(cls) -> dict[str, Any]:
        return {f.name: f.default for f in fields(cls)}


_FIELD_TYPES: dict[str, type] = {
    "cli": str,
    "model": str,
    "prompt_file": str,
    "auto_push": bool,
    "stuck_threshold": int,
    "verify": str,
    "memory": bool,
}


def global_config_path() -> Path:
    return Path.home() / ".config" / "gumloop" / "config.yaml"


def load_file(path: Path | str) -> dict[str, Any]:
    """Read one YAML layer; a missing file is an empty layer."""

    config_path = Path(path)
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle)
    except FileNotFoundError:
        return {}
    except OSError as exc:
        raise ConfigError(f"failed to read config file {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid config at {config_path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, Mapping):
        raise ConfigError(f"invalid config at {config_path}: expected a mapping of settings")

    try:
        return _clean_layer(loaded)
    except ConfigError as exc:
        raise ConfigError(f"invalid config at {config_path}: {exc}") from exc


def _clean_layer(layer: Mapping[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in layer.items():
        expected = _FIELD_TYPES.get(str(key))
        if expected is None:
            logger.warning("ignoring unknown config key '%s'", key)
            continue
        if value is None:
            continue
        if (expected is int and isinstance(value, bool)) or not isinstance(value, expected):
            raise ConfigError(
                f"'{key}' must be a {expected.__name__}, got {type(value).__name__} {value!r}"
            )
        cleaned[str(key)] = value
    return cleaned


def merge_layers(*layers: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Merge layers left to right; later layers override the keys they set."""

    merged: dict[str, Any] = deepcopy(Config.defaults())
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            if value is not None:
                merged[key] = value
    return merged


def validate(config: Config, registry: Optional[AgentRegistry] = None) -> Config:
    if config.stuck_threshold <= 0:
        raise ConfigError(
            f"stuck_threshold must be a positive integer, got '{config.stuck_threshold}'"
        )
    if registry is not None:
        # Raises UnknownAgentError, a ConfigError, with a suggestion.
        registry.resolve(config.cli)
    return config


def load_config(
    *,
    registry: Optional[AgentRegistry] = None,
    global_path: Optional[Path | str] = None,
    project_path: Optional[Path | str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> Config:
    """Resolve the effective configuration for a run."""

    global_layer = load_file(global_path if global_path is not None else global_config_path())
    project_layer = load_file(project_path if project_path is not None else PROJECT_CONFIG_NAME)
    override_layer = _clean_layer(overrides) if overrides else {}

    merged = merge_layers(global_layer, project_layer, override_layer)
    return validate(Config(**merged), registry)


def resolve_prompt(inline: Optional[str], prompt_file: str) -> str:
    """Return the prompt text from ``--prompt`` or the prompt file."""

    if inline:
        return inline

    path = Path(prompt_file or DEFAULT_PROMPT_FILE)
    if path.is_file():
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"failed to read prompt file {path}: {exc}") from exc
        if text.strip():
            return text

    raise ConfigError(f"prompt required: use -p flag or create {path}")


__all__ = [
    "Config",
    "DEFAULT_PROMPT_FILE",
    "PROJECT_CONFIG_NAME",
    "global_config_path",
    "load_config",
    "load_file",
    "merge_layers",
    "resolve_prompt",
    "validate",
]
