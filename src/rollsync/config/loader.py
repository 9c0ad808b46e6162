"""
Configuration file loading.

Loads ``rollsync.yaml`` and the optional ``rollsync.<env>.yaml`` overlay.
"""

import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from rollsync.config.resolver import resolve_config
from rollsync.exceptions import ConfigurationError

CONFIG_FILENAME = "rollsync.yaml"
ENV_VAR = "ROLLSYNC_ENV"
DEFAULT_ENV = "dev"


class Config:
    """Rollsync configuration container with dict-like access."""

    def __init__(self, data: dict[str, Any]):
        self.data = data
        self.connections = data.get("connections") or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation."""
        value: Any = self.data
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default
        return value

    def section(self, name: str) -> dict[str, Any]:
        """Return a top-level section as a dict (empty when absent)."""
        value = self.data.get(name)
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ConfigurationError(
                f"Configuration '{name}' must be a mapping, got {type(value).__name__}",
                details={"section": name},
            )
        return value

    def __getitem__(self, key: str) -> Any:
        """Dict-like access: config['key'] or config['nested.key']."""
        if "." in key:
            return self.get(key)
        if key in self.data:
            value = self.data[key]
            if isinstance(value, dict):
                return Config(value)
            return value
        raise KeyError(f"Config key '{key}' not found")

    def __contains__(self, key: str) -> bool:
        value: Any = self.data
        for k in key.split("."):
            if not isinstance(value, dict) or k not in value:
                return False
            value = value[k]
        return True

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)

    def validate(self) -> None:
        """Validate configuration structure."""
        errors = []
        for name in ("source", "sync", "state", "connections", "retention", "explorer", "logging"):
            value = self.data.get(name)
            if value is not None and not isinstance(value, dict):
                errors.append(f"Configuration '{name}' must be a mapping, got {type(value).__name__}")
        if errors:
            raise ConfigurationError("\n".join(errors))


def resolve_env(env: str | None = None) -> str:
    """Active environment: explicit argument, then $ROLLSYNC_ENV, then 'dev'."""
    return env or os.environ.get(ENV_VAR) or DEFAULT_ENV


def load_config(project_path: Path | None = None, env: str | None = None) -> Config:
    """
    Load Rollsync configuration.

    Args:
        project_path: Path to project root (default: current directory)
        env: Environment name (default: $ROLLSYNC_ENV or 'dev')

    Returns:
        Config instance with the environment overlay merged in
    """
    if project_path is None:
        project_path = Path.cwd()
    env_name = resolve_env(env)

    base_config_path = project_path / CONFIG_FILENAME
    if not base_config_path.is_file():
        raise ConfigurationError(
            f"Configuration file not found: {base_config_path}\n"
            f"  Suggestion: Create a {CONFIG_FILENAME} file in your project root",
            details={"path": str(base_config_path)},
        )

    config_data = _read_yaml(base_config_path)

    env_config_path = project_path / f"rollsync.{env_name}.yaml"
    if env_config_path.is_file():
        _merge_dict(config_data, _read_yaml(env_config_path))

    config = Config(resolve_config(config_data, env_name))
    config.validate()
    return config


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        if hasattr(e, "problem_mark"):
            mark = e.problem_mark
            raise ConfigurationError(
                f"Error parsing {path.name} at line {mark.line + 1}, column {mark.column + 1}:\n"
                f"  {e}\n"
                f"  Suggestion: Check YAML syntax, ensure proper indentation and quotes",
                details={"path": str(path)},
            ) from e
        raise ConfigurationError(f"Error parsing {path.name}: {e}", details={"path": str(path)}) from e
    except PermissionError as e:
        raise ConfigurationError(
            f"Permission denied reading {path}\n  Suggestion: Check file permissions", details={"path": str(path)}
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"{path.name} must contain a mapping, got {type(data).__name__}", details={"path": str(path)}
        )
    return data


def _merge_dict(base: dict, override: dict) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dict(base[key], value)
        else:
            base[key] = value
