# src/repolink/config.py: Pydantic models for configuration.
# This module defines the schema for the 'config.yaml' file using Pydantic
# models. It loads and validates the file from the XDG config directory and
# falls back to defaults when no file exists, so a fresh install works
# against a local backend without any setup.

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .util.errors import ConfigError
from .util.paths import expand_path, get_xdg_config_home, get_xdg_data_home

CONFIG_FILENAME = "config.yaml"


# --- Pydantic Models for Configuration Schema ---

class BackendConfig(BaseModel):
    base_url: str = "http://localhost:3001/api"
    timeout_sec: float = 15.0


class StorageConfig(BaseModel):
    path: Path = Field(default_factory=lambda: get_xdg_data_home() / "repolink.sqlite")


class GitConfig(BaseModel):
    timeout_sec: int = 60
    stat_width: int = 200


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_format: bool = True


class Config(BaseModel):
    version: int = 1
    backend: BackendConfig = Field(default_factory=BackendConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# --- Configuration Loading ---

def _expand_vars_in_obj(obj: Any) -> Any:
    """Recursively expand environment variables in a loaded YAML object."""
    if isinstance(obj, dict):
        return {key: _expand_vars_in_obj(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_expand_vars_in_obj(item) for item in obj]
    if isinstance(obj, str):
        # URLs contain '/' too; only expand things that look like local paths.
        if "://" in obj:
            return obj
        if obj.startswith(("/", "~", "${", "./")) or "\\" in obj:
            return str(expand_path(obj))
        return obj
    return obj


def get_config_path() -> Path:
    return get_xdg_config_home() / CONFIG_FILENAME


def load_config(path: Optional[Path] = None) -> Config:
    """
    Loads, validates, and returns the configuration.

    A missing file yields the defaults.
    """
    config_path = path or get_config_path()
    if not config_path.is_file():
        return Config()

    try:
        with open(config_path, "r") as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML configuration: {e}")

    if not isinstance(raw_config, dict):
        raise ConfigError(f"Configuration file '{config_path}' must contain a mapping.")

    expanded_config = _expand_vars_in_obj(raw_config)

    try:
        config = Config.model_validate(expanded_config)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}")

    return config
