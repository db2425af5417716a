"""Configuration loader and XDG directory resolution for llmq."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from llmq.core.errors import ConfigError

log = logging.getLogger(__name__)

APP_NAME = "llmq"
CONTEXT_SUFFIX = ".yml"

DEFAULTS: dict = {
    "log_level": "warning",
    # ProtocolError retries per action; the request is reissued from scratch
    "retries": 1,
    "timeout": 600.0,
    "connect_timeout": 10.0,
    "default_plugin": "gpt",
}


def _home_dir() -> Path:
    home = Path.home()
    if not home.is_dir():
        raise ConfigError(f"invalid home directory {home}")
    return home


def _xdg_dir(env: str, fallback_homerel: str) -> Path:
    value = os.environ.get(env)
    if value:
        path = Path(value).expanduser()
        if not path.is_dir():
            raise ConfigError(f"invalid ${env} directory {path}")
        return path.resolve()
    return (_home_dir() / fallback_homerel).resolve()


def config_home() -> Path:
    """Return $XDG_CONFIG_HOME/llmq (or ~/.config/llmq)."""
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / APP_NAME


def data_home() -> Path:
    """Return $XDG_DATA_HOME/llmq (or ~/.local/share/llmq)."""
    return _xdg_dir("XDG_DATA_HOME", ".local/share") / APP_NAME


def _plugin_dir(base: Path, plugin: str) -> Path:
    path = base / plugin
    if path.exists() and not path.is_dir():
        raise ConfigError(f"directory for plugin <{plugin}> {path} exists and is not a directory")
    return path


def plugin_confdir(plugin: str) -> Path:
    """Per-plugin configuration directory (holds the authfile)."""
    return _plugin_dir(config_home(), plugin)


def plugin_datadir(plugin: str) -> Path:
    """Per-plugin context storage directory."""
    return _plugin_dir(data_home(), plugin)


def auth_path(confdir: Path) -> Path:
    """Return the plugin authfile path inside its confdir."""
    return confdir / ".auth"


def context_path(datadir: Path, name: str) -> Path:
    """Resolve a CONTEXT name to its YAML file under the plugin datadir.

    CONTEXT omits the ".yml" suffix and may contain subdirectories, but must
    stay inside the datadir.
    """
    if not name:
        raise ConfigError("context name must not be empty")
    path = (datadir / f"{name}{CONTEXT_SUFFIX}").resolve()
    if not path.is_relative_to(datadir.resolve()):
        raise ConfigError(f"context {name!r} escapes the data directory {datadir}")
    return path


def config_path() -> Path:
    """Return the path to the global config.yaml."""
    return config_home() / "config.yaml"


def load_config(path: Path | None = None) -> dict:
    """Load config.yaml and merge with defaults.

    Args:
        path: Explicit path to config.yaml. If None, uses the XDG location.

    Returns:
        Merged configuration dict.
    """
    if path is None:
        path = config_path()

    user_config: dict = {}
    if path.exists():
        try:
            raw = path.read_text(encoding="utf-8")
            user_config = yaml.safe_load(raw) or {}
        except (OSError, yaml.YAMLError):
            log.warning("Failed to read config at %s, using defaults", path, exc_info=True)
        if not isinstance(user_config, dict):
            log.warning("Config at %s is not a YAML map, using defaults", path)
            user_config = {}

    return _deep_merge(DEFAULTS, user_config)


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base, returning a new dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
