"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for offsync:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.offsync/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir` and :func:`get_stores_dir`.
* **Global config** -- a single :class:`~offsync.models.GlobalConfig` JSON
  file holding the base URL, cache generation, routing rules and sync
  settings.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, the project-local ``offsync.json`` and the global
  config into the effective configuration.

All file writes go through :func:`_atomic_write` (temp file + rename).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from offsync.exceptions import ConfigError
from offsync.models import GlobalConfig

_APP_NAME = "offsync"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "offsync.json"

ENV_BASE_URL = "OFFSYNC_BASE_URL"
ENV_GENERATION = "OFFSYNC_GENERATION"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True on platforms that follow the XDG Base Directory spec."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from *env_var*, else ``$HOME/<segments>``."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    return Path.home().joinpath(*default_segments)


def _ensure(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/offsync/`` (default ``~/.config/offsync/``).
    On macOS/Windows: ``~/.offsync/``.
    """
    if _is_xdg_platform():
        return _ensure(_xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME)
    return _ensure(_fallback_base_dir())


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CACHE_HOME/offsync/`` (default ``~/.cache/offsync/``).
    On macOS/Windows: ``~/.offsync/cache/``.
    """
    if _is_xdg_platform():
        return _ensure(_xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME)
    return _ensure(_fallback_base_dir() / "cache")


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/offsync/`` (default ``~/.local/share/offsync/``).
    On macOS/Windows: ``~/.offsync/data/``.
    """
    if _is_xdg_platform():
        return _ensure(_xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME)
    return _ensure(_fallback_base_dir() / "data")


def get_stores_dir() -> Path:
    """Return the root directory holding every cache generation's stores.

    The queue of pending writes lives here too (in the offline store), so
    unlike a plain HTTP cache this directory should not be wiped casually.
    """
    return _ensure(get_cache_dir() / "stores")


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write *data* to *path* atomically using a sibling temp file + rename.

    On any failure the temp file is removed and the original file is left
    untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path: Optional[str] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        ) as fd:
            tmp_path = fd.name
            fd.write(data)
            fd.flush()
            os.fsync(fd.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Invalid {what} at {path}: {exc}") from exc


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~offsync.models.GlobalConfig`, or a default
        instance if the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    data = _read_json(path, "global config")
    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local overrides from ``./offsync.json``.

    The file may contain any subset of :class:`~offsync.models.GlobalConfig`
    fields; nested sections are merged key by key over the global config.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file is not valid JSON or not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    data = _read_json(path, "project config")
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return *base* updated with *override*, recursing into nested dicts."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# --- Precedence resolution ---


def resolve_config(
    cli_base_url: Optional[str] = None,
    cli_generation: Optional[str] = None,
    cli_format: Optional[str] = None,
) -> GlobalConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. CLI flags (``cli_base_url``, ``cli_generation``, ``cli_format``)
        2. Environment variables (``OFFSYNC_BASE_URL``, ``OFFSYNC_GENERATION``)
        3. Project config (``./offsync.json``)
        4. User config (``~/.config/offsync/config.json``)
        5. Defaults

    Raises:
        ConfigError: If any layer is invalid.
    """
    data = load_global_config().model_dump(mode="json")

    project = load_project_config()
    if project is not None:
        data = _deep_merge(data, project)

    env_base_url = os.environ.get(ENV_BASE_URL)
    if env_base_url:
        data["base_url"] = env_base_url
    env_generation = os.environ.get(ENV_GENERATION)
    if env_generation:
        data["cache"]["generation"] = env_generation

    if cli_base_url is not None:
        data["base_url"] = cli_base_url
    if cli_generation is not None:
        data["cache"]["generation"] = cli_generation
    if cli_format is not None:
        data["output"]["format"] = cli_format

    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
