"""Tests for offsync.config -- XDG paths, atomic writes, precedence."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from offsync.config import (
    _atomic_write,
    _deep_merge,
    get_cache_dir,
    get_config_dir,
    get_data_dir,
    get_stores_dir,
    load_global_config,
    load_project_config,
    resolve_config,
    save_global_config,
)
from offsync.exceptions import ConfigError
from offsync.models import CacheConfig, GlobalConfig, SyncConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_json(path: Path, data: Any) -> None:
    """Write a dict as JSON to *path*, creating parent dirs."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestXDGPathsLinux:
    """XDG paths on Linux (the default XDG platform)."""

    def test_config_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("offsync.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_config_dir()
        assert result == tmp_path / ".config" / "offsync"
        assert result.is_dir()

    def test_cache_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        custom = tmp_path / "custom_cache"
        monkeypatch.setattr("offsync.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CACHE_HOME", str(custom))

        result = get_cache_dir()
        assert result == custom / "offsync"
        assert result.is_dir()

    def test_data_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("offsync.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_data_dir()
        assert result == tmp_path / ".local" / "share" / "offsync"
        assert result.is_dir()

    def test_stores_dir_is_inside_cache_dir(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("offsync.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path))

        result = get_stores_dir()
        assert result == tmp_path / "offsync" / "stores"
        assert result.is_dir()


class TestXDGPathsFallback:
    """Fallback paths on non-XDG platforms (macOS, Windows)."""

    def test_config_dir_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("offsync.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_config_dir() == tmp_path / ".offsync"

    def test_cache_dir_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("offsync.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_cache_dir() == tmp_path / ".offsync" / "cache"


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    def test_creates_file_with_content(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        _atomic_write(target, "hello world")
        assert target.read_text(encoding="utf-8") == "hello world"

    def test_overwrites_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        target.write_text("old content", encoding="utf-8")
        _atomic_write(target, "new content")
        assert target.read_text(encoding="utf-8") == "new content"

    def test_no_temp_files_left_on_success(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        _atomic_write(target, "content")
        assert list(tmp_path.iterdir()) == [target]

    def test_no_temp_files_left_on_error(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        with patch("offsync.config.os.fsync", side_effect=OSError("disk error")):
            with pytest.raises(OSError, match="disk error"):
                _atomic_write(target, "will fail")

        assert list(tmp_path.iterdir()) == []


# ---------------------------------------------------------------------------
# Global config
# ---------------------------------------------------------------------------


class TestGlobalConfig:
    def test_load_returns_defaults_when_missing(self, isolated_config: Path) -> None:
        cfg = load_global_config()
        assert cfg == GlobalConfig()
        assert cfg.base_url is None
        assert cfg.cache.generation == "v1"
        assert cfg.cache.max_dynamic_entries == 50
        assert cfg.cache.api_timeout_ms == 5000

    def test_save_and_load_roundtrip(self, isolated_config: Path) -> None:
        original = GlobalConfig(
            base_url="https://app.example.com",
            cache=CacheConfig(generation="v7", api_timeout_ms=1500),
            sync=SyncConfig(refresh_urls=["/api/teams"]),
        )
        save_global_config(original)
        assert load_global_config() == original

    def test_load_invalid_json_raises_config_error(self, isolated_config: Path) -> None:
        path = isolated_config / "config" / "offsync" / "config.json"
        path.parent.mkdir(parents=True)
        path.write_text("{invalid json!!!", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid global config"):
            load_global_config()

    def test_load_invalid_schema_raises_config_error(self, isolated_config: Path) -> None:
        _write_json(
            isolated_config / "config" / "offsync" / "config.json",
            {"cache": {"max_dynamic_entries": 0}},
        )
        with pytest.raises(ConfigError, match="Invalid global config"):
            load_global_config()


# ---------------------------------------------------------------------------
# Project-local config
# ---------------------------------------------------------------------------


class TestProjectConfig:
    def test_load_returns_none_when_missing(self, isolated_config: Path) -> None:
        assert load_project_config() is None

    def test_load_valid_project_config(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "offsync.json", {"cache": {"generation": "v2"}})
        assert load_project_config() == {"cache": {"generation": "v2"}}

    def test_non_object_raises_config_error(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "offsync.json", ["not", "an", "object"])
        with pytest.raises(ConfigError, match="expected a JSON object"):
            load_project_config()

    def test_deep_merge_keeps_sibling_keys(self) -> None:
        base = {"cache": {"generation": "v1", "prefix": "offsync"}, "base_url": None}
        merged = _deep_merge(base, {"cache": {"generation": "v2"}})
        assert merged == {"cache": {"generation": "v2", "prefix": "offsync"}, "base_url": None}
        assert base["cache"]["generation"] == "v1"


# ---------------------------------------------------------------------------
# Precedence
# ---------------------------------------------------------------------------


class TestResolveConfig:
    def test_defaults(self, isolated_config: Path) -> None:
        assert resolve_config() == GlobalConfig()

    def test_project_overrides_global(self, isolated_config: Path) -> None:
        save_global_config(GlobalConfig(base_url="https://global.example.com"))
        _write_json(isolated_config / "offsync.json", {"base_url": "https://project.example.com"})

        assert resolve_config().base_url == "https://project.example.com"

    def test_env_overrides_project(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _write_json(isolated_config / "offsync.json", {"cache": {"generation": "v2"}})
        monkeypatch.setenv("OFFSYNC_GENERATION", "v3")
        monkeypatch.setenv("OFFSYNC_BASE_URL", "https://env.example.com")

        cfg = resolve_config()
        assert cfg.cache.generation == "v3"
        assert cfg.base_url == "https://env.example.com"

    def test_cli_overrides_env(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("OFFSYNC_GENERATION", "v3")
        cfg = resolve_config(cli_generation="v4", cli_base_url="https://cli.example.com")
        assert cfg.cache.generation == "v4"
        assert cfg.base_url == "https://cli.example.com"

    def test_invalid_merged_config_raises(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "offsync.json", {"cache": {"api_timeout_ms": "soon"}})
        with pytest.raises(ConfigError, match="Invalid configuration"):
            resolve_config()
