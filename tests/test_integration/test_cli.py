"""End-to-end tests of the ``offsync`` command line.

Every invocation opens the stores under the isolated XDG cache directory
and reaches the fake server through ``obj={"transport": ...}``.
"""

from __future__ import annotations

import json
import re
from typing import Any

import httpx
import pytest

from offsync import __version__
from offsync.app import app
from offsync.config import load_global_config, save_global_config
from offsync.exit_codes import EXIT_INVALID_USAGE, EXIT_NETWORK_ERROR
from offsync.models import GlobalConfig, RequestConfig

BASE_URL = "https://app.example.com"

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def _strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def _json(output: str) -> Any:
    """Decode the first JSON document in *output*, skipping diagnostics."""
    text = _strip_ansi(output)
    decoder = json.JSONDecoder()
    for match in re.finditer(r"^[\[{]", text, re.MULTILINE):
        try:
            value, _ = decoder.raw_decode(text[match.start():])
        except ValueError:
            continue
        return value
    raise AssertionError(f"no JSON document in output:\n{output}")


@pytest.fixture()
def invoke(cli_runner, isolated_config, transport):
    """Run ``offsync --base-url BASE_URL <args>`` against the fake server.

    Replay retries are switched off in the user config so failed syncs
    return immediately.
    """
    save_global_config(GlobalConfig(request=RequestConfig(max_retries=0)))

    def _invoke(*args: str, input: str | None = None):
        return cli_runner.invoke(
            app,
            ["--base-url", BASE_URL, *args],
            obj={"transport": transport},
            input=input,
        )

    return _invoke


class TestBasics:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--help"])
        text = _strip_ansi(result.output)
        for command in ["fetch", "route", "status", "cache", "queue", "sync", "config"]:
            assert command in text

    @pytest.mark.parametrize(
        "args, route",
        [
            (["/static/css/main.css"], "static-asset"),
            (["/api/teams"], "api"),
            (["/dashboard", "--navigate"], "navigation"),
            (["/uploads/a.webp"], "image"),
            (["/manifest.json"], "other"),
            (["/api/evaluations", "-X", "POST"], "passthrough"),
        ],
    )
    def test_route(self, invoke, args: list[str], route: str) -> None:
        result = invoke("--json", "route", *args)
        assert result.exit_code == 0, result.output
        assert _json(result.output)["route"] == route


class TestFetch:
    def test_online_api_call(self, invoke, server) -> None:
        server.route("GET", "/api/teams", httpx.Response(200, json=[{"name": "Falcons"}]))

        result = invoke("--json", "fetch", "/api/teams")

        assert result.exit_code == 0, result.output
        assert "from network" in result.output
        assert _json(result.output) == [{"name": "Falcons"}]

    def test_second_fetch_offline_comes_from_cache(self, invoke, server) -> None:
        server.route("GET", "/static/css/main.css", httpx.Response(200, text="h1{}"))
        invoke("fetch", "/static/css/main.css")

        server.online = False
        result = invoke("--plain", "fetch", "/static/css/main.css")

        assert result.exit_code == 0, result.output
        assert "from cache" in result.output
        assert "h1{}" in result.output

    def test_offline_navigation_shows_offline_page(self, invoke, server) -> None:
        server.online = False

        result = invoke("--plain", "fetch", "/teams", "--navigate")

        assert result.exit_code == 0
        assert "from fallback" in result.output
        assert "You're Offline" in result.output


class TestOfflineWrites:
    def test_queue_then_sync(self, invoke, server) -> None:
        server.online = False
        queued = invoke(
            "--json", "fetch", "/api/evaluations",
            "-X", "POST", "-d", '{"score": 4}', "--token", "abc",
        )
        assert queued.exit_code == 0, queued.output
        assert "HTTP 202" in queued.output
        op_id = _json(queued.output)["id"]

        listed = invoke("--json", "queue", "list")
        assert op_id in listed.output
        assert "pending-evaluations" in listed.output

        server.online = True
        server.route("POST", "/api/evaluations", httpx.Response(201))
        synced = invoke("--json", "sync", "run", "--tag", "sync-evaluations")
        assert synced.exit_code == 0, synced.output
        assert _json(synced.output)["replayed"] == [op_id]

        replayed = server.calls[-1]
        assert replayed.headers["authorization"] == "Bearer abc"
        assert replayed.content == b'{"score": 4}'

        empty = invoke("queue", "list")
        assert "No pending operations" in empty.output

    def test_failed_sync_exits_with_network_error(self, invoke, server) -> None:
        server.online = False
        invoke("fetch", "/api/users/3", "-X", "PUT", "-d", "{}")

        result = invoke("sync", "run", "--tag", "sync-user-data")

        assert result.exit_code == EXIT_NETWORK_ERROR
        assert "remain queued" in result.output

    def test_unknown_sync_tag(self, invoke) -> None:
        result = invoke("sync", "run", "--tag", "sync-everything")
        assert result.exit_code == EXIT_INVALID_USAGE
        assert "Unknown sync tag" in result.output

    def test_queue_clear_needs_confirmation(self, invoke, server) -> None:
        server.online = False
        invoke("fetch", "/api/users/3", "-X", "PATCH", "-d", "{}")

        declined = invoke("queue", "clear", input="n\n")
        assert "Cancelled" in declined.output

        cleared = invoke("--force", "queue", "clear")
        assert cleared.exit_code == 0
        assert "Discarded 1 pending operations" in cleared.output

    def test_status_counts_pending(self, invoke, server) -> None:
        server.online = False
        invoke("fetch", "/api/evaluations", "-X", "POST", "-d", "{}")

        result = invoke("--json", "status")

        status = _json(result.output)
        assert status["generation"] == "offsync-v1"
        assert status["pending_evaluations"] == 1
        assert status["total_pending"] == 1


class TestCacheCommands:
    def test_install_and_stats(self, invoke, server) -> None:
        for path in ["/", "/static/js/bundle.js", "/static/css/main.css", "/manifest.json",
                     "/favicon.ico", "/logo192.png", "/logo512.png"]:
            server.route("GET", path, httpx.Response(200, content=b"asset"))

        installed = invoke("cache", "install")
        assert installed.exit_code == 0, installed.output
        assert "Static assets cached" in installed.output

        stats = invoke("--plain", "cache", "stats")
        assert "offsync-static-v1\t7" in stats.output

    def test_failed_install_warns(self, invoke, server) -> None:
        server.online = False
        result = invoke("cache", "install")
        assert result.exit_code == 0
        assert "were not cached" in result.output

    def test_list_and_clear(self, invoke, server) -> None:
        server.route("GET", "/api/teams", httpx.Response(200, json=[]))
        invoke("fetch", "/api/teams")

        listed = invoke("--plain", "cache", "list", "--store", "dynamic")
        assert f"GET {BASE_URL}/api/teams" in listed.output

        cleared = invoke("--force", "cache", "clear", "--store", "dynamic")
        assert "Removed 1 entries" in cleared.output

    def test_unknown_store(self, invoke) -> None:
        result = invoke("cache", "list", "--store", "images")
        assert result.exit_code == EXIT_INVALID_USAGE
        assert "Unknown store" in result.output

    def test_activate_new_generation(self, invoke) -> None:
        invoke("cache", "stats")

        result = invoke("--generation", "v2", "cache", "activate")

        assert result.exit_code == 0, result.output
        assert "Deleted offsync-static-v1" in result.output
        assert "Activated offsync-v2" in result.output

    def test_version(self, invoke) -> None:
        result = invoke("--json", "--generation", "2024-06", "cache", "version")
        assert _json(result.output) == {"version": "offsync-2024-06"}


class TestWatch:
    def test_once_reports_online(self, invoke) -> None:
        result = invoke("--json", "sync", "watch", "--once", "--probe-url", "/health")
        assert result.exit_code == 0, result.output
        assert _json(result.output) == {"probe_url": "/health", "online": True}

    def test_once_offline(self, invoke, server) -> None:
        server.online = False
        result = invoke("--json", "sync", "watch", "--once", "--interval", "5")
        assert _json(result.output)["online"] is False

    def test_zero_interval_is_rejected(self, invoke, server) -> None:
        result = invoke("sync", "watch", "--interval", "0")
        assert result.exit_code == EXIT_INVALID_USAGE
        assert server.calls == []

    def test_nothing_to_probe(self, cli_runner, isolated_config, transport) -> None:
        result = cli_runner.invoke(app, ["sync", "watch", "--once"], obj={"transport": transport})
        assert result.exit_code == EXIT_INVALID_USAGE
        assert "Nothing to probe" in result.output


class TestConfigCommands:
    def test_set_coerces_to_field_type(self, invoke) -> None:
        assert invoke("config", "set", "cache.api_timeout_ms", "3000").exit_code == 0
        assert invoke("config", "set", "cache.skip_waiting", "false").exit_code == 0
        assert invoke("config", "set", "sync.refresh_urls", "/api/teams,/api/users").exit_code == 0

        config = load_global_config()
        assert config.cache.api_timeout_ms == 3000
        assert config.cache.skip_waiting is False
        assert config.sync.refresh_urls == ["/api/teams", "/api/users"]

    def test_set_unknown_key(self, invoke) -> None:
        result = invoke("config", "set", "cache.nope", "1")
        assert result.exit_code == EXIT_INVALID_USAGE
        assert "Unknown config key" in result.output

    def test_set_invalid_value(self, invoke) -> None:
        result = invoke("config", "set", "cache.max_dynamic_entries", "0")
        assert result.exit_code == EXIT_INVALID_USAGE
        assert "Validation error" in result.output

    def test_generation_from_config_file(self, invoke) -> None:
        invoke("config", "set", "cache.generation", "v7")
        result = invoke("--json", "cache", "version")
        assert _json(result.output) == {"version": "offsync-v7"}

    def test_show_and_reset(self, invoke) -> None:
        invoke("config", "set", "cache.prefix", "scoreapp")

        shown = invoke("--json", "config", "show")
        assert _json(shown.output)["cache"]["prefix"] == "scoreapp"

        assert invoke("--force", "config", "reset").exit_code == 0
        assert load_global_config().cache.prefix == "offsync"
