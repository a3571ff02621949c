"""Shared test fixtures for offsync.

Provides reusable fixtures for isolated config environments, cache
storage on ``tmp_path``, scripted network transports, output state and
CLI invocation. These fixtures are automatically discovered by pytest and
available to all test modules without explicit imports.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Optional

import httpx
import pytest

from offsync.cache.generations import CacheStorage
from offsync.client.network import Network
from offsync.models import GlobalConfig, RequestConfig
from offsync.output import OutputFormat, OutputManager, reset_output, set_output


BASE_URL = "https://app.example.com"


# ---------------------------------------------------------------------------
# Auto-reset global output and logging state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager and the ``offsync`` logger.

    CLI tests install a RichHandler on the ``offsync`` logger and turn off
    propagation; undoing that keeps ``caplog`` working in later tests.
    """
    yield
    reset_output()
    logger = logging.getLogger("offsync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ---------------------------------------------------------------------------
# Scripted network
# ---------------------------------------------------------------------------


class FakeServer:
    """A scripted origin for :class:`httpx.MockTransport`.

    Routes map ``(METHOD, path)`` to a handler or a ready response. While
    :attr:`online` is false every request raises :class:`httpx.ConnectError`.
    Every request that reaches the transport is recorded in :attr:`calls`.
    """

    def __init__(self) -> None:
        self.online = True
        self.calls: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}

    def route(
        self,
        method: str,
        path: str,
        response: Optional[httpx.Response] = None,
        handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    ) -> None:
        if handler is None:
            template = response if response is not None else httpx.Response(200)

            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(
                    template.status_code,
                    headers=template.headers,
                    content=template.content,
                )

        self.routes[(method.upper(), path)] = handler

    def paths(self, method: Optional[str] = None) -> list[str]:
        return [
            r.url.path for r in self.calls if method is None or r.method == method.upper()
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if not self.online:
            raise httpx.ConnectError("Network is unreachable", request=request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, text="not found")
        return handler(request)


@pytest.fixture
def server() -> FakeServer:
    """A fresh scripted origin, online, with no routes."""
    return FakeServer()


@pytest.fixture
def transport(server: FakeServer) -> httpx.MockTransport:
    return httpx.MockTransport(server)


@pytest.fixture
def network(transport: httpx.MockTransport) -> Network:
    """Network path over the fake server, without retries."""
    return Network(transport, RequestConfig(max_retries=0), base_url=BASE_URL)


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@pytest.fixture
def storage(tmp_path: Path) -> CacheStorage:
    """A ``v1`` cache generation rooted in tmp_path."""
    s = CacheStorage(tmp_path / "stores", prefix="offsync", generation="v1")
    yield s
    s.close()


@pytest.fixture
def app_config() -> GlobalConfig:
    """Configuration pointing at the fake server, with no retries."""
    return GlobalConfig(base_url=BASE_URL, request=RequestConfig(max_retries=0))


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and stores to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path so that tests never touch real user
    config. Clears all OFFSYNC_* environment variables and changes
    the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("offsync.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in ["OFFSYNC_BASE_URL", "OFFSYNC_GENERATION"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
