"""Tests for the connectivity monitor."""

from __future__ import annotations

import asyncio

import pytest

from offsync.exceptions import InvalidUsageError
from offsync.sync.connectivity import ConnectivityMonitor


class _Restores:
    def __init__(self) -> None:
        self.count = 0

    async def __call__(self) -> None:
        self.count += 1


@pytest.fixture()
def restores() -> _Restores:
    return _Restores()


@pytest.fixture()
def monitor(network, restores) -> ConnectivityMonitor:
    return ConnectivityMonitor(network, "/health", interval=0.01, on_restore=restores)


class TestCheck:
    @pytest.mark.asyncio
    async def test_any_response_is_online(self, monitor, server) -> None:
        # /health is not routed, the fake server answers 404
        assert await monitor.check() is True
        assert monitor.online is True
        assert server.calls[0].method == "HEAD"

    @pytest.mark.asyncio
    async def test_transport_failure_is_offline(self, monitor, server) -> None:
        server.online = False
        assert await monitor.check() is False
        assert monitor.online is False

    @pytest.mark.asyncio
    async def test_restore_fires_on_offline_to_online(self, monitor, server, restores) -> None:
        server.online = False
        await monitor.check()
        server.online = True
        await monitor.check()
        await monitor.check()

        assert restores.count == 1

    @pytest.mark.asyncio
    async def test_first_probe_does_not_fire(self, monitor, restores) -> None:
        await monitor.check()
        assert restores.count == 0

    @pytest.mark.asyncio
    async def test_fires_again_after_each_outage(self, monitor, server, restores) -> None:
        for online in [False, True, False, True]:
            server.online = online
            await monitor.check()
        assert restores.count == 2

    @pytest.mark.asyncio
    async def test_connection_lost_is_logged(self, monitor, server, caplog) -> None:
        await monitor.check()
        server.online = False
        with caplog.at_level("WARNING", logger="offsync.sync.connectivity"):
            await monitor.check()
        assert "Connection lost" in caplog.text


class TestRun:
    @pytest.mark.asyncio
    async def test_probes_until_stopped(self, monitor, server) -> None:
        stop = asyncio.Event()
        task = asyncio.ensure_future(monitor.run(stop))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        assert len(server.calls) >= 2

    @pytest.mark.asyncio
    async def test_already_stopped_does_not_probe(self, monitor, server) -> None:
        stop = asyncio.Event()
        stop.set()
        await monitor.run(stop)
        assert server.calls == []

    @pytest.mark.parametrize("interval", [0, -1.5])
    def test_non_positive_interval_is_rejected(self, network, interval: float) -> None:
        with pytest.raises(InvalidUsageError, match="must be positive"):
            ConnectivityMonitor(network, "/health", interval=interval)
