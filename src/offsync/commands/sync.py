"""Sync commands -- replay pending writes and watch connectivity.

Provides the ``offsync sync`` sub-command group.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer

from offsync.commands._runtime import resolve_from_context, run_with_worker
from offsync.exit_codes import EXIT_INVALID_USAGE, EXIT_NETWORK_ERROR
from offsync.models import SyncConfig, SyncReport, SyncTag
from offsync.output import format_response, info, success, warning
from offsync.worker import OfflineWorker


sync_app = typer.Typer(no_args_is_help=True)


@sync_app.command("run")
def sync_run(
    ctx: typer.Context,
    tag: str = typer.Option(
        SyncTag.BACKGROUND_SYNC.value,
        "--tag",
        "-t",
        help="background-sync, sync-evaluations or sync-user-data.",
    ),
) -> None:
    """Replay pending writes (and refresh cached data) now.

    Exits with the network error code when any operation could not be
    delivered; it stays queued for the next run.

    Example::

        offsync sync run
        offsync sync run --tag sync-evaluations --json
    """

    async def _sync(worker: OfflineWorker) -> SyncReport:
        return await worker.sync(tag)

    report = run_with_worker(ctx, _sync)
    format_response(report.model_dump(mode="json"))

    if report.skipped:
        info(f"Skipped (already syncing): {', '.join(report.skipped)}")
    if report.failed:
        warning(f"{len(report.failed)} operations failed and remain queued.")
        raise typer.Exit(code=EXIT_NETWORK_ERROR)
    success(f"Synced {len(report.replayed)} operations, refreshed {len(report.refreshed)} URLs.")


@sync_app.command("watch")
def sync_watch(
    ctx: typer.Context,
    probe_url: Optional[str] = typer.Option(
        None, "--probe-url", help="URL to probe; defaults to sync.probe_url or base_url."
    ),
    interval: Optional[float] = typer.Option(
        None, "--interval", min=0.1, help="Seconds between probes."
    ),
    once: bool = typer.Option(False, "--once", help="Probe once and exit."),
) -> None:
    """Probe connectivity and sync whenever the connection comes back.

    Runs until interrupted with Ctrl-C.

    Example::

        offsync sync watch --interval 10
        offsync sync watch --once
    """
    config = resolve_from_context(ctx)
    url = probe_url or config.sync.probe_url or config.base_url
    if not url:
        warning("Nothing to probe: pass --probe-url or configure base_url.")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    updates: dict[str, object] = {"probe_url": url}
    if interval is not None:
        updates["probe_interval"] = interval
    sync = SyncConfig.model_validate({**config.sync.model_dump(), **updates})
    config = config.model_copy(update={"sync": sync})

    async def _watch(worker: OfflineWorker) -> Optional[bool]:
        if once:
            return await worker.monitor.check()
        info(f"Watching {url} every {config.sync.probe_interval:g}s (Ctrl-C to stop)")
        await worker.watch(asyncio.Event())
        return None

    online = run_with_worker(ctx, _watch, config=config)
    if online is not None:
        format_response({"probe_url": url, "online": online})
