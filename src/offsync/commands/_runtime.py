"""Glue between Typer commands and the asynchronous worker.

Commands never build an :class:`~offsync.worker.OfflineWorker` themselves;
they hand a coroutine function to :func:`run_with_worker`, which resolves
the configuration from the root callback's flags, opens the worker on the
user's store directory, runs the coroutine and closes the worker again.

``ctx.obj["transport"]`` may carry an inner :class:`httpx.AsyncBaseTransport`
that replaces the real network; the test-suite passes an
:class:`httpx.MockTransport` there.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer

from offsync.config import get_stores_dir, resolve_config
from offsync.exceptions import OffsyncError
from offsync.models import GlobalConfig
from offsync.output import error
from offsync.worker import OfflineWorker

T = TypeVar("T")


def _options(ctx: typer.Context) -> dict:
    return ctx.obj if isinstance(ctx.obj, dict) else {}


def is_forced(ctx: typer.Context) -> bool:
    return bool(_options(ctx).get("force", False))


def resolve_from_context(ctx: typer.Context) -> GlobalConfig:
    """Resolve the effective config using the root callback's overrides.

    Raises:
        typer.Exit: With the error's exit code if the config is invalid.
    """
    options = _options(ctx)
    try:
        return resolve_config(
            cli_base_url=options.get("base_url"),
            cli_generation=options.get("generation"),
        )
    except OffsyncError as exc:
        error(f"Config error: {exc}")
        raise typer.Exit(code=exc.exit_code) from None


def run_with_worker(
    ctx: typer.Context,
    action: Callable[[OfflineWorker], Awaitable[T]],
    config: GlobalConfig | None = None,
) -> T:
    """Run *action* against a freshly opened worker and return its result.

    Raises:
        typer.Exit: With the error's exit code on any
            :class:`~offsync.exceptions.OffsyncError`.
    """
    config = config or resolve_from_context(ctx)
    transport = _options(ctx).get("transport")

    async def _run() -> T:
        async with OfflineWorker(config, get_stores_dir(), transport=transport) as worker:
            return await action(worker)

    try:
        return asyncio.run(_run())
    except OffsyncError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
