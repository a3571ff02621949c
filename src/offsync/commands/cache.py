"""Cache commands -- inspect and manage cache generations.

Provides the ``offsync cache`` sub-command group. Every sub-command opens
the stores of the configured generation (``--generation`` overrides it)
under the user's cache directory.
"""

from __future__ import annotations

from typing import Optional

import typer

from offsync.commands._runtime import is_forced, run_with_worker
from offsync.exceptions import InvalidUsageError
from offsync.models import ControlMessage, StoreName
from offsync.output import error, format_response, info, print_table, success, warning
from offsync.worker import OfflineWorker


cache_app = typer.Typer(no_args_is_help=True)


def _store_names(store: Optional[str]) -> list[StoreName]:
    if store is None:
        return list(StoreName)
    try:
        return [StoreName(store)]
    except ValueError:
        choices = ", ".join(s.value for s in StoreName)
        error(f"Unknown store {store!r}; expected one of: {choices}")
        raise typer.Exit(code=InvalidUsageError.exit_code) from None


@cache_app.command("stats")
def cache_stats(ctx: typer.Context) -> None:
    """Show the entry count of every store in the active generation.

    Example::

        offsync cache stats
    """

    async def _stats(worker: OfflineWorker) -> tuple[str, dict[str, int], list[str]]:
        return worker.version, worker.storage.stats(), worker.storage.list_store_dirs()

    version, stats, on_disk = run_with_worker(ctx, _stats)
    info(f"Cache version: {version}")
    print_table(
        ["Store", "Entries"],
        [[name, str(count)] for name, count in stats.items()],
        title="Cache stores",
    )
    stale = sorted(set(on_disk) - set(stats))
    if stale:
        warning(f"{len(stale)} stores from other generations: {', '.join(stale)}")


@cache_app.command("list")
def cache_list(
    ctx: typer.Context,
    store: Optional[str] = typer.Option(
        None, "--store", "-s", help="Only this store: static, dynamic or offline."
    ),
) -> None:
    """List cached entries, oldest first.

    Example::

        offsync cache list
        offsync cache list --store dynamic
    """
    names = _store_names(store)

    async def _list(worker: OfflineWorker) -> list[list[str]]:
        rows: list[list[str]] = []
        for name in names:
            target = worker.storage.store(name)
            for key in target.keys():
                entry = target.get(key)
                if entry is None:
                    continue
                rows.append([
                    name.value,
                    key,
                    str(entry.status_code),
                    str(len(entry.body)),
                    entry.stored_at.isoformat(timespec="seconds"),
                ])
        return rows

    rows = run_with_worker(ctx, _list)
    if not rows:
        info("No cached entries.")
        return
    print_table(["Store", "Key", "Status", "Bytes", "Stored"], rows, title="Cached entries")


@cache_app.command("clear")
def cache_clear(
    ctx: typer.Context,
    store: Optional[str] = typer.Option(
        None, "--store", "-s", help="Only this store: static, dynamic or offline."
    ),
) -> None:
    """Delete cached entries. Asks for confirmation unless ``--force``.

    Clearing the offline store also discards pending writes.

    Example::

        offsync cache clear --store dynamic
        offsync --force cache clear
    """
    names = _store_names(store)
    label = ", ".join(n.value for n in names)
    if not is_forced(ctx):
        if not typer.confirm(f"Clear the {label} store(s)?"):
            info("Cancelled.")
            raise typer.Exit()

    async def _clear(worker: OfflineWorker) -> int:
        return sum(worker.storage.store(name).clear() for name in names)

    removed = run_with_worker(ctx, _clear)
    success(f"Removed {removed} entries from {label}.")


@cache_app.command("install")
def cache_install(ctx: typer.Context) -> None:
    """Precache the configured static assets (all or nothing).

    Example::

        offsync --base-url https://app.example.com cache install
    """

    async def _install(worker: OfflineWorker) -> bool:
        return await worker.install()

    if run_with_worker(ctx, _install):
        success("Static assets cached.")
    else:
        warning("Static assets were not cached; see the log above.")


@cache_app.command("activate")
def cache_activate(ctx: typer.Context) -> None:
    """Activate the configured generation and delete all other generations.

    Pending writes found in retired generations are carried forward.

    Example::

        offsync --generation v2 cache activate
    """

    async def _activate(worker: OfflineWorker) -> tuple[str, list[str]]:
        return worker.version, await worker.activate()

    version, retired = run_with_worker(ctx, _activate)
    for name in retired:
        info(f"Deleted {name}")
    success(f"Activated {version}.")


@cache_app.command("version")
def cache_version(ctx: typer.Context) -> None:
    """Print the active cache version.

    Example::

        offsync cache version --json
    """

    async def _version(worker: OfflineWorker):  # noqa: ANN202
        return await worker.message(ControlMessage.GET_VERSION)

    format_response(run_with_worker(ctx, _version))
