"""Queue commands -- inspect and discard writes waiting for replay.

Provides the ``offsync queue`` sub-command group.
"""

from __future__ import annotations

from typing import Optional

import typer

from offsync.commands._runtime import is_forced, run_with_worker
from offsync.models import PendingOperation
from offsync.output import info, print_table, success
from offsync.worker import OfflineWorker


queue_app = typer.Typer(no_args_is_help=True)


def _selected(worker: OfflineWorker, queue: Optional[str]) -> list[str]:
    if queue is None:
        return list(worker.coordinator.queues)
    return [worker.coordinator.queue(queue).name]


@queue_app.command("list")
def queue_list(
    ctx: typer.Context,
    queue: Optional[str] = typer.Option(
        None,
        "--queue",
        help="Only this queue: pending-evaluations or pending-user-updates.",
    ),
) -> None:
    """List pending writes in replay order.

    Example::

        offsync queue list
        offsync queue list --queue pending-evaluations --json
    """

    async def _list(worker: OfflineWorker) -> list[tuple[str, PendingOperation]]:
        return [
            (name, op)
            for name in _selected(worker, queue)
            for op in worker.coordinator.queue(name).list()
        ]

    pending = run_with_worker(ctx, _list)
    if not pending:
        info("No pending operations.")
        return
    print_table(
        ["Queue", "ID", "Kind", "Method", "Endpoint", "Attempts", "Last error"],
        [
            [
                name,
                op.id,
                op.kind.value,
                op.method,
                op.endpoint,
                str(op.attempts),
                op.last_error or "",
            ]
            for name, op in pending
        ],
        title="Pending operations",
    )


@queue_app.command("clear")
def queue_clear(
    ctx: typer.Context,
    queue: Optional[str] = typer.Option(
        None,
        "--queue",
        help="Only this queue: pending-evaluations or pending-user-updates.",
    ),
) -> None:
    """Discard pending writes without sending them.

    Asks for confirmation unless ``--force`` is active.

    Example::

        offsync --force queue clear --queue pending-user-updates
    """
    if not is_forced(ctx):
        if not typer.confirm("Discard pending operations? They will never be sent."):
            info("Cancelled.")
            raise typer.Exit()

    async def _clear(worker: OfflineWorker) -> int:
        return sum(worker.coordinator.queue(name).clear() for name in _selected(worker, queue))

    removed = run_with_worker(ctx, _clear)
    success(f"Discarded {removed} pending operations.")
