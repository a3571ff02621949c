"""Single-request commands: ``fetch``, ``route`` and ``status``.

``offsync fetch`` sends one request through a real
:class:`httpx.AsyncClient` whose transport is the interception layer, so
the output shows exactly what an application would receive -- a network
response, a cached copy, a fallback, or a ``202`` for a queued write.
"""

from __future__ import annotations

from typing import Optional

import httpx
import typer

from offsync.client.response import format_api_response
from offsync.commands._runtime import resolve_from_context, run_with_worker
from offsync.output import format_response
from offsync.routing import NAVIGATE_MODE, RouteSelector
from offsync.worker import OfflineWorker


def _build_headers(
    accept: Optional[str],
    navigate: bool,
    token: Optional[str] = None,
    content_type: Optional[str] = None,
) -> dict[str, str]:
    headers: dict[str, str] = {}
    if accept:
        headers["accept"] = accept
    if navigate:
        headers["sec-fetch-mode"] = NAVIGATE_MODE
    if token:
        headers["authorization"] = f"Bearer {token}"
    if content_type:
        headers["content-type"] = content_type
    return headers


def fetch_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Absolute URL, or a path resolved against base_url."),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
    accept: Optional[str] = typer.Option(None, "--accept", help="Accept header."),
    navigate: bool = typer.Option(
        False, "--navigate", help="Mark the request as a page navigation."
    ),
    body: Optional[str] = typer.Option(None, "--body", "-d", help="Request body."),
    content_type: str = typer.Option(
        "application/json", "--content-type", help="Content type of --body."
    ),
    token: Optional[str] = typer.Option(None, "--token", help="Bearer token to send."),
) -> None:
    """Send one request through the offline layer and print the response.

    Example::

        offsync fetch /api/teams
        offsync fetch / --navigate
        offsync fetch /api/evaluations -X POST -d '{"score": 4}' --token abc
    """
    headers = _build_headers(accept, navigate, token, content_type if body else None)
    content = body.encode("utf-8") if body is not None else None

    async def _fetch(worker: OfflineWorker) -> httpx.Response:
        async with httpx.AsyncClient(transport=worker.transport()) as client:
            request = client.build_request(
                method.upper(), worker.network.resolve(url), headers=headers, content=content
            )
            return await client.send(request)

    response = run_with_worker(ctx, _fetch)
    format_api_response(response)


def route_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Absolute URL, or a path."),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
    accept: Optional[str] = typer.Option(None, "--accept", help="Accept header."),
    navigate: bool = typer.Option(
        False, "--navigate", help="Mark the request as a page navigation."
    ),
) -> None:
    """Show which caching strategy a request would get.

    Example::

        offsync route /static/css/main.css
        offsync route /dashboard --accept text/html
    """
    config = resolve_from_context(ctx)
    target = httpx.URL(url)
    if not target.is_absolute_url:
        target = httpx.URL(config.base_url or "http://localhost").join(url)

    request = httpx.Request(method.upper(), target, headers=_build_headers(accept, navigate))
    route = RouteSelector(config.routing).classify(request)
    format_response({"method": request.method, "url": str(request.url), "route": route.value})


def status_command(ctx: typer.Context) -> None:
    """Show the cache generation, pending writes and store sizes.

    Example::

        offsync status
        offsync status --json
    """

    async def _status(worker: OfflineWorker):  # noqa: ANN202
        return worker.status()

    status = run_with_worker(ctx, _status)
    format_response(status.model_dump(mode="json"))
