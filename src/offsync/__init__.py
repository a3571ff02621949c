"""offsync -- an offline-first interception layer for httpx clients.

The package sits between an application's :class:`httpx.AsyncClient` and the
network. Every outgoing request is classified into a *route class*, served
by the caching strategy for that class, and -- when the network is gone --
answered from disk or with a synthesized fallback response. Writes that
cannot reach the server are persisted in a durable mutation queue and
replayed when connectivity returns.

Typical use::

    from offsync.worker import OfflineWorker

    async with OfflineWorker(config, storage_root) as worker:
        async with httpx.AsyncClient(transport=worker.transport()) as client:
            await client.get("https://app.example.com/api/teams")

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration loading and precedence resolution.
    routing: Route classification of intercepted requests.
    cache: Persistent stores, generations and caching strategies.
    client: Network path and the interception transport.
    sync: Mutation queue, sync coordinator and connectivity monitor.
    worker: The worker state object and its event dispatch.
"""

__version__ = "0.3.0"
