"""Built-in CLI sub-commands for offsync.

This package groups the Typer sub-command modules that form the CLI's
top-level command tree:

* :mod:`~offsync.commands.fetch` -- send one request through the
  interception layer (``fetch``), classify a URL (``route``) and report
  the worker's offline status (``status``).
* :mod:`~offsync.commands.cache` -- inspect, clear, install and activate
  cache generations.
* :mod:`~offsync.commands.queue` -- list and discard pending writes.
* :mod:`~offsync.commands.sync` -- run the sync coordinator or the
  connectivity monitor.
* :mod:`~offsync.commands.config` -- view and modify global settings.

Multi-command groups export a :class:`typer.Typer` sub-application; single
commands export a plain callback registered directly on the root app.
"""
