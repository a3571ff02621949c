"""Response formatting bridge -- maps :class:`httpx.Response` to the output system.

After ``offsync fetch`` completes, :func:`format_api_response` writes the
status line and the response's origin (network, cache or fallback) to
stderr and routes the body through
:meth:`~offsync.output.OutputManager.format_response`.

See Also:
    :mod:`offsync.output` -- the output manager that renders data.
"""

from __future__ import annotations

from typing import Any

import httpx

from offsync.cache.store import SOURCE_EXTENSION
from offsync.output import get_output


def response_source(response: httpx.Response) -> str:
    """Where *response* came from: ``"network"``, ``"cache"`` or ``"fallback"``."""
    return response.extensions.get(SOURCE_EXTENSION, "network")


def format_api_response(response: httpx.Response) -> None:
    """Format and print a response using the global output system.

    Args:
        response: The :class:`httpx.Response` to format and display.
    """
    output = get_output()

    output.info(
        f"HTTP {response.status_code} {response.reason_phrase or ''} "
        f"(from {response_source(response)})"
    )

    content_type = response.headers.get("content-type", "application/json")
    data = extract_response_data(response)
    if data is not None:
        output.format_response(data, content_type)


def extract_response_data(response: httpx.Response) -> Any:
    """Extract the body from an HTTP response.

    JSON bodies are decoded; anything else is returned as text. Returns
    ``None`` for an empty body.
    """
    if not response.content:
        return None

    if "json" in response.headers.get("content-type", ""):
        try:
            return response.json()
        except ValueError:
            pass

    return response.text
