"""Synthesized responses for requests that neither cache nor network can serve.

The fallback is chosen per route class, not derived from the exception:

==================  ======  ==================================================
Route class         Status  Body
==================  ======  ==================================================
``static-asset``    503     ``Offline - Resource not available`` (text)
``api``             503     ``{"error": ..., "offline": true, ...}`` (JSON)
``navigation``      200     inline offline page with a Retry button (HTML)
``image``           200     1x1 transparent SVG placeholder
``other``           503     ``Offline - Resource not available`` (text)
``passthrough``     503     same JSON payload as ``api``
==================  ======  ==================================================

Navigation and image fallbacks answer 200 on purpose: the user sees a page
or an empty pixel instead of a browser error. API callers detect the
``"offline": true`` field in the JSON payload.
"""

from __future__ import annotations

import httpx

from offsync.cache.store import SOURCE_EXTENSION
from offsync.models import RouteClass

OFFLINE_PAGE = """<!DOCTYPE html>
<html>
  <head>
    <title>Offline</title>
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <style>
      body { font-family: Arial, sans-serif; text-align: center; padding: 50px; }
      .offline-message { color: #666; }
      .retry-button {
        background: #007bff; color: white; border: none;
        padding: 10px 20px; border-radius: 5px; cursor: pointer;
      }
    </style>
  </head>
  <body>
    <h1>You're Offline</h1>
    <p class="offline-message">This page is not available offline.</p>
    <button class="retry-button" onclick="window.location.reload()">Retry</button>
  </body>
</html>
"""

PLACEHOLDER_IMAGE = (
    b'<svg width="1" height="1" viewBox="0 0 1 1" fill="none" '
    b'xmlns="http://www.w3.org/2000/svg"><rect width="1" height="1" fill="transparent"/></svg>'
)

RESOURCE_UNAVAILABLE = "Offline - Resource not available"
API_UNAVAILABLE = "Offline - API not available"


def offline_payload(message: str = API_UNAVAILABLE) -> dict[str, object]:
    """The JSON body API callers receive while offline."""
    return {"error": "Network unavailable", "offline": True, "message": message}


def _synthesized(request: httpx.Request, status_code: int, **kwargs: object) -> httpx.Response:
    return httpx.Response(
        status_code,
        request=request,
        extensions={SOURCE_EXTENSION: "fallback"},
        **kwargs,
    )


def fallback_response(route: RouteClass, request: httpx.Request) -> httpx.Response:
    """Build the fallback response for *request* under *route*'s policy."""
    if route is RouteClass.NAVIGATION:
        return _synthesized(request, 200, html=OFFLINE_PAGE)
    if route is RouteClass.IMAGE:
        return _synthesized(
            request,
            200,
            headers={"content-type": "image/svg+xml"},
            content=PLACEHOLDER_IMAGE,
        )
    if route in (RouteClass.API, RouteClass.PASSTHROUGH):
        return _synthesized(request, 503, json=offline_payload())
    return _synthesized(
        request,
        503,
        headers={"content-type": "text/plain; charset=utf-8"},
        text=RESOURCE_UNAVAILABLE,
    )


def queued_response(request: httpx.Request, operation_id: str, queue: str) -> httpx.Response:
    """Answer for a write that was diverted to the mutation queue."""
    return _synthesized(
        request,
        202,
        json={"queued": True, "offline": True, "id": operation_id, "queue": queue},
    )
