"""Route classification of intercepted requests.

:class:`RouteSelector` maps a request to exactly one
:class:`~offsync.models.RouteClass`. The decision is a pure function of the
method, the URL path, the ``Accept`` header and the request mode, evaluated
in a fixed precedence:

1. any method other than GET is ``PASSTHROUGH`` and is never cached;
2. static prefix or static file extension is ``STATIC_ASSET``;
3. API prefix or API route pattern is ``API``;
4. navigation mode or an HTML ``Accept`` header is ``NAVIGATION``;
5. image extension is ``IMAGE``;
6. everything else is ``OTHER``.

Static extensions are matched case-sensitively and image extensions
case-insensitively, so ``/logo.png`` is a static asset while ``/LOGO.PNG``
falls through to the image rule.

The request mode is read from ``request.extensions["mode"]``, falling back
to the ``Sec-Fetch-Mode`` header that browsers send.
"""

from __future__ import annotations

import re
from typing import Optional

import httpx

from offsync.models import RouteClass, RoutingConfig

NAVIGATE_MODE = "navigate"


def request_mode(request: httpx.Request) -> Optional[str]:
    """Return the fetch mode of *request* (``"navigate"``, ``"cors"``, ...)."""
    mode = request.extensions.get("mode")
    if mode:
        return str(mode)
    return request.headers.get("sec-fetch-mode")


class RouteSelector:
    """Classifies requests according to a :class:`~offsync.models.RoutingConfig`.

    Patterns are compiled once at construction; :meth:`classify` has no side
    effects and can be called from any task.

    Example::

        selector = RouteSelector(RoutingConfig())
        selector.classify(httpx.Request("GET", "https://app/static/css/main.css"))
        # RouteClass.STATIC_ASSET
    """

    def __init__(self, config: Optional[RoutingConfig] = None) -> None:
        self._config = config or RoutingConfig()
        self._static_extensions = tuple(self._config.static_extensions)
        self._api_patterns = [re.compile(p) for p in self._config.api_patterns]
        extensions = "|".join(re.escape(e.lstrip(".")) for e in self._config.image_extensions)
        self._image_re = re.compile(rf"\.({extensions})$", re.IGNORECASE) if extensions else None

    def classify(self, request: httpx.Request) -> RouteClass:
        """Return the route class of *request*."""
        if request.method.upper() != "GET":
            return RouteClass.PASSTHROUGH

        path = request.url.path
        if self.is_static_asset(path):
            return RouteClass.STATIC_ASSET
        if self.is_api(path):
            return RouteClass.API
        if self.is_navigation(request):
            return RouteClass.NAVIGATION
        if self.is_image(path):
            return RouteClass.IMAGE
        return RouteClass.OTHER

    def is_static_asset(self, path: str) -> bool:
        return any(path.startswith(p) for p in self._config.static_prefixes) or path.endswith(
            self._static_extensions
        )

    def is_api(self, path: str) -> bool:
        if any(path.startswith(p) for p in self._config.api_prefixes):
            return True
        return any(pattern.search(path) for pattern in self._api_patterns)

    def is_navigation(self, request: httpx.Request) -> bool:
        if request_mode(request) == NAVIGATE_MODE:
            return True
        return "text/html" in request.headers.get("accept", "")

    def is_image(self, path: str) -> bool:
        return self._image_re is not None and self._image_re.search(path) is not None
