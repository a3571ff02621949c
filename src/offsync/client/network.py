"""The network path every strategy and every replay goes through.

:class:`Network` wraps the *inner* transport -- the one that actually talks
to the server, :class:`httpx.AsyncHTTPTransport` by default -- and maps
transport failures to :class:`~offsync.exceptions.NetworkError`.

Two entry points:

* :meth:`Network.fetch` makes exactly one attempt. Caching strategies use
  it because they apply their own timeout and fallback policy.
* :meth:`Network.send` builds a request against ``base_url`` and retries
  network errors and 5xx responses with exponential backoff. The sync
  coordinator uses it for replay and read-through refresh.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from offsync.exceptions import NetworkError
from offsync.models import RequestConfig

logger = logging.getLogger(__name__)


class Network:
    """Asynchronous access to the real network.

    Args:
        transport: Inner transport. Defaults to an
            :class:`httpx.AsyncHTTPTransport` honouring ``verify_ssl``.
        config: Timeout, SSL and retry settings.
        base_url: Origin that relative URLs are resolved against.

    Example::

        network = Network(config=RequestConfig(), base_url="https://app.example.com")
        response = await network.send("GET", "/api/teams")
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        config: Optional[RequestConfig] = None,
        base_url: Optional[str] = None,
    ) -> None:
        self._config = config or RequestConfig()
        self._transport = transport or httpx.AsyncHTTPTransport(verify=self._config.verify_ssl)
        self._base_url = httpx.URL(base_url) if base_url else None

    @property
    def base_url(self) -> Optional[httpx.URL]:
        return self._base_url

    def resolve(self, url: str) -> httpx.URL:
        """Resolve *url* against ``base_url``; absolute URLs pass unchanged.

        Raises:
            NetworkError: If *url* is relative and no base URL is configured.
        """
        target = httpx.URL(url)
        if target.is_absolute_url:
            return target
        if self._base_url is None:
            raise NetworkError(f"Cannot resolve relative URL {url!r}: no base_url configured")
        return self._base_url.join(url)

    def build_request(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        content: Optional[bytes] = None,
    ) -> httpx.Request:
        """Build a request carrying the configured timeout."""
        return httpx.Request(
            method.upper(),
            self.resolve(url),
            headers=headers,
            content=content,
            extensions={"timeout": httpx.Timeout(self._config.timeout).as_dict()},
        )

    async def fetch(self, request: httpx.Request) -> httpx.Response:
        """Send *request* once and return the fully read response.

        Any HTTP status is a successful fetch; only transport-level failures
        raise.

        Raises:
            NetworkError: On connection, timeout or protocol errors.
        """
        try:
            response = await self._transport.handle_async_request(request)
            response.request = request
            try:
                await response.aread()
            finally:
                await response.aclose()
        except httpx.TransportError as exc:
            raise NetworkError(f"{request.method} {request.url} failed: {exc}") from exc
        return response

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        content: Optional[bytes] = None,
        max_retries: Optional[int] = None,
    ) -> httpx.Response:
        """Send a request with exponential-backoff retry.

        Retries on network errors and 5xx responses up to ``max_retries``
        times (default from :class:`~offsync.models.RequestConfig`),
        sleeping 1 s, 2 s, 4 s, ... between attempts. The last 5xx response
        is returned rather than raised.

        Raises:
            NetworkError: When every attempt failed at the transport level.
        """
        retries = self._config.max_retries if max_retries is None else max_retries

        for attempt in range(retries + 1):
            request = self.build_request(method, url, headers=headers, content=content)
            try:
                response = await self.fetch(request)
            except NetworkError as exc:
                if attempt >= retries:
                    raise NetworkError(
                        f"Connection failed after {retries + 1} attempts: {exc}"
                    ) from exc
                delay = 2 ** attempt
                logger.debug(
                    "Connection error: %s, retrying in %ss (attempt %d/%d)",
                    exc, delay, attempt + 1, retries,
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 500 and attempt < retries:
                delay = 2 ** attempt
                logger.debug(
                    "Server error %d, retrying in %ss (attempt %d/%d)",
                    response.status_code, delay, attempt + 1, retries,
                )
                await asyncio.sleep(delay)
                continue
            return response

        raise NetworkError(f"{method} {url} failed after all retries")  # pragma: no cover

    async def aclose(self) -> None:
        await self._transport.aclose()
