"""Async HTTP forwarder for relaying requests to the upstream API.

Uses httpx.AsyncClient for non-blocking request forwarding with streaming
in both directions. Upstream connections optionally go through a SOCKS5
proxy (httpx ``socks`` extra).
"""

import asyncio
import logging
import threading
from collections.abc import AsyncIterable, AsyncIterator
from typing import Optional

import httpx

from keyrelay.config.settings import Settings

logger = logging.getLogger(__name__)

# Methods whose inbound body is never forwarded
BODYLESS_METHODS = {"GET", "HEAD"}


class DispatchError(Exception):
    """Raised when the upstream cannot be reached or stops responding."""


class PayloadTooLargeError(Exception):
    """Raised when an inbound request body exceeds the configured limit."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Request body exceeds the {limit} byte limit.")


async def limit_body(stream: AsyncIterable[bytes], limit: int) -> AsyncIterator[bytes]:
    """Pass a body stream through, failing once more than ``limit`` bytes arrive."""
    received = 0
    async for chunk in stream:
        received += len(chunk)
        if received > limit:
            raise PayloadTooLargeError(limit)
        if chunk:
            yield chunk


class Forwarder:
    """Async HTTP forwarder that proxies requests to a single upstream.

    Holds the two process-wide handles: the SOCKS proxy descriptor and the
    httpx client. Both are built on first use and shared by every request.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            settings: Proxy configuration (timeouts, SOCKS endpoint).
            transport: Optional transport override, used by tests to stand
                in for the upstream.
        """
        self._settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._client_lock = asyncio.Lock()
        self._proxy: Optional[httpx.Proxy] = None
        self._proxy_resolved = False
        self._proxy_lock = threading.Lock()

    def get_proxy(self) -> Optional[httpx.Proxy]:
        """Lazy-init the SOCKS proxy descriptor (None when disabled)."""
        if self._proxy_resolved:
            return self._proxy
        with self._proxy_lock:
            if not self._proxy_resolved:
                url = self._settings.build_socks_proxy_url()
                self._proxy = httpx.Proxy(url) if url else None
                self._proxy_resolved = True
                if self._proxy is not None:
                    logger.info(
                        "Tunnelling upstream traffic via SOCKS proxy %s:%s",
                        self._proxy.url.host, self._proxy.url.port,
                    )
        return self._proxy

    def _build_client(self) -> httpx.AsyncClient:
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                self._settings.upstream_timeout,
                connect=self._settings.connect_timeout,
            ),
            follow_redirects=False,
            trust_env=False,
            proxy=None if self._transport is not None else self.get_proxy(),
            transport=self._transport,
        )
        # Connection management belongs to the transport
        client.headers.pop("connection", None)
        return client

    async def get_client(self) -> httpx.AsyncClient:
        """Lazy-init the httpx async client."""
        client = self._client
        if client is not None and not client.is_closed:
            return client
        async with self._client_lock:
            if self._client is None or self._client.is_closed:
                self._client = self._build_client()
            return self._client

    async def dispatch(
        self,
        method: str,
        url: str,
        headers: dict,
        body: Optional[AsyncIterable[bytes]] = None,
    ) -> httpx.Response:
        """Send one request upstream and return the unread streaming response.

        Args:
            method: HTTP method, forwarded unchanged.
            url: Full upstream URL.
            headers: Outbound headers.
            body: Request body stream; dropped for GET and HEAD.

        Returns:
            httpx.Response whose body has not been read yet. The caller must
            close it.

        Raises:
            DispatchError: If the upstream could not be reached.
            PayloadTooLargeError: If the body stream exceeded its limit.
        """
        client = await self.get_client()
        content = None if method.upper() in BODYLESS_METHODS else body
        request = client.build_request(method, url, headers=headers, content=content)

        try:
            return await client.send(request, stream=True, follow_redirects=False)
        except PayloadTooLargeError:
            raise
        except httpx.TransportError as e:
            logger.error("Upstream request failed: %s %s: %r", method, url, e)
            raise DispatchError(f"Upstream request failed: {e.__class__.__name__}") from e

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
