"""Relay of upstream responses back to the client.

Status and headers are copied as-is (minus framing headers, which the server
recomputes) and the body is streamed chunk by chunk. The next chunk is only
pulled from upstream after the previous one was handed to the server, so a
slow client throttles the upstream read instead of filling memory.
"""

import logging
from collections.abc import AsyncIterator
from typing import Optional

import anyio
import httpx
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

logger = logging.getLogger(__name__)

# Framing headers recomputed by the serving layer
RESPONSE_STRIP_HEADERS = {b"transfer-encoding", b"content-length"}


class MidStreamError(Exception):
    """Raised when reading the upstream body fails.

    Args:
        bytes_sent: Body bytes already forwarded to the client when it failed.
    """

    def __init__(self, bytes_sent: int):
        self.bytes_sent = bytes_sent
        super().__init__(f"Upstream body stream failed after {bytes_sent} bytes")


def relay_headers(headers: httpx.Headers) -> list[tuple[bytes, bytes]]:
    """Convert upstream headers to ASGI raw headers, keeping repeated names."""
    return [
        (name.lower(), value)
        for name, value in headers.raw
        if name.lower() not in RESPONSE_STRIP_HEADERS
    ]


async def _no_chunks() -> AsyncIterator[bytes]:
    return
    yield


async def open_body(upstream: httpx.Response) -> tuple[Optional[bytes], AsyncIterator[bytes]]:
    """Read the first body chunk before anything is written to the client.

    Returns:
        (first chunk or None if the body is empty, iterator over the rest)

    Raises:
        MidStreamError: If the upstream body fails before its first byte.
    """
    if upstream.is_stream_consumed:
        # Body already loaded by the transport
        return upstream.content or None, _no_chunks()

    chunks = upstream.aiter_raw()
    try:
        async for chunk in chunks:
            if chunk:
                return chunk, chunks
    except httpx.TransportError as e:
        logger.error("Upstream body failed before the first byte: %r", e)
        raise MidStreamError(0) from e
    return None, chunks


async def relay_body(
    first_chunk: Optional[bytes],
    chunks: Optional[AsyncIterator[bytes]],
) -> AsyncIterator[bytes]:
    """Yield the upstream body in order, ending early on upstream failure."""
    if first_chunk is None or chunks is None:
        return

    sent = len(first_chunk)
    yield first_chunk

    try:
        async for chunk in chunks:
            if not chunk:
                continue
            yield chunk
            sent += len(chunk)
    except httpx.TransportError as e:
        logger.error("Upstream body failed after %d bytes: %r", sent, e)
        raise MidStreamError(sent) from e


class RelayResponse(StreamingResponse):
    """Streaming response bound to an open upstream response.

    The upstream response is closed however the relay ends: completion,
    upstream failure or client disconnect.
    """

    def __init__(
        self,
        upstream: httpx.Response,
        first_chunk: Optional[bytes] = None,
        chunks: Optional[AsyncIterator[bytes]] = None,
    ):
        super().__init__(relay_body(first_chunk, chunks), status_code=upstream.status_code)
        self.raw_headers = relay_headers(upstream.headers)
        self.upstream = upstream
        self._chunks = chunks

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            with anyio.CancelScope(shield=True):
                await self.body_iterator.aclose()
                if self._chunks is not None:
                    await self._chunks.aclose()
                await self.upstream.aclose()
