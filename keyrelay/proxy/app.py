"""FastAPI application forwarding every request to the configured upstream.

A single catch-all route handles all methods and paths. Per request:
    1. configuration check           -> 500 on failure
    2. credential resolution         -> 401 when none is found
    3. declared body size check      -> 413
    4. dispatch to upstream          -> 502 when unreachable
    5. relay of status/headers/body  -> abrupt close on mid-stream failure
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from keyrelay.config.settings import ConfigurationError, Settings
from keyrelay.proxy.credentials import MissingCredentialError, require_credential
from keyrelay.proxy.forwarder import (
    BODYLESS_METHODS,
    DispatchError,
    Forwarder,
    PayloadTooLargeError,
    limit_body,
)
from keyrelay.proxy.headers import build_outbound_headers
from keyrelay.proxy.relay import MidStreamError, RelayResponse, open_body
from keyrelay.utils.helpers import redact_headers

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def build_target_url(upstream_url: str, request: Request) -> str:
    """Append the inbound path and query string, as received, to the upstream origin."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = request.url.path
    query = request.scope.get("query_string", b"").decode("latin-1")
    return f"{upstream_url}{path}?{query}" if query else f"{upstream_url}{path}"


def _declared_length(request: Request) -> int:
    try:
        return int(request.headers.get("content-length", "0"))
    except ValueError:
        return 0


def create_app(settings: Settings, forwarder: Forwarder) -> FastAPI:
    """Create the FastAPI proxy application.

    Args:
        settings: Proxy configuration, consulted on every request.
        forwarder: HTTP forwarder for the upstream.

    Returns:
        Configured FastAPI application.
    """
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await forwarder.close()

    # Docs routes would shadow upstream paths
    app = FastAPI(
        title="keyrelay",
        description="Credential-injecting forwarding proxy",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    async def forward(request: Request) -> Response:
        try:
            upstream_url = settings.require_upstream_url()
        except ConfigurationError as e:
            logger.error("Configuration error: %s", e)
            return _error(500, str(e))

        if settings.log_headers:
            logger.debug("Inbound headers: %s", redact_headers(request.headers.items()))

        try:
            credential = require_credential(request.headers, settings.auth_token)
        except MissingCredentialError as e:
            return _error(401, str(e))
        logger.debug("Using credential from %s", credential.source)

        method = request.method.upper()
        body = None
        if method not in BODYLESS_METHODS:
            if _declared_length(request) > settings.body_limit:
                return _error(413, str(PayloadTooLargeError(settings.body_limit)))
            body = limit_body(request.stream(), settings.body_limit)

        target_url = build_target_url(upstream_url, request)
        headers = build_outbound_headers(request.headers, credential.token)

        started = time.perf_counter()
        try:
            upstream = await forwarder.dispatch(method, target_url, headers, body)
        except PayloadTooLargeError as e:
            return _error(413, str(e))
        except DispatchError:
            return _error(502, "Upstream request failed.")

        logger.info(
            "%s %s -> %d (%.1f ms)",
            method, request.url.path, upstream.status_code,
            (time.perf_counter() - started) * 1000,
        )

        if method == "HEAD":
            return RelayResponse(upstream)

        try:
            first_chunk, chunks = await open_body(upstream)
        except MidStreamError:
            await upstream.aclose()
            return _error(502, "Upstream response stream failed.")

        return RelayResponse(upstream, first_chunk, chunks)

    # methods=None: any method, including non-standard ones
    app.router.add_route("/{path:path}", forward, methods=None, include_in_schema=False)

    return app
