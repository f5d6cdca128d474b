#!/usr/bin/env python3
"""
M3U8 Window Proxy - Reverse Proxy Server
FastAPI app forwarding every request to a single upstream HLS origin and
passing each buffered response through the playlist rewriter
"""

import asyncio
import functools
import logging
from contextlib import asynccontextmanager
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import requests
from fastapi import FastAPI, Request
from fastapi.responses import Response
from requests.structures import CaseInsensitiveDict

from . import __version__
from .config import DEFAULT_CONFIG, ProxySettings, RewriteConfig
from .errors import RewriteError
from .rewriter import UpstreamResponse, rewrite_response

logger = logging.getLogger(__name__)

# ============================================
# Header Handling
# ============================================

HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
})

# requests decodes gzip/deflate bodies, so these no longer describe the body
DROPPED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | {"content-encoding", "content-length"}

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _connection_tokens(headers) -> set:
    """Extra hop-by-hop header names listed in a Connection header"""
    value = headers.get("connection") or ""
    return {token.strip().lower() for token in value.split(",") if token.strip()}


def upstream_request_headers(request: Request) -> dict:
    dropped = HOP_BY_HOP_HEADERS | _connection_tokens(request.headers) | {"host", "content-length"}
    headers = {
        name: value for name, value in request.headers.items()
        if name.lower() not in dropped
    }

    client_host = request.client.host if request.client else None
    if client_host:
        prior = request.headers.get("x-forwarded-for")
        headers["X-Forwarded-For"] = f"{prior}, {client_host}" if prior else client_host
    if request.headers.get("host"):
        headers["X-Forwarded-Host"] = request.headers["host"]
    headers["X-Forwarded-Proto"] = request.url.scheme
    return headers


def downstream_response_headers(upstream: UpstreamResponse) -> dict:
    dropped = DROPPED_RESPONSE_HEADERS | _connection_tokens(upstream.headers)
    return {
        name: value for name, value in upstream.headers.items()
        if name.lower() not in dropped
    }


def build_upstream_url(upstream: str, path: str, query: str) -> str:
    """
    Join the client path and query onto the upstream base URL.

    Args:
        upstream: Base URL, e.g. "http://origin:8000/hls"
        path: Raw client path, e.g. "/live/index.m3u8"
        query: Raw client query string (without "?")

    Returns:
        Target URL; the upstream path prefix is kept and the upstream query
        comes before the client query
    """
    base = urlsplit(upstream)

    if base.path.endswith("/") and path.startswith("/"):
        joined = base.path + path[1:]
    elif not base.path.endswith("/") and not path.startswith("/"):
        joined = f"{base.path}/{path}"
    else:
        joined = base.path + path

    if base.query and query:
        merged_query = f"{base.query}&{query}"
    else:
        merged_query = base.query or query

    return urlunsplit((base.scheme, base.netloc, joined or "/", merged_query, ""))


# ============================================
# Proxying
# ============================================

def fetch_and_rewrite(
    session: requests.Session,
    method: str,
    url: str,
    client_url: str,
    headers: dict,
    body: bytes,
    timeout: float,
    config: RewriteConfig
) -> UpstreamResponse:
    """Blocking half of a proxied request; runs in the thread pool"""
    logger.debug(f"{method} {url}")
    upstream = session.request(
        method,
        url,
        headers=headers,
        data=body or None,
        timeout=timeout,
        allow_redirects=False,
    )

    response = UpstreamResponse(
        status_code=upstream.status_code,
        body=upstream.content,
        request_url=client_url,
        headers=CaseInsensitiveDict(upstream.headers),
    )
    rewrite_response(response, config)
    return response


def create_app(
    settings: ProxySettings,
    session: Optional[requests.Session] = None,
    config: RewriteConfig = DEFAULT_CONFIG
) -> FastAPI:
    """
    Build the proxy application.

    Args:
        settings: Validated process settings (upstream URL, timeout)
        session: requests session used for upstream calls; one is created
            and closed with the app when omitted
        config: Playlist rewrite configuration
    """
    owns_session = session is None
    session = session or requests.Session()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Proxying requests to {settings.upstream}")
        yield
        if owns_session:
            session.close()
        logger.info("Proxy shutting down")

    app = FastAPI(
        title="M3U8 Window Proxy",
        description="Reverse proxy trimming HLS playlists to a start/end window",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings

    @app.api_route("/{path:path}", methods=PROXY_METHODS)
    async def proxy(path: str, request: Request):
        """Forward any request to the upstream origin"""
        raw_path = request.scope.get("raw_path")
        client_path = raw_path.split(b"?", 1)[0].decode("latin-1") if raw_path else request.url.path
        target = build_upstream_url(settings.upstream, client_path, request.url.query)
        body = await request.body()

        loop = asyncio.get_running_loop()
        try:
            upstream = await loop.run_in_executor(
                None,
                functools.partial(
                    fetch_and_rewrite,
                    session,
                    request.method,
                    target,
                    str(request.url),
                    upstream_request_headers(request),
                    body,
                    settings.timeout,
                    config,
                )
            )
        except requests.RequestException as e:
            logger.error(f"Upstream request failed for {target}: {e}")
            return Response(content=b"Bad Gateway", status_code=502)
        except RewriteError as e:
            logger.error(f"Unable to rewrite playlist for {request.url}: {e}")
            return Response(content=b"Bad Gateway", status_code=502)

        headers = downstream_response_headers(upstream)
        if request.method == "HEAD":
            if "content-length" in upstream.headers:
                headers["Content-Length"] = upstream.headers["content-length"]
            return Response(status_code=upstream.status_code, headers=headers)

        headers["Content-Length"] = str(len(upstream.body))
        return Response(
            content=upstream.body,
            status_code=upstream.status_code,
            headers=headers,
        )

    return app
