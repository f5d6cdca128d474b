#!/usr/bin/env python3
"""
M3U8 Window Proxy - Response Rewriter
Hook run on every upstream response. Requests without a start/end key pass
through untouched; HLS playlists requested with a window are rewritten:
  - master playlists forward the window to every variant URI
  - media playlists are trimmed to the segments inside the window
"""

import uuid
import logging
from dataclasses import dataclass, field

import m3u8
from requests.structures import CaseInsensitiveDict

from .config import DEFAULT_CONFIG, RewriteConfig
from .playlist import (
    ManifestKind,
    append_query,
    decode_manifest,
    encode_manifest,
    is_playlist,
)
from .segment_filter import filter_media_playlist
from .time_window import (
    TimeWindow,
    extract_time_window,
    has_window,
    query_params,
    window_arguments,
)

logger = logging.getLogger(__name__)


class RequestLogger(logging.LoggerAdapter):
    """Prefixes every line with the rewrite's correlation id"""

    def process(self, msg, kwargs):
        return f"[requestId={self.extra['requestId']}] {msg}", kwargs


@dataclass
class UpstreamResponse:
    """Buffered upstream response plus the URL the client originally asked for"""
    status_code: int
    body: bytes
    request_url: str
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)

    def replace_body(self, body: bytes):
        self.body = body
        self.headers["Content-Length"] = str(len(body))


def rewrite_master_playlist(playlist: m3u8.M3U8, window: TimeWindow) -> m3u8.M3U8:
    """
    Carry the client's start/end arguments onto every variant reference,
    so follow-up playlist requests are trimmed to the same window.
    """
    args = window.query_string()

    for variant in playlist.playlists:
        variant.uri = append_query(variant.uri, args)
    for variant in playlist.iframe_playlists:
        variant.uri = append_query(variant.uri, args)
    for rendition in playlist.media:
        if rendition.uri:
            rendition.uri = append_query(rendition.uri, args)

    return playlist


def rewrite_response(response: UpstreamResponse, config: RewriteConfig = DEFAULT_CONFIG) -> bool:
    """
    Rewrite an upstream response in place.

    Args:
        response: Upstream response; body and Content-Length are replaced
            when the playlist is rewritten
        config: Rewrite configuration

    Returns:
        True if the body was replaced, False if it passed through

    Raises:
        RewriteError: the window, playlist or a segment URI is invalid; the
            response must not be delivered
    """
    log = RequestLogger(logger, {"requestId": str(uuid.uuid4())})
    log.debug("Starting response modification")

    params = query_params(response.request_url)
    if not has_window(params, config):
        log.debug("Query doesn't have start or end times, skipping further processing")
        return False

    content_type = response.headers.get("Content-Type")
    if not is_playlist(content_type, config):
        log.debug(f"Response is not a playlist (content-type: {content_type})")
        return False

    log.debug("Response is a playlist")
    decoded = decode_manifest(response.body)

    if decoded.kind is ManifestKind.MASTER:
        # Forwarded verbatim; the variant request validates the values
        window = TimeWindow(arguments=window_arguments(params, config))
        log.debug(f"Master playlist, forwarding window arguments {window.query_string()!r}")
        rewritten = rewrite_master_playlist(decoded.playlist, window)
    elif decoded.kind is ManifestKind.MEDIA:
        window = extract_time_window(params, config)
        log.debug(f"Media playlist, filtering segments to [{window.start}, {window.end}]")
        rewritten = filter_media_playlist(decoded.playlist, window, config)
    else:
        log.warning("Got an unknown playlist type, passing it through")
        return False

    response.replace_body(encode_manifest(rewritten))
    log.info(
        f"Rewrote {decoded.kind.value} playlist for {response.request_url} "
        f"({response.headers['Content-Length']} bytes)"
    )
    return True
