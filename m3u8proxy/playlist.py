#!/usr/bin/env python3
"""
M3U8 Window Proxy - Playlist Codec
Recognizes HLS playlist responses and converts them to and from m3u8 objects
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import m3u8

from .config import DEFAULT_CONFIG, RewriteConfig
from .errors import DecodeFailed

logger = logging.getLogger(__name__)


class ManifestKind(Enum):
    MASTER = "master"
    MEDIA = "media"
    UNKNOWN = "unknown"


@dataclass
class DecodedManifest:
    """A parsed playlist tagged with the kind it was recognized as"""
    kind: ManifestKind
    playlist: m3u8.M3U8


def is_playlist(content_type: Optional[str], config: RewriteConfig = DEFAULT_CONFIG) -> bool:
    """True if the declared Content-Type is one of the HLS playlist types"""
    if not content_type:
        return False
    return content_type.lower() in config.content_types


def decode_manifest(body: bytes) -> DecodedManifest:
    """
    Parse raw playlist bytes.

    Args:
        body: Buffered upstream response body

    Returns:
        DecodedManifest with the playlist and its kind

    Raises:
        DecodeFailed: body is not UTF-8 text starting with #EXTM3U, or the
            m3u8 parser rejected it
    """
    try:
        content = body.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise DecodeFailed(f"error decoding playlist: {e}") from e

    first_line = next((line.strip() for line in content.splitlines() if line.strip()), "")
    if not first_line.startswith("#EXTM3U"):
        raise DecodeFailed("error decoding playlist: #EXTM3U header is missing")

    try:
        playlist = m3u8.loads(content)
    except Exception as e:
        raise DecodeFailed(f"error decoding playlist: {e}") from e

    if playlist.is_variant:
        kind = ManifestKind.MASTER
    elif playlist.segments or playlist.target_duration is not None:
        kind = ManifestKind.MEDIA
    else:
        kind = ManifestKind.UNKNOWN

    logger.debug(
        f"Decoded {kind.value} playlist: {len(playlist.playlists)} variants, "
        f"{len(playlist.segments)} segments"
    )
    return DecodedManifest(kind=kind, playlist=playlist)


def encode_manifest(playlist: m3u8.M3U8) -> bytes:
    return playlist.dumps().encode("utf-8")


def append_query(uri: str, args: str) -> str:
    """Append a query string to a URI that may already have one"""
    if not args:
        return uri
    separator = "&" if "?" in uri else "?"
    return f"{uri}{separator}{args}"
