#!/usr/bin/env python3
"""
M3U8 Window Proxy - Media Playlist Segment Filter
Keeps only the segments whose URI timestamp falls inside the time window
"""

import logging
from typing import Optional
from urllib.parse import urlsplit

import m3u8

from .config import DEFAULT_CONFIG, RewriteConfig
from .errors import UnrecoverableTimestamp
from .time_window import TimeWindow, parse_int64

logger = logging.getLogger(__name__)

# Header attributes carried from the upstream playlist to the filtered one
_CARRIED_ATTRIBUTES = (
    "version",
    "target_duration",
    "media_sequence",
    "discontinuity_sequence",
    "playlist_type",
    "is_independent_segments",
    "is_i_frames_only",
    "allow_cache",
    "start",
    "server_control",
    "part_inf",
)


def segment_timestamp(uri: Optional[str], config: RewriteConfig = DEFAULT_CONFIG) -> int:
    """
    Recover the timestamp embedded in a segment URI.

    Args:
        uri: Segment URI, e.g. "media/chunk-000123.ts?token=abc"
        config: Rewrite configuration holding the timestamp pattern

    Returns:
        The integer before the file extension (123 in the example)

    Raises:
        UnrecoverableTimestamp: no numeric token, or it overflows 64 bits
    """
    if not uri:
        raise UnrecoverableTimestamp(repr(uri))

    match = config.timestamp_pattern.search(urlsplit(uri).path)
    if match is None:
        raise UnrecoverableTimestamp(uri)

    try:
        return parse_int64(match.group(1))
    except ValueError as e:
        raise UnrecoverableTimestamp(uri) from e


def in_window(timestamp: int, window: TimeWindow) -> bool:
    if window.has_start and timestamp < window.start:
        return False
    if window.has_end and timestamp > window.end:
        return False
    return True


def filter_media_playlist(
    incoming: m3u8.M3U8,
    window: TimeWindow,
    config: RewriteConfig = DEFAULT_CONFIG
) -> m3u8.M3U8:
    """
    Build a new media playlist holding the segments inside the window.

    Segment order is preserved and the sequence counters are copied as-is.
    The result is closed (#EXT-X-ENDLIST) when the window has an end bound
    or the upstream playlist was already closed; otherwise it stays live.

    Raises:
        UnrecoverableTimestamp: any segment URI lacks a timestamp; one bad
            segment fails the whole playlist
    """
    outgoing = m3u8.M3U8()
    for attribute in _CARRIED_ATTRIBUTES:
        setattr(outgoing, attribute, getattr(incoming, attribute, None))

    skipped = 0
    for segment in incoming.segments:
        if segment is None:
            continue

        if in_window(segment_timestamp(segment.uri, config), window):
            outgoing.segments.append(segment)
        else:
            skipped += 1

    # Without an end bound the upstream may still be appending segments
    outgoing.is_endlist = window.has_end or bool(incoming.is_endlist)

    logger.debug(
        f"Kept {len(outgoing.segments)} of {len(incoming.segments)} segments "
        f"(skipped {skipped}), closed={outgoing.is_endlist}"
    )
    return outgoing
