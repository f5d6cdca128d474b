#!/usr/bin/env python3
"""
M3U8 Window Proxy - Time Window Extractor
Reads the optional start/end query parameters of the client request
"""

import re
import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple
from urllib.parse import parse_qs, urlencode, urlsplit

from .config import DEFAULT_CONFIG, INT64_MAX, INT64_MIN, RewriteConfig
from .errors import InvalidTimeWindow

logger = logging.getLogger(__name__)

_DECIMAL = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class TimeWindow:
    """
    Inclusive [start, end] bound on segment timestamps.

    A bound of 0 (or below) means "unbounded", whether the key was missing
    or sent as "0". `arguments` keeps the window keys exactly as the client
    sent them so they can be forwarded to variant playlists.
    """
    start: int = 0
    end: int = 0
    arguments: Tuple[Tuple[str, str], ...] = ()

    @property
    def has_start(self) -> bool:
        return self.start > 0

    @property
    def has_end(self) -> bool:
        return self.end > 0

    def query_string(self) -> str:
        return urlencode(self.arguments)


def parse_int64(raw: str) -> int:
    """Parse a base-10 signed 64-bit integer, rejecting anything else"""
    if not _DECIMAL.fullmatch(raw):
        raise ValueError(f"invalid syntax: {raw!r}")
    value = int(raw)
    if not INT64_MIN <= value <= INT64_MAX:
        raise ValueError(f"value out of range: {raw!r}")
    return value


def query_params(url: str) -> Dict[str, List[str]]:
    """Query parameters of a URL, keeping keys sent without a value"""
    return parse_qs(urlsplit(url).query, keep_blank_values=True)


def has_window(params: Mapping[str, Sequence[str]], config: RewriteConfig = DEFAULT_CONFIG) -> bool:
    """True when the request names a start or end key, whatever its value"""
    return any(key in params for key in config.window_keys)


def window_arguments(
    params: Mapping[str, Sequence[str]],
    config: RewriteConfig = DEFAULT_CONFIG
) -> Tuple[Tuple[str, str], ...]:
    """The start/end (key, value) pairs exactly as the client sent them"""
    # Sorted key order matches how the window is re-encoded for variants
    return tuple(
        (key, value)
        for key in sorted(config.window_keys)
        for value in params.get(key, ())
    )


def extract_time_window(
    params: Mapping[str, Sequence[str]],
    config: RewriteConfig = DEFAULT_CONFIG
) -> TimeWindow:
    """
    Build the TimeWindow requested by the client.

    Args:
        params: Parsed query of the original request (key -> values)
        config: Rewrite configuration naming the start/end keys

    Returns:
        TimeWindow; a missing key leaves that side unbounded

    Raises:
        InvalidTimeWindow: a present value is not a base-10 integer
    """
    bounds = {}

    for key in config.window_keys:
        values = params.get(key)
        if values is None:
            continue

        raw = values[0] if values else ""
        try:
            bounds[key] = parse_int64(raw)
        except ValueError as e:
            logger.error(f"Could not parse {key} time {raw!r}: {e}")
            raise InvalidTimeWindow(key, raw) from e

    return TimeWindow(
        start=bounds.get(config.start_key, 0),
        end=bounds.get(config.end_key, 0),
        arguments=window_arguments(params, config),
    )
