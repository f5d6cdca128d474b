#!/usr/bin/env python3
"""
M3U8 Window Proxy - Configuration
Process settings (validated once at startup) and the read-only rewrite
configuration shared by every request.
"""

import re
from dataclasses import dataclass
from typing import FrozenSet, Pattern, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, field_validator

# ============================================
# Rewrite Configuration
# ============================================

START_KEY = "start"
END_KEY = "end"

PLAYLIST_CONTENT_TYPES = frozenset({
    "application/x-mpegurl",
    "application/vnd.apple.mpegurl",
})

# Last run of digits right before the final extension of the URI path,
# e.g. "chunk-000123.ts" -> "000123"
SEGMENT_TIMESTAMP_PATTERN = re.compile(r"(\d+)\.[^./]+$")

INT64_MAX = 2 ** 63 - 1
INT64_MIN = -(2 ** 63)


@dataclass(frozen=True)
class RewriteConfig:
    """Immutable settings for classifying and rewriting playlists"""
    content_types: FrozenSet[str] = PLAYLIST_CONTENT_TYPES
    timestamp_pattern: Pattern = SEGMENT_TIMESTAMP_PATTERN
    start_key: str = START_KEY
    end_key: str = END_KEY

    def __post_init__(self):
        object.__setattr__(
            self, "content_types", frozenset(t.lower() for t in self.content_types)
        )

    @property
    def window_keys(self) -> Tuple[str, str]:
        return self.start_key, self.end_key


DEFAULT_CONFIG = RewriteConfig()


# ============================================
# Process Settings
# ============================================

class ProxySettings(BaseModel):
    upstream: str
    host: str = "0.0.0.0"
    port: int = 8080
    timeout: float = 30.0
    log_level: str = "INFO"

    @field_validator("upstream")
    @classmethod
    def _check_upstream(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"upstream must be an absolute http(s) URL, got {value!r}")
        return value

    @field_validator("port")
    @classmethod
    def _check_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError(f"port out of range: {value}")
        return value

    @field_validator("timeout")
    @classmethod
    def _check_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be positive")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"unknown log level: {value}")
        return level


def parse_listen(listen: str) -> Tuple[str, int]:
    """
    Split a "[host]:port" listen address.

    Args:
        listen: Address such as ":8080" or "127.0.0.1:9000"

    Returns:
        (host, port) tuple, host defaulting to all interfaces
    """
    host, sep, port = listen.rpartition(":")
    if not sep:
        raise ValueError(f"listen address must be [host]:port, got {listen!r}")
    if not port.isdigit():
        raise ValueError(f"invalid port in listen address: {listen!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, int(port)
