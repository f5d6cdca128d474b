"""
M3U8 Window Proxy - Rewrite Errors
Every error raised while rewriting a playlist derives from RewriteError,
which the proxy turns into a 502 instead of forwarding the upstream body.
"""


class RewriteError(Exception):
    """A playlist response could not be rewritten"""


class InvalidTimeWindow(RewriteError):
    """A start/end query value is not a base-10 64-bit integer"""

    def __init__(self, key: str, raw: str):
        self.key = key
        self.raw = raw
        super().__init__(f"unable to parse {key} time of {raw!r}")


class DecodeFailed(RewriteError):
    """The upstream body is not a parseable HLS playlist"""


class UnrecoverableTimestamp(RewriteError):
    """A segment URI carries no numeric timestamp"""

    def __init__(self, uri: str):
        self.uri = uri
        super().__init__(f"could not extract segment time: {uri}")
