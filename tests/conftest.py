import pytest
import requests
from requests.structures import CaseInsensitiveDict

MEDIA_PLAYLIST = b"""#EXTM3U
#EXT-X-VERSION:3
#EXT-X-TARGETDURATION:10
#EXT-X-MEDIA-SEQUENCE:7
#EXT-X-DISCONTINUITY-SEQUENCE:2
#EXTINF:10.0,
seg-100.ts
#EXTINF:10.0,
seg-200.ts
#EXTINF:10.0,
seg-300.ts
"""

CLOSED_MEDIA_PLAYLIST = MEDIA_PLAYLIST + b"#EXT-X-ENDLIST\n"

MASTER_PLAYLIST = b"""#EXTM3U
#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="aud",NAME="English",DEFAULT=YES,URI="audio/index.m3u8"
#EXT-X-STREAM-INF:BANDWIDTH=1280000,RESOLUTION=640x360,AUDIO="aud"
low/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=2560000,RESOLUTION=1280x720,AUDIO="aud"
high/index.m3u8?token=abc
"""

BAD_SEGMENT_PLAYLIST = b"""#EXTM3U
#EXT-X-VERSION:3
#EXT-X-TARGETDURATION:10
#EXTINF:10.0,
seg-100.ts
#EXTINF:10.0,
live_segment.ts
"""

HLS_CONTENT_TYPE = "application/vnd.apple.mpegurl"


@pytest.fixture
def make_upstream():
    """Factory for a buffered requests.Response as returned by the origin"""
    def _make(body: bytes, content_type: str = HLS_CONTENT_TYPE, status: int = 200, headers=None):
        response = requests.Response()
        response.status_code = status
        response._content = body
        response.headers = CaseInsensitiveDict({
            "Content-Type": content_type,
            "Content-Length": str(len(body)),
        })
        response.headers.update(headers or {})
        return response
    return _make
