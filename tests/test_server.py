from unittest import mock

import m3u8
import pytest
import requests
from fastapi.testclient import TestClient

from conftest import BAD_SEGMENT_PLAYLIST, MASTER_PLAYLIST, MEDIA_PLAYLIST
from m3u8proxy.config import ProxySettings
from m3u8proxy.server import build_upstream_url, create_app


@pytest.fixture
def session():
    return mock.Mock(spec=requests.Session)


@pytest.fixture
def client(session):
    settings = ProxySettings(upstream="http://origin.test/hls", timeout=5)
    return TestClient(create_app(settings, session=session))


def _called_url(session):
    return session.request.call_args.args[1]


@pytest.mark.parametrize("upstream,path,query,expected", [
    ("http://origin.test", "/live/index.m3u8", "", "http://origin.test/live/index.m3u8"),
    ("http://origin.test/hls", "/live/index.m3u8", "start=1", "http://origin.test/hls/live/index.m3u8?start=1"),
    ("http://origin.test/hls/", "/live/index.m3u8", "", "http://origin.test/hls/live/index.m3u8"),
    ("http://origin.test/hls?key=k", "/a.m3u8", "end=2", "http://origin.test/hls/a.m3u8?key=k&end=2"),
    ("http://origin.test/hls?key=k", "/a.m3u8", "", "http://origin.test/hls/a.m3u8?key=k"),
])
def test_build_upstream_url(upstream, path, query, expected):
    assert build_upstream_url(upstream, path, query) == expected


def test_windowed_media_playlist_is_filtered(client, session, make_upstream):
    session.request.return_value = make_upstream(MEDIA_PLAYLIST)

    response = client.get("/live/index.m3u8?start=150&end=250")

    assert response.status_code == 200
    playlist = m3u8.loads(response.text)
    assert [s.uri for s in playlist.segments] == ["seg-200.ts"]
    assert playlist.is_endlist
    assert response.headers["content-length"] == str(len(response.content))
    assert _called_url(session) == "http://origin.test/hls/live/index.m3u8?start=150&end=250"


def test_unwindowed_request_is_byte_identical(client, session, make_upstream):
    session.request.return_value = make_upstream(MEDIA_PLAYLIST)

    response = client.get("/live/index.m3u8")

    assert response.status_code == 200
    assert response.content == MEDIA_PLAYLIST
    assert response.headers["content-type"] == "application/vnd.apple.mpegurl"


def test_master_playlist_carries_window(client, session, make_upstream):
    session.request.return_value = make_upstream(MASTER_PLAYLIST, content_type="application/x-mpegurl")

    response = client.get("/live/master.m3u8?start=100")

    assert response.status_code == 200
    playlist = m3u8.loads(response.text)
    assert all("start=100" in variant.uri for variant in playlist.playlists)


def test_segments_are_never_rewritten(client, session, make_upstream):
    segment = b"\x47" + bytes(187)
    session.request.return_value = make_upstream(segment, content_type="video/mp2t")

    response = client.get("/live/seg-200.ts?start=150")

    assert response.status_code == 200
    assert response.content == segment


def test_rewrite_failure_is_bad_gateway(client, session, make_upstream):
    session.request.return_value = make_upstream(BAD_SEGMENT_PLAYLIST)

    response = client.get("/live/index.m3u8?start=1")

    assert response.status_code == 502
    assert b"live_segment.ts" not in response.content


def test_invalid_window_is_bad_gateway(client, session, make_upstream):
    session.request.return_value = make_upstream(MEDIA_PLAYLIST)
    assert client.get("/live/index.m3u8?end=soon").status_code == 502


def test_upstream_connection_error_is_bad_gateway(client, session):
    session.request.side_effect = requests.ConnectionError("connection refused")
    assert client.get("/live/index.m3u8").status_code == 502


def test_upstream_status_is_forwarded(client, session, make_upstream):
    session.request.return_value = make_upstream(b"missing", content_type="text/plain", status=404)

    response = client.get("/live/gone.m3u8?start=1")

    assert response.status_code == 404
    assert response.content == b"missing"


def test_forwarding_headers(client, session, make_upstream):
    session.request.return_value = make_upstream(MEDIA_PLAYLIST)

    client.get("/live/index.m3u8", headers={"Authorization": "Bearer t", "Connection": "keep-alive"})

    kwargs = session.request.call_args.kwargs
    headers = {name.lower(): value for name, value in kwargs["headers"].items()}
    assert headers["authorization"] == "Bearer t"
    assert "connection" not in headers
    assert "host" not in headers
    assert headers["x-forwarded-host"] == "testserver"
    assert headers["x-forwarded-proto"] == "http"
    assert kwargs["allow_redirects"] is False
    assert kwargs["timeout"] == 5


def test_hop_by_hop_response_headers_dropped(client, session, make_upstream):
    session.request.return_value = make_upstream(
        MEDIA_PLAYLIST,
        headers={"Content-Encoding": "gzip", "Keep-Alive": "timeout=5", "Cache-Control": "no-cache"},
    )

    response = client.get("/live/index.m3u8")

    assert "content-encoding" not in response.headers
    assert "keep-alive" not in response.headers
    assert response.headers["cache-control"] == "no-cache"


def test_request_body_is_forwarded(client, session, make_upstream):
    session.request.return_value = make_upstream(b"{}", content_type="application/json")

    client.post("/api/notify", content=b'{"event": "play"}')

    assert session.request.call_args.args[0] == "POST"
    assert session.request.call_args.kwargs["data"] == b'{"event": "play"}'


def test_master_with_non_numeric_window_is_delivered(client, session, make_upstream):
    session.request.return_value = make_upstream(MASTER_PLAYLIST)

    response = client.get("/live/master.m3u8?start=abc")

    assert response.status_code == 200
    playlist = m3u8.loads(response.text)
    assert all(variant.uri.endswith("start=abc") for variant in playlist.playlists)


def test_head_keeps_upstream_content_length(client, session, make_upstream):
    session.request.return_value = make_upstream(MEDIA_PLAYLIST)

    response = client.head("/live/index.m3u8")

    assert response.status_code == 200
    assert response.content == b""
    assert response.headers["content-length"] == str(len(MEDIA_PLAYLIST))
    assert session.request.call_args.args[0] == "HEAD"
