import pytest
from fastapi.testclient import TestClient

import main
from cache import ResultCache
from extractor import PageSnapshot
from fakes import lockup, make_session, watch_data
from recs import RecsService


@pytest.fixture
def render_calls():
    return []


@pytest.fixture
def client(monkeypatch, render_calls):
    async def render(page, video_id):
        render_calls.append(video_id)
        data = watch_data(
            lockup(
                "related01",
                title="Tom &amp; Jerry",
                sources=[{"url": "https://i.ytimg.com/low.jpg"}, {"url": "https://i.ytimg.com/high.jpg"}],
                overlays=[{"thumbnailOverlayBadgeViewModel": {"thumbnailBadges": [
                    {"thumbnailBadgeViewModel": {"text": "7:07"}},
                ]}}],
            ),
            lockup("related02"),
        )
        return PageSnapshot(initial_data=data)

    session, _ = make_session()
    service = RecsService(ResultCache(), session, provider="browser", render=render)
    monkeypatch.setattr(main, "recs_service", service)
    return TestClient(main.app)


def assert_cors(resp):
    assert resp.headers["access-control-allow-origin"] == "*"
    assert resp.headers["access-control-allow-methods"] == "GET,OPTIONS"
    assert "Content-Type" in resp.headers["access-control-allow-headers"]


@pytest.mark.parametrize("path", ["/api/recs", "/api/recs?v=", "/api/recs?v=%20%20"])
def test_missing_video_id(client, path):
    resp = client.get(path)

    assert resp.status_code == 400
    assert resp.json() == {"items": [], "error": "missing_video_id"}
    assert_cors(resp)


def test_short_video_id(client, render_calls):
    resp = client.get("/api/recs?v=ab")

    assert resp.status_code == 400
    assert resp.json() == {"items": [], "error": "bad_video_id"}
    assert render_calls == []


def test_recommendations_then_cached(client, render_calls):
    first = client.get("/api/recs", params={"v": "dQw4w9WgXcQ"})

    assert first.status_code == 200
    assert first.json() == {
        "items": [
            {
                "id": "related01",
                "title": "Tom & Jerry",
                "thumb": "https://i.ytimg.com/high.jpg",
                "duration": "7:07",
            },
            {
                "id": "related02",
                "title": "related02",
                "thumb": "https://img.youtube.com/vi/related02/hqdefault.jpg",
            },
        ]
    }
    assert_cors(first)

    second = client.get("/api/recs", params={"v": "dQw4w9WgXcQ"})

    assert second.json()["cached"] is True
    assert second.json()["items"] == first.json()["items"]
    assert render_calls == ["dQw4w9WgXcQ"]


def test_scrape_failure(monkeypatch):
    async def render(page, video_id):
        raise RuntimeError("net::ERR_CONNECTION_RESET")

    session, _ = make_session()
    monkeypatch.setattr(main, "recs_service", RecsService(ResultCache(), session, render=render, provider="browser"))

    resp = TestClient(main.app).get("/api/recs?v=dQw4w9WgXcQ")

    assert resp.status_code == 500
    assert resp.json() == {"items": [], "error": "scrape_failed"}
    assert_cors(resp)


def test_unexpected_error_is_internal_error(monkeypatch):
    class BrokenService:
        async def resolve(self, raw_video_id):
            raise AttributeError("boom")

    monkeypatch.setattr(main, "recs_service", BrokenService())

    resp = TestClient(main.app).get("/api/recs?v=dQw4w9WgXcQ")

    assert resp.status_code == 500
    assert resp.json() == {"items": [], "error": "internal_error"}


def test_preflight(client):
    resp = client.options("/api/recs")

    assert resp.status_code == 204
    assert resp.content == b""
    assert_cors(resp)


def test_unknown_route(client):
    resp = client.get("/nope")

    assert resp.status_code == 404
    assert resp.json() == {"error": "not_found"}
    assert_cors(resp)


def test_wrong_method_is_not_found(client):
    resp = client.post("/api/recs?v=dQw4w9WgXcQ")

    assert resp.status_code == 404
    assert resp.json() == {"error": "not_found"}
    assert_cors(resp)
