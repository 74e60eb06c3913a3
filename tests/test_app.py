"""Tests for the HTTP layer: routes, parameter validation and error shapes."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app import app, get_scraper, limiter
from models import CatalogEntry, EpisodeEntry, StreamingData


@pytest.fixture
def scraper():
    fake = MagicMock()
    fake.search_all_sites = AsyncMock(return_value=[
        CatalogEntry(id="goyabu-1", site_id="goyabu", title="Naruto", url="https://goyabu.to/anime/naruto"),
    ])
    fake.get_episodes = AsyncMock(return_value=[
        EpisodeEntry(id="goyabu-goyabu-1-ep-1", anime_id="goyabu-1", site_id="goyabu", number=1,
                     title="Episode 1", url="https://goyabu.to/watch/1"),
    ])
    fake.get_streaming_data = AsyncMock(return_value=StreamingData(
        streaming_url="https://goyabu.to/watch/1", referer="https://goyabu.to/watch/1", external=True,
    ))
    return fake


@pytest.fixture
def client(scraper):
    app.dependency_overrides[get_scraper] = lambda: scraper
    limiter.reset()
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def test_root_health(client):
    body = client.get("/").json()
    assert body["success"] is True
    assert "/api/animes" in body["endpoints"]


@pytest.mark.parametrize("prefix", ["", "/api"])
def test_search_animes(client, scraper, prefix):
    response = client.get(f"{prefix}/animes", params={"q": "naruto", "site": "goyabu"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["count"] == 1
    assert body["query"] == "naruto"
    assert body["data"][0]["siteId"] == "goyabu"
    assert "timestamp" in body
    scraper.search_all_sites.assert_awaited_with("naruto", "goyabu")


def test_search_without_query(client, scraper):
    body = client.get("/api/animes").json()
    assert body["query"] is None
    scraper.search_all_sites.assert_awaited_with(None, None)


def test_episodes(client, scraper):
    response = client.get("/api/animes/goyabu/goyabu-1/episodes", params={"animeUrl": "https://goyabu.to/anime/naruto"})
    assert response.status_code == 200
    body = response.json()
    assert body["animeId"] == "goyabu-1"
    assert body["siteId"] == "goyabu"
    assert body["data"][0]["releaseDate"]
    scraper.get_episodes.assert_awaited_with("goyabu", "goyabu-1", "https://goyabu.to/anime/naruto")


@pytest.mark.parametrize("params", [{}, {"animeUrl": "   "}])
def test_episodes_require_anime_url(client, params):
    response = client.get("/api/animes/goyabu/goyabu-1/episodes", params=params)
    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "Bad Request",
        "message": "animeUrl query parameter is required",
    }


def test_stream(client):
    response = client.get("/api/episodes/goyabu/goyabu-1-ep-1/stream", params={"episodeUrl": "https://goyabu.to/watch/1"})
    assert response.status_code == 200
    body = response.json()
    assert body["episodeId"] == "goyabu-1-ep-1"
    assert body["data"]["streamingUrl"] == "https://goyabu.to/watch/1"
    assert body["data"]["external"] is True


def test_stream_requires_episode_url(client):
    response = client.get("/episodes/goyabu/goyabu-1-ep-1/stream")
    assert response.status_code == 400
    assert response.json()["message"] == "episodeUrl query parameter is required"


def test_unknown_route(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Not Found", "message": "Endpoint not found"}


def test_scraper_failure_is_500(client, scraper):
    scraper.search_all_sites.side_effect = RuntimeError("browser crashed")
    response = client.get("/api/animes")
    assert response.status_code == 500
    body = response.json()
    assert body == {"success": False, "error": "Internal Server Error", "message": "Failed to search animes"}
    assert "browser crashed" not in response.text


def test_rate_limit_per_client(client, monkeypatch):
    monkeypatch.setattr(limiter, "enabled", True)
    statuses = []
    for _ in range(200):
        response = client.get("/")
        statuses.append(response.status_code)
        if response.status_code == 429:
            break

    assert statuses[0] == 200
    assert statuses[-1] == 429
    assert response.json() == {
        "success": False,
        "error": "Too Many Requests",
        "message": "Rate limit exceeded. Try again later.",
    }