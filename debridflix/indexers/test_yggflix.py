from __future__ import annotations

import hashlib
from typing import Any

import aiohttp
import pytest

from debridflix.config import AppConfig
from debridflix.indexers import yggflix
from debridflix.types import MetaInfo, Quality

PASSKEY = "p" * 32


class _RecordingCache:
    def __init__(self) -> None:
        self.values: dict[str, Any] = {}
        self.ttls: dict[str, float | None] = {}

    async def get(self, key: str) -> Any:
        return self.values.get(key)

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        self.values[key] = value
        self.ttls[key] = ttl


def _movie(tmdb_id: str | None = "550") -> MetaInfo:
    return MetaInfo(id="tt0137523", stremio_id="tt0137523", type="movie", name="Fight Club", tmdb_id=tmdb_id)


def _item(item_id: int, title: str, seeders: int = 10) -> dict:
    return {"id": item_id, "title": title, "size": 1024, "seeders": seeders, "leechers": 3}


@pytest.mark.asyncio
async def test_get_indexers_lists_yggflix() -> None:
    indexer = yggflix.YggflixIndexer(AppConfig(), _RecordingCache())

    infos = await indexer.get_indexers()

    assert [(i.id, i.language, i.type) for i in infos] == [("yggflix", "fr-FR", "private")]
    assert infos[0].supports("movie") and infos[0].supports("series")


def test_normalize_item_builds_candidate() -> None:
    indexer = yggflix.YggflixIndexer(AppConfig(yggflix_passkey=PASSKEY), _RecordingCache())

    candidate = indexer.normalize_item(_item(123, "Fight.Club.1999.MULTi.1080p.BluRay"), "movie", "550")

    assert candidate.guid == "yggflix-123"
    assert candidate.id == hashlib.sha1(b"yggflix-123").hexdigest()
    assert candidate.peers == 13
    assert candidate.quality is Quality.FHD_1080
    assert [lang.value for lang in candidate.languages] == ["multi"]
    assert candidate.link == f"https://yggflix.fr/api/torrent/123/download?passkey={PASSKEY}"
    assert candidate.source_id == "123"


def test_normalize_item_without_passkey_has_no_link() -> None:
    indexer = yggflix.YggflixIndexer(AppConfig(), _RecordingCache())

    assert indexer.normalize_item(_item(1, "Film"), "movie", "550").link is None


@pytest.mark.parametrize(
    "title, expected",
    [
        ("Film.2020.1080p.WEB", ["french"]),
        ("Film.2020.VOSTFR.720p", ["english"]),
        ("Film.2020.TRUEFRENCH.MULTi.2160p", ["french", "multi"]),
    ],
)
def test_detect_languages(title: str, expected: list[str]) -> None:
    indexer = yggflix.YggflixIndexer(AppConfig(), _RecordingCache())

    assert [lang.value for lang in indexer.detect_languages(title)] == expected


def test_download_url_requires_full_passkey() -> None:
    indexer = yggflix.YggflixIndexer(AppConfig(), _RecordingCache())

    with pytest.raises(ValueError):
        indexer.download_url(1, "short")


@pytest.mark.asyncio
async def test_search_is_cached_per_title(monkeypatch: pytest.MonkeyPatch) -> None:
    cache = _RecordingCache()
    indexer = yggflix.YggflixIndexer(AppConfig(), cache)
    endpoints: list[str] = []

    async def _fake_request(endpoint: str, params=None):
        endpoints.append(endpoint)
        return [_item(1, "Fight.Club.1999.1080p"), _item(2, "Fight.Club.1999.720p")]

    monkeypatch.setattr(indexer, "_request", _fake_request)

    first = await indexer.search_movie_torrents(_movie())
    second = await indexer.search_movie_torrents(_movie())

    assert endpoints == ["/movie/550/torrents"]
    assert [c.name for c in first] == [c.name for c in second]
    assert cache.ttls["yggflixItems:1:movie:550"] == yggflix.ITEMS_TTL_SECONDS


@pytest.mark.asyncio
async def test_series_search_uses_tvshow_endpoint(monkeypatch: pytest.MonkeyPatch) -> None:
    cache = _RecordingCache()
    indexer = yggflix.YggflixIndexer(AppConfig(), cache)
    endpoints: list[str] = []

    async def _fake_request(endpoint: str, params=None):
        endpoints.append(endpoint)
        return [_item(9, "Show.S01E01.1080p")]

    monkeypatch.setattr(indexer, "_request", _fake_request)
    meta = MetaInfo(id="tt0903747", stremio_id="tt0903747:1:1", type="series", tmdb_id="1396", season=1, episode=1)

    results = await indexer.search_serie_torrents(meta)

    assert endpoints == ["/tvshow/1396/torrents"]
    assert results[0].type == "series"
    assert "yggflixItems:1:serie:1396" in cache.values


@pytest.mark.asyncio
async def test_search_failure_returns_empty_and_caches_briefly(monkeypatch: pytest.MonkeyPatch) -> None:
    cache = _RecordingCache()
    indexer = yggflix.YggflixIndexer(AppConfig(), cache)

    async def _failing_request(endpoint: str, params=None):
        raise aiohttp.ClientError("connection reset")

    monkeypatch.setattr(indexer, "_request", _failing_request)

    assert await indexer.search_movie_torrents(_movie()) == []
    assert cache.values["yggflixItems:1:movie:550"] == []
    assert cache.ttls["yggflixItems:1:movie:550"] == yggflix.EMPTY_ITEMS_TTL_SECONDS


@pytest.mark.asyncio
async def test_search_without_tmdb_id_skips_request(monkeypatch: pytest.MonkeyPatch) -> None:
    indexer = yggflix.YggflixIndexer(AppConfig(), _RecordingCache())

    async def _unexpected(endpoint: str, params=None):
        raise AssertionError("no request expected")

    monkeypatch.setattr(indexer, "_request", _unexpected)

    assert await indexer.search_movie_torrents(_movie(tmdb_id=None)) == []


@pytest.mark.asyncio
async def test_get_torrent_detail(monkeypatch: pytest.MonkeyPatch) -> None:
    indexer = yggflix.YggflixIndexer(AppConfig(), _RecordingCache())

    async def _fake_request(endpoint: str, params=None):
        assert endpoint == "/torrent/123"
        return {"id": 123, "hash": "abc"}

    monkeypatch.setattr(indexer, "_request", _fake_request)

    assert await indexer.get_torrent_detail(123) == {"id": 123, "hash": "abc"}


@pytest.mark.parametrize(
    "title, expected",
    [
        ("Film.2020.1080p.WEB", Quality.FHD_1080),
        ("Film.2020.2160P.HDR", Quality.UHD_2160),
        ("Film.2020.HDTV", Quality.UNKNOWN),
    ],
)
def test_quality_tag_is_case_insensitive(title: str, expected: Quality) -> None:
    indexer = yggflix.YggflixIndexer(AppConfig(), _RecordingCache())

    assert indexer.normalize_item(_item(1, title), "movie", "550").quality is expected
