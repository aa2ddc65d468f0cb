"""Yggflix API adapter: the single indexer backing movie and series searches."""

from __future__ import annotations

import asyncio
import hashlib
import re
import time
from typing import Any, Dict, List, Optional

import aiohttp

from debridflix import logger
from debridflix.__version__ import __version__
from debridflix.config import AppConfig
from debridflix.protocols import CacheStore
from debridflix.resilience import as_int, expect_dict
from debridflix.search.matching import parse_words
from debridflix.types import (
    ContentType,
    IndexerInfo,
    Language,
    MetaInfo,
    Quality,
    TorrentCandidate,
)

DEFAULT_USER_AGENT = f"Debridflix/{__version__}"
INDEXER_ID = "yggflix"
ITEMS_TTL_SECONDS = 3600 * 36
EMPTY_ITEMS_TTL_SECONDS = 60

_LANGUAGE_MARKERS = (
    ("french", re.compile(r" (french|vf|truefrench|vff|vfq) ", re.IGNORECASE)),
    ("english", re.compile(r" (english|eng|vostfr|vo) ", re.IGNORECASE)),
    ("multi", re.compile(r" (multi|multilangues) ", re.IGNORECASE)),
)


class YggflixIndexer:
    """IndexerClient over the Yggflix REST API, with cached per-title listings."""

    def __init__(
        self,
        config: AppConfig,
        cache: CacheStore,
        timeout: Optional[float] = None,
    ):
        self.config = config
        self.base_url = f"{config.yggflix_url.rstrip('/')}/api"
        self.timeout = timeout if timeout is not None else config.indexer_request_timeout
        self._cache = cache
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def get_indexers(self) -> List[IndexerInfo]:
        return [
            IndexerInfo(
                id=INDEXER_ID,
                title="Yggtorrent (Yggflix)",
                language="fr-FR",
                type="private",
                movie_available=True,
                series_available=True,
            )
        ]

    async def search_movie_torrents(self, meta: MetaInfo, indexer_id: str = INDEXER_ID) -> List[TorrentCandidate]:
        return await self._search(meta, "movie")

    async def search_serie_torrents(self, meta: MetaInfo, indexer_id: str = INDEXER_ID) -> List[TorrentCandidate]:
        # Yggflix lists every torrent of a show; season and episode filtering happens downstream.
        return await self._search(meta, "series")

    async def get_torrent_detail(self, torrent_id: int) -> Dict[str, Any]:
        return expect_dict(await self._request(f"/torrent/{torrent_id}"), "Yggflix torrent detail")

    def download_url(self, torrent_id: int | str, passkey: str) -> str:
        if not passkey or len(passkey) != 32:
            raise ValueError("Passkey must be exactly 32 characters long")
        return f"{self.base_url}/torrent/{torrent_id}/download?passkey={passkey}"

    async def _search(self, meta: MetaInfo, content_type: ContentType) -> List[TorrentCandidate]:
        if not meta.tmdb_id:
            logger.warning(f"{meta.stremio_id} : Yggflix requires a TMDB id for {content_type} search")
            return []

        if content_type == "movie":
            endpoint, cache_kind = "movie", "movie"
        else:
            endpoint, cache_kind = "tvshow", "serie"
        cache_key = f"yggflixItems:1:{cache_kind}:{meta.tmdb_id}"
        items = await self._cache.get(cache_key)
        if items is None:
            try:
                payload = await self._request(f"/{endpoint}/{int(meta.tmdb_id)}/torrents")
                items = [expect_dict(item, "Yggflix item") for item in (payload or [])]
                ttl = ITEMS_TTL_SECONDS if items else EMPTY_ITEMS_TTL_SECONDS
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, TypeError) as exc:
                logger.warning(f"{meta.stremio_id} : Yggflix search failed for {meta.name or meta.tmdb_id}: {exc}")
                items = []
                ttl = EMPTY_ITEMS_TTL_SECONDS
            await self._cache.set(cache_key, items, ttl=ttl)

        return [self.normalize_item(item, content_type, meta.tmdb_id) for item in items]

    def normalize_item(self, item: Dict[str, Any], content_type: ContentType, tmdb_id: str | None) -> TorrentCandidate:
        title = str(item.get("title") or "")
        guid = f"yggflix-{item.get('id')}"
        seeders = as_int(item.get("seeders"))
        link = None
        if self.config.yggflix_passkey:
            link = self.download_url(item.get("id"), self.config.yggflix_passkey)
        return TorrentCandidate(
            name=title,
            indexer_id=INDEXER_ID,
            id=hashlib.sha1(guid.encode("utf-8")).hexdigest(),
            guid=guid,
            type=content_type,
            size=as_int(item.get("size")),
            seeders=seeders,
            peers=seeders + as_int(item.get("leechers")),
            quality=Quality.from_name(title),
            languages=self.detect_languages(title),
            link=link,
            tmdb_id=tmdb_id,
            source_id=str(item.get("id")),
        )

    def detect_languages(self, title: str) -> List[Language]:
        padded = f" {' '.join(parse_words(title.lower()))} "
        languages = [
            self.config.language(value)
            for value, pattern in _LANGUAGE_MARKERS
            if pattern.search(padded)
        ]
        if not any(languages):
            # French tracker: untagged releases are French.
            languages = [self.config.language("french")]
        return [lang for lang in languages if lang is not None]

    async def _request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{endpoint}"
        log = logger.get_logger()
        log.api_request("GET", url, params)
        request_start = time.time()
        session = await self._ensure_session()
        async with session.get(url, params=params) as response:
            if response.status >= 400:
                text = await response.text()
                raise aiohttp.ClientResponseError(
                    request_info=response.request_info,
                    history=response.history,
                    status=response.status,
                    message=text,
                    headers=response.headers,
                )
            data = await response.json(content_type=None)
        log.api_response(response.status, data, (time.time() - request_start) * 1000)
        return data

    async def _ensure_session(self) -> aiohttp.ClientSession:
        session = self._session
        if session is not None and not session.closed:
            return session

        async with self._session_lock:
            session = self._session
            if session is None or session.closed:
                self._session = aiohttp.ClientSession(
                    headers={"User-Agent": DEFAULT_USER_AGENT},
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                )
            return self._session

    async def close(self) -> None:
        """Close any open connections."""
        async with self._session_lock:
            session = self._session
            self._session = None
        if session is not None and not session.closed:
            await session.close()
