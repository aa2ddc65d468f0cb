"""Search, filter and rank torrents for one title, then annotate them with debrid state."""

from __future__ import annotations

import asyncio
import re
import time
from typing import Callable, List, Optional, Sequence

from debridflix import logger
from debridflix.config import AppConfig, UserConfig
from debridflix.errors import (
    ExpiredCredentialError,
    NoIndexerConfiguredError,
    NoTorrentInfosError,
)
from debridflix.locks import InFlightTable, search_locks
from debridflix.protocols import IndexerClient, TorrentInfoFetcher
from debridflix.providers.base import DebridProvider
from debridflix.search.matching import (
    is_season_pack,
    language_filter,
    language_priority_limit,
    matches_season,
    parse_words,
    passes_episode_gate,
    priotize_items,
    search_episode_file,
    sort_by,
)
from debridflix.types import IndexerInfo, MetaInfo, TorrentCandidate, TorrentFile

INFOS_CONCURRENCY = 5
INFOS_TIMEOUT_CAP_SECONDS = 30
SEARCH_SORT = [("seeders", True)]
PASSKEY_REQUIRED_NOTE = "Uncached torrent require a passkey configuration"
EXPIRED_KEY_NOTE = "Unable to verify cache (+): Expired Debrid API Key."


class TorrentSearchPipeline:
    """Runs one search per Stremio id at a time and returns ranked candidates."""

    def __init__(
        self,
        indexers: IndexerClient,
        torrent_infos: TorrentInfoFetcher,
        app_config: AppConfig,
        locks: Optional[InFlightTable] = None,
    ):
        self.indexers = indexers
        self.torrent_infos = torrent_infos
        self.app_config = app_config
        self.locks = locks if locks is not None else search_locks()

    async def get_torrents(
        self,
        user_config: UserConfig,
        meta: MetaInfo,
        provider: Optional[DebridProvider] = None,
    ) -> List[TorrentCandidate]:
        async with self.locks.hold(meta.stremio_id):
            candidates = await self._search_and_rank(user_config, meta)
            candidates = await self._with_infos(user_config, meta, candidates)
            if provider is not None:
                candidates = await self._annotate(user_config, meta, candidates, provider)
            return candidates

    async def select_indexers(self, user_config: UserConfig, meta: MetaInfo) -> List[IndexerInfo]:
        indexers = list(await self.indexers.get_indexers())
        available = [indexer for indexer in indexers if indexer.supports(meta.type)]
        wanted = set(user_config.indexers)
        selected = [indexer for indexer in available if indexer.id in wanted or "all" in wanted]
        requested = ", ".join(user_config.indexers)

        if selected:
            indexers = selected
        elif available:
            logger.info(f'{meta.stremio_id} : User defined indexers "{requested}" not available, fallback to all "{meta.type}" indexers')
            indexers = available
        elif indexers:
            logger.info(f'{meta.stremio_id} : User defined indexers "{requested}" or "{meta.type}" indexers not available, fallback to all indexers')
            indexers = list(indexers)
        else:
            raise NoIndexerConfiguredError(f"{meta.stremio_id} : No indexer configured")

        logger.info(f"{meta.stremio_id} : {len(indexers)} indexers selected : {', '.join(i.title for i in indexers)}")
        return indexers

    async def _fan_out(self, user_config: UserConfig, meta: MetaInfo, indexers: Sequence[IndexerInfo]) -> List[TorrentCandidate]:
        if meta.type == "movie":
            search = self.indexers.search_movie_torrents
        else:
            search = self.indexers.search_serie_torrents

        async def _one(indexer: IndexerInfo) -> Sequence[TorrentCandidate]:
            try:
                return await asyncio.wait_for(search(meta, indexer.id), timeout=user_config.indexer_timeout_sec)
            except asyncio.TimeoutError:
                logger.warning(f"{meta.stremio_id} : indexer {indexer.id} timed out")
            except Exception as exc:
                logger.warning(f"{meta.stremio_id} : indexer {indexer.id} failed: {exc}")
            return []

        results = await asyncio.gather(*(_one(indexer) for indexer in indexers))
        return [candidate for result in results for candidate in result]

    def _search_filter(self, user_config: UserConfig, meta: MetaInfo) -> Callable[[TorrentCandidate], bool]:
        excluded = {word.lower() for word in user_config.exclude_keywords}

        def _keep(candidate: TorrentCandidate) -> bool:
            if int(candidate.quality) not in user_config.qualities:
                return False
            if excluded.intersection(parse_words(candidate.name.lower())):
                return False
            if meta.type == "series" and meta.season and not matches_season(candidate.name, meta.season):
                return False
            return True

        return _keep

    async def _search_and_rank(self, user_config: UserConfig, meta: MetaInfo) -> List[TorrentCandidate]:
        logger.info(f"{meta.stremio_id} : Searching torrents ...")
        start = time.monotonic()
        indexers = await self.select_indexers(user_config, meta)
        found = await self._fan_out(user_config, meta, indexers)
        logger.info(f"{meta.stremio_id} : {len(found)} torrents found in {time.monotonic() - start:.2f}s")

        keep = self._search_filter(user_config, meta)
        by_language = language_filter(user_config.priotize_languages)
        language_limit = language_priority_limit(user_config.max_torrents)
        candidates = [candidate for candidate in found if keep(candidate)]
        packs: List[TorrentCandidate] = []
        if meta.type == "series":
            packs = [candidate for candidate in candidates if is_season_pack(candidate.name, meta.season)]

        candidates = sort_by(candidates, SEARCH_SORT)
        candidates = priotize_items(candidates, by_language, language_limit)
        if meta.type == "series":
            # Gate before truncation so matching torrents are not cut by noise.
            candidates = [c for c in candidates if passes_episode_gate(c.name, meta.season, meta.episode)]
        candidates = candidates[: user_config.max_torrents + 2]

        if meta.type == "series":
            candidates = self._ensure_packs(user_config, candidates, packs)
        return candidates

    @staticmethod
    def _ensure_packs(
        user_config: UserConfig,
        candidates: List[TorrentCandidate],
        packs: Sequence[TorrentCandidate],
    ) -> List[TorrentCandidate]:
        """Replace the tail with the best season packs when none survived truncation."""
        count = user_config.priotize_pack_torrents
        if count <= 0 or not packs:
            return candidates
        pack_ids = {id(pack) for pack in packs}
        if any(id(candidate) in pack_ids for candidate in candidates):
            return candidates
        best = sort_by(packs, SEARCH_SORT)[:count]
        return candidates[: max(0, len(candidates) - len(best))] + best

    async def _with_infos(self, user_config: UserConfig, meta: MetaInfo, candidates: List[TorrentCandidate]) -> List[TorrentCandidate]:
        logger.info(f"{meta.stremio_id} : {len(candidates)} torrents filtered, get torrents infos ...")
        start = time.monotonic()
        semaphore = asyncio.Semaphore(INFOS_CONCURRENCY)
        timeout = min(INFOS_TIMEOUT_CAP_SECONDS, user_config.indexer_timeout_sec)

        async def _fetch(candidate: TorrentCandidate) -> Optional[TorrentCandidate]:
            async with semaphore:
                try:
                    candidate.infos = await asyncio.wait_for(self.torrent_infos.get_infos(candidate), timeout=timeout)
                except Exception as exc:
                    reason = "timeout" if isinstance(exc, asyncio.TimeoutError) else exc
                    logger.info(f"{meta.stremio_id} ✗ Failed getting torrent infos for {candidate.id} from indexer {candidate.indexer_id}: {reason}")
                    return None
            return candidate

        fetched = await asyncio.gather(*(_fetch(candidate) for candidate in candidates))

        seen: set[str] = set()
        unique: List[TorrentCandidate] = []
        for candidate in fetched:
            if candidate is None or candidate.infos is None:
                continue
            if candidate.hash in seen:
                continue
            seen.add(candidate.hash)
            unique.append(candidate)
        unique = unique[: user_config.max_torrents]

        logger.info(f"{meta.stremio_id} : {len(unique)} torrents infos found in {time.monotonic() - start:.2f}s")
        if not unique:
            raise NoTorrentInfosError(f"No torrent infos for type {meta.type} and id {meta.stremio_id}")
        return unique

    def _files_validator(self, meta: MetaInfo) -> Callable[[Sequence[TorrentFile]], bool]:
        if meta.type == "series":
            return lambda files: search_episode_file(files, meta.season, meta.episode) is not None
        return lambda files: True

    def _passkey_satisfied(self, user_config: UserConfig) -> bool:
        if not self.app_config.passkey_enabled():
            return True
        return bool(user_config.passkey and re.search(self.app_config.replace_passkey_pattern, user_config.passkey))

    async def _annotate(
        self,
        user_config: UserConfig,
        meta: MetaInfo,
        candidates: List[TorrentCandidate],
        provider: DebridProvider,
    ) -> List[TorrentCandidate]:
        try:
            cached = await provider.check_cached(candidates, self._files_validator(meta), sid=meta.stremio_id)
            for candidate in cached:
                candidate.is_cached = True
            cached_ids = {id(candidate) for candidate in cached}
            uncached = [candidate for candidate in candidates if id(candidate) not in cached_ids]

            if meta.type == "series":
                # Torrents without a file listing are checked at download time.
                uncached = [
                    candidate
                    for candidate in uncached
                    if not (candidate.infos and candidate.infos.files)
                    or search_episode_file(candidate.infos.files, meta.season, meta.episode) is not None
                ]

            if not self._passkey_satisfied(user_config):
                for candidate in uncached:
                    if candidate.infos is not None and candidate.infos.private:
                        candidate.disabled = True
                        candidate.info_text = PASSKEY_REQUIRED_NOTE

            logger.info(f"{meta.stremio_id} : {len(cached)} cached, {len(uncached)} uncached on {provider.short_name}")

            by_language = language_filter(user_config.priotize_languages)
            ranked = priotize_items(sort_by(cached, user_config.sort_cached), by_language) + priotize_items(
                sort_by(uncached, user_config.sort_uncached), by_language
            )

            progress = await provider.get_progress(ranked)
            for candidate in ranked:
                candidate.progress = progress.get(candidate.hash)
            return ranked
        except Exception as exc:
            logger.error(f"{meta.stremio_id} : {provider.short_name} : {exc}")
            if isinstance(exc, ExpiredCredentialError):
                for candidate in candidates:
                    candidate.disabled = True
                    candidate.info_text = EXPIRED_KEY_NOTE
            return candidates
