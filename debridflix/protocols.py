"""Protocol definitions for the collaborators debridflix calls but does not own."""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from debridflix.types import IndexerInfo, MetaInfo, TorrentCandidate, TorrentInfos


class MetadataResolver(Protocol):
    """Title metadata lookup (TMDB or equivalent)."""

    async def get_movie_meta(self, id: str) -> MetaInfo:
        ...

    async def get_episode_meta(self, id: str, season: int, episode: int) -> MetaInfo:
        ...


class IndexerClient(Protocol):
    """Search source queried once per selected indexer."""

    async def get_indexers(self) -> Sequence[IndexerInfo]:
        ...

    async def search_movie_torrents(self, meta: MetaInfo, indexer_id: str) -> Sequence[TorrentCandidate]:
        ...

    async def search_serie_torrents(self, meta: MetaInfo, indexer_id: str) -> Sequence[TorrentCandidate]:
        ...


class TorrentInfoFetcher(Protocol):
    """Retrieves and parses .torrent files for candidates."""

    async def get_infos(self, candidate: TorrentCandidate) -> TorrentInfos:
        ...

    async def get_infos_by_id(self, torrent_id: str) -> TorrentInfos:
        ...

    async def get_torrent_file(self, infos: TorrentInfos) -> bytes:
        ...


class CacheStore(Protocol):
    async def get(self, key: str) -> Any:
        ...

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ...

    async def delete(self, key: str) -> bool:
        ...
