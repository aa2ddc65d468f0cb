"""Resolve a chosen candidate into a playable debrid URL, once per user and title."""

from __future__ import annotations

import re
from typing import List, Optional

from debridflix import logger
from debridflix.config import AppConfig, UserConfig
from debridflix.errors import InvalidPasskeyError, NoDownloadAvailableError
from debridflix.locks import InFlightTable, download_locks
from debridflix.meta import parse_stremio_id
from debridflix.protocols import CacheStore, TorrentInfoFetcher
from debridflix.providers.base import DebridProvider
from debridflix.search.matching import search_episode_file
from debridflix.torrent_files import replace_passkey
from debridflix.types import ContentType, DebridFile, TorrentInfos

DOWNLOAD_TTL_SECONDS = 3600


def download_cache_key(user_hash: str, stremio_id: str, torrent_id: str) -> str:
    return f"download:2:{user_hash}:{stremio_id}:{torrent_id}"


def _is_valid_passkey(passkey: str, pattern: str) -> bool:
    """The whole passkey must match, and it must fit in a latin-1 .torrent buffer."""
    if not re.fullmatch(pattern, passkey):
        return False
    try:
        passkey.encode("latin-1")
    except UnicodeEncodeError:
        return False
    return True


class DownloadResolver:
    def __init__(
        self,
        torrent_infos: TorrentInfoFetcher,
        cache: CacheStore,
        app_config: AppConfig,
        locks: Optional[InFlightTable] = None,
    ):
        self.torrent_infos = torrent_infos
        self.cache = cache
        self.app_config = app_config
        self.locks = locks if locks is not None else download_locks()

    async def get_debrid_files(
        self,
        user_config: UserConfig,
        infos: TorrentInfos,
        provider: DebridProvider,
    ) -> List[DebridFile]:
        """Submit a torrent to the provider and list its files.

        Magnets go as-is. Otherwise the raw .torrent is uploaded, with the tracker
        passkey swapped for the user's when passkey replacement is configured.
        A private torrent and no user passkey falls back to a hash-only submit.
        """
        if infos.magnet_url:
            return await provider.get_files_from_magnet(infos.magnet_url, infos.info_hash)

        buffer = await self.torrent_infos.get_torrent_file(infos)
        if self.app_config.passkey_enabled():
            passkey = user_config.passkey
            if not passkey:
                if infos.private:
                    return await provider.get_files_from_hash(infos.info_hash)
            elif not _is_valid_passkey(passkey, self.app_config.replace_passkey_pattern):
                raise InvalidPasskeyError(
                    f"Invalid user passkey, pattern not match: {self.app_config.replace_passkey_pattern}"
                )
            else:
                buffer = replace_passkey(buffer, self.app_config.replace_passkey, passkey)

        return await provider.get_files_from_buffer(buffer, infos.info_hash)

    async def get_download(
        self,
        user_config: UserConfig,
        content_type: ContentType,
        stremio_id: str,
        torrent_id: str,
        provider: DebridProvider,
    ) -> str:
        key = download_cache_key(provider.get_user_hash(), stremio_id, torrent_id)
        async with self.locks.hold(key):
            download = await self.cache.get(key)
            if download:
                return download

            infos = await self.torrent_infos.get_infos_by_id(torrent_id)
            logger.info(f"{stremio_id} : {provider.short_name} : {infos.info_hash} : get files ...")
            files = await self.get_debrid_files(user_config, infos, provider)
            logger.info(f"{stremio_id} : {provider.short_name} : {infos.info_hash} : {len(files)} files found")
            if not files:
                raise NoDownloadAvailableError(f"No download for type {content_type} and ID {torrent_id}")

            files = sorted(files, key=lambda file: file.size, reverse=True)
            best = files[0]
            if content_type == "series":
                parsed = parse_stremio_id(stremio_id)
                best = search_episode_file(files, parsed.season, parsed.episode) or best

            download = await provider.get_download(best)
            if not download:
                raise NoDownloadAvailableError(f"No download for type {content_type} and ID {torrent_id}")
            await self.cache.set(key, download, ttl=DOWNLOAD_TTL_SECONDS)
            return download
