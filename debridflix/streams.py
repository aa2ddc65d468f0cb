"""Stream listing and download redirects: the request-level entry points."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Set

from debridflix import logger
from debridflix.config import AppConfig, UserConfig, encode_user_config
from debridflix.downloads import DownloadResolver
from debridflix.errors import DebridError, NotReadyError
from debridflix.logger import redact_url
from debridflix.meta import get_meta_infos, parse_stremio_id
from debridflix.protocols import MetadataResolver
from debridflix.providers.base import DebridProvider
from debridflix.providers.registry import ProviderRegistry
from debridflix.search.matching import bytes_to_size, format_languages, search_episode_file
from debridflix.search.media_info import extract_media_info, format_media_info
from debridflix.search.pipeline import TorrentSearchPipeline
from debridflix.types import ContentType, MetaInfo, Quality, StreamDescriptor, TorrentCandidate

CACHED_ICON = "⚡"
UNCACHED_ICON = "⬇️"
DEFAULT_FALLBACK_VIDEO = "/videos/error.mp4"
CONFIGURE_HINT = "Kindly configure this addon to access streams."

INDEXER_NAMES = {
    "yggflix": "YGG-API",
    "yggtorrent": "YGG-API",
}


def format_indexer_name(indexer_id: str) -> str:
    return INDEXER_NAMES.get(indexer_id.lower(), indexer_id)


def fallback_redirect(error: Optional[BaseException]) -> str:
    """Pre-recorded video explaining why a download could not start."""
    if isinstance(error, DebridError):
        return f"/videos/{error.kind.value}.mp4"
    return DEFAULT_FALLBACK_VIDEO


def placeholder_stream(app_config: AppConfig, message: str = CONFIGURE_HINT) -> Dict[str, str]:
    return StreamDescriptor(name=app_config.addon_name, title=f"ℹ {message}", url="#").as_dict()


class StreamService:
    """Ties provider resolution, search and downloads together per request.

    Next-episode preparation runs as background tasks; ``drain()`` waits for them.
    """

    def __init__(
        self,
        app_config: AppConfig,
        metadata: MetadataResolver,
        pipeline: TorrentSearchPipeline,
        downloads: DownloadResolver,
        registry: Optional[ProviderRegistry] = None,
    ):
        self.app_config = app_config
        self.metadata = metadata
        self.pipeline = pipeline
        self.downloads = downloads
        self.registry = registry if registry is not None else ProviderRegistry(
            default_gateway_url=app_config.stremthru_url
        )
        self._tasks: Set[asyncio.Task[None]] = set()

    async def get_streams(
        self,
        user_config: UserConfig,
        content_type: ContentType,
        stremio_id: str,
        public_url: str,
    ) -> List[Dict[str, str]]:
        provider = self.registry.resolve(user_config)
        try:
            meta = await get_meta_infos(self.metadata, content_type, stremio_id)
            candidates = await self.pipeline.get_torrents(user_config, meta, provider)

            if content_type == "series":
                next_config = user_config.model_copy(update={"force_cache_next_episode": False})
                self._schedule_next_episode(next_config, meta.stremio_id, meta)

            token = encode_user_config(user_config)
            return [
                self.format_stream(candidate, meta, provider.short_name, public_url, token).as_dict()
                for candidate in candidates
            ]
        finally:
            await provider.close()

    async def get_streams_or_placeholder(
        self,
        user_config: UserConfig,
        content_type: ContentType,
        stremio_id: str,
        public_url: str,
    ) -> List[Dict[str, str]]:
        """Boundary form of ``get_streams``: failures become one informational entry."""
        try:
            return await self.get_streams(user_config, content_type, stremio_id, public_url)
        except Exception as exc:
            logger.error(f"{stremio_id} : {exc}")
            return [placeholder_stream(self.app_config, f"No stream available: {exc}")]

    def format_stream(
        self,
        candidate: TorrentCandidate,
        meta: MetaInfo,
        short_name: str,
        public_url: str,
        token: str,
    ) -> StreamDescriptor:
        file = None
        if meta.type == "series" and candidate.infos is not None and candidate.infos.files:
            files = sorted(candidate.infos.files, key=lambda f: f.size, reverse=True)
            file = search_episode_file(files, meta.season, meta.episode)

        rows = [file.name if file is not None else candidate.name]
        if candidate.info_text:
            rows.append(f"ℹ️ {candidate.info_text}")
        rows.append(
            " ".join(
                [
                    f"💾 {bytes_to_size(file.size if file is not None else candidate.size)}",
                    f"👥 {candidate.seeders}",
                    f"⚙️ {format_indexer_name(candidate.indexer_id)}",
                    *format_languages(candidate.languages, candidate.name),
                ]
            )
        )
        media_info = format_media_info(extract_media_info(candidate.name))
        if media_info:
            rows.append(media_info)
        progress = candidate.progress
        if progress is not None and not candidate.is_cached and (progress.percent > 0 or progress.speed > 0):
            rows.append(f"⬇️ {progress.percent}% {bytes_to_size(progress.speed)}/s")

        quality = ""
        if candidate.quality > Quality.UNKNOWN:
            quality = f"({self.app_config.quality_label(int(candidate.quality))})"
        icon = CACHED_ICON if candidate.is_cached else UNCACHED_ICON

        if candidate.disabled:
            url = "#"
        else:
            url = f"{public_url}/{token}/download/{meta.type}/{meta.stremio_id}/{candidate.id}"
        return StreamDescriptor(
            name=f"[{short_name}{icon}] {quality}".rstrip(),
            title="\n".join(rows),
            url=url,
        )

    async def prepare_next_episode(
        self,
        user_config: UserConfig,
        meta: MetaInfo,
        provider: DebridProvider,
    ) -> None:
        """Warm the search (and optionally the debrid cache) for the following episode."""
        try:
            upcoming = meta.next_episode()
            if upcoming is None:
                return
            next_meta = await self.metadata.get_episode_meta(meta.id, upcoming.season, upcoming.episode)
            candidates = await self.pipeline.get_torrents(user_config, next_meta, provider)

            if user_config.force_cache_next_episode and candidates and not any(c.is_cached for c in candidates):
                logger.info(f"{meta.stremio_id} : Force cache next episode ({next_meta.episode}) on debrid")
                best = next((c for c in candidates if not c.disabled), None)
                if best is not None and best.infos is not None:
                    await self.downloads.get_debrid_files(user_config, best.infos, provider)
        except NotReadyError:
            pass
        except Exception as exc:
            logger.warning(f"{meta.stremio_id} : cache next episode: {exc}")

    async def get_download(
        self,
        user_config: UserConfig,
        content_type: ContentType,
        stremio_id: str,
        torrent_id: str,
    ) -> str:
        provider = self.registry.resolve(user_config)
        if content_type == "series" and user_config.force_cache_next_episode:
            self._schedule_next_episode(user_config, stremio_id)
        try:
            url = await self.downloads.get_download(user_config, content_type, stremio_id, torrent_id, provider)
        finally:
            await provider.close()
        logger.info(f"{stremio_id} : Redirect: {redact_url(url)}")
        return url

    async def download_redirect(
        self,
        user_config: UserConfig,
        content_type: ContentType,
        stremio_id: str,
        torrent_id: str,
    ) -> str:
        """URL to redirect the player to: the debrid link, or a fallback video."""
        try:
            return await self.get_download(user_config, content_type, stremio_id, torrent_id)
        except Exception as exc:
            logger.error(f"{parse_stremio_id(stremio_id).id} : {exc}")
            return fallback_redirect(exc)

    def _schedule_next_episode(self, user_config: UserConfig, stremio_id: str, meta: Optional[MetaInfo] = None) -> None:
        """Run next-episode preparation in the background with its own provider."""

        async def _run() -> None:
            provider = self.registry.resolve(user_config)
            try:
                current = meta
                if current is None:
                    try:
                        current = await get_meta_infos(self.metadata, "series", stremio_id)
                    except Exception as exc:
                        logger.warning(f"{stremio_id} : cache next episode: {exc}")
                        return
                await self.prepare_next_episode(user_config, current, provider)
            finally:
                await provider.close()

        task = asyncio.get_running_loop().create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for scheduled background work."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
