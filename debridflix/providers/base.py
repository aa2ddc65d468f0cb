"""Debrid provider contract shared by native stores, stubs and the StremThru gateway."""

from __future__ import annotations

import asyncio
import hashlib
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Tuple

import aiohttp

from debridflix import logger
from debridflix.__version__ import __version__
from debridflix.config import UserConfig
from debridflix.torrent_files import magnet_from_hash, torrent_buffer_to_magnet
from debridflix.types import DebridFile, Progress, TorrentCandidate, TorrentFile

DEFAULT_USER_AGENT = f"Debridflix/{__version__}"
DEFAULT_TIMEOUT_SECONDS = 30

FilesValidator = Callable[[Sequence[TorrentFile]], bool]


@dataclass(frozen=True)
class ConfigField:
    """Input shown on the configure page for a provider."""

    name: str
    label: str
    type: str = "text"
    required: bool = True
    value: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "label": self.label,
            "required": self.required,
            "value": self.value,
        }


API_KEY_FIELD = ConfigField(name="debridApiKey", label="API Key")


class DebridProvider(ABC):
    """Store holding or fetching torrents on the user's behalf.

    Providers built without a session create one lazily and close it in
    ``close()``; a session handed in by the registry is left open.
    """

    id: ClassVar[str] = ""
    name: ClassVar[str] = ""
    short_name: ClassVar[str] = ""
    cache_check_available: ClassVar[bool] = False
    config_fields: ClassVar[Tuple[ConfigField, ...]] = (API_KEY_FIELD,)

    def __init__(
        self,
        user_config: UserConfig,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.user_config = user_config
        self.api_key = user_config.debrid_api_key
        self.ip = user_config.ip
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._session_lock = asyncio.Lock()

    @classmethod
    def describe(cls) -> Dict[str, Any]:
        return {
            "id": cls.id,
            "name": cls.name,
            "shortName": cls.short_name,
            "cacheCheckAvailable": cls.cache_check_available,
            "configFields": [field.as_dict() for field in cls.config_fields],
        }

    async def check_cached(
        self,
        candidates: Sequence[TorrentCandidate],
        is_valid_files: FilesValidator,
        *,
        sid: str = "",
    ) -> List[TorrentCandidate]:
        """Return the candidates the store already holds. Unsupported: none."""
        return []

    async def get_progress(self, candidates: Sequence[TorrentCandidate]) -> Dict[str, Progress]:
        return {candidate.hash: Progress() for candidate in candidates}

    async def get_files_from_hash(self, info_hash: str) -> List[DebridFile]:
        return await self.get_files_from_magnet(magnet_from_hash(info_hash), info_hash)

    async def get_files_from_buffer(self, buffer: bytes, info_hash: str) -> List[DebridFile]:
        """Default for stores without .torrent upload: submit the buffer as a magnet."""
        try:
            magnet = torrent_buffer_to_magnet(buffer)
        except ValueError as exc:
            logger.warning(f"{self.name}: could not convert torrent buffer ({exc}), using info hash")
            return await self.get_files_from_hash(info_hash)
        return await self.get_files_from_magnet(magnet, info_hash)

    @abstractmethod
    async def get_files_from_magnet(self, magnet: str, info_hash: str) -> List[DebridFile]:
        ...

    @abstractmethod
    async def get_download(self, file: DebridFile) -> str:
        ...

    def get_user_hash(self) -> str:
        return hashlib.md5(self.api_key.encode("utf-8")).hexdigest()

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> Tuple[int, Any]:
        """Send one request and decode its JSON body; the status is returned, not raised."""
        log = logger.get_logger()
        log.api_request(method, url, params)
        request_start = time.time()
        session = await self._ensure_session()
        async with session.request(method, url, params=params, headers=headers, **kwargs) as response:
            data = await response.json(content_type=None)
            status = response.status
        log.api_response(status, data, (time.time() - request_start) * 1000)
        return status, data

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
                self._owns_session = True
            return self._session

    async def close(self) -> None:
        """Close the session if this provider created it."""
        async with self._session_lock:
            session = self._session
            owned = self._owns_session
            if owned:
                self._session = None
        if owned and session is not None and not session.closed:
            await session.close()

    async def __aenter__(self) -> "DebridProvider":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
