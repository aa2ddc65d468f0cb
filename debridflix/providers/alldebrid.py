"""AllDebrid v4 API provider."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Sequence

import aiohttp

from debridflix import logger
from debridflix.__version__ import __version__
from debridflix.errors import (
    AccessDeniedError,
    DebridError,
    ExpiredCredentialError,
    NotPremiumError,
    NotReadyError,
    TwoFactorRequiredError,
)
from debridflix.providers.base import DebridProvider
from debridflix.resilience import as_int, data_payload, optional_list_of_dicts
from debridflix.types import DebridFile, Progress, TorrentCandidate

BASE_URL = "https://api.alldebrid.com/v4"
AGENT = f"debridflix-{__version__}"
READY_STATUS_CODE = 4

_ERROR_CODES: Dict[str, type[DebridError]] = {
    "AUTH_MISSING_APIKEY": ExpiredCredentialError,
    "AUTH_BAD_APIKEY": ExpiredCredentialError,
    "AUTH_BLOCKED": TwoFactorRequiredError,
    "AUTH_USER_BANNED": AccessDeniedError,
    "MUST_BE_PREMIUM": NotPremiumError,
    "MAGNET_MUST_BE_PREMIUM": NotPremiumError,
    "FREE_TRIAL_LIMIT_REACHED": NotPremiumError,
}


class AllDebridProvider(DebridProvider):
    id = "alldebrid"
    name = "AllDebrid"
    short_name = "AD"
    cache_check_available = False

    def __init__(self, *args: Any, base_url: str = BASE_URL, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.base_url = base_url.rstrip("/")

    async def _request(self, method: str, endpoint: str, *, params: Dict[str, Any] | None = None, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        query = {"agent": AGENT, **(params or {})}
        try:
            _status, payload = await self._request_json(method, url, params=query, headers=headers, **kwargs)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.get_logger().api_failed("AllDebrid", str(exc))
            raise NotReadyError(f"AllDebrid request error: {exc}") from exc

        if not isinstance(payload, dict) or payload.get("status") != "success":
            raise self._error_from_payload(payload)
        return data_payload(payload, f"AllDebrid {endpoint}")

    @staticmethod
    def _error_from_payload(payload: Any) -> DebridError:
        error = payload.get("error") if isinstance(payload, dict) else None
        code = str(error.get("code") or "") if isinstance(error, dict) else ""
        message = str(error.get("message") or code) if isinstance(error, dict) else "unexpected response"
        logger.error(f"AllDebrid error {code}: {message}")
        return _ERROR_CODES.get(code, NotReadyError)(f"AllDebrid: {message}")

    async def get_files_from_magnet(self, magnet: str, info_hash: str) -> List[DebridFile]:
        data = await self._request("POST", "/magnet/upload", data={"magnets[]": magnet})
        return await self._ready_files(self._uploaded_id(data, "magnets"))

    async def get_files_from_buffer(self, buffer: bytes, info_hash: str) -> List[DebridFile]:
        form = aiohttp.FormData()
        form.add_field("files[]", buffer, filename="file.torrent", content_type="application/x-bittorrent")
        data = await self._request("POST", "/magnet/upload/file", data=form)
        return await self._ready_files(self._uploaded_id(data, "files"))

    @staticmethod
    def _uploaded_id(data: Dict[str, Any], key: str) -> str:
        uploaded = optional_list_of_dicts(data, key, "AllDebrid upload")
        if not uploaded or uploaded[0].get("error") or not uploaded[0].get("id"):
            raise NotReadyError("AllDebrid did not accept the torrent")
        return str(uploaded[0]["id"])

    async def _magnet_status(self, magnet_id: str) -> Dict[str, Any]:
        data = await self._request("GET", "/magnet/status", params={"id": magnet_id})
        magnet = data.get("magnets")
        if isinstance(magnet, list):
            magnet = magnet[0] if magnet else None
        if not isinstance(magnet, dict):
            raise NotReadyError("AllDebrid magnet status unavailable")
        return magnet

    async def _ready_files(self, magnet_id: str) -> List[DebridFile]:
        magnet = await self._magnet_status(magnet_id)
        if as_int(magnet.get("statusCode")) != READY_STATUS_CODE:
            logger.info(f"AllDebrid magnet {magnet_id} not ready, status: {magnet.get('status')}")
            raise NotReadyError(f"AllDebrid magnet not ready: {magnet.get('status')}")

        links = optional_list_of_dicts(magnet, "links", "AllDebrid magnet")
        if not links:
            raise NotReadyError("No files found in AllDebrid magnet")
        return [
            DebridFile(
                name=str(link.get("filename") or ""),
                size=as_int(link.get("size")),
                id=f"{magnet_id}:{index}",
                ready=True,
                status=str(magnet.get("status") or ""),
            )
            for index, link in enumerate(links)
        ]

    async def get_download(self, file: DebridFile) -> str:
        magnet_id, _, index = file.id.partition(":")
        magnet = await self._magnet_status(magnet_id)
        links = optional_list_of_dicts(magnet, "links", "AllDebrid magnet")
        position = as_int(index)
        if as_int(magnet.get("statusCode")) != READY_STATUS_CODE or position >= len(links):
            raise NotReadyError("AllDebrid link not available")

        unlocked = await self._request("GET", "/link/unlock", params={"link": links[position].get("link")})
        link = unlocked.get("link")
        if not link:
            raise NotReadyError("AllDebrid did not return a download link")
        return str(link)

    async def get_progress(self, candidates: Sequence[TorrentCandidate]) -> Dict[str, Progress]:
        progress = await super().get_progress(candidates)
        if not progress:
            return progress

        data = await self._request("GET", "/magnet/status")
        for magnet in optional_list_of_dicts(data, "magnets", "AllDebrid magnets"):
            info_hash = str(magnet.get("hash") or "").lower()
            size = as_int(magnet.get("size"))
            for key in progress:
                if key.lower() == info_hash:
                    percent = round(as_int(magnet.get("downloaded")) * 100 / size, 1) if size else 0
                    progress[key] = Progress(percent=percent, speed=as_int(magnet.get("downloadSpeed")))
        return progress
