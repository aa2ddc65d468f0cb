"""Real-Debrid REST API provider."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Sequence

import aiohttp

from debridflix import logger
from debridflix.errors import (
    AccessDeniedError,
    DebridError,
    ExpiredCredentialError,
    NotPremiumError,
    NotReadyError,
    TwoFactorRequiredError,
)
from debridflix.providers.base import DebridProvider
from debridflix.resilience import as_int, expect_dict
from debridflix.types import DebridFile, Progress, TorrentCandidate

BASE_URL = "https://api.real-debrid.com/rest/1.0"

# https://api.real-debrid.com/#api_error_codes
_ERROR_CODES: Dict[int, type[DebridError]] = {
    8: ExpiredCredentialError,
    9: AccessDeniedError,
    10: TwoFactorRequiredError,
    11: TwoFactorRequiredError,
    12: AccessDeniedError,
    13: AccessDeniedError,
    14: AccessDeniedError,
    20: NotPremiumError,
    22: AccessDeniedError,
}


class RealDebridProvider(DebridProvider):
    """Adds torrents to the user's Real-Debrid cloud and unrestricts their links.

    Real-Debrid exposes no instant availability lookup, so nothing is reported
    as cached ahead of the file listing.
    """

    id = "realdebrid"
    name = "Real-Debrid"
    short_name = "RD"
    cache_check_available = False

    def __init__(self, *args: Any, base_url: str = BASE_URL, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.base_url = base_url.rstrip("/")

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{endpoint}"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            status, data = await self._request_json(method, url, headers=headers, **kwargs)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.get_logger().api_failed("Real-Debrid", str(exc))
            raise NotReadyError(f"Real-Debrid request error: {exc}") from exc

        if status >= 400 or (isinstance(data, dict) and "error_code" in data):
            raise self._error_from_response(status, data)
        return data

    @staticmethod
    def _error_from_response(status: int, data: Any) -> DebridError:
        payload = data if isinstance(data, dict) else {}
        code = as_int(payload.get("error_code"))
        message = str(payload.get("error") or f"HTTP {status}")
        error_cls = _ERROR_CODES.get(code)
        if error_cls is None:
            if status == 401:
                error_cls = ExpiredCredentialError
            elif status == 403:
                error_cls = AccessDeniedError
            else:
                error_cls = NotReadyError
        logger.error(f"Real-Debrid error {code or status}: {message}")
        return error_cls(f"Real-Debrid: {message}")

    async def get_files_from_magnet(self, magnet: str, info_hash: str) -> List[DebridFile]:
        added = expect_dict(
            await self._request("POST", "/torrents/addMagnet", data={"magnet": magnet}),
            "Real-Debrid addMagnet",
        )
        return await self._ready_files(str(added.get("id") or ""))

    async def get_files_from_buffer(self, buffer: bytes, info_hash: str) -> List[DebridFile]:
        added = expect_dict(
            await self._request("PUT", "/torrents/addTorrent", data=buffer),
            "Real-Debrid addTorrent",
        )
        return await self._ready_files(str(added.get("id") or ""))

    async def _torrent_info(self, torrent_id: str) -> Dict[str, Any]:
        return expect_dict(await self._request("GET", f"/torrents/info/{torrent_id}"), "Real-Debrid torrent info")

    async def _ready_files(self, torrent_id: str) -> List[DebridFile]:
        if not torrent_id:
            raise NotReadyError("Real-Debrid did not return a torrent id")

        info = await self._torrent_info(torrent_id)
        if info.get("status") == "waiting_files_selection":
            await self._request("POST", f"/torrents/selectFiles/{torrent_id}", data={"files": "all"})
            info = await self._torrent_info(torrent_id)

        status = str(info.get("status") or "")
        if status != "downloaded":
            logger.info(f"Real-Debrid torrent {torrent_id} not ready, status: {status}")
            raise NotReadyError(f"Real-Debrid torrent not ready: {status}")

        files = [
            DebridFile(
                name=str(file.get("path") or "").rsplit("/", 1)[-1],
                size=as_int(file.get("bytes")),
                id=f"{torrent_id}:{file.get('id')}",
                ready=True,
                status=status,
            )
            for file in self._selected_files(info)
        ]
        if not files:
            raise NotReadyError("No files found in Real-Debrid torrent")
        return files

    @staticmethod
    def _selected_files(info: Dict[str, Any]) -> List[Dict[str, Any]]:
        files = info.get("files") or []
        return [expect_dict(file, "Real-Debrid file") for file in files if isinstance(file, dict) and file.get("selected")]

    async def get_download(self, file: DebridFile) -> str:
        torrent_id, _, file_id = file.id.partition(":")
        info = await self._torrent_info(torrent_id)
        if info.get("status") != "downloaded":
            raise NotReadyError(f"Real-Debrid torrent not ready: {info.get('status')}")

        # Links follow the order of the selected files.
        links = info.get("links") or []
        selected_ids = [str(selected.get("id")) for selected in self._selected_files(info)]
        if file_id not in selected_ids or selected_ids.index(file_id) >= len(links):
            raise NotReadyError("Real-Debrid link not available")

        unrestricted = expect_dict(
            await self._request("POST", "/unrestrict/link", data={"link": links[selected_ids.index(file_id)]}),
            "Real-Debrid unrestrict",
        )
        download = unrestricted.get("download")
        if not download:
            raise NotReadyError("Real-Debrid did not return a download link")
        return str(download)

    async def get_progress(self, candidates: Sequence[TorrentCandidate]) -> Dict[str, Progress]:
        progress = await super().get_progress(candidates)
        if not progress:
            return progress

        torrents = await self._request("GET", "/torrents", params={"limit": 100})
        for torrent in torrents or []:
            if not isinstance(torrent, dict):
                continue
            info_hash = str(torrent.get("hash") or "").lower()
            for key in progress:
                if key.lower() == info_hash:
                    progress[key] = Progress(
                        percent=float(torrent.get("progress") or 0),
                        speed=as_int(torrent.get("speed")),
                    )
        return progress

