"""StremThru gateway: one HTTP API in front of many debrid stores."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

import aiohttp

from debridflix import logger
from debridflix.config import DEFAULT_STREMTHRU_URL, UserConfig
from debridflix.errors import (
    DebridError,
    DebridflixError,
    ErrorKind,
    NotReadyError,
    error_for_kind,
)
from debridflix.providers.base import (
    API_KEY_FIELD,
    ConfigField,
    DebridProvider,
    FilesValidator,
)
from debridflix.resilience import as_int, data_payload, optional_list_of_dicts
from debridflix.torrent_files import info_hash_from_magnet, magnet_from_hash
from debridflix.types import DebridFile, TorrentCandidate, TorrentFile

STATUS_TTL_SECONDS = 5 * 60
CHECK_BATCH_SIZE = 50
READY_STATUSES = frozenset({"downloaded", "cached"})

STORE_SHORT_NAMES = {
    "realdebrid": "RD",
    "alldebrid": "AD",
    "debridlink": "DL",
    "premiumize": "PM",
    "pikpak": "PP",
    "easydebrid": "ED",
    "offcloud": "OC",
    "torbox": "TB",
}

STATUS_ICONS = {
    "cached": "⚡",
    "queued": "⏳",
    "downloading": "⏬",
    "processing": "⚙️",
    "downloaded": "✅",
    "uploading": "⏫",
    "failed": "❌",
    "invalid": "⛔",
    "unknown": "❓",
}

_TWO_FACTOR_MARKERS = ("new location", "new device", "email has been sent")
_EXPIRED_MARKERS = ("expired", "invalid token")


class ProviderStatusCache:
    """Last known gateway status per info hash, valid for five minutes."""

    def __init__(
        self,
        ttl: float = STATUS_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, tuple[str, float]] = {}

    def set(self, info_hash: str, status: str) -> None:
        if info_hash:
            self._entries[info_hash.lower()] = (status, self._clock())

    def get(self, info_hash: str) -> Optional[str]:
        entry = self._entries.get((info_hash or "").lower())
        if entry is None:
            return None
        status, stored_at = entry
        if self._clock() - stored_at >= self.ttl:
            return None
        return status

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class StremThruApiError(DebridflixError):
    """Error object returned in a StremThru response body."""

    def __init__(self, error: Any):
        self.error = error
        if isinstance(error, dict):
            self.code = str(error.get("code") or "")
            self.api_message = str(error.get("message") or "")
        else:
            self.code = ""
            self.api_message = str(error)
        super().__init__(f"StremThru API error: {json.dumps(error, default=str)}")


class StremThruRequestError(DebridflixError):
    """Transport or decoding failure talking to StremThru."""


def analyze_error(exc: BaseException | None) -> ErrorKind:
    """Classify a gateway failure. Structured codes win over message text."""
    if exc is None:
        return ErrorKind.NOT_READY
    if isinstance(exc, DebridError):
        return exc.kind

    if isinstance(exc, StremThruApiError):
        code = exc.code.upper()
        api_message = exc.api_message.lower()
        if code == "FORBIDDEN":
            if any(marker in api_message for marker in _TWO_FACTOR_MARKERS):
                return ErrorKind.TWO_FACTOR_AUTH
            if any(marker in api_message for marker in _EXPIRED_MARKERS):
                return ErrorKind.EXPIRED_API_KEY
            return ErrorKind.ACCESS_DENIED
        if code == "PAYMENT_REQUIRED" or "premium" in api_message:
            return ErrorKind.NOT_PREMIUM
        if code in {"UNAUTHORIZED", "INVALID_CREDENTIALS"} or "invalid key" in api_message:
            return ErrorKind.ACCESS_DENIED

    message = str(exc).lower()
    if "premium" in message or "subscription" in message:
        return ErrorKind.NOT_PREMIUM
    if any(marker in message for marker in _EXPIRED_MARKERS):
        return ErrorKind.EXPIRED_API_KEY
    if any(marker in message for marker in ("email has been sent", "verification", "two factor", "2fa")):
        return ErrorKind.TWO_FACTOR_AUTH
    if any(marker in message for marker in ("invalid key", "unauthorized", "access denied")):
        return ErrorKind.ACCESS_DENIED
    return ErrorKind.NOT_READY


def status_icon(status: Optional[str]) -> str:
    return STATUS_ICONS.get(status or "", "❓")


def _batches(items: Sequence[str], size: int = CHECK_BATCH_SIZE) -> Iterator[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _basename(path: str) -> str:
    return str(path or "").rsplit("/", 1)[-1]


class StremThruProvider(DebridProvider):
    """Debrid access through a StremThru instance; the backing store is user-selected."""

    id = "stremthru"
    name = "StremThru"
    short_name = "ST"
    cache_check_available = True
    config_fields = (
        ConfigField(name="stremthruUrl", label="StremThru URL", value=DEFAULT_STREMTHRU_URL),
        ConfigField(name="stremthruStore", label="StremThru Store", value="realdebrid"),
        API_KEY_FIELD,
    )

    def __init__(
        self,
        user_config: UserConfig,
        session: Optional[aiohttp.ClientSession] = None,
        status_cache: Optional[ProviderStatusCache] = None,
        **kwargs: Any,
    ):
        super().__init__(user_config, session=session, **kwargs)
        self.store = user_config.stremthru_store or "realdebrid"
        self.base_url = (user_config.stremthru_url or DEFAULT_STREMTHRU_URL).rstrip("/")
        self.status_cache = status_cache if status_cache is not None else ProviderStatusCache()
        self.short_name = STORE_SHORT_NAMES.get(self.store, "ST")

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "X-StremThru-Store-Name": self.store,
            "X-StremThru-Store-Authorization": f"Bearer {self.api_key}",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Single attempt; failures are raised, never retried."""
        url = f"{self.base_url}/v0/store{path}"
        try:
            status, payload = await self._request_json(method, url, headers=self._headers(), **kwargs)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.get_logger().api_failed("StremThru", str(exc))
            raise StremThruRequestError(f"StremThru request error: {exc}") from exc

        if isinstance(payload, dict) and payload.get("error"):
            raise StremThruApiError(payload["error"])
        if status >= 400:
            raise StremThruRequestError(f"StremThru request error: HTTP {status}")
        return payload

    def _classified(self, exc: BaseException, action: str) -> DebridError:
        logger.error(f"StremThru {action} failed: {exc}")
        return error_for_kind(analyze_error(exc), str(exc))

    async def _check_batch(self, batch: Sequence[str], sid: str) -> List[Dict[str, Any]]:
        params = {
            "magnet": ",".join(magnet_from_hash(info_hash) for info_hash in batch),
            "client_ip": self.ip,
            "sid": sid,
        }
        payload = await self._request("GET", "/magnets/check", params=params)
        data = data_payload(payload, "StremThru magnet check")
        return optional_list_of_dicts(data, "items", "StremThru magnet check")

    async def _check_statuses(self, hashes: Sequence[str], sid: str, action: str) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        for batch in _batches(hashes):
            try:
                batch_items = await self._check_batch(batch, sid)
            except (StremThruApiError, StremThruRequestError, ValueError) as exc:
                logger.error(f"Error {action}: {exc}")
                continue
            for item in batch_items:
                info_hash = str(item.get("hash") or "").lower()
                status = str(item.get("status") or "unknown")
                self.status_cache.set(info_hash, status)
                items.append({**item, "hash": info_hash, "status": status})
        return items

    @staticmethod
    def _unique_hashes(candidates: Sequence[TorrentCandidate]) -> List[str]:
        seen: Dict[str, None] = {}
        for candidate in candidates:
            if candidate.hash:
                seen.setdefault(candidate.hash.lower(), None)
        return list(seen)

    async def check_cached(
        self,
        candidates: Sequence[TorrentCandidate],
        is_valid_files: FilesValidator,
        *,
        sid: str = "",
    ) -> List[TorrentCandidate]:
        hashes = self._unique_hashes(candidates)
        if not hashes:
            return []

        by_hash: Dict[str, List[TorrentCandidate]] = {}
        for candidate in candidates:
            if candidate.hash:
                by_hash.setdefault(candidate.hash.lower(), []).append(candidate)

        cached: List[TorrentCandidate] = []
        for item in await self._check_statuses(hashes, sid, "checking cache status"):
            status = item["status"]
            for candidate in by_hash.get(item["hash"], []):
                candidate.status = status
                if status not in READY_STATUSES:
                    continue
                files = [
                    TorrentFile(name=_basename(file.get("name", "")), size=as_int(file.get("size")))
                    for file in optional_list_of_dicts(item, "files", "StremThru magnet check item")
                ]
                if files and is_valid_files(files):
                    cached.append(candidate)
        return cached

    async def check_torrents_status(
        self,
        candidates: Sequence[TorrentCandidate],
        *,
        sid: str = "",
    ) -> Dict[str, str]:
        hashes = self._unique_hashes(candidates)
        if not hashes:
            return {}
        return {
            item["hash"]: item["status"]
            for item in await self._check_statuses(hashes, sid, "checking torrent status")
        }

    async def add_torrent(self, magnet: str) -> Dict[str, Any]:
        try:
            payload = await self._request(
                "POST",
                "/torrents/add",
                json={"magnet": magnet, "client_ip": self.ip},
            )
            data = data_payload(payload, "StremThru add torrent")
        except (StremThruApiError, StremThruRequestError, ValueError) as exc:
            raise self._classified(exc, "add torrent") from exc
        if not data.get("id"):
            raise NotReadyError("Failed to add torrent")
        self.status_cache.set(info_hash_from_magnet(magnet), "queued")
        return data

    def cached_status(self, info_hash: str) -> Optional[str]:
        return self.status_cache.get(info_hash)

    @staticmethod
    def status_icon(status: Optional[str]) -> str:
        return status_icon(status)

    async def get_files_from_magnet(self, magnet: str, info_hash: str) -> List[DebridFile]:
        return await self._add_and_list("magnet", json={"magnet": magnet})

    async def get_files_from_buffer(self, buffer: bytes, info_hash: str) -> List[DebridFile]:
        form = aiohttp.FormData()
        form.add_field("torrent", buffer, filename="file.torrent", content_type="application/x-bittorrent")
        return await self._add_and_list("torrent file", data=form)

    async def _add_and_list(self, label: str, **body: Any) -> List[DebridFile]:
        try:
            added = data_payload(await self._request("POST", "/magnets", **body), f"StremThru add {label}")
            magnet_id = added.get("id")
            if not magnet_id:
                logger.error(f"Failed to add {label}")
                raise NotReadyError(f"Failed to add {label}")

            status, files = await self._magnet_files(str(magnet_id))
            if status not in READY_STATUSES:
                logger.info(f"StremThru {label} not ready, status: {status}")
                raise NotReadyError(f"{label} not ready: {status}")
            if not files:
                raise NotReadyError(f"No files found in {label}")
        except DebridError:
            raise
        except (StremThruApiError, StremThruRequestError, ValueError) as exc:
            raise self._classified(exc, f"add {label}") from exc

        return [
            DebridFile(
                name=_basename(file.get("name", "")),
                size=as_int(file.get("size")),
                id=f"{magnet_id}:{file.get('index')}",
                ready=True,
                status=status,
            )
            for file in files
        ]

    async def _magnet_files(self, magnet_id: str) -> tuple[str, List[Dict[str, Any]]]:
        data = data_payload(await self._request("GET", f"/magnets/{magnet_id}"), "StremThru magnet")
        if not data:
            raise NotReadyError("Failed to get magnet info")
        status = str(data.get("status") or "unknown")
        return status, optional_list_of_dicts(data, "files", "StremThru magnet")

    async def get_download(self, file: DebridFile) -> str:
        magnet_id, _, file_index = file.id.partition(":")
        try:
            status, files = await self._magnet_files(magnet_id)
            if status not in READY_STATUSES:
                logger.info(f"StremThru file not ready, status: {status}")
                raise NotReadyError(f"File not ready: {status}")

            target = next((f for f in files if str(f.get("index")) == file_index), None)
            if target is None or not target.get("link"):
                raise NotReadyError("File not found or link not available")

            generated = data_payload(
                await self._request("POST", "/link/generate", json={"link": target["link"]}),
                "StremThru link",
            )
            link = generated.get("link")
            if not link:
                raise NotReadyError("Failed to generate download link")
            return str(link)
        except DebridError:
            raise
        except (StremThruApiError, StremThruRequestError, ValueError) as exc:
            raise self._classified(exc, "download link") from exc
