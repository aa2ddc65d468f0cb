"""Stores reachable only through the StremThru gateway."""

from __future__ import annotations

from typing import List, NoReturn

from debridflix.errors import UnsupportedProviderApiError
from debridflix.providers.base import DebridProvider
from debridflix.types import DebridFile


class GatewayOnlyProvider(DebridProvider):
    """Registered for listing and user hashing; file and link calls need StremThru."""

    def _unsupported(self) -> NoReturn:
        raise UnsupportedProviderApiError(
            f"{self.name} direct API not supported. Please use StremThru integration instead."
        )

    async def get_files_from_magnet(self, magnet: str, info_hash: str) -> List[DebridFile]:
        self._unsupported()

    async def get_files_from_hash(self, info_hash: str) -> List[DebridFile]:
        self._unsupported()

    async def get_files_from_buffer(self, buffer: bytes, info_hash: str) -> List[DebridFile]:
        self._unsupported()

    async def get_download(self, file: DebridFile) -> str:
        self._unsupported()


class TorboxProvider(GatewayOnlyProvider):
    id = "torbox"
    name = "Torbox"
    short_name = "TB"


class PikPakProvider(GatewayOnlyProvider):
    id = "pikpak"
    name = "PikPak"
    short_name = "PP"


class EasyDebridProvider(GatewayOnlyProvider):
    id = "easydebrid"
    name = "EasyDebrid"
    short_name = "ED"


class OffcloudProvider(GatewayOnlyProvider):
    id = "offcloud"
    name = "Offcloud"
    short_name = "OC"


class PremiumizeProvider(GatewayOnlyProvider):
    id = "premiumize"
    name = "Premiumize"
    short_name = "PM"


class DebridLinkProvider(GatewayOnlyProvider):
    id = "debridlink"
    name = "DebridLink"
    short_name = "DL"
