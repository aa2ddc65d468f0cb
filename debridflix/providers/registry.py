"""Provider lookup by id, with StremThru substitution for gateway-only stores."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type

import aiohttp

from debridflix.config import DEFAULT_STREMTHRU_URL, UserConfig
from debridflix.errors import UnknownProviderError
from debridflix.providers.alldebrid import AllDebridProvider
from debridflix.providers.base import DebridProvider
from debridflix.providers.realdebrid import RealDebridProvider
from debridflix.providers.stremthru import ProviderStatusCache, StremThruProvider
from debridflix.providers.stubs import (
    DebridLinkProvider,
    EasyDebridProvider,
    OffcloudProvider,
    PikPakProvider,
    PremiumizeProvider,
    TorboxProvider,
)

PROVIDERS: Dict[str, Type[DebridProvider]] = {
    cls.id: cls
    for cls in (
        DebridLinkProvider,
        AllDebridProvider,
        RealDebridProvider,
        PremiumizeProvider,
        StremThruProvider,
        PikPakProvider,
        EasyDebridProvider,
        OffcloudProvider,
        TorboxProvider,
    )
}

GATEWAY_ONLY_PROVIDERS = frozenset(
    {"pikpak", "torbox", "easydebrid", "offcloud", "premiumize", "debridlink"}
)


class ProviderRegistry:
    """Builds one provider per request; the HTTP session and status cache are shared."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        status_cache: Optional[ProviderStatusCache] = None,
        default_gateway_url: str = DEFAULT_STREMTHRU_URL,
    ):
        self.session = session
        self.status_cache = status_cache if status_cache is not None else ProviderStatusCache()
        self.default_gateway_url = default_gateway_url

    def resolve(self, user_config: UserConfig) -> DebridProvider:
        provider_id = user_config.debrid_id
        provider_cls = PROVIDERS.get(provider_id)
        if provider_cls is None:
            raise UnknownProviderError(f'Debrid service "{provider_id}" does not exist')

        if provider_cls is StremThruProvider:
            return self._gateway(user_config)
        if user_config.use_stremthru or provider_id in GATEWAY_ONLY_PROVIDERS:
            gateway_config = user_config.model_copy(
                update={
                    "debrid_id": StremThruProvider.id,
                    "stremthru_store": provider_id,
                    "stremthru_url": user_config.stremthru_url or self.default_gateway_url,
                }
            )
            return self._gateway(gateway_config)
        return provider_cls(user_config, session=self.session)

    def _gateway(self, user_config: UserConfig) -> StremThruProvider:
        if not user_config.stremthru_url:
            user_config = user_config.model_copy(update={"stremthru_url": self.default_gateway_url})
        return StremThruProvider(user_config, session=self.session, status_cache=self.status_cache)

    def list_providers(self) -> List[Dict[str, Any]]:
        return [provider_cls.describe() for provider_cls in PROVIDERS.values()]


_default_registry: ProviderRegistry | None = None


def default_registry() -> ProviderRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = ProviderRegistry()
    return _default_registry


def resolve_provider(user_config: UserConfig) -> DebridProvider:
    return default_registry().resolve(user_config)


def list_providers() -> List[Dict[str, Any]]:
    return default_registry().list_providers()
