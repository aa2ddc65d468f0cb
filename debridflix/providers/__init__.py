"""Debrid providers: native stores, gateway-only stores and the StremThru gateway."""

from .alldebrid import AllDebridProvider
from .base import ConfigField, DebridProvider
from .realdebrid import RealDebridProvider
from .registry import (
    GATEWAY_ONLY_PROVIDERS,
    PROVIDERS,
    ProviderRegistry,
    default_registry,
    list_providers,
    resolve_provider,
)
from .stremthru import ProviderStatusCache, StremThruProvider, analyze_error

__all__ = [
    "AllDebridProvider",
    "ConfigField",
    "DebridProvider",
    "RealDebridProvider",
    "GATEWAY_ONLY_PROVIDERS",
    "PROVIDERS",
    "ProviderRegistry",
    "default_registry",
    "list_providers",
    "resolve_provider",
    "ProviderStatusCache",
    "StremThruProvider",
    "analyze_error",
]
