"""
config.py - Process defaults and per-request user configuration for debridflix
"""

from __future__ import annotations

import base64
import binascii
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

try:
    import tomllib
except ModuleNotFoundError:
    import tomli as tomllib

from debridflix.errors import ConfigError
from debridflix.types import Language

DEFAULT_STREMTHRU_URL = "https://stremthru.13377001.xyz"

SortOrder = List[Tuple[str, bool]]


class QualityOption(BaseModel):
    value: int
    label: str


class LanguageOption(BaseModel):
    value: str
    emoji: str
    label: str

    def as_language(self) -> Language:
        return Language(value=self.value, emoji=self.emoji, label=self.label)


class SortOption(BaseModel):
    label: str
    value: SortOrder


class UserConfig(BaseModel):
    """Settings decoded from the caller's token, merged over defaults.

    Field aliases match the camelCase keys used in encoded tokens.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    debrid_id: str = Field(default="realdebrid", alias="debridId")
    debrid_api_key: str = Field(default="", alias="debridApiKey")
    use_stremthru: bool = Field(default=False, alias="useStremThru")
    stremthru_url: str = Field(default="", alias="stremthruUrl")
    stremthru_store: str = Field(default="", alias="stremthruStore")
    qualities: List[int] = Field(default_factory=lambda: [0, 720, 1080])
    exclude_keywords: List[str] = Field(default_factory=list, alias="excludeKeywords")
    max_torrents: int = Field(default=8, alias="maxTorrents")
    sort_cached: SortOrder = Field(
        default_factory=lambda: [("quality", True), ("size", True)],
        alias="sortCached",
    )
    sort_uncached: SortOrder = Field(
        default_factory=lambda: [("seeders", True)],
        alias="sortUncached",
    )
    priotize_pack_torrents: int = Field(default=2, alias="priotizePackTorrents")
    priotize_languages: List[str] = Field(default_factory=list, alias="priotizeLanguages")
    indexers: List[str] = Field(default_factory=lambda: ["all"])
    passkey: str = ""
    indexer_timeout_sec: int = Field(default=60, alias="indexerTimeoutSec")
    force_cache_next_episode: bool = Field(default=False, alias="forceCacheNextEpisode")
    ip: str = ""


_USER_CONFIG_ALIASES: Dict[str, str] = {
    field.alias: name for name, field in UserConfig.model_fields.items() if field.alias
}


def _field_name(key: str) -> str:
    return _USER_CONFIG_ALIASES.get(key, key)


class AppConfig(BaseModel):
    """Process-wide settings, loaded once at start."""

    addon_name: str = "Debridflix"
    yggflix_url: str = "https://yggflix.fr"
    yggflix_passkey: str = ""
    indexer_request_timeout: float = 10.0
    stremthru_url: str = DEFAULT_STREMTHRU_URL
    replace_passkey: str = Field(
        default="",
        description="Token (regex) replaced by the user passkey inside private .torrent files; empty disables it",
    )
    replace_passkey_pattern: str = Field(
        default="[a-zA-Z0-9]+",
        description="Pattern a user passkey must match when passkey replacement is enabled",
    )
    replace_passkey_info_url: str = ""
    immutable_user_config_keys: List[str] = Field(default_factory=list)
    default_user_config: UserConfig = Field(default_factory=UserConfig)
    qualities: List[QualityOption] = Field(
        default_factory=lambda: [
            QualityOption(value=0, label="Unknown"),
            QualityOption(value=360, label="360p"),
            QualityOption(value=480, label="480p"),
            QualityOption(value=720, label="720p"),
            QualityOption(value=1080, label="1080p"),
            QualityOption(value=2160, label="4K"),
        ]
    )
    languages: List[LanguageOption] = Field(
        default_factory=lambda: [
            LanguageOption(value="multi", emoji="🌎", label="Multi"),
            LanguageOption(value="english", emoji="🇬🇧", label="English"),
            LanguageOption(value="french", emoji="🇫🇷", label="French"),
            LanguageOption(value="german", emoji="🇩🇪", label="German"),
            LanguageOption(value="italian", emoji="🇮🇹", label="Italian"),
            LanguageOption(value="spanish", emoji="🇪🇸", label="Spanish"),
        ]
    )
    sorts: List[SortOption] = Field(
        default_factory=lambda: [
            SortOption(label="By quality then seeders", value=[("quality", True), ("seeders", True)]),
            SortOption(label="By quality then size", value=[("quality", True), ("size", True)]),
            SortOption(label="By seeders", value=[("seeders", True)]),
            SortOption(label="By size", value=[("size", True)]),
        ]
    )
    config_path: Optional[Path] = None

    def language(self, value: str) -> Optional[Language]:
        for option in self.languages:
            if option.value == value:
                return option.as_language()
        return None

    def quality_label(self, value: int) -> str:
        for option in self.qualities:
            if option.value == value:
                return option.label
        return ""

    def passkey_enabled(self) -> bool:
        return bool(self.replace_passkey)


def load_config(config_path: Optional[Path]) -> AppConfig:
    """Load configuration from TOML file, or defaults when no path is given."""
    if config_path is None:
        return AppConfig()
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "rb") as f:
            config_data = tomllib.load(f)
        return AppConfig(**config_data, config_path=config_path)
    except (tomllib.TOMLDecodeError, ValidationError) as exc:
        raise ConfigError(f"Error loading configuration {config_path}: {exc}") from exc


def merge_user_config(app_config: AppConfig, raw: Dict[str, Any]) -> UserConfig:
    """Overlay caller settings on defaults; immutable keys always keep the default."""
    immutable = {_field_name(key) for key in app_config.immutable_user_config_keys}
    overrides = {
        _field_name(key): value
        for key, value in raw.items()
        if _field_name(key) not in immutable
    }
    merged = app_config.default_user_config.model_dump()
    merged.update(overrides)
    try:
        return UserConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid user configuration: {exc}") from exc


def decode_user_config(token: str) -> Dict[str, Any]:
    """Decode the base64 JSON token carried in addon URLs."""
    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.replace("+", "-").replace("/", "_"))
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise ConfigError("User configuration token is not valid base64 JSON") from exc
    if not isinstance(data, dict):
        raise ConfigError("User configuration token must encode an object")
    return data


def encode_user_config(user_config: UserConfig) -> str:
    payload = json.dumps(user_config.model_dump(by_alias=True), separators=(",", ":"))
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")
