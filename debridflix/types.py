"""Shared data structures for search, provider and download flows."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Literal

ContentType = Literal["movie", "series"]
CONTENT_TYPES: tuple[ContentType, ...] = ("movie", "series")

_QUALITY_PATTERN = re.compile(r"(2160|1080|720|480|360)p", re.IGNORECASE)


class Quality(IntEnum):
    UNKNOWN = 0
    SD_360 = 360
    SD_480 = 480
    HD_720 = 720
    FHD_1080 = 1080
    UHD_2160 = 2160

    @classmethod
    def from_name(cls, name: str) -> "Quality":
        """Detect the resolution tier advertised in a release name."""
        match = _QUALITY_PATTERN.search(name or "")
        if not match:
            return cls.UNKNOWN
        return cls(int(match.group(1)))


@dataclass(frozen=True)
class Language:
    value: str
    emoji: str
    label: str = ""


@dataclass(frozen=True)
class MediaInfo:
    """Technical details derived from a release name."""

    codec: str = ""
    source: str = ""
    audio: str = ""


@dataclass(frozen=True)
class TorrentFile:
    name: str
    size: int


@dataclass
class TorrentInfos:
    """Technical metadata of a torrent once its .torrent has been fetched."""

    info_hash: str
    files: list[TorrentFile] = field(default_factory=list)
    private: bool = False
    magnet_url: str = ""
    torrent_location: str = ""


@dataclass
class Progress:
    percent: float = 0
    speed: int = 0


@dataclass(frozen=True)
class DebridFile:
    """File exposed by a debrid store. ``id`` is opaque to callers."""

    name: str
    size: int
    id: str
    url: str = ""
    ready: bool = True
    status: str = ""


@dataclass(eq=False)
class TorrentCandidate:
    """Single search result. Identity equality: one object per indexer hit."""

    name: str
    indexer_id: str
    id: str
    guid: str
    type: ContentType
    size: int = 0
    seeders: int = 0
    peers: int = 0
    quality: Quality = Quality.UNKNOWN
    languages: list[Language] = field(default_factory=list)
    info_hash: str = ""
    magnet_url: str = ""
    link: str | None = None
    tmdb_id: str | None = None
    source_id: str | None = None
    infos: TorrentInfos | None = None
    # Annotations set while enriching with provider state.
    is_cached: bool = False
    disabled: bool = False
    info_text: str = ""
    progress: Progress | None = None
    status: str | None = None

    def __post_init__(self) -> None:
        self.languages = [lang for lang in self.languages if lang and lang.value]

    @property
    def hash(self) -> str:
        if self.infos is not None and self.infos.info_hash:
            return self.infos.info_hash
        return self.info_hash


@dataclass(frozen=True)
class EpisodeRef:
    season: int
    episode: int


@dataclass(frozen=True)
class MetaInfo:
    """Title metadata resolved once per request."""

    id: str
    stremio_id: str
    type: ContentType
    name: str = ""
    year: int | None = None
    tmdb_id: str | None = None
    season: int = 0
    episode: int = 0
    episodes: tuple[EpisodeRef, ...] = ()

    def next_episode(self) -> EpisodeRef | None:
        for idx, ref in enumerate(self.episodes):
            if ref.season == self.season and ref.episode == self.episode:
                if idx + 1 < len(self.episodes):
                    return self.episodes[idx + 1]
                return None
        return self.episodes[0] if self.episodes else None


@dataclass(frozen=True)
class IndexerInfo:
    id: str
    title: str
    language: str = ""
    type: str = "public"
    movie_available: bool = True
    series_available: bool = True

    def supports(self, content_type: ContentType) -> bool:
        if content_type == "movie":
            return self.movie_available
        return self.series_available


@dataclass(frozen=True)
class StreamDescriptor:
    """Candidate as exposed to the front end. ``url`` is a deferred download route."""

    name: str
    title: str
    url: str

    def as_dict(self) -> dict[str, str]:
        return {"name": self.name, "title": self.title, "url": self.url}
