"""Stremio id parsing and title metadata lookup."""

from __future__ import annotations

from dataclasses import dataclass

from debridflix.errors import UnsupportedTypeError
from debridflix.protocols import MetadataResolver
from debridflix.types import MetaInfo


@dataclass(frozen=True)
class StremioId:
    id: str
    season: int = 0
    episode: int = 0


def _as_number(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def parse_stremio_id(stremio_id: str) -> StremioId:
    """Split ``tt123:2:3`` into the title id, season and episode."""
    parts = stremio_id.split(":")
    season = _as_number(parts[1]) if len(parts) > 1 else 0
    episode = _as_number(parts[2]) if len(parts) > 2 else 0
    return StremioId(id=parts[0], season=season, episode=episode)


async def get_meta_infos(resolver: MetadataResolver, content_type: str, stremio_id: str) -> MetaInfo:
    parsed = parse_stremio_id(stremio_id)
    if content_type == "movie":
        return await resolver.get_movie_meta(parsed.id)
    if content_type == "series":
        return await resolver.get_episode_meta(parsed.id, parsed.season, parsed.episode)
    raise UnsupportedTypeError(f"Unsupported type {content_type}")
