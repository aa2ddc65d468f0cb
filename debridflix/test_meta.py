from __future__ import annotations

import pytest

from debridflix import meta
from debridflix.errors import UnsupportedTypeError
from debridflix.types import EpisodeRef, MetaInfo


class _FakeResolver:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    async def get_movie_meta(self, id: str) -> MetaInfo:
        self.calls.append(("movie", id))
        return MetaInfo(id=id, stremio_id=id, type="movie")

    async def get_episode_meta(self, id: str, season: int, episode: int) -> MetaInfo:
        self.calls.append(("series", id, season, episode))
        return MetaInfo(id=id, stremio_id=f"{id}:{season}:{episode}", type="series", season=season, episode=episode)


@pytest.mark.parametrize(
    "stremio_id, expected",
    [
        ("tt0111161", meta.StremioId("tt0111161")),
        ("tt0903747:2:3", meta.StremioId("tt0903747", 2, 3)),
        ("tt0903747:x:3", meta.StremioId("tt0903747", 0, 3)),
    ],
)
def test_parse_stremio_id(stremio_id: str, expected: meta.StremioId) -> None:
    assert meta.parse_stremio_id(stremio_id) == expected


@pytest.mark.asyncio
async def test_get_meta_infos_dispatches_on_type() -> None:
    resolver = _FakeResolver()

    movie = await meta.get_meta_infos(resolver, "movie", "tt0111161")
    episode = await meta.get_meta_infos(resolver, "series", "tt0903747:2:3")

    assert movie.type == "movie"
    assert episode.stremio_id == "tt0903747:2:3"
    assert resolver.calls == [("movie", "tt0111161"), ("series", "tt0903747", 2, 3)]


@pytest.mark.asyncio
async def test_get_meta_infos_rejects_unknown_type() -> None:
    with pytest.raises(UnsupportedTypeError, match="Unsupported type channel"):
        await meta.get_meta_infos(_FakeResolver(), "channel", "tt1")


def test_next_episode() -> None:
    episodes = (EpisodeRef(1, 1), EpisodeRef(1, 2), EpisodeRef(2, 1))
    current = MetaInfo(id="tt1", stremio_id="tt1:1:2", type="series", season=1, episode=2, episodes=episodes)
    last = MetaInfo(id="tt1", stremio_id="tt1:2:1", type="series", season=2, episode=1, episodes=episodes)

    assert current.next_episode() == EpisodeRef(2, 1)
    assert last.next_episode() is None
