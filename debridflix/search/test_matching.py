from __future__ import annotations

import pytest

from debridflix.search import matching
from debridflix.search.media_info import extract_media_info, format_media_info
from debridflix.types import Language, TorrentCandidate, TorrentFile

FRENCH = Language("french", "🇫🇷")
ENGLISH = Language("english", "🇬🇧")
MULTI = Language("multi", "🌎")


def _candidate(name: str, seeders: int = 0, languages: list[Language] | None = None) -> TorrentCandidate:
    return TorrentCandidate(
        name=name,
        indexer_id="yggflix",
        id=name,
        guid=name,
        type="series",
        seeders=seeders,
        languages=languages or [],
    )


def test_parse_words_and_bytes_to_size() -> None:
    assert matching.parse_words("Show.S01E02_1080p-WEB") == ["Show", "S01E02", "1080p", "WEB"]
    assert matching.bytes_to_size(0) == "0 B"
    assert matching.bytes_to_size(1536) == "1.5 KB"
    assert matching.bytes_to_size(3 * 1024 ** 3) == "3.0 GB"


def test_sort_by_is_stable_across_keys() -> None:
    a = _candidate("a", seeders=10)
    b = _candidate("b", seeders=30)
    c = _candidate("c", seeders=10)
    a.size, b.size, c.size = 5, 1, 9

    assert matching.sort_by([a, b, c], [("seeders", True)]) == [b, a, c]
    assert matching.sort_by([a, b, c], [("seeders", True), ("size", True)]) == [b, c, a]


def test_priotize_items_moves_limited_matches_first() -> None:
    items = [_candidate(str(i), languages=[FRENCH if i % 2 else ENGLISH]) for i in range(6)]
    by_french = matching.language_filter(["french"])

    result = matching.priotize_items(items, by_french, limit=2)

    assert [c.name for c in result] == ["1", "3", "0", "2", "4", "5"]


def test_language_filter_accepts_multi_and_everything_when_empty() -> None:
    multi = _candidate("m", languages=[MULTI])
    english = _candidate("e", languages=[ENGLISH])

    assert matching.language_filter(["french"])(multi)
    assert not matching.language_filter(["french"])(english)
    assert matching.language_filter([])(english)
    assert matching.language_priority_limit(8) == 3
    assert matching.language_priority_limit(1) == 1


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Show.S02E03.mkv", True),
        ("Show.S02.Complete.mkv", True),
        ("Show Season 2 1080p", True),
        ("Show.Integrale.FRENCH", True),
        ("Show.S12E03.mkv", False),
        ("Show.S01E03.mkv", False),
    ],
)
def test_matches_season(name: str, expected: bool) -> None:
    assert matching.matches_season(name, 2) is expected


def test_season_pack_and_episode_gate() -> None:
    assert matching.is_season_pack("Show.S02.MULTi.1080p", 2)
    assert matching.is_season_pack("Show S01 S03 Pack", 2)
    assert matching.is_season_pack("Show Complete Series", 2)
    assert not matching.is_season_pack("Show Complete S04 1080p", 2)

    assert matching.passes_episode_gate("Show.S02E03.mkv", 2, 3)
    assert matching.passes_episode_gate("Show - S02 - 1080p", 2, 3)
    assert not matching.passes_episode_gate("Show.S02E04.mkv", 2, 3)
    assert not matching.passes_episode_gate("Show.S02.Complete.mkv", 3, 1)


@pytest.mark.parametrize(
    "name",
    ["Show.S02E03.1080p.WEB", "Show.S02E03.720p", "Show S02 E03 2160p", "show.s2e3.x264"],
)
def test_episode_gate_keeps_episode_followed_by_resolution(name: str) -> None:
    assert matching.matches_exact_episode(name, 2, 3)
    assert matching.passes_episode_gate(name, 2, 3)


def test_episode_gate_rejects_longer_episode_number() -> None:
    assert not matching.passes_episode_gate("Show.S02E031.1080p", 2, 3)
    assert not matching.passes_episode_gate("Show.S02E13.1080p", 2, 3)


def test_search_episode_file_prefers_reliable_patterns() -> None:
    files = [
        TorrentFile("Show.S02E10.mkv", 10),
        TorrentFile("show 2x03.mkv", 20),
        TorrentFile("Show.S02E03.mkv", 30),
    ]

    assert matching.search_episode_file(files, 2, 3).name == "Show.S02E03.mkv"
    assert matching.search_episode_file(files[:2], 2, 3).name == "show 2x03.mkv"
    assert matching.search_episode_file(files[:1], 2, 3) is None


def test_search_episode_file_episode_only_rejects_other_season() -> None:
    other_season = [TorrentFile("Show S01 E03.mkv", 10)]
    no_season = [TorrentFile("Show - E03 - Title.mkv", 10)]

    assert matching.search_episode_file(other_season, 2, 3) is None
    assert matching.search_episode_file(no_season, 2, 3).name == "Show - E03 - Title.mkv"


def test_format_languages_adds_french_flag_to_multi() -> None:
    assert matching.format_languages([]) == []
    assert matching.format_languages([MULTI, ENGLISH], "Movie.MULTi.1080p") == ["🌎", "🇬🇧"]
    assert matching.format_languages([MULTI], "Movie.MULTi.VFF.1080p") == ["🌎 🇫🇷"]
    assert matching.format_languages([MULTI, FRENCH]) == ["🌎 🇫🇷", "🇫🇷"]


def test_extract_media_info() -> None:
    info = extract_media_info("Movie.2020.2160p.BluRay.REMUX.HEVC.DTS-HD.MA.7.1")

    assert (info.codec, info.source, info.audio) == ("H265", "REMUX", "DTS-HD")
    assert format_media_info(info) == "🎬 H265 📀 REMUX 🔊 DTS-HD"
    assert format_media_info(extract_media_info("Some.Release")) == ""
    assert extract_media_info("Movie.1080p.WEB-DL.DDP5.1.x264").source == "WEB-DL"
