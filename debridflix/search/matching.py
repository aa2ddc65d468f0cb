"""Name matching rules: words, seasons, episodes, languages and ordering."""

from __future__ import annotations

import re
from typing import Callable, Iterable, Optional, Sequence, TypeVar

from debridflix.types import Language, TorrentCandidate

_T = TypeVar("_T")
_WORD_PATTERN = re.compile(r"[^\W_]+")
_COMPLETE_PATTERN = re.compile(r"complete|integr[ae]l", re.IGNORECASE)
_SEASON_RANGE_PATTERN = re.compile(r"s(\d{2,}) s(\d{2,})")
_EXPLICIT_SEASON_PATTERN = re.compile(r" (s\d{2,}|season \d) ")
_ANY_EPISODE_PATTERN = re.compile(r"s0*\d+e\d+", re.IGNORECASE)
_ANY_SEASON_TOKEN = re.compile(r"\bS(\d+)(?!\d)", re.IGNORECASE)
_NAME_SEPARATORS = re.compile(r"[\s.\-_]")

LANGUAGE_PRIORITY_RATIO = 0.33


def parse_words(text: str) -> list[str]:
    return _WORD_PATTERN.findall(text or "")


def number_pad(value: int, width: int = 2) -> str:
    return str(value).zfill(width)


def bytes_to_size(size: float) -> str:
    if not size:
        return "0 B"
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(size) < 1024.0:
            return f"{size:.1f} {unit}" if unit != "B" else f"{int(size)} B"
        size /= 1024.0
    return f"{size:.1f} PB"


def sort_by(items: Iterable[_T], keys: Sequence[tuple[str, bool]]) -> list[_T]:
    """Stable multi-key sort; each key is ``(attribute, descending)``."""
    result = list(items)
    for attribute, descending in reversed(list(keys)):
        result.sort(key=lambda item: getattr(item, attribute, 0) or 0, reverse=descending)
    return result


def priotize_items(
    items: Sequence[_T],
    prioritized: Callable[[_T], bool] | Sequence[_T],
    limit: int = 0,
) -> list[_T]:
    """Move prioritized items (at most ``limit`` when > 0) to the front, keeping order."""
    if callable(prioritized):
        front = [item for item in items if prioritized(item)]
        if limit > 0:
            front = front[:limit]
    else:
        front = list(prioritized)
    if not front:
        return list(items)
    front_ids = {id(item) for item in front}
    return front + [item for item in items if id(item) not in front_ids]


def language_priority_limit(max_torrents: int) -> int:
    return max(1, round(max_torrents * LANGUAGE_PRIORITY_RATIO))


def language_filter(priotize_languages: Sequence[str]) -> Callable[[TorrentCandidate], bool]:
    accepted = {"multi", *priotize_languages}

    def _matches(candidate: TorrentCandidate) -> bool:
        if not priotize_languages:
            return True
        return any(lang.value in accepted for lang in candidate.languages)

    return _matches


def matches_season(name: str, season: int) -> bool:
    """Season number, ``Season N`` text, or a complete/integral marker."""
    season_pattern = re.compile(rf"S0*{season}(?:E\d+)?(?!\d)", re.IGNORECASE)
    season_text_pattern = re.compile(rf"Season\s*0*{season}(?!\d)", re.IGNORECASE)
    return bool(
        season_pattern.search(name)
        or season_text_pattern.search(name)
        or _COMPLETE_PATTERN.search(name)
    )


def _compact(name: str) -> str:
    return _NAME_SEPARATORS.sub("", name).lower()


def matches_exact_episode(name: str, season: int, episode: int) -> bool:
    return bool(re.search(rf"s0*{season}[\s.\-_]*e0*{episode}(?!\d)", name, re.IGNORECASE))


def is_season_pack(name: str, season: int) -> bool:
    words = parse_words(name.lower())
    words_str = " ".join(words)
    if f"season {season}" in words_str or f"s{number_pad(season)}" in words_str:
        return True
    season_range = _SEASON_RANGE_PATTERN.search(words_str)
    if season_range and int(season_range.group(1)) <= season <= int(season_range.group(2)):
        return True
    return "complete" in words and not _EXPLICIT_SEASON_PATTERN.search(words_str)


def passes_episode_gate(name: str, season: int, episode: int) -> bool:
    """Exact episode, or a season token with no episode token after it."""
    if matches_exact_episode(name, season, episode):
        return True
    compact = _compact(name)
    return f"s{number_pad(season)}" in compact and not _ANY_EPISODE_PATTERN.search(compact)


def search_episode_file(files: Sequence[_T], season: int, episode: int) -> Optional[_T]:
    """Find the file of ``season``/``episode`` in a file listing, most reliable pattern first."""
    patterns = (
        re.compile(rf"S0*{season}E0*{episode}(?!\d)", re.IGNORECASE),
        re.compile(rf"\b{season}x0*{episode}(?!\d)", re.IGNORECASE),
        re.compile(rf"Season\s*0*{season}.*Episode\s*0*{episode}(?!\d)", re.IGNORECASE),
    )
    for pattern in patterns:
        for file in files:
            if pattern.search(file.name):
                return file

    episode_only = re.compile(rf"\bE0*{episode}(?!\d)|\bep\.?\s*0*{episode}(?!\d)", re.IGNORECASE)
    for file in files:
        if not episode_only.search(file.name):
            continue
        seasons = {int(value) for value in _ANY_SEASON_TOKEN.findall(file.name)}
        if not seasons or season in seasons:
            return file

    legacy = f"{season}{number_pad(episode)}"
    for file in files:
        if legacy in file.name:
            return file
    return None


def format_languages(languages: Sequence[Language], torrent_name: str = "") -> list[str]:
    """Language flags; ``multi`` gets a French flag when French audio is advertised."""
    if not languages:
        return []
    emojis = [lang.emoji for lang in languages]
    multi_index = next((idx for idx, lang in enumerate(languages) if lang.value == "multi"), None)
    if multi_index is None:
        return emojis

    has_french = any(
        lang.value == "french"
        or any(marker in lang.value.lower() for marker in ("vf", "français", "francais"))
        for lang in languages
    )
    lowered = (torrent_name or "").lower()
    has_french_in_name = ("multi" in lowered or "dual" in lowered) and any(
        marker in lowered for marker in (".vf", "vff", "vfi", "truefrench", "french")
    )
    if has_french or has_french_in_name:
        emojis[multi_index] = f"{languages[multi_index].emoji} 🇫🇷"
    return emojis
