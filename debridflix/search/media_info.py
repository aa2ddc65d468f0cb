"""Codec, source and audio detection from release names."""

from __future__ import annotations

import re
from functools import lru_cache

from debridflix.types import MediaInfo

_CODECS = (
    ("H265", re.compile(r"hevc|x265|h\.?265", re.IGNORECASE)),
    ("H264", re.compile(r"avc|x264|h\.?264", re.IGNORECASE)),
    ("AV1", re.compile(r"av1", re.IGNORECASE)),
)

_SOURCES = (
    ("REMUX", re.compile(r"remux", re.IGNORECASE)),
    ("BLURAY", re.compile(r"bluray|bdrip", re.IGNORECASE)),
    ("WEB-DL", re.compile(r"web[ \-._]?dl", re.IGNORECASE)),
    ("WEBRIP", re.compile(r"webrip", re.IGNORECASE)),
    ("WEB", re.compile(r"\bweb\b", re.IGNORECASE)),
    ("HDTV", re.compile(r"hdtv", re.IGNORECASE)),
    ("DVDRIP", re.compile(r"dvdrip", re.IGNORECASE)),
)

# Order matters: the specific variants must win over their prefixes.
_AUDIO = (
    ("DTS-HD", re.compile(r"dts[ \-._]?hd", re.IGNORECASE)),
    ("DTS:X", re.compile(r"dts[ \-._]?x", re.IGNORECASE)),
    ("ATMOS", re.compile(r"atmos", re.IGNORECASE)),
    ("TRUEHD", re.compile(r"truehd", re.IGNORECASE)),
    ("DD+", re.compile(r"dd\+|e[-_]?ac[-_]?3", re.IGNORECASE)),
    ("DD", re.compile(r"\bdd(?=\d|\b)", re.IGNORECASE)),
    ("DTS", re.compile(r"\bdts", re.IGNORECASE)),
    ("AAC", re.compile(r"\baac", re.IGNORECASE)),
)


def _first_match(name: str, patterns: tuple[tuple[str, re.Pattern[str]], ...]) -> str:
    for label, pattern in patterns:
        if pattern.search(name):
            return label
    return ""


@lru_cache(maxsize=4096)
def extract_media_info(name: str) -> MediaInfo:
    return MediaInfo(
        codec=_first_match(name, _CODECS),
        source=_first_match(name, _SOURCES),
        audio=_first_match(name, _AUDIO),
    )


def format_media_info(info: MediaInfo) -> str:
    parts: list[str] = []
    if info.codec:
        parts.append(f"🎬 {info.codec}")
    if info.source:
        parts.append(f"📀 {info.source}")
    if info.audio:
        parts.append(f"🔊 {info.audio}")
    return " ".join(parts)
