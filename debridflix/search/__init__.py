"""Torrent search: matching rules, release-name parsing and the ranking pipeline."""

from .media_info import extract_media_info, format_media_info
from .pipeline import TorrentSearchPipeline

__all__ = [
    "TorrentSearchPipeline",
    "extract_media_info",
    "format_media_info",
]
