"""Search sources."""

from .yggflix import YggflixIndexer

__all__ = ["YggflixIndexer"]
