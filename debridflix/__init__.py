"""Torrent search aggregation and debrid link resolution."""

from .__version__ import __version__

__all__ = ["__version__"]
