"""Exceptions raised while building a mosaic.

Configuration and alignment errors are fatal: they abort the run before any
output is written. Problems reading a single image patch while rendering a tile
are not errors at all; the compositor just leaves that image out of the tile.
"""
from typing import Optional


class MosaicError(Exception):
    """Base class for mosaic failures."""


class ConfigurationError(MosaicError, ValueError):
    """The inputs or settings can't produce a mosaic (bad layout, no images, ...)."""


class AlignmentError(MosaicError, RuntimeError):
    """Two adjacent images could not be registered to each other."""

    def __init__(self, message: str, pair: Optional[tuple[int, int]] = None):
        if pair is not None:
            message = f"Alignment of images {pair[0]} and {pair[1]} failed: {message}"
        super().__init__(message)
        self.pair = pair
