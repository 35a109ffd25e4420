"""Exception hierarchy shared by the tile map compiler."""

from __future__ import annotations


class TilemapError(Exception):
    """Base class for every failure that aborts a compilation."""


class ConfigurationError(TilemapError, ValueError):
    """Raised when sheet, grid or encoder inputs fail validation."""


class ConsistencyError(TilemapError, AssertionError):
    """Raised when the compiler detects a broken internal invariant."""


__all__ = ["ConfigurationError", "ConsistencyError", "TilemapError"]
