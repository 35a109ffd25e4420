"""MARIA graphics mode table used for tile-memory addressing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from .errors import ConfigurationError


@dataclass(frozen=True)
class GraphicsMode:
    """Addressing properties of one MARIA graphics mode."""

    name: str
    pixels_per_unit: int
    write_mode: bool

    def tile_bytes(self, cell_width: int) -> int:
        """Return the tile-memory stride of one ``cell_width`` pixel cell."""

        return cell_width // self.pixels_per_unit

    def entries_per_cell(self, cell_width: int) -> int:
        """Return how many index entries one cell contributes to a blob."""

        return self.tile_bytes(cell_width) // entry_step(cell_width)

    @property
    def write_mode_bit(self) -> int:
        return 0x80 if self.write_mode else 0x00


# Cell widths are expressed in 320-resolution pixels, as in the map editor.
MODES: Dict[str, GraphicsMode] = {
    "160A": GraphicsMode("160A", pixels_per_unit=8, write_mode=False),
    "160B": GraphicsMode("160B", pixels_per_unit=4, write_mode=True),
    "320A": GraphicsMode("320A", pixels_per_unit=8, write_mode=False),
    "320B": GraphicsMode("320B", pixels_per_unit=4, write_mode=True),
    "320C": GraphicsMode("320C", pixels_per_unit=4, write_mode=True),
    "320D": GraphicsMode("320D", pixels_per_unit=8, write_mode=False),
}

DEFAULT_MODE = "160A"


def resolve_mode(name: str) -> GraphicsMode:
    """Return the :class:`GraphicsMode` registered under ``name``."""

    mode = MODES.get(name)
    if mode is None:
        known = ", ".join(MODES)
        raise ConfigurationError(f"unknown graphics mode {name!r} (expected one of {known})")
    return mode


def entry_step(cell_width: int) -> int:
    """Return the index increment between entries of a single cell."""

    return 1 if cell_width == 8 else 2


__all__ = ["DEFAULT_MODE", "GraphicsMode", "MODES", "entry_step", "resolve_mode"]
