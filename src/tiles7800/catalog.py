"""Resolve tile-sheet definitions into tile-memory addressed cells."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import ConfigurationError
from .modes import DEFAULT_MODE, GraphicsMode, entry_step, resolve_mode

if TYPE_CHECKING:
    from .sequences import SequenceDefinition

LOGGER = logging.getLogger(__name__)


class Mirror(Enum):
    """Mirroring policies accepted on sheets and tile definitions."""

    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"
    BOTH = "both"

    @classmethod
    def parse(cls, raw: object) -> "Mirror | None":
        if raw is None:
            return None
        if isinstance(raw, Mirror):
            return raw
        text = str(raw).strip().lower()
        for member in cls:
            if member.value == text:
                return member
        raise ConfigurationError(f"unknown mirror policy {raw!r}")


@dataclass(frozen=True)
class TileDefinition:
    """Named placement of one or more cells in the tile atlas."""

    name: str
    top: int
    left: int
    width: int
    height: int = 16
    mode: str | None = None
    palette: int = 0
    alias: str | None = None
    mirror: Mirror | None = None
    background: str | None = None
    fake: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "mirror", Mirror.parse(self.mirror))


@dataclass(frozen=True)
class TileSheet:
    """Atlas description consumed by :class:`TileCatalog`."""

    tiles: Tuple[TileDefinition, ...]
    image_width: int
    image_height: int
    cell_width: int = 8
    cell_height: int = 8
    mode: str = DEFAULT_MODE
    mirror: Mirror | None = None
    bank: int | None = None
    sequences: Tuple["SequenceDefinition", ...] = ()
    image: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "tiles", tuple(self.tiles))
        object.__setattr__(self, "sequences", tuple(self.sequences))
        object.__setattr__(self, "mirror", Mirror.parse(self.mirror))
        if self.cell_width <= 0 or self.cell_width % 8:
            raise ConfigurationError(
                f"cell width must be a positive multiple of 8, got {self.cell_width}"
            )
        if self.cell_height <= 0:
            raise ConfigurationError(f"cell height must be positive, got {self.cell_height}")
        resolve_mode(self.mode)

    @property
    def columns(self) -> int:
        return self.image_width // self.cell_width

    @property
    def rows(self) -> int:
        return self.image_height // self.cell_height


@dataclass(frozen=True)
class EncodedTile:
    """One resolved grid cell: tile-memory index plus drawing attributes."""

    handle: int
    name: str
    index: int
    mode: GraphicsMode
    palette: int
    tile_bytes: int
    entries: Tuple[int, ...]
    fake: bool = False
    background: int | None = None
    gfx: bytes | None = None
    mirrored: bool = False

    @property
    def compat_key(self) -> Tuple[str, int, bool]:
        """Attributes that must match for two tiles to share a run."""

        return (self.mode.name, self.palette, self.fake)

    def gfx_line(self, line: int) -> bytes:
        if self.gfx is None:
            raise ConfigurationError(f"tile {self.name!r} has no pixel bytes")
        return self.gfx[line * self.tile_bytes : (line + 1) * self.tile_bytes]


@dataclass
class _Placement:
    base_index: int
    cells_x: int
    handles: List[int] = field(default_factory=list)


class TileCatalog:
    """Flat arena of :class:`EncodedTile` records addressed by grid value."""

    def __init__(self, sheet: TileSheet) -> None:
        self._sheet = sheet
        self._tiles: List[EncodedTile] = []
        self._positions: Dict[int, int] = {}
        self._placements: Dict[str, _Placement] = {}
        self._mirrors: Dict[int, int] = {}

    @classmethod
    def build(
        cls,
        sheet: TileSheet,
        graphics: Mapping[str, bytes] | None = None,
    ) -> "TileCatalog":
        """Resolve every definition of ``sheet`` in declaration order."""

        catalog = cls(sheet)
        catalog._populate(graphics or {})
        LOGGER.debug(
            "catalog resolved %d definitions into %d placements",
            len(sheet.tiles),
            len(catalog._positions),
        )
        return catalog

    @property
    def sheet(self) -> TileSheet:
        return self._sheet

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._positions))

    def tile(self, handle: int) -> EncodedTile:
        return self._tiles[handle]

    def lookup(self, value: int) -> EncodedTile | None:
        """Return the tile placed at grid ``value`` or ``None``."""

        handle = self._positions.get(value)
        return None if handle is None else self._tiles[handle]

    def resolve(self, value: int) -> Tuple[EncodedTile, ...]:
        """Return ``()``, ``(tile,)`` or ``(background, tile)`` for ``value``."""

        if value == 0:
            return ()
        tile = self.lookup(value)
        if tile is None:
            return ()
        if tile.background is None:
            return (tile,)
        return (self._tiles[tile.background], tile)

    def cells_of(self, name: str) -> Tuple[EncodedTile, ...]:
        """Return the cells of definition ``name`` in row-major order."""

        placement = self._placements.get(name)
        if placement is None:
            raise ConfigurationError(f"unknown tile reference {name!r}")
        return tuple(self._tiles[handle] for handle in placement.handles)

    def _populate(self, graphics: Mapping[str, bytes]) -> None:
        sheet = self._sheet
        cell_width, cell_height = sheet.cell_width, sheet.cell_height
        next_index = 0
        for definition in sheet.tiles:
            mode = resolve_mode(definition.mode or sheet.mode)
            tile_bytes = mode.tile_bytes(cell_width)
            cells_x = definition.width // cell_width
            cells_y = definition.height // cell_height
            if cells_x <= 0 or cells_y <= 0:
                raise ConfigurationError(
                    f"tile {definition.name!r} is smaller than one {cell_width}x{cell_height} cell"
                )
            if not 0 <= definition.palette <= 7:
                raise ConfigurationError(
                    f"tile {definition.name!r} palette {definition.palette} outside 0-7"
                )

            mirrored = definition.mirror is Mirror.VERTICAL
            source: _Placement | None = None
            if definition.alias is not None:
                source = self._placements.get(definition.alias)
                if source is None:
                    raise ConfigurationError(
                        f"tile {definition.name!r} aliases unknown tile {definition.alias!r}"
                    )
                base_index = source.base_index + (1 if mirrored else 0)
            else:
                base_index = next_index

            background: _Placement | None = None
            if definition.background is not None:
                background = self._placements.get(definition.background)
                if background is None:
                    raise ConfigurationError(
                        f"tile {definition.name!r} references unknown background "
                        f"{definition.background!r}"
                    )

            cell_gfx = self._slice_graphics(
                definition, graphics.get(definition.name), tile_bytes, cells_x, cells_y
            )

            placement = _Placement(base_index=base_index, cells_x=cells_x)
            column0 = definition.left // cell_width
            row0 = definition.top // cell_height
            for j in range(cells_y):
                for i in range(cells_x):
                    cell = j * cells_x + i
                    gfx = cell_gfx[cell] if cell_gfx is not None else None
                    if gfx is None and source is not None and cell < len(source.handles):
                        gfx = self._tiles[source.handles[cell]].gfx
                        if gfx is not None and mirrored:
                            gfx = _flip_lines(gfx, tile_bytes)
                    bg_handle = None
                    if background is not None:
                        bg_handle = _background_cell(background, i, j)
                        if mirrored and source is not None:
                            bg_handle = self._mirror(bg_handle)
                    index = base_index + cell * tile_bytes
                    handle = self._append(
                        EncodedTile(
                            handle=len(self._tiles),
                            name=definition.name,
                            index=index,
                            mode=mode,
                            palette=definition.palette,
                            tile_bytes=tile_bytes,
                            entries=_entries(mode, index, cell_width),
                            fake=definition.fake,
                            background=bg_handle,
                            gfx=gfx,
                            mirrored=mirrored and source is not None,
                        )
                    )
                    placement.handles.append(handle)
                    value = 1 + (column0 + i) + (row0 + j) * sheet.columns
                    self._positions[value] = handle
                    if sheet.mirror is Mirror.VERTICAL:
                        flipped_row = sheet.rows - 1 - row0 - j
                        flipped_value = 1 + (column0 + i) + flipped_row * sheet.columns
                        self._positions[flipped_value] = self._mirror(handle)
            self._placements[definition.name] = placement
            if source is None:
                next_index += cells_x * cells_y * tile_bytes
        if sheet.mirror in (Mirror.HORIZONTAL, Mirror.BOTH):
            LOGGER.debug("sheet mirror %s does not add placements", sheet.mirror.value)

    def _append(self, tile: EncodedTile) -> int:
        self._tiles.append(tile)
        return tile.handle

    def _mirror(self, handle: int) -> int:
        """Return the handle of the vertically mirrored variant of ``handle``."""

        cached = self._mirrors.get(handle)
        if cached is not None:
            return cached
        tile = self._tiles[handle]
        background = tile.background
        if background is not None:
            background = self._mirror(background)
        index = tile.index + 1
        mirrored = replace(
            tile,
            handle=len(self._tiles),
            index=index,
            entries=_entries(tile.mode, index, self._sheet.cell_width),
            background=background,
            gfx=_flip_lines(tile.gfx, tile.tile_bytes) if tile.gfx is not None else None,
            mirrored=not tile.mirrored,
        )
        self._append(mirrored)
        self._mirrors[handle] = mirrored.handle
        return mirrored.handle

    def _slice_graphics(
        self,
        definition: TileDefinition,
        payload: bytes | None,
        tile_bytes: int,
        cells_x: int,
        cells_y: int,
    ) -> Optional[List[bytes]]:
        if payload is None:
            return None
        cell_height = self._sheet.cell_height
        stride = tile_bytes * cells_x
        expected = stride * cell_height * cells_y
        if len(payload) != expected:
            raise ConfigurationError(
                f"tile {definition.name!r} pixel bytes have length {len(payload)}, "
                f"expected {expected}"
            )
        cells: List[bytes] = []
        for j in range(cells_y):
            for i in range(cells_x):
                lines = []
                for line in range(cell_height):
                    offset = (j * cell_height + line) * stride + i * tile_bytes
                    lines.append(payload[offset : offset + tile_bytes])
                cells.append(b"".join(lines))
        return cells


def _entries(mode: GraphicsMode, index: int, cell_width: int) -> Tuple[int, ...]:
    step = entry_step(cell_width)
    return tuple(index + n * step for n in range(mode.entries_per_cell(cell_width)))


def _background_cell(background: _Placement, i: int, j: int) -> int:
    # Multi-cell backgrounds underlay cell by cell. Earlier tiles7800 releases
    # always underlaid the first cell, which remains the fallback.
    cells_y = len(background.handles) // background.cells_x
    if i < background.cells_x and j < cells_y:
        return background.handles[j * background.cells_x + i]
    return background.handles[0]


def _flip_lines(gfx: bytes, tile_bytes: int) -> bytes:
    lines: Sequence[bytes] = [
        gfx[offset : offset + tile_bytes] for offset in range(0, len(gfx), tile_bytes)
    ]
    return b"".join(reversed(lines))


__all__ = [
    "EncodedTile",
    "Mirror",
    "TileCatalog",
    "TileDefinition",
    "TileSheet",
]
