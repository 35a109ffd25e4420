"""Top-level pipeline that turns a tile grid into a sparse-tiling display list."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, Mapping, Sequence, Tuple

from .catalog import TileCatalog, TileSheet
from .config import EncoderConfig
from .display_list import DisplayListEncoder, DisplayListRow, RowPointerTable
from .errors import ConfigurationError
from .segmenter import RowSegmenter, verify_runs
from .sequences import SequenceRegistry
from .store import BlobKind, BlobStore, StoreEntry

LOGGER = logging.getLogger(__name__)

BOUNDARY = 0xFF


@dataclass(frozen=True)
class Grid:
    """Row-major grid of atlas positions exported by the map editor."""

    width: int
    height: int
    cells: Tuple[int, ...]
    cell_width: int = 8
    cell_height: int = 8

    def __post_init__(self) -> None:
        object.__setattr__(self, "cells", tuple(self.cells))
        if self.width < 0 or self.height < 0:
            raise ConfigurationError(f"grid size {self.width}x{self.height} is negative")
        if len(self.cells) != self.width * self.height:
            raise ConfigurationError(
                f"grid declares {self.width}x{self.height} cells but holds {len(self.cells)}"
            )
        if any(value < 0 for value in self.cells):
            raise ConfigurationError("grid cells must be non-negative")

    def row(self, y: int) -> Tuple[int, ...]:
        return self.cells[y * self.width : (y + 1) * self.width]

    def rows(self) -> Iterator[Tuple[int, ...]]:
        for y in range(self.height):
            yield self.row(y)


@dataclass(frozen=True)
class CompiledTilemap:
    """Everything produced by one compilation, still symbolic."""

    varname: str
    width: int
    height: int
    rows: Tuple[DisplayListRow, ...]
    pointer_table: RowPointerTable
    blobs: Tuple[StoreEntry, ...]
    sequences: Tuple[StoreEntry, ...]
    bank: int | None = None

    def unique_rows(self) -> Tuple[DisplayListRow, ...]:
        """Return the rows that own their display-list symbol."""

        return tuple(row for row in self.rows if not row.shared)

    @property
    def size(self) -> int:
        """Bytes of display lists and blobs, excluding the pointer tables."""

        rows = sum(row.size for row in self.unique_rows())
        return rows + sum(_blob_size(entry) for entry in self.blobs)

    def link(self, symbols: Mapping[str, int]) -> Dict[str, bytes]:
        """Resolve every symbolic pointer and return the bytes of each output symbol.

        ``symbols`` maps blob, row and tile-memory symbols to their 16-bit
        addresses. A missing symbol raises :class:`ConfigurationError`.
        """

        linked: Dict[str, bytes] = {}
        for entry in self.blobs:
            linked[entry.name] = _blob_bytes(entry)
        for row in self.unique_rows():
            linked[row.name] = row.to_bytes(symbols)
        table = self.pointer_table
        linked[table.high_name] = table.high_bytes(symbols)
        linked[table.low_name] = table.low_bytes(symbols)
        return linked

    def to_dict(self) -> dict[str, object]:
        table = self.pointer_table
        return {
            "varname": self.varname,
            "width": self.width,
            "height": self.height,
            "bank": self.bank,
            "size": self.size,
            "dma_cycles": [row.dma_cycles for row in self.rows],
            "rows": [row.to_dict() for row in self.rows],
            "pointer_table": {
                "high": table.high_name,
                "low": table.low_name,
                "pair": table.pair_name,
                "rows": list(table.rows),
            },
            "blobs": [
                {
                    "name": entry.name,
                    "kind": entry.kind.value,
                    "width": entry.width,
                    "entries": list(entry.entries),
                    "sequence": entry.sequence,
                }
                for entry in self.blobs
            ],
            "sequences": [entry.name for entry in self.sequences],
        }


def _blob_size(entry: StoreEntry) -> int:
    if entry.kind is BlobKind.IMMEDIATE and entry.payload is not None:
        return len(entry.payload)
    return entry.width


def _blob_bytes(entry: StoreEntry) -> bytes:
    if entry.kind is BlobKind.IMMEDIATE and entry.payload is not None:
        return entry.payload
    if any(value > 0xFF for value in entry.entries):
        raise ConfigurationError(f"blob {entry.name!r} holds an index above 255")
    return bytes(entry.entries)


def compile_tilemap(
    sheet: TileSheet,
    grid: Grid,
    config: EncoderConfig | None = None,
    graphics: Mapping[str, bytes] | None = None,
) -> CompiledTilemap:
    """Compile ``grid`` against ``sheet`` into a :class:`CompiledTilemap`."""

    config = config or EncoderConfig()
    catalog = TileCatalog.build(sheet, graphics)
    store = BlobStore()
    registry = SequenceRegistry(catalog, store, immediate=config.immediate_enabled)
    registry.register_all(sheet.sequences)

    segmenter = RowSegmenter(catalog, config)
    encoder = DisplayListEncoder(catalog, store, config)
    for y, values in enumerate(grid.rows()):
        runs = segmenter.segment(y, values)
        verify_runs(catalog, config, y, values, runs)
        encoder.encode_row(y, runs)

    compiled = CompiledTilemap(
        varname=config.varname,
        width=grid.width,
        height=grid.height,
        rows=encoder.rows,
        pointer_table=encoder.pointer_table(),
        blobs=store.emitted(),
        sequences=registry.used(),
        bank=sheet.bank,
    )
    LOGGER.info(
        "compiled %dx%d grid: %d display lists, %d blobs, %d bytes",
        grid.width,
        grid.height,
        len(compiled.unique_rows()),
        len(compiled.blobs),
        compiled.size,
    )
    return compiled


def plain_tilemap(grid: Grid, *, boundaries: bool = False) -> Tuple[int, ...]:
    """Return the non-sparse tilemap: ``(v - 1) * 2`` per cell, 0 when empty."""

    values = []
    for row in grid.rows():
        if boundaries:
            values.append(BOUNDARY)
        values.extend(_plain_value(value) for value in row)
    if boundaries:
        values.append(BOUNDARY)
    return tuple(values)


def _plain_value(value: int) -> int:
    return 0 if value == 0 else (value - 1) * 2


def grid_from_rows(rows: Sequence[Sequence[int]], **kwargs: int) -> Grid:
    """Build a :class:`Grid` from nested rows of equal length."""

    height = len(rows)
    width = len(rows[0]) if rows else 0
    if any(len(row) != width for row in rows):
        raise ConfigurationError("grid rows must all have the same length")
    return Grid(
        width=width,
        height=height,
        cells=tuple(value for row in rows for value in row),
        **kwargs,
    )


__all__ = [
    "BOUNDARY",
    "CompiledTilemap",
    "Grid",
    "compile_tilemap",
    "grid_from_rows",
    "plain_tilemap",
]
