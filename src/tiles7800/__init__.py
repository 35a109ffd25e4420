"""Sparse-tiling display-list compiler for the Atari 7800 MARIA chip."""
from __future__ import annotations

from .catalog import EncodedTile, Mirror, TileCatalog, TileDefinition, TileSheet
from .compiler import CompiledTilemap, Grid, compile_tilemap, grid_from_rows, plain_tilemap
from .config import DirectHeader, EncoderConfig, load_encoder_config
from .display_list import (
    ContinuousRecord,
    DisplayListEncoder,
    DisplayListRow,
    ImmediateRecord,
    IndirectRecord,
    Pointer,
    RowPointerTable,
)
from .errors import ConfigurationError, ConsistencyError, TilemapError
from .refiner import RunRefiner
from .segmenter import Run, RowSegmenter
from .sequences import SequenceDefinition, SequenceRegistry
from .store import BlobKind, BlobStore, StoreEntry, StoreMatch

__all__ = [
    "BlobKind",
    "BlobStore",
    "CompiledTilemap",
    "ConfigurationError",
    "ConsistencyError",
    "ContinuousRecord",
    "DirectHeader",
    "DisplayListEncoder",
    "DisplayListRow",
    "EncodedTile",
    "EncoderConfig",
    "Grid",
    "ImmediateRecord",
    "IndirectRecord",
    "Mirror",
    "Pointer",
    "RowPointerTable",
    "RowSegmenter",
    "Run",
    "RunRefiner",
    "SequenceDefinition",
    "SequenceRegistry",
    "StoreEntry",
    "StoreMatch",
    "TileCatalog",
    "TileDefinition",
    "TileSheet",
    "TilemapError",
    "compile_tilemap",
    "grid_from_rows",
    "load_encoder_config",
    "plain_tilemap",
]
