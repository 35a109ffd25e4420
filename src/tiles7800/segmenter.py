"""Greedy per-row partitioning of grid cells into compatible runs."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, ClassVar, List, Mapping, Sequence, Tuple

from .catalog import EncodedTile, TileCatalog
from .config import EncoderConfig
from .errors import ConsistencyError

LOGGER = logging.getLogger(__name__)


class RunRole(Enum):
    """Accumulator a run was flushed from."""

    BACKGROUND = auto()
    FOREGROUND = auto()
    DEFERRED = auto()


class CellClass(Enum):
    """Classification of a grid cell after catalog resolution."""

    EMPTY = auto()
    PLAIN = auto()
    COMPOSITE = auto()


@dataclass(frozen=True)
class Run:
    """Contiguous span of cells of one row sharing mode, palette and fake flag."""

    row: int
    start: int
    tiles: Tuple[EncodedTile, ...]
    role: RunRole

    def __post_init__(self) -> None:
        object.__setattr__(self, "tiles", tuple(self.tiles))

    @property
    def length(self) -> int:
        return len(self.tiles)

    @property
    def end(self) -> int:
        return self.start + len(self.tiles) - 1

    @property
    def head(self) -> EncodedTile:
        return self.tiles[0]

    def columns(self) -> range:
        return range(self.start, self.start + len(self.tiles))

    def split(self, at: int) -> Tuple["Run", "Run"]:
        """Split into ``tiles[:at]`` and ``tiles[at:]`` keeping positions."""

        if not 0 < at < len(self.tiles):
            raise ConsistencyError(f"cannot split a run of {self.length} cells at {at}")
        left = Run(row=self.row, start=self.start, tiles=self.tiles[:at], role=self.role)
        right = Run(row=self.row, start=self.start + at, tiles=self.tiles[at:], role=self.role)
        return left, right


@dataclass
class _Accumulator:
    role: RunRole
    start: int = 0
    tiles: List[EncodedTile] = field(default_factory=list)
    underlaid: bool = False

    def compatible(self, tile: EncodedTile) -> bool:
        return bool(self.tiles) and self.tiles[-1].compat_key == tile.compat_key

    def take(self, row: int, role: RunRole | None = None) -> Run:
        run = Run(row=row, start=self.start, tiles=tuple(self.tiles), role=role or self.role)
        self.tiles = []
        self.underlaid = False
        return run


@dataclass
class _RowState:
    row: int
    background: _Accumulator = field(default_factory=lambda: _Accumulator(RunRole.BACKGROUND))
    foreground: _Accumulator = field(default_factory=lambda: _Accumulator(RunRole.FOREGROUND))
    deferred: List[Run] = field(default_factory=list)
    flushed: List[Run] = field(default_factory=list)

    def flush(self, accumulator: _Accumulator) -> None:
        if accumulator.tiles:
            self.flushed.append(accumulator.take(self.row))

    def flush_all(self) -> None:
        self.flush(self.background)
        self.flush(self.foreground)
        self.flushed.extend(self.deferred)
        self.deferred = []


class RowSegmenter:
    """Partition each row into runs with a table-driven state machine.

    Three accumulators are maintained while scanning a row: the background
    run in progress, the foreground run in progress and the list of deferred
    foreground runs waiting for an interleaved background run to close.
    """

    _TRANSITIONS: ClassVar[Mapping[CellClass, str]] = {
        CellClass.EMPTY: "_on_empty",
        CellClass.PLAIN: "_on_plain",
        CellClass.COMPOSITE: "_on_composite",
    }

    def __init__(self, catalog: TileCatalog, config: EncoderConfig) -> None:
        self._catalog = catalog
        self._config = config

    @staticmethod
    def classify(tiles: Sequence[EncodedTile]) -> CellClass:
        if not tiles:
            return CellClass.EMPTY
        return CellClass.COMPOSITE if len(tiles) == 2 else CellClass.PLAIN

    def segment(self, row: int, values: Sequence[int]) -> Tuple[Run, ...]:
        """Return the runs of ``values`` in draw order."""

        state = _RowState(row=row)
        ordered: List[Run] = []
        for column, value in enumerate(values):
            tiles = self._catalog.resolve(value)
            handler: Callable[[_RowState, int, Sequence[EncodedTile]], None] = getattr(
                self, self._TRANSITIONS[self.classify(tiles)]
            )
            handler(state, column, tiles)
            self._drain(state, ordered)
        state.flush_all()
        self._drain(state, ordered)
        LOGGER.debug("row %d segmented into %d runs", row, len(ordered))
        return tuple(ordered)

    def _drain(self, state: _RowState, ordered: List[Run]) -> None:
        for run in state.flushed:
            if run.role is RunRole.BACKGROUND and not self._config.left_to_right:
                ordered.insert(0, run)
            else:
                ordered.append(run)
        state.flushed = []

    def _extend(
        self, state: _RowState, accumulator: _Accumulator, column: int, tile: EncodedTile
    ) -> None:
        if accumulator.tiles and len(accumulator.tiles) >= self._config.run_limit(tile.tile_bytes):
            state.flush(accumulator)
        if not accumulator.tiles:
            accumulator.start = column
        accumulator.tiles.append(tile)

    def _on_empty(self, state: _RowState, column: int, tiles: Sequence[EncodedTile]) -> None:
        state.flush_all()

    def _on_composite(self, state: _RowState, column: int, tiles: Sequence[EncodedTile]) -> None:
        underlay, tile = tiles
        background, foreground = state.background, state.foreground
        if self._can_absorb(state, underlay):
            background.start = foreground.start
            background.tiles = foreground.tiles + [underlay]
            background.underlaid = foreground.underlaid
            foreground.tiles = []
            foreground.underlaid = False
        else:
            if background.tiles and not background.compatible(underlay):
                state.flush(background)
            self._extend(state, background, column, underlay)
        if foreground.tiles and not foreground.compatible(tile):
            state.flush(foreground)
        self._extend(state, foreground, column, tile)
        foreground.underlaid = True

    def _can_absorb(self, state: _RowState, underlay: EncodedTile) -> bool:
        # Reclassifying the open foreground run as background must not move
        # it in front of the backgrounds it was drawn over.
        foreground = state.foreground
        return (
            not state.background.tiles
            and foreground.compatible(underlay)
            and len(foreground.tiles) < self._config.run_limit(underlay.tile_bytes)
            and (self._config.left_to_right or not foreground.underlaid)
        )

    def _on_plain(self, state: _RowState, column: int, tiles: Sequence[EncodedTile]) -> None:
        (tile,) = tiles
        background, foreground = state.background, state.foreground
        if background.tiles and background.compatible(tile):
            self._extend(state, background, column, tile)
            if foreground.tiles:
                state.deferred.append(foreground.take(state.row, RunRole.DEFERRED))
            return
        state.flush(background)
        if foreground.compatible(tile):
            self._extend(state, foreground, column, tile)
            return
        state.flush(foreground)
        self._extend(state, background, column, tile)


def verify_runs(
    catalog: TileCatalog,
    config: EncoderConfig,
    row: int,
    values: Sequence[int],
    runs: Sequence[Run],
) -> None:
    """Raise :class:`ConsistencyError` unless ``runs`` exactly cover ``values``."""

    covered: List[Counter[int]] = [Counter() for _ in values]
    for run in runs:
        if run.length < 1 or run.length > config.run_limit(run.head.tile_bytes):
            raise ConsistencyError(
                f"row {row}: run at column {run.start} has invalid length {run.length}"
            )
        if len({tile.compat_key for tile in run.tiles}) != 1:
            raise ConsistencyError(f"row {row}: run at column {run.start} mixes attributes")
        if run.start < 0 or run.end >= len(values):
            raise ConsistencyError(f"row {row}: run at column {run.start} leaves the row")
        for column, tile in zip(run.columns(), run.tiles):
            covered[column][tile.handle] += 1
    for column, value in enumerate(values):
        expected = Counter(tile.handle for tile in catalog.resolve(value))
        if covered[column] != expected:
            raise ConsistencyError(
                f"row {row}: column {column} covered by {sorted(covered[column].elements())}, "
                f"expected {sorted(expected.elements())}"
            )


__all__ = ["CellClass", "Run", "RunRole", "RowSegmenter", "verify_runs"]
