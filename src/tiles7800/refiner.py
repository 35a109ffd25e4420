"""Align run boundaries with blobs that are already in the store."""

from __future__ import annotations

import logging
from typing import Tuple

from .config import EncoderConfig
from .segmenter import Run
from .store import BlobStore, blob_entries, blob_kind

LOGGER = logging.getLogger(__name__)

REFINE_MIN_LENGTH = 5


def continuous_eligible(run: Run, config: EncoderConfig) -> bool:
    """Return ``True`` when ``run`` can address tile memory directly."""

    if run.length < config.min_continuous_length:
        return False
    if any(tile.fake for tile in run.tiles):
        return False
    return all(
        current.index == previous.index + previous.tile_bytes
        for previous, current in zip(run.tiles, run.tiles[1:])
    )


class RunRefiner:
    """Split runs along stored windows and tile-memory stride breaks."""

    def __init__(
        self,
        store: BlobStore,
        config: EncoderConfig,
        *,
        min_length: int = REFINE_MIN_LENGTH,
    ) -> None:
        self._store = store
        self._config = config
        self._min_length = min_length

    def refine(self, run: Run) -> Tuple[Run, ...]:
        """Return ``run`` or a gap-free sequence of pieces that covers it."""

        if continuous_eligible(run, self._config):
            return (run,)
        if run.length < self._min_length:
            return _split_at_stride_breaks(run)
        kind = blob_kind(run.tiles, immediate=self._config.immediate_enabled)
        if self._store.find(blob_entries(run.tiles), kind) is not None:
            return (run,)

        head, rest = run.split(1)
        if self._store.find(blob_entries(rest.tiles), kind) is not None:
            LOGGER.debug("row %d: split first cell off run at column %d", run.row, run.start)
            return (head,) + self.refine(rest)

        rest, tail = run.split(run.length - 1)
        if self._store.find(blob_entries(rest.tiles), kind) is not None:
            LOGGER.debug("row %d: split last cell off run at column %d", run.row, run.start)
            return self.refine(rest) + (tail,)
        return (run,)


def _split_at_stride_breaks(run: Run) -> Tuple[Run, ...]:
    """Cut a short run where tile-memory indices stop following the stride.

    The run is only cut when every piece keeps at least two cells.
    """

    breaks = [
        offset
        for offset in range(1, run.length)
        if run.tiles[offset].index
        != run.tiles[offset - 1].index + run.tiles[offset - 1].tile_bytes
    ]
    bounds = [0, *breaks, run.length]
    if not breaks or any(end - start < 2 for start, end in zip(bounds, bounds[1:])):
        return (run,)

    pieces = []
    rest = run
    for previous, cut in zip(bounds, breaks):
        piece, rest = rest.split(cut - previous)
        pieces.append(piece)
    pieces.append(rest)
    LOGGER.debug(
        "row %d: split run at column %d into %d stride pieces", run.row, run.start, len(pieces)
    )
    return tuple(pieces)


__all__ = ["REFINE_MIN_LENGTH", "RunRefiner", "continuous_eligible"]
