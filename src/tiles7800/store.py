"""Append-only, content-addressed store of emitted tile blobs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

from .catalog import EncodedTile
from .errors import ConsistencyError

LOGGER = logging.getLogger(__name__)


class BlobKind(Enum):
    """Representation of a stored blob; determines how records address it."""

    INDIRECT = "indirect"
    IMMEDIATE = "immediate"


@dataclass(frozen=True)
class StoreEntry:
    """Registered blob, immutable once stored."""

    name: str
    kind: BlobKind
    entries: Tuple[int, ...]
    payload: bytes | None = None
    height: int = 0
    sequence: bool = False

    @property
    def width(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class StoreMatch:
    """Location of a window inside a registered blob."""

    name: str
    offset: int
    kind: BlobKind


class BlobStore:
    """Registry of blobs shared by every row of a compilation.

    Registration is first-write-wins: a name can only be stored once, and the
    same content can only be stored under one name. Lookups scan entries in
    registration order and only consider entries of the requested kind.
    """

    def __init__(self) -> None:
        self._entries: List[StoreEntry] = []
        self._by_name: Dict[str, StoreEntry] = {}
        self._used: set[str] = set()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[StoreEntry]:
        return iter(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def get(self, name: str) -> StoreEntry | None:
        return self._by_name.get(name)

    def register(
        self,
        name: str,
        entries: Sequence[int],
        kind: BlobKind,
        *,
        payload: bytes | None = None,
        height: int = 0,
        sequence: bool = False,
    ) -> StoreEntry:
        """Store ``entries`` under ``name`` and return the new entry."""

        candidate = StoreEntry(
            name=name,
            kind=kind,
            entries=tuple(entries),
            payload=payload,
            height=height,
            sequence=sequence,
        )
        if not candidate.entries:
            raise ConsistencyError(f"refusing to store empty blob {name!r}")
        existing = self._by_name.get(name)
        if existing is not None:
            if (existing.kind, existing.entries, existing.payload) == (
                candidate.kind,
                candidate.entries,
                candidate.payload,
            ):
                return existing
            raise ConsistencyError(f"store entry {name!r} re-registered with different content")
        for entry in self._entries:
            if entry.kind is kind and entry.entries == candidate.entries:
                raise ConsistencyError(
                    f"blob {name!r} duplicates the content of store entry {entry.name!r}"
                )
        self._entries.append(candidate)
        self._by_name[name] = candidate
        LOGGER.debug("registered %s blob %s (%d entries)", kind.value, name, candidate.width)
        return candidate

    def find(self, entries: Sequence[int], kind: BlobKind) -> StoreMatch | None:
        """Return the first entry of ``kind`` containing ``entries`` as a window."""

        window = tuple(entries)
        if not window:
            return None
        for entry in self._entries:
            if entry.kind is not kind:
                continue
            offset = _window_offset(entry.entries, window)
            if offset is not None:
                return StoreMatch(name=entry.name, offset=offset, kind=kind)
        return None

    def mark_used(self, name: str) -> None:
        if name not in self._by_name:
            raise ConsistencyError(f"cannot mark unknown store entry {name!r} as used")
        self._used.add(name)

    def is_used(self, name: str) -> bool:
        return name in self._used

    def emitted(self) -> Tuple[StoreEntry, ...]:
        """Return entries that belong in the output, in registration order."""

        return tuple(
            entry for entry in self._entries if not entry.sequence or entry.name in self._used
        )


def _window_offset(haystack: Tuple[int, ...], window: Tuple[int, ...]) -> int | None:
    size = len(window)
    first = window[0]
    for offset in range(len(haystack) - size + 1):
        if haystack[offset] == first and haystack[offset : offset + size] == window:
            return offset
    return None


def blob_kind(tiles: Iterable[EncodedTile], *, immediate: bool) -> BlobKind:
    """Return the blob representation usable for ``tiles``."""

    if immediate and all(tile.gfx is not None for tile in tiles):
        return BlobKind.IMMEDIATE
    return BlobKind.INDIRECT


def blob_entries(tiles: Iterable[EncodedTile]) -> Tuple[int, ...]:
    """Concatenate the index entries contributed by ``tiles``."""

    return tuple(entry for tile in tiles for entry in tile.entries)


def immediate_payload(tiles: Sequence[EncodedTile], height: int) -> bytes:
    """Return the per-scanline concatenation of the pixel bytes of ``tiles``."""

    return b"".join(tile.gfx_line(line) for line in range(height) for tile in tiles)


__all__ = [
    "BlobKind",
    "BlobStore",
    "StoreEntry",
    "StoreMatch",
    "blob_entries",
    "blob_kind",
    "immediate_payload",
]
