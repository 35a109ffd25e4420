"""Pre-declared tile sequences that seed the blob store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .catalog import EncodedTile, TileCatalog
from .errors import ConfigurationError
from .store import BlobKind, BlobStore, StoreEntry, blob_entries, blob_kind, immediate_payload

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SequenceDefinition:
    """Named, explicitly authored list of tile references (e.g. an animation strip)."""

    name: str
    tiles: Tuple[str, ...]
    prefix: Tuple[str, ...] = ()
    postfix: Tuple[str, ...] = ()
    repeat: int = 1
    generate: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "tiles", tuple(self.tiles))
        object.__setattr__(self, "prefix", tuple(self.prefix))
        object.__setattr__(self, "postfix", tuple(self.postfix))
        if self.repeat < 1:
            raise ConfigurationError(f"sequence {self.name!r} repeat must be at least 1")

    def references(self) -> Tuple[str, ...]:
        """Return the tile names in blob order."""

        return self.prefix + self.tiles * self.repeat + self.postfix


class SequenceRegistry:
    """Resolve sequence definitions and register them ahead of row processing."""

    def __init__(self, catalog: TileCatalog, store: BlobStore, *, immediate: bool) -> None:
        self._catalog = catalog
        self._store = store
        self._immediate = immediate
        self._registered: List[StoreEntry] = []

    @property
    def registered(self) -> Tuple[StoreEntry, ...]:
        return tuple(self._registered)

    def resolve(self, definition: SequenceDefinition) -> Tuple[EncodedTile, ...]:
        """Return the cells referenced by ``definition`` in order."""

        tiles: List[EncodedTile] = []
        for reference in definition.references():
            try:
                tiles.extend(self._catalog.cells_of(reference))
            except ConfigurationError as exc:
                raise ConfigurationError(
                    f"sequence {definition.name!r} references unknown tile {reference!r}"
                ) from exc
        if not tiles:
            raise ConfigurationError(f"sequence {definition.name!r} is empty")
        return tuple(tiles)

    def register_all(self, definitions: Iterable[SequenceDefinition]) -> Tuple[StoreEntry, ...]:
        """Register every definition whose ``generate`` flag is set."""

        for definition in definitions:
            tiles = self.resolve(definition)
            if not definition.generate:
                LOGGER.debug("sequence %s resolved but not generated", definition.name)
                continue
            self._registered.append(self._register(definition, tiles))
        return self.registered

    def used(self) -> Tuple[StoreEntry, ...]:
        """Return the registered sequences referenced by at least one record."""

        return tuple(entry for entry in self._registered if self._store.is_used(entry.name))

    def _register(self, definition: SequenceDefinition, tiles: Tuple[EncodedTile, ...]) -> StoreEntry:
        if definition.name in self._store:
            raise ConfigurationError(f"sequence {definition.name!r} declared twice")
        kind = blob_kind(tiles, immediate=self._immediate)
        entries = blob_entries(tiles)
        duplicate = next(
            (entry for entry in self._store if entry.kind is kind and entry.entries == entries),
            None,
        )
        if duplicate is not None:
            raise ConfigurationError(
                f"sequence {definition.name!r} duplicates sequence {duplicate.name!r}"
            )
        payload = None
        height = self._catalog.sheet.cell_height
        if kind is BlobKind.IMMEDIATE:
            payload = immediate_payload(tiles, height)
        return self._store.register(
            definition.name,
            entries,
            kind,
            payload=payload,
            height=height,
            sequence=True,
        )


__all__ = ["SequenceDefinition", "SequenceRegistry"]
