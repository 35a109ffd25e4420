"""Encode finished runs into MARIA display-list records."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, List, Mapping, Sequence, Tuple

from .catalog import TileCatalog
from .config import DirectHeader, EncoderConfig, SHORT_HEADER_WIDTH_LIMIT
from .errors import ConfigurationError, ConsistencyError
from .modes import GraphicsMode, entry_step
from .refiner import RunRefiner, continuous_eligible
from .segmenter import Run
from .store import BlobKind, BlobStore, blob_entries, blob_kind, immediate_payload

LOGGER = logging.getLogger(__name__)

TERMINATOR = b"\x00\x00"

_EXTENDED_HEADER = 0x40
_INDIRECT_BIT = 0x20


class RecordKind(Enum):
    """How a record addresses the graphics of its run."""

    CONTINUOUS = "continuous"
    IMMEDIATE = "immediate"
    INDIRECT = "indirect"


@dataclass(frozen=True)
class Pointer:
    """Symbolic 16-bit address: a symbol plus a byte offset."""

    symbol: str
    offset: int = 0

    def resolve(self, symbols: Mapping[str, int]) -> int:
        try:
            base = symbols[self.symbol]
        except KeyError as exc:
            raise ConfigurationError(f"no address supplied for symbol {self.symbol!r}") from exc
        return (base + self.offset) & 0xFFFF

    def expression(self) -> str:
        if self.offset:
            return f"({self.symbol} + {self.offset})"
        return self.symbol


@dataclass(frozen=True)
class RunRecord:
    """Positional header shared by every record kind."""

    start: int
    end: int
    width: int
    palette: int
    mode: GraphicsMode
    hpos: int
    pointer: Pointer
    long_header: bool

    kind: ClassVar[RecordKind]
    indirect: ClassVar[bool] = False

    def __post_init__(self) -> None:
        if self.indirect and not self.long_header:
            raise ConsistencyError("indirect records require a 5-byte header")
        if not self.long_header and self.width > SHORT_HEADER_WIDTH_LIMIT:
            raise ConsistencyError(f"width {self.width} does not fit a 4-byte header")
        if not 1 <= self.width <= 32:
            raise ConsistencyError(f"record width {self.width} outside 1-32")

    @property
    def mode_byte(self) -> int:
        value = _EXTENDED_HEADER | self.mode.write_mode_bit
        if self.indirect:
            value |= _INDIRECT_BIT
        return value

    @property
    def palette_width(self) -> int:
        return ((self.palette & 0x07) << 5) | (-self.width & 0x1F)

    @property
    def size(self) -> int:
        return 5 if self.long_header else 4

    @property
    def dma_cycles(self) -> int:
        if self.indirect:
            return (10 + 3 + 9 * self.width) // 2
        return (10 + 3 * self.width) // 2

    def header(self, symbols: Mapping[str, int]) -> bytes:
        """Return the header bytes with the pointer resolved through ``symbols``."""

        address = self.pointer.resolve(symbols)
        low, high = address & 0xFF, address >> 8
        if self.long_header:
            return bytes((low, self.mode_byte, high, self.palette_width, self.hpos))
        return bytes((low, self.palette_width, high, self.hpos))

    def header_expressions(self) -> Tuple[str, ...]:
        """Return the header as C expressions with symbolic pointer bytes."""

        pointer = self.pointer.expression()
        low, high = f"{pointer} & 0xff", f"{pointer} >> 8"
        palette_width = f"0x{self.palette_width:02x}"
        if self.long_header:
            return (low, f"0x{self.mode_byte:02x}", high, palette_width, str(self.hpos))
        return (low, palette_width, high, str(self.hpos))

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "start": self.start,
            "end": self.end,
            "width": self.width,
            "palette": self.palette,
            "mode": self.mode.name,
            "hpos": self.hpos,
            "pointer": self.pointer.expression(),
            "header_size": self.size,
            "dma_cycles": self.dma_cycles,
        }


@dataclass(frozen=True)
class ContinuousRecord(RunRecord):
    """Run addressed directly in tile memory; no blob is stored."""

    kind: ClassVar[RecordKind] = RecordKind.CONTINUOUS


@dataclass(frozen=True)
class ImmediateRecord(RunRecord):
    """Run addressed through an inlined pixel-byte blob."""

    blob: str = ""

    kind: ClassVar[RecordKind] = RecordKind.IMMEDIATE


@dataclass(frozen=True)
class IndirectRecord(RunRecord):
    """Run addressed through an array of tile-memory indices."""

    blob: str = ""

    kind: ClassVar[RecordKind] = RecordKind.INDIRECT
    indirect: ClassVar[bool] = True


@dataclass(frozen=True)
class DisplayListRow:
    """Records of one grid row followed by the terminator."""

    row: int
    name: str
    records: Tuple[RunRecord, ...]
    shared: bool = False

    @property
    def size(self) -> int:
        return sum(record.size for record in self.records) + len(TERMINATOR)

    @property
    def dma_cycles(self) -> int:
        return sum(record.dma_cycles for record in self.records)

    def to_bytes(self, symbols: Mapping[str, int]) -> bytes:
        return b"".join(record.header(symbols) for record in self.records) + TERMINATOR

    def to_dict(self) -> dict[str, object]:
        return {
            "row": self.row,
            "name": self.name,
            "shared": self.shared,
            "size": self.size,
            "dma_cycles": self.dma_cycles,
            "records": [record.to_dict() for record in self.records],
        }


@dataclass(frozen=True)
class RowPointerTable:
    """Parallel low/high byte tables addressing each row's display list."""

    varname: str
    rows: Tuple[str, ...]

    @property
    def low_name(self) -> str:
        return f"{self.varname}_data_ptrs_low"

    @property
    def high_name(self) -> str:
        return f"{self.varname}_data_ptrs_high"

    @property
    def pair_name(self) -> str:
        return f"{self.varname}_data_ptrs"

    def pair(self) -> Tuple[str, str]:
        """Return the two-entry pointer pair (high table first)."""

        return (self.high_name, self.low_name)

    def low_bytes(self, symbols: Mapping[str, int]) -> bytes:
        return bytes(Pointer(name).resolve(symbols) & 0xFF for name in self.rows)

    def high_bytes(self, symbols: Mapping[str, int]) -> bytes:
        return bytes(Pointer(name).resolve(symbols) >> 8 for name in self.rows)


class DisplayListEncoder:
    """Turn each row's runs into records, registering new blobs as needed."""

    def __init__(self, catalog: TileCatalog, store: BlobStore, config: EncoderConfig) -> None:
        self._catalog = catalog
        self._store = store
        self._config = config
        self._refiner = RunRefiner(store, config)
        self._rows: List[DisplayListRow] = []
        self._row_names: Dict[Tuple[RunRecord, ...], str] = {}

    @property
    def rows(self) -> Tuple[DisplayListRow, ...]:
        return tuple(self._rows)

    def encode_row(self, row: int, runs: Sequence[Run]) -> DisplayListRow:
        """Encode ``runs`` (already in draw order) for grid ``row``."""

        if len(self._rows) != row:
            raise ConsistencyError(f"row {row} encoded out of order")
        records: List[RunRecord] = []
        counter = 0
        write_mode: bool | None = None
        for run in runs:
            for piece in self._refiner.refine(run):
                record, counter = self._encode_run(piece, counter, write_mode)
                write_mode = record.mode.write_mode
                records.append(record)

        key = tuple(records)
        existing = self._row_names.get(key)
        if existing is not None:
            encoded = DisplayListRow(row=row, name=existing, records=key, shared=True)
        else:
            name = f"{self._config.varname}_{row}_data"
            self._row_names[key] = name
            encoded = DisplayListRow(row=row, name=name, records=key)
        self._rows.append(encoded)
        LOGGER.debug(
            "row %d: %d records, %d bytes%s",
            row,
            len(records),
            encoded.size,
            f" (shared with {encoded.name})" if encoded.shared else "",
        )
        return encoded

    def pointer_table(self) -> RowPointerTable:
        return RowPointerTable(
            varname=self._config.varname, rows=tuple(row.name for row in self._rows)
        )

    def _encode_run(
        self, run: Run, counter: int, write_mode: bool | None
    ) -> Tuple[RunRecord, int]:
        config = self._config
        sheet = self._catalog.sheet
        head = run.head
        hpos = (run.start + config.column_offset) * sheet.cell_width // 2
        if hpos > 0xFF:
            raise ConfigurationError(
                f"row {run.row}: column {run.start} needs horizontal position {hpos}, "
                "past the 255 limit"
            )
        common = dict(
            start=run.start,
            end=run.end,
            palette=head.palette,
            mode=head.mode,
            hpos=hpos,
        )
        direct_width = sum(tile.tile_bytes for tile in run.tiles)

        if continuous_eligible(run, config):
            record = ContinuousRecord(
                width=direct_width,
                pointer=Pointer(config.tiles_symbol, head.index),
                long_header=self._long_header(head.mode, write_mode),
                **common,
            )
            return record, counter

        kind = blob_kind(run.tiles, immediate=config.immediate_enabled)
        entries = blob_entries(run.tiles)
        match = self._store.find(entries, kind)
        if match is not None:
            name, offset = match.name, match.offset
            self._store.mark_used(name)
        else:
            name, offset = f"{config.varname}_{run.row}_{counter}", 0
            counter += 1
            payload = None
            if kind is BlobKind.IMMEDIATE:
                payload = immediate_payload(run.tiles, sheet.cell_height)
            self._store.register(name, entries, kind, payload=payload, height=sheet.cell_height)

        if kind is BlobKind.IMMEDIATE:
            record = ImmediateRecord(
                width=direct_width,
                pointer=Pointer(name, offset * entry_step(sheet.cell_width)),
                long_header=self._long_header(head.mode, write_mode),
                blob=name,
                **common,
            )
        else:
            if max(entries) > 0xFF:
                raise ConfigurationError(
                    f"row {run.row}: tile index {max(entries)} does not fit an index array"
                )
            record = IndirectRecord(
                width=len(entries),
                pointer=Pointer(name, offset),
                long_header=True,
                blob=name,
                **common,
            )
        return record, counter

    def _long_header(self, mode: GraphicsMode, write_mode: bool | None) -> bool:
        policy = self._config.direct_header
        if policy is DirectHeader.LONG:
            return True
        if policy is DirectHeader.SHORT:
            return False
        return write_mode is None or write_mode != mode.write_mode


__all__ = [
    "ContinuousRecord",
    "DisplayListEncoder",
    "DisplayListRow",
    "ImmediateRecord",
    "IndirectRecord",
    "Pointer",
    "RecordKind",
    "RowPointerTable",
    "RunRecord",
    "TERMINATOR",
]
