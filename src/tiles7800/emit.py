"""Render compiled tilemaps as C source for the sparse tiling runtime."""

from __future__ import annotations

from typing import Iterable, List, Sequence

from .compiler import CompiledTilemap, Grid, plain_tilemap
from .store import BlobKind, StoreEntry

_BYTES_PER_LINE = 16


def render_c_source(compiled: CompiledTilemap) -> str:
    """Return C declarations for blobs, row display lists and pointer tables."""

    prefix = _bank_prefix(compiled.bank)
    lines: List[str] = []
    for entry in compiled.blobs:
        lines.append(prefix + _render_blob(entry))
    for row in compiled.unique_rows():
        values = [value for record in row.records for value in record.header_expressions()]
        values.extend(("0", "0"))
        lines.append(f"{prefix}const char {row.name}[] = {{{', '.join(values)}}};")
    lines.append("")

    table = compiled.pointer_table
    high = ", ".join(f"{name} >> 8" for name in table.rows)
    low = ", ".join(f"{name} & 0xff" for name in table.rows)
    lines.append(f"{prefix}const char {table.high_name}[{compiled.height}] = {{{high}}};")
    lines.append("")
    lines.append(f"{prefix}const char {table.low_name}[{compiled.height}] = {{{low}}};")
    lines.append("")
    pair = ", ".join(table.pair())
    lines.append(f"{prefix}const char *{table.pair_name}[2] = {{{pair}}};")
    lines.append("")
    lines.append("/*")
    lines.append(f"#define TILING_HEIGHT {compiled.height}")
    lines.append(f"#define TILING_WIDTH {compiled.width}")
    lines.append('#include "sparse_tiling.h"')
    lines.append("*/")
    return "\n".join(lines) + "\n"


def _render_blob(entry: StoreEntry) -> str:
    if entry.kind is BlobKind.IMMEDIATE and entry.payload is not None:
        height = entry.height or 1
        line_width = len(entry.payload) // height
        body = _wrap(f"0x{value:02x}" for value in entry.payload)
        return (
            f"reversed scattered({height},{line_width}) char {entry.name}"
            f"[{len(entry.payload)}] = {{\n\t{body}}};"
        )
    values = ", ".join(str(value) for value in entry.entries)
    return f"const char {entry.name}[{entry.width}] = {{{values}}};"


def _wrap(values: Iterable[str]) -> str:
    items = list(values)
    chunks = [
        ", ".join(items[offset : offset + _BYTES_PER_LINE])
        for offset in range(0, len(items), _BYTES_PER_LINE)
    ]
    return ",\n\t".join(chunks)


def _bank_prefix(bank: int | None) -> str:
    return "" if bank is None else f"bank{bank} "


def render_plain_tilemap(grid: Grid, varname: str, *, boundaries: bool = False) -> str:
    """Return the non-sparse tilemap array, optionally framed by ``0xff`` boundaries."""

    values = plain_tilemap(grid)
    size = (grid.width + 1) * grid.height + 1 if boundaries else grid.width * grid.height
    rows: List[str] = []
    for y in range(grid.height):
        row: Sequence[int] = values[y * grid.width : (y + 1) * grid.width]
        cells = [str(value) for value in row]
        if boundaries:
            cells.insert(0, "0xff")
        rows.append(", ".join(cells))
    if boundaries:
        rows.append("0xff")
    body = ",\n\t".join(rows)
    return f"const char {varname}[{size}] = {{\n\t{body}}};\n"


__all__ = ["render_c_source", "render_plain_tilemap"]
