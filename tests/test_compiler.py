from __future__ import annotations

from collections import Counter

import pytest

from tiles7800.catalog import TileDefinition, TileSheet
from tiles7800.compiler import Grid, compile_tilemap, grid_from_rows, plain_tilemap
from tiles7800.config import EncoderConfig
from tiles7800.display_list import ContinuousRecord, IndirectRecord, Pointer
from tiles7800.errors import ConfigurationError
from tiles7800.sequences import SequenceDefinition

# 32 columns x 2 rows atlas. Row 1 holds padding definitions so that the
# tiles on row 0 land at chosen tile-memory indices.
_PAD_TO_10 = TileDefinition(name="pad", top=8, left=0, width=80, height=8)
_PAD_TO_20 = TileDefinition(name="pad2", top=8, left=80, width=64, height=8)


def _tile(name: str, column: int, **kwargs) -> TileDefinition:
    return TileDefinition(name=name, top=0, left=column * 8, width=8, height=8, **kwargs)


def _sheet(*tiles: TileDefinition, **kwargs) -> TileSheet:
    return TileSheet(tiles=tiles, image_width=256, image_height=16, **kwargs)


def _contiguous_sheet() -> TileSheet:
    return _sheet(_PAD_TO_10, *(_tile(f"t{column}", column) for column in range(4)))


def _gapped_sheet() -> TileSheet:
    return _sheet(
        _PAD_TO_10,
        _tile("t10", 0),
        _tile("t11", 1),
        _PAD_TO_20,
        _tile("t20", 2),
        _tile("t21", 3),
    )


def test_contiguous_indices_compile_to_one_continuous_record() -> None:
    compiled = compile_tilemap(_contiguous_sheet(), grid_from_rows([[1, 2, 3, 4]]))

    (row,) = compiled.rows
    (record,) = row.records
    assert isinstance(record, ContinuousRecord)
    assert (record.start, record.end) == (0, 3)
    assert record.pointer == Pointer("tiles", 10)
    assert compiled.blobs == ()


def test_gapped_indices_compile_to_two_indirect_blobs() -> None:
    compiled = compile_tilemap(_gapped_sheet(), grid_from_rows([[1, 2, 3, 4]]))

    records = compiled.rows[0].records
    assert all(isinstance(record, IndirectRecord) for record in records)
    assert sorted((record.start, record.end) for record in records) == [(0, 1), (2, 3)]
    assert [(entry.name, entry.entries) for entry in compiled.blobs] == [
        ("tilemap_0_0", (10, 11)),
        ("tilemap_0_1", (20, 21)),
    ]


def test_second_row_reuses_first_row_blob_at_offset_zero() -> None:
    compiled = compile_tilemap(_gapped_sheet(), grid_from_rows([[1, 2, 3, 4], [1, 2, 0, 0]]))

    (record,) = compiled.rows[1].records
    assert isinstance(record, IndirectRecord)
    assert record.pointer == Pointer("tilemap_0_0", 0)
    assert len(compiled.blobs) == 2


def test_repeated_sequence_registers_one_entry() -> None:
    sheet = _sheet(_tile("a", 0), _tile("b", 1))
    compiled = compile_tilemap(sheet, grid_from_rows([[2, 1, 0], [0, 2, 1]]))

    assert [entry.name for entry in compiled.blobs] == ["tilemap_0_0"]
    assert [record.pointer.symbol for row in compiled.rows for record in row.records] == [
        "tilemap_0_0",
        "tilemap_0_0",
    ]


def test_split_runs_partition_long_spans() -> None:
    sheet = _sheet(_tile("a", 0))
    config = EncoderConfig(max_run_length=4)
    compiled = compile_tilemap(sheet, grid_from_rows([[1] * 10]), config)

    spans = sorted((record.start, record.end) for record in compiled.rows[0].records)
    assert spans == [(0, 3), (4, 7), (8, 9)]


def test_mode_change_is_a_run_boundary() -> None:
    sheet = _sheet(_tile("a", 0), _tile("b", 1), _tile("w", 2, mode="160B"))
    config = EncoderConfig(left_to_right=True)
    compiled = compile_tilemap(sheet, grid_from_rows([[2, 1, 3, 3]]), config)

    assert [(record.start, record.end) for record in compiled.rows[0].records] == [
        (0, 1),
        (2, 3),
    ]


def test_empty_grid_only_has_terminators() -> None:
    compiled = compile_tilemap(_sheet(_tile("a", 0)), Grid(width=3, height=2, cells=(0,) * 6))

    assert all(row.records == () for row in compiled.rows)
    linked = compiled.link({"tilemap_0_data": 0x8000})
    assert linked["tilemap_0_data"] == b"\x00\x00"
    assert linked["tilemap_data_ptrs_low"] == b"\x00\x00"
    assert linked["tilemap_data_ptrs_high"] == b"\x80\x80"


def test_every_cell_is_covered_once() -> None:
    sheet = _sheet(
        _tile("ground", 0),
        _tile("grass", 1),
        _tile("tree", 2, background="ground", palette=1),
        _tile("rock", 3, palette=1),
        _tile("bush", 4, background="grass", palette=1, fake=True),
    )
    rows = [
        [1, 3, 3, 4, 2, 5, 0, 1],
        [3, 2, 5, 5, 4, 1, 1, 3],
        [0, 0, 0, 0, 0, 0, 0, 0],
        [5, 4, 3, 9999, 1, 2, 2, 2],
    ]

    layers = {1: 1, 2: 1, 3: 2, 4: 1, 5: 2}

    for left_to_right in (False, True):
        config = EncoderConfig(left_to_right=left_to_right)
        compiled = compile_tilemap(sheet, grid_from_rows(rows), config)
        for values, row in zip(rows, compiled.rows):
            covered = Counter(
                column
                for record in row.records
                for column in range(record.start, record.end + 1)
            )
            expected = Counter(
                {column: layers[value] for column, value in enumerate(values) if value in layers}
            )
            assert covered == expected


def test_sequences_are_emitted_only_when_used() -> None:
    sheet = _sheet(
        *(_tile(name, column) for column, name in enumerate("abcde")),
        sequences=(
            SequenceDefinition(name="walk", tiles=("a", "b", "c", "d", "e")),
            SequenceDefinition(name="idle", tiles=("e", "a")),
        ),
    )

    compiled = compile_tilemap(sheet, grid_from_rows([[2, 3, 0, 0]]))

    (record,) = compiled.rows[0].records
    assert record.pointer == Pointer("walk", 1)
    assert [entry.name for entry in compiled.sequences] == ["walk"]
    assert [entry.name for entry in compiled.blobs] == ["walk"]


def test_link_resolves_blob_and_row_symbols() -> None:
    compiled = compile_tilemap(_gapped_sheet(), grid_from_rows([[1, 2, 3, 4]]))

    symbols = {"tilemap_0_0": 0x1200, "tilemap_0_1": 0x1210, "tilemap_0_data": 0x1300}
    linked = compiled.link(symbols)

    assert linked["tilemap_0_0"] == bytes([10, 11])
    assert linked["tilemap_0_1"] == bytes([20, 21])
    assert linked["tilemap_0_data"] == bytes(
        [0x00, 0x60, 0x12, 0x1E, 0x00, 0x10, 0x60, 0x12, 0x1E, 0x08, 0x00, 0x00]
    )
    assert linked["tilemap_data_ptrs_high"] == b"\x13"
    with pytest.raises(ConfigurationError):
        compiled.link({"tilemap_0_0": 0x1200})


def test_manifest_is_json_ready() -> None:
    compiled = compile_tilemap(_gapped_sheet(), grid_from_rows([[1, 2, 3, 4]]))

    manifest = compiled.to_dict()

    assert manifest["rows"][0]["records"][0]["kind"] == "indirect"
    assert manifest["blobs"][0]["entries"] == [10, 11]
    assert manifest["pointer_table"]["rows"] == ["tilemap_0_data"]
    assert manifest["dma_cycles"] == [2 * ((10 + 3 + 9 * 2) // 2)]


def test_grid_size_mismatch_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="holds 3"):
        Grid(width=2, height=2, cells=(1, 2, 3))
    with pytest.raises(ConfigurationError, match="same length"):
        grid_from_rows([[1, 2], [3]])


def test_plain_tilemap_values() -> None:
    grid = grid_from_rows([[0, 1], [3, 0]])

    assert plain_tilemap(grid) == (0, 0, 4, 0)
    assert plain_tilemap(grid, boundaries=True) == (0xFF, 0, 0, 0xFF, 4, 0, 0xFF)
