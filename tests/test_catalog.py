from __future__ import annotations

import pytest

from tiles7800.catalog import Mirror, TileCatalog, TileDefinition, TileSheet
from tiles7800.errors import ConfigurationError


def _tile(name: str, column: int, row: int = 0, **kwargs) -> TileDefinition:
    kwargs.setdefault("width", 8)
    kwargs.setdefault("height", 8)
    return TileDefinition(name=name, top=row * 8, left=column * 8, **kwargs)


def _sheet(*tiles: TileDefinition, **kwargs) -> TileSheet:
    kwargs.setdefault("image_width", 64)
    kwargs.setdefault("image_height", 16)
    return TileSheet(tiles=tiles, **kwargs)


def test_indices_advance_by_mode_stride() -> None:
    catalog = TileCatalog.build(
        _sheet(
            _tile("a", 0),
            _tile("b", 1, mode="160B"),
            _tile("c", 2),
        )
    )

    a, b, c = (catalog.lookup(value) for value in (1, 2, 3))
    assert (a.index, b.index, c.index) == (0, 1, 3)
    assert b.entries == (1, 2)
    assert b.mode.name == "160B"
    assert c.mode.name == "160A"


def test_multi_cell_definition_places_every_cell() -> None:
    catalog = TileCatalog.build(_sheet(_tile("big", 2, width=16, height=16)))

    # columns = 64 / 8 = 8
    assert [catalog.lookup(value).index for value in (3, 4, 11, 12)] == [0, 1, 2, 3]
    assert [tile.index for tile in catalog.cells_of("big")] == [0, 1, 2, 3]
    assert catalog.lookup(5) is None


def test_alias_reuses_index_without_advancing() -> None:
    catalog = TileCatalog.build(
        _sheet(
            _tile("a", 0),
            _tile("copy", 1, alias="a"),
            _tile("b", 2),
        )
    )

    assert catalog.lookup(2).index == 0
    assert catalog.lookup(3).index == 1


def test_mirrored_alias_uses_next_index_and_mirrored_background() -> None:
    catalog = TileCatalog.build(
        _sheet(
            _tile("ground", 0),
            _tile("tree", 1, background="ground", palette=2),
            _tile(
                "tree_flip", 2, alias="tree", mirror=Mirror.VERTICAL, background="ground"
            ),
        )
    )

    flipped = catalog.lookup(3)
    background, tile = catalog.resolve(3)
    assert flipped.index == 2
    assert tile is flipped
    assert background.index == 1
    assert background.mirrored


def test_unknown_alias_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="aliases unknown tile 'ghost'"):
        TileCatalog.build(_sheet(_tile("a", 0, alias="ghost")))


def test_unknown_background_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="unknown background 'sky'"):
        TileCatalog.build(_sheet(_tile("a", 0, background="sky")))


def test_unknown_tile_mode_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="unknown graphics mode"):
        TileCatalog.build(_sheet(_tile("a", 0, mode="640Z")))


def test_sheet_rejects_unknown_mode() -> None:
    with pytest.raises(ConfigurationError):
        _sheet(_tile("a", 0), mode="A")


def test_resolve_returns_background_then_foreground() -> None:
    catalog = TileCatalog.build(
        _sheet(
            _tile("ground", 0),
            _tile("rock", 1, background="ground", fake=True),
        )
    )

    assert catalog.resolve(0) == ()
    assert catalog.resolve(99) == ()
    assert [tile.name for tile in catalog.resolve(1)] == ["ground"]
    assert [tile.name for tile in catalog.resolve(2)] == ["ground", "rock"]
    assert catalog.lookup(2).fake


def test_multi_cell_background_underlays_matching_cells() -> None:
    catalog = TileCatalog.build(
        _sheet(
            _tile("ground", 0),
            _tile("house", 1, width=16, height=8, background="ground"),
            _tile("wall", 3, width=16, height=8),
            _tile("door", 5, width=16, height=8, background="wall"),
        )
    )

    assert [catalog.resolve(value)[0].name for value in (2, 3)] == ["ground", "ground"]
    assert [catalog.resolve(value)[0].index for value in (6, 7)] == [3, 4]


def test_sheet_vertical_mirror_adds_flipped_positions() -> None:
    catalog = TileCatalog.build(_sheet(_tile("a", 1), mirror=Mirror.VERTICAL))

    # rows = 16 / 8 = 2, so row 0 mirrors onto row 1
    original = catalog.lookup(2)
    mirrored = catalog.lookup(2 + 8)
    assert original.index == 0
    assert mirrored.index == 1
    assert mirrored.mirrored


def test_graphics_are_sliced_per_cell_and_flipped_for_mirrors() -> None:
    payload = bytes(range(16))
    catalog = TileCatalog.build(
        _sheet(
            _tile("pair", 0, width=16, height=8),
            _tile("pair_flip", 2, width=16, height=8, alias="pair", mirror=Mirror.VERTICAL),
        ),
        graphics={"pair": payload},
    )

    left, right = catalog.cells_of("pair")
    assert left.gfx == bytes(range(0, 16, 2))
    assert right.gfx == bytes(range(1, 16, 2))
    flipped_left, _ = catalog.cells_of("pair_flip")
    assert flipped_left.gfx == bytes(reversed(range(0, 16, 2)))
    assert right.gfx_line(1) == b"\x03"


def test_graphics_length_mismatch_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="expected 8"):
        TileCatalog.build(_sheet(_tile("a", 0)), graphics={"a": b"\x00" * 7})


def test_palette_outside_range_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="palette 8"):
        TileCatalog.build(_sheet(_tile("a", 0, palette=8)))


def test_cells_of_unknown_name() -> None:
    catalog = TileCatalog.build(_sheet(_tile("a", 0)))

    with pytest.raises(ConfigurationError, match="unknown tile reference 'b'"):
        catalog.cells_of("b")
