"""Readers for sprite-sheet descriptions, tile grids and pre-encoded pixel bytes."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Tuple

import yaml
from PIL import Image

from .catalog import Mirror, TileDefinition, TileSheet
from .compiler import Grid
from .errors import ConfigurationError
from .modes import DEFAULT_MODE
from .sequences import SequenceDefinition

LOGGER = logging.getLogger(__name__)


def load_tile_sheet(
    sheet_path: Path,
    *,
    cell_width: int = 8,
    cell_height: int = 8,
) -> TileSheet:
    """Return the first sprite sheet declared in the YAML file at ``sheet_path``.

    ``cell_width`` and ``cell_height`` come from the map editor and may be
    overridden by ``tilewidth``/``tileheight`` keys on the sheet. When the
    sheet does not declare ``image_width``/``image_height`` the atlas image is
    opened to read its size.
    """

    try:
        with sheet_path.open("r", encoding="utf-8") as stream:
            document = yaml.safe_load(stream)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in {sheet_path}: {exc}") from exc
    if not isinstance(document, Mapping):
        raise ConfigurationError(f"{sheet_path} must contain a mapping")
    return parse_tile_sheet(
        document,
        base_dir=sheet_path.parent,
        cell_width=cell_width,
        cell_height=cell_height,
    )


def parse_tile_sheet(
    document: Mapping[str, Any],
    *,
    base_dir: Path | None = None,
    cell_width: int = 8,
    cell_height: int = 8,
) -> TileSheet:
    """Build a :class:`TileSheet` from an already parsed YAML document."""

    sheets = document.get("sprite_sheets")
    if not isinstance(sheets, list) or not sheets:
        raise ConfigurationError("sheet description declares no sprite_sheets")
    if len(sheets) != 1:
        LOGGER.warning("only the first sprite sheet (tiles) will be used")
    raw_sheet = sheets[0]
    if not isinstance(raw_sheet, Mapping):
        raise ConfigurationError("sprite sheet entries must be mappings")

    cell_width = _coerce_int(raw_sheet.get("tilewidth", cell_width), "tilewidth")
    cell_height = _coerce_int(raw_sheet.get("tileheight", cell_height), "tileheight")
    image = raw_sheet.get("image")
    image_path = None
    if image is not None:
        image_path = Path(str(image))
        if base_dir is not None and not image_path.is_absolute():
            image_path = base_dir / image_path
    image_width, image_height = _image_size(raw_sheet, image_path)

    sprites = raw_sheet.get("sprites")
    if not isinstance(sprites, list):
        raise ConfigurationError("sprite sheet requires a list of sprites")
    bank = raw_sheet.get("bank")

    return TileSheet(
        tiles=tuple(_parse_sprite(entry) for entry in sprites),
        image_width=image_width,
        image_height=image_height,
        cell_width=cell_width,
        cell_height=cell_height,
        mode=str(raw_sheet.get("mode", DEFAULT_MODE)),
        mirror=Mirror.parse(raw_sheet.get("mirror")),
        bank=None if bank is None else _coerce_int(bank, "bank"),
        sequences=tuple(_parse_sequence(entry) for entry in raw_sheet.get("sequences") or ()),
        image=None if image_path is None else str(image_path),
    )


def _image_size(raw_sheet: Mapping[str, Any], image_path: Path | None) -> Tuple[int, int]:
    if "image_width" in raw_sheet and "image_height" in raw_sheet:
        return (
            _coerce_int(raw_sheet["image_width"], "image_width"),
            _coerce_int(raw_sheet["image_height"], "image_height"),
        )
    if image_path is None:
        raise ConfigurationError("sprite sheet needs an image or image_width/image_height")
    try:
        with Image.open(image_path) as atlas:
            width, height = atlas.size
    except OSError as exc:
        raise ConfigurationError(f"cannot open image {image_path}: {exc}") from exc
    LOGGER.debug("atlas %s is %dx%d pixels", image_path, width, height)
    return width, height


def _parse_sprite(raw: Any) -> TileDefinition:
    if not isinstance(raw, Mapping):
        raise ConfigurationError("sprite entries must be mappings")
    try:
        name = str(raw["name"])
        top = _coerce_int(raw["top"], "top")
        left = _coerce_int(raw["left"], "left")
        width = _coerce_int(raw["width"], "width")
    except KeyError as exc:
        raise ConfigurationError(f"sprite {raw.get('name', '?')!r} is missing {exc.args[0]!r}") from exc

    palette = raw.get("palette_number")
    if palette is None and isinstance(raw.get("palette"), int):
        palette = raw["palette"]
    alias = raw.get("alias")
    background = raw.get("background")
    return TileDefinition(
        name=name,
        top=top,
        left=left,
        width=width,
        height=_coerce_int(raw.get("height", 16), "height"),
        mode=None if raw.get("mode") is None else str(raw["mode"]),
        palette=0 if palette is None else _coerce_int(palette, "palette_number"),
        alias=None if alias is None else str(alias),
        mirror=Mirror.parse(raw.get("mirror")),
        background=None if background is None else str(background),
        fake=bool(raw.get("fake", False)),
    )


def _parse_sequence(raw: Any) -> SequenceDefinition:
    if not isinstance(raw, Mapping) or "name" not in raw:
        raise ConfigurationError("sequence entries must be mappings with a name")
    return SequenceDefinition(
        name=str(raw["name"]),
        tiles=_coerce_names(raw.get("tiles", ()), "tiles"),
        prefix=_coerce_names(raw.get("prefix", ()), "prefix"),
        postfix=_coerce_names(raw.get("postfix", ()), "postfix"),
        repeat=_coerce_int(raw.get("repeat", 1), "repeat"),
        generate=bool(raw.get("generate", True)),
    )


def _coerce_names(raw: Any, field_name: str) -> Tuple[str, ...]:
    if isinstance(raw, str):
        return (raw,)
    if not isinstance(raw, Sequence):
        raise ConfigurationError(f"{field_name} must be a list of tile names")
    return tuple(str(item) for item in raw)


def _coerce_int(raw: Any, field_name: str) -> int:
    if isinstance(raw, bool):
        raise ConfigurationError(f"{field_name} must be an integer")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        try:
            return int(raw, base=0)
        except ValueError as exc:
            raise ConfigurationError(f"invalid integer for {field_name}: {raw!r}") from exc
    raise ConfigurationError(f"{field_name} must be an integer")


def load_grid(grid_path: Path) -> Grid:
    """Parse a JSON grid document ``{"width", "height", "cells"}``."""

    document = _load_json(grid_path)
    if not isinstance(document, Mapping):
        raise ConfigurationError(f"{grid_path} must contain a JSON object")
    try:
        width = _coerce_int(document["width"], "width")
        height = _coerce_int(document["height"], "height")
        raw_cells = document["cells"]
    except KeyError as exc:
        raise ConfigurationError(f"grid is missing {exc.args[0]!r}") from exc
    if not isinstance(raw_cells, list):
        raise ConfigurationError("grid cells must be a list")
    cells: List[int] = []
    for item in raw_cells:
        if isinstance(item, list):
            cells.extend(_coerce_int(value, "cells") for value in item)
        else:
            cells.append(_coerce_int(item, "cells"))
    return Grid(
        width=width,
        height=height,
        cells=tuple(cells),
        cell_width=_coerce_int(document.get("tilewidth", 8), "tilewidth"),
        cell_height=_coerce_int(document.get("tileheight", 8), "tileheight"),
    )


def load_tile_graphics(graphics_path: Path) -> Dict[str, bytes]:
    """Return pre-encoded pixel bytes keyed by tile name from a JSON hex mapping."""

    document = _load_json(graphics_path)
    if not isinstance(document, Mapping):
        raise ConfigurationError(f"{graphics_path} must contain a JSON object")
    graphics: Dict[str, bytes] = {}
    for name, payload in document.items():
        if not isinstance(payload, str):
            raise ConfigurationError(f"pixel bytes for {name!r} must be a hex string")
        try:
            graphics[str(name)] = bytes.fromhex(payload)
        except ValueError as exc:
            raise ConfigurationError(f"invalid hex pixel bytes for {name!r}") from exc
    return graphics


def _load_json(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as stream:
            return json.load(stream)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"invalid JSON in {path}: {exc}") from exc


__all__ = [
    "load_grid",
    "load_tile_graphics",
    "load_tile_sheet",
    "parse_tile_sheet",
]
