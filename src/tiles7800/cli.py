"""Generate sparse-tiling C code for Atari 7800 tile maps."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Sequence

from .compiler import compile_tilemap, plain_tilemap
from .config import DirectHeader, EncoderConfig, load_encoder_config
from .emit import render_c_source, render_plain_tilemap
from .errors import TilemapError
from .loaders import load_grid, load_tile_graphics, load_tile_sheet

LOGGER = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Return parsed command-line arguments for ``tiles7800``."""

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("grid", type=Path, help="JSON grid exported from the map editor")
    parser.add_argument(
        "sheet",
        type=Path,
        nargs="?",
        help="YAML sprite sheet description (required unless --plain)",
    )
    parser.add_argument("--config", type=Path, help="TOML file with a [tiles7800] table")
    parser.add_argument("--gfx", type=Path, help="JSON mapping of tile names to hex pixel bytes")
    parser.add_argument("--varname", help="Generated array name (default: tilemap)")
    parser.add_argument("--maxsize", type=int, help="Maximum number of tiles per run")
    parser.add_argument(
        "--immediate",
        action="store_true",
        help="Inline pixel bytes for runs whose tiles have graphics",
    )
    parser.add_argument(
        "--forbid-immediate",
        action="store_true",
        help="Never emit immediate blobs, even when the config enables them",
    )
    parser.add_argument(
        "--left-to-right",
        action="store_true",
        help="Emit runs in column order instead of background first",
    )
    parser.add_argument(
        "--direct",
        choices=[member.value for member in DirectHeader],
        help="Header size policy for direct records",
    )
    parser.add_argument("--offset", type=int, help="Column offset added to every hpos")
    parser.add_argument(
        "--plain",
        action="store_true",
        help="Emit a plain (non-sparse) tilemap array instead",
    )
    parser.add_argument(
        "--boundaries",
        action="store_true",
        help="Frame each plain tilemap row with 0xff",
    )
    parser.add_argument("--json", action="store_true", help="Emit the JSON manifest")
    parser.add_argument("--output", type=Path, help="Write to this file instead of stdout")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> EncoderConfig:
    """Merge the optional TOML config with command-line overrides."""

    config = EncoderConfig()
    if args.config is not None:
        if not args.config.is_file():
            raise SystemExit(f"configuration file not found: {args.config}")
        config = load_encoder_config(args.config)
    return config.with_overrides(
        varname=args.varname,
        max_tileset_size=args.maxsize,
        immediate=True if args.immediate else None,
        forbid_immediate=True if args.forbid_immediate else None,
        left_to_right=True if args.left_to_right else None,
        direct_header=args.direct,
        column_offset=args.offset,
    )


def render(args: argparse.Namespace) -> str:
    """Run the requested compilation and return the text to write."""

    for path in (args.grid, args.sheet, args.gfx):
        if path is not None and not path.is_file():
            raise SystemExit(f"input file not found: {path}")
    config = build_config(args)
    grid = load_grid(args.grid)

    if args.plain:
        if args.json:
            values = plain_tilemap(grid, boundaries=args.boundaries)
            return json.dumps({"varname": config.varname, "values": list(values)}) + "\n"
        return render_plain_tilemap(grid, config.varname, boundaries=args.boundaries)

    if args.sheet is None:
        raise SystemExit("a sprite sheet description is required for sparse tiling")
    sheet = load_tile_sheet(
        args.sheet, cell_width=grid.cell_width, cell_height=grid.cell_height
    )
    graphics = load_tile_graphics(args.gfx) if args.gfx is not None else None
    compiled = compile_tilemap(sheet, grid, config, graphics)
    if args.json:
        return json.dumps(compiled.to_dict(), indent=2) + "\n"
    return render_c_source(compiled)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the ``tiles7800`` command."""

    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level))
    try:
        text = render(args)
    except TilemapError as error:
        raise SystemExit(str(error)) from error

    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(text, encoding="utf-8")
        LOGGER.info("wrote %s", args.output)
    else:
        print(text, end="")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
