"""Encoder configuration knobs and their TOML loader."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping

import tomllib

from .errors import ConfigurationError

# Width field of a MARIA header: five bits, two's complement, 0 meaning 32.
HEADER_WIDTH_LIMIT = 32
SHORT_HEADER_WIDTH_LIMIT = 31


class DirectHeader(Enum):
    """Header size policy for direct (immediate and continuous) records."""

    AUTO = "auto"
    SHORT = "short"
    LONG = "long"


@dataclass(frozen=True)
class EncoderConfig:
    """Options that change how runs are searched and encoded."""

    varname: str = "tilemap"
    max_run_length: int = SHORT_HEADER_WIDTH_LIMIT
    max_tileset_size: int | None = None
    min_continuous_length: int = 3
    left_to_right: bool = False
    immediate: bool = False
    forbid_immediate: bool = False
    direct_header: DirectHeader = DirectHeader.AUTO
    column_offset: int = 0
    tiles_symbol: str = "tiles"

    def __post_init__(self) -> None:
        if not isinstance(self.direct_header, DirectHeader):
            object.__setattr__(self, "direct_header", _coerce_direct_header(self.direct_header))
        if not self.varname.isidentifier():
            raise ConfigurationError(f"varname {self.varname!r} is not a valid identifier")
        if not self.tiles_symbol.isidentifier():
            raise ConfigurationError(f"tiles_symbol {self.tiles_symbol!r} is not a valid identifier")
        limit = (
            HEADER_WIDTH_LIMIT
            if self.direct_header is DirectHeader.LONG
            else SHORT_HEADER_WIDTH_LIMIT
        )
        if not 1 <= self.max_run_length <= limit:
            raise ConfigurationError(
                f"max_run_length {self.max_run_length} outside 1-{limit} "
                f"for {self.direct_header.value} direct headers"
            )
        if self.max_tileset_size is not None and self.max_tileset_size < 1:
            raise ConfigurationError("max_tileset_size must be at least 1")
        if self.min_continuous_length < 1:
            raise ConfigurationError("min_continuous_length must be at least 1")
        if not 0 <= self.column_offset <= 0xFF:
            raise ConfigurationError(f"column_offset {self.column_offset} outside 0-255")

    @property
    def immediate_enabled(self) -> bool:
        return self.immediate and not self.forbid_immediate

    def run_limit(self, tile_bytes: int) -> int:
        """Return the maximum number of cells in a run of ``tile_bytes`` wide tiles."""

        limit = max(1, self.max_run_length // max(1, tile_bytes))
        if self.max_tileset_size is not None:
            limit = min(limit, self.max_tileset_size)
        return limit

    def with_overrides(self, **overrides: Any) -> "EncoderConfig":
        """Return a copy with every non-``None`` override applied."""

        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self


def load_encoder_config(config_path: Path) -> EncoderConfig:
    """Parse the ``[tiles7800]`` table of the TOML file at ``config_path``."""

    with config_path.open("rb") as stream:
        try:
            raw_data = tomllib.load(stream)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigurationError(f"invalid TOML in {config_path}: {exc}") from exc
    return parse_encoder_config(_parse_section(raw_data))


def parse_encoder_config(section: Mapping[str, Any]) -> EncoderConfig:
    """Build an :class:`EncoderConfig` from an already parsed mapping."""

    known = {item.name: item for item in fields(EncoderConfig)}
    values: Dict[str, Any] = {}
    for key, raw_value in section.items():
        if key not in known:
            raise ConfigurationError(f"unknown encoder option {key!r}")
        values[key] = _coerce_option(key, raw_value)
    return EncoderConfig(**values)


def _parse_section(data: Mapping[str, Any]) -> Mapping[str, Any]:
    section = data.get("tiles7800")
    if section is None:
        raise ConfigurationError("encoder configuration requires a [tiles7800] table")
    if not isinstance(section, Mapping):
        raise ConfigurationError("[tiles7800] section must be a mapping")
    return section


_BOOL_OPTIONS = frozenset({"left_to_right", "immediate", "forbid_immediate"})
_INT_OPTIONS = frozenset(
    {"max_run_length", "max_tileset_size", "min_continuous_length", "column_offset"}
)
_STR_OPTIONS = frozenset({"varname", "tiles_symbol"})


def _coerce_option(key: str, raw_value: Any) -> Any:
    if key in _BOOL_OPTIONS:
        if not isinstance(raw_value, bool):
            raise ConfigurationError(f"{key} must be a boolean")
        return raw_value
    if key in _INT_OPTIONS:
        if isinstance(raw_value, bool) or not isinstance(raw_value, (int, str)):
            raise ConfigurationError(f"{key} must be an integer")
        try:
            return int(raw_value, base=0) if isinstance(raw_value, str) else raw_value
        except ValueError as exc:
            raise ConfigurationError(f"invalid integer for {key}: {raw_value!r}") from exc
    if key in _STR_OPTIONS:
        if not isinstance(raw_value, str):
            raise ConfigurationError(f"{key} must be a string")
        return raw_value
    return _coerce_direct_header(raw_value)


def _coerce_direct_header(raw_value: Any) -> DirectHeader:
    text = str(raw_value).strip().lower()
    for member in DirectHeader:
        if member.value == text:
            return member
    choices = ", ".join(member.value for member in DirectHeader)
    raise ConfigurationError(f"direct_header must be one of {choices}, got {raw_value!r}")


__all__ = [
    "DirectHeader",
    "EncoderConfig",
    "HEADER_WIDTH_LIMIT",
    "SHORT_HEADER_WIDTH_LIMIT",
    "load_encoder_config",
    "parse_encoder_config",
]
