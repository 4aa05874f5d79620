"""Tile colour averaging and RGB/hex conversion."""

from __future__ import annotations

import numpy as np

from tile_mosaic.errors import EmptyTile
from tile_mosaic.pixel_buffer import RGB, PixelBuffer
from tile_mosaic.tile_grid import TileBox


def average_color(buffer: PixelBuffer, box: TileBox) -> RGB:
    """Mean colour of the pixels inside *box*.

    Each channel is summed over the box and divided by the pixel count with
    integer division, so the result is truncated toward zero.

    Raises:
        EmptyTile: *box* covers no pixels.
        OutOfBounds: *box* extends past the buffer.
    """
    pixels = buffer.region(box.x, box.y, box.width, box.height)
    count = box.area
    if count == 0:
        msg = f"Tile at ({box.x}, {box.y}) has no pixels"
        raise EmptyTile(msg)
    sums = pixels.reshape(-1, 3).sum(axis=0, dtype=np.int64)
    r, g, b = (int(s) // count for s in sums)
    return r, g, b


def rgb_to_hex(rgb: RGB) -> str:
    """``(255, 127, 17)`` -> ``"ff7f11"`` (no leading ``#``)."""
    r, g, b = rgb
    return f"{r:02x}{g:02x}{b:02x}"


def hex_to_rgb(hex_str: str) -> RGB:
    """Parse ``"#RRGGBB"`` or ``"RRGGBB"``."""
    h = hex_str.lstrip("#")
    if len(h) != 6:
        msg = f"Expected 6 hex digits, got {hex_str!r}"
        raise ValueError(msg)
    return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)
