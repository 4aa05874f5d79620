"""Deterministic partition of an image into fixed-size tiles."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from tile_mosaic.pixel_buffer import PixelBuffer


@dataclass(frozen=True)
class TileBox:
    """Actual pixel extent of one tile (already clipped to the image)."""

    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class TileGrid:
    """Tiles of ``tile_width x tile_height`` covering an image.

    Tiles in the last column and row are clipped to the image edge, so the
    boxes cover the image exactly once with no zero-area tiles.
    """

    image_width: int
    image_height: int
    tile_width: int = 32
    tile_height: int = 32

    def __post_init__(self) -> None:
        if self.tile_width < 1 or self.tile_height < 1:
            msg = f"Tile size must be positive, got {self.tile_width}x{self.tile_height}"
            raise ValueError(msg)
        if self.image_width < 0 or self.image_height < 0:
            msg = f"Image size cannot be negative, got {self.image_width}x{self.image_height}"
            raise ValueError(msg)

    @classmethod
    def for_buffer(
        cls,
        buffer: PixelBuffer,
        tile_width: int = 32,
        tile_height: int = 32,
    ) -> TileGrid:
        return cls(buffer.width, buffer.height, tile_width, tile_height)

    @property
    def tile_count_x(self) -> int:
        return -(-self.image_width // self.tile_width)

    @property
    def tile_count_y(self) -> int:
        return -(-self.image_height // self.tile_height)

    @property
    def total_tiles(self) -> int:
        return self.tile_count_x * self.tile_count_y

    def row(self, index: int) -> list[TileBox]:
        """Boxes of tile row *index*, left to right."""
        if not 0 <= index < self.tile_count_y:
            msg = f"Tile row {index} outside 0..{self.tile_count_y - 1}"
            raise IndexError(msg)
        y = index * self.tile_height
        h = min(self.tile_height, self.image_height - y)
        return [
            TileBox(x, y, min(self.tile_width, self.image_width - x), h)
            for x in range(0, self.image_width, self.tile_width)
        ]

    def rows(self) -> Iterator[list[TileBox]]:
        """Tile rows from top to bottom."""
        for index in range(self.tile_count_y):
            yield self.row(index)

    def boxes(self) -> Iterator[TileBox]:
        """Every tile in row-major order."""
        for row in self.rows():
            yield from row
