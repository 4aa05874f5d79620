"""Mutable RGB pixel grid backed by a numpy array."""

from __future__ import annotations

import numpy as np

from tile_mosaic.errors import OutOfBounds

RGB = tuple[int, int, int]


def _as_channels(values) -> np.ndarray:
    """Validate integer channel values in 0..255 and return them as uint8.

    Anything else raises ValueError; numpy is never left to wrap or clip.
    """
    array = np.asarray(values)
    if array.dtype == np.uint8:
        return array
    if array.dtype.kind not in "iu":
        msg = f"Channel values must be integers, got dtype {array.dtype}"
        raise ValueError(msg)
    if array.size and (array.min() < 0 or array.max() > 255):
        msg = f"Channel values must be in 0..255, got {array.min()}..{array.max()}"
        raise ValueError(msg)
    return array.astype(np.uint8)


class PixelBuffer:
    """A fixed-size ``width x height`` grid of RGB pixels.

    Pixels live in a ``(height, width, 3)`` uint8 array in row-major order.
    Dimensions never change after construction. Reads through
    :meth:`region` and :meth:`view` return read-only views so they can be
    handed to worker threads while the owner keeps the only writable handle.
    """

    __slots__ = ("_pixels",)

    def __init__(self, width: int, height: int, fill: RGB = (0, 0, 0)) -> None:
        if width < 1 or height < 1:
            msg = f"PixelBuffer needs positive dimensions, got {width}x{height}"
            raise ValueError(msg)
        self._pixels = np.empty((height, width, 3), dtype=np.uint8)
        self._pixels[:, :] = _as_channels(fill)

    @classmethod
    def from_array(cls, array: np.ndarray) -> PixelBuffer:
        """Build a buffer holding a copy of an ``(H, W, 3)`` array."""
        if array.ndim != 3 or array.shape[2] != 3:
            msg = f"Expected an (H, W, 3) array, got shape {array.shape}"
            raise ValueError(msg)
        h, w = array.shape[:2]
        buffer = cls(w, h)
        buffer._pixels[:] = _as_channels(array)
        return buffer

    @property
    def width(self) -> int:
        return self._pixels.shape[1]

    @property
    def height(self) -> int:
        return self._pixels.shape[0]

    # -- Single pixels -------------------------------------------------

    def get(self, x: int, y: int) -> RGB:
        self._check_point(x, y)
        r, g, b = self._pixels[y, x]
        return int(r), int(g), int(b)

    def set(self, x: int, y: int, rgb: RGB) -> None:
        self._check_point(x, y)
        self._pixels[y, x] = _as_channels(rgb)

    # -- Regions -------------------------------------------------------

    def region(self, x: int, y: int, width: int, height: int) -> np.ndarray:
        """Read-only ``(height, width, 3)`` view of a rectangle."""
        self._check_region(x, y, width, height)
        view = self._pixels[y:y + height, x:x + width]
        view.flags.writeable = False
        return view

    def set_region(
        self,
        x: int,
        y: int,
        width: int,
        height: int,
        pixels: np.ndarray,
    ) -> None:
        """Overwrite a rectangle in one call.

        Args:
            x, y:          Top-left corner of the rectangle.
            width, height: Extent of the rectangle in pixels.
            pixels:        ``(height, width, 3)`` array of new values.
        """
        self._check_region(x, y, width, height)
        if pixels.shape != (height, width, 3):
            msg = (
                f"Pixel data of shape {pixels.shape} does not fit a "
                f"{width}x{height} region"
            )
            raise ValueError(msg)
        self._pixels[y:y + height, x:x + width] = _as_channels(pixels)

    def view(self) -> np.ndarray:
        """Read-only view of the whole grid."""
        view = self._pixels[:]
        view.flags.writeable = False
        return view

    def to_array(self) -> np.ndarray:
        """Independent copy of the pixel data."""
        return self._pixels.copy()

    # -- Bounds checks -------------------------------------------------

    def _check_point(self, x: int, y: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            msg = f"Pixel ({x}, {y}) outside {self.width}x{self.height} buffer"
            raise OutOfBounds(msg)

    def _check_region(self, x: int, y: int, width: int, height: int) -> None:
        if (
            x < 0 or y < 0 or width < 0 or height < 0
            or x + width > self.width
            or y + height > self.height
        ):
            msg = (
                f"Region {width}x{height} at ({x}, {y}) outside "
                f"{self.width}x{self.height} buffer"
            )
            raise OutOfBounds(msg)

    def __repr__(self) -> str:
        return f"PixelBuffer({self.width}x{self.height})"
