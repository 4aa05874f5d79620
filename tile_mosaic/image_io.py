"""Scratch image persistence and source image loading."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from tile_mosaic.errors import ScratchStoreError
from tile_mosaic.pixel_buffer import PixelBuffer

logger = logging.getLogger(__name__)

_JPEG_SUFFIXES = frozenset({".jpg", ".jpeg", ".jfif"})


def compute_target_size(
    original_width: int,
    original_height: int,
    max_side: int,
) -> tuple[int, int]:
    """Compute downscaled (w, h) preserving aspect ratio.

    The longest side becomes *max_side*; the other is scaled
    proportionally (rounded to the nearest integer, minimum 1).
    """
    if original_width >= original_height:
        w = max_side
        h = max(1, round(original_height * max_side / original_width))
    else:
        h = max_side
        w = max(1, round(original_width * max_side / original_height))
    return w, h


def load_source(path: str | Path, max_side: int | None = None) -> np.ndarray:
    """Load any Pillow-readable image as an (H, W, 3) uint8 array.

    When *max_side* is given and the image is larger, it is downscaled so
    its longest side is *max_side*.
    """
    img = Image.open(path).convert("RGB")
    if max_side is not None and max(img.width, img.height) > max_side:
        w, h = compute_target_size(img.width, img.height, max_side)
        img = img.resize((w, h), Image.LANCZOS)
    return np.array(img, dtype=np.uint8)


class ScratchStore:
    """The in-progress mosaic, kept as a single image file.

    The file format follows the path suffix. JPEG files are written at
    *quality* with chroma subsampling off; other formats ignore it.
    Saves go through a temporary file in the same directory and replace
    the target atomically.
    """

    def __init__(self, path: str | Path, quality: int = 100) -> None:
        self.path = Path(path)
        self.quality = quality

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> PixelBuffer:
        try:
            with Image.open(self.path) as img:
                array = np.array(img.convert("RGB"), dtype=np.uint8)
        except (OSError, UnidentifiedImageError) as exc:
            msg = f"Cannot load scratch image {self.path}: {exc}"
            raise ScratchStoreError(msg) from exc
        return PixelBuffer.from_array(array)

    def save(self, buffer: PixelBuffer) -> None:
        img = Image.fromarray(buffer.to_array())
        fmt = Image.registered_extensions().get(self.path.suffix.lower())
        options = {}
        if self.path.suffix.lower() in _JPEG_SUFFIXES:
            options = {"quality": self.quality, "subsampling": 0}

        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.stem}-", suffix=self.path.suffix,
                dir=self.path.parent,
            )
            with os.fdopen(fd, "wb") as stream:
                img.save(stream, format=fmt, **options)
            os.replace(tmp_name, self.path)
        except (OSError, ValueError, KeyError) as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            msg = f"Cannot save scratch image {self.path}: {exc}"
            raise ScratchStoreError(msg) from exc

    def init_from_image(
        self,
        source: str | Path,
        max_side: int | None = None,
    ) -> PixelBuffer:
        """Replace the scratch image with a copy of *source*.

        Returns the buffer that was written.
        """
        try:
            array = load_source(source, max_side)
        except (OSError, UnidentifiedImageError) as exc:
            msg = f"Cannot read source image {source}: {exc}"
            raise ScratchStoreError(msg) from exc
        buffer = PixelBuffer.from_array(array)
        self.save(buffer)
        logger.info(
            "Scratch image %s initialised from %s (%dx%d)",
            self.path, source, buffer.width, buffer.height,
        )
        return buffer

    def __repr__(self) -> str:
        return f"ScratchStore({str(self.path)!r}, quality={self.quality})"
