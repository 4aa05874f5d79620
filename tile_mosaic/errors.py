"""Exception hierarchy shared by every stage of the pipeline."""

from __future__ import annotations


class MosaicError(Exception):
    """Base class for all errors raised by tile_mosaic."""


class OutOfBounds(MosaicError, IndexError):
    """A coordinate or region falls outside a PixelBuffer.

    Always a programming error: the tile grid and the buffer disagree.
    """


class EmptyTile(MosaicError, ValueError):
    """A tile bounding box covers zero pixels."""


class TileFetchError(MosaicError):
    """The remote tile collaborator could not provide a usable tile image.

    Recoverable: the row processor falls back to an average-colour fill.
    """


class RemoteUnavailable(TileFetchError):
    """Network failure, timeout or error status from the tile server."""


class InvalidResponse(TileFetchError):
    """The tile server answered with something that is not the requested image."""


class ScratchStoreError(MosaicError):
    """Reading or writing the scratch image failed."""
