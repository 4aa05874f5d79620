"""
Tile Mosaic
===========

Turn an image into a mosaic of tiles, one row at a time, persisting the
work in progress to a scratch image so an interrupted run can resume.
Each tile is painted by one of two strategies:

- **Average colour fill** (local, never fails)
- **Remote fetch** from an HTTP tile server, falling back to the fill
"""

__version__ = "1.0.0"

from tile_mosaic.color_utils import average_color, hex_to_rgb, rgb_to_hex
from tile_mosaic.config import MosaicConfig
from tile_mosaic.errors import (
    EmptyTile,
    InvalidResponse,
    MosaicError,
    OutOfBounds,
    RemoteUnavailable,
    ScratchStoreError,
    TileFetchError,
)
from tile_mosaic.events import (
    CancellationToken,
    Cancelled,
    Finished,
    ProgressEvent,
    QueueSink,
)
from tile_mosaic.image_io import ScratchStore, compute_target_size, load_source
from tile_mosaic.pipeline import MosaicPipeline, MosaicRun, ProcessingState
from tile_mosaic.pixel_buffer import PixelBuffer
from tile_mosaic.row_processor import RowOutcome, RowProcessor
from tile_mosaic.strategies import (
    AverageColorFill,
    RemoteFetch,
    TileImageStrategy,
    TileRequest,
    TileResult,
    make_strategy,
)
from tile_mosaic.tile_grid import TileBox, TileGrid

__all__ = [
    "AverageColorFill",
    "CancellationToken",
    "Cancelled",
    "EmptyTile",
    "Finished",
    "InvalidResponse",
    "MosaicConfig",
    "MosaicError",
    "MosaicPipeline",
    "MosaicRun",
    "OutOfBounds",
    "PixelBuffer",
    "ProcessingState",
    "ProgressEvent",
    "QueueSink",
    "RemoteFetch",
    "RemoteUnavailable",
    "RowOutcome",
    "RowProcessor",
    "ScratchStore",
    "ScratchStoreError",
    "TileBox",
    "TileFetchError",
    "TileGrid",
    "TileImageStrategy",
    "TileRequest",
    "TileResult",
    "average_color",
    "compute_target_size",
    "hex_to_rgb",
    "load_source",
    "make_strategy",
    "rgb_to_hex",
]
