"""Row-by-row orchestration of a mosaic run."""

from __future__ import annotations

import enum
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from tile_mosaic.config import MosaicConfig
from tile_mosaic.errors import ScratchStoreError
from tile_mosaic.events import (
    Cancelled,
    CancellationToken,
    EventSink,
    Finished,
    MosaicEvent,
    ProgressEvent,
)
from tile_mosaic.image_io import ScratchStore
from tile_mosaic.pixel_buffer import PixelBuffer
from tile_mosaic.row_processor import RowProcessor
from tile_mosaic.strategies import TileImageStrategy, make_strategy
from tile_mosaic.tile_grid import TileGrid

logger = logging.getLogger(__name__)


class ProcessingState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


@dataclass(frozen=True)
class MosaicRun:
    """Summary of one finished or cancelled run."""

    state: ProcessingState
    rows_completed: int
    total_rows: int
    tiles_processed: int
    total_tiles: int
    fallbacks: int
    elapsed: float


def percent_complete(tiles_done: int, total_tiles: int) -> int:
    """Integer progress percentage, truncated toward zero."""
    if total_tiles <= 0:
        return 100
    return tiles_done * 100 // total_tiles


class MosaicPipeline:
    """Turns the scratch image into a mosaic, one tile row at a time.

    Each run loads the scratch image, then for every tile row (top to
    bottom) hands the row to a :class:`RowProcessor`, saves the whole
    buffer back to the scratch store and emits a :class:`ProgressEvent`.
    The run ends with exactly one :class:`Finished` or :class:`Cancelled`
    event.

    Args:
        store:    Scratch store read at the start and written after each row.
        config:   Tile size, pool size and strategy selection.
        strategy: Overrides the strategy built from *config*.
        sink:     Receives events; errors raised by it are logged and ignored.
    """

    def __init__(
        self,
        store: ScratchStore,
        config: MosaicConfig | None = None,
        strategy: TileImageStrategy | None = None,
        sink: EventSink | None = None,
    ) -> None:
        self.store = store
        self.config = config or MosaicConfig()
        self.strategy = strategy or make_strategy(self.config)
        self.sink = sink
        self._state = ProcessingState.IDLE
        self._lock = threading.Lock()

    @property
    def state(self) -> ProcessingState:
        return self._state

    def run(self, token: CancellationToken | None = None) -> MosaicRun:
        """Execute one run.

        Raises:
            ScratchStoreError: the scratch image could not be loaded. Nothing
                was processed and the state is left at ``IDLE``.
            RuntimeError: another run on this pipeline is still in flight.
        """
        if not self._lock.acquire(blocking=False):
            msg = "A mosaic run is already in progress on this pipeline"
            raise RuntimeError(msg)
        try:
            self._state = ProcessingState.IDLE
            return self._run(token or CancellationToken())
        finally:
            self._lock.release()

    def _run(self, token: CancellationToken) -> MosaicRun:
        t0 = time.perf_counter()
        buffer = self.store.load()

        cfg = self.config
        grid = TileGrid.for_buffer(buffer, cfg.tile_width, cfg.tile_height)
        total = grid.total_tiles
        self._state = ProcessingState.RUNNING
        logger.info(
            "Mosaic run on %dx%d image | %dx%d tiles = %d | strategy=%s workers=%d",
            buffer.width, buffer.height, grid.tile_count_x, grid.tile_count_y,
            total, self.strategy.name, cfg.max_workers,
        )

        rows_done = 0
        tiles_done = 0
        fallbacks = 0
        with ThreadPoolExecutor(
            max_workers=cfg.max_workers, thread_name_prefix="mosaic-tile",
        ) as executor:
            processor = RowProcessor(self.strategy, executor)
            for row in grid.rows():
                if token.cancelled:
                    break
                outcome = processor.process(buffer, row, token)
                fallbacks += outcome.fallbacks
                if outcome.cancelled:
                    break

                rows_done += 1
                tiles_done += outcome.tiles_committed
                self._persist(buffer)
                percent = percent_complete(tiles_done, total)
                logger.debug(
                    "Row %d/%d committed (%d%%)", rows_done, grid.tile_count_y, percent,
                )
                self._emit(ProgressEvent(percent))

        if rows_done < grid.tile_count_y:
            self._state = ProcessingState.CANCELLED
            self._emit(Cancelled())
        else:
            self._state = ProcessingState.COMPLETED
            self._emit(Finished())

        elapsed = time.perf_counter() - t0
        logger.info(
            "Mosaic run %s after %d/%d rows (%.1f s, %d fallback tiles)",
            self._state.value, rows_done, grid.tile_count_y, elapsed, fallbacks,
        )
        return MosaicRun(
            state=self._state,
            rows_completed=rows_done,
            total_rows=grid.tile_count_y,
            tiles_processed=tiles_done,
            total_tiles=total,
            fallbacks=fallbacks,
            elapsed=elapsed,
        )

    def _persist(self, buffer: PixelBuffer) -> None:
        try:
            self.store.save(buffer)
        except ScratchStoreError:
            # The in-memory buffer is still intact; the next row saves again.
            logger.exception("Saving scratch image failed, continuing in memory")

    def _emit(self, event: MosaicEvent) -> None:
        if self.sink is None:
            return
        try:
            self.sink(event)
        except Exception:
            logger.exception("Event sink rejected %r", event)
