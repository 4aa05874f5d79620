"""Processing of one row of tiles on a bounded worker pool."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import Executor, Future, wait
from dataclasses import dataclass

from tile_mosaic.color_utils import average_color
from tile_mosaic.errors import TileFetchError
from tile_mosaic.events import CancellationToken
from tile_mosaic.pixel_buffer import PixelBuffer
from tile_mosaic.strategies import (
    AverageColorFill,
    TileImageStrategy,
    TileRequest,
    TileResult,
)
from tile_mosaic.tile_grid import TileBox

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RowOutcome:
    """What happened to one row."""

    tiles_committed: int
    fallbacks: int
    cancelled: bool


@dataclass(frozen=True)
class _TileOutput:
    result: TileResult
    fell_back: bool


class RowProcessor:
    """Average, render and commit every tile of one row.

    Tiles are submitted left to right to *executor*. Workers only read the
    buffer; once every submitted tile has finished (the row barrier) the
    results are written back with ``set_region`` on the calling thread.

    A failed remote fetch is replaced by an average-colour fill for that
    tile alone. Any other worker error is re-raised after the barrier.
    """

    def __init__(self, strategy: TileImageStrategy, executor: Executor) -> None:
        self.strategy = strategy
        self._executor = executor
        self._fallback = AverageColorFill()

    def process(
        self,
        buffer: PixelBuffer,
        row: Sequence[TileBox],
        token: CancellationToken | None = None,
    ) -> RowOutcome:
        cancelled = False
        futures: list[Future[_TileOutput]] = []
        for box in row:
            if token is not None and token.cancelled:
                cancelled = True
                break
            futures.append(self._executor.submit(self._render_tile, buffer, box))

        # Row barrier: nothing is committed until every submitted tile is done.
        wait(futures)
        outputs = [f.result() for f in futures]

        for output in outputs:
            result = output.result
            buffer.set_region(
                result.x, result.y, result.width, result.height, result.pixels,
            )

        return RowOutcome(
            tiles_committed=len(outputs),
            fallbacks=sum(o.fell_back for o in outputs),
            cancelled=cancelled,
        )

    def _render_tile(self, buffer: PixelBuffer, box: TileBox) -> _TileOutput:
        request = TileRequest.for_box(box, average_color(buffer, box))
        try:
            result = self.strategy.render(request)
        except TileFetchError as exc:
            logger.warning(
                "Tile (%d, %d): %s - using average colour instead",
                box.x, box.y, exc,
            )
            return _TileOutput(self._fallback.render(request), fell_back=True)
        return _TileOutput(result, fell_back=False)
