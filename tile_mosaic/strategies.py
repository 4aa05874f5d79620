"""Ways of producing the pixels painted into a tile.

Two strategies exist and one is chosen per run:

- :class:`AverageColorFill` paints the tile flat with its average colour.
- :class:`RemoteFetch` asks an HTTP tile server for an image of the right
  size and colour.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from io import BytesIO

import numpy as np
import requests
from PIL import Image, UnidentifiedImageError

from tile_mosaic.color_utils import rgb_to_hex
from tile_mosaic.config import MosaicConfig
from tile_mosaic.errors import InvalidResponse, RemoteUnavailable
from tile_mosaic.pixel_buffer import RGB
from tile_mosaic.tile_grid import TileBox

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TileRequest:
    """What a strategy needs to know to paint one tile."""

    x: int
    y: int
    width: int
    height: int
    average_color: RGB

    @classmethod
    def for_box(cls, box: TileBox, average_color: RGB) -> TileRequest:
        return cls(box.x, box.y, box.width, box.height, average_color)


@dataclass(frozen=True)
class TileResult:
    """Pixels for one tile, ready to commit with ``set_region``."""

    x: int
    y: int
    pixels: np.ndarray  # (height, width, 3) uint8

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]


class TileImageStrategy(ABC):
    """Turns a :class:`TileRequest` into a :class:`TileResult`.

    Implementations are called from worker threads and must not touch the
    pixel buffer.
    """

    name: str = ""

    @abstractmethod
    def render(self, request: TileRequest) -> TileResult:
        ...


class AverageColorFill(TileImageStrategy):
    """Fill the whole tile with its average colour. Never fails."""

    name = "average"

    def render(self, request: TileRequest) -> TileResult:
        pixels = np.empty((request.height, request.width, 3), dtype=np.uint8)
        pixels[:, :] = request.average_color
        return TileResult(request.x, request.y, pixels)


class RemoteFetch(TileImageStrategy):
    """Fetch the tile image from an HTTP tile server.

    Args:
        url_template: URL with ``{width}``, ``{height}`` and ``{color}``
            placeholders; ``color`` is six lowercase hex digits.
        timeout:      Seconds allowed per request.
        session:      Shared ``requests.Session`` (one is created if omitted).

    Raises from :meth:`render`:
        RemoteUnavailable: connection error, timeout or HTTP error status.
        InvalidResponse:   body is not an image, or has the wrong size.
    """

    name = "remote"

    def __init__(
        self,
        url_template: str,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.url_template = url_template
        self.timeout = timeout
        self._session = session or requests.Session()

    def url_for(self, request: TileRequest) -> str:
        return self.url_template.format(
            width=request.width,
            height=request.height,
            color=rgb_to_hex(request.average_color),
        )

    def render(self, request: TileRequest) -> TileResult:
        url = self.url_for(request)
        try:
            response = self._session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            msg = f"Tile server request {url} failed: {exc}"
            raise RemoteUnavailable(msg) from exc

        expected = (request.width, request.height)
        try:
            with Image.open(BytesIO(response.content)) as img:
                # Only the header has been read; reject before decoding pixels.
                if img.size != expected:
                    msg = (
                        f"Tile server returned {img.width}x{img.height}, "
                        f"expected {request.width}x{request.height}"
                    )
                    raise InvalidResponse(msg)
                tile = img.convert("RGB")
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
            msg = f"Tile server returned an undecodable image for {url}"
            raise InvalidResponse(msg) from exc

        logger.debug("Fetched tile (%d, %d) from %s", request.x, request.y, url)
        return TileResult(request.x, request.y, np.asarray(tile, dtype=np.uint8))


def make_strategy(
    config: MosaicConfig,
    session: requests.Session | None = None,
) -> TileImageStrategy:
    """Build the strategy named by ``config.strategy``."""
    if config.strategy == "remote":
        return RemoteFetch(config.server_url, config.remote_timeout, session)
    return AverageColorFill()
