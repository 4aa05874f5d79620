"""Tests for the tile_mosaic building blocks."""

from __future__ import annotations

import struct
import zlib
from io import BytesIO
from pathlib import Path

import numpy as np
import pytest
import requests
from PIL import Image

from tile_mosaic.color_utils import average_color, hex_to_rgb, rgb_to_hex
from tile_mosaic.config import MosaicConfig
from tile_mosaic.errors import (
    EmptyTile,
    InvalidResponse,
    OutOfBounds,
    RemoteUnavailable,
    ScratchStoreError,
)
from tile_mosaic.image_io import ScratchStore, compute_target_size, load_source
from tile_mosaic.pixel_buffer import PixelBuffer
from tile_mosaic.strategies import (
    AverageColorFill,
    RemoteFetch,
    TileRequest,
    make_strategy,
)
from tile_mosaic.tile_grid import TileBox, TileGrid

# -- Fixtures ----------------------------------------------------------

W, H = 70, 50  # not a multiple of the tile size, so edge tiles are clipped


@pytest.fixture
def noise() -> np.ndarray:
    rng = np.random.default_rng(456)
    return rng.integers(0, 256, size=(H, W, 3), dtype=np.uint8)


@pytest.fixture
def buffer(noise: np.ndarray) -> PixelBuffer:
    return PixelBuffer.from_array(noise)


def _png_bytes(width: int, height: int, color: tuple[int, int, int]) -> bytes:
    stream = BytesIO()
    Image.new("RGB", (width, height), color).save(stream, format="PNG")
    return stream.getvalue()


def _png_header(width: int, height: int) -> bytes:
    """A PNG that declares *width* x *height* but carries no pixel data."""

    def chunk(kind: bytes, data: bytes) -> bytes:
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", b"") + chunk(b"IEND", b"")


class FakeResponse:
    def __init__(self, content: bytes = b"", status_code: int = 200) -> None:
        self.content = content
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")


class FakeSession:
    """Stands in for requests.Session, replaying one canned outcome."""

    def __init__(self, outcome: FakeResponse | Exception) -> None:
        self.outcome = outcome
        self.calls: list[tuple[str, float | None]] = []

    def get(self, url: str, timeout: float | None = None) -> FakeResponse:
        self.calls.append((url, timeout))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


# -- Config ------------------------------------------------------------

class TestConfig:
    def test_defaults(self) -> None:
        cfg = MosaicConfig()
        assert (cfg.tile_width, cfg.tile_height) == (32, 32)
        assert cfg.max_workers == 10
        assert cfg.quality == 100
        assert cfg.strategy == "average"

    def test_frozen(self) -> None:
        cfg = MosaicConfig()
        with pytest.raises(AttributeError):
            cfg.tile_width = 16  # type: ignore[misc]

    @pytest.mark.parametrize("kwargs", [
        {"tile_width": 0},
        {"tile_height": -4},
        {"max_workers": 0},
        {"quality": 0},
        {"quality": 101},
        {"strategy": "mystery"},
    ])
    def test_invalid(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            MosaicConfig(**kwargs)


# -- PixelBuffer -------------------------------------------------------

class TestPixelBuffer:
    def test_dimensions(self, buffer: PixelBuffer) -> None:
        assert (buffer.width, buffer.height) == (W, H)

    def test_get_set(self) -> None:
        buf = PixelBuffer(4, 3)
        assert buf.get(3, 2) == (0, 0, 0)
        buf.set(3, 2, (10, 20, 30))
        assert buf.get(3, 2) == (10, 20, 30)
        assert buf.get(2, 2) == (0, 0, 0)

    def test_fill(self) -> None:
        buf = PixelBuffer(2, 2, fill=(1, 2, 3))
        assert buf.get(1, 1) == (1, 2, 3)

    @pytest.mark.parametrize("x, y", [(-1, 0), (0, -1), (4, 0), (0, 3)])
    def test_out_of_bounds_point(self, x: int, y: int) -> None:
        buf = PixelBuffer(4, 3)
        with pytest.raises(OutOfBounds):
            buf.get(x, y)
        with pytest.raises(OutOfBounds):
            buf.set(x, y, (0, 0, 0))

    def test_out_of_bounds_is_index_error(self) -> None:
        with pytest.raises(IndexError):
            PixelBuffer(1, 1).get(1, 0)

    def test_set_region(self) -> None:
        buf = PixelBuffer(5, 4)
        patch = np.full((2, 3, 3), 200, dtype=np.uint8)
        buf.set_region(1, 1, 3, 2, patch)
        arr = buf.to_array()
        assert arr[1:3, 1:4].min() == 200
        assert arr.sum() == 200 * 3 * 6

    def test_set_region_out_of_bounds(self) -> None:
        buf = PixelBuffer(5, 4)
        patch = np.zeros((2, 3, 3), dtype=np.uint8)
        with pytest.raises(OutOfBounds):
            buf.set_region(3, 0, 3, 2, patch)
        with pytest.raises(OutOfBounds):
            buf.set_region(-1, 0, 3, 2, patch)

    def test_set_region_shape_mismatch(self) -> None:
        buf = PixelBuffer(5, 4)
        with pytest.raises(ValueError):
            buf.set_region(0, 0, 3, 2, np.zeros((3, 2, 3), dtype=np.uint8))

    def test_region_is_read_only(self, buffer: PixelBuffer) -> None:
        view = buffer.region(0, 0, 4, 4)
        with pytest.raises(ValueError):
            view[0, 0] = (1, 2, 3)
        # the buffer itself stays writable
        buffer.set(0, 0, (1, 2, 3))
        assert buffer.get(0, 0) == (1, 2, 3)

    def test_from_array_copies(self, noise: np.ndarray) -> None:
        buf = PixelBuffer.from_array(noise)
        noise[0, 0] = (0, 0, 0)
        buf.set(0, 0, (9, 9, 9))
        assert tuple(noise[0, 0]) == (0, 0, 0)

    def test_rejects_empty(self) -> None:
        with pytest.raises(ValueError):
            PixelBuffer(0, 5)

    @pytest.mark.parametrize("rgb", [(300, 0, 0), (0, -1, 0), (0.5, 0, 0)])
    def test_set_rejects_bad_channels(self, rgb: tuple) -> None:
        buf = PixelBuffer(2, 2, fill=(7, 7, 7))
        with pytest.raises(ValueError):
            buf.set(0, 0, rgb)
        assert buf.get(0, 0) == (7, 7, 7)

    def test_set_region_rejects_bad_channels(self) -> None:
        buf = PixelBuffer(2, 2)
        with pytest.raises(ValueError):
            buf.set_region(0, 0, 2, 2, np.full((2, 2, 3), 256, dtype=np.int64))
        assert buf.to_array().sum() == 0

    def test_from_array_channel_checks(self) -> None:
        wide = np.full((2, 2, 3), 255, dtype=np.int64)
        assert PixelBuffer.from_array(wide).get(1, 1) == (255, 255, 255)
        with pytest.raises(ValueError):
            PixelBuffer.from_array(wide + 1)
        with pytest.raises(ValueError):
            PixelBuffer.from_array(np.zeros((2, 2, 3), dtype=np.float64))

    def test_fill_rejects_bad_channels(self) -> None:
        with pytest.raises(ValueError):
            PixelBuffer(2, 2, fill=(0, 0, 999))


# -- TileGrid ----------------------------------------------------------

class TestTileGrid:
    @pytest.mark.parametrize("width, height, tw, th", [
        (70, 50, 32, 32),
        (64, 64, 32, 32),
        (1, 1, 32, 32),
        (33, 95, 8, 16),
        (100, 7, 3, 5),
    ])
    def test_exact_cover(self, width: int, height: int, tw: int, th: int) -> None:
        grid = TileGrid(width, height, tw, th)
        boxes = list(grid.boxes())
        assert len(boxes) == grid.tile_count_x * grid.tile_count_y

        coverage = np.zeros((height, width), dtype=np.int32)
        for box in boxes:
            assert box.area > 0
            coverage[box.y:box.y + box.height, box.x:box.x + box.width] += 1
        assert (coverage == 1).all()

    def test_counts(self) -> None:
        grid = TileGrid(70, 50)
        assert grid.tile_count_x == 3
        assert grid.tile_count_y == 2
        assert grid.total_tiles == 6

    def test_edge_clipping(self) -> None:
        grid = TileGrid(70, 50)
        rows = list(grid.rows())
        assert rows[0][-1] == TileBox(64, 0, 6, 32)
        assert rows[-1][0] == TileBox(0, 32, 32, 18)
        assert rows[-1][-1] == TileBox(64, 32, 6, 18)

    def test_row_major_order(self) -> None:
        boxes = list(TileGrid(64, 64).boxes())
        assert [(b.x, b.y) for b in boxes] == [(0, 0), (32, 0), (0, 32), (32, 32)]

    def test_for_buffer(self, buffer: PixelBuffer) -> None:
        grid = TileGrid.for_buffer(buffer, 16, 8)
        assert (grid.image_width, grid.image_height) == (W, H)
        assert (grid.tile_width, grid.tile_height) == (16, 8)

    def test_invalid_tile_size(self) -> None:
        with pytest.raises(ValueError):
            TileGrid(10, 10, 0, 4)

    def test_row_index(self) -> None:
        with pytest.raises(IndexError):
            TileGrid(64, 64).row(2)


# -- Averaging ---------------------------------------------------------

class TestAverageColor:
    def test_uniform_tile(self) -> None:
        buf = PixelBuffer(8, 8, fill=(12, 200, 77))
        assert average_color(buf, TileBox(0, 0, 8, 8)) == (12, 200, 77)

    def test_truncates(self) -> None:
        buf = PixelBuffer(2, 2)
        buf.set(1, 0, (255, 255, 255))
        buf.set(1, 1, (255, 255, 255))
        assert average_color(buf, TileBox(0, 0, 2, 2)) == (127, 127, 127)

    def test_matches_numpy(self, buffer: PixelBuffer, noise: np.ndarray) -> None:
        box = TileBox(64, 32, 6, 18)
        expected = noise[32:50, 64:70].reshape(-1, 3).astype(np.int64).sum(axis=0) // 108
        assert average_color(buffer, box) == tuple(int(v) for v in expected)

    def test_ignores_pixels_outside_box(self) -> None:
        buf = PixelBuffer(4, 4, fill=(255, 0, 0))
        buf.set_region(0, 0, 2, 2, np.zeros((2, 2, 3), dtype=np.uint8))
        assert average_color(buf, TileBox(0, 0, 2, 2)) == (0, 0, 0)

    def test_empty_tile(self, buffer: PixelBuffer) -> None:
        with pytest.raises(EmptyTile):
            average_color(buffer, TileBox(0, 0, 0, 5))

    def test_box_outside_buffer(self, buffer: PixelBuffer) -> None:
        with pytest.raises(OutOfBounds):
            average_color(buffer, TileBox(64, 32, 32, 32))


class TestHex:
    def test_rgb_to_hex(self) -> None:
        assert rgb_to_hex((255, 127, 1)) == "ff7f01"
        assert rgb_to_hex((0, 0, 0)) == "000000"

    def test_hex_to_rgb(self) -> None:
        assert hex_to_rgb("#FF7F11") == (255, 127, 17)
        assert hex_to_rgb("262626") == (38, 38, 38)

    def test_bad_hex(self) -> None:
        with pytest.raises(ValueError):
            hex_to_rgb("#fff")


# -- Strategies --------------------------------------------------------

class TestAverageColorFill:
    def test_fills_edge_tile_only(self) -> None:
        buf = PixelBuffer(36, 35)
        box = list(TileGrid(36, 35).boxes())[-1]
        assert (box.width, box.height) == (4, 3)

        result = AverageColorFill().render(TileRequest.for_box(box, (9, 8, 7)))
        assert result.pixels.shape == (3, 4, 3)
        buf.set_region(result.x, result.y, result.width, result.height, result.pixels)

        changed = np.argwhere(buf.to_array().any(axis=2))
        assert len(changed) == 12
        assert changed[:, 0].min() == 32 and changed[:, 1].min() == 32
        assert buf.get(35, 34) == (9, 8, 7)


class TestRemoteFetch:
    URL = "http://tiles.test/color/{width}/{height}/{color}"

    def _request(self) -> TileRequest:
        return TileRequest(32, 0, 6, 4, (255, 16, 1))

    def test_url(self) -> None:
        fetch = RemoteFetch(self.URL, session=FakeSession(FakeResponse()))
        assert fetch.url_for(self._request()) == "http://tiles.test/color/6/4/ff1001"

    def test_success(self) -> None:
        session = FakeSession(FakeResponse(_png_bytes(6, 4, (1, 2, 3))))
        result = RemoteFetch(self.URL, timeout=2.5, session=session).render(self._request())
        assert (result.x, result.y) == (32, 0)
        assert result.pixels.shape == (4, 6, 3)
        assert (result.pixels == (1, 2, 3)).all()
        assert session.calls == [("http://tiles.test/color/6/4/ff1001", 2.5)]

    def test_http_error(self) -> None:
        fetch = RemoteFetch(self.URL, session=FakeSession(FakeResponse(status_code=503)))
        with pytest.raises(RemoteUnavailable):
            fetch.render(self._request())

    def test_timeout(self) -> None:
        fetch = RemoteFetch(self.URL, session=FakeSession(requests.Timeout("slow")))
        with pytest.raises(RemoteUnavailable):
            fetch.render(self._request())

    def test_garbage_body(self) -> None:
        fetch = RemoteFetch(self.URL, session=FakeSession(FakeResponse(b"not an image")))
        with pytest.raises(InvalidResponse):
            fetch.render(self._request())

    def test_wrong_size(self) -> None:
        session = FakeSession(FakeResponse(_png_bytes(32, 32, (1, 2, 3))))
        with pytest.raises(InvalidResponse):
            RemoteFetch(self.URL, session=session).render(self._request())

    def test_oversized_image_header(self) -> None:
        session = FakeSession(FakeResponse(_png_header(20_000, 20_000)))
        with pytest.raises(InvalidResponse):
            RemoteFetch(self.URL, session=session).render(self._request())

    def test_size_checked_before_decoding(self) -> None:
        # header says 6x4 is wrong (64x64); the missing pixel data is never read
        session = FakeSession(FakeResponse(_png_header(64, 64)))
        with pytest.raises(InvalidResponse, match="64x64"):
            RemoteFetch(self.URL, session=session).render(self._request())


class TestMakeStrategy:
    def test_average(self) -> None:
        assert isinstance(make_strategy(MosaicConfig()), AverageColorFill)

    def test_remote(self) -> None:
        url = "http://example.invalid/{width}/{height}/{color}"
        cfg = MosaicConfig(strategy="remote", server_url=url, remote_timeout=3.0)
        strategy = make_strategy(cfg)
        assert isinstance(strategy, RemoteFetch)
        assert strategy.url_template == url
        assert strategy.timeout == 3.0


# -- Scratch store -----------------------------------------------------

class TestScratchStore:
    def test_jpeg_round_trip(self, tmp_path: Path) -> None:
        arr = np.zeros((48, 64, 3), dtype=np.uint8)
        arr[:24, :32] = (200, 30, 30)
        arr[:24, 32:] = (30, 200, 30)
        arr[24:, :32] = (30, 30, 200)
        arr[24:, 32:] = (240, 240, 240)
        store = ScratchStore(tmp_path / "mosaic.jpg")
        store.save(PixelBuffer.from_array(arr))

        loaded = store.load()
        assert (loaded.width, loaded.height) == (64, 48)
        np.testing.assert_allclose(
            loaded.to_array().astype(int), arr.astype(int), atol=8,
        )

    def test_png_is_lossless(self, tmp_path: Path, noise: np.ndarray) -> None:
        store = ScratchStore(tmp_path / "mosaic.png")
        store.save(PixelBuffer.from_array(noise))
        np.testing.assert_array_equal(store.load().to_array(), noise)

    def test_save_replaces_and_leaves_no_temp_files(
        self, tmp_path: Path, noise: np.ndarray,
    ) -> None:
        store = ScratchStore(tmp_path / "mosaic.png")
        store.save(PixelBuffer(5, 5))
        store.save(PixelBuffer.from_array(noise))
        assert [p.name for p in tmp_path.iterdir()] == ["mosaic.png"]
        assert store.load().width == W

    def test_load_missing(self, tmp_path: Path) -> None:
        store = ScratchStore(tmp_path / "absent.jpg")
        assert not store.exists()
        with pytest.raises(ScratchStoreError):
            store.load()

    def test_load_corrupt(self, tmp_path: Path) -> None:
        path = tmp_path / "mosaic.jpg"
        path.write_bytes(b"definitely not a jpeg")
        with pytest.raises(ScratchStoreError):
            ScratchStore(path).load()

    def test_save_unknown_format(self, tmp_path: Path) -> None:
        store = ScratchStore(tmp_path / "mosaic.unknownext")
        with pytest.raises(ScratchStoreError):
            store.save(PixelBuffer(2, 2))
        assert list(tmp_path.iterdir()) == []

    def test_save_when_disk_is_full(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def no_space(*args, **kwargs):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr("tile_mosaic.image_io.tempfile.mkstemp", no_space)
        with pytest.raises(ScratchStoreError, match="No space left"):
            ScratchStore(tmp_path / "mosaic.jpg").save(PixelBuffer(2, 2))

    def test_save_when_directory_cannot_be_created(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not_a_dir"
        blocker.write_bytes(b"")
        store = ScratchStore(blocker / "mosaic.png")
        with pytest.raises(ScratchStoreError):
            store.save(PixelBuffer(2, 2))

    def test_init_from_image(self, tmp_path: Path, noise: np.ndarray) -> None:
        source = tmp_path / "source.png"
        Image.fromarray(noise).save(source)
        store = ScratchStore(tmp_path / "scratch.png")
        buf = store.init_from_image(source)
        assert store.exists()
        np.testing.assert_array_equal(buf.to_array(), noise)
        np.testing.assert_array_equal(store.load().to_array(), noise)

    def test_init_from_image_downscales(self, tmp_path: Path, noise: np.ndarray) -> None:
        source = tmp_path / "source.png"
        Image.fromarray(noise).save(source)
        buf = ScratchStore(tmp_path / "scratch.png").init_from_image(source, max_side=35)
        assert (buf.width, buf.height) == (35, 25)

    def test_init_from_missing_source(self, tmp_path: Path) -> None:
        store = ScratchStore(tmp_path / "scratch.png")
        with pytest.raises(ScratchStoreError):
            store.init_from_image(tmp_path / "nope.png")


class TestImageIO:
    def test_landscape(self) -> None:
        assert compute_target_size(1920, 1080, 64) == (64, 36)

    def test_portrait(self) -> None:
        assert compute_target_size(1080, 1920, 64) == (36, 64)

    def test_load_source_keeps_small_images(self, tmp_path: Path, noise: np.ndarray) -> None:
        source = tmp_path / "source.png"
        Image.fromarray(noise).save(source)
        assert load_source(source, max_side=500).shape == (H, W, 3)
