"""Centralised configuration via a frozen dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class MosaicConfig:
    """All tuneable parameters for a mosaic run.

    Attributes:
        tile_width:     Nominal tile width in pixels (edge tiles may be narrower).
        tile_height:    Nominal tile height in pixels (edge tiles may be shorter).
        max_workers:    Size of the per-row worker pool.
        quality:        Compression quality (1-100) for the lossy scratch image.
        strategy:       "average" (flat fill) or "remote" (tile server).
        server_url:     Tile server URL template with {width}, {height} and
                        {color} placeholders.
        remote_timeout: Seconds allowed for one tile server request.
        scratch_path:   Where the in-progress mosaic is persisted.
    """

    # Tiling
    tile_width: int = 32
    tile_height: int = 32

    # Concurrency
    max_workers: int = 10

    # Tile images
    strategy: str = "average"  # "average" | "remote"
    server_url: str = "http://127.0.0.1:8765/color/{width}/{height}/{color}"
    remote_timeout: float = 10.0

    # Scratch store
    quality: int = 100
    scratch_path: Path = field(default_factory=lambda: Path("mosaic.jpg"))

    STRATEGIES: frozenset[str] = frozenset({"average", "remote"})

    def __post_init__(self) -> None:
        if self.tile_width < 1 or self.tile_height < 1:
            msg = f"Tile size must be positive, got {self.tile_width}x{self.tile_height}"
            raise ValueError(msg)
        if self.max_workers < 1:
            msg = f"max_workers must be at least 1, got {self.max_workers}"
            raise ValueError(msg)
        if not 1 <= self.quality <= 100:
            msg = f"quality must be in 1..100, got {self.quality}"
            raise ValueError(msg)
        if self.strategy not in self.STRATEGIES:
            available = ", ".join(sorted(self.STRATEGIES))
            msg = f"Unknown tile strategy '{self.strategy}'. Available: {available}"
            raise ValueError(msg)
