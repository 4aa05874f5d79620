"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import logging
import queue
import threading
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn

from tile_mosaic.config import MosaicConfig
from tile_mosaic.errors import ScratchStoreError
from tile_mosaic.events import CancellationToken, ProgressEvent, QueueSink, TERMINAL_EVENTS
from tile_mosaic.image_io import ScratchStore
from tile_mosaic.pipeline import MosaicPipeline, MosaicRun, ProcessingState

app = typer.Typer(
    name="tile-mosaic",
    help="Turn an image into a mosaic of averaged tiles.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()

# Defaults come from MosaicConfig - single source of truth
_DEFAULTS = MosaicConfig()

_DONE = object()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=True)],
    )


def _make_config(
    scratch: Path,
    tile_width: int,
    tile_height: int,
    workers: int,
    strategy: str,
    server_url: str,
    timeout: float,
    quality: int,
) -> MosaicConfig:
    try:
        return MosaicConfig(
            tile_width=tile_width,
            tile_height=tile_height,
            max_workers=workers,
            strategy=strategy,
            server_url=server_url,
            remote_timeout=timeout,
            quality=quality,
            scratch_path=scratch,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _execute(cfg: MosaicConfig, store: ScratchStore) -> MosaicRun:
    """Run the pipeline on a worker thread and draw its progress events.

    Ctrl-C cancels the run; the bar keeps draining events until the
    pipeline reports how it ended.
    """
    sink = QueueSink()
    token = CancellationToken()
    pipeline = MosaicPipeline(store, cfg, sink=sink)
    outcome: dict[str, object] = {}

    def _work() -> None:
        try:
            outcome["run"] = pipeline.run(token)
        except Exception as exc:  # re-raised on the main thread below
            outcome["error"] = exc
        finally:
            sink.events.put(_DONE)

    worker = threading.Thread(target=_work, name="mosaic-pipeline", daemon=True)
    worker.start()

    with Progress(
        TextColumn("[bold cyan]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Tiling", total=100)
        while True:
            try:
                event = sink.events.get(timeout=0.1)
            except queue.Empty:
                continue
            except KeyboardInterrupt:
                token.cancel()
                progress.update(task, description="Cancelling")
                continue
            if event is _DONE:
                break
            if isinstance(event, ProgressEvent):
                progress.update(task, completed=event.percent_complete)
            elif isinstance(event, TERMINAL_EVENTS):
                progress.update(task, description=type(event).__name__)

    worker.join()
    if "error" in outcome:
        raise outcome["error"]  # type: ignore[misc]
    return outcome["run"]  # type: ignore[return-value]


def _report(run: MosaicRun, store: ScratchStore) -> None:
    if run.state is ProcessingState.CANCELLED:
        console.print(
            f"[yellow]Cancelled[/yellow] after {run.rows_completed}/{run.total_rows} rows. "
            f"Resume with [bold]tile-mosaic resume --scratch {store.path}[/bold]"
        )
        raise typer.Exit(130)

    console.print(Panel.fit(
        f"[bold green]DONE[/bold green] - mosaic in [bold]{store.path}[/bold]\n"
        f"{run.total_tiles} tiles  |  {run.fallbacks} fallback fills  |  "
        f"time={run.elapsed:.1f}s",
        border_style="green",
    ))


def _run_or_exit(cfg: MosaicConfig, store: ScratchStore) -> None:
    try:
        run = _execute(cfg, store)
    except ScratchStoreError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc
    _report(run, store)


# -- run command -------------------------------------------------------

@app.command()
def run(
    source: Path = typer.Argument(..., help="Image to turn into a mosaic"),
    scratch: Path = typer.Option(
        _DEFAULTS.scratch_path, "--scratch", "-o", help="Scratch / result image",
    ),
    max_side: int | None = typer.Option(
        None, "--max-side", "-m",
        help="Downscale the source so its longest side is at most this",
    ),
    tile_width: int = typer.Option(_DEFAULTS.tile_width, "--tile-width", "-W"),
    tile_height: int = typer.Option(_DEFAULTS.tile_height, "--tile-height", "-H"),
    workers: int = typer.Option(
        _DEFAULTS.max_workers, "--workers", "-j", help="Concurrent tile workers",
    ),
    strategy: str = typer.Option(
        _DEFAULTS.strategy, "--strategy", "-s", help="'average' or 'remote'",
    ),
    server_url: str = typer.Option(
        _DEFAULTS.server_url, "--server-url",
        help="Tile server URL template ({width}, {height}, {color})",
    ),
    timeout: float = typer.Option(
        _DEFAULTS.remote_timeout, "--timeout", help="Tile server timeout (s)",
    ),
    quality: int = typer.Option(
        _DEFAULTS.quality, "--quality", "-q", help="JPEG quality of the scratch image",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Copy SOURCE into the scratch image and build the mosaic."""
    _setup_logging(verbose)
    cfg = _make_config(
        scratch, tile_width, tile_height, workers, strategy, server_url, timeout, quality,
    )
    store = ScratchStore(cfg.scratch_path, cfg.quality)

    try:
        buffer = store.init_from_image(source, max_side)
    except ScratchStoreError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc

    console.print(Panel.fit(
        f"[bold]TILE MOSAIC[/bold]\n"
        f"Image: {buffer.width}x{buffer.height}  |  "
        f"Tiles: {cfg.tile_width}x{cfg.tile_height}\n"
        f"Strategy: {cfg.strategy}  |  Workers: {cfg.max_workers}",
        border_style="cyan",
    ))
    _run_or_exit(cfg, store)


# -- resume command ----------------------------------------------------

@app.command()
def resume(
    scratch: Path = typer.Option(
        _DEFAULTS.scratch_path, "--scratch", "-o", help="Scratch / result image",
    ),
    tile_width: int = typer.Option(_DEFAULTS.tile_width, "--tile-width", "-W"),
    tile_height: int = typer.Option(_DEFAULTS.tile_height, "--tile-height", "-H"),
    workers: int = typer.Option(_DEFAULTS.max_workers, "--workers", "-j"),
    strategy: str = typer.Option(_DEFAULTS.strategy, "--strategy", "-s"),
    server_url: str = typer.Option(_DEFAULTS.server_url, "--server-url"),
    timeout: float = typer.Option(_DEFAULTS.remote_timeout, "--timeout"),
    quality: int = typer.Option(_DEFAULTS.quality, "--quality", "-q"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Continue building the mosaic already in the scratch image."""
    _setup_logging(verbose)
    cfg = _make_config(
        scratch, tile_width, tile_height, workers, strategy, server_url, timeout, quality,
    )
    store = ScratchStore(cfg.scratch_path, cfg.quality)
    if not store.exists():
        console.print(f"[yellow]No scratch image at {store.path}[/yellow]")
        raise typer.Exit(1)
    _run_or_exit(cfg, store)


if __name__ == "__main__":
    app()
