"""Progress notifications and cooperative cancellation."""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class ProgressEvent:
    """Another row was committed; *percent_complete* is in [0, 100]."""

    percent_complete: int


@dataclass(frozen=True)
class Finished:
    """Every row completed. The final image is in the scratch store."""


@dataclass(frozen=True)
class Cancelled:
    """The run stopped early because its token was cancelled."""


MosaicEvent = ProgressEvent | Finished | Cancelled
EventSink = Callable[[MosaicEvent], None]

TERMINAL_EVENTS = (Finished, Cancelled)


class QueueSink:
    """Event sink that drops events onto a queue for another thread."""

    def __init__(self, events: queue.Queue | None = None) -> None:
        self.events: queue.Queue = events if events is not None else queue.Queue()

    def __call__(self, event: MosaicEvent) -> None:
        self.events.put_nowait(event)


class CancellationToken:
    """Externally settable stop flag for a single run.

    The caller holds the token and calls :meth:`cancel`; the pipeline only
    reads :attr:`cancelled`, at row and tile boundaries.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
