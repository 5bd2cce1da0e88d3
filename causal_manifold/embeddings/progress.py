"""
causal_manifold/embeddings/progress.py

Progress reporting and cooperative cancellation shared by the long-running
stages.

A progress callback receives ``(percent, message)`` with percent in
[0, 100].  Stages call it from whatever thread they run on; async wrappers
use threadsafe_progress() so the caller's callback always runs on its own
event loop.
"""
from __future__ import annotations

import asyncio
import threading
from typing import Callable

ProgressCallback = Callable[[float, str], None]


def _noop(_pct: float, _msg: str) -> None:
    return None


def progress_or_noop(on_progress: ProgressCallback | None) -> ProgressCallback:
    return on_progress if on_progress is not None else _noop


def threadsafe_progress(
    loop: asyncio.AbstractEventLoop,
    on_progress: ProgressCallback | None,
) -> ProgressCallback | None:
    """Wrap *on_progress* so calls from a worker thread run on *loop*."""
    if on_progress is None:
        return None

    def relay(pct: float, msg: str) -> None:
        loop.call_soon_threadsafe(on_progress, pct, msg)

    return relay


class CancellationToken:
    """Flag a caller sets to ask a running stage to stop at its next checkpoint.

    Backed by a threading.Event so it can be set from the event loop while
    the stage runs in a worker thread.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
