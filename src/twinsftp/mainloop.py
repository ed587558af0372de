"""GLib main loop glue for the worker result queue."""

from __future__ import annotations

import logging
from typing import Callable

from gi.repository import GLib

from .transfer import TransferResult
from .worker import WorkerRunner

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 100


def watch_queue(runner: WorkerRunner, on_done: Callable[[TransferResult], None],
                interval_ms: int = DEFAULT_POLL_INTERVAL_MS) -> int:
    """Poll ``runner`` from the main loop until its job reports back.

    ``on_done`` runs on the main loop thread with the result.  Returns the
    GLib source id.
    """

    def _check() -> bool:
        result = runner.poll()
        if result is None:
            return GLib.SOURCE_CONTINUE
        try:
            on_done(result)
        except Exception as e:
            logger.error(f"Error handling transfer result: {e}", exc_info=True)
        return GLib.SOURCE_REMOVE

    return GLib.timeout_add(interval_ms, _check)
