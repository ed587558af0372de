"""Run transfer jobs off the interactive thread, one at a time."""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from .fileops import FileStatus
from .transfer import JobKind, TransferEngine, TransferJob, TransferResult

logger = logging.getLogger(__name__)

_FAILURE_STATUS = {
    JobKind.PASTE: FileStatus.COPY_FAILED,
    JobKind.DELETE: FileStatus.REMOVE_FAILED,
}


class WorkerBusyError(RuntimeError):
    """A job is still running or its result has not been collected."""


class WorkerRunner:
    """Single-slot executor that reports every job through a queue.

    :meth:`run` and :meth:`poll` belong to the interactive thread.  The
    worker only reads the engine's cancellation flag and writes one
    :class:`TransferResult` per job.
    """

    def __init__(self, engine: TransferEngine) -> None:
        self._engine = engine
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="transfer")
        self._results: "queue.Queue[TransferResult]" = queue.Queue(maxsize=1)
        self._in_flight = threading.Event()
        self._future: Optional[Future] = None

    @property
    def engine(self) -> TransferEngine:
        return self._engine

    @property
    def running(self) -> bool:
        return self._in_flight.is_set()

    def run(self, job: TransferJob) -> Future:
        """Start ``job`` in the background.

        Raises :class:`WorkerBusyError` while another job runs or before the
        previous result has been taken with :meth:`poll`.
        """
        if self._in_flight.is_set():
            raise WorkerBusyError("A transfer is already running")
        if not self._results.empty():
            raise WorkerBusyError("The previous transfer result has not been collected")
        self._engine.reset_cancel()
        self._in_flight.set()
        logger.info(f"Starting {job.kind.value} job in {job.directory}")
        try:
            self._future = self._executor.submit(self._work, job)
        except RuntimeError:
            self._in_flight.clear()
            raise
        return self._future

    def _work(self, job: TransferJob) -> TransferResult:
        try:
            result = self._engine.execute(job)
        except Exception as exc:
            logger.error(f"{job.kind.value} job failed: {exc}", exc_info=True)
            result = TransferResult(_FAILURE_STATUS[job.kind], job.kind, job.directory,
                                    job.remote, str(exc))
        logger.info(f"{job.kind.value} job finished: {result.status.name}")
        # The result is queued before the flag drops: run() accepts a new
        # job only once the previous result is visible to poll().
        try:
            self._results.put(result)
        finally:
            self._in_flight.clear()
        return result

    def poll(self) -> Optional[TransferResult]:
        """Return the finished job's result, or ``None`` while it runs."""
        try:
            return self._results.get_nowait()
        except queue.Empty:
            return None

    def cancel(self) -> None:
        """Ask the running job to stop at its next checkpoint."""
        if self._in_flight.is_set():
            self._engine.request_cancel()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
