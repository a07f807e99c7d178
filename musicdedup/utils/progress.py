"""Non-blocking progress delivery.

Workers hand progress updates to a bounded queue and return immediately;
a single dispatcher thread invokes the caller's callback. A slow callback
therefore never stalls comparison workers. When the queue is full the
update is dropped (a later update supersedes it anyway).

The end-of-run update goes through report_final() instead: it is held
aside and delivered after the queue drains, so it is never dropped.
"""

import queue
import threading
from typing import Callable, Optional

import structlog

from musicdedup.models.dedup import ProgressUpdate

logger = structlog.get_logger()

ProgressCallback = Callable[[ProgressUpdate], None]

_STOP = object()


class ProgressReporter:
    """Queue-and-return progress sink with a background dispatcher"""

    def __init__(self, callback: Optional[ProgressCallback], maxsize: int = 1000):
        self._callback = callback
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=maxsize)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._dropped = 0
        self._final: Optional[ProgressUpdate] = None

    @property
    def dropped(self) -> int:
        with self._lock:
            return self._dropped

    def start(self) -> "ProgressReporter":
        if self._callback is not None and self._thread is None:
            self._thread = threading.Thread(
                target=self._dispatch, name="progress-dispatcher", daemon=True
            )
            self._thread.start()
        return self

    def report(self, update: ProgressUpdate) -> None:
        """Enqueue an update without blocking."""
        if self._callback is None:
            return
        try:
            self._queue.put_nowait(update)
        except queue.Full:
            with self._lock:
                self._dropped += 1

    def report_final(self, update: ProgressUpdate) -> None:
        """Hold the end-of-run update; close() delivers it last."""
        if self._callback is None:
            return
        with self._lock:
            self._final = update

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Deliver queued updates and the final one, then stop the dispatcher."""
        if self._thread is None:
            return
        # Blocking put is fine here: the dispatcher is draining
        self._queue.put(_STOP)
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("progress_dispatcher_timeout", timeout=timeout)
        self._thread = None
        if self.dropped:
            logger.debug("progress_updates_dropped", dropped=self.dropped)

    def _dispatch(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                with self._lock:
                    final, self._final = self._final, None
                if final is not None:
                    self._deliver(final)
                return
            self._deliver(item)  # type: ignore[arg-type]

    def _deliver(self, update: ProgressUpdate) -> None:
        try:
            self._callback(update)  # type: ignore[misc]
        except Exception as e:
            logger.warning("progress_callback_failed", error=str(e))

    def __enter__(self) -> "ProgressReporter":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
