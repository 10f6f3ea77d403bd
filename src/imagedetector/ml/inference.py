"""Background dispatch for inference.

Architecture:
    caller (event loop) -> one short-lived thread per request -> ONNX inference

There is no pool and no queue: every request gets its own
thread and runs to completion. Results travel back through the caller's
completion callback, never through this module.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

THREAD_NAME_PREFIX = "classify-inference"


class InferenceDispatcher:
    """Starts one background thread per inference request and counts them."""

    def __init__(self) -> None:
        self._active: set[threading.Thread] = set()
        self._submitted: int = 0
        self._counter_lock = threading.Lock()

    def submit(self, func: Callable[..., object], *args: object) -> threading.Thread:
        """Run ``func(*args)`` on a new background thread and return the thread."""
        with self._counter_lock:
            self._submitted += 1
            name = f"{THREAD_NAME_PREFIX}-{self._submitted}"

        def _run() -> None:
            try:
                func(*args)
            except Exception:
                logger.exception("Inference thread %s failed", name)
            finally:
                with self._counter_lock:
                    self._active.discard(thread)

        thread = threading.Thread(target=_run, name=name, daemon=True)
        with self._counter_lock:
            self._active.add(thread)
        thread.start()
        return thread

    @property
    def active_count(self) -> int:
        """Number of currently running inference threads."""
        with self._counter_lock:
            return len(self._active)

    def shutdown(self, timeout: float | None = None) -> None:
        """Wait for in-flight inference threads to finish."""
        with self._counter_lock:
            pending = list(self._active)
        for thread in pending:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Inference thread %s still running at shutdown", thread.name)
