"""The UI-owning execution context.

The application's asyncio event loop owns all display state. Work produced on
other threads is handed over by posting a callback onto the loop's task queue
with ``call_soon_threadsafe``; only the loop thread drains that queue.
"""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


class UIContext:
    """Handle on the event loop that is allowed to mutate display state."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    @classmethod
    def current(cls) -> UIContext:
        """Bind to the running loop. Must be called from inside that loop."""
        return cls(asyncio.get_running_loop())

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def is_current(self) -> bool:
        """True when called from the loop thread while the loop is running."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            return False
        return running is self._loop

    def post(self, callback: Callable[..., object], *args: object) -> None:
        """Queue ``callback(*args)`` to run on the loop, from any thread."""
        self._loop.call_soon_threadsafe(callback, *args)

    def ensure_current(self, what: str) -> None:
        if not self.is_current():
            raise RuntimeError(f"{what} must run on the UI context (called from {threading.current_thread().name})")
