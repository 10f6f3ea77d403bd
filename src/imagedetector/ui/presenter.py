"""Result presentation: the single piece of display state."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from imagedetector.ui.acquisition import AcquiredImage
    from imagedetector.ui.context import UIContext

logger = logging.getLogger(__name__)


class DisplayState:
    """The current display text and the image it describes.

    Last write wins; no history is kept. Every mutation must happen on the
    UI context. Reads are allowed from anywhere.
    """

    def __init__(self, ui: UIContext, *, idle_text: str, detecting_text: str) -> None:
        self._ui = ui
        self._idle_text = idle_text
        self._detecting_text = detecting_text
        self._text = idle_text
        self._image: AcquiredImage | None = None
        self._writes = 0

    @property
    def text(self) -> str:
        return self._text

    @property
    def image(self) -> AcquiredImage | None:
        return self._image

    @property
    def idle_text(self) -> str:
        return self._idle_text

    @property
    def write_count(self) -> int:
        return self._writes

    def set_text(self, text: str) -> None:
        self._ui.ensure_current("Display update")
        self._text = text
        self._writes += 1
        logger.debug("Display: %s", text)

    def show_image(self, image: AcquiredImage) -> None:
        self._ui.ensure_current("Display update")
        self._image = image

    def show_idle(self) -> None:
        self.set_text(self._idle_text)

    def show_detecting(self) -> None:
        self.set_text(self._detecting_text)
