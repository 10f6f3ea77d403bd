"""Wires acquisition, classification, and presentation into one flow.

    take_image -> picker -> image_selected -> "Detecting object..."
               -> adapter (background) -> display text
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import asyncio

    from imagedetector.ml.adapter import ImageClassifierAdapter
    from imagedetector.ui.acquisition import AcquiredImage, ImageAcquisition, ImageSource
    from imagedetector.ui.context import UIContext
    from imagedetector.ui.presenter import DisplayState

logger = logging.getLogger(__name__)


class PredictionStatus(StrEnum):
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Prediction:
    """Display text at the end of one request, and how the request ended."""

    text: str
    status: PredictionStatus


class DetectorController:
    """Drives one request at a time per caller. Must be used on the UI context."""

    def __init__(
        self,
        acquisition: ImageAcquisition,
        adapter: ImageClassifierAdapter,
        display: DisplayState,
        ui: UIContext,
    ) -> None:
        self._acquisition = acquisition
        self._adapter = adapter
        self._display = display
        self._ui = ui

    @property
    def display(self) -> DisplayState:
        return self._display

    async def take_image(self, source: ImageSource, *, selection: str | None = None) -> Prediction:
        """Acquire an image from ``source`` and classify it."""
        self._ui.ensure_current("take_image")
        picked: asyncio.Future[AcquiredImage | None] = self._ui.loop.create_future()

        def on_image(image: AcquiredImage | None) -> None:
            if not picked.done():
                picked.set_result(image)

        if not self._acquisition.take_image(source, on_image, selection=selection):
            self._display.show_idle()
            return Prediction(self._display.text, PredictionStatus.UNAVAILABLE)

        image = await picked
        if image is None:
            self._display.show_idle()
            return Prediction(self._display.text, PredictionStatus.CANCELLED)

        return await self.image_selected(image)

    def image_selected(self, image: AcquiredImage) -> asyncio.Future[Prediction]:
        """Show ``image``, start classifying it, and return the pending prediction.

        The returned future resolves with this request's own result text. The
        display may be overwritten later by a request that finishes after it.
        """
        self._ui.ensure_current("image_selected")
        self._display.show_image(image)
        self._display.show_detecting()

        done: asyncio.Future[Prediction] = self._ui.loop.create_future()

        def completion(text: str) -> None:
            self._display.set_text(text)
            if not done.done():
                done.set_result(Prediction(text, PredictionStatus.COMPLETE))

        logger.info("Classifying %s image (%s bytes)", image.source, len(image.data))
        self._adapter.detect_objects(image, completion)
        return done
