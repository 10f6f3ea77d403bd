"""Image acquisition: present a capture or selection surface and collect the image."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from imagedetector.ui.context import UIContext

logger = logging.getLogger(__name__)

EDITED_IMAGE = "edited_image"
ORIGINAL_IMAGE = "original_image"


class ImageSource(StrEnum):
    CAMERA = "camera"
    PHOTO_LIBRARY = "photo_library"


class DeviceIdiom(StrEnum):
    PHONE = "phone"
    TABLET = "tablet"


class PresentationStyle(StrEnum):
    FULL_SCREEN = "full_screen"
    POPOVER = "popover"


@dataclass(frozen=True)
class AcquiredImage:
    """Encoded image bytes together with where they came from."""

    data: bytes
    source: ImageSource
    edited: bool = False


@dataclass(frozen=True)
class PickerRequest:
    """What a picker surface is asked to show."""

    source: ImageSource
    presentation: PresentationStyle
    allows_editing: bool = True
    anchor: str | None = None
    selection: str | None = None


class PickerSurface(Protocol):
    """Protocol for a modal capture or selection surface."""

    def is_source_available(self, source: ImageSource) -> bool:
        """Return whether this surface can serve ``source`` right now."""
        ...

    def present(self, request: PickerRequest, on_finish: Callable[[Mapping[str, bytes] | None], None]) -> None:
        """Show the surface and call ``on_finish`` once with the picker info, or None on cancel.

        ``on_finish`` may be called from any thread.
        """
        ...


def presentation_for(source: ImageSource, idiom: DeviceIdiom) -> PresentationStyle:
    """Non-camera sources on tablets must be shown as an anchored popover."""
    if source is not ImageSource.CAMERA and idiom is DeviceIdiom.TABLET:
        return PresentationStyle.POPOVER
    return PresentationStyle.FULL_SCREEN


def select_image(info: Mapping[str, bytes] | None, source: ImageSource) -> AcquiredImage | None:
    """Prefer the edited image, fall back to the original one."""
    if not info:
        return None
    edited = info.get(EDITED_IMAGE)
    if edited:
        return AcquiredImage(data=edited, source=source, edited=True)
    original = info.get(ORIGINAL_IMAGE)
    if original:
        return AcquiredImage(data=original, source=source, edited=False)
    return None


class ImageAcquisition:
    """Routes a requested source to the surface that serves it."""

    def __init__(
        self,
        surfaces: Mapping[ImageSource, PickerSurface],
        ui: UIContext,
        *,
        idiom: DeviceIdiom = DeviceIdiom.PHONE,
        anchor: str | None = "image_view",
    ) -> None:
        self._surfaces = dict(surfaces)
        self._ui = ui
        self._idiom = idiom
        self._anchor = anchor

    def is_available(self, source: ImageSource) -> bool:
        surface = self._surfaces.get(source)
        return surface is not None and surface.is_source_available(source)

    def take_image(
        self,
        source: ImageSource,
        on_image: Callable[[AcquiredImage | None], None],
        *,
        selection: str | None = None,
    ) -> bool:
        """Present the surface for ``source``.

        ``on_image`` runs on the UI context with the picked image, or None if
        the user cancelled.

        Returns:
            False if the source is unavailable; nothing is presented and
            ``on_image`` is never called.
        """
        if not self.is_available(source):
            logger.warning("Source type %s isn't available.", source)
            return False

        presentation = presentation_for(source, self._idiom)
        request = PickerRequest(
            source=source,
            presentation=presentation,
            allows_editing=True,
            anchor=self._anchor if presentation is PresentationStyle.POPOVER else None,
            selection=selection,
        )

        def finished(info: Mapping[str, bytes] | None) -> None:
            image = select_image(info, source)
            if image is None:
                logger.info("No image selected.")
            on_image(image)

        def finished_on_ui(info: Mapping[str, bytes] | None) -> None:
            self._ui.post(finished, info)

        self._surfaces[source].present(request, finished_on_ui)
        return True
