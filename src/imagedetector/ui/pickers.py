"""Concrete acquisition surfaces: a photo library directory and an OpenCV camera."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING

import cv2

from imagedetector.ml.preprocessing import edit_image
from imagedetector.ui.acquisition import EDITED_IMAGE, ORIGINAL_IMAGE, ImageSource

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from imagedetector.ui.acquisition import PickerRequest

logger = logging.getLogger(__name__)

LIBRARY_SUFFIXES = frozenset({".jpg", ".jpeg", ".png", ".bmp", ".gif", ".webp", ".tif", ".tiff"})

JPEG_QUALITY = 90


def _picker_info(original: bytes, allows_editing: bool) -> dict[str, bytes]:
    info = {ORIGINAL_IMAGE: original}
    if allows_editing:
        edited = edit_image(original)
        if edited is not None:
            info[EDITED_IMAGE] = edited
    return info


class LibraryPicker:
    """Picks a named image file out of a library directory."""

    def __init__(self, library_dir: str | Path) -> None:
        self._root = Path(library_dir)

    def is_source_available(self, source: ImageSource) -> bool:
        return source is ImageSource.PHOTO_LIBRARY and self._root.is_dir()

    def list_images(self) -> list[str]:
        if not self._root.is_dir():
            return []
        return sorted(p.name for p in self._root.iterdir() if p.is_file() and p.suffix.lower() in LIBRARY_SUFFIXES)

    def present(self, request: PickerRequest, on_finish: Callable[[Mapping[str, bytes] | None], None]) -> None:
        path = self._resolve(request.selection)
        if path is None:
            on_finish(None)
            return
        logger.info("library_picker: selected %s (%s)", path.name, request.presentation)
        on_finish(_picker_info(path.read_bytes(), request.allows_editing))

    def _resolve(self, selection: str | None) -> Path | None:
        if not selection:
            return None
        # Only bare file names inside the library are selectable.
        if Path(selection).name != selection:
            logger.warning("library_picker: rejected selection %r", selection)
            return None
        path = self._root / selection
        if not path.is_file() or path.suffix.lower() not in LIBRARY_SUFFIXES:
            logger.info("library_picker: %s not found in %s", selection, self._root)
            return None
        return path


class CameraPicker:
    """Grabs one frame from an OpenCV video device on a background thread.

    Availability is cached for ``availability_ttl`` seconds. A capture
    attempt refreshes the cached answer.
    """

    def __init__(self, index: int = 0, *, availability_ttl: float = 30.0) -> None:
        self._index = index
        self._availability_ttl = availability_ttl
        self._lock = threading.Lock()
        self._available: bool | None = None
        self._checked_at = 0.0

    def is_source_available(self, source: ImageSource) -> bool:
        if source is not ImageSource.CAMERA:
            return False
        with self._lock:
            if self._available is not None and time.monotonic() - self._checked_at < self._availability_ttl:
                return self._available
            cap = cv2.VideoCapture(self._index)
            try:
                self._remember(bool(cap.isOpened()))
            finally:
                cap.release()
            return bool(self._available)

    def present(self, request: PickerRequest, on_finish: Callable[[Mapping[str, bytes] | None], None]) -> None:
        def _capture() -> None:
            frame = self.capture_bytes()
            on_finish(None if frame is None else _picker_info(frame, request.allows_editing))

        threading.Thread(target=_capture, name="camera-capture", daemon=True).start()

    def capture_bytes(self) -> bytes | None:
        """Capture one frame. Returns JPEG bytes or None on failure."""
        with self._lock:
            cap = cv2.VideoCapture(self._index)
            try:
                opened = bool(cap.isOpened())
                self._remember(opened)
                if not opened:
                    logger.warning("camera_picker: failed to open device %s", self._index)
                    return None
                ret, frame = cap.read()
            finally:
                cap.release()
        if not ret or frame is None:
            logger.warning("camera_picker: frame capture failed")
            return None
        ok, buf = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, JPEG_QUALITY])
        if not ok:
            return None
        return bytes(buf)

    def _remember(self, available: bool) -> None:
        # Caller holds self._lock.
        self._available = available
        self._checked_at = time.monotonic()
