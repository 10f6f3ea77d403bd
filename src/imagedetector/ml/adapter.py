"""Image classifier adapter.

Takes one acquired image through conversion, model loading, and background
inference, and reports a single human-readable string through a completion
callback that always runs on the UI context, exactly once per request.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from imagedetector.ml.image_classifier import Candidate, ClassificationResult
from imagedetector.ml.result import (
    EMPTY_RESULT_MESSAGE,
    MODEL_LOAD_FAILURE_MESSAGE,
    Err,
    ErrorKind,
    Ok,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    import numpy as np
    from numpy.typing import NDArray

    from imagedetector.ml.image_classifier import ImageClassifier
    from imagedetector.ml.inference import InferenceDispatcher
    from imagedetector.ml.result import Outcome
    from imagedetector.ui.acquisition import AcquiredImage
    from imagedetector.ui.context import UIContext

logger = logging.getLogger(__name__)


def format_prediction(candidate: Candidate) -> str:
    """Render a candidate as ``"<label> (<pct>%)"``, truncating the percentage.

    The product is rounded to four places before truncation so that float
    representation error (0.57 * 100 == 56.99999999999999) does not cost a
    whole percent.
    """
    return f"{candidate.label} ({int(round(candidate.confidence * 100, 4))}%)"


def _is_wellformed(candidate: object) -> bool:
    if not isinstance(candidate, Candidate):
        return False
    confidence = candidate.confidence
    return (
        isinstance(candidate.label, str)
        and bool(candidate.label)
        and isinstance(confidence, (int, float))
        and not isinstance(confidence, bool)
        and 0.0 <= confidence <= 1.0
    )


def pick_top(candidates: object) -> Outcome[Candidate]:
    """Select the highest-confidence candidate, or an empty-result error."""
    if not isinstance(candidates, (list, tuple)) or not candidates:
        return Err(ErrorKind.EMPTY_RESULT, EMPTY_RESULT_MESSAGE)
    if not all(_is_wellformed(c) for c in candidates):
        return Err(ErrorKind.EMPTY_RESULT, EMPTY_RESULT_MESSAGE)
    top = ClassificationResult.ranked(list(candidates)).top
    if top is None:
        return Err(ErrorKind.EMPTY_RESULT, EMPTY_RESULT_MESSAGE)
    return Ok(top)


class ImageClassifierAdapter:
    """Owns the classifier instance and runs classification requests.

    The classifier is created lazily by ``loader`` on first use. If loading
    raises, the request fails with a model-load error and the next request
    tries again; a failed load is never cached.
    """

    def __init__(
        self,
        loader: Callable[[], ImageClassifier],
        ui: UIContext,
        dispatcher: InferenceDispatcher,
        *,
        decode: Callable[[bytes], Outcome[NDArray[np.uint8]]],
    ) -> None:
        self._loader = loader
        self._ui = ui
        self._dispatcher = dispatcher
        self._decode = decode
        self._classifier: ImageClassifier | None = None
        self._load_lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._classifier is not None

    def load(self) -> Outcome[ImageClassifier]:
        """Return the classifier, creating it on first call."""
        with self._load_lock:
            if self._classifier is not None:
                return Ok(self._classifier)
            try:
                classifier = self._loader()
            except Exception:
                logger.exception("Failed to load classification model")
                return Err(ErrorKind.MODEL_LOAD_FAILURE, MODEL_LOAD_FAILURE_MESSAGE)
            self._classifier = classifier
            logger.info("Classification model %s ready", classifier.model_name)
            return Ok(classifier)

    def detect_objects(self, image: AcquiredImage, completion: Callable[[str], None]) -> threading.Thread | None:
        """Classify ``image`` and deliver the result text to ``completion``.

        Conversion happens synchronously; model loading and inference run on
        a background thread so the UI context never waits on a download or
        session build. ``completion`` is always posted onto the UI context,
        even for synchronous failures.

        Returns:
            The background thread, or None if conversion failed.
        """

        def completion_on_ui(text: str) -> None:
            self._ui.post(completion, text)

        converted = self._decode(image.data)
        if isinstance(converted, Err):
            completion_on_ui(converted.message)
            return None

        return self._dispatcher.submit(self._classify, converted.value, completion_on_ui)

    def _classify(self, pixels: NDArray[np.uint8], completion_on_ui: Callable[[str], None]) -> None:
        loaded = self.load()
        if isinstance(loaded, Err):
            completion_on_ui(loaded.message)
            return

        try:
            candidates = loaded.value.classify(pixels)
        except Exception as exc:
            logger.warning("Classification failed: %s", exc)
            completion_on_ui(f"Error classifying image: {exc}")
            return

        try:
            picked = pick_top(candidates)
            if isinstance(picked, Err):
                logger.warning("Model returned no usable candidates")
                text = picked.message
            else:
                text = format_prediction(picked.value)
        except Exception:
            logger.exception("Could not read model output")
            text = EMPTY_RESULT_MESSAGE
        completion_on_ui(text)
