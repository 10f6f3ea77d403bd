"""Image classification backend.

The ``ImageClassifier`` protocol is the only thing the adapter depends on.
``OnnxImageClassifier`` runs an ImageNet-style ONNX model through an
onnxruntime session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from imagedetector.ml.preprocessing import prepare_tensor

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """A single classification prediction."""

    label: str
    confidence: float


@dataclass(frozen=True)
class ClassificationResult:
    """Candidates for one inference call, sorted by confidence (descending)."""

    candidates: tuple[Candidate, ...]

    @classmethod
    def ranked(cls, candidates: list[Candidate]) -> ClassificationResult:
        return cls(tuple(sorted(candidates, key=lambda c: c.confidence, reverse=True)))

    @property
    def top(self) -> Candidate | None:
        return self.candidates[0] if self.candidates else None


class ImageClassifier(Protocol):
    """Protocol for image classification models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    def classify(self, image: NDArray[np.uint8]) -> list[Candidate]:
        """Classify an image and return ranked candidates.

        Args:
            image: HxWx3 RGB uint8 array.

        Returns:
            List of candidates sorted by confidence (descending).

        Raises:
            Exception: Any backend failure; callers turn it into an error message.
        """
        ...


def softmax(logits: NDArray[np.float32]) -> NDArray[np.float32]:
    shifted = logits - np.max(logits)
    exp = np.exp(shifted)
    return (exp / np.sum(exp)).astype(np.float32)


class OnnxImageClassifier:
    """Runs a single-input, single-output ImageNet classifier session."""

    def __init__(
        self,
        model_name: str,
        session: InferenceSession,
        labels: list[str],
        *,
        input_size: int = 224,
        outputs_probabilities: bool = False,
        top_k: int = 5,
    ) -> None:
        self._model_name = model_name
        self._session = session
        self._labels = labels
        self._input_size = input_size
        self._outputs_probabilities = outputs_probabilities
        self._top_k = top_k
        self._input_name = session.get_inputs()[0].name

    @property
    def model_name(self) -> str:
        return self._model_name

    def classify(self, image: NDArray[np.uint8]) -> list[Candidate]:
        tensor = prepare_tensor(image, self._input_size)
        outputs = self._session.run(None, {self._input_name: tensor})
        scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if scores.size != len(self._labels):
            raise ValueError(f"Model produced {scores.size} scores for {len(self._labels)} labels")

        probabilities = scores if self._outputs_probabilities else softmax(scores)
        top = np.argsort(probabilities)[::-1][: self._top_k]
        return [Candidate(label=self._labels[i], confidence=float(probabilities[i])) for i in top]
