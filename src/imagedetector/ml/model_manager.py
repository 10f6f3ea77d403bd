"""Model manager: download, load, and cache ONNX classification models.

Finds model and label files locally (or downloads them from HuggingFace), creating
and caching ONNX InferenceSessions, and building ready-to-use classifiers.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from imagedetector.ml.image_classifier import OnnxImageClassifier

if TYPE_CHECKING:
    from imagedetector.config import Settings
    from imagedetector.ml.image_classifier import ImageClassifier

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    def ensure_downloaded(self, model_name: str) -> Path:
        """Ensure a model is downloaded and return its file path."""
        ...

    def get_session(self, model_name: str) -> InferenceSession:
        """Return a cached or newly created InferenceSession."""
        ...

    def load_labels(self, model_name: str) -> list[str]:
        """Return the class labels for a model, index-aligned with its output."""
        ...

    def build_classifier(self, model_name: str) -> ImageClassifier:
        """Return a classifier backed by the model's session and labels."""
        ...

    def get_loaded_models(self) -> list[str]:
        """Return names of currently loaded models."""
        ...

    def shutdown(self) -> None:
        """Clear all cached sessions."""
        ...


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single ONNX classification model."""

    name: str
    filename: str
    labels_filename: str
    input_size: int
    outputs_probabilities: bool
    license: str


MODEL_REGISTRY: dict[str, ModelSpec] = {
    "squeezenet1_1": ModelSpec(
        name="squeezenet1_1",
        filename="squeezenet1.1-7.onnx",
        labels_filename="imagenet_labels.txt",
        input_size=224,
        outputs_probabilities=False,
        license="BSD-2-Clause",
    ),
    "mobilenetv2": ModelSpec(
        name="mobilenetv2",
        filename="mobilenetv2-12.onnx",
        labels_filename="imagenet_labels.txt",
        input_size=224,
        outputs_probabilities=False,
        license="Apache-2.0",
    ),
    "resnet50": ModelSpec(
        name="resnet50",
        filename="resnet50-v2-7.onnx",
        labels_filename="imagenet_labels.txt",
        input_size=224,
        outputs_probabilities=False,
        license="Apache-2.0",
    ),
}


def get_spec(model_name: str) -> ModelSpec:
    try:
        return MODEL_REGISTRY[model_name]
    except KeyError:
        raise KeyError(f"Unknown model: {model_name}") from None


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Downloads, loads, and caches ONNX inference sessions."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._models_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._sessions: dict[str, InferenceSession] = {}
        self._model_paths: dict[str, Path] = {}

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def ensure_downloaded(self, model_name: str) -> Path:
        """Return a local model file, downloading from HuggingFace only if needed.

        Lookup order: the configured ``model_path`` (for the configured model),
        then ``models_dir/<filename>``, then ``model_repo_id`` on the hub.
        """
        spec = get_spec(model_name)

        if model_name in self._model_paths:
            path = self._model_paths[model_name]
            if path.exists():
                return path

        if self._settings.model_path and model_name == self._settings.classification_model:
            path = self._require_file(self._settings.model_path)
        else:
            path = self._models_dir / spec.filename
            if not path.exists():
                path = self._download(spec.filename)
                logger.info("Downloaded %s to %s", model_name, path)
        self._model_paths[model_name] = path
        return path

    def get_session(self, model_name: str) -> InferenceSession:
        """Return a cached InferenceSession, creating one if needed."""
        with self._lock:
            cached = self._sessions.get(model_name)
            if cached is not None:
                return cached

        model_path = self.ensure_downloaded(model_name)
        session = InferenceSession(
            str(model_path),
            sess_options=self._session_options,
            providers=self._providers,
        )

        with self._lock:
            # Double-check: another thread may have created it while we loaded.
            existing = self._sessions.get(model_name)
            if existing is not None:
                return existing
            self._sessions[model_name] = session
            logger.info("Loaded session for %s", model_name)
            return session

    def load_labels(self, model_name: str) -> list[str]:
        """Read the label file for a model, downloading it if needed."""
        spec = get_spec(model_name)
        if self._settings.labels_path and model_name == self._settings.classification_model:
            path = self._require_file(self._settings.labels_path)
        else:
            path = self._models_dir / spec.labels_filename
            if not path.exists():
                path = self._download(spec.labels_filename)
        labels = [line.strip() for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]
        if not labels:
            raise ValueError(f"Label file for {model_name} is empty")
        return labels

    def build_classifier(self, model_name: str) -> OnnxImageClassifier:
        """Load the session and labels for a model and wrap them in a classifier."""
        spec = get_spec(model_name)
        session = self.get_session(model_name)
        labels = self.load_labels(model_name)
        return OnnxImageClassifier(
            model_name,
            session,
            labels,
            input_size=spec.input_size,
            outputs_probabilities=spec.outputs_probabilities,
            top_k=self._settings.top_k,
        )

    def get_loaded_models(self) -> list[str]:
        """Return names of models with active sessions."""
        with self._lock:
            return list(self._sessions.keys())

    def shutdown(self) -> None:
        """Clear all cached sessions."""
        with self._lock:
            self._sessions.clear()
            logger.info("All model sessions cleared")

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _require_file(configured: str) -> Path:
        path = Path(configured)
        if not path.is_file():
            raise FileNotFoundError(f"Configured file not found: {path}")
        return path

    def _download(self, filename: str) -> Path:
        repo_id = self._settings.model_repo_id
        if not repo_id:
            raise FileNotFoundError(
                f"{filename} is not in {self._models_dir} and no model_repo_id is configured to download it from"
            )
        return Path(
            hf_hub_download(
                repo_id=repo_id,
                filename=filename,
                local_dir=str(self._models_dir),
            )
        )

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
