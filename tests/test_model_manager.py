"""Tests for the ONNX model manager."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from imagedetector.config import Settings
from imagedetector.ml.image_classifier import OnnxImageClassifier
from imagedetector.ml.model_manager import MODEL_REGISTRY, OnnxModelManager, get_spec

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_settings(models_dir: Path, **overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "device": "cpu",
        "models_dir": str(models_dir),
        "intra_op_threads": 0,
        "inter_op_threads": 1,
        "gpu_mem_limit": 2_147_483_648,
        "top_k": 3,
        "model_repo_id": "acme/imagenet-onnx",
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


def _fake_session(output_size: int = 3) -> MagicMock:
    session = MagicMock()
    session.get_inputs.return_value[0].name = "data"
    session.run.return_value = [np.zeros((1, output_size), dtype=np.float32)]
    return session


# ---------------------------------------------------------------------------
# Model registry tests
# ---------------------------------------------------------------------------


class TestModelRegistry:
    def test_known_model_lookup(self) -> None:
        spec = MODEL_REGISTRY["squeezenet1_1"]
        assert spec.name == "squeezenet1_1"
        assert spec.input_size == 224
        assert spec.filename.endswith(".onnx")

    def test_default_model_is_registered(self, tmp_path: Path) -> None:
        assert _make_settings(tmp_path).classification_model in MODEL_REGISTRY

    def test_unknown_model_raises_keyerror(self) -> None:
        with pytest.raises(KeyError, match="Unknown model"):
            get_spec("nonexistent_model")

    def test_every_spec_has_labels(self) -> None:
        assert all(spec.labels_filename for spec in MODEL_REGISTRY.values())


# ---------------------------------------------------------------------------
# OnnxModelManager tests
# ---------------------------------------------------------------------------


class TestOnnxModelManager:
    @patch("imagedetector.ml.model_manager.hf_hub_download")
    def test_ensure_downloaded_calls_hf_hub_download(self, mock_download: MagicMock, tmp_path: Path) -> None:
        mock_download.return_value = str(tmp_path / "squeezenet1.1-7.onnx")
        mgr = OnnxModelManager(_make_settings(tmp_path))

        path = mgr.ensure_downloaded("squeezenet1_1")

        mock_download.assert_called_once_with(
            repo_id="acme/imagenet-onnx",
            filename="squeezenet1.1-7.onnx",
            local_dir=str(tmp_path),
        )
        assert path == tmp_path / "squeezenet1.1-7.onnx"

    @patch("imagedetector.ml.model_manager.hf_hub_download")
    def test_ensure_downloaded_skips_existing(self, mock_download: MagicMock, tmp_path: Path) -> None:
        model_file = tmp_path / "squeezenet1.1-7.onnx"
        model_file.touch()
        mgr = OnnxModelManager(_make_settings(tmp_path))
        # Simulate a previous download by setting the cached path.
        mgr._model_paths["squeezenet1_1"] = model_file

        path = mgr.ensure_downloaded("squeezenet1_1")

        mock_download.assert_not_called()
        assert path == model_file

    @patch("imagedetector.ml.model_manager.hf_hub_download")
    def test_model_file_in_models_dir_is_used(self, mock_download: MagicMock, tmp_path: Path) -> None:
        model_file = tmp_path / "squeezenet1.1-7.onnx"
        model_file.touch()
        mgr = OnnxModelManager(_make_settings(tmp_path))

        assert mgr.ensure_downloaded("squeezenet1_1") == model_file
        mock_download.assert_not_called()

    @patch("imagedetector.ml.model_manager.hf_hub_download")
    def test_configured_model_path_bypasses_hub(self, mock_download: MagicMock, tmp_path: Path) -> None:
        model_file = tmp_path / "elsewhere" / "custom.onnx"
        model_file.parent.mkdir()
        model_file.touch()
        mgr = OnnxModelManager(_make_settings(tmp_path / "models", model_path=str(model_file), model_repo_id=None))

        assert mgr.ensure_downloaded("squeezenet1_1") == model_file
        mock_download.assert_not_called()

    def test_missing_configured_model_path_raises(self, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(tmp_path, model_path=str(tmp_path / "missing.onnx")))
        with pytest.raises(FileNotFoundError, match="missing.onnx"):
            mgr.ensure_downloaded("squeezenet1_1")

    @patch("imagedetector.ml.model_manager.hf_hub_download")
    def test_no_repo_and_no_local_file_raises(self, mock_download: MagicMock, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(tmp_path, model_repo_id=None))
        with pytest.raises(FileNotFoundError, match="model_repo_id"):
            mgr.ensure_downloaded("squeezenet1_1")
        mock_download.assert_not_called()

    def test_models_dir_is_created(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "models"
        OnnxModelManager(_make_settings(target))
        assert target.is_dir()

    @patch("imagedetector.ml.model_manager.InferenceSession")
    @patch("imagedetector.ml.model_manager.hf_hub_download")
    def test_get_session_creates_and_caches(
        self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_download.return_value = str(tmp_path / "squeezenet1.1-7.onnx")
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mgr = OnnxModelManager(_make_settings(tmp_path))

        session1 = mgr.get_session("squeezenet1_1")
        session2 = mgr.get_session("squeezenet1_1")

        assert session1 is mock_session
        assert session2 is mock_session
        mock_session_cls.assert_called_once()

    @patch("imagedetector.ml.model_manager.InferenceSession")
    @patch("imagedetector.ml.model_manager.hf_hub_download")
    def test_get_loaded_models(self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        mock_download.return_value = str(tmp_path / "mobilenetv2-12.onnx")
        mgr = OnnxModelManager(_make_settings(tmp_path))

        assert mgr.get_loaded_models() == []
        mgr.get_session("mobilenetv2")
        assert mgr.get_loaded_models() == ["mobilenetv2"]

    @patch("imagedetector.ml.model_manager.hf_hub_download")
    def test_load_labels_reads_local_file(self, mock_download: MagicMock, tmp_path: Path) -> None:
        (tmp_path / "imagenet_labels.txt").write_text("tench\ngoldfish\n\ngreat white shark\n", encoding="utf-8")
        mgr = OnnxModelManager(_make_settings(tmp_path))

        assert mgr.load_labels("squeezenet1_1") == ["tench", "goldfish", "great white shark"]
        mock_download.assert_not_called()

    @patch("imagedetector.ml.model_manager.hf_hub_download")
    def test_load_labels_downloads_when_missing(self, mock_download: MagicMock, tmp_path: Path) -> None:
        labels_file = tmp_path / "downloaded" / "imagenet_labels.txt"
        labels_file.parent.mkdir()
        labels_file.write_text("tench\n", encoding="utf-8")
        mock_download.return_value = str(labels_file)
        mgr = OnnxModelManager(_make_settings(tmp_path))

        assert mgr.load_labels("squeezenet1_1") == ["tench"]
        mock_download.assert_called_once_with(
            repo_id="acme/imagenet-onnx",
            filename="imagenet_labels.txt",
            local_dir=str(tmp_path),
        )

    @patch("imagedetector.ml.model_manager.hf_hub_download")
    def test_configured_labels_path_bypasses_hub(self, mock_download: MagicMock, tmp_path: Path) -> None:
        labels_file = tmp_path / "synset.txt"
        labels_file.write_text("tench\ngoldfish\n", encoding="utf-8")
        mgr = OnnxModelManager(_make_settings(tmp_path / "models", labels_path=str(labels_file), model_repo_id=None))

        assert mgr.load_labels("squeezenet1_1") == ["tench", "goldfish"]
        mock_download.assert_not_called()

    @patch("imagedetector.ml.model_manager.InferenceSession")
    @patch("imagedetector.ml.model_manager.hf_hub_download")
    def test_build_classifier_from_local_files(
        self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path
    ) -> None:
        model_file = tmp_path / "custom.onnx"
        model_file.touch()
        labels_file = tmp_path / "labels.txt"
        labels_file.write_text("a\nb\nc\n", encoding="utf-8")
        mock_session_cls.return_value = _fake_session()
        mgr = OnnxModelManager(
            _make_settings(
                tmp_path / "models",
                model_path=str(model_file),
                labels_path=str(labels_file),
                model_repo_id=None,
            )
        )

        classifier = mgr.build_classifier("squeezenet1_1")

        assert classifier.model_name == "squeezenet1_1"
        assert mock_session_cls.call_args.args[0] == str(model_file)
        mock_download.assert_not_called()

    def test_empty_labels_raise(self, tmp_path: Path) -> None:
        (tmp_path / "imagenet_labels.txt").write_text("\n\n", encoding="utf-8")
        mgr = OnnxModelManager(_make_settings(tmp_path))
        with pytest.raises(ValueError, match="empty"):
            mgr.load_labels("squeezenet1_1")

    @patch("imagedetector.ml.model_manager.InferenceSession")
    @patch("imagedetector.ml.model_manager.hf_hub_download")
    def test_build_classifier(self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        mock_download.return_value = str(tmp_path / "squeezenet1.1-7.onnx")
        mock_session_cls.return_value = _fake_session()
        (tmp_path / "imagenet_labels.txt").write_text("a\nb\nc\n", encoding="utf-8")
        mgr = OnnxModelManager(_make_settings(tmp_path))

        classifier = mgr.build_classifier("squeezenet1_1")

        assert isinstance(classifier, OnnxImageClassifier)
        assert classifier.model_name == "squeezenet1_1"
        assert len(classifier.classify(np.zeros((8, 8, 3), dtype=np.uint8))) == 3

    @patch("imagedetector.ml.model_manager.hf_hub_download", side_effect=OSError("offline"))
    def test_build_classifier_propagates_download_failure(self, mock_download: MagicMock, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(tmp_path))
        with pytest.raises(OSError, match="offline"):
            mgr.build_classifier("squeezenet1_1")

    def test_provider_building_cpu(self, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(tmp_path, device="cpu"))
        assert mgr._providers == ["CPUExecutionProvider"]

    def test_provider_building_cuda(self, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(tmp_path, device="cuda"))
        assert len(mgr._providers) == 2
        provider_name, provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "CUDAExecutionProvider"
        assert provider_opts["device_id"] == 0
        assert mgr._providers[1] == "CPUExecutionProvider"

    def test_provider_building_openvino(self, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(tmp_path, device="openvino"))
        provider_name, _provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "OpenVINOExecutionProvider"
        assert mgr._providers[1] == "CPUExecutionProvider"

    @patch("imagedetector.ml.model_manager.InferenceSession")
    @patch("imagedetector.ml.model_manager.hf_hub_download")
    def test_shutdown_clears_sessions(
        self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_download.return_value = str(tmp_path / "squeezenet1.1-7.onnx")
        mgr = OnnxModelManager(_make_settings(tmp_path))
        mgr.get_session("squeezenet1_1")
        assert len(mgr.get_loaded_models()) == 1

        mgr.shutdown()
        assert mgr.get_loaded_models() == []
