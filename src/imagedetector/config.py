"""Environment-based configuration for ImageDetector."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from IMAGEDETECTOR_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IMAGEDETECTOR_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model selection
    classification_model: str = "squeezenet1_1"
    models_dir: str = "models"
    # HuggingFace repo to fetch model and label files from when they are not
    # already in models_dir (None = local files only)
    model_repo_id: str | None = None
    # Explicit local files for the configured model, bypassing models_dir
    model_path: str | None = None
    labels_path: str | None = None
    top_k: int = Field(default=5, ge=1)
    preload_model: bool = True

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=209_715_200, ge=1)

    # Acquisition surfaces
    camera_index: int = Field(default=0, ge=0)
    camera_check_interval: float = Field(default=30.0, ge=0)
    library_dir: str = "library"
    device_idiom: Literal["phone", "tablet"] = "phone"

    # Display
    idle_text: str = "Take a photo or choose one from your library."
    detecting_text: str = "Detecting object..."


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
