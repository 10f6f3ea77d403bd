"""Pydantic request/response schemas for the ImageDetector API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from imagedetector.ui.acquisition import ImageSource
from imagedetector.ui.controller import PredictionStatus


class TakeImageRequest(BaseModel):
    """Ask the service to acquire an image from a source and classify it."""

    source: ImageSource
    selection: str | None = Field(
        default=None,
        description="File name inside the photo library (ignored by the camera)",
    )


class PredictionResponse(BaseModel):
    """Display text at the end of a classification request."""

    text: str = Field(description="'<label> (<pct>%)', an error message, or the idle text")
    status: PredictionStatus


class DisplayResponse(BaseModel):
    """Current display state."""

    text: str
    image_source: ImageSource | None = None
    image_edited: bool = False


class LibraryResponse(BaseModel):
    """Images that can be selected from the photo library."""

    images: list[str]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    models_loaded: list[str]
    concurrent_requests: int
    sources: list[ImageSource]


class ModelInfo(BaseModel):
    """Information about an available model."""

    name: str
    task: str = "image_classification"
    status: str = Field(description="Model status: 'active' or 'available'")
    license: str


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
