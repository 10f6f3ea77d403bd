"""API route definitions."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, UploadFile, status

from imagedetector.api.dependencies import (
    AcquisitionDep,
    ControllerDep,
    DispatcherDep,
    LibraryDep,
    ModelManagerDep,
    SettingsDep,
    verify_api_key,
)
from imagedetector.api.schemas import (
    DisplayResponse,
    ErrorResponse,
    HealthResponse,
    LibraryResponse,
    ModelInfo,
    ModelsResponse,
    PredictionResponse,
    TakeImageRequest,
)
from imagedetector.ml.model_manager import MODEL_REGISTRY
from imagedetector.ui.acquisition import AcquiredImage, ImageSource

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])


@router.post(
    "/classify-image",
    response_model=PredictionResponse,
    responses={
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
    },
    summary="Classify an uploaded image",
)
async def classify_image(
    file: UploadFile,
    controller: ControllerDep,
    settings: SettingsDep,
) -> PredictionResponse:
    """Treat the upload as a photo library pick and classify it."""
    data = await file.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {settings.max_file_size} bytes",
        )

    image = AcquiredImage(data=data, source=ImageSource.PHOTO_LIBRARY)
    prediction = await controller.image_selected(image)
    return PredictionResponse(text=prediction.text, status=prediction.status)


@router.post(
    "/take-image",
    response_model=PredictionResponse,
    summary="Acquire an image from a source and classify it",
)
async def take_image(body: TakeImageRequest, controller: ControllerDep) -> PredictionResponse:
    """Run the full acquisition flow. Cancelled or unavailable sources return the idle text."""
    prediction = await controller.take_image(body.source, selection=body.selection)
    return PredictionResponse(text=prediction.text, status=prediction.status)


@router.get(
    "/display",
    response_model=DisplayResponse,
    summary="Current display text",
)
async def display(controller: ControllerDep) -> DisplayResponse:
    state = controller.display
    image = state.image
    return DisplayResponse(
        text=state.text,
        image_source=image.source if image is not None else None,
        image_edited=image.edited if image is not None else False,
    )


@router.get(
    "/library",
    response_model=LibraryResponse,
    summary="List selectable library images",
)
async def library(picker: LibraryDep) -> LibraryResponse:
    return LibraryResponse(images=picker.list_images())


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(
    settings: SettingsDep,
    dispatcher: DispatcherDep,
    manager: ModelManagerDep,
    acquisition: AcquisitionDep,
) -> HealthResponse:
    """Return service health status."""
    # Checking the camera opens the device, so it runs off the event loop.
    sources = await asyncio.to_thread(lambda: [source for source in ImageSource if acquisition.is_available(source)])
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        models_loaded=manager.get_loaded_models(),
        concurrent_requests=dispatcher.active_count,
        sources=sources,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(settings: SettingsDep) -> ModelsResponse:
    """Return registered classification models and which one is active."""
    models = [
        ModelInfo(
            name=spec.name,
            status="active" if spec.name == settings.classification_model else "available",
            license=spec.license,
        )
        for spec in MODEL_REGISTRY.values()
    ]
    return ModelsResponse(models=models)
