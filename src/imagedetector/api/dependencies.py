"""FastAPI dependencies: app-state accessors and API key authentication."""

from __future__ import annotations

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from imagedetector.config import Settings
from imagedetector.ml.inference import InferenceDispatcher
from imagedetector.ml.model_manager import ModelManager
from imagedetector.ui.acquisition import ImageAcquisition
from imagedetector.ui.controller import DetectorController
from imagedetector.ui.pickers import LibraryPicker

_bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def get_controller(request: Request) -> DetectorController:
    controller: DetectorController = request.app.state.controller
    return controller


def get_acquisition(request: Request) -> ImageAcquisition:
    acquisition: ImageAcquisition = request.app.state.acquisition
    return acquisition


def get_library(request: Request) -> LibraryPicker:
    library: LibraryPicker = request.app.state.library
    return library


def get_dispatcher(request: Request) -> InferenceDispatcher:
    dispatcher: InferenceDispatcher = request.app.state.dispatcher
    return dispatcher


def get_model_manager(request: Request) -> ModelManager:
    manager: ModelManager = request.app.state.model_manager
    return manager


SettingsDep = Annotated[Settings, Depends(get_settings)]
ControllerDep = Annotated[DetectorController, Depends(get_controller)]
AcquisitionDep = Annotated[ImageAcquisition, Depends(get_acquisition)]
LibraryDep = Annotated[LibraryPicker, Depends(get_library)]
DispatcherDep = Annotated[InferenceDispatcher, Depends(get_dispatcher)]
ModelManagerDep = Annotated[ModelManager, Depends(get_model_manager)]


async def verify_api_key(
    settings: SettingsDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Require 'Authorization: Bearer <key>' when IMAGEDETECTOR_API_KEY is set."""
    expected = settings.api_key
    if expected is None:
        return

    supplied = credentials.credentials if credentials is not None else ""
    if not secrets.compare_digest(supplied.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )
