"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Mapping

    from imagedetector.ml.image_classifier import ImageClassifier
    from imagedetector.ml.model_manager import ModelManager
    from imagedetector.ui.acquisition import PickerSurface

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from imagedetector.api.routes import router
from imagedetector.config import Settings, get_settings
from imagedetector.ml.adapter import ImageClassifierAdapter
from imagedetector.ml.inference import InferenceDispatcher
from imagedetector.ml.model_manager import OnnxModelManager
from imagedetector.ml.preprocessing import decode_image
from imagedetector.ml.result import Err
from imagedetector.ui.acquisition import DeviceIdiom, ImageAcquisition, ImageSource
from imagedetector.ui.context import UIContext
from imagedetector.ui.controller import DetectorController
from imagedetector.ui.pickers import CameraPicker, LibraryPicker
from imagedetector.ui.presenter import DisplayState

logger = logging.getLogger(__name__)

SHUTDOWN_JOIN_TIMEOUT_SECONDS: float = 10.0


def init_state(
    app: FastAPI,
    settings: Settings,
    *,
    model_manager: ModelManager | None = None,
    classifier_loader: Callable[[], ImageClassifier] | None = None,
    surfaces: Mapping[ImageSource, PickerSurface] | None = None,
) -> None:
    """Build the flow's collaborators and attach them to ``app.state``.

    Must be called on the event loop that will serve requests; that loop
    becomes the UI context.
    """
    ui = UIContext.current()
    manager = model_manager if model_manager is not None else OnnxModelManager(settings)
    if classifier_loader is None:
        classifier_loader = partial(manager.build_classifier, settings.classification_model)

    library = LibraryPicker(settings.library_dir)
    if surfaces is None:
        surfaces = {
            ImageSource.CAMERA: CameraPicker(settings.camera_index, availability_ttl=settings.camera_check_interval),
            ImageSource.PHOTO_LIBRARY: library,
        }

    dispatcher = InferenceDispatcher()
    display = DisplayState(ui, idle_text=settings.idle_text, detecting_text=settings.detecting_text)
    adapter = ImageClassifierAdapter(
        classifier_loader,
        ui,
        dispatcher,
        decode=partial(decode_image, max_pixels=settings.max_image_pixels),
    )
    acquisition = ImageAcquisition(surfaces, ui, idiom=DeviceIdiom(settings.device_idiom))

    app.state.settings = settings
    app.state.ui = ui
    app.state.model_manager = manager
    app.state.dispatcher = dispatcher
    app.state.adapter = adapter
    app.state.library = library
    app.state.acquisition = acquisition
    app.state.controller = DetectorController(acquisition, adapter, display, ui)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting ImageDetector (device=%s, model=%s, idiom=%s)",
        settings.device,
        settings.classification_model,
        settings.device_idiom,
    )

    init_state(app, settings)

    if settings.preload_model:
        adapter: ImageClassifierAdapter = app.state.adapter
        if isinstance(await asyncio.to_thread(adapter.load), Err):
            logger.warning("Model preload failed; requests will retry loading")

    logger.info("ImageDetector ready")
    yield

    logger.info("Shutting down ImageDetector")
    app.state.dispatcher.shutdown(timeout=SHUTDOWN_JOIN_TIMEOUT_SECONDS)
    app.state.model_manager.shutdown()
    logger.info("ImageDetector shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="ImageDetector",
        description="Pick or capture an image and classify its most prominent object",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = get_settings()
    uvicorn.run("imagedetector.main:app", host=settings.host, port=settings.port)
