"""Image preprocessing pipeline.

Decoding turns raw image bytes into an HxWx3 RGB uint8 array (the pixel
representation every classifier consumes). Tensor preparation turns that
array into the normalized NCHW float32 batch an ONNX classifier expects.
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from imagedetector.ml.result import CONVERSION_FAILURE_MESSAGE, Err, ErrorKind, Ok

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from imagedetector.ml.result import Outcome

logger = logging.getLogger(__name__)

IMAGENET_MEAN = np.array([0.485, 0.456, 0.406], dtype=np.float32)
IMAGENET_STD = np.array([0.229, 0.224, 0.225], dtype=np.float32)


def _conversion_failure() -> Err:
    return Err(ErrorKind.CONVERSION_FAILURE, CONVERSION_FAILURE_MESSAGE)


def open_image(image_bytes: bytes, max_pixels: int) -> Outcome[Image.Image]:
    """Open raw image bytes with Pillow and check the pixel limit."""
    if not image_bytes:
        logger.warning("Empty image payload")
        return _conversion_failure()
    try:
        img = Image.open(io.BytesIO(image_bytes))
        # Header only so far; reject before decoding pixel data.
        width, height = img.size
        if width * height > max_pixels:
            logger.warning("Image %sx%s exceeds the %s pixel limit", width, height, max_pixels)
            return _conversion_failure()
        img.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        logger.warning("Could not decode image: %s", exc)
        return _conversion_failure()
    return Ok(img)


def to_rgb_array(img: Image.Image) -> Outcome[NDArray[np.uint8]]:
    """Apply EXIF orientation and convert to an HxWx3 RGB uint8 array."""
    try:
        rgb = ImageOps.exif_transpose(img).convert("RGB")
    except (OSError, ValueError) as exc:
        logger.warning("Could not convert image to RGB: %s", exc)
        return _conversion_failure()
    array = np.asarray(rgb, dtype=np.uint8)
    if array.ndim != 3 or array.shape[2] != 3 or array.size == 0:
        return _conversion_failure()
    return Ok(array)


def decode_image(image_bytes: bytes, max_pixels: int) -> Outcome[NDArray[np.uint8]]:
    """Decode raw image bytes into an RGB uint8 numpy array.

    Args:
        image_bytes: Raw file bytes (any format Pillow reads).
        max_pixels: Upper bound on width * height.

    Returns:
        ``Ok`` with an HxWx3 RGB uint8 array, or a conversion-failure ``Err``.
    """
    return open_image(image_bytes, max_pixels).then(to_rgb_array)


def prepare_tensor(image: NDArray[np.uint8], input_size: int) -> NDArray[np.float32]:
    """Resize, normalize, and lay out an RGB image for an ImageNet classifier.

    Returns:
        Float32 tensor of shape (1, 3, input_size, input_size).
    """
    resized = Image.fromarray(image).resize((input_size, input_size), Image.Resampling.BILINEAR)
    scaled = np.asarray(resized, dtype=np.float32) / 255.0
    normalized = (scaled - IMAGENET_MEAN) / IMAGENET_STD
    return np.ascontiguousarray(normalized.transpose(2, 0, 1)[np.newaxis, ...], dtype=np.float32)


def center_square_crop(img: Image.Image) -> Image.Image:
    """Crop the largest centred square out of an image."""
    width, height = img.size
    side = min(width, height)
    left = (width - side) // 2
    top = (height - side) // 2
    return img.crop((left, top, left + side, top + side))


def edit_image(image_bytes: bytes) -> bytes | None:
    """Produce the edited variant of a picked image: an upright centred square, as JPEG."""
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            edited = center_square_crop(ImageOps.exif_transpose(img).convert("RGB"))
            buf = io.BytesIO()
            edited.save(buf, format="JPEG", quality=95)
    except (UnidentifiedImageError, OSError) as exc:
        logger.warning("Could not edit picked image: %s", exc)
        return None
    return buf.getvalue()
