"""Tests for image decoding, tensor preparation, and the Outcome chain."""

from __future__ import annotations

import io

import numpy as np
from fakes import make_image_bytes
from PIL import Image

from imagedetector.ml.preprocessing import (
    IMAGENET_MEAN,
    IMAGENET_STD,
    center_square_crop,
    decode_image,
    edit_image,
    prepare_tensor,
)
from imagedetector.ml.result import CONVERSION_FAILURE_MESSAGE, Err, ErrorKind, Ok

MAX_PIXELS = 16_777_216


def _exif_rotated_jpeg() -> bytes:
    """A 40x20 JPEG tagged with EXIF orientation 6 (rotate 90 degrees clockwise)."""
    img = Image.new("RGB", (40, 20), (10, 200, 10))
    exif = Image.Exif()
    exif[0x0112] = 6
    buf = io.BytesIO()
    img.save(buf, format="JPEG", exif=exif)
    return buf.getvalue()


class TestOutcome:
    def test_ok_then_chains(self) -> None:
        assert Ok(2).then(lambda v: Ok(v * 3)) == Ok(6)

    def test_err_short_circuits(self) -> None:
        calls: list[object] = []
        err = Err(ErrorKind.CONVERSION_FAILURE, "nope")

        result = err.then(lambda v: calls.append(v) or Ok(v))

        assert result is err
        assert calls == []


class TestDecodeImage:
    def test_decodes_to_rgb_array(self) -> None:
        result = decode_image(make_image_bytes(size=(64, 48)), MAX_PIXELS)
        assert isinstance(result, Ok)
        assert result.value.shape == (48, 64, 3)
        assert result.value.dtype == np.uint8

    def test_converts_grayscale_and_alpha(self) -> None:
        for mode in ("L", "RGBA", "P"):
            buf = io.BytesIO()
            Image.new(mode, (10, 10)).save(buf, format="PNG")
            result = decode_image(buf.getvalue(), MAX_PIXELS)
            assert isinstance(result, Ok)
            assert result.value.shape == (10, 10, 3)

    def test_applies_exif_orientation(self) -> None:
        result = decode_image(_exif_rotated_jpeg(), MAX_PIXELS)
        assert isinstance(result, Ok)
        assert result.value.shape == (40, 20, 3)

    def test_garbage_is_conversion_failure(self) -> None:
        result = decode_image(b"definitely not an image", MAX_PIXELS)
        assert result == Err(ErrorKind.CONVERSION_FAILURE, CONVERSION_FAILURE_MESSAGE)

    def test_empty_bytes_is_conversion_failure(self) -> None:
        assert isinstance(decode_image(b"", MAX_PIXELS), Err)

    def test_too_many_pixels_is_conversion_failure(self) -> None:
        result = decode_image(make_image_bytes(size=(64, 48)), max_pixels=64 * 48 - 1)
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.CONVERSION_FAILURE


class TestPrepareTensor:
    def test_shape_and_dtype(self) -> None:
        image = np.zeros((48, 64, 3), dtype=np.uint8)
        tensor = prepare_tensor(image, 224)
        assert tensor.shape == (1, 3, 224, 224)
        assert tensor.dtype == np.float32
        assert tensor.flags["C_CONTIGUOUS"]

    def test_imagenet_normalization(self) -> None:
        image = np.full((8, 8, 3), 255, dtype=np.uint8)
        tensor = prepare_tensor(image, 4)
        expected = (1.0 - IMAGENET_MEAN) / IMAGENET_STD
        np.testing.assert_allclose(tensor[0, :, 0, 0], expected, rtol=1e-5)


class TestEditing:
    def test_center_square_crop(self) -> None:
        img = Image.new("RGB", (100, 60))
        assert center_square_crop(img).size == (60, 60)

    def test_edit_image_returns_square_jpeg(self) -> None:
        edited = edit_image(make_image_bytes(size=(30, 90)))
        assert edited is not None
        with Image.open(io.BytesIO(edited)) as img:
            assert img.format == "JPEG"
            assert img.size == (30, 30)

    def test_edit_image_rejects_garbage(self) -> None:
        assert edit_image(b"nope") is None
