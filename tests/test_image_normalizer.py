"""Tests for image downscaling/re-encoding before upload."""

import base64
import io

import pytest
from PIL import Image

from carb_estimator.cv_food_rec.image_normalizer import (
    ADVISORY_MAX_BYTES,
    MAX_HEIGHT,
    MAX_WIDTH,
    UPLOAD_EXTENSIONS,
    exceeds_advisory_limit,
    normalize_image,
    target_size,
)
from carb_estimator.errors import ImageProcessingError, InvalidInputError


def _image_bytes(width: int, height: int, mode: str = "RGB", fmt: str = "PNG") -> bytes:
    color = (200, 120, 40, 128) if mode == "RGBA" else (200, 120, 40)
    img = Image.new(mode, (width, height), color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.mark.parametrize(
    "width, height",
    [
        (1, 1),
        (640, 480),
        (1200, 1200),
        (1201, 1201),
        (2400, 1600),
        (1600, 2400),
        (1000, 3000),
        (4032, 3024),
        (5000, 10),
        (10, 5000),
    ],
)
def test_target_size_never_grows_and_keeps_aspect(width, height):
    new_width, new_height = target_size(width, height)

    assert new_width <= width and new_height <= height
    assert new_width <= MAX_WIDTH and new_height <= MAX_HEIGHT
    # Only one side is rounded, by at most half a pixel
    assert abs(new_width * height - new_height * width) <= 0.5 * max(width, height)


def test_target_size_examples():
    assert target_size(2400, 1600) == (1200, 800)
    assert target_size(1000, 3000) == (400, 1200)
    assert target_size(640, 480) == (640, 480)


def test_large_image_is_downscaled_to_jpeg():
    result = normalize_image(_image_bytes(2400, 1600), "image/png")

    assert (result.width, result.height) == (1200, 800)
    assert result.mime_type == "image/jpeg"
    with Image.open(io.BytesIO(result.data)) as decoded:
        assert decoded.format == "JPEG"
        assert decoded.size == (1200, 800)


def test_small_image_is_not_upscaled():
    result = normalize_image(_image_bytes(320, 240, fmt="JPEG"), "image/jpeg")

    assert (result.width, result.height) == (320, 240)


def test_transparent_png_is_flattened():
    result = normalize_image(_image_bytes(50, 50, mode="RGBA"), "image/png")

    with Image.open(io.BytesIO(result.data)) as decoded:
        assert decoded.mode == "RGB"


def test_source_size_is_recorded():
    data = _image_bytes(100, 100)
    assert normalize_image(data).source_size == len(data)


def test_data_uri_encodes_jpeg_bytes():
    result = normalize_image(_image_bytes(10, 10))

    uri = result.to_data_uri()

    assert uri.startswith("data:image/jpeg;base64,")
    assert base64.b64decode(uri.split(",", 1)[1]) == result.data


def test_non_image_mime_type_is_rejected():
    with pytest.raises(InvalidInputError):
        normalize_image(b"%PDF-1.7 ...", "application/pdf")


def test_undecodable_bytes_raise_processing_error():
    with pytest.raises(ImageProcessingError):
        normalize_image(b"definitely not an image", "image/jpeg")


def test_empty_input_raises_processing_error():
    with pytest.raises(ImageProcessingError):
        normalize_image(b"", "image/jpeg")


def test_advisory_limit():
    assert exceeds_advisory_limit(ADVISORY_MAX_BYTES + 1)
    assert not exceeds_advisory_limit(ADVISORY_MAX_BYTES)


@pytest.mark.parametrize("extension", UPLOAD_EXTENSIONS)
def test_every_offered_upload_type_decodes(extension):
    fmt = Image.registered_extensions()[f".{extension}"]
    mime_type = Image.MIME.get(fmt, f"image/{extension}")

    result = normalize_image(_image_bytes(40, 30, fmt=fmt), mime_type)

    assert (result.width, result.height) == (40, 30)
    assert result.mime_type == "image/jpeg"
