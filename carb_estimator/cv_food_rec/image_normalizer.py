"""Image normalization before upload.

Downscales (never upscales) to fit inside 1200x1200 and re-encodes as JPEG at
quality 80, which bounds upload size and gives the inference client one format.
"""

import base64
import io
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from carb_estimator.errors import ImageProcessingError, InvalidInputError

logger = logging.getLogger(__name__)

MAX_WIDTH = 1200
MAX_HEIGHT = 1200
JPEG_QUALITY = 80
OUTPUT_MIME_TYPE = "image/jpeg"

# Larger files are still accepted; they are just compressed
ADVISORY_MAX_BYTES = 5 * 1024 * 1024

# File types offered by the uploader; all decode with a stock Pillow install
UPLOAD_EXTENSIONS = ("jpg", "jpeg", "png", "webp", "gif", "bmp")


@dataclass(frozen=True)
class EncodedImage:
    data: bytes
    width: int
    height: int
    mime_type: str = OUTPUT_MIME_TYPE
    source_size: int = 0

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


def exceeds_advisory_limit(size_bytes: int) -> bool:
    return size_bytes > ADVISORY_MAX_BYTES


def target_size(width: int, height: int, max_width: int = MAX_WIDTH, max_height: int = MAX_HEIGHT) -> Tuple[int, int]:
    """
    Compute output dimensions that fit inside max_width x max_height.

    Width is constrained first, then height, keeping the aspect ratio.
    Images that already fit are returned unchanged.
    """
    new_width, new_height = float(width), float(height)

    if new_width > max_width:
        new_height = new_height * max_width / new_width
        new_width = max_width

    if new_height > max_height:
        new_width = new_width * max_height / new_height
        new_height = max_height

    return max(1, min(width, round(new_width))), max(1, min(height, round(new_height)))


def normalize_image(data: bytes, mime_type: Optional[str] = None) -> EncodedImage:
    """
    Decode, downscale and re-encode an image for the inference service.

    Args:
        data: Raw bytes of the captured or uploaded image.
        mime_type: Declared MIME type, when known (uploads). Must be image/*.

    Returns:
        EncodedImage holding JPEG bytes and final dimensions.

    Raises:
        InvalidInputError: The declared type is not an image.
        ImageProcessingError: The bytes could not be decoded or encoded.
    """
    if mime_type is not None and not mime_type.lower().startswith("image/"):
        raise InvalidInputError("Please select an image file")

    if not data:
        raise ImageProcessingError("Failed to read file")

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            img = ImageOps.exif_transpose(img)
            if img.mode != "RGB":
                img = img.convert("RGB")

            width, height = target_size(*img.size)
            if (width, height) != img.size:
                logger.info(f"Downscaling image from {img.size[0]}x{img.size[1]} to {width}x{height}")
                img = img.resize((width, height), Image.LANCZOS)

            buffer = io.BytesIO()
            img.save(buffer, format="JPEG", quality=JPEG_QUALITY)
    except (UnidentifiedImageError, Image.DecompressionBombError) as e:
        logger.error(f"Could not decode image: {e}")
        raise ImageProcessingError("Failed to load image") from e
    except OSError as e:
        logger.error(f"Image processing failed: {e}")
        raise ImageProcessingError(f"Failed to process image: {e}") from e

    encoded = buffer.getvalue()
    logger.info(f"Image normalized: {len(data)} -> {len(encoded)} bytes ({width}x{height})")
    return EncodedImage(data=encoded, width=width, height=height, source_size=len(data))
