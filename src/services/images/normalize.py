"""Image normalization for laptop condition photos.

Every photo (and every sampled video frame) is re-encoded to a single
canonical JPEG before it leaves the process. The vision service accepts a
narrower set of formats than phones produce (it rejects raw HEIC, for
example), so decoding here and re-encoding once keeps the request contract
uniform.
"""

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError
from PIL.Image import Image as PILImage
from pillow_heif import register_heif_opener

from services.assessment.exceptions import InvalidImage, UnsupportedFormat


register_heif_opener()

logger = logging.getLogger(__name__)

MAX_IMAGE_DIMENSION = 2048  # Maximum width or height in pixels
JPEG_QUALITY = 95
MIN_IMAGE_BYTES = 100

CANONICAL_MIME_TYPE = "image/jpeg"

ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/heic",
    "image/heif",
}


@dataclass(frozen=True, slots=True)
class NormalizedImage:
    """Image bytes in the canonical transmissible format."""

    encoded_bytes: bytes
    mime_type: str = CANONICAL_MIME_TYPE

    @property
    def size(self) -> int:
        return len(self.encoded_bytes)


def validate_content_type(content_type: str) -> None:
    """Check the declared MIME type against the pre-decode allow-list.

    Raises:
        UnsupportedFormat: If the type is not one the normalizer decodes
    """
    if content_type.lower() not in ALLOWED_MIME_TYPES:
        raise UnsupportedFormat(content_type)


def validate_min_size(image_bytes: bytes, min_bytes: int = MIN_IMAGE_BYTES) -> None:
    """Reject buffers too small to be a plausible image.

    Raises:
        InvalidImage: If the buffer is empty or below ``min_bytes``
    """
    if len(image_bytes) < min_bytes:
        raise InvalidImage()


def _to_rgb(image: PILImage) -> PILImage:
    if image.mode == "RGB":
        return image

    if image.mode == "P" and "transparency" in image.info:
        image = image.convert("RGBA")

    # Flatten transparency onto white
    if image.mode in ("RGBA", "LA", "PA"):
        background = Image.new("RGB", image.size, (255, 255, 255))
        background.paste(image, mask=image.split()[-1])
        return background

    return image.convert("RGB")


def normalize_image(
    image_bytes: bytes,
    content_type: str = CANONICAL_MIME_TYPE,
    max_dimension: int = MAX_IMAGE_DIMENSION,
    jpeg_quality: int = JPEG_QUALITY,
    min_bytes: int = MIN_IMAGE_BYTES,
) -> NormalizedImage:
    """Normalize an image for the vision model.

    Performs the following operations:
    1. Rejects undersized buffers and MIME types outside the allow-list
    2. Opens the image and applies EXIF orientation
    3. Converts to RGB color space
    4. Downscales to max dimension preserving aspect ratio
    5. Re-encodes to JPEG format

    Args:
        image_bytes: Raw image data
        content_type: Declared (or inferred) MIME type of the upload
        max_dimension: Maximum width or height in pixels
        jpeg_quality: JPEG encoding quality (0-100)
        min_bytes: Smallest buffer accepted as a plausible image

    Returns:
        NormalizedImage carrying JPEG bytes

    Raises:
        InvalidImage: If the buffer is too small or cannot be decoded
        UnsupportedFormat: If the declared type is not allowed
    """
    validate_min_size(image_bytes, min_bytes)
    validate_content_type(content_type)

    try:
        image: PILImage = Image.open(io.BytesIO(image_bytes))
        image.load()
        image = ImageOps.exif_transpose(image)
        image = _to_rgb(image)
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        ValueError,
    ) as e:
        logger.warning("Failed to decode %s image: %s", content_type, e)
        raise InvalidImage() from e

    width, height = image.size
    if width > max_dimension or height > max_dimension:
        if width > height:
            new_width = max_dimension
            new_height = max(1, int(height * (max_dimension / width)))
        else:
            new_height = max_dimension
            new_width = max(1, int(width * (max_dimension / height)))

        image = image.resize((new_width, new_height), Image.Resampling.LANCZOS)
        logger.debug(
            "Downscaled image from %dx%d to %dx%d",
            width,
            height,
            new_width,
            new_height,
        )

    output = io.BytesIO()
    image.save(output, format="JPEG", quality=jpeg_quality, optimize=True)
    normalized_bytes = output.getvalue()

    logger.debug(
        "Normalized image: original=%d bytes (%s), normalized=%d bytes",
        len(image_bytes),
        content_type,
        len(normalized_bytes),
    )

    return NormalizedImage(encoded_bytes=normalized_bytes)
