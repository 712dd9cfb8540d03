"""Upload classification by declared content type and file name.

Browsers and phone uploaders often report HEIC photos and some video
containers as generic binary, so the file extension is consulted when the
declared type carries no information.
"""

import logging
import re
from enum import StrEnum
from pathlib import PurePath


logger = logging.getLogger(__name__)


class MediaKind(StrEnum):
    IMAGE = "image"
    VIDEO = "video"
    UNSUPPORTED = "unsupported"


IMAGE_MIME_PATTERN = re.compile(
    r"^image/(jpeg|jpg|png|gif|webp|bmp|tiff|heic|heif)$", re.IGNORECASE
)
VIDEO_MIME_PATTERN = re.compile(
    r"^video/(mp4|webm|mov|avi|mkv|quicktime|x-msvideo|x-matroska|x-mp4)$",
    re.IGNORECASE,
)
EXTRA_VIDEO_MIME_TYPES = {"application/mp4"}

AMBIGUOUS_BINARY_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

IMAGE_EXTENSIONS = {"heic": "image/heic", "heif": "image/heif"}
VIDEO_EXTENSIONS = {
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "mkv": "video/x-matroska",
}


def _normalize_content_type(declared_content_type: str | None) -> str:
    # Drop parameters such as "; charset=binary"
    return (declared_content_type or "").split(";", 1)[0].strip().lower()


def _extension(original_file_name: str | None) -> str:
    return PurePath(original_file_name or "").suffix.lstrip(".").lower()


def classify(
    declared_content_type: str | None, original_file_name: str | None
) -> MediaKind:
    """Decide whether an upload is an image, a video, or unsupported.

    A recognised image or video MIME type wins. A generic binary type falls
    back to the file extension (heic/heif for images, mp4/webm/mov/avi/mkv
    for video). Anything else is unsupported. Never raises.
    """
    content_type = _normalize_content_type(declared_content_type)

    if IMAGE_MIME_PATTERN.match(content_type):
        return MediaKind.IMAGE
    if VIDEO_MIME_PATTERN.match(content_type) or content_type in EXTRA_VIDEO_MIME_TYPES:
        return MediaKind.VIDEO

    if content_type in AMBIGUOUS_BINARY_TYPES:
        extension = _extension(original_file_name)
        if extension in IMAGE_EXTENSIONS:
            return MediaKind.IMAGE
        if extension in VIDEO_EXTENSIONS:
            return MediaKind.VIDEO

    return MediaKind.UNSUPPORTED


def infer_mime_type(
    declared_content_type: str | None, original_file_name: str | None
) -> str:
    """Best-effort concrete MIME type for an upload.

    Returns the declared type unless it is generic binary, in which case the
    type implied by the file extension is used when one is known.
    """
    content_type = _normalize_content_type(declared_content_type)
    if content_type not in AMBIGUOUS_BINARY_TYPES:
        return content_type

    extension = _extension(original_file_name)
    inferred = IMAGE_EXTENSIONS.get(extension) or VIDEO_EXTENSIONS.get(extension)
    if inferred:
        logger.debug(
            "Inferred %s for %s declared as %r",
            inferred,
            original_file_name,
            declared_content_type,
        )
        return inferred
    return content_type or "application/octet-stream"
