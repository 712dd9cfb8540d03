"""Domain exceptions for the assessment pipeline.

Every per-item failure in an upload batch maps to one of these. The batch
orchestrator catches them at the item boundary and turns them into a
failure entry; each carries a stable `error_code` for log tagging and a
`message` that is safe to show to the uploader.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class AssessmentError(Exception):
    """Base class for assessment pipeline errors."""

    message: str
    error_code: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


class ClassificationAmbiguous(AssessmentError):
    def __init__(self, message: str = "Invalid file type") -> None:
        super().__init__(message=message, error_code="classification_ambiguous")


class InvalidImage(AssessmentError):
    def __init__(
        self,
        message: str = "Image file appears to be corrupted or empty.",
    ) -> None:
        super().__init__(message=message, error_code="invalid_image")


class UnsupportedFormat(AssessmentError):
    def __init__(self, mime_type: str, message: str | None = None) -> None:
        self.mime_type = mime_type
        super().__init__(
            message=message
            or (
                f"Image format '{mime_type}' is not supported. "
                "Please upload a JPEG, PNG, GIF, WebP, or HEIC image."
            ),
            error_code="unsupported_format",
        )


class VideoProcessingUnavailable(AssessmentError):
    def __init__(
        self, message: str = "FFmpeg is not available for video processing"
    ) -> None:
        super().__init__(message=message, error_code="video_processing_unavailable")


class FrameExtractionFailed(AssessmentError):
    def __init__(self, message: str = "Failed to extract frames from video") -> None:
        super().__init__(message=message, error_code="frame_extraction_failed")


class ModelInvocationFailed(AssessmentError):
    """The reasoning service could not be reached or refused the request.

    `is_configuration_error` separates operator problems (missing or
    rejected credentials) from transient network/rate-limit errors.
    """

    def __init__(
        self,
        message: str = "AI assessment failed",
        *,
        is_configuration_error: bool = False,
    ) -> None:
        self.is_configuration_error = is_configuration_error
        super().__init__(message=message, error_code="model_invocation_failed")


class ModelResponseMalformed(AssessmentError):
    def __init__(
        self, message: str = "Invalid JSON response from AI assessment"
    ) -> None:
        super().__init__(message=message, error_code="model_response_malformed")


class ModelResponseInvalid(AssessmentError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(
            message=f"Invalid AI response structure: {reason}",
            error_code="model_response_invalid",
        )


class StoreWriteFailed(AssessmentError):
    def __init__(
        self,
        message: str = (
            "Database error occurred while saving assessment. Please try again."
        ),
    ) -> None:
        super().__init__(message=message, error_code="store_write_failed")
