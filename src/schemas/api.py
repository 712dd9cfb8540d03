"""Response envelopes shared by the JSON endpoints."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard envelope for read and edit endpoints.

    Upload endpoints return their own ``{success, results}`` shape instead.

    Attributes:
        success: Whether the request was successful.
        data: The response payload (when success is True).
        message: A human-readable message about the response.
        error: Error details (when success is False).
    """

    success: bool = True
    data: T | None = None
    message: str = "Operation completed successfully"
    error: dict[str, Any] | None = None


class ErrorResponse(ApiResponse[None]):
    """Envelope for every error raised past a route handler."""

    success: bool = False
    message: str = "An error occurred"
    error: dict[str, Any] | None = None
