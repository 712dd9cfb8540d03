from typing import Any

from fastapi import APIRouter

from dependencies.services import AppSettings
from schemas.api import ApiResponse
from services.video.frames import decoder_available


router = APIRouter()


@router.get("/health", response_model=ApiResponse[dict[str, Any]])
def health_check(settings: AppSettings) -> ApiResponse[dict[str, Any]]:
    """Liveness check; also reports whether video uploads can be decoded."""
    return ApiResponse(
        success=True,
        data={
            "status": "healthy",
            "message": f"{settings.APP_NAME} API is running",
            "video_processing": decoder_available(settings),
            "model_provider": settings.LLM_PROVIDER,
        },
        message="Health check successful",
    )
