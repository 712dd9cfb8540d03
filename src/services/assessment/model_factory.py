"""Vision model construction for the configured provider.

Usage:
    from services.assessment.model_factory import get_vision_model

    model = get_vision_model(settings)  # Returns pydantic-ai Model
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

from pydantic_ai.models import Model
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.models.openai import OpenAIModel
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.providers.openai import OpenAIProvider

from core.config import Settings


if TYPE_CHECKING:
    from httpx import AsyncClient

logger = logging.getLogger(__name__)


def _create_openai_model(
    settings: Settings, http_client: AsyncClient | None = None
) -> Model:
    provider = OpenAIProvider(
        api_key=settings.OPENAI_API_KEY,
        base_url=settings.OPENAI_BASE_URL,
        http_client=http_client,
    )
    return OpenAIModel(settings.VISION_MODEL, provider=provider)


def _create_gemini_model(
    settings: Settings, http_client: AsyncClient | None = None
) -> Model:
    provider = GoogleProvider(
        api_key=settings.GEMINI_API_KEY,
        http_client=http_client,
    )
    return cast(Model, GoogleModel(settings.VISION_MODEL, provider=provider))


def get_vision_model(
    settings: Settings, http_client: AsyncClient | None = None
) -> Model:
    """Get the multimodal model used for condition grading.

    Raises:
        ConfigurationError: If the selected provider has no API key
    """
    settings.require_model_credentials()

    if settings.LLM_PROVIDER == "gemini":
        logger.info("Using Gemini vision model: %s", settings.VISION_MODEL)
        return _create_gemini_model(settings, http_client)

    logger.info("Using OpenAI vision model: %s", settings.VISION_MODEL)
    return _create_openai_model(settings, http_client)
