"""Vision model client used by the assessment requestor.

The requestor depends only on `VisionModelClient`; the production adapter
runs a pydantic-ai Agent and tests substitute a fake returning canned text.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any, Protocol

import httpx
from openai import APIError as OpenAIAPIError
from pydantic_ai import Agent
from pydantic_ai.exceptions import (
    AgentRunError,
    ModelHTTPError,
    UnexpectedModelBehavior,
)
from pydantic_ai.messages import BinaryContent
from pydantic_ai.models import Model
from pydantic_ai.settings import ModelSettings

from core.config import Settings
from core.exceptions import ConfigurationError
from services.assessment.exceptions import ModelInvocationFailed
from services.assessment.model_factory import get_vision_model
from services.images.normalize import NormalizedImage


logger = logging.getLogger(__name__)


IMAGE_PARSE_HINT = (
    "Image could not be processed by AI. Please upload a clear, well-lit photo "
    "of the laptop taken from a normal distance (not too close). Ensure the "
    "image is in JPEG or PNG format and shows the laptop clearly against a "
    "plain background."
)
IMAGE_FORMAT_HINT = (
    "Image format issue. Please upload a standard JPEG or PNG photo of the "
    "laptop. Avoid screenshots, very small images, or corrupted files."
)
IMAGE_QUALITY_HINT = (
    "Image quality issue. Please take a new photo of the laptop with good "
    "lighting, clear focus, a normal distance and a plain background. Save as "
    "JPEG or PNG format."
)
CONFIGURATION_HINT = "AI service configuration error. Please contact support."
NETWORK_HINT = (
    "Network error occurred while contacting the AI service. Please check "
    "your connection and try again."
)
RATE_LIMIT_HINT = "The AI service is busy. Please wait a moment and try again."


class VisionModelClient(Protocol):
    """Sends an instruction plus images to a vision model, returns raw text."""

    async def complete(
        self, instruction: str, images: Sequence[NormalizedImage]
    ) -> str: ...


def describe_http_error(status_code: int, body: Any) -> ModelInvocationFailed:
    """Map a provider HTTP error to a failure with an actionable message."""
    text = str(body or "").lower()

    if status_code in (401, 403):
        return ModelInvocationFailed(CONFIGURATION_HINT, is_configuration_error=True)
    if status_code == 429:
        return ModelInvocationFailed(RATE_LIMIT_HINT)
    if "image_parse_error" in text:
        return ModelInvocationFailed(IMAGE_PARSE_HINT)
    if "unsupported image" in text or "invalid image" in text:
        return ModelInvocationFailed(IMAGE_FORMAT_HINT)
    if status_code == 400 and "image" in text:
        return ModelInvocationFailed(IMAGE_QUALITY_HINT)
    return ModelInvocationFailed(
        f"AI assessment failed: provider returned HTTP {status_code}"
    )


class PydanticAIVisionClient:
    """`VisionModelClient` backed by a pydantic-ai Agent with str output."""

    def __init__(self, settings: Settings, model: Model | None = None) -> None:
        self.settings = settings
        # Lazy creation so a missing key surfaces per request, not at import.
        self._model = model
        self._agent: Agent[None, str] | None = None

    def _get_agent(self) -> Agent[None, str]:
        if self._agent is None:
            model = self._model or get_vision_model(self.settings)
            self._agent = Agent(
                model,
                output_type=str,
                model_settings=ModelSettings(
                    temperature=self.settings.MODEL_TEMPERATURE,
                    max_tokens=self.settings.MODEL_MAX_OUTPUT_TOKENS,
                ),
            )
        return self._agent

    async def complete(
        self, instruction: str, images: Sequence[NormalizedImage]
    ) -> str:
        # Prompt first, then one BinaryContent per image
        messages: list[str | BinaryContent] = [instruction]
        for image in images:
            messages.append(
                BinaryContent(data=image.encoded_bytes, media_type=image.mime_type)
            )

        try:
            agent = self._get_agent()
        except ConfigurationError as e:
            logger.error("Vision model is not configured: %s", e)
            raise ModelInvocationFailed(
                CONFIGURATION_HINT, is_configuration_error=True
            ) from e

        timeout = self.settings.MODEL_TIMEOUT_SECONDS
        try:
            result = await asyncio.wait_for(agent.run(messages), timeout=timeout)
        except TimeoutError as e:
            logger.warning("Vision model call timed out after %ss", timeout)
            raise ModelInvocationFailed(
                f"AI assessment timed out after {timeout:g} seconds. Please try again."
            ) from e
        except ModelHTTPError as e:
            logger.warning(
                "Vision model HTTP error status=%s model=%s", e.status_code, e.model_name
            )
            raise describe_http_error(e.status_code, e.body) from e
        except UnexpectedModelBehavior as e:
            logger.warning("Vision model returned an unusable reply: %s", e.message)
            raise ModelInvocationFailed(
                f"AI assessment failed: {e.message}"
            ) from e
        except AgentRunError as e:
            raise ModelInvocationFailed(f"AI assessment failed: {e.message}") from e
        except (httpx.HTTPError, OpenAIAPIError) as e:
            logger.warning("Vision model transport error: %s", e)
            raise ModelInvocationFailed(NETWORK_HINT) from e

        return result.output
