"""Assessment requestor: one model call, one validated result."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from schemas.assessments import AssessmentResult, ModelMultiImageReply
from services.assessment.exceptions import ModelResponseInvalid
from services.assessment.model_client import VisionModelClient
from services.assessment.prompts import (
    SINGLE_IMAGE_INSTRUCTION,
    VIDEO_FRAME_INSTRUCTION,
    multi_image_instruction,
)
from services.assessment.validation import (
    Invalid,
    parse_model_reply,
    validate_model_reply,
)
from services.images.normalize import NormalizedImage
from services.video.frames import FrameSet


logger = logging.getLogger(__name__)


def image_labels(count: int, file_names: Sequence[str] | None = None) -> list[str]:
    """Display labels like ``Image 2 (lid.jpg)`` for a multi-image prompt."""
    labels = []
    for index in range(1, count + 1):
        name = file_names[index - 1] if file_names and index <= len(file_names) else None
        labels.append(f"Image {index} ({name})" if name else f"Image {index}")
    return labels


class AssessmentRequestor:
    """Builds the request, calls the vision model and validates the reply.

    No retries happen here; failures propagate as `ModelInvocationFailed`,
    `ModelResponseMalformed` or `ModelResponseInvalid`.
    """

    def __init__(
        self,
        client: VisionModelClient,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.client = client
        self._clock = clock

    async def assess(
        self,
        images: Sequence[NormalizedImage],
        file_names: Sequence[str] | None = None,
    ) -> AssessmentResult:
        """Grade one or more photos of the same laptop.

        With more than one image the reply must also carry a per-image
        breakdown; missing ``originalFileName`` entries are filled in from
        ``file_names`` by image index.
        """
        if not images:
            raise ValueError("No images provided for assessment")

        instruction = (
            multi_image_instruction(image_labels(len(images), file_names))
            if len(images) > 1
            else SINGLE_IMAGE_INSTRUCTION
        )
        result = await self._request(instruction, images)

        if result.image_analyses and file_names:
            analyses = []
            for analysis in result.image_analyses:
                if analysis.original_file_name is None and (
                    analysis.image_index <= len(file_names)
                ):
                    analysis = analysis.model_copy(
                        update={
                            "original_file_name": file_names[analysis.image_index - 1]
                        }
                    )
                analyses.append(analysis)
            result = result.model_copy(update={"image_analyses": analyses})
        return result

    async def assess_video_frames(self, frame_set: FrameSet) -> AssessmentResult:
        """Grade the representative frame of a video and attach its metadata."""
        result = await self._request(
            VIDEO_FRAME_INSTRUCTION,
            [frame_set.representative_frame()],
        )
        return result.model_copy(update={"video_metadata": frame_set.metadata})

    async def _request(
        self,
        instruction: str,
        images: Sequence[NormalizedImage],
    ) -> AssessmentResult:
        started = self._clock()
        text = await self.client.complete(instruction, images)
        payload = parse_model_reply(text)
        outcome = validate_model_reply(payload, image_count=len(images))
        elapsed = max(0.0, self._clock() - started)

        if isinstance(outcome, Invalid):
            logger.warning("Rejected model reply: %s", outcome.reason)
            raise ModelResponseInvalid(outcome.reason)

        reply = outcome.reply
        logger.info(
            "Model graded %d image(s): grade=%s confidence=%.2f in %.2fs",
            len(images),
            reply.grade,
            reply.confidence,
            elapsed,
        )
        return AssessmentResult(
            grade=reply.grade,
            confidence=reply.confidence,
            overall_condition=reply.overall_condition,
            damage_types=list(reply.damage_types),
            detailed_findings=list(reply.detailed_findings),
            processing_time_seconds=elapsed,
            image_analyses=(
                list(reply.image_analyses)
                if isinstance(reply, ModelMultiImageReply)
                else None
            ),
        )
