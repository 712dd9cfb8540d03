"""Batch orchestrator for uploaded laptop photos and videos.

Each uploaded file moves through::

    Received -> Classified -> Normalizing | Sampling -> Assessing
             -> PersistedSuccess | RecordedFailure

Items are processed one at a time and independently. Whatever goes wrong
with one file ends as a failure entry for that file only, so the returned
outcome list always has one entry per submitted file, in submission order.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from core.config import Settings
from schemas.assessments import (
    AssessmentCreate,
    AssessmentRecord,
    AssessmentResult,
    BatchItemResult,
    FileType,
    Finding,
)
from services.assessment.exceptions import (
    AssessmentError,
    ClassificationAmbiguous,
    ModelInvocationFailed,
)
from services.assessment.requestor import AssessmentRequestor
from services.images.normalize import (
    CANONICAL_MIME_TYPE,
    NormalizedImage,
    normalize_image,
)
from services.media.classifier import MediaKind, classify, infer_mime_type
from services.video.frames import FrameSampler


logger = logging.getLogger(__name__)

INVALID_FILE_TYPE_MESSAGE = (
    "Invalid file type. Please upload an image (JPEG, PNG, GIF, WebP, HEIC) "
    "or a video (MP4, WebM, MOV, AVI, MKV)."
)
UNEXPECTED_ERROR_MESSAGE = "Unexpected error while assessing this file. Please try again."

DEGRADED_VIDEO_GRADE = "C"
DEGRADED_VIDEO_CONFIDENCE = 0.3
DEGRADED_VIDEO_DAMAGE_TYPE = "Video Processing Error"
UNEXPECTED_VIDEO_ERROR_REASON = "Unexpected error while processing the video"

_SKU_ALPHABET = string.ascii_lowercase + string.digits


class AssessmentStore(Protocol):
    """Persists one successful assessment and returns the stored record."""

    async def create(self, data: AssessmentCreate) -> AssessmentRecord: ...


@dataclass(frozen=True, slots=True)
class UploadItem:
    """One uploaded file, held in memory for the duration of a request."""

    raw_bytes: bytes
    declared_content_type: str
    original_file_name: str

    @property
    def size_bytes(self) -> int:
        return len(self.raw_bytes)


class ItemStage(StrEnum):
    RECEIVED = "received"
    CLASSIFIED = "classified"
    NORMALIZING = "normalizing"
    SAMPLING = "sampling"
    ASSESSING = "assessing"
    PERSISTING = "persisting"
    PERSISTED_SUCCESS = "persisted_success"
    RECORDED_FAILURE = "recorded_failure"


@dataclass(frozen=True, slots=True)
class ItemSucceeded:
    original_file_name: str
    record: AssessmentRecord

    def to_response(self) -> BatchItemResult:
        return BatchItemResult(
            original_file_name=self.original_file_name,
            success=True,
            assessment=self.record,
        )


@dataclass(frozen=True, slots=True)
class ItemFailed:
    original_file_name: str
    reason: str
    stage: ItemStage
    error_code: str = "unexpected_error"

    def to_response(self) -> BatchItemResult:
        return BatchItemResult(
            original_file_name=self.original_file_name,
            success=False,
            error=self.reason,
        )


BatchItemOutcome = ItemSucceeded | ItemFailed


def generate_sku(
    now_ms: int | None = None, taken: set[str] | None = None
) -> str:
    """Return ``AUTO-<epoch ms>-<9 random base36 chars>`` not present in ``taken``."""
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    while True:
        suffix = "".join(secrets.choice(_SKU_ALPHABET) for _ in range(9))
        sku = f"AUTO-{timestamp}-{suffix}"
        if taken is None or sku not in taken:
            return sku


def degraded_video_result(reason: str, processing_time_seconds: float) -> AssessmentResult:
    """Placeholder result used when a video could not be graded automatically."""
    return AssessmentResult(
        grade=DEGRADED_VIDEO_GRADE,
        confidence=DEGRADED_VIDEO_CONFIDENCE,
        overall_condition=f"Video processing failed: {reason}",
        damage_types=[DEGRADED_VIDEO_DAMAGE_TYPE],
        detailed_findings=[
            Finding(
                category="Overall Structure",
                severity="Medium",
                description=(
                    "Video assessment could not be completed automatically. "
                    f"Error: {reason}. Manual review required."
                ),
            )
        ],
        processing_time_seconds=max(0.0, processing_time_seconds),
        degraded=True,
    )


@dataclass
class _ItemRun:
    item: UploadItem
    stage: ItemStage = ItemStage.RECEIVED
    kind: MediaKind | None = None

    def advance(self, stage: ItemStage) -> None:
        logger.debug(
            "%s: %s -> %s", self.item.original_file_name, self.stage, stage
        )
        self.stage = stage


class BatchOrchestrator:
    """Runs every uploaded file through classification, grading and storage."""

    def __init__(
        self,
        requestor: AssessmentRequestor,
        frame_sampler: FrameSampler,
        store: AssessmentStore,
        settings: Settings,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.requestor = requestor
        self.frame_sampler = frame_sampler
        self.store = store
        self.settings = settings
        self._clock = clock

    async def process_batch(
        self,
        items: Sequence[UploadItem],
        brand: str | None = None,
        model: str | None = None,
    ) -> list[BatchItemOutcome]:
        """Assess every item; exactly one outcome per item, in input order."""
        used_skus: set[str] = set()
        outcomes: list[BatchItemOutcome] = []
        for item in items:
            outcome = await self._process_item(item, used_skus, brand, model)
            outcomes.append(outcome)

        succeeded = sum(isinstance(o, ItemSucceeded) for o in outcomes)
        logger.info(
            "Batch complete: %d file(s), %d succeeded, %d failed",
            len(items),
            succeeded,
            len(items) - succeeded,
        )
        return outcomes

    async def _process_item(
        self,
        item: UploadItem,
        used_skus: set[str],
        brand: str | None,
        model: str | None,
    ) -> BatchItemOutcome:
        run = _ItemRun(item=item)
        try:
            run.kind = classify(item.declared_content_type, item.original_file_name)
            run.advance(ItemStage.CLASSIFIED)
            logger.info(
                "Classified %s (%s, %d bytes) as %s",
                item.original_file_name,
                item.declared_content_type or "no content type",
                item.size_bytes,
                run.kind,
            )

            if run.kind is MediaKind.IMAGE:
                result = await self._assess_image(run)
                file_type: FileType = "image"
            elif run.kind is MediaKind.VIDEO:
                result = await self._assess_video(run)
                file_type = "video"
            else:
                raise ClassificationAmbiguous(INVALID_FILE_TYPE_MESSAGE)

            run.advance(ItemStage.PERSISTING)
            sku = generate_sku(taken=used_skus)
            used_skus.add(sku)
            record = await self.store.create(
                AssessmentCreate(
                    sku=sku,
                    brand=brand,
                    model=model,
                    file_type=file_type,
                    original_file_name=item.original_file_name,
                    mime_type=infer_mime_type(
                        item.declared_content_type, item.original_file_name
                    ),
                    file_size=item.size_bytes,
                    result=result,
                )
            )
        except AssessmentError as e:
            failed_at = run.stage
            run.advance(ItemStage.RECORDED_FAILURE)
            logger.warning(
                "Assessment failed for %s at %s [%s]: %s",
                item.original_file_name,
                failed_at,
                e.error_code,
                e.message,
            )
            return ItemFailed(
                original_file_name=item.original_file_name,
                reason=e.message,
                stage=failed_at,
                error_code=e.error_code,
            )
        except Exception:
            failed_at = run.stage
            run.advance(ItemStage.RECORDED_FAILURE)
            logger.exception(
                "Unexpected error assessing %s at %s",
                item.original_file_name,
                failed_at,
            )
            return ItemFailed(
                original_file_name=item.original_file_name,
                reason=UNEXPECTED_ERROR_MESSAGE,
                stage=failed_at,
            )

        run.advance(ItemStage.PERSISTED_SUCCESS)
        return ItemSucceeded(original_file_name=item.original_file_name, record=record)

    def _normalize(self, item: UploadItem) -> NormalizedImage:
        return normalize_image(
            item.raw_bytes,
            infer_mime_type(item.declared_content_type, item.original_file_name),
            max_dimension=self.settings.IMAGE_MAX_DIMENSION,
            jpeg_quality=self.settings.IMAGE_JPEG_QUALITY,
            min_bytes=self.settings.MIN_IMAGE_BYTES,
        )

    async def _assess_image(self, run: _ItemRun) -> AssessmentResult:
        run.advance(ItemStage.NORMALIZING)
        image = self._normalize(run.item)
        run.advance(ItemStage.ASSESSING)
        return await self.requestor.assess([image])

    async def _assess_video(self, run: _ItemRun) -> AssessmentResult:
        started = self._clock()
        try:
            run.advance(ItemStage.SAMPLING)
            frame_set = await self.frame_sampler.extract_frames(
                run.item.raw_bytes, self.settings.VIDEO_FRAME_COUNT
            )
            run.advance(ItemStage.ASSESSING)
            return await self.requestor.assess_video_frames(frame_set)
        except AssessmentError as e:
            if isinstance(e, ModelInvocationFailed) and e.is_configuration_error:
                raise
            logger.warning(
                "Substituting degraded result for video %s after %s failure [%s]: %s",
                run.item.original_file_name,
                run.stage,
                e.error_code,
                e.message,
            )
            return degraded_video_result(e.message, self._clock() - started)
        except Exception:
            logger.exception(
                "Substituting degraded result for video %s after unexpected %s failure",
                run.item.original_file_name,
                run.stage,
            )
            return degraded_video_result(
                UNEXPECTED_VIDEO_ERROR_REASON, self._clock() - started
            )

    async def assess_combined(
        self,
        items: Sequence[UploadItem],
        brand: str | None = None,
        model: str | None = None,
    ) -> AssessmentRecord:
        """Grade several photos of one laptop in a single model call.

        Unlike `process_batch` there is only one outcome, so any file that is
        not a usable image fails the whole request.

        Raises:
            ClassificationAmbiguous: A file is not an image
            InvalidImage / UnsupportedFormat: A photo cannot be normalized
            ModelInvocationFailed / ModelResponseMalformed / ModelResponseInvalid
            StoreWriteFailed
        """
        if not items:
            raise ValueError("No images provided for assessment")

        images: list[NormalizedImage] = []
        for item in items:
            kind = classify(item.declared_content_type, item.original_file_name)
            if kind is not MediaKind.IMAGE:
                raise ClassificationAmbiguous(
                    f"{item.original_file_name}: only image files can be "
                    "assessed together."
                )
            images.append(self._normalize(item))

        file_names = [item.original_file_name for item in items]
        result = await self.requestor.assess(images, file_names=file_names)

        record = await self.store.create(
            AssessmentCreate(
                sku=generate_sku(),
                brand=brand,
                model=model,
                file_type="images",
                original_file_name=", ".join(file_names),
                mime_type=CANONICAL_MIME_TYPE,
                file_size=sum(item.size_bytes for item in items),
                result=result,
            )
        )
        logger.info(
            "Combined assessment of %d photos stored as %s", len(items), record.id
        )
        return record
