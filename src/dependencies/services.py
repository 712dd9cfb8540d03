"""FastAPI providers for the assessment pipeline.

Routes depend on these rather than constructing services directly, so tests
swap the vision client, frame sampler or store through
``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from core.config import Settings, get_settings
from crud.assessments import SqlAssessmentStore
from dependencies.db import DbSession
from services.assessment.model_client import PydanticAIVisionClient, VisionModelClient
from services.assessment.orchestrator import AssessmentStore, BatchOrchestrator
from services.assessment.requestor import AssessmentRequestor
from services.video.frames import FrameSampler


AppSettings = Annotated[Settings, Depends(get_settings)]


@lru_cache
def _shared_vision_client() -> PydanticAIVisionClient:
    return PydanticAIVisionClient(get_settings())


def get_vision_client() -> VisionModelClient:
    """Process-wide vision client; the underlying agent is created lazily."""
    return _shared_vision_client()


def get_frame_sampler(settings: AppSettings) -> FrameSampler:
    return FrameSampler(settings)


def get_assessment_store(db: DbSession) -> AssessmentStore:
    return SqlAssessmentStore(db)


def get_orchestrator(
    settings: AppSettings,
    client: Annotated[VisionModelClient, Depends(get_vision_client)],
    frame_sampler: Annotated[FrameSampler, Depends(get_frame_sampler)],
    store: Annotated[AssessmentStore, Depends(get_assessment_store)],
) -> BatchOrchestrator:
    return BatchOrchestrator(
        requestor=AssessmentRequestor(client),
        frame_sampler=frame_sampler,
        store=store,
        settings=settings,
    )


Orchestrator = Annotated[BatchOrchestrator, Depends(get_orchestrator)]
