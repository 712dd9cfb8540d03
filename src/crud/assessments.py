"""CRUD operations for persisted assessments."""

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.assessments import Assessment
from schemas.assessments import (
    AssessmentCreate,
    AssessmentRecord,
    AssessmentSearchFilters,
    AssessmentUpdate,
)
from services.assessment.exceptions import StoreWriteFailed


logger = logging.getLogger(__name__)


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


async def create_assessment(db: AsyncSession, data: AssessmentCreate) -> Assessment:
    """Insert one assessment row.

    Args:
        db: Database session
        data: Store payload built by the batch orchestrator

    Returns:
        The refreshed Assessment instance (id and assessment_date populated)
    """
    result = data.result
    video = result.video_metadata
    assessment = Assessment(
        sku=data.sku,
        brand=data.brand,
        model=data.model,
        grade=result.grade,
        confidence=result.confidence,
        overall_condition=result.overall_condition,
        detailed_findings=[f.model_dump() for f in result.detailed_findings],
        damage_types=list(result.damage_types),
        image_analyses=(
            [a.model_dump(by_alias=True) for a in result.image_analyses]
            if result.image_analyses is not None
            else None
        ),
        processing_time_seconds=result.processing_time_seconds,
        assessment_date=datetime.now(UTC),
        file_type=data.file_type,
        original_file_name=data.original_file_name,
        mime_type=data.mime_type,
        file_size=data.file_size,
        video_duration=video.duration_seconds if video else None,
        video_width=video.width_px if video else None,
        video_height=video.height_px if video else None,
        video_fps=video.fps if video else None,
        frames_analyzed=video.frames_analyzed if video else None,
        is_degraded=result.degraded,
    )

    db.add(assessment)
    await db.commit()
    await db.refresh(assessment)
    return assessment


async def get_assessment(db: AsyncSession, assessment_id: UUID) -> Assessment | None:
    """Get an assessment by ID, or None if it does not exist."""
    result = await db.execute(select(Assessment).where(Assessment.id == assessment_id))
    return result.scalar_one_or_none()


async def list_assessments(db: AsyncSession) -> list[Assessment]:
    """Return every assessment, newest first."""
    result = await db.execute(
        select(Assessment).order_by(Assessment.assessment_date.desc())
    )
    return list(result.scalars().all())


async def search_assessments(
    db: AsyncSession, filters: AssessmentSearchFilters
) -> list[Assessment]:
    """Filter assessments; every supplied filter must match.

    Grades are OR-ed together, the text query is a case-insensitive
    substring match over sku, brand and model, and the date range is
    inclusive on both ends. Results are newest first.
    """
    conditions = []

    if filters.grades:
        conditions.append(Assessment.grade.in_(sorted(filters.grades)))

    if filters.search_query:
        pattern = _like_pattern(filters.search_query)
        conditions.append(
            or_(
                Assessment.sku.ilike(pattern, escape="\\"),
                Assessment.brand.ilike(pattern, escape="\\"),
                Assessment.model.ilike(pattern, escape="\\"),
            )
        )

    if filters.date_range is not None:
        if filters.date_range.start is not None:
            conditions.append(Assessment.assessment_date >= filters.date_range.start)
        if filters.date_range.end is not None:
            conditions.append(Assessment.assessment_date <= filters.date_range.end)

    query = select(Assessment)
    if conditions:
        query = query.where(and_(*conditions))
    result = await db.execute(query.order_by(Assessment.assessment_date.desc()))
    return list(result.scalars().all())


async def update_assessment_details(
    db: AsyncSession, assessment_id: UUID, updates: AssessmentUpdate
) -> Assessment | None:
    """Apply administrative edits (sku, brand, model) to a record.

    Returns:
        The updated Assessment, or None if not found
    """
    assessment = await get_assessment(db, assessment_id)
    if assessment is None:
        return None

    for field, value in updates.model_dump(exclude_unset=True).items():
        setattr(assessment, field, value)

    await db.commit()
    await db.refresh(assessment)
    return assessment


class SqlAssessmentStore:
    """Record store adapter used by the batch orchestrator.

    Each write is an independent insert; a failed write is rolled back so
    the shared session stays usable for the remaining items in the batch.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def create(self, data: AssessmentCreate) -> AssessmentRecord:
        try:
            row = await create_assessment(self._db, data)
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to persist assessment sku=%s file=%s: %s",
                data.sku,
                data.original_file_name,
                exc,
            )
            await self._db.rollback()
            raise StoreWriteFailed() from exc
        return AssessmentRecord.from_model(row)
