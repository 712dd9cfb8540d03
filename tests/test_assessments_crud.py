"""Tests for assessment persistence against in-memory SQLite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from crud.assessments import (
    SqlAssessmentStore,
    create_assessment,
    get_assessment,
    list_assessments,
    search_assessments,
    update_assessment_details,
)
from schemas.assessments import (
    AssessmentCreate,
    AssessmentResult,
    AssessmentSearchFilters,
    AssessmentUpdate,
    Finding,
    VideoMetadata,
)
from services.assessment.exceptions import StoreWriteFailed


def _result(grade: str = "B", **overrides) -> AssessmentResult:
    values = {
        "grade": grade,
        "confidence": 0.8,
        "overall_condition": "Good used condition.",
        "damage_types": ["Scratches"],
        "detailed_findings": [
            Finding(category="Hinges", severity="Low", description="Slightly loose.")
        ],
        "processing_time_seconds": 1.2,
    }
    values.update(overrides)
    return AssessmentResult(**values)


def _payload(sku: str = "AUTO-1-abc", **overrides) -> AssessmentCreate:
    values = {
        "sku": sku,
        "file_type": "image",
        "original_file_name": "lid.jpg",
        "mime_type": "image/jpeg",
        "file_size": 2048,
        "result": _result(),
    }
    values.update(overrides)
    return AssessmentCreate(**values)


@pytest.mark.asyncio
async def test_create_and_get(db_session: AsyncSession) -> None:
    row = await create_assessment(db_session, _payload(brand="Dell"))

    fetched = await get_assessment(db_session, row.id)

    assert fetched is not None
    assert fetched.grade == "B"
    assert fetched.brand == "Dell"
    assert fetched.detailed_findings == [
        {"category": "Hinges", "severity": "Low", "description": "Slightly loose."}
    ]
    assert fetched.is_degraded is False
    assert fetched.video_duration is None


@pytest.mark.asyncio
async def test_get_missing_returns_none(db_session: AsyncSession) -> None:
    assert await get_assessment(db_session, uuid4()) is None


@pytest.mark.asyncio
async def test_video_metadata_round_trips(db_session: AsyncSession) -> None:
    metadata = VideoMetadata(
        duration_seconds=12.5, width_px=1920, height_px=1080, fps=29.97, frames_analyzed=3
    )
    store = SqlAssessmentStore(db_session)

    record = await store.create(
        _payload(file_type="video", result=_result(video_metadata=metadata))
    )

    assert record.video_metadata == metadata


@pytest.mark.asyncio
async def test_list_newest_first(db_session: AsyncSession) -> None:
    older = await create_assessment(db_session, _payload("AUTO-1"))
    newer = await create_assessment(db_session, _payload("AUTO-2"))
    older.assessment_date = datetime.now(UTC) - timedelta(days=2)
    await db_session.commit()

    rows = await list_assessments(db_session)

    assert [r.id for r in rows] == [newer.id, older.id]


@pytest.mark.asyncio
async def test_search_combines_filters(db_session: AsyncSession) -> None:
    await create_assessment(
        db_session, _payload("AUTO-A", brand="Lenovo", result=_result("A"))
    )
    await create_assessment(
        db_session, _payload("AUTO-B", brand="Lenovo", result=_result("C"))
    )
    await create_assessment(
        db_session, _payload("AUTO-C", brand="Apple", result=_result("A"))
    )

    rows = await search_assessments(
        db_session,
        AssessmentSearchFilters(grades={"A", "B"}, search_query="leno"),
    )

    assert [r.sku for r in rows] == ["AUTO-A"]


@pytest.mark.asyncio
async def test_search_text_matches_sku_and_model(db_session: AsyncSession) -> None:
    await create_assessment(db_session, _payload("LT-100", model="XPS 13"))
    await create_assessment(db_session, _payload("LT-200", model="Latitude"))

    by_sku = await search_assessments(
        db_session, AssessmentSearchFilters(search_query="lt-1")
    )
    by_model = await search_assessments(
        db_session, AssessmentSearchFilters(search_query="xps")
    )

    assert [r.sku for r in by_sku] == ["LT-100"]
    assert [r.sku for r in by_model] == ["LT-100"]


@pytest.mark.asyncio
async def test_search_wildcards_are_literal(db_session: AsyncSession) -> None:
    await create_assessment(db_session, _payload("LT_1"))
    await create_assessment(db_session, _payload("LTX1"))

    rows = await search_assessments(
        db_session, AssessmentSearchFilters(search_query="LT_")
    )

    assert [r.sku for r in rows] == ["LT_1"]


@pytest.mark.asyncio
async def test_search_date_range_inclusive(db_session: AsyncSession) -> None:
    row = await create_assessment(db_session, _payload())
    stamp = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    row.assessment_date = stamp
    await db_session.commit()

    exact = await search_assessments(
        db_session,
        AssessmentSearchFilters(date_range={"start": stamp, "end": stamp}),
    )
    before = await search_assessments(
        db_session,
        AssessmentSearchFilters(date_range={"end": stamp - timedelta(seconds=1)}),
    )

    assert len(exact) == 1
    assert before == []


@pytest.mark.asyncio
async def test_search_without_filters_returns_all(db_session: AsyncSession) -> None:
    await create_assessment(db_session, _payload("AUTO-1"))
    await create_assessment(db_session, _payload("AUTO-2"))

    rows = await search_assessments(db_session, AssessmentSearchFilters())

    assert len(rows) == 2


@pytest.mark.asyncio
async def test_update_only_touches_given_fields(db_session: AsyncSession) -> None:
    row = await create_assessment(db_session, _payload(brand="HP", model="EliteBook"))

    updated = await update_assessment_details(
        db_session, row.id, AssessmentUpdate(model="ProBook")
    )

    assert updated is not None
    assert updated.model == "ProBook"
    assert updated.brand == "HP"
    assert updated.grade == "B"


@pytest.mark.asyncio
async def test_update_missing_returns_none(db_session: AsyncSession) -> None:
    assert (
        await update_assessment_details(db_session, uuid4(), AssessmentUpdate(sku="X"))
        is None
    )


@pytest.mark.asyncio
async def test_store_write_failure_rolls_back() -> None:
    session = AsyncMock(spec=AsyncSession)
    session.commit.side_effect = OperationalError("INSERT", {}, Exception("db down"))
    store = SqlAssessmentStore(session)

    with pytest.raises(StoreWriteFailed):
        await store.create(_payload())

    session.rollback.assert_awaited_once()
