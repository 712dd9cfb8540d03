"""Laptop condition assessment endpoints."""

from __future__ import annotations

import logging
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile, status
from pydantic import ValidationError

from core.exceptions import RecordNotFoundError
from crud.assessments import (
    get_assessment,
    list_assessments,
    search_assessments,
    update_assessment_details,
)
from dependencies.db import DbSession
from dependencies.services import AppSettings, Orchestrator
from schemas.api import ApiResponse
from schemas.assessments import (
    AssessmentRecord,
    AssessmentSearchFilters,
    AssessmentUpdate,
    BatchAssessmentResponse,
)
from services.assessment.exceptions import (
    ClassificationAmbiguous,
    InvalidImage,
    UnsupportedFormat,
)
from services.assessment.orchestrator import UploadItem


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assessments", tags=["assessments"])

SEARCH_PARAMS = {"grades", "q", "start_date", "end_date"}

UploadFiles = Annotated[
    list[UploadFile] | None,
    File(description="Laptop photos or videos, one assessment per file"),
]
BrandField = Annotated[str | None, Form(max_length=100)]
ModelField = Annotated[str | None, Form(max_length=100)]


async def _read_uploads(
    files: list[UploadFile] | None, max_files: int, max_bytes: int
) -> list[UploadItem]:
    """Read every upload into memory, enforcing request-level limits.

    Raises:
        HTTPException: 400 for no files or too many, 413 for an oversize file
    """
    if not files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="No files uploaded."
        )
    if len(files) > max_files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Maximum {max_files} files allowed per upload.",
        )

    items: list[UploadItem] = []
    limit_mb = max_bytes // (1024 * 1024)
    for upload in files:
        file_name = upload.filename or "unnamed"
        if upload.size is not None and upload.size > max_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=(
                    f"{file_name}: file size must be less than {limit_mb}MB. "
                    "Please choose a smaller file."
                ),
            )
        raw_bytes = await upload.read()
        if len(raw_bytes) > max_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=(
                    f"{file_name}: file size must be less than {limit_mb}MB. "
                    "Please choose a smaller file."
                ),
            )
        items.append(
            UploadItem(
                raw_bytes=raw_bytes,
                declared_content_type=upload.content_type or "",
                original_file_name=file_name,
            )
        )
    return items


async def _run_batch(
    orchestrator: Orchestrator,
    files: list[UploadFile] | None,
    max_files: int,
    max_bytes: int,
    brand: str | None,
    model: str | None,
) -> BatchAssessmentResponse:
    items = await _read_uploads(files, max_files, max_bytes)
    logger.info("Received %d file(s) for assessment", len(items))
    outcomes = await orchestrator.process_batch(items, brand=brand, model=model)
    return BatchAssessmentResponse(
        success=True, results=[outcome.to_response() for outcome in outcomes]
    )


@router.post("", response_model=BatchAssessmentResponse)
async def create_assessments(
    orchestrator: Orchestrator,
    settings: AppSettings,
    files: UploadFiles = None,
    brand: BrandField = None,
    model: ModelField = None,
) -> BatchAssessmentResponse:
    """Assess each uploaded photo or video independently.

    Always returns one result per file; a file that cannot be assessed is
    reported as a failed entry rather than failing the request.
    """
    return await _run_batch(
        orchestrator,
        files,
        settings.MAX_UPLOAD_FILES,
        settings.MAX_UPLOAD_BYTES,
        brand,
        model,
    )


@router.post("/batch", response_model=BatchAssessmentResponse)
async def create_assessments_batch(
    orchestrator: Orchestrator,
    settings: AppSettings,
    files: UploadFiles = None,
    brand: BrandField = None,
    model: ModelField = None,
) -> BatchAssessmentResponse:
    """Same as the single upload endpoint with a larger file allowance."""
    return await _run_batch(
        orchestrator,
        files,
        settings.MAX_BATCH_UPLOAD_FILES,
        settings.MAX_UPLOAD_BYTES,
        brand,
        model,
    )


@router.post("/combined", response_model=ApiResponse[AssessmentRecord])
async def create_combined_assessment(
    orchestrator: Orchestrator,
    settings: AppSettings,
    files: UploadFiles = None,
    brand: BrandField = None,
    model: ModelField = None,
) -> ApiResponse[AssessmentRecord]:
    """Grade several photos of one laptop together as a single record."""
    items = await _read_uploads(
        files, settings.MAX_BATCH_UPLOAD_FILES, settings.MAX_UPLOAD_BYTES
    )
    try:
        record = await orchestrator.assess_combined(items, brand=brand, model=model)
    except (ClassificationAmbiguous, InvalidImage, UnsupportedFormat) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=e.message
        ) from e

    return ApiResponse(
        success=True,
        data=record,
        message=f"Assessed {len(items)} photos together",
    )


@router.get("", response_model=ApiResponse[list[AssessmentRecord]])
async def get_assessments(db: DbSession) -> ApiResponse[list[AssessmentRecord]]:
    """List every stored assessment, newest first."""
    rows = await list_assessments(db)
    return ApiResponse(
        success=True,
        data=[AssessmentRecord.from_model(row) for row in rows],
        message=f"Found {len(rows)} assessments",
    )


def _parse_search_filters(request: Request) -> AssessmentSearchFilters:
    params = request.query_params
    unknown = sorted(set(params.keys()) - SEARCH_PARAMS)
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown search filter(s): {', '.join(unknown)}",
        )

    raw: dict[str, Any] = {
        "grades": params.getlist("grades"),
        "search_query": params.get("q"),
    }
    start, end = params.get("start_date"), params.get("end_date")
    if start or end:
        raw["date_range"] = {"start": start or None, "end": end or None}

    try:
        return AssessmentSearchFilters.model_validate(raw)
    except ValidationError as e:
        reasons = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid search filters: {reasons}",
        ) from e


@router.get("/search", response_model=ApiResponse[list[AssessmentRecord]])
async def search(
    request: Request, db: DbSession
) -> ApiResponse[list[AssessmentRecord]]:
    """Filter by grades (``A,B``), text ``q`` and ``start_date``/``end_date``."""
    filters = _parse_search_filters(request)
    rows = await search_assessments(db, filters)
    return ApiResponse(
        success=True,
        data=[AssessmentRecord.from_model(row) for row in rows],
        message=f"Found {len(rows)} assessments",
    )


@router.get("/{assessment_id}", response_model=ApiResponse[AssessmentRecord])
async def get_assessment_by_id(
    assessment_id: UUID, db: DbSession
) -> ApiResponse[AssessmentRecord]:
    row = await get_assessment(db, assessment_id)
    if row is None:
        raise RecordNotFoundError("Assessment not found")
    return ApiResponse(
        success=True,
        data=AssessmentRecord.from_model(row),
        message="Assessment retrieved successfully",
    )


@router.patch("/{assessment_id}", response_model=ApiResponse[AssessmentRecord])
async def update_assessment(
    assessment_id: UUID, updates: AssessmentUpdate, db: DbSession
) -> ApiResponse[AssessmentRecord]:
    """Edit the sku, brand or model of a stored assessment."""
    row = await update_assessment_details(db, assessment_id, updates)
    if row is None:
        raise RecordNotFoundError("Assessment not found")
    return ApiResponse(
        success=True,
        data=AssessmentRecord.from_model(row),
        message="Assessment updated successfully",
    )
