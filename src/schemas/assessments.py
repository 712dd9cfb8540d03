"""Schemas for laptop condition assessments.

Three groups live here:

* the reply contract the vision model must satisfy (`ModelAssessmentReply`,
  `ModelMultiImageReply`), validated strictly before anything is persisted;
* the canonical `AssessmentResult` produced by one assessment call and the
  persisted `AssessmentRecord` returned by the API;
* request models for search and administrative edits.

Public JSON uses camelCase keys (``overallCondition``, ``detailedFindings``)
so the web client reads the same keys the model is asked to produce.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal, get_args
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


if TYPE_CHECKING:  # pragma: no cover - only for type checking
    from models.assessments import Assessment


Grade = Literal["A", "B", "C", "D"]
Severity = Literal["Low", "Medium", "High"]
FindingCategory = Literal[
    "Display Lid",
    "Base/Keyboard Area",
    "Screen",
    "Ports/Connectors",
    "Hinges",
    "Overall Structure",
]
FileType = Literal["image", "video", "images"]

GRADES: tuple[str, ...] = get_args(Grade)
SEVERITIES: tuple[str, ...] = get_args(Severity)
FINDING_CATEGORIES: tuple[str, ...] = get_args(FindingCategory)


class CamelModel(BaseModel):
    """Base model serializing snake_case fields as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Finding(CamelModel):
    """One itemized observation about a physical area of the laptop."""

    category: FindingCategory
    severity: Severity
    description: StrictStr


class ImageAnalysis(CamelModel):
    """Per-photo breakdown returned when several photos are graded together."""

    image_index: StrictInt = Field(..., ge=1)
    summary: StrictStr
    damage_types: list[StrictStr]
    detailed_findings: list[Finding]
    original_file_name: str | None = None


class VideoMetadata(CamelModel):
    """Container metadata probed from an uploaded video."""

    duration_seconds: float = Field(default=0.0, ge=0.0)
    width_px: int = Field(default=0, ge=0)
    height_px: int = Field(default=0, ge=0)
    fps: float = Field(default=0.0, ge=0.0)
    frames_analyzed: int = Field(default=0, ge=0)


class ModelAssessmentReply(CamelModel):
    """Exact shape the vision model must return for a single view."""

    grade: Grade
    confidence: float = Field(..., ge=0.0, le=1.0, strict=True)
    overall_condition: StrictStr
    damage_types: list[StrictStr]
    detailed_findings: list[Finding]


class ModelMultiImageReply(ModelAssessmentReply):
    """Reply shape when several photos are graded in one request."""

    image_analyses: list[ImageAnalysis]


class AssessmentResult(CamelModel):
    """Validated, canonical output of one assessment call."""

    grade: Grade
    confidence: float = Field(..., ge=0.0, le=1.0)
    overall_condition: str
    damage_types: list[str]
    detailed_findings: list[Finding]
    processing_time_seconds: float = Field(..., ge=0.0)
    video_metadata: VideoMetadata | None = None
    image_analyses: list[ImageAnalysis] | None = None
    degraded: bool = Field(
        default=False,
        description="True when this is a placeholder needing manual review",
    )


class AssessmentCreate(BaseModel):
    """Fields written to the record store for one successful assessment."""

    sku: str
    brand: str | None = None
    model: str | None = None
    file_type: FileType
    original_file_name: str
    mime_type: str | None = None
    file_size: int | None = None
    result: AssessmentResult


class AssessmentRecord(AssessmentResult):
    """A persisted assessment as returned by the API."""

    id: UUID
    sku: str | None = None
    brand: str | None = None
    model: str | None = None
    assessment_date: datetime
    file_type: str | None = None
    original_file_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = None

    @classmethod
    def from_model(cls, row: Assessment) -> AssessmentRecord:
        video_metadata = None
        if row.file_type == "video":
            video_metadata = VideoMetadata(
                duration_seconds=row.video_duration or 0.0,
                width_px=row.video_width or 0,
                height_px=row.video_height or 0,
                fps=row.video_fps or 0.0,
                frames_analyzed=row.frames_analyzed or 0,
            )
        return cls(
            id=row.id,
            sku=row.sku,
            brand=row.brand,
            model=row.model,
            grade=row.grade,
            confidence=row.confidence,
            overall_condition=row.overall_condition,
            damage_types=list(row.damage_types or []),
            detailed_findings=list(row.detailed_findings or []),
            image_analyses=row.image_analyses,
            processing_time_seconds=row.processing_time_seconds,
            assessment_date=row.assessment_date,
            file_type=row.file_type,
            original_file_name=row.original_file_name,
            mime_type=row.mime_type,
            file_size=row.file_size,
            video_metadata=video_metadata,
            degraded=row.is_degraded,
        )


class BatchItemResult(CamelModel):
    """Outcome for one uploaded file; exactly one per submitted file."""

    original_file_name: str
    success: bool
    assessment: AssessmentRecord | None = None
    error: str | None = None


class BatchAssessmentResponse(CamelModel):
    success: bool = True
    results: list[BatchItemResult]


class DateRange(BaseModel):
    """Inclusive window on the assessment date."""

    model_config = ConfigDict(extra="forbid")

    start: datetime | None = None
    end: datetime | None = None

    @model_validator(mode="after")
    def _ordered(self) -> DateRange:
        if self.start and self.end and self.start > self.end:
            raise ValueError("date range start must not be after end")
        return self


class AssessmentSearchFilters(BaseModel):
    """Closed set of search filters; unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")

    grades: set[Grade] = Field(default_factory=set)
    search_query: str | None = Field(default=None, max_length=200)
    date_range: DateRange | None = None

    @field_validator("grades", mode="before")
    @classmethod
    def _split_grades(cls, v: Any) -> Any:
        """Accept ``"A,B"``, ``["A", "b"]`` or ``["A,B", "C"]``."""
        if v is None:
            return set()
        if isinstance(v, str):
            v = [v]
        if isinstance(v, list | tuple | set | frozenset):
            grades: set[str] = set()
            for item in v:
                if not isinstance(item, str):
                    return v
                grades.update(g.strip().upper() for g in item.split(",") if g.strip())
            return grades
        return v

    @field_validator("search_query")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None


class AssessmentUpdate(BaseModel):
    """Administrative edits to identification fields of a record."""

    model_config = ConfigDict(extra="forbid")

    sku: str | None = Field(default=None, min_length=1, max_length=100)
    brand: str | None = Field(default=None, max_length=100)
    model: str | None = Field(default=None, max_length=100)

    @field_validator("sku")
    @classmethod
    def _sku_not_null(cls, v: str | None) -> str:
        if v is None:
            raise ValueError("sku cannot be cleared")
        return v
