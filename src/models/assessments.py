"""Assessment model: one durable row per produced laptop assessment."""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Assessment(Base):
    """Persisted result of grading one uploaded photo, video or photo set.

    Rows are written once by the upload pipeline. Only the identification
    fields (sku, brand, model) are edited afterwards, by administrators.
    """

    __tablename__ = "assessments"

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    grade: Mapped[str] = mapped_column(
        String(10), nullable=False, index=True, comment="A, B, C or D"
    )
    confidence: Mapped[float] = mapped_column(
        Float, nullable=False, comment="0-1 confidence score"
    )
    overall_condition: Mapped[str | None] = mapped_column(
        "damage_description", Text, nullable=True
    )
    detailed_findings: Mapped[Any] = mapped_column(
        JSON, nullable=False, default=list, comment="Array of finding objects"
    )
    damage_types: Mapped[Any] = mapped_column(
        JSON, nullable=False, default=list, comment="Array of damage type strings"
    )
    image_analyses: Mapped[Any | None] = mapped_column(
        JSON, nullable=True, comment="Per-photo breakdown for combined assessments"
    )
    processing_time_seconds: Mapped[float] = mapped_column(
        "processing_time", Float, nullable=False, default=0.0
    )
    assessment_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        default=lambda: datetime.now(UTC),
    )
    file_type: Mapped[str | None] = mapped_column(
        String(10), nullable=True, comment="'image', 'video' or 'images'"
    )
    original_file_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Video metadata (null for photos)
    video_duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    video_width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    video_height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    video_fps: Mapped[float | None] = mapped_column(Float, nullable=True)
    frames_analyzed: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_degraded: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Placeholder result that requires manual review",
    )

    def __repr__(self) -> str:
        return f"<Assessment(id={self.id}, sku={self.sku}, grade={self.grade})>"
