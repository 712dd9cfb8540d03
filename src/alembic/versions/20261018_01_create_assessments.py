"""Create assessments table

Revision ID: 20261018_01
Revises:
Create Date: 2026-10-18

One row per stored laptop assessment (single photo, video, or a set of
photos graded together).
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "20261018_01"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the assessments table and its lookup indexes."""
    op.create_table(
        "assessments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("sku", sa.String(100), nullable=True),
        sa.Column("brand", sa.String(100), nullable=True),
        sa.Column("model", sa.String(100), nullable=True),
        sa.Column("grade", sa.String(10), nullable=False, comment="A, B, C or D"),
        sa.Column(
            "confidence", sa.Float(), nullable=False, comment="0-1 confidence score"
        ),
        sa.Column("damage_description", sa.Text(), nullable=True),
        sa.Column(
            "detailed_findings",
            sa.JSON(),
            nullable=False,
            server_default=sa.text("'[]'"),
            comment="Array of finding objects",
        ),
        sa.Column(
            "damage_types",
            sa.JSON(),
            nullable=False,
            server_default=sa.text("'[]'"),
            comment="Array of damage type strings",
        ),
        sa.Column(
            "image_analyses",
            sa.JSON(),
            nullable=True,
            comment="Per-photo breakdown for combined assessments",
        ),
        sa.Column(
            "processing_time",
            sa.Float(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "assessment_date",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "file_type",
            sa.String(10),
            nullable=True,
            comment="'image', 'video' or 'images'",
        ),
        sa.Column("original_file_name", sa.Text(), nullable=True),
        sa.Column("mime_type", sa.String(100), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("video_duration", sa.Float(), nullable=True),
        sa.Column("video_width", sa.Integer(), nullable=True),
        sa.Column("video_height", sa.Integer(), nullable=True),
        sa.Column("video_fps", sa.Float(), nullable=True),
        sa.Column("frames_analyzed", sa.Integer(), nullable=True),
        sa.Column(
            "is_degraded",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
            comment="Placeholder result that requires manual review",
        ),
    )

    op.create_index("ix_assessments_grade", "assessments", ["grade"])
    op.create_index("ix_assessments_sku", "assessments", ["sku"])
    op.create_index("ix_assessments_assessment_date", "assessments", ["assessment_date"])


def downgrade() -> None:
    """Drop the assessments table."""
    op.drop_index("ix_assessments_assessment_date", table_name="assessments")
    op.drop_index("ix_assessments_sku", table_name="assessments")
    op.drop_index("ix_assessments_grade", table_name="assessments")
    op.drop_table("assessments")
