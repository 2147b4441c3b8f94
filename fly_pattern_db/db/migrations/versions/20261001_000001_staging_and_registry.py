"""Pipeline staging tables and canonical material registry.

Revision ID: 0001
Revises:
Create Date: 2026-10-01

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # =========================================================================
    # Staging
    # =========================================================================

    op.create_table(
        "staged_sources",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("source_type", sa.String(20), nullable=False),
        sa.Column("url", sa.String(1000), nullable=False, unique=True),
        sa.Column("title", sa.String(500), nullable=True),
        sa.Column("creator_name", sa.String(255), nullable=True),
        sa.Column("platform", sa.String(100), nullable=True),
        sa.Column("pattern_query", sa.String(255), nullable=False),
        sa.Column("engagement", sa.Integer(), default=0),
        sa.Column("metadata_json", sa.Text(), default="{}"),
        sa.Column("raw_content", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), default="discovered"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("scraped_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_staged_sources_pattern_query", "staged_sources", ["pattern_query"])
    op.create_index("ix_staged_sources_status", "staged_sources", ["status"])

    op.create_table(
        "staged_extractions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "source_id", sa.String(36), sa.ForeignKey("staged_sources.id"), nullable=False
        ),
        sa.Column("pattern_name", sa.String(255), nullable=False),
        sa.Column("normalized_slug", sa.String(255), nullable=False),
        sa.Column("extracted_data_json", sa.Text(), nullable=False),
        sa.Column("normalized_data_json", sa.Text(), nullable=True),
        sa.Column("confidence", sa.Float(), default=0.0),
        sa.Column("consensus_confidence", sa.Float(), nullable=True),
        sa.Column("status", sa.String(20), default="extracted"),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_staged_extractions_source_id", "staged_extractions", ["source_id"])
    op.create_index(
        "ix_staged_extractions_normalized_slug", "staged_extractions", ["normalized_slug"]
    )
    op.create_index("ix_staged_extractions_status", "staged_extractions", ["status"])

    # =========================================================================
    # Canonical Registry
    # =========================================================================

    op.create_table(
        "canonical_materials",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("canonical_name", sa.String(255), nullable=False),
        sa.Column("normalized_name", sa.String(255), nullable=False),
        sa.Column("material_type", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("material_type", "normalized_name", name="uq_canonical_type_name"),
    )
    op.create_index(
        "ix_canonical_materials_normalized_name", "canonical_materials", ["normalized_name"]
    )
    op.create_index(
        "ix_canonical_materials_material_type", "canonical_materials", ["material_type"]
    )

    op.create_table(
        "canonical_material_aliases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "canonical_id",
            sa.String(36),
            sa.ForeignKey("canonical_materials.id"),
            nullable=False,
        ),
        sa.Column("alias", sa.String(255), nullable=False),
        sa.Column("normalized_alias", sa.String(255), nullable=False),
        sa.Column("material_type", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("material_type", "normalized_alias", name="uq_alias_type_name"),
    )
    op.create_index(
        "ix_canonical_material_aliases_canonical_id",
        "canonical_material_aliases",
        ["canonical_id"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_canonical_material_aliases_canonical_id", table_name="canonical_material_aliases"
    )
    op.drop_table("canonical_material_aliases")

    op.drop_index("ix_canonical_materials_material_type", table_name="canonical_materials")
    op.drop_index("ix_canonical_materials_normalized_name", table_name="canonical_materials")
    op.drop_table("canonical_materials")

    op.drop_index("ix_staged_extractions_status", table_name="staged_extractions")
    op.drop_index("ix_staged_extractions_normalized_slug", table_name="staged_extractions")
    op.drop_index("ix_staged_extractions_source_id", table_name="staged_extractions")
    op.drop_table("staged_extractions")

    op.drop_index("ix_staged_sources_status", table_name="staged_sources")
    op.drop_index("ix_staged_sources_pattern_query", table_name="staged_sources")
    op.drop_table("staged_sources")
