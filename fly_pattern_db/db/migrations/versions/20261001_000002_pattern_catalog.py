"""Production fly pattern catalog.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-01

Adds the tables the ingest stage writes:
- fly_patterns, materials, fly_pattern_materials
- variations, variation_overrides, material_substitutions
- tying_steps, resources
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "fly_patterns",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(20), default="other"),
        sa.Column("difficulty", sa.String(20), default="intermediate"),
        sa.Column("water_type", sa.String(20), default="freshwater"),
        sa.Column("description", sa.Text(), default=""),
        sa.Column("origin", sa.Text(), nullable=True),
        sa.Column("confidence", sa.Float(), default=0.0),
        sa.Column("source_count", sa.Integer(), default=0),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_fly_patterns_name", "fly_patterns", ["name"])
    op.create_index("ix_fly_patterns_category", "fly_patterns", ["category"])

    op.create_table(
        "materials",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("name", "type", name="uq_material_name_type"),
    )
    op.create_index("ix_materials_name", "materials", ["name"])
    op.create_index("ix_materials_type", "materials", ["type"])

    op.create_table(
        "fly_pattern_materials",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "fly_pattern_id", sa.String(36), sa.ForeignKey("fly_patterns.id"), nullable=False
        ),
        sa.Column("material_id", sa.String(36), sa.ForeignKey("materials.id"), nullable=False),
        sa.Column("custom_color", sa.String(100), nullable=True),
        sa.Column("custom_size", sa.String(100), nullable=True),
        sa.Column("required", sa.Boolean(), default=True),
        sa.Column("position", sa.Integer(), default=0),
    )
    op.create_index(
        "ix_fly_pattern_materials_fly_pattern_id", "fly_pattern_materials", ["fly_pattern_id"]
    )
    op.create_index(
        "ix_fly_pattern_materials_material_id", "fly_pattern_materials", ["material_id"]
    )

    op.create_table(
        "variations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "fly_pattern_id", sa.String(36), sa.ForeignKey("fly_patterns.id"), nullable=False
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), default=""),
    )
    op.create_index("ix_variations_fly_pattern_id", "variations", ["fly_pattern_id"])

    op.create_table(
        "variation_overrides",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("variation_id", sa.String(36), sa.ForeignKey("variations.id"), nullable=False),
        sa.Column(
            "original_material_id", sa.String(36), sa.ForeignKey("materials.id"), nullable=False
        ),
        sa.Column(
            "replacement_material_id",
            sa.String(36),
            sa.ForeignKey("materials.id"),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_variation_overrides_variation_id", "variation_overrides", ["variation_id"]
    )

    op.create_table(
        "material_substitutions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("material_id", sa.String(36), sa.ForeignKey("materials.id"), nullable=False),
        sa.Column(
            "substitute_material_id",
            sa.String(36),
            sa.ForeignKey("materials.id"),
            nullable=False,
        ),
        sa.Column("substitution_type", sa.String(20), default="equivalent"),
        sa.Column("notes", sa.Text(), default=""),
        sa.UniqueConstraint(
            "material_id", "substitute_material_id", name="uq_substitution_pair"
        ),
    )
    op.create_index(
        "ix_material_substitutions_material_id", "material_substitutions", ["material_id"]
    )

    op.create_table(
        "tying_steps",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "fly_pattern_id", sa.String(36), sa.ForeignKey("fly_patterns.id"), nullable=False
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), default=""),
        sa.Column("instruction", sa.Text(), default=""),
        sa.Column("tip", sa.Text(), nullable=True),
    )
    op.create_index("ix_tying_steps_fly_pattern_id", "tying_steps", ["fly_pattern_id"])

    op.create_table(
        "resources",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "fly_pattern_id", sa.String(36), sa.ForeignKey("fly_patterns.id"), nullable=False
        ),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("title", sa.String(500), default=""),
        sa.Column("creator_name", sa.String(255), default="Unknown"),
        sa.Column("platform", sa.String(100), default="Unknown"),
        sa.Column("url", sa.String(1000), nullable=False),
        sa.Column("quality_score", sa.Integer(), default=3),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_resources_fly_pattern_id", "resources", ["fly_pattern_id"])


def downgrade() -> None:
    op.drop_index("ix_resources_fly_pattern_id", table_name="resources")
    op.drop_table("resources")

    op.drop_index("ix_tying_steps_fly_pattern_id", table_name="tying_steps")
    op.drop_table("tying_steps")

    op.drop_index("ix_material_substitutions_material_id", table_name="material_substitutions")
    op.drop_table("material_substitutions")

    op.drop_index("ix_variation_overrides_variation_id", table_name="variation_overrides")
    op.drop_table("variation_overrides")

    op.drop_index("ix_variations_fly_pattern_id", table_name="variations")
    op.drop_table("variations")

    op.drop_index("ix_fly_pattern_materials_material_id", table_name="fly_pattern_materials")
    op.drop_index("ix_fly_pattern_materials_fly_pattern_id", table_name="fly_pattern_materials")
    op.drop_table("fly_pattern_materials")

    op.drop_index("ix_materials_type", table_name="materials")
    op.drop_index("ix_materials_name", table_name="materials")
    op.drop_table("materials")

    op.drop_index("ix_fly_patterns_category", table_name="fly_patterns")
    op.drop_index("ix_fly_patterns_name", table_name="fly_patterns")
    op.drop_table("fly_patterns")
