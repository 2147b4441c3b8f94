"""SQLAlchemy ORM models for the production fly pattern catalog.

These models define the tables the ingest stage writes to:
- FlyPatternDB (one row per canonical pattern, keyed by slug)
- MaterialDB, FlyPatternMaterialDB (materials and their recipe slots)
- VariationDB, VariationOverrideDB (named variants and their material swaps)
- MaterialSubstitutionDB (substitute materials)
- TyingStepDB, ResourceDB (instructions and source links)
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fly_pattern_db.db.models import Base


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class FlyPatternDB(Base):
    """Database model for canonical fly patterns."""

    __tablename__ = "fly_patterns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(20), default="other", index=True)
    difficulty: Mapped[str] = mapped_column(String(20), default="intermediate")
    water_type: Mapped[str] = mapped_column(String(20), default="freshwater")
    description: Mapped[str] = mapped_column(Text, default="")
    origin: Mapped[str | None] = mapped_column(Text, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    source_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    materials: Mapped[list["FlyPatternMaterialDB"]] = relationship(
        "FlyPatternMaterialDB",
        back_populates="fly_pattern",
        cascade="all, delete-orphan",
        order_by="FlyPatternMaterialDB.position",
    )
    variations: Mapped[list["VariationDB"]] = relationship(
        "VariationDB", back_populates="fly_pattern", cascade="all, delete-orphan"
    )
    tying_steps: Mapped[list["TyingStepDB"]] = relationship(
        "TyingStepDB",
        back_populates="fly_pattern",
        cascade="all, delete-orphan",
        order_by="TyingStepDB.position",
    )
    resources: Mapped[list["ResourceDB"]] = relationship(
        "ResourceDB", back_populates="fly_pattern", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<FlyPatternDB(id={self.id}, slug='{self.slug}')>"


class MaterialDB(Base):
    """Database model for production materials, unique by (name, type)."""

    __tablename__ = "materials"
    __table_args__ = (UniqueConstraint("name", "type", name="uq_material_name_type"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    def __repr__(self) -> str:
        return f"<MaterialDB(id={self.id}, name='{self.name}', type={self.type})>"


class FlyPatternMaterialDB(Base):
    """Database model linking a material into one slot of a pattern recipe."""

    __tablename__ = "fly_pattern_materials"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    fly_pattern_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("fly_patterns.id"), nullable=False, index=True
    )
    material_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("materials.id"), nullable=False, index=True
    )
    custom_color: Mapped[str | None] = mapped_column(String(100), nullable=True)
    custom_size: Mapped[str | None] = mapped_column(String(100), nullable=True)
    required: Mapped[bool] = mapped_column(Boolean, default=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    fly_pattern: Mapped["FlyPatternDB"] = relationship("FlyPatternDB", back_populates="materials")
    material: Mapped["MaterialDB"] = relationship("MaterialDB")


class VariationDB(Base):
    """Database model for named pattern variations."""

    __tablename__ = "variations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    fly_pattern_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("fly_patterns.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")

    fly_pattern: Mapped["FlyPatternDB"] = relationship("FlyPatternDB", back_populates="variations")
    overrides: Mapped[list["VariationOverrideDB"]] = relationship(
        "VariationOverrideDB", back_populates="variation", cascade="all, delete-orphan"
    )


class VariationOverrideDB(Base):
    """Database model for one material swap inside a variation."""

    __tablename__ = "variation_overrides"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    variation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("variations.id"), nullable=False, index=True
    )
    original_material_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("materials.id"), nullable=False
    )
    replacement_material_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("materials.id"), nullable=False
    )

    variation: Mapped["VariationDB"] = relationship("VariationDB", back_populates="overrides")


class MaterialSubstitutionDB(Base):
    """Database model for material substitutions (global, not per pattern)."""

    __tablename__ = "material_substitutions"
    __table_args__ = (
        UniqueConstraint("material_id", "substitute_material_id", name="uq_substitution_pair"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    material_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("materials.id"), nullable=False, index=True
    )
    substitute_material_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("materials.id"), nullable=False
    )
    substitution_type: Mapped[str] = mapped_column(String(20), default="equivalent")
    notes: Mapped[str] = mapped_column(Text, default="")


class TyingStepDB(Base):
    """Database model for ordered tying instructions."""

    __tablename__ = "tying_steps"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    fly_pattern_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("fly_patterns.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(255), default="")
    instruction: Mapped[str] = mapped_column(Text, default="")
    tip: Mapped[str | None] = mapped_column(Text, nullable=True)

    fly_pattern: Mapped["FlyPatternDB"] = relationship(
        "FlyPatternDB", back_populates="tying_steps"
    )


class ResourceDB(Base):
    """Database model for source links attached to a pattern."""

    __tablename__ = "resources"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    fly_pattern_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("fly_patterns.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(500), default="")
    creator_name: Mapped[str] = mapped_column(String(255), default="Unknown")
    platform: Mapped[str] = mapped_column(String(100), default="Unknown")
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    quality_score: Mapped[int] = mapped_column(Integer, default=3)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    fly_pattern: Mapped["FlyPatternDB"] = relationship("FlyPatternDB", back_populates="resources")
