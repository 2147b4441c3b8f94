"""SQLAlchemy ORM models for the pipeline staging area and canonical registry."""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ============================================================================
# Staging
# ============================================================================


class StagedSourceDB(Base):
    """
    Database model for staged sources.

    One row per discovered URL. Status walks discovered -> scraped -> extracted,
    or lands in failed when content could not be retrieved.
    """

    __tablename__ = "staged_sources"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    url: Mapped[str] = mapped_column(String(1000), nullable=False, unique=True)
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    creator_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    platform: Mapped[str | None] = mapped_column(String(100), nullable=True)
    pattern_query: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    engagement: Mapped[int] = mapped_column(Integer, default=0)
    metadata_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    raw_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="discovered", index=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    scraped_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    extractions: Mapped[list["StagedExtractionDB"]] = relationship(
        "StagedExtractionDB", back_populates="source", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<StagedSourceDB(id={self.id}, status={self.status}, url='{self.url}')>"


class StagedExtractionDB(Base):
    """
    Database model for staged extractions.

    Holds the raw extracted record and, after normalization, the record with
    canonicalized material names plus the group's consensus confidence.
    """

    __tablename__ = "staged_extractions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    source_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("staged_sources.id"), nullable=False, index=True
    )
    pattern_name: Mapped[str] = mapped_column(String(255), nullable=False)
    normalized_slug: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    extracted_data_json: Mapped[str] = mapped_column(Text, nullable=False)
    normalized_data_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    consensus_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="extracted", index=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    source: Mapped["StagedSourceDB"] = relationship(
        "StagedSourceDB", back_populates="extractions"
    )

    def __repr__(self) -> str:
        return (
            f"<StagedExtractionDB(id={self.id}, pattern='{self.pattern_name}', "
            f"status={self.status})>"
        )


# ============================================================================
# Canonical Registry
# ============================================================================


class CanonicalMaterialDB(Base):
    """
    Database model for canonical materials.

    The (material_type, normalized_name) key makes creation a conditional
    insert: a second writer racing on the same name hits the constraint.
    """

    __tablename__ = "canonical_materials"
    __table_args__ = (
        UniqueConstraint("material_type", "normalized_name", name="uq_canonical_type_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    canonical_name: Mapped[str] = mapped_column(String(255), nullable=False)
    normalized_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    material_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    aliases: Mapped[list["CanonicalMaterialAliasDB"]] = relationship(
        "CanonicalMaterialAliasDB",
        back_populates="canonical",
        cascade="all, delete-orphan",
        order_by="CanonicalMaterialAliasDB.created_at",
    )

    def __repr__(self) -> str:
        return (
            f"<CanonicalMaterialDB(id={self.id}, name='{self.canonical_name}', "
            f"type={self.material_type})>"
        )


class CanonicalMaterialAliasDB(Base):
    """
    Database model for learned canonical material aliases.

    An alias belongs to exactly one canonical entry per type.
    """

    __tablename__ = "canonical_material_aliases"
    __table_args__ = (
        UniqueConstraint("material_type", "normalized_alias", name="uq_alias_type_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    canonical_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("canonical_materials.id"), nullable=False, index=True
    )
    alias: Mapped[str] = mapped_column(String(255), nullable=False)
    normalized_alias: Mapped[str] = mapped_column(String(255), nullable=False)
    material_type: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    canonical: Mapped["CanonicalMaterialDB"] = relationship(
        "CanonicalMaterialDB", back_populates="aliases"
    )

    def __repr__(self) -> str:
        return f"<CanonicalMaterialAliasDB(alias='{self.alias}', canonical_id={self.canonical_id})>"

