"""Pydantic v2 models for extracted pattern records and staged pipeline entities.

These models define:
- ExtractedPattern and its children (one source's structured view of a pattern)
- StagedSource, StagedExtraction (pipeline state machine rows)
- CanonicalMaterial (canonical registry rows)
- PipelineStats (status summary)
"""

from datetime import UTC, datetime
from typing import Annotated, Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fly_pattern_db.core.enums import (
    ExtractionStatus,
    MaterialType,
    SourceStatus,
    SourceType,
)


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


# ============================================================================
# Extracted Records
# ============================================================================


class ExtractedMaterial(BaseModel):
    """One component line of a recipe as reported by a single source."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: MaterialType = MaterialType.OTHER
    color: str | None = None
    size: str | None = None
    required: bool = True
    position: int = 0

    @field_validator("type", mode="before")
    @classmethod
    def sanitize_type(cls, v: Any) -> MaterialType:
        return MaterialType.from_raw(v)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return " ".join(v.split())


class MaterialChange(BaseModel):
    """A material swap that defines a variation."""

    model_config = ConfigDict(frozen=True)

    original: str
    replacement: str


class ExtractedVariation(BaseModel):
    """A named variant of the pattern."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    material_changes: list[MaterialChange] = Field(default_factory=list)


class ExtractedSubstitution(BaseModel):
    """A substitute material offered for one of the recipe's materials."""

    model_config = ConfigDict(frozen=True)

    original_material: str
    substitute_material: str
    substitution_type: str = "equivalent"
    notes: str = ""


class TyingStep(BaseModel):
    """One tying instruction."""

    model_config = ConfigDict(frozen=True)

    position: int = 0
    title: str = ""
    instruction: str = ""
    tip: str | None = None


class ExtractedPattern(BaseModel):
    """
    One source's structured description of one fly pattern.

    Produced by the extractor and never mutated afterwards; normalization
    derives new instances with model_copy().
    """

    model_config = ConfigDict(frozen=True)

    pattern_name: str
    alternate_names: list[str] = Field(default_factory=list)
    category: str = "other"
    difficulty: str = "intermediate"
    water_type: str = "freshwater"
    description: str = ""
    origin: str | None = None
    materials: list[ExtractedMaterial] = Field(default_factory=list)
    variations: list[ExtractedVariation] = Field(default_factory=list)
    substitutions: list[ExtractedSubstitution] = Field(default_factory=list)
    tying_steps: list[TyingStep] = Field(default_factory=list)

    @field_validator("category", "difficulty", "water_type", mode="before")
    @classmethod
    def lower_categorical(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip().lower()

    @field_validator("description", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return "" if v is None else str(v)


# ============================================================================
# Staged Pipeline Entities
# ============================================================================


class StagedSource(BaseModel):
    """A discovered content source moving through discover -> scrape -> extract."""

    id: UUID = Field(default_factory=uuid4)
    source_type: SourceType
    url: str
    title: str | None = None
    creator_name: str | None = None
    platform: str | None = None
    pattern_query: str
    engagement: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    raw_content: str | None = None
    status: SourceStatus = SourceStatus.DISCOVERED
    error: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    scraped_at: datetime | None = None

    @field_validator("url")
    @classmethod
    def url_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("url cannot be empty")
        return v.strip()


class StagedExtraction(BaseModel):
    """An LLM extraction of one staged source, moving through review states."""

    id: UUID = Field(default_factory=uuid4)
    source_id: UUID
    pattern_name: str
    normalized_slug: str
    extracted_data: ExtractedPattern
    normalized_data: ExtractedPattern | None = None
    confidence: Annotated[float, Field(ge=0.0, le=1.0)] = 0.0
    consensus_confidence: float | None = None
    status: ExtractionStatus = ExtractionStatus.EXTRACTED
    review_notes: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    # Denormalized source fields for ingestion resources
    source_url: str | None = None
    source_type: SourceType | None = None
    source_title: str | None = None
    source_creator: str | None = None
    source_platform: str | None = None

    @property
    def record(self) -> ExtractedPattern:
        """Canonicalized record when available, otherwise the raw extraction."""
        return self.normalized_data or self.extracted_data


# ============================================================================
# Canonical Registry
# ============================================================================


class CanonicalMaterial(BaseModel):
    """Registered canonical name for a recurring physical material."""

    id: UUID = Field(default_factory=uuid4)
    canonical_name: str
    material_type: MaterialType
    aliases: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utc_now)

    @field_validator("canonical_name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("canonical_name cannot be empty")
        return v.strip()


# ============================================================================
# Status
# ============================================================================


class PipelineStats(BaseModel):
    """Counts of staged rows by status, plus registry and catalog sizes."""

    sources_discovered: int = 0
    sources_scraped: int = 0
    sources_extracted: int = 0
    sources_failed: int = 0
    extractions_total: int = 0
    extractions_high_confidence: int = 0
    extractions_low_confidence: int = 0
    extractions_extracted: int = 0
    extractions_normalized: int = 0
    extractions_approved: int = 0
    extractions_rejected: int = 0
    extractions_ingested: int = 0
    canonical_materials: int = 0
    patterns: int = 0


# ============================================================================
# Production Catalog
# ============================================================================


class CatalogMaterial(BaseModel):
    """A production material, unique by (name, type)."""

    id: UUID = Field(default_factory=uuid4)
    name: str
    type: MaterialType


class FlyPattern(BaseModel):
    """A canonical pattern as stored in the production catalog."""

    id: UUID = Field(default_factory=uuid4)
    slug: str
    name: str
    category: str
    difficulty: str
    water_type: str
    description: str = ""
    origin: str | None = None
    confidence: float = 0.0
    source_count: int = 0
    materials: list[str] = Field(default_factory=list)
    resource_urls: list[str] = Field(default_factory=list)
    step_count: int = 0
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
