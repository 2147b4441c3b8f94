"""Repository classes for staging and canonical registry database operations."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fly_pattern_db.core.enums import ExtractionStatus, MaterialType, SourceStatus, SourceType
from fly_pattern_db.core.schema import (
    CanonicalMaterial,
    ExtractedPattern,
    PipelineStats,
    StagedExtraction,
    StagedSource,
)
from fly_pattern_db.core.text import normalize_material_name
from fly_pattern_db.db.models import (
    CanonicalMaterialAliasDB,
    CanonicalMaterialDB,
    StagedExtractionDB,
    StagedSourceDB,
)
from fly_pattern_db.db.models_catalog import FlyPatternDB

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


# ============================================================================
# Staging Repositories
# ============================================================================


class StagedSourceRepository:
    """Repository for StagedSource operations."""

    def __init__(self, session: Session):
        self.session = session

    def upsert(self, source: StagedSource) -> StagedSource:
        """
        Create a staged source, or refresh its descriptive fields if the URL
        is already staged. Status and content of an existing row are kept.
        """
        db_item = self._get_db_by_url(source.url)
        if db_item is not None:
            db_item.title = source.title
            db_item.creator_name = source.creator_name
            db_item.platform = source.platform
            if source.metadata:
                db_item.metadata_json = json.dumps(source.metadata)
            self.session.flush()
            return self._to_domain(db_item)

        db_item = StagedSourceDB(
            id=str(source.id),
            source_type=source.source_type.value,
            url=source.url,
            title=source.title,
            creator_name=source.creator_name,
            platform=source.platform,
            pattern_query=source.pattern_query,
            engagement=source.engagement,
            metadata_json=json.dumps(source.metadata),
            raw_content=source.raw_content,
            status=source.status.value,
            error=source.error,
            created_at=source.created_at,
            scraped_at=source.scraped_at,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get_by_id(self, source_id: UUID | str) -> StagedSource | None:
        """Get a staged source by ID."""
        stmt = select(StagedSourceDB).where(StagedSourceDB.id == str(source_id))
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def get_by_url(self, url: str) -> StagedSource | None:
        """Get a staged source by URL."""
        db_item = self._get_db_by_url(url)
        return self._to_domain(db_item) if db_item else None

    def list_by_status(self, status: SourceStatus, limit: int | None = None) -> list[StagedSource]:
        """List staged sources in a status, oldest first."""
        stmt = (
            select(StagedSourceDB)
            .where(StagedSourceDB.status == status.value)
            .order_by(StagedSourceDB.created_at)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(s) for s in result]

    def has_query(self, pattern_query: str) -> bool:
        """Whether any source was already discovered for a query term."""
        stmt = (
            select(func.count())
            .select_from(StagedSourceDB)
            .where(func.lower(StagedSourceDB.pattern_query) == pattern_query.lower())
        )
        return (self.session.execute(stmt).scalar() or 0) > 0

    def mark_scraped(self, source_id: UUID | str, content: str) -> None:
        """Store fetched content and move the source to scraped."""
        db_item = self._require(source_id)
        db_item.raw_content = content
        db_item.status = SourceStatus.SCRAPED.value
        db_item.scraped_at = _utc_now()
        db_item.error = None
        self.session.flush()

    def mark_extracted(self, source_id: UUID | str) -> None:
        """Move the source to extracted."""
        db_item = self._require(source_id)
        db_item.status = SourceStatus.EXTRACTED.value
        self.session.flush()

    def mark_failed(self, source_id: UUID | str, error: str) -> None:
        """Move the source to failed, recording why."""
        db_item = self._require(source_id)
        db_item.status = SourceStatus.FAILED.value
        db_item.error = error
        self.session.flush()

    def count_by_status(self) -> dict[str, int]:
        """Count staged sources per status."""
        stmt = select(StagedSourceDB.status, func.count()).group_by(StagedSourceDB.status)
        return {status: count for status, count in self.session.execute(stmt).all()}

    def _get_db_by_url(self, url: str) -> StagedSourceDB | None:
        stmt = select(StagedSourceDB).where(StagedSourceDB.url == url.strip())
        return self.session.execute(stmt).scalar_one_or_none()

    def _require(self, source_id: UUID | str) -> StagedSourceDB:
        stmt = select(StagedSourceDB).where(StagedSourceDB.id == str(source_id))
        db_item = self.session.execute(stmt).scalar_one_or_none()
        if db_item is None:
            raise ValueError(f"StagedSource with id {source_id} not found")
        return db_item

    def _to_domain(self, db_item: StagedSourceDB) -> StagedSource:
        """Convert database model to domain model."""
        return StagedSource(
            id=UUID(db_item.id),
            source_type=SourceType(db_item.source_type),
            url=db_item.url,
            title=db_item.title,
            creator_name=db_item.creator_name,
            platform=db_item.platform,
            pattern_query=db_item.pattern_query,
            engagement=db_item.engagement or 0,
            metadata=json.loads(db_item.metadata_json or "{}"),
            raw_content=db_item.raw_content,
            status=SourceStatus(db_item.status),
            error=db_item.error,
            created_at=db_item.created_at,
            scraped_at=db_item.scraped_at,
        )


class StagedExtractionRepository:
    """Repository for StagedExtraction operations."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, extraction: StagedExtraction) -> StagedExtraction:
        """Create a new staged extraction."""
        db_item = StagedExtractionDB(
            id=str(extraction.id),
            source_id=str(extraction.source_id),
            pattern_name=extraction.pattern_name,
            normalized_slug=extraction.normalized_slug,
            extracted_data_json=extraction.extracted_data.model_dump_json(),
            normalized_data_json=(
                extraction.normalized_data.model_dump_json()
                if extraction.normalized_data
                else None
            ),
            confidence=extraction.confidence,
            consensus_confidence=extraction.consensus_confidence,
            status=extraction.status.value,
            review_notes=extraction.review_notes,
            created_at=extraction.created_at,
            updated_at=extraction.updated_at,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get_by_id(self, extraction_id: UUID | str) -> StagedExtraction | None:
        """Get a staged extraction by ID."""
        db_item = self._get_db(extraction_id)
        return self._to_domain(db_item) if db_item else None

    def list_by_status(self, status: ExtractionStatus) -> list[StagedExtraction]:
        """List extractions in a status, oldest first."""
        stmt = (
            select(StagedExtractionDB)
            .where(StagedExtractionDB.status == status.value)
            .order_by(StagedExtractionDB.created_at)
        )
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(e) for e in result]

    def list(
        self,
        status: ExtractionStatus | None = None,
        slug: str | None = None,
        min_confidence: float | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[StagedExtraction]:
        """List extractions for review, highest confidence first."""
        stmt = self._filtered(select(StagedExtractionDB), status, slug, min_confidence)
        stmt = (
            stmt.order_by(
                StagedExtractionDB.confidence.desc(), StagedExtractionDB.created_at.desc()
            )
            .limit(limit)
            .offset(offset)
        )
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(e) for e in result]

    def count(
        self,
        status: ExtractionStatus | None = None,
        slug: str | None = None,
        min_confidence: float | None = None,
    ) -> int:
        """Count extractions matching the same filters as list()."""
        stmt = self._filtered(
            select(func.count()).select_from(StagedExtractionDB), status, slug, min_confidence
        )
        return self.session.execute(stmt).scalar() or 0

    def save_normalization(
        self,
        extraction_id: UUID | str,
        normalized_data: ExtractedPattern,
        slug: str,
        consensus_confidence: float,
    ) -> None:
        """Store the canonicalized record and group confidence; move to normalized."""
        db_item = self._require(extraction_id)
        db_item.normalized_data_json = normalized_data.model_dump_json()
        db_item.normalized_slug = slug
        db_item.consensus_confidence = consensus_confidence
        db_item.status = ExtractionStatus.NORMALIZED.value
        self.session.flush()

    def update_status(
        self,
        extraction_id: UUID | str,
        status: ExtractionStatus,
        review_notes: str | None = None,
    ) -> StagedExtraction:
        """Set an extraction's status, stamping reviewed_at for review decisions."""
        db_item = self._require(extraction_id)
        db_item.status = status.value
        if status in (ExtractionStatus.APPROVED, ExtractionStatus.REJECTED):
            db_item.reviewed_at = _utc_now()
            if review_notes is not None:
                db_item.review_notes = review_notes
        self.session.flush()
        return self._to_domain(db_item)

    def mark_ingested(self, extraction_ids: list[UUID | str]) -> int:
        """Move a group of extractions to ingested."""
        ids = [str(i) for i in extraction_ids]
        stmt = select(StagedExtractionDB).where(StagedExtractionDB.id.in_(ids))
        rows = self.session.execute(stmt).scalars().all()
        for db_item in rows:
            db_item.status = ExtractionStatus.INGESTED.value
        self.session.flush()
        return len(rows)

    def count_by_status(self) -> dict[str, int]:
        """Count extractions per status."""
        stmt = select(StagedExtractionDB.status, func.count()).group_by(StagedExtractionDB.status)
        return {status: count for status, count in self.session.execute(stmt).all()}

    def count_by_confidence(self, threshold: float) -> tuple[int, int]:
        """Count extractions at/above and below a quality threshold."""
        high = self.session.execute(
            select(func.count())
            .select_from(StagedExtractionDB)
            .where(StagedExtractionDB.confidence >= threshold)
        ).scalar() or 0
        low = self.session.execute(
            select(func.count())
            .select_from(StagedExtractionDB)
            .where(StagedExtractionDB.confidence < threshold)
        ).scalar() or 0
        return high, low

    def _filtered(self, stmt, status, slug, min_confidence):
        if status is not None:
            stmt = stmt.where(StagedExtractionDB.status == status.value)
        if slug:
            stmt = stmt.where(StagedExtractionDB.normalized_slug == slug)
        if min_confidence is not None:
            stmt = stmt.where(StagedExtractionDB.confidence >= min_confidence)
        return stmt

    def _get_db(self, extraction_id: UUID | str) -> StagedExtractionDB | None:
        stmt = select(StagedExtractionDB).where(StagedExtractionDB.id == str(extraction_id))
        return self.session.execute(stmt).scalar_one_or_none()

    def _require(self, extraction_id: UUID | str) -> StagedExtractionDB:
        db_item = self._get_db(extraction_id)
        if db_item is None:
            raise ValueError(f"StagedExtraction with id {extraction_id} not found")
        return db_item

    def _to_domain(self, db_item: StagedExtractionDB) -> StagedExtraction:
        """Convert database model to domain model."""
        source = db_item.source
        return StagedExtraction(
            id=UUID(db_item.id),
            source_id=UUID(db_item.source_id),
            pattern_name=db_item.pattern_name,
            normalized_slug=db_item.normalized_slug,
            extracted_data=ExtractedPattern.model_validate_json(db_item.extracted_data_json),
            normalized_data=(
                ExtractedPattern.model_validate_json(db_item.normalized_data_json)
                if db_item.normalized_data_json
                else None
            ),
            confidence=db_item.confidence or 0.0,
            consensus_confidence=db_item.consensus_confidence,
            status=ExtractionStatus(db_item.status),
            review_notes=db_item.review_notes,
            reviewed_at=db_item.reviewed_at,
            created_at=db_item.created_at,
            updated_at=db_item.updated_at,
            source_url=source.url if source else None,
            source_type=SourceType(source.source_type) if source else None,
            source_title=source.title if source else None,
            source_creator=source.creator_name if source else None,
            source_platform=source.platform if source else None,
        )


# ============================================================================
# Canonical Registry Repository
# ============================================================================


class CanonicalMaterialRepository:
    """
    Repository for canonical materials and their aliases.

    Creation and alias-append run inside a SAVEPOINT. A unique-constraint
    violation means another writer got there first; the existing row is
    re-read and returned instead of raising.
    """

    def __init__(self, session: Session):
        self.session = session

    def list_by_type(self, material_type: MaterialType) -> list[CanonicalMaterial]:
        """List all canonical materials of a type with their aliases."""
        stmt = (
            select(CanonicalMaterialDB)
            .where(CanonicalMaterialDB.material_type == material_type.value)
            .order_by(CanonicalMaterialDB.created_at)
        )
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(c) for c in result]

    def get_by_id(self, canonical_id: UUID | str) -> CanonicalMaterial | None:
        """Get a canonical material by ID."""
        stmt = select(CanonicalMaterialDB).where(CanonicalMaterialDB.id == str(canonical_id))
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def get_by_name(self, name: str, material_type: MaterialType) -> CanonicalMaterial | None:
        """Exact lookup on the normalized canonical name."""
        db_item = self._get_db_by_normalized(normalize_material_name(name), material_type)
        return self._to_domain(db_item) if db_item else None

    def get_by_alias(self, name: str, material_type: MaterialType) -> CanonicalMaterial | None:
        """Exact lookup on the normalized alias."""
        stmt = select(CanonicalMaterialAliasDB).where(
            CanonicalMaterialAliasDB.material_type == material_type.value,
            CanonicalMaterialAliasDB.normalized_alias == normalize_material_name(name),
        )
        alias = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(alias.canonical) if alias else None

    def get_or_create(
        self, canonical_name: str, material_type: MaterialType
    ) -> tuple[CanonicalMaterial, bool]:
        """
        Return the canonical entry for a name, creating it if absent.

        Returns:
            Tuple of (entry, created).
        """
        normalized = normalize_material_name(canonical_name)
        existing = self._get_db_by_normalized(normalized, material_type)
        if existing is not None:
            return self._to_domain(existing), False

        db_item = CanonicalMaterialDB(
            canonical_name=canonical_name.strip(),
            normalized_name=normalized,
            material_type=material_type.value,
        )
        try:
            with self.session.begin_nested():
                self.session.add(db_item)
        except IntegrityError:
            logger.debug("Canonical material %r created concurrently; re-reading", normalized)
            existing = self._get_db_by_normalized(normalized, material_type)
            if existing is None:
                raise
            return self._to_domain(existing), False

        return self._to_domain(db_item), True

    def add_alias(self, canonical_id: UUID | str, alias: str) -> bool:
        """
        Attach an alias to a canonical entry.

        No-op when the alias normalizes to the canonical name or is already
        registered for this type.

        Returns:
            True if a new alias row was written.
        """
        stmt = select(CanonicalMaterialDB).where(CanonicalMaterialDB.id == str(canonical_id))
        canonical = self.session.execute(stmt).scalar_one_or_none()
        if canonical is None:
            raise ValueError(f"CanonicalMaterial with id {canonical_id} not found")

        normalized = normalize_material_name(alias)
        if not normalized or normalized == canonical.normalized_name:
            return False

        if self._alias_exists(normalized, canonical.material_type):
            return False

        db_alias = CanonicalMaterialAliasDB(
            alias=alias.strip(),
            normalized_alias=normalized,
            material_type=canonical.material_type,
        )
        try:
            with self.session.begin_nested():
                canonical.aliases.append(db_alias)
        except IntegrityError:
            logger.debug("Alias %r added concurrently", normalized)
            self.session.expire(canonical)
            return False
        return True

    def count(self) -> int:
        """Get total count of canonical materials."""
        stmt = select(func.count()).select_from(CanonicalMaterialDB)
        return self.session.execute(stmt).scalar() or 0

    def count_aliases(self) -> int:
        """Get total count of registered aliases."""
        stmt = select(func.count()).select_from(CanonicalMaterialAliasDB)
        return self.session.execute(stmt).scalar() or 0

    def _alias_exists(self, normalized: str, material_type: str) -> bool:
        stmt = select(func.count()).select_from(CanonicalMaterialAliasDB).where(
            CanonicalMaterialAliasDB.material_type == material_type,
            CanonicalMaterialAliasDB.normalized_alias == normalized,
        )
        return (self.session.execute(stmt).scalar() or 0) > 0

    def _get_db_by_normalized(
        self, normalized: str, material_type: MaterialType
    ) -> CanonicalMaterialDB | None:
        stmt = select(CanonicalMaterialDB).where(
            CanonicalMaterialDB.material_type == material_type.value,
            CanonicalMaterialDB.normalized_name == normalized,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _to_domain(self, db_item: CanonicalMaterialDB) -> CanonicalMaterial:
        """Convert database model to domain model."""
        return CanonicalMaterial(
            id=UUID(db_item.id),
            canonical_name=db_item.canonical_name,
            material_type=MaterialType(db_item.material_type),
            aliases=[a.alias for a in db_item.aliases],
            created_at=db_item.created_at,
        )


# ============================================================================
# Stats
# ============================================================================


def get_pipeline_stats(session: Session, confidence_threshold: float = 0.7) -> PipelineStats:
    """Summarize staging, registry and catalog counts."""
    sources = StagedSourceRepository(session).count_by_status()
    extraction_repo = StagedExtractionRepository(session)
    extractions = extraction_repo.count_by_status()
    high, low = extraction_repo.count_by_confidence(confidence_threshold)
    patterns = session.execute(select(func.count()).select_from(FlyPatternDB)).scalar() or 0

    return PipelineStats(
        sources_discovered=sources.get(SourceStatus.DISCOVERED.value, 0),
        sources_scraped=sources.get(SourceStatus.SCRAPED.value, 0),
        sources_extracted=sources.get(SourceStatus.EXTRACTED.value, 0),
        sources_failed=sources.get(SourceStatus.FAILED.value, 0),
        extractions_total=sum(extractions.values()),
        extractions_high_confidence=high,
        extractions_low_confidence=low,
        extractions_extracted=extractions.get(ExtractionStatus.EXTRACTED.value, 0),
        extractions_normalized=extractions.get(ExtractionStatus.NORMALIZED.value, 0),
        extractions_approved=extractions.get(ExtractionStatus.APPROVED.value, 0),
        extractions_rejected=extractions.get(ExtractionStatus.REJECTED.value, 0),
        extractions_ingested=extractions.get(ExtractionStatus.INGESTED.value, 0),
        canonical_materials=CanonicalMaterialRepository(session).count(),
        patterns=patterns,
    )
