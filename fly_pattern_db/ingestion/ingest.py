"""
Production Ingest Module
========================

Writes a consensus pattern into the production catalog.

The pattern row is upserted by slug and its children are rebuilt from the
consensus, so ingesting the same consensus twice leaves the catalog
unchanged. The caller owns the transaction: commit after a successful call,
roll back on any exception, and no partial pattern is ever visible.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from enum import Enum
from urllib.parse import urlparse

from sqlalchemy.orm import Session

from fly_pattern_db.core.enums import (
    Difficulty,
    FlyCategory,
    ResourceType,
    SourceType,
    SubstitutionType,
    WaterType,
)
from fly_pattern_db.core.schema import FlyPattern, StagedExtraction
from fly_pattern_db.db.repositories_catalog import FlyPatternRepository, MaterialRepository
from fly_pattern_db.ingestion.consensus import ConsensusPattern

logger = logging.getLogger(__name__)


def _coerce(value: str, enum_cls: type[Enum], fallback: Enum) -> str:
    """Map a voted categorical value onto an enum, or use the fallback."""
    try:
        return enum_cls(value).value
    except ValueError:
        if value:
            logger.warning(
                "Unknown %s %r, using %r", enum_cls.__name__, value, fallback.value
            )
        return fallback.value


def resource_type_for(url: str, source_type: SourceType | None = None) -> ResourceType:
    """Video for YouTube sources, PDF for .pdf links, otherwise blog."""
    if source_type == SourceType.YOUTUBE:
        return ResourceType.VIDEO
    host = urlparse(url).netloc.lower()
    if "youtube.com" in host or host == "youtu.be":
        return ResourceType.VIDEO
    if source_type == SourceType.PDF or urlparse(url).path.lower().endswith(".pdf"):
        return ResourceType.PDF
    return ResourceType.BLOG


def ingest_consensus_pattern(
    session: Session,
    consensus: ConsensusPattern,
    sources: Sequence[StagedExtraction] = (),
) -> FlyPattern:
    """
    Upsert one consensus pattern and all of its children.

    Args:
        session: Database session; not committed here
        consensus: Freshly built consensus for the pattern
        sources: Contributing extractions, attached as resources

    Returns:
        The stored pattern
    """
    patterns = FlyPatternRepository(session)
    materials = MaterialRepository(session)

    pattern = patterns.upsert(
        slug=consensus.slug,
        name=consensus.pattern_name,
        category=_coerce(consensus.category.value, FlyCategory, FlyCategory.OTHER),
        difficulty=_coerce(consensus.difficulty.value, Difficulty, Difficulty.INTERMEDIATE),
        water_type=_coerce(consensus.water_type.value, WaterType, WaterType.FRESHWATER),
        description=consensus.description,
        origin=consensus.origin,
        confidence=consensus.overall_confidence,
        source_count=consensus.source_count,
    )

    # Children are rebuilt from scratch on every ingest
    patterns.clear_children(pattern.id)

    for material in consensus.materials:
        stored = materials.upsert(material.name, material.type)
        patterns.add_material(
            pattern.id,
            stored.id,
            color=material.color,
            size=material.size,
            required=material.required,
            position=material.position,
        )

    for sub in consensus.substitutions:
        original = materials.find_or_create(sub.original_material)
        substitute = materials.find_or_create(sub.substitute_material)
        if original is None or substitute is None or original.id == substitute.id:
            continue
        materials.add_substitution(
            original.id,
            substitute.id,
            substitution_type=_coerce(
                sub.substitution_type, SubstitutionType, SubstitutionType.EQUIVALENT
            ),
            notes=sub.notes,
        )

    for variation in consensus.variations:
        overrides = []
        for change in variation.material_changes:
            original = materials.find_or_create(change.original)
            replacement = materials.find_or_create(change.replacement)
            if original is not None and replacement is not None:
                overrides.append((original.id, replacement.id))
        patterns.add_variation(pattern.id, variation.name, variation.description, overrides)

    for step in consensus.tying_steps:
        patterns.add_step(pattern.id, step.position, step.title, step.instruction, step.tip)

    added = 0
    for source in sources:
        if not source.source_url:
            continue
        if patterns.add_resource(
            pattern.id,
            url=source.source_url,
            resource_type=resource_type_for(source.source_url, source.source_type).value,
            title=source.source_title or consensus.pattern_name,
            creator_name=source.source_creator or "",
            platform=source.source_platform or "",
        ):
            added += 1

    logger.info(
        "Ingested %r: %d materials, %d variations, %d steps, %d new resources",
        consensus.pattern_name,
        len(consensus.materials),
        len(consensus.variations),
        len(consensus.tying_steps),
        added,
    )
    stored_pattern = patterns.get_by_slug(consensus.slug)
    if stored_pattern is None:
        raise RuntimeError(f"Pattern {consensus.slug!r} missing after upsert")
    return stored_pattern
