"""
Pattern Normalization Module
============================

Groups extractions that describe the same pattern and rewrites their
material names onto canonical registry entries.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from fly_pattern_db.core.schema import ExtractedPattern
from fly_pattern_db.core.text import normalize_pattern_name
from fly_pattern_db.ingestion.canonical import CanonicalRegistry, NormalizedMaterial
from fly_pattern_db.ingestion.matcher import cluster_indices, combined_similarity

logger = logging.getLogger(__name__)


def pattern_names(pattern: ExtractedPattern) -> list[str]:
    """Normalized primary and alternate names of a pattern."""
    names = [normalize_pattern_name(pattern.pattern_name)]
    for alt in pattern.alternate_names:
        normalized = normalize_pattern_name(alt)
        if normalized and normalized not in names:
            names.append(normalized)
    return names


def is_same_pattern(a: ExtractedPattern, b: ExtractedPattern) -> bool:
    """Whether two extractions share a normalized primary or alternate name."""
    names_b = set(pattern_names(b))
    return any(name in names_b for name in pattern_names(a))


def pattern_similarity(a: ExtractedPattern, b: ExtractedPattern) -> float:
    """
    Identity similarity between two extractions.

    A shared primary or alternate name scores 1.0; otherwise the primary
    names are compared with combined_similarity().
    """
    if is_same_pattern(a, b):
        return 1.0
    return combined_similarity(
        normalize_pattern_name(a.pattern_name), normalize_pattern_name(b.pattern_name)
    )


def group_extracted_patterns(
    patterns: Sequence[ExtractedPattern], threshold: float = 0.85
) -> list[list[int]]:
    """
    Group extractions by pattern identity.

    Returns:
        Index groups into patterns. Every index appears exactly once, so
        duplicate names from different sources all land in a group.
    """
    return cluster_indices(patterns, threshold, pattern_similarity)


def normalize_pattern_materials(
    pattern: ExtractedPattern, registry: CanonicalRegistry
) -> tuple[ExtractedPattern, list[NormalizedMaterial]]:
    """
    Rewrite every material name in a pattern onto its canonical name.

    Materials are resolved one at a time, in order, so two materials of the
    same record never race each other in the registry.

    Returns:
        Tuple of (pattern with canonical names, per-material resolution results)
    """
    resolved: list[NormalizedMaterial] = []
    materials = []
    for material in pattern.materials:
        result = registry.resolve(material.name, material.type)
        resolved.append(result)
        materials.append(
            material.model_copy(
                update={"name": result.canonical_name, "type": result.material_type}
            )
        )

    logger.debug(
        "Normalized %d materials for %r", len(materials), pattern.pattern_name
    )
    return pattern.model_copy(update={"materials": materials}), resolved
