"""
Consensus Builder
=================

Merges several extractions of the same pattern into one record with
per-field and overall confidence.

Voting rules:
- categorical fields: majority vote, confidence = winning count / sources
- materials: per type, cluster similar names, keep the clusters mentioned by
  the most distinct sources, capped at the typical per-source count
- tying steps: taken whole from the single most detailed source
- description: highest quality score

Every "most common" pick uses a frequency map in first-seen order and keeps
the first value to reach the maximum count, so results are deterministic.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from fly_pattern_db.core.enums import MaterialType
from fly_pattern_db.core.schema import (
    ExtractedMaterial,
    ExtractedPattern,
    ExtractedSubstitution,
    ExtractedVariation,
    TyingStep,
)
from fly_pattern_db.core.text import normalize_pattern_name, slugify
from fly_pattern_db.ingestion.matcher import cluster_similar_strings

logger = logging.getLogger(__name__)

MATERIAL_CLUSTER_THRESHOLD = 0.8

# Overall confidence weights
FIELD_WEIGHT = 0.25
MATERIAL_WEIGHT = 0.45
SOURCE_WEIGHT = 0.2
SOURCE_SATURATION = 5
MATERIAL_COUNT_BONUS = 0.1
MATERIAL_COUNT_FOR_BONUS = 3

DESCRIPTION_KEYWORDS: list[tuple[tuple[str, ...], int]] = [
    (("imitat",), 3),
    (("effective",), 2),
    (("fish",), 2),
    (("trout", "bass"), 2),
    (("drift", "swing", "strip"), 2),
    (("created", "developed"), 2),
]


class EmptyClusterError(ValueError):
    """Raised when consensus is requested for zero extractions."""


@dataclass
class ConsensusEntry:
    """Majority-vote result for one categorical field."""

    field: str
    value: str
    agreeing_count: int
    total_sources: int
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "value": self.value,
            "agreeing_count": self.agreeing_count,
            "total_sources": self.total_sources,
            "confidence": self.confidence,
        }


@dataclass
class ConsensusMaterial:
    """One merged material slot."""

    name: str
    type: MaterialType
    color: str | None
    size: str | None
    required: bool
    position: int
    confidence: float
    source_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "color": self.color,
            "size": self.size,
            "required": self.required,
            "position": self.position,
            "confidence": self.confidence,
            "source_count": self.source_count,
        }


@dataclass
class ConsensusPattern:
    """Merged record for one pattern, rebuilt from scratch on every pass."""

    pattern_name: str
    slug: str
    category: ConsensusEntry
    difficulty: ConsensusEntry
    water_type: ConsensusEntry
    description: str
    origin: str | None
    materials: list[ConsensusMaterial]
    variations: list[ExtractedVariation]
    substitutions: list[ExtractedSubstitution]
    tying_steps: list[TyingStep]
    overall_confidence: float
    source_count: int
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "pattern_name": self.pattern_name,
            "slug": self.slug,
            "category": self.category.to_dict(),
            "difficulty": self.difficulty.to_dict(),
            "water_type": self.water_type.to_dict(),
            "description": self.description,
            "origin": self.origin,
            "materials": [m.to_dict() for m in self.materials],
            "variations": [v.model_dump() for v in self.variations],
            "substitutions": [s.model_dump() for s in self.substitutions],
            "tying_steps": [s.model_dump() for s in self.tying_steps],
            "overall_confidence": self.overall_confidence,
            "source_count": self.source_count,
            "warnings": list(self.warnings),
        }


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def round_confidence(value: float) -> float:
    """Round to two decimals, halves rounding up."""
    return math.floor(value * 100 + 0.5) / 100


def pick_most_common(values: Sequence[str]) -> tuple[str, int]:
    """
    Most frequent value and its count.

    Ties go to the value seen first. Counter preserves insertion order and
    max() returns the first maximal element, which gives that rule.
    """
    if not values:
        return "", 0
    counts = Counter(values)
    best = max(counts, key=counts.__getitem__)
    return best, counts[best]


def build_field_consensus(field_name: str, values: Sequence[str]) -> ConsensusEntry:
    """Majority vote over one categorical field."""
    total = len(values)
    value, count = pick_most_common(values)
    return ConsensusEntry(
        field=field_name,
        value=value,
        agreeing_count=count,
        total_sources=total,
        confidence=count / total if total else 0.0,
    )


def description_quality_score(text: str) -> int:
    """Heuristic quality score for a description."""
    score = 0
    lower = text.lower()

    if 100 <= len(text) < 500:
        score += 10
    elif len(text) >= 50:
        score += 5

    for needles, points in DESCRIPTION_KEYWORDS:
        if any(needle in lower for needle in needles):
            score += points

    # Conversational openers get no bonus
    if not lower.startswith("this is") and not lower.startswith("here"):
        score += 2

    return score


def pick_best_description(descriptions: Sequence[str]) -> str:
    """Highest-scoring non-empty description; ties keep the first."""
    best = ""
    best_score = -1
    for text in descriptions:
        if not text:
            continue
        score = description_quality_score(text)
        if score > best_score:
            best, best_score = text, score
    return best


def pick_best_tying_steps(extractions: Sequence[ExtractedPattern]) -> list[TyingStep]:
    """
    Take the step list of the single most detailed source.

    Steps are never merged across sources. Score is step count x 10 plus
    total instruction length; ties keep the first source.
    """
    best: list[TyingStep] = []
    best_score = 0
    for extraction in extractions:
        steps = extraction.tying_steps
        if not steps:
            continue
        score = len(steps) * 10 + sum(len(s.instruction or "") for s in steps)
        if score > best_score:
            best, best_score = list(steps), score
    return [step.model_copy(update={"position": i}) for i, step in enumerate(best, start=1)]


def merge_variations(extractions: Sequence[ExtractedPattern]) -> list[ExtractedVariation]:
    """Union of variations, deduplicated by normalized name, longer description wins."""
    merged: dict[str, ExtractedVariation] = {}
    for extraction in extractions:
        for variation in extraction.variations:
            key = normalize_pattern_name(variation.name)
            existing = merged.get(key)
            if existing is None or len(variation.description) > len(existing.description):
                merged[key] = variation
    return list(merged.values())


def merge_substitutions(
    extractions: Sequence[ExtractedPattern],
) -> list[ExtractedSubstitution]:
    """Union of substitutions, deduplicated by (original, substitute)."""
    merged: dict[tuple[str, str], ExtractedSubstitution] = {}
    for extraction in extractions:
        for sub in extraction.substitutions:
            key = (
                " ".join(sub.original_material.lower().split()),
                " ".join(sub.substitute_material.lower().split()),
            )
            merged.setdefault(key, sub)
    return list(merged.values())


def slots_for_type(
    per_source_counts: Sequence[int], default: int = 1
) -> tuple[int, bool]:
    """
    Statistical mode of per-source counts for one material type.

    Sources that list none of the type are ignored.

    Returns:
        Tuple of (slot count, ambiguous). Ambiguous means no unique mode
        existed and the default was used.
    """
    counts = Counter(c for c in per_source_counts if c > 0)
    if not counts:
        return default, False
    ranked = counts.most_common()
    if len(ranked) > 1 and ranked[0][1] == ranked[1][1]:
        return default, True
    return ranked[0][0], False


@dataclass
class _Member:
    material: ExtractedMaterial
    source_index: int


def build_material_consensus(
    extractions: Sequence[ExtractedPattern],
    cluster_threshold: float = MATERIAL_CLUSTER_THRESHOLD,
    ambiguous_slot_default: int = 1,
    warnings: list[str] | None = None,
) -> list[ConsensusMaterial]:
    """
    Merge materials across sources into slots.

    Per type: cap the slot count at the mode of per-source counts, cluster
    similar names, rank clusters by distinct contributing sources and keep
    the top clusters. Kept slots are ordered by mean position and renumbered
    1..N across all types.
    """
    source_count = len(extractions)
    by_type: dict[MaterialType, list[_Member]] = {}
    for idx, extraction in enumerate(extractions):
        for material in extraction.materials:
            by_type.setdefault(material.type, []).append(_Member(material, idx))

    merged: list[ConsensusMaterial] = []
    for material_type, members in by_type.items():
        per_source = [
            sum(1 for m in members if m.source_index == idx) for idx in range(source_count)
        ]
        slots, ambiguous = slots_for_type(per_source, ambiguous_slot_default)
        if ambiguous:
            message = (
                f"{material_type.value}: per-source counts {sorted(c for c in per_source if c)} "
                f"have no clear mode; kept {slots} slot(s)"
            )
            logger.warning("Ambiguous slot count, %s", message)
            if warnings is not None:
                warnings.append(message)

        unique_names = list(dict.fromkeys(m.material.name for m in members))
        name_clusters = cluster_similar_strings(unique_names, cluster_threshold)

        clusters: list[tuple[list[_Member], int]] = []
        for names in name_clusters:
            name_set = set(names)
            cluster_members = [m for m in members if m.material.name in name_set]
            distinct = len({m.source_index for m in cluster_members})
            clusters.append((cluster_members, distinct))

        # Stable sort keeps first-seen order among equally popular clusters
        clusters.sort(key=lambda c: c[1], reverse=True)
        dropped = clusters[slots:]
        if dropped:
            logger.debug(
                "Dropped %d %s cluster(s) beyond %d slot(s)",
                len(dropped),
                material_type.value,
                slots,
            )

        for cluster_members, distinct in clusters[:slots]:
            merged.append(_merge_cluster(material_type, cluster_members, distinct, source_count))

    merged.sort(key=lambda m: m.position)
    for position, material in enumerate(merged, start=1):
        material.position = position
    return merged


def _merge_cluster(
    material_type: MaterialType,
    members: list[_Member],
    distinct_sources: int,
    source_count: int,
) -> ConsensusMaterial:
    materials = [m.material for m in members]
    name, _ = pick_most_common([m.name for m in materials])
    colors = [m.color for m in materials if m.color]
    sizes = [m.size for m in materials if m.size]
    required_votes = sum(1 for m in materials if m.required)
    mean_position = sum(m.position for m in materials) / len(materials)

    return ConsensusMaterial(
        name=name,
        type=material_type,
        color=pick_most_common(colors)[0] if colors else None,
        size=pick_most_common(sizes)[0] if sizes else None,
        required=required_votes * 2 > len(materials),
        position=_round_half_up(mean_position),
        confidence=distinct_sources / source_count,
        source_count=distinct_sources,
    )


def calculate_overall_confidence(
    fields: Sequence[ConsensusEntry],
    materials: Sequence[ConsensusMaterial],
    source_count: int,
) -> float:
    """
    Weighted overall confidence.

    0.25 x mean field confidence + 0.45 x mean material confidence
    + 0.2 x min(sources / 5, 1) + 0.1 when there are at least 3 materials,
    capped at 1 and rounded to two decimals.
    """
    field_confidence = sum(f.confidence for f in fields) / len(fields) if fields else 0.0
    material_confidence = (
        sum(m.confidence for m in materials) / len(materials) if materials else 0.0
    )
    source_bonus = min(source_count / SOURCE_SATURATION, 1.0) * SOURCE_WEIGHT
    count_bonus = MATERIAL_COUNT_BONUS if len(materials) >= MATERIAL_COUNT_FOR_BONUS else 0.0

    overall = (
        field_confidence * FIELD_WEIGHT
        + material_confidence * MATERIAL_WEIGHT
        + source_bonus
        + count_bonus
    )
    return round_confidence(min(overall, 1.0))


def build_consensus(
    extractions: Sequence[ExtractedPattern],
    cluster_threshold: float = MATERIAL_CLUSTER_THRESHOLD,
    ambiguous_slot_default: int = 1,
) -> ConsensusPattern:
    """
    Build a consensus record from extractions of the same pattern.

    Args:
        extractions: One or more extracted records describing one pattern
        cluster_threshold: Similarity needed to merge two material names
        ambiguous_slot_default: Slots kept per type when counts have no mode

    Returns:
        A freshly built ConsensusPattern
    """
    if not extractions:
        raise EmptyClusterError("Cannot build consensus from zero extractions")

    source_count = len(extractions)
    pattern_name, _ = pick_most_common([e.pattern_name for e in extractions])
    logger.info("Building consensus for %r from %d source(s)", pattern_name, source_count)

    category = build_field_consensus("category", [e.category for e in extractions])
    difficulty = build_field_consensus("difficulty", [e.difficulty for e in extractions])
    water_type = build_field_consensus("water_type", [e.water_type for e in extractions])

    warnings: list[str] = []
    materials = build_material_consensus(
        extractions,
        cluster_threshold=cluster_threshold,
        ambiguous_slot_default=ambiguous_slot_default,
        warnings=warnings,
    )

    origin = next((e.origin for e in extractions if e.origin), None)

    return ConsensusPattern(
        pattern_name=pattern_name,
        slug=slugify(pattern_name),
        category=category,
        difficulty=difficulty,
        water_type=water_type,
        description=pick_best_description([e.description for e in extractions]),
        origin=origin,
        materials=materials,
        variations=merge_variations(extractions),
        substitutions=merge_substitutions(extractions),
        tying_steps=pick_best_tying_steps(extractions),
        overall_confidence=calculate_overall_confidence(
            [category, difficulty, water_type], materials, source_count
        ),
        source_count=source_count,
        warnings=warnings,
    )
