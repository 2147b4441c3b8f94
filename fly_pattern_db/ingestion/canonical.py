"""
Canonical Material Registry
===========================

Maps raw (name, type) pairs from extracted recipes onto durable canonical
material entries, learning aliases as new spellings are seen.

Resolution order (first hit wins):
1. exact match on the normalized canonical name
2. exact match on a normalized alias
3. fuzzy match against canonical names and aliases of the type
4. fuzzy match against materials already in the production catalog
5. a new canonical entry
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy.orm import Session

from fly_pattern_db.core.enums import MaterialType
from fly_pattern_db.core.text import normalize_material_name, title_case
from fly_pattern_db.db.repositories import CanonicalMaterialRepository
from fly_pattern_db.db.repositories_catalog import MaterialRepository
from fly_pattern_db.ingestion.matcher import find_best_match

if TYPE_CHECKING:
    from fly_pattern_db.ingestion.config import NormalizationConfig

logger = logging.getLogger(__name__)

EXACT_CONFIDENCE = 1.0
ALIAS_CONFIDENCE = 0.95
NEW_ENTRY_CONFIDENCE = 0.5


class MatchSource(str, Enum):
    """Which resolution step produced the canonical name."""

    EXACT = "exact"
    ALIAS = "alias"
    FUZZY_REGISTRY = "fuzzy_registry"
    PRODUCTION = "production"
    NEW = "new"


@dataclass
class NormalizedMaterial:
    """Result of resolving one raw material name."""

    canonical_id: UUID
    canonical_name: str
    material_type: MaterialType
    confidence: float
    source: MatchSource
    alias_added: bool = False


class CanonicalRegistry:
    """
    Resolves raw material names against the canonical registry.

    Lookups are match-first, so resolving the same name twice yields the same
    entry and never adds a duplicate alias. Writes go through the repository,
    which treats a unique-constraint conflict from a concurrent writer as
    success.
    """

    def __init__(self, session: Session, fuzzy_match_threshold: float = 0.85) -> None:
        """
        Initialize the registry.

        Args:
            session: SQLAlchemy database session
            fuzzy_match_threshold: Minimum combined similarity for a fuzzy hit
        """
        self.session = session
        self.fuzzy_match_threshold = fuzzy_match_threshold
        self.canonicals = CanonicalMaterialRepository(session)
        self.materials = MaterialRepository(session)

    @classmethod
    def from_config(cls, session: Session, config: NormalizationConfig) -> CanonicalRegistry:
        """Create registry from configuration."""
        return cls(session=session, fuzzy_match_threshold=config.fuzzy_match_threshold)

    def resolve(self, raw_name: str, raw_type: str | MaterialType | None) -> NormalizedMaterial:
        """
        Resolve a raw material name to its canonical entry.

        Args:
            raw_name: Material name as written by the source
            raw_type: Free-form or enum material type

        Returns:
            NormalizedMaterial with the canonical name and match confidence
        """
        material_type = MaterialType.from_raw(raw_type)
        normalized = normalize_material_name(raw_name)

        exact = self.canonicals.get_by_name(raw_name, material_type)
        if exact is not None:
            return NormalizedMaterial(
                canonical_id=exact.id,
                canonical_name=exact.canonical_name,
                material_type=material_type,
                confidence=EXACT_CONFIDENCE,
                source=MatchSource.EXACT,
            )

        aliased = self.canonicals.get_by_alias(raw_name, material_type)
        if aliased is not None:
            return NormalizedMaterial(
                canonical_id=aliased.id,
                canonical_name=aliased.canonical_name,
                material_type=material_type,
                confidence=ALIAS_CONFIDENCE,
                source=MatchSource.ALIAS,
            )

        fuzzy = self._match_registry(normalized, material_type)
        if fuzzy is not None:
            return self._attach_alias(fuzzy, raw_name)

        production = self._match_production(normalized, raw_name, material_type)
        if production is not None:
            return production

        display_name = title_case(normalized) or raw_name.strip()
        entry, created = self.canonicals.get_or_create(display_name, material_type)
        if created:
            logger.info(
                "New canonical material %r (%s)", entry.canonical_name, material_type.value
            )
        return NormalizedMaterial(
            canonical_id=entry.id,
            canonical_name=entry.canonical_name,
            material_type=material_type,
            confidence=NEW_ENTRY_CONFIDENCE,
            source=MatchSource.NEW,
        )

    def _match_registry(
        self, normalized: str, material_type: MaterialType
    ) -> NormalizedMaterial | None:
        """Fuzzy match against every canonical name and alias of the type."""
        entries = self.canonicals.list_by_type(material_type)
        candidates: list[str] = []
        owners: list[int] = []
        for idx, entry in enumerate(entries):
            for name in [entry.canonical_name, *entry.aliases]:
                candidates.append(name)
                owners.append(idx)

        best = find_best_match(normalized, candidates)
        if best is None or best.score < self.fuzzy_match_threshold:
            return None

        entry = entries[owners[candidates.index(best.match)]]
        return NormalizedMaterial(
            canonical_id=entry.id,
            canonical_name=entry.canonical_name,
            material_type=material_type,
            confidence=best.score,
            source=MatchSource.FUZZY_REGISTRY,
        )

    def _match_production(
        self, normalized: str, raw_name: str, material_type: MaterialType
    ) -> NormalizedMaterial | None:
        """Fuzzy match against ingested catalog materials of the type."""
        names = [m.name for m in self.materials.list_by_type(material_type)]
        best = find_best_match(normalized, names)
        if best is None or best.score < self.fuzzy_match_threshold:
            return None

        entry, created = self.canonicals.get_or_create(best.match, material_type)
        if created:
            logger.info(
                "Canonical material %r seeded from catalog (%s)",
                entry.canonical_name,
                material_type.value,
            )
        result = NormalizedMaterial(
            canonical_id=entry.id,
            canonical_name=entry.canonical_name,
            material_type=material_type,
            confidence=best.score,
            source=MatchSource.PRODUCTION,
        )
        return self._attach_alias(result, raw_name)

    def _attach_alias(self, result: NormalizedMaterial, raw_name: str) -> NormalizedMaterial:
        """Record raw_name as an alias of the matched entry (idempotent)."""
        added = self.canonicals.add_alias(result.canonical_id, raw_name)
        if added:
            logger.info("Learned alias %r for %r", raw_name, result.canonical_name)
        result.alias_added = added
        return result
