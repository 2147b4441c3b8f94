"""Tests for the canonical material registry."""

import pytest

from fly_pattern_db.core.enums import MaterialType
from fly_pattern_db.core.text import normalize_material_name
from fly_pattern_db.db.repositories import CanonicalMaterialRepository
from fly_pattern_db.db.repositories_catalog import MaterialRepository
from fly_pattern_db.ingestion.canonical import CanonicalRegistry, MatchSource
from fly_pattern_db.ingestion.config import NormalizationConfig


@pytest.fixture
def registry(session):
    return CanonicalRegistry(session)


class TestResolve:
    """Tests for CanonicalRegistry.resolve."""

    def test_new_entry(self, session, registry) -> None:
        result = registry.resolve("uni thread 6/0", MaterialType.THREAD)

        assert result.source == MatchSource.NEW
        assert result.canonical_name == "Uni Thread 6/0"
        assert result.confidence == 0.5
        assert CanonicalMaterialRepository(session).count() == 1

    def test_fuzzy_spelling_becomes_alias(self, session, registry) -> None:
        first = registry.resolve("Uni Thread 6/0", MaterialType.THREAD)
        second = registry.resolve("UNI-Thread 6/0", MaterialType.THREAD)

        assert second.source == MatchSource.FUZZY_REGISTRY
        assert second.canonical_id == first.canonical_id
        assert second.canonical_name == "Uni Thread 6/0"
        assert second.alias_added is True
        assert second.confidence == pytest.approx(1 - 1 / 14)

        repo = CanonicalMaterialRepository(session)
        assert repo.count() == 1
        assert repo.count_aliases() == 1

    def test_resolution_is_idempotent(self, session, registry) -> None:
        registry.resolve("Uni Thread 6/0", MaterialType.THREAD)
        registry.resolve("UNI-Thread 6/0", MaterialType.THREAD)

        again = registry.resolve("UNI-Thread 6/0", MaterialType.THREAD)
        exact = registry.resolve("uni thread 6/0", MaterialType.THREAD)

        assert again.source == MatchSource.ALIAS
        assert again.confidence == 0.95
        assert again.alias_added is False
        assert exact.source == MatchSource.EXACT
        assert exact.confidence == 1.0

        repo = CanonicalMaterialRepository(session)
        assert repo.count() == 1
        assert repo.count_aliases() == 1

    def test_types_are_separate_namespaces(self, session, registry) -> None:
        rib = registry.resolve("Copper Wire", MaterialType.RIB)
        weight = registry.resolve("Copper Wire", MaterialType.WEIGHT)

        assert rib.canonical_id != weight.canonical_id
        assert weight.source == MatchSource.NEW
        assert CanonicalMaterialRepository(session).count() == 2

    def test_free_form_type_is_sanitized(self, registry) -> None:
        assert registry.resolve("Olive Chenille", "Chenille").material_type == MaterialType.BODY
        assert registry.resolve("Gold Bead", "bead-head").material_type == MaterialType.BEAD
        assert registry.resolve("Googly Eyes", "sparkly things").material_type == MaterialType.OTHER
        assert registry.resolve("Mystery", None).material_type == MaterialType.OTHER

    def test_unrelated_names_create_new_entries(self, session, registry) -> None:
        registry.resolve("Black Marabou", MaterialType.TAIL)
        result = registry.resolve("Pearl Krystal Flash", MaterialType.TAIL)
        assert result.source == MatchSource.NEW
        assert CanonicalMaterialRepository(session).count() == 2

    def test_size_tokens_ignored_for_exact_match(self, registry) -> None:
        registry.resolve("Gold Bead", MaterialType.BEAD)
        result = registry.resolve("Gold Bead size 12", MaterialType.BEAD)
        assert result.source == MatchSource.EXACT

    def test_size_only_names_stay_distinct(self, session, registry) -> None:
        ten = registry.resolve("size 10", MaterialType.HOOK)
        twelve = registry.resolve("#12", MaterialType.HOOK)

        assert ten.canonical_name == "Size 10"
        assert twelve.source == MatchSource.NEW
        assert twelve.canonical_id != ten.canonical_id
        assert registry.resolve("Size 10", MaterialType.HOOK).canonical_id == ten.canonical_id
        assert CanonicalMaterialRepository(session).count() == 2


class TestProductionMatch:
    """Tests for seeding canonical entries from the production catalog."""

    def test_catalog_material_seeds_canonical(self, session, registry) -> None:
        MaterialRepository(session).upsert("Mustad 9672", MaterialType.HOOK)

        result = registry.resolve("Mustad 9671", MaterialType.HOOK)

        assert result.source == MatchSource.PRODUCTION
        assert result.canonical_name == "Mustad 9672"
        assert result.alias_added is True
        assert CanonicalMaterialRepository(session).count() == 1

        # Now known to the registry
        again = registry.resolve("Mustad 9671", MaterialType.HOOK)
        assert again.source == MatchSource.ALIAS

    def test_catalog_of_other_type_ignored(self, registry, session) -> None:
        MaterialRepository(session).upsert("Mustad 9672", MaterialType.HOOK)
        result = registry.resolve("Mustad 9671", MaterialType.OTHER)
        assert result.source == MatchSource.NEW


class TestFromConfig:
    """Tests for registry configuration."""

    def test_threshold_from_config(self, session) -> None:
        registry = CanonicalRegistry.from_config(
            session, NormalizationConfig(fuzzy_match_threshold=0.95)
        )
        registry.resolve("Uni Thread 6/0", MaterialType.THREAD)
        result = registry.resolve("UNI-Thread 6/0", MaterialType.THREAD)
        assert result.source == MatchSource.NEW


class TestNormalizeMaterialName:
    """Tests for the material name key used by exact and alias lookups."""

    def test_size_tokens_stripped(self) -> None:
        assert normalize_material_name("  Gold Bead   Size 12 ") == "gold bead"
        assert normalize_material_name("Dry Fly Hook #14") == "dry fly hook"

    def test_size_only_name_kept(self) -> None:
        assert normalize_material_name("Size 10") == "size 10"
        assert normalize_material_name(" #12 ") == "#12"
        assert normalize_material_name("   ") == ""
