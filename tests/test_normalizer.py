"""Tests for pattern grouping and material normalization."""

from fly_pattern_db.core.enums import MaterialType
from fly_pattern_db.ingestion.canonical import CanonicalRegistry, MatchSource
from fly_pattern_db.ingestion.normalizer import (
    group_extracted_patterns,
    is_same_pattern,
    normalize_pattern_materials,
    pattern_similarity,
)


class TestGrouping:
    """Tests for grouping extractions by pattern identity."""

    def test_typo_variants_group_together(self, make_pattern) -> None:
        patterns = [
            make_pattern("Woolly Bugger"),
            make_pattern("Adams"),
            make_pattern("Wooly Bugger"),
            make_pattern("Woolly Bugger Fly"),
        ]
        assert group_extracted_patterns(patterns) == [[0, 2, 3], [1]]

    def test_alternate_names_link_patterns(self, make_pattern) -> None:
        a = make_pattern("Parachute Adams", alternate_names=["Para Adams"])
        b = make_pattern("Para Adams")

        assert is_same_pattern(a, b)
        assert pattern_similarity(a, b) == 1.0
        assert group_extracted_patterns([a, b]) == [[0, 1]]

    def test_distinct_patterns_stay_apart(self, make_pattern) -> None:
        patterns = [make_pattern("Zebra Midge"), make_pattern("Copper John")]
        assert group_extracted_patterns(patterns) == [[0], [1]]

    def test_empty(self) -> None:
        assert group_extracted_patterns([]) == []


class TestNormalizeMaterials:
    """Tests for rewriting materials onto canonical names."""

    def test_materials_rewritten(self, session, make_pattern) -> None:
        registry = CanonicalRegistry(session)
        first, _ = normalize_pattern_materials(make_pattern(), registry)
        second, resolved = normalize_pattern_materials(
            make_pattern(
                "Wooly Bugger",
                materials=[
                    ("mustad 9672", MaterialType.HOOK),
                    ("UNI-Thread 6/0", MaterialType.THREAD),
                ],
            ),
            registry,
        )

        assert [m.name for m in first.materials][:2] == ["Mustad 9672", "Uni Thread 6/0"]
        assert [m.name for m in second.materials] == ["Mustad 9672", "Uni Thread 6/0"]
        assert [r.source for r in resolved] == [MatchSource.EXACT, MatchSource.FUZZY_REGISTRY]

    def test_original_record_untouched(self, session, make_pattern) -> None:
        pattern = make_pattern(materials=[("uni thread 6/0", MaterialType.THREAD)])
        normalized, _ = normalize_pattern_materials(pattern, CanonicalRegistry(session))

        assert pattern.materials[0].name == "uni thread 6/0"
        assert normalized.materials[0].name == "Uni Thread 6/0"
        assert normalized.materials[0].position == 1
