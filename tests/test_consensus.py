"""Tests for the consensus builder."""

import pytest

from fly_pattern_db.core.enums import MaterialType
from fly_pattern_db.core.schema import (
    ExtractedMaterial,
    ExtractedPattern,
    ExtractedSubstitution,
    ExtractedVariation,
    TyingStep,
)
from fly_pattern_db.ingestion.consensus import (
    EmptyClusterError,
    build_consensus,
    build_field_consensus,
    calculate_overall_confidence,
    description_quality_score,
    pick_best_description,
    pick_most_common,
    round_confidence,
    slots_for_type,
)


class TestPickMostCommon:
    """Tests for deterministic majority picks."""

    def test_majority(self) -> None:
        assert pick_most_common(["streamer", "nymph", "streamer"]) == ("streamer", 2)

    def test_tie_keeps_first_seen(self) -> None:
        assert pick_most_common(["nymph", "dry", "dry", "nymph"]) == ("nymph", 2)

    def test_empty(self) -> None:
        assert pick_most_common([]) == ("", 0)


class TestFieldConsensus:
    """Tests for categorical field voting."""

    def test_two_of_three(self) -> None:
        entry = build_field_consensus("category", ["streamer", "streamer", "nymph"])
        assert entry.value == "streamer"
        assert entry.agreeing_count == 2
        assert entry.total_sources == 3
        assert entry.confidence == pytest.approx(0.667, abs=1e-3)


class TestSlotsForType:
    """Tests for the per-type slot count."""

    def test_mode(self) -> None:
        assert slots_for_type([1, 1, 2]) == (1, False)

    def test_ignores_sources_without_the_type(self) -> None:
        assert slots_for_type([0, 2, 2]) == (2, False)

    def test_no_mode_uses_default(self) -> None:
        assert slots_for_type([1, 2, 3]) == (1, True)
        assert slots_for_type([1, 2], default=2) == (2, True)

    def test_type_absent_everywhere(self) -> None:
        assert slots_for_type([0, 0]) == (1, False)


class TestDescription:
    """Tests for description scoring."""

    def test_keywords_and_length(self) -> None:
        text = (
            "A classic streamer that imitates leeches and minnows. Extremely effective "
            "for trout and bass when stripped or swung."
        )
        # 10 length + 3 imitat + 2 effective + 2 trout/bass + 2 strip/swing + 2 opener
        assert description_quality_score(text) == 21

    def test_conversational_opener_gets_no_bonus(self) -> None:
        assert description_quality_score("Here is a fly") == 0
        assert description_quality_score("A fly") == 2

    def test_best_description(self) -> None:
        best = pick_best_description(["", "This is a fly.", "Imitates a leech, fish it slow."])
        assert best == "Imitates a leech, fish it slow."


class TestRounding:
    """Tests for confidence rounding."""

    def test_half_rounds_up(self) -> None:
        assert round_confidence(0.125) == 0.13
        assert round_confidence(0.924) == 0.92


class TestBuildConsensus:
    """Tests for build_consensus."""

    def test_empty_cluster(self) -> None:
        with pytest.raises(EmptyClusterError):
            build_consensus([])

    def test_single_source_reproduces_record(self, make_pattern) -> None:
        pattern = make_pattern(description="A leech imitation.", origin="Russell Blessing")
        consensus = build_consensus([pattern])

        assert consensus.pattern_name == "Woolly Bugger"
        assert consensus.slug == "woolly-bugger"
        assert consensus.category.value == "streamer"
        for entry in (consensus.category, consensus.difficulty, consensus.water_type):
            assert entry.confidence == 1.0
        assert [m.name for m in consensus.materials] == [m.name for m in pattern.materials]
        assert all(m.confidence == 1.0 for m in consensus.materials)
        assert consensus.description == "A leech imitation."
        assert consensus.origin == "Russell Blessing"
        assert consensus.source_count == 1

    def test_category_vote(self, make_pattern) -> None:
        consensus = build_consensus(
            [
                make_pattern(category="streamer"),
                make_pattern(category="streamer"),
                make_pattern(category="nymph"),
            ]
        )
        assert consensus.category.value == "streamer"
        assert consensus.category.confidence == pytest.approx(2 / 3)

    def test_slot_cap_drops_minority_clusters(self, make_pattern) -> None:
        a = make_pattern(
            materials=[("Mustad 9672", MaterialType.HOOK), ("Black Marabou", MaterialType.TAIL)]
        )
        b = make_pattern(
            materials=[("Mustad 9672", MaterialType.HOOK), ("Black Marabou", MaterialType.TAIL)]
        )
        c = make_pattern(
            materials=[
                ("Mustad 9672", MaterialType.HOOK),
                ("Black Marabou", MaterialType.TAIL),
                ("Pearl Krystal Flash", MaterialType.TAIL),
            ]
        )
        consensus = build_consensus([a, b, c])

        tails = [m for m in consensus.materials if m.type == MaterialType.TAIL]
        assert [m.name for m in tails] == ["Black Marabou"]
        assert tails[0].source_count == 3

    def test_clusters_ranked_by_distinct_sources(self, make_pattern) -> None:
        # One source repeats a name; it must not outrank a name two sources agree on
        a = ExtractedPattern(
            pattern_name="Adams",
            materials=[
                ExtractedMaterial(name="Grizzly Hackle", type=MaterialType.HACKLE, position=1),
                ExtractedMaterial(name="Grizzly Hackle", type=MaterialType.HACKLE, position=2),
                ExtractedMaterial(name="Grizzly Hackle", type=MaterialType.HACKLE, position=3),
            ],
        )
        b = make_pattern(name="Adams", materials=[("Brown Saddle", MaterialType.HACKLE)])
        c = make_pattern(name="Adams", materials=[("Brown Saddle", MaterialType.HACKLE)])
        consensus = build_consensus([a, b, c])

        assert [m.name for m in consensus.materials] == ["Brown Saddle"]
        assert consensus.materials[0].confidence == pytest.approx(2 / 3)

    def test_positions_contiguous(self, make_pattern) -> None:
        a = ExtractedPattern(
            pattern_name="Pheasant Tail",
            materials=[
                ExtractedMaterial(name="TMC 3761", type=MaterialType.HOOK, position=1),
                ExtractedMaterial(name="Copper Wire", type=MaterialType.RIB, position=7),
                ExtractedMaterial(name="Pheasant Tail Fibers", type=MaterialType.BODY, position=4),
            ],
        )
        b = a.model_copy(update={"materials": a.materials[:2]})
        consensus = build_consensus([a, b])

        positions = [m.position for m in consensus.materials]
        assert positions == list(range(1, len(consensus.materials) + 1))
        assert [m.name for m in consensus.materials] == [
            "TMC 3761",
            "Pheasant Tail Fibers",
            "Copper Wire",
        ]

    def test_slot_count_never_exceeds_mode(self, make_pattern) -> None:
        records = [
            make_pattern(
                materials=[
                    ("Mustad 9672", MaterialType.HOOK),
                    ("Olive Chenille", MaterialType.BODY),
                    ("Peacock Herl", MaterialType.BODY),
                ]
            ),
            make_pattern(
                materials=[
                    ("Mustad 9672", MaterialType.HOOK),
                    ("Black Chenille", MaterialType.BODY),
                    ("Ice Dub", MaterialType.BODY),
                ]
            ),
            make_pattern(
                materials=[("Mustad 9672", MaterialType.HOOK), ("Olive Chenille", MaterialType.BODY)]
            ),
        ]
        consensus = build_consensus(records)
        bodies = [m for m in consensus.materials if m.type == MaterialType.BODY]
        assert len(bodies) == 2

    def test_ambiguous_slot_count_is_flagged(self, make_pattern) -> None:
        a = make_pattern(materials=[("Mustad 9672", MaterialType.HOOK), ("Olive Chenille", MaterialType.BODY)])
        b = make_pattern(
            materials=[
                ("Mustad 9672", MaterialType.HOOK),
                ("Olive Chenille", MaterialType.BODY),
                ("Peacock Herl", MaterialType.BODY),
            ]
        )
        consensus = build_consensus([a, b])

        bodies = [m for m in consensus.materials if m.type == MaterialType.BODY]
        assert len(bodies) == 1
        assert len(consensus.warnings) == 1
        assert consensus.warnings[0].startswith("body")

    def test_material_fields_by_majority(self, make_pattern) -> None:
        def record(color: str, required: bool, position: int) -> ExtractedPattern:
            return ExtractedPattern(
                pattern_name="Zebra Midge",
                materials=[
                    ExtractedMaterial(
                        name="Silver Bead",
                        type=MaterialType.BEAD,
                        color=color,
                        required=required,
                        position=position,
                    )
                ],
            )

        consensus = build_consensus([record("silver", True, 1), record("silver", False, 2), record("gold", True, 2)])
        bead = consensus.materials[0]
        assert bead.color == "silver"
        assert bead.required is True
        assert bead.position == 1

    def test_variations_dedupe_keeps_longer_description(self, make_pattern) -> None:
        a = make_pattern(variations=[ExtractedVariation(name="Bead Head", description="Add a bead.")])
        b = make_pattern(
            variations=[
                ExtractedVariation(
                    name="bead head", description="Slide a tungsten bead on before tying in the tail."
                )
            ]
        )
        consensus = build_consensus([a, b])

        assert len(consensus.variations) == 1
        assert consensus.variations[0].description.startswith("Slide a tungsten bead")

    def test_substitutions_dedupe_by_pair(self, make_pattern) -> None:
        sub = ExtractedSubstitution(original_material="Marabou", substitute_material="Rabbit Strip")
        other = ExtractedSubstitution(original_material="marabou", substitute_material="rabbit  strip")
        consensus = build_consensus([make_pattern(substitutions=[sub]), make_pattern(substitutions=[other])])
        assert len(consensus.substitutions) == 1

    def test_steps_taken_from_one_source(self, make_pattern) -> None:
        short = make_pattern(tying_steps=[TyingStep(position=1, instruction="Tie it.")])
        detailed = make_pattern(
            tying_steps=[
                TyingStep(position=3, instruction="Start the thread behind the eye."),
                TyingStep(position=5, instruction="Tie in a marabou tail as long as the shank."),
            ]
        )
        consensus = build_consensus([short, detailed])

        assert [s.position for s in consensus.tying_steps] == [1, 2]
        assert consensus.tying_steps[0].instruction == "Start the thread behind the eye."

    def test_overall_confidence_formula(self, make_pattern) -> None:
        records = [make_pattern(), make_pattern(), make_pattern()]
        consensus = build_consensus(records)
        # 0.25 * 1 + 0.45 * 1 + 0.2 * 3/5 + 0.1
        assert consensus.overall_confidence == pytest.approx(0.92)

    def test_overall_confidence_capped(self) -> None:
        assert calculate_overall_confidence([], [], 50) == pytest.approx(0.2)

    def test_consensus_is_rebuilt_not_patched(self, make_pattern) -> None:
        records = [make_pattern(category="streamer"), make_pattern(category="nymph")]
        first = build_consensus(records)
        second = build_consensus(records[1:])
        assert first.category.value == "streamer"
        assert second.category.value == "nymph"
        assert second.source_count == 1
