"""Tests for string similarity and clustering."""

import pytest

from fly_pattern_db.ingestion.matcher import (
    cluster_indices,
    cluster_similar_strings,
    combined_similarity,
    find_best_match,
    levenshtein_distance,
    string_similarity,
    token_similarity,
    tokenize,
)


class TestLevenshtein:
    """Tests for edit distance."""

    def test_identical(self) -> None:
        assert levenshtein_distance("hackle", "hackle") == 0

    def test_single_edit(self) -> None:
        assert levenshtein_distance("woolly", "wooly") == 1

    def test_empty(self) -> None:
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("abc", "") == 3


class TestStringSimilarity:
    """Tests for edit-distance similarity."""

    @pytest.mark.parametrize("value", ["", "a", "Mustad 9672", "Uni Thread 6/0"])
    def test_identity(self, value: str) -> None:
        assert string_similarity(value, value) == 1.0

    def test_case_insensitive(self) -> None:
        assert string_similarity("Olive Chenille", "olive chenille") == 1.0

    def test_symmetric(self) -> None:
        a, b = "Grizzly Hackle", "Grizly Saddle Hackle"
        assert string_similarity(a, b) == string_similarity(b, a)

    def test_empty_vs_nonempty(self) -> None:
        assert string_similarity("", "hook") == 0.0
        assert string_similarity("hook", "") == 0.0

    def test_typo(self) -> None:
        assert string_similarity("Woolly", "Wooly") == pytest.approx(1 - 1 / 6)


class TestTokenSimilarity:
    """Tests for token-overlap similarity."""

    def test_tokenize_keeps_sizes(self) -> None:
        assert tokenize("UNI-Thread 6/0, 3.5mm bead") == ["uni-thread", "6/0", "3.5mm", "bead"]

    def test_reordered_tokens(self) -> None:
        assert token_similarity("chenille olive", "olive chenille") == 1.0

    def test_partial_brand_overlap(self) -> None:
        # 2 of 3 tokens matched one way, all matched the other way
        assert token_similarity("Tiemco TMC 100", "TMC 100") == pytest.approx(0.8)

    def test_no_overlap(self) -> None:
        assert token_similarity("copper wire", "peacock herl") == 0.0

    def test_empty(self) -> None:
        assert token_similarity("", "hook") == 0.0


class TestCombinedSimilarity:
    """Tests for combined_similarity."""

    @pytest.mark.parametrize(
        "a,b",
        [
            ("Tiemco TMC 100", "TMC 100"),
            ("Uni Thread 6/0", "UNI-Thread 6/0"),
            ("black marabou", "marabou black"),
            ("Woolly Bugger", "Wooly Bugger"),
            ("hook", "thread"),
        ],
    )
    def test_is_max_of_both(self, a: str, b: str) -> None:
        expected = max(string_similarity(a, b), token_similarity(a, b))
        assert combined_similarity(a, b) == expected

    def test_token_overlap_beats_edit_distance(self) -> None:
        assert string_similarity("Tiemco TMC 100", "TMC 100") < 0.8
        assert combined_similarity("Tiemco TMC 100", "TMC 100") >= 0.8


class TestFindBestMatch:
    """Tests for find_best_match."""

    def test_best_candidate(self) -> None:
        best = find_best_match("olive chenile", ["Black Marabou", "Olive Chenille", "Peacock Herl"])
        assert best is not None
        assert best.match == "Olive Chenille"
        assert best.score > 0.9

    def test_no_candidates(self) -> None:
        assert find_best_match("hook", []) is None

    def test_all_zero(self) -> None:
        assert find_best_match("abc", ["xyz"]) is None


class TestClustering:
    """Tests for greedy seed clustering."""

    def test_duplicates_cluster(self) -> None:
        clusters = cluster_similar_strings(["A", "A", "B", "B"], 0.9)
        assert clusters == [["A", "A"], ["B", "B"]]

    def test_distinct_strings_stay_apart(self) -> None:
        clusters = cluster_similar_strings(["hook", "thread", "dubbing"], 0.8)
        assert clusters == [["hook"], ["thread"], ["dubbing"]]

    def test_membership_decided_against_seed_only(self) -> None:
        # b is within threshold of the seed a; c is close to b but not to a
        scores = {("a", "b"): 0.9, ("a", "c"): 0.1, ("b", "c"): 0.95}

        def similarity(x: str, y: str) -> float:
            return scores.get((x, y), scores.get((y, x), 0.0))

        assert cluster_indices(["a", "b", "c"], 0.8, similarity) == [[0, 1], [2]]

    def test_every_index_once(self) -> None:
        names = ["Woolly Bugger", "Wooly Bugger", "Adams", "Parachute Adams", "Woolly Bugger"]
        groups = cluster_indices(names, 0.85)
        flattened = sorted(i for group in groups for i in group)
        assert flattened == list(range(len(names)))
