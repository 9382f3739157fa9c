"""
Tests for keyword generation and ranking.
"""

import pytest

from catalog.services.keyword_ranker import MAX_KEYWORDS, KeywordRanker


@pytest.fixture
def ranker():
    return KeywordRanker()


class TestKeywordRanking:
    """Ranking properties of the researched keyword list."""

    @pytest.mark.parametrize(
        "name,brand,category",
        [
            ("Cordless Drill", "DeWalt", "Power Tools"),
            ("Bosch GSP180", "Bosch", "Power Tools"),
            ("Pipe Wrench", "", "Plumbing Tools"),
            ("Generic Drill", "", ""),
        ],
    )
    def test_exact_name_first_bounded_and_unique(self, ranker, name, brand, category):
        ranked = ranker.research(name, brand, category)
        keywords = [item.keyword for item in ranked]

        assert keywords[0] == name
        assert len(keywords) <= MAX_KEYWORDS
        assert len(keywords) == len(set(keywords))

    def test_exact_name_pinned_over_higher_scores(self, ranker):
        ranked = ranker.rank(
            ["best professional drill for contractors", "heavy duty tool", "Drill"],
            "Drill",
            "",
        )

        assert ranked[0].keyword == "Drill"
        assert ranked[1].keyword == "best professional drill for contractors"

    def test_ties_keep_generation_order(self, ranker):
        ranked = ranker.rank(["alpha beta", "gamma delta", "epsilon zeta"], "", "")

        assert [item.keyword for item in ranked] == ["alpha beta", "gamma delta", "epsilon zeta"]

    def test_output_truncated_to_max_keywords(self):
        ranker = KeywordRanker(max_keywords=5)

        ranked = ranker.research("Cordless Drill", "DeWalt", "Power Tools")

        assert len(ranked) == 5

    def test_seed_keywords_are_candidates(self, ranker):
        candidates = ranker.generate_candidates("Cordless Drill", "DeWalt", "", ["jobsite favourite"])

        assert candidates[-1] == "jobsite favourite"

    def test_empty_inputs_produce_nothing(self, ranker):
        assert ranker.generate_candidates("", "", "") == []
        assert ranker.research("", "", "") == []


class TestCandidateGeneration:
    """Generator coverage."""

    def test_brand_variants_and_competitors(self, ranker):
        candidates = ranker.generate_candidates("Cordless Drill", "DeWalt", "Power Tools")

        assert "DeWalt Cordless Drill" in candidates
        assert "DeWalt tools" in candidates
        assert "milwaukee vs dewalt" in candidates
        assert "dewalt vs dewalt" not in candidates

    def test_category_synonyms(self, ranker):
        candidates = ranker.generate_candidates("Cordless Drill", "", "Power Tools")

        assert "cordless tools" in candidates
        assert "professional power tools" in candidates

    def test_industry_keywords_from_triggers(self, ranker):
        candidates = ranker.generate_candidates("Pipe Wrench", "", "")

        assert "plumbing tools" in candidates
        assert "automotive tools" in candidates

    def test_long_tail_and_modifiers(self, ranker):
        candidates = ranker.generate_candidates("Cordless Drill", "", "")

        assert "best cordless drill for contractors" in candidates
        assert "cordless drill alternatives" in candidates
        assert "brushless cordless drill" in candidates
        assert "buy cordless drill near me" in candidates

    def test_brand_in_name_not_repeated(self, ranker):
        candidates = ranker.generate_candidates("Bosch GSP180", "Bosch", "")

        assert "Bosch Bosch GSP180" not in candidates


class TestScoring:
    """Keyword scores and synthetic metrics."""

    def test_score_components(self, ranker):
        assert ranker.score("cordless drill", "Cordless Drill", "") == 180
        assert ranker.score("best cordless drill for contractors", "cordless drill", "") == 170
        assert ranker.score("power tools", "", "Power Tools") == 60

    def test_generic_terms_floor_at_zero(self, ranker):
        assert ranker.score("tool", "", "") == 0

    def test_estimated_volume_is_stable_and_bucketed(self, ranker):
        single = ranker.estimate_volume("drill")
        long_tail = ranker.estimate_volume("best cordless drill")

        assert single == ranker.estimate_volume("drill")
        assert 10000 <= single <= 50000
        assert 100 <= long_tail <= 1000

    def test_commercial_keywords_marked_high(self, ranker):
        ranked = ranker.rank(["buy cordless drill"], "Cordless Drill", "")

        assert ranked[0].competition == "high"
        assert ranked[0].commercial_value == "high"
        assert ranked[0].to_dict()["keyword"] == "buy cordless drill"


class TestSuggestions:
    """Prefix suggestions."""

    def test_prefix_matches(self, ranker):
        suggestions = ranker.suggest("plumb")

        assert suggestions
        assert all(item.startswith("plumb") for item in suggestions)

    def test_limit(self, ranker):
        assert len(ranker.suggest("plumb", limit=2)) == 2

    def test_blank_query(self, ranker):
        assert ranker.suggest("  ") == []
