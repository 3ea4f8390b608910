"""
Scoring tests: component scores, score bounds, final blend, recency-only
scoring and explanations.

Run:
    pytest tests/test_scoring.py -v
"""

import math

import pytest

from discovery.models import ContentType, ScoringWeights, UserContext, UserPreferenceProfile
from discovery.stages.ranking import CONTENT_TYPE_WEIGHT, ScoringEngine, generate_explanations
from discovery.stages.ranking.explanations import format_time_ago
from discovery.utils.scores import diversity_score, engagement_score, temporal_score

from tests.fakes import NOW, make_item


def _profile(vector, affinities=None):
    return UserPreferenceProfile(
        user_id="u1",
        vector=vector,
        content_type_affinities=affinities or {},
        last_updated=NOW,
    )


class TestEngagementScore:

    def test_high_engagement_beats_low(self):
        high = make_item("a", hours_ago=1, saves=100, comments=50)
        low = make_item("b", hours_ago=1, saves=1, comments=0)
        assert engagement_score(high, NOW) > engagement_score(low, NOW)

    def test_formula(self):
        item = make_item("a", hours_ago=10, saves=80, comments=20)
        # rate = 100 / 10 = 10 per hour
        assert engagement_score(item, NOW) == pytest.approx(math.log10(11) / 2)

    def test_capped_at_one(self):
        item = make_item("a", hours_ago=1, saves=10**6, comments=10**6)
        assert engagement_score(item, NOW) == 1.0

    def test_no_engagement_or_future_is_zero(self):
        assert engagement_score(make_item("a", hours_ago=5), NOW) == 0.0
        assert engagement_score(make_item("b", hours_ago=-2, saves=10), NOW) == 0.0

    def test_views_do_not_count(self):
        item = make_item("a", hours_ago=2)
        item.engagement.view_count = 1000
        assert engagement_score(item, NOW) == 0.0


class TestTemporalScore:

    def test_newer_is_strictly_higher(self):
        newer = make_item("a", hours_ago=2)
        older = make_item("b", hours_ago=3)
        assert temporal_score(newer, NOW) > temporal_score(older, NOW)

    def test_decay(self):
        assert temporal_score(make_item("a", hours_ago=48), NOW) == pytest.approx(math.exp(-1))

    def test_future_timestamp_scores_one(self):
        assert temporal_score(make_item("a", hours_ago=-5), NOW) == 1.0

    def test_custom_decay(self):
        item = make_item("a", hours_ago=24)
        assert temporal_score(item, NOW, decay_hours=24) == pytest.approx(math.exp(-1))


class TestDiversityScore:

    def test_overlap(self):
        item = make_item("a", hashtags=["python", "ml", "cats", "art"])
        assert diversity_score(item, ["python", "ml"]) == pytest.approx(0.5)

    def test_no_hashtags_is_fully_diverse(self):
        assert diversity_score(make_item("a"), ["python"]) == 1.0

    def test_full_overlap_is_zero(self):
        item = make_item("a", hashtags=["python"])
        assert diversity_score(item, ["python", "rust"]) == 0.0


class TestScoringEngine:

    @pytest.fixture(autouse=True)
    def setup(self):
        self.engine = ScoringEngine()
        self.context = UserContext(user_id="u1", recent_topics=["python"])

    def test_components_within_bounds(self):
        profile = _profile([1.0, 0.0, 0.0], {"image": 0.9})
        items = [
            make_item("a", vector=[1.0, 0.0, 0.0], hashtags=["python"], saves=3),
            make_item("b", vector=[-1.0, 0.0, 0.0], hours_ago=300, content_type=ContentType.IMAGE),
            make_item("c", vector=None, hours_ago=-1, hashtags=["rust"], saves=10**5),
        ]
        for scored in self.engine.score_all(items, profile, self.context, NOW):
            for value in (
                scored.similarity_score,
                scored.engagement_score,
                scored.temporal_score,
                scored.content_type_score,
                scored.diversity_score,
            ):
                assert 0.0 <= value <= 1.0

    def test_negative_similarity_clamped_to_zero(self):
        scored = self.engine.score(make_item("a", vector=[-1.0, 0.0]), _profile([1.0, 0.0]), self.context, NOW)
        assert scored.similarity_score == 0.0

    def test_missing_embedding_similarity_zero(self):
        scored = self.engine.score(make_item("a"), _profile([1.0, 0.0]), self.context, NOW)
        assert scored.similarity_score == 0.0

    def test_content_type_affinity_default(self):
        scored = self.engine.score(make_item("a"), _profile([1.0]), self.context, NOW)
        assert scored.content_type_score == 0.5

    def test_final_score_blend(self):
        weights = ScoringWeights(relevance=1.0, recency=2.0, popularity=3.0, diversity=4.0)
        profile = _profile([1.0, 0.0], {"video": 0.8})
        item = make_item(
            "a",
            vector=[1.0, 1.0],
            hours_ago=10,
            hashtags=["python", "go"],
            saves=5,
            content_type=ContentType.VIDEO,
        )
        s = self.engine.score(item, profile, self.context, NOW, weights)
        expected = (
            s.similarity_score * 1.0
            + s.engagement_score * 3.0
            + s.temporal_score * 2.0
            + s.diversity_score * 4.0
            + 0.8 * CONTENT_TYPE_WEIGHT
        )
        assert s.final_score == pytest.approx(expected)
        assert s.similarity_score == pytest.approx(1 / math.sqrt(2))
        assert s.diversity_score == pytest.approx(0.5)

    def test_content_type_weight_is_fixed(self):
        assert CONTENT_TYPE_WEIGHT == 0.1
        assert "content_type" not in ScoringWeights.model_fields

    def test_recency_scoring_orders_by_age(self):
        scored = self.engine.score_recency([make_item("old", hours_ago=20), make_item("new", hours_ago=1)], NOW)
        by_id = {s.item_id: s for s in scored}
        assert by_id["new"].final_score > by_id["old"].final_score
        assert by_id["new"].final_score == by_id["new"].temporal_score
        assert by_id["new"].similarity_score == 0.0


class TestExplanations:

    def test_reasons_and_primary(self):
        engine = ScoringEngine()
        profile = _profile([1.0, 0.0])
        item = make_item("a", vector=[1.0, 0.0], hours_ago=30, hashtags=["python"], saves=2, comments=1)
        scored = engine.score(item, profile, UserContext(user_id="u1", recent_topics=["python"]), NOW)
        [explanation] = generate_explanations([scored], NOW)
        assert explanation.item_id == "a"
        assert set(explanation.reasons) == {"similarity", "engagement", "recency", "diversity", "content_type"}
        assert explanation.primary_reason == "similarity"
        assert explanation.reasons["similarity"].explanation == "100.0% similar to your interests"
        assert explanation.reasons["recency"].explanation == "Posted 1d ago"
        assert explanation.reasons["diversity"].explanation == "Similar to recent content"
        assert "2 saves, 1 comments" in explanation.reasons["engagement"].explanation

    @pytest.mark.parametrize("hours, expected", [(0.5, "just now"), (5, "5h ago"), (49, "2d ago")])
    def test_format_time_ago(self, hours, expected):
        item = make_item("a", hours_ago=hours)
        assert format_time_ago(item.created_at, NOW) == expected
