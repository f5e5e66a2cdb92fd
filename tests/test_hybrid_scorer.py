import math

from aninotion.services.hybrid_scorer import (
    DEFAULT_WEIGHTS,
    ScoringWeights,
    engagement_similarity,
    hybrid_score,
    resolve_weights,
    score_pair,
)

from conftest import candidate


def test_default_weights_sum_to_one():
    w = DEFAULT_WEIGHTS
    assert math.isclose(w.content + w.tags + w.category + w.anime + w.engagement, 1.0)


def test_weight_overrides_are_a_shallow_merge():
    weights = resolve_weights({"content": 0.9, "unknown": 5})
    assert weights.content == 0.9
    assert weights.tags == DEFAULT_WEIGHTS.tags
    assert weights.engagement == DEFAULT_WEIGHTS.engagement


def test_resolve_weights_passes_through_instances():
    custom = ScoringWeights(content=1.0, tags=0, category=0, anime=0, engagement=0)
    assert resolve_weights(custom) is custom
    assert resolve_weights(None) == DEFAULT_WEIGHTS


def test_engagement_is_normalized_against_the_pair():
    assert engagement_similarity(candidate("a", engagement_score=10), candidate("b", engagement_score=5)) == 0.5
    assert engagement_similarity(candidate("a", engagement_score=5), candidate("b", engagement_score=50)) == 1.0
    # floor of 1 when both are zero
    assert engagement_similarity(candidate("a"), candidate("b")) == 0.0
    assert engagement_similarity(candidate("a"), candidate("b", engagement_score=0.5)) == 0.5


def test_identical_posts_score_one():
    a = candidate("a", engagement_score=3)
    b = candidate("b", engagement_score=3)
    score = hybrid_score(a, b, {"naruto": 1.0}, {"naruto": 1.0})
    assert math.isclose(score, 1.0)


def test_score_pair_breakdown():
    a = candidate("a", tags=["action", "shounen"], category="c1", season_number=1)
    b = candidate("b", tags=["action"], category="c2", season_number=2)

    score, breakdown = score_pair(a, b, 0.5)

    assert breakdown.content == 0.5
    assert breakdown.tags == 0.5
    assert breakdown.category == 0.0
    assert breakdown.anime == 0.7
    expected = 0.40 * 0.5 + 0.20 * 0.5 + 0.15 * 0.0 + 0.15 * 0.7 + 0.10 * 0.0
    assert math.isclose(score, expected)


def test_missing_optional_fields_contribute_zero():
    a = candidate("a", tags=[], category=None, anime_name="")
    b = candidate("b", tags=[], category=None, anime_name="")
    assert hybrid_score(a, b, {}, {}) == 0.0


def test_breakdown_rounding():
    _, breakdown = score_pair(candidate("a"), candidate("b"), 0.123456)
    assert breakdown.rounded() == {"content": 0.123, "tags": 1.0, "category": 1.0, "anime": 1.0}
