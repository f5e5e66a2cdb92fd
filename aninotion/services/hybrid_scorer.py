"""
Hybrid scorer: blends the four pairwise similarities with engagement.

    score = w_content * cosine(tfidf)
          + w_tags * jaccard(tags)
          + w_category * category_match
          + w_anime * anime_similarity
          + w_engagement * engagement

Engagement is normalized against the pair's own maximum (floor 1), not
against the corpus. No clamping is applied to the sum; with the default
weights (summing to 1) it stays in [0, 1].
"""

from dataclasses import asdict, dataclass, fields, replace
from typing import Mapping, Optional

from aninotion.services.candidates import CandidatePost
from aninotion.services.similarity import (
    anime_similarity,
    category_similarity,
    cosine,
    jaccard,
)


@dataclass(frozen=True)
class ScoringWeights:
    content: float = 0.40
    tags: float = 0.20
    category: float = 0.15
    anime: float = 0.15
    engagement: float = 0.10

    def merged(self, overrides: Optional[Mapping[str, float]]) -> "ScoringWeights":
        """Shallow merge: keys present in ``overrides`` replace ours, others stay."""
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        return replace(
            self,
            **{k: float(v) for k, v in overrides.items() if k in known and v is not None},
        )


DEFAULT_WEIGHTS = ScoringWeights()


@dataclass(frozen=True)
class SimilarityBreakdown:
    """The four pairwise sub-scores behind a hybrid score."""

    content: float
    tags: float
    category: float
    anime: float

    def rounded(self, ndigits: int = 3) -> dict[str, float]:
        return {k: round(v, ndigits) for k, v in asdict(self).items()}


def resolve_weights(weights: Optional[Mapping[str, float] | ScoringWeights]) -> ScoringWeights:
    if isinstance(weights, ScoringWeights):
        return weights
    return DEFAULT_WEIGHTS.merged(weights)


def engagement_similarity(target: CandidatePost, candidate: CandidatePost) -> float:
    target_engagement = target.engagement_score or 0
    candidate_engagement = candidate.engagement_score or 0
    return candidate_engagement / max(target_engagement, candidate_engagement, 1)


def score_pair(
    target: CandidatePost,
    candidate: CandidatePost,
    content_similarity: float,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> tuple[float, SimilarityBreakdown]:
    """Score one pair given an already computed content similarity."""
    breakdown = SimilarityBreakdown(
        content=float(content_similarity),
        tags=jaccard(target.tags, candidate.tags),
        category=category_similarity(target.category, candidate.category),
        anime=anime_similarity(
            target.anime_name,
            target.season_number,
            candidate.anime_name,
            candidate.season_number,
        ),
    )

    score = (
        weights.content * breakdown.content
        + weights.tags * breakdown.tags
        + weights.category * breakdown.category
        + weights.anime * breakdown.anime
        + weights.engagement * engagement_similarity(target, candidate)
    )
    return score, breakdown


def hybrid_score(
    target: CandidatePost,
    candidate: CandidatePost,
    target_vec: Mapping[str, float],
    candidate_vec: Mapping[str, float],
    weights: Optional[Mapping[str, float] | ScoringWeights] = None,
) -> float:
    """Blended similarity of ``candidate`` to ``target`` from their TF-IDF vectors."""
    score, _ = score_pair(
        target,
        candidate,
        cosine(target_vec, candidate_vec),
        resolve_weights(weights),
    )
    return score
