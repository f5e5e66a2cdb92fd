"""
Content-based recommendation engine for posts.

Two queries are supported:

- ``find_similar``: posts similar to one target post.
- ``from_history``: posts recommended from an ordered history of seed posts
  (most recent first), followed by a diversity rerank.

Both are pure functions of their inputs. The term-weight model is built per
call and passed down, never kept on the service instance, so concurrent
calls with different pools cannot interfere. ``from_history`` builds the
model once and reuses it for every seed.

Not-found cases (target missing from the pool) come back as an empty list.
Only a pool that is not a sequence at all raises (``TypeError``).
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Iterable, Optional

from aninotion.services import term_weights
from aninotion.services.candidates import CandidatePost
from aninotion.services.diversity_reranker import apply_diversity_reranking
from aninotion.services.hybrid_scorer import (
    ScoringWeights,
    SimilarityBreakdown,
    resolve_weights,
    score_pair,
)
from aninotion.services.term_weights import TermWeightModel

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_MIN_SCORE = 0.1
DEFAULT_DIVERSITY_FACTOR = 0.3


@dataclass(frozen=True)
class Recommendation:
    """A recommended post with its blended score."""

    post: CandidatePost
    score: float
    breakdown: Optional[SimilarityBreakdown] = None


def _normalize_post(post) -> Optional[CandidatePost]:
    if isinstance(post, CandidatePost):
        return post
    if isinstance(post, Mapping):
        try:
            return CandidatePost.from_mapping(post)
        except (TypeError, ValueError) as e:
            logger.warning(f"Could not read post record {post.get('id', post.get('_id'))}: {e}")
    return None


def _normalize_pool(candidate_pool) -> list[CandidatePost]:
    if isinstance(candidate_pool, (str, bytes)) or not isinstance(candidate_pool, Sequence):
        raise TypeError(
            f"candidate_pool must be a sequence of posts, got {type(candidate_pool).__name__}"
        )

    pool = []
    for position, raw in enumerate(candidate_pool):
        post = _normalize_post(raw)
        if post is None:
            logger.warning(f"Skipping malformed candidate at position {position}")
            continue
        pool.append(post)
    return pool


def _index_of(pool: list[CandidatePost], post_id: Optional[str]) -> int:
    if not post_id:
        return -1
    for index, post in enumerate(pool):
        if post.id == post_id:
            return index
    return -1


class RecommendationService:
    """Stateless recommendation engine."""

    def find_similar(
        self,
        target_post,
        candidate_pool: Sequence,
        limit: int = DEFAULT_LIMIT,
        min_score: float = DEFAULT_MIN_SCORE,
        exclude_ids: Iterable[str] = (),
        weights: Optional[Mapping[str, float] | ScoringWeights] = None,
    ) -> list[Recommendation]:
        """
        Find posts in ``candidate_pool`` similar to ``target_post``.

        The target must be present in the pool (matched by id). Results keep
        only scores >= ``min_score``, are sorted by score descending (ties keep
        pool order) and are truncated to ``limit``.
        """
        pool = _normalize_pool(candidate_pool)
        model = term_weights.build(pool)
        return self._similar_in_model(
            _normalize_post(target_post),
            pool,
            model,
            limit=limit,
            min_score=min_score,
            exclude_ids=set(exclude_ids),
            weights=resolve_weights(weights),
        )

    def from_history(
        self,
        seed_posts: Sequence,
        candidate_pool: Sequence,
        limit: int = DEFAULT_LIMIT,
        diversity_factor: float = DEFAULT_DIVERSITY_FACTOR,
        weights: Optional[Mapping[str, float] | ScoringWeights] = None,
    ) -> list[Recommendation]:
        """
        Recommend posts from a history of seed posts.

        Seed ``i`` (0-based, most recent first) contributes with weight
        ``1 / (i + 1)``. Each seed's top ``2 * limit`` similar posts add
        ``score * weight`` to a running total per post, so posts similar to
        several seeds accumulate. Seeds themselves are never returned.
        """
        pool = _normalize_pool(candidate_pool)
        seeds = [s for s in (_normalize_post(p) for p in seed_posts) if s is not None]
        model = term_weights.build(pool)
        resolved = resolve_weights(weights)

        exclude_ids = {seed.id for seed in seeds if seed.id}
        totals: dict[str, float] = {}

        for index, seed in enumerate(seeds):
            seed_weight = 1 / (index + 1)
            similar = self._similar_in_model(
                seed,
                pool,
                model,
                limit=limit * 2,
                min_score=DEFAULT_MIN_SCORE,
                exclude_ids=exclude_ids,
                weights=resolved,
            )
            for rec in similar:
                totals[rec.post.id] = totals.get(rec.post.id, 0.0) + rec.score * seed_weight

        posts_by_id: dict[str, CandidatePost] = {}
        for post in pool:
            if post.id and post.id not in posts_by_id:
                posts_by_id[post.id] = post

        ranked = [
            Recommendation(post=posts_by_id[post_id], score=score)
            for post_id, score in totals.items()
            if post_id in posts_by_id
        ]
        ranked.sort(key=lambda r: r.score, reverse=True)

        if diversity_factor > 0:
            results = apply_diversity_reranking(ranked, diversity_factor, max(limit, 0))
        else:
            results = ranked[:max(limit, 0)]

        logger.info(f"Generated {len(results)} history recommendations from {len(seeds)} seed posts")
        return results

    def _similar_in_model(
        self,
        target: Optional[CandidatePost],
        pool: list[CandidatePost],
        model: TermWeightModel,
        limit: int,
        min_score: float,
        exclude_ids: set[str],
        weights: ScoringWeights,
    ) -> list[Recommendation]:
        target_index = _index_of(pool, target.id if target else None)
        if target_index == -1:
            logger.warning(
                f"Target post {target.id if target else None} not found in candidate pool"
            )
            return []

        target = pool[target_index]
        content_sims = model.similarities_to(target_index)
        similarities: list[Recommendation] = []

        for candidate_index, candidate in enumerate(pool):
            if candidate_index == target_index:
                continue
            if not candidate.id:
                logger.warning(f"Skipping candidate at position {candidate_index}: missing id")
                continue
            if candidate.id == target.id or candidate.id in exclude_ids:
                continue

            try:
                score, breakdown = score_pair(
                    target, candidate, content_sims[candidate_index], weights
                )
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping malformed candidate {candidate.id}: {e}")
                continue

            if score >= min_score:
                similarities.append(
                    Recommendation(post=candidate, score=score, breakdown=breakdown)
                )

        similarities.sort(key=lambda r: r.score, reverse=True)

        logger.info(f"Found {len(similarities)} similar posts for post {target.id}")
        return similarities[:max(limit, 0)]


_service: RecommendationService | None = None


def get_recommendation_service() -> RecommendationService:
    """Get the shared (stateless) recommendation service."""
    global _service
    if _service is None:
        _service = RecommendationService()
    return _service
