"""
Diversity reranking for history-based recommendations.

Walks the relevance-sorted list once and damps the score of any post whose
category or anime series already appeared earlier in that walk:

    category seen before  -> score *= 1 - factor * 0.5
    series seen before    -> score *= 1 - factor * 0.7   (compounds with the above)

"Seen" is tracked in the pre-penalty order, the walk stops after ``limit``
posts, and the kept posts are re-sorted by their penalized score. The
re-sort can reorder results relative to the raw ranking, but never changes
which posts were kept or how many.
"""

import logging
from dataclasses import replace
from typing import Sequence

logger = logging.getLogger(__name__)

CATEGORY_PENALTY = 0.5
ANIME_PENALTY = 0.7


def _category_key(post) -> str | None:
    return str(post.category) if post.category not in (None, "") else None


def _anime_key(post) -> str | None:
    return str(post.anime_name).lower() if post.anime_name else None


def apply_diversity_reranking(
    recommendations: Sequence,
    diversity_factor: float,
    limit: int,
) -> list:
    """
    Penalize repeated categories/series and return at most ``limit`` items.

    Args:
        recommendations: Items with ``post`` and ``score``, sorted by score desc.
            Not mutated.
        diversity_factor: 0 disables the penalty; 1 is the strongest setting.
        limit: Maximum number of items to return.

    Returns:
        New list of penalized items, sorted by penalized score desc.
    """
    diversified = []
    seen_categories: set[str] = set()
    seen_anime: set[str] = set()

    for rec in recommendations:
        if len(diversified) >= limit:
            break

        category = _category_key(rec.post)
        anime = _anime_key(rec.post)

        penalty = 1.0
        if category is not None and category in seen_categories:
            penalty *= 1 - diversity_factor * CATEGORY_PENALTY
        if anime is not None and anime in seen_anime:
            penalty *= 1 - diversity_factor * ANIME_PENALTY

        diversified.append(replace(rec, score=rec.score * penalty))

        if category is not None:
            seen_categories.add(category)
        if anime is not None:
            seen_anime.add(anime)

    diversified.sort(key=lambda r: r.score, reverse=True)

    logger.debug(
        f"Diversity rerank kept {len(diversified)} of {len(recommendations)} "
        f"(factor={diversity_factor})"
    )
    return diversified[:limit]
