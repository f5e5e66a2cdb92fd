"""Pairwise similarity scorers. Every function returns a value in [0, 1]."""

import math
from typing import Iterable, Mapping, Optional

# Graduated series scores
SAME_SEASON = 1.0
SAME_ANIME_NO_SEASON = 0.8
ADJACENT_SEASON = 0.7
DISTANT_SEASON = 0.5


def cosine(vec_a: Mapping[str, float], vec_b: Mapping[str, float]) -> float:
    """Cosine similarity of two sparse term->weight vectors."""
    if not vec_a or not vec_b:
        return 0.0

    dot = sum(weight * vec_b[term] for term, weight in vec_a.items() if term in vec_b)
    mag_a = math.sqrt(sum(w * w for w in vec_a.values()))
    mag_b = math.sqrt(sum(w * w for w in vec_b.values()))

    if mag_a == 0 or mag_b == 0:
        return 0.0
    return min(dot / (mag_a * mag_b), 1.0)


def jaccard(tags_a: Optional[Iterable[str]], tags_b: Optional[Iterable[str]]) -> float:
    """Intersection over union of two case-insensitive tag sets."""
    set_a = {str(t).lower() for t in tags_a or ()}
    set_b = {str(t).lower() for t in tags_b or ()}
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


def category_similarity(cat_a, cat_b) -> float:
    """1.0 when both categories are present and equal as strings, else 0.0."""
    if cat_a is None or cat_b is None or cat_a == "" or cat_b == "":
        return 0.0
    return 1.0 if str(cat_a) == str(cat_b) else 0.0


def anime_similarity(
    anime_a: Optional[str],
    season_a: Optional[int],
    anime_b: Optional[str],
    season_b: Optional[int],
) -> float:
    """Series similarity with graduated season scoring.

    Different series score 0. For the same series (case-insensitive), the
    same season scores 1.0, adjacent seasons 0.7, further apart 0.5, and
    missing season info on either side 0.8.
    """
    if not anime_a or not anime_b:
        return 0.0
    if anime_a.lower() != anime_b.lower():
        return 0.0

    # Season 0 (specials) is a real season; only None means unknown
    if season_a is None or season_b is None:
        return SAME_ANIME_NO_SEASON

    gap = abs(season_a - season_b)
    if gap == 0:
        return SAME_SEASON
    if gap == 1:
        return ADJACENT_SEASON
    return DISTANT_SEASON
