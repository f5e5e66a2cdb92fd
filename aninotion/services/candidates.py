"""Candidate post records consumed by the recommendation engine."""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

# Engagement blend used when a record carries no precomputed score
VIEWS_WEIGHT = 0.3
LIKES_WEIGHT = 0.5
BOOKMARKS_WEIGHT = 0.2


def compute_engagement_score(views: int = 0, likes: int = 0, bookmarks: int = 0) -> float:
    """Popularity proxy fed to the hybrid scorer as an opaque signal."""
    return (
        (views or 0) * VIEWS_WEIGHT
        + (likes or 0) * LIKES_WEIGHT
        + (bookmarks or 0) * BOOKMARKS_WEIGHT
    )


@dataclass
class CandidatePost:
    """A read-only post as seen by the engine.

    ``id``, ``title`` and ``anime_name`` are required by the data model, but
    records assembled from loose sources may still lack them. Missing optional
    fields only zero out the matching sub-score; a missing ``id`` makes the
    candidate unscorable and it is skipped.
    """

    id: Optional[str]
    title: str = ""
    anime_name: str = ""
    tags: list[str] = field(default_factory=list)
    category: Optional[str] = None
    season_number: Optional[int] = None
    content: Optional[str] = None
    excerpt: Optional[str] = None
    engagement_score: float = 0.0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CandidatePost":
        """Build from a dict using either camelCase or snake_case keys."""

        def pick(*keys, default=None):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        post_id = pick("id", "_id")
        category = pick("category", "category_id", "categoryId")
        if isinstance(category, Mapping):
            category = category.get("id") or category.get("_id")

        engagement = pick("engagement_score", "engagementScore")
        if not engagement:
            engagement = compute_engagement_score(
                pick("views", default=0),
                pick("likes_count", "likesCount", default=0),
                pick("bookmarks_count", "bookmarksCount", default=0),
            )

        tags = pick("tags", default=[])
        if isinstance(tags, str):
            tags = [tags]

        return cls(
            id=str(post_id) if post_id is not None else None,
            title=pick("title", default=""),
            anime_name=pick("anime_name", "animeName", default=""),
            tags=list(tags),
            category=str(category) if category is not None else None,
            season_number=pick("season_number", "seasonNumber"),
            content=pick("content"),
            excerpt=pick("excerpt"),
            engagement_score=float(engagement),
        )
