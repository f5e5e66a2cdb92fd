"""Pydantic schemas for API request/response validation.

JSON bodies use camelCase (``similarityScore``, ``likesCount``) to match the
site frontend; Python code uses snake_case.
"""

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from aninotion.config import get_settings

settings = get_settings()

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============ Post Schemas ============

class CategoryOut(CamelModel):
    id: str
    name: str
    slug: str


class PostOut(CamelModel):
    """Public post representation with merged engagement."""
    id: str
    title: str
    slug: str | None = None
    anime_name: str
    category: CategoryOut | None = None
    excerpt: str | None = None
    tags: list[str] = []
    season_number: int | None = None
    episode_number: int | None = None
    published_at: datetime | None = None
    views: int = 0
    likes_count: int = 0
    bookmarks_count: int = 0
    engagement_score: float = 0.0

    @classmethod
    def from_record(cls, post, engagement) -> "PostOut":
        category = post.category
        return cls(
            id=str(post.id),
            title=post.title,
            slug=post.slug,
            anime_name=post.anime_name,
            category=(
                CategoryOut(id=str(category.id), name=category.name, slug=category.slug)
                if category is not None else None
            ),
            excerpt=post.excerpt,
            tags=list(post.tags or []),
            season_number=post.season_number,
            episode_number=post.episode_number,
            published_at=post.published_at,
            views=engagement.views,
            likes_count=engagement.likes,
            bookmarks_count=engagement.bookmarks,
            engagement_score=round(engagement.score, 3),
        )


# ============ Recommendation Schemas ============

class ScoreBreakdown(CamelModel):
    """Pairwise sub-scores behind a similarity score."""
    content: float
    tags: float
    category: float
    anime: float


class SimilarPost(PostOut):
    similarity_score: float
    score_breakdown: ScoreBreakdown | None = None


class RecommendedPost(PostOut):
    recommendation_score: float


class PersonalizedRequest(CamelModel):
    """Seed posts from a reading history; order does not matter."""
    post_ids: list[str] = []
    limit: int = Field(
        default=settings.recommendation_default_limit,
        ge=1,
        le=settings.recommendation_max_limit,
    )
    diversity_factor: float = Field(
        default=settings.recommendation_diversity_factor, ge=0, le=1
    )


class ListResponse(CamelModel, Generic[T]):
    """Envelope for list endpoints."""
    success: bool = True
    cached: bool = False
    count: int
    data: list[T]


class CacheStatsResponse(CamelModel):
    keys: int
    hits: int
    misses: int
    hit_rate: float
    max_entries: int
    ttl_seconds: int


class MessageResponse(CamelModel):
    success: bool = True
    message: str


# ============ Engagement Schemas ============

class ViewRequest(CamelModel):
    session_id: str = Field(min_length=1, max_length=200)


class ViewResponse(CamelModel):
    success: bool = True
    counted: bool
    views: int


class LikeResponse(CamelModel):
    success: bool = True
    liked: bool
    likes_count: int


class PostStatsResponse(CamelModel):
    success: bool = True
    views: int
    likes_count: int
    liked: bool = False
