"""Post repository and engagement merging.

Resolves published posts from PostgreSQL and turns them into engine
candidates. Live Redis counters are merged with the last-synced row values:
the larger of the two wins, since the sync job only ever copies the live
value into the row.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aninotion.core.counters import EngagementCounters
from aninotion.db.models import Post
from aninotion.services.candidates import CandidatePost, compute_engagement_score

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostEngagement:
    views: int = 0
    likes: int = 0
    bookmarks: int = 0

    @property
    def score(self) -> float:
        """Weighted blend fed to the hybrid scorer."""
        return compute_engagement_score(self.views, self.likes, self.bookmarks)

    @property
    def total(self) -> int:
        """Unweighted sum used for trending."""
        return self.views + self.likes + self.bookmarks


def is_published(post) -> bool:
    return post is not None and post.status == "published" and not post.is_deleted


def merge_engagement(post, live_views: int = 0, live_likes: int = 0) -> PostEngagement:
    return PostEngagement(
        views=max(post.views or 0, live_views or 0),
        likes=max(post.likes_count or 0, live_likes or 0),
        bookmarks=post.bookmarks_count or 0,
    )


def to_candidate(post, engagement: Optional[PostEngagement] = None) -> CandidatePost:
    """Convert a post row to the engine's candidate record."""
    if engagement is None:
        engagement = merge_engagement(post)
    return CandidatePost(
        id=str(post.id),
        title=post.title or "",
        anime_name=post.anime_name or "",
        tags=list(post.tags or []),
        category=str(post.category_id) if post.category_id else None,
        season_number=post.season_number,
        content=post.content,
        excerpt=post.excerpt,
        engagement_score=engagement.score,
    )


def _escape_like(value: str) -> str:
    """Escape SQL LIKE wildcard characters in user input."""
    return value.replace("%", r"\%").replace("_", r"\_")


def _published():
    return select(Post).where(Post.status == "published").where(Post.is_deleted.is_(False))


class PostService:
    """Read access to posts plus their live engagement."""

    def __init__(self, db: AsyncSession, counters: EngagementCounters):
        self.db = db
        self.counters = counters

    async def get(self, post_id: str) -> Optional[Post]:
        """Fetch any post by id, published or not."""
        return await self.db.get(Post, post_id)

    async def get_published_many(self, post_ids: Sequence[str]) -> list[Post]:
        """Published posts for ``post_ids``, in the order given, unresolved ids dropped."""
        unique_ids = list(dict.fromkeys(str(pid) for pid in post_ids))
        if not unique_ids:
            return []

        result = await self.db.execute(_published().where(Post.id.in_(unique_ids)))
        by_id = {post.id: post for post in result.scalars().unique().all()}
        return [by_id[pid] for pid in unique_ids if pid in by_id]

    async def list_published(self, category_id: Optional[str] = None) -> list[Post]:
        """All published posts, newest first."""
        query = _published()
        if category_id is not None:
            query = query.where(Post.category_id == category_id)
        query = query.order_by(Post.published_at.desc().nullslast(), Post.id)

        result = await self.db.execute(query)
        return list(result.scalars().unique().all())

    async def by_anime(self, anime_name: str, limit: int) -> list[Post]:
        """Posts of one series (case-insensitive substring), in watch order."""
        query = (
            _published()
            .where(Post.anime_name.ilike(f"%{_escape_like(anime_name)}%", escape="\\"))
            .order_by(
                Post.season_number.asc().nullslast(),
                Post.episode_number.asc().nullslast(),
                Post.id,
            )
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().unique().all())

    async def by_tag(self, tag: str, limit: int) -> list[Post]:
        """Posts carrying ``tag``, most viewed first."""
        query = (
            _published()
            .where(Post.tags.any(tag.lower()))
            .order_by(Post.views.desc(), Post.likes_count.desc(), Post.id)
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().unique().all())

    async def engagement_for(self, posts: Sequence[Post]) -> dict[str, PostEngagement]:
        """Merge live counters into each post's stored engagement."""
        post_ids = [str(post.id) for post in posts]
        live_views = await self.counters.get_view_counts(post_ids)
        live_likes = await self.counters.get_likes_counts(post_ids)
        return {
            str(post.id): merge_engagement(
                post,
                live_views.get(str(post.id), 0),
                live_likes.get(str(post.id), 0),
            )
            for post in posts
        }
