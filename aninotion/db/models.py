"""
SQLAlchemy ORM models for posts and categories.

============================================================================
POST ROWS = DURABLE SOURCE OF TRUTH FOR ENGAGEMENT
============================================================================
`views` and `likes_count` on a post row are the last values reconciled from
the Redis counters by the external sync job. Live counters may be ahead of
them; readers take the larger of the two (see post_service.merge_engagement).

Only published, non-deleted posts are ever recommended or counted.
============================================================================
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Boolean, Text, DateTime, ForeignKey, ARRAY, Index,
)
from sqlalchemy.orm import relationship

from aninotion.db.database import Base

POST_STATUSES = ("draft", "published", "scheduled")


def _new_id() -> str:
    return uuid.uuid4().hex


class Category(Base):
    """Post category (e.g. "Reviews", "Episode notes")."""

    __tablename__ = "categories"

    id = Column(String(32), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    slug = Column(String(120), nullable=False, unique=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    posts = relationship("Post", back_populates="category")


class Post(Base):
    """A blog post about an anime, season or episode."""

    __tablename__ = "posts"

    id = Column(String(32), primary_key=True, default=_new_id)
    title = Column(String(300), nullable=False)
    slug = Column(String(320))
    anime_name = Column(String(300), nullable=False)
    category_id = Column(String(32), ForeignKey("categories.id"), nullable=False)
    content = Column(Text, nullable=False)
    excerpt = Column(Text)
    tags = Column(ARRAY(String(100)), default=list)  # Stored lowercase
    season_number = Column(Integer)
    episode_number = Column(Integer)

    # Lifecycle
    status = Column(String(20), nullable=False, default="published")  # draft, published, scheduled
    published_at = Column(DateTime)
    is_deleted = Column(Boolean, nullable=False, default=False)

    # Engagement, last synced from Redis
    views = Column(Integer, nullable=False, default=0)
    likes_count = Column(Integer, nullable=False, default=0)
    bookmarks_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("Category", back_populates="posts", lazy="joined")

    __table_args__ = (
        Index("idx_posts_status_published", "status", published_at.desc()),
        Index("idx_posts_category_status", "category_id", "status"),
        Index("idx_posts_tags", "tags", postgresql_using="gin"),
        Index("idx_posts_anime_name", "anime_name"),
        Index("idx_posts_is_deleted", "is_deleted"),
        Index("idx_posts_slug", "slug"),
    )
