import os

# Settings are read at import time, so configure the environment first
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["DEBUG"] = "false"
os.environ.pop("REDIS_URL", None)

from datetime import datetime, timezone
from types import SimpleNamespace

import jwt
import pytest
from fastapi.testclient import TestClient

from aninotion.api.deps import get_post_service
from aninotion.core.cache import TTLCache, get_recommendation_cache
from aninotion.core.counters import (
    TOGGLE_LIKE_SCRIPT,
    VIEW_SCRIPT,
    EngagementCounters,
    get_counters,
)
from aninotion.main import app
from aninotion.services.candidates import CandidatePost
from aninotion.services.post_service import PostService


class FakeRedis:
    """In-memory stand-in for the parts of redis.asyncio.Redis the counters use."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.expiries: dict[str, int] = {}

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.store:
            return None
        self.store[key] = str(value)
        if ex is not None:
            self.expiries[key] = ex
        return True

    async def get(self, key):
        return self.store.get(key)

    async def mget(self, keys):
        return [self.store.get(key) for key in keys]

    async def incr(self, key):
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    async def decr(self, key):
        value = int(self.store.get(key, 0)) - 1
        self.store[key] = str(value)
        return value

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.expiries.pop(key, None)
        return removed

    async def exists(self, *keys):
        return sum(1 for key in keys if key in self.store)

    async def ping(self):
        return True

    async def aclose(self):
        pass

    def register_script(self, source):
        return FakeScript(self, source)

    def run_script(self, source, keys, args):
        """Apply a counter script in one step, as Redis runs Lua atomically."""
        if source == VIEW_SCRIPT:
            marker, total = keys
            if marker in self.store:
                return 0
            self.store[marker] = "1"
            self.expiries[marker] = int(args[0])
            self.store[total] = str(int(self.store.get(total, 0)) + 1)
            return 1
        if source == TOGGLE_LIKE_SCRIPT:
            marker, total = keys
            if marker not in self.store:
                self.store[marker] = "1"
                count = int(self.store.get(total, 0)) + 1
                self.store[total] = str(count)
                return [1, count]
            del self.store[marker]
            count = max(int(self.store.get(total, 0)) - 1, 0)
            self.store[total] = str(count)
            return [0, count]
        raise ValueError("unknown script")

    def expire_all(self):
        """Drop every key that has an expiry, as if the TTL elapsed."""
        for key in list(self.expiries):
            self.store.pop(key, None)
            self.expiries.pop(key)


class FakeScript:
    def __init__(self, redis, source):
        self.redis = redis
        self.source = source

    async def __call__(self, keys=None, args=None, client=None):
        return self.redis.run_script(self.source, list(keys or []), list(args or []))


def make_category(category_id="cat-reviews", name="Reviews"):
    return SimpleNamespace(id=category_id, name=name, slug=name.lower())


def make_post(post_id, **overrides):
    """A post row with the attributes PostService and the schemas read."""
    category = overrides.pop("category", make_category())
    fields = dict(
        id=post_id,
        title=f"Post {post_id}",
        slug=f"post-{post_id}",
        anime_name="Naruto",
        category=category,
        category_id=category.id if category is not None else None,
        content="A long write-up about ninjas and friendship.",
        excerpt=None,
        tags=["action"],
        season_number=1,
        episode_number=1,
        status="published",
        published_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        is_deleted=False,
        views=0,
        likes_count=0,
        bookmarks_count=0,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def candidate(post_id, **overrides):
    fields = dict(
        id=post_id,
        title=f"Post {post_id}",
        anime_name="Naruto",
        tags=["action"],
        category="reviews",
        season_number=1,
        content=None,
        excerpt=None,
        engagement_score=0.0,
    )
    fields.update(overrides)
    return CandidatePost(**fields)


class FakePostService(PostService):
    """PostService over an in-memory list of rows instead of a session."""

    def __init__(self, posts, counters):
        super().__init__(db=None, counters=counters)
        self.posts = list(posts)

    def _published_rows(self):
        return [p for p in self.posts if p.status == "published" and not p.is_deleted]

    async def get(self, post_id):
        return next((p for p in self.posts if p.id == post_id), None)

    async def get_published_many(self, post_ids):
        by_id = {p.id: p for p in self._published_rows()}
        unique_ids = list(dict.fromkeys(post_ids))
        return [by_id[pid] for pid in unique_ids if pid in by_id]

    async def list_published(self, category_id=None):
        rows = self._published_rows()
        if category_id is not None:
            rows = [p for p in rows if p.category_id == category_id]
        return rows

    async def by_anime(self, anime_name, limit):
        rows = [p for p in self._published_rows() if anime_name.lower() in p.anime_name.lower()]
        rows.sort(key=lambda p: (p.season_number or 0, p.episode_number or 0))
        return rows[:limit]

    async def by_tag(self, tag, limit):
        rows = [p for p in self._published_rows() if tag.lower() in p.tags]
        rows.sort(key=lambda p: (p.views, p.likes_count), reverse=True)
        return rows[:limit]


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def counters(fake_redis):
    return EngagementCounters(client=fake_redis, timeout=1.0)


@pytest.fixture
def sample_posts():
    reviews = make_category("cat-reviews", "Reviews")
    news = make_category("cat-news", "News")
    return [
        make_post(
            "p1",
            title="Naruto Episode 1 Review",
            tags=["action", "shounen"],
            category=reviews,
            views=100,
            likes_count=10,
        ),
        make_post(
            "p2",
            title="Naruto Episode 2 Review",
            tags=["action", "shounen"],
            episode_number=2,
            category=reviews,
            views=50,
        ),
        make_post(
            "p3",
            title="Naruto Shippuden Season Premiere",
            anime_name="Naruto",
            season_number=2,
            tags=["action", "shounen", "ninja"],
            category=news,
            views=300,
        ),
        make_post(
            "p4",
            title="Cooking Master Boy Food Wars",
            anime_name="Cooking Master Boy",
            tags=["slice-of-life", "cooking"],
            category=news,
            content="Recipes, kitchens and dramatic cooking battles.",
            views=20,
        ),
        make_post("draft", title="Unpublished Naruto Draft", status="draft"),
    ]


@pytest.fixture
def post_service(sample_posts, counters):
    return FakePostService(sample_posts, counters)


@pytest.fixture
def recommendation_cache():
    return TTLCache(ttl_seconds=3600, max_entries=100)


@pytest.fixture
def test_client(post_service, counters, recommendation_cache):
    app.dependency_overrides[get_post_service] = lambda: post_service
    app.dependency_overrides[get_counters] = lambda: counters
    app.dependency_overrides[get_recommendation_cache] = lambda: recommendation_cache
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"Authorization": "Bearer test-admin-key"}


@pytest.fixture
def user_headers():
    token = jwt.encode({"id": "user-1"}, "test-secret", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}
