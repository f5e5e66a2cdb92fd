"""Redis-backed view and like counters.

Counters are best-effort. When Redis is not configured, unreachable, or
slower than the per-operation timeout, every call degrades to "not counted",
0 or not liked instead of raising. The post rows in PostgreSQL remain the
durable fallback.

Key layout:
    post:views:{post_id}                  view total
    post:viewed:{post_id}:{session_id}    session-seen marker, 24h expiry
    post:likes:{post_id}                  like total
    user:liked:{user_id}:{post_id}        like marker, no expiry

Each mutation runs as one Lua script, so the marker and its total change
together on the server. A client-side timeout only stops waiting for the
reply; it never leaves a marker without its increment.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence, TypeVar

import redis.asyncio as redis
from redis.exceptions import RedisError

from aninotion.config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# KEYS: session marker, view total. ARGV: marker ttl seconds.
VIEW_SCRIPT = """
if redis.call('SET', KEYS[1], '1', 'EX', ARGV[1], 'NX') then
    redis.call('INCR', KEYS[2])
    return 1
end
return 0
"""

# KEYS: like marker, like total. Returns {liked, count}.
TOGGLE_LIKE_SCRIPT = """
if redis.call('SET', KEYS[1], '1', 'NX') then
    return {1, redis.call('INCR', KEYS[2])}
end
redis.call('DEL', KEYS[1])
local count = redis.call('DECR', KEYS[2])
if count < 0 then
    redis.call('SET', KEYS[2], 0)
    count = 0
end
return {0, count}
"""


@dataclass(frozen=True)
class LikeState:
    liked: bool
    likes_count: int


class EngagementCounters:
    """Async view/like counter service."""

    def __init__(
        self,
        client: redis.Redis | None = None,
        *,
        redis_url: str | None = None,
        timeout: float = 0.3,
        view_session_ttl: int = 24 * 60 * 60,
    ):
        self._redis = client
        self._redis_url = redis_url
        self._timeout = timeout
        self._view_session_ttl = view_session_ttl
        self._scripts: dict[str, Any] = {}

    def is_enabled(self) -> bool:
        """Check whether a counter store is configured."""
        return self._redis is not None or bool(self._redis_url)

    async def _get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self._timeout,
                socket_timeout=self._timeout,
            )
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        self._scripts.clear()

    def _script(self, client: redis.Redis, source: str):
        """Registered script handle; runs via EVALSHA with an EVAL fallback."""
        script = self._scripts.get(source)
        if script is None:
            script = client.register_script(source)
            self._scripts[source] = script
        return script

    async def _run(
        self,
        operation: str,
        key: str,
        func: Callable[[redis.Redis], Awaitable[T]],
        default: T,
    ) -> T:
        if not self.is_enabled():
            return default
        try:
            client = await self._get_redis()
            return await asyncio.wait_for(func(client), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Counter {operation} timed out for {key}")
            return default
        except (RedisError, OSError) as e:
            logger.warning(f"Counter {operation} error for {key}: {e}")
            return default

    # ============ Views ============

    async def increment_view(self, post_id: str, session_id: str) -> bool:
        """
        Count one view per (post, session) per marker window.

        Returns True when the view was counted, False when this session was
        already counted (or the store is unavailable). After the marker
        expires the same session counts again.
        """
        if not session_id:
            return False

        view_key = self.views_key(post_id)
        session_key = self.view_session_key(post_id, session_id)

        async def op(client: redis.Redis) -> bool:
            script = self._script(client, VIEW_SCRIPT)
            counted = await script(
                keys=[session_key, view_key], args=[self._view_session_ttl]
            )
            return bool(_to_int(counted))

        return await self._run("increment_view", view_key, op, False)

    async def get_view_count(self, post_id: str) -> int:
        key = self.views_key(post_id)

        async def op(client: redis.Redis) -> int:
            return _to_int(await client.get(key))

        return await self._run("get_view_count", key, op, 0)

    async def get_view_counts(self, post_ids: Sequence[str]) -> dict[str, int]:
        """Batch ``get_view_count``; ids without a counter map to 0."""
        return await self._get_many("get_view_counts", post_ids, self.views_key)

    # ============ Likes ============

    async def toggle_like(self, post_id: str, user_id: str) -> LikeState:
        """
        Flip the user's like on a post and adjust the total by +/-1.

        Concurrent toggles by the same user resolve last-write-wins.
        """
        if not user_id:
            return LikeState(liked=False, likes_count=0)

        like_key = self.likes_key(post_id)
        marker_key = self.user_like_key(user_id, post_id)

        async def op(client: redis.Redis) -> LikeState:
            script = self._script(client, TOGGLE_LIKE_SCRIPT)
            liked, count = await script(keys=[marker_key, like_key])
            return LikeState(liked=bool(_to_int(liked)), likes_count=max(_to_int(count), 0))

        return await self._run(
            "toggle_like", like_key, op, LikeState(liked=False, likes_count=0)
        )

    async def has_liked(self, post_id: str, user_id: str) -> bool:
        if not user_id:
            return False
        key = self.user_like_key(user_id, post_id)

        async def op(client: redis.Redis) -> bool:
            return await client.exists(key) > 0

        return await self._run("has_liked", key, op, False)

    async def get_likes_count(self, post_id: str) -> int:
        key = self.likes_key(post_id)

        async def op(client: redis.Redis) -> int:
            return _to_int(await client.get(key))

        return await self._run("get_likes_count", key, op, 0)

    async def get_likes_counts(self, post_ids: Sequence[str]) -> dict[str, int]:
        """Batch ``get_likes_count``; ids without a counter map to 0."""
        return await self._get_many("get_likes_counts", post_ids, self.likes_key)

    async def get_like_statuses(self, post_ids: Sequence[str], user_id: str) -> dict[str, bool]:
        """Batch ``has_liked`` for one user."""
        post_ids = list(post_ids)
        default = {post_id: False for post_id in post_ids}
        if not user_id or not post_ids:
            return default

        keys = [self.user_like_key(user_id, post_id) for post_id in post_ids]

        async def op(client: redis.Redis) -> dict[str, bool]:
            markers = await client.mget(keys)
            return {post_id: marker is not None for post_id, marker in zip(post_ids, markers)}

        return await self._run("get_like_statuses", f"user:liked:{user_id}:*", op, default)

    # ============ Health ============

    async def ping(self) -> bool:
        async def op(client: redis.Redis) -> bool:
            return bool(await client.ping())

        return await self._run("ping", "-", op, False)

    # ============ Helpers ============

    async def _get_many(
        self,
        operation: str,
        post_ids: Sequence[str],
        key_func: Callable[[str], str],
    ) -> dict[str, int]:
        post_ids = list(post_ids)
        default = {post_id: 0 for post_id in post_ids}
        if not post_ids:
            return default

        keys = [key_func(post_id) for post_id in post_ids]

        async def op(client: redis.Redis) -> dict[str, int]:
            values = await client.mget(keys)
            return {post_id: _to_int(value) for post_id, value in zip(post_ids, values)}

        return await self._run(operation, keys[0], op, default)

    # Key patterns
    @staticmethod
    def views_key(post_id: str) -> str:
        return f"post:views:{post_id}"

    @staticmethod
    def view_session_key(post_id: str, session_id: str) -> str:
        return f"post:viewed:{post_id}:{session_id}"

    @staticmethod
    def likes_key(post_id: str) -> str:
        return f"post:likes:{post_id}"

    @staticmethod
    def user_like_key(user_id: str, post_id: str) -> str:
        return f"user:liked:{user_id}:{post_id}"


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


# Singleton counter instance
_counters: EngagementCounters | None = None


def get_counters() -> EngagementCounters:
    """Get the singleton counter service."""
    global _counters
    if _counters is None:
        settings = get_settings()
        _counters = EngagementCounters(
            redis_url=settings.redis_url,
            timeout=settings.redis_timeout_seconds,
            view_session_ttl=settings.view_session_ttl_seconds,
        )
        if not _counters.is_enabled():
            logger.warning("REDIS_URL not set; view/like counters disabled")
    return _counters
