import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from aninotion.core.counters import EngagementCounters, LikeState

from conftest import FakeRedis


class BrokenRedis:
    """Every command fails as if the server went away."""

    def register_script(self, source):
        return self.evalsha

    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            raise RedisConnectionError("connection refused")

        return fail


class SlowRedis:
    def register_script(self, source):
        return self.evalsha

    def __getattr__(self, name):
        async def hang(*args, **kwargs):
            await asyncio.sleep(5)

        return hang


class SlowReplyRedis(FakeRedis):
    """Scripts apply on the server at once but the reply arrives late."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    def register_script(self, source):
        async def call(keys=None, args=None, client=None):
            result = self.run_script(source, list(keys or []), list(args or []))
            await asyncio.sleep(self.delay)
            return result

        return call


@pytest.mark.asyncio
async def test_view_counted_once_per_session(counters, fake_redis):
    assert await counters.increment_view("p1", "s1") is True
    assert await counters.increment_view("p1", "s1") is False
    assert await counters.get_view_count("p1") == 1
    assert fake_redis.expiries["post:viewed:p1:s1"] == 24 * 60 * 60


@pytest.mark.asyncio
async def test_view_counts_again_after_marker_expiry(counters, fake_redis):
    await counters.increment_view("p1", "s1")
    fake_redis.expire_all()

    assert await counters.increment_view("p1", "s1") is True
    assert await counters.get_view_count("p1") == 2


@pytest.mark.asyncio
async def test_distinct_sessions_each_count(counters):
    await counters.increment_view("p1", "s1")
    await counters.increment_view("p1", "s2")
    assert await counters.get_view_count("p1") == 2


@pytest.mark.asyncio
async def test_empty_session_is_not_counted(counters):
    assert await counters.increment_view("p1", "") is False
    assert await counters.get_view_count("p1") == 0


@pytest.mark.asyncio
async def test_concurrent_duplicate_views_count_once(counters):
    results = await asyncio.gather(*(counters.increment_view("p1", "s1") for _ in range(5)))
    assert results.count(True) == 1
    assert await counters.get_view_count("p1") == 1


@pytest.mark.asyncio
async def test_like_toggle_round_trip(counters):
    assert await counters.toggle_like("p1", "u1") == LikeState(liked=True, likes_count=1)
    assert await counters.has_liked("p1", "u1") is True

    assert await counters.toggle_like("p1", "u1") == LikeState(liked=False, likes_count=0)
    assert await counters.has_liked("p1", "u1") is False
    assert await counters.get_likes_count("p1") == 0


@pytest.mark.asyncio
async def test_likes_from_different_users_accumulate(counters):
    await counters.toggle_like("p1", "u1")
    state = await counters.toggle_like("p1", "u2")
    assert state.likes_count == 2


@pytest.mark.asyncio
async def test_unlike_never_reports_negative_count(counters, fake_redis):
    fake_redis.store["user:liked:u1:p1"] = "1"
    state = await counters.toggle_like("p1", "u1")
    assert state == LikeState(liked=False, likes_count=0)


@pytest.mark.asyncio
async def test_batch_reads_match_single_reads(counters):
    await counters.increment_view("p1", "s1")
    await counters.increment_view("p2", "s1")
    await counters.increment_view("p2", "s2")
    await counters.toggle_like("p2", "u1")

    assert await counters.get_view_counts(["p1", "p2", "p3"]) == {"p1": 1, "p2": 2, "p3": 0}
    assert await counters.get_likes_counts(["p1", "p2"]) == {"p1": 0, "p2": 1}
    assert await counters.get_like_statuses(["p1", "p2"], "u1") == {"p1": False, "p2": True}
    assert await counters.get_view_counts([]) == {}


@pytest.mark.asyncio
async def test_disabled_store_degrades():
    counters = EngagementCounters()

    assert counters.is_enabled() is False
    assert await counters.increment_view("p1", "s1") is False
    assert await counters.get_view_count("p1") == 0
    assert await counters.get_view_counts(["p1", "p2"]) == {"p1": 0, "p2": 0}
    assert await counters.toggle_like("p1", "u1") == LikeState(liked=False, likes_count=0)
    assert await counters.has_liked("p1", "u1") is False
    assert await counters.ping() is False


@pytest.mark.asyncio
async def test_store_errors_degrade():
    counters = EngagementCounters(client=BrokenRedis())

    assert await counters.increment_view("p1", "s1") is False
    assert await counters.get_likes_counts(["p1"]) == {"p1": 0}
    assert await counters.get_like_statuses(["p1"], "u1") == {"p1": False}
    assert await counters.toggle_like("p1", "u1") == LikeState(liked=False, likes_count=0)


@pytest.mark.asyncio
async def test_store_timeouts_degrade():
    counters = EngagementCounters(client=SlowRedis(), timeout=0.01)

    assert await counters.get_view_count("p1") == 0
    assert await counters.has_liked("p1", "u1") is False
    assert await counters.toggle_like("p1", "u1") == LikeState(liked=False, likes_count=0)


@pytest.mark.asyncio
async def test_like_marker_and_total_stay_paired_when_reply_times_out():
    slow = SlowReplyRedis(delay=0.2)
    counters = EngagementCounters(client=slow, timeout=0.05)

    assert await counters.toggle_like("p1", "u1") == LikeState(liked=False, likes_count=0)
    assert slow.store["user:liked:u1:p1"] == "1"
    assert slow.store["post:likes:p1"] == "1"

    await counters.toggle_like("p1", "u1")
    await asyncio.sleep(0.3)
    assert "user:liked:u1:p1" not in slow.store
    assert slow.store["post:likes:p1"] == "0"


@pytest.mark.asyncio
async def test_view_marker_and_total_stay_paired_when_reply_times_out():
    slow = SlowReplyRedis(delay=0.2)
    counters = EngagementCounters(client=slow, timeout=0.05)

    assert await counters.increment_view("p1", "s1") is False
    assert slow.store["post:viewed:p1:s1"] == "1"
    assert slow.store["post:views:p1"] == "1"

    # The session is already marked, so a retry does not count twice
    await counters.increment_view("p1", "s1")
    await asyncio.sleep(0.3)
    assert slow.store["post:views:p1"] == "1"


def test_key_layout():
    assert EngagementCounters.views_key("p1") == "post:views:p1"
    assert EngagementCounters.view_session_key("p1", "s1") == "post:viewed:p1:s1"
    assert EngagementCounters.likes_key("p1") == "post:likes:p1"
    assert EngagementCounters.user_like_key("u1", "p1") == "user:liked:u1:p1"
