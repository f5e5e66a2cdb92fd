"""
Recommendation endpoints.

============================================================================
DATA FLOW
============================================================================
request -> resolve target/seed posts and the published candidate pool from
PostgreSQL -> merge live Redis view/like counts into each post's engagement
-> hand plain CandidatePost records to the engine (worker thread, CPU only)
-> format, cache in-process for an hour, return.

The engine never sees the database or Redis. Responses are cached per
parameter set; two concurrent misses for the same key both compute.
============================================================================
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request

from aninotion.api.deps import get_post_service, limiter
from aninotion.config import get_settings
from aninotion.core import cache as cache_keys
from aninotion.core.auth import require_admin
from aninotion.core.cache import TTLCache, get_recommendation_cache
from aninotion.db import schemas
from aninotion.services.post_service import PostService, is_published, to_candidate
from aninotion.services.recommendation_service import (
    RecommendationService,
    get_recommendation_service,
)

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()


def _cache_enabled(use_cache: bool) -> bool:
    return settings.recommendation_cache_enabled and use_cache


async def _candidate_pool(posts: PostService, records):
    """Engine candidates in record order plus the merged engagement per id."""
    engagement = await posts.engagement_for(records)
    pool = [to_candidate(record, engagement[str(record.id)]) for record in records]
    return pool, engagement


@router.get(
    "/similar/{post_id}",
    response_model=schemas.ListResponse[schemas.SimilarPost],
    response_model_exclude_unset=True,
)
@limiter.limit("30/minute")
async def get_similar_posts(
    request: Request,
    post_id: str,
    limit: int = Query(
        default=settings.recommendation_default_limit,
        ge=1,
        le=settings.recommendation_max_limit,
        description="Number of similar posts",
    ),
    min_score: float = Query(
        default=settings.recommendation_min_score,
        ge=0,
        le=1,
        alias="minScore",
        description="Minimum hybrid similarity score",
    ),
    include_breakdown: bool = Query(
        default=False,
        alias="includeBreakdown",
        description="Include the per-signal score breakdown",
    ),
    use_cache: bool = Query(default=True, alias="cache", description="Set false to bypass the cache"),
    posts: PostService = Depends(get_post_service),
    cache: TTLCache = Depends(get_recommendation_cache),
    engine: RecommendationService = Depends(get_recommendation_service),
):
    """
    Find posts similar to one post.

    Scores blend TF-IDF content similarity, tag overlap, category match,
    series/season match and relative engagement.
    """
    cache_key = cache_keys.similar_key(post_id, limit, min_score)

    data = cache.get(cache_key) if _cache_enabled(use_cache) else None
    cached = data is not None

    if cached:
        logger.info(f"Cache hit for similar posts: {post_id}")
    else:
        target = await posts.get(post_id)
        if target is None:
            raise HTTPException(status_code=404, detail="Post not found")
        if not is_published(target):
            raise HTTPException(status_code=404, detail="Post is not available")

        records = await posts.list_published()
        pool, engagement = await _candidate_pool(posts, records)
        records_by_id = {str(record.id): record for record in records}

        target_candidate = next(
            (c for c in pool if c.id == str(target.id)),
            to_candidate(target),
        )

        results = await asyncio.to_thread(
            engine.find_similar,
            target_candidate,
            pool,
            limit=limit,
            min_score=min_score,
        )

        # Breakdown is always cached; it is stripped below when not requested
        data = [
            schemas.SimilarPost(
                **schemas.PostOut.from_record(
                    records_by_id[rec.post.id], engagement[rec.post.id]
                ).model_dump(),
                similarity_score=round(rec.score, 3),
                score_breakdown=schemas.ScoreBreakdown(**rec.breakdown.rounded()),
            ).model_dump(mode="json", by_alias=True)
            for rec in results
        ]

        if _cache_enabled(use_cache):
            cache.set(cache_key, data)
        logger.info(f"Generated {len(data)} recommendations for post {post_id}")

    if not include_breakdown:
        data = [{k: v for k, v in item.items() if k != "scoreBreakdown"} for item in data]

    return {"success": True, "cached": cached, "count": len(data), "data": data}


@router.post("/personalized", response_model=schemas.ListResponse[schemas.RecommendedPost])
@limiter.limit("20/minute")
async def get_personalized_recommendations(
    request: Request,
    body: schemas.PersonalizedRequest,
    use_cache: bool = Query(default=True, alias="cache", description="Set false to bypass the cache"),
    posts: PostService = Depends(get_post_service),
    cache: TTLCache = Depends(get_recommendation_cache),
    engine: RecommendationService = Depends(get_recommendation_service),
):
    """
    Recommend posts from a reading history.

    Seeds are weighed in id order, the same order the cache key uses, so
    any permutation of ``postIds`` gets the same result.
    Results are diversified across categories and series by
    ``diversityFactor`` (0 disables).
    """
    if not body.post_ids:
        raise HTTPException(status_code=400, detail="postIds array is required and cannot be empty")

    cache_key = cache_keys.personalized_key(body.post_ids, body.limit)

    if _cache_enabled(use_cache):
        data = cache.get(cache_key)
        if data is not None:
            logger.info("Cache hit for personalized recommendations")
            return {"success": True, "cached": True, "count": len(data), "data": data}

    seed_records = await posts.get_published_many(sorted(set(body.post_ids)))
    if not seed_records:
        raise HTTPException(status_code=404, detail="No valid posts found")

    records = await posts.list_published()
    pool, engagement = await _candidate_pool(posts, records)
    records_by_id = {str(record.id): record for record in records}
    pool_by_id = {c.id: c for c in pool}

    seeds = [pool_by_id.get(str(r.id)) or to_candidate(r) for r in seed_records]

    results = await asyncio.to_thread(
        engine.from_history,
        seeds,
        pool,
        limit=body.limit,
        diversity_factor=body.diversity_factor,
    )

    data = [
        schemas.RecommendedPost(
            **schemas.PostOut.from_record(
                records_by_id[rec.post.id], engagement[rec.post.id]
            ).model_dump(),
            recommendation_score=round(rec.score, 3),
        ).model_dump(mode="json", by_alias=True)
        for rec in results
    ]

    if _cache_enabled(use_cache):
        cache.set(cache_key, data)
    logger.info(f"Generated {len(data)} personalized recommendations")

    return {"success": True, "cached": False, "count": len(data), "data": data}


@router.get("/anime/{anime_name}", response_model=schemas.ListResponse[schemas.PostOut])
async def get_anime_recommendations(
    anime_name: str = Path(min_length=1),
    limit: int = Query(default=10, ge=1, le=100),
    use_cache: bool = Query(default=True, alias="cache"),
    posts: PostService = Depends(get_post_service),
    cache: TTLCache = Depends(get_recommendation_cache),
):
    """Posts from one anime series in season/episode order."""
    cache_key = cache_keys.anime_key(anime_name, limit)

    if _cache_enabled(use_cache):
        data = cache.get(cache_key)
        if data is not None:
            return {"success": True, "cached": True, "count": len(data), "data": data}

    records = await posts.by_anime(anime_name, limit)
    if not records:
        raise HTTPException(status_code=404, detail="No posts found for this anime")

    data = await _serialize_posts(posts, records)
    if _cache_enabled(use_cache):
        cache.set(cache_key, data)

    return {"success": True, "cached": False, "count": len(data), "data": data}


@router.get("/tag/{tag}", response_model=schemas.ListResponse[schemas.PostOut])
async def get_tag_recommendations(
    tag: str = Path(min_length=1),
    limit: int = Query(default=10, ge=1, le=100),
    use_cache: bool = Query(default=True, alias="cache"),
    posts: PostService = Depends(get_post_service),
    cache: TTLCache = Depends(get_recommendation_cache),
):
    """Posts carrying a tag, most viewed first."""
    cache_key = cache_keys.tag_key(tag, limit)

    if _cache_enabled(use_cache):
        data = cache.get(cache_key)
        if data is not None:
            return {"success": True, "cached": True, "count": len(data), "data": data}

    records = await posts.by_tag(tag, limit)
    if not records:
        raise HTTPException(status_code=404, detail="No posts found with this tag")

    data = await _serialize_posts(posts, records)
    if _cache_enabled(use_cache):
        cache.set(cache_key, data)

    return {"success": True, "cached": False, "count": len(data), "data": data}


@router.get("/trending", response_model=schemas.ListResponse[schemas.PostOut])
async def get_trending_posts(
    limit: int = Query(default=10, ge=1, le=100),
    timeframe: int = Query(default=7, ge=1, le=365, description="Days to look back"),
    posts: PostService = Depends(get_post_service),
):
    """Most engaged published posts (views + likes + bookmarks)."""
    data = await _trending(posts, None, limit)
    return {"success": True, "cached": False, "count": len(data), "data": data}


@router.get(
    "/trending/category/{category_id}",
    response_model=schemas.ListResponse[schemas.PostOut],
)
async def get_trending_by_category(
    category_id: str,
    limit: int = Query(default=10, ge=1, le=100),
    timeframe: int = Query(default=7, ge=1, le=365, description="Days to look back"),
    use_cache: bool = Query(default=True, alias="cache"),
    posts: PostService = Depends(get_post_service),
    cache: TTLCache = Depends(get_recommendation_cache),
):
    """Most engaged published posts within one category."""
    cache_key = cache_keys.trending_category_key(category_id, limit, timeframe)

    if _cache_enabled(use_cache):
        data = cache.get(cache_key)
        if data is not None:
            logger.info(f"Cache hit for trending posts in category {category_id}")
            return {"success": True, "cached": True, "count": len(data), "data": data}

    data = await _trending(posts, category_id, limit)
    if _cache_enabled(use_cache):
        cache.set(cache_key, data)
    logger.info(f"Generated {len(data)} trending posts for category {category_id}")

    return {"success": True, "cached": False, "count": len(data), "data": data}


# ============ Cache administration ============


@router.delete("/cache", response_model=schemas.MessageResponse)
async def clear_cache(
    admin: str = Depends(require_admin),
    cache: TTLCache = Depends(get_recommendation_cache),
):
    """Flush the recommendation response cache."""
    cache.invalidate()
    logger.info("Recommendation cache cleared")
    return {"success": True, "message": "Recommendation cache cleared successfully"}


@router.get("/cache/stats")
async def get_cache_stats(
    admin: str = Depends(require_admin),
    cache: TTLCache = Depends(get_recommendation_cache),
):
    """Hit/miss statistics of the recommendation response cache."""
    stats = schemas.CacheStatsResponse(**cache.stats())
    return {"success": True, "data": stats.model_dump(by_alias=True)}


# ============ Helpers ============


async def _serialize_posts(posts: PostService, records) -> list[dict]:
    engagement = await posts.engagement_for(records)
    return [
        schemas.PostOut.from_record(record, engagement[str(record.id)]).model_dump(
            mode="json", by_alias=True
        )
        for record in records
    ]


async def _trending(posts: PostService, category_id: Optional[str], limit: int) -> list[dict]:
    records = await posts.list_published(category_id=category_id)
    if not records:
        return []

    engagement = await posts.engagement_for(records)
    ranked = sorted(records, key=lambda r: engagement[str(r.id)].total, reverse=True)[:limit]

    return [
        schemas.PostOut.from_record(record, engagement[str(record.id)]).model_dump(
            mode="json", by_alias=True
        )
        for record in ranked
    ]
