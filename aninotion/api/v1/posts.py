"""Post engagement endpoints: session-deduplicated views and per-user likes."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from aninotion.api.deps import get_post_service, limiter
from aninotion.core.auth import get_current_user_id, get_optional_user_id
from aninotion.db import schemas
from aninotion.services.post_service import PostService, is_published, merge_engagement

logger = logging.getLogger(__name__)

router = APIRouter()


async def _published_post(posts: PostService, post_id: str):
    post = await posts.get(post_id)
    if not is_published(post):
        raise HTTPException(status_code=404, detail="Post not found")
    return post


@router.post("/{post_id}/view", response_model=schemas.ViewResponse)
@limiter.limit("60/minute")
async def record_view(
    request: Request,
    post_id: str,
    body: schemas.ViewRequest,
    posts: PostService = Depends(get_post_service),
):
    """
    Count a view once per browser session.

    Repeat calls with the same ``sessionId`` within the marker window return
    ``counted: false`` and leave the total unchanged.
    """
    post = await _published_post(posts, post_id)

    counted = await posts.counters.increment_view(post_id, body.session_id)
    live_views = await posts.counters.get_view_count(post_id)
    engagement = merge_engagement(post, live_views=live_views)

    return {"success": True, "counted": counted, "views": engagement.views}


@router.post("/{post_id}/like", response_model=schemas.LikeResponse)
@limiter.limit("30/minute")
async def toggle_like(
    request: Request,
    post_id: str,
    user_id: str = Depends(get_current_user_id),
    posts: PostService = Depends(get_post_service),
):
    """Like the post, or remove the like if the user already liked it."""
    await _published_post(posts, post_id)

    if not posts.counters.is_enabled():
        raise HTTPException(status_code=503, detail="Like counter unavailable")

    state = await posts.counters.toggle_like(post_id, user_id)
    logger.info(f"User {user_id} {'liked' if state.liked else 'unliked'} post {post_id}")

    return {"success": True, "liked": state.liked, "likes_count": state.likes_count}


@router.get("/{post_id}/stats", response_model=schemas.PostStatsResponse)
async def get_post_stats(
    post_id: str,
    user_id: str | None = Depends(get_optional_user_id),
    posts: PostService = Depends(get_post_service),
):
    """Merged view/like totals, plus whether the caller liked the post."""
    post = await _published_post(posts, post_id)

    engagement = (await posts.engagement_for([post]))[str(post.id)]
    liked = await posts.counters.has_liked(post_id, user_id) if user_id else False

    return {
        "success": True,
        "views": engagement.views,
        "likes_count": engagement.likes,
        "liked": liked,
    }
