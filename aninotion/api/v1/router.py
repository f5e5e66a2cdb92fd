"""API v1 router - aggregates all endpoint routers."""

from fastapi import APIRouter

from aninotion.api.v1 import posts, recommendations

api_router = APIRouter()

api_router.include_router(recommendations.router, prefix="/recommendations", tags=["recommendations"])
api_router.include_router(posts.router, prefix="/posts", tags=["posts"])
