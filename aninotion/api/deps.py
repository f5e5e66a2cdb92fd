"""Shared FastAPI dependencies."""

from fastapi import Depends
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from aninotion.config import get_settings
from aninotion.core.counters import EngagementCounters, get_counters
from aninotion.db.database import get_db
from aninotion.services.post_service import PostService

settings = get_settings()

# Rate limiter for the engine-backed endpoints
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


async def get_post_service(
    db: AsyncSession = Depends(get_db),
    counters: EngagementCounters = Depends(get_counters),
) -> PostService:
    return PostService(db, counters)
