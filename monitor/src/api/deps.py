"""
FastAPI dependency injection providers.

The metrics cache and poll status are created in the application lifespan
and stored on ``app.state``; route handlers receive them through Depends().

CHANGELOG:
- 2026-10-09: Initial creation (STORY-013)
"""

from typing import Annotated

from fastapi import Depends, Request

from monitor.src.cache import MetricsCache
from monitor.src.health import PollStatus


def get_cache(request: Request) -> MetricsCache:
    """Return the application's metrics cache."""
    return request.app.state.cache


def get_poll_status(request: Request) -> PollStatus:
    """Return the poll status tracker of the running orchestrator."""
    return request.app.state.poll_status


# Usage in route handlers:
#   async def my_route(cache: CacheDep):
#       plants = cache.get_plants()
CacheDep = Annotated[MetricsCache, Depends(get_cache)]
PollStatusDep = Annotated[PollStatus, Depends(get_poll_status)]
