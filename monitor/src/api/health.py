"""
Health check endpoint for the monitor API.

GET /health returns HTTP 200 with ``status``, the current UTC ``timestamp``
and the poll status of the background orchestrator. It answers even before
the first poll completes; the ``polling`` block tells whether the cache is
actually being refreshed.

CHANGELOG:
- 2026-10-09: Include orchestrator poll status (STORY-012)
- 2026-10-09: Initial creation (STORY-012)

TODO:
- None
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter

from monitor.src.api.deps import PollStatusDep

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(poll_status: PollStatusDep) -> dict[str, Any]:
    """Return service liveness and poll status.

    Returns:
        dict: ``{"status": "healthy", "timestamp": ..., "polling": {...}}``.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(tz=UTC).isoformat(),
        "polling": poll_status.snapshot(),
    }
