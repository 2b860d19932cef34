"""
Health check endpoints for the Tri-Stack bridge.

Provides:
- /health - Basic liveness check (is the app running?)
- /ready - Readiness check (is the shared room store reachable?)
"""

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response
import redis.asyncio as redis

from stores.room_store import RoomStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Service references (set during app initialization)
_redis_client = None


def set_health_dependencies(redis_client=None):
    """Set dependencies for health checks."""
    global _redis_client
    _redis_client = redis_client


@router.get("/health")
async def health_check():
    """Liveness check; always 200 while the process is alive."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check():
    """
    Readiness check for online play.

    Local play needs nothing external, so a missing Redis configuration
    reports "not_configured" and still returns 200. A configured but
    unreachable Redis returns 503.
    """
    checks = {}
    overall_healthy = True

    if _redis_client is not None:
        try:
            await _redis_client.ping()
            active = await _redis_client.scard(RoomStore.ACTIVE_ROOMS_KEY)
            checks["redis"] = {"status": "ok", "active_rooms": active}
        except redis.RedisError as e:
            logger.warning(f"Redis health check failed: {e}")
            checks["redis"] = {"status": "error", "message": str(e)}
            overall_healthy = False
    else:
        checks["redis"] = {"status": "not_configured"}

    status_code = 200 if overall_healthy else 503
    return Response(
        content=json.dumps({
            "status": "ok" if overall_healthy else "degraded",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }),
        status_code=status_code,
        media_type="application/json",
    )
