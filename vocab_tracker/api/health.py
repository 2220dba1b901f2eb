"""Health check endpoint. Verifies backend + Redis connection."""

from fastapi import APIRouter

from vocab_tracker.core import redis_client

router = APIRouter()


@router.get("/health")
async def health_check():
    """Check backend status and connectivity to Redis."""
    redis_ok = redis_client.check_connection()

    return {
        "status": "ok" if redis_ok else "degraded",
        "services": {
            "redis": "ok" if redis_ok else "error",
        }
    }
