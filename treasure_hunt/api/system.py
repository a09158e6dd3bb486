"""
System Router - Health checks and monitoring
"""
from fastapi import APIRouter
from datetime import datetime
import redis
from sqlalchemy import text
from treasure_hunt.config import settings
from treasure_hunt.db.database import engine

router = APIRouter()


@router.get("/health")
async def health_check():
    """
    Health check endpoint returning status of backing services.
    """
    # Check database
    database_status = "unhealthy"
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        database_status = "healthy"
    except Exception:
        pass

    # Check Redis
    redis_status = "unhealthy"
    worker_queue_depth = 0
    try:
        r = redis.from_url(settings.REDIS_URL, socket_connect_timeout=1)
        r.ping()
        redis_status = "healthy"
        # Get queue depth (notifications queue)
        worker_queue_depth = r.llen("notifications") or 0
    except Exception:
        pass

    return {
        "database": database_status,
        "redis": redis_status,
        "worker_queue_depth": worker_queue_depth,
        "timestamp": datetime.utcnow().isoformat() + "Z"
    }
