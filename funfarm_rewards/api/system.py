"""
System Router - Health checks and monitoring
"""
from datetime import datetime

import redis
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from funfarm_rewards.config import settings
from funfarm_rewards.dependencies import get_db

router = APIRouter()


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint returning status of the data store, Redis and
    the worker queue.
    """
    database_status = "unhealthy"
    try:
        db.execute(text("SELECT 1"))
        database_status = "healthy"
    except Exception:
        pass

    redis_status = "unhealthy"
    worker_queue_depth = 0
    try:
        r = redis.from_url(settings.REDIS_URL)
        r.ping()
        redis_status = "healthy"
        worker_queue_depth = r.llen("celery") or 0
    except Exception:
        pass

    return {
        "database": database_status,
        "redis": redis_status,
        "worker_queue_depth": worker_queue_depth,
        "timestamp": datetime.utcnow().isoformat() + "Z"
    }
