from fastapi import APIRouter, Depends, Response
import redis
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db


router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Liveness probe - always returns 200 if app is running."""
    return {"status": "ok"}


@router.get("/ready")
def readiness(response: Response, db: Session = Depends(get_db)) -> dict:
    """Readiness probe - 503 if the content store or Redis (breaker state, broker) is down."""
    try:
        db.execute(text("SELECT 1"))
        redis_client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        redis_client.ping()
        return {"status": "ready"}
    except (SQLAlchemyError, redis.RedisError) as e:
        response.status_code = 503
        return {"status": "not_ready", "error": type(e).__name__}
