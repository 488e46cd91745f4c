import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError

from topflix.core.cache import get_cache_backend
from topflix.core.config import get_settings
from topflix.core.exceptions import ConfigurationError
from topflix.db import SessionLocal, get_engine
from topflix.models.content import Content
from topflix.services.ingestion_service import SNAPSHOT_KEY_PREFIX

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

STALE_AFTER_DAYS = 2
MIN_RECORDS = 50

def _check_database(status: Dict[str, Any]) -> None:
    try:
        get_engine()
    except ConfigurationError as e:
        status["database"] = "missing"
        status["issues"].append(e.details or e.message)
        status["status"] = "unhealthy"
        return

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        status["database"] = "connected"
        total, last_seen = db.query(func.count(Content.id), func.max(Content.last_seen)).one()
        status["total_records"] = total or 0
        status["last_seen"] = last_seen.isoformat() if last_seen else None
    except SQLAlchemyError as e:
        logger.error(f"Health check database error: {str(e)}")
        status["database"] = "error"
        status["issues"].append(f"Database error: {str(e)}")
        status["status"] = "unhealthy"
        return
    finally:
        db.close()

    if status["total_records"] < MIN_RECORDS:
        status["issues"].append(f"Only {status['total_records']} records in database (<{MIN_RECORDS})")
        status["status"] = "degraded"
    if last_seen is not None:
        age_days = (datetime.now(timezone.utc).date() - last_seen).days
        if age_days > STALE_AFTER_DAYS:
            status["issues"].append(f"Data is {age_days} days old")
            status["status"] = "degraded"

def _check_cache(status: Dict[str, Any]) -> None:
    backend = get_cache_backend()
    if backend is None:
        status["cache"] = "missing"
        status["issues"].append("REDIS_URL not configured")
        if status["status"] == "healthy":
            status["status"] = "degraded"
    elif backend.ping():
        status["cache"] = "accessible"
        status["snapshots"] = sorted(backend.list_keys(SNAPSHOT_KEY_PREFIX))
    else:
        status["cache"] = "error"
        status["issues"].append("Redis did not answer PING")
        if status["status"] == "healthy":
            status["status"] = "degraded"

@router.get("/health")
def health_check():
    """Database, cache and provider configuration status"""
    settings = get_settings()
    status: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "issues": [],
    }
    _check_database(status)
    _check_cache(status)

    status["tmdb_api"] = "configured" if settings.TMDB_API_KEY else "missing"
    status["omdb_api"] = "configured" if settings.OMDB_API_KEY else "missing"
    if not settings.TMDB_API_KEY:
        status["issues"].append("TMDB_API_KEY not configured")
        if status["status"] == "healthy":
            status["status"] = "degraded"
    return status
