import asyncio
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from topflix.core.cache import VersionedCache, get_cache_backend
from topflix.core.config import get_settings
from topflix.core.exceptions import BaseAppException
from topflix.core.interfaces import ProviderError
from topflix.db import Base, SessionLocal, get_engine
from topflix.repositories.content_store import ContentStore
from topflix.routers import content, health, ingestion
from topflix.services.ingestion_service import IngestionService
import topflix.models  # noqa: F401  ensure models are registered

settings = get_settings()
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Topflix API",
    description="Netflix CZ Top 10 and new titles with aggregated quality ratings",
    version="1.0.0"
)

# CORS middleware
origins_env = settings.CORS_ALLOW_ORIGINS or ""
origins = [o.strip() for o in origins_env.split(",") if o.strip()] or ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=origins != ["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(content.router)
app.include_router(ingestion.router)


@app.exception_handler(BaseAppException)
async def app_exception_handler(request: Request, exc: BaseAppException):
    logger.error(f"{request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(ProviderError)
async def provider_exception_handler(request: Request, exc: ProviderError):
    logger.error(f"{request.url.path}: upstream provider failed: {exc.message}")
    return JSONResponse(
        status_code=502,
        content={"error": exc.message, "error_code": "PROVIDER_ERROR"},
    )


scheduler = BackgroundScheduler(timezone="UTC")

def job_refresh_content():
    db = SessionLocal()
    try:
        backend = get_cache_backend()
        store = ContentStore(db, VersionedCache(backend, settings.CACHE_NAMESPACE))
        result = asyncio.run(IngestionService(store, cache=backend).refresh_snapshots())
        logger.info(f"Daily refresh finished: {result}")
    finally:
        db.close()


@app.on_event("startup")
def on_startup():
    # First deploy: create tables (idempotent)
    if settings.AUTO_CREATE_TABLES:
        Base.metadata.create_all(bind=get_engine())

    if settings.ENABLE_SCHEDULER:
        get_engine()
        scheduler.add_job(
            job_refresh_content,
            trigger="cron",
            hour=settings.SCHEDULE_HOUR,
            minute=settings.SCHEDULE_MINUTE,
            id="daily_refresh_content",
            replace_existing=True,
        )
        scheduler.start()
        logger.info(f"Scheduler started: daily refresh at {settings.SCHEDULE_HOUR:02d}:{settings.SCHEDULE_MINUTE:02d} UTC")


@app.on_event("shutdown")
def on_shutdown():
    if scheduler.running:
        scheduler.shutdown(wait=False)
