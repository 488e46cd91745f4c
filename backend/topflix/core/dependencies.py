from fastapi import Depends
from sqlalchemy.orm import Session

from topflix.core.cache import VersionedCache, get_cache_backend
from topflix.core.config import get_settings
from topflix.db import get_db
from topflix.repositories.content_store import ContentStore
from topflix.services.ingestion_service import IngestionService
from topflix.services.query_service import QueryService


def get_versioned_cache() -> VersionedCache:
    """Fresh per-request cache view; the version memo never outlives the request"""
    return VersionedCache(get_cache_backend(), get_settings().CACHE_NAMESPACE)


def get_content_store(db: Session = Depends(get_db),
                      cache: VersionedCache = Depends(get_versioned_cache)) -> ContentStore:
    return ContentStore(db, cache)


def get_query_service(store: ContentStore = Depends(get_content_store)) -> QueryService:
    return QueryService(store)


def get_ingestion_service(store: ContentStore = Depends(get_content_store)) -> IngestionService:
    return IngestionService(store, cache=get_cache_backend())
