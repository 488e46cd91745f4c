import logging
from typing import Optional
from .interfaces import TMDBConfig, OMDbConfig
from .tmdb_client import TMDBClient
from .omdb_client import OMDbClient
from .cache import get_cache_backend
from .config import get_settings
from .exceptions import ConfigurationError
from .services import MetadataService, RatingsService

logger = logging.getLogger(__name__)

class ProviderServiceFactory:
    """Factory class for creating provider services"""

    @staticmethod
    def create_metadata_service(api_key: str = None, language: str = None, locale: str = None) -> MetadataService:
        """Create a TMDB metadata service; a missing key is a configuration error"""
        settings = get_settings()
        api_key = api_key or settings.TMDB_API_KEY
        if not api_key:
            logger.error("TMDB_API_KEY is missing")
            raise ConfigurationError(
                "TMDB API key not configured",
                details="Set the TMDB_API_KEY environment variable",
            )
        config = TMDBConfig(
            api_key=api_key,
            language=language or settings.TMDB_LANGUAGE,
            locale=locale or settings.WATCH_REGION,
            timeout=settings.PROVIDER_TIMEOUT,
        )
        return MetadataService(TMDBClient(config), get_cache_backend())

    @staticmethod
    def create_ratings_service(api_key: str = None) -> Optional[RatingsService]:
        """Create an OMDb ratings service, or None when no key is configured"""
        settings = get_settings()
        api_key = api_key or settings.OMDB_API_KEY
        if not api_key:
            logger.info("OMDB_API_KEY not set, rating enrichment disabled")
            return None
        config = OMDbConfig(api_key=api_key, timeout=settings.PROVIDER_TIMEOUT)
        return RatingsService(OMDbClient(config), get_cache_backend())
