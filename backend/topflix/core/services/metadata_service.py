from typing import Optional
from ..interfaces import MetadataServiceInterface, ProviderResponse, ProviderClientInterface
from ..cache import CacheService
from ..enums import MediaType

CACHE_TTL_24H = 24 * 60 * 60
DETAIL_APPENDS = "external_ids,watch/providers"

class MetadataService(MetadataServiceInterface):
    """TMDB lookups for movies and series"""

    def __init__(self, client: ProviderClientInterface, cache: Optional[CacheService] = None):
        self.client = client
        self.cache = cache

    def _cached(self, cache_key: str, endpoint: str, params: dict = None) -> ProviderResponse:
        if self.cache is not None:
            cached = self.cache.get_json(cache_key)
            if cached is not None:
                return ProviderResponse(cached, 200, True)
        resp = self.client.make_request(endpoint, params)
        if resp.success and self.cache is not None:
            self.cache.set_json(cache_key, resp.data, CACHE_TTL_24H)
        return resp

    def search(self, query: str, media_type: str, year: Optional[int] = None) -> ProviderResponse:
        """Search movies or series by title"""
        path = MediaType(media_type).tmdb_path
        params = {"query": query}
        if year:
            params["primary_release_year" if path == "movie" else "first_air_date_year"] = year
        return self.client.make_request(f"search/{path}", params)

    def get_details(self, external_id: int, media_type: str) -> ProviderResponse:
        """Details with external ids and regional watch providers in one call"""
        path = MediaType(media_type).tmdb_path
        return self._cached(
            f"tmdb:{path}:{external_id}:details",
            f"{path}/{external_id}",
            {"append_to_response": DETAIL_APPENDS},
        )

    def discover(self, media_type: str, page: int = 1, **filters) -> ProviderResponse:
        """Discover movies or series with filters (provider, date, votes...)"""
        path = MediaType(media_type).tmdb_path
        params = {"page": page}
        params.update(filters)
        parts = [f"{k}={v}" for k, v in sorted(filters.items())]
        key_suffix = ":".join(parts) if parts else "none"
        return self._cached(f"tmdb:{path}:discover:{key_suffix}:p{page}", f"discover/{path}", params)
