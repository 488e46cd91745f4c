import re
from typing import Dict, Optional
from ..interfaces import RatingsServiceInterface, ProviderClientInterface
from ..cache import CacheService

CACHE_TTL_24H = 24 * 60 * 60

_LEADING_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)")


def _parse_number(value) -> Optional[float]:
    """'87%' -> 87, '74/100' -> 74, '7.9' -> 7.9, 'N/A' -> None"""
    if value is None:
        return None
    match = _LEADING_NUMBER.match(str(value))
    if not match:
        return None
    return float(match.group(1))


def parse_omdb_ratings(data: Dict) -> Dict[str, float]:
    """Extract IMDb, Rotten Tomatoes and Metacritic scores from an OMDb body"""
    ratings: Dict[str, float] = {}

    imdb = _parse_number(data.get("imdbRating"))
    if imdb:
        ratings["imdb_rating"] = imdb

    for entry in data.get("Ratings") or []:
        source = entry.get("Source")
        value = _parse_number(entry.get("Value"))
        if value is None:
            continue
        if source == "Rotten Tomatoes":
            ratings["rotten_tomatoes_rating"] = int(value)
        elif source == "Metacritic":
            ratings["metacritic_rating"] = int(value)

    if "metacritic_rating" not in ratings:
        metascore = _parse_number(data.get("Metascore"))
        if metascore:
            ratings["metacritic_rating"] = int(metascore)

    return ratings


class RatingsService(RatingsServiceInterface):
    """OMDb ratings by IMDb id (free tier: 1,000 requests/day, hence the cache)"""

    def __init__(self, client: ProviderClientInterface, cache: Optional[CacheService] = None):
        self.client = client
        self.cache = cache

    def get_ratings(self, imdb_id: str) -> Optional[Dict[str, float]]:
        """Ratings dict, or None when OMDb knows nothing about the id.

        Transport failures surface as ProviderError.
        """
        if not imdb_id:
            return None

        cache_key = f"omdb:{imdb_id}:ratings"
        if self.cache is not None:
            cached = self.cache.get_json(cache_key)
            if cached is not None:
                return cached or None

        resp = self.client.make_request(params={"i": imdb_id})
        ratings = parse_omdb_ratings(resp.data) if resp.success else {}

        if self.cache is not None:
            self.cache.set_json(cache_key, ratings, CACHE_TTL_24H)
        return ratings or None
