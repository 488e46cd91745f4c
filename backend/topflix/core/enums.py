from enum import Enum

class MediaType(str, Enum):
    """Content types stored in the catalogue"""
    MOVIE = "movie"
    SERIES = "series"

    @property
    def tmdb_path(self) -> str:
        """TMDB uses 'tv' where we use 'series'"""
        return "movie" if self is MediaType.MOVIE else "tv"

class QualityTier(str, Enum):
    """Buckets of the aggregated 0-100 rating"""
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    BELOW_AVERAGE = "below_average"
    POOR = "poor"

class ContentSource(str, Enum):
    """Ingestion pipeline that wrote a row"""
    TOP10 = "top10"
    NETFLIX_NEW = "netflix_new"
    DISCOVER = "discover"

class OrderBy(str, Enum):
    """Archive orderings"""
    RATING = "rating"
    RECENT = "recent"
    POPULAR = "popular"
