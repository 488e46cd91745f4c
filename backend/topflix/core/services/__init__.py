from .metadata_service import MetadataService
from .ratings_service import RatingsService, parse_omdb_ratings

__all__ = [
    "MetadataService",
    "RatingsService",
    "parse_omdb_ratings"
]
