from abc import ABC, abstractmethod
from typing import Dict, Optional
from dataclasses import dataclass

@dataclass
class TMDBConfig:
    """Configuration class for TMDB API"""
    api_key: str
    base_url: str = "https://api.themoviedb.org/3"
    language: str = "cs-CZ"
    locale: str = "CZ"  # Watch provider region
    timeout: int = 30

@dataclass
class OMDbConfig:
    """Configuration class for OMDb API"""
    api_key: str
    base_url: str = "https://www.omdbapi.com/"
    timeout: int = 30

class ProviderResponse:
    """Response wrapper for provider API calls"""
    def __init__(self, data: Dict, status_code: int, success: bool):
        self.data = data
        self.status_code = status_code
        self.success = success

class ProviderError(Exception):
    """Raised when an external provider cannot be reached or answers garbage"""
    def __init__(self, message: str, status_code: int = None):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

class ProviderClientInterface(ABC):
    """Abstract interface for a JSON-over-HTTP provider client"""

    @abstractmethod
    def make_request(self, endpoint: str, params: Dict = None) -> ProviderResponse:
        pass

class MetadataServiceInterface(ABC):
    """Abstract interface for the primary metadata provider"""

    @abstractmethod
    def search(self, query: str, media_type: str, year: Optional[int] = None) -> ProviderResponse:
        pass

    @abstractmethod
    def get_details(self, external_id: int, media_type: str) -> ProviderResponse:
        pass

    @abstractmethod
    def discover(self, media_type: str, page: int = 1, **filters) -> ProviderResponse:
        pass

class RatingsServiceInterface(ABC):
    """Abstract interface for the secondary rating provider"""

    @abstractmethod
    def get_ratings(self, imdb_id: str) -> Optional[Dict[str, float]]:
        pass
