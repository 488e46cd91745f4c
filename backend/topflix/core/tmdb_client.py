import requests
import logging
from typing import Dict
from .interfaces import ProviderClientInterface, ProviderResponse, TMDBConfig, ProviderError

logger = logging.getLogger(__name__)

class TMDBClient(ProviderClientInterface):
    """Concrete implementation of TMDB client"""

    def __init__(self, config: TMDBConfig, session: requests.Session = None):
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({
            "accept": "application/json"
        })

    def make_request(self, endpoint: str, params: Dict = None) -> ProviderResponse:
        """Make HTTP request to TMDB API"""
        url = f"{self.config.base_url}/{endpoint.lstrip('/')}"
        params = dict(params or {})

        # Add API key to params
        params['api_key'] = self.config.api_key

        if self.config.language:
            params.setdefault('language', self.config.language)

        # Add region for watch provider lookups
        if ('watch/providers' in endpoint or 'watch/providers' in str(params.get('append_to_response', ''))
                or 'with_watch_providers' in params) and self.config.locale:
            params.setdefault('watch_region', self.config.locale)

        try:
            logger.debug(f"Making request to: {url}")
            response = self.session.get(url, params=params, timeout=self.config.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"TMDB request exception: {str(e)}")
            raise ProviderError(f"Request failed: {str(e)}")

        if response.status_code != 200:
            logger.error(f"TMDB request failed: {response.status_code} - {endpoint}")
            return ProviderResponse({}, response.status_code, False)

        try:
            return ProviderResponse(response.json(), response.status_code, True)
        except ValueError as e:
            raise ProviderError(f"Malformed TMDB response: {str(e)}", response.status_code)
