import requests
import logging
from typing import Dict
from .interfaces import ProviderClientInterface, ProviderResponse, OMDbConfig, ProviderError

logger = logging.getLogger(__name__)

class OMDbClient(ProviderClientInterface):
    """OMDb client (IMDb, Rotten Tomatoes and Metacritic ratings)"""

    def __init__(self, config: OMDbConfig, session: requests.Session = None):
        self.config = config
        self.session = session or requests.Session()

    def make_request(self, endpoint: str = "", params: Dict = None) -> ProviderResponse:
        """OMDb has a single endpoint; everything travels as query params"""
        params = dict(params or {})
        params['apikey'] = self.config.api_key

        try:
            response = self.session.get(self.config.base_url, params=params, timeout=self.config.timeout)
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"OMDb request failed: {str(e)}")

        if response.status_code != 200:
            raise ProviderError(f"OMDb returned {response.status_code}", response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"Malformed OMDb response: {str(e)}", response.status_code)

        if not isinstance(data, dict):
            raise ProviderError("Malformed OMDb response: expected an object", response.status_code)

        # OMDb reports lookup misses with HTTP 200 and Response=False
        if data.get("Response") == "False":
            return ProviderResponse(data, response.status_code, False)

        return ProviderResponse(data, response.status_code, True)
