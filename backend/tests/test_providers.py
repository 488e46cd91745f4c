"""
Tests for the TMDB / OMDb clients and the services built on them
"""

from unittest.mock import MagicMock

import pytest
import requests

from topflix.core.exceptions import ConfigurationError
from topflix.core.interfaces import OMDbConfig, TMDBConfig, ProviderError, ProviderResponse
from topflix.core.omdb_client import OMDbClient
from topflix.core.provider_service import ProviderServiceFactory
from topflix.core.services import MetadataService, RatingsService, parse_omdb_ratings
from topflix.core.tmdb_client import TMDBClient


def make_response(status_code=200, payload=None, json_error=False):
    response = MagicMock()
    response.status_code = status_code
    if json_error:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = payload
    return response


OMDB_BODY = {
    "Title": "Dune: Part Two",
    "imdbRating": "8.5",
    "Metascore": "79",
    "Ratings": [
        {"Source": "Internet Movie Database", "Value": "8.5/10"},
        {"Source": "Rotten Tomatoes", "Value": "92%"},
        {"Source": "Metacritic", "Value": "79/100"},
    ],
    "Response": "True",
}


class TestParseOmdbRatings:
    def test_all_sources(self):
        assert parse_omdb_ratings(OMDB_BODY) == {
            "imdb_rating": 8.5,
            "rotten_tomatoes_rating": 92,
            "metacritic_rating": 79,
        }

    def test_metascore_fallback(self):
        body = {"imdbRating": "7.1", "Metascore": "64", "Ratings": []}
        assert parse_omdb_ratings(body) == {"imdb_rating": 7.1, "metacritic_rating": 64}

    def test_not_available_values_are_skipped(self):
        body = {"imdbRating": "N/A", "Metascore": "N/A", "Ratings": [{"Source": "Rotten Tomatoes", "Value": "N/A"}]}
        assert parse_omdb_ratings(body) == {}


class TestOMDbClient:
    def test_api_key_and_id_are_sent(self):
        session = MagicMock()
        session.get.return_value = make_response(payload=OMDB_BODY)
        client = OMDbClient(OMDbConfig(api_key="secret"), session)

        resp = client.make_request(params={"i": "tt15239678"})

        assert resp.success is True
        _, kwargs = session.get.call_args
        assert kwargs["params"] == {"i": "tt15239678", "apikey": "secret"}

    def test_lookup_miss_is_unsuccessful(self):
        session = MagicMock()
        session.get.return_value = make_response(payload={"Response": "False", "Error": "Incorrect IMDb ID."})
        resp = OMDbClient(OMDbConfig(api_key="k"), session).make_request(params={"i": "tt0"})
        assert resp.success is False

    @pytest.mark.parametrize("response", [
        make_response(status_code=503),
        make_response(json_error=True),
        make_response(payload=["not", "an", "object"]),
    ])
    def test_bad_answers_raise_provider_error(self, response):
        session = MagicMock()
        session.get.return_value = response
        with pytest.raises(ProviderError):
            OMDbClient(OMDbConfig(api_key="k"), session).make_request(params={"i": "tt1"})

    def test_network_error_raises_provider_error(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("no route")
        with pytest.raises(ProviderError):
            OMDbClient(OMDbConfig(api_key="k"), session).make_request(params={"i": "tt1"})


class TestTMDBClient:
    def test_watch_region_added_for_provider_lookups(self):
        session = MagicMock()
        session.headers = {}
        session.get.return_value = make_response(payload={"id": 1})
        client = TMDBClient(TMDBConfig(api_key="k", language="cs-CZ", locale="CZ"), session)

        client.make_request("movie/1", {"append_to_response": "external_ids,watch/providers"})

        url = session.get.call_args.args[0]
        params = session.get.call_args.kwargs["params"]
        assert url == "https://api.themoviedb.org/3/movie/1"
        assert params["watch_region"] == "CZ"
        assert params["language"] == "cs-CZ"
        assert params["api_key"] == "k"

    def test_non_200_is_unsuccessful(self):
        session = MagicMock()
        session.headers = {}
        session.get.return_value = make_response(status_code=404)
        resp = TMDBClient(TMDBConfig(api_key="k"), session).make_request("movie/0")
        assert resp.success is False
        assert resp.status_code == 404

    def test_network_error_raises(self):
        session = MagicMock()
        session.headers = {}
        session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(ProviderError):
            TMDBClient(TMDBConfig(api_key="k"), session).make_request("search/movie")


class TestRatingsService:
    def test_ratings_are_cached(self, cache_backend):
        client = MagicMock()
        client.make_request.return_value = ProviderResponse(OMDB_BODY, 200, True)
        service = RatingsService(client, cache_backend)

        first = service.get_ratings("tt15239678")
        second = service.get_ratings("tt15239678")

        assert first == second == {"imdb_rating": 8.5, "rotten_tomatoes_rating": 92, "metacritic_rating": 79}
        assert client.make_request.call_count == 1

    def test_unknown_id_is_none(self):
        client = MagicMock()
        client.make_request.return_value = ProviderResponse({"Response": "False"}, 200, False)
        assert RatingsService(client).get_ratings("tt0") is None
        assert RatingsService(client).get_ratings("") is None

    def test_provider_error_propagates(self):
        client = MagicMock()
        client.make_request.side_effect = ProviderError("boom")
        with pytest.raises(ProviderError):
            RatingsService(client).get_ratings("tt1")


class TestMetadataService:
    def test_series_use_tv_paths(self):
        client = MagicMock()
        client.make_request.return_value = ProviderResponse({"results": []}, 200, True)
        service = MetadataService(client)

        service.search("Dark", "series", year=2017)
        endpoint, params = client.make_request.call_args.args
        assert endpoint == "search/tv"
        assert params == {"query": "Dark", "first_air_date_year": 2017}

    def test_details_are_cached(self, cache_backend):
        client = MagicMock()
        client.make_request.return_value = ProviderResponse({"id": 5}, 200, True)
        service = MetadataService(client, cache_backend)

        assert service.get_details(5, "movie").data == {"id": 5}
        assert service.get_details(5, "movie").data == {"id": 5}
        assert client.make_request.call_count == 1
        endpoint, params = client.make_request.call_args.args
        assert endpoint == "movie/5"
        assert params == {"append_to_response": "external_ids,watch/providers"}

    def test_failed_lookups_are_not_cached(self, cache_backend):
        client = MagicMock()
        client.make_request.return_value = ProviderResponse({}, 500, False)
        service = MetadataService(client, cache_backend)
        service.get_details(5, "movie")
        service.get_details(5, "movie")
        assert client.make_request.call_count == 2


class TestProviderServiceFactory:
    def test_missing_tmdb_key_is_configuration_error(self, monkeypatch):
        from topflix.core.config import get_settings

        monkeypatch.setattr(get_settings(), "TMDB_API_KEY", None)
        with pytest.raises(ConfigurationError):
            ProviderServiceFactory.create_metadata_service()

    def test_missing_omdb_key_disables_ratings(self, monkeypatch):
        from topflix.core.config import get_settings

        monkeypatch.setattr(get_settings(), "OMDB_API_KEY", None)
        assert ProviderServiceFactory.create_ratings_service() is None
