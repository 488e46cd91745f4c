"""
Tests for the Top 10, netflix-new and discover pipelines in services/ingestion_service.py
"""

import asyncio
import json
import threading
from datetime import date
from unittest.mock import MagicMock

import pytest
import requests

from fakes import THIS_YEAR, FakeMetadata, FakeRatings, detail_body
from topflix.core.exceptions import InvalidParameterException
from topflix.core.interfaces import ProviderError
from topflix.models.content import Content
from topflix.repositories.content_store import utc_today
from topflix.services.enrichment_service import EnrichmentService
from topflix.services.ingestion_service import (
    IngestionService, next_weekday, parse_top10_tsv, top10_cache_key, netflix_new_cache_key,
)

HEADER = "country_name\tcountry_iso2\tweek\tcategory\tweekly_rank\tshow_title\tseason_title\tcumulative_weeks_in_top_10"

TSV = "\n".join([
    HEADER,
    "Czechia\tCZ\t2025-03-02\tFilms\t2\tNowhere\t\t1",
    "Czechia\tCZ\t2025-03-02\tFilms\t1\tDune\t\t3",
    "Czechia\tCZ\t2025-03-02\tTV\t1\tDark\tDark: Season 1\t2",
    "Czechia\tCZ\t2025-02-23\tFilms\t1\tOld Film\t\t1",
    "Poland\tPL\t2025-03-02\tFilms\t1\tPolish Film\t\t1",
])

COUNTRIES = ["Czech Republic", "Czechia"]


def tsv_session(text: str = TSV, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    session = MagicMock()
    session.get.return_value = response
    return session


@pytest.fixture
def metadata():
    return FakeMetadata(
        searches={
            "Dune": [{"id": 11, "title": "Dune", "release_date": f"{THIS_YEAR - 1}-03-01"}],
            "Dark": [{"id": 70, "name": "Dark", "first_air_date": "2017-12-01"}],
        },
        details={
            11: detail_body(11, "Dune"),
            70: {
                "id": 70, "name": "Dark", "original_name": "Dark", "first_air_date": "2017-12-01",
                "vote_average": 8.4, "origin_country": ["DE"], "external_ids": {"imdb_id": "tt5753856"},
                "number_of_seasons": 3,
            },
        },
    )


@pytest.fixture
def ratings():
    return FakeRatings({"tt0000011": {"imdb_rating": 8.8}})


@pytest.fixture
def ingestion(store, metadata, ratings, cache_backend):
    enrichment = EnrichmentService(metadata=metadata, ratings=ratings, batch_size=2)
    return IngestionService(store, enrichment=enrichment, cache=cache_backend, session=tsv_session())


class TestTop10Parsing:
    def test_latest_week_for_country(self):
        chart = parse_top10_tsv(TSV, COUNTRIES)
        assert chart["week"] == "2025-03-02"
        assert chart["movies"] == [(1, "Dune"), (2, "Nowhere")]
        assert chart["series"] == [(1, "Dark")]

    def test_unknown_country_is_empty(self):
        assert parse_top10_tsv(TSV, ["Narnia"]) == {"week": None, "movies": [], "series": []}

    def test_download_failure_raises(self, store):
        service = IngestionService(store, enrichment=EnrichmentService(), session=tsv_session(status_code=500))
        with pytest.raises(ProviderError):
            service.fetch_netflix_top10()

    def test_network_failure_raises(self, store):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("offline")
        service = IngestionService(store, enrichment=EnrichmentService(), session=session)
        with pytest.raises(ProviderError):
            service.fetch_netflix_top10()

    def test_chart_without_country_rows_raises(self, store):
        service = IngestionService(store, enrichment=EnrichmentService(), session=tsv_session(HEADER))
        with pytest.raises(ProviderError):
            service.fetch_netflix_top10()


class TestRunTop10:
    def test_resolves_enriches_and_stores(self, ingestion, db):
        payload = asyncio.run(ingestion.run_top10())

        assert payload["week"] == "2025-03-02"
        assert payload["db_result"] == {"inserted": 2, "updated": 0}

        dune, nowhere = payload["movies"]
        assert dune["rank"] == 1
        assert dune["imdb_rating"] == 8.8
        # (78 * 0.30 + 88 * 0.30) / 0.60
        assert dune["avg_rating"] == 83
        assert dune["quality_tier"] == "excellent"
        assert nowhere == {"rank": 2, "title": "Nowhere", "media_type": "movie", "error": "Data not found"}

        [dark] = payload["series"]
        assert dark["external_id"] == 70

        stored = db.query(Content).filter_by(external_id=11).one()
        assert stored.last_source == "top10"
        assert stored.last_rank == 1
        assert stored.avg_rating == 83

    def test_next_update_is_a_tuesday(self, ingestion):
        payload = asyncio.run(ingestion.run_top10())
        assert date.fromisoformat(payload["next_update"]).weekday() == 1

    def test_blocking_work_runs_off_the_event_loop(self, ingestion, cache_backend, monkeypatch):
        threads = {}
        loop_thread = threading.get_ident()

        def spy(name, func):
            def wrapper(*args):
                threads[name] = threading.get_ident()
                return func(*args)
            return wrapper

        monkeypatch.setattr(ingestion.store, "upsert_batch", spy("upsert", ingestion.store.upsert_batch))
        monkeypatch.setattr(cache_backend, "get_json", spy("cache_read", cache_backend.get_json))
        monkeypatch.setattr(cache_backend, "set_json", spy("cache_write", cache_backend.set_json))

        asyncio.run(ingestion.top10_snapshot())

        assert set(threads) == {"upsert", "cache_read", "cache_write"}
        assert loop_thread not in threads.values()

    def test_snapshot_is_served_from_cache(self, ingestion, cache_backend):
        first = asyncio.run(ingestion.top10_snapshot())
        second = asyncio.run(ingestion.top10_snapshot())

        assert first == second
        assert ingestion.session.get.call_count == 1
        [key] = [k for k in cache_backend.data if k.startswith("netflix_top10_cz_")]
        assert cache_backend.ttls[key] == 7 * 24 * 60 * 60


class TestDiscover:
    def test_pages_are_collected_and_stored(self, store, ratings, cache_backend, db):
        metadata = FakeMetadata(
            details={i: detail_body(i, f"Film {i}") for i in (1, 2, 3)},
            discover_pages={"movie": [
                {"results": [{"id": 1}, {"id": 2}], "total_pages": 2, "total_results": 3},
                {"results": [{"id": 2}, {"id": 3}], "total_pages": 2, "total_results": 3},
            ]},
        )
        service = IngestionService(store, enrichment=EnrichmentService(metadata=metadata, ratings=ratings),
                                   cache=cache_backend, session=tsv_session())

        result = asyncio.run(service.run_discover("movie", pages=5, min_rating=7.5))

        assert result["count"] == 3
        assert result["total_available"] == 3
        assert result["db_result"] == {"inserted": 3, "updated": 0}
        assert len(metadata.discover_calls) == 2
        call = metadata.discover_calls[0]
        assert call["vote_count.gte"] == 100
        assert call["vote_average.gte"] == 7.5
        assert call["with_watch_providers"] == 8
        assert {row.last_source for row in db.query(Content).all()} == {"discover"}

    @pytest.mark.parametrize("kwargs", [{"pages": 0}, {"pages": 21}, {"media_type": "anime"}])
    def test_invalid_parameters(self, ingestion, kwargs):
        with pytest.raises(InvalidParameterException):
            asyncio.run(ingestion.run_discover(**kwargs))

    def test_tv_is_an_alias_for_series(self, ingestion, metadata):
        result = asyncio.run(ingestion.run_discover("tv", pages=1))
        assert result["type"] == "series"
        assert metadata.discover_calls[0]["media_type"] == "series"


class TestNetflixNew:
    def test_recent_titles_per_type(self, store, cache_backend):
        metadata = FakeMetadata(
            details={1: detail_body(1, "New Film"), 2: detail_body(2, "Other Film")},
            discover_pages={
                "movie": [{"results": [{"id": 1}, {"id": 2}], "total_pages": 1}],
                "series": [{"results": [], "total_pages": 0}],
            },
        )
        service = IngestionService(store, enrichment=EnrichmentService(metadata=metadata),
                                   cache=cache_backend, session=tsv_session())

        payload = asyncio.run(service.run_netflix_new(days=180, limit=1))

        assert [m["external_id"] for m in payload["movies"]] == [1]
        assert payload["series"] == []
        assert payload["db_result"] == {"inserted": 1, "updated": 0}
        movie_call = metadata.discover_calls[0]
        assert "primary_release_date.gte" in movie_call
        assert movie_call["vote_count.gte"] == 50
        assert "first_air_date.gte" in metadata.discover_calls[1]


def test_calendar_helpers():
    monday = date(2025, 3, 10)
    assert next_weekday(monday, 1) == date(2025, 3, 11)
    assert next_weekday(date(2025, 3, 11), 1) == date(2025, 3, 18)
    assert top10_cache_key(monday) == "netflix_top10_cz_2025-11"
    assert netflix_new_cache_key(monday) == "netflix_new_2025-03-10"


class TestNewsletterData:
    def test_recommended_titles_from_both_snapshots(self, ingestion, cache_backend):
        today = utc_today()
        cache_backend.data[top10_cache_key(today)] = json.dumps({
            "week": "2025-03-02",
            "movies": [
                {"rank": 1, "title": "Dune", "avg_rating": 74, "source": "top10"},
                {"rank": 2, "title": "Flop", "avg_rating": 69, "source": "top10"},
                {"rank": 3, "title": "Nowhere", "media_type": "movie", "error": "Data not found"},
            ],
            "series": [{"rank": 1, "title": "Dark", "avg_rating": 84, "source": "top10"}],
        })
        cache_backend.data[netflix_new_cache_key(today)] = json.dumps({
            "movies": [
                {"title": "Fresh", "avg_rating": 91, "source": "netflix_new"},
                {"title": "Edge", "avg_rating": 70, "source": "netflix_new"},
                {"title": "Unrated", "avg_rating": None, "source": "netflix_new"},
            ],
            "series": [],
        })

        data = asyncio.run(ingestion.newsletter_data())

        assert [(m["title"], m["source"]) for m in data["movies"]] == [
            ("Fresh", "netflix_new"), ("Dune", "top10"), ("Edge", "netflix_new"),
        ]
        assert [s["title"] for s in data["series"]] == ["Dark"]
        assert data["week"] == "2025-03-02"
        assert data["min_rating"] == 70
        ingestion.session.get.assert_not_called()
