import asyncio
import csv
import io
import logging
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import requests

from topflix.core.cache import CacheService
from topflix.core.config import get_settings
from topflix.core.enums import MediaType, ContentSource
from topflix.core.exceptions import InvalidParameterException
from topflix.core.interfaces import ProviderError
from topflix.core.ratings import quality_tier
from topflix.repositories.content_store import ContentStore, utc_today
from topflix.schemas.content import ContentItemIn, TitleResolution, UpsertResult
from topflix.services.enrichment_service import EnrichmentService, compute_ratings

logger = logging.getLogger(__name__)

TOP10_TTL = 7 * 24 * 60 * 60
NETFLIX_NEW_TTL = 24 * 60 * 60
TOP10_SIZE = 10
TOP10_CATEGORIES = {"Films": MediaType.MOVIE, "TV": MediaType.SERIES}
MAX_DISCOVER_PAGES = 20
DISCOVER_MIN_VOTES = 100
NETFLIX_NEW_MIN_VOTES = 50
SNAPSHOT_KEY_PREFIX = "netflix_"
RECOMMENDED_MIN_RATING = 70


def next_weekday(today: date, weekday: int) -> date:
    """Next occurrence of ``weekday`` (Monday=0) strictly after ``today``"""
    days = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=days)


def top10_cache_key(today: date) -> str:
    year, week, _ = today.isocalendar()
    return f"{SNAPSHOT_KEY_PREFIX}top10_cz_{year}-{week:02d}"


def netflix_new_cache_key(today: date) -> str:
    return f"{SNAPSHOT_KEY_PREFIX}new_{today.isoformat()}"


def parse_top10_tsv(text: str, countries: List[str]) -> Dict[str, Any]:
    """Latest week of the Netflix Top 10 TSV for the given country names.

    Returns ``{"week", "movies", "series"}`` where the lists hold
    ``(rank, title)`` pairs ordered by rank.
    """
    rows = [
        row for row in csv.DictReader(io.StringIO(text), delimiter="\t")
        if row.get("country_name") in countries
    ]
    if not rows:
        return {"week": None, "movies": [], "series": []}

    latest_week = max(row["week"] for row in rows)
    charts: Dict[MediaType, List[Tuple[int, str]]] = {MediaType.MOVIE: [], MediaType.SERIES: []}
    for row in rows:
        media_type = TOP10_CATEGORIES.get(row.get("category"))
        if row["week"] != latest_week or media_type is None:
            continue
        try:
            rank = int(row["weekly_rank"])
        except (TypeError, ValueError):
            continue
        charts[media_type].append((rank, row["show_title"]))

    return {
        "week": latest_week,
        "movies": sorted(charts[MediaType.MOVIE])[:TOP10_SIZE],
        "series": sorted(charts[MediaType.SERIES])[:TOP10_SIZE],
    }


def _item_payload(item: ContentItemIn) -> Dict[str, Any]:
    payload = item.model_dump(mode="json")
    payload["quality_tier"] = quality_tier(item.avg_rating).value
    return payload


def _chart_payload(resolutions: List[TitleResolution], items: Dict[Tuple[int, str], ContentItemIn]) -> List[Dict[str, Any]]:
    payload = []
    for resolution in resolutions:
        if resolution.resolved:
            entry = _item_payload(items.get(resolution.item.natural_key, resolution.item))
            entry["rank"] = resolution.rank
        else:
            entry = {
                "rank": resolution.rank,
                "title": resolution.title,
                "media_type": resolution.media_type.value,
                "error": resolution.error,
            }
        payload.append(entry)
    return payload


class IngestionService:
    """Pulls titles from Netflix and TMDB, enriches them and writes them to the store"""

    def __init__(self, store: ContentStore, enrichment: Optional[EnrichmentService] = None,
                 cache: Optional[CacheService] = None, session: Optional[requests.Session] = None):
        self.settings = get_settings()
        self.store = store
        self.enrichment = enrichment or EnrichmentService.from_settings()
        self.cache = cache
        self.session = session or requests.Session()

    # ------------------------------------------------------------------
    # Cached snapshots
    # ------------------------------------------------------------------

    async def _offload(self, func: Callable[..., Any], *args) -> Any:
        """Run blocking store or cache work on the default executor"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def _store_items(self, items: List[ContentItemIn]) -> UpsertResult:
        if not items:
            return UpsertResult()
        return await self._offload(self.store.upsert_batch, items)

    async def cached_snapshot(self, key: str, ttl: int, producer: Callable[[], Awaitable[Dict[str, Any]]]) -> Dict[str, Any]:
        """Serve a whole pipeline payload from the plain cache, producing it on a miss"""
        if self.cache is not None:
            cached = await self._offload(self.cache.get_json, key)
            if cached is not None:
                logger.info(f"Serving {key} from cache")
                return cached

        payload = await producer()
        if self.cache is not None:
            await self._offload(self.cache.set_json, key, payload, ttl)
        return payload

    async def top10_snapshot(self) -> Dict[str, Any]:
        return await self.cached_snapshot(top10_cache_key(utc_today()), TOP10_TTL, self.run_top10)

    async def netflix_new_snapshot(self) -> Dict[str, Any]:
        return await self.cached_snapshot(netflix_new_cache_key(utc_today()), NETFLIX_NEW_TTL, self.run_netflix_new)

    async def refresh_snapshots(self) -> Dict[str, Any]:
        """Re-run both pipelines and overwrite today's cached payloads"""
        today = utc_today()
        top10 = await self.run_top10()
        netflix_new = await self.run_netflix_new()
        if self.cache is not None:
            await self._offload(self.cache.set_json, top10_cache_key(today), top10, TOP10_TTL)
            await self._offload(self.cache.set_json, netflix_new_cache_key(today), netflix_new, NETFLIX_NEW_TTL)
        return {"top10": top10["db_result"], "netflix_new": netflix_new["db_result"]}

    async def newsletter_data(self) -> Dict[str, Any]:
        """Recommended titles for the weekly newsletter.

        Resolved entries of this week's Top 10 and of the netflix-new list
        rated at least ``RECOMMENDED_MIN_RATING``, tagged with the list they
        came from and ordered best first per media type.
        """
        top10 = await self.top10_snapshot()
        netflix_new = await self.netflix_new_snapshot()

        recommended: Dict[str, List[Dict[str, Any]]] = {"movies": [], "series": []}
        for source, snapshot in ((ContentSource.TOP10, top10), (ContentSource.NETFLIX_NEW, netflix_new)):
            for group in recommended:
                for entry in snapshot.get(group) or []:
                    rating = entry.get("avg_rating")
                    if rating is not None and rating >= RECOMMENDED_MIN_RATING:
                        recommended[group].append({**entry, "source": source.value})

        for entries in recommended.values():
            entries.sort(key=lambda entry: entry["avg_rating"], reverse=True)

        return {
            "updated": utc_today().isoformat(),
            "week": top10.get("week"),
            "min_rating": RECOMMENDED_MIN_RATING,
            "movies": recommended["movies"],
            "series": recommended["series"],
        }

    # ------------------------------------------------------------------
    # Netflix Top 10
    # ------------------------------------------------------------------

    def fetch_netflix_top10(self) -> Dict[str, Any]:
        url = self.settings.NETFLIX_TOP10_URL
        try:
            resp = self.session.get(url, timeout=self.settings.PROVIDER_TIMEOUT)
        except requests.RequestException as e:
            raise ProviderError(f"Netflix Top 10 download failed: {str(e)}")
        if resp.status_code != 200:
            raise ProviderError(f"Netflix Top 10 download failed with HTTP {resp.status_code}", resp.status_code)

        countries = [c.strip() for c in self.settings.TOP10_COUNTRIES.split(",") if c.strip()]
        chart = parse_top10_tsv(resp.text, countries)
        if chart["week"] is None:
            raise ProviderError(f"No Netflix Top 10 rows for {', '.join(countries)}")

        logger.info(f"Netflix Top 10 week {chart['week']}: {len(chart['movies'])} films, {len(chart['series'])} series")
        return chart

    async def run_top10(self) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        chart = await loop.run_in_executor(None, self.fetch_netflix_top10)

        movies = await self.enrichment.fetch_and_enrich_titles(chart["movies"], MediaType.MOVIE, ContentSource.TOP10)
        series = await self.enrichment.fetch_and_enrich_titles(chart["series"], MediaType.SERIES, ContentSource.TOP10)

        resolved = [r.item for r in movies + series if r.resolved]
        unresolved = len(movies) + len(series) - len(resolved)
        if unresolved:
            logger.warning(f"{unresolved} Top 10 titles could not be resolved")

        items = compute_ratings(await self.enrichment.enrich(resolved))
        db_result = await self._store_items(items)
        by_key = {item.natural_key: item for item in items}

        today = utc_today()
        return {
            "updated": today.isoformat(),
            "next_update": next_weekday(today, 1).isoformat(),
            "week": chart["week"],
            "movies": _chart_payload(movies, by_key),
            "series": _chart_payload(series, by_key),
            "db_result": db_result.model_dump(),
        }

    # ------------------------------------------------------------------
    # TMDB discover
    # ------------------------------------------------------------------

    def _discover_ids(self, media_type: MediaType, pages: int, **filters) -> Tuple[List[int], int]:
        """Result ids across discover pages, deduplicated, plus the total result count"""
        ids: List[int] = []
        total_results = 0
        for page in range(1, pages + 1):
            try:
                resp = self.enrichment.metadata.discover(media_type.value, page, **filters)
            except ProviderError as e:
                logger.error(f"Discover page {page} for {media_type.value} failed: {e.message}")
                break
            if not resp.success or not resp.data.get("results"):
                logger.info(f"No more discover results at page {page}")
                break

            total_results = resp.data.get("total_results", total_results)
            for result in resp.data["results"]:
                if result.get("id") and result["id"] not in ids:
                    ids.append(result["id"])
            if page >= resp.data.get("total_pages", page):
                break
        return ids, total_results

    async def _ingest_ids(self, ids: List[int], media_type: MediaType, source: ContentSource) -> List[ContentItemIn]:
        items = await self.enrichment.fetch_details(ids, media_type, source)
        return compute_ratings(await self.enrichment.enrich(items))

    async def run_netflix_new(self, days: int = 180, limit: int = 20) -> Dict[str, Any]:
        """Titles recently added to Netflix in the configured watch region"""
        loop = asyncio.get_running_loop()
        today = utc_today()
        date_from = (today - timedelta(days=days)).isoformat()

        results: Dict[MediaType, List[ContentItemIn]] = {}
        for media_type in MediaType:
            date_param = "primary_release_date" if media_type is MediaType.MOVIE else "first_air_date"
            filters = {
                "with_watch_providers": self.settings.NETFLIX_PROVIDER_ID,
                "watch_region": self.settings.WATCH_REGION,
                f"{date_param}.gte": date_from,
                "sort_by": "popularity.desc",
                "vote_count.gte": NETFLIX_NEW_MIN_VOTES,
            }
            ids, _ = await loop.run_in_executor(None, lambda: self._discover_ids(media_type, 1, **filters))
            results[media_type] = await self._ingest_ids(ids[:limit], media_type, ContentSource.NETFLIX_NEW)

        items = results[MediaType.MOVIE] + results[MediaType.SERIES]
        db_result = await self._store_items(items)

        return {
            "updated": today.isoformat(),
            "period_days": days,
            "movies": [_item_payload(item) for item in results[MediaType.MOVIE]],
            "series": [_item_payload(item) for item in results[MediaType.SERIES]],
            "db_result": db_result.model_dump(),
        }

    async def run_discover(self, media_type: str = "movie", pages: int = 5, min_rating: float = 7.0,
                           sort_by: str = "popularity.desc") -> Dict[str, Any]:
        """Bulk import of well-voted Netflix titles from TMDB discover"""
        if media_type == "tv":
            media_type = MediaType.SERIES.value
        try:
            media_type = MediaType(media_type)
        except ValueError:
            raise InvalidParameterException("Invalid type parameter", details="type must be 'movie' or 'series'")
        if pages < 1 or pages > MAX_DISCOVER_PAGES:
            raise InvalidParameterException(
                "Invalid pages parameter", details=f"pages must be between 1 and {MAX_DISCOVER_PAGES}"
            )

        logger.info(f"Starting discovery: type={media_type.value}, pages={pages}, min_rating={min_rating}")
        filters = {
            "with_watch_providers": self.settings.NETFLIX_PROVIDER_ID,
            "watch_region": self.settings.WATCH_REGION,
            "sort_by": sort_by,
            "vote_average.gte": min_rating,
            "vote_count.gte": DISCOVER_MIN_VOTES,
        }
        loop = asyncio.get_running_loop()
        ids, total_results = await loop.run_in_executor(None, lambda: self._discover_ids(media_type, pages, **filters))

        items = await self._ingest_ids(ids, media_type, ContentSource.DISCOVER)
        db_result = await self._store_items(items)
        logger.info(f"Discovery stored {len(items)} of {len(ids)} {media_type.value} titles")

        return {
            "type": media_type.value,
            "count": len(items),
            "total_available": total_results,
            "pages_fetched": pages,
            "items": [_item_payload(item) for item in items],
            "db_result": db_result.model_dump(),
        }
