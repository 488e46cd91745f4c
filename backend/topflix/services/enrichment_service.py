import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from topflix.core.config import get_settings
from topflix.core.enums import MediaType, ContentSource
from topflix.core.interfaces import MetadataServiceInterface, RatingsServiceInterface, ProviderError
from topflix.core.provider_service import ProviderServiceFactory
from topflix.core.ratings import weighted_rating
from topflix.schemas.content import RATING_FIELDS, ContentItemIn, TitleResolution

logger = logging.getLogger(__name__)

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w300"
TMDB_WEB_URL = "https://www.themoviedb.org"
RECENT_RELEASE_YEARS = 3
UNRESOLVED = "Data not found"

_LEADING_ARTICLE = re.compile(r"^(the|a|an)\s+", re.IGNORECASE)
_SUBTITLE = re.compile(r"\s*(:|\s-\s).*$")
_NON_ALNUM = re.compile(r"[^\w]+", re.UNICODE)


def normalize_title(title: str) -> str:
    """'The Witcher: Season 3' -> 'Witcher'"""
    text = _SUBTITLE.sub("", title.strip())
    return _LEADING_ARTICLE.sub("", text).strip()


def _compare_key(title: Optional[str]) -> str:
    return _NON_ALNUM.sub("", (title or "").casefold())


def _release_date(result: Dict[str, Any]) -> str:
    return result.get("release_date") or result.get("first_air_date") or ""


def _release_year(result: Dict[str, Any]) -> Optional[int]:
    value = _release_date(result)[:4]
    return int(value) if value.isdigit() else None


def provider_slug(name: str) -> str:
    """'Disney Plus' -> 'disney-plus'"""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def pick_recent_match(results: Sequence[Dict[str, Any]], title: str, min_year: int) -> Optional[Dict[str, Any]]:
    """Most recent search hit released since ``min_year`` whose title matches"""
    wanted = {_compare_key(title), _compare_key(normalize_title(title))}
    candidates = []
    for result in results:
        year = _release_year(result)
        if year is None or year < min_year:
            continue
        names = {
            _compare_key(result.get(field))
            for field in ("title", "name", "original_title", "original_name")
        }
        if wanted & names:
            candidates.append(result)
    if not candidates:
        return None
    return max(candidates, key=_release_date)


def build_item(details: Dict[str, Any], media_type: MediaType, source: ContentSource,
               rank: Optional[int] = None, region: str = "CZ") -> ContentItemIn:
    """Map a TMDB detail body (with external ids and watch providers) to an upsert item"""
    external_id = details["id"]
    path = media_type.tmdb_path

    genres = [g.get("name") for g in details.get("genres") or [] if g.get("name")]
    origin_country = details.get("origin_country") or [
        c.get("iso_3166_1") for c in details.get("production_countries") or [] if c.get("iso_3166_1")
    ]
    vote_average = details.get("vote_average")
    poster_path = details.get("poster_path")
    imdb_id = details.get("imdb_id") or (details.get("external_ids") or {}).get("imdb_id")

    regional = ((details.get("watch/providers") or {}).get("results") or {}).get(region) or {}
    providers = []
    for entry in regional.get("flatrate") or []:
        slug = provider_slug(entry.get("provider_name") or "")
        if slug and slug not in providers:
            providers.append(slug)

    item = {
        "external_id": external_id,
        "media_type": media_type,
        "title": details.get("title") or details.get("name"),
        "original_title": details.get("original_title") or details.get("original_name"),
        "release_year": _release_year(details),
        "genre": ", ".join(genres[:3]) or None,
        "synopsis": details.get("overview"),
        "poster_url": f"{POSTER_BASE_URL}{poster_path}" if poster_path else None,
        "origin_country": origin_country,
        "tmdb_rating": round(float(vote_average), 1) if vote_average else None,
        "tmdb_url": f"{TMDB_WEB_URL}/{path}/{external_id}",
        "imdb_id": imdb_id,
        "streaming_providers": providers,
        "rank": rank,
        "source": source,
    }
    if media_type is MediaType.MOVIE:
        item["runtime"] = details.get("runtime")
    else:
        item["number_of_seasons"] = details.get("number_of_seasons")
        item["number_of_episodes"] = details.get("number_of_episodes")
    return ContentItemIn(**item)


def compute_ratings(items: Iterable[ContentItemIn]) -> List[ContentItemIn]:
    """Fill avg_rating from the source ratings each item carries"""
    rated = []
    for item in items:
        avg = weighted_rating(**{field: getattr(item, field) for field in RATING_FIELDS})
        rated.append(item.model_copy(update={"avg_rating": avg if avg is not None else item.avg_rating}))
    return rated


class EnrichmentService:
    """Resolves titles against TMDB and merges OMDb ratings into items.

    Provider calls run in fixed-size batches: at most ``batch_size`` calls
    are in flight, and a batch starts only once the previous one has fully
    resolved. A failing call never raises out of this service; the item
    simply goes through without that enrichment.
    """

    def __init__(self, metadata: Optional[MetadataServiceInterface] = None,
                 ratings: Optional[RatingsServiceInterface] = None,
                 batch_size: Optional[int] = None, region: Optional[str] = None):
        settings = get_settings()
        self.metadata = metadata
        self.ratings = ratings
        self.batch_size = max(1, batch_size or settings.ENRICH_BATCH_SIZE)
        self.region = region or settings.WATCH_REGION

    @classmethod
    def from_settings(cls) -> "EnrichmentService":
        return cls(
            metadata=ProviderServiceFactory.create_metadata_service(),
            ratings=ProviderServiceFactory.create_ratings_service(),
        )

    async def _run_in_batches(self, values: Sequence[Any], worker: Callable[[Any], Any],
                              batch_size: Optional[int] = None) -> List[Any]:
        """Run a blocking worker over values, ``batch_size`` at a time.

        Exceptions are returned in place of results so one failure cannot
        cancel its siblings.
        """
        size = max(1, batch_size or self.batch_size)
        loop = asyncio.get_running_loop()
        results: List[Any] = []
        for start in range(0, len(values), size):
            batch = values[start:start + size]
            results.extend(await asyncio.gather(
                *[loop.run_in_executor(None, worker, value) for value in batch],
                return_exceptions=True,
            ))
        return results

    # ------------------------------------------------------------------
    # OMDb ratings
    # ------------------------------------------------------------------

    async def enrich(self, items: Sequence[ContentItemIn], batch_size: Optional[int] = None) -> List[ContentItemIn]:
        """Merge OMDb ratings into every item that has an IMDb id"""
        items = list(items)
        if self.ratings is None or not items:
            return items

        results = await self._run_in_batches(items, self._enrich_one, batch_size)
        enriched = []
        for item, result in zip(items, results):
            if isinstance(result, BaseException):
                logger.error(f"Rating enrichment crashed for {item.imdb_id}: {str(result)}")
                enriched.append(item)
            else:
                enriched.append(result)
        return enriched

    def _enrich_one(self, item: ContentItemIn) -> ContentItemIn:
        if not item.imdb_id:
            return item
        try:
            ratings = self.ratings.get_ratings(item.imdb_id)
        except ProviderError as e:
            logger.error(f"OMDb error for {item.imdb_id}: {e.message}")
            return item
        if not ratings:
            return item
        update = {field: ratings[field] for field in RATING_FIELDS if ratings.get(field)}
        return item.model_copy(update=update)

    # ------------------------------------------------------------------
    # TMDB resolution
    # ------------------------------------------------------------------

    async def fetch_and_enrich_titles(self, ranked_titles: Sequence[Tuple[int, str]], media_type: MediaType,
                                      source: ContentSource = ContentSource.TOP10) -> List[TitleResolution]:
        """Resolve (rank, title) pairs to items; failures become unresolved markers"""
        media_type = MediaType(media_type)
        ranked_titles = list(ranked_titles)
        results = await self._run_in_batches(
            ranked_titles, lambda entry: self._resolve_title(entry[0], entry[1], media_type, source)
        )

        resolutions = []
        for (rank, title), result in zip(ranked_titles, results):
            if isinstance(result, BaseException):
                logger.error(f"Resolving '{title}' crashed: {str(result)}")
                result = TitleResolution(rank=rank, title=title, media_type=media_type, error=UNRESOLVED)
            resolutions.append(result)
        return resolutions

    async def fetch_details(self, external_ids: Sequence[int], media_type: MediaType,
                            source: ContentSource) -> List[ContentItemIn]:
        """Detail lookups for known ids; ids that fail are skipped"""
        media_type = MediaType(media_type)
        results = await self._run_in_batches(
            list(external_ids), lambda external_id: self._detail_item(external_id, media_type, source)
        )
        items = []
        for external_id, result in zip(external_ids, results):
            if isinstance(result, BaseException):
                logger.error(f"Details for {external_id} failed: {str(result)}")
            elif result is not None:
                items.append(result)
        return items

    def _resolve_title(self, rank: int, title: str, media_type: MediaType,
                       source: ContentSource) -> TitleResolution:
        try:
            match = self._find_match(title, media_type)
            item = self._detail_item(match["id"], media_type, source, rank) if match else None
        except ProviderError as e:
            logger.error(f"TMDB error for '{title}': {e.message}")
            item = None

        if item is None:
            return TitleResolution(rank=rank, title=title, media_type=media_type, error=UNRESOLVED)
        return TitleResolution(rank=rank, title=title, media_type=media_type, item=item)

    def _search(self, query: str, media_type: MediaType) -> List[Dict[str, Any]]:
        resp = self.metadata.search(query, media_type.value)
        if not resp.success:
            return []
        return resp.data.get("results") or []

    def _find_match(self, title: str, media_type: MediaType) -> Optional[Dict[str, Any]]:
        min_year = datetime.now(timezone.utc).year - RECENT_RELEASE_YEARS

        results = self._search(title, media_type)
        match = pick_recent_match(results, title, min_year) or (results[0] if results else None)
        if match:
            return match

        normalized = normalize_title(title)
        if not normalized or normalized.casefold() == title.strip().casefold():
            return None

        logger.info(f"Retrying '{title}' as '{normalized}'")
        results = self._search(normalized, media_type)
        return pick_recent_match(results, normalized, min_year) or (results[0] if results else None)

    def _detail_item(self, external_id: int, media_type: MediaType, source: ContentSource,
                     rank: Optional[int] = None) -> Optional[ContentItemIn]:
        try:
            resp = self.metadata.get_details(external_id, media_type.value)
        except ProviderError as e:
            logger.error(f"TMDB details for {external_id} failed: {e.message}")
            return None
        if not resp.success:
            return None
        return build_item(resp.data, media_type, source, rank, self.region)
