import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import case, func, or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from topflix.core.cache import VersionedCache
from topflix.core.enums import MediaType, OrderBy
from topflix.core.exceptions import ConfigurationError
from topflix.core.ratings import weighted_rating, quality_tier, is_regional
from topflix.models.content import Content, AppearanceHistory
from topflix.repositories.base_repository import BaseRepository
from topflix.schemas.content import (
    RATING_FIELDS, ContentItemIn, ContentItem, AppearanceEntry, ContentStats, UpsertResult,
    QualityFilters, BestFilters, RecentFilters, HiddenGemsFilters, SearchFilters,
)

logger = logging.getLogger(__name__)

MAX_LIMIT = 500
MIN_SEARCH_LENGTH = 2

TTL_5MIN = 5 * 60
TTL_30MIN = 30 * 60
TTL_1H = 60 * 60
TTL_6H = 6 * 60 * 60

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

_content = Content.__table__
_history = AppearanceHistory.__table__

# Columns whose stored value survives an upsert that carries NULL
COALESCED_COLUMNS = RATING_FIELDS + ("avg_rating", "imdb_id", "streaming_providers")

# Columns overwritten by the most recent ingestion
OVERWRITTEN_COLUMNS = (
    "title", "original_title", "release_year", "genre", "synopsis", "poster_url",
    "runtime", "number_of_seasons", "number_of_episodes", "origin_country", "is_regional",
    "quality_tier", "last_rank", "last_source", "tmdb_url",
)

ORDERINGS = {
    OrderBy.RATING: (Content.avg_rating.desc(), Content.last_seen.desc()),
    OrderBy.RECENT: (Content.first_seen.desc(), Content.avg_rating.desc()),
    OrderBy.POPULAR: (Content.appearances.desc(), Content.avg_rating.desc()),
}


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def clamp_limit(limit: int, maximum: int = MAX_LIMIT) -> int:
    return max(1, min(int(limit), maximum))


def _round_half_up(value: Optional[float]) -> int:
    if value is None:
        return 0
    return int(math.floor(float(value) + 0.5))


def _as_int(value: Optional[float]) -> Optional[int]:
    return None if value is None else _round_half_up(value)


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _media_value(media_type: Optional[MediaType]) -> Optional[str]:
    return media_type.value if media_type is not None else None


class ContentStore(BaseRepository[Content]):
    """Content persistence: merge-upserts on the write side, cached queries on the read side.

    Reads go through the versioned cache first; a store error on a read path
    is logged and answered with an empty or neutral result. Write errors
    propagate so the ingestion pipeline can retry the whole batch.
    """

    def __init__(self, db: Session, cache: Optional[VersionedCache] = None):
        super().__init__(Content, db)
        self.cache = cache or VersionedCache(None)

    # ========================================================================
    # WRITE SIDE
    # ========================================================================

    def upsert_batch(self, items: Iterable[ContentItemIn], ingestion_date: Optional[date] = None) -> UpsertResult:
        """Upsert items and append their history rows in one transaction.

        The list-query cache is invalidated once, after the commit succeeds.
        """
        items = list(items)
        if not items:
            return UpsertResult()

        today = ingestion_date or utc_today()
        insert = self._dialect_insert()
        inserted = updated = 0

        try:
            known = self._load_rating_state({item.natural_key for item in items})
            for item in items:
                state = known.get(item.natural_key)
                if state is None:
                    inserted += 1
                else:
                    updated += 1

                row = self._build_row(item, state, today)
                known[item.natural_key] = {
                    field: row[field] if row[field] is not None else (state or {}).get(field)
                    for field in RATING_FIELDS + ("avg_rating",)
                }

                self.db.execute(self._content_upsert(insert, row, today))
                self.db.execute(self._history_insert(insert, item, row, today))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Batch upsert of {len(items)} items failed: {str(e)}")
            raise

        self.cache.invalidate_all()
        logger.info(f"Upserted {len(items)} items ({inserted} new, {updated} updated)")
        return UpsertResult(inserted=inserted, updated=updated)

    def _dialect_insert(self) -> Callable:
        dialect = self.db.get_bind().dialect.name
        try:
            return _DIALECT_INSERTS[dialect]
        except KeyError:
            raise ConfigurationError(f"Unsupported database dialect: {dialect}")

    def _load_rating_state(self, keys: set) -> Dict[Tuple[int, str], Dict[str, Any]]:
        """Stored ratings for the natural keys of a batch"""
        if not keys:
            return {}
        columns = [Content.external_id, Content.media_type, Content.avg_rating]
        columns += [getattr(Content, field) for field in RATING_FIELDS]
        rows = (
            self.db.query(*columns)
            .filter(Content.external_id.in_(sorted({external_id for external_id, _ in keys})))
            .all()
        )
        state = {}
        for row in rows:
            key = (row.external_id, row.media_type)
            if key in keys:
                state[key] = {field: getattr(row, field) for field in RATING_FIELDS + ("avg_rating",)}
        return state

    def _build_row(self, item: ContentItemIn, state: Optional[Dict[str, Any]], today: date) -> Dict[str, Any]:
        state = state or {}
        ratings = {}
        for field in RATING_FIELDS:
            incoming = getattr(item, field)
            ratings[field] = incoming if incoming is not None else state.get(field)

        avg_rating = weighted_rating(**ratings)
        if avg_rating is None:
            avg_rating = item.avg_rating if item.avg_rating is not None else state.get("avg_rating")

        return {
            "external_id": item.external_id,
            "media_type": item.media_type.value,
            "title": item.title,
            "original_title": item.original_title,
            "release_year": item.release_year,
            "genre": item.genre,
            "synopsis": item.synopsis,
            "poster_url": item.poster_url,
            "runtime": item.runtime,
            "number_of_seasons": item.number_of_seasons,
            "number_of_episodes": item.number_of_episodes,
            "origin_country": list(item.origin_country),
            "is_regional": is_regional(item.origin_country, item.original_title),
            # incoming values only; the upsert coalesces against the stored row
            "tmdb_rating": item.tmdb_rating,
            "imdb_rating": item.imdb_rating,
            "rotten_tomatoes_rating": _as_int(item.rotten_tomatoes_rating),
            "metacritic_rating": _as_int(item.metacritic_rating),
            "avg_rating": avg_rating,
            "quality_tier": quality_tier(avg_rating).value,
            "first_seen": today,
            "last_seen": today,
            "appearances": 1,
            "last_rank": item.rank,
            "last_source": item.source.value,
            "tmdb_url": item.tmdb_url,
            "imdb_id": item.imdb_id,
            "streaming_providers": item.streaming_providers,
        }

    def _content_upsert(self, insert: Callable, row: Dict[str, Any], today: date):
        stmt = insert(_content).values(**row)
        excluded = stmt.excluded

        set_ = {column: excluded[column] for column in OVERWRITTEN_COLUMNS}
        for column in COALESCED_COLUMNS:
            set_[column] = func.coalesce(excluded[column], _content.c[column])

        # at most one appearance per calendar day; dates never move backwards
        set_["appearances"] = case(
            (_content.c.last_seen < today, _content.c.appearances + 1),
            else_=_content.c.appearances,
        )
        set_["last_seen"] = case(
            (_content.c.last_seen < today, excluded.last_seen),
            else_=_content.c.last_seen,
        )
        set_["first_seen"] = case(
            (_content.c.first_seen > today, excluded.first_seen),
            else_=_content.c.first_seen,
        )
        set_["updated_at"] = func.now()

        return stmt.on_conflict_do_update(
            index_elements=[_content.c.external_id, _content.c.media_type],
            set_=set_,
        )

    def _history_insert(self, insert: Callable, item: ContentItemIn, row: Dict[str, Any], today: date):
        stmt = insert(_history).values(
            external_id=item.external_id,
            media_type=item.media_type.value,
            date=today,
            source=item.source.value,
            rank=item.rank,
            rating=row["avg_rating"],
        )
        return stmt.on_conflict_do_nothing(
            index_elements=[_history.c.external_id, _history.c.media_type, _history.c.date, _history.c.source]
        )

    # ========================================================================
    # READ SIDE
    # ========================================================================

    def _cached_items(self, cache_key: str, ttl: int, load: Callable[[], List[Content]]) -> List[ContentItem]:
        cached = self.cache.get(cache_key)
        if cached is not None:
            return [ContentItem.model_validate(entry) for entry in cached]

        try:
            items = [ContentItem.model_validate(row) for row in load()]
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Query {cache_key} failed: {str(e)}")
            return []

        self.cache.set(cache_key, [item.model_dump(mode="json") for item in items], ttl)
        return items

    def _apply_common(self, query, media_type: Optional[str], exclude_regional: bool):
        if media_type:
            query = query.filter(Content.media_type == media_type)
        if exclude_regional:
            query = query.filter(Content.is_regional.is_(False))
        return query

    def query_quality(self, filters: QualityFilters) -> List[ContentItem]:
        """Rated at least ``min_rating``, paginated, in one of three orderings"""
        limit = clamp_limit(filters.limit)
        offset = max(0, filters.offset)
        media_type = _media_value(filters.media_type)
        order_by = OrderBy(filters.order_by)
        cache_key = (
            f"quality:{media_type}:{filters.min_rating}:{filters.exclude_regional}:"
            f"{order_by.value}:{limit}:{offset}"
        )

        def load():
            query = self.query().filter(Content.avg_rating >= filters.min_rating)
            query = self._apply_common(query, media_type, filters.exclude_regional)
            return query.order_by(*ORDERINGS[order_by]).limit(limit).offset(offset).all()

        return self._cached_items(cache_key, TTL_1H, load)

    def query_best_all_time(self, filters: BestFilters) -> List[ContentItem]:
        """Highly rated items that kept coming back"""
        limit = clamp_limit(filters.limit)
        media_type = _media_value(filters.media_type)
        cache_key = (
            f"best:{media_type}:{filters.min_rating}:{filters.min_appearances}:"
            f"{filters.exclude_regional}:{limit}"
        )

        def load():
            query = self.query().filter(
                Content.avg_rating >= filters.min_rating,
                Content.appearances >= filters.min_appearances,
            )
            query = self._apply_common(query, media_type, filters.exclude_regional)
            return query.order_by(Content.avg_rating.desc(), Content.appearances.desc()).limit(limit).all()

        return self._cached_items(cache_key, TTL_6H, load)

    def query_recent(self, filters: RecentFilters) -> List[ContentItem]:
        """Quality items first seen within the last ``days`` days"""
        limit = clamp_limit(filters.limit)
        media_type = _media_value(filters.media_type)
        cache_key = (
            f"recent:{media_type}:{filters.days}:{filters.min_rating}:"
            f"{filters.exclude_regional}:{limit}"
        )

        def load():
            cutoff = utc_today() - timedelta(days=filters.days)
            query = self.query().filter(
                Content.avg_rating >= filters.min_rating,
                Content.first_seen >= cutoff,
            )
            query = self._apply_common(query, media_type, filters.exclude_regional)
            return query.order_by(Content.first_seen.desc(), Content.avg_rating.desc()).limit(limit).all()

        return self._cached_items(cache_key, TTL_1H, load)

    def query_hidden_gems(self, filters: HiddenGemsFilters) -> List[ContentItem]:
        """Highly rated items that rarely showed up in the charts"""
        limit = clamp_limit(filters.limit)
        media_type = _media_value(filters.media_type)
        cache_key = (
            f"gems:{media_type}:{filters.min_rating}:{filters.max_appearances}:"
            f"{filters.exclude_regional}:{limit}"
        )

        def load():
            query = self.query().filter(
                Content.avg_rating >= filters.min_rating,
                Content.appearances <= filters.max_appearances,
            )
            query = self._apply_common(query, media_type, filters.exclude_regional)
            return query.order_by(Content.avg_rating.desc(), Content.last_seen.desc()).limit(limit).all()

        return self._cached_items(cache_key, TTL_1H, load)

    def get_by_id(self, external_id: int, media_type: str) -> Optional[ContentItem]:
        media_type = MediaType(media_type).value
        cache_key = f"content:{external_id}:{media_type}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return ContentItem.model_validate(cached)

        try:
            row = self.filter_one_by(external_id=external_id, media_type=media_type)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to get content {external_id}/{media_type}: {str(e)}")
            return None

        if row is None:
            return None

        item = ContentItem.model_validate(row)
        self.cache.set(cache_key, item.model_dump(mode="json"), TTL_1H)
        return item

    def get_history(self, external_id: int, media_type: str, limit: int = 50) -> List[AppearanceEntry]:
        """Appearance ledger for one item, newest first (never cached)"""
        try:
            rows = (
                self.db.query(AppearanceHistory)
                .filter(
                    AppearanceHistory.external_id == external_id,
                    AppearanceHistory.media_type == MediaType(media_type).value,
                )
                .order_by(AppearanceHistory.date.desc(), AppearanceHistory.id.desc())
                .limit(clamp_limit(limit))
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to get history for {external_id}/{media_type}: {str(e)}")
            return []
        return [AppearanceEntry.model_validate(row) for row in rows]

    def get_similar(self, item: ContentItem, limit: int = 6) -> List[ContentItem]:
        """Rated items of the same type sharing the item's leading genre"""
        limit = clamp_limit(limit)
        first_genre = (item.genre or "").split(",")[0].strip()
        cache_key = f"similar:{item.external_id}:{item.media_type}:{limit}"

        def load():
            query = self.query().filter(
                Content.media_type == item.media_type,
                Content.external_id != item.external_id,
                Content.avg_rating.isnot(None),
            )
            if first_genre:
                query = query.filter(Content.genre.ilike(f"%{_escape_like(first_genre)}%", escape="\\"))
            return query.order_by(Content.avg_rating.desc(), Content.appearances.desc()).limit(limit).all()

        return self._cached_items(cache_key, TTL_1H, load)

    def search_by_title(self, query: str, filters: Optional[SearchFilters] = None) -> List[ContentItem]:
        """Case-insensitive substring match on title and original title, prefix hits first"""
        filters = filters or SearchFilters()
        text = (query or "").strip()
        if len(text) < MIN_SEARCH_LENGTH:
            return []

        limit = clamp_limit(filters.limit)
        media_type = _media_value(filters.media_type)
        cache_key = f"search:{text.lower()}:{media_type}:{limit}"
        escaped = _escape_like(text)

        def load():
            contains = f"%{escaped}%"
            prefix = f"{escaped}%"
            q = self.query().filter(or_(
                Content.title.ilike(contains, escape="\\"),
                Content.original_title.ilike(contains, escape="\\"),
            ))
            q = self._apply_common(q, media_type, False)
            prefix_first = case(
                (or_(Content.title.ilike(prefix, escape="\\"), Content.original_title.ilike(prefix, escape="\\")), 0),
                else_=1,
            )
            return q.order_by(prefix_first, Content.avg_rating.desc().nulls_last()).limit(limit).all()

        return self._cached_items(cache_key, TTL_30MIN, load)

    def get_stats(self) -> ContentStats:
        cache_key = "stats:overview"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return ContentStats.model_validate(cached)

        try:
            row = self.db.query(
                func.count(Content.id),
                func.sum(case((Content.media_type == MediaType.MOVIE.value, 1), else_=0)),
                func.sum(case((Content.media_type == MediaType.SERIES.value, 1), else_=0)),
                func.sum(case((Content.avg_rating >= 70, 1), else_=0)),
                func.sum(case((Content.avg_rating >= 80, 1), else_=0)),
                func.avg(Content.avg_rating),
            ).one()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to get stats: {str(e)}")
            return ContentStats()

        total, movies, series, quality, excellent, average = row
        stats = ContentStats(
            total=total or 0,
            movie_count=movies or 0,
            series_count=series or 0,
            quality_count=quality or 0,
            excellent_count=excellent or 0,
            avg_rating=_round_half_up(average),
        )
        self.cache.set(cache_key, stats.model_dump(), TTL_5MIN)
        return stats
