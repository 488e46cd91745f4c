import logging
from typing import Any, Dict, List, Mapping, Optional

from topflix.core.enums import MediaType, OrderBy
from topflix.core.exceptions import BaseAppException, InvalidParameterException, ContentNotFoundException
from topflix.repositories.content_store import ContentStore, utc_today
from topflix.schemas.content import (
    ContentItem, QualityFilters, BestFilters, RecentFilters, HiddenGemsFilters, SearchFilters,
)

logger = logging.getLogger(__name__)

ARCHIVE_MAX_LIMIT = 500
BEST_MAX_LIMIT = 200
LIST_MAX_LIMIT = 100
HISTORY_LIMIT = 50
SIMILAR_LIMIT = 6
MIN_QUERY_LENGTH = 2


def _parse_int(params: Mapping[str, Any], name: str, default: int,
               minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    raw = params.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InvalidParameterException(f"Invalid {name}", details=f"{name} must be an integer, got '{raw}'")
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        bounds = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
        raise InvalidParameterException(f"Invalid {name}", details=f"{name} must be {bounds}")
    return value


def _parse_media_type(params: Mapping[str, Any], required: bool = False) -> Optional[MediaType]:
    raw = params.get("type")
    if raw is None or raw == "":
        if required:
            raise InvalidParameterException("Missing type", details="type is required (movie or series)")
        return None
    try:
        return MediaType(raw)
    except ValueError:
        raise InvalidParameterException("Invalid type", details="type must be 'movie' or 'series'")


def _parse_order_by(params: Mapping[str, Any]) -> OrderBy:
    raw = params.get("orderBy") or OrderBy.RATING.value
    try:
        return OrderBy(raw)
    except ValueError:
        allowed = ", ".join(o.value for o in OrderBy)
        raise InvalidParameterException("Invalid orderBy", details=f"orderBy must be one of: {allowed}")


def _parse_flag(params: Mapping[str, Any], name: str) -> bool:
    return params.get(name) == "true"


def _error(e: BaseAppException) -> Dict[str, Any]:
    return {
        "success": False,
        "status_code": e.status_code,
        "error": e.message,
        "details": e.details,
    }


class QueryService:
    """Read API: raw query-string parameters in, response dicts out.

    Bad parameters never raise; they come back as a ``success: False``
    result carrying a 400 status code.
    """

    def __init__(self, store: ContentStore):
        self.store = store

    def _list_response(self, items: List[ContentItem], meta: Dict[str, Any]) -> Dict[str, Any]:
        meta = {"count": len(items), **meta}
        return {
            "success": True,
            "meta": meta,
            "data": [item.model_dump(mode="json") for item in items],
            "updated": utc_today().isoformat(),
        }

    def archive(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            filters = QualityFilters(
                limit=_parse_int(params, "limit", 100, 1, ARCHIVE_MAX_LIMIT),
                offset=_parse_int(params, "offset", 0, 0),
                media_type=_parse_media_type(params),
                min_rating=_parse_int(params, "minRating", 70, 0, 100),
                exclude_regional=_parse_flag(params, "excludeRegional"),
                order_by=_parse_order_by(params),
            )
        except InvalidParameterException as e:
            return _error(e)

        items = self.store.query_quality(filters)
        return self._list_response(items, {
            "limit": filters.limit,
            "offset": filters.offset,
            "type": filters.media_type.value if filters.media_type else None,
            "minRating": filters.min_rating,
            "excludeRegional": filters.exclude_regional,
            "orderBy": filters.order_by.value,
        })

    def best(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            filters = BestFilters(
                limit=_parse_int(params, "limit", 50, 1, BEST_MAX_LIMIT),
                media_type=_parse_media_type(params),
                min_rating=_parse_int(params, "minRating", 80, 0, 100),
                min_appearances=_parse_int(params, "minAppearances", 1, 1),
                exclude_regional=_parse_flag(params, "excludeRegional"),
            )
        except InvalidParameterException as e:
            return _error(e)

        items = self.store.query_best_all_time(filters)
        return self._list_response(items, {
            "limit": filters.limit,
            "offset": 0,
            "type": filters.media_type.value if filters.media_type else None,
            "minRating": filters.min_rating,
            "minAppearances": filters.min_appearances,
            "excludeRegional": filters.exclude_regional,
        })

    def recent(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            filters = RecentFilters(
                limit=_parse_int(params, "limit", 50, 1, LIST_MAX_LIMIT),
                media_type=_parse_media_type(params),
                days=_parse_int(params, "days", 30, 1, 365),
                min_rating=_parse_int(params, "minRating", 70, 0, 100),
                exclude_regional=_parse_flag(params, "excludeRegional"),
            )
        except InvalidParameterException as e:
            return _error(e)

        items = self.store.query_recent(filters)
        return self._list_response(items, {
            "limit": filters.limit,
            "offset": 0,
            "type": filters.media_type.value if filters.media_type else None,
            "days": filters.days,
            "minRating": filters.min_rating,
            "excludeRegional": filters.exclude_regional,
        })

    def hidden_gems(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            filters = HiddenGemsFilters(
                limit=_parse_int(params, "limit", 30, 1, LIST_MAX_LIMIT),
                media_type=_parse_media_type(params),
                min_rating=_parse_int(params, "minRating", 80, 0, 100),
                max_appearances=_parse_int(params, "maxAppearances", 2, 1),
                exclude_regional=_parse_flag(params, "excludeRegional"),
            )
        except InvalidParameterException as e:
            return _error(e)

        items = self.store.query_hidden_gems(filters)
        return self._list_response(items, {
            "limit": filters.limit,
            "offset": 0,
            "type": filters.media_type.value if filters.media_type else None,
            "minRating": filters.min_rating,
            "maxAppearances": filters.max_appearances,
            "excludeRegional": filters.exclude_regional,
        })

    def search(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = (params.get("q") or "").strip()
        try:
            if len(query) < MIN_QUERY_LENGTH:
                raise InvalidParameterException(
                    "Invalid q", details=f"q must be at least {MIN_QUERY_LENGTH} characters"
                )
            filters = SearchFilters(
                limit=_parse_int(params, "limit", 30, 1, LIST_MAX_LIMIT),
                media_type=_parse_media_type(params),
            )
        except InvalidParameterException as e:
            return _error(e)

        items = self.store.search_by_title(query, filters)
        return self._list_response(items, {
            "limit": filters.limit,
            "offset": 0,
            "type": filters.media_type.value if filters.media_type else None,
            "q": query,
        })

    def detail(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        """One item with its appearance history and similar titles"""
        try:
            if not params.get("id"):
                raise InvalidParameterException("Missing id", details="id is required")
            external_id = _parse_int(params, "id", 0, 1)
            media_type = _parse_media_type(params, required=True)

            item = self.store.get_by_id(external_id, media_type.value)
            if item is None:
                raise ContentNotFoundException(f"Content {external_id} ({media_type.value}) not found")
        except BaseAppException as e:
            return _error(e)

        history = self.store.get_history(external_id, media_type.value, HISTORY_LIMIT)
        similar = self.store.get_similar(item, SIMILAR_LIMIT)
        return {
            "success": True,
            "data": {
                "item": item.model_dump(mode="json"),
                "history": [entry.model_dump(mode="json") for entry in history],
                "similar": [entry.model_dump(mode="json") for entry in similar],
            },
            "updated": utc_today().isoformat(),
        }

    def stats(self) -> Dict[str, Any]:
        return {
            "success": True,
            "data": self.store.get_stats().model_dump(),
            "updated": utc_today().isoformat(),
        }
