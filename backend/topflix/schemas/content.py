from datetime import date
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from topflix.core.enums import MediaType, ContentSource, OrderBy

RATING_FIELDS = ("tmdb_rating", "imdb_rating", "rotten_tomatoes_rating", "metacritic_rating")

# Ingestion input
class ContentItemIn(BaseModel):
    """Item handed to the store by an ingestion pipeline.

    Accepts both field names and the wire names used by the pipelines
    (``type``, ``title_original``, ``year``, ``description``, ``providers``).
    A source rating of zero or below means "no rating" and is stored as None.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=False)

    external_id: int
    media_type: MediaType = Field(..., alias="type")
    title: str
    original_title: Optional[str] = Field(None, alias="title_original")
    release_year: Optional[int] = Field(None, alias="year")
    genre: Optional[str] = None
    synopsis: Optional[str] = Field(None, alias="description")
    poster_url: Optional[str] = None
    runtime: Optional[int] = None
    number_of_seasons: Optional[int] = None
    number_of_episodes: Optional[int] = None
    origin_country: List[str] = Field(default_factory=list)

    tmdb_rating: Optional[float] = None
    imdb_rating: Optional[float] = None
    rotten_tomatoes_rating: Optional[float] = None
    metacritic_rating: Optional[float] = None
    avg_rating: Optional[int] = None

    tmdb_url: Optional[str] = None
    imdb_id: Optional[str] = None
    streaming_providers: Optional[List[str]] = Field(None, alias="providers")

    rank: Optional[int] = None
    source: ContentSource = ContentSource.TOP10

    @field_validator("original_title", "genre", "synopsis", "poster_url", "tmdb_url", "imdb_id", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("release_year", "runtime", "number_of_seasons", "number_of_episodes", mode="before")
    @classmethod
    def blank_number_to_none(cls, value):
        if value == "" or value == 0:
            return None
        return value

    @field_validator(*RATING_FIELDS, "avg_rating")
    @classmethod
    def non_positive_is_missing(cls, value):
        if value is not None and value <= 0:
            return None
        return value

    @field_validator("streaming_providers")
    @classmethod
    def empty_providers_is_missing(cls, value):
        return value or None

    @property
    def natural_key(self):
        return (self.external_id, self.media_type.value)

# Read side
class ContentItem(BaseModel):
    """Stored content item as served by the read API"""
    model_config = ConfigDict(from_attributes=True)

    external_id: int
    media_type: str
    title: str
    original_title: Optional[str] = None
    release_year: Optional[int] = None
    genre: Optional[str] = None
    synopsis: Optional[str] = None
    poster_url: Optional[str] = None
    runtime: Optional[int] = None
    number_of_seasons: Optional[int] = None
    number_of_episodes: Optional[int] = None
    origin_country: List[str] = Field(default_factory=list)
    is_regional: bool = False

    tmdb_rating: Optional[float] = None
    imdb_rating: Optional[float] = None
    rotten_tomatoes_rating: Optional[int] = None
    metacritic_rating: Optional[int] = None
    avg_rating: Optional[int] = None
    quality_tier: str = "poor"

    first_seen: date
    last_seen: date
    appearances: int = 1
    last_rank: Optional[int] = None
    last_source: Optional[str] = None

    tmdb_url: Optional[str] = None
    imdb_id: Optional[str] = None
    streaming_providers: List[str] = Field(default_factory=list)

    @field_validator("origin_country", "streaming_providers", mode="before")
    @classmethod
    def null_list(cls, value):
        return value or []

class AppearanceEntry(BaseModel):
    """One row of the appearance history ledger"""
    model_config = ConfigDict(from_attributes=True)

    external_id: int
    media_type: str
    date: date
    source: str
    rank: Optional[int] = None
    rating: Optional[int] = None

class ContentStats(BaseModel):
    total: int = 0
    movie_count: int = 0
    series_count: int = 0
    quality_count: int = 0
    excellent_count: int = 0
    avg_rating: int = 0

class UpsertResult(BaseModel):
    inserted: int = 0
    updated: int = 0

# Filters
class QualityFilters(BaseModel):
    limit: int = 100
    offset: int = 0
    media_type: Optional[MediaType] = None
    min_rating: int = 70
    exclude_regional: bool = False
    order_by: OrderBy = OrderBy.RATING

class BestFilters(BaseModel):
    limit: int = 50
    media_type: Optional[MediaType] = None
    min_rating: int = 80
    min_appearances: int = 1
    exclude_regional: bool = False

class RecentFilters(BaseModel):
    limit: int = 50
    media_type: Optional[MediaType] = None
    days: int = 30
    min_rating: int = 70
    exclude_regional: bool = False

class HiddenGemsFilters(BaseModel):
    limit: int = 30
    media_type: Optional[MediaType] = None
    min_rating: int = 80
    max_appearances: int = 2
    exclude_regional: bool = False

class SearchFilters(BaseModel):
    limit: int = 30
    media_type: Optional[MediaType] = None

# Title resolution
class TitleResolution(BaseModel):
    """Outcome of resolving one ranked title against TMDB"""
    rank: int
    title: str
    media_type: MediaType
    item: Optional[ContentItemIn] = None
    error: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.item is not None
