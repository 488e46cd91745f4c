from sqlalchemy import (
    Column, Integer, String, Boolean, Float, Date, DateTime, Text, JSON,
    UniqueConstraint, Index,
)
from sqlalchemy.sql import func

from topflix.db import Base

class Content(Base):
    """One row per (external_id, media_type) natural key"""
    __tablename__ = "content"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(Integer, nullable=False)  # TMDB id
    media_type = Column(String(10), nullable=False)  # "movie" or "series"

    # Descriptive metadata (TMDB)
    title = Column(String, nullable=False)
    original_title = Column(String)
    release_year = Column(Integer)
    genre = Column(String)  # comma separated, first three genres
    synopsis = Column(Text)
    poster_url = Column(String)
    runtime = Column(Integer)
    number_of_seasons = Column(Integer)
    number_of_episodes = Column(Integer)
    origin_country = Column(JSON, nullable=False, default=list)
    is_regional = Column(Boolean, nullable=False, default=False)

    # Ratings
    tmdb_rating = Column(Float)
    imdb_rating = Column(Float)
    rotten_tomatoes_rating = Column(Integer)
    metacritic_rating = Column(Integer)
    avg_rating = Column(Integer, index=True)
    quality_tier = Column(String(20), nullable=False, default="poor")

    # Lifecycle
    first_seen = Column(Date, nullable=False, index=True)
    last_seen = Column(Date, nullable=False)
    appearances = Column(Integer, nullable=False, default=1)
    last_rank = Column(Integer)
    last_source = Column(String(20), nullable=False, default="top10")

    # External links
    tmdb_url = Column(String)
    imdb_id = Column(String(20))
    streaming_providers = Column(JSON(none_as_null=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("external_id", "media_type", name="uq_content_natural_key"),
        Index("ix_content_type_rating", "media_type", "avg_rating"),
    )

class AppearanceHistory(Base):
    """Append-only ledger: one row per item, date and source"""
    __tablename__ = "appearance_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(Integer, nullable=False)
    media_type = Column(String(10), nullable=False)
    date = Column(Date, nullable=False)
    source = Column(String(20), nullable=False)
    rank = Column(Integer)
    rating = Column(Integer)

    __table_args__ = (
        UniqueConstraint("external_id", "media_type", "date", "source", name="uq_history_entry"),
        Index("ix_history_item", "external_id", "media_type"),
    )
