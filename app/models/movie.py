"""Cached TMDB metadata. Created on first watchlist add, never updated in place."""
from sqlalchemy import Column, Integer, String, Text, Float, DateTime, JSON
from sqlalchemy.sql import func
from app.database import Base

MAX_CAST_ENTRIES = 20


class Movie(Base):
    __tablename__ = "movies"

    id = Column(Integer, primary_key=True, index=True)
    # TMDB id; the unique index is what settles concurrent find-or-create
    external_id = Column(String(32), unique=True, index=True, nullable=False)
    media_type = Column(String(10), nullable=False)  # movie | tv

    title = Column(String(500), nullable=False)
    overview = Column(Text, nullable=False, default="")
    poster_path = Column(String(500), nullable=True)
    release_date = Column(String(40), nullable=True)
    vote_average = Column(Float, nullable=True)
    genres = Column(JSON, nullable=True)  # [{"id": 18, "name": "Drama"}, ...]
    credits = Column(JSON, nullable=True)  # {"cast": [{name, character, profile_path}, ...]}

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
