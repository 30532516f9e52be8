"""Watchlist: cached TMDB metadata plus per-user membership.

Movies are cached by TMDB id and created the first time anyone adds them.
Two requests can both miss the cache for the same id; the unique index on
movies.external_id lets exactly one insert win and the other re-reads it.
"""
from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import AuthError, ConflictError, NotFoundError, StoreError, ValidationError
from app.models.movie import Movie, MAX_CAST_ENTRIES
from app.models.user import User
from app.models.watchlist import WatchlistEntry
from app.services.sessions import RequestContext
from app.services.tmdb import MEDIA_TYPES

logger = logging.getLogger("uvicorn.error")


def movie_from_details(external_id: str, media_type: str, details: dict) -> Movie:
    """Build a Movie row from a TMDB details payload (movie or tv)."""
    cast = ((details.get("credits") or {}).get("cast") or [])[:MAX_CAST_ENTRIES]
    return Movie(
        external_id=str(external_id),
        media_type=media_type,
        title=details.get("title") or details.get("name") or "",
        overview=details.get("overview") or "",
        poster_path=details.get("poster_path"),
        release_date=details.get("release_date") or details.get("first_air_date"),
        vote_average=details.get("vote_average"),
        genres=details.get("genres") or [],
        credits={
            "cast": [
                {
                    "name": person.get("name"),
                    "character": person.get("character"),
                    "profile_path": person.get("profile_path"),
                }
                for person in cast
            ]
        },
    )


def serialize_movie(movie: Movie) -> dict:
    return {
        "externalId": movie.external_id,
        "mediaType": movie.media_type,
        "title": movie.title,
        "overview": movie.overview,
        "posterPath": movie.poster_path,
        "releaseDate": movie.release_date,
        "voteAverage": movie.vote_average,
        "genres": movie.genres or [],
    }


class WatchlistService:
    def __init__(self, db: Session, provider):
        self.db = db
        self.provider = provider

    def _find_movie(self, external_id: str) -> Movie | None:
        return self.db.query(Movie).filter(Movie.external_id == str(external_id)).first()

    def _require_user(self, ctx: RequestContext, message: str) -> User:
        if not ctx.is_authenticated:
            raise AuthError(message)
        user = self.db.query(User).filter(User.id == ctx.session.user_id).first()
        if not user:
            raise NotFoundError("User not found.")
        return user

    def resolve_movie(self, external_id: str, media_type: str) -> Movie:
        """Return the cached Movie for a TMDB id, fetching and caching it on first use."""
        external_id = str(external_id).strip()
        movie = self._find_movie(external_id)
        if movie:
            return movie
        details = self.provider.fetch_details(external_id, media_type)
        movie = movie_from_details(external_id, media_type, details)
        self.db.add(movie)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            movie = self._find_movie(external_id)
            if movie is None:
                raise StoreError(f"Movie {external_id} insert conflicted but no row exists")
            logger.info("[Watchlist] Movie %s created concurrently; using existing row id=%s", external_id, movie.id)
            return movie
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Caching movie {external_id} failed: {e}") from e
        self.db.refresh(movie)
        logger.info("[Watchlist] Cached %s %s (%s) as id=%s", media_type, external_id, movie.title, movie.id)
        return movie

    def _has_entry(self, user_id: int, movie_id: int) -> bool:
        return (
            self.db.query(WatchlistEntry.id)
            .filter(WatchlistEntry.user_id == user_id, WatchlistEntry.movie_id == movie_id)
            .first()
            is not None
        )

    def add(self, ctx: RequestContext, external_id: str, media_type: str) -> Movie:
        user = self._require_user(ctx, "You must be logged in to add to your watchlist.")
        if media_type not in MEDIA_TYPES:
            raise ValidationError(f"media_type must be one of: {', '.join(MEDIA_TYPES)}.")
        movie = self.resolve_movie(external_id, media_type)
        if self._has_entry(user.id, movie.id):
            raise ConflictError("Item already in watchlist.")
        self.db.add(WatchlistEntry(user_id=user.id, movie_id=movie.id))
        try:
            self.db.commit()
        except IntegrityError as e:
            # Same movie added by a concurrent request for this user
            self.db.rollback()
            raise ConflictError("Item already in watchlist.") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Adding movie {external_id} for user {user.id} failed: {e}") from e
        return movie

    def remove(self, ctx: RequestContext, external_id: str) -> None:
        user = self._require_user(ctx, "You must be logged in to remove from your watchlist.")
        movie = self._find_movie(str(external_id).strip())
        if not movie:
            raise NotFoundError("Item not found.")
        try:
            self.db.query(WatchlistEntry).filter(
                WatchlistEntry.user_id == user.id,
                WatchlistEntry.movie_id == movie.id,
            ).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Removing movie {external_id} for user {user.id} failed: {e}") from e

    def check(self, ctx: RequestContext, external_id: str) -> bool:
        if not ctx.is_authenticated:
            return False
        movie = self._find_movie(str(external_id).strip())
        if not movie:
            return False
        return self._has_entry(ctx.session.user_id, movie.id)

    def list_movies(self, ctx: RequestContext) -> list[Movie]:
        user = self._require_user(ctx, "You must be logged in to view your watchlist.")
        return [entry.movie for entry in user.watchlist]
