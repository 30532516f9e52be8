"""
All SQLAlchemy models. Schema is the source of truth for new DBs.
Base.metadata.create_all() creates every table; no migration scripts needed for fresh installs.
"""
from app.models.user import User
from app.models.movie import Movie
from app.models.watchlist import WatchlistEntry
from app.models.audit_log import AuditLog

__all__ = [
    "User",
    "Movie",
    "WatchlistEntry",
    "AuditLog",
]
