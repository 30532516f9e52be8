"""User accounts. Rows exist only for registrations that passed email verification."""
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    is_verified = Column(Boolean, default=False, nullable=False)
    profile_picture = Column(String(500), nullable=True)

    # Ordered by insertion; the (user_id, movie_id) unique constraint lives on WatchlistEntry
    watchlist = relationship(
        "WatchlistEntry",
        back_populates="user",
        order_by="WatchlistEntry.id",
        cascade="all, delete-orphan",
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
