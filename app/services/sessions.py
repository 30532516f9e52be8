"""Login sessions.

A session is a signed JWT (see app.services.auth) whose `sid` must also be
present in the server-side registry, so logout takes effect immediately even
though the token itself has not expired.
"""
from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from app.errors import AuthError
from app.models.user import User
from app.services.audit_log import record_failed_attempt
from app.services.auth import create_session_token, decode_token, verify_password

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class UserSession:
    session_id: str
    user_id: int
    username: str
    profile_picture: str | None
    issued_at: datetime
    expires_at: datetime

    def to_public(self) -> dict:
        return {"id": self.user_id, "username": self.username, "profile_picture": self.profile_picture}


@dataclass
class RequestContext:
    """Per-request caller state, passed explicitly into service calls."""

    session: UserSession | None = None
    token: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None


class SessionManager:
    def __init__(self, max_age: timedelta):
        self.max_age = max_age
        self._lock = threading.Lock()
        self._sessions: dict[str, UserSession] = {}

    def issue(self, user: User) -> tuple[UserSession, str]:
        now = datetime.now(timezone.utc)
        session = UserSession(
            session_id=secrets.token_urlsafe(24),
            user_id=user.id,
            username=user.username,
            profile_picture=user.profile_picture,
            issued_at=now,
            expires_at=now + self.max_age,
        )
        with self._lock:
            self._sessions[session.session_id] = session
        token = create_session_token(
            session.session_id, user.id, user.username, user.profile_picture, session.expires_at
        )
        return session, token

    def resolve(self, token: str | None) -> UserSession | None:
        """Return the live session for a token, or None if it is forged, expired or destroyed."""
        payload = decode_token(token) if token else None
        if not payload:
            return None
        sid = payload.get("sid")
        with self._lock:
            session = self._sessions.get(sid) if sid else None
        if session is None or session.expires_at <= datetime.now(timezone.utc):
            return None
        if str(session.user_id) != str(payload.get("sub")):
            return None
        return session

    def destroy(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def sweep(self, now: datetime | None = None) -> int:
        now = now or datetime.now(timezone.utc)
        with self._lock:
            dead = [sid for sid, s in self._sessions.items() if s.expires_at <= now]
            for sid in dead:
                del self._sessions[sid]
        return len(dead)

    def login(self, db: Session, email: str, password: str, ctx: RequestContext | None = None) -> tuple[UserSession, str]:
        ctx = ctx or RequestContext()
        user = db.query(User).filter(User.email == email).first()
        if not user or not verify_password(password, user.hashed_password):
            record_failed_attempt(
                db,
                "Login failed",
                f"Failed login attempt for email: {email}.",
                email=email,
                reason=AuthError.INVALID_CREDENTIALS,
                ctx=ctx,
            )
            raise AuthError("Invalid email or password.", reason=AuthError.INVALID_CREDENTIALS)
        # Only reveal verification status to a caller who knows the password
        if not user.is_verified:
            raise AuthError("Please verify your email before logging in.", reason=AuthError.UNVERIFIED)
        return self.issue(user)

    def logout(self, ctx: RequestContext) -> None:
        """Destroy the caller's session. Never raises: a failed destroy is logged and ignored."""
        if ctx.session is None:
            return
        try:
            self.destroy(ctx.session.session_id)
        except Exception:
            logger.exception("[Auth] Logout error for session of user_id=%s", ctx.session.user_id)
