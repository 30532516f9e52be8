"""Registration and email verification.

register() stages the form data in the RegistrationStore and mails a code;
verify() turns a staged registration into a verified User once the right code
arrives within the TTL. A wrong code leaves the registration in place so the
caller can retry; an expired one is removed for good.
"""
from __future__ import annotations

import enum
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import (
    CodeMismatchError,
    DeliveryError,
    StoreError,
    TokenError,
    ValidationError,
    VerificationExpiredError,
)
from app.models.user import User
from app.services.audit_log import create_log, record_failed_attempt, CATEGORY_STATUS_CHANGE
from app.services.auth import get_password_hash
from app.services.notifications import send_verification_email
from app.services.registration_store import PendingRegistration, RegistrationStore
from app.services.sessions import RequestContext, SessionManager, UserSession

logger = logging.getLogger("uvicorn.error")

USER_EXISTS_MESSAGE = "A user with that email or username already exists."


class VerificationState(str, enum.Enum):
    pending = "pending"
    committed = "committed"
    expired = "expired"
    rejected = "rejected"


@dataclass(frozen=True)
class VerificationResult:
    state: VerificationState
    user: User
    session: UserSession
    session_token: str


def generate_verification_code() -> str:
    return secrets.token_hex(3).upper()


def generate_registration_token() -> str:
    return secrets.token_hex(20)


class VerificationService:
    def __init__(self, db: Session, store: RegistrationStore, sessions: SessionManager, mailer):
        self.db = db
        self.store = store
        self.sessions = sessions
        self.mailer = mailer

    def _ttl_seconds(self) -> int:
        return int(self.store.ttl.total_seconds())

    def _stage_and_send(self, token: str, username: str, email: str, password_hash: str) -> None:
        code = generate_verification_code()
        self.store.store(
            token,
            PendingRegistration(
                token=token,
                username=username,
                email=email,
                password_hash=password_hash,
                verification_code=code,
                created_at=datetime.now(timezone.utc),
            ),
        )
        try:
            send_verification_email(self.mailer, email, code, self._ttl_seconds())
        except DeliveryError:
            self.store.remove(token)
            raise

    def register(self, username: str, email: str, password: str) -> str:
        """Stage a registration and mail its code. Returns the token that addresses it."""
        existing = self.db.query(User).filter(or_(User.email == email, User.username == username)).first()
        if existing:
            raise ValidationError(USER_EXISTS_MESSAGE, status_code=409)
        token = generate_registration_token()
        self._stage_and_send(token, username, email, get_password_hash(password))
        logger.info("[Auth] Registration pending for %s (token %s...)", email, token[:8])
        return token

    def _live_pending(self, token: str, now: datetime, ctx: RequestContext) -> PendingRegistration:
        pending = self.store.get(token) if token else None
        if pending is None:
            raise TokenError()
        if pending.is_expired(now, self.store.ttl):
            self.store.remove(token)
            self._log_failure(pending, VerificationState.expired.value, ctx)
            raise VerificationExpiredError()
        return pending

    def resend(self, token: str, now: datetime | None = None, ctx: RequestContext | None = None) -> None:
        """Replace the pending registration under `token` with a fresh code and TTL, and mail it."""
        pending = self._live_pending(token, now or datetime.now(timezone.utc), ctx or RequestContext())
        self._stage_and_send(token, pending.username, pending.email, pending.password_hash)

    def _log_failure(self, pending: PendingRegistration, reason: str, ctx: RequestContext) -> None:
        record_failed_attempt(
            self.db,
            "Email verification failed",
            f"Verification failed for {pending.email}: {reason}.",
            email=pending.email,
            reason=reason,
            ctx=ctx,
            token_prefix=pending.token[:8],
        )

    def verify(
        self,
        token: str,
        code: str,
        now: datetime | None = None,
        ctx: RequestContext | None = None,
    ) -> VerificationResult:
        now = now or datetime.now(timezone.utc)
        ctx = ctx or RequestContext()
        pending = self._live_pending(token, now, ctx)
        if (code or "").strip().upper() != pending.verification_code.upper():
            self._log_failure(pending, VerificationState.rejected.value, ctx)
            raise CodeMismatchError()

        # Only one request may turn this record into a user
        if self.store.pop(token, expected=pending) is None:
            if token in self.store:
                # A resend replaced the code that was just matched
                raise CodeMismatchError()
            raise TokenError()

        user = User(
            username=pending.username,
            email=pending.email,
            hashed_password=pending.password_hash,
            is_verified=True,
        )
        self.db.add(user)
        try:
            self.db.flush()
            create_log(
                self.db,
                CATEGORY_STATUS_CHANGE,
                "Account verified",
                f"User {user.username} verified {user.email}.",
                actor_user_id=user.id,
                actor_email=user.email,
                ip_address=ctx.ip_address,
                user_agent=ctx.user_agent,
            )
            self.db.commit()
        except IntegrityError as e:
            # Username or email was claimed by another account in the meantime
            self.db.rollback()
            logger.info("[Auth] Verification for %s lost to an existing account: %s", pending.email, e.orig)
            raise ValidationError(USER_EXISTS_MESSAGE, status_code=409) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            # Nothing was saved; put the registration back so the code can be tried again
            self.store.store(token, pending)
            raise StoreError(f"Saving verified user {pending.email} failed: {e}") from e
        self.db.refresh(user)
        session, session_token = self.sessions.issue(user)
        logger.info("[Auth] User %s verified (id=%s)", user.username, user.id)
        return VerificationResult(VerificationState.committed, user, session, session_token)
