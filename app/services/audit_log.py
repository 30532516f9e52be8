"""Account audit trail: failed logins, failed verifications and verified accounts.

Rows are only ever inserted.
"""
from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog

logger = logging.getLogger("uvicorn.error")

CATEGORY_STATUS_CHANGE = "status_change"
CATEGORY_FAILED_ATTEMPT = "failed_attempt"


def _clip(value: str | None, column: str) -> str | None:
    # Request headers are client-controlled; keep them inside the column
    if not value:
        return None
    return value[: AuditLog.__table__.c[column].type.length]


def create_log(
    db: Session,
    category: str,
    title: str,
    message: str,
    *,
    actor_user_id: int | None = None,
    actor_email: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    meta: dict[str, str] | None = None,
) -> AuditLog:
    """Add an audit row to `db`. The caller owns the transaction."""
    entry = AuditLog(
        category=category,
        title=title,
        message=message,
        actor_user_id=actor_user_id,
        actor_email=_clip(actor_email, "actor_email"),
        ip_address=_clip(ip_address, "ip_address"),
        user_agent=_clip(user_agent, "user_agent"),
        meta=dict(meta) if meta else None,
    )
    db.add(entry)
    return entry


def record_failed_attempt(db: Session, title: str, message: str, *, email: str, reason: str, ctx, **meta) -> None:
    """Commit a failed_attempt row for `email`.

    The attempt has already failed for the caller; a database error here is
    logged and rolled back so it cannot change the caller's outcome.
    """
    try:
        create_log(
            db,
            CATEGORY_FAILED_ATTEMPT,
            title,
            message,
            actor_email=email,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            meta={"reason": reason, **meta},
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[Audit] Could not record %r for %s", title, email)
