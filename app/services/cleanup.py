"""Periodic cleanup of expired pending registrations and login sessions."""
import logging
from datetime import datetime, timezone

from app.services.registration_store import RegistrationStore
from app.services.sessions import SessionManager

logger = logging.getLogger("uvicorn.error")


def run_cleanup_job(store: RegistrationStore, sessions: SessionManager) -> None:
    """Drop registrations past the verification TTL and sessions past their max age."""
    now = datetime.now(timezone.utc)
    registrations = store.sweep(now)
    dead_sessions = sessions.sweep(now)
    if registrations or dead_sessions:
        logger.info(
            "[Sweep] Cleanup: %d expired registration(s), %d expired session(s); %d registration(s) still pending.",
            registrations,
            dead_sessions,
            len(store),
        )
