"""In-memory store for registrations waiting on email verification.

A User row is only written once the emailed code is confirmed, so everything
submitted on the registration form lives here until then. Records are keyed by
an opaque random token, never mutated, and dropped on commit, on expiry, by the
periodic sweep, or when the store is full and a newer registration arrives.
"""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class PendingRegistration:
    token: str
    username: str
    email: str
    password_hash: str
    verification_code: str
    created_at: datetime

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.created_at > ttl


class RegistrationStore:
    def __init__(self, ttl: timedelta, max_entries: int = 10_000):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl = ttl
        self.max_entries = max_entries
        self._lock = threading.Lock()
        # Insertion order == creation order; re-storing a token moves it to the end
        self._records: OrderedDict[str, PendingRegistration] = OrderedDict()

    def store(self, token: str, registration: PendingRegistration) -> None:
        with self._lock:
            self._records.pop(token, None)
            while len(self._records) >= self.max_entries:
                evicted, _ = self._records.popitem(last=False)
                logger.warning("[Pending] Store full (%d); evicted oldest registration %s...", self.max_entries, evicted[:8])
            self._records[token] = registration

    def get(self, token: str) -> PendingRegistration | None:
        with self._lock:
            return self._records.get(token)

    def remove(self, token: str) -> None:
        with self._lock:
            self._records.pop(token, None)

    def pop(self, token: str, expected: PendingRegistration | None = None) -> PendingRegistration | None:
        """Take the record under `token` out of the store, or None if it is gone.

        With `expected`, only a record that is still that exact instance is taken,
        so a caller that checked a code against one record cannot consume its
        replacement.
        """
        with self._lock:
            current = self._records.get(token)
            if current is None or (expected is not None and current is not expected):
                return None
            return self._records.pop(token)

    def sweep(self, now: datetime | None = None) -> int:
        """Drop every registration older than the TTL. Returns how many were removed."""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            expired = [t for t, r in self._records.items() if r.is_expired(now, self.ttl)]
            for token in expired:
                del self._records[token]
        if expired:
            logger.info("[Sweep] Removed %d expired pending registration(s).", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._records
