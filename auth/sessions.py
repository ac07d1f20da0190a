"""
auth/sessions.py -- Session Manager: create, validate, invalidate, purge.

Lifecycle:  Active --(expires_at elapses)--> Expired --(cleanup)--> Deleted

Expiry is lazy: validate_session() compares expires_at with the clock at read
time. There is no background sweeper. An expired row found during lookup is
deleted opportunistically; if that delete fails the failure is logged and the
caller still gets SessionExpiredError. delete_dead_user_sessions() is the
hook for an optional external maintenance task.

There is no Expired -> Active transition. Renewal (Auth.renew_session) issues
a new session and invalidates the old one.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union

from auth.adapter import StorageAdapter
from auth.errors import InvalidSessionIdError, SessionExpiredError
from auth.models import SessionRecord, utcnow
from auth.tokens import generate_session_id
from core.config import get_settings

logger = logging.getLogger("authcore.sessions")

TTL = Union[timedelta, int, float]


def _as_timedelta(ttl: TTL) -> timedelta:
    delta = ttl if isinstance(ttl, timedelta) else timedelta(seconds=ttl)
    if delta <= timedelta(0):
        raise ValueError("session ttl must be positive")
    return delta


class SessionManager:
    def __init__(
        self,
        adapter: StorageAdapter,
        ttl: Optional[TTL] = None,
        generate_id: Callable[[], str] = generate_session_id,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._adapter = adapter
        self.ttl = _as_timedelta(ttl if ttl is not None else get_settings().session_ttl_seconds)
        self._generate_id = generate_id
        self._clock = clock

    def create_session(
        self, user_id: str, ttl: Optional[TTL] = None, attributes: Optional[dict[str, Any]] = None
    ) -> SessionRecord:
        delta = _as_timedelta(ttl) if ttl is not None else self.ttl
        record = SessionRecord(
            session_id=self._generate_id(),
            user_id=user_id,
            expires_at=self._clock() + delta,
            attributes=dict(attributes or {}),
        )
        self._adapter.insert_session(record)
        logger.debug("Session created (expires %s)", record.expires_at.isoformat())
        return record

    def validate_session(self, session_id: str) -> SessionRecord:
        """Return the stored session if it is still active.

        Raises InvalidSessionIdError if absent, SessionExpiredError if its
        expires_at has passed (whether or not the row was physically removed).
        """
        if not session_id:
            raise InvalidSessionIdError()
        record = self._adapter.get_session(session_id)
        if record is None:
            raise InvalidSessionIdError()
        if record.is_expired(self._clock()):
            self.discard(session_id)
            raise SessionExpiredError()
        return record

    def discard(self, session_id: str) -> None:
        """Best-effort delete. Never raises; used on paths that already failed."""
        try:
            self._adapter.delete_session(session_id)
        except Exception:
            logger.warning("Best-effort cleanup of session failed", exc_info=True)

    def invalidate_session(self, session_id: str) -> None:
        self._adapter.delete_session(session_id)

    def invalidate_all_user_sessions(self, user_id: str) -> None:
        self._adapter.delete_sessions_by_user_id(user_id)
        logger.debug("All sessions invalidated for a user")

    def get_user_sessions(self, user_id: str) -> list[SessionRecord]:
        """Return the user's active sessions. Expired rows are filtered, not deleted."""
        now = self._clock()
        return [s for s in self._adapter.get_sessions_by_user_id(user_id) if not s.is_expired(now)]

    def delete_dead_user_sessions(self, user_id: str) -> int:
        """Delete the user's expired sessions. Returns number of sessions removed."""
        now = self._clock()
        dead = [s for s in self._adapter.get_sessions_by_user_id(user_id) if s.is_expired(now)]
        for record in dead:
            self._adapter.delete_session(record.session_id)
        return len(dead)
