"""
auth/memory.py -- In-memory storage adapter (key-value backend).

For development, tests and single-process hosts. Three dicts play the role
of the three record families; one re-entrant lock serialises every write so
the uniqueness checks and the composite create are atomic with respect to
other threads.

unique_attributes lists user fields that must be unique across users (the
key-value analogue of a UNIQUE column). None values are never considered
duplicates, matching SQL NULL semantics.

Records are copied on the way in and out; callers never hold a reference to
stored state.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Iterable
from typing import Any, Optional

from auth.errors import ConstraintViolationError, DuplicateKeyError
from auth.models import KeyRecord, SessionRecord, UserRecord


class MemoryAdapter:
    def __init__(self, unique_attributes: Iterable[str] = ()) -> None:
        self.unique_attributes = tuple(unique_attributes)
        self._users: dict[str, UserRecord] = {}
        self._keys: dict[tuple[str, str], KeyRecord] = {}
        self._sessions: dict[str, SessionRecord] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            record = self._users.get(user_id)
            return copy.deepcopy(record) if record is not None else None

    def insert_user(self, record: UserRecord) -> None:
        with self._lock:
            self._check_user_insert(record)
            self._users[record["id"]] = copy.deepcopy(record)

    def update_user(self, user_id: str, attributes: dict[str, Any]) -> bool:
        with self._lock:
            current = self._users.get(user_id)
            if current is None:
                return False
            updated = {**current, **copy.deepcopy(attributes)}
            self._check_unique(updated, exclude_id=user_id)
            self._users[user_id] = updated
            return True

    def delete_user(self, user_id: str) -> None:
        with self._lock:
            self._users.pop(user_id, None)

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def get_key(self, provider_id: str, provider_user_id: str) -> Optional[KeyRecord]:
        with self._lock:
            record = self._keys.get((provider_id, provider_user_id))
            return copy.copy(record) if record is not None else None

    def get_keys_by_user_id(self, user_id: str) -> list[KeyRecord]:
        with self._lock:
            return [copy.copy(k) for _, k in sorted(self._keys.items()) if k.user_id == user_id]

    def insert_key(self, record: KeyRecord) -> None:
        with self._lock:
            self._check_key_insert(record)
            self._keys[(record.provider_id, record.provider_user_id)] = copy.copy(record)

    def update_key(self, provider_id: str, provider_user_id: str, hashed_secret: Optional[str]) -> bool:
        with self._lock:
            record = self._keys.get((provider_id, provider_user_id))
            if record is None:
                return False
            record.hashed_secret = hashed_secret
            return True

    def delete_key(self, provider_id: str, provider_user_id: str) -> None:
        with self._lock:
            self._keys.pop((provider_id, provider_user_id), None)

    def delete_keys_by_user_id(self, user_id: str) -> None:
        with self._lock:
            for pk in [pk for pk, k in self._keys.items() if k.user_id == user_id]:
                del self._keys[pk]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._sessions.get(session_id)
            return copy.deepcopy(record) if record is not None else None

    def get_sessions_by_user_id(self, user_id: str) -> list[SessionRecord]:
        with self._lock:
            found = [copy.deepcopy(s) for s in self._sessions.values() if s.user_id == user_id]
        return sorted(found, key=lambda s: s.expires_at)

    def insert_session(self, record: SessionRecord) -> None:
        with self._lock:
            if record.session_id in self._sessions:
                raise ConstraintViolationError("session id already exists")
            self._sessions[record.session_id] = copy.deepcopy(record)

    def delete_session(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def delete_sessions_by_user_id(self, user_id: str) -> None:
        with self._lock:
            for sid in [sid for sid, s in self._sessions.items() if s.user_id == user_id]:
                del self._sessions[sid]

    # ------------------------------------------------------------------
    # Composite (transactional)
    # ------------------------------------------------------------------

    def create_user_with_key(self, user: UserRecord, key: Optional[KeyRecord]) -> None:
        """Validate both writes under the lock, then apply both. No partial state."""
        with self._lock:
            self._check_user_insert(user)
            if key is not None:
                self._check_key_insert(key)
            self._users[user["id"]] = copy.deepcopy(user)
            if key is not None:
                self._keys[(key.provider_id, key.provider_user_id)] = copy.copy(key)

    # ------------------------------------------------------------------
    # Constraint checks (caller holds the lock)
    # ------------------------------------------------------------------

    def _check_user_insert(self, record: UserRecord) -> None:
        if record["id"] in self._users:
            raise ConstraintViolationError("user id already exists", payload={"field": "id"})
        self._check_unique(record, exclude_id=None)

    def _check_unique(self, record: UserRecord, exclude_id: Optional[str]) -> None:
        for name in self.unique_attributes:
            value = record.get(name)
            if value is None:
                continue
            for uid, other in self._users.items():
                if uid != exclude_id and other.get(name) == value:
                    raise ConstraintViolationError(f"{name} must be unique", payload={"field": name})

    def _check_key_insert(self, record: KeyRecord) -> None:
        if (record.provider_id, record.provider_user_id) in self._keys:
            raise DuplicateKeyError(record.provider_id, record.provider_user_id)
