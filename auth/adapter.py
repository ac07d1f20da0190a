"""
auth/adapter.py -- Storage Adapter Interface.

The orchestrator depends on this Protocol, never on a concrete backend. Two
reference implementations ship alongside it:

  auth/store.py   SQLAlchemyAdapter  relational (SQLite, PostgreSQL, ...)
  auth/memory.py  MemoryAdapter      key-value, process-local

Contract:
  - Lookups return None when the entity is absent. The core turns None into
    the matching NotFoundError subclass.
  - update_* return True if a row was updated, False if the target was absent.
  - delete_* are idempotent: deleting nothing succeeds.
  - insert_user / update_user raise ConstraintViolationError when a host-defined
    uniqueness rule (or the id primary key) is violated.
  - insert_key raises DuplicateKeyError when (provider_id, provider_user_id)
    already exists. This is the atomic re-check behind the core's optimistic
    pre-check.
  - create_user_with_key is transactional: on ConstraintViolationError or
    DuplicateKeyError nothing it attempted is visible to any reader.
  - Driver timeouts and connectivity failures surface as TransientError.

Records passed in or returned are never shared with the caller -- adapters
copy on the way in and out so callers cannot mutate stored state.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from auth.models import KeyRecord, SessionRecord, UserRecord


@runtime_checkable
class StorageAdapter(Protocol):
    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[UserRecord]: ...

    def insert_user(self, record: UserRecord) -> None: ...

    def update_user(self, user_id: str, attributes: dict[str, Any]) -> bool: ...

    def delete_user(self, user_id: str) -> None: ...

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def get_key(self, provider_id: str, provider_user_id: str) -> Optional[KeyRecord]: ...

    def get_keys_by_user_id(self, user_id: str) -> list[KeyRecord]: ...

    def insert_key(self, record: KeyRecord) -> None: ...

    def update_key(self, provider_id: str, provider_user_id: str, hashed_secret: Optional[str]) -> bool: ...

    def delete_key(self, provider_id: str, provider_user_id: str) -> None: ...

    def delete_keys_by_user_id(self, user_id: str) -> None: ...

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Optional[SessionRecord]: ...

    def get_sessions_by_user_id(self, user_id: str) -> list[SessionRecord]: ...

    def insert_session(self, record: SessionRecord) -> None: ...

    def delete_session(self, session_id: str) -> None: ...

    def delete_sessions_by_user_id(self, user_id: str) -> None: ...

    # ------------------------------------------------------------------
    # Composite (transactional)
    # ------------------------------------------------------------------

    def create_user_with_key(self, user: UserRecord, key: Optional[KeyRecord]) -> None: ...
