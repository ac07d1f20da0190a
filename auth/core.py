"""
auth/core.py -- Auth: the orchestrator over users, keys and sessions.

Composes KeyManager, SessionManager and the Attribute Mapper on top of a
StorageAdapter. Holds no mutable state of its own; every method is a
self-contained request against the adapter, safe to call concurrently.

Consistency rules enforced here:
  - create_user() goes through the adapter's transactional
    create_user_with_key(): the user and its first key exist together or not
    at all. A generated id is pre-checked for collisions; the adapter's
    primary key is the final word.
  - delete_user() removes keys, then sessions, then the user. Every step is
    idempotent, so a caller that retries after a crash converges. Orphaned
    keys or sessions (owner already gone) are filtered at lookup time.
  - update_user_attributes() never invalidates sessions. Whether a change is
    security-relevant is the host's call; follow it with
    invalidate_all_user_sessions() when it is.
  - Stored user records only leave through project_user(), so the immutable
    id is always the stored one.

No automatic retries: TransientError from the adapter propagates as-is.

Usage:
    auth = Auth(SQLAlchemyAdapter(user_columns=[Column("username", String(255))]))
    user = auth.create_user({"username": "alice"}, key=KeySpec("email", "a@b.com", "pw"))
    session = auth.create_session(user.id)
    cookie = auth.create_session_cookie(session).serialize()
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from auth import cookies
from auth.adapter import StorageAdapter
from auth.attributes import AttributeMapper, project_session_attributes, project_user
from auth.errors import (
    ConstraintViolationError,
    DuplicateKeyError,
    InvalidCredentialsError,
    InvalidKeyIdError,
    InvalidSessionIdError,
    InvalidUserIdError,
)
from auth.keys import KeyManager
from auth.models import (
    SESSION_ACTIVE,
    SESSION_EXPIRED,
    Key,
    KeySpec,
    Session,
    SessionRecord,
    User,
    UserRecord,
    utcnow,
)
from auth.sessions import TTL, SessionManager
from auth.tokens import BcryptHasher, PasswordHasher, generate_session_id
from auth.tokens import generate_user_id as default_generate_user_id

logger = logging.getLogger("authcore.auth")

# Generated ids that collide are regenerated at most this many times. With the
# default 15-character id a single collision is already vanishingly unlikely.
_MAX_ID_ATTEMPTS = 5


class Auth:
    def __init__(
        self,
        adapter: StorageAdapter,
        *,
        get_user_attributes: Optional[AttributeMapper] = None,
        get_session_attributes: Optional[AttributeMapper] = None,
        hasher: Optional[PasswordHasher] = None,
        generate_user_id: Callable[[], str] = default_generate_user_id,
        generate_session_id: Callable[[], str] = generate_session_id,
        session_ttl: Optional[TTL] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not isinstance(adapter, StorageAdapter):
            raise TypeError(f"{type(adapter).__name__} does not implement the StorageAdapter interface")
        self._adapter = adapter
        self._user_mapper = get_user_attributes
        self._session_mapper = get_session_attributes
        self._generate_user_id = generate_user_id
        self._clock = clock
        self.keys = KeyManager(adapter, hasher if hasher is not None else BcryptHasher())
        self.sessions = SessionManager(adapter, ttl=session_ttl, generate_id=generate_session_id, clock=clock)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(
        self,
        attributes: Optional[dict[str, Any]] = None,
        key: Optional[KeySpec] = None,
        user_id: Optional[str] = None,
    ) -> User:
        """Create a user, optionally with its first key, atomically.

        Raises:
            DuplicateKeyError: the key's (provider_id, provider_user_id) is taken.
            ConstraintViolationError: a host attribute rule (or the id) collided.
        Neither failure leaves a user or key behind.
        """
        attributes = dict(attributes or {})
        if "id" in attributes:
            raise ValueError("'id' is assigned by Auth and cannot be passed as an attribute")

        if user_id is None:
            user_id = self._new_user_id()
        elif self._adapter.get_user(user_id) is not None:
            raise ConstraintViolationError("user id already exists", payload={"field": "id"})

        key_record = None
        if key is not None:
            # Optimistic pre-check before paying for the hash; adapter re-checks atomically.
            if self._adapter.get_key(key.provider_id, key.provider_user_id) is not None:
                raise DuplicateKeyError(key.provider_id, key.provider_user_id)
            key_record = self.keys.build_record(user_id, key.provider_id, key.provider_user_id, key.secret)

        record: UserRecord = {**attributes, "id": user_id}
        self._adapter.create_user_with_key(record, key_record)
        logger.info("User created%s", f" with {key.provider_id!r} key" if key is not None else "")

        stored = self._adapter.get_user(user_id)
        return self._project(stored if stored is not None else record)

    def get_user(self, user_id: str) -> User:
        return self._project(self._require_user(user_id))

    def update_user_attributes(self, user_id: str, attributes: dict[str, Any]) -> User:
        """Apply a partial update and return the re-projected user.

        Sessions are left untouched -- call invalidate_all_user_sessions()
        afterwards if the change affects privileges.
        """
        if "id" in attributes:
            raise ValueError("user id is immutable")
        if not self._adapter.update_user(user_id, dict(attributes)):
            raise InvalidUserIdError()
        return self.get_user(user_id)

    def delete_user(self, user_id: str) -> None:
        """Delete a user and everything it owns. Succeeds for unknown ids."""
        self.keys.delete_keys_for_user(user_id)
        self.sessions.invalidate_all_user_sessions(user_id)
        self._adapter.delete_user(user_id)
        logger.info("User deleted")

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def create_key(self, user_id: str, provider_id: str, provider_user_id: str, secret: Optional[str] = None) -> Key:
        self._require_user(user_id)
        return self.keys.create_key(user_id, provider_id, provider_user_id, secret)

    def use_key(self, provider_id: str, provider_user_id: str, secret: Optional[str]) -> User:
        """Verify a credential and return its user. Any failure is InvalidCredentialsError."""
        user_id = self.keys.verify_key(provider_id, provider_user_id, secret)
        record = self._adapter.get_user(user_id)
        if record is None:
            # Orphaned key: owner deleted mid-cascade.
            raise InvalidCredentialsError()
        return self._project(record)

    def get_key(self, provider_id: str, provider_user_id: str) -> Key:
        key = self.keys.get_key(provider_id, provider_user_id)
        if self._adapter.get_user(key.user_id) is None:
            raise InvalidKeyIdError()
        return key

    def get_all_user_keys(self, user_id: str) -> list[Key]:
        self._require_user(user_id)
        return self.keys.get_user_keys(user_id)

    def update_key_secret(self, provider_id: str, provider_user_id: str, secret: Optional[str]) -> Key:
        return self.keys.update_key_secret(provider_id, provider_user_id, secret)

    def delete_key(self, provider_id: str, provider_user_id: str) -> None:
        self.keys.delete_key(provider_id, provider_user_id)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self, user_id: str, ttl: Optional[TTL] = None, attributes: Optional[dict[str, Any]] = None
    ) -> Session:
        user = self._project(self._require_user(user_id))
        record = self.sessions.create_session(user_id, ttl=ttl, attributes=attributes)
        return self._to_session(record, user, fresh=True)

    def validate_session(self, session_id: str) -> Session:
        """Return the active session with its user.

        Raises InvalidSessionIdError (absent, or owner deleted) or
        SessionExpiredError (past expires_at).
        """
        record, user = self._validate(session_id)
        return self._to_session(record, user, fresh=False)

    def renew_session(self, session_id: str, ttl: Optional[TTL] = None) -> Session:
        """Replace a valid session with a new one carrying the same attributes."""
        record, user = self._validate(session_id)
        renewed = self.sessions.create_session(record.user_id, ttl=ttl, attributes=record.attributes)
        self.sessions.invalidate_session(session_id)
        return self._to_session(renewed, user, fresh=True)

    def invalidate_session(self, session_id: str) -> None:
        self.sessions.invalidate_session(session_id)

    def invalidate_all_user_sessions(self, user_id: str) -> None:
        self.sessions.invalidate_all_user_sessions(user_id)

    def get_all_user_sessions(self, user_id: str) -> list[Session]:
        user = self._project(self._require_user(user_id))
        return [self._to_session(r, user, fresh=False) for r in self.sessions.get_user_sessions(user_id)]

    def delete_dead_user_sessions(self, user_id: str) -> int:
        return self.sessions.delete_dead_user_sessions(user_id)

    # ------------------------------------------------------------------
    # Cookies / headers
    # ------------------------------------------------------------------

    def create_session_cookie(self, session: Optional[Session]) -> cookies.SessionCookie:
        """Cookie carrying the session, or a blank deleting cookie for None."""
        if session is None:
            return cookies.create_blank_session_cookie()
        return cookies.create_session_cookie(session)

    def read_session_cookie(self, cookie_header: Optional[str]) -> Optional[str]:
        return cookies.read_session_cookie(cookie_header)

    def read_bearer_token(self, authorization_header: Optional[str]) -> Optional[str]:
        return cookies.read_bearer_token(authorization_header)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_user_id(self) -> str:
        for _ in range(_MAX_ID_ATTEMPTS):
            candidate = self._generate_user_id()
            if self._adapter.get_user(candidate) is None:
                return candidate
            logger.warning("Generated user id collided with an existing user; regenerating")
        raise ConstraintViolationError("could not generate a unique user id", payload={"field": "id"})

    def _require_user(self, user_id: str) -> UserRecord:
        record = self._adapter.get_user(user_id)
        if record is None:
            raise InvalidUserIdError()
        return record

    def _validate(self, session_id: str) -> tuple[SessionRecord, User]:
        record = self.sessions.validate_session(session_id)
        user_record = self._adapter.get_user(record.user_id)
        if user_record is None:
            # Orphaned session: owner deleted mid-cascade.
            self.sessions.discard(session_id)
            raise InvalidSessionIdError()
        return record, self._project(user_record)

    def _project(self, record: UserRecord) -> User:
        return project_user(record, self._user_mapper)

    def _to_session(self, record: SessionRecord, user: User, fresh: bool) -> Session:
        return Session(
            session_id=record.session_id,
            user_id=record.user_id,
            expires_at=record.expires_at,
            attributes=project_session_attributes(record.attributes, self._session_mapper),
            fresh=fresh,
            user=user,
            state=SESSION_EXPIRED if record.is_expired(self._clock()) else SESSION_ACTIVE,
        )
