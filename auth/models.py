"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores build the
*Record types; the orchestrator in auth/core.py turns them into the public
User / Key / Session objects handed to host code.

Two families:
  Records  -- what adapters persist and return (UserRecord, KeyRecord,
              SessionRecord). May contain secret material (hashed_secret).
  Public   -- what callers receive (User, Key, Session). Never carry hashes.

Layer rule: stdlib only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

# A stored user: the immutable "id" plus whatever columns / fields the host
# schema defines. Adapters return a fresh dict on every read.
UserRecord = dict[str, Any]

SESSION_ACTIVE = "active"
SESSION_EXPIRED = "expired"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class KeyRecord:
    """A stored credential binding.

    (provider_id, provider_user_id) is the primary key. hashed_secret is None
    for identity-only links (e.g. an OAuth subject with no local password).
    """

    provider_id: str  # "email", "username", "oauth:github", ...
    provider_user_id: str  # unique within provider_id
    user_id: str
    hashed_secret: Optional[str] = None


@dataclass
class SessionRecord:
    """A stored session. State is derived from expires_at, never stored."""

    session_id: str
    user_id: str
    expires_at: datetime  # timezone-aware UTC
    attributes: dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at


@dataclass
class KeySpec:
    """Credential to create alongside a user in Auth.create_user()."""

    provider_id: str
    provider_user_id: str
    secret: Optional[str] = None


@dataclass
class User:
    """A user as exposed to host code.

    attributes holds the Attribute Mapper's output. id is kept outside the
    mapper's reach; to_dict() re-injects it last so it always wins.
    """

    id: str
    attributes: dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, name: str) -> Any:
        if name == "id":
            return self.id
        return self.attributes[name]

    def get(self, name: str, default: Any = None) -> Any:
        try:
            return self[name]
        except KeyError:
            return default

    def to_dict(self) -> dict[str, Any]:
        return {**self.attributes, "id": self.id}


@dataclass
class Key:
    """A credential binding as exposed to host code. The hash stays in storage."""

    provider_id: str
    provider_user_id: str
    user_id: str
    secret_defined: bool

    @classmethod
    def from_record(cls, record: KeyRecord) -> Key:
        return cls(
            provider_id=record.provider_id,
            provider_user_id=record.provider_user_id,
            user_id=record.user_id,
            secret_defined=record.hashed_secret is not None,
        )


@dataclass
class Session:
    """A session as exposed to host code.

    fresh is True only on the object returned by create / renew -- hosts use it
    to decide whether a new cookie must be written.
    user is populated by Auth.validate_session() (None on a bare create).
    state is fixed when the object is built, from the clock Auth was given.
    """

    session_id: str
    user_id: str
    expires_at: datetime
    attributes: dict[str, Any] = field(default_factory=dict)
    fresh: bool = False
    user: Optional[User] = None
    state: str = SESSION_ACTIVE  # SESSION_ACTIVE or SESSION_EXPIRED
