"""
auth/errors.py -- Typed error taxonomy for authcore.

Every error carries a stable string `code` so host applications can branch
(or translate into their own HTTP / RPC responses) without matching on
message text.

Hierarchy:
  AuthError
    NotFoundError
      InvalidUserIdError
      InvalidKeyIdError
      InvalidSessionIdError
        SessionExpiredError
    DuplicateKeyError
    ConstraintViolationError   (opaque payload from the storage adapter)
    InvalidCredentialsError    (deliberately generic -- no enumeration)
    TransientError             (adapter timeout / connectivity)

SessionExpiredError subclasses InvalidSessionIdError: a caller that only
cares "is this session usable" catches the parent and treats both alike.

Layer rule: stdlib only. Adapters raise these types directly.
"""

from __future__ import annotations

from typing import Any


class AuthError(Exception):
    """Base class for all authcore errors."""

    code = "AUTH_ERROR"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class NotFoundError(AuthError):
    code = "AUTH_NOT_FOUND"


class InvalidUserIdError(NotFoundError):
    code = "AUTH_INVALID_USER_ID"


class InvalidKeyIdError(NotFoundError):
    code = "AUTH_INVALID_KEY_ID"


class InvalidSessionIdError(NotFoundError):
    code = "AUTH_INVALID_SESSION_ID"


class SessionExpiredError(InvalidSessionIdError):
    code = "AUTH_EXPIRED_SESSION"


class DuplicateKeyError(AuthError):
    """A key with the same (provider_id, provider_user_id) already exists.

    Callers should not retry with the same data.
    """

    code = "AUTH_DUPLICATE_KEY_ID"

    def __init__(self, provider_id: str, provider_user_id: str) -> None:
        super().__init__(f"Key already exists for provider {provider_id!r}")
        self.provider_id = provider_id
        self.provider_user_id = provider_user_id


class ConstraintViolationError(AuthError):
    """A host-defined attribute rule was broken at the storage layer.

    payload is whatever the adapter had at hand (usually the driver
    exception). The core never inspects it -- rules are host-specific.
    """

    code = "AUTH_CONSTRAINT_VIOLATION"

    def __init__(self, message: str = "", payload: Any = None) -> None:
        super().__init__(message)
        self.payload = payload


class InvalidCredentialsError(AuthError):
    """Key verification failed.

    Raised identically for an unknown key, a wrong secret and a secret/no-secret
    mismatch so responses cannot be used to enumerate registered identities.
    """

    code = "AUTH_INVALID_CREDENTIALS"


class TransientError(AuthError):
    """The storage backend timed out or was unreachable.

    Idempotent reads may be retried by the caller. Creates must not be retried
    blindly -- the first attempt may have committed.
    """

    code = "AUTH_TRANSIENT"
