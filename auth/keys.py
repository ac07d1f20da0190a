"""
auth/keys.py -- Key Manager: provider-scoped credentials (one user, many keys).

A key binds (provider_id, provider_user_id) to a user. Secrets are hashed via
the injected PasswordHasher before they reach the adapter; plaintext is never
stored or logged.

Uniqueness is checked twice: an optimistic get_key() before insert (cheap,
gives a clean error in the common case) and the adapter's atomic insert
(closes the race between two concurrent creates). Only the second check is
authoritative.

Verification is deliberately opaque [C1]: unknown key, wrong secret, a secret
sent to an identity-only key and a missing secret for a password key all
raise the same InvalidCredentialsError, and the unknown-key path still burns a
hash verification so timing does not leak which case occurred.

Does NOT check that user_id exists -- that is Auth's job (it owns users).
"""

from __future__ import annotations

import logging
from typing import Optional

from auth.adapter import StorageAdapter
from auth.errors import DuplicateKeyError, InvalidCredentialsError, InvalidKeyIdError
from auth.models import Key, KeyRecord
from auth.tokens import PasswordHasher

logger = logging.getLogger("authcore.keys")


def _require(value: str, name: str) -> None:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{name} must be a non-empty string")


class KeyManager:
    def __init__(self, adapter: StorageAdapter, hasher: PasswordHasher) -> None:
        self._adapter = adapter
        self._hasher = hasher

    def build_record(
        self, user_id: str, provider_id: str, provider_user_id: str, secret: Optional[str] = None
    ) -> KeyRecord:
        """Validate inputs and hash the secret. Does not touch storage."""
        _require(provider_id, "provider_id")
        _require(provider_user_id, "provider_user_id")
        hashed = self._hasher.hash(secret) if secret is not None else None
        return KeyRecord(
            provider_id=provider_id,
            provider_user_id=provider_user_id,
            user_id=user_id,
            hashed_secret=hashed,
        )

    def create_key(self, user_id: str, provider_id: str, provider_user_id: str, secret: Optional[str] = None) -> Key:
        """Create a key. Raises DuplicateKeyError if the pair is taken; state is unchanged."""
        _require(provider_id, "provider_id")
        _require(provider_user_id, "provider_user_id")
        if self._adapter.get_key(provider_id, provider_user_id) is not None:
            raise DuplicateKeyError(provider_id, provider_user_id)
        record = self.build_record(user_id, provider_id, provider_user_id, secret)
        self._adapter.insert_key(record)
        logger.debug("Key created for provider %r", provider_id)
        return Key.from_record(record)

    def verify_key(self, provider_id: str, provider_user_id: str, secret: Optional[str]) -> str:
        """Return the owning user_id if the credential checks out.

        secret=None verifies an identity-only key (e.g. after an OAuth
        callback has already proven the external identity).
        """
        record = self._adapter.get_key(provider_id, provider_user_id)
        if record is None:
            if secret is not None:
                # Equalize timing -- do NOT return early before hashing [C1]
                self._hasher.dummy_verify(secret)
            raise InvalidCredentialsError()
        if record.hashed_secret is None:
            if secret is not None:
                self._hasher.dummy_verify(secret)
                raise InvalidCredentialsError()
            return record.user_id
        if secret is None or not self._hasher.verify(secret, record.hashed_secret):
            raise InvalidCredentialsError()
        return record.user_id

    def get_key(self, provider_id: str, provider_user_id: str) -> Key:
        record = self._adapter.get_key(provider_id, provider_user_id)
        if record is None:
            raise InvalidKeyIdError()
        return Key.from_record(record)

    def get_user_keys(self, user_id: str) -> list[Key]:
        return [Key.from_record(r) for r in self._adapter.get_keys_by_user_id(user_id)]

    def update_key_secret(self, provider_id: str, provider_user_id: str, secret: Optional[str]) -> Key:
        """Replace (or with secret=None, remove) the secret on an existing key."""
        hashed = self._hasher.hash(secret) if secret is not None else None
        if not self._adapter.update_key(provider_id, provider_user_id, hashed):
            raise InvalidKeyIdError()
        logger.debug("Key secret updated for provider %r", provider_id)
        return self.get_key(provider_id, provider_user_id)

    def delete_key(self, provider_id: str, provider_user_id: str) -> None:
        self._adapter.delete_key(provider_id, provider_user_id)

    def delete_keys_for_user(self, user_id: str) -> None:
        self._adapter.delete_keys_by_user_id(user_id)
