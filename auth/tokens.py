"""
auth/tokens.py -- Identifier generation and secret hashing.

Security design decisions:
  Identifiers: secrets.choice over a 36-symbol alphabet (a-z0-9). User IDs
       default to 15 characters (~77 bits, collision-checked at creation);
       session IDs default to 40 characters (~206 bits) so guessing a live
       session is computationally infeasible. Lengths come from Settings.

  Secrets: bcrypt directly, no passlib wrapper. bcrypt is the right choice
       for low-entropy secrets (passwords) because its cost factor makes
       brute-force expensive. Secrets are SHA-256 pre-hashed so bcrypt's
       72-byte input cap never applies. BcryptHasher.dummy_verify() enables timing
       equalization in KeyManager.verify_key() so response time does not
       reveal whether a key exists.

The core depends on the PasswordHasher protocol, not on bcrypt. Hosts can
inject any object with hash() / verify() / dummy_verify().

Layer rule: may import from core/ (the kernel). No imports from auth/core.py.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
import string
from typing import Optional, Protocol, runtime_checkable

import bcrypt

from core.config import get_settings

logger = logging.getLogger("authcore.tokens")

_ALPHABET = string.ascii_lowercase + string.digits


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


def generate_random_string(length: int, alphabet: str = _ALPHABET) -> str:
    """Return a cryptographically random string of the given length."""
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_user_id() -> str:
    """Default user ID strategy: Settings.user_id_length random characters."""
    return generate_random_string(get_settings().user_id_length)


def generate_session_id() -> str:
    """Default session ID strategy: Settings.session_id_length random characters."""
    return generate_random_string(get_settings().session_id_length)


# ---------------------------------------------------------------------------
# Secret hashing
# ---------------------------------------------------------------------------


@runtime_checkable
class PasswordHasher(Protocol):
    def hash(self, secret: str) -> str: ...

    def verify(self, secret: str, hashed: str) -> bool: ...

    def dummy_verify(self, secret: str) -> None: ...


def _prehash(secret: str) -> bytes:
    return base64.b64encode(hashlib.sha256(secret.encode("utf-8")).digest())


class BcryptHasher:
    """bcrypt-backed PasswordHasher.

    bcrypt only looks at the first 72 bytes of its input, and bcrypt 5
    rejects anything longer. Every secret is therefore reduced to the
    base64 of its SHA-256 digest (44 bytes) before it reaches bcrypt, in
    hash(), verify() and dummy_verify() alike, so any length is accepted and
    every byte counts.
    """

    def __init__(self, rounds: Optional[int] = None) -> None:
        self.rounds = rounds if rounds is not None else get_settings().bcrypt_rounds
        self._dummy_hash: Optional[str] = None

    def hash(self, secret: str) -> str:
        return bcrypt.hashpw(_prehash(secret), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, secret: str, hashed: str) -> bool:
        """Return True if the secret matches the hash. Malformed hashes never match."""
        try:
            return bcrypt.checkpw(_prehash(secret), hashed.encode("utf-8"))
        except ValueError:
            logger.debug("Malformed bcrypt hash encountered during verification")
            return False

    def dummy_verify(self, secret: str) -> None:
        """Burn one verification's worth of work against a throwaway hash.

        Called when no stored hash exists so the not-found path costs the same
        as the wrong-secret path. The dummy hash is computed once per hasher,
        on first use, with this hasher's cost factor.
        """
        if self._dummy_hash is None:
            self._dummy_hash = self.hash("authcore_timing_dummy")
        self.verify(secret, self._dummy_hash)
