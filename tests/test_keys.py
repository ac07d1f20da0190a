"""Unit tests for auth/keys.py -- KeyManager.

Covers:
- Secrets are hashed before storage; identity-only keys store no hash
- DuplicateKeyError leaves the existing key untouched
- verify_key() fails generically for every failure mode [C1]
- Unknown keys still burn a hash verification (timing equalization)
- Concurrent creates of the same key: exactly one wins (memory and SQLite file)
- update_key_secret / delete_key / delete_keys_for_user
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from auth.errors import DuplicateKeyError, InvalidCredentialsError, InvalidKeyIdError
from auth.keys import KeyManager
from auth.memory import MemoryAdapter
from auth.store import SQLAlchemyAdapter
from auth.tokens import BcryptHasher

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class SpyHasher(BcryptHasher):
    """BcryptHasher that counts dummy verifications."""

    def __init__(self) -> None:
        super().__init__(rounds=4)
        self.dummy_calls = 0

    def dummy_verify(self, secret: str) -> None:
        self.dummy_calls += 1
        super().dummy_verify(secret)


@pytest.fixture
def adapter() -> MemoryAdapter:
    return MemoryAdapter()


@pytest.fixture
def spy() -> SpyHasher:
    return SpyHasher()


@pytest.fixture
def keys(adapter: MemoryAdapter, spy: SpyHasher) -> KeyManager:
    return KeyManager(adapter, spy)


class TestCreateKey:
    def test_secret_is_hashed(self, keys: KeyManager, adapter: MemoryAdapter, spy: SpyHasher) -> None:
        key = keys.create_key("u1", "email", "a@b.com", "pw")
        assert key.secret_defined is True
        stored = adapter.get_key("email", "a@b.com")
        assert stored.hashed_secret != "pw"
        assert spy.verify("pw", stored.hashed_secret)

    def test_identity_only_key(self, keys: KeyManager, adapter: MemoryAdapter) -> None:
        key = keys.create_key("u1", "oauth:github", "1234")
        assert key.secret_defined is False
        assert adapter.get_key("oauth:github", "1234").hashed_secret is None

    def test_duplicate_rejected_without_mutation(self, keys: KeyManager, adapter: MemoryAdapter) -> None:
        keys.create_key("u1", "email", "a@b.com", "pw")
        with pytest.raises(DuplicateKeyError):
            keys.create_key("u2", "email", "a@b.com", "other")
        assert adapter.get_key("email", "a@b.com").user_id == "u1"
        assert keys.verify_key("email", "a@b.com", "pw") == "u1"

    @pytest.mark.parametrize("provider_id, provider_user_id", [("", "a@b.com"), ("email", "")])
    def test_empty_identifiers_rejected(self, keys: KeyManager, provider_id: str, provider_user_id: str) -> None:
        with pytest.raises(ValueError):
            keys.create_key("u1", provider_id, provider_user_id)

    def test_concurrent_creates_exactly_one_wins(self, keys: KeyManager) -> None:
        def attempt(n: int) -> str:
            try:
                keys.create_key(f"u{n}", "email", "race@b.com", "pw")
                return "ok"
            except DuplicateKeyError:
                return "dup"

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(attempt, range(8)))
        assert results.count("ok") == 1
        assert results.count("dup") == 7

    def test_concurrent_creates_on_sqlite_file(self, spy: SpyHasher, tmp_path) -> None:
        """Same race against a real database file: the primary key picks the winner."""
        adapter = SQLAlchemyAdapter(f"sqlite:///{tmp_path / 'auth.db'}")
        keys = KeyManager(adapter, spy)

        def attempt(n: int) -> str:
            try:
                keys.create_key(f"u{n}", "email", "race@b.com", "pw")
                return "ok"
            except DuplicateKeyError:
                return "dup"

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(attempt, range(8)))
        adapter.close()
        assert results.count("ok") == 1
        assert results.count("dup") == 7


class TestVerifyKey:
    def test_correct_secret(self, keys: KeyManager) -> None:
        keys.create_key("u1", "email", "a@b.com", "pw")
        assert keys.verify_key("email", "a@b.com", "pw") == "u1"

    def test_identity_only_key_without_secret(self, keys: KeyManager) -> None:
        keys.create_key("u1", "oauth:github", "1234")
        assert keys.verify_key("oauth:github", "1234", None) == "u1"

    def test_failures_are_indistinguishable(self, keys: KeyManager) -> None:
        """Unknown key, wrong secret, missing secret and unexpected secret all look alike."""
        keys.create_key("u1", "email", "a@b.com", "pw")
        keys.create_key("u1", "oauth:github", "1234")
        attempts = [
            ("email", "nobody@b.com", "pw"),
            ("email", "a@b.com", "wrong"),
            ("email", "a@b.com", None),
            ("oauth:github", "1234", "pw"),
        ]
        errors = []
        for provider_id, provider_user_id, secret in attempts:
            with pytest.raises(InvalidCredentialsError) as excinfo:
                keys.verify_key(provider_id, provider_user_id, secret)
            errors.append((type(excinfo.value), str(excinfo.value), excinfo.value.code))
        assert len(set(errors)) == 1

    def test_unknown_key_runs_dummy_hash(self, keys: KeyManager, spy: SpyHasher) -> None:
        with pytest.raises(InvalidCredentialsError):
            keys.verify_key("email", "nobody@b.com", "pw")
        assert spy.dummy_calls == 1


class TestKeyMaintenance:
    def test_get_key(self, keys: KeyManager) -> None:
        keys.create_key("u1", "email", "a@b.com", "pw")
        key = keys.get_key("email", "a@b.com")
        assert (key.user_id, key.secret_defined) == ("u1", True)
        with pytest.raises(InvalidKeyIdError):
            keys.get_key("email", "nobody@b.com")

    def test_update_secret(self, keys: KeyManager) -> None:
        keys.create_key("u1", "email", "a@b.com", "old")
        keys.update_key_secret("email", "a@b.com", "new")
        assert keys.verify_key("email", "a@b.com", "new") == "u1"
        with pytest.raises(InvalidCredentialsError):
            keys.verify_key("email", "a@b.com", "old")

    def test_remove_secret(self, keys: KeyManager) -> None:
        keys.create_key("u1", "email", "a@b.com", "pw")
        key = keys.update_key_secret("email", "a@b.com", None)
        assert key.secret_defined is False

    def test_update_missing_key(self, keys: KeyManager) -> None:
        with pytest.raises(InvalidKeyIdError):
            keys.update_key_secret("email", "nobody@b.com", "pw")

    def test_user_keys_and_cascade(self, keys: KeyManager) -> None:
        keys.create_key("u1", "email", "a@b.com", "pw")
        keys.create_key("u1", "oauth:github", "1234")
        keys.create_key("u2", "email", "b@b.com", "pw")
        assert len(keys.get_user_keys("u1")) == 2
        keys.delete_keys_for_user("u1")
        keys.delete_keys_for_user("u1")
        assert keys.get_user_keys("u1") == []
        assert len(keys.get_user_keys("u2")) == 1

    def test_delete_key_is_idempotent(self, keys: KeyManager) -> None:
        keys.create_key("u1", "email", "a@b.com", "pw")
        keys.delete_key("email", "a@b.com")
        keys.delete_key("email", "a@b.com")
        with pytest.raises(InvalidKeyIdError):
            keys.get_key("email", "a@b.com")
