"""
tests/conftest.py -- Shared test fixtures for authcore.

This module provides:
  - hasher:   BcryptHasher at the minimum cost factor (fast tests)
  - adapter:  parametrised over both reference adapters, so every test that
              uses it runs once against SQLite (relational) and once against
              the in-memory key-value store
  - auth:     Auth wired to `adapter` and `hasher`

Design: each SQLAlchemyAdapter gets its own plain "sqlite:///:memory:" URL.
SQLAlchemy pools a single connection per thread for in-memory SQLite, so one
adapter sees one private database and tests never share state.

Host schema used throughout: username (unique) and role.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest
from sqlalchemy import Column, String

from auth.core import Auth
from auth.memory import MemoryAdapter
from auth.store import SQLAlchemyAdapter
from auth.tokens import BcryptHasher
from core.config import get_settings

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_sql_adapter(db_url: str = "sqlite:///:memory:") -> SQLAlchemyAdapter:
    """Fresh SQLite adapter (in-memory by default) with the test host schema.

    Column objects bind to one Table, so they are built per adapter.
    """
    return SQLAlchemyAdapter(
        db_url,
        user_columns=[
            Column("username", String(255), unique=True),
            Column("role", String(30)),
        ],
    )


def make_memory_adapter() -> MemoryAdapter:
    return MemoryAdapter(unique_attributes=("username",))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _fresh_settings() -> Generator[None, None, None]:
    """Drop the cached Settings so env changes in one test never leak into another."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def hasher() -> BcryptHasher:
    return BcryptHasher(rounds=4)


@pytest.fixture(params=["sqlalchemy", "memory"])
def adapter(request):
    if request.param == "sqlalchemy":
        a = make_sql_adapter()
        yield a
        a.close()
    else:
        yield make_memory_adapter()


@pytest.fixture
def auth(adapter, hasher) -> Auth:
    return Auth(adapter, hasher=hasher)
