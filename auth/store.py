"""
auth/store.py -- SQLAlchemy Core storage adapter for users, keys and sessions.

Pattern: Repository + Data Mapper. SQLAlchemyAdapter is the repository and
implements the StorageAdapter protocol (auth/adapter.py); _row_to_key /
_row_to_session are the mappers. Orchestration code never touches SQL.

SQLAlchemy Core (not ORM) keeps the dataclasses in auth/models.py the
authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Host schema:
  The users table always has an `id` primary key. Everything else is
  host-defined: pass extra Column objects via user_columns, e.g.

      SQLAlchemyAdapter(
          "postgresql://user:pw@host/db",
          user_columns=[Column("username", String(255), nullable=False, unique=True)],
      )

  Column objects bind to exactly one Table, so pass fresh instances to each
  adapter. UNIQUE / NOT NULL rules on those columns surface as
  ConstraintViolationError carrying the driver exception as payload.

Security:
  All queries use bound parameters. No f-strings in SQL.

Transactions:
  create_user_with_key() runs both inserts inside one engine.begin() block.
  Any exception raised inside the block rolls the whole unit back, so a failed
  key insert never leaves the user row behind.

Error translation:
  IntegrityError    -> ConstraintViolationError / DuplicateKeyError
  OperationalError  -> TransientError (locked DB, lost connection, timeout)
  pool TimeoutError -> TransientError
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Column, Index, MetaData, PrimaryKeyConstraint, String, Table, Text, create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from auth.errors import ConstraintViolationError, DuplicateKeyError, TransientError
from auth.models import KeyRecord, SessionRecord, UserRecord
from core.config import get_settings

logger = logging.getLogger("authcore.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


def _build_tables(metadata: MetaData, user_columns: Iterable[Column]) -> tuple[Table, Table, Table]:
    users = Table(
        "auth_user",
        metadata,
        Column("id", String(255), primary_key=True),
        *user_columns,
    )
    keys = Table(
        "auth_key",
        metadata,
        Column("provider_id", String(255), nullable=False),
        Column("provider_user_id", String(255), nullable=False),
        Column("user_id", String(255), nullable=False),
        Column("hashed_secret", Text),  # NULL for identity-only keys
        PrimaryKeyConstraint("provider_id", "provider_user_id", name="pk_auth_key"),
        Index("ix_auth_key_user_id", "user_id"),
    )
    sessions = Table(
        "auth_session",
        metadata,
        Column("session_id", String(255), primary_key=True),
        Column("user_id", String(255), nullable=False),
        Column("expires_at", String(32), nullable=False),  # ISO 8601 UTC
        Column("attributes", Text),  # JSON object
        Index("ix_auth_session_user_id", "user_id"),
    )
    return users, keys, sessions


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases ignore it.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        # Naive timestamp -- assume UTC
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@contextmanager
def _transient_errors() -> Iterator[None]:
    try:
        yield
    except (OperationalError, PoolTimeoutError) as exc:
        logger.warning("Storage backend unavailable: %s", exc.__class__.__name__)
        raise TransientError("storage backend unavailable") from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SQLAlchemyAdapter:
    """Relational StorageAdapter for User, Key and Session records.

    Usage:
        adapter = SQLAlchemyAdapter("sqlite:///:memory:", user_columns=[Column("username", String(255))])
        auth = Auth(adapter)
        ...
        adapter.close()
    """

    def __init__(self, db_url: Optional[str] = None, user_columns: Iterable[Column] = ()) -> None:
        settings = get_settings()
        db_url = db_url or settings.database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = settings.database_timeout_seconds
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        self.metadata = MetaData()
        self._users, self._keys, self._sessions = _build_tables(self.metadata, user_columns)
        with _transient_errors():
            self.metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with _transient_errors(), self.engine.connect() as conn:
            row = conn.execute(self._users.select().where(self._users.c.id == user_id)).fetchone()
        return dict(row._mapping) if row is not None else None

    def insert_user(self, record: UserRecord) -> None:
        with _transient_errors(), self.engine.begin() as conn:
            self._insert_user(conn, record)

    def update_user(self, user_id: str, attributes: dict[str, Any]) -> bool:
        """Update host columns on an existing user.

        Returns True if a row was updated, False if user_id was not found.
        Unknown column names on an existing user are a ConstraintViolationError
        -- the host schema decides which attributes exist. A missing user is
        reported as False first, whatever the attributes.
        """
        unknown = set(attributes) - set(self._users.c.keys())
        if unknown or not attributes:
            if self.get_user(user_id) is None:
                return False
            if unknown:
                raise ConstraintViolationError(f"Unknown user attributes: {sorted(unknown)!r}")
            return True
        with _transient_errors(), self.engine.begin() as conn:
            try:
                result = conn.execute(self._users.update().where(self._users.c.id == user_id).values(**attributes))
            except IntegrityError as exc:
                raise ConstraintViolationError("user attribute constraint violated", payload=exc) from exc
        return result.rowcount > 0

    def delete_user(self, user_id: str) -> None:
        with _transient_errors(), self.engine.begin() as conn:
            conn.execute(self._users.delete().where(self._users.c.id == user_id))

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def get_key(self, provider_id: str, provider_user_id: str) -> Optional[KeyRecord]:
        with _transient_errors(), self.engine.connect() as conn:
            row = conn.execute(
                self._keys.select().where(
                    (self._keys.c.provider_id == provider_id) & (self._keys.c.provider_user_id == provider_user_id)
                )
            ).fetchone()
        return _row_to_key(row) if row is not None else None

    def get_keys_by_user_id(self, user_id: str) -> list[KeyRecord]:
        with _transient_errors(), self.engine.connect() as conn:
            rows = conn.execute(
                self._keys.select()
                .where(self._keys.c.user_id == user_id)
                .order_by(self._keys.c.provider_id, self._keys.c.provider_user_id)
            ).fetchall()
        return [_row_to_key(r) for r in rows]

    def insert_key(self, record: KeyRecord) -> None:
        with _transient_errors(), self.engine.begin() as conn:
            self._insert_key(conn, record)

    def update_key(self, provider_id: str, provider_user_id: str, hashed_secret: Optional[str]) -> bool:
        with _transient_errors(), self.engine.begin() as conn:
            result = conn.execute(
                self._keys.update()
                .where((self._keys.c.provider_id == provider_id) & (self._keys.c.provider_user_id == provider_user_id))
                .values(hashed_secret=hashed_secret)
            )
        return result.rowcount > 0

    def delete_key(self, provider_id: str, provider_user_id: str) -> None:
        with _transient_errors(), self.engine.begin() as conn:
            conn.execute(
                self._keys.delete().where(
                    (self._keys.c.provider_id == provider_id) & (self._keys.c.provider_user_id == provider_user_id)
                )
            )

    def delete_keys_by_user_id(self, user_id: str) -> None:
        with _transient_errors(), self.engine.begin() as conn:
            conn.execute(self._keys.delete().where(self._keys.c.user_id == user_id))

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        with _transient_errors(), self.engine.connect() as conn:
            row = conn.execute(self._sessions.select().where(self._sessions.c.session_id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def get_sessions_by_user_id(self, user_id: str) -> list[SessionRecord]:
        with _transient_errors(), self.engine.connect() as conn:
            rows = conn.execute(
                self._sessions.select()
                .where(self._sessions.c.user_id == user_id)
                .order_by(self._sessions.c.expires_at)
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def insert_session(self, record: SessionRecord) -> None:
        with _transient_errors(), self.engine.begin() as conn:
            try:
                conn.execute(
                    self._sessions.insert().values(
                        session_id=record.session_id,
                        user_id=record.user_id,
                        expires_at=_to_iso(record.expires_at),
                        attributes=json.dumps(record.attributes),
                    )
                )
            except IntegrityError as exc:
                raise ConstraintViolationError("session id already exists", payload=exc) from exc

    def delete_session(self, session_id: str) -> None:
        with _transient_errors(), self.engine.begin() as conn:
            conn.execute(self._sessions.delete().where(self._sessions.c.session_id == session_id))

    def delete_sessions_by_user_id(self, user_id: str) -> None:
        with _transient_errors(), self.engine.begin() as conn:
            conn.execute(self._sessions.delete().where(self._sessions.c.user_id == user_id))

    # ------------------------------------------------------------------
    # Composite (transactional)
    # ------------------------------------------------------------------

    def create_user_with_key(self, user: UserRecord, key: Optional[KeyRecord]) -> None:
        """Insert the user and (optionally) its first key as one transaction.

        Raising inside engine.begin() rolls back both inserts, so readers see
        either both rows or neither.
        """
        with _transient_errors(), self.engine.begin() as conn:
            self._insert_user(conn, user)
            if key is not None:
                self._insert_key(conn, key)

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Insert helpers (shared by single and composite writes)
    # ------------------------------------------------------------------

    def _insert_user(self, conn: Connection, record: UserRecord) -> None:
        unknown = set(record) - set(self._users.c.keys())
        if unknown:
            raise ConstraintViolationError(f"Unknown user attributes: {sorted(unknown)!r}")
        try:
            conn.execute(self._users.insert().values(**record))
        except IntegrityError as exc:
            raise ConstraintViolationError("user attribute constraint violated", payload=exc) from exc

    def _insert_key(self, conn: Connection, record: KeyRecord) -> None:
        try:
            conn.execute(
                self._keys.insert().values(
                    provider_id=record.provider_id,
                    provider_user_id=record.provider_user_id,
                    user_id=record.user_id,
                    hashed_secret=record.hashed_secret,
                )
            )
        except IntegrityError as exc:
            raise DuplicateKeyError(record.provider_id, record.provider_user_id) from exc


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_key(row) -> KeyRecord:
    return KeyRecord(
        provider_id=row.provider_id,
        provider_user_id=row.provider_user_id,
        user_id=row.user_id,
        hashed_secret=row.hashed_secret,
    )


def _row_to_session(row) -> SessionRecord:
    return SessionRecord(
        session_id=row.session_id,
        user_id=row.user_id,
        expires_at=_from_iso(row.expires_at),
        attributes=json.loads(row.attributes) if row.attributes else {},
    )
