"""
auth/attributes.py -- Attribute Mapper: stored records -> public attributes.

The host supplies a pure projection function (strategy pattern). The core
calls it at exactly two points: whenever a stored user record or a stored
session's attributes must be exposed to the caller.

Invariant: the user's id is never taken from the projection. project_user()
drops any "id" the mapper returns and builds User(id=record["id"]), and
User.to_dict() re-injects id last.

Mapper exceptions are not caught -- they surface unchanged to the caller.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from auth.models import User, UserRecord

AttributeMapper = Callable[[dict[str, Any]], dict[str, Any]]


def default_user_attributes(record: UserRecord) -> dict[str, Any]:
    """Expose every stored field except id."""
    return {k: v for k, v in record.items() if k != "id"}


def default_session_attributes(attributes: dict[str, Any]) -> dict[str, Any]:
    return dict(attributes)


def project_user(record: UserRecord, mapper: Optional[AttributeMapper] = None) -> User:
    projected = (mapper or default_user_attributes)(dict(record))
    attributes = {k: v for k, v in projected.items() if k != "id"}
    return User(id=record["id"], attributes=attributes)


def project_session_attributes(
    attributes: dict[str, Any], mapper: Optional[AttributeMapper] = None
) -> dict[str, Any]:
    return (mapper or default_session_attributes)(dict(attributes))
