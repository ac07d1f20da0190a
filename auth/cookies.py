"""
auth/cookies.py -- Framework-agnostic session cookie and bearer helpers.

Produces and parses plain header strings so any web framework (or none) can
carry the session id. Nothing here touches request/response objects.

Cookie attributes:
  HttpOnly       JS cannot read the cookie (XSS mitigation).
  SameSite=Lax   sent on same-site navigations, not on cross-site POST.
  Secure         only over HTTPS when SECURE_COOKIES=true.
  Path=/         whole site.
  Expires        matches the session's expires_at so both lapse together.

Parsers return None on any malformed input, mirroring how an absent cookie
is treated: the caller sees "no session" and moves on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timezone
from email.utils import format_datetime
from http.cookies import CookieError, SimpleCookie
from typing import Optional

from auth.models import Session
from core.config import get_settings


@dataclass
class SessionCookie:
    name: str
    value: str
    attributes: dict[str, object] = field(default_factory=dict)

    def serialize(self) -> str:
        """Return the Set-Cookie header value."""
        cookie: SimpleCookie = SimpleCookie()
        cookie[self.name] = self.value
        morsel = cookie[self.name]
        for key, val in self.attributes.items():
            morsel[key] = val
        return morsel.OutputString()


def _base_attributes() -> dict[str, object]:
    attributes: dict[str, object] = {"path": "/", "httponly": True, "samesite": "Lax"}
    if get_settings().secure_cookies:
        attributes["secure"] = True
    return attributes


def create_session_cookie(session: Session) -> SessionCookie:
    attributes = _base_attributes()
    attributes["expires"] = format_datetime(session.expires_at.astimezone(timezone.utc), usegmt=True)
    return SessionCookie(get_settings().session_cookie_name, session.session_id, attributes)


def create_blank_session_cookie() -> SessionCookie:
    """A cookie that deletes the session cookie in the browser (logout)."""
    attributes = _base_attributes()
    attributes["max-age"] = 0
    return SessionCookie(get_settings().session_cookie_name, "", attributes)


def read_session_cookie(cookie_header: Optional[str]) -> Optional[str]:
    """Extract the session id from a Cookie request header, or None."""
    if not cookie_header:
        return None
    cookie: SimpleCookie = SimpleCookie()
    try:
        cookie.load(cookie_header)
    except CookieError:
        return None
    morsel = cookie.get(get_settings().session_cookie_name)
    if morsel is None or not morsel.value:
        return None
    return morsel.value


def read_bearer_token(authorization_header: Optional[str]) -> Optional[str]:
    """Extract the token from 'Authorization: Bearer <token>', or None."""
    if not authorization_header:
        return None
    scheme, _, token = authorization_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
