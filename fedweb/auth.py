"""Authentication gate applied to every route before its handler runs."""

from __future__ import annotations

from enum import IntEnum
from typing import Optional

from . import csrf
from .errors import InvalidCsrf, InvalidSession, SessionNotFound
from .session import Session, SessionManager


class AuthLevel(IntEnum):
    """Minimum proof of identity a route needs. Each level implies the ones below."""

    NO_AUTH = 0
    SESSION = 1
    CSRF = 2


async def authenticate(
    sessions: SessionManager,
    level: AuthLevel,
    session_id: str | None,
    csrf_token: str | None,
) -> Optional[Session]:
    """Resolve the request's session for ``level`` or raise why it cannot be.

    ``NO_AUTH`` never touches the store and returns ``None``. Otherwise an
    unknown or expired identifier raises ``InvalidSession`` and, for ``CSRF``
    routes, a missing or mismatched token raises ``InvalidCsrf``. Store
    failures (``BackendUnavailable``) propagate unchanged.
    """

    if level < AuthLevel.SESSION:
        return None

    try:
        session = await sessions.lookup(session_id)
    except SessionNotFound as exc:
        raise InvalidSession() from exc

    if level >= AuthLevel.CSRF and not csrf.validate(session, csrf_token):
        raise InvalidCsrf()

    return session
