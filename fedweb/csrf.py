"""Helpers for deriving and checking per-session CSRF tokens."""

from __future__ import annotations

import base64
import hashlib
import hmac

from .session import Session


def derive_token(session: Session) -> str:
    """Return the anti-forgery token for ``session``.

    The token is an HMAC of the session identifier keyed by the session's own
    secret, so it is stable for the session's lifetime and useless for any
    other session.
    """

    digest = hmac.new(
        session.csrf_secret.encode("ascii"),
        session.id.encode("ascii"),
        hashlib.sha256,
    ).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def validate(session: Session, presented: str | None) -> bool:
    """Return ``True`` only when ``presented`` matches the session's token."""

    if not presented:
        return False
    expected = derive_token(session)
    return hmac.compare_digest(expected.encode("ascii"), presented.encode("utf-8"))
