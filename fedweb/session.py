"""Session lifecycle: creation, lookup, promotion and destruction."""

from __future__ import annotations

import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, Optional

from .errors import BackendUnavailable, SessionNotFound

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class RemoteApp:
    """OAuth application registered on the instance a session talks to."""

    instance: str
    client_id: str
    client_secret: str


@dataclass
class UserSettings:
    """Per-session display preferences."""

    default_visibility: str = "public"
    default_format: str = ""
    copy_scope: bool = True
    thread_in_new_tab: bool = False
    hide_attachments: bool = False
    mask_nsfw: bool = True
    notification_interval: int = 0
    fluoride_mode: bool = False
    dark_mode: bool = False
    anti_dopamine_mode: bool = False
    css: str = ""


@dataclass
class Session:
    """Server-side record binding a browser to a remote account."""

    id: str
    app: RemoteApp
    csrf_secret: str
    created_at: float
    expires_at: float
    state: SessionState = SessionState.ANONYMOUS
    access_token: Optional[str] = None
    user_id: Optional[str] = None
    settings: UserSettings = field(default_factory=UserSettings)

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    def is_expired(self, now: float | None = None) -> bool:
        if now is None:
            now = time.time()
        return now >= self.expires_at


class AbstractSessionStore(ABC):
    """Durable mapping from session identifier to session state.

    ``update`` must apply ``mutate`` atomically with respect to ``delete`` on
    the same identifier: an update of a missing entry returns ``None`` and
    never recreates it.
    """

    @abstractmethod
    async def get(self, session_id: str) -> Optional[Session]:
        """Return the stored session, expired or not."""

    @abstractmethod
    async def add(self, session: Session) -> None:
        """Insert a new session."""

    @abstractmethod
    async def update(
        self, session_id: str, mutate: Callable[[Session], Session]
    ) -> Optional[Session]:
        """Replace the stored session with ``mutate(current)``."""

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Remove the session; missing identifiers are ignored."""


class InMemorySessionStore(AbstractSessionStore):
    """A minimal in-process store guarded by a lock."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    async def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            self._purge_expired(time.time())
            session = self._sessions.get(session_id)
            # Hand out copies so callers never mutate the stored record.
            return replace(session) if session else None

    async def add(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.id] = replace(session)

    async def update(
        self, session_id: str, mutate: Callable[[Session], Session]
    ) -> Optional[Session]:
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return None
            updated = mutate(replace(current))
            self._sessions[session_id] = updated
            return replace(updated)

    async def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def count(self) -> int:
        """Number of stored sessions, live or expired."""

        with self._lock:
            return len(self._sessions)

    def _purge_expired(self, now: float) -> None:
        stale = [sid for sid, s in self._sessions.items() if s.is_expired(now)]
        for sid in stale:
            self._sessions.pop(sid)


class SessionManager:
    """Owns the session lifecycle on top of an external store."""

    def __init__(self, store: AbstractSessionStore, ttl_seconds: int) -> None:
        self._store = store
        self._ttl = ttl_seconds

    async def create_session(self, app: RemoteApp) -> Session:
        """Allocate a new anonymous session bound to ``app.instance``."""

        now = time.time()
        session = Session(
            id=secrets.token_urlsafe(32),
            app=app,
            csrf_secret=secrets.token_urlsafe(32),
            created_at=now,
            expires_at=now + self._ttl,
        )
        await self._call(self._store.add(session))
        logger.info("Created anonymous session for %s", app.instance)
        return session

    async def lookup(self, session_id: str | None) -> Session:
        """Return the live session or raise ``SessionNotFound``."""

        if not session_id:
            raise SessionNotFound()
        session = await self._call(self._store.get(session_id))
        if session is None or session.is_expired():
            raise SessionNotFound()
        return session

    async def promote(
        self, session_id: str, access_token: str, user_id: str | None = None
    ) -> Session:
        """Attach ``access_token`` and mark the session authenticated."""

        now = time.time()

        def _promote(session: Session) -> Session:
            session.state = SessionState.AUTHENTICATED
            session.access_token = access_token
            session.user_id = user_id
            session.expires_at = now + self._ttl
            return session

        session = await self._update_live(session_id, _promote, now)
        logger.info("Promoted session for %s", session.app.instance)
        return session

    async def save_settings(self, session_id: str, settings: UserSettings) -> Session:
        def _apply(session: Session) -> Session:
            session.settings = settings
            return session

        return await self._update_live(session_id, _apply, time.time())

    async def destroy(self, session_id: str | None) -> None:
        """Remove the session; destroying an unknown session is not an error."""

        if not session_id:
            return
        await self._call(self._store.delete(session_id))
        logger.info("Destroyed session")

    async def _update_live(
        self, session_id: str, mutate: Callable[[Session], Session], now: float
    ) -> Session:
        # Expired sessions are rejected inside the atomic update so a
        # concurrent expiry cannot be raced into a refreshed record.
        expired = False

        def _guarded(session: Session) -> Session:
            nonlocal expired
            if session.is_expired(now):
                expired = True
                return session
            return mutate(session)

        if not session_id:
            raise SessionNotFound()
        session = await self._call(self._store.update(session_id, _guarded))
        if session is None or expired:
            raise SessionNotFound()
        return session

    async def _call(self, awaitable):
        try:
            return await awaitable
        except OSError as exc:
            raise BackendUnavailable(f"session store: {exc}") from exc
