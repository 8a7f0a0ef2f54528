"""
Pytest config.

Puts the repo root on sys.path so `import fedweb` works without installing, and
provides a fake remote instance plus an app wired to it.
"""

from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from fastapi.testclient import TestClient  # noqa: E402

from fedweb import csrf  # noqa: E402
from fedweb.config import Settings  # noqa: E402
from fedweb.errors import BackendUnavailable  # noqa: E402
from fedweb.main import create_app  # noqa: E402
from fedweb.mastodon import normalize_instance  # noqa: E402
from fedweb.session import InMemorySessionStore, RemoteApp, Session, SessionManager  # noqa: E402

VALID_CODE = "abc123"
ACCESS_TOKEN = "token-abc123"


class FakeRemote:
    """Shared state of a pretend instance; hands out one client per call."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Any]] = []
        self.favourites: Dict[str, int] = {}
        self.reblogs: Dict[str, int] = {}
        self.fail_with: Optional[str] = None

    def factory(self, instance: str, access_token: Optional[str]) -> "FakeClient":
        return FakeClient(self, instance, access_token)

    def actions(self, name: str) -> List[Any]:
        return [args for call, args in self.calls if call == name]


class FakeClient:
    def __init__(self, remote: FakeRemote, instance: str, access_token: Optional[str]):
        self.remote = remote
        self.instance = normalize_instance(instance)
        self.access_token = access_token

    async def __aenter__(self) -> "FakeClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    def _record(self, name: str, args: Any) -> None:
        if self.remote.fail_with:
            raise BackendUnavailable(self.remote.fail_with)
        self.remote.calls.append((name, args))

    async def register_app(self, client_name, redirect_uri, scopes, website) -> RemoteApp:
        self._record("register_app", (client_name, redirect_uri, list(scopes), website))
        return RemoteApp(instance=self.instance, client_id="cid", client_secret="csecret")

    def authorization_url(self, app, redirect_uri, scopes) -> str:
        return f"{app.instance}/oauth/authorize?client_id={app.client_id}&response_type=code"

    async def exchange_code(self, app, code, redirect_uri, scopes) -> str:
        self._record("exchange_code", code)
        if code != VALID_CODE:
            raise BackendUnavailable("invalid_grant")
        return ACCESS_TOKEN

    async def verify_credentials(self) -> Dict[str, Any]:
        self._record("verify_credentials", self.access_token)
        return {"id": "7", "username": "alice", "acct": "alice", "display_name": "Alice"}

    async def status_action(self, status_id: str, action: str) -> Dict[str, Any]:
        self._record(action, status_id)
        favourites = self.remote.favourites
        reblogs = self.remote.reblogs
        if action == "favourite":
            favourites[status_id] = favourites.get(status_id, 0) + 1
        elif action == "unfavourite":
            favourites[status_id] = max(favourites.get(status_id, 0) - 1, 0)
        elif action == "reblog":
            reblogs[status_id] = reblogs.get(status_id, 0) + 1
            return {
                "id": "reblog-" + status_id,
                "reblog": {
                    "id": status_id,
                    "favourites_count": favourites.get(status_id, 0),
                    "reblogs_count": reblogs[status_id],
                },
            }
        elif action == "unreblog":
            reblogs[status_id] = max(reblogs.get(status_id, 0) - 1, 0)
        return {
            "id": status_id,
            "reblog": None,
            "favourites_count": favourites.get(status_id, 0),
            "reblogs_count": reblogs.get(status_id, 0),
        }

    async def timeline(self, kind, *, max_id="", min_id="", instance="", limit=20):
        self._record("timeline", (kind, max_id, min_id, instance))
        return [_status("3"), _status("2")]

    async def upload_media(self, filename, content, content_type) -> str:
        self._record("upload_media", (filename, content, content_type))
        return "m1"

    async def post_status(self, content, **kwargs) -> Dict[str, Any]:
        self._record("post_status", (content, kwargs))
        return {"id": "99"}

    async def account_action(self, account_id, action, data=None) -> Dict[str, Any]:
        self._record(action, (account_id, data))
        return {"id": account_id}

    async def filters(self):
        self._record("filters", None)
        return [{"id": "f1", "phrase": "spoilers", "whole_word": True}]


def _status(status_id: str) -> Dict[str, Any]:
    return {
        "id": status_id,
        "content": f"<p>status {status_id}</p>",
        "created_at": "2024-01-01T00:00:00Z",
        "account": {"id": "8", "username": "bob", "acct": "bob", "display_name": "Bob"},
        "media_attachments": [],
        "favourites_count": 1,
        "reblogs_count": 0,
    }


@pytest.fixture
def settings() -> Settings:
    return Settings(client_website="http://testserver")


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def app(settings: Settings, store: InMemorySessionStore, remote: FakeRemote):
    return create_app(settings=settings, store=store, client_factory=remote.factory)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def sessions(app) -> SessionManager:
    return app.state.sessions


def run(awaitable):
    return asyncio.run(awaitable)


def make_session(
    sessions: SessionManager,
    *,
    authenticated: bool = True,
    instance: str = "https://example.social",
) -> Session:
    app = RemoteApp(instance=instance, client_id="cid", client_secret="csecret")
    session = run(sessions.create_session(app))
    if authenticated:
        session = run(sessions.promote(session.id, ACCESS_TOKEN, "7"))
    return session


def expire_session(store: InMemorySessionStore, session_id: str) -> None:
    def _expire(session: Session) -> Session:
        session.expires_at = time.time() - 1
        return session

    run(store.update(session_id, _expire))


def token_for(session: Session) -> str:
    return csrf.derive_token(session)
