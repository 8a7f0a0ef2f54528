from __future__ import annotations

import time

import pytest

from conftest import expire_session, run
from fedweb.errors import BackendUnavailable, SessionNotFound
from fedweb.session import (
    InMemorySessionStore,
    RemoteApp,
    SessionManager,
    SessionState,
    UserSettings,
)

TTL = 365 * 24 * 60 * 60
APP = RemoteApp(instance="https://example.social", client_id="cid", client_secret="cs")


def _manager(store=None) -> SessionManager:
    return SessionManager(
        store if store is not None else InMemorySessionStore(), ttl_seconds=TTL
    )


def test_create_session_is_anonymous_and_bound_to_instance() -> None:
    manager = _manager()
    before = time.time()
    session = run(manager.create_session(APP))

    assert session.state is SessionState.ANONYMOUS
    assert not session.is_authenticated
    assert session.app.instance == "https://example.social"
    assert session.access_token is None
    assert session.expires_at >= before + TTL
    assert session.id and session.csrf_secret
    assert session.id != session.csrf_secret


def test_create_session_writes_to_the_given_empty_store() -> None:
    store = InMemorySessionStore()
    assert store.count() == 0

    run(_manager(store).create_session(APP))

    assert store.count() == 1


def test_create_session_ids_are_unique() -> None:
    manager = _manager()
    ids = {run(manager.create_session(APP)).id for _ in range(20)}
    assert len(ids) == 20


def test_lookup_returns_stored_session() -> None:
    manager = _manager()
    session = run(manager.create_session(APP))
    found = run(manager.lookup(session.id))
    assert found.id == session.id
    assert found.csrf_secret == session.csrf_secret


@pytest.mark.parametrize("session_id", [None, "", "does-not-exist"])
def test_lookup_unknown_session_is_not_found(session_id) -> None:
    with pytest.raises(SessionNotFound):
        run(_manager().lookup(session_id))


def test_lookup_expired_session_is_not_found() -> None:
    store = InMemorySessionStore()
    manager = _manager(store)
    session = run(manager.create_session(APP))
    expire_session(store, session.id)

    with pytest.raises(SessionNotFound):
        run(manager.lookup(session.id))


def test_promote_attaches_token_and_keeps_csrf_secret() -> None:
    manager = _manager()
    session = run(manager.create_session(APP))

    promoted = run(manager.promote(session.id, "tok", "7"))

    assert promoted.state is SessionState.AUTHENTICATED
    assert promoted.access_token == "tok"
    assert promoted.user_id == "7"
    assert promoted.csrf_secret == session.csrf_secret
    assert run(manager.lookup(session.id)).is_authenticated


def test_promote_after_destroy_does_not_resurrect() -> None:
    store = InMemorySessionStore()
    manager = _manager(store)
    session = run(manager.create_session(APP))
    run(manager.destroy(session.id))

    with pytest.raises(SessionNotFound):
        run(manager.promote(session.id, "tok"))
    assert store.count() == 0


def test_promote_unknown_session_is_not_found() -> None:
    store = InMemorySessionStore()
    with pytest.raises(SessionNotFound):
        run(_manager(store).promote("never-created", "tok"))
    assert store.count() == 0


def test_promote_expired_session_is_not_found() -> None:
    store = InMemorySessionStore()
    manager = _manager(store)
    session = run(manager.create_session(APP))
    expire_session(store, session.id)

    with pytest.raises(SessionNotFound):
        run(manager.promote(session.id, "tok"))


def test_destroy_is_idempotent() -> None:
    manager = _manager()
    session = run(manager.create_session(APP))

    run(manager.destroy(session.id))
    run(manager.destroy(session.id))
    run(manager.destroy(None))

    with pytest.raises(SessionNotFound):
        run(manager.lookup(session.id))


def test_save_settings_persists_preferences() -> None:
    manager = _manager()
    session = run(manager.create_session(APP))
    run(manager.save_settings(session.id, UserSettings(dark_mode=True, css="a{}")))

    stored = run(manager.lookup(session.id))
    assert stored.settings.dark_mode is True
    assert stored.settings.css == "a{}"


def test_lookup_returns_copies() -> None:
    manager = _manager()
    session = run(manager.create_session(APP))
    found = run(manager.lookup(session.id))
    found.state = SessionState.AUTHENTICATED

    assert not run(manager.lookup(session.id)).is_authenticated


class _BrokenStore(InMemorySessionStore):
    async def get(self, session_id):
        raise ConnectionRefusedError("store is down")

    async def add(self, session):
        raise ConnectionRefusedError("store is down")


def test_store_failures_become_backend_unavailable() -> None:
    manager = _manager(_BrokenStore())

    with pytest.raises(BackendUnavailable, match="store is down"):
        run(manager.create_session(APP))
    with pytest.raises(BackendUnavailable):
        run(manager.lookup("anything"))
