from __future__ import annotations

from dataclasses import replace

from conftest import run
from fedweb import csrf
from fedweb.session import InMemorySessionStore, RemoteApp, SessionManager

APP = RemoteApp(instance="https://example.social", client_id="cid", client_secret="cs")


def _session():
    return run(SessionManager(InMemorySessionStore(), 3600).create_session(APP))


def test_derive_token_is_deterministic() -> None:
    session = _session()
    assert csrf.derive_token(session) == csrf.derive_token(session)


def test_derive_token_survives_promotion() -> None:
    manager = SessionManager(InMemorySessionStore(), 3600)
    session = run(manager.create_session(APP))
    promoted = run(manager.promote(session.id, "tok"))
    assert csrf.derive_token(promoted) == csrf.derive_token(session)


def test_distinct_sessions_get_distinct_tokens() -> None:
    assert csrf.derive_token(_session()) != csrf.derive_token(_session())


def test_token_depends_on_secret() -> None:
    session = _session()
    other = replace(session, csrf_secret="another-secret")
    assert csrf.derive_token(session) != csrf.derive_token(other)


def test_token_is_form_safe() -> None:
    token = csrf.derive_token(_session())
    assert "=" not in token
    assert "+" not in token and "/" not in token


def test_validate_accepts_derived_token() -> None:
    session = _session()
    assert csrf.validate(session, csrf.derive_token(session))


def test_validate_rejects_missing_token() -> None:
    session = _session()
    assert not csrf.validate(session, None)
    assert not csrf.validate(session, "")


def test_validate_rejects_other_sessions_token() -> None:
    session = _session()
    assert not csrf.validate(session, csrf.derive_token(_session()))
    assert not csrf.validate(session, "wrong")
    assert not csrf.validate(session, "ünïcode")
