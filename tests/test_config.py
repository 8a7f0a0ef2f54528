from __future__ import annotations

import pytest

from fedweb.config import (
    DEFAULT_SESSION_TTL_SECONDS,
    PACKAGE_TEMPLATES_DIR,
    PostFormat,
    Settings,
    get_settings,
)

_ENV_VARS = (
    "CLIENT_WEBSITE",
    "CLIENT_NAME",
    "CLIENT_SCOPE",
    "SINGLE_INSTANCE",
    "SESSION_COOKIE_NAME",
    "SESSION_TTL_SECONDS",
    "SESSION_COOKIE_SECURE",
    "SESSION_COOKIE_SAMESITE",
    "POST_FORMATS",
    "STATIC_DIR",
    "TEMPLATES_DIR",
    "REMOTE_TIMEOUT_SECONDS",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_client_website_is_required() -> None:
    with pytest.raises(RuntimeError, match="CLIENT_WEBSITE"):
        get_settings()


def test_defaults(monkeypatch) -> None:
    monkeypatch.setenv("CLIENT_WEBSITE", "https://client.example")

    settings = get_settings()

    assert settings.client_name == "fedweb"
    assert settings.scopes == ["read", "write", "follow"]
    assert settings.single_instance is None
    assert settings.session_cookie_name == "session_id"
    assert settings.session_ttl_seconds == DEFAULT_SESSION_TTL_SECONDS
    assert settings.cookie_secure is False
    assert settings.cookie_samesite == "lax"
    assert settings.templates_dir == PACKAGE_TEMPLATES_DIR
    assert settings.remote_timeout_seconds == 30
    assert [f.mime for f in settings.post_formats] == [
        "text/plain",
        "text/html",
        "text/markdown",
    ]


def test_overrides(monkeypatch) -> None:
    monkeypatch.setenv("CLIENT_WEBSITE", "https://client.example/")
    monkeypatch.setenv("CLIENT_NAME", "myclient")
    monkeypatch.setenv("SINGLE_INSTANCE", "example.social")
    monkeypatch.setenv("SESSION_TTL_SECONDS", "60")
    monkeypatch.setenv("SESSION_COOKIE_SECURE", "yes")
    monkeypatch.setenv("POST_FORMATS", "Plain:text/plain, broken ,BBCode:text/bbcode")
    monkeypatch.setenv("REMOTE_TIMEOUT_SECONDS", "not-a-number")

    settings = get_settings()

    assert settings.client_name == "myclient"
    assert settings.redirect_uri == "https://client.example/oauth_callback"
    assert settings.single_instance == "example.social"
    assert settings.session_ttl_seconds == 60
    assert settings.cookie_secure is True
    assert settings.post_formats == [
        PostFormat("Plain", "text/plain"),
        PostFormat("BBCode", "text/bbcode"),
    ]
    assert settings.remote_timeout_seconds == 30


def test_unusable_post_formats_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("CLIENT_WEBSITE", "https://client.example")
    monkeypatch.setenv("POST_FORMATS", "nonsense")

    assert len(get_settings().post_formats) == 3


def test_settings_are_cached(monkeypatch) -> None:
    monkeypatch.setenv("CLIENT_WEBSITE", "https://client.example")
    assert get_settings() is get_settings()


def test_redirect_uri_from_constructor() -> None:
    assert Settings(client_website="http://testserver").redirect_uri == (
        "http://testserver/oauth_callback"
    )


def test_empty_client_website_counts_as_missing(monkeypatch) -> None:
    monkeypatch.setenv("CLIENT_WEBSITE", "")
    with pytest.raises(RuntimeError, match="CLIENT_WEBSITE"):
        get_settings()


@pytest.mark.parametrize("raw, expected", [("off", False), ("ON", True), ("maybe", False)])
def test_cookie_secure_flag_parsing(monkeypatch, raw, expected) -> None:
    monkeypatch.setenv("CLIENT_WEBSITE", "https://client.example")
    monkeypatch.setenv("SESSION_COOKIE_SECURE", raw)
    assert get_settings().cookie_secure is expected
