"""Configuration handling for the fedweb client."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path


DEFAULT_SESSION_TTL_SECONDS = 365 * 24 * 60 * 60
DEFAULT_POST_FORMATS = "PlainText:text/plain,HTML:text/html,Markdown:text/markdown"
PACKAGE_TEMPLATES_DIR = str(Path(__file__).resolve().parent / "templates")


@dataclass
class PostFormat:
    """A content type offered in the compose form."""

    name: str
    mime: str


@dataclass
class Settings:
    """Client configuration; see ``get_settings`` for the variable names."""

    client_website: str
    client_name: str = "fedweb"
    client_scope: str = "read write follow"
    single_instance: str | None = None
    session_cookie_name: str = "session_id"
    session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS
    cookie_secure: bool = False
    cookie_samesite: str = "lax"
    post_formats: list[PostFormat] = field(
        default_factory=lambda: _parse_post_formats(DEFAULT_POST_FORMATS)
    )
    static_dir: str | None = None
    templates_dir: str = PACKAGE_TEMPLATES_DIR
    remote_timeout_seconds: int = 30
    log_level: str = "INFO"

    @property
    def redirect_uri(self) -> str:
        """OAuth callback URL registered with every remote instance."""

        return self.client_website.rstrip("/") + "/oauth_callback"

    @property
    def scopes(self) -> list[str]:
        return self.client_scope.split()


_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


def _parse_bool(raw: str | None, fallback: bool) -> bool:
    flag = (raw or "").strip().lower()
    if flag in _TRUTHY:
        return True
    if flag in _FALSY:
        return False
    return fallback


def _parse_int(raw: str | None, fallback: int) -> int:
    try:
        return int(raw) if raw is not None else fallback
    except ValueError:
        return fallback


def _parse_post_formats(value: str) -> list[PostFormat]:
    formats = []
    for item in value.split(","):
        name, sep, mime = item.strip().partition(":")
        if not sep or not name or not mime:
            continue
        formats.append(PostFormat(name=name, mime=mime))
    return formats


def _required_env(name: str) -> str:
    value = _optional_env(name)
    if value is None:
        raise RuntimeError(f"{name} is required but not set")
    return value


def _optional_env(name: str) -> str | None:
    return os.getenv(name) or None


@lru_cache
def get_settings() -> Settings:
    """Read ``Settings`` from the process environment once per process."""

    client_website = _required_env("CLIENT_WEBSITE")

    post_formats = _parse_post_formats(
        os.getenv("POST_FORMATS", DEFAULT_POST_FORMATS)
    ) or _parse_post_formats(DEFAULT_POST_FORMATS)

    return Settings(
        client_website=client_website,
        client_name=os.getenv("CLIENT_NAME", "fedweb"),
        client_scope=os.getenv("CLIENT_SCOPE", "read write follow"),
        single_instance=_optional_env("SINGLE_INSTANCE"),
        session_cookie_name=os.getenv("SESSION_COOKIE_NAME", "session_id"),
        session_ttl_seconds=_parse_int(
            os.getenv("SESSION_TTL_SECONDS"), DEFAULT_SESSION_TTL_SECONDS
        ),
        cookie_secure=_parse_bool(os.getenv("SESSION_COOKIE_SECURE"), False),
        cookie_samesite=_optional_env("SESSION_COOKIE_SAMESITE") or "lax",
        post_formats=post_formats,
        static_dir=_optional_env("STATIC_DIR"),
        templates_dir=_optional_env("TEMPLATES_DIR") or PACKAGE_TEMPLATES_DIR,
        remote_timeout_seconds=_parse_int(os.getenv("REMOTE_TIMEOUT_SECONDS"), 30),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
