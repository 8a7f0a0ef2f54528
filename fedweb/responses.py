"""Encoding of handler results and pipeline failures into HTTP responses."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from .config import Settings

# Browsers drop a cookie whose expiry is already in the past.
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ResponseKind(str, Enum):
    """What a route writes back, fixed when the route is registered."""

    HTML = "html"
    JSON = "json"

    @property
    def content_type(self) -> str:
        if self is ResponseKind.JSON:
            return "application/json"
        return "text/html; charset=utf-8"


def html(content: str, status_code: int = 200) -> Response:
    return HTMLResponse(content, status_code=status_code)


def json_data(payload: Any) -> Response:
    """Successful JSON envelope: ``{"data": payload}``."""

    return JSONResponse({"data": payload})


def json_error(err: Exception) -> Response:
    return JSONResponse({"error": str(err)}, status_code=500)


def error_response(
    kind: ResponseKind,
    err: Exception,
    retry: bool,
    render_page: Callable[[Exception, bool], str],
) -> Response:
    """500 response for ``err`` in the route's declared format.

    ``retry`` tells the HTML error page whether resubmitting the request is
    safe; JSON callers only get the message.
    """

    if kind is ResponseKind.JSON:
        return json_error(err)
    return html(render_page(err, retry), status_code=500)


def redirect(url: str) -> Response:
    """302 with a ``Location`` header and no body."""

    return RedirectResponse(url, status_code=302)


def set_session_cookie(
    response: Response, settings: Settings, session_id: str, max_age: int
) -> None:
    """Attach the session cookie; a non-positive ``max_age`` clears it."""

    if max_age <= 0:
        response.set_cookie(
            settings.session_cookie_name,
            session_id,
            max_age=0,
            expires=_EPOCH,
            httponly=True,
            secure=settings.cookie_secure,
            samesite=settings.cookie_samesite,
            path="/",
        )
        return
    response.set_cookie(
        settings.session_cookie_name,
        session_id,
        max_age=max_age,
        expires=max_age,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        path="/",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    set_session_cookie(response, settings, "", 0)
