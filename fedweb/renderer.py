"""HTML rendering on top of Jinja2 templates."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .config import Settings
from .session import UserSettings

if TYPE_CHECKING:
    from .dispatch import RequestContext

logger = logging.getLogger(__name__)


class Renderer:
    """Renders named templates with the context every page shares."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._env = Environment(
            loader=FileSystemLoader(settings.templates_dir),
            autoescape=select_autoescape(["html"]),
        )
        logger.debug("Loading templates from %s", settings.templates_dir)

    def base_context(self, ctx: "RequestContext | None") -> Dict[str, Any]:
        session = ctx.session if ctx is not None else None
        return {
            "client_name": self._settings.client_name,
            "csrf_token": ctx.csrf_token if ctx is not None else "",
            "user_id": session.user_id if session is not None else None,
            "instance": session.app.instance if session is not None else None,
            "settings": session.settings if session is not None else UserSettings(),
            "post_formats": self._settings.post_formats,
            "referrer": _request_uri(ctx) if ctx is not None else "/",
        }

    def render(self, ctx: "RequestContext | None", template: str, **data: Any) -> str:
        context = self.base_context(ctx)
        context.update(data)
        return self._env.get_template(template).render(**context)

    def error_page(self, err: Exception, retry: bool) -> str:
        return self.render(None, "error.html", error=str(err), retry=retry)


def _request_uri(ctx: "RequestContext") -> str:
    url = ctx.request.url
    if url.query:
        return f"{url.path}?{url.query}"
    return url.path
