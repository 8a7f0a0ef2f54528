"""Uniform request pipeline wrapped around every route handler."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import Response
from starlette.datastructures import FormData, UploadFile

from . import csrf
from .auth import AuthLevel, authenticate
from .config import Settings
from .errors import ClientDisconnected, FedwebError, InvalidSession
from .responses import ResponseKind, clear_session_cookie, error_response, redirect
from .session import Session, SessionManager

if TYPE_CHECKING:
    from .renderer import Renderer
    from .service import Service

logger = logging.getLogger(__name__)

DISCONNECT_POLL_SECONDS = 0.1


class InvalidSessionPolicy(str, Enum):
    """What a route does when it ends with ``InvalidSession``."""

    # 500 error page or JSON error.
    ERROR = "error"
    # Send the browser to the sign-in flow instead of showing an error.
    REDIRECT_SIGNIN = "redirect_signin"
    # Nothing left to sign out of: clear the cookie and go home.
    SIGNED_OUT = "signed_out"


Handler = Callable[["RequestContext"], Awaitable[Response]]


@dataclass(frozen=True)
class Route:
    """Static description of one endpoint."""

    method: str
    path: str
    handler: Handler
    auth: AuthLevel = AuthLevel.SESSION
    kind: ResponseKind = ResponseKind.HTML
    on_invalid_session: InvalidSessionPolicy = InvalidSessionPolicy.ERROR

    @property
    def name(self) -> str:
        return f"{self.method.lower()}_{self.handler.__name__}"


@dataclass
class RequestContext:
    """Per-request state handed to handlers; never shared across requests."""

    request: Request
    route: Route
    service: "Service"
    settings: Settings
    form: FormData
    session: Optional[Session] = None

    @property
    def session_id(self) -> str:
        return self.request.cookies.get(self.settings.session_cookie_name, "")

    @property
    def csrf_token(self) -> str:
        if self.session is None:
            return ""
        return csrf.derive_token(self.session)

    def path_param(self, name: str) -> str:
        return str(self.request.path_params.get(name, ""))

    def query(self, name: str, default: str = "") -> str:
        return self.request.query_params.get(name, default)

    def query_list(self, name: str) -> List[str]:
        return self.request.query_params.getlist(name)

    def form_value(self, name: str) -> str:
        """Body field first, then the query string."""

        value = self.form.get(name)
        if isinstance(value, str):
            return value
        return self.query(name)

    def form_list(self, name: str) -> List[str]:
        return [v for v in self.form.getlist(name) if isinstance(v, str)]

    def form_files(self, name: str) -> List[UploadFile]:
        return [
            v for v in self.form.getlist(name) if isinstance(v, UploadFile) and v.filename
        ]

    def require_login(self) -> Session:
        """Return the session if it holds an access token, else ``InvalidSession``."""

        if self.session is None or not self.session.is_authenticated:
            raise InvalidSession()
        return self.session


class Dispatcher:
    """Builds one endpoint per route that runs the gate, handler and encoder."""

    def __init__(
        self,
        sessions: SessionManager,
        service: "Service",
        renderer: "Renderer",
        settings: Settings,
    ) -> None:
        self._sessions = sessions
        self._service = service
        self._renderer = renderer
        self._settings = settings

    def mount(self, app: FastAPI, routes: Iterable[Route]) -> None:
        for route in routes:
            app.add_api_route(
                route.path,
                self.endpoint(route),
                methods=[route.method],
                name=route.name,
                include_in_schema=False,
            )

    def endpoint(self, route: Route) -> Callable[[Request], Awaitable[Response]]:
        async def endpoint(request: Request) -> Response:
            return await self.dispatch(route, request)

        endpoint.__name__ = route.name
        return endpoint

    async def dispatch(self, route: Route, request: Request) -> Response:
        begin = time.perf_counter()
        err: Optional[BaseException] = None
        try:
            # Buffer the body up front so the disconnect watcher never races
            # the form parser for ASGI receive messages.
            await request.body()
            try:
                response = await _until_disconnected(
                    request, self._run(route, request)
                )
            except FedwebError as exc:
                response, err = self._translate(route, request, exc)
            if "content-type" not in response.headers:
                response.headers["content-type"] = route.kind.content_type
            return response
        except BaseException as exc:
            err = exc
            raise
        finally:
            elapsed = time.perf_counter() - begin
            logger.info(
                "path=%s, err=%s, took=%.3fms",
                request.url.path,
                err,
                elapsed * 1000,
                extra={
                    "request_path": request.url.path,
                    "error": repr(err) if err is not None else None,
                    "elapsed_ms": elapsed * 1000,
                },
            )

    async def _run(self, route: Route, request: Request) -> Response:
        form = await request.form()
        csrf_token = form.get("csrf_token")
        session = await authenticate(
            self._sessions,
            route.auth,
            request.cookies.get(self._settings.session_cookie_name),
            csrf_token if isinstance(csrf_token, str) else None,
        )
        ctx = RequestContext(
            request=request,
            route=route,
            service=self._service,
            settings=self._settings,
            form=form,
            session=session,
        )
        return await route.handler(ctx)

    def _translate(
        self, route: Route, request: Request, exc: FedwebError
    ) -> tuple[Response, Optional[FedwebError]]:
        if isinstance(exc, ClientDisconnected):
            # Nobody is listening; the status only shows up in access logs.
            return Response(status_code=499), exc

        if isinstance(exc, InvalidSession):
            policy = route.on_invalid_session
            if policy is InvalidSessionPolicy.REDIRECT_SIGNIN:
                return redirect("/signin"), None
            if policy is InvalidSessionPolicy.SIGNED_OUT:
                response = redirect("/")
                clear_session_cookie(response, self._settings)
                return response, None

        retry = request.method == "GET"
        response = error_response(route.kind, exc, retry, self._renderer.error_page)
        return response, exc


async def _until_disconnected(request: Request, work: Awaitable[Response]) -> Response:
    """Await ``work`` unless the client goes away first, then cancel it."""

    task = asyncio.ensure_future(work)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        done, _ = await asyncio.wait(
            {task, watcher}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        watcher.cancel()

    if task in done:
        return task.result()

    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    raise ClientDisconnected()


async def _wait_for_disconnect(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)
