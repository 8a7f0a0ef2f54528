"""Business logic behind the route handlers."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

from fastapi.responses import Response
from starlette.datastructures import UploadFile

from .config import Settings
from .dispatch import RequestContext
from .errors import InvalidArgument, InvalidSession, SessionNotFound
from .mastodon import MastodonClient
from .params import Tristate
from .renderer import Renderer
from .responses import html
from .session import Session, SessionManager, UserSettings

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, Optional[str]], MastodonClient]

TIMELINE_TITLES = {
    "home": "Timeline",
    "direct": "Direct Timeline",
    "local": "Local Timeline",
    "remote": "Remote Timeline",
    "twitter": "Twitter Timeline",
}

# Status actions and the counter each one changes.
_LIKE_COUNT = "favourites_count"
_RETWEET_COUNT = "reblogs_count"


class Service:
    """Talks to the remote instance on behalf of a request and renders pages."""

    def __init__(
        self,
        settings: Settings,
        sessions: SessionManager,
        renderer: Renderer,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._settings = settings
        self._sessions = sessions
        self._renderer = renderer
        self._client_factory = client_factory or self._default_client

    @property
    def single_instance(self) -> Optional[str]:
        return self._settings.single_instance

    def _default_client(self, instance: str, access_token: Optional[str]) -> MastodonClient:
        return MastodonClient(
            instance,
            access_token,
            timeout=self._settings.remote_timeout_seconds,
        )

    def client(self, ctx: RequestContext) -> MastodonClient:
        if ctx.session is None:
            raise InvalidSession()
        return self._client_factory(ctx.session.app.instance, ctx.session.access_token)

    def _page(self, ctx: RequestContext, template: str, **data: Any) -> Response:
        return html(self._renderer.render(ctx, template, **data))

    # Session lifecycle

    async def new_session(self, instance: str) -> Tuple[str, Session]:
        """Register with ``instance`` and open an anonymous session.

        Returns the authorization URL the browser should be sent to and the
        new session.
        """

        if not instance.strip():
            raise InvalidArgument("instance is required")
        settings = self._settings
        async with self._client_factory(instance, None) as client:
            app = await client.register_app(
                settings.client_name,
                settings.redirect_uri,
                settings.scopes,
                settings.client_website,
            )
            session = await self._sessions.create_session(app)
            url = client.authorization_url(app, settings.redirect_uri, settings.scopes)
        return url, session

    async def signin(self, ctx: RequestContext, code: str) -> Session:
        if not code:
            raise InvalidArgument("code is required")
        if ctx.session is None:
            raise InvalidSession()
        session = ctx.session
        settings = self._settings
        async with self._client_factory(session.app.instance, None) as client:
            token = await client.exchange_code(
                session.app, code, settings.redirect_uri, settings.scopes
            )
        async with self._client_factory(session.app.instance, token) as client:
            account = await client.verify_credentials()
        try:
            return await self._sessions.promote(session.id, token, str(account["id"]))
        except SessionNotFound as exc:
            raise InvalidSession() from exc

    async def signout(self, ctx: RequestContext) -> None:
        await self._sessions.destroy(ctx.session.id if ctx.session else ctx.session_id)

    async def save_settings(self, ctx: RequestContext, settings: UserSettings) -> None:
        try:
            await self._sessions.save_settings(ctx.require_login().id, settings)
        except SessionNotFound as exc:
            raise InvalidSession() from exc

    # Pages

    async def signin_page(self, ctx: RequestContext) -> Response:
        return self._page(ctx, "signin.html", title="Signin")

    async def root_page(self, ctx: RequestContext) -> Response:
        ctx.require_login()
        return self._page(ctx, "root.html", title=self._settings.client_name)

    async def nav_page(self, ctx: RequestContext) -> Response:
        async with self.client(ctx) as client:
            user = await client.verify_credentials()
        return self._page(ctx, "nav.html", title="Nav", user=user)

    async def timeline_page(
        self, ctx: RequestContext, kind: str, instance: str, max_id: str, min_id: str
    ) -> Response:
        title = TIMELINE_TITLES.get(kind)
        if title is None:
            raise InvalidArgument(f"unknown timeline type {kind!r}")
        async with self.client(ctx) as client:
            statuses = await client.timeline(
                kind, max_id=max_id, min_id=min_id, instance=instance
            )
        if kind == "remote":
            title = f"{title} ({instance})"
        prev_url, next_url = _page_links(
            f"/timeline/{kind}", statuses, max_id, min_id, instance=instance
        )
        return self._page(
            ctx,
            "timeline.html",
            title=title,
            statuses=statuses,
            prev_url=prev_url,
            next_url=next_url,
        )

    async def thread_page(self, ctx: RequestContext, status_id: str, reply: bool) -> Response:
        async with self.client(ctx) as client:
            status = await client.status(status_id)
            context = await client.context(status_id)
        statuses = context["ancestors"] + [status] + context["descendants"]
        reply_to = status if reply else None
        return self._page(
            ctx, "thread.html", title="Thread", statuses=statuses, reply_to=reply_to
        )

    async def liked_by_page(self, ctx: RequestContext, status_id: str) -> Response:
        async with self.client(ctx) as client:
            accounts = await client.favourited_by(status_id)
        return self._page(ctx, "accounts.html", title="Liked By", accounts=accounts)

    async def retweeted_by_page(self, ctx: RequestContext, status_id: str) -> Response:
        async with self.client(ctx) as client:
            accounts = await client.reblogged_by(status_id)
        return self._page(ctx, "accounts.html", title="Retweeted By", accounts=accounts)

    async def notification_page(
        self, ctx: RequestContext, max_id: str, min_id: str
    ) -> Response:
        async with self.client(ctx) as client:
            notifications = await client.notifications(max_id=max_id, min_id=min_id)
        _, next_url = _page_links("/notifications", notifications, max_id, min_id)
        return self._page(
            ctx,
            "notifications.html",
            title="Notifications",
            notifications=notifications,
            next_url=next_url,
            read_id=notifications[0]["id"] if notifications and not max_id else "",
        )

    async def user_page(
        self, ctx: RequestContext, account_id: str, page: str, max_id: str, min_id: str
    ) -> Response:
        async with self.client(ctx) as client:
            user = await client.account(account_id)
            relationship = await client.relationship(account_id)
            items = await client.account_page(
                account_id, page, max_id=max_id, min_id=min_id
            )
        base = f"/user/{account_id}" + (f"/{page}" if page else "")
        _, next_url = _page_links(base, items, max_id, min_id)
        shows_accounts = page in ("following", "followers", "mutes", "blocks", "requests")
        return self._page(
            ctx,
            "user.html",
            title=user.get("display_name") or user.get("username", "User"),
            user=user,
            relationship=relationship,
            page=page or "statuses",
            statuses=[] if shows_accounts else items,
            accounts=items if shows_accounts else [],
            next_url=next_url,
        )

    async def user_search_page(
        self, ctx: RequestContext, account_id: str, q: str, offset: int
    ) -> Response:
        statuses: List[Dict[str, Any]] = []
        async with self.client(ctx) as client:
            user = await client.account(account_id)
            if q:
                found = await client.search(
                    q, "statuses", offset=offset, account_id=account_id
                )
                statuses = found.get("statuses", [])
        next_url = ""
        if statuses:
            query = urlencode({"q": q, "offset": offset + len(statuses)})
            next_url = f"/usersearch/{account_id}?{query}"
        return self._page(
            ctx,
            "search.html",
            title="Search",
            action=f"/usersearch/{account_id}",
            user=user,
            q=q,
            type="statuses",
            statuses=statuses,
            accounts=[],
            next_url=next_url,
        )

    async def search_page(
        self, ctx: RequestContext, q: str, kind: str, offset: int
    ) -> Response:
        statuses: List[Dict[str, Any]] = []
        accounts: List[Dict[str, Any]] = []
        if q:
            async with self.client(ctx) as client:
                found = await client.search(q, kind, offset=offset)
            statuses = found.get("statuses", [])
            accounts = found.get("accounts", [])
        count = len(statuses) + len(accounts)
        next_url = ""
        if count:
            query = urlencode({"q": q, "type": kind, "offset": offset + count})
            next_url = f"/search?{query}"
        return self._page(
            ctx,
            "search.html",
            title="Search",
            action="/search",
            user=None,
            q=q,
            type=kind,
            statuses=statuses,
            accounts=accounts,
            next_url=next_url,
        )

    async def about_page(self, ctx: RequestContext) -> Response:
        async with self.client(ctx) as client:
            info = await client.instance_info()
        return self._page(ctx, "about.html", title="About", info=info)

    async def emoji_page(self, ctx: RequestContext) -> Response:
        async with self.client(ctx) as client:
            emojis = await client.custom_emojis()
        return self._page(ctx, "emojis.html", title="Emojis", emojis=emojis)

    async def settings_page(self, ctx: RequestContext) -> Response:
        return self._page(ctx, "settings.html", title="Settings")

    async def filters_page(self, ctx: RequestContext) -> Response:
        async with self.client(ctx) as client:
            filters = await client.filters()
        return self._page(ctx, "filters.html", title="Filters", filters=filters)

    # Actions

    async def post(
        self,
        ctx: RequestContext,
        content: str,
        reply_to_id: str,
        format: str,
        visibility: str,
        is_nsfw: bool,
        files: Iterable[UploadFile],
    ) -> str:
        """Publish a status and return its id."""

        async with self.client(ctx) as client:
            media_ids = []
            for upload in files:
                data = await upload.read()
                media_ids.append(
                    await client.upload_media(
                        upload.filename or "attachment",
                        data,
                        upload.content_type or "application/octet-stream",
                    )
                )
            status = await client.post_status(
                content,
                in_reply_to_id=reply_to_id,
                content_type=format,
                visibility=visibility,
                sensitive=is_nsfw,
                media_ids=media_ids,
            )
        return str(status["id"])

    async def like(self, ctx: RequestContext, status_id: str) -> int:
        return await self._status_count(ctx, status_id, "favourite", _LIKE_COUNT)

    async def unlike(self, ctx: RequestContext, status_id: str) -> int:
        return await self._status_count(ctx, status_id, "unfavourite", _LIKE_COUNT)

    async def retweet(self, ctx: RequestContext, status_id: str) -> int:
        return await self._status_count(ctx, status_id, "reblog", _RETWEET_COUNT)

    async def unretweet(self, ctx: RequestContext, status_id: str) -> int:
        return await self._status_count(ctx, status_id, "unreblog", _RETWEET_COUNT)

    async def bookmark(self, ctx: RequestContext, status_id: str) -> None:
        await self._status_action(ctx, status_id, "bookmark")

    async def unbookmark(self, ctx: RequestContext, status_id: str) -> None:
        await self._status_action(ctx, status_id, "unbookmark")

    async def mute_conversation(self, ctx: RequestContext, status_id: str) -> None:
        await self._status_action(ctx, status_id, "mute")

    async def unmute_conversation(self, ctx: RequestContext, status_id: str) -> None:
        await self._status_action(ctx, status_id, "unmute")

    async def delete(self, ctx: RequestContext, status_id: str) -> None:
        async with self.client(ctx) as client:
            await client.delete_status(status_id)

    async def vote(self, ctx: RequestContext, poll_id: str, choices: List[str]) -> None:
        if not choices:
            raise InvalidArgument("no choices selected")
        async with self.client(ctx) as client:
            await client.vote(poll_id, choices)

    async def follow(self, ctx: RequestContext, account_id: str, reblogs: Tristate) -> None:
        data = None
        if reblogs is not Tristate.UNSET:
            data = {"reblogs": reblogs.as_form_value()}
        await self._account_action(ctx, account_id, "follow", data)

    async def unfollow(self, ctx: RequestContext, account_id: str) -> None:
        await self._account_action(ctx, account_id, "unfollow")

    async def subscribe(self, ctx: RequestContext, account_id: str) -> None:
        await self._account_action(ctx, account_id, "follow", {"notify": "true"})

    async def unsubscribe(self, ctx: RequestContext, account_id: str) -> None:
        await self._account_action(ctx, account_id, "follow", {"notify": "false"})

    async def mute(self, ctx: RequestContext, account_id: str) -> None:
        await self._account_action(ctx, account_id, "mute")

    async def unmute(self, ctx: RequestContext, account_id: str) -> None:
        await self._account_action(ctx, account_id, "unmute")

    async def block(self, ctx: RequestContext, account_id: str) -> None:
        await self._account_action(ctx, account_id, "block")

    async def unblock(self, ctx: RequestContext, account_id: str) -> None:
        await self._account_action(ctx, account_id, "unblock")

    async def accept(self, ctx: RequestContext, account_id: str) -> None:
        async with self.client(ctx) as client:
            await client.follow_request_action(account_id, "authorize")

    async def reject(self, ctx: RequestContext, account_id: str) -> None:
        async with self.client(ctx) as client:
            await client.follow_request_action(account_id, "reject")

    async def read_notifications(self, ctx: RequestContext, max_id: str) -> None:
        if not max_id:
            return
        async with self.client(ctx) as client:
            await client.mark_notifications_read(max_id)

    async def filter(self, ctx: RequestContext, phrase: str, whole_word: bool) -> None:
        if not phrase:
            raise InvalidArgument("phrase is required")
        async with self.client(ctx) as client:
            await client.create_filter(phrase, whole_word)

    async def unfilter(self, ctx: RequestContext, filter_id: str) -> None:
        async with self.client(ctx) as client:
            await client.delete_filter(filter_id)

    async def _status_action(
        self, ctx: RequestContext, status_id: str, action: str
    ) -> Dict[str, Any]:
        async with self.client(ctx) as client:
            return await client.status_action(status_id, action)

    async def _status_count(
        self, ctx: RequestContext, status_id: str, action: str, counter: str
    ) -> int:
        status = await self._status_action(ctx, status_id, action)
        # A reblog comes back wrapped around the original status.
        if status.get("reblog"):
            status = status["reblog"]
        return int(status.get(counter, 0))

    async def _account_action(
        self,
        ctx: RequestContext,
        account_id: str,
        action: str,
        data: Dict[str, Any] | None = None,
    ) -> None:
        async with self.client(ctx) as client:
            await client.account_action(account_id, action, data)


def _page_links(
    base: str,
    items: List[Dict[str, Any]],
    max_id: str,
    min_id: str,
    *,
    instance: str = "",
) -> Tuple[str, str]:
    """Build newer/older pagination URLs from the ids at both ends of ``items``."""

    if not items:
        return "", ""
    extra = {"instance": instance} if instance else {}
    prev_url = ""
    if max_id or min_id:
        prev_url = f"{base}?" + urlencode({**extra, "min_id": items[0]["id"]})
    next_url = f"{base}?" + urlencode({**extra, "max_id": items[-1]["id"]})
    return prev_url, next_url
