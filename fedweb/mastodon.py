"""Async client for the Mastodon-compatible API of a remote instance."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlencode

import httpx

from .errors import BackendUnavailable, InvalidArgument
from .session import RemoteApp

logger = logging.getLogger(__name__)


def normalize_instance(instance: str) -> str:
    """Return ``instance`` as an ``https://`` base URL without trailing slash."""

    instance = instance.strip().rstrip("/")
    if not instance.startswith(("https://", "http://")):
        instance = "https://" + instance
    return instance


class MastodonClient:
    """Thin wrapper over ``httpx.AsyncClient`` for a single instance.

    ``access_token`` is only needed for calls made on behalf of a user; app
    registration and the OAuth handshake work without one.
    """

    def __init__(
        self,
        instance: str,
        access_token: str | None = None,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.instance = normalize_instance(instance)
        self._timeout = timeout
        self._transport = transport
        headers = {}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self._http = httpx.AsyncClient(
            base_url=self.instance,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "MastodonClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # OAuth handshake

    async def register_app(
        self, client_name: str, redirect_uri: str, scopes: Iterable[str], website: str
    ) -> RemoteApp:
        data = await self._request(
            "POST",
            "/api/v1/apps",
            data={
                "client_name": client_name,
                "redirect_uris": redirect_uri,
                "scopes": " ".join(scopes),
                "website": website,
            },
        )
        return RemoteApp(
            instance=self.instance,
            client_id=data["client_id"],
            client_secret=data["client_secret"],
        )

    def authorization_url(
        self, app: RemoteApp, redirect_uri: str, scopes: Iterable[str]
    ) -> str:
        params = {
            "client_id": app.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes),
        }
        return f"{app.instance}/oauth/authorize?{urlencode(params)}"

    async def exchange_code(
        self, app: RemoteApp, code: str, redirect_uri: str, scopes: Iterable[str]
    ) -> str:
        """Trade an authorization code for an access token."""

        data = await self._request(
            "POST",
            "/oauth/token",
            data={
                "client_id": app.client_id,
                "client_secret": app.client_secret,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "scope": " ".join(scopes),
            },
        )
        token = data.get("access_token")
        if not token:
            raise BackendUnavailable("token response did not include an access token")
        return token

    async def verify_credentials(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/v1/accounts/verify_credentials")

    # Reads

    async def instance_info(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/v1/instance")

    async def timeline(
        self,
        kind: str,
        *,
        max_id: str = "",
        min_id: str = "",
        instance: str = "",
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        params = _cursor(max_id, min_id, limit)
        if kind == "home":
            return await self._request("GET", "/api/v1/timelines/home", params=params)
        if kind == "direct":
            return await self._request("GET", "/api/v1/timelines/direct", params=params)
        if kind == "local":
            params["local"] = "true"
            return await self._request("GET", "/api/v1/timelines/public", params=params)
        if kind == "twitter":
            return await self._request("GET", "/api/v1/timelines/public", params=params)
        if kind == "remote":
            if not instance:
                raise InvalidArgument("remote timeline requires an instance")
            async with MastodonClient(
                instance, timeout=self._timeout, transport=self._transport
            ) as remote:
                return await remote._request(
                    "GET",
                    "/api/v1/timelines/public",
                    params={**params, "local": "true"},
                )
        raise InvalidArgument(f"unknown timeline type {kind!r}")

    async def status(self, status_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/v1/statuses/{status_id}")

    async def context(self, status_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/v1/statuses/{status_id}/context")

    async def favourited_by(self, status_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/api/v1/statuses/{status_id}/favourited_by")

    async def reblogged_by(self, status_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/api/v1/statuses/{status_id}/reblogged_by")

    async def notifications(
        self, *, max_id: str = "", min_id: str = "", limit: int = 15
    ) -> List[Dict[str, Any]]:
        return await self._request(
            "GET", "/api/v1/notifications", params=_cursor(max_id, min_id, limit)
        )

    async def follow_requests(
        self, *, max_id: str = "", min_id: str = "", limit: int = 20
    ) -> List[Dict[str, Any]]:
        return await self._request(
            "GET", "/api/v1/follow_requests", params=_cursor(max_id, min_id, limit)
        )

    async def account(self, account_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/v1/accounts/{account_id}")

    async def relationship(self, account_id: str) -> Optional[Dict[str, Any]]:
        found = await self._request(
            "GET", "/api/v1/accounts/relationships", params={"id[]": account_id}
        )
        return found[0] if found else None

    async def account_page(
        self, account_id: str, page: str, *, max_id: str = "", min_id: str = ""
    ) -> List[Dict[str, Any]]:
        params = _cursor(max_id, min_id, 20)
        if page in ("", "statuses"):
            path = f"/api/v1/accounts/{account_id}/statuses"
        elif page == "media":
            params["only_media"] = "true"
            path = f"/api/v1/accounts/{account_id}/statuses"
        elif page in ("following", "followers"):
            path = f"/api/v1/accounts/{account_id}/{page}"
        elif page == "bookmarks":
            path = "/api/v1/bookmarks"
        elif page == "likes":
            path = "/api/v1/favourites"
        elif page == "mutes":
            path = "/api/v1/mutes"
        elif page == "blocks":
            path = "/api/v1/blocks"
        elif page == "requests":
            return await self.follow_requests(max_id=max_id, min_id=min_id)
        else:
            raise InvalidArgument(f"unknown user page {page!r}")
        return await self._request("GET", path, params=params)

    async def search(
        self,
        q: str,
        kind: str = "",
        *,
        offset: int = 0,
        account_id: str = "",
        limit: int = 20,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"q": q, "offset": offset, "limit": limit}
        if kind:
            params["type"] = kind
        if account_id:
            params["account_id"] = account_id
        if kind in ("statuses", "hashtags") or account_id:
            params["resolve"] = "true"
        return await self._request("GET", "/api/v2/search", params=params)

    async def custom_emojis(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/v1/custom_emojis")

    async def filters(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/v1/filters")

    # Writes

    async def upload_media(self, filename: str, content: bytes, content_type: str) -> str:
        data = await self._request(
            "POST",
            "/api/v1/media",
            files={"file": (filename, content, content_type)},
        )
        return data["id"]

    async def post_status(
        self,
        content: str,
        *,
        in_reply_to_id: str = "",
        content_type: str = "",
        visibility: str = "",
        sensitive: bool = False,
        media_ids: Iterable[str] = (),
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"status": content}
        if in_reply_to_id:
            payload["in_reply_to_id"] = in_reply_to_id
        if content_type:
            payload["content_type"] = content_type
        if visibility:
            payload["visibility"] = visibility
        if sensitive:
            payload["sensitive"] = "true"
        media_ids = list(media_ids)
        if media_ids:
            payload["media_ids[]"] = media_ids
        return await self._request("POST", "/api/v1/statuses", data=payload)

    async def delete_status(self, status_id: str) -> None:
        await self._request("DELETE", f"/api/v1/statuses/{status_id}")

    async def status_action(self, status_id: str, action: str) -> Dict[str, Any]:
        """Run ``favourite``, ``reblog``, ``bookmark``, ``mute`` or their undo."""

        return await self._request("POST", f"/api/v1/statuses/{status_id}/{action}")

    async def vote(self, poll_id: str, choices: Iterable[str]) -> Dict[str, Any]:
        return await self._request(
            "POST", f"/api/v1/polls/{poll_id}/votes", data={"choices[]": list(choices)}
        )

    async def account_action(
        self, account_id: str, action: str, data: Dict[str, Any] | None = None
    ) -> Dict[str, Any]:
        """Run ``follow``, ``unfollow``, ``mute``, ``block`` or their undo."""

        return await self._request(
            "POST", f"/api/v1/accounts/{account_id}/{action}", data=data
        )

    async def follow_request_action(self, account_id: str, action: str) -> None:
        await self._request("POST", f"/api/v1/follow_requests/{account_id}/{action}")

    async def mark_notifications_read(self, last_read_id: str) -> None:
        await self._request(
            "POST", "/api/v1/markers", data={"notifications[last_read_id]": last_read_id}
        )

    async def create_filter(self, phrase: str, whole_word: bool) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/api/v1/filters",
            data={
                "phrase": phrase,
                "context[]": ["home", "notifications", "public", "thread"],
                "whole_word": "true" if whole_word else "false",
            },
        )

    async def delete_filter(self, filter_id: str) -> None:
        await self._request("DELETE", f"/api/v1/filters/{filter_id}")

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._http.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            message = _error_message(exc.response)
            logger.warning(
                "%s %s%s failed with %s: %s",
                method,
                self.instance,
                path,
                exc.response.status_code,
                message,
            )
            raise BackendUnavailable(message) from exc
        except httpx.HTTPError as exc:
            logger.warning("%s %s%s failed: %s", method, self.instance, path, exc)
            raise BackendUnavailable(f"{self.instance}: {exc}") from exc
        if not response.content:
            return None
        return response.json()


def _cursor(max_id: str, min_id: str, limit: int) -> Dict[str, Any]:
    params: Dict[str, Any] = {"limit": limit}
    if max_id:
        params["max_id"] = max_id
    if min_id:
        params["min_id"] = min_id
    return params


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"{response.status_code} {response.reason_phrase}".strip()
