"""Route table: one descriptor per endpoint, handlers as plain functions."""

from __future__ import annotations

from typing import List

from fastapi.responses import Response

from .auth import AuthLevel
from .dispatch import InvalidSessionPolicy, RequestContext, Route
from .params import Tristate, parse_bool, parse_int
from .responses import (
    ResponseKind,
    clear_session_cookie,
    json_data,
    redirect,
    set_session_cookie,
)
from .session import UserSettings

NO_AUTH = AuthLevel.NO_AUTH
SESSION = AuthLevel.SESSION
CSRF = AuthLevel.CSRF
JSON = ResponseKind.JSON


def _status_redirect(ctx: RequestContext, status_id: str) -> Response:
    """Back to the referring page, anchored on the status the user acted on."""

    anchor = ctx.form_value("retweeted_by_id") or status_id
    return redirect(f"{ctx.form_value('referrer')}#status-{anchor}")


def _back(ctx: RequestContext) -> Response:
    return redirect(ctx.form_value("referrer"))


async def _start_signin(ctx: RequestContext, instance: str) -> Response:
    url, session = await ctx.service.new_session(instance)
    response = redirect(url)
    set_session_cookie(response, ctx.settings, session.id, ctx.settings.session_ttl_seconds)
    return response


# Pages


async def root_page(ctx: RequestContext) -> Response:
    return await ctx.service.root_page(ctx)


async def nav_page(ctx: RequestContext) -> Response:
    return await ctx.service.nav_page(ctx)


async def signin_page(ctx: RequestContext) -> Response:
    instance = ctx.service.single_instance
    if not instance:
        return await ctx.service.signin_page(ctx)
    return await _start_signin(ctx, instance)


async def timeline_page(ctx: RequestContext) -> Response:
    return await ctx.service.timeline_page(
        ctx,
        ctx.path_param("type"),
        ctx.query("instance"),
        ctx.query("max_id"),
        ctx.query("min_id"),
    )


async def default_timeline_page(ctx: RequestContext) -> Response:
    return redirect("/timeline/home")


async def thread_page(ctx: RequestContext) -> Response:
    reply = ctx.query("reply")
    return await ctx.service.thread_page(ctx, ctx.path_param("id"), len(reply) > 1)


async def liked_by_page(ctx: RequestContext) -> Response:
    return await ctx.service.liked_by_page(ctx, ctx.path_param("id"))


async def retweeted_by_page(ctx: RequestContext) -> Response:
    return await ctx.service.retweeted_by_page(ctx, ctx.path_param("id"))


async def notifications_page(ctx: RequestContext) -> Response:
    return await ctx.service.notification_page(
        ctx, ctx.query("max_id"), ctx.query("min_id")
    )


async def user_page(ctx: RequestContext) -> Response:
    return await ctx.service.user_page(
        ctx,
        ctx.path_param("id"),
        ctx.path_param("type"),
        ctx.query("max_id"),
        ctx.query("min_id"),
    )


async def user_search_page(ctx: RequestContext) -> Response:
    return await ctx.service.user_search_page(
        ctx, ctx.path_param("id"), ctx.query("q"), parse_int(ctx.query("offset"))
    )


async def about_page(ctx: RequestContext) -> Response:
    return await ctx.service.about_page(ctx)


async def emojis_page(ctx: RequestContext) -> Response:
    return await ctx.service.emoji_page(ctx)


async def search_page(ctx: RequestContext) -> Response:
    return await ctx.service.search_page(
        ctx, ctx.query("q"), ctx.query("type"), parse_int(ctx.query("offset"))
    )


async def settings_page(ctx: RequestContext) -> Response:
    return await ctx.service.settings_page(ctx)


async def filters_page(ctx: RequestContext) -> Response:
    return await ctx.service.filters_page(ctx)


# Session lifecycle


async def signin(ctx: RequestContext) -> Response:
    return await _start_signin(ctx, ctx.form_value("instance"))


async def oauth_callback(ctx: RequestContext) -> Response:
    await ctx.service.signin(ctx, ctx.query("code"))
    return redirect("/")


async def signout(ctx: RequestContext) -> Response:
    await ctx.service.signout(ctx)
    response = redirect("/")
    clear_session_cookie(response, ctx.settings)
    return response


# Actions


async def post(ctx: RequestContext) -> Response:
    reply_to_id = ctx.form_value("reply_to_id")
    status_id = await ctx.service.post(
        ctx,
        ctx.form_value("content"),
        reply_to_id,
        ctx.form_value("format"),
        ctx.form_value("visibility"),
        parse_bool(ctx.form_value("is_nsfw")),
        ctx.form_files("attachments"),
    )
    location = ctx.form_value("referrer")
    if reply_to_id:
        location = f"/thread/{reply_to_id}#status-{status_id}"
    return redirect(location)


async def like(ctx: RequestContext) -> Response:
    status_id = ctx.path_param("id")
    await ctx.service.like(ctx, status_id)
    return _status_redirect(ctx, status_id)


async def unlike(ctx: RequestContext) -> Response:
    status_id = ctx.path_param("id")
    await ctx.service.unlike(ctx, status_id)
    return _status_redirect(ctx, status_id)


async def retweet(ctx: RequestContext) -> Response:
    status_id = ctx.path_param("id")
    await ctx.service.retweet(ctx, status_id)
    return _status_redirect(ctx, status_id)


async def unretweet(ctx: RequestContext) -> Response:
    status_id = ctx.path_param("id")
    await ctx.service.unretweet(ctx, status_id)
    return _status_redirect(ctx, status_id)


async def bookmark(ctx: RequestContext) -> Response:
    status_id = ctx.path_param("id")
    await ctx.service.bookmark(ctx, status_id)
    return _status_redirect(ctx, status_id)


async def unbookmark(ctx: RequestContext) -> Response:
    status_id = ctx.path_param("id")
    await ctx.service.unbookmark(ctx, status_id)
    return _status_redirect(ctx, status_id)


async def vote(ctx: RequestContext) -> Response:
    await ctx.service.vote(ctx, ctx.path_param("id"), ctx.form_list("choices"))
    return redirect(f"{ctx.form_value('referrer')}#status-{ctx.form_value('status_id')}")


async def follow(ctx: RequestContext) -> Response:
    reblogs = Tristate.from_values(ctx.query_list("reblogs"))
    await ctx.service.follow(ctx, ctx.path_param("id"), reblogs)
    return _back(ctx)


async def unfollow(ctx: RequestContext) -> Response:
    await ctx.service.unfollow(ctx, ctx.path_param("id"))
    return _back(ctx)


async def accept(ctx: RequestContext) -> Response:
    await ctx.service.accept(ctx, ctx.path_param("id"))
    return _back(ctx)


async def reject(ctx: RequestContext) -> Response:
    await ctx.service.reject(ctx, ctx.path_param("id"))
    return _back(ctx)


async def mute(ctx: RequestContext) -> Response:
    await ctx.service.mute(ctx, ctx.path_param("id"))
    return _back(ctx)


async def unmute(ctx: RequestContext) -> Response:
    await ctx.service.unmute(ctx, ctx.path_param("id"))
    return _back(ctx)


async def block(ctx: RequestContext) -> Response:
    await ctx.service.block(ctx, ctx.path_param("id"))
    return _back(ctx)


async def unblock(ctx: RequestContext) -> Response:
    await ctx.service.unblock(ctx, ctx.path_param("id"))
    return _back(ctx)


async def subscribe(ctx: RequestContext) -> Response:
    await ctx.service.subscribe(ctx, ctx.path_param("id"))
    return _back(ctx)


async def unsubscribe(ctx: RequestContext) -> Response:
    await ctx.service.unsubscribe(ctx, ctx.path_param("id"))
    return _back(ctx)


async def save_settings(ctx: RequestContext) -> Response:
    settings = UserSettings(
        default_visibility=ctx.form_value("visibility"),
        default_format=ctx.form_value("format"),
        copy_scope=parse_bool(ctx.form_value("copy_scope")),
        thread_in_new_tab=parse_bool(ctx.form_value("thread_in_new_tab")),
        hide_attachments=parse_bool(ctx.form_value("hide_attachments")),
        mask_nsfw=parse_bool(ctx.form_value("mask_nsfw")),
        notification_interval=parse_int(ctx.form_value("notification_interval")),
        fluoride_mode=parse_bool(ctx.form_value("fluoride_mode")),
        dark_mode=parse_bool(ctx.form_value("dark_mode")),
        anti_dopamine_mode=parse_bool(ctx.form_value("anti_dopamine_mode")),
        css=ctx.form_value("css"),
    )
    await ctx.service.save_settings(ctx, settings)
    return redirect("/")


async def mute_conversation(ctx: RequestContext) -> Response:
    await ctx.service.mute_conversation(ctx, ctx.path_param("id"))
    return _back(ctx)


async def unmute_conversation(ctx: RequestContext) -> Response:
    await ctx.service.unmute_conversation(ctx, ctx.path_param("id"))
    return _back(ctx)


async def delete(ctx: RequestContext) -> Response:
    await ctx.service.delete(ctx, ctx.path_param("id"))
    return _back(ctx)


async def read_notifications(ctx: RequestContext) -> Response:
    await ctx.service.read_notifications(ctx, ctx.query("max_id"))
    return _back(ctx)


async def add_filter(ctx: RequestContext) -> Response:
    await ctx.service.filter(
        ctx, ctx.form_value("phrase"), parse_bool(ctx.form_value("whole_word"))
    )
    return _back(ctx)


async def remove_filter(ctx: RequestContext) -> Response:
    await ctx.service.unfilter(ctx, ctx.path_param("id"))
    return _back(ctx)


# Fluoride: script-driven variants answering with the new count as JSON.


async def fluoride_like(ctx: RequestContext) -> Response:
    return json_data(await ctx.service.like(ctx, ctx.path_param("id")))


async def fluoride_unlike(ctx: RequestContext) -> Response:
    return json_data(await ctx.service.unlike(ctx, ctx.path_param("id")))


async def fluoride_retweet(ctx: RequestContext) -> Response:
    return json_data(await ctx.service.retweet(ctx, ctx.path_param("id")))


async def fluoride_unretweet(ctx: RequestContext) -> Response:
    return json_data(await ctx.service.unretweet(ctx, ctx.path_param("id")))


def build_routes() -> List[Route]:
    """Every endpoint with its auth level, response kind and session policy."""

    return [
        Route(
            "GET",
            "/",
            root_page,
            SESSION,
            on_invalid_session=InvalidSessionPolicy.REDIRECT_SIGNIN,
        ),
        Route("GET", "/nav", nav_page),
        Route("GET", "/signin", signin_page, NO_AUTH),
        Route("GET", "/timeline/{type}", timeline_page),
        Route("GET", "/timeline", default_timeline_page),
        Route("GET", "/thread/{id}", thread_page),
        Route("GET", "/likedby/{id}", liked_by_page),
        Route("GET", "/retweetedby/{id}", retweeted_by_page),
        Route("GET", "/notifications", notifications_page),
        Route("GET", "/user/{id}", user_page),
        Route("GET", "/user/{id}/{type}", user_page),
        Route("GET", "/usersearch/{id}", user_search_page),
        Route("GET", "/about", about_page),
        Route("GET", "/emojis", emojis_page),
        Route("GET", "/search", search_page),
        Route("GET", "/settings", settings_page),
        Route("GET", "/filters", filters_page),
        Route("POST", "/signin", signin, NO_AUTH),
        Route("GET", "/oauth_callback", oauth_callback, SESSION),
        Route("POST", "/post", post, CSRF),
        Route("POST", "/like/{id}", like, CSRF),
        Route("POST", "/unlike/{id}", unlike, CSRF),
        Route("POST", "/retweet/{id}", retweet, CSRF),
        Route("POST", "/unretweet/{id}", unretweet, CSRF),
        Route("POST", "/vote/{id}", vote, CSRF),
        Route("POST", "/follow/{id}", follow, CSRF),
        Route("POST", "/unfollow/{id}", unfollow, CSRF),
        Route("POST", "/accept/{id}", accept, CSRF),
        Route("POST", "/reject/{id}", reject, CSRF),
        Route("POST", "/mute/{id}", mute, CSRF),
        Route("POST", "/unmute/{id}", unmute, CSRF),
        Route("POST", "/block/{id}", block, CSRF),
        Route("POST", "/unblock/{id}", unblock, CSRF),
        Route("POST", "/subscribe/{id}", subscribe, CSRF),
        Route("POST", "/unsubscribe/{id}", unsubscribe, CSRF),
        Route("POST", "/settings", save_settings, CSRF),
        Route("POST", "/muteconv/{id}", mute_conversation, CSRF),
        Route("POST", "/unmuteconv/{id}", unmute_conversation, CSRF),
        Route("POST", "/delete/{id}", delete, CSRF),
        Route("POST", "/notifications/read", read_notifications, CSRF),
        Route("POST", "/bookmark/{id}", bookmark, CSRF),
        Route("POST", "/unbookmark/{id}", unbookmark, CSRF),
        Route("POST", "/filter", add_filter, CSRF),
        Route("POST", "/unfilter/{id}", remove_filter, CSRF),
        Route(
            "POST",
            "/signout",
            signout,
            CSRF,
            on_invalid_session=InvalidSessionPolicy.SIGNED_OUT,
        ),
        Route("POST", "/fluoride/like/{id}", fluoride_like, CSRF, JSON),
        Route("POST", "/fluoride/unlike/{id}", fluoride_unlike, CSRF, JSON),
        Route("POST", "/fluoride/retweet/{id}", fluoride_retweet, CSRF, JSON),
        Route("POST", "/fluoride/unretweet/{id}", fluoride_unretweet, CSRF, JSON),
    ]
