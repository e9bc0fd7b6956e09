"""
Per-request session resolution.

Identity is resolved by running SESSION_INTERCEPTORS in order. Each
interceptor takes the current RequestContext and returns either a new,
enriched RequestContext (continue) or a Response (short-circuit). The
resulting context is stored on ``flask.g.session`` for the route handlers.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from flask import Response, g, request

from eventapp.auth_service.identity import IdentityError, get_identity_verifier
from eventapp.auth_service.utils import (
    ACCESS_TOKEN_COOKIE,
    ADMIN_COOKIE,
    ADMIN_USERINFO_COOKIE,
    clear_session_cookies,
    identity_from_profile,
    unsign_cookie_value,
)


@dataclass(frozen=True)
class RequestContext:
    """Identity resolved for one request."""

    cookies: Dict[str, str] = field(default_factory=dict)
    identity: Optional[Dict[str, Any]] = None
    is_admin: bool = False
    # Cookies to expire on the outgoing response
    clear_cookies: Tuple[str, ...] = ()


Interceptor = Callable[[RequestContext], Union[RequestContext, Response]]


def admin_cookie_interceptor(ctx: RequestContext) -> RequestContext:
    """Use the signed admin_userinfo cookie when it carries a sub."""
    userinfo = unsign_cookie_value(ADMIN_USERINFO_COOKIE, ctx.cookies.get(ADMIN_USERINFO_COOKIE))
    if isinstance(userinfo, dict) and userinfo.get("sub"):
        return replace(ctx, identity=identity_from_profile(userinfo))
    return ctx


def access_token_interceptor(ctx: RequestContext) -> RequestContext:
    """
    Resolve the signed access_token cookie through the identity verifier.

    Failures downgrade the request to anonymous and expire the cookie.
    """
    if ctx.identity:
        return ctx

    access_token = unsign_cookie_value(ACCESS_TOKEN_COOKIE, ctx.cookies.get(ACCESS_TOKEN_COOKIE))
    if not access_token:
        return ctx

    try:
        userinfo = get_identity_verifier().fetch_userinfo(access_token)
    except IdentityError as e:
        logging.warning(f"[Session] Access token rejected, continuing anonymously: {e}")
        return replace(ctx, identity=None, clear_cookies=ctx.clear_cookies + (ACCESS_TOKEN_COOKIE,))

    if not userinfo.get("sub"):
        return replace(ctx, identity=None, clear_cookies=ctx.clear_cookies + (ACCESS_TOKEN_COOKIE,))

    return replace(ctx, identity=identity_from_profile(userinfo))


def admin_flag_interceptor(ctx: RequestContext) -> RequestContext:
    """Admin flag is the signed admin=1 cookie on an identified request."""
    is_admin = bool(ctx.identity) and unsign_cookie_value(ADMIN_COOKIE, ctx.cookies.get(ADMIN_COOKIE)) == "1"
    return replace(ctx, is_admin=is_admin)


SESSION_INTERCEPTORS: List[Interceptor] = [
    admin_cookie_interceptor,
    access_token_interceptor,
    admin_flag_interceptor,
]


def run_interceptors(ctx: RequestContext, interceptors: List[Interceptor]) -> Union[RequestContext, Response]:
    for interceptor in interceptors:
        result = interceptor(ctx)
        if isinstance(result, Response):
            return result
        ctx = result
    return ctx


def resolve_session() -> Optional[Response]:
    """
    before_request hook: resolve identity once for the current request.

    Returns:
        Response: When an interceptor short-circuits, otherwise None.
    """
    result = run_interceptors(RequestContext(cookies=dict(request.cookies)), SESSION_INTERCEPTORS)
    if isinstance(result, Response):
        return result
    g.session = result
    return None


def apply_session_cookies(response: Response) -> Response:
    """after_request hook: expire cookies the interceptors rejected."""
    ctx = g.get("session")
    if ctx and ctx.clear_cookies:
        clear_session_cookies(response, ctx.clear_cookies)
    return response
