"""
Auth routes — Keycloak login/logout, session introspection, self-service
master account registration.
"""

import logging
import time
from urllib.parse import urlparse

import aiohttp_jinja2
from aiohttp import web

from backoffice import forms
from backoffice.activity import activity
from backoffice.api.errors import ValidationFailed
from backoffice.auth import AuthError, TokenProvider, create_session, generate_state, is_expired

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()

LOGIN_ERRORS = {
    "session_expired": "Your session has expired. Please sign in again.",
    "invalid_state": "The sign-in request could not be verified. Please try again.",
    "callback_failed": "Signing in failed. Please try again.",
    "access_denied": "Access was denied by the identity provider.",
}

REGISTRATION_FIELDS = (
    "accountName", "accountDescription", "username", "email", "firstName",
    "lastName", "phoneNumber", "companyName", "country",
)


def safe_next(value: str | None) -> str:
    """Only same-site relative paths are allowed as post-login targets."""
    if not value:
        return "/"
    parsed = urlparse(value)
    if parsed.scheme or parsed.netloc or not value.startswith("/") or value.startswith("//"):
        return "/"
    return value


@routes.get("/login")
async def login(request: web.Request) -> web.Response:
    """Start the Keycloak flow, or show why the last attempt failed."""
    session = request["session"]
    error = request.query.get("error")
    registered = request.query.get("registered")
    next_url = safe_next(request.query.get("next"))

    if not error and not registered:
        if session.is_logged_in and not is_expired(session):
            raise web.HTTPSeeOther(next_url)
        session.oauth_state = generate_state()
        session.next_url = next_url
        raise web.HTTPSeeOther(request.app["keycloak"].authorization_url(session.oauth_state))

    return aiohttp_jinja2.render_template("login.html", request, {
        "page": "login",
        "error": LOGIN_ERRORS.get(error, error) if error else None,
        "registered": bool(registered),
        "next": next_url,
    })


@routes.get("/api/auth/callback/keycloak")
async def oauth_callback(request: web.Request) -> web.Response:
    session = request["session"]
    keycloak = request.app["keycloak"]

    if request.query.get("error"):
        activity.auth_error(f"Keycloak returned {request.query['error']}")
        raise web.HTTPSeeOther("/login?error=access_denied")

    code = request.query.get("code")
    state = request.query.get("state")
    if not code or not state or state != session.oauth_state:
        activity.auth_error("OAuth state mismatch")
        session.oauth_state = None
        raise web.HTTPSeeOther("/login?error=invalid_state")

    next_url = session.next_url or "/"
    try:
        tokens = await keycloak.exchange_code(code)
        user = await keycloak.fetch_user(tokens["access_token"])
    except (AuthError, KeyError) as e:
        logger.warning(f"OAuth callback failed: {e}")
        raise web.HTTPSeeOther("/login?error=callback_failed")

    fresh = create_session(user.id, tokens["refresh_token"], int(tokens.get("refresh_expires_in") or 1800))
    fresh.user = user.to_dict()
    session.load(fresh)
    request.app["token_cache"].store(
        user.id, tokens["access_token"], time.time() + int(tokens.get("expires_in", 60)),
    )

    activity.login(user.username)
    session.flash("success", f"Welcome back, {user.display_name}")
    raise web.HTTPSeeOther(safe_next(next_url))


@routes.get("/logout")
async def logout(request: web.Request) -> web.Response:
    session = request["session"]
    user = session.current_user
    if user:
        activity.logout(user.username)
        request.app["token_cache"].discard(user.id)
    session.clear()
    raise web.HTTPSeeOther(request.app["keycloak"].logout_url())


@routes.get("/api/auth/session")
async def session_info(request: web.Request) -> web.Response:
    session = request["session"]
    logged_in = session.is_logged_in and not is_expired(session)
    return web.json_response({
        "isLoggedIn": logged_in,
        "user": session.user if logged_in else None,
        "expiresAt": session.expires_at if logged_in else None,
    })


@routes.get("/api/auth/me")
async def me(request: web.Request) -> web.Response:
    """Fresh user details from the backend (or Keycloak) for the signed-in user."""
    session = request["session"]
    if not session.is_logged_in or is_expired(session):
        return web.json_response({"error": "Not authenticated"}, status=401)

    provider = TokenProvider(request.app["keycloak"], session, request.app["token_cache"])
    try:
        token = await provider()
        user = await request.app["keycloak"].fetch_user(token)
    except AuthError as e:
        return web.json_response({"error": str(e)}, status=401)

    session.user = user.to_dict()
    return web.json_response(user.to_dict())


# =========================================================================
# REGISTRATION
# =========================================================================

@routes.get("/register")
@aiohttp_jinja2.template("register.html")
async def register_page(request: web.Request) -> dict:
    return {"page": "register", "values": {"country": "MY"}, "errors": {}, "error": None}


@routes.post("/register")
async def register(request: web.Request) -> web.Response:
    data = await request.post()
    values = {k: data.get(k, "") for k in REGISTRATION_FIELDS}

    try:
        payload = forms.registration(data)
    except ValidationFailed as e:
        return aiohttp_jinja2.render_template("register.html", request, {
            "page": "register", "values": values, "errors": e.errors, "error": None,
        }, status=422)

    result = await request.app["registration"].register_master_account(payload)
    if not result.success:
        activity.auth_error(f"Registration failed for {payload['username']}: {result.error}")
        return aiohttp_jinja2.render_template("register.html", request, {
            "page": "register", "values": values, "errors": result.details, "error": result.error,
        }, status=400)

    activity.registered(payload["accountName"], payload["username"])
    raise web.HTTPSeeOther("/login?registered=1")
