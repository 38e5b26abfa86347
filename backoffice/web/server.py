"""
Fleet Backoffice Web Server

aiohttp-based admin GUI with Jinja2 templates and HTMX for interactivity.
Every request carries a sealed cookie session; signed-in requests get a
``Backend`` bound to the user's token.
"""

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING

import aiohttp_jinja2
import jinja2
from aiohttp import web

from backoffice.api import Backend
from backoffice.api.errors import ApiError, NotFoundError, UnauthorizedError
from backoffice.auth import AuthError, SessionSealer, TokenCache, TokenProvider, is_expired
from backoffice.web import presenters
from backoffice.web.helpers import login_redirect, render_partial

if TYPE_CHECKING:
    from backoffice.api.client import HalClient
    from backoffice.api.registration import RegistrationApi
    from backoffice.auth.oauth import KeycloakClient
    from backoffice.config import Config
    from backoffice.journal import ActionJournal
    from backoffice.settings_store import SettingsStore

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
STATIC_DIR = Path(__file__).parent / "static"

PUBLIC_PATHS = ("/login", "/logout", "/register", "/health")
PUBLIC_PREFIXES = ("/api/auth/", "/static/")


def is_public(path: str) -> bool:
    return path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES)


# =========================================================================
# MIDDLEWARES
# =========================================================================

@web.middleware
async def session_middleware(request: web.Request, handler):
    """Load the cookie session and re-seal it when the handler changed it."""
    sealer: SessionSealer = request.app["sealer"]
    cookie_name = request.app["config"].session.cookie_name
    session = sealer.unseal(request.cookies.get(cookie_name))
    before = session.to_dict()
    request["session"] = session

    try:
        response = await handler(request)
    except web.HTTPException as exc:
        _save_session(request, exc, before)
        raise
    _save_session(request, response, before)
    return response


def _save_session(request: web.Request, response: web.StreamResponse, before: dict) -> None:
    session = request["session"]
    if response.prepared or session.to_dict() == before:
        return
    config = request.app["config"].session
    if not session.is_logged_in and not session.flashes and not session.oauth_state:
        response.del_cookie(config.cookie_name, path="/")
        return
    response.set_cookie(
        config.cookie_name,
        request.app["sealer"].seal(session),
        max_age=config.max_age,
        path="/",
        httponly=True,
        secure=config.secure,
        samesite="Lax",
    )


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Turn backend failures into a login redirect, a 404 page or an error toast."""
    try:
        return await handler(request)
    except (UnauthorizedError, AuthError) as e:
        logger.info(f"Session no longer valid for {request.path}: {e}")
        request["session"].clear()
        raise login_redirect(request, "session_expired")
    except NotFoundError as e:
        return _error_response(request, 404, "Not Found", e.message)
    except ApiError as e:
        logger.warning(f"Unhandled backend error on {request.method} {request.path}: {e.message}")
        return _error_response(request, 502, "Backend Error", e.message)


def _error_response(request: web.Request, status: int, title: str, message: str) -> web.Response:
    if request.headers.get("HX-Request"):
        response = render_partial(
            request, "partials/flash.html",
            {"flashes": [{"kind": "error", "title": title, "message": message}]},
            status=status,
        )
        response.headers["HX-Retarget"] = "#toasts"
        return response
    return aiohttp_jinja2.render_template(
        "error.html", request, {"status": status, "title": title, "message": message}, status=status,
    )


@web.middleware
async def auth_middleware(request: web.Request, handler):
    """Guard non-public paths and attach a token-bound Backend to the request."""
    session = request["session"]
    if is_public(request.path):
        return await handler(request)

    if is_expired(session):
        if session.is_logged_in:
            session.clear()
        raise login_redirect(request)

    provider = TokenProvider(request.app["keycloak"], session, request.app["token_cache"])
    request["token_provider"] = provider
    request["backend"] = Backend(request.app["hal"].bind(provider))
    request["user"] = session.current_user
    return await handler(request)


# =========================================================================
# TEMPLATE HELPERS
# =========================================================================

async def template_context(request: web.Request) -> dict:
    session = request.get("session")
    return {
        "current_user": session.current_user if session else None,
        "flashes": session.pop_flashes() if session else [],
        "display": request.app["display"],
    }


class WebServer:
    """HTMX-based backoffice GUI."""

    def __init__(
        self,
        config: "Config",
        hal: "HalClient",
        keycloak: "KeycloakClient",
        registration: "RegistrationApi",
        journal: "ActionJournal",
        settings_store: "SettingsStore",
        display: dict | None = None,
    ):
        self.config = config
        self.host = config.web.host
        self.port = config.web.port
        self.display = display or {
            "currency": config.display.currency,
            "locale": config.display.locale,
            "page_size": config.display.page_size,
        }
        self.app = web.Application(
            middlewares=[session_middleware, error_middleware, auth_middleware],
            client_max_size=12 * 1024 * 1024,
        )
        self._runner: web.AppRunner | None = None

        # Store references in app for route handlers
        self.app["config"] = config
        self.app["hal"] = hal
        self.app["keycloak"] = keycloak
        self.app["registration"] = registration
        self.app["journal"] = journal
        self.app["settings_store"] = settings_store
        self.app["sealer"] = SessionSealer(config.session.secret, config.session.max_age)
        self.app["token_cache"] = TokenCache()
        self.app["display"] = self.display
        self.app["start_time"] = time.time()

        env = aiohttp_jinja2.setup(
            self.app,
            loader=jinja2.FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=jinja2.select_autoescape(["html"]),
            context_processors=[template_context, aiohttp_jinja2.request_processor],
        )
        env.globals["app_name"] = config.app_name
        self._setup_filters(env)

        self._setup_routes()

    def _setup_filters(self, env: jinja2.Environment) -> None:
        display = self.display

        def currency(amount, code=None):
            return presenters.format_currency(amount, code or display["currency"])

        env.filters["currency"] = currency
        env.filters["date"] = presenters.format_date
        env.filters["datetime"] = presenters.format_datetime
        env.filters["truncate_text"] = presenters.truncate
        env.filters["humanize"] = presenters.humanize
        env.filters["proxied"] = presenters.proxied_image_url
        env.filters["field_name"] = presenters.format_field_name
        env.filters["transaction_label"] = presenters.transaction_label
        env.filters["payment_method"] = presenters.payment_method_label
        env.filters["booking_badge"] = presenters.booking_badge
        env.filters["payment_badge"] = presenters.payment_badge
        env.filters["settlement_badge"] = presenters.settlement_badge
        env.filters["vehicle_badge"] = presenters.vehicle_badge

    def _setup_routes(self) -> None:
        """Register all route handlers."""
        from backoffice.web.routes.activity import routes as activity_routes
        from backoffice.web.routes.auth import routes as auth_routes
        from backoffice.web.routes.bookings import routes as booking_routes
        from backoffice.web.routes.dashboard import routes as dashboard_routes
        from backoffice.web.routes.discounts import routes as discount_routes
        from backoffice.web.routes.merchant import routes as merchant_routes
        from backoffice.web.routes.modification_policies import routes as policy_routes
        from backoffice.web.routes.offerings import routes as offering_routes
        from backoffice.web.routes.packages import routes as package_routes
        from backoffice.web.routes.payments import routes as payment_routes
        from backoffice.web.routes.pricings import routes as pricing_routes
        from backoffice.web.routes.settings import routes as settings_routes
        from backoffice.web.routes.system import routes as system_routes
        from backoffice.web.routes.vehicles import routes as vehicle_routes

        self.app.router.add_routes(auth_routes)
        self.app.router.add_routes(dashboard_routes)
        self.app.router.add_routes(booking_routes)
        self.app.router.add_routes(vehicle_routes)
        self.app.router.add_routes(package_routes)
        self.app.router.add_routes(offering_routes)
        self.app.router.add_routes(pricing_routes)
        self.app.router.add_routes(discount_routes)
        self.app.router.add_routes(merchant_routes)
        self.app.router.add_routes(payment_routes)
        self.app.router.add_routes(settings_routes)
        self.app.router.add_routes(policy_routes)
        self.app.router.add_routes(activity_routes)
        self.app.router.add_routes(system_routes)

        # Static files
        self.app.router.add_static("/static", STATIC_DIR, name="static")

    async def start(self) -> None:
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"Backoffice started at http://{self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Backoffice stopped")
