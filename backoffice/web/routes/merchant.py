"""
Merchant routes — Stripe Connect onboarding for the signed-in account.

Stripe hosts the onboarding and dashboard pages; these routes only ask the
backend for fresh links and send the browser there.
"""

import logging

import aiohttp_jinja2
from aiohttp import web

from backoffice import forms
from backoffice.activity import activity
from backoffice.api.errors import ApiError, UnauthorizedError, ValidationFailed
from backoffice.models import OnboardingStatus
from backoffice.web.helpers import flash, journaled, submitted_values

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()


def _link(response: dict, key: str) -> str:
    url = (response or {}).get(key)
    if not url:
        raise ApiError(502, (response or {}).get("message") or "Stripe did not return a link")
    return url


def _merchant_id(request: web.Request) -> str:
    user = request.get("user")
    return user.id if user else ""


@routes.get("/merchant")
@aiohttp_jinja2.template("merchant.html")
async def merchant_page(request: web.Request) -> dict:
    status, error = None, None
    try:
        status = await request["backend"].merchants.status()
    except UnauthorizedError:
        raise
    except ApiError as e:
        # 404 means no connected account yet
        if e.status != 404:
            error = e.message

    onboarding = (status or {}).get("onboardingStatus") or OnboardingStatus.NOT_STARTED.value
    user = request.get("user")
    return {
        "page": "merchant",
        "status": status,
        "onboarding_status": onboarding,
        "needs_recreate": onboarding == OnboardingStatus.ACCOUNT_DELETED.value,
        "error": error,
        "values": {"email": user.email if user else "", "country": "MY"},
        "errors": {},
    }


@routes.post("/merchant/onboard")
async def onboard(request: web.Request) -> web.Response:
    data = await request.post()
    try:
        payload = forms.merchant_registration(data)
    except ValidationFailed as e:
        return aiohttp_jinja2.render_template("merchant.html", request, {
            "page": "merchant",
            "status": None,
            "onboarding_status": OnboardingStatus.NOT_STARTED.value,
            "needs_recreate": False,
            "error": None,
            "values": submitted_values(data),
            "errors": e.errors,
        }, status=422)

    payload.setdefault("businessAccountId", _merchant_id(request))
    user = request.get("user")
    if user and not payload.get("email"):
        payload["email"] = user.email

    async with journaled(request, "onboard", "merchant", payload["businessAccountId"],
                         f"Stripe onboarding started for {payload['businessName']}"):
        response = await request["backend"].merchants.onboard(payload)
        url = _link(response, "onboardingUrl")

    activity.merchant(f"onboarding started: {payload['businessName']}")
    raise web.HTTPSeeOther(url)


@routes.post("/merchant/refresh-link")
async def refresh_link(request: web.Request) -> web.Response:
    response = await request["backend"].merchants.refresh_onboarding_link()
    activity.merchant("onboarding link refreshed")
    raise web.HTTPSeeOther(_link(response, "onboardingUrl"))


@routes.get("/merchant/dashboard-link")
async def dashboard_link(request: web.Request) -> web.Response:
    response = await request["backend"].merchants.dashboard_link()
    raise web.HTTPSeeOther(_link(response, "dashboardUrl"))


@routes.get("/merchant/recreate")
async def recreate_form(request: web.Request) -> web.Response:
    user = request.get("user")
    return aiohttp_jinja2.render_template("merchant_recreate.html", request, {
        "page": "merchant",
        "values": {"email": user.email if user else "", "country": "MY"},
        "errors": {},
    })


@routes.post("/merchant/recreate")
async def recreate(request: web.Request) -> web.Response:
    data = await request.post()
    try:
        payload = forms.merchant_recreate(data)
    except ValidationFailed as e:
        return aiohttp_jinja2.render_template("merchant_recreate.html", request, {
            "page": "merchant",
            "values": submitted_values(data),
            "errors": e.errors,
        }, status=422)

    async with journaled(request, "recreate", "merchant", _merchant_id(request),
                         "Stripe account recreated"):
        response = await request["backend"].merchants.recreate(payload)
        url = _link(response, "onboardingUrl")

    activity.merchant("account recreated")
    raise web.HTTPSeeOther(url)


@routes.get("/merchant/return")
async def onboarding_return(request: web.Request) -> web.Response:
    """Stripe sends the browser back here once onboarding is done or abandoned."""
    if request.query.get("refresh"):
        flash(request, "info", "Onboarding link expired", "Request a new link to continue.")
    elif await request["backend"].merchants.has_completed_onboarding():
        activity.merchant("onboarding completed")
        flash(request, "success", "Onboarding complete", "Your account can now accept payments.")
    else:
        flash(request, "info", "Onboarding in progress", "Stripe is still reviewing your details.")
    raise web.HTTPSeeOther("/merchant")
