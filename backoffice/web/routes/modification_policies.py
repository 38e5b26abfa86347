"""
Modification policy routes, under settings. A policy without a loyalty tier
applies to every customer; deleting one deactivates it on the backend.
"""

import logging

import aiohttp_jinja2
from aiohttp import web

from backoffice import forms
from backoffice.activity import activity
from backoffice.api.errors import ApiError, UnauthorizedError, ValidationFailed
from backoffice.models import LoyaltyTier, enum_values
from backoffice.web.helpers import (
    flash,
    int_param,
    journaled,
    record_values,
    redirect,
    submitted_values,
)

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()

BASE = "/settings/modification-policies"

POLICY_DEFAULTS = {
    "freeModificationHours": 48,
    "lateModificationFee": 25,
    "categoryChangeFee": 50,
    "locationChangeFee": 30,
    "allowVehicleChange": True,
    "allowDateChange": True,
    "allowLocationChange": True,
    "maxDateChangeDays": 7,
    "majorModificationPriceThresholdPercent": 30,
    "majorModificationDateThresholdDays": 7,
}


def _form(request: web.Request, values: dict, errors: dict, policy_id: int | None = None, status: int = 200):
    return aiohttp_jinja2.render_template("modification_policy_form.html", request, {
        "page": "settings",
        "policy_id": policy_id,
        "values": values,
        "errors": errors,
        "tiers": enum_values(LoyaltyTier),
    }, status=status)


@routes.get(BASE)
@aiohttp_jinja2.template("modification_policies.html")
async def policies_page(request: web.Request) -> dict:
    policies, error = [], None
    try:
        policies = await request["backend"].modification_policies.list()
    except UnauthorizedError:
        raise
    except ApiError as e:
        error = e.message
    return {"page": "settings", "policies": policies, "error": error}


@routes.get(f"{BASE}/new")
async def new_policy(request: web.Request) -> web.Response:
    return _form(request, dict(POLICY_DEFAULTS), {})


@routes.post(BASE)
async def create_policy(request: web.Request) -> web.Response:
    data = await request.post()
    try:
        payload = forms.modification_policy(data)
    except ValidationFailed as e:
        return _form(request, submitted_values(data), e.errors, status=422)

    async with journaled(request, "create", "modification_policy", None,
                         f"Modification policy {payload['policyName']} created") as outcome:
        created = await request["backend"].modification_policies.create(payload)
        outcome["entity_id"] = (created or {}).get("id")

    activity.settings(f"modification policy created: {payload['policyName']}")
    flash(request, "success", "Policy created", payload["policyName"])
    raise web.HTTPSeeOther(BASE)


@routes.get(BASE + r"/{id:\d+}/edit")
async def edit_policy(request: web.Request) -> web.Response:
    policy_id = int_param(request, "id")
    policy = await request["backend"].modification_policies.get(policy_id)
    return _form(request, record_values(policy, ()), {}, policy_id)


@routes.post(BASE + r"/{id:\d+}")
async def update_policy(request: web.Request) -> web.Response:
    policy_id = int_param(request, "id")
    data = await request.post()
    try:
        payload = forms.modification_policy(data)
    except ValidationFailed as e:
        return _form(request, submitted_values(data), e.errors, policy_id, status=422)

    async with journaled(request, "update", "modification_policy", policy_id,
                         f"Modification policy {payload['policyName']} updated"):
        await request["backend"].modification_policies.update(policy_id, payload)

    activity.settings(f"modification policy updated: {payload['policyName']}")
    flash(request, "success", "Policy updated", payload["policyName"])
    raise web.HTTPSeeOther(BASE)


@routes.post(BASE + r"/{id:\d+}/delete")
async def delete_policy(request: web.Request) -> web.Response:
    policy_id = int_param(request, "id")
    async with journaled(request, "delete", "modification_policy", policy_id,
                         f"Modification policy #{policy_id} deactivated"):
        await request["backend"].modification_policies.delete(policy_id)

    activity.settings(f"modification policy #{policy_id} deactivated")
    flash(request, "success", "Policy deactivated")
    raise redirect(request, BASE)
