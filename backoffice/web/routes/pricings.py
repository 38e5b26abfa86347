"""
Pricing routes — base rates per rate type with deposit, minimum days,
validity window and free-form tags.
"""

import aiohttp_jinja2
from aiohttp import web

from backoffice import forms
from backoffice.activity import activity
from backoffice.api.errors import ApiError, UnauthorizedError, ValidationFailed
from backoffice.api.hal import embedded, page_info, resource_id, with_ids
from backoffice.models import PricingRateType, enum_values
from backoffice.web import presenters
from backoffice.web.helpers import (
    flash,
    int_param,
    journaled,
    page_params,
    record_values,
    redirect,
    render_partial,
    submitted_values,
)

routes = web.RouteTableDef()


def _describe(payload: dict) -> str:
    return f"{payload['rateType']} {payload['baseRate']:.2f}"


async def _form(request: web.Request, values: dict, errors: dict, pricing_id: int | None = None, status: int = 200):
    return aiohttp_jinja2.render_template("pricing_form.html", request, {
        "page": "pricings",
        "pricing_id": pricing_id,
        "values": values,
        "errors": errors,
        "rate_types": enum_values(PricingRateType),
        "known_tags": await request["backend"].pricings.tags(),
    }, status=status)


def _pricing_values(pricing: dict) -> dict:
    values = record_values(pricing)
    tags = pricing.get("tagNames") or [t.get("name") for t in pricing.get("tags") or [] if isinstance(t, dict)]
    values["tags"] = ", ".join(t for t in tags if t)
    values["neverExpires"] = not pricing.get("validTo")
    return values


@routes.get("/pricings")
@aiohttp_jinja2.template("pricings.html")
async def pricings_page(request: web.Request) -> dict:
    error = None
    pricings, pages = [], presenters.pagination({})
    paging = page_params(request)
    try:
        result = await request["backend"].pricings.list(page=paging["page"], size=paging["size"])
        pricings = with_ids(embedded(result, "pricings"))
        pages = presenters.pagination(page_info(result))
    except UnauthorizedError:
        raise
    except ApiError as e:
        error = e.message
    return {"page": "pricings", "pricings": pricings, "pagination": pages, "error": error}


@routes.get("/pricings/tags")
async def tag_suggestions(request: web.Request) -> web.Response:
    tags = await request["backend"].pricings.tags(request.query.get("tags", "").split(",")[-1].strip())
    return render_partial(request, "partials/tag_suggestions.html", {"tags": tags})


@routes.get("/pricings/new")
async def new_pricing(request: web.Request) -> web.Response:
    return await _form(request, {"minimumRentalDays": 1, "depositAmount": 0, "rateType": "Daily"}, {})


@routes.post("/pricings")
async def create_pricing(request: web.Request) -> web.Response:
    data = await request.post()
    try:
        payload = forms.pricing(data)
    except ValidationFailed as e:
        return await _form(request, submitted_values(data), e.errors, status=422)

    async with journaled(request, "create", "pricing", None, f"Pricing {_describe(payload)} created") as outcome:
        created = await request["backend"].pricings.create(payload)
        outcome["entity_id"] = resource_id(created)

    activity.catalog("pricing", "created", _describe(payload))
    flash(request, "success", "Pricing created", _describe(payload))
    raise web.HTTPSeeOther("/pricings")


@routes.get(r"/pricings/{id:\d+}/edit")
async def edit_pricing(request: web.Request) -> web.Response:
    pricing_id = int_param(request, "id")
    pricing = await request["backend"].pricings.get(pricing_id)
    return await _form(request, _pricing_values(pricing), {}, pricing_id)


@routes.post(r"/pricings/{id:\d+}")
async def update_pricing(request: web.Request) -> web.Response:
    pricing_id = int_param(request, "id")
    data = await request.post()
    try:
        payload = forms.pricing(data)
    except ValidationFailed as e:
        return await _form(request, submitted_values(data), e.errors, pricing_id, status=422)

    async with journaled(request, "update", "pricing", pricing_id, f"Pricing #{pricing_id} updated"):
        await request["backend"].pricings.update(pricing_id, payload)

    activity.catalog("pricing", "updated", f"#{pricing_id} {_describe(payload)}")
    flash(request, "success", "Pricing updated", _describe(payload))
    raise web.HTTPSeeOther("/pricings")


@routes.post(r"/pricings/{id:\d+}/delete")
async def delete_pricing(request: web.Request) -> web.Response:
    pricing_id = int_param(request, "id")
    async with journaled(request, "delete", "pricing", pricing_id, f"Pricing #{pricing_id} deleted"):
        await request["backend"].pricings.delete(pricing_id)

    activity.catalog("pricing", "deleted", f"#{pricing_id}")
    flash(request, "success", "Pricing deleted")
    raise redirect(request, "/pricings")
