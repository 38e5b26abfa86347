"""
Offering routes — add-ons (GPS, child seats, insurance...) and the
per-offering price rules panel.

The price panel is HTMX-driven: every add/edit/delete swaps the refreshed
panel back into the offering detail page.
"""

import logging

import aiohttp_jinja2
from aiohttp import web

from backoffice import forms
from backoffice.activity import activity
from backoffice.api.errors import ApiError, UnauthorizedError, ValidationFailed
from backoffice.api.hal import embedded, id_from_href, link_href, page_info, resource_id, self_href, with_ids
from backoffice.api.offerings import OFFERING_CRITERIA, price_id_from_href
from backoffice.models import ConsumableType, InventoryMode, OfferingRateType, OfferingType, enum_values
from backoffice.web import presenters
from backoffice.web.helpers import (
    flash,
    int_param,
    journaled,
    page_params,
    query_criteria,
    record_values,
    redirect,
    render_partial,
    submitted_values,
)

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()


def _choices() -> dict:
    return {
        "offering_types": enum_values(OfferingType),
        "inventory_modes": enum_values(InventoryMode),
        "consumable_types": enum_values(ConsumableType),
    }


def _form(request: web.Request, values: dict, errors: dict, offering_id: int | None = None, status: int = 200):
    return aiohttp_jinja2.render_template("offering_form.html", request, {
        "page": "offerings",
        "offering_id": offering_id,
        "values": values,
        "errors": errors,
        **_choices(),
    }, status=status)


@routes.get("/offerings")
@aiohttp_jinja2.template("offerings.html")
async def offerings_page(request: web.Request) -> dict:
    criteria = query_criteria(request, OFFERING_CRITERIA)
    error = None
    offerings, pages = [], presenters.pagination({})
    try:
        result = await request["backend"].offerings.search({**criteria, **page_params(request)})
        offerings = with_ids(embedded(result, "offerings"))
        pages = presenters.pagination(page_info(result))
    except UnauthorizedError:
        raise
    except ApiError as e:
        error = e.message

    return {
        "page": "offerings",
        "criteria": criteria,
        "offerings": offerings,
        "pagination": pages,
        "error": error,
        **_choices(),
    }


@routes.get("/offerings/prices")
@aiohttp_jinja2.template("offering_price_rules.html")
async def price_rules_page(request: web.Request) -> dict:
    """Price rules across all offerings, active ones by default."""
    active = request.query.get("active", "true") != "false"
    paging = page_params(request)
    prices, pages, error = [], presenters.pagination({}), None
    try:
        result = await request["backend"].offerings.active_prices(
            active=active, page=paging["page"], size=paging["size"], sort="priority,desc",
        )
        prices = [
            {**p, "id": p.get("id") or price_id_from_href(self_href(p)), "offeringId": _offering_of(p)}
            for p in embedded(result, "offeringPrices")
        ]
        pages = presenters.pagination(page_info(result))
    except UnauthorizedError:
        raise
    except ApiError as e:
        error = e.message

    return {
        "page": "offerings",
        "active": active,
        "prices": prices,
        "pagination": pages,
        "error": error,
    }


def _offering_of(price: dict) -> int | None:
    if price.get("offeringId") is not None:
        return price["offeringId"]
    return id_from_href(link_href(price, "offering"))


@routes.get("/offerings/new")
async def new_offering(request: web.Request) -> web.Response:
    return _form(request, {"availability": 0, "maxQuantityPerBooking": 1, "price": 0}, {})


@routes.post("/offerings")
async def create_offering(request: web.Request) -> web.Response:
    data = await request.post()
    try:
        payload = forms.offering(data)
    except ValidationFailed as e:
        return _form(request, submitted_values(data), e.errors, status=422)

    async with journaled(request, "create", "offering", None, f"Offering '{payload['name']}' created") as outcome:
        created = await request["backend"].offerings.create(payload)
        outcome["entity_id"] = resource_id(created)

    activity.catalog("offering", "created", payload["name"])
    flash(request, "success", "Offering created", payload["name"])
    offering_id = resource_id(created)
    raise web.HTTPSeeOther(f"/offerings/{offering_id}" if offering_id else "/offerings")


@routes.get(r"/offerings/{id:\d+}")
@aiohttp_jinja2.template("offering_detail.html")
async def offering_detail(request: web.Request) -> dict:
    backend = request["backend"]
    offering_id = int_param(request, "id")
    offering = await backend.offerings.get(offering_id)
    prices = await backend.offerings.list_prices(offering_id)
    return {
        "page": "offerings",
        "offering_id": offering_id,
        "offering": offering,
        "prices": prices,
        "rate_types": enum_values(OfferingRateType),
        "journal": await request.app["journal"].for_entity("offering", offering_id),
    }


@routes.get(r"/offerings/{id:\d+}/edit")
async def edit_offering(request: web.Request) -> web.Response:
    offering_id = int_param(request, "id")
    offering = await request["backend"].offerings.get(offering_id)
    return _form(request, record_values(offering), {}, offering_id)


@routes.post(r"/offerings/{id:\d+}")
async def update_offering(request: web.Request) -> web.Response:
    offering_id = int_param(request, "id")
    data = await request.post()
    try:
        payload = forms.offering(data)
    except ValidationFailed as e:
        return _form(request, submitted_values(data), e.errors, offering_id, status=422)

    async with journaled(request, "update", "offering", offering_id, f"Offering '{payload['name']}' updated"):
        await request["backend"].offerings.update(offering_id, payload)

    activity.catalog("offering", "updated", payload["name"])
    flash(request, "success", "Offering updated", payload["name"])
    raise web.HTTPSeeOther(f"/offerings/{offering_id}")


@routes.post(r"/offerings/{id:\d+}/delete")
async def delete_offering(request: web.Request) -> web.Response:
    offering_id = int_param(request, "id")
    async with journaled(request, "delete", "offering", offering_id, f"Offering #{offering_id} deleted"):
        await request["backend"].offerings.delete(offering_id)

    activity.catalog("offering", "deleted", f"#{offering_id}")
    flash(request, "success", "Offering deleted")
    raise redirect(request, "/offerings")


# =========================================================================
# PRICE PANEL
# =========================================================================

async def _price_panel(request: web.Request, offering_id: int, status: int = 200) -> web.Response:
    prices = await request["backend"].offerings.list_prices(offering_id)
    return render_partial(request, "partials/offering_prices.html", {
        "offering_id": offering_id, "prices": prices,
    }, status=status)


def _price_form(request, offering_id: int, values: dict, errors: dict, price_id: int | None = None, status=200):
    response = render_partial(request, "partials/offering_price_form.html", {
        "offering_id": offering_id,
        "price_id": price_id,
        "values": values,
        "errors": errors,
        "rate_types": enum_values(OfferingRateType),
    }, status=status)
    if errors:
        response.headers["HX-Retarget"] = "#price-form"
    return response


@routes.get(r"/offerings/{id:\d+}/prices")
async def price_panel(request: web.Request) -> web.Response:
    return await _price_panel(request, int_param(request, "id"))


@routes.get(r"/offerings/{id:\d+}/prices/new")
async def new_price(request: web.Request) -> web.Response:
    return _price_form(request, int_param(request, "id"), {"active": True, "priority": 0}, {})


@routes.post(r"/offerings/{id:\d+}/prices")
async def create_price(request: web.Request) -> web.Response:
    offering_id = int_param(request, "id")
    data = await request.post()
    try:
        payload = forms.offering_price(data)
    except ValidationFailed as e:
        return _price_form(request, offering_id, submitted_values(data), e.errors, status=422)

    async with journaled(request, "create_price", "offering", offering_id,
                         f"Price rule added to offering #{offering_id}",
                         {"baseRate": payload["baseRate"], "rateType": payload["rateType"]}):
        await request["backend"].offerings.create_price(offering_id, payload)

    activity.catalog("offering price", "created", f"offering #{offering_id}")
    return await _price_panel(request, offering_id)


@routes.get(r"/offerings/{id:\d+}/prices/{price_id:\d+}/edit")
async def edit_price(request: web.Request) -> web.Response:
    offering_id = int_param(request, "id")
    price_id = int_param(request, "price_id")
    price = await request["backend"].offerings.get_price(price_id)
    return _price_form(request, offering_id, record_values(price), {}, price_id)


@routes.post(r"/offerings/{id:\d+}/prices/{price_id:\d+}")
async def update_price(request: web.Request) -> web.Response:
    offering_id = int_param(request, "id")
    price_id = int_param(request, "price_id")
    data = await request.post()
    try:
        payload = forms.offering_price(data)
    except ValidationFailed as e:
        return _price_form(request, offering_id, submitted_values(data), e.errors, price_id, status=422)

    async with journaled(request, "update_price", "offering", offering_id,
                         f"Price rule #{price_id} updated on offering #{offering_id}"):
        await request["backend"].offerings.update_price(
            price_id, {**payload, "offering": f"/api/offerings/{offering_id}"},
        )

    activity.catalog("offering price", "updated", f"#{price_id}")
    return await _price_panel(request, offering_id)


@routes.post(r"/offerings/{id:\d+}/prices/{price_id:\d+}/delete")
async def delete_price(request: web.Request) -> web.Response:
    offering_id = int_param(request, "id")
    price_id = int_param(request, "price_id")

    async with journaled(request, "delete_price", "offering", offering_id,
                         f"Price rule #{price_id} removed from offering #{offering_id}"):
        await request["backend"].offerings.delete_price(price_id)

    activity.catalog("offering price", "deleted", f"#{price_id}")
    return await _price_panel(request, offering_id)
