"""
Discount routes — promo codes and automatic discounts, plus the packages
and offerings each one applies to.

Links are synced after the discount itself is saved: an empty selection
unlinks everything.
"""

import asyncio
import logging

import aiohttp_jinja2
from aiohttp import web

from backoffice import forms
from backoffice.activity import activity
from backoffice.api.discounts import DISCOUNT_CRITERIA
from backoffice.api.errors import ApiError, UnauthorizedError, ValidationFailed
from backoffice.api.hal import embedded, page_info, resource_id, with_ids
from backoffice.models import DiscountScope, DiscountType, enum_values
from backoffice.web import presenters
from backoffice.web.helpers import (
    flash,
    int_param,
    journaled,
    page_params,
    query_criteria,
    record_values,
    redirect,
    submitted_values,
)

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()

DISCOUNT_STATUSES = ["ACTIVE", "INACTIVE", "EXPIRED"]


async def _form(request: web.Request, values: dict, errors: dict, discount_id: int | None = None, status: int = 200):
    backend = request["backend"]
    packages, offerings = await asyncio.gather(
        backend.packages.list(size=200, sort="name,asc"),
        backend.offerings.list(size=200, sort="name,asc"),
    )
    return aiohttp_jinja2.render_template("discount_form.html", request, {
        "page": "discounts",
        "discount_id": discount_id,
        "values": values,
        "errors": errors,
        "types": enum_values(DiscountType),
        "scopes": enum_values(DiscountScope),
        "packages": with_ids(embedded(packages, "packages")),
        "offerings": with_ids(embedded(offerings, "offerings")),
    }, status=status)


def _posted_values(data) -> dict:
    values = submitted_values(data)
    for key in ("applicablePackageIds", "applicableOfferingIds"):
        values[key] = [int(i) for i in data.getall(key, []) if str(i).isdigit()]
    return values


async def _sync_links(request: web.Request, discount_id: int, package_ids: list[int], offering_ids: list[int]) -> None:
    discounts = request["backend"].discounts
    await discounts.sync_packages(discount_id, package_ids)
    await discounts.sync_offerings(discount_id, offering_ids)


@routes.get("/discounts")
@aiohttp_jinja2.template("discounts.html")
async def discounts_page(request: web.Request) -> dict:
    criteria = query_criteria(request, DISCOUNT_CRITERIA)
    error = None
    discounts, pages = [], presenters.pagination({})
    try:
        result = await request["backend"].discounts.search({**criteria, **page_params(request)})
        discounts = with_ids(embedded(result, "discounts"))
        pages = presenters.pagination(page_info(result))
    except UnauthorizedError:
        raise
    except ApiError as e:
        error = e.message

    return {
        "page": "discounts",
        "criteria": criteria,
        "types": enum_values(DiscountType),
        "scopes": enum_values(DiscountScope),
        "statuses": DISCOUNT_STATUSES,
        "discounts": discounts,
        "pagination": pages,
        "error": error,
    }


@routes.get("/discounts/new")
async def new_discount(request: web.Request) -> web.Response:
    return await _form(request, {
        "type": DiscountType.PERCENTAGE.value,
        "applicableScope": DiscountScope.ALL.value,
        "minBookingAmount": 0,
        "maxUses": 100,
    }, {})


@routes.post("/discounts")
async def create_discount(request: web.Request) -> web.Response:
    data = await request.post()
    try:
        payload = forms.discount(data)
    except ValidationFailed as e:
        return await _form(request, _posted_values(data), e.errors, status=422)

    package_ids = payload.pop("applicablePackageIds", [])
    offering_ids = payload.pop("applicableOfferingIds", [])
    async with journaled(request, "create", "discount", None, f"Discount {payload['code']} created") as outcome:
        created = await request["backend"].discounts.create(payload)
        discount_id = resource_id(created)
        outcome["entity_id"] = discount_id
        if discount_id is not None and (package_ids or offering_ids):
            await _sync_links(request, discount_id, package_ids, offering_ids)

    activity.catalog("discount", "created", payload["code"])
    flash(request, "success", "Discount created", payload["code"])
    raise web.HTTPSeeOther("/discounts")


@routes.get(r"/discounts/{id:\d+}/edit")
async def edit_discount(request: web.Request) -> web.Response:
    discounts = request["backend"].discounts
    discount_id = int_param(request, "id")
    discount, package_ids, offering_ids = await asyncio.gather(
        discounts.get(discount_id),
        discounts.linked_package_ids(discount_id),
        discounts.linked_offering_ids(discount_id),
    )
    values = record_values(discount)
    values["applicablePackageIds"] = package_ids
    values["applicableOfferingIds"] = offering_ids
    return await _form(request, values, {}, discount_id)


@routes.post(r"/discounts/{id:\d+}")
async def update_discount(request: web.Request) -> web.Response:
    discount_id = int_param(request, "id")
    data = await request.post()
    try:
        payload = forms.discount(data)
    except ValidationFailed as e:
        return await _form(request, _posted_values(data), e.errors, discount_id, status=422)

    package_ids = payload.pop("applicablePackageIds", [])
    offering_ids = payload.pop("applicableOfferingIds", [])
    async with journaled(request, "update", "discount", discount_id, f"Discount {payload['code']} updated"):
        await request["backend"].discounts.update(discount_id, payload)
        await _sync_links(request, discount_id, package_ids, offering_ids)

    activity.catalog("discount", "updated", payload["code"])
    flash(request, "success", "Discount updated", payload["code"])
    raise web.HTTPSeeOther("/discounts")


@routes.post(r"/discounts/{id:\d+}/delete")
async def delete_discount(request: web.Request) -> web.Response:
    discount_id = int_param(request, "id")
    async with journaled(request, "delete", "discount", discount_id, f"Discount #{discount_id} deleted"):
        await request["backend"].discounts.delete(discount_id)

    activity.catalog("discount", "deleted", f"#{discount_id}")
    flash(request, "success", "Discount deleted")
    raise redirect(request, "/discounts")
