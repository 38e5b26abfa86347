"""
Package routes — rental packages with their included offerings.

Unsubmitted package forms can be parked as drafts in the local settings
store and picked up again from the new-package page.
"""

import logging

import aiohttp_jinja2
from aiohttp import web

from backoffice import forms
from backoffice.activity import activity
from backoffice.api.errors import ApiError, UnauthorizedError, ValidationFailed
from backoffice.api.hal import embedded, page_info, resource_id, with_ids
from backoffice.api.packages import PACKAGE_CRITERIA
from backoffice.models import PackageModifierType, enum_values
from backoffice.web import presenters
from backoffice.web.helpers import (
    flash,
    int_param,
    is_htmx,
    journaled,
    page_params,
    query_criteria,
    record_values,
    redirect,
    render_partial,
    submitted_values,
    toast,
)

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()

DRAFT_TYPE = "package"


async def _all_offerings(request: web.Request) -> list[dict]:
    result = await request["backend"].offerings.list(size=200, sort="name,asc")
    return with_ids(embedded(result, "offerings"))


async def _form_context(request: web.Request, values: dict, errors: dict, package_id: int | None = None) -> dict:
    offerings = await _all_offerings(request)
    selected = [int(i) for i in values.get("offeringIds") or []]
    return {
        "page": "packages",
        "package_id": package_id,
        "values": values,
        "errors": errors,
        "modifier_types": enum_values(PackageModifierType),
        "selector": presenters.offering_selector(offerings, selected),
        "drafts": await request.app["settings_store"].list_drafts(DRAFT_TYPE) if package_id is None else [],
        "banner": await request["backend"].packages.image(package_id) if package_id is not None else None,
    }


def _posted_values(data) -> dict:
    values = submitted_values(data)
    values["offeringIds"] = [int(i) for i in data.getall("offeringIds", []) if str(i).isdigit()]
    return values


@routes.get("/packages")
@aiohttp_jinja2.template("packages.html")
async def packages_page(request: web.Request) -> dict:
    criteria = query_criteria(request, PACKAGE_CRITERIA)
    error = None
    packages, pages = [], presenters.pagination({})
    try:
        result = await request["backend"].packages.search({**criteria, **page_params(request)})
        packages = with_ids(embedded(result, "packages"))
        pages = presenters.pagination(page_info(result))
    except UnauthorizedError:
        raise
    except ApiError as e:
        error = e.message

    return {
        "page": "packages",
        "criteria": criteria,
        "modifier_types": enum_values(PackageModifierType),
        "packages": packages,
        "pagination": pages,
        "error": error,
    }


@routes.get("/packages/new")
async def new_package(request: web.Request) -> web.Response:
    values: dict = {"modifierType": PackageModifierType.PERCENTAGE.value, "minRentalDays": 1, "priceModifier": 1}
    draft_id = request.query.get("draft")
    if draft_id:
        draft = await request.app["settings_store"].get_draft(draft_id)
        if draft is None:
            flash(request, "error", "Draft not found")
            raise web.HTTPSeeOther("/packages/new")
        values = {**draft["payload"], "draftId": draft["id"]}

    context = await _form_context(request, values, {})
    return aiohttp_jinja2.render_template("package_form.html", request, context)


@routes.post("/packages")
async def create_package(request: web.Request) -> web.Response:
    data = await request.post()
    values = _posted_values(data)
    try:
        payload = forms.package(data)
    except ValidationFailed as e:
        context = await _form_context(request, values, e.errors)
        return aiohttp_jinja2.render_template("package_form.html", request, context, status=422)

    offering_ids = payload.pop("offeringIds", [])
    backend = request["backend"]
    async with journaled(request, "create", "package", None, f"Package '{payload['name']}' created") as outcome:
        created = await backend.packages.create(payload)
        package_id = resource_id(created)
        outcome["entity_id"] = package_id
        if offering_ids and package_id is not None:
            await backend.packages.set_offerings(package_id, offering_ids)

    draft_id = data.get("draftId")
    if draft_id:
        await request.app["settings_store"].delete_draft(draft_id)

    activity.catalog("package", "created", payload["name"])
    flash(request, "success", "Package created", payload["name"])
    raise web.HTTPSeeOther("/packages")


@routes.get(r"/packages/{id:\d+}/edit")
async def edit_package(request: web.Request) -> web.Response:
    backend = request["backend"]
    package_id = int_param(request, "id")
    package = await backend.packages.get(package_id)
    linked = with_ids(embedded(await backend.packages.offerings(package_id), "offerings"))

    values = record_values(package)
    values["offeringIds"] = [o["id"] for o in linked if o.get("id") is not None]
    context = await _form_context(request, values, {}, package_id)
    return aiohttp_jinja2.render_template("package_form.html", request, context)


@routes.post(r"/packages/{id:\d+}")
async def update_package(request: web.Request) -> web.Response:
    package_id = int_param(request, "id")
    data = await request.post()
    try:
        payload = forms.package(data)
    except ValidationFailed as e:
        context = await _form_context(request, _posted_values(data), e.errors, package_id)
        return aiohttp_jinja2.render_template("package_form.html", request, context, status=422)

    offering_ids = payload.pop("offeringIds", [])
    backend = request["backend"]
    async with journaled(request, "update", "package", package_id, f"Package '{payload['name']}' updated"):
        await backend.packages.update(package_id, payload)
        await backend.packages.set_offerings(package_id, offering_ids)

    activity.catalog("package", "updated", payload["name"])
    flash(request, "success", "Package updated", payload["name"])
    raise web.HTTPSeeOther("/packages")


@routes.post(r"/packages/{id:\d+}/delete")
async def delete_package(request: web.Request) -> web.Response:
    package_id = int_param(request, "id")
    async with journaled(request, "delete", "package", package_id, f"Package #{package_id} deleted"):
        await request["backend"].packages.delete(package_id)

    activity.catalog("package", "deleted", f"#{package_id}")
    flash(request, "success", "Package deleted")
    raise redirect(request, "/packages")


# =========================================================================
# BANNER IMAGE
# =========================================================================

@routes.post(r"/packages/{id:\d+}/image")
async def upload_package_banner(request: web.Request) -> web.Response:
    package_id = int_param(request, "id")
    upload = (await request.post()).get("file")
    if upload is None or not getattr(upload, "filename", None):
        flash(request, "error", "No file selected")
        raise web.HTTPSeeOther(f"/packages/{package_id}/edit")
    if not (upload.content_type or "").startswith("image/"):
        flash(request, "error", "Invalid file type", "Please select an image file (JPEG, PNG, etc.)")
        raise web.HTTPSeeOther(f"/packages/{package_id}/edit")

    async with journaled(request, "upload_image", "package", package_id, f"Banner uploaded for package #{package_id}"):
        await request["backend"].packages.upload_image(
            package_id, upload.filename, upload.file.read(), upload.content_type,
        )

    flash(request, "success", "Banner uploaded")
    raise web.HTTPSeeOther(f"/packages/{package_id}/edit")


@routes.post(r"/packages/{id:\d+}/image/delete")
async def delete_package_banner(request: web.Request) -> web.Response:
    package_id = int_param(request, "id")
    async with journaled(request, "delete_image", "package", package_id, f"Banner removed from package #{package_id}"):
        await request["backend"].packages.delete_image(package_id)

    flash(request, "success", "Banner removed")
    raise redirect(request, f"/packages/{package_id}/edit")


# =========================================================================
# OFFERING MULTI-SELECT
# =========================================================================

@routes.get("/packages/offering-selector")
async def offering_selector(request: web.Request) -> web.Response:
    """Re-render the multi-select after a search keystroke or a toggle."""
    selected = [int(i) for i in request.query.getall("offeringIds", []) if i.isdigit()]
    toggle = request.query.get("toggle", "")
    if toggle.isdigit():
        selected = presenters.toggle_selection(selected, int(toggle))

    offerings = await _all_offerings(request)
    selector = presenters.offering_selector(offerings, selected, request.query.get("search", "").strip())
    return render_partial(request, "partials/offering_selector.html", {"selector": selector})


# =========================================================================
# DRAFTS
# =========================================================================

@routes.post("/packages/drafts")
async def save_draft(request: web.Request) -> web.Response:
    data = await request.post()
    values = _posted_values(data)
    draft_id = values.pop("draftId", None) or None
    draft = await request.app["settings_store"].save_draft(
        DRAFT_TYPE, values.get("name") or "Untitled package", values, draft_id,
    )
    activity.settings(f"package draft saved: {draft['title']}")

    if is_htmx(request):
        response = toast(request, "success", "Draft saved", draft["title"])
        response.headers["HX-Retarget"] = "#toasts"
        return response
    flash(request, "success", "Draft saved", draft["title"])
    raise web.HTTPSeeOther(f"/packages/new?draft={draft['id']}")


@routes.post("/packages/drafts/{draft_id}/delete")
async def discard_draft(request: web.Request) -> web.Response:
    await request.app["settings_store"].delete_draft(request.match_info["draft_id"])
    flash(request, "success", "Draft discarded")
    raise redirect(request, "/packages/new")
