"""
Fleet routes — vehicle search, create/edit, status changes, photos and the
pricing rules attached to each vehicle.

GET  /vehicles                              — search + pagination
GET  /vehicles/new, POST /vehicles          — create
GET  /vehicles/{id}                         — detail (photos, pricings ?tags=)
GET  /vehicles/{id}/edit, POST /vehicles/{id}
POST /vehicles/{id}/status                  — status only
POST /vehicles/{id}/quote                   — rental price for a date range
POST /vehicles/{id}/delete
POST /vehicles/{id}/images                  — upload a photo
POST /vehicles/{id}/images/{image_id}/delete
"""

import asyncio
import logging
from datetime import datetime

import aiohttp_jinja2
from aiohttp import web

from backoffice import forms
from backoffice.activity import activity
from backoffice.api.errors import ApiError, UnauthorizedError, ValidationFailed
from backoffice.api.hal import embedded, page_info, resource_id, with_ids
from backoffice.api.vehicles import VEHICLE_CRITERIA
from backoffice.models import FUEL_TYPES, TRANSMISSION_TYPES, CarType, VehicleStatus, enum_values
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
        "statuses": enum_values(VehicleStatus),
        "car_types": enum_values(CarType),
        "fuel_types": FUEL_TYPES,
        "transmissions": TRANSMISSION_TYPES,
    }


def _form(request: web.Request, values: dict, errors: dict, vehicle_id: int | None = None, status: int = 200):
    return aiohttp_jinja2.render_template("vehicle_form.html", request, {
        "page": "vehicles",
        "vehicle_id": vehicle_id,
        "values": values,
        "errors": errors,
        **_choices(),
    }, status=status)


@routes.get("/vehicles")
@aiohttp_jinja2.template("vehicles.html")
async def vehicles_page(request: web.Request) -> dict:
    criteria = query_criteria(request, VEHICLE_CRITERIA)
    error = None
    vehicles, pages = [], presenters.pagination({})
    try:
        result = await request["backend"].vehicles.search({**criteria, **page_params(request)})
        vehicles = with_ids(embedded(result, "vehicles"))
        pages = presenters.pagination(page_info(result))
    except UnauthorizedError:
        raise
    except ApiError as e:
        error = e.message

    return {
        "page": "vehicles",
        "criteria": criteria,
        "vehicles": vehicles,
        "pagination": pages,
        "error": error,
        **_choices(),
    }


@routes.get("/vehicles/new")
async def new_vehicle(request: web.Request) -> web.Response:
    return _form(request, {
        "year": datetime.now().year,
        "fuelType": "Gasoline",
        "transmissionType": "Automatic",
        "status": VehicleStatus.AVAILABLE.value,
        "odometer": 0,
        "bufferMinutes": 30,
        "minRentalHours": 24,
        "maxRentalDays": 30,
        "maxFutureBookingDays": 90,
    }, {})


@routes.post("/vehicles")
async def create_vehicle(request: web.Request) -> web.Response:
    data = await request.post()
    try:
        payload = forms.vehicle(data)
    except ValidationFailed as e:
        return _form(request, submitted_values(data), e.errors, status=422)

    async with journaled(request, "create", "vehicle", None, f"Vehicle {payload['name']} created") as outcome:
        created = await request["backend"].vehicles.create(payload)
        vehicle_id = resource_id(created)
        outcome["entity_id"] = vehicle_id

    activity.catalog("vehicle", "created", payload["name"])
    flash(request, "success", "Vehicle created", f"{payload['name']} ({payload['licensePlate']})")
    raise web.HTTPSeeOther(f"/vehicles/{vehicle_id}" if vehicle_id else "/vehicles")


@routes.get(r"/vehicles/{id:\d+}")
@aiohttp_jinja2.template("vehicle_detail.html")
async def vehicle_detail(request: web.Request) -> dict:
    backend = request["backend"]
    vehicle_id = int_param(request, "id")
    tags = [t.strip() for t in request.query.get("tags", "").split(",") if t.strip()]
    try:
        page = max(int(request.query.get("page", 0)), 0)
    except ValueError:
        page = 0

    vehicle, images, pricings = await asyncio.gather(
        backend.vehicles.get(vehicle_id),
        backend.vehicles.images(vehicle_id),
        backend.vehicles.pricings(vehicle_id, tags=tags, page=page, size=request.app["display"]["page_size"]),
    )
    return {
        "page": "vehicles",
        "vehicle_id": vehicle_id,
        "vehicle": vehicle,
        "images": images,
        "pricings": with_ids(embedded(pricings, "pricings")),
        "pagination": presenters.pagination(page_info(pricings)),
        "tags": ",".join(tags),
        "statuses": enum_values(VehicleStatus),
        "journal": await request.app["journal"].for_entity("vehicle", vehicle_id),
    }


@routes.get(r"/vehicles/{id:\d+}/edit")
async def edit_vehicle(request: web.Request) -> web.Response:
    vehicle_id = int_param(request, "id")
    vehicle = await request["backend"].vehicles.get(vehicle_id)
    return _form(request, record_values(vehicle, ()), {}, vehicle_id)


@routes.post(r"/vehicles/{id:\d+}")
async def update_vehicle(request: web.Request) -> web.Response:
    vehicle_id = int_param(request, "id")
    data = await request.post()
    try:
        payload = forms.vehicle(data)
    except ValidationFailed as e:
        return _form(request, submitted_values(data), e.errors, vehicle_id, status=422)

    async with journaled(request, "update", "vehicle", vehicle_id, f"Vehicle {payload['name']} updated"):
        await request["backend"].vehicles.update(vehicle_id, payload)

    activity.catalog("vehicle", "updated", payload["name"])
    flash(request, "success", "Vehicle updated", payload["name"])
    raise web.HTTPSeeOther(f"/vehicles/{vehicle_id}")


@routes.post(r"/vehicles/{id:\d+}/status")
async def change_vehicle_status(request: web.Request) -> web.Response:
    vehicle_id = int_param(request, "id")
    status = ((await request.post()).get("status") or "").strip()
    if status not in enum_values(VehicleStatus):
        flash(request, "error", "Invalid status", status or None)
        raise redirect(request, f"/vehicles/{vehicle_id}")

    async with journaled(request, "change_status", "vehicle", vehicle_id,
                         f"Vehicle #{vehicle_id} set to {status}", {"status": status}):
        await request["backend"].vehicles.set_status(vehicle_id, status)

    activity.catalog("vehicle", f"set {status.lower()}", f"#{vehicle_id}")
    flash(request, "success", "Status updated", presenters.humanize(status))
    raise redirect(request, f"/vehicles/{vehicle_id}")


@routes.post(r"/vehicles/{id:\d+}/delete")
async def delete_vehicle(request: web.Request) -> web.Response:
    vehicle_id = int_param(request, "id")
    async with journaled(request, "delete", "vehicle", vehicle_id, f"Vehicle #{vehicle_id} deleted"):
        await request["backend"].vehicles.delete(vehicle_id)

    activity.catalog("vehicle", "deleted", f"#{vehicle_id}")
    flash(request, "success", "Vehicle deleted")
    raise redirect(request, "/vehicles")


@routes.post(r"/vehicles/{id:\d+}/quote")
async def quote_vehicle(request: web.Request) -> web.Response:
    """Rental price for a date range, before any booking is drafted."""
    vehicle_id = int_param(request, "id")
    data = await request.post()
    try:
        window = forms.rental_window(data)
        quote = await request["backend"].bookings.calculate_rental_price(
            vehicle_id, window["startDate"], window["endDate"],
        )
    except ValidationFailed as e:
        return render_partial(request, "partials/vehicle_quote.html", {"quote": None, "errors": e.errors}, status=422)
    except UnauthorizedError:
        raise
    except ApiError as e:
        return render_partial(request, "partials/vehicle_quote.html", {"quote": None, "errors": {"quote": e.message}})
    return render_partial(request, "partials/vehicle_quote.html", {"quote": quote, "errors": {}})


# =========================================================================
# PHOTOS
# =========================================================================

@routes.post(r"/vehicles/{id:\d+}/images")
async def upload_vehicle_image(request: web.Request) -> web.Response:
    vehicle_id = int_param(request, "id")
    data = await request.post()
    upload = data.get("file")
    if upload is None or not getattr(upload, "filename", None):
        flash(request, "error", "No file selected")
        raise redirect(request, f"/vehicles/{vehicle_id}")
    if not (upload.content_type or "").startswith("image/"):
        flash(request, "error", "Invalid file type", "Please select an image file (JPEG, PNG, etc.)")
        raise redirect(request, f"/vehicles/{vehicle_id}")

    primary = (data.get("isPrimary") or "").lower() in ("on", "true", "1")
    async with journaled(request, "upload_image", "vehicle", vehicle_id,
                         f"Photo uploaded to vehicle #{vehicle_id}", {"primary": primary}):
        await request["backend"].vehicles.upload_image(
            vehicle_id, upload.filename, upload.file.read(), upload.content_type,
            description=data.get("description") or None, is_primary=primary,
        )

    flash(request, "success", "Photo uploaded")
    raise redirect(request, f"/vehicles/{vehicle_id}")


@routes.post(r"/vehicles/{id:\d+}/images/{image_id:\d+}/delete")
async def delete_vehicle_image(request: web.Request) -> web.Response:
    vehicle_id = int_param(request, "id")
    image_id = int_param(request, "image_id")
    async with journaled(request, "delete_image", "vehicle", vehicle_id,
                         f"Photo #{image_id} removed from vehicle #{vehicle_id}"):
        await request["backend"].vehicles.delete_image(vehicle_id, image_id)

    flash(request, "success", "Photo deleted")
    raise redirect(request, f"/vehicles/{vehicle_id}")
