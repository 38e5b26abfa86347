"""
Booking routes — search, creation with a pricing preview, detail with
settlement card, modification, audit trail, manual payments, settlement
close/reopen and inspection images.

GET  /bookings                                  — search + pagination
GET  /bookings/new                              — new booking form
POST /bookings/new/preview                      — price the form, show confirm
POST /bookings                                  — preview, confirm, create
GET  /bookings/{id}                             — detail page
GET  /bookings/{id}/modify                      — policy + modification form
POST /bookings/{id}/modify/preview              — fee and price difference
POST /bookings/{id}/modify                      — apply the modification
GET  /bookings/{id}/history                     — audit trail partial
GET  /bookings/{id}/payments/dialog             — manual payment dialog partial
POST /bookings/{id}/payments                    — record payment (optional receipt)
POST /bookings/{id}/payments/{pid}/complete     — mark payment completed
POST /bookings/{id}/payments/{pid}/cancel       — cancel payment
POST /bookings/{id}/payments/{pid}/receipt      — attach a receipt afterwards
POST /bookings/{id}/settlement/close|reopen     — settlement state
GET  /bookings/{id}/images                      — inspection images (?category=)
"""

import asyncio
import logging

import aiohttp_jinja2
from aiohttp import web

from backoffice import forms
from backoffice.activity import activity
from backoffice.api.bookings import BOOKING_CRITERIA, BOOKING_IMAGE_CATEGORIES, BookingCancelled
from backoffice.api.errors import ApiError, NotFoundError, UnauthorizedError, ValidationFailed
from backoffice.api.hal import embedded, page_info, resource_id, with_ids
from backoffice.api.settlements import completion_percentage, group_by_category, transaction_totals
from backoffice.models import BookingStatus, VehicleStatus, enum_values, is_booking_completed
from backoffice.web import presenters
from backoffice.web.helpers import (
    flash,
    int_param,
    is_htmx,
    journaled,
    page_params,
    query_criteria,
    redirect,
    render_partial,
    submitted_values,
    toast,
    username,
)

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()


async def _optional(coro):
    """None for a missing sub-resource (no settlement yet, no payments...)."""
    try:
        return await coro
    except NotFoundError:
        return None


@routes.get("/bookings")
@aiohttp_jinja2.template("bookings.html")
async def bookings_page(request: web.Request) -> dict:
    backend = request["backend"]
    criteria = query_criteria(request, BOOKING_CRITERIA)

    bookings, pages, error = [], presenters.pagination({}), None
    try:
        result = await backend.bookings.search({**criteria, **page_params(request)})
        bookings = with_ids(embedded(result, "bookings"))
        pages = presenters.pagination(page_info(result))
    except NotFoundError:
        error = "No booking matches that ID"
    except UnauthorizedError:
        raise
    except ApiError as e:
        error = e.message

    return {
        "page": "bookings",
        "criteria": criteria,
        "statuses": enum_values(BookingStatus),
        "bookings": bookings,
        "pagination": pages,
        "error": error,
    }


async def _skipped():
    return None


def _failure(request: web.Request, title: str, error: ApiError, location: str) -> web.Response:
    """A backend rejection as an HTMX toast, or a flash on the page the form came from."""
    if is_htmx(request):
        response = toast(request, "error", title, error.message)
        response.headers["HX-Retarget"] = "#toasts"
        return response
    flash(request, "error", title, error.message)
    raise web.HTTPSeeOther(location)


# =========================================================================
# NEW BOOKING
# =========================================================================

async def _booking_form(
    request: web.Request,
    values: dict,
    errors: dict,
    preview: dict | None = None,
    notice: str | None = None,
    status: int = 200,
) -> web.Response:
    backend = request["backend"]
    vehicles, packages, offerings = await asyncio.gather(
        backend.vehicles.search({"status": VehicleStatus.AVAILABLE.value, "size": 200}),
        backend.packages.list(size=200, sort="name,asc"),
        backend.offerings.list(size=200, sort="name,asc"),
    )
    context = {
        "page": "bookings",
        "values": values,
        "errors": errors,
        "vehicles": with_ids(embedded(vehicles, "vehicles")),
        "packages": with_ids(embedded(packages, "packages")),
        "offerings": with_ids(embedded(offerings, "offerings")),
        **_preview_context(request, preview),
        "notice": notice,
    }
    return aiohttp_jinja2.render_template("booking_form.html", request, context, status=status)


def _preview_context(request: web.Request, preview: dict | None) -> dict:
    preview = preview or {}
    summary = preview.get("pricingSummary") or {}
    return {
        "preview": presenters.pricing_breakdown(summary, request.app["display"]["currency"]),
        "preview_total": summary.get("grandTotal"),
        "warnings": (preview.get("validation") or {}).get("warnings") or [],
        "loyalty": preview.get("loyaltyInfo") or preview.get("loyaltyPointsInfo"),
    }


def _same_amount(seen, total) -> bool:
    try:
        return round(float(seen), 2) == round(float(total), 2)
    except (TypeError, ValueError):
        return False


@routes.get("/bookings/new")
async def new_booking(request: web.Request) -> web.Response:
    values = {"currency": request.app["display"]["currency"]}
    if request.query.get("vehicleId", "").isdigit():
        values["vehicleId"] = request.query["vehicleId"]
    return await _booking_form(request, values, {})


@routes.post("/bookings/new/preview")
async def preview_booking(request: web.Request) -> web.Response:
    """Price the form as filled in; the confirm button carries the quoted total."""
    data = await request.post()
    values = submitted_values(data)
    try:
        booking_request = forms.booking(data, request.app["display"]["currency"])
        preview = await request["backend"].bookings.preview_pricing(booking_request)
    except ValidationFailed as e:
        if is_htmx(request):
            return render_partial(request, "partials/booking_preview.html", {
                "errors": e.errors, "values": values, **_preview_context(request, None),
            }, status=422)
        return await _booking_form(request, values, e.errors, status=422)
    except UnauthorizedError:
        raise
    except ApiError as e:
        return _failure(request, "Pricing Preview Failed", e, "/bookings/new")

    validation = preview.get("validation") or {}
    errors = {}
    if not validation.get("isValid", False):
        errors["booking"] = f"Booking validation failed: {', '.join(validation.get('errors') or [])}"

    if is_htmx(request):
        return render_partial(request, "partials/booking_preview.html", {
            "errors": errors, "values": values, **_preview_context(request, None if errors else preview),
        }, status=422 if errors else 200)
    return await _booking_form(request, values, errors, None if errors else preview, status=422 if errors else 200)


@routes.post("/bookings")
async def create_booking(request: web.Request) -> web.Response:
    data = await request.post()
    values = submitted_values(data)
    try:
        booking_request = forms.booking(data, request.app["display"]["currency"])
    except ValidationFailed as e:
        return await _booking_form(request, values, e.errors, status=422)

    latest: dict = {}

    async def confirm(preview: dict) -> bool:
        # The operator confirmed a quote; a different price needs a fresh confirmation
        latest.update(preview)
        total = (preview.get("pricingSummary") or {}).get("grandTotal")
        return bool(data.get("confirmed")) and _same_amount(data.get("previewTotal"), total)

    guest = booking_request.get("guestName") or "guest"
    try:
        async with journaled(request, "create", "booking", None, f"Booking for {guest} created") as outcome:
            created = await request["backend"].bookings.create_with_preview(booking_request, confirm)
            booking_id = created.get("bookingId") or resource_id(created)
            outcome["entity_id"] = booking_id
            outcome["grandTotal"] = created.get("grandTotal")
    except ValidationFailed as e:
        return await _booking_form(request, values, e.errors, status=422)
    except BookingCancelled:
        notice = "The price changed since it was quoted. Review the new total and confirm again."
        if not data.get("confirmed"):
            notice = "Review the price and confirm the booking."
        return await _booking_form(request, values, {}, latest, notice=notice, status=409)
    except UnauthorizedError:
        raise
    except ApiError as e:
        return _failure(request, "Failed to Create Booking", e, "/bookings/new")

    total = presenters.format_currency(created.get("grandTotal"), created.get("currency") or request.app["display"]["currency"])
    activity.booking(booking_id or "?", f"created for {guest} ({total})")
    flash(request, "success", "Booking created", f"Booking #{booking_id} · {total}")
    raise redirect(request, f"/bookings/{booking_id}" if booking_id else "/bookings")


# =========================================================================
# DETAIL
# =========================================================================

@routes.get(r"/bookings/{id:\d+}")
@aiohttp_jinja2.template("booking_detail.html")
async def booking_detail(request: web.Request) -> dict:
    backend = request["backend"]
    booking_id = int_param(request, "id")
    currency = request.app["display"]["currency"]

    booking = await backend.bookings.get(booking_id)
    completed = is_booking_completed(booking.get("status"))
    settlement, summary, payments, pricing, snapshot, post_completion = await asyncio.gather(
        _optional(backend.settlements.details(booking_id)),
        _optional(backend.payments.summary(booking_id)),
        _optional(backend.payments.history(booking_id)),
        _optional(backend.bookings.pricing_summary(booking_id)),
        _optional(backend.bookings.pricing_snapshot(booking_id)),
        _optional(backend.settlements.post_completion_transactions(booking_id)) if completed else _skipped(),
    )

    settlement = settlement or {}
    settlement_summary = settlement.get("summary") or {}
    transactions = settlement.get("transactions") or []

    return {
        "page": "bookings",
        "booking": booking,
        "booking_id": booking_id,
        "summary": summary or {},
        "payments": payments or [],
        "pricing": presenters.pricing_breakdown(pricing, booking.get("currency") or currency),
        "locked_rates": presenters.snapshot_rates(snapshot, booking.get("currency") or currency),
        "settlement": settlement_summary,
        "settlement_progress": completion_percentage(settlement_summary) if settlement_summary else None,
        "transactions_by_category": group_by_category(transactions),
        "transaction_totals": transaction_totals(transactions),
        "post_completion": post_completion or [],
        "journal": await request.app["journal"].for_entity("booking", booking_id),
    }


# =========================================================================
# MODIFICATION
# =========================================================================

async def _modification_page(
    request: web.Request,
    booking_id: int,
    booking: dict,
    values: dict,
    errors: dict,
    preview: dict | None = None,
    status: int = 200,
) -> web.Response:
    policy = await _optional(request["backend"].bookings.modification_policy(booking_id))
    return aiohttp_jinja2.render_template("booking_modify.html", request, {
        "page": "bookings",
        "booking_id": booking_id,
        "booking": booking,
        "policy": policy,
        "values": values,
        "errors": errors,
        "preview": preview,
    }, status=status)


def _current_values(booking: dict) -> dict:
    return {
        "startDate": (booking.get("startDate") or "")[:16],
        "endDate": (booking.get("endDate") or "")[:16],
        "pickupLocation": booking.get("pickupLocation") or "",
        "dropoffLocation": booking.get("dropoffLocation") or "",
    }


async def _booking_with_id(request: web.Request, booking_id: int) -> dict:
    booking = await request["backend"].bookings.get(booking_id)
    return {**booking, "id": booking_id}


@routes.get(r"/bookings/{id:\d+}/modify")
async def modify_booking_form(request: web.Request) -> web.Response:
    booking_id = int_param(request, "id")
    booking = await _booking_with_id(request, booking_id)
    return await _modification_page(request, booking_id, booking, _current_values(booking), {})


@routes.post(r"/bookings/{id:\d+}/modify/preview")
async def preview_modification(request: web.Request) -> web.Response:
    booking_id = int_param(request, "id")
    booking = await _booking_with_id(request, booking_id)
    data = await request.post()
    values = submitted_values(data)
    try:
        changes = forms.booking_modification(data, booking)
        preview = await request["backend"].bookings.preview_modification(booking_id, changes)
    except ValidationFailed as e:
        if is_htmx(request):
            return render_partial(request, "partials/modification_preview.html", {
                "booking_id": booking_id, "errors": e.errors, "preview": None, "values": values,
            }, status=422)
        return await _modification_page(request, booking_id, booking, values, e.errors, status=422)
    except UnauthorizedError:
        raise
    except ApiError as e:
        return _failure(request, "Preview Failed", e, f"/bookings/{booking_id}/modify")

    if is_htmx(request):
        return render_partial(request, "partials/modification_preview.html", {
            "booking_id": booking_id, "errors": {}, "preview": preview, "values": values,
        })
    return await _modification_page(request, booking_id, booking, values, {}, preview)


@routes.post(r"/bookings/{id:\d+}/modify")
async def modify_booking(request: web.Request) -> web.Response:
    booking_id = int_param(request, "id")
    booking = await _booking_with_id(request, booking_id)
    data = await request.post()
    try:
        changes = forms.booking_modification(data, booking)
    except ValidationFailed as e:
        return await _modification_page(request, booking_id, booking, submitted_values(data), e.errors, status=422)

    try:
        async with journaled(request, "modify", "booking", booking_id, f"Booking #{booking_id} modified",
                             {"reason": changes["modificationReason"]}) as outcome:
            result = await request["backend"].bookings.execute_modification(booking_id, changes)
            outcome["totalAdjustment"] = (result or {}).get("totalAdjustment")
    except UnauthorizedError:
        raise
    except ApiError as e:
        return _failure(request, "Modification Failed", e, f"/bookings/{booking_id}/modify")

    activity.booking(booking_id, f"modified: {changes['modificationReason']}")
    flash(request, "success", "Booking Modified Successfully", (result or {}).get("message"))
    raise redirect(request, f"/bookings/{booking_id}")


@routes.get("/bookings/{id}/history")
async def booking_history(request: web.Request) -> web.Response:
    booking_id = int_param(request, "id")
    currency = request.app["display"]["currency"]
    try:
        entries = await request["backend"].bookings.history(booking_id)
    except UnauthorizedError:
        raise
    except ApiError as e:
        return render_partial(request, "partials/booking_history.html", {"entries": [], "error": e.message})
    return render_partial(request, "partials/booking_history.html", {
        "entries": [presenters.audit_entry(e, currency) for e in entries],
        "error": None,
    })


# =========================================================================
# MANUAL PAYMENTS
# =========================================================================

async def _dialog_state(request: web.Request, booking_id: int) -> tuple[dict, dict]:
    backend = request["backend"]
    booking, summary = await asyncio.gather(
        backend.bookings.get(booking_id),
        _optional(backend.payments.summary(booking_id)),
    )
    dialog = presenters.payment_dialog(
        summary,
        booking.get("status"),
        guest_name=booking.get("guestName"),
    )
    return booking, dialog


@routes.get("/bookings/{id}/payments/dialog")
async def payment_dialog(request: web.Request) -> web.Response:
    booking_id = int_param(request, "id")
    _, dialog = await _dialog_state(request, booking_id)
    return render_partial(request, "partials/payment_dialog.html", {
        "booking_id": booking_id, "dialog": dialog, "values": {}, "errors": {}, "warning": None,
    })


@routes.post("/bookings/{id}/payments")
async def record_payment(request: web.Request) -> web.Response:
    backend = request["backend"]
    booking_id = int_param(request, "id")
    data = await request.post()
    booking, dialog = await _dialog_state(request, booking_id)
    status = booking.get("status")
    values = {k: v for k, v in data.items() if isinstance(v, str)}

    def rerender(errors: dict, warning: str | None = None, http_status: int = 422) -> web.Response:
        return render_partial(request, "partials/payment_dialog.html", {
            "booking_id": booking_id, "dialog": dialog, "values": values,
            "errors": errors, "warning": warning,
        }, status=http_status)

    receipt = data.get("receipt")
    receipt_content = None
    if receipt is not None and getattr(receipt, "filename", None):
        receipt_content = receipt.file.read()
        try:
            forms.receipt_file(receipt.content_type, len(receipt_content))
        except ValidationFailed as e:
            return rerender(e.errors)

    try:
        payload = forms.manual_payment(data, status)
    except ValidationFailed as e:
        return rerender(e.errors)

    completed = is_booking_completed(status)
    if (
        not completed
        and presenters.exceeds_balance(payload["amount"], dialog["balance_due"])
        and not data.get("confirmOverpay")
    ):
        balance = presenters.format_currency(dialog["balance_due"], request.app["display"]["currency"])
        return rerender({}, f"Amount exceeds the balance due of {balance}. Submit again to confirm.", 200)

    try:
        async with journaled(
            request, "record_payment", "booking", booking_id,
            f"{'Charge' if completed else 'Payment'} on booking #{booking_id}",
            {"amount": payload["amount"], "method": payload["paymentMethod"], "type": payload["transactionType"]},
        ) as outcome:
            if receipt_content is not None:
                result = await backend.payments.record_with_receipt(
                    booking_id, payload, receipt.filename, receipt_content, receipt.content_type,
                )
            else:
                result = await backend.payments.record(booking_id, payload)
            outcome["paymentId"] = (result or {}).get("paymentId")
    except UnauthorizedError:
        raise
    except ApiError as e:
        if is_htmx(request):
            response = toast(request, "error", "Failed to Record Payment", e.message)
            response.headers["HX-Retarget"] = "#toasts"
            return response
        flash(request, "error", "Failed to Record Payment", e.message)
        raise web.HTTPSeeOther(f"/bookings/{booking_id}")

    activity.payment_recorded(
        booking_id, payload["amount"], payload["paymentMethod"], payload["transactionType"], username(request),
    )
    message = presenters.payment_toast(result, payload["amount"], completed, request.app["display"]["currency"])
    if is_htmx(request):
        response = toast(request, message["kind"], message["title"], message["message"])
        response.headers["HX-Retarget"] = "#toasts"
        response.headers["HX-Trigger"] = "payment-recorded"
        return response
    flash(request, message["kind"], message["title"], message["message"])
    raise web.HTTPSeeOther(f"/bookings/{booking_id}")


async def _payment_action(request: web.Request, action: str) -> web.Response:
    backend = request["backend"]
    booking_id = int_param(request, "id")
    payment_id = int_param(request, "pid")
    data = await request.post()

    async with journaled(request, f"{action}_payment", "booking", booking_id,
                         f"Payment #{payment_id} {action}d on booking #{booking_id}"):
        if action == "complete":
            await backend.payments.complete(booking_id, payment_id)
        else:
            await backend.payments.cancel(booking_id, payment_id, data.get("reason") or None)

    new_status = "COMPLETED" if action == "complete" else "CANCELLED"
    activity.payment_status(booking_id, payment_id, new_status)
    flash(request, "success", f"Payment {new_status.lower()}")
    raise redirect(request, f"/bookings/{booking_id}")


@routes.post("/bookings/{id}/payments/{pid}/complete")
async def complete_payment(request: web.Request) -> web.Response:
    return await _payment_action(request, "complete")


@routes.post("/bookings/{id}/payments/{pid}/cancel")
async def cancel_payment(request: web.Request) -> web.Response:
    return await _payment_action(request, "cancel")


@routes.post("/bookings/{id}/payments/{pid}/receipt")
async def attach_receipt(request: web.Request) -> web.Response:
    booking_id = int_param(request, "id")
    payment_id = int_param(request, "pid")
    receipt = (await request.post()).get("receipt")
    if receipt is None or not getattr(receipt, "filename", None):
        flash(request, "error", "No file selected")
        raise redirect(request, f"/bookings/{booking_id}")

    content = receipt.file.read()
    try:
        forms.receipt_file(receipt.content_type, len(content))
    except ValidationFailed as e:
        flash(request, "error", "Receipt rejected", e.errors.get("receipt"))
        raise redirect(request, f"/bookings/{booking_id}")

    async with journaled(request, "attach_receipt", "booking", booking_id,
                         f"Receipt attached to payment #{payment_id}", {"filename": receipt.filename}):
        await request["backend"].payments.upload_receipt(
            booking_id, payment_id, receipt.filename, content, receipt.content_type,
        )

    activity.booking(booking_id, f"receipt attached to payment #{payment_id}")
    flash(request, "success", "Receipt attached")
    raise redirect(request, f"/bookings/{booking_id}")


# =========================================================================
# SETTLEMENT
# =========================================================================

@routes.post("/bookings/{id}/settlement/close")
async def close_settlement(request: web.Request) -> web.Response:
    booking_id = int_param(request, "id")
    notes = ((await request.post()).get("notes") or "").strip() or None

    async with journaled(request, "close_settlement", "booking", booking_id,
                         f"Settlement closed for booking #{booking_id}", {"notes": notes}):
        await request["backend"].settlements.close(booking_id, notes)

    activity.settlement(booking_id, "closed", notes)
    flash(request, "success", "Settlement closed")
    raise redirect(request, f"/bookings/{booking_id}")


@routes.post("/bookings/{id}/settlement/reopen")
async def reopen_settlement(request: web.Request) -> web.Response:
    booking_id = int_param(request, "id")
    reason = ((await request.post()).get("reason") or "").strip() or None

    async with journaled(request, "reopen_settlement", "booking", booking_id,
                         f"Settlement reopened for booking #{booking_id}", {"reason": reason}):
        await request["backend"].settlements.reopen(booking_id, reason)

    activity.settlement(booking_id, "reopened", reason)
    flash(request, "success", "Settlement reopened")
    raise redirect(request, f"/bookings/{booking_id}")


# =========================================================================
# IMAGES
# =========================================================================

async def _image_categories(request: web.Request) -> list[str]:
    """Predefined categories plus the account's active custom ones."""
    try:
        body = await request["backend"].bookings.image_categories()
    except UnauthorizedError:
        raise
    except ApiError as e:
        logger.warning(f"Image categories unavailable, using defaults: {e.message}")
        return list(BOOKING_IMAGE_CATEGORIES)
    categories = [c.get("code") for c in body.get("predefined") or [] if c.get("code")]
    for custom in body.get("custom") or []:
        if custom.get("active", True) and custom.get("name") and custom["name"] not in categories:
            categories.append(custom["name"])
    return categories or list(BOOKING_IMAGE_CATEGORIES)


@routes.get("/bookings/{id}/images")
@aiohttp_jinja2.template("booking_images.html")
async def booking_images(request: web.Request) -> dict:
    backend = request["backend"]
    booking_id = int_param(request, "id")
    category = request.query.get("category", "").strip()

    categories = await _image_categories(request)
    if category:
        grouped = {category: await backend.bookings.images_by_category(booking_id, category)}
        total = len(grouped[category])
    else:
        body = await _optional(backend.bookings.grouped_images(booking_id)) or {}
        grouped = {name: images for name, images in (body.get("grouped") or {}).items() if images}
        total = body.get("total", sum(len(images) for images in grouped.values()))

    return {
        "page": "bookings",
        "booking_id": booking_id,
        "grouped": grouped,
        "total": total,
        "category": category,
        "categories": categories,
    }


@routes.post("/bookings/{id}/images")
async def upload_booking_image(request: web.Request) -> web.Response:
    booking_id = int_param(request, "id")
    data = await request.post()
    upload = data.get("file")
    if upload is None or not getattr(upload, "filename", None):
        flash(request, "error", "No file selected")
        raise redirect(request, f"/bookings/{booking_id}/images")
    if not (upload.content_type or "").startswith("image/"):
        flash(request, "error", "Invalid file type", "Please select an image file (JPEG, PNG, etc.)")
        raise redirect(request, f"/bookings/{booking_id}/images")

    category = data.get("category") or "OTHER"
    async with journaled(request, "upload_image", "booking", booking_id,
                         f"Image uploaded to booking #{booking_id}", {"category": category}):
        await request["backend"].bookings.upload_image(
            booking_id, upload.filename, upload.file.read(), upload.content_type,
            category=category, notes=data.get("notes") or None,
        )

    activity.booking(booking_id, f"image uploaded ({category})")
    flash(request, "success", "Image uploaded")
    raise redirect(request, f"/bookings/{booking_id}/images")


@routes.post("/bookings/{id}/images/{image_id}/delete")
async def delete_booking_image(request: web.Request) -> web.Response:
    booking_id = int_param(request, "id")
    image_id = int_param(request, "image_id")

    async with journaled(request, "delete_image", "booking", booking_id,
                         f"Image #{image_id} removed from booking #{booking_id}"):
        await request["backend"].bookings.delete_image(booking_id, image_id)

    activity.booking(booking_id, f"image #{image_id} deleted")
    flash(request, "success", "Image deleted")
    raise redirect(request, f"/bookings/{booking_id}/images")


@routes.post("/bookings/{id}/images/delete-all")
async def delete_all_booking_images(request: web.Request) -> web.Response:
    booking_id = int_param(request, "id")

    async with journaled(request, "delete_all_images", "booking", booking_id,
                         f"All images removed from booking #{booking_id}"):
        await request["backend"].bookings.delete_all_images(booking_id)

    activity.booking(booking_id, "all images deleted")
    flash(request, "success", "All images deleted")
    raise redirect(request, f"/bookings/{booking_id}/images")
