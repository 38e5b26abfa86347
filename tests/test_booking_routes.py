"""Booking creation, modification, detail, receipts and image routes against the fake backend."""

import json

import pytest
from aiohttp import FormData

HTMX = {"HX-Request": "true"}

BOOKING_FORM = {
    "vehicleId": "3",
    "startDate": "2024-07-01T10:00",
    "endDate": "2024-07-03T10:00",
    "guestName": "Aisha Rahman",
    "guestEmail": "aisha@example.test",
}

PREVIEW = {
    "validation": {"isValid": True, "warnings": ["Pick-up outside office hours"]},
    "pricingSummary": {
        "vehicleRentals": [{"vehicleName": "Myvi", "days": 2, "amount": 400}],
        "subtotal": 400,
        "grandTotal": 420,
        "taxAmount": 20,
        "currency": "MYR",
    },
}


@pytest.fixture
def catalog(fake_backend):
    """What the new booking form lists: available vehicles, packages, add-ons."""
    fake_backend.respond("GET", "/api/vehicles/search/findByStatus", {
        "_embedded": {"vehicles": [{"id": 3, "name": "Myvi", "licensePlate": "WXY 1234"}]},
    })
    fake_backend.respond("GET", "/api/packages", {"_embedded": {"packages": [{"id": 1, "name": "Weekend"}]}})
    fake_backend.respond("GET", "/api/offerings", {"_embedded": {"offerings": [{"id": 5, "name": "Child seat"}]}})


# =========================================================================
# NEW BOOKING
# =========================================================================


async def test_new_booking_form_prefills_vehicle(client, fake_backend, catalog):
    resp = await client.get("/bookings/new?vehicleId=3")

    assert resp.status == 200
    text = await resp.text()
    assert '<option value="3" selected>' in text
    assert 'name="offering_5"' in text
    query = fake_backend.calls("GET", "/api/vehicles/search/findByStatus")[0]["query"]
    assert query["status"] == "AVAILABLE"
    assert query["size"] == "200"


async def test_preview_shows_total_and_confirm_button(client, fake_backend):
    fake_backend.respond("POST", "/api/v1/bookings/preview", PREVIEW)

    resp = await client.post("/bookings/new/preview", headers=HTMX, data=BOOKING_FORM)

    assert resp.status == 200
    text = await resp.text()
    assert 'name="previewTotal" value="420"' in text
    assert "Confirm booking · RM420.00" in text
    assert "Pick-up outside office hours" in text
    sent = json.loads(fake_backend.calls("POST", "/api/v1/bookings/preview")[0]["body"])
    assert sent["vehicles"][0]["vehicleId"] == 3
    assert sent["guestName"] == "Aisha Rahman"


async def test_preview_with_invalid_form_never_calls_backend(client, fake_backend):
    resp = await client.post("/bookings/new/preview", headers=HTMX, data={**BOOKING_FORM, "guestName": ""})

    assert resp.status == 422
    assert "Guest name is required" in await resp.text()
    assert not fake_backend.calls("POST")


async def test_preview_rejected_by_backend_is_422(client, fake_backend):
    fake_backend.respond("POST", "/api/v1/bookings/preview", {
        "validation": {"isValid": False, "errors": ["Vehicle unavailable"]},
    })

    resp = await client.post("/bookings/new/preview", headers=HTMX, data=BOOKING_FORM)

    assert resp.status == 422
    text = await resp.text()
    assert "Booking validation failed: Vehicle unavailable" in text
    assert "Confirm booking" not in text


async def test_confirmed_booking_is_created_and_journaled(client, fake_backend, journal):
    fake_backend.respond("POST", "/api/v1/bookings/preview", PREVIEW)
    fake_backend.respond("POST", "/api/v1/bookings", {"bookingId": 81, "grandTotal": 420}, status=201)

    resp = await client.post("/bookings", allow_redirects=False, data={
        **BOOKING_FORM, "confirmed": "1", "previewTotal": "420.00",
    })

    assert resp.status == 303
    assert resp.headers["Location"] == "/bookings/81"
    assert len(fake_backend.calls("POST", "/api/v1/bookings")) == 1
    action = (await journal.recent())[0]
    assert action["action"] == "create"
    assert action["status"] == "completed"
    assert action["details"]["entity_id"] == 81
    assert action["details"]["grandTotal"] == 420


async def test_changed_price_needs_a_new_confirmation(client, fake_backend, journal, catalog):
    fake_backend.respond("POST", "/api/v1/bookings/preview", PREVIEW)

    resp = await client.post("/bookings", data={**BOOKING_FORM, "confirmed": "1", "previewTotal": "400"})

    assert resp.status == 409
    text = await resp.text()
    assert "The price changed since it was quoted" in text
    assert 'name="previewTotal" value="420"' in text
    assert not fake_backend.calls("POST", "/api/v1/bookings")
    assert (await journal.recent())[0]["status"] == "failed"


async def test_unconfirmed_booking_shows_price_first(client, fake_backend, catalog):
    fake_backend.respond("POST", "/api/v1/bookings/preview", PREVIEW)

    resp = await client.post("/bookings", data=BOOKING_FORM)

    assert resp.status == 409
    assert "Review the price and confirm the booking." in await resp.text()
    assert not fake_backend.calls("POST", "/api/v1/bookings")


# =========================================================================
# MODIFICATION
# =========================================================================


@pytest.fixture
def existing_booking(fake_backend):
    fake_backend.respond("GET", "/api/bookings/9", {
        "status": "CONFIRMED",
        "vehicleId": 3,
        "startDate": "2024-07-01T10:00:00",
        "endDate": "2024-07-03T10:00:00",
        "pickupLocation": "KLIA",
    })
    fake_backend.respond("GET", "/api/v1/bookings/9/modification-policy", {
        "policyName": "Standard", "freeModificationHours": 48, "isFreeModification": True,
    })


MODIFICATION = {
    "startDate": "2024-07-02T10:00",
    "endDate": "2024-07-04T10:00",
    "pickupLocation": "KLIA",
    "modificationReason": "Flight moved",
}


async def test_modify_form_shows_policy_and_current_dates(client, existing_booking):
    resp = await client.get("/bookings/9/modify")

    assert resp.status == 200
    text = await resp.text()
    assert "Modification policy · Standard" in text
    assert 'value="2024-07-01T10:00"' in text


async def test_modification_preview_partial(client, fake_backend, existing_booking):
    fake_backend.respond("POST", "/api/v1/bookings/9/preview-modification", {
        "previousAmount": 400, "newAmount": 450, "modificationFee": 0, "totalAdjustment": 50,
    })

    resp = await client.post("/bookings/9/modify/preview", headers=HTMX, data=MODIFICATION)

    assert resp.status == 200
    text = await resp.text()
    assert "RM50.00" in text
    assert 'formaction="/bookings/9/modify"' in text
    sent = json.loads(fake_backend.calls("POST", "/api/v1/bookings/9/preview-modification")[0]["body"])
    assert sent["bookingId"] == 9
    assert sent["vehicles"][0]["startDate"] == "2024-07-02T10:00"


async def test_unchanged_modification_is_422(client, fake_backend, existing_booking):
    resp = await client.post("/bookings/9/modify/preview", headers=HTMX, data={
        **MODIFICATION, "startDate": "2024-07-01T10:00", "endDate": "2024-07-03T10:00",
    })

    assert resp.status == 422
    assert "Change the dates or locations before submitting" in await resp.text()
    assert not fake_backend.calls("POST")


async def test_modify_executes_and_journals(client, fake_backend, journal, existing_booking):
    fake_backend.respond("PUT", "/api/v1/bookings/9", {"message": "Dates updated", "totalAdjustment": 50})

    resp = await client.post("/bookings/9/modify", data=MODIFICATION, allow_redirects=False)

    assert resp.status == 303
    assert resp.headers["Location"] == "/bookings/9"
    sent = json.loads(fake_backend.calls("PUT", "/api/v1/bookings/9")[0]["body"])
    assert sent["modificationReason"] == "Flight moved"
    action = (await journal.for_entity("booking", 9))[0]
    assert action["action"] == "modify"
    assert action["details"] == {"reason": "Flight moved", "totalAdjustment": 50}


# =========================================================================
# DETAIL
# =========================================================================


async def test_detail_shows_pricing_and_post_completion_charges(client, fake_backend):
    fake_backend.respond("GET", "/api/bookings/12", {"status": "COMPLETED", "guestName": "Ali"})
    fake_backend.respond("GET", "/api/v1/bookings/12/pricing-summary", PREVIEW["pricingSummary"])
    fake_backend.respond("GET", "/api/v1/bookings/12/pricing-snapshot", {"vehicleSnapshots": [{
        "vehicleName": "Myvi", "baseRate": 200, "rateType": "DAILY", "numberOfDays": 2, "totalAmount": 400,
    }]})
    fake_backend.respond("GET", "/api/settlements/booking/12/transactions/post-completion", [{
        "type": "DAMAGE_CHARGE", "amount": 75, "description": "Scratched bumper",
        "transactionDate": "2024-07-05T09:00:00",
    }])

    resp = await client.get("/bookings/12")

    assert resp.status == 200
    text = await resp.text()
    assert "Myvi × 2 days" in text
    assert "RM420.00" in text
    assert "RM200.00 Daily" in text
    assert "Scratched bumper" in text
    assert "/bookings/12/modify" not in text


async def test_detail_of_open_booking_skips_post_completion(client, fake_backend):
    fake_backend.respond("GET", "/api/bookings/13", {"status": "CONFIRMED", "guestName": "Ali"})

    resp = await client.get("/bookings/13")

    assert resp.status == 200
    assert "/bookings/13/modify" in await resp.text()
    assert not fake_backend.calls("GET", "/api/settlements/booking/13/transactions/post-completion")


async def test_attach_receipt_uploads_and_journals(client, fake_backend, journal):
    fake_backend.respond("POST", "/api/v1/bookings/7/payments/55/receipt", {"receiptUrl": "/r/55.png"})
    form = FormData()
    form.add_field("receipt", b"PNGDATA", filename="receipt.png", content_type="image/png")

    resp = await client.post("/bookings/7/payments/55/receipt", data=form, allow_redirects=False)

    assert resp.status == 303
    assert resp.headers["Location"] == "/bookings/7"
    assert b"PNGDATA" in fake_backend.calls("POST", "/api/v1/bookings/7/payments/55/receipt")[0]["body"]
    action = (await journal.for_entity("booking", 7))[0]
    assert action["action"] == "attach_receipt"
    assert action["details"]["filename"] == "receipt.png"


async def test_receipt_must_be_an_image(client, fake_backend):
    form = FormData()
    form.add_field("receipt", b"%PDF", filename="receipt.pdf", content_type="application/pdf")

    resp = await client.post("/bookings/7/payments/55/receipt", data=form, allow_redirects=False)

    assert resp.status == 303
    assert not fake_backend.calls("POST")


# =========================================================================
# IMAGES
# =========================================================================


async def test_images_grouped_view_hides_empty_categories(client, fake_backend):
    fake_backend.respond("GET", "/api/booking-image-categories", {
        "predefined": [{"code": "PICKUP_INSPECTION"}, {"code": "OTHER"}],
        "custom": [{"name": "WINDSCREEN", "active": True}, {"name": "RETIRED", "active": False}],
    })
    fake_backend.respond("GET", "/api/bookings/5/images/grouped", {
        "grouped": {"PICKUP_INSPECTION": [{"id": 1, "fileName": "front.jpg"}], "OTHER": []},
        "total": 1,
    })

    resp = await client.get("/bookings/5/images")

    assert resp.status == 200
    text = await resp.text()
    assert "front.jpg" in text
    assert "?category=WINDSCREEN" in text
    assert "RETIRED" not in text
    assert "/bookings/5/images/delete-all" in text


async def test_images_category_filter(client, fake_backend):
    fake_backend.respond("GET", "/api/bookings/5/images/by-category/OTHER", [{"id": 2, "fileName": "toll.jpg"}])

    resp = await client.get("/bookings/5/images?category=OTHER")

    assert resp.status == 200
    assert "toll.jpg" in await resp.text()
    assert not fake_backend.calls("GET", "/api/bookings/5/images/grouped")


async def test_delete_all_images(client, fake_backend, journal):
    fake_backend.respond("DELETE", "/api/bookings/5/images", status=204)

    resp = await client.post("/bookings/5/images/delete-all", allow_redirects=False)

    assert resp.status == 303
    assert resp.headers["Location"] == "/bookings/5/images"
    assert len(fake_backend.calls("DELETE", "/api/bookings/5/images")) == 1
    assert (await journal.for_entity("booking", 5))[0]["action"] == "delete_all_images"
