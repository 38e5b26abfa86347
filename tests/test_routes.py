"""Route tests through the full middleware stack against the fake backend."""

import json
from urllib.parse import parse_qs, urlsplit

import pytest

from backoffice.web.routes.system import is_backend_url

HTMX = {"HX-Request": "true"}


# =========================================================================
# AUTH GUARD
# =========================================================================


async def test_unauthenticated_page_redirects_to_login(anon_client):
    resp = await anon_client.get("/bookings?status=PENDING", allow_redirects=False)
    assert resp.status == 303
    location = urlsplit(resp.headers["Location"])
    assert location.path == "/login"
    assert parse_qs(location.query)["next"] == ["/bookings?status=PENDING"]


async def test_unauthenticated_htmx_gets_hx_redirect(anon_client):
    resp = await anon_client.get("/bookings/5/history", headers=HTMX, allow_redirects=False)
    assert resp.status == 200
    assert resp.headers["HX-Redirect"].startswith("/login?next=")


async def test_login_starts_keycloak_flow_and_stores_state(anon_client, config):
    resp = await anon_client.get("/login?next=/payments", allow_redirects=False)
    assert resp.status == 303
    location = resp.headers["Location"]
    assert location.startswith("http://keycloak.test/realms/backoffice/protocol/openid-connect/auth?")
    assert "client_id=backoffice-client" in location
    assert config.session.cookie_name in resp.cookies


async def test_login_error_renders_page(anon_client):
    resp = await anon_client.get("/login?error=session_expired")
    assert resp.status == 200
    assert "Your session has expired" in await resp.text()


async def test_callback_with_wrong_state_is_rejected(anon_client):
    resp = await anon_client.get("/api/auth/callback/keycloak?code=abc&state=forged", allow_redirects=False)
    assert resp.status == 303
    assert resp.headers["Location"] == "/login?error=invalid_state"


async def test_session_endpoint(anon_client, client):
    anon = await (await anon_client.get("/api/auth/session")).json()
    assert anon == {"isLoggedIn": False, "user": None, "expiresAt": None}

    body = await (await client.get("/api/auth/session")).json()
    assert body["isLoggedIn"] is True
    assert body["user"]["username"] == "ops.lead"
    assert "refresh_token" not in json.dumps(body)


async def test_logout_clears_session(client, config):
    resp = await client.get("/logout", allow_redirects=False)
    assert resp.status == 303
    assert "/protocol/openid-connect/logout?" in resp.headers["Location"]
    assert resp.cookies[config.session.cookie_name].value == ""


async def test_backend_401_sends_user_back_to_login(client, fake_backend):
    fake_backend.respond("GET", "/api/bookings/search/findByStatus", {"message": "expired"}, status=401)

    resp = await client.get("/bookings?status=PENDING", allow_redirects=False)

    assert resp.status == 303
    assert "error=session_expired" in resp.headers["Location"]


async def test_health_is_public(anon_client, backend_url):
    resp = await anon_client.get("/health")
    assert resp.status == 200
    body = await resp.json()
    assert body["status"] == "ok"
    assert body["backend"] == backend_url


# =========================================================================
# BOOKINGS
# =========================================================================


async def test_bookings_page_lists_search_results(client, fake_backend):
    fake_backend.respond("GET", "/api/bookings/search/findByStatus", {
        "_embedded": {"bookings": [{
            "id": 42, "guestName": "Aisha Rahman", "status": "PENDING",
            "startDate": "2024-07-01", "endDate": "2024-07-03", "currentAmount": 250,
        }]},
        "page": {"size": 20, "totalElements": 1, "totalPages": 1, "number": 0},
    })

    resp = await client.get("/bookings?status=PENDING")

    assert resp.status == 200
    text = await resp.text()
    assert "Aisha Rahman" in text
    assert "RM250.00" in text
    query = fake_backend.calls("GET", "/api/bookings/search/findByStatus")[0]["query"]
    assert query == {"page": "0", "size": "20", "sort": "createdAt,desc", "status": "PENDING"}


async def test_missing_booking_renders_404(client):
    resp = await client.get("/bookings/999")
    assert resp.status == 404
    assert "No handler for GET /api/bookings/999" in await resp.text()


# =========================================================================
# MANUAL PAYMENT
# =========================================================================


@pytest.fixture
def confirmed_booking(fake_backend):
    fake_backend.respond("GET", "/api/bookings/7", {"id": 7, "status": "CONFIRMED", "guestName": "Ali"})
    fake_backend.respond("GET", "/api/v1/bookings/7/payments/summary", {
        "balanceDue": 100.0, "bookingTotal": 300.0, "totalPaid": 200.0,
    })


async def test_payment_dialog_prefills_balance(client, confirmed_booking):
    resp = await client.get("/bookings/7/payments/dialog", headers=HTMX)
    assert resp.status == 200
    text = await resp.text()
    assert 'value="100.00"' in text
    assert "Record Manual Payment" in text


async def test_record_payment_posts_and_journals(client, fake_backend, journal, confirmed_booking):
    fake_backend.respond("POST", "/api/v1/bookings/7/payments/manual", {"paymentId": 55})

    resp = await client.post("/bookings/7/payments", headers=HTMX, data={
        "amount": "50", "paymentMethod": "CASH", "transactionType": "ADVANCE_PAYMENT", "payerName": "Ali",
    })

    assert resp.status == 200
    assert resp.headers["HX-Trigger"] == "payment-recorded"
    assert "Payment of RM50.00 recorded successfully" in await resp.text()

    sent = json.loads(fake_backend.calls("POST", "/api/v1/bookings/7/payments/manual")[0]["body"])
    assert sent["amount"] == 50.0
    assert sent["paymentMethod"] == "CASH"
    assert sent["isPostCompletion"] is False
    assert "confirmBooking" not in sent

    action = (await journal.recent())[0]
    assert action["status"] == "completed"
    assert action["entity_id"] == "7"
    assert action["details"]["paymentId"] == 55
    assert action["username"] == "ops.lead"


async def test_overpayment_needs_confirmation(client, fake_backend, confirmed_booking):
    fake_backend.respond("POST", "/api/v1/bookings/7/payments/manual", {"paymentId": 56})
    form = {"amount": "150", "paymentMethod": "CASH", "transactionType": "ADVANCE_PAYMENT"}

    resp = await client.post("/bookings/7/payments", headers=HTMX, data=form)
    assert resp.status == 200
    text = await resp.text()
    assert "exceeds the balance due of RM100.00" in text
    assert 'name="confirmOverpay"' in text
    assert not fake_backend.calls("POST", "/api/v1/bookings/7/payments/manual")

    resp = await client.post("/bookings/7/payments", headers=HTMX, data={**form, "confirmOverpay": "1"})
    assert resp.status == 200
    assert len(fake_backend.calls("POST", "/api/v1/bookings/7/payments/manual")) == 1


async def test_invalid_payment_rerenders_with_errors(client, fake_backend, confirmed_booking):
    resp = await client.post("/bookings/7/payments", headers=HTMX, data={"amount": "-5", "paymentMethod": "CASH"})
    assert resp.status == 422
    assert "Amount must be greater than 0" in await resp.text()
    assert not fake_backend.calls("POST")


async def test_backend_rejection_becomes_toast_and_failed_action(client, fake_backend, journal, confirmed_booking):
    fake_backend.respond("POST", "/api/v1/bookings/7/payments/manual", {"message": "Booking is cancelled"}, status=409)

    resp = await client.post("/bookings/7/payments", headers=HTMX, data={"amount": "20", "paymentMethod": "CASH"})

    assert resp.headers["HX-Retarget"] == "#toasts"
    assert "Booking is cancelled" in await resp.text()
    action = (await journal.recent())[0]
    assert action["status"] == "failed"
    assert action["details"]["status"] == 409


async def test_close_settlement_redirects_and_journals(client, fake_backend, journal):
    fake_backend.respond("POST", "/api/settlements/booking/5/close", {"status": "CLOSED"})

    resp = await client.post("/bookings/5/settlement/close", data={"notes": "Paid in full"}, allow_redirects=False)

    assert resp.status == 303
    assert resp.headers["Location"] == "/bookings/5"
    assert fake_backend.calls("POST", "/api/settlements/booking/5/close")[0]["query"] == {"notes": "Paid in full"}
    action = (await journal.for_entity("booking", 5))[0]
    assert action["action"] == "close_settlement"
    assert action["details"] == {"notes": "Paid in full"}


# =========================================================================
# SETTINGS
# =========================================================================


async def test_save_display_preferences(client, web_server, settings_store):
    resp = await client.put("/settings", headers=HTMX, data={"page_size": "50", "currency": "SGD"})

    assert resp.status == 200
    assert "Settings saved!" in await resp.text()
    assert web_server.app["display"]["page_size"] == 50
    assert await settings_store.get_section("display") == {"page_size": 50, "currency": "SGD"}


async def test_invalid_preference_is_422(client, web_server):
    resp = await client.put("/settings", headers=HTMX, data={"page_size": "500", "currency": "XYZ"})

    assert resp.status == 422
    text = await resp.text()
    assert "Rows per page must be between 5 and 100" in text
    assert "Unknown currency: XYZ" in text
    assert web_server.app["display"]["page_size"] == 20


async def test_blank_preference_reverts_to_default(client, web_server, settings_store):
    await client.put("/settings", headers=HTMX, data={"page_size": "40"})
    resp = await client.put("/settings", headers=HTMX, data={"page_size": ""})

    assert resp.status == 200
    assert web_server.app["display"]["page_size"] == 20
    assert await settings_store.get_section("display") == {}


# =========================================================================
# IMAGE PROXY
# =========================================================================


def test_is_backend_url():
    assert is_backend_url("http://api:8082/files/a.png", "http://api:8082")
    assert not is_backend_url("http://api:9999/files/a.png", "http://api:8082")
    assert not is_backend_url("file:///etc/passwd", "http://api:8082")


async def test_proxy_image_requires_url(client):
    resp = await client.get("/api/proxy-image")
    assert resp.status == 400
    assert await resp.json() == {"error": "Image URL is required"}


async def test_proxy_image_refuses_foreign_hosts(client, fake_backend):
    resp = await client.get("/api/proxy-image", params={"url": "http://evil.test/x.png"})
    assert resp.status == 400
    assert fake_backend.requests == []


async def test_proxy_image_streams_backend_image(client, fake_backend, backend_url):
    fake_backend.respond("GET", "/files/car.png", b"\x89PNG-bytes", content_type="image/png")

    resp = await client.get("/api/proxy-image", params={"url": f"{backend_url}/files/car.png"})

    assert resp.status == 200
    assert await resp.read() == b"\x89PNG-bytes"
    assert resp.headers["Content-Type"].startswith("image/png")
    assert "immutable" in resp.headers["Cache-Control"]
    assert fake_backend.calls("GET", "/files/car.png")[0]["headers"]["Authorization"] == "Bearer test-token"


async def test_proxy_image_backend_error_status_passed_through(client):
    resp = await client.get("/api/proxy-image", params={"url": "/files/missing.png"})
    assert resp.status == 404
    assert "Failed to fetch image" in (await resp.json())["error"]
