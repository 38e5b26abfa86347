"""Tests for the per-area backend APIs: collections, fleet, merchants, registration."""

import asyncio
import json

import pytest

from backoffice.api import Backend
from backoffice.api.registration import RegistrationApi


# =========================================================================
# COLLECTIONS
# =========================================================================


@pytest.mark.parametrize("area, path", [
    ("packages", "/api/packages"),
    ("offerings", "/api/offerings"),
    ("pricings", "/api/pricings"),
    ("discounts", "/api/discounts"),
    ("vehicles", "/api/vehicles"),
])
async def test_list_passes_paging_options(hal, fake_backend, area, path):
    fake_backend.respond("GET", path, {"_embedded": {area: [{"id": 1}]}, "page": {"totalElements": 1}})

    body = await getattr(Backend(hal), area).list(page=0, size=50, sort="name,asc")

    assert body["_embedded"][area] == [{"id": 1}]
    assert fake_backend.calls("GET", path)[0]["query"] == {"page": "0", "size": "50", "sort": "name,asc"}


async def test_account_settings_list_accepts_plain_or_embedded(hal, fake_backend):
    backend = Backend(hal)
    fake_backend.respond("GET", "/api/v1/account-settings", [{"settingKey": "TAX_RATE", "settingValue": "6"}])
    assert (await backend.account_settings.list())[0]["settingKey"] == "TAX_RATE"

    fake_backend.respond("GET", "/api/v1/account-settings", {
        "_embedded": {"accountSettingResponses": [{"settingKey": "CURRENCY", "settingValue": "MYR"}]},
    })
    assert (await backend.account_settings.list())[0]["settingKey"] == "CURRENCY"


async def test_account_settings_common(hal, fake_backend):
    fake_backend.respond("GET", "/api/v1/account-settings/common", {"taxRate": 6, "currency": "MYR"})
    assert await Backend(hal).account_settings.common() == {"taxRate": 6, "currency": "MYR"}


async def test_modification_policies_list_missing_is_empty(hal):
    assert await Backend(hal).modification_policies.list() == []


async def test_pricing_tags_keeps_active_matches(hal, fake_backend):
    fake_backend.respond("GET", "/api/pricing-tags", {"_embedded": {"pricingTags": [
        {"name": "Weekend", "active": True},
        {"name": "Weekday", "active": False},
        {"name": "Holiday", "active": True},
    ]}})

    assert await Backend(hal).pricings.tags("WEEK") == ["Weekend"]


async def test_active_offering_prices_query(hal, fake_backend):
    fake_backend.respond("GET", "/api/offering-prices/search/findByActive", {"_embedded": {"offeringPrices": []}})

    await Backend(hal).offerings.active_prices(active=False, page=2, size=10)

    query = fake_backend.calls("GET", "/api/offering-prices/search/findByActive")[0]["query"]
    assert query == {"active": "false", "page": "2", "size": "10"}


# =========================================================================
# FLEET
# =========================================================================


async def test_vehicle_search_picks_most_specific_method(hal, fake_backend):
    path = "/api/vehicles/search/findByStatusAndCarType"
    fake_backend.respond("GET", path, {"_embedded": {"vehicles": []}})

    await Backend(hal).vehicles.search({"status": "AVAILABLE", "carType": "SUV", "name": " "})

    query = fake_backend.calls("GET", path)[0]["query"]
    assert query == {"page": "0", "size": "20", "sort": "name,asc", "status": "AVAILABLE", "carType": "SUV"}


async def test_vehicle_status_is_a_partial_update(hal, fake_backend):
    fake_backend.respond("PATCH", "/api/vehicles/4", {"id": 4, "status": "MAINTENANCE"})

    await Backend(hal).vehicles.set_status(4, "MAINTENANCE")

    assert json.loads(fake_backend.calls("PATCH", "/api/vehicles/4")[0]["body"]) == {"status": "MAINTENANCE"}


async def test_vehicle_images_primary_first(hal, fake_backend):
    fake_backend.respond("GET", "/api/vehicles/4/images", {"_embedded": {"images": [
        {"id": 1, "isPrimary": False},
        {"id": 2, "isPrimary": True},
    ]}})

    images = await Backend(hal).vehicles.images(4)

    assert [i["id"] for i in images] == [2, 1]
    assert await Backend(hal).vehicles.images(5) == []


async def test_vehicle_pricings_filter_by_any_tag(hal, fake_backend):
    fake_backend.respond("GET", "/api/v1/pricings/search", {"_embedded": {"pricings": []}})

    await Backend(hal).vehicles.pricings(4, tags=["Weekend", "Peak"], page=1, size=5)

    query = fake_backend.calls("GET", "/api/v1/pricings/search")[0]["query"]
    assert query == {
        "vehicleId": "4", "page": "1", "size": "5", "sort": "validFrom,desc", "anyTag": "Weekend,Peak",
    }


async def test_booking_images_list(hal, fake_backend):
    fake_backend.respond("GET", "/api/bookings/5/images", [{"id": 1, "imageCategory": "OTHER"}])
    assert await Backend(hal).bookings.images(5) == [{"id": 1, "imageCategory": "OTHER"}]

    fake_backend.respond("GET", "/api/bookings/5/images", {"unexpected": True})
    assert await Backend(hal).bookings.images(5) == []


# =========================================================================
# MERCHANTS
# =========================================================================


@pytest.mark.parametrize("status, expected", [
    ({"success": True, "canAcceptPayments": True}, True),
    ({"success": True, "canAcceptPayments": False}, False),
    ({"success": False, "canAcceptPayments": True}, False),
])
async def test_can_accept_payments(hal, fake_backend, status, expected):
    fake_backend.respond("GET", "/api/merchants/status", status)
    assert await Backend(hal).merchants.can_accept_payments() is expected


async def test_can_accept_payments_when_status_unavailable(hal, fake_backend):
    fake_backend.respond("GET", "/api/merchants/status", {"message": "down"}, status=503)
    assert await Backend(hal).merchants.can_accept_payments() is False


# =========================================================================
# REGISTRATION
# =========================================================================


class StalledClient:
    base_url = "http://registration.test"

    async def request(self, method, url, **kwargs):
        raise asyncio.TimeoutError()


async def test_registration_timeout_is_a_failed_result():
    result = await RegistrationApi(StalledClient()).register_master_account({"username": "acme"})

    assert result.success is False
    assert result.error == "Registration timed out, please try again"


async def test_registration_rejection_carries_field_errors(hal, fake_backend):
    fake_backend.respond("POST", "/api/registration/master-account", {
        "message": "Validation failed", "details": {"username": "Username already exists"},
    }, status=400)

    result = await RegistrationApi(hal).register_master_account({"username": "acme"})

    assert result.success is False
    assert result.details == {"username": "Username already exists"}


async def test_registration_success(hal, fake_backend):
    fake_backend.respond("POST", "/api/registration/master-account", {"message": "Account created"}, status=201)

    result = await RegistrationApi(hal).register_master_account({"username": "acme"})

    assert result.success is True
    assert result.message == "Account created"
