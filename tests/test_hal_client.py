"""Tests for HalClient — request shaping, discovery, associations, error decoding."""

import json

import pytest

from backoffice.api.client import HalClient, build_query
from backoffice.api.errors import ApiError, NotFoundError, UnauthorizedError
from backoffice.api.hal import (
    embedded,
    expand_template,
    id_from_href,
    page_info,
    resource_id,
    with_ids,
)


# =========================================================================
# REQUEST SHAPING
# =========================================================================


def test_build_query_drops_none_and_renders_bools():
    assert build_query({"page": 0, "name": None, "isMandatory": True, "active": False}) == {
        "page": "0",
        "isMandatory": "true",
        "active": "false",
    }


async def test_request_sends_bearer_token_and_hal_accept(hal, fake_backend):
    fake_backend.respond("GET", "/api/packages", {"_embedded": {"packages": []}})

    await hal.get_collection("packages", page=1, size=20, sort=None)

    call = fake_backend.calls("GET", "/api/packages")[0]
    assert call["headers"]["Authorization"] == "Bearer test-token"
    assert "application/hal+json" in call["headers"]["Accept"]
    assert call["query"] == {"page": "1", "size": "20"}


async def test_no_token_means_no_authorization_header(backend_url, fake_backend):
    fake_backend.respond("GET", "/api/offerings", {})
    client = HalClient(backend_url)
    try:
        await client.get_collection("offerings")
    finally:
        await client.stop()
    assert "Authorization" not in fake_backend.calls("GET", "/api/offerings")[0]["headers"]


async def test_create_posts_json(hal, fake_backend):
    fake_backend.respond("POST", "/api/offerings", {"id": 3, "name": "GPS"}, status=201)

    created = await hal.create("offerings", {"name": "GPS", "price": 10})

    assert created["id"] == 3
    call = fake_backend.calls("POST", "/api/offerings")[0]
    assert json.loads(call["body"]) == {"name": "GPS", "price": 10}
    assert call["headers"]["Content-Type"] == "application/json"


async def test_pricing_writes_go_through_v1(hal, fake_backend):
    fake_backend.respond("PUT", "/api/v1/pricings/4", {"id": 4})

    await hal.update("pricings", 4, {"baseRate": 120})

    assert fake_backend.calls("PUT", "/api/v1/pricings/4")


async def test_empty_response_returns_empty_dict(hal, fake_backend):
    fake_backend.respond("DELETE", "/api/discounts/9", status=204)
    assert await hal.request("DELETE", "/api/discounts/9") == {}


async def test_association_sends_uri_list(hal, fake_backend, backend_url):
    fake_backend.respond("PUT", "/api/discounts/5/applicablePackages", status=204)

    await hal.add_association(
        "discounts", 5, "applicablePackages",
        [f"{backend_url}/api/packages/1", f"{backend_url}/api/packages/2"],
    )

    call = fake_backend.calls("PUT", "/api/discounts/5/applicablePackages")[0]
    assert call["headers"]["Content-Type"] == "text/uri-list"
    assert call["body"].decode().splitlines() == [
        f"{backend_url}/api/packages/1",
        f"{backend_url}/api/packages/2",
    ]


async def test_fetch_bytes_returns_content_type(hal, fake_backend):
    fake_backend.respond("GET", "/files/car.png", b"\x89PNG", content_type="image/png")

    content, content_type = await hal.fetch_bytes("/files/car.png")

    assert content == b"\x89PNG"
    assert content_type.startswith("image/png")


# =========================================================================
# DISCOVERY
# =========================================================================


async def test_discover_caches_links_used_by_endpoint(hal, fake_backend, backend_url):
    fake_backend.respond("GET", "/api", {
        "_links": {
            "offerings": {"href": f"{backend_url}/api/catalog/offerings{{?page,size,sort}}", "templated": True},
            "profile": {"href": f"{backend_url}/api/profile"},
        },
    })

    links = await hal.discover()

    assert set(links) == {"offerings", "profile"}
    assert hal.endpoint("offerings") == f"{backend_url}/api/catalog/offerings"
    assert hal.endpoint("packages") == f"{backend_url}/api/packages"


async def test_bound_client_shares_links(hal, fake_backend, backend_url):
    fake_backend.respond("GET", "/api", {"_links": {"bookings": {"href": f"{backend_url}/api/rentals"}}})
    await hal.discover()

    async def other_token():
        return "other"

    bound = hal.bind(other_token)
    assert bound.endpoint("bookings") == f"{backend_url}/api/rentals"


async def test_follow_link_missing_rel_raises(hal):
    with pytest.raises(ValueError):
        await hal.follow_link({"_links": {"self": {"href": "/api/x/1"}}}, "owner")


# =========================================================================
# ERRORS
# =========================================================================


async def test_validation_error_carries_message_and_details(hal, fake_backend):
    fake_backend.respond("POST", "/api/packages", {
        "error": "Validation Failed",
        "message": "Name is required",
        "details": {"name": "must not be blank"},
        "timestamp": "2024-05-01T10:00:00",
    }, status=400)

    with pytest.raises(ApiError) as exc_info:
        await hal.create("packages", {})

    err = exc_info.value
    assert err.status == 400
    assert err.message == "Name is required"
    assert err.error == "Validation Failed"
    assert err.field_errors == {"name": "must not be blank"}
    assert err.timestamp == "2024-05-01T10:00:00"


async def test_401_raises_unauthorized(hal, fake_backend):
    fake_backend.respond("GET", "/api/bookings/1", {"message": "Token expired"}, status=401)
    with pytest.raises(UnauthorizedError):
        await hal.get_resource("bookings", 1)


async def test_unknown_path_raises_not_found(hal):
    with pytest.raises(NotFoundError) as exc_info:
        await hal.get_resource("bookings", 999)
    assert exc_info.value.status == 404


async def test_plain_text_error_body_is_the_message(hal, fake_backend):
    fake_backend.respond("GET", "/api/bookings", b"Gateway exploded", status=502, content_type="text/plain")
    with pytest.raises(ApiError) as exc_info:
        await hal.get_collection("bookings")
    assert exc_info.value.message == "Gateway exploded"


# =========================================================================
# HAL DOCUMENT HELPERS
# =========================================================================


def test_embedded_picks_named_or_first_key():
    doc = {"_embedded": {"packages": [{"name": "A"}]}}
    assert embedded(doc, "packages") == [{"name": "A"}]
    assert embedded(doc) == [{"name": "A"}]
    assert embedded(doc, "offerings") == []
    assert embedded({"page": {}}) == []
    assert embedded([{"x": 1}]) == [{"x": 1}]


def test_id_from_href_ignores_templates_and_queries():
    assert id_from_href("http://api/api/packages/12{?projection}") == 12
    assert id_from_href("http://api/api/packages/12?projection=full") == 12
    assert id_from_href("http://api/api/packages/") is None
    assert id_from_href(None) is None


def test_resource_id_falls_back_to_self_link():
    assert resource_id({"id": "7"}) == 7
    assert resource_id({"_links": {"self": {"href": "/api/offerings/41"}}}) == 41
    assert with_ids([{"_links": {"self": {"href": "/api/offerings/2"}}}])[0]["id"] == 2


def test_page_info_defaults_to_single_page():
    assert page_info({"_embedded": {"x": [{}, {}]}}) == {
        "size": 2, "totalElements": 2, "totalPages": 1, "number": 0,
    }
    assert page_info({"page": {"size": 20, "totalElements": 45, "totalPages": 3, "number": 1}})["totalPages"] == 3


def test_expand_template_query_and_path():
    assert expand_template("/api/offerings{?page,size,sort}", {"page": 2, "sort": "name"}) == \
        "/api/offerings?page=2&sort=name"
    assert expand_template("/api/bookings/{id}{?projection}", {"id": 5}) == "/api/bookings/5"
    assert expand_template("/api/x?a=1{&b}", {"b": "y"}) == "/api/x?a=1&b=y"
