"""Offerings (add-ons such as GPS, child seats, insurance) and their price rules."""

from __future__ import annotations

import logging
import re
from typing import Any

from backoffice.api.client import HalClient
from backoffice.api.errors import NotFoundError
from backoffice.api.hal import embedded, self_href
from backoffice.api.search import SearchRule, clean_criteria, paging, select_search

logger = logging.getLogger(__name__)

OFFERING_CRITERIA = ("name", "offeringType", "minPrice", "maxPrice", "isMandatory", "availability")

OFFERING_SEARCH_RULES = [
    SearchRule(
        "findByNameContainingIgnoreCaseAndOfferingTypeIgnoreCaseAndPriceBetween",
        ("name", "offeringType", "minPrice", "maxPrice"),
    ),
    SearchRule(
        "findByOfferingTypeIgnoreCaseAndIsMandatoryAndPriceBetween",
        ("offeringType", "isMandatory", "minPrice", "maxPrice"),
    ),
    SearchRule("findByOfferingTypeIgnoreCaseAndIsMandatory", ("offeringType", "isMandatory")),
    SearchRule("findByNameContainingIgnoreCaseAndOfferingTypeIgnoreCase", ("name", "offeringType")),
    SearchRule("findByOfferingTypeIgnoreCaseAndPriceBetween", ("offeringType", "minPrice", "maxPrice")),
    SearchRule("searchOfferings", flexible=True),
    SearchRule("findByPriceBetween", ("minPrice", "maxPrice")),
    SearchRule("findByPriceLessThanEqual", ("maxPrice",)),
    SearchRule("findByPriceGreaterThanEqual", ("minPrice",)),
    SearchRule("findByAvailabilityGreaterThan", ("availability",)),
    SearchRule("findByIsMandatory", ("isMandatory",)),
    SearchRule("findByOfferingTypeIgnoreCase", ("offeringType",)),
    SearchRule("findByNameContainingIgnoreCase", ("name",)),
]

_PRICE_ID = re.compile(r"/offering-prices/(\d+)$")


def _check_offering_id(offering_id: int | str | None) -> None:
    if offering_id is None or str(offering_id).strip() in ("", "undefined", "null"):
        raise ValueError("Invalid offering ID")


def price_id_from_href(href: str | None) -> int | None:
    match = _PRICE_ID.search(href or "")
    return int(match.group(1)) if match else None


class OfferingsApi:
    resource = "offerings"
    prices_resource = "offering-prices"

    def __init__(self, client: HalClient):
        self.client = client

    async def list(self, **options: Any) -> dict:
        return await self.client.get_collection(self.resource, **options)

    async def get(self, offering_id: int | str) -> dict:
        return await self.client.get_resource(self.resource, offering_id)

    async def create(self, data: dict) -> dict:
        return await self.client.create(self.resource, data)

    async def update(self, offering_id: int | str, data: dict) -> dict:
        return await self.client.update(self.resource, offering_id, data)

    async def delete(self, offering_id: int | str) -> None:
        await self.client.delete(self.resource, offering_id)

    async def search(self, params: dict[str, Any]) -> dict:
        criteria = clean_criteria(params, OFFERING_CRITERIA)
        method, query = select_search(criteria, OFFERING_SEARCH_RULES)
        page = paging(params)
        if method is None:
            return await self.client.get_collection(self.resource, **page)
        return await self.client.search(self.resource, method, {**page, **query})

    # =========================================================================
    # OFFERING PRICES
    # =========================================================================

    async def list_prices(self, offering_id: int | str) -> list[dict]:
        """All price rules of an offering, each with ``id`` parsed from its self link."""
        _check_offering_id(offering_id)
        body = await self.client.search(
            self.prices_resource, "findByOfferingId", {"offeringId": offering_id},
        )
        prices = []
        for price in embedded(body, "offeringPrices"):
            if price.get("id") is None:
                price = {**price, "id": price_id_from_href(self_href(price))}
            prices.append(price)
        return prices

    async def get_price(self, price_id: int | str) -> dict:
        try:
            return await self.client.get_resource(self.prices_resource, price_id)
        except NotFoundError as e:
            raise NotFoundError(404, f"Offering price not found with id: {price_id}") from e

    async def create_price(self, offering_id: int | str, data: dict) -> dict:
        _check_offering_id(offering_id)
        payload = {**data, "offering": f"/api/offerings/{offering_id}"}
        return await self.client.create(self.prices_resource, payload)

    async def update_price(self, price_id: int | str, data: dict) -> dict:
        return await self.client.update(self.prices_resource, price_id, data)

    async def delete_price(self, price_id: int | str) -> None:
        try:
            await self.client.delete(self.prices_resource, price_id)
        except NotFoundError as e:
            raise NotFoundError(404, f"Offering price not found with id: {price_id}") from e

    async def active_prices(
        self,
        active: bool = True,
        page: int = 0,
        size: int = 20,
        sort: str | None = None,
    ) -> dict:
        return await self.client.search(
            self.prices_resource,
            "findByActive",
            {"active": active, "page": page, "size": size, "sort": sort},
        )
