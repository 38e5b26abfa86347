"""Rental packages: CRUD, search, included offerings, banner image."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from backoffice.api.client import HalClient
from backoffice.api.errors import NotFoundError
from backoffice.api.hal import entity_uri
from backoffice.api.search import SearchRule, clean_criteria, paging, select_search

logger = logging.getLogger(__name__)

PACKAGE_CRITERIA = (
    "name",
    "description",
    "modifierType",
    "minModifier",
    "maxModifier",
    "allowDiscountOnModifier",
    "minRentalDays",
    "validDate",
)

PACKAGE_SEARCH_RULES = [
    SearchRule(
        "findByNameContainingIgnoreCaseAndModifierTypeIgnoreCaseAndPriceModifierBetween",
        ("name", "modifierType", "minModifier", "maxModifier"),
    ),
    SearchRule("findValidPackagesByModifierType", ("modifierType", "validDate"), {"validDate": "currentDate"}),
    SearchRule("findByNameContainingIgnoreCaseAndModifierTypeIgnoreCase", ("name", "modifierType")),
    SearchRule("findByModifierTypeIgnoreCaseAndPriceModifierBetween", ("modifierType", "minModifier", "maxModifier")),
    SearchRule("searchPackages", flexible=True),
    SearchRule("findValidPackages", ("validDate",), {"validDate": "currentDate"}),
    SearchRule("findByPriceModifierBetween", ("minModifier", "maxModifier")),
    SearchRule("findByPriceModifierLessThanEqual", ("maxModifier",)),
    SearchRule("findByPriceModifierGreaterThanEqual", ("minModifier",)),
    SearchRule("findByMinRentalDaysLessThanEqual", ("minRentalDays",), {"minRentalDays": "days"}),
    SearchRule("findByAllowDiscountOnModifier", ("allowDiscountOnModifier",)),
    SearchRule("findByModifierTypeIgnoreCase", ("modifierType",)),
    SearchRule("findByNameContainingIgnoreCase", ("name",)),
]


class PackagesApi:
    resource = "packages"

    def __init__(self, client: HalClient):
        self.client = client

    async def list(self, **options: Any) -> dict:
        return await self.client.get_collection(self.resource, **options)

    async def get(self, package_id: int | str) -> dict:
        return await self.client.get_resource(self.resource, package_id)

    async def create(self, data: dict) -> dict:
        return await self.client.create(self.resource, data)

    async def update(self, package_id: int | str, data: dict) -> dict:
        return await self.client.update(self.resource, package_id, data)

    async def delete(self, package_id: int | str) -> None:
        await self.client.delete(self.resource, package_id)

    async def search(self, params: dict[str, Any]) -> dict:
        criteria = clean_criteria(params, PACKAGE_CRITERIA)
        method, query = select_search(criteria, PACKAGE_SEARCH_RULES)
        page = paging(params)
        if method is None:
            return await self.client.get_collection(self.resource, **page)
        logger.debug(f"Package search via {method}: {query}")
        return await self.client.search(self.resource, method, {**page, **query})

    # =========================================================================
    # INCLUDED OFFERINGS
    # =========================================================================

    async def offerings(self, package_id: int | str) -> Any:
        return await self.client.request("GET", f"{self.client.endpoint(self.resource)}/{package_id}/offerings")

    async def set_offerings(self, package_id: int | str, offering_ids: list[int]) -> None:
        """Replace the package's included offerings; an empty list clears them."""
        if not offering_ids:
            await self.client.remove_association(self.resource, package_id, "offerings")
            return
        uris = [entity_uri(self.client.base_url, "offerings", oid) for oid in offering_ids]
        await self.client.add_association(self.resource, package_id, "offerings", uris)

    # =========================================================================
    # BANNER IMAGE
    # =========================================================================

    def _image_url(self, package_id: int | str) -> str:
        return f"{self.client.base_url}/api/packages/{package_id}/image"

    async def image(self, package_id: int | str) -> dict | None:
        try:
            return await self.client.request("GET", self._image_url(package_id))
        except NotFoundError:
            return None

    async def upload_image(
        self,
        package_id: int | str,
        filename: str,
        content: bytes,
        content_type: str,
    ) -> dict:
        form = aiohttp.FormData()
        form.add_field("file", content, filename=filename, content_type=content_type)
        return await self.client.upload(self._image_url(package_id), form)

    async def delete_image(self, package_id: int | str) -> None:
        await self.client.request("DELETE", self._image_url(package_id))
