"""Discounts and the packages/offerings they apply to."""

from __future__ import annotations

import logging
from typing import Any

from backoffice.api.client import HalClient
from backoffice.api.errors import ApiError
from backoffice.api.hal import embedded, entity_uri, id_from_href, self_href
from backoffice.api.search import SearchRule, clean_criteria, paging, select_search

logger = logging.getLogger(__name__)

DISCOUNT_CRITERIA = ("code", "type", "status", "applicableScope", "validDate")

DISCOUNT_SEARCH_RULES = [
    SearchRule("findValidDiscounts", ("validDate",), {"validDate": "currentDate"}),
    SearchRule("findByStatus", ("status",)),
    SearchRule("findByApplicableScope", ("applicableScope",), {"applicableScope": "scope"}),
    SearchRule("searchDiscounts", flexible=True),
    SearchRule("findByType", ("type",)),
    SearchRule("findByCodeContaining", ("code",)),
]


def parse_applicable_ids(ids: str | None) -> list[int]:
    """"5, 7,x" → [5, 7]."""
    if not ids:
        return []
    result = []
    for part in ids.split(","):
        try:
            result.append(int(part.strip()))
        except ValueError:
            continue
    return result


def format_applicable_ids(ids: list[int]) -> str:
    return ",".join(str(i) for i in ids)


def _linked_ids(body: Any, key: str) -> list[int]:
    if isinstance(body, dict):
        items = embedded(body, key)
    elif isinstance(body, list):
        items = body
    else:
        return []
    ids = []
    for item in items:
        item_id = item.get("id") or id_from_href(self_href(item))
        if item_id is not None:
            ids.append(int(item_id))
    return ids


class DiscountsApi:
    resource = "discounts"

    def __init__(self, client: HalClient):
        self.client = client

    async def list(self, **options: Any) -> dict:
        return await self.client.get_collection(self.resource, **options)

    async def get(self, discount_id: int | str) -> dict:
        return await self.client.get_resource(self.resource, discount_id)

    async def create(self, data: dict) -> dict:
        return await self.client.create(self.resource, data)

    async def update(self, discount_id: int | str, data: dict) -> dict:
        return await self.client.update(self.resource, discount_id, data)

    async def delete(self, discount_id: int | str) -> None:
        await self.client.delete(self.resource, discount_id)

    async def search(self, params: dict[str, Any]) -> dict:
        criteria = clean_criteria(params, DISCOUNT_CRITERIA)
        page = paging(params, sort="code,asc")
        if criteria == {"status": "ACTIVE"}:
            return await self.client.search(self.resource, "findActiveDiscounts", page)
        method, query = select_search(criteria, DISCOUNT_SEARCH_RULES)
        if method is None:
            return await self.client.get_collection(self.resource, **page)
        return await self.client.search(self.resource, method, {**page, **query})

    # =========================================================================
    # APPLICABLE PACKAGES / OFFERINGS
    # =========================================================================

    async def link_packages(self, discount_id: int | str, package_ids: list[int]) -> None:
        uris = [entity_uri(self.client.base_url, "packages", pid) for pid in package_ids]
        await self.client.add_association(self.resource, discount_id, "applicablePackages", uris)

    async def link_offerings(self, discount_id: int | str, offering_ids: list[int]) -> None:
        uris = [entity_uri(self.client.base_url, "offerings", oid) for oid in offering_ids]
        await self.client.add_association(self.resource, discount_id, "applicableOfferings", uris)

    async def unlink_all_packages(self, discount_id: int | str) -> None:
        await self.client.remove_association(self.resource, discount_id, "applicablePackages")

    async def unlink_all_offerings(self, discount_id: int | str) -> None:
        await self.client.remove_association(self.resource, discount_id, "applicableOfferings")

    async def sync_packages(self, discount_id: int | str, package_ids: list[int]) -> None:
        if package_ids:
            await self.link_packages(discount_id, package_ids)
        else:
            await self.unlink_all_packages(discount_id)

    async def sync_offerings(self, discount_id: int | str, offering_ids: list[int]) -> None:
        if offering_ids:
            await self.link_offerings(discount_id, offering_ids)
        else:
            await self.unlink_all_offerings(discount_id)

    async def linked_package_ids(self, discount_id: int | str) -> list[int]:
        return await self._fetch_linked(discount_id, "applicablePackages", "packages")

    async def linked_offering_ids(self, discount_id: int | str) -> list[int]:
        return await self._fetch_linked(discount_id, "applicableOfferings", "offerings")

    async def _fetch_linked(self, discount_id: int | str, association: str, key: str) -> list[int]:
        url = f"{self.client.endpoint(self.resource)}/{discount_id}/{association}"
        try:
            body = await self.client.request("GET", url)
        except ApiError as e:
            logger.warning(f"Failed to fetch {association} of discount {discount_id}: {e.message}")
            return []
        return _linked_ids(body, key)
