"""Fleet vehicles: CRUD, search, status changes, photos and their pricings."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from backoffice.api.client import HalClient
from backoffice.api.errors import NotFoundError
from backoffice.api.hal import embedded
from backoffice.api.search import SearchRule, clean_criteria, paging, select_search

logger = logging.getLogger(__name__)

VEHICLE_CRITERIA = (
    "status",
    "name",
    "make",
    "model",
    "licensePlate",
    "carType",
    "seaterCount",
    "minSeats",
    "maxSeats",
)

# Most specific first
VEHICLE_SEARCH_RULES = [
    SearchRule(
        "findByStatusAndMakeContainingIgnoreCaseAndModelContainingIgnoreCaseAndCarType",
        ("status", "make", "model", "carType"),
    ),
    SearchRule("findByStatusAndModelContainingIgnoreCaseAndCarType", ("status", "model", "carType")),
    SearchRule(
        "findByStatusAndMakeContainingIgnoreCaseAndModelContainingIgnoreCase", ("status", "make", "model"),
    ),
    SearchRule("findByStatusAndMakeContainingIgnoreCaseAndCarType", ("status", "make", "carType")),
    SearchRule(
        "findByStatusAndMakeContainingIgnoreCaseAndSeaterCountGreaterThanEqual", ("status", "make", "minSeats"),
    ),
    SearchRule("findByStatusAndCarTypeAndSeaterCountBetween", ("status", "carType", "minSeats", "maxSeats")),
    SearchRule("findByStatusAndCarTypeAndSeaterCountGreaterThanEqual", ("status", "carType", "minSeats")),
    SearchRule("findByStatusAndCarTypeAndSeaterCount", ("status", "carType", "seaterCount")),
    SearchRule("findByStatusAndCarType", ("status", "carType")),
    SearchRule("findByCarTypeAndSeaterCountBetween", ("carType", "minSeats", "maxSeats")),
    SearchRule("findByCarTypeAndSeaterCount", ("carType", "seaterCount")),
    SearchRule("findByStatusAndNameContainingIgnoreCase", ("status", "name")),
    SearchRule("findByStatusAndMakeContainingIgnoreCase", ("status", "make")),
    SearchRule("findByStatusAndSeaterCount", ("status", "seaterCount")),
    SearchRule("findBySeaterCountBetween", ("minSeats", "maxSeats")),
    SearchRule("findBySeaterCountGreaterThanEqual", ("minSeats",)),
    SearchRule("findBySeaterCount", ("seaterCount",)),
    SearchRule("findByCarType", ("carType",)),
    SearchRule("findByStatus", ("status",)),
    SearchRule("findByLicensePlateContainingIgnoreCase", ("licensePlate",)),
    SearchRule("findByNameContainingIgnoreCase", ("name",)),
    SearchRule("findByMakeContainingIgnoreCaseOrModelContainingIgnoreCase", ("make", "model")),
    SearchRule("findByMakeContainingIgnoreCase", ("make",)),
    SearchRule("findByModelContainingIgnoreCase", ("model",)),
]


class VehiclesApi:
    resource = "vehicles"

    def __init__(self, client: HalClient):
        self.client = client

    async def list(self, **options: Any) -> dict:
        return await self.client.get_collection(self.resource, **options)

    async def get(self, vehicle_id: int | str) -> dict:
        return await self.client.get_resource(self.resource, vehicle_id)

    async def create(self, data: dict) -> dict:
        return await self.client.create(self.resource, data)

    async def update(self, vehicle_id: int | str, data: dict) -> dict:
        return await self.client.update(self.resource, vehicle_id, data)

    async def delete(self, vehicle_id: int | str) -> None:
        await self.client.delete(self.resource, vehicle_id)

    async def set_status(self, vehicle_id: int | str, status: str) -> dict:
        """Partial update touching only ``status``."""
        return await self.client.patch(self.resource, vehicle_id, {"status": status})

    async def search(self, params: dict[str, Any]) -> dict:
        criteria = clean_criteria(params, VEHICLE_CRITERIA)
        method, query = select_search(criteria, VEHICLE_SEARCH_RULES)
        page = paging(params)
        if method is None:
            return await self.client.get_collection(self.resource, **page)
        logger.debug(f"Vehicle search via {method}: {query}")
        return await self.client.search(self.resource, method, {**page, **query})

    # =========================================================================
    # PHOTOS
    # =========================================================================

    def _images(self, vehicle_id: int | str, suffix: str = "") -> str:
        return f"{self.client.base_url}/api/vehicles/{vehicle_id}/images{suffix}"

    async def images(self, vehicle_id: int | str) -> list[dict]:
        """Photos of a vehicle, primary first; none yet is an empty list."""
        try:
            body = await self.client.request("GET", self._images(vehicle_id))
        except NotFoundError:
            return []
        images = embedded(body, "images")
        return sorted(images, key=lambda image: not image.get("isPrimary"))

    async def upload_image(
        self,
        vehicle_id: int | str,
        filename: str,
        content: bytes,
        content_type: str,
        description: str | None = None,
        is_primary: bool = False,
    ) -> dict:
        form = aiohttp.FormData()
        form.add_field("file", content, filename=filename, content_type=content_type)
        if description:
            form.add_field("description", description)
        form.add_field("isPrimary", "true" if is_primary else "false")
        return await self.client.upload(self._images(vehicle_id, "/single"), form)

    async def delete_image(self, vehicle_id: int | str, image_id: int | str) -> None:
        await self.client.request("DELETE", self._images(vehicle_id, f"/{image_id}"))

    # =========================================================================
    # PRICINGS
    # =========================================================================

    async def pricings(
        self,
        vehicle_id: int | str,
        tags: list[str] | None = None,
        page: int = 0,
        size: int = 20,
    ) -> dict:
        """Pricing rules attached to a vehicle, newest validity first."""
        params: dict[str, Any] = {"vehicleId": vehicle_id, "page": page, "size": size, "sort": "validFrom,desc"}
        if tags:
            params["anyTag"] = ",".join(tags)
        return await self.client.request("GET", f"{self.client.base_url}/api/v1/pricings/search", params=params)
