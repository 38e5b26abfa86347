"""Vehicle pricing rules and pricing tags."""

from __future__ import annotations

import logging
from typing import Any

from backoffice.api.client import HalClient
from backoffice.api.errors import ApiError
from backoffice.api.hal import embedded

logger = logging.getLogger(__name__)


class PricingsApi:
    """Pricings are written through /api/v1/pricings, which understands tagNames."""

    resource = "pricings"

    def __init__(self, client: HalClient):
        self.client = client

    async def list(self, **options: Any) -> dict:
        return await self.client.get_collection(self.resource, **options)

    async def get(self, pricing_id: int | str) -> dict:
        return await self.client.get_resource(self.resource, pricing_id)

    async def create(self, data: dict) -> dict:
        return await self.client.create(self.resource, data)

    async def update(self, pricing_id: int | str, data: dict) -> dict:
        return await self.client.update(self.resource, pricing_id, data)

    async def delete(self, pricing_id: int | str) -> None:
        await self.client.delete(self.resource, pricing_id)

    async def tags(self, search: str | None = None) -> list[str]:
        """Names of active pricing tags, optionally filtered (case-insensitive)."""
        try:
            body = await self.client.get_collection("pricing-tags", size=100, sort="name,asc")
        except ApiError as e:
            logger.warning(f"Failed to fetch pricing tags: {e.message}")
            return []
        tags = embedded(body, "pricingTags") or embedded(body, "pricing-tags")
        needle = (search or "").strip().lower()
        return [
            tag["name"]
            for tag in tags
            if tag.get("active") and tag.get("name") and needle in tag["name"].lower()
        ]
