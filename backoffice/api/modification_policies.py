"""Booking modification policies: fees and limits for changing a booking, per loyalty tier."""

from __future__ import annotations

from backoffice.api.client import HalClient
from backoffice.api.errors import NotFoundError
from backoffice.api.hal import embedded


class ModificationPoliciesApi:
    """The /api/v1/modification-policies controller. Deleting only deactivates a policy."""

    def __init__(self, client: HalClient):
        self.client = client

    def _url(self, suffix: str = "") -> str:
        return f"{self.client.base_url}/api/v1/modification-policies{suffix}"

    async def list(self) -> list[dict]:
        try:
            body = await self.client.request("GET", self._url())
        except NotFoundError:
            return []
        if isinstance(body, list):
            return body
        return embedded(body, "modificationPolicyResponses") or embedded(body, "modificationPolicyResponseList")

    async def get(self, policy_id: int | str) -> dict:
        return await self.client.request("GET", self._url(f"/{policy_id}"))

    async def for_booking(self, booking_id: int | str) -> dict | None:
        """The policy that applies to a booking's customer tier."""
        try:
            return await self.client.request("GET", self._url(f"/booking/{booking_id}"))
        except NotFoundError:
            return None

    async def create(self, data: dict) -> dict:
        return await self.client.request("POST", self._url(), json_body=data)

    async def update(self, policy_id: int | str, data: dict) -> dict:
        return await self.client.request("PUT", self._url(f"/{policy_id}"), json_body=data)

    async def delete(self, policy_id: int | str) -> None:
        await self.client.request("DELETE", self._url(f"/{policy_id}"))
