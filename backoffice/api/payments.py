"""Manual payments recorded by staff against a booking, and payment search."""

import json
from typing import Any

import aiohttp

from backoffice.api.client import HalClient

PAYMENT_SEARCH_KEYS = (
    "bookingId",
    "paymentMethod",
    "referenceNumber",
    "paymentDateFrom",
    "paymentDateTo",
    "payerName",
    "status",
    "currency",
    "isManual",
    "isDeposit",
    "page",
    "size",
    "sort",
)


class PaymentsApi:

    def __init__(self, client: HalClient):
        self.client = client

    def _url(self, booking_id: int | str, suffix: str = "") -> str:
        return f"{self.client.base_url}/api/v1/bookings/{booking_id}/payments{suffix}"

    async def record(self, booking_id: int | str, request: dict) -> dict:
        return await self.client.request("POST", self._url(booking_id, "/manual"), json_body=request)

    async def record_with_receipt(
        self,
        booking_id: int | str,
        request: dict,
        filename: str,
        content: bytes,
        content_type: str,
    ) -> dict:
        """Record a payment and attach the receipt image in one multipart call."""
        form = aiohttp.FormData()
        form.add_field("payment", json.dumps(request), content_type="application/json")
        form.add_field("receipt", content, filename=filename, content_type=content_type)
        return await self.client.upload(self._url(booking_id, "/manual-with-receipt"), form)

    async def upload_receipt(
        self,
        booking_id: int | str,
        payment_id: int | str,
        filename: str,
        content: bytes,
        content_type: str,
    ) -> dict:
        form = aiohttp.FormData()
        form.add_field("file", content, filename=filename, content_type=content_type)
        return await self.client.upload(self._url(booking_id, f"/{payment_id}/receipt"), form)

    async def history(self, booking_id: int | str) -> list[dict]:
        body = await self.client.request("GET", self._url(booking_id))
        return body if isinstance(body, list) else []

    async def summary(self, booking_id: int | str) -> dict:
        return await self.client.request("GET", self._url(booking_id, "/summary"))

    async def complete(self, booking_id: int | str, payment_id: int | str) -> dict:
        return await self.client.request("PUT", self._url(booking_id, f"/{payment_id}/complete"))

    async def cancel(self, booking_id: int | str, payment_id: int | str, reason: str | None = None) -> dict:
        return await self.client.request(
            "PUT",
            self._url(booking_id, f"/{payment_id}/cancel"),
            params={"reason": reason or None},
        )

    # =========================================================================
    # SEARCH
    # =========================================================================

    async def search(self, params: dict[str, Any]) -> dict:
        query = {
            k: v for k, v in params.items()
            if k in PAYMENT_SEARCH_KEYS and v not in (None, "")
        }
        return await self.client.request(
            "GET", f"{self.client.base_url}/api/v1/payments/search", params=query,
        )

    async def get(self, payment_id: int | str) -> dict:
        return await self.client.request("GET", f"{self.client.base_url}/api/v1/payments/{payment_id}")
