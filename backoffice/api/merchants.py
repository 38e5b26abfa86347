"""Merchant (Stripe Connect) onboarding."""

import logging

from backoffice.api.client import HalClient
from backoffice.api.errors import ApiError

logger = logging.getLogger(__name__)

ONBOARDED_STATUSES = {"COMPLETED", "VERIFIED"}


class MerchantsApi:

    def __init__(self, client: HalClient):
        self.client = client

    def _url(self, suffix: str) -> str:
        return f"{self.client.base_url}/api/merchants{suffix}"

    async def status(self) -> dict:
        return await self.client.request("GET", self._url("/status"))

    async def onboard(self, request: dict) -> dict:
        """Create the connected account; the response carries ``onboardingUrl``."""
        return await self.client.request("POST", self._url("/onboard"), json_body=request)

    async def refresh_onboarding_link(self) -> dict:
        return await self.client.request("POST", self._url("/refresh-onboarding"))

    async def dashboard_link(self) -> dict:
        return await self.client.request("GET", self._url("/dashboard"))

    async def recreate(self, request: dict) -> dict:
        """Start over after the Stripe account was deleted."""
        return await self.client.request("POST", self._url("/recreate"), json_body=request)

    async def has_completed_onboarding(self) -> bool:
        try:
            status = await self.status()
        except ApiError as e:
            logger.warning(f"Merchant status unavailable: {e.message}")
            return False
        return bool(status.get("success")) and status.get("onboardingStatus") in ONBOARDED_STATUSES

    async def can_accept_payments(self) -> bool:
        try:
            status = await self.status()
        except ApiError as e:
            logger.warning(f"Merchant status unavailable: {e.message}")
            return False
        return bool(status.get("success")) and bool(status.get("canAcceptPayments"))
