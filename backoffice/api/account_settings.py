"""Per-account key/value settings stored on the backend (tax rate, currency, ...)."""

from __future__ import annotations

import math
import re

from backoffice.api.client import HalClient
from backoffice.api.errors import NotFoundError
from backoffice.api.hal import embedded

COMMON_SETTING_KEYS = {
    "TAX_RATE": "taxRate",
    "SERVICE_FEE_RATE": "serviceFeeRate",
    "CURRENCY": "currency",
    "DEFAULT_DEPOSIT_PERCENTAGE": "defaultDepositPercentage",
    "MAX_BOOKING_DAYS": "maxBookingDays",
    "MIN_BOOKING_DAYS": "minBookingDays",
    "CANCELLATION_WINDOW": "cancellationWindow",
    "LATE_RETURN_FEE": "lateReturnFee",
}

_SETTING_KEY = re.compile(r"^[a-zA-Z0-9_-]{1,100}$")


def is_valid_setting_key(key: str) -> bool:
    return bool(_SETTING_KEY.match(key or ""))


def is_valid_setting_value(value: str) -> bool:
    return len(value) <= 500


def parse_numeric_setting(value: str | None) -> float | None:
    if not value:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_boolean_setting(value: str | None) -> bool:
    if not value:
        return False
    return value.lower() == "true" or value == "1"


class AccountSettingsApi:

    def __init__(self, client: HalClient):
        self.client = client

    def _url(self, key: str | None = None) -> str:
        url = f"{self.client.base_url}/api/v1/account-settings"
        return f"{url}/{key}" if key else url

    async def list(self) -> list[dict]:
        body = await self.client.request("GET", self._url())
        if isinstance(body, list):
            return body
        return embedded(body, "accountSettingResponses")

    async def get(self, key: str) -> dict | None:
        try:
            return await self.client.request("GET", self._url(key))
        except NotFoundError:
            return None

    async def common(self) -> dict:
        return await self.client.request("GET", self._url("common"))

    async def create(self, key: str, value: str, description: str | None = None) -> dict:
        return await self.client.request(
            "POST",
            self._url(),
            json_body={"settingKey": key, "settingValue": value, "description": description},
        )

    async def update(self, key: str, value: str, description: str | None = None) -> dict:
        return await self.client.request(
            "PUT", self._url(key), json_body={"settingValue": value, "description": description},
        )

    async def delete(self, key: str) -> None:
        await self.client.request("DELETE", self._url(key))

    async def upsert(self, key: str, value: str, description: str | None = None) -> dict:
        existing = await self.get(key)
        if existing:
            return await self.update(key, value, description)
        return await self.create(key, value, description)

    async def setting_value(self, key: str, default: str | None = None) -> str | None:
        setting = await self.get(key)
        if setting and setting.get("settingValue") is not None:
            return setting["settingValue"]
        return default
