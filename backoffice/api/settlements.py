"""
Booking settlements.

The backend reconciles every transaction against a booking's settlement;
this module reads that state, closes/reopens it, and offers the small
summaries the settlement card and outstanding-balance views show.
"""

from datetime import datetime
from typing import Any

from backoffice.api.client import HalClient
from backoffice.models import (
    CHARGE_TRANSACTION_TYPES,
    REFUND_TRANSACTION_TYPES,
    TRANSACTION_CATEGORIES,
    transaction_type_info,
)


class SettlementsApi:

    def __init__(self, client: HalClient):
        self.client = client

    def _url(self, suffix: str) -> str:
        return f"{self.client.base_url}/api/settlements{suffix}"

    async def details(self, booking_id: int | str) -> dict:
        """``{summary, transactions, booking}`` for one booking."""
        return await self.client.request("GET", self._url(f"/booking/{booking_id}"))

    async def summary(self, booking_id: int | str) -> dict:
        return (await self.details(booking_id)).get("summary") or {}

    async def close(self, booking_id: int | str, notes: str | None = None) -> dict:
        return await self.client.request(
            "POST", self._url(f"/booking/{booking_id}/close"), params={"notes": notes or None},
        )

    async def reopen(self, booking_id: int | str, reason: str | None = None) -> dict:
        return await self.client.request(
            "POST", self._url(f"/booking/{booking_id}/reopen"), params={"reason": reason or None},
        )

    async def transactions(self, booking_id: int | str) -> list[dict]:
        body = await self.client.request("GET", self._url(f"/booking/{booking_id}/transactions"))
        return body if isinstance(body, list) else []

    async def post_completion_transactions(self, booking_id: int | str) -> list[dict]:
        body = await self.client.request(
            "GET", self._url(f"/booking/{booking_id}/transactions/post-completion"),
        )
        return body if isinstance(body, list) else []

    async def outstanding(self) -> list[dict]:
        body = await self.client.request("GET", self._url("/outstanding"))
        return body if isinstance(body, list) else []

    async def outstanding_total(self) -> float:
        body = await self.client.request("GET", self._url("/outstanding/total"))
        try:
            return float(body)
        except (TypeError, ValueError):
            return 0.0


# =========================================================================
# SUMMARY HELPERS
# =========================================================================

def has_outstanding_balance(summary: dict) -> bool:
    return (summary.get("balance") or 0) > 0


def is_fully_paid(summary: dict) -> bool:
    return (summary.get("balance") or 0) <= 0


def completion_percentage(summary: dict) -> int:
    current = summary.get("currentAmount") or 0
    if current <= 0:
        return 100
    paid = (summary.get("totalReceived") or 0) - (summary.get("totalRefunds") or 0)
    return min(100, round(paid / current * 100))


def group_by_category(transactions: list[dict]) -> dict[str, list[dict]]:
    """Bucket transactions by category; unknown types land in ``adjustment``."""
    groups: dict[str, list[dict]] = {category: [] for category in TRANSACTION_CATEGORIES}
    for tx in transactions:
        info = transaction_type_info(tx.get("type", ""))
        groups[info.category if info else "adjustment"].append(tx)
    return groups


def transaction_totals(transactions: list[dict]) -> dict[str, float]:
    """Totals over completed transactions only."""
    payments = charges = refunds = 0.0
    for tx in transactions:
        if tx.get("status") != "COMPLETED":
            continue
        amount = float(tx.get("amount") or 0)
        if tx.get("type") in CHARGE_TRANSACTION_TYPES:
            charges += amount
        elif tx.get("type") in REFUND_TRANSACTION_TYPES:
            refunds += amount
        else:
            payments += amount
    return {
        "totalPayments": payments,
        "totalCharges": charges,
        "totalRefunds": refunds,
        "net": payments + charges - refunds,
    }


def _tx_date(tx: dict) -> datetime | None:
    value: Any = tx.get("transactionDate")
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    # Compare naive; the backend sends local wall-clock times
    return parsed.replace(tzinfo=None)


def filter_by_date_range(
    transactions: list[dict],
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[dict]:
    result = []
    for tx in transactions:
        tx_date = _tx_date(tx)
        if tx_date is not None:
            if start and tx_date < start:
                continue
            if end and tx_date > end:
                continue
        result.append(tx)
    return result


def recent(transactions: list[dict], limit: int = 5) -> list[dict]:
    return sorted(
        transactions,
        key=lambda tx: _tx_date(tx) or datetime.min,
        reverse=True,
    )[:limit]
