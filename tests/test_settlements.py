"""Tests for settlement summaries and the settlements API."""

from datetime import datetime

from backoffice.api import Backend
from backoffice.api.settlements import (
    completion_percentage,
    filter_by_date_range,
    group_by_category,
    has_outstanding_balance,
    is_fully_paid,
    recent,
    transaction_totals,
)

TRANSACTIONS = [
    {"id": 1, "type": "ADVANCE_PAYMENT", "amount": 300, "status": "COMPLETED", "transactionDate": "2024-05-01T10:00:00"},
    {"id": 2, "type": "DAMAGE_CHARGE", "amount": 120, "status": "COMPLETED", "transactionDate": "2024-05-09T10:00:00"},
    {"id": 3, "type": "PARTIAL_REFUND", "amount": 50, "status": "COMPLETED", "transactionDate": "2024-05-10T10:00:00Z"},
    {"id": 4, "type": "FUEL_CHARGE", "amount": 40, "status": "PENDING", "transactionDate": "2024-05-11T10:00:00"},
    {"id": 5, "type": "SOMETHING_NEW", "amount": 10, "status": "COMPLETED"},
]


def test_transaction_totals_count_completed_only():
    assert transaction_totals(TRANSACTIONS) == {
        "totalPayments": 310.0,
        "totalCharges": 120.0,
        "totalRefunds": 50.0,
        "net": 380.0,
    }


def test_group_by_category_puts_unknown_types_in_adjustment():
    groups = group_by_category(TRANSACTIONS)
    assert [t["id"] for t in groups["pre-rental"]] == [1]
    assert [t["id"] for t in groups["post-completion"]] == [2, 4]
    assert [t["id"] for t in groups["adjustment"]] == [3, 5]
    assert groups["loyalty"] == []


def test_balance_helpers():
    assert has_outstanding_balance({"balance": 20})
    assert not has_outstanding_balance({"balance": None})
    assert is_fully_paid({"balance": -5})


def test_completion_percentage():
    assert completion_percentage({"currentAmount": 400, "totalReceived": 300, "totalRefunds": 100}) == 50
    assert completion_percentage({"currentAmount": 100, "totalReceived": 150}) == 100
    assert completion_percentage({"currentAmount": 0}) == 100


def test_filter_by_date_range_keeps_undated():
    kept = filter_by_date_range(TRANSACTIONS, start=datetime(2024, 5, 5), end=datetime(2024, 5, 10, 12))
    assert [t["id"] for t in kept] == [2, 3, 5]


def test_recent_sorts_newest_first():
    assert [t["id"] for t in recent(TRANSACTIONS, limit=3)] == [4, 3, 2]


async def test_close_sends_notes_as_query(hal, fake_backend):
    fake_backend.respond("POST", "/api/settlements/booking/8/close", {"status": "CLOSED"})

    await Backend(hal).settlements.close(8, "Written off remainder")

    call = fake_backend.calls("POST", "/api/settlements/booking/8/close")[0]
    assert call["query"] == {"notes": "Written off remainder"}


async def test_reopen_without_reason_sends_no_query(hal, fake_backend):
    fake_backend.respond("POST", "/api/settlements/booking/8/reopen", {"status": "OPEN"})
    await Backend(hal).settlements.reopen(8)
    assert fake_backend.calls("POST", "/api/settlements/booking/8/reopen")[0]["query"] == {}


async def test_outstanding_total_tolerates_garbage(hal, fake_backend):
    fake_backend.respond("GET", "/api/settlements/outstanding/total", 1520.75)
    assert await Backend(hal).settlements.outstanding_total() == 1520.75

    fake_backend.respond("GET", "/api/settlements/outstanding/total", {"unexpected": True})
    assert await Backend(hal).settlements.outstanding_total() == 0.0
