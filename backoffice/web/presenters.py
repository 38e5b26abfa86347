"""
View helpers shared by routes and templates.

Formatting filters, the booking audit trail, the manual-payment dialog
state, the offering multi-select and pagination. Everything here is pure;
the routes fetch, these shape.
"""

import re
from datetime import datetime
from typing import Any
from urllib.parse import quote

from backoffice.models import (
    PAYMENT_METHODS,
    available_transaction_types,
    default_transaction_type,
    is_booking_completed,
    is_booking_confirmed,
    payment_method_info,
    payment_status_color,
    settlement_status_info,
    transaction_type_info,
)

CURRENCY_SYMBOLS = {
    "MYR": "RM",
    "USD": "$",
    "SGD": "S$",
    "EUR": "€",
    "GBP": "£",
    "IDR": "Rp",
    "THB": "฿",
}


# =========================================================================
# FORMATTING
# =========================================================================

def format_currency(amount: Any, currency: str = "MYR") -> str:
    if amount is None or amount == "":
        return "N/A"
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return "N/A"
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"


def _parse(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    text = str(value)
    if re.fullmatch(r"\d+(\.\d+)?", text):
        return datetime.fromtimestamp(float(text))
    return datetime.fromisoformat(text.replace("Z", "+00:00"))


def format_date(value: Any) -> str:
    if not value:
        return "N/A"
    try:
        dt = _parse(value)
    except (ValueError, OverflowError, OSError):
        return "Invalid Date"
    return f"{dt:%B} {dt.day}, {dt.year}"


def format_datetime(value: Any) -> str:
    if not value:
        return "N/A"
    try:
        dt = _parse(value)
    except (ValueError, OverflowError, OSError):
        return "Invalid Date"
    return f"{dt:%B} {dt.day}, {dt.year}, {dt:%I:%M %p}"


def truncate(text: str | None, length: int = 60) -> str:
    if not text:
        return ""
    if len(text) <= length:
        return text
    return text[:length] + "..."


def format_field_name(name: str) -> str:
    """camelCase → "Camel Case"."""
    spaced = re.sub(r"([A-Z])", r" \1", name).strip()
    return spaced[:1].upper() + spaced[1:]


def humanize(value: str | None) -> str:
    """ENUM_VALUE → "Enum Value"."""
    if not value:
        return ""
    return value.replace("_", " ").title()


def proxied_image_url(url: str | None) -> str | None:
    """Route absolute backend image URLs through /api/proxy-image."""
    if not url:
        return None
    if url.startswith("/") or url.startswith("data:"):
        return url
    return f"/api/proxy-image?url={quote(url, safe='')}"


# =========================================================================
# BADGES
# =========================================================================

BOOKING_STATUS_COLORS = {
    "PENDING": "yellow",
    "CONFIRMED": "blue",
    "ACTIVE": "green",
    "IN_PROGRESS": "green",
    "COMPLETED": "gray",
    "CANCELLED": "red",
    "NO_SHOW": "red",
}


def booking_badge(status: str | None) -> dict:
    return {"label": humanize(status) or "Unknown", "color": BOOKING_STATUS_COLORS.get(status or "", "gray")}


VEHICLE_STATUS_COLORS = {
    "AVAILABLE": "green",
    "RENTED": "blue",
    "MAINTENANCE": "yellow",
    "RETIRED": "gray",
}


def vehicle_badge(status: str | None) -> dict:
    return {"label": humanize(status) or "Unknown", "color": VEHICLE_STATUS_COLORS.get(status or "", "gray")}


def payment_badge(status: str | None) -> dict:
    return {"label": humanize(status) or "Unknown", "color": payment_status_color(status)}


def settlement_badge(status: str | None) -> dict:
    info = settlement_status_info(status)
    return {"label": f"{info['icon']} {info['label']}", "color": info["color"], "title": info["description"]}


def transaction_label(value: str | None) -> str:
    info = transaction_type_info(value or "")
    return f"{info.icon} {info.label}" if info else humanize(value)


def payment_method_label(value: str | None) -> str:
    info = payment_method_info(value or "")
    return f"{info.icon} {info.label}"


# =========================================================================
# AUDIT TRAIL
# =========================================================================

CHANGE_TYPE_CONFIG = {
    "CREATED": {"label": "Created", "color": "blue", "icon": "✨"},
    "MODIFIED": {"label": "Modified", "color": "orange", "icon": "✏️"},
    "CANCELLED": {"label": "Cancelled", "color": "red", "icon": "✖"},
    "COMPLETED": {"label": "Completed", "color": "green", "icon": "✔"},
    "STATUS_CHANGED": {"label": "Status Changed", "color": "purple", "icon": "⚠"},
}

PAYMENT_RECEIVED_CONFIG = {"label": "Payment Received", "color": "emerald", "icon": "💲"}
UNKNOWN_CHANGE_CONFIG = {"label": "Unknown", "color": "gray", "icon": "🕘"}

_PAYMENT_REASON_WORDS = ("payment", "deposit", "debit")


def is_payment_entry(entry: dict) -> bool:
    reason = (entry.get("changeReason") or "").lower()
    return any(word in reason for word in _PAYMENT_REASON_WORDS)


def _snapshot(state: dict | None, currency: str) -> dict | None:
    if not state:
        return None
    vehicles = state.get("vehicles") or []
    return {
        "dates": f"{format_date(state.get('startDate'))} - {format_date(state.get('endDate'))}",
        "amount": format_currency(state.get("currentAmount"), currency),
        "vehicle": vehicles[0].get("vehicleName") if vehicles else None,
    }


def audit_entry(entry: dict, currency: str = "MYR") -> dict:
    """Everything the history timeline needs for one BookingHistory record."""
    if is_payment_entry(entry):
        config = PAYMENT_RECEIVED_CONFIG
    else:
        config = CHANGE_TYPE_CONFIG.get(entry.get("changeType"), UNKNOWN_CHANGE_CONFIG)

    difference = entry.get("priceDifference")
    fee = entry.get("modificationFee")

    pricing = []
    if entry.get("previousAmount") is not None:
        pricing.append(("Previous Amount", format_currency(entry["previousAmount"], currency)))
    if entry.get("newAmount") is not None:
        pricing.append(("New Amount", format_currency(entry["newAmount"], currency)))
    if difference is not None and difference != 0:
        sign = "+" if difference > 0 else ""
        pricing.append(("Price Difference", f"{sign}{format_currency(difference, currency)}"))
    if fee is not None and fee > 0:
        pricing.append(("Modification Fee", format_currency(fee, currency)))

    total_adjustment = None
    if difference is not None and fee is not None and (difference != 0 or fee > 0):
        total_adjustment = f"+{format_currency((difference or 0) + (fee or 0), currency)}"

    before = _snapshot(entry.get("previousState"), currency)
    after = _snapshot(entry.get("newState"), currency)

    return {
        "id": entry.get("id"),
        "label": config["label"],
        "color": config["color"],
        "icon": config["icon"],
        "change_type": entry.get("changeType"),
        "reason": entry.get("changeReason"),
        "modified_at": format_datetime(entry.get("modifiedAt") or entry.get("changedAt")),
        "modified_by": entry.get("modifiedBy"),
        "changed_fields": [format_field_name(f) for f in entry.get("changedFields") or []],
        "pricing": pricing,
        "total_adjustment": total_adjustment,
        "before": before if before and after else None,
        "after": after if before and after else None,
    }


# =========================================================================
# BOOKING PRICING
# =========================================================================

def _first(record: dict, *keys: str) -> Any:
    """The first of ``keys`` the backend filled in (it renames fields between versions)."""
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def pricing_breakdown(summary: dict | None, currency: str = "MYR") -> dict | None:
    """Line items and totals of a pricing summary, formatted for a receipt-style table."""
    if not summary:
        return None
    currency = summary.get("currency") or currency

    def money(amount: Any) -> str:
        return format_currency(amount or 0, currency)

    lines = []
    for rental in summary.get("vehicleRentals") or []:
        days = _first(rental, "days", "numberOfDays", "totalDays")
        label = rental.get("vehicleName") or "Vehicle"
        if days:
            label += f" × {days} day{'' if days == 1 else 's'}"
        lines.append({"label": label, "amount": money(_first(rental, "amount", "subtotal"))})

    if summary.get("packageDiscountAmount"):
        name = (summary.get("packageSummary") or {}).get("packageName") or ""
        lines.append({"label": f"Package {name}".strip(), "amount": money(-summary["packageDiscountAmount"])})

    for offering in summary.get("offerings") or []:
        lines.append({
            "label": f"{offering.get('offeringName') or 'Add-on'} × {offering.get('quantity') or 1}",
            "amount": money(_first(offering, "amount", "totalPrice")),
        })

    lines.append({"label": "Subtotal", "amount": money(summary.get("subtotal")), "subtotal": True})

    for discount in summary.get("discounts") or []:
        lines.append({"label": f"Discount {discount.get('discountCode') or ''}".strip(),
                      "amount": money(-(discount.get("discountAmount") or 0))})
    loyalty = summary.get("loyaltyDiscount") or {}
    if loyalty.get("discountAmount"):
        lines.append({"label": "Loyalty discount", "amount": money(-loyalty["discountAmount"])})

    if summary.get("taxAmount"):
        rate = summary.get("taxRate")
        lines.append({"label": f"Tax ({float(rate):g}%)" if rate else "Tax", "amount": money(summary["taxAmount"])})
    if summary.get("serviceFeeAmount"):
        lines.append({"label": "Service fee", "amount": money(summary["serviceFeeAmount"])})

    return {
        "lines": lines,
        "grand_total": money(summary.get("grandTotal")),
        "deposit": money(_first(summary, "totalDepositAmount", "totalDeposit")),
        "due_at_booking": money(summary.get("dueAtBooking")),
        "due_at_pickup": money(summary.get("dueAtPickup")),
        "calculated_at": format_datetime(summary["calculatedAt"]) if summary.get("calculatedAt") else None,
    }


def snapshot_rates(snapshots: dict | None, currency: str = "MYR") -> list[dict]:
    """The vehicle rates frozen into a booking when it was priced."""
    rows = []
    for snap in (snapshots or {}).get("vehicleSnapshots") or []:
        rows.append({
            "vehicle": snap.get("vehicleName") or f"#{snap.get('vehicleId')}",
            "rate": f"{format_currency(snap.get('baseRate'), currency)} {humanize(snap.get('rateType'))}".strip(),
            "days": snap.get("numberOfDays"),
            "total": format_currency(snap.get("totalAmount"), currency),
            "deposit": format_currency(snap.get("depositAmount"), currency),
        })
    return rows


# =========================================================================
# MANUAL PAYMENT DIALOG
# =========================================================================

def payment_dialog(
    summary: dict | None,
    booking_status: str | None,
    guest_name: str | None = None,
    balance_due: float | None = None,
) -> dict:
    """Initial state of the record-payment dialog for a booking."""
    summary = summary or {}
    status = booking_status or summary.get("bookingStatus")
    if balance_due is None:
        balance_due = summary.get("balanceDue")
    completed = is_booking_completed(status)

    amount = ""
    if balance_due is not None and balance_due > 0:
        amount = f"{float(balance_due):.2f}"

    return {
        "booking_status": status,
        "is_confirmed": is_booking_confirmed(status),
        "is_completed": completed,
        "title": "Add Post-Completion Charge" if completed else "Record Manual Payment",
        "submit_label": "Add Charge" if completed else "Record Payment",
        "transaction_types": available_transaction_types(status),
        "default_transaction_type": default_transaction_type(status),
        "payment_methods": PAYMENT_METHODS,
        "default_payment_method": "CASH",
        "amount": amount,
        "payer_name": guest_name or "",
        "balance_due": balance_due,
        "booking_total": summary.get("bookingTotal"),
        "total_paid": summary.get("totalPaid"),
    }


def exceeds_balance(amount: Any, balance_due: float | None) -> bool:
    """True when a payment would overpay the booking (a warning, not an error)."""
    if balance_due is None:
        return False
    try:
        balance = float(balance_due)
        return balance > 0 and float(amount) > balance
    except (TypeError, ValueError):
        return False


def payment_toast(result: dict | None, amount: float, completed: bool, currency: str = "MYR") -> dict:
    kind = "Charge" if completed else "Payment"
    message = (result or {}).get("message") or f"{kind} of {format_currency(amount, currency)} recorded successfully"
    return {
        "kind": "success",
        "title": "Charge Added" if completed else "Payment Recorded",
        "message": message,
    }


# =========================================================================
# OFFERING MULTI-SELECT
# =========================================================================

def offering_matches(offering: dict, search: str) -> bool:
    if not search:
        return True
    needle = search.lower()
    haystack = (
        offering.get("name") or "",
        offering.get("description") or "",
        offering.get("offeringType") or "",
    )
    return any(needle in field.lower() for field in haystack)


def toggle_selection(selected_ids: list[int], offering_id: int) -> list[int]:
    if offering_id in selected_ids:
        return [i for i in selected_ids if i != offering_id]
    return [*selected_ids, offering_id]


def selected_label(count: int) -> str:
    if count == 0:
        return "Select offerings..."
    return f"{count} selected"


def offering_selector(offerings: list[dict], selected_ids: list[int], search: str = "") -> dict:
    """Filtered offerings split into selected and available lists."""
    selected_set = set(selected_ids)
    matches = [o for o in offerings if offering_matches(o, search)]
    return {
        "search": search,
        "selected": [o for o in matches if o.get("id") in selected_set],
        "available": [o for o in matches if o.get("id") not in selected_set],
        "selected_ids": list(selected_ids),
        "label": selected_label(len(selected_set)),
        "empty": not matches,
    }


# =========================================================================
# PAGINATION
# =========================================================================

def pagination(page_info: dict, window: int = 2) -> dict:
    """Page links around the current page (0-based, like Spring Data)."""
    total = max(int(page_info.get("totalPages") or 0), 1)
    current = min(max(int(page_info.get("number") or 0), 0), total - 1)

    first = max(0, current - window)
    last = min(total - 1, current + window)
    pages = [{"number": n, "label": n + 1, "current": n == current} for n in range(first, last + 1)]

    return {
        "current": current,
        "total_pages": total,
        "total_elements": int(page_info.get("totalElements") or 0),
        "pages": pages,
        "has_prev": current > 0,
        "has_next": current < total - 1,
        "prev": current - 1 if current > 0 else None,
        "next": current + 1 if current < total - 1 else None,
    }
