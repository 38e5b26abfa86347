"""Tests for view helpers: formatting, audit trail, payment dialog, offering selector, pagination."""

from backoffice.web import presenters


# =========================================================================
# FORMATTING
# =========================================================================


def test_format_currency():
    assert presenters.format_currency(1234.5) == "RM1,234.50"
    assert presenters.format_currency("-20", "USD") == "-$20.00"
    assert presenters.format_currency(5, "JPY") == "JPY 5.00"
    assert presenters.format_currency(None) == "N/A"
    assert presenters.format_currency("abc") == "N/A"


def test_format_dates():
    assert presenters.format_date("2024-03-05T10:30:00") == "March 5, 2024"
    assert presenters.format_datetime("2024-03-05T14:30:00") == "March 5, 2024, 02:30 PM"
    assert presenters.format_date(None) == "N/A"
    assert presenters.format_date("not a date") == "Invalid Date"


def test_text_helpers():
    assert presenters.truncate("x" * 70, 60) == "x" * 60 + "..."
    assert presenters.truncate(None) == ""
    assert presenters.format_field_name("startDate") == "Start Date"
    assert presenters.humanize("PARTIALLY_REFUNDED") == "Partially Refunded"


def test_proxied_image_url():
    assert presenters.proxied_image_url("http://api:8082/files/a b.jpg") == \
        "/api/proxy-image?url=http%3A%2F%2Fapi%3A8082%2Ffiles%2Fa%20b.jpg"
    assert presenters.proxied_image_url("/static/logo.png") == "/static/logo.png"
    assert presenters.proxied_image_url("data:image/png;base64,AAA") == "data:image/png;base64,AAA"
    assert presenters.proxied_image_url("") is None


def test_badges():
    assert presenters.booking_badge("NO_SHOW") == {"label": "No Show", "color": "red"}
    assert presenters.payment_badge(None) == {"label": "Unknown", "color": "gray"}
    assert presenters.settlement_badge("CLOSED")["label"] == "🔒 Closed"
    assert presenters.transaction_label("FUEL_CHARGE") == "⛽ Fuel Charge"
    assert presenters.transaction_label("MYSTERY_FEE") == "Mystery Fee"
    assert presenters.payment_method_label("CRYPTO") == "💰 CRYPTO"


# =========================================================================
# AUDIT TRAIL
# =========================================================================


def test_payment_reason_overrides_change_type():
    entry = presenters.audit_entry({"changeType": "MODIFIED", "changeReason": "Deposit received via cash"})
    assert entry["label"] == "Payment Received"
    assert entry["color"] == "emerald"


def test_modification_entry_pricing_rows():
    entry = presenters.audit_entry({
        "id": 3,
        "changeType": "MODIFIED",
        "changeReason": "Extended by two days",
        "modifiedAt": "2024-04-01T09:00:00",
        "modifiedBy": "ops.lead",
        "changedFields": ["endDate", "currentAmount"],
        "previousAmount": 300,
        "newAmount": 420,
        "priceDifference": 120,
        "modificationFee": 15,
        "previousState": {"startDate": "2024-04-01", "endDate": "2024-04-03", "currentAmount": 300,
                          "vehicles": [{"vehicleName": "Myvi"}]},
        "newState": {"startDate": "2024-04-01", "endDate": "2024-04-05", "currentAmount": 420,
                     "vehicles": [{"vehicleName": "Myvi"}]},
    })
    assert entry["label"] == "Modified"
    assert entry["changed_fields"] == ["End Date", "Current Amount"]
    assert entry["pricing"] == [
        ("Previous Amount", "RM300.00"),
        ("New Amount", "RM420.00"),
        ("Price Difference", "+RM120.00"),
        ("Modification Fee", "RM15.00"),
    ]
    assert entry["total_adjustment"] == "+RM135.00"
    assert entry["before"]["dates"] == "April 1, 2024 - April 3, 2024"
    assert entry["after"]["vehicle"] == "Myvi"


def test_unknown_change_type_and_single_snapshot():
    entry = presenters.audit_entry({"changeType": "TELEPORTED", "newState": {"startDate": "2024-01-01"}})
    assert entry["label"] == "Unknown"
    assert entry["before"] is None and entry["after"] is None
    assert entry["total_adjustment"] is None


# =========================================================================
# MANUAL PAYMENT DIALOG
# =========================================================================


def test_payment_dialog_for_open_booking():
    dialog = presenters.payment_dialog(
        {"balanceDue": 150.0, "bookingTotal": 300, "totalPaid": 150}, "PENDING", guest_name="Ali",
    )
    assert dialog["title"] == "Record Manual Payment"
    assert dialog["amount"] == "150.00"
    assert dialog["payer_name"] == "Ali"
    assert dialog["default_transaction_type"] == "ADVANCE_PAYMENT"
    assert not dialog["is_confirmed"]
    assert "DEPOSIT_RETURN" not in [t.value for t in dialog["transaction_types"]]


def test_payment_dialog_for_completed_booking():
    dialog = presenters.payment_dialog({"balanceDue": 0, "bookingStatus": "COMPLETED"}, None)
    assert dialog["title"] == "Add Post-Completion Charge"
    assert dialog["submit_label"] == "Add Charge"
    assert dialog["amount"] == ""
    assert dialog["default_transaction_type"] == "FINAL_SETTLEMENT"
    assert {t.category for t in dialog["transaction_types"]} == {"post-completion"}


def test_exceeds_balance():
    assert presenters.exceeds_balance(200, 150.0)
    assert not presenters.exceeds_balance(150, 150.0)
    assert not presenters.exceeds_balance(999, None)
    assert not presenters.exceeds_balance("abc", 10)
    assert not presenters.exceeds_balance(50, 0)
    assert not presenters.exceeds_balance(50, -20.0)


def test_payment_toast_prefers_backend_message():
    assert presenters.payment_toast({"message": "Booking confirmed"}, 50, False)["message"] == "Booking confirmed"
    toast = presenters.payment_toast({}, 50, True)
    assert toast["title"] == "Charge Added"
    assert toast["message"] == "Charge of RM50.00 recorded successfully"


# =========================================================================
# OFFERING SELECTOR
# =========================================================================

OFFERINGS = [
    {"id": 1, "name": "GPS Navigator", "description": "Turn-by-turn", "offeringType": "GPS"},
    {"id": 2, "name": "Baby Seat", "description": "For infants", "offeringType": "CHILD_SEAT"},
    {"id": 3, "name": "Full Cover", "description": "Zero excess", "offeringType": "INSURANCE"},
]


def test_offering_selector_filters_and_splits():
    state = presenters.offering_selector(OFFERINGS, [2], search="seat")
    assert [o["id"] for o in state["selected"]] == [2]
    assert state["available"] == []
    assert state["label"] == "1 selected"

    state = presenters.offering_selector(OFFERINGS, [], search="insurance")
    assert [o["id"] for o in state["available"]] == [3]
    assert state["label"] == "Select offerings..."

    assert presenters.offering_selector(OFFERINGS, [], search="helicopter")["empty"]


def test_toggle_selection():
    assert presenters.toggle_selection([1, 2], 2) == [1]
    assert presenters.toggle_selection([1], 3) == [1, 3]


# =========================================================================
# PAGINATION
# =========================================================================


def test_pagination_window():
    pages = presenters.pagination({"totalPages": 10, "number": 5, "totalElements": 200})
    assert [p["number"] for p in pages["pages"]] == [3, 4, 5, 6, 7]
    assert pages["prev"] == 4 and pages["next"] == 6
    assert pages["total_elements"] == 200


def test_pagination_clamps_and_handles_empty():
    pages = presenters.pagination({})
    assert pages["total_pages"] == 1
    assert not pages["has_prev"] and not pages["has_next"]

    pages = presenters.pagination({"totalPages": 3, "number": 9})
    assert pages["current"] == 2
    assert pages["next"] is None


# =========================================================================
# PRICING
# =========================================================================


def test_pricing_breakdown_lines_and_totals():
    summary = {
        "vehicleRentals": [{"vehicleName": "Myvi", "days": 3, "amount": 300}],
        "packageSummary": {"packageName": "Weekend"},
        "packageDiscountAmount": 30,
        "offerings": [{"offeringName": "Child seat", "quantity": 2, "totalPrice": 40}],
        "subtotal": 310,
        "discounts": [{"discountCode": "SUMMER10", "discountAmount": 31}],
        "taxRate": 6,
        "taxAmount": 16.74,
        "grandTotal": 295.74,
        "totalDeposit": 100,
        "dueAtBooking": 50,
        "dueAtPickup": 245.74,
    }

    breakdown = presenters.pricing_breakdown(summary)

    assert [(line["label"], line["amount"]) for line in breakdown["lines"]] == [
        ("Myvi × 3 days", "RM300.00"),
        ("Package Weekend", "-RM30.00"),
        ("Child seat × 2", "RM40.00"),
        ("Subtotal", "RM310.00"),
        ("Discount SUMMER10", "-RM31.00"),
        ("Tax (6%)", "RM16.74"),
    ]
    assert breakdown["grand_total"] == "RM295.74"
    assert breakdown["deposit"] == "RM100.00"
    assert breakdown["due_at_pickup"] == "RM245.74"
    assert breakdown["calculated_at"] is None


def test_pricing_breakdown_empty_summary():
    assert presenters.pricing_breakdown(None) is None
    assert presenters.pricing_breakdown({}) is None


def test_snapshot_rates():
    rows = presenters.snapshot_rates({"vehicleSnapshots": [{
        "vehicleId": 4, "baseRate": 120, "rateType": "DAILY", "numberOfDays": 2,
        "totalAmount": 240, "depositAmount": 50,
    }]})
    assert rows == [{
        "vehicle": "#4", "rate": "RM120.00 Daily", "days": 2, "total": "RM240.00", "deposit": "RM50.00",
    }]
    assert presenters.snapshot_rates(None) == []
