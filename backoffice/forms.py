"""
Form parsing and validation.

Each validator takes the submitted form (an aiohttp MultiDict or a plain
dict of strings), returns the JSON payload for the backend, and raises
ValidationFailed with a field → message map when anything is off. Rules
mirror what the backend enforces so most mistakes never leave the page.
"""

import math
import re
from datetime import datetime
from typing import Any, Mapping
from urllib.parse import urlparse

from backoffice.api.account_settings import is_valid_setting_key, is_valid_setting_value
from backoffice.api.bookings import build_booking_request, validate_booking_request
from backoffice.api.errors import ValidationFailed
from backoffice.models import (
    FUEL_TYPES,
    PAYMENT_METHODS,
    TRANSMISSION_TYPES,
    CarType,
    ConsumableType,
    DiscountScope,
    DiscountType,
    InventoryMode,
    LoyaltyTier,
    OfferingRateType,
    OfferingType,
    PackageModifierType,
    PricingRateType,
    VehicleStatus,
    available_transaction_types,
    default_transaction_type,
    enum_values,
    is_booking_completed,
    is_booking_confirmed,
)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PASSWORD_COMPLEXITY_RE = re.compile(r"(?=.*\d)(?=.*[a-z])(?=.*[A-Z])(?=.*[@#$%^&+=!*()\-_.,?])")
PHONE_RE = re.compile(r"^\+?[1-9]\d{1,14}$")

MAX_RECEIPT_BYTES = 10 * 1024 * 1024


class FormReader:
    """Pulls typed values out of a submitted form, collecting errors as it goes."""

    def __init__(self, data: Mapping[str, Any]):
        self.data = data
        self.errors: dict[str, str] = {}

    def raw(self, name: str) -> str:
        value = self.data.get(name)
        return "" if value is None else str(value).strip()

    def error(self, name: str, message: str) -> None:
        self.errors.setdefault(name, message)

    def text(self, name: str, required: str | None = None, max_length: int | None = None) -> str | None:
        value = self.raw(name)
        if not value:
            if required:
                self.error(name, required)
            return None
        if max_length is not None and len(value) > max_length:
            self.error(name, f"Must be at most {max_length} characters")
        return value

    def number(
        self,
        name: str,
        label: str,
        minimum: float | None = None,
        maximum: float | None = None,
        required: bool = True,
        integer: bool = False,
        message: str | None = None,
    ) -> float | int | None:
        raw = self.raw(name)
        if not raw:
            if required:
                self.error(name, f"{label} is required")
            return None
        try:
            value = int(raw) if integer else float(raw)
        except ValueError:
            self.error(name, f"{label} must be a {'whole ' if integer else ''}number")
            return None
        # float() accepts "nan" and "inf", neither of which is valid JSON
        if not math.isfinite(value):
            self.error(name, f"{label} must be a number")
            return None
        if minimum is not None and value < minimum:
            self.error(name, message or f"{label} must be at least {_fmt(minimum)}")
        elif maximum is not None and value > maximum:
            self.error(name, message or f"{label} must be at most {_fmt(maximum)}")
        return value

    def boolean(self, name: str, default: bool = False) -> bool:
        if name not in self.data:
            return default
        return self.raw(name).lower() in ("on", "true", "1", "yes")

    def choice(self, name: str, choices: list[str], label: str, required: bool = True) -> str | None:
        value = self.raw(name)
        if not value:
            if required:
                self.error(name, f"{label} is required")
            return None
        if value not in choices:
            self.error(name, f"Invalid {label.lower()}")
            return None
        return value

    def id_list(self, name: str) -> list[int]:
        if hasattr(self.data, "getall"):
            values = self.data.getall(name, [])
        else:
            values = self.data.get(name) or []
            if isinstance(values, str):
                values = values.split(",")
        ids = []
        for value in values:
            try:
                ids.append(int(str(value).strip()))
            except ValueError:
                continue
        return ids

    def date(self, name: str, label: str, required: bool = True) -> str | None:
        raw = self.raw(name)
        if not raw:
            if required:
                self.error(name, f"{label} is required")
            return None
        if parse_datetime(raw) is None:
            self.error(name, f"{label} is not a valid date")
            return None
        return raw

    def date_order(
        self,
        start_name: str,
        end_name: str,
        start: str | None,
        end: str | None,
        message: str = "Valid to date must be after valid from date",
    ) -> None:
        if not start or not end:
            return
        start_dt, end_dt = parse_datetime(start), parse_datetime(end)
        if start_dt and end_dt and end_dt <= start_dt:
            self.error(end_name, message)

    def finish(self, payload: dict) -> dict:
        if self.errors:
            raise ValidationFailed(self.errors)
        return payload


def _fmt(number: float) -> str:
    return str(int(number)) if float(number).is_integer() else str(number)


def parse_datetime(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _compact(payload: dict) -> dict:
    """Drop keys whose value is None."""
    return {k: v for k, v in payload.items() if v is not None}


# =========================================================================
# AUTH + ONBOARDING
# =========================================================================

def login(data: Mapping[str, Any]) -> dict:
    form = FormReader(data)
    username = form.text("username", "Username is required")
    password = form.raw("password")
    if not password:
        form.error("password", "Password is required")
    return form.finish({"username": username, "password": password})


def registration(data: Mapping[str, Any]) -> dict:
    """Master account sign-up. The payload never contains confirmPassword."""
    form = FormReader(data)
    account_name = form.text("accountName", "Account name is required")
    username = form.text("username", "Username is required")

    email = form.text("email", "Email is required")
    if email and not EMAIL_RE.match(email):
        form.error("email", "Invalid email format")

    password = form.data.get("password") or ""
    if not password:
        form.error("password", "Password is required")
    elif len(password) < 8:
        form.error("password", "Password must be at least 8 characters")
    elif not PASSWORD_COMPLEXITY_RE.search(password):
        form.error(
            "password",
            "Password must contain at least one digit, one lowercase, one uppercase, "
            "and one special character (@#$%^&+=!*()-_.,?)",
        )

    confirm = form.data.get("confirmPassword") or ""
    if not confirm:
        form.error("confirmPassword", "Please confirm your password")
    elif password != confirm:
        form.error("confirmPassword", "Passwords do not match")

    first_name = form.text("firstName", "First name is required")
    last_name = form.text("lastName", "Last name is required")
    phone = form.text("phoneNumber", "Phone number is required")
    company = form.text("companyName", "Company name is required")
    country = form.text("country", "Country is required")

    return form.finish(_compact({
        "accountName": account_name,
        "accountDescription": form.text("accountDescription"),
        "username": username,
        "email": email,
        "password": password,
        "firstName": first_name,
        "lastName": last_name,
        "phoneNumber": phone,
        "companyName": company,
        "country": country,
    }))


def merchant_registration(data: Mapping[str, Any]) -> dict:
    form = FormReader(data)

    business_name = form.raw("businessName")
    if len(business_name) < 2:
        form.error("businessName", "Business name must be at least 2 characters")
    elif len(business_name) > 100:
        form.error("businessName", "Business name must be less than 100 characters")

    country = (form.raw("country") or "MY").upper()
    if len(country) != 2 or not country.isalpha():
        form.error("country", "Country must be a 2-letter code (e.g., US, MY)")

    phone = form.raw("phone")
    if phone and not PHONE_RE.match(phone):
        form.error("phone", "Invalid phone number format (use international format)")

    website = form.raw("website")
    if website:
        parsed = urlparse(website)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            form.error("website", "Invalid website URL")

    return form.finish(_compact({
        "businessAccountId": form.text("businessAccountId"),
        "businessName": business_name,
        "country": country,
        "phone": phone or None,
        "website": website or None,
        "email": form.text("email"),
    }))


def merchant_recreate(data: Mapping[str, Any]) -> dict:
    """Fresh onboarding after the connected account was deleted."""
    form = FormReader(data)
    country = (form.text("country", "Country is required") or "").upper()
    if country and (len(country) != 2 or not country.isalpha()):
        form.error("country", "Country must be a 2-letter code (e.g., US, MY)")

    email = form.text("email", "Email is required")
    if email and not EMAIL_RE.match(email):
        form.error("email", "Invalid email address")

    phone = form.raw("phone")
    if phone and not PHONE_RE.match(phone):
        form.error("phone", "Invalid phone number format (use international format)")

    return form.finish(_compact({
        "businessName": form.raw("businessName") or None,
        "country": country,
        "email": email,
        "phone": phone or None,
    }))


# =========================================================================
# CATALOG
# =========================================================================

def package(data: Mapping[str, Any]) -> dict:
    form = FormReader(data)
    name = form.text("name", "Name is required")
    price_modifier = form.number("priceModifier", "Price modifier", minimum=0, maximum=2)
    modifier_type = form.choice(
        "modifierType", enum_values(PackageModifierType), "Modifier type", required=False,
    )
    valid_from = form.date("validFrom", "Valid from date")
    valid_to = form.date("validTo", "Valid to date")
    form.date_order("validFrom", "validTo", valid_from, valid_to)
    min_days = form.number("minRentalDays", "Minimum rental days", minimum=1, integer=True)

    return form.finish(_compact({
        "name": name,
        "description": form.text("description"),
        "priceModifier": price_modifier,
        "modifierType": modifier_type or PackageModifierType.PERCENTAGE.value,
        "allowDiscountOnModifier": form.boolean("allowDiscountOnModifier"),
        "validFrom": valid_from,
        "validTo": valid_to,
        "minRentalDays": min_days,
        "offeringIds": form.id_list("offeringIds"),
    }))


def pricing(data: Mapping[str, Any]) -> dict:
    form = FormReader(data)
    base_rate = form.number("baseRate", "Base rate", minimum=0, message="Base rate must be positive")
    rate_type = form.choice("rateType", enum_values(PricingRateType), "Rate type")
    deposit = form.number("depositAmount", "Deposit amount", minimum=0)
    min_days = form.number("minimumRentalDays", "Minimum rental days", minimum=1, integer=True)

    never_expires = form.boolean("neverExpires")
    valid_from = form.date("validFrom", "Valid from date", required=not never_expires)
    valid_to = None if never_expires else form.date("validTo", "Valid to date")
    form.date_order("validFrom", "validTo", valid_from, valid_to)

    tags = [t.strip() for t in form.raw("tags").split(",") if t.strip()]

    return form.finish(_compact({
        "baseRate": base_rate,
        "rateType": rate_type,
        "depositAmount": deposit,
        "minimumRentalDays": min_days,
        "validFrom": valid_from,
        "validTo": valid_to,
        "isDefault": form.boolean("isDefault"),
        "tagNames": tags,
        "vehicleId": form.number("vehicleId", "Vehicle", required=False, integer=True),
    }))


def offering(data: Mapping[str, Any]) -> dict:
    form = FormReader(data)
    name = form.text("name", "Name is required")
    offering_type = form.choice("offeringType", enum_values(OfferingType), "Offering type")
    availability = form.number("availability", "Availability", minimum=0, integer=True)
    price = form.number("price", "Price", minimum=0)
    max_qty = form.number("maxQuantityPerBooking", "Max quantity per booking", minimum=1, integer=True)
    inventory_mode = form.choice("inventoryMode", enum_values(InventoryMode), "Inventory mode", required=False)
    consumable_type = form.choice("consumableType", enum_values(ConsumableType), "Consumable type", required=False)
    purchase_limit = form.number(
        "purchaseLimitPerBooking", "Purchase limit", minimum=1, required=False, integer=True,
    )

    return form.finish(_compact({
        "name": name,
        "offeringType": offering_type,
        "availability": availability,
        "price": price,
        "maxQuantityPerBooking": max_qty,
        "isMandatory": form.boolean("isMandatory"),
        "description": form.text("description"),
        "inventoryMode": inventory_mode,
        "consumableType": consumable_type,
        "purchaseLimitPerBooking": purchase_limit,
    }))


def offering_price(data: Mapping[str, Any]) -> dict:
    form = FormReader(data)
    base_rate = form.number("baseRate", "Base rate", minimum=0, message="Base rate must be positive")
    rate_type = form.choice("rateType", enum_values(OfferingRateType), "Rate type")
    priority = form.number("priority", "Priority", required=False, integer=True)
    min_qty = form.number("minimumQuantity", "Minimum quantity", minimum=1, required=False, integer=True)
    max_qty = form.number("maximumQuantity", "Maximum quantity", minimum=1, required=False, integer=True)
    if min_qty is not None and max_qty is not None and min_qty > max_qty:
        form.error("maximumQuantity", "Maximum quantity must be at least the minimum quantity")
    valid_from = form.date("validFrom", "Valid from date", required=False)
    valid_to = form.date("validTo", "Valid to date", required=False)
    form.date_order("validFrom", "validTo", valid_from, valid_to)

    return form.finish(_compact({
        "baseRate": base_rate,
        "rateType": rate_type,
        "priority": priority if priority is not None else 0,
        "active": form.boolean("active", default=True),
        "isDefault": form.boolean("isDefault"),
        "minimumQuantity": min_qty,
        "maximumQuantity": max_qty,
        "validFrom": valid_from,
        "validTo": valid_to,
        "description": form.text("description"),
    }))


def discount(data: Mapping[str, Any]) -> dict:
    form = FormReader(data)
    code = form.text("code", "Code is required", max_length=50)
    discount_type = form.choice("type", enum_values(DiscountType), "Discount type")
    value = form.number("value", "Value", minimum=0)
    if discount_type == DiscountType.PERCENTAGE.value and value is not None and value > 100:
        form.error("value", "Percentage discount cannot exceed 100")
    valid_from = form.date("validFrom", "Valid from date")
    valid_to = form.date("validTo", "Valid to date")
    form.date_order("validFrom", "validTo", valid_from, valid_to)
    min_amount = form.number("minBookingAmount", "Minimum booking amount", minimum=0)
    max_uses = form.number("maxUses", "Max uses", minimum=1, integer=True)
    scope = form.choice("applicableScope", enum_values(DiscountScope), "Applicable scope")

    return form.finish(_compact({
        "code": code,
        "type": discount_type,
        "value": value,
        "validFrom": valid_from,
        "validTo": valid_to,
        "minBookingAmount": min_amount,
        "maxUses": max_uses,
        "applicableScope": scope,
        "description": form.text("description"),
        "priority": form.number("priority", "Priority", required=False, integer=True),
        "autoApply": form.boolean("autoApply"),
        "requiresPromoCode": form.boolean("requiresPromoCode"),
        "combinableWithOtherDiscounts": form.boolean("combinableWithOtherDiscounts"),
        "firstTimeCustomerOnly": form.boolean("firstTimeCustomerOnly"),
        "applicablePackageIds": form.id_list("applicablePackageIds"),
        "applicableOfferingIds": form.id_list("applicableOfferingIds"),
    }))


# =========================================================================
# PAYMENTS
# =========================================================================

def manual_payment(data: Mapping[str, Any], booking_status: str | None) -> dict:
    """Manual payment / post-completion charge for a booking in ``booking_status``."""
    form = FormReader(data)
    amount = form.number("amount", "Amount")
    if amount is not None and amount <= 0:
        form.error("amount", "Amount must be greater than 0")

    method = form.choice("paymentMethod", [m.value for m in PAYMENT_METHODS], "Payment method")

    allowed = [t.value for t in available_transaction_types(booking_status)]
    allowed.append(default_transaction_type(booking_status))
    transaction_type = form.raw("transactionType") or default_transaction_type(booking_status)
    if transaction_type not in allowed:
        form.error("transactionType", "This transaction type is not available for the booking's status")

    confirmed = is_booking_confirmed(booking_status)

    return form.finish(_compact({
        "amount": amount,
        "paymentMethod": method,
        "transactionType": transaction_type,
        "isPostCompletion": is_booking_completed(booking_status),
        "referenceNumber": form.text("referenceNumber"),
        "paymentDate": form.text("paymentDate"),
        "notes": form.text("notes"),
        "payerName": form.text("payerName"),
        "isDeposit": form.boolean("isDeposit"),
        "autoConfirmBooking": form.boolean("autoConfirmBooking", default=True),
        "confirmBooking": None if confirmed else form.boolean("confirmBooking"),
    }))


def receipt_file(content_type: str | None, size: int) -> None:
    """Receipts must be images no larger than 10 MB."""
    if not (content_type or "").startswith("image/"):
        raise ValidationFailed({"receipt": "Please select an image file (JPEG, PNG, etc.)"})
    if size > MAX_RECEIPT_BYTES:
        raise ValidationFailed({"receipt": "Receipt image must be less than 10MB"})


def account_setting(data: Mapping[str, Any]) -> dict:
    form = FormReader(data)
    key = form.raw("settingKey")
    if not is_valid_setting_key(key):
        form.error("settingKey", "Key must be 1-100 letters, digits, underscores or hyphens")
    value = form.data.get("settingValue") or ""
    if not is_valid_setting_value(value):
        form.error("settingValue", "Value must be at most 500 characters")
    return form.finish(_compact({
        "settingKey": key,
        "settingValue": value,
        "description": form.text("description"),
    }))


# =========================================================================
# FLEET
# =========================================================================

def vehicle(data: Mapping[str, Any]) -> dict:
    form = FormReader(data)
    name = form.text("name", "Name is required", max_length=100)
    make = form.text("make", "Make is required", max_length=50)
    model = form.text("model", "Model is required", max_length=50)
    year = form.number("year", "Year", minimum=1900, maximum=datetime.now().year + 1, integer=True)
    license_plate = form.text("licensePlate", "License plate is required", max_length=20)
    odometer = form.number("odometer", "Odometer", minimum=0, integer=True)
    fuel_type = form.choice("fuelType", FUEL_TYPES, "Fuel type")
    transmission = form.choice("transmissionType", TRANSMISSION_TYPES, "Transmission type")
    status = form.choice("status", enum_values(VehicleStatus), "Status")
    car_type = form.choice("carType", enum_values(CarType), "Car type", required=False)
    seats = form.number("seaterCount", "Seats", minimum=1, maximum=60, required=False, integer=True)

    return form.finish(_compact({
        "name": name,
        "make": make,
        "model": model,
        "year": year,
        "licensePlate": license_plate,
        "vin": form.text("vin", max_length=17),
        "odometer": odometer,
        "fuelType": fuel_type,
        "transmissionType": transmission,
        "status": status,
        "carType": car_type,
        "seaterCount": seats,
        "details": form.text("details"),
        "bufferMinutes": form.number("bufferMinutes", "Buffer minutes", minimum=0, integer=True),
        "minRentalHours": form.number("minRentalHours", "Minimum rental hours", minimum=1, integer=True),
        "maxRentalDays": form.number("maxRentalDays", "Maximum rental days", minimum=1, integer=True),
        "maxFutureBookingDays": form.number(
            "maxFutureBookingDays", "Maximum days ahead", minimum=1, integer=True,
        ),
    }))


def rental_window(data: Mapping[str, Any]) -> dict:
    form = FormReader(data)
    start = form.date("startDate", "Start date")
    end = form.date("endDate", "End date")
    form.date_order("startDate", "endDate", start, end, "End date must be after start date")
    return form.finish({"startDate": start, "endDate": end})


def modification_policy(data: Mapping[str, Any]) -> dict:
    """Policy payload; a blank loyalty tier makes it the default for every tier."""
    form = FormReader(data)
    name = form.raw("policyName")
    if not name:
        form.error("policyName", "Policy name is required")
    elif len(name) > 100:
        form.error("policyName", "Policy name must not exceed 100 characters")
    description = form.raw("description")
    if len(description) > 1000:
        form.error("description", "Description must not exceed 1000 characters")
    tier = form.choice("loyaltyTier", enum_values(LoyaltyTier), "Loyalty tier", required=False)

    return form.finish({
        "policyName": name,
        "description": description or None,
        "loyaltyTier": tier,
        "freeModificationHours": form.number(
            "freeModificationHours", "Free modification hours", minimum=0, integer=True,
        ),
        "lateModificationFee": form.number("lateModificationFee", "Late modification fee", minimum=0),
        "categoryChangeFee": form.number("categoryChangeFee", "Category change fee", minimum=0),
        "locationChangeFee": form.number("locationChangeFee", "Location change fee", minimum=0),
        "allowVehicleChange": form.boolean("allowVehicleChange"),
        "allowDateChange": form.boolean("allowDateChange"),
        "allowLocationChange": form.boolean("allowLocationChange"),
        "maxDateChangeDays": form.number("maxDateChangeDays", "Max date change days", minimum=0, integer=True),
        "majorModificationPriceThresholdPercent": form.number(
            "majorModificationPriceThresholdPercent", "Major change price threshold", minimum=0,
        ),
        "majorModificationDateThresholdDays": form.number(
            "majorModificationDateThresholdDays", "Major change date threshold", minimum=0, integer=True,
        ),
    })


# =========================================================================
# BOOKINGS
# =========================================================================

def _offering_quantities(form: FormReader) -> list[dict]:
    """``offering_<id>=<qty>`` fields with a positive quantity."""
    offerings = []
    for key in form.data:
        if not key.startswith("offering_") or not key[len("offering_"):].isdigit():
            continue
        quantity = form.number(key, "Quantity", minimum=0, required=False, integer=True)
        if quantity:
            offerings.append({"offeringId": int(key[len("offering_"):]), "quantity": quantity})
    return offerings


def booking(data: Mapping[str, Any], currency: str | None = None) -> dict:
    """A new single-vehicle booking request, checked the way the backend checks it."""
    form = FormReader(data)
    vehicle_id = form.number("vehicleId", "Vehicle", minimum=1, integer=True)
    start = form.date("startDate", "Start date")
    end = form.date("endDate", "End date")
    form.date_order("startDate", "endDate", start, end, "End date must be after start date")

    guest_name = form.text("guestName", "Guest name is required")
    guest_email = form.text("guestEmail")
    if guest_email and not EMAIL_RE.match(guest_email):
        form.error("guestEmail", "Invalid email format")
    guest_phone = form.raw("guestPhone")
    if guest_phone and not PHONE_RE.match(guest_phone):
        form.error("guestPhone", "Invalid phone number format (use international format)")

    points = form.number("pointsToRedeem", "Points to redeem", minimum=0, required=False, integer=True)
    package_id = form.number("packageId", "Package", minimum=1, required=False, integer=True)
    offerings = _offering_quantities(form)
    codes = [c.strip().upper() for c in form.raw("discountCodes").split(",") if c.strip()]

    if form.errors:
        raise ValidationFailed(form.errors)

    request = build_booking_request(
        vehicle_id,
        start,
        end,
        pickup_location=form.text("pickupLocation"),
        dropoff_location=form.text("dropoffLocation"),
        package_id=package_id,
        offerings=offerings or None,
        discount_codes=codes or None,
        points_to_redeem=points,
        apply_loyalty_discount=form.boolean("applyLoyaltyDiscount"),
        currency=form.raw("currency") or currency,
        guest_name=guest_name,
        guest_email=guest_email,
        guest_phone=guest_phone or None,
    )
    valid, errors = validate_booking_request(request)
    if not valid:
        raise ValidationFailed({"booking": "; ".join(errors)})
    return request


def booking_modification(data: Mapping[str, Any], current: Mapping[str, Any]) -> dict:
    """Changes to an existing booking, as sent to preview and execute.

    ``current`` is the booking as loaded from the backend; at least one of
    its dates or locations must differ.
    """
    form = FormReader(data)
    booking_id = current.get("id")
    vehicle_id = current.get("vehicleId") or next(
        (v.get("vehicleId") for v in current.get("vehicles") or [] if v.get("vehicleId")), None,
    )
    if not vehicle_id:
        form.error("booking", "Booking must have a vehicle ID")

    start = form.date("startDate", "Start date")
    end = form.date("endDate", "End date")
    form.date_order("startDate", "endDate", start, end, "End date must be after start date")
    pickup = form.text("pickupLocation")
    dropoff = form.text("dropoffLocation")

    reason = form.raw("modificationReason")
    if len(reason) < 5:
        form.error("modificationReason", "Please provide a modification reason (min 5 characters)")

    changed = (
        _differs(start, current.get("startDate"))
        or _differs(end, current.get("endDate"))
        or (pickup or None) != (current.get("pickupLocation") or None)
        or (dropoff or None) != (current.get("dropoffLocation") or None)
    )
    if start and end and not changed:
        form.error("booking", "Change the dates or locations before submitting")

    return form.finish({
        "bookingId": booking_id,
        "vehicles": [{
            "vehicleId": vehicle_id,
            "startDate": start,
            "endDate": end,
            "pickupLocation": pickup,
            "dropoffLocation": dropoff,
        }],
        "modificationReason": reason,
    })


def _differs(submitted: str | None, existing: Any) -> bool:
    if not existing:
        return bool(submitted)
    a, b = parse_datetime(submitted or ""), parse_datetime(str(existing))
    if a is None or b is None:
        return submitted != existing
    return a.replace(tzinfo=None, second=0, microsecond=0) != b.replace(tzinfo=None, second=0, microsecond=0)
