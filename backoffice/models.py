"""
Domain enums and display metadata.

The backend owns every entity; these are the closed vocabularies the
backoffice needs to render and validate forms.
"""

from dataclasses import dataclass
from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    ACTIVE = "ACTIVE"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


CONFIRMED_BOOKING_STATUSES = {"CONFIRMED", "ACTIVE", "COMPLETED"}


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
    CANCELLED = "CANCELLED"
    DUE_AT_PICKUP = "DUE_AT_PICKUP"


class SettlementStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class OfferingType(str, Enum):
    GPS = "GPS"
    INSURANCE = "INSURANCE"
    CHILD_SEAT = "CHILD_SEAT"
    WIFI = "WIFI"
    ADDITIONAL_DRIVER = "ADDITIONAL_DRIVER"
    OTHER = "OTHER"


class OfferingRateType(str, Enum):
    DAILY = "DAILY"
    HOURLY = "HOURLY"
    FIXED = "FIXED"
    PER_RENTAL = "PER_RENTAL"


class InventoryMode(str, Enum):
    SHARED = "SHARED"
    EXCLUSIVE = "EXCLUSIVE"


class ConsumableType(str, Enum):
    RETURNABLE = "RETURNABLE"
    CONSUMABLE = "CONSUMABLE"
    SERVICE = "SERVICE"
    ACCOMMODATION = "ACCOMMODATION"


class PackageModifierType(str, Enum):
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"


class PricingRateType(str, Enum):
    HOURLY = "Hourly"
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"
    FLAT = "Flat"


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class DiscountScope(str, Enum):
    ALL = "ALL"
    PACKAGE = "PACKAGE"
    OFFERING = "OFFERING"
    BOOKING = "BOOKING"
    VEHICLE = "VEHICLE"


class OnboardingStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    VERIFIED = "VERIFIED"
    FAILED = "FAILED"
    ACCOUNT_DELETED = "ACCOUNT_DELETED"


class AccountStatus(str, Enum):
    PENDING = "PENDING"
    RESTRICTED = "RESTRICTED"
    RESTRICTED_SOON = "RESTRICTED_SOON"
    ENABLED = "ENABLED"
    REJECTED = "REJECTED"
    DELETED = "DELETED"


class ChangeType(str, Enum):
    CREATED = "CREATED"
    MODIFIED = "MODIFIED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    STATUS_CHANGED = "STATUS_CHANGED"


class VehicleStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RENTED = "RENTED"
    MAINTENANCE = "MAINTENANCE"
    RETIRED = "RETIRED"


class CarType(str, Enum):
    SEDAN = "SEDAN"
    SUV = "SUV"
    HATCHBACK = "HATCHBACK"
    COUPE = "COUPE"
    CONVERTIBLE = "CONVERTIBLE"
    WAGON = "WAGON"
    VAN = "VAN"
    PICKUP = "PICKUP"
    LUXURY = "LUXURY"
    SPORTS = "SPORTS"
    ELECTRIC = "ELECTRIC"
    HYBRID = "HYBRID"
    MOTORCYCLE = "MOTORCYCLE"
    OTHER = "OTHER"


FUEL_TYPES = ["Gasoline", "Diesel", "Electric", "Hybrid", "Plug-in Hybrid"]
TRANSMISSION_TYPES = ["Automatic", "Manual", "CVT"]


class LoyaltyTier(str, Enum):
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"


def enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


# =========================================================================
# SETTLEMENT TRANSACTION TYPES
# =========================================================================

TRANSACTION_CATEGORIES = (
    "pre-rental",
    "during-rental",
    "completion",
    "post-completion",
    "adjustment",
    "loyalty",
)


@dataclass(frozen=True)
class TransactionTypeInfo:
    value: str
    label: str
    category: str
    icon: str
    description: str
    is_charge: bool  # adds to balance due


def _tt(value, label, category, icon, description, is_charge=False) -> TransactionTypeInfo:
    return TransactionTypeInfo(value, label, category, icon, description, is_charge)


TRANSACTION_TYPES: list[TransactionTypeInfo] = [
    _tt("DEPOSIT", "Deposit", "pre-rental", "💰", "Initial deposit payment"),
    _tt("ADVANCE_PAYMENT", "Advance Payment", "pre-rental", "💵", "Booking payment"),
    _tt("PICKUP_PAYMENT", "Pickup Payment", "pre-rental", "🚗", "Payment at pickup"),

    _tt("INSTALLMENT", "Installment", "during-rental", "📅", "Regular installment payment"),
    _tt("EXTENSION_FEE", "Extension Fee", "during-rental", "⏰", "Rental period extension charge", True),
    _tt("ADDITIONAL_CHARGE", "Additional Charge", "during-rental", "➕", "Add-on services charge", True),
    _tt("MODIFICATION_CHARGE", "Modification Charge", "during-rental", "✏️", "Booking modification fee", True),

    _tt("FINAL_SETTLEMENT", "Final Settlement", "completion", "✅", "Final payment at return"),
    _tt("DEPOSIT_RETURN", "Deposit Return", "completion", "↩️", "Security deposit refund"),

    _tt("DAMAGE_CHARGE", "Damage Charge", "post-completion", "🔧", "Damage discovered after return", True),
    _tt("FUEL_CHARGE", "Fuel Charge", "post-completion", "⛽", "Fuel not returned full", True),
    _tt("CLEANING_FEE", "Cleaning Fee", "post-completion", "🧹", "Excessive cleaning required", True),
    _tt("LATE_FEE", "Late Return Fee", "post-completion", "⏳", "Late return penalty", True),
    _tt("TRAFFIC_FINE", "Traffic Fine", "post-completion", "🚦", "Traffic violation fine", True),
    _tt("PARKING_FINE", "Parking Fine", "post-completion", "🅿️", "Parking violation fine", True),
    _tt("TOLL_CHARGE", "Toll Charge", "post-completion", "🛣️", "Unpaid toll charges", True),
    _tt("INSURANCE_DEDUCTIBLE", "Insurance Deductible", "post-completion", "🛡️", "Insurance claim deductible", True),
    _tt("INSURANCE_PAYOUT", "Insurance Payout", "post-completion", "💸", "Insurance payout received"),
    _tt("ADMIN_FEE", "Admin Fee", "post-completion", "📋", "Administrative processing fee", True),

    _tt("REFUND", "Full Refund", "adjustment", "💳", "Full refund issued"),
    _tt("PARTIAL_REFUND", "Partial Refund", "adjustment", "💳", "Partial refund issued"),
    _tt("GOODWILL_CREDIT", "Goodwill Credit", "adjustment", "🎁", "Customer goodwill gesture"),
    _tt("PRICE_ADJUSTMENT", "Price Adjustment", "adjustment", "📊", "Price correction"),
    _tt("WRITE_OFF", "Write-Off", "adjustment", "📝", "Bad debt write-off"),
    _tt("DISPUTE_ADJUSTMENT", "Dispute Adjustment", "adjustment", "⚖️", "Dispute resolution adjustment"),

    _tt("POINTS_REDEMPTION", "Points Redemption", "loyalty", "⭐", "Loyalty points used"),
    _tt("VOUCHER_REDEMPTION", "Voucher Redemption", "loyalty", "🎟️", "Voucher/coupon applied"),
    _tt("PROMOTIONAL_DISCOUNT", "Promotional Discount", "loyalty", "🏷️", "Promotional discount applied"),
]

_TRANSACTION_TYPES_BY_VALUE = {t.value: t for t in TRANSACTION_TYPES}

CHARGE_TRANSACTION_TYPES = {t.value for t in TRANSACTION_TYPES if t.is_charge}

# Counted as money going back to the customer when totalling a settlement
REFUND_TRANSACTION_TYPES = {
    "REFUND",
    "PARTIAL_REFUND",
    "GOODWILL_CREDIT",
    "DEPOSIT_RETURN",
    "INSURANCE_PAYOUT",
    "WRITE_OFF",
    "DISPUTE_ADJUSTMENT",
}


def transaction_type_info(value: str) -> TransactionTypeInfo | None:
    return _TRANSACTION_TYPES_BY_VALUE.get(value)


def transaction_types_by_category(category: str) -> list[TransactionTypeInfo]:
    return [t for t in TRANSACTION_TYPES if t.category == category]


def post_completion_charge_types() -> list[TransactionTypeInfo]:
    return [t for t in TRANSACTION_TYPES if t.category == "post-completion" and t.is_charge]


def is_booking_confirmed(status: str | None) -> bool:
    return status in CONFIRMED_BOOKING_STATUSES


def is_booking_completed(status: str | None) -> bool:
    return status == BookingStatus.COMPLETED.value


def available_transaction_types(booking_status: str | None) -> list[TransactionTypeInfo]:
    """Transaction types staff may record for a booking in this status.

    Completed bookings only take post-completion entries. DEPOSIT_RETURN is
    issued by the backend itself and never offered.
    """
    if is_booking_completed(booking_status):
        return transaction_types_by_category("post-completion")
    return [
        t for t in TRANSACTION_TYPES
        if t.category in ("pre-rental", "during-rental", "completion") and t.value != "DEPOSIT_RETURN"
    ]


def default_transaction_type(booking_status: str | None) -> str:
    return "FINAL_SETTLEMENT" if is_booking_completed(booking_status) else "ADVANCE_PAYMENT"


# =========================================================================
# PAYMENT METHODS
# =========================================================================

@dataclass(frozen=True)
class PaymentMethodInfo:
    value: str
    label: str
    icon: str


PAYMENT_METHODS: list[PaymentMethodInfo] = [
    PaymentMethodInfo("CASH", "Cash", "💵"),
    PaymentMethodInfo("BANK_TRANSFER", "Bank Transfer", "🏦"),
    PaymentMethodInfo("CREDIT_CARD", "Credit Card", "💳"),
    PaymentMethodInfo("DEBIT_CARD", "Debit Card", "💳"),
    PaymentMethodInfo("PAYMENT_GATEWAY", "Payment Gateway", "🌐"),
    PaymentMethodInfo("QR_PAYMENT", "QR Payment (DuitNow/PayNow)", "📱"),
    PaymentMethodInfo("MOBILE_WALLET", "Mobile Wallet (GrabPay/Touch n Go)", "📲"),
    PaymentMethodInfo("CHECK", "Check/Cheque", "📝"),
    PaymentMethodInfo("LOYALTY_POINTS", "Loyalty Points", "⭐"),
    PaymentMethodInfo("WRITE_OFF", "Write Off", "✏️"),
    PaymentMethodInfo("OTHER", "Other", "💰"),
]

_PAYMENT_METHODS_BY_VALUE = {m.value: m for m in PAYMENT_METHODS}


def payment_method_info(value: str) -> PaymentMethodInfo:
    """Display info for a payment method; unknown methods get a generic entry."""
    return _PAYMENT_METHODS_BY_VALUE.get(value) or PaymentMethodInfo(value, value, "💰")


# =========================================================================
# STATUS BADGES
# =========================================================================

PAYMENT_STATUS_COLORS = {
    "COMPLETED": "green",
    "PENDING": "yellow",
    "PROCESSING": "yellow",
    "FAILED": "red",
    "CANCELLED": "red",
    "REFUNDED": "blue",
    "PARTIALLY_REFUNDED": "blue",
    "DUE_AT_PICKUP": "orange",
}


def payment_status_color(status: str | None) -> str:
    return PAYMENT_STATUS_COLORS.get(status or "", "gray")


SETTLEMENT_STATUS_INFO = {
    "OPEN": {"label": "Open", "icon": "🔓", "color": "blue", "description": "Accepting transactions"},
    "CLOSED": {"label": "Closed", "icon": "🔒", "color": "gray", "description": "Settlement finalized"},
}


def settlement_status_info(status: str | None) -> dict:
    return SETTLEMENT_STATUS_INFO.get(status or "", SETTLEMENT_STATUS_INFO["OPEN"])
