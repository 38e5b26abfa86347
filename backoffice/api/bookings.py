"""
Bookings: search, creation with pricing preview, modification, audit
history and inspection images.
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

import aiohttp

from backoffice.api.client import HalClient
from backoffice.api.errors import ValidationFailed
from backoffice.api.search import clean_criteria, paging

logger = logging.getLogger(__name__)

BOOKING_CRITERIA = ("bookingId", "emailOrPhone", "email", "phone", "startDate", "endDate", "status")

# Predefined inspection/document image categories
BOOKING_IMAGE_CATEGORIES = [
    "DELIVERY_INSPECTION",
    "PICKUP_INSPECTION",
    "ACCIDENT_INSPECTION",
    "PRE_RENTAL_INSPECTION",
    "POST_RENTAL_INSPECTION",
    "LICENSE_DOCUMENT",
    "RENTAL_AGREEMENT",
    "FUEL_RECEIPT",
    "TOLL_RECEIPT",
    "MAINTENANCE",
    "OTHER",
]


class BookingCancelled(Exception):
    """The operator declined the pricing preview."""


def booking_search_endpoint(criteria: dict[str, Any]) -> tuple[str, tuple[str, ...]]:
    """Pick (path, query keys) for the given booking search criteria."""
    if "bookingId" in criteria:
        return f"/api/bookings/{criteria['bookingId']}", ()
    if "emailOrPhone" in criteria:
        return "/api/bookings/search/findByCustomerEmailOrPhone", ("emailOrPhone",)
    if "email" in criteria:
        return "/api/bookings/search/findByCustomerEmail", ("email",)
    if "phone" in criteria:
        return "/api/bookings/search/findByCustomerPhone", ("phone",)
    if "startDate" in criteria and "endDate" in criteria and "status" in criteria:
        return "/api/bookings/search/findByDateRangeAndStatus", ("startDate", "endDate", "status")
    if "startDate" in criteria and "endDate" in criteria:
        return "/api/bookings/search/findByDateRange", ("startDate", "endDate")
    if "status" in criteria:
        return "/api/bookings/search/findByStatus", ("status",)
    return "/api/bookings", ()


def build_booking_request(
    vehicle_id: int,
    start_date: str,
    end_date: str,
    pickup_location: str | None = None,
    dropoff_location: str | None = None,
    package_id: int | None = None,
    offerings: list[dict] | None = None,
    discount_codes: list[str] | None = None,
    points_to_redeem: int | None = None,
    apply_loyalty_discount: bool | None = None,
    currency: str | None = None,
    guest_name: str | None = None,
    guest_email: str | None = None,
    guest_phone: str | None = None,
) -> dict:
    """Single-vehicle booking request in the backend's shape."""
    return {
        "vehicles": [{
            "vehicleId": vehicle_id,
            "startDate": start_date,
            "endDate": end_date,
            "pickupLocation": pickup_location,
            "dropoffLocation": dropoff_location,
        }],
        "packageId": package_id,
        "offerings": (
            [{"offeringId": o["offeringId"], "quantity": o["quantity"]} for o in offerings]
            if offerings is not None else None
        ),
        "discountCodes": discount_codes,
        "pointsToRedeem": points_to_redeem,
        "applyLoyaltyDiscount": apply_loyalty_discount,
        "currency": currency or "MYR",
        "guestName": guest_name,
        "guestEmail": guest_email,
        "guestPhone": guest_phone,
    }


def _parse_dt(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None


def validate_booking_request(request: dict) -> tuple[bool, list[str]]:
    """Check a booking request before it goes to the backend."""
    errors: list[str] = []

    vehicles = request.get("vehicles") or []
    if not vehicles:
        errors.append("At least one vehicle is required")

    for index, vehicle in enumerate(vehicles, start=1):
        if not vehicle.get("vehicleId"):
            errors.append(f"Vehicle {index}: Vehicle ID is required")
        if not vehicle.get("startDate"):
            errors.append(f"Vehicle {index}: Start date is required")
        if not vehicle.get("endDate"):
            errors.append(f"Vehicle {index}: End date is required")
        if vehicle.get("startDate") and vehicle.get("endDate"):
            start = _parse_dt(vehicle["startDate"])
            end = _parse_dt(vehicle["endDate"])
            if start and end and end <= start:
                errors.append(f"Vehicle {index}: End date must be after start date")

    for index, offering in enumerate(request.get("offerings") or [], start=1):
        if not offering.get("offeringId"):
            errors.append(f"Offering {index}: Offering ID is required")
        if (offering.get("quantity") or 0) < 1:
            errors.append(f"Offering {index}: Quantity must be at least 1")

    points = request.get("pointsToRedeem")
    if points is not None and points < 0:
        errors.append("Points to redeem cannot be negative")

    return not errors, errors


class BookingsApi:
    resource = "bookings"

    def __init__(self, client: HalClient):
        self.client = client

    def _v1(self, booking_id: int | str | None = None, suffix: str = "") -> str:
        url = f"{self.client.base_url}/api/v1/bookings"
        if booking_id is not None:
            url += f"/{booking_id}"
        return url + suffix

    async def get(self, booking_id: int | str) -> dict:
        return await self.client.get_resource(self.resource, booking_id)

    async def search(self, params: dict[str, Any]) -> dict:
        """Search bookings; a single booking by id is wrapped as a collection."""
        criteria = clean_criteria(params, BOOKING_CRITERIA)
        path, keys = booking_search_endpoint(criteria)

        if "bookingId" in criteria:
            booking = await self.client.request("GET", path)
            if isinstance(booking, dict) and "_embedded" in booking:
                return booking
            return {
                "_embedded": {"bookings": [booking]},
                "_links": {"self": {"href": self.client.absolute(path)}},
                "page": {"size": 1, "totalElements": 1, "totalPages": 1, "number": 0},
            }

        query = {**paging(params, sort="createdAt,desc"), **{k: criteria[k] for k in keys}}
        return await self.client.request("GET", path, params=query)

    # =========================================================================
    # CREATION
    # =========================================================================

    async def preview_pricing(self, request: dict) -> dict:
        return await self.client.request("POST", self._v1(suffix="/preview"), json_body=request)

    async def create(self, request: dict) -> dict:
        return await self.client.request("POST", self._v1(), json_body=request)

    async def create_with_preview(
        self,
        request: dict,
        confirm: Callable[[dict], Awaitable[bool]] | None = None,
    ) -> dict:
        """Preview → validate → confirm → create."""
        preview = await self.preview_pricing(request)
        validation = preview.get("validation") or {}
        if not validation.get("isValid", False):
            errors = validation.get("errors") or []
            raise ValidationFailed({"booking": f"Booking validation failed: {', '.join(errors)}"})

        if confirm is not None and not await confirm(preview):
            raise BookingCancelled("Booking cancelled by user")

        return await self.create(request)

    async def calculate_rental_price(self, vehicle_id: int, start_date: str, end_date: str) -> dict:
        return await self.client.request(
            "POST",
            f"{self.client.base_url}/api/rental-pricing/calculate",
            json_body={"vehicleId": vehicle_id, "startDate": start_date, "endDate": end_date},
        )

    async def pricing_snapshot(self, booking_id: int | str) -> dict:
        return await self.client.request("GET", self._v1(booking_id, "/pricing-snapshot"))

    async def pricing_summary(self, booking_id: int | str) -> dict:
        return await self.client.request("GET", self._v1(booking_id, "/pricing-summary"))

    # =========================================================================
    # MODIFICATION + AUDIT TRAIL
    # =========================================================================

    async def modification_policy(self, booking_id: int | str) -> dict:
        return await self.client.request("GET", self._v1(booking_id, "/modification-policy"))

    async def preview_modification(self, booking_id: int | str, changes: dict) -> dict:
        return await self.client.request(
            "POST", self._v1(booking_id, "/preview-modification"), json_body=changes,
        )

    async def execute_modification(self, booking_id: int | str, changes: dict) -> dict:
        return await self.client.request("PUT", self._v1(booking_id), json_body=changes)

    async def history(self, booking_id: int | str) -> list[dict]:
        """Audit trail entries, newest first."""
        body = await self.client.request("GET", self._v1(booking_id, "/history"))
        entries = body if isinstance(body, list) else []
        return sorted(entries, key=lambda e: e.get("modifiedAt") or e.get("changedAt") or "", reverse=True)

    # =========================================================================
    # IMAGES
    # =========================================================================

    def _images(self, booking_id: int | str, suffix: str = "") -> str:
        return f"{self.client.base_url}/api/bookings/{booking_id}/images{suffix}"

    async def images(self, booking_id: int | str) -> list[dict]:
        body = await self.client.request("GET", self._images(booking_id))
        return body if isinstance(body, list) else []

    async def grouped_images(self, booking_id: int | str) -> dict:
        return await self.client.request("GET", self._images(booking_id, "/grouped"))

    async def images_by_category(self, booking_id: int | str, category: str) -> list[dict]:
        body = await self.client.request("GET", self._images(booking_id, f"/by-category/{category}"))
        return body if isinstance(body, list) else []

    async def upload_image(
        self,
        booking_id: int | str,
        filename: str,
        content: bytes,
        content_type: str,
        category: str | None = None,
        notes: str | None = None,
    ) -> dict:
        form = aiohttp.FormData()
        form.add_field("file", content, filename=filename, content_type=content_type)
        if category:
            form.add_field("category", category)
        if notes:
            form.add_field("notes", notes)
        return await self.client.upload(self._images(booking_id, "/single"), form)

    async def delete_image(self, booking_id: int | str, image_id: int | str) -> None:
        await self.client.request("DELETE", self._images(booking_id, f"/{image_id}"))

    async def delete_all_images(self, booking_id: int | str) -> None:
        await self.client.request("DELETE", self._images(booking_id))

    async def image_categories(self) -> dict:
        return await self.client.request("GET", f"{self.client.base_url}/api/booking-image-categories")
