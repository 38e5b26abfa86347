"""
Payments route — GET /payments

Outstanding settlements across all bookings, plus a search over recorded
payments. The two halves fail independently.
"""

import asyncio
import logging

import aiohttp_jinja2
from aiohttp import web

from backoffice.api.errors import ApiError, UnauthorizedError
from backoffice.api.hal import embedded, page_info
from backoffice.api.payments import PAYMENT_SEARCH_KEYS
from backoffice.models import PAYMENT_METHODS, PaymentStatus, enum_values
from backoffice.web import presenters
from backoffice.web.helpers import page_params, query_criteria

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()

SEARCH_CRITERIA = tuple(k for k in PAYMENT_SEARCH_KEYS if k not in ("page", "size", "sort"))


async def _outstanding(backend) -> tuple[list[dict], float, str | None]:
    try:
        settlements, total = await asyncio.gather(
            backend.settlements.outstanding(),
            backend.settlements.outstanding_total(),
        )
    except UnauthorizedError:
        raise
    except ApiError as e:
        logger.warning(f"Outstanding settlements unavailable: {e.message}")
        return [], 0.0, e.message
    return settlements, total, None


@routes.get("/payments")
@aiohttp_jinja2.template("payments.html")
async def payments_page(request: web.Request) -> dict:
    backend = request["backend"]
    criteria = query_criteria(request, SEARCH_CRITERIA)

    outstanding, outstanding_total, outstanding_error = await _outstanding(backend)

    payments, pages, search_error = [], presenters.pagination({}), None
    if criteria:
        try:
            result = await backend.payments.search(
                {**criteria, **page_params(request), "sort": "paymentDate,desc"},
            )
            payments = embedded(result, "payments")
            pages = presenters.pagination(page_info(result))
        except UnauthorizedError:
            raise
        except ApiError as e:
            search_error = e.message

    return {
        "page": "payments",
        "outstanding": outstanding,
        "outstanding_total": outstanding_total,
        "outstanding_error": outstanding_error,
        "criteria": criteria,
        "statuses": enum_values(PaymentStatus),
        "methods": PAYMENT_METHODS,
        "payments": payments,
        "pagination": pages,
        "search_error": search_error,
    }
