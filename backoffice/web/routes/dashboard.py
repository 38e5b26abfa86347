"""
Dashboard route — GET /

Outstanding balances, merchant payment status and the latest backoffice
actions. Each backend panel degrades to an inline notice on failure so one
slow service never blanks the page.
"""

import asyncio
import logging

import aiohttp_jinja2
from aiohttp import web

from backoffice.api.errors import ApiError, UnauthorizedError

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()


async def _panel(coro, label: str):
    """Await a backend call; ApiError becomes ``(None, message)``."""
    try:
        return await coro, None
    except UnauthorizedError:
        raise
    except ApiError as e:
        logger.warning(f"Dashboard {label} unavailable: {e.message}")
        return None, e.message


@routes.get("/")
@aiohttp_jinja2.template("dashboard.html")
async def dashboard(request: web.Request) -> dict:
    backend = request["backend"]
    journal = request.app["journal"]

    (total, total_error), (outstanding, outstanding_error), (merchant, merchant_error) = await asyncio.gather(
        _panel(backend.settlements.outstanding_total(), "outstanding total"),
        _panel(backend.settlements.outstanding(), "outstanding settlements"),
        _panel(backend.merchants.status(), "merchant status"),
    )
    recent = await journal.recent(limit=10)

    outstanding = outstanding or []
    return {
        "page": "dashboard",
        "outstanding_total": total or 0.0,
        "outstanding_count": len(outstanding),
        "outstanding": outstanding[:5],
        "merchant": merchant,
        "errors": {
            "outstanding": total_error or outstanding_error,
            "merchant": merchant_error,
        },
        "recent_actions": recent,
    }
