"""
Activity routes — GET /activity (page) + GET /api/notifications/events (SSE)

The page lists recent journal entries; the SSE stream feeds the toast area
on every page with actions as they start and finish.
"""

import asyncio
import json

import aiohttp_jinja2
from aiohttp import web

routes = web.RouteTableDef()

ENTITY_TYPES = ["booking", "payment", "settlement", "package", "offering", "pricing", "discount",
                "merchant", "account_setting"]

SNAPSHOT_SIZE = 20
KEEPALIVE_SECONDS = 15


@routes.get("/activity")
@aiohttp_jinja2.template("activity.html")
async def activity_page(request: web.Request) -> dict:
    """Render the journal of recent backoffice actions."""
    entity_type = request.query.get("type") or None
    if entity_type not in ENTITY_TYPES:
        entity_type = None
    actions = await request.app["journal"].recent(limit=100, entity_type=entity_type)
    return {
        "page": "activity",
        "actions": actions,
        "entity_types": ENTITY_TYPES,
        "entity_type": entity_type,
    }


@routes.get("/api/notifications/events")
async def notifications_sse(request: web.Request) -> web.StreamResponse:
    """SSE endpoint: sends a snapshot of recent actions, then live updates."""
    journal = request.app["journal"]

    response = web.StreamResponse(
        headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
    await response.prepare(request)

    # Subscribe before the snapshot so nothing published in between is lost
    queue = journal.subscribe()
    try:
        recent = await journal.recent(limit=SNAPSHOT_SIZE)
        await response.write(f"event: snapshot\ndata: {json.dumps(recent)}\n\n".encode())

        while True:
            try:
                msg = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                await response.write(b": keepalive\n\n")
                continue
            await response.write(f"event: action_update\ndata: {json.dumps(msg)}\n\n".encode())
    except (ConnectionResetError, ConnectionError, asyncio.CancelledError):
        pass
    finally:
        journal.unsubscribe(queue)

    return response
