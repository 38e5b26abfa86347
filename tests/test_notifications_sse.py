"""Tests for the action notification stream (GET /api/notifications/events) and /activity."""

import json

from tests.conftest import read_sse_frames


async def test_snapshot_sent_on_connect(client, journal):
    """First SSE frame should be a 'snapshot' with journal entries, newest first."""
    await journal.start_action("record_payment", "booking", 3, "Payment on booking #3")
    await journal.start_action("close_settlement", "booking", 3, "Settlement closed for booking #3")

    resp = await client.get("/api/notifications/events")
    frames = await read_sse_frames(resp, count=1)

    assert len(frames) == 1
    assert frames[0]["event"] == "snapshot"
    data = json.loads(frames[0]["data"])
    assert [a["title"] for a in data] == ["Settlement closed for booking #3", "Payment on booking #3"]
    resp.close()


async def test_live_action_update_streamed(client, journal):
    """Actions started after connecting arrive as action_update frames."""
    resp = await client.get("/api/notifications/events")
    await read_sse_frames(resp, count=1)

    aid = await journal.start_action("create", "package", None, "Package Weekend created")
    await journal.end_action(aid, "completed", {"id": 12})

    frames = await read_sse_frames(resp, count=2, timeout=2.0)
    assert [f["event"] for f in frames] == ["action_update", "action_update"]
    start, end = (json.loads(f["data"]) for f in frames)
    assert start["kind"] == "start"
    assert start["action"]["title"] == "Package Weekend created"
    assert end["kind"] == "end"
    assert end["action"]["status"] == "completed"
    resp.close()


async def test_correct_sse_headers(client):
    resp = await client.get("/api/notifications/events")
    assert resp.status == 200
    assert resp.headers["Content-Type"] == "text/event-stream"
    assert resp.headers["Cache-Control"] == "no-cache"
    resp.close()


async def test_stream_requires_login(anon_client):
    resp = await anon_client.get("/api/notifications/events", allow_redirects=False)
    assert resp.status == 303


# =========================================================================
# ACTIVITY PAGE
# =========================================================================


async def test_activity_page_lists_actions(client, journal):
    aid = await journal.start_action("delete", "discount", 4, "Discount SUMMER deleted", username="ops.lead")
    await journal.end_action(aid, "failed", {"error": "Discount is in use"})
    await journal.start_action("create", "package", 2, "Package Weekend created")

    resp = await client.get("/activity?type=discount")

    assert resp.status == 200
    text = await resp.text()
    assert "Discount SUMMER deleted" in text
    assert "Package Weekend created" not in text


async def test_unknown_activity_filter_shows_everything(client, journal):
    await journal.start_action("create", "package", 2, "Package Weekend created")
    resp = await client.get("/activity?type=bogus")
    assert "Package Weekend created" in await resp.text()
