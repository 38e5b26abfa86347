"""Tests for ActionJournal — persistence, queries, pub/sub, abandoned actions."""

import asyncio
import json
import time
from pathlib import Path

import pytest

from backoffice.journal import ActionJournal


# =========================================================================
# START / END
# =========================================================================


async def test_start_action_returns_positive_id(journal):
    aid = await journal.start_action("record_payment", "booking", 12, "Payment on booking #12")
    assert aid > 0


async def test_start_action_persists_row_and_details(journal):
    before = time.time()
    aid = await journal.start_action(
        "record_payment", "booking", 12, "Payment on booking #12",
        details={"amount": 50.0, "method": "CASH"}, username="ops.lead",
    )

    action = await journal.get(aid)
    assert action["entity_id"] == "12"
    assert action["status"] == "pending"
    assert action["username"] == "ops.lead"
    assert action["started_at"] >= before
    assert action["ended_at"] is None
    assert action["details"] == {"amount": 50.0, "method": "CASH"}


async def test_end_action_merges_extra_details(journal):
    aid = await journal.start_action("create", "package", None, "Package Weekend created", {"name": "Weekend"})
    await journal.end_action(aid, "completed", {"id": 9})

    action = await journal.get(aid)
    assert action["status"] == "completed"
    assert action["ended_at"] is not None
    assert action["details"] == {"name": "Weekend", "id": 9}


async def test_end_action_rejects_unknown_status(journal):
    aid = await journal.start_action("delete", "pricing", 3, "Pricing #3 deleted")
    with pytest.raises(ValueError):
        await journal.end_action(aid, "exploded")


async def test_closed_journal_is_a_no_op(tmp_path):
    journal = ActionJournal(tmp_path / "j.db")
    assert await journal.start_action("x", "booking", 1, "t") == -1
    await journal.end_action(-1)
    assert await journal.recent() == []


# =========================================================================
# QUERIES
# =========================================================================


async def test_recent_newest_first_with_filter(journal):
    await journal.start_action("create", "package", 1, "first")
    await journal.start_action("update", "discount", 2, "second")
    await journal.start_action("delete", "package", 1, "third")

    assert [a["title"] for a in await journal.recent()] == ["third", "second", "first"]
    assert [a["title"] for a in await journal.recent(limit=2)] == ["third", "second"]
    assert [a["title"] for a in await journal.recent(entity_type="package")] == ["third", "first"]


async def test_for_entity_matches_string_ids(journal):
    await journal.start_action("record_payment", "booking", 7, "on 7")
    await journal.start_action("record_payment", "booking", 8, "on 8")
    await journal.start_action("close_settlement", "booking", "7", "closed 7")

    titles = [a["title"] for a in await journal.for_entity("booking", 7)]
    assert titles == ["closed 7", "on 7"]


async def test_non_json_detail_value_returned_raw(journal):
    aid = await journal.start_action("x", "booking", 1, "t")
    await journal._db.execute(
        "INSERT INTO action_detail (action_id, key, value) VALUES (?, ?, ?)", (aid, "raw", "not json"),
    )
    await journal._db.commit()
    assert (await journal.get(aid))["details"]["raw"] == "not json"


# =========================================================================
# PUB/SUB
# =========================================================================


async def test_subscriber_receives_start_and_end(journal):
    queue = journal.subscribe()
    aid = await journal.start_action("close_settlement", "booking", 4, "Settlement closed")
    await journal.end_action(aid, "failed", {"error": "Settlement already closed"})

    start = queue.get_nowait()
    end = queue.get_nowait()
    assert start["kind"] == "start"
    assert start["action"]["title"] == "Settlement closed"
    assert end == {
        "kind": "end",
        "action": {"id": aid, "ended_at": end["action"]["ended_at"], "status": "failed",
                   "details": {"error": "Settlement already closed"}},
    }
    assert json.loads(json.dumps(start)) == start


async def test_unsubscribed_queue_gets_nothing(journal):
    queue = journal.subscribe()
    journal.unsubscribe(queue)
    journal.unsubscribe(queue)
    await journal.start_action("x", "booking", 1, "t")
    assert queue.empty()


async def test_full_queue_drops_oldest(journal):
    queue = journal.subscribe()
    for i in range(queue.maxsize):
        queue.put_nowait({"n": i})

    await journal.start_action("x", "booking", 1, "newest")

    assert queue.qsize() == queue.maxsize
    assert queue.get_nowait() == {"n": 1}
    last = None
    while not queue.empty():
        last = queue.get_nowait()
    assert last["action"]["title"] == "newest"


async def test_concurrent_writes_get_distinct_ids(journal):
    ids = await asyncio.gather(*(journal.start_action("x", "booking", i, f"t{i}") for i in range(20)))
    assert len(set(ids)) == 20


# =========================================================================
# RESTART
# =========================================================================


async def test_pending_actions_abandoned_on_reopen(tmp_path: Path):
    db = tmp_path / "data" / "journal.db"
    first = ActionJournal(db)
    await first.open()
    aid = await first.start_action("record_payment", "booking", 1, "interrupted")
    done = await first.start_action("record_payment", "booking", 2, "finished")
    await first.end_action(done)
    await first.close()

    second = ActionJournal(db)
    await second.open()
    try:
        assert (await second.get(aid))["status"] == "abandoned"
        assert (await second.get(aid))["ended_at"] is not None
        assert (await second.get(done))["status"] == "completed"
    finally:
        await second.close()
