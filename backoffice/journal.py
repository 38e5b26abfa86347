"""
Backoffice Action Journal

Persists every mutating action staff take through the backoffice (recording
a payment, closing a settlement, editing a package...) to SQLite and
publishes each change to SSE subscribers via async queues. The activity
page and the toast stream both read from here.
"""

import asyncio
import json
import logging
import time
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

JOURNAL_SCHEMA = """
CREATE TABLE IF NOT EXISTS action_log (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    action      TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    entity_id   TEXT,
    title       TEXT NOT NULL,
    username    TEXT,
    started_at  REAL NOT NULL,
    ended_at    REAL,
    status      TEXT DEFAULT 'pending'
);

CREATE TABLE IF NOT EXISTS action_detail (
    action_id   INTEGER NOT NULL REFERENCES action_log(id),
    key         TEXT NOT NULL,
    value       TEXT,
    PRIMARY KEY (action_id, key)
);

CREATE INDEX IF NOT EXISTS idx_action_log_started ON action_log(started_at);
CREATE INDEX IF NOT EXISTS idx_action_log_entity ON action_log(entity_type, entity_id);
CREATE INDEX IF NOT EXISTS idx_action_log_status ON action_log(status);
"""

ACTION_STATUSES = ("pending", "completed", "failed", "abandoned")


class ActionJournal:
    """SQLite-backed action journal with pub/sub for live SSE streaming."""

    def __init__(self, db_path: Path):
        self._db: aiosqlite.Connection | None = None
        self._db_path = db_path
        self._subscribers: list[asyncio.Queue] = []
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        """Open database and create tables.

        Actions still 'pending' belong to a previous process that died
        mid-request. They are closed as 'abandoned'.
        """
        if str(self._db_path) != ":memory:":
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(JOURNAL_SCHEMA)
        await self._db.commit()

        cursor = await self._db.execute(
            "UPDATE action_log SET ended_at = COALESCE(ended_at, started_at), status = 'abandoned' "
            "WHERE status = 'pending'",
        )
        await self._db.commit()
        if cursor.rowcount:
            logger.info(f"Closed {cursor.rowcount} abandoned actions from previous run")

        logger.info("Action journal opened")

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Action journal closed")

    async def start_action(
        self,
        action: str,
        entity_type: str,
        entity_id: str | int | None,
        title: str,
        details: dict | None = None,
        username: str | None = None,
    ) -> int:
        """Insert a pending action and publish it. Returns the action id."""
        if not self._db:
            return -1

        now = time.time()
        entity_id = None if entity_id is None else str(entity_id)

        async with self._lock:
            cursor = await self._db.execute(
                "INSERT INTO action_log (action, entity_type, entity_id, title, username, started_at, status) "
                "VALUES (?, ?, ?, ?, ?, ?, 'pending')",
                (action, entity_type, entity_id, title, username, now),
            )
            action_id = cursor.lastrowid

            if details:
                for key, value in details.items():
                    await self._db.execute(
                        "INSERT INTO action_detail (action_id, key, value) VALUES (?, ?, ?)",
                        (action_id, key, json.dumps(value)),
                    )

            await self._db.commit()

        self._publish({
            "kind": "start",
            "action": {
                "id": action_id,
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "title": title,
                "username": username,
                "started_at": now,
                "ended_at": None,
                "status": "pending",
                "details": details or {},
            },
        })
        return action_id

    async def end_action(
        self,
        action_id: int,
        status: str = "completed",
        extra: dict | None = None,
    ) -> None:
        """Mark an action completed or failed, merging ``extra`` into its details."""
        if not self._db or action_id < 0:
            return
        if status not in ACTION_STATUSES:
            raise ValueError(f"Unknown action status: {status}")

        now = time.time()
        async with self._lock:
            await self._db.execute(
                "UPDATE action_log SET ended_at = ?, status = ? WHERE id = ?",
                (now, status, action_id),
            )
            if extra:
                for key, value in extra.items():
                    await self._db.execute(
                        "INSERT OR REPLACE INTO action_detail (action_id, key, value) VALUES (?, ?, ?)",
                        (action_id, key, json.dumps(value)),
                    )
            await self._db.commit()

        self._publish({
            "kind": "end",
            "action": {"id": action_id, "ended_at": now, "status": status, "details": extra or {}},
        })

    async def get(self, action_id: int) -> dict | None:
        actions = await self._query("WHERE id = ?", [action_id])
        return actions[0] if actions else None

    async def recent(self, limit: int = 50, entity_type: str | None = None) -> list[dict]:
        """Most recent actions first."""
        if entity_type:
            return await self._query("WHERE entity_type = ? ORDER BY id DESC LIMIT ?", [entity_type, limit])
        return await self._query("ORDER BY id DESC LIMIT ?", [limit])

    async def for_entity(self, entity_type: str, entity_id: str | int) -> list[dict]:
        return await self._query(
            "WHERE entity_type = ? AND entity_id = ? ORDER BY id DESC",
            [entity_type, str(entity_id)],
        )

    async def _query(self, clause: str, params: list) -> list[dict]:
        if not self._db:
            return []

        actions = []
        async with self._db.execute(
            "SELECT id, action, entity_type, entity_id, title, username, started_at, ended_at, status "
            f"FROM action_log {clause}",
            params,
        ) as cursor:
            async for row in cursor:
                actions.append({
                    "id": row["id"],
                    "action": row["action"],
                    "entity_type": row["entity_type"],
                    "entity_id": row["entity_id"],
                    "title": row["title"],
                    "username": row["username"],
                    "started_at": row["started_at"],
                    "ended_at": row["ended_at"],
                    "status": row["status"],
                    "details": {},
                })

        # Batch-load details for all actions
        if actions:
            ids = [a["id"] for a in actions]
            placeholders = ",".join("?" for _ in ids)
            detail_map: dict[int, dict] = {aid: {} for aid in ids}
            async with self._db.execute(
                f"SELECT action_id, key, value FROM action_detail WHERE action_id IN ({placeholders})",
                ids,
            ) as cursor:
                async for row in cursor:
                    try:
                        detail_map[row["action_id"]][row["key"]] = json.loads(row["value"])
                    except (json.JSONDecodeError, KeyError):
                        detail_map[row["action_id"]][row["key"]] = row["value"]

            for action in actions:
                action["details"] = detail_map.get(action["id"], {})

        return actions

    def subscribe(self) -> asyncio.Queue:
        """Return a queue that receives all published journal messages."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=256)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        try:
            self._subscribers.remove(queue)
        except ValueError:
            pass

    def _publish(self, message: dict) -> None:
        """Push a message to all subscriber queues (non-blocking)."""
        for queue in self._subscribers:
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                # Drop oldest message so a slow reader never blocks writers
                try:
                    queue.get_nowait()
                    queue.put_nowait(message)
                except (asyncio.QueueEmpty, asyncio.QueueFull):
                    pass
