"""
Backoffice Settings Store

SQLite-backed local storage for things the backend does not keep:
- preferences: display preferences per section/key (JSON values), edited
  from the settings page and layered over the YAML defaults
- drafts: unsubmitted form payloads (e.g. a half-filled new package) so
  staff can come back to them later
"""

import json
import logging
import uuid
from pathlib import Path
from typing import Any

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS preferences (
    section TEXT NOT NULL,
    key     TEXT NOT NULL,
    value   TEXT,
    PRIMARY KEY (section, key)
);

CREATE TABLE IF NOT EXISTS drafts (
    id          TEXT PRIMARY KEY,
    form_type   TEXT NOT NULL,
    title       TEXT NOT NULL,
    payload     TEXT DEFAULT '{}',
    created_at  TEXT DEFAULT (datetime('now')),
    updated_at  TEXT DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_drafts_form_type ON drafts(form_type);
"""


class SettingsStore:
    """
    Async SQLite store for local preferences and form drafts.

    Usage:
        store = SettingsStore()
        await store.open(Path("data/backoffice.db"))

        await store.set("display", "page_size", 50)
        size = await store.get("display", "page_size", default=20)

        draft = await store.save_draft("package", "Weekend special", {...})
        drafts = await store.list_drafts("package")

        await store.close()
    """

    def __init__(self) -> None:
        self._db: aiosqlite.Connection | None = None
        self._db_path: Path | None = None

    async def open(self, db_path: Path) -> None:
        """Open the SQLite database and ensure schema exists."""
        self._db_path = db_path
        if str(db_path) != ":memory:":
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA_SQL)
        await self._db.commit()
        logger.info(f"Settings store opened: {db_path}")

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Settings store closed")

    # =========================================================================
    # PREFERENCES
    # =========================================================================

    async def get(self, section: str, key: str, default: Any = None) -> Any:
        """Get a preference value. Returns default if not found."""
        async with self._db.execute(
            "SELECT value FROM preferences WHERE section = ? AND key = ?",
            (section, key),
        ) as cursor:
            row = await cursor.fetchone()
            if row is None:
                return default
            return json.loads(row["value"])

    async def set(self, section: str, key: str, value: Any) -> None:
        await self._db.execute(
            "INSERT OR REPLACE INTO preferences (section, key, value) VALUES (?, ?, ?)",
            (section, key, json.dumps(value)),
        )
        await self._db.commit()

    async def get_section(self, section: str) -> dict:
        """Get all key-value pairs in a section."""
        result = {}
        async with self._db.execute(
            "SELECT key, value FROM preferences WHERE section = ?",
            (section,),
        ) as cursor:
            async for row in cursor:
                result[row["key"]] = json.loads(row["value"])
        return result

    async def delete(self, section: str, key: str) -> None:
        await self._db.execute(
            "DELETE FROM preferences WHERE section = ? AND key = ?",
            (section, key),
        )
        await self._db.commit()

    # =========================================================================
    # DRAFTS
    # =========================================================================

    async def save_draft(
        self,
        form_type: str,
        title: str,
        payload: dict,
        draft_id: str | None = None,
    ) -> dict:
        """Create a draft, or overwrite the one with ``draft_id``."""
        draft_id = draft_id or uuid.uuid4().hex[:12]
        await self._db.execute(
            """INSERT INTO drafts (id, form_type, title, payload)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   form_type = excluded.form_type,
                   title = excluded.title,
                   payload = excluded.payload,
                   updated_at = datetime('now')""",
            (draft_id, form_type, title or "Untitled", json.dumps(payload)),
        )
        await self._db.commit()
        logger.info(f"Saved {form_type} draft: {draft_id}")
        return await self.get_draft(draft_id)

    async def get_draft(self, draft_id: str) -> dict | None:
        async with self._db.execute(
            "SELECT * FROM drafts WHERE id = ?",
            (draft_id,),
        ) as cursor:
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_draft(row)

    async def list_drafts(self, form_type: str | None = None) -> list[dict]:
        """List drafts, newest first, optionally filtered by form type."""
        if form_type:
            sql = "SELECT * FROM drafts WHERE form_type = ? ORDER BY updated_at DESC, id"
            params = (form_type,)
        else:
            sql = "SELECT * FROM drafts ORDER BY updated_at DESC, id"
            params = ()

        results = []
        async with self._db.execute(sql, params) as cursor:
            async for row in cursor:
                results.append(self._row_to_draft(row))
        return results

    async def delete_draft(self, draft_id: str) -> None:
        await self._db.execute("DELETE FROM drafts WHERE id = ?", (draft_id,))
        await self._db.commit()
        logger.info(f"Deleted draft: {draft_id}")

    def _row_to_draft(self, row: aiosqlite.Row) -> dict:
        return {
            "id": row["id"],
            "form_type": row["form_type"],
            "title": row["title"],
            "payload": json.loads(row["payload"]),
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }
