"""SQLite repository for per-file import state."""
from __future__ import annotations

import aiosqlite

from observer.db.repositories.base import store_errors


class SqliteImportStateRepository:
    """Track imported session files for incremental re-runs."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    @store_errors
    async def get_state(self, source: str, file_path: str) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM import_state WHERE source = ? AND file_path = ?",
            (source, file_path),
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    @store_errors
    async def upsert_state(self, state: dict) -> None:
        await self.db.execute(
            """INSERT INTO import_state (source, file_path, file_hash, imported_at, record_count)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(source, file_path) DO UPDATE SET
                 file_hash=excluded.file_hash, imported_at=excluded.imported_at,
                 record_count=excluded.record_count""",
            (
                state["source"], state["file_path"], state["file_hash"],
                state["imported_at"], state.get("record_count", 0),
            ),
        )
        await self.db.commit()

    @store_errors
    async def list_by_source(self, source: str) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM import_state WHERE source = ? ORDER BY file_path", (source,)
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    @store_errors
    async def delete_by_source(self, source: str) -> int:
        cur = await self.db.execute("DELETE FROM import_state WHERE source = ?", (source,))
        deleted = cur.rowcount if cur.rowcount is not None and cur.rowcount >= 0 else 0
        await cur.close()
        await self.db.commit()
        return deleted

    @store_errors
    async def count_by_source(self) -> dict[str, int]:
        async with self.db.execute(
            "SELECT source, COUNT(*) AS files FROM import_state GROUP BY source"
        ) as cur:
            return {row["source"]: int(row["files"]) for row in await cur.fetchall()}
