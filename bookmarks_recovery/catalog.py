"""SQLite catalog of recovered bookmarks documents."""
import aiosqlite
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List, Dict, Any

from bookmarks_recovery.config import get_config
from bookmarks_recovery.report import MatchInfo


# Default database location
DEFAULT_DB_PATH = Path.home() / ".bookmarks-recovery" / "catalog.db"


class RecoveryCatalog:
    """Async SQLite store recording where verified documents were carved from.

    A match is identified by its input path and absolute offset; recording
    the same match twice updates the existing row.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the catalog.

        Args:
            db_path: Path to SQLite database. Defaults to ~/.bookmarks-recovery/catalog.db
        """
        self.db_path = db_path or DEFAULT_DB_PATH
        self._connection: Optional[aiosqlite.Connection] = None

    async def initialize(self) -> None:
        """Initialize the database, creating tables if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS recovered_documents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                input_path TEXT NOT NULL,
                match_offset INTEGER NOT NULL,
                match_length INTEGER NOT NULL,
                checksum TEXT NOT NULL,
                bar_guid TEXT,
                folders INTEGER NOT NULL,
                urls INTEGER NOT NULL,
                latest INTEGER NOT NULL,
                output TEXT,
                recorded_at TEXT NOT NULL,
                UNIQUE(input_path, match_offset)
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_recovered_checksum
            ON recovered_documents(checksum)
        """)

        await self._connection.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if not self._connection:
            raise RuntimeError("Catalog not initialized. Call initialize() first.")
        return self._connection

    async def record_match(self, info: MatchInfo) -> int:
        """Insert or update the record for a carved document.

        Args:
            info: Report for the match

        Returns:
            ID of the catalog row
        """
        conn = self._require_connection()
        now = datetime.now(timezone.utc).isoformat()

        await conn.execute("""
            INSERT INTO recovered_documents
                (input_path, match_offset, match_length, checksum, bar_guid, folders, urls, latest, output, recorded_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(input_path, match_offset) DO UPDATE SET
                match_length = excluded.match_length,
                checksum = excluded.checksum,
                bar_guid = excluded.bar_guid,
                folders = excluded.folders,
                urls = excluded.urls,
                latest = excluded.latest,
                output = COALESCE(excluded.output, output),
                recorded_at = excluded.recorded_at
        """, (
            info.input_path,
            info.offset,
            info.length,
            info.checksum,
            info.bar_guid or None,
            info.folders,
            info.urls,
            info.latest.value,
            info.output,
            now,
        ))
        await conn.commit()

        cursor = await conn.execute(
            "SELECT id FROM recovered_documents WHERE input_path = ? AND match_offset = ?",
            (info.input_path, info.offset),
        )
        row = await cursor.fetchone()
        return row["id"]

    async def get_matches(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Get recorded matches, most recently recorded first."""
        conn = self._require_connection()

        cursor = await conn.execute(
            "SELECT * FROM recovered_documents ORDER BY recorded_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        rows = await cursor.fetchall()

        return [dict(row) for row in rows]

    async def get_by_checksum(self, checksum: str) -> List[Dict[str, Any]]:
        """Get every recorded copy of a document, ordered by input and offset."""
        conn = self._require_connection()

        cursor = await conn.execute(
            "SELECT * FROM recovered_documents WHERE checksum = ? ORDER BY input_path, match_offset",
            (checksum,),
        )
        rows = await cursor.fetchall()

        return [dict(row) for row in rows]

    async def delete_match(self, match_id: int) -> bool:
        """Delete a record.

        Returns:
            True if deleted, False if not found
        """
        conn = self._require_connection()

        cursor = await conn.execute(
            "DELETE FROM recovered_documents WHERE id = ?",
            (match_id,),
        )
        await conn.commit()

        return cursor.rowcount > 0


# Global catalog instance
_catalog: Optional[RecoveryCatalog] = None


async def get_catalog() -> RecoveryCatalog:
    """Get or create the global catalog instance.

    Returns:
        Initialized RecoveryCatalog
    """
    global _catalog

    if _catalog is None:
        _catalog = RecoveryCatalog(get_config().catalog_db_path)
        await _catalog.initialize()

    return _catalog
