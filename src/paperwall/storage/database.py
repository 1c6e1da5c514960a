"""Async SQLite receipt store.

Uses ``aiosqlite`` for non-blocking database access with WAL mode and
dictionary-style row results.  Only terminal receipts are written.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import aiosqlite

from paperwall.config import DATABASE_FILENAME
from paperwall.storage.models import Receipt, ReceiptStage

logger = logging.getLogger("paperwall.storage.database")


class Database:
    """Thin async wrapper around an SQLite database.

    Parameters
    ----------
    db_path:
        Filesystem path to the SQLite database file.  The file (and any
        intermediate directories) will be created automatically on
        :meth:`connect` if they do not already exist.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn: Optional[aiosqlite.Connection] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the database connection, enable WAL mode, and run migrations."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(str(self.db_path))

        await self._conn.execute("PRAGMA journal_mode=WAL;")

        # Return rows as ``sqlite3.Row`` so we can convert to dicts easily.
        self._conn.row_factory = sqlite3.Row

        await self._migrate()

    async def close(self) -> None:
        """Close the database connection gracefully."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> Database:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    async def execute(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        """Execute a SQL statement and commit."""
        assert self._conn is not None, "Database not connected. Call connect() first."
        cursor = await self._conn.execute(sql, params)
        await self._conn.commit()
        return cursor

    async def fetch_one(self, sql: str, params: tuple = ()) -> Optional[dict]:
        """Execute a query and return the first row as a dict, or ``None``."""
        assert self._conn is not None, "Database not connected. Call connect() first."
        cursor = await self._conn.execute(sql, params)
        row = await cursor.fetchone()
        if row is None:
            return None
        return dict(row)

    async def fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        """Execute a query and return all rows as a list of dicts."""
        assert self._conn is not None, "Database not connected. Call connect() first."
        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [dict(r) for r in rows]

    # ------------------------------------------------------------------
    # Migrations
    # ------------------------------------------------------------------

    async def _migrate(self) -> None:
        """Create all required tables if they do not already exist."""
        assert self._conn is not None

        await self._conn.executescript(
            """\
            CREATE TABLE IF NOT EXISTS receipts (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT UNIQUE NOT NULL,
                timestamp TEXT NOT NULL,
                ap2_stage TEXT NOT NULL,
                url TEXT NOT NULL,
                agent_id TEXT,
                body_json TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_receipts_stage ON receipts (ap2_stage);
            CREATE INDEX IF NOT EXISTS idx_receipts_agent ON receipts (agent_id);
            """
        )
        await self._conn.commit()


# ------------------------------------------------------------------
# Receipt store
# ------------------------------------------------------------------

@dataclass(frozen=True)
class ReceiptPage:
    receipts: list[Receipt]
    total: int
    has_more: bool


@dataclass(frozen=True)
class SpendingTotals:
    """Settled spend in smallest units."""

    today: int
    lifetime: int
    count: int


class ReceiptStore:
    """Append-only receipt log on top of :class:`Database`."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def append(self, receipt: Receipt) -> None:
        """Persist a terminal receipt.  ``intent`` receipts are rejected."""
        if not receipt.is_terminal:
            raise ValueError("Only settled or declined receipts are persisted")
        await self.db.execute(
            "INSERT INTO receipts (id, timestamp, ap2_stage, url, agent_id, body_json) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                receipt.id,
                receipt.timestamp.isoformat(),
                receipt.ap2_stage.value,
                receipt.url,
                receipt.agent_id,
                receipt.model_dump_json(),
            ),
        )
        logger.info(f"Receipt {receipt.id} stored ({receipt.ap2_stage.value})")

    async def get(self, receipt_id: str) -> Optional[Receipt]:
        row = await self.db.fetch_one(
            "SELECT body_json FROM receipts WHERE id = ?", (receipt_id,)
        )
        if row is None:
            return None
        return Receipt.model_validate_json(row["body_json"])

    async def list_receipts(
        self,
        stage: Optional[ReceiptStage] = None,
        agent_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> ReceiptPage:
        """Newest first, optionally filtered by stage and agent."""
        where: list[str] = []
        params: list = []
        if stage is not None:
            where.append("ap2_stage = ?")
            params.append(ReceiptStage(stage).value)
        if agent_id is not None:
            where.append("agent_id = ?")
            params.append(agent_id)
        clause = f" WHERE {' AND '.join(where)}" if where else ""

        count_row = await self.db.fetch_one(
            f"SELECT COUNT(*) AS n FROM receipts{clause}", tuple(params)
        )
        total = count_row["n"] if count_row else 0

        rows = await self.db.fetch_all(
            f"SELECT body_json FROM receipts{clause} ORDER BY seq DESC LIMIT ? OFFSET ?",
            tuple(params) + (limit, offset),
        )
        receipts = [Receipt.model_validate_json(r["body_json"]) for r in rows]
        return ReceiptPage(receipts=receipts, total=total, has_more=offset + limit < total)

    async def spending_totals(self, day_start: datetime) -> SpendingTotals:
        """Sum settled amounts, overall and since *day_start* (timezone-aware)."""
        rows = await self.db.fetch_all(
            "SELECT body_json FROM receipts WHERE ap2_stage = ?",
            (ReceiptStage.SETTLED.value,),
        )
        today = lifetime = 0
        for row in rows:
            receipt = Receipt.model_validate_json(row["body_json"])
            amount = int(receipt.settlement.amount)
            lifetime += amount
            if receipt.timestamp >= day_start:
                today += amount
        return SpendingTotals(today=today, lifetime=lifetime, count=len(rows))


# ------------------------------------------------------------------
# Convenience factory
# ------------------------------------------------------------------

def get_database(config_dir: Path) -> Database:
    """Return a :class:`Database` instance pointing at ``config_dir/paperwall.db``.

    The caller is responsible for calling :meth:`Database.connect` before
    using the returned instance.
    """
    return Database(Path(config_dir) / DATABASE_FILENAME)
