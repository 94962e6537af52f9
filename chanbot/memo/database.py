"""SQLite storage for memos.

All sqlite3 calls run in a worker thread through asyncio.to_thread so
handler tasks never block the event loop. Every sqlite3.Error is
re-raised as DatabaseError.
"""

import asyncio
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog

from ..exceptions import DatabaseError
from .models import Memo

logger = structlog.get_logger("chanbot.memo")

TABLE = "Memo"


class MemoDatabase:
    """Manages the memo table.

    Args:
        db_path: SQLite file. ``":memory:"`` is accepted for tests.
    """

    def __init__(self, db_path):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        # One connection shared by worker threads
        self._lock = threading.Lock()

    async def initialize(self) -> None:
        """Open the database and create the memo table if necessary."""
        await asyncio.to_thread(self._initialize_sync)

    def _initialize_sync(self) -> None:
        if str(self.db_path) != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {TABLE} (
                    id INTEGER NOT NULL PRIMARY KEY,
                    user_to TEXT,
                    user_from TEXT,
                    message TEXT,
                    date DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)
            self._conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(
                "Could not initialize memo table",
                operation="create", table=TABLE, cause=str(e),
            ) from e
        logger.info("memo_database_initialized", path=str(self.db_path))

    async def close(self) -> None:
        if self._conn is not None:
            await asyncio.to_thread(self._conn.close)
            self._conn = None

    async def add_memo(self, user_to: str, user_from: str, message: str) -> Memo:
        """Store a memo and return it with its id."""
        return await asyncio.to_thread(self._add_memo_sync, user_to, user_from, message)

    async def pop_memos_for(self, user_to: str) -> List[Memo]:
        """Return and delete every memo addressed to ``user_to``, oldest first."""
        return await asyncio.to_thread(self._pop_memos_sync, user_to)

    async def memos_from(self, user_from: str) -> List[Memo]:
        """Unread memos left by ``user_from``, oldest first."""
        return await asyncio.to_thread(self._memos_from_sync, user_from)

    def _require(self) -> sqlite3.Connection:
        if self._conn is None:
            raise DatabaseError("Memo database not initialized", table=TABLE)
        return self._conn

    def _add_memo_sync(self, user_to: str, user_from: str, message: str) -> Memo:
        conn = self._require()
        with self._lock:
            try:
                with conn:
                    cursor = conn.execute(
                        f"INSERT INTO {TABLE} (user_to, user_from, message) VALUES (?, ?, ?)",
                        (user_to, user_from, message),
                    )
                    row = conn.execute(
                        f"SELECT * FROM {TABLE} WHERE id = ?", (cursor.lastrowid,)
                    ).fetchone()
            except sqlite3.Error as e:
                raise DatabaseError(
                    "Could not save memo", operation="insert", table=TABLE,
                    user_to=user_to, cause=str(e),
                ) from e
        return self._row_to_memo(row)

    def _pop_memos_sync(self, user_to: str) -> List[Memo]:
        conn = self._require()
        with self._lock:
            try:
                with conn:
                    rows = conn.execute(
                        f"SELECT * FROM {TABLE} WHERE user_to = ? ORDER BY id",
                        (user_to,),
                    ).fetchall()
                    if rows:
                        conn.executemany(
                            f"DELETE FROM {TABLE} WHERE id = ?",
                            [(row["id"],) for row in rows],
                        )
            except sqlite3.Error as e:
                raise DatabaseError(
                    "Could not deliver memos", operation="delete", table=TABLE,
                    user_to=user_to, cause=str(e),
                ) from e
        return [self._row_to_memo(row) for row in rows]

    def _memos_from_sync(self, user_from: str) -> List[Memo]:
        conn = self._require()
        with self._lock:
            try:
                rows = conn.execute(
                    f"SELECT * FROM {TABLE} WHERE user_from = ? ORDER BY id",
                    (user_from,),
                ).fetchall()
            except sqlite3.Error as e:
                raise DatabaseError(
                    "Could not list memos", operation="query", table=TABLE,
                    user_from=user_from, cause=str(e),
                ) from e
        return [self._row_to_memo(row) for row in rows]

    @staticmethod
    def _row_to_memo(row: sqlite3.Row) -> Memo:
        created = row["date"]
        if isinstance(created, str):
            created = datetime.fromisoformat(created)
        return Memo(
            id=row["id"],
            user_to=row["user_to"],
            user_from=row["user_from"],
            message=row["message"],
            created_at=created,
        )
