from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from domain.models import AllowListEntry
from domain.repositories import AllowListRepository


class SqliteAllowListRepository(AllowListRepository):
    """
    SQLite-backed implementation of `AllowListRepository`.

    The surrogate `seq` column records insertion order; upserts keep the
    existing row so a re-added player does not move down the list.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._ensure_table()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _ensure_table(self) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS allow_list (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    external_id TEXT NOT NULL UNIQUE,
                    external_label TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()

    @staticmethod
    def _to_domain(row: tuple) -> AllowListEntry:
        return AllowListEntry(
            external_id=row[0],
            external_label=row[1],
            created_at=datetime.fromisoformat(row[2]),
            updated_at=datetime.fromisoformat(row[3]),
        )

    def add(self, external_id: str, external_label: Optional[str]) -> AllowListEntry:
        now = datetime.now(timezone.utc).isoformat()
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO allow_list (external_id, external_label, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (external_id) DO UPDATE SET
                    external_label = excluded.external_label,
                    updated_at = excluded.updated_at
                """,
                (external_id, external_label, now, now),
            )
            cur.execute(
                """
                SELECT external_id, external_label, created_at, updated_at
                FROM allow_list
                WHERE external_id = ?
                """,
                (external_id,),
            )
            row = cur.fetchone()
            conn.commit()
            return self._to_domain(row)

    def remove(self, external_id: str) -> bool:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute("DELETE FROM allow_list WHERE external_id = ?", (external_id,))
            conn.commit()
            return cur.rowcount > 0

    def get(self, external_id: str) -> Optional[AllowListEntry]:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT external_id, external_label, created_at, updated_at
                FROM allow_list
                WHERE external_id = ?
                """,
                (external_id,),
            )
            row = cur.fetchone()
            if not row:
                return None
            return self._to_domain(row)

    def contains(self, external_id: str) -> bool:
        return self.get(external_id) is not None

    def list_entries(self) -> List[AllowListEntry]:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT external_id, external_label, created_at, updated_at
                FROM allow_list
                ORDER BY seq
                """
            )
            return [self._to_domain(row) for row in cur.fetchall()]
