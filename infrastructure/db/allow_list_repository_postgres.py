from __future__ import annotations

from typing import List, Optional

import psycopg2

from domain.models import AllowListEntry
from domain.repositories import AllowListRepository


class PostgresAllowListRepository(AllowListRepository):
    """Postgres-backed implementation of `AllowListRepository`."""

    def __init__(self, db_params: dict) -> None:
        self._db_params = db_params
        self._ensure_table()

    def _get_connection(self):
        return psycopg2.connect(**self._db_params)

    def _ensure_table(self) -> None:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS allow_list (
                        seq BIGSERIAL PRIMARY KEY,
                        external_id TEXT NOT NULL UNIQUE,
                        external_label TEXT,
                        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                    )
                    """
                )
                conn.commit()

    @staticmethod
    def _to_domain(row: tuple) -> AllowListEntry:
        return AllowListEntry(
            external_id=row[0],
            external_label=row[1],
            created_at=row[2],
            updated_at=row[3],
        )

    def add(self, external_id: str, external_label: Optional[str]) -> AllowListEntry:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO allow_list (external_id, external_label)
                    VALUES (%s, %s)
                    ON CONFLICT (external_id) DO UPDATE SET
                        external_label = EXCLUDED.external_label,
                        updated_at = now()
                    RETURNING external_id, external_label, created_at, updated_at
                    """,
                    (external_id, external_label),
                )
                row = cur.fetchone()
                conn.commit()
                return self._to_domain(row)

    def remove(self, external_id: str) -> bool:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM allow_list WHERE external_id = %s", (external_id,))
                conn.commit()
                return cur.rowcount > 0

    def get(self, external_id: str) -> Optional[AllowListEntry]:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT external_id, external_label, created_at, updated_at
                    FROM allow_list
                    WHERE external_id = %s
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
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT external_id, external_label, created_at, updated_at
                    FROM allow_list
                    ORDER BY seq
                    """
                )
                return [self._to_domain(row) for row in cur.fetchall()]
