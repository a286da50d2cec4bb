from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from domain.errors import DuplicateExternalIdError
from domain.models import IdentityBinding
from domain.repositories import IdentityBindingRepository


_COLUMNS = "requester_id, requester_label, external_id, external_label, created_at, updated_at"


class SqliteIdentityBindingRepository(IdentityBindingRepository):
    """
    SQLite-backed implementation of `IdentityBindingRepository`.

    Owns the `identity_bindings` table. `requester_id` is the primary key
    and `external_id` carries a UNIQUE constraint, so both uniqueness rules
    are enforced by SQLite at the moment of the write.
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
                CREATE TABLE IF NOT EXISTS identity_bindings (
                    requester_id TEXT PRIMARY KEY,
                    requester_label TEXT NOT NULL,
                    external_id TEXT NOT NULL UNIQUE,
                    external_label TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE INDEX IF NOT EXISTS identity_bindings_requester_label
                ON identity_bindings (requester_label)
                """
            )
            conn.commit()

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _to_domain(row: tuple) -> IdentityBinding:
        return IdentityBinding(
            requester_id=str(row[0]),
            requester_label=row[1],
            external_id=row[2],
            external_label=row[3],
            created_at=datetime.fromisoformat(row[4]),
            updated_at=datetime.fromisoformat(row[5]),
        )

    @staticmethod
    def _is_external_id_violation(exc: sqlite3.IntegrityError) -> bool:
        return "identity_bindings.external_id" in str(exc)

    def _fetch_one(self, where: str, params: tuple) -> Optional[IdentityBinding]:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(f"SELECT {_COLUMNS} FROM identity_bindings WHERE {where}", params)
            row = cur.fetchone()
            if not row:
                return None
            return self._to_domain(row)

    def find_by_requester_id(self, requester_id: str) -> Optional[IdentityBinding]:
        return self._fetch_one("requester_id = ?", (requester_id,))

    def find_by_external_id(self, external_id: str) -> Optional[IdentityBinding]:
        return self._fetch_one("external_id = ?", (external_id,))

    def find_by_requester_label(self, requester_label: str) -> Optional[IdentityBinding]:
        return self._fetch_one(
            "requester_label = ? ORDER BY updated_at DESC LIMIT 1",
            (requester_label,),
        )

    def upsert_binding(
        self,
        requester_id: str,
        requester_label: str,
        external_id: str,
        external_label: Optional[str],
    ) -> IdentityBinding:
        now = self._now()
        try:
            with self._get_connection() as conn:
                cur = conn.cursor()
                cur.execute(
                    f"""
                    INSERT INTO identity_bindings ({_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT (requester_id) DO UPDATE SET
                        requester_label = excluded.requester_label,
                        external_id = excluded.external_id,
                        external_label = excluded.external_label,
                        updated_at = excluded.updated_at
                    """,
                    (requester_id, requester_label, external_id, external_label, now, now),
                )
                cur.execute(
                    f"SELECT {_COLUMNS} FROM identity_bindings WHERE requester_id = ?",
                    (requester_id,),
                )
                row = cur.fetchone()
                conn.commit()
        except sqlite3.IntegrityError as exc:
            if self._is_external_id_violation(exc):
                raise DuplicateExternalIdError(external_id) from exc
            raise
        return self._to_domain(row)

    def replace_external_id(
        self,
        requester_id: str,
        external_id: str,
        external_label: Optional[str],
    ) -> Optional[IdentityBinding]:
        try:
            with self._get_connection() as conn:
                cur = conn.cursor()
                cur.execute(
                    """
                    UPDATE identity_bindings
                    SET external_id = ?, external_label = ?, updated_at = ?
                    WHERE requester_id = ?
                    """,
                    (external_id, external_label, self._now(), requester_id),
                )
                if cur.rowcount == 0:
                    return None
                cur.execute(
                    f"SELECT {_COLUMNS} FROM identity_bindings WHERE requester_id = ?",
                    (requester_id,),
                )
                row = cur.fetchone()
                conn.commit()
        except sqlite3.IntegrityError as exc:
            if self._is_external_id_violation(exc):
                raise DuplicateExternalIdError(external_id) from exc
            raise
        return self._to_domain(row)

    def delete_by_external_id(self, external_id: str) -> bool:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                "DELETE FROM identity_bindings WHERE external_id = ?",
                (external_id,),
            )
            conn.commit()
            return cur.rowcount > 0
