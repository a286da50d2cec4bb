from __future__ import annotations

from typing import Optional

import psycopg2
import psycopg2.errors

from domain.errors import DuplicateExternalIdError
from domain.models import IdentityBinding
from domain.repositories import IdentityBindingRepository


_COLUMNS = "requester_id, requester_label, external_id, external_label, created_at, updated_at"
_EXTERNAL_ID_CONSTRAINT = "identity_bindings_external_id_key"


class PostgresIdentityBindingRepository(IdentityBindingRepository):
    """
    Postgres-backed implementation of `IdentityBindingRepository`.

    Uses the same `identity_bindings` schema as the SQLite repository.
    The UNIQUE constraint on `external_id` is named explicitly so that a
    violation can be told apart from any other integrity error.
    """

    def __init__(self, db_params: dict) -> None:
        self._db_params = db_params
        self._ensure_table()

    def _get_connection(self):
        return psycopg2.connect(**self._db_params)

    def _ensure_table(self) -> None:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS identity_bindings (
                        requester_id TEXT PRIMARY KEY,
                        requester_label TEXT NOT NULL,
                        external_id TEXT NOT NULL,
                        external_label TEXT,
                        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                        CONSTRAINT {_EXTERNAL_ID_CONSTRAINT} UNIQUE (external_id)
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
    def _to_domain(row: tuple) -> IdentityBinding:
        return IdentityBinding(
            requester_id=str(row[0]),
            requester_label=row[1],
            external_id=row[2],
            external_label=row[3],
            created_at=row[4],
            updated_at=row[5],
        )

    def _fetch_one(self, where: str, params: tuple) -> Optional[IdentityBinding]:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM identity_bindings WHERE {where}", params)
                row = cur.fetchone()
                if not row:
                    return None
                return self._to_domain(row)

    def find_by_requester_id(self, requester_id: str) -> Optional[IdentityBinding]:
        return self._fetch_one("requester_id = %s", (requester_id,))

    def find_by_external_id(self, external_id: str) -> Optional[IdentityBinding]:
        return self._fetch_one("external_id = %s", (external_id,))

    def find_by_requester_label(self, requester_label: str) -> Optional[IdentityBinding]:
        return self._fetch_one(
            "requester_label = %s ORDER BY updated_at DESC LIMIT 1",
            (requester_label,),
        )

    def upsert_binding(
        self,
        requester_id: str,
        requester_label: str,
        external_id: str,
        external_label: Optional[str],
    ) -> IdentityBinding:
        try:
            with self._get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        INSERT INTO identity_bindings
                            (requester_id, requester_label, external_id, external_label)
                        VALUES (%s, %s, %s, %s)
                        ON CONFLICT (requester_id) DO UPDATE SET
                            requester_label = EXCLUDED.requester_label,
                            external_id = EXCLUDED.external_id,
                            external_label = EXCLUDED.external_label,
                            updated_at = now()
                        RETURNING {_COLUMNS}
                        """,
                        (requester_id, requester_label, external_id, external_label),
                    )
                    row = cur.fetchone()
                    conn.commit()
        except psycopg2.errors.UniqueViolation as exc:
            if exc.diag.constraint_name == _EXTERNAL_ID_CONSTRAINT:
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
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        UPDATE identity_bindings
                        SET external_id = %s, external_label = %s, updated_at = now()
                        WHERE requester_id = %s
                        RETURNING {_COLUMNS}
                        """,
                        (external_id, external_label, requester_id),
                    )
                    row = cur.fetchone()
                    conn.commit()
        except psycopg2.errors.UniqueViolation as exc:
            if exc.diag.constraint_name == _EXTERNAL_ID_CONSTRAINT:
                raise DuplicateExternalIdError(external_id) from exc
            raise
        if not row:
            return None
        return self._to_domain(row)

    def delete_by_external_id(self, external_id: str) -> bool:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM identity_bindings WHERE external_id = %s",
                    (external_id,),
                )
                conn.commit()
                return cur.rowcount > 0
