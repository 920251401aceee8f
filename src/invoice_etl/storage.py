"""invoice_etl.storage

Row-storage collaborator for the commit service.

Two operations are needed:
  - upsert(table, rows, on_conflict): one all-or-nothing multi-row
    INSERT ... ON CONFLICT DO UPDATE per call, returning the affected count.
  - fetch_clients(owner_id): every (id, email) pair for an owner, unpaginated.
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence

import psycopg
from psycopg import sql


class RowStore(Protocol):
    def upsert(
        self,
        table: str,
        rows: list[dict[str, Any]],
        on_conflict: Sequence[str],
    ) -> int:
        ...

    def fetch_clients(self, owner_id: str) -> list[tuple[str, str | None]]:
        ...


def build_upsert_query(
    table: str,
    columns: list[str],
    row_count: int,
    on_conflict: Sequence[str],
) -> sql.Composed:
    """Compose a multi-row upsert with every non-conflict column updated."""
    row_placeholders = sql.SQL("({})").format(
        sql.SQL(", ").join(sql.Placeholder() * len(columns))
    )
    updates = [c for c in columns if c not in on_conflict]
    if updates:
        action = sql.SQL("DO UPDATE SET {}").format(
            sql.SQL(", ").join(
                sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(c))
                for c in updates
            )
        )
    else:
        action = sql.SQL("DO NOTHING")
    return sql.SQL(
        "INSERT INTO {table} ({columns}) VALUES {values} "
        "ON CONFLICT ({conflict}) {action}"
    ).format(
        table=sql.Identifier(table),
        columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        values=sql.SQL(", ").join([row_placeholders] * row_count),
        conflict=sql.SQL(", ").join(sql.Identifier(c) for c in on_conflict),
        action=action,
    )


class PostgresRowStore:
    """RowStore over a psycopg connection opened with autocommit=False.

    Each upsert commits on success and rolls back on any error, so one call
    is one transaction.
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def upsert(
        self,
        table: str,
        rows: list[dict[str, Any]],
        on_conflict: Sequence[str],
    ) -> int:
        if not rows:
            return 0
        columns = list(rows[0].keys())
        query = build_upsert_query(table, columns, len(rows), on_conflict)
        params = [row.get(c) for row in rows for c in columns]
        try:
            cur = self._conn.execute(query, params)
            count = cur.rowcount
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise
        return count

    def fetch_clients(self, owner_id: str) -> list[tuple[str, str | None]]:
        try:
            rows = self._conn.execute(
                "SELECT id, email FROM clients WHERE owner_id = %s",
                (owner_id,),
            ).fetchall()
        except Exception:
            self._conn.rollback()
            raise
        return [(str(r[0]), r[1]) for r in rows]


def connect(db_dsn: str) -> psycopg.Connection:
    return psycopg.connect(db_dsn, autocommit=False)
