"""Unit test fixtures: an in-memory RowStore."""

from __future__ import annotations

import pytest


class FakeRowStore:
    """Keeps upserted rows keyed by their conflict columns, like the real tables."""

    def __init__(self) -> None:
        self.clients: list[tuple[str, str, str]] = []  # (owner_id, id, email)
        self.tables: dict[str, dict[tuple, dict]] = {"clients": {}, "invoices": {}}
        self.calls: list[tuple[str, int, tuple[str, ...]]] = []
        self.fetch_count = 0
        self.fail_with: Exception | None = None

    def add_client(self, owner_id: str, client_id: str, email: str) -> None:
        self.clients.append((owner_id, client_id, email))

    def upsert(self, table, rows, on_conflict):
        self.calls.append((table, len(rows), tuple(on_conflict)))
        if self.fail_with is not None:
            raise self.fail_with
        for row in rows:
            key = tuple(row[c] for c in on_conflict)
            self.tables[table][key] = dict(row)
        return len(rows)

    def fetch_clients(self, owner_id):
        self.fetch_count += 1
        return [(cid, email) for owner, cid, email in self.clients if owner == owner_id]


@pytest.fixture
def fake_store():
    return FakeRowStore()
