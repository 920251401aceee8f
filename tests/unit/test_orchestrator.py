"""Unit tests for invoice_etl.orchestrator."""

from datetime import date
from decimal import Decimal

import pytest

from invoice_etl.commit_client import LocalCommitClient
from invoice_etl.commit_service import (
    CommitResponse,
    CommitService,
    RowError,
    StorageError,
)
from invoice_etl.orchestrator import (
    BATCH_SIZE,
    NO_VALID_ROWS_MESSAGE,
    ImportInProgressError,
    ImportOrchestrator,
    partition,
    to_payload_row,
)
from invoice_etl.schema_registry import get_schema

CLIENTS = get_schema("clients")
INVOICES = get_schema("invoices")
CLIENT_MAPPING = {"Name": "name", "Email": "email"}


def _clients(n, start=0):
    return [{"Name": f"Client {i}", "Email": f"c{i}@x.com"} for i in range(start, start + n)]


class RecordingClient:
    """Returns len(rows) successes; raises for batch numbers in fail_batches."""

    def __init__(self, fail_batches=()):
        self.bodies = []
        self.fail_batches = set(fail_batches)

    def commit(self, body):
        self.bodies.append(body)
        if len(self.bodies) in self.fail_batches:
            raise StorageError("Failed to upsert clients", details="boom")
        return CommitResponse("ok", len(body["rows"]))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestPartition:
    def test_totality_and_order(self):
        rows = list(range(1201))
        batches = list(partition(rows, 500))
        assert [offset for offset, _ in batches] == [0, 500, 1000]
        assert [len(b) for _, b in batches] == [500, 500, 201]
        assert [x for _, b in batches for x in b] == rows

    def test_empty(self):
        assert list(partition([], 500)) == []

    def test_bad_size(self):
        with pytest.raises(ValueError):
            list(partition([1], 0))


class TestToPayloadRow:
    def test_dates_and_amounts(self):
        row = {
            "issue_date": date(2025, 3, 1),
            "subtotal": Decimal("1000.00"),
            "total": Decimal("1080.5"),
            "notes": None,
            "status": "sent",
        }
        assert to_payload_row(row) == {
            "issue_date": "2025-03-01T00:00:00.000Z",
            "subtotal": 1000,
            "total": 1080.5,
            "notes": None,
            "status": "sent",
        }


# ---------------------------------------------------------------------------
# run_import
# ---------------------------------------------------------------------------

class TestRunImport:
    def test_batches_cover_every_valid_row_once(self):
        client = RecordingClient()
        result = ImportOrchestrator(client).run_import(
            _clients(1201), CLIENT_MAPPING, CLIENTS, "clients"
        )
        assert [len(b["rows"]) for b in client.bodies] == [BATCH_SIZE, BATCH_SIZE, 201]
        emails = [r["email"] for b in client.bodies for r in b["rows"]]
        assert emails == [f"c{i}@x.com" for i in range(1201)]
        assert all(b["type"] == "clients" for b in client.bodies)
        assert result.success_count == 1201
        assert result.errors == []

    def test_invalid_rows_skipped(self):
        rows = _clients(3)
        rows[1]["Email"] = "not-an-email"
        client = RecordingClient()
        result = ImportOrchestrator(client).run_import(rows, CLIENT_MAPPING, CLIENTS, "clients")
        assert result.skipped_validation_count == 1
        assert result.success_count == 2
        assert result.validation_errors == {1: {"email": "Invalid email format"}}
        assert [r["email"] for r in client.bodies[0]["rows"]] == ["c0@x.com", "c2@x.com"]

    def test_no_valid_rows_short_circuits(self):
        rows = [{"Name": "", "Email": ""}]
        client = RecordingClient()
        result = ImportOrchestrator(client).run_import(rows, CLIENT_MAPPING, CLIENTS, "clients")
        assert client.bodies == []
        assert result.success_count == 0
        assert result.errors == [NO_VALID_ROWS_MESSAGE]
        assert result.batches_attempted == 0

    def test_failed_batch_does_not_stop_later_batches(self):
        client = RecordingClient(fail_batches={2})
        result = ImportOrchestrator(client, batch_size=10).run_import(
            _clients(25), CLIENT_MAPPING, CLIENTS, "clients"
        )
        assert len(client.bodies) == 3
        assert result.success_count == 15
        assert result.batches_failed == 1
        assert result.errors == [
            "Error processing batch starting at row 11: Failed to upsert clients"
        ]

    def test_unexpected_exception_recorded(self):
        class Broken:
            def commit(self, body):
                raise ConnectionError("socket closed")

        result = ImportOrchestrator(Broken()).run_import(
            _clients(2), CLIENT_MAPPING, CLIENTS, "clients"
        )
        assert result.errors == [
            "Error processing batch starting at row 1: socket closed"
        ]

    def test_progress_is_cumulative(self):
        seen = []
        ImportOrchestrator(RecordingClient(fail_batches={1}), batch_size=2, on_progress=seen.append).run_import(
            _clients(5), CLIENT_MAPPING, CLIENTS, "clients"
        )
        assert [(p.rows_attempted, p.success_count) for p in seen] == [(2, 0), (4, 2), (5, 3)]
        assert all(p.batch_count == 3 and p.total_rows == 5 for p in seen)

    def test_single_flight(self):
        outcomes = []

        class Reentrant:
            def commit(self, body):
                with pytest.raises(ImportInProgressError):
                    orchestrator.run_import(_clients(1), CLIENT_MAPPING, CLIENTS, "clients")
                outcomes.append("blocked")
                return CommitResponse("ok", len(body["rows"]))

        orchestrator = ImportOrchestrator(Reentrant())
        result = orchestrator.run_import(_clients(1), CLIENT_MAPPING, CLIENTS, "clients")
        assert outcomes == ["blocked"]
        assert result.success_count == 1
        assert not orchestrator.running


# ---------------------------------------------------------------------------
# Row errors from the commit service
# ---------------------------------------------------------------------------

INVOICE_MAPPING = {
    "Invoice Number": "invoice_number",
    "Client Email": "client_email",
    "Issue Date": "issue_date",
    "Due Date": "due_date",
    "Subtotal": "subtotal",
    "Total": "total",
}


def _invoice_csv_row(number, email, total="100"):
    return {
        "Invoice Number": number,
        "Client Email": email,
        "Issue Date": "2025-03-01",
        "Due Date": "2025-03-31",
        "Subtotal": "100",
        "Total": total,
    }


class TestInvoiceRowErrors:
    def test_row_indexes_refer_to_file_rows(self, fake_store):
        fake_store.add_client("owner-1", "id1", "a@x.com")
        rows = [
            _invoice_csv_row("INV-0", "a@x.com", total="oops"),
            _invoice_csv_row("INV-1", "a@x.com"),
            _invoice_csv_row("INV-2", "b@x.com"),
        ]
        client = LocalCommitClient(CommitService(fake_store, "owner-1"))
        result = ImportOrchestrator(client).run_import(rows, INVOICE_MAPPING, INVOICES, "invoices")
        assert result.success_count == 1
        assert result.skipped_validation_count == 1
        assert result.error_rows == [RowError(2, "Client with email 'b@x.com' not found.")]

    def test_unresolved_batch_rows_merged(self, fake_store):
        rows = [_invoice_csv_row("INV-1", "b@x.com")]
        client = LocalCommitClient(CommitService(fake_store, "owner-1"))
        result = ImportOrchestrator(client).run_import(rows, INVOICE_MAPPING, INVOICES, "invoices")
        assert result.success_count == 0
        assert result.errors == [
            "Error processing batch starting at row 1: "
            "Invoice import failed: Could not resolve client emails for any rows."
        ]
        assert result.error_rows == [RowError(0, "Client with email 'b@x.com' not found.")]
