"""invoice_etl.commit_service

Server side of the commit endpoint: validates one batch body and writes it
through a RowStore.

clients path
  One upsert against ``clients`` keyed on (owner_id, email).  No row-level
  detail: the whole call succeeds or fails.

invoices path
  1. Fetch a fresh client-email index for the owner (once per call).
  2. Resolve each row's client_email case-insensitively to a client id;
     unresolved rows are reported and excluded from the write set.
  3. Nothing resolvable -> UnresolvedClientsError (HTTP 400), no write.
  4. Otherwise one upsert against ``invoices`` keyed on
     (owner_id, invoice_number).

Failures surface as CommitError subclasses carrying an HTTP status and the
JSON body the endpoint returns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import psycopg
from pydantic import ValidationError

from invoice_etl.normalize import normalize_email
from invoice_etl.payloads import (
    IMPORT_PAYLOAD,
    ClientImportPayload,
    ClientImportRow,
    InvoiceImportRow,
)
from invoice_etl.storage import RowStore

log = logging.getLogger(__name__)

CLIENTS_TABLE = "clients"
INVOICES_TABLE = "invoices"
CLIENTS_CONFLICT = ("owner_id", "email")
INVOICES_CONFLICT = ("owner_id", "invoice_number")

UNRESOLVED_MESSAGE = (
    "Invoice import failed: Could not resolve client emails for any rows."
)


# ---------------------------------------------------------------------------
# Response types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RowError:
    row_index: int
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"rowIndex": self.row_index, "error": self.error}


@dataclass
class CommitResponse:
    message: str
    success_count: int = 0
    error_rows: list[RowError] = field(default_factory=list)

    def to_body(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "successCount": self.success_count,
            "errorRows": [e.to_dict() for e in self.error_rows],
        }


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class CommitError(Exception):
    """A batch that could not be committed as a whole."""

    status_code = 500

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_rows: list[RowError] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.error_rows = list(error_rows or [])

    def to_body(self) -> dict[str, Any]:
        return {"error": self.message}


class PayloadValidationError(CommitError):
    status_code = 400

    def __init__(self, details: list[dict[str, Any]]) -> None:
        super().__init__("Invalid request body")
        self.details = details

    def to_body(self) -> dict[str, Any]:
        return {"error": self.message, "details": self.details}


class UnresolvedClientsError(CommitError):
    status_code = 400

    def __init__(self, error_rows: list[RowError]) -> None:
        super().__init__(UNRESOLVED_MESSAGE, error_rows=error_rows)

    def to_body(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "successCount": 0,
            "errorRows": [e.to_dict() for e in self.error_rows],
        }


class StorageError(CommitError):
    status_code = 500

    def __init__(
        self,
        message: str,
        details: str | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details
        self.code = code

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        if self.code is not None:
            body["code"] = self.code
        return body


class TransportError(CommitError):
    """Non-2xx response or network failure talking to a remote endpoint."""


# ---------------------------------------------------------------------------
# Client resolution
# ---------------------------------------------------------------------------

def build_client_email_index(
    clients: list[tuple[str, str | None]],
) -> dict[str, str]:
    """Lower-cased email -> client id.  Clients without an email are skipped."""
    index: dict[str, str] = {}
    for client_id, email in clients:
        key = normalize_email(email)
        if key:
            index[key] = client_id
    return index


def resolve_invoice_rows(
    rows: list[InvoiceImportRow],
    index: dict[str, str],
    owner_id: str,
) -> tuple[list[dict[str, Any]], list[RowError]]:
    """Split rows into storage rows (client id substituted) and resolution errors."""
    resolved: list[dict[str, Any]] = []
    errors: list[RowError] = []
    for idx, row in enumerate(rows):
        client_id = index.get(normalize_email(row.client_email) or "")
        if client_id is None:
            errors.append(
                RowError(idx, f"Client with email '{row.client_email}' not found.")
            )
            continue
        stored = row.model_dump(exclude={"client_email"})
        stored["owner_id"] = owner_id
        stored["client_id"] = client_id
        resolved.append(stored)
    return resolved, errors


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class CommitService:
    def __init__(self, store: RowStore, owner_id: str) -> None:
        self.store = store
        self.owner_id = owner_id

    def commit(self, body: Any) -> CommitResponse:
        """Validate a ``{type, rows}`` body and dispatch on its type."""
        try:
            payload = IMPORT_PAYLOAD.validate_python(body)
        except ValidationError as exc:
            log.warning("rejected import body: %d validation errors", exc.error_count())
            raise PayloadValidationError(
                exc.errors(include_url=False, include_context=False, include_input=False)
            ) from exc

        log.info(
            "import request: type=%s owner=%s rows=%d",
            payload.type, self.owner_id, len(payload.rows),
        )
        if isinstance(payload, ClientImportPayload):
            return self.commit_clients(payload.rows)
        return self.commit_invoices(payload.rows)

    def commit_clients(self, rows: list[ClientImportRow]) -> CommitResponse:
        records = [
            {"owner_id": self.owner_id, **row.model_dump()} for row in rows
        ]
        try:
            count = self.store.upsert(CLIENTS_TABLE, records, CLIENTS_CONFLICT)
        except psycopg.Error as exc:
            log.error("client upsert failed: %s", exc)
            raise StorageError(
                "Failed to upsert clients", details=str(exc), code=exc.sqlstate
            ) from exc
        log.info("upserted %d clients for owner=%s", count, self.owner_id)
        return CommitResponse("Client import processed successfully.", count)

    def commit_invoices(self, rows: list[InvoiceImportRow]) -> CommitResponse:
        try:
            clients = self.store.fetch_clients(self.owner_id)
        except psycopg.Error as exc:
            log.error("client lookup failed: %s", exc)
            raise StorageError(
                "Database error fetching client data.",
                details=str(exc),
                code=exc.sqlstate,
            ) from exc
        index = build_client_email_index(clients)
        log.debug("client email index: %d entries", len(index))

        resolved, errors = resolve_invoice_rows(rows, index, self.owner_id)
        for err in errors:
            log.warning("row %d skipped: %s", err.row_index, err.error)
        if not resolved and errors:
            raise UnresolvedClientsError(errors)

        count = 0
        if resolved:
            try:
                count = self.store.upsert(INVOICES_TABLE, resolved, INVOICES_CONFLICT)
            except psycopg.Error as exc:
                log.error("invoice upsert failed: %s", exc)
                raise StorageError(
                    "Failed to save invoices", details=str(exc), code=exc.sqlstate
                ) from exc
        log.info("upserted %d invoices for owner=%s", count, self.owner_id)
        return CommitResponse(
            f"Invoice import processed. {count} rows saved. "
            f"{len(errors)} rows skipped due to client resolution issues.",
            count,
            errors,
        )
