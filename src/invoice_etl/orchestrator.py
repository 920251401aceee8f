"""invoice_etl.orchestrator

Full-file import run: validate every row, drop the invalid ones, then hand
the survivors to a CommitClient in sequential batches.

A failed batch is recorded as one error string and the run moves on to the
next batch; nothing raised by a commit escapes run_import().  Batches are
never sent concurrently and there is no cross-batch transaction.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterator

from invoice_etl.column_mapper import ColumnMapping
from invoice_etl.commit_client import CommitClient
from invoice_etl.commit_service import CommitError, RowError
from invoice_etl.csv_parser import RawRow
from invoice_etl.normalize import amount_to_json, format_iso_instant
from invoice_etl.row_validator import (
    RowResult,
    TransformedRow,
    ValidationErrorMap,
    collect_errors,
    transform_rows,
)
from invoice_etl.schema_registry import ImportType, SchemaDefinition

log = logging.getLogger(__name__)

BATCH_SIZE = 500
NO_VALID_ROWS_MESSAGE = "No valid data found to import after validation"


class ImportInProgressError(RuntimeError):
    """run_import() called while another run on the same orchestrator is active."""


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImportProgress:
    rows_attempted: int
    success_count: int
    total_rows: int
    batch_number: int
    batch_count: int


@dataclass
class ImportResult:
    total_rows: int = 0
    success_count: int = 0
    skipped_validation_count: int = 0
    batches_attempted: int = 0
    batches_failed: int = 0
    errors: list[str] = field(default_factory=list)
    error_rows: list[RowError] = field(default_factory=list)
    validation_errors: ValidationErrorMap = field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return len(self.errors) + len(self.error_rows)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "success_count": self.success_count,
            "skipped_validation_count": self.skipped_validation_count,
            "batches_attempted": self.batches_attempted,
            "batches_failed": self.batches_failed,
            "errors": list(self.errors),
            "error_rows": [e.to_dict() for e in self.error_rows],
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def partition(rows: list, size: int) -> Iterator[tuple[int, list]]:
    """Yield (offset, batch) for consecutive slices of at most size rows."""
    if size <= 0:
        raise ValueError(f"batch size must be positive, got {size}")
    for offset in range(0, len(rows), size):
        yield offset, rows[offset:offset + size]


def to_payload_row(row: TransformedRow) -> dict[str, Any]:
    """Wire form of a validated row: ISO instants for dates, JSON numbers for amounts."""
    out: dict[str, Any] = {}
    for name, value in row.items():
        if isinstance(value, date):
            out[name] = format_iso_instant(value)
        elif isinstance(value, Decimal):
            out[name] = amount_to_json(value)
        else:
            out[name] = value
    return out


def _remap(error_rows: list[RowError], batch: list[RowResult]) -> list[RowError]:
    # commit responses index rows within the batch; report file row indexes
    out: list[RowError] = []
    for err in error_rows:
        if 0 <= err.row_index < len(batch):
            out.append(RowError(batch[err.row_index].row_index, err.error))
        else:
            out.append(err)
    return out


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class ImportOrchestrator:
    def __init__(
        self,
        client: CommitClient,
        batch_size: int = BATCH_SIZE,
        on_progress: Callable[[ImportProgress], None] | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch size must be positive, got {batch_size}")
        self.client = client
        self.batch_size = batch_size
        self.on_progress = on_progress
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def run_import(
        self,
        raw_rows: list[RawRow],
        mapping: ColumnMapping,
        schema: SchemaDefinition,
        import_type: ImportType | str,
    ) -> ImportResult:
        if not self._lock.acquire(blocking=False):
            raise ImportInProgressError("an import is already running")
        try:
            return self._run(raw_rows, mapping, schema, ImportType(import_type))
        finally:
            self._lock.release()

    def _run(
        self,
        raw_rows: list[RawRow],
        mapping: ColumnMapping,
        schema: SchemaDefinition,
        import_type: ImportType,
    ) -> ImportResult:
        results = transform_rows(raw_rows, mapping, schema, import_type)
        valid = [r for r in results if r.is_valid]
        result = ImportResult(
            total_rows=len(raw_rows),
            skipped_validation_count=len(results) - len(valid),
            validation_errors=collect_errors(results),
        )
        if result.skipped_validation_count:
            log.warning(
                "%d of %d rows skipped for validation errors",
                result.skipped_validation_count, len(results),
            )

        if not valid:
            result.errors.append(NO_VALID_ROWS_MESSAGE)
            return result

        batches = list(partition(valid, self.batch_size))
        attempted = 0
        for number, (offset, batch) in enumerate(batches, start=1):
            result.batches_attempted += 1
            try:
                response = self.client.commit({
                    "type": import_type.value,
                    "rows": [to_payload_row(r.row) for r in batch],
                })
            except CommitError as exc:
                log.error("batch %d/%d failed: %s", number, len(batches), exc)
                result.batches_failed += 1
                result.errors.append(
                    f"Error processing batch starting at row {offset + 1}: {exc}"
                )
                result.error_rows.extend(_remap(exc.error_rows, batch))
            except Exception as exc:
                log.error(
                    "batch %d/%d failed: %s: %s",
                    number, len(batches), type(exc).__name__, exc,
                )
                result.batches_failed += 1
                result.errors.append(
                    f"Error processing batch starting at row {offset + 1}: {exc}"
                )
            else:
                result.success_count += response.success_count
                result.error_rows.extend(_remap(response.error_rows, batch))

            attempted += len(batch)
            if self.on_progress is not None:
                self.on_progress(ImportProgress(
                    rows_attempted=attempted,
                    success_count=result.success_count,
                    total_rows=len(valid),
                    batch_number=number,
                    batch_count=len(batches),
                ))

        return result
