"""invoice_etl.preview

Bounded, side-effect-free validation pass used to show the user what the
first rows will look like before anything is committed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from invoice_etl.column_mapper import ColumnMapping, mapped_fields
from invoice_etl.csv_parser import RawRow
from invoice_etl.normalize import format_date_only
from invoice_etl.row_validator import (
    TransformedRow,
    ValidationErrorMap,
    collect_errors,
    transform_rows,
)
from invoice_etl.schema_registry import ImportType, SchemaDefinition

PREVIEW_ROW_COUNT = 10


@dataclass(frozen=True)
class PreviewResult:
    columns: list[str]
    rows: list[dict[str, Any]] = field(default_factory=list)
    errors: ValidationErrorMap = field(default_factory=dict)

    @property
    def invalid_row_count(self) -> int:
        return len(self.errors)


def to_display_row(row: TransformedRow) -> dict[str, Any]:
    """Dates as YYYY-MM-DD, amounts as plain strings, everything else as is."""
    out: dict[str, Any] = {}
    for name, value in row.items():
        if isinstance(value, date):
            out[name] = format_date_only(value)
        elif isinstance(value, Decimal):
            out[name] = str(value)
        else:
            out[name] = value
    return out


def preview(
    raw_rows: list[RawRow],
    mapping: ColumnMapping,
    schema: SchemaDefinition,
    import_type: ImportType | str,
    limit: int = PREVIEW_ROW_COUNT,
) -> PreviewResult:
    """Validate raw_rows[:limit] and return display rows plus their errors.

    Only mapped target fields are shown as columns; validation still covers
    every schema field so error sets match the full import exactly.
    """
    results = transform_rows(raw_rows, mapping, schema, import_type, limit=limit)
    columns = [f for f in mapped_fields(mapping) if f in schema.all_fields]
    rows = [
        {c: v for c, v in to_display_row(r.row).items() if c in columns}
        for r in results
    ]
    return PreviewResult(columns=columns, rows=rows, errors=collect_errors(results))
