"""invoice_etl.row_validator

Turns one raw CSV row into a target-schema row plus per-field error messages.

transform() is pure: the same (raw_row, mapping, schema, import_type) always
yields an equal result, which is what lets the bounded preview pass and the
full import pass agree row for row.

Checks per target field, additive (messages for one field join with "; "):
  1. required field missing or empty     -> "Required field is missing"
  2. clients.email not local@domain.tld  -> "Invalid email format"
  3. invoice dates not YYYY-MM-DD / MM/DD/YYYY
                                         -> "Invalid date (use YYYY-MM-DD or MM/DD/YYYY)"
  4. invoice amounts not numeric         -> "Invalid number format"

Parsed dates are stored as datetime.date and amounts as Decimal; consumers
format them for display or for the wire.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Union

from invoice_etl.column_mapper import ColumnMapping, target_index
from invoice_etl.csv_parser import RawRow
from invoice_etl.normalize import is_valid_email, parse_amount, parse_calendar_date, trim
from invoice_etl.schema_registry import (
    AMOUNT_FIELDS,
    DATE_FIELDS,
    ImportType,
    SchemaDefinition,
)

REQUIRED_MESSAGE = "Required field is missing"
EMAIL_MESSAGE = "Invalid email format"
DATE_MESSAGE = "Invalid date (use YYYY-MM-DD or MM/DD/YYYY)"
NUMBER_MESSAGE = "Invalid number format"

CellValue = Union[str, Decimal, date, None]
TransformedRow = dict[str, CellValue]
ValidationErrorMap = dict[int, dict[str, str]]


@dataclass(frozen=True)
class RowResult:
    row_index: int
    row: TransformedRow
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _check_field(
    field_name: str,
    value: str | None,
    schema: SchemaDefinition,
    import_type: ImportType,
) -> tuple[CellValue, list[str]]:
    problems: list[str] = []
    stored: CellValue = value

    if schema.is_required(field_name) and value is None:
        problems.append(REQUIRED_MESSAGE)

    if value is not None:
        if import_type is ImportType.CLIENTS:
            if field_name == "email" and not is_valid_email(value):
                problems.append(EMAIL_MESSAGE)
        elif import_type is ImportType.INVOICES:
            if field_name in DATE_FIELDS:
                parsed = parse_calendar_date(value)
                if parsed is None:
                    problems.append(DATE_MESSAGE)
                else:
                    stored = parsed
            if field_name in AMOUNT_FIELDS:
                amount = parse_amount(value)
                if amount is None:
                    problems.append(NUMBER_MESSAGE)
                else:
                    stored = amount

    return stored, problems


def transform(
    raw_row: RawRow,
    mapping: ColumnMapping,
    schema: SchemaDefinition,
    import_type: ImportType | str,
    row_index: int = 0,
) -> RowResult:
    import_type = ImportType(import_type)
    sources = target_index(mapping)
    row: TransformedRow = {}
    errors: dict[str, str] = {}

    for field_name in schema.all_fields:
        header = sources.get(field_name)
        value = trim(raw_row.get(header)) if header is not None else None
        stored, problems = _check_field(field_name, value, schema, import_type)
        row[field_name] = stored
        if problems:
            errors[field_name] = "; ".join(problems)

    return RowResult(row_index=row_index, row=row, errors=errors)


def transform_rows(
    raw_rows: list[RawRow],
    mapping: ColumnMapping,
    schema: SchemaDefinition,
    import_type: ImportType | str,
    limit: int | None = None,
) -> list[RowResult]:
    """Run transform() over raw_rows[:limit] (all rows when limit is None)."""
    subset = raw_rows if limit is None else raw_rows[:limit]
    return [
        transform(raw, mapping, schema, import_type, row_index=idx)
        for idx, raw in enumerate(subset)
    ]


def collect_errors(results: list[RowResult]) -> ValidationErrorMap:
    return {r.row_index: dict(r.errors) for r in results if r.errors}


def format_reject_reason(errors: dict[str, str]) -> str:
    """'email: Invalid email format | name: Required field is missing'."""
    return " | ".join(f"{f}: {msg}" for f, msg in errors.items())
