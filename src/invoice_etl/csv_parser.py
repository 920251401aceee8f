"""invoice_etl.csv_parser

Reads an uploaded CSV file into header-keyed raw rows.

The first record is the header row; every later non-blank record becomes one
raw row keyed by those headers.  The first structural problem aborts the
parse, so callers never see a partial header/row set.  There is no row-count
ceiling here; file size limits belong to the upload surface.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from pathlib import Path

RawRow = dict[str, str]


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ParseError(ValueError):
    """Base class for fatal CSV parse failures."""


class EmptyFileError(ParseError):
    """Raised when the file has no data rows after the header."""

    def __init__(self, message: str = "CSV file appears to be empty or could not be parsed correctly.") -> None:
        super().__init__(message)


class MalformedRowError(ParseError):
    """Raised on the first structurally broken record."""

    def __init__(self, line_number: int, message: str) -> None:
        self.line_number = line_number
        self.message = message
        super().__init__(f"Error parsing row {line_number}: {message}")


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ParsedCsv:
    headers: list[str]
    rows: list[RawRow] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def decode_csv_bytes(content: bytes) -> str:
    """Decode an uploaded file, dropping a UTF-8 byte-order mark if present."""
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ParseError(f"Unable to decode CSV file as UTF-8: {exc.reason}") from exc


def _next_record(reader) -> list[str] | None:
    try:
        return next(reader)
    except StopIteration:
        return None
    except csv.Error as exc:
        raise MalformedRowError(reader.line_num, str(exc)) from exc


def parse_csv_text(text: str) -> ParsedCsv:
    reader = csv.reader(io.StringIO(text, newline=""), strict=True)

    header_record = _next_record(reader)
    while header_record is not None and not header_record:
        header_record = _next_record(reader)
    if header_record is None:
        raise EmptyFileError()

    headers = [h.strip() for h in header_record]
    seen: set[str] = set()
    for h in headers:
        if h in seen:
            raise MalformedRowError(reader.line_num, f"Duplicate header {h!r}")
        seen.add(h)

    rows: list[RawRow] = []
    while True:
        record = _next_record(reader)
        if record is None:
            break
        if not record:
            continue
        if len(record) < len(headers):
            raise MalformedRowError(
                reader.line_num,
                f"Too few fields: expected {len(headers)} fields but parsed {len(record)}",
            )
        if len(record) > len(headers):
            raise MalformedRowError(
                reader.line_num,
                f"Too many fields: expected {len(headers)} fields but parsed {len(record)}",
            )
        rows.append(dict(zip(headers, record)))

    if not rows:
        raise EmptyFileError()
    return ParsedCsv(headers=headers, rows=rows)


def parse_csv_bytes(content: bytes) -> ParsedCsv:
    return parse_csv_text(decode_csv_bytes(content))


def parse_csv_file(csv_path: Path) -> ParsedCsv:
    return parse_csv_bytes(csv_path.read_bytes())
