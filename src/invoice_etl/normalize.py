"""Normalization functions for CSV import cells and headers.

All value functions accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y")

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NON_NUMERIC_RE = re.compile(r"[^\d.\-]")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_email / is_valid_email
# ---------------------------------------------------------------------------

def normalize_email(value: str | None) -> str | None:
    """Lowercase and trim an email address."""
    v = trim(value)
    if v is None:
        return None
    return v.lower()


def is_valid_email(value: str | None) -> bool:
    """Return True for the simple local@domain.tld shape."""
    v = trim(value)
    if v is None:
        return False
    return _EMAIL_RE.match(v) is not None


# ---------------------------------------------------------------------------
# Rule 3: header keys
# ---------------------------------------------------------------------------

def header_key(value: str) -> str:
    """Lowercase a CSV header and drop every non-alphanumeric character.

    'Invoice #' -> 'invoice', 'Client E-mail' -> 'clientemail'.
    """
    return _NON_ALNUM_RE.sub("", value.lower())


def field_key(value: str) -> str:
    """Lowercase a target field name and drop underscores ('due_date' -> 'duedate')."""
    return value.lower().replace("_", "")


# ---------------------------------------------------------------------------
# Rule 4: parse_calendar_date
# ---------------------------------------------------------------------------

def parse_calendar_date(value: str | None) -> date | None:
    """Parse 'YYYY-MM-DD' or 'MM/DD/YYYY', returning None on failure."""
    v = trim(value)
    if v is None:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(v, fmt).date()
        except ValueError:
            continue
    return None


def format_date_only(value: date) -> str:
    """'2025-03-01' form used for preview display."""
    return value.isoformat()


def format_iso_instant(value: date) -> str:
    """UTC-midnight instant, e.g. '2025-03-01T00:00:00.000Z'."""
    return f"{value.isoformat()}T00:00:00.000Z"


# ---------------------------------------------------------------------------
# Rule 5: parse_amount
# ---------------------------------------------------------------------------

def parse_amount(value: str | None) -> Decimal | None:
    """Parse a money-ish number after stripping everything but digits, '.', '-'.

    '$1,250.00' -> Decimal('1250.00').  Returns None when nothing finite remains.
    """
    v = trim(value)
    if v is None:
        return None
    stripped = _NON_NUMERIC_RE.sub("", v)
    if not stripped:
        return None
    try:
        amount = Decimal(stripped)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount


def amount_to_json(value: Decimal) -> int | float:
    """Return a JSON-native number for a Decimal amount."""
    if value == value.to_integral_value():
        return int(value)
    result = float(value)
    if math.isinf(result):
        raise ValueError(f"amount out of range: {value}")
    return result
