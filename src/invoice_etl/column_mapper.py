"""invoice_etl.column_mapper

Header -> target-field mapping: heuristic proposal plus user overrides.

A ColumnMapping is a plain dict keyed by CSV header, in header order.  The
value is the target field name, or None for an unmapped header.  Functions
here never mutate their input mapping.
"""

from __future__ import annotations

from invoice_etl.normalize import field_key, header_key
from invoice_etl.schema_registry import SchemaDefinition

ColumnMapping = dict[str, str | None]

UNMAPPED = None


def propose_mapping(headers: list[str], schema: SchemaDefinition) -> ColumnMapping:
    """Link each header to the target field with the same normalized name.

    Each target field is consumed at most once; the first matching header wins.
    Headers with no match are unmapped.
    """
    available = list(schema.all_fields)
    mapping: ColumnMapping = {}
    for header in headers:
        key = header_key(header)
        match = next((f for f in available if field_key(f) == key), None)
        if match is not None:
            available.remove(match)
        mapping[header] = match
    return mapping


def set_mapping(mapping: ColumnMapping, header: str, field_name: str | None) -> ColumnMapping:
    """Return a copy of mapping with header pointed at field_name.

    No uniqueness check: two headers may end up on the same target field.
    """
    if header not in mapping:
        raise ValueError(f"unknown CSV header: {header!r}")
    updated = dict(mapping)
    updated[header] = field_name
    return updated


def assign(mapping: ColumnMapping, header: str, field_name: str | None) -> ColumnMapping:
    """Like set_mapping, but keeps the mapping one-to-one.

    Any other header currently holding field_name is unmapped.
    """
    updated = set_mapping(mapping, header, field_name)
    if field_name is None:
        return updated
    for other, target in mapping.items():
        if other != header and target == field_name:
            updated[other] = UNMAPPED
    return updated


def mapped_fields(mapping: ColumnMapping) -> list[str]:
    """Distinct mapped target fields in header order."""
    seen: list[str] = []
    for target in mapping.values():
        if target is not None and target not in seen:
            seen.append(target)
    return seen


def target_index(mapping: ColumnMapping) -> dict[str, str]:
    """Invert the mapping to target field -> header.

    When two headers share a target field, the later header wins.
    """
    index: dict[str, str] = {}
    for header, target in mapping.items():
        if target is not None:
            index[target] = header
    return index


def duplicate_targets(mapping: ColumnMapping) -> dict[str, list[str]]:
    """Target fields mapped from more than one header, with those headers."""
    by_target: dict[str, list[str]] = {}
    for header, target in mapping.items():
        if target is not None:
            by_target.setdefault(target, []).append(header)
    return {t: hs for t, hs in by_target.items() if len(hs) > 1}


def missing_required(mapping: ColumnMapping, schema: SchemaDefinition) -> list[str]:
    mapped = set(mapped_fields(mapping))
    return [f for f in schema.required if f not in mapped]


def is_complete(mapping: ColumnMapping, schema: SchemaDefinition) -> bool:
    """True iff every required field is mapped from some header."""
    return not missing_required(mapping, schema)
