"""invoice_etl.schema_registry

Static definitions of the two supported import targets.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ImportType(str, Enum):
    CLIENTS = "clients"
    INVOICES = "invoices"


@dataclass(frozen=True)
class SchemaDefinition:
    """Required and optional target fields for one import type.

    Field names are the canonical storage column names.
    """

    required: tuple[str, ...]
    optional: tuple[str, ...]

    def __post_init__(self) -> None:
        overlap = set(self.required) & set(self.optional)
        if overlap:
            raise ValueError(f"fields both required and optional: {sorted(overlap)}")

    @property
    def all_fields(self) -> tuple[str, ...]:
        return self.required + self.optional

    def is_required(self, field_name: str) -> bool:
        return field_name in self.required


SCHEMAS: dict[ImportType, SchemaDefinition] = {
    ImportType.CLIENTS: SchemaDefinition(
        required=("name", "email"),
        optional=("phone", "address", "contact_person"),
    ),
    ImportType.INVOICES: SchemaDefinition(
        required=(
            "invoice_number",
            "client_email",
            "issue_date",
            "due_date",
            "subtotal",
            "total",
        ),
        optional=("tax", "discount", "status", "notes", "payment_terms"),
    ),
}

DATE_FIELDS = frozenset({"issue_date", "due_date"})
AMOUNT_FIELDS = frozenset({"subtotal", "tax", "discount", "total"})


def get_schema(import_type: ImportType | str) -> SchemaDefinition:
    return SCHEMAS[ImportType(import_type)]
