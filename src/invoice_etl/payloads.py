"""invoice_etl.payloads

Request-body schema for the commit endpoint, discriminated on "type".

These models are the server-side check: client-side validation already
dropped rows with missing or malformed cells, but any row reaching the
commit service is validated again before it can be written.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, Field, TypeAdapter, field_validator


def _check_email(value: str, message: str) -> str:
    value = value.strip()
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValueError(message) from exc
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class ClientImportRow(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    contact_person: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Client name cannot be empty.")
        return v

    @field_validator("email")
    @classmethod
    def _email_format(cls, v: str) -> str:
        return _check_email(v, "Invalid email format.")

    @field_validator("phone", "address", "contact_person", mode="before")
    @classmethod
    def _optional_text(cls, v: Any) -> Any:
        return _blank_to_none(v)


class InvoiceImportRow(BaseModel):
    invoice_number: str
    client_email: str
    issue_date: datetime
    due_date: datetime
    subtotal: Decimal = Field(gt=0)
    tax: Decimal = Field(default=Decimal(0), ge=0)
    discount: Decimal = Field(default=Decimal(0), ge=0)
    total: Decimal = Field(gt=0)
    status: Literal["draft", "sent", "paid", "overdue"] = "draft"
    notes: Optional[str] = None
    payment_terms: Optional[str] = None

    @field_validator("invoice_number")
    @classmethod
    def _number_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Invoice number cannot be empty.")
        return v

    @field_validator("client_email")
    @classmethod
    def _client_email_format(cls, v: str) -> str:
        return _check_email(v, "Invalid client email format.")

    @field_validator("tax", "discount", mode="before")
    @classmethod
    def _default_zero(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        return 0 if v is None else v

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        if v is None:
            return "draft"
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("notes", "payment_terms", mode="before")
    @classmethod
    def _optional_text(cls, v: Any) -> Any:
        return _blank_to_none(v)


class ClientImportPayload(BaseModel):
    type: Literal["clients"]
    rows: list[ClientImportRow]


class InvoiceImportPayload(BaseModel):
    type: Literal["invoices"]
    rows: list[InvoiceImportRow]


ImportPayload = Annotated[
    Union[ClientImportPayload, InvoiceImportPayload],
    Field(discriminator="type"),
]

IMPORT_PAYLOAD = TypeAdapter(ImportPayload)
