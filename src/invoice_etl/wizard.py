"""invoice_etl.wizard

Import wizard as a single immutable state record plus transition functions.

Steps, forward only except where noted:

  upload -> mapColumns -> preview -> import -> summary
             (back ok)    (back ok)

Every transition takes the current WizardState and returns the next one;
an illegal transition raises WizardTransitionError and leaves the input
state untouched.  reset() returns to a fresh upload step from anywhere.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

from invoice_etl import column_mapper
from invoice_etl.column_mapper import ColumnMapping
from invoice_etl.csv_parser import ParseError, RawRow, parse_csv_bytes, parse_csv_text
from invoice_etl.orchestrator import ImportOrchestrator, ImportResult
from invoice_etl.preview import PREVIEW_ROW_COUNT, PreviewResult, preview
from invoice_etl.schema_registry import ImportType, SchemaDefinition, get_schema


class WizardStep(str, Enum):
    UPLOAD = "upload"
    MAP_COLUMNS = "mapColumns"
    PREVIEW = "preview"
    IMPORT = "import"
    SUMMARY = "summary"


class WizardTransitionError(RuntimeError):
    """Raised for a transition the current step does not allow."""


@dataclass(frozen=True)
class WizardState:
    step: WizardStep = WizardStep.UPLOAD
    import_type: ImportType = ImportType.CLIENTS
    file_name: str | None = None
    headers: tuple[str, ...] = ()
    rows: tuple[RawRow, ...] = ()
    mapping: ColumnMapping = field(default_factory=dict)
    preview: PreviewResult | None = None
    parse_error: str | None = None
    result: ImportResult | None = None

    @property
    def schema(self) -> SchemaDefinition:
        return get_schema(self.import_type)


def _require_step(state: WizardState, *allowed: WizardStep) -> None:
    if state.step not in allowed:
        names = ", ".join(s.value for s in allowed)
        raise WizardTransitionError(
            f"not allowed in step '{state.step.value}' (expected {names})"
        )


# ---------------------------------------------------------------------------
# upload
# ---------------------------------------------------------------------------

def new_wizard(import_type: ImportType | str = ImportType.CLIENTS) -> WizardState:
    return WizardState(import_type=ImportType(import_type))


def reset(state: WizardState) -> WizardState:
    """Back to an empty upload step, keeping the chosen import type."""
    return new_wizard(state.import_type)


def select_import_type(state: WizardState, import_type: ImportType | str) -> WizardState:
    _require_step(state, WizardStep.UPLOAD)
    import_type = ImportType(import_type)
    if import_type is state.import_type:
        return state
    return replace(state, import_type=import_type, mapping={}, preview=None)


def upload_file(
    state: WizardState,
    content: bytes | str,
    file_name: str | None = None,
) -> WizardState:
    """Parse content and move to mapColumns with a proposed mapping.

    A parse failure keeps the wizard in upload with parse_error set and no
    headers or rows retained.
    """
    _require_step(state, WizardStep.UPLOAD)
    try:
        if isinstance(content, bytes):
            parsed = parse_csv_bytes(content)
        else:
            parsed = parse_csv_text(content)
    except ParseError as exc:
        return replace(
            state,
            file_name=file_name,
            headers=(),
            rows=(),
            mapping={},
            preview=None,
            parse_error=str(exc),
        )
    return replace(
        state,
        step=WizardStep.MAP_COLUMNS,
        file_name=file_name,
        headers=tuple(parsed.headers),
        rows=tuple(parsed.rows),
        mapping=column_mapper.propose_mapping(parsed.headers, state.schema),
        preview=None,
        parse_error=None,
    )


# ---------------------------------------------------------------------------
# mapColumns
# ---------------------------------------------------------------------------

def map_column(state: WizardState, header: str, field_name: str | None) -> WizardState:
    """Point header at field_name (None unmaps), keeping the mapping one-to-one."""
    _require_step(state, WizardStep.MAP_COLUMNS)
    if field_name is not None and field_name not in state.schema.all_fields:
        raise ValueError(
            f"'{field_name}' is not a {state.import_type.value} field"
        )
    return replace(
        state, mapping=column_mapper.assign(state.mapping, header, field_name)
    )


def missing_required_fields(state: WizardState) -> list[str]:
    return column_mapper.missing_required(state.mapping, state.schema)


def can_advance(state: WizardState) -> bool:
    """Whether the forward action of the current step is enabled."""
    if state.step is WizardStep.MAP_COLUMNS:
        return column_mapper.is_complete(state.mapping, state.schema)
    return state.step is WizardStep.PREVIEW


def to_preview(state: WizardState, limit: int = PREVIEW_ROW_COUNT) -> WizardState:
    _require_step(state, WizardStep.MAP_COLUMNS)
    missing = missing_required_fields(state)
    if missing:
        raise WizardTransitionError(
            f"Please map all required fields: {', '.join(missing)}"
        )
    result = preview(
        list(state.rows), state.mapping, state.schema, state.import_type, limit=limit
    )
    return replace(state, step=WizardStep.PREVIEW, preview=result)


def back(state: WizardState) -> WizardState:
    if state.step is WizardStep.PREVIEW:
        return replace(state, step=WizardStep.MAP_COLUMNS, preview=None)
    if state.step is WizardStep.MAP_COLUMNS:
        return replace(
            state,
            step=WizardStep.UPLOAD,
            file_name=None,
            headers=(),
            rows=(),
            mapping={},
        )
    raise WizardTransitionError(f"cannot go back from step '{state.step.value}'")


# ---------------------------------------------------------------------------
# import / summary
# ---------------------------------------------------------------------------

def begin_import(state: WizardState) -> WizardState:
    _require_step(state, WizardStep.PREVIEW)
    return replace(state, step=WizardStep.IMPORT, result=None)


def complete_import(state: WizardState, result: ImportResult) -> WizardState:
    _require_step(state, WizardStep.IMPORT)
    return replace(state, step=WizardStep.SUMMARY, result=result)


def run_import(state: WizardState, orchestrator: ImportOrchestrator) -> WizardState:
    """preview -> import -> summary in one call.

    The orchestrator re-validates every row, so a stale preview never
    changes what gets committed.
    """
    state = begin_import(state)
    result = orchestrator.run_import(
        list(state.rows), state.mapping, state.schema, state.import_type
    )
    return complete_import(state, result)
