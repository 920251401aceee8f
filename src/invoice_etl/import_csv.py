"""invoice_etl.import_csv

Command-line driver for the import wizard.

Walks upload -> mapColumns -> preview -> import -> summary for one CSV file,
committing through either a direct PostgreSQL connection (--db-dsn) or a
remote /api/import endpoint (--endpoint-url).

Usage:
    invoice-etl-import --type clients --csv-path clients.csv \\
        --owner-id 7f1c... --db-dsn postgresql://... \\
        --map "Full Name=name" --map "Fax="
"""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

import click
import psycopg

from invoice_etl import wizard
from invoice_etl.commit_client import CommitClient, HttpCommitClient, LocalCommitClient
from invoice_etl.commit_service import CommitService
from invoice_etl.config import ConfigValidationError, load_settings
from invoice_etl.orchestrator import ImportOrchestrator, ImportProgress, ImportResult
from invoice_etl.preview import PreviewResult
from invoice_etl.row_validator import format_reject_reason
from invoice_etl.shared import RejectWriter, write_rejects, write_run_report
from invoice_etl.storage import PostgresRowStore, connect


def _fatal(run_id: str, message: str) -> None:
    click.echo(f"[{run_id}] FATAL: {message}", err=True)
    sys.exit(1)


def _echo_mapping(run_id: str, state: wizard.WizardState) -> None:
    click.echo(f"[{run_id}] Column mapping:")
    for header, target in state.mapping.items():
        click.echo(f"[{run_id}]   {header!r} -> {target or '(not mapped)'}")


def _echo_preview(run_id: str, result: PreviewResult) -> None:
    click.echo(f"[{run_id}] Preview ({len(result.rows)} rows):")
    click.echo(f"[{run_id}]   " + " | ".join(result.columns))
    for row in result.rows:
        cells = ["" if row.get(c) is None else str(row[c]) for c in result.columns]
        click.echo(f"[{run_id}]   " + " | ".join(cells))
    for idx in sorted(result.errors):
        click.echo(
            f"[{run_id}]   row {idx + 1}: {format_reject_reason(result.errors[idx])}"
        )


def _echo_summary(run_id: str, result: ImportResult) -> None:
    click.echo(
        f"[{run_id}] Summary: {result.success_count} succeeded, "
        f"{result.skipped_validation_count} skipped for validation, "
        f"{result.error_count} errored"
    )
    for message in result.errors:
        click.echo(f"[{run_id}]   {message}")
    for err in result.error_rows:
        click.echo(f"[{run_id}]   row {err.row_index + 1}: {err.error}")


def _apply_map_overrides(
    run_id: str,
    state: wizard.WizardState,
    overrides: tuple[str, ...],
) -> wizard.WizardState:
    for item in overrides:
        header, sep, target = item.partition("=")
        if not sep:
            _fatal(run_id, f"--map expects 'CSV Header=target_field', got {item!r}")
        try:
            state = wizard.map_column(state, header.strip(), target.strip() or None)
        except ValueError as exc:
            _fatal(run_id, f"--map {item!r}: {exc}")
    return state


@click.command()
@click.option(
    "--type",
    "import_type",
    required=True,
    type=click.Choice(["clients", "invoices"]),
    help="Target table for the CSV rows",
)
@click.option("--csv-path", required=True, type=click.Path(), help="Input CSV")
@click.option("--owner-id", default=None, help="Owner all rows are written for")
@click.option("--db-dsn", default=None, help="PostgreSQL DSN (direct commit)")
@click.option("--endpoint-url", default=None, help="Remote /api/import URL")
@click.option("--config", "config_path", default=None, type=click.Path(), help="YAML settings file")
@click.option(
    "--map",
    "map_overrides",
    multiple=True,
    help="Override one column mapping as 'CSV Header=target_field'; empty target unmaps",
)
@click.option("--preview-only", is_flag=True, default=False, help="Stop after the preview step")
@click.option("--batch-size", default=None, type=int, help="Rows per commit batch")
@click.option("--rejects-path", default=None, help="Reject CSV path")
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--verbose", is_flag=True, default=False)
def main(
    import_type: str,
    csv_path: str,
    owner_id: str | None,
    db_dsn: str | None,
    endpoint_url: str | None,
    config_path: str | None,
    map_overrides: tuple[str, ...],
    preview_only: bool,
    batch_size: int | None,
    rejects_path: str | None,
    run_id: str | None,
    verbose: bool,
) -> None:
    """Bulk-import clients or invoices from a CSV file."""
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()
    if verbose:
        logging.basicConfig(level=logging.DEBUG)

    try:
        settings = load_settings(Path(config_path) if config_path else None)
        settings = settings.override(
            db_dsn=db_dsn,
            endpoint_url=endpoint_url,
            owner_id=owner_id,
            batch_size=batch_size,
            rejects_path=rejects_path,
        )
    except (ConfigValidationError, OSError) as exc:
        _fatal(run_id, f"settings: {exc}")

    csv_file = Path(csv_path)
    click.echo(f"[{run_id}] Starting {import_type} import from {csv_file}")

    # upload
    try:
        content = csv_file.read_bytes()
    except OSError as exc:
        _fatal(run_id, f"cannot read {csv_file}: {exc}")
    state = wizard.upload_file(wizard.new_wizard(import_type), content, csv_file.name)
    if state.parse_error:
        _fatal(run_id, state.parse_error)
    click.echo(
        f"[{run_id}] Parsed {len(state.rows)} rows with {len(state.headers)} columns"
    )

    # mapColumns
    state = _apply_map_overrides(run_id, state, map_overrides)
    _echo_mapping(run_id, state)
    missing = wizard.missing_required_fields(state)
    if missing:
        _fatal(run_id, f"Please map all required fields: {', '.join(missing)}")

    # preview
    state = wizard.to_preview(state, limit=settings.preview_limit)
    _echo_preview(run_id, state.preview)
    if preview_only:
        click.echo(f"[{run_id}] Preview only; nothing written.")
        return

    # import
    if not settings.owner_id:
        _fatal(run_id, "--owner-id (or INVOICE_ETL_OWNER_ID) is required to import")
    conn = None
    client: CommitClient
    if settings.endpoint_url:
        client = HttpCommitClient(
            settings.endpoint_url,
            settings.owner_id,
            timeout=settings.request_timeout_seconds,
        )
        click.echo(f"[{run_id}] Committing via {settings.endpoint_url}")
    elif settings.db_dsn:
        try:
            conn = connect(settings.db_dsn)
        except psycopg.Error as exc:
            _fatal(run_id, f"database connection failed: {exc}")
        client = LocalCommitClient(
            CommitService(PostgresRowStore(conn), settings.owner_id)
        )
        click.echo(f"[{run_id}] Committing directly to PostgreSQL")
    else:
        _fatal(run_id, "provide --db-dsn or --endpoint-url")

    def on_progress(progress: ImportProgress) -> None:
        click.echo(
            f"[{run_id}] batch {progress.batch_number}/{progress.batch_count}: "
            f"{progress.rows_attempted}/{progress.total_rows} rows attempted, "
            f"{progress.success_count} succeeded"
        )

    orchestrator = ImportOrchestrator(
        client, batch_size=settings.batch_size, on_progress=on_progress
    )
    try:
        state = wizard.run_import(state, orchestrator)
    finally:
        if conn is not None:
            conn.close()

    # summary
    result = state.result
    _echo_summary(run_id, result)

    rejects = RejectWriter(Path(settings.rejects_path), list(state.headers))
    try:
        written = write_rejects(rejects, list(state.rows), result)
    finally:
        rejects.close()
    if written:
        click.echo(f"[{run_id}] {written} rejected rows written to {rejects.path}")

    report_path = write_run_report(
        run_id, started_at, import_type, str(csv_file), result,
        reports_dir=settings.reports_dir,
    )
    click.echo(f"[{run_id}] Run report: {report_path}")

    if result.batches_attempted and result.batches_failed == result.batches_attempted:
        click.echo(f"[{run_id}] Every batch failed; exiting non-zero", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
