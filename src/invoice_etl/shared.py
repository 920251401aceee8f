"""invoice_etl.shared

Run artifacts written by the CLI: the reject CSV and the JSON run report.
"""

from __future__ import annotations

import csv
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from invoice_etl.csv_parser import RawRow
from invoice_etl.orchestrator import ImportResult
from invoice_etl.row_validator import format_reject_reason


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for rejected rows.

    The header is fixed at construction (source headers plus _row_number and
    _reject_reason) so rows written later with missing cells still line up.
    Nothing is created on disk until the first write.
    """

    def __init__(self, path: Path, headers: list[str]) -> None:
        self._path = path
        self._fieldnames = list(headers) + ["_row_number", "_reject_reason"]
        self._fh = None
        self._writer = None
        self.count = 0

    @property
    def path(self) -> Path:
        return self._path

    def write(self, row: RawRow, row_number: int, reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            self._writer = csv.DictWriter(
                self._fh, fieldnames=self._fieldnames, extrasaction="ignore"
            )
            self._writer.writeheader()
        out: dict[str, Any] = dict(row)
        out["_row_number"] = row_number
        out["_reject_reason"] = reason
        self._writer.writerow(out)
        self._fh.flush()
        self.count += 1

    def close(self) -> None:
        if self._fh:
            self._fh.close()
            self._fh = None


def write_rejects(
    writer: RejectWriter,
    raw_rows: list[RawRow],
    result: ImportResult,
) -> int:
    """Write validation skips, then commit-time row errors, to writer.

    _row_number is 1-based over the data rows (header excluded).
    Returns the number of rows written.
    """
    written = 0
    for idx in sorted(result.validation_errors):
        writer.write(
            raw_rows[idx], idx + 1, format_reject_reason(result.validation_errors[idx])
        )
        written += 1
    for err in result.error_rows:
        if 0 <= err.row_index < len(raw_rows):
            writer.write(raw_rows[err.row_index], err.row_index + 1, err.error)
            written += 1
    return written


# ---------------------------------------------------------------------------
# Run report
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    import_type: str,
    source_path: str,
    result: ImportResult,
    reports_dir: str | Path = "./artifacts/reports",
    extra: dict[str, Any] | None = None,
) -> Path:
    report = {
        "run_id": run_id,
        "import_type": import_type,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "source_path": source_path,
        **(extra or {}),
        "result": result.to_dict(),
    }
    report_path = Path(reports_dir) / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
