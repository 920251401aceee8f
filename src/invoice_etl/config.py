"""invoice_etl.config

Run settings for the import CLI.

Precedence, lowest to highest:
  1. built-in defaults (BATCH_SIZE, PREVIEW_ROW_COUNT, artifact paths)
  2. YAML settings file (config/import.example.yml shows every key)
  3. INVOICE_ETL_* environment variables
  4. CLI flags, applied by the caller with ImportSettings.override()

Usage:
    settings = load_settings(Path("config/import.yml"))
    settings = settings.override(batch_size=100)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from invoice_etl.orchestrator import BATCH_SIZE
from invoice_etl.preview import PREVIEW_ROW_COUNT

ENV_OVERRIDES = {
    "db_dsn": "INVOICE_ETL_DB_DSN",
    "endpoint_url": "INVOICE_ETL_ENDPOINT_URL",
    "owner_id": "INVOICE_ETL_OWNER_ID",
}

_STR_KEYS = frozenset({"db_dsn", "endpoint_url", "owner_id", "rejects_path", "reports_dir"})
_POSITIVE_INT_KEYS = frozenset({"batch_size", "preview_limit"})
_NULLABLE_KEYS = frozenset({"db_dsn", "endpoint_url", "owner_id", "request_timeout_seconds"})


class ConfigValidationError(ValueError):
    """Raised when a settings file fails schema validation."""


@dataclass(frozen=True)
class ImportSettings:
    db_dsn: str | None = None
    endpoint_url: str | None = None
    owner_id: str | None = None
    batch_size: int = BATCH_SIZE
    preview_limit: int = PREVIEW_ROW_COUNT
    rejects_path: str = "./artifacts/rejects/import_rejects.csv"
    reports_dir: str = "./artifacts/reports"
    request_timeout_seconds: float | None = None

    def override(self, **values: Any) -> ImportSettings:
        """Return a copy with every non-None value applied."""
        applied = {k: v for k, v in values.items() if v is not None}
        validate_settings(applied)
        return replace(self, **applied)

    def __repr__(self) -> str:
        # never echo the DSN, it carries credentials
        dsn = "<set>" if self.db_dsn else None
        return (
            f"ImportSettings(db_dsn={dsn!r}, endpoint_url={self.endpoint_url!r}, "
            f"owner_id={self.owner_id!r}, batch_size={self.batch_size}, "
            f"preview_limit={self.preview_limit})"
        )


_KNOWN_KEYS = frozenset(f.name for f in fields(ImportSettings))


def validate_settings(data: Mapping[str, Any]) -> None:
    """Raise ConfigValidationError for unknown keys or wrongly typed values."""
    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        raise ConfigValidationError(f"Unknown settings keys: {sorted(unknown)}")

    for key, value in data.items():
        if value is None:
            if key not in _NULLABLE_KEYS:
                raise ConfigValidationError(f"'{key}' cannot be null")
            continue
        if key in _STR_KEYS:
            if not isinstance(value, str) or not value.strip():
                raise ConfigValidationError(f"'{key}' must be a non-empty string")
        elif key in _POSITIVE_INT_KEYS:
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigValidationError(
                    f"'{key}' must be a positive integer, got {value!r}"
                )
        elif key == "request_timeout_seconds":
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigValidationError(
                    f"'request_timeout_seconds' must be a positive number, got {value!r}"
                )


def load_settings(
    yaml_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ImportSettings:
    """Build settings from an optional YAML file plus environment overrides.

    Raises:
        ConfigValidationError: If the file is not a mapping or fails validation.
        FileNotFoundError: If yaml_path is given but does not exist.
    """
    values: dict[str, Any] = {}
    if yaml_path is not None:
        data = yaml.safe_load(yaml_path.read_text(encoding="utf-8"))
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigValidationError(
                f"Settings file must contain a mapping, got {type(data).__name__}"
            )
        validate_settings(data)
        values.update(data)

    env = os.environ if environ is None else environ
    for key, var in ENV_OVERRIDES.items():
        if env.get(var):
            values[key] = env[var]

    if isinstance(values.get("request_timeout_seconds"), int):
        values["request_timeout_seconds"] = float(values["request_timeout_seconds"])
    return ImportSettings(**values)
