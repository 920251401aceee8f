"""invoice_etl.commit_client

Transports the orchestrator uses to hand one batch to the commit service.

  LocalCommitClient  calls a CommitService in-process (CLI with --db-dsn).
  HttpCommitClient   POSTs the batch to a remote /api/import endpoint.

Both return a CommitResponse on success and raise CommitError otherwise.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import requests

from invoice_etl.commit_service import (
    CommitResponse,
    CommitService,
    RowError,
    TransportError,
)

log = logging.getLogger(__name__)

OWNER_HEADER = "X-Owner-Id"


class CommitClient(Protocol):
    def commit(self, body: dict[str, Any]) -> CommitResponse:
        ...


class LocalCommitClient:
    def __init__(self, service: CommitService) -> None:
        self.service = service

    def commit(self, body: dict[str, Any]) -> CommitResponse:
        return self.service.commit(body)


def _parse_error_rows(raw: Any) -> list[RowError]:
    if not isinstance(raw, list):
        return []
    out: list[RowError] = []
    for item in raw:
        if isinstance(item, dict) and "rowIndex" in item:
            out.append(RowError(int(item["rowIndex"]), str(item.get("error", ""))))
    return out


class HttpCommitClient:
    """POST ``{type, rows}`` to endpoint_url with the owner id header.

    timeout=None leaves the request without a deadline.
    """

    def __init__(
        self,
        endpoint_url: str,
        owner_id: str,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self.endpoint_url = endpoint_url
        self.owner_id = owner_id
        self.session = session or requests.Session()
        self.timeout = timeout

    def commit(self, body: dict[str, Any]) -> CommitResponse:
        try:
            resp = self.session.post(
                self.endpoint_url,
                json=body,
                headers={OWNER_HEADER: self.owner_id},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            log.error("POST %s failed: %s", self.endpoint_url, exc)
            raise TransportError(f"Network error: {exc}") from exc

        try:
            result = resp.json()
        except ValueError:
            result = None
        parsed = isinstance(result, dict)
        if not parsed:
            result = {}

        if not resp.ok:
            message = (
                result.get("error")
                or result.get("message")
                or f"Request failed with status {resp.status_code}"
            )
            raise TransportError(
                str(message),
                status_code=resp.status_code,
                error_rows=_parse_error_rows(result.get("errorRows")),
            )

        if not parsed or not isinstance(result.get("successCount"), int):
            log.error("POST %s: unusable %d response body", self.endpoint_url, resp.status_code)
            raise TransportError(
                f"Invalid response body (status {resp.status_code})",
                status_code=resp.status_code,
            )

        return CommitResponse(
            message=str(result.get("message", "")),
            success_count=result["successCount"],
            error_rows=_parse_error_rows(result.get("errorRows")),
        )

