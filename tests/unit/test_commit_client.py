"""Unit tests for invoice_etl.commit_client."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from invoice_etl.commit_client import HttpCommitClient, LocalCommitClient, OWNER_HEADER
from invoice_etl.commit_service import CommitService, RowError, TransportError

URL = "https://app.example.com/api/import"
BODY = {"type": "clients", "rows": [{"name": "Acme", "email": "a@x.com"}]}


def _response(status_code, payload):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp


class TestHttpCommitClient:
    def test_success(self):
        session = MagicMock()
        session.post.return_value = _response(200, {
            "message": "Invoice import processed. 1 rows saved. 1 rows skipped due to client resolution issues.",
            "successCount": 1,
            "errorRows": [{"rowIndex": 1, "error": "Client with email 'b@x.com' not found."}],
        })
        client = HttpCommitClient(URL, "owner-1", session=session, timeout=5.0)
        response = client.commit(BODY)

        session.post.assert_called_once_with(
            URL, json=BODY, headers={OWNER_HEADER: "owner-1"}, timeout=5.0
        )
        assert response.success_count == 1
        assert response.error_rows == [RowError(1, "Client with email 'b@x.com' not found.")]

    def test_error_body_message_used(self):
        session = MagicMock()
        session.post.return_value = _response(
            500, {"error": "Failed to upsert clients", "details": "x", "code": "23505"}
        )
        with pytest.raises(TransportError) as exc_info:
            HttpCommitClient(URL, "owner-1", session=session).commit(BODY)
        assert str(exc_info.value) == "Failed to upsert clients"
        assert exc_info.value.status_code == 500

    def test_unresolved_rows_carried_on_error(self):
        session = MagicMock()
        session.post.return_value = _response(400, {
            "message": "Invoice import failed: Could not resolve client emails for any rows.",
            "successCount": 0,
            "errorRows": [{"rowIndex": 0, "error": "Client with email 'b@x.com' not found."}],
        })
        with pytest.raises(TransportError) as exc_info:
            HttpCommitClient(URL, "owner-1", session=session).commit(BODY)
        assert exc_info.value.error_rows == [
            RowError(0, "Client with email 'b@x.com' not found.")
        ]

    def test_non_json_error_body(self):
        session = MagicMock()
        session.post.return_value = _response(502, ValueError("no json"))
        with pytest.raises(TransportError) as exc_info:
            HttpCommitClient(URL, "owner-1", session=session).commit(BODY)
        assert str(exc_info.value) == "Request failed with status 502"

    @pytest.mark.parametrize("payload", [
        ValueError("no json"),
        ["not", "an", "object"],
        {"message": "ok"},
    ])
    def test_unusable_success_body(self, payload):
        session = MagicMock()
        session.post.return_value = _response(200, payload)
        with pytest.raises(TransportError) as exc_info:
            HttpCommitClient(URL, "owner-1", session=session).commit(BODY)
        assert str(exc_info.value) == "Invalid response body (status 200)"
        assert exc_info.value.status_code == 200

    def test_network_failure(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("connection refused")
        with pytest.raises(TransportError) as exc_info:
            HttpCommitClient(URL, "owner-1", session=session).commit(BODY)
        assert "connection refused" in str(exc_info.value)

    def test_default_session(self):
        with patch("invoice_etl.commit_client.requests.Session") as session_cls:
            session_cls.return_value.post.return_value = _response(
                200, {"message": "Client import processed successfully.", "successCount": 1, "errorRows": []}
            )
            response = HttpCommitClient(URL, "owner-1").commit(BODY)
        assert response.success_count == 1
        session_cls.assert_called_once_with()


class TestLocalCommitClient:
    def test_delegates_to_service(self, fake_store):
        client = LocalCommitClient(CommitService(fake_store, "owner-1"))
        response = client.commit(BODY)
        assert response.message == "Client import processed successfully."
        assert fake_store.calls[0][0] == "clients"
