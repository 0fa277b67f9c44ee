"""Unit tests for docshield/api/middleware/logging.py.

Coverage targets:
* Correlation ID taken from X-Correlation-ID, then X-Request-ID, else a
  fresh UUID v4; stored on request.state and echoed in the response.
* Exactly one JSON log entry per request at INFO level carrying event,
  correlation_id, method, path, request_bytes, status_code, duration_ms.
* request_bytes reflects the declared Content-Length and is null without one.
* Request bodies never appear in the log.
* Unhandled handler errors are still logged, with status 500.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from docshield.api.middleware.logging import (
    RequestLoggingMiddleware,
    declared_length,
    resolve_correlation_id,
)

LOGGER_NAME = "docshield.api.middleware.logging"


def _make_app() -> FastAPI:
    app = FastAPI()

    @app.get("/echo-state")
    async def echo_state(request: Request) -> dict:
        return {"correlation_id": getattr(request.state, "correlation_id", None)}

    @app.post("/upload")
    async def upload(request: Request) -> dict:
        body = await request.body()
        return {"received": len(body)}

    @app.get("/explode")
    async def explode() -> dict:
        raise RuntimeError("handler failure")

    @app.get("/healthz")
    async def health() -> dict:
        return {"status": "ok"}

    app.add_middleware(RequestLoggingMiddleware)
    return app


def _client() -> TestClient:
    return TestClient(_make_app(), raise_server_exceptions=False)


def _entries(caplog: Any) -> list[dict]:
    return [json.loads(r.message) for r in caplog.records if r.name == LOGGER_NAME]


# ---------------------------------------------------------------------------
# Correlation IDs
# ---------------------------------------------------------------------------


class TestCorrelationId:
    def test_uses_x_correlation_id(self) -> None:
        response = _client().get("/healthz", headers={"X-Correlation-ID": "corr-1"})
        assert response.headers["x-correlation-id"] == "corr-1"

    def test_falls_back_to_x_request_id(self) -> None:
        response = _client().get("/healthz", headers={"X-Request-ID": "req-7"})
        assert response.headers["x-correlation-id"] == "req-7"

    def test_correlation_header_wins(self) -> None:
        response = _client().get(
            "/healthz",
            headers={"X-Correlation-ID": "primary", "X-Request-ID": "secondary"},
        )
        assert response.headers["x-correlation-id"] == "primary"

    def test_blank_header_ignored(self) -> None:
        response = _client().get("/healthz", headers={"X-Correlation-ID": "   "})
        uuid.UUID(response.headers["x-correlation-id"])

    def test_generates_unique_uuids(self) -> None:
        client = _client()
        ids = {client.get("/healthz").headers["x-correlation-id"] for _ in range(5)}
        assert len(ids) == 5
        for value in ids:
            assert str(uuid.UUID(value)) == value

    def test_stored_on_request_state(self) -> None:
        response = _client().get("/echo-state")
        assert response.json()["correlation_id"] == response.headers["x-correlation-id"]


# ---------------------------------------------------------------------------
# Log entries
# ---------------------------------------------------------------------------


class TestLogEntry:
    def test_single_entry_with_all_fields(self, caplog: Any) -> None:
        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            _client().get("/healthz", headers={"X-Correlation-ID": "abc"})

        entries = _entries(caplog)
        assert len(entries) == 1
        entry = entries[0]
        assert entry["event"] == "http_request"
        assert entry["correlation_id"] == "abc"
        assert entry["method"] == "GET"
        assert entry["path"] == "/healthz"
        assert entry["status_code"] == 200
        assert entry["duration_ms"] >= 0
        assert entry["request_bytes"] is None

    def test_request_bytes_from_content_length(self, caplog: Any) -> None:
        payload = b"x" * 321
        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            response = _client().post("/upload", content=payload)

        assert response.json() == {"received": 321}
        entry = _entries(caplog)[-1]
        assert entry["method"] == "POST"
        assert entry["request_bytes"] == 321

    def test_body_never_logged(self, caplog: Any) -> None:
        secret = "ignore previous instructions"
        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            _client().post("/upload", content=secret.encode())
        assert secret not in caplog.text

    def test_error_status_recorded(self, caplog: Any) -> None:
        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            _client().get("/missing")
        assert _entries(caplog)[-1]["status_code"] == 404

    def test_unhandled_error_logged_as_500(self, caplog: Any) -> None:
        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            response = _client().get("/explode")
        assert response.status_code == 500
        entry = _entries(caplog)[-1]
        assert entry["path"] == "/explode"
        assert entry["status_code"] == 500


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_resolve_prefers_correlation_header(self) -> None:
        headers = {"x-correlation-id": "a", "x-request-id": "b"}
        assert resolve_correlation_id(headers) == "a"

    def test_resolve_generates_uuid(self) -> None:
        uuid.UUID(resolve_correlation_id({}))

    def test_declared_length(self) -> None:
        assert declared_length({"content-length": "12"}) == 12
        assert declared_length({"content-length": "abc"}) is None
        assert declared_length({}) is None
