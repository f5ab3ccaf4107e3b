import json
import logging
import uuid

from fastapi.testclient import TestClient
from postgrest_fake import FakePostgrest, auth_headers

from grc_api.core.logging import (
    JsonLogFormatter,
    bind_log_context,
    current_log_context,
    end_request_context,
    start_request_context,
)
from grc_api.main import app
from grc_api.middleware.request_id import resolve_request_id

ORG_ID = "11111111-1111-1111-1111-111111111111"


class _JsonLines(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.lines: list[dict] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.lines.append(json.loads(JsonLogFormatter().format(record)))


def test_resolve_request_id_reuses_safe_values() -> None:
    assert resolve_request_id("req-123") == "req-123"
    assert resolve_request_id(" trace:abc.1 ") == "trace:abc.1"


def test_resolve_request_id_generates_for_unsafe_values() -> None:
    for incoming in (None, "", "has spaces", "x" * 129, "bad\nvalue"):
        generated = resolve_request_id(incoming)
        assert str(uuid.UUID(generated)) == generated


def test_json_formatter_includes_request_context_and_redacts_secrets() -> None:
    record = logging.LogRecord("grc.api.test", logging.INFO, __file__, 1, "store.error", None, None)
    record.component = "store"
    record.access_token = "eyJhbGciOi"
    record.details = {"api_key": "sk-live", "path": "assets"}

    token = start_request_context("req-9")
    try:
        bind_log_context(org_id=ORG_ID, user_id=None)
        payload = json.loads(JsonLogFormatter().format(record))
    finally:
        end_request_context(token)

    assert payload["msg"] == "store.error"
    assert payload["logger"] == "grc.api.test"
    assert payload["component"] == "store"
    assert payload["request_id"] == "req-9"
    assert payload["org_id"] == ORG_ID
    assert "user_id" not in payload
    assert payload["access_token"] == "[redacted]"
    assert payload["details"] == {"api_key": "[redacted]", "path": "assets"}


def test_extra_fields_override_request_context() -> None:
    record = logging.LogRecord("grc.api.test", logging.INFO, __file__, 1, "org.switched", None, None)
    record.org_id = "explicit-org"

    token = start_request_context("req-10")
    try:
        bind_log_context(org_id="bound-org")
        payload = json.loads(JsonLogFormatter().format(record))
    finally:
        end_request_context(token)

    assert payload["org_id"] == "explicit-org"


def test_binding_outside_a_request_is_ignored() -> None:
    bind_log_context(org_id=ORG_ID)
    assert current_log_context() == {}


def test_request_log_lines_carry_caller_and_org() -> None:
    handler = _JsonLines()
    request_logger = logging.getLogger("grc.api.request")
    previous_level = request_logger.level
    request_logger.addHandler(handler)
    request_logger.setLevel(logging.INFO)
    db = FakePostgrest()
    db.install()
    try:
        client = TestClient(app)
        response = client.get(
            f"/api/risks?org_id={ORG_ID}",
            headers={**auth_headers("user-5"), "X-Request-ID": "req-77"},
        )
    finally:
        app.dependency_overrides.clear()
        request_logger.removeHandler(handler)
        request_logger.setLevel(previous_level)

    assert response.status_code == 200
    end = next(line for line in handler.lines if line["msg"] == "request.end")
    assert end["request_id"] == "req-77"
    assert end["user_id"] == "user-5"
    assert end["org_id"] == ORG_ID
    assert end["status_code"] == 200
