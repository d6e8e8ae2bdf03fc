import json
import time as _time

import pytest
from requests.exceptions import ConnectionError as RequestsConnectionError

from api_schema_ingestion.app_context import RetryPolicy
from api_schema_ingestion.errors import (
    ConfigurationError,
    FetchError,
    RequestRejectedError,
    TransportError,
)
from api_schema_ingestion.transport import HttpTransport, is_retryable_status


class FakeResponse:
    def __init__(self, status_code=200, json_obj=None, text=None):
        self.status_code = status_code
        self._json = json_obj
        self.text = text if text is not None else json.dumps(json_obj)
        self.content = self.text.encode() if json_obj is not None or text else b""

    def json(self):
        if self._json is None:
            raise ValueError("no json")
        return self._json


class FakeSession:
    """Yields queued responses (or raises queued exceptions) and records every call."""
    def __init__(self, queue):
        self.headers = {}
        self.queue = queue[:]
        self.calls = []
        self.closed = False

    def request(self, method, url, headers=None, params=None, json=None, timeout=None):
        self.calls.append({"method": method, "url": url, "params": params, "json": json, "timeout": timeout})
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed = True


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []
    monkeypatch.setattr(_time, "sleep", lambda s: recorded.append(s))
    return recorded


def test_is_retryable_status():
    assert is_retryable_status(500)
    assert is_retryable_status(503)
    assert not is_retryable_status(404)
    assert not is_retryable_status(200)


def test_default_headers_are_set():
    session = FakeSession([])
    HttpTransport(session=session)
    assert session.headers["Accept"] == "application/json"
    assert session.headers["User-Agent"].startswith("api-schema-ingestion/")


def test_returns_json_body(sleeps):
    session = FakeSession([FakeResponse(200, [{"id": 1}])])
    transport = HttpTransport(RetryPolicy(retries=2, base_delay=0.5, timeout=7), session=session)
    body = transport.request("GET", "https://api.example.com/items", params={"page": 1})
    assert body == [{"id": 1}]
    assert session.calls[0]["timeout"] == 7
    assert session.calls[0]["params"] == {"page": 1}
    assert sleeps == []


def test_retries_5xx_with_linear_backoff(sleeps):
    session = FakeSession([
        FakeResponse(500, None, "boom"),
        FakeResponse(502, None, "bad gateway"),
        FakeResponse(200, {"ok": True}),
    ])
    transport = HttpTransport(RetryPolicy(retries=3, base_delay=0.5), session=session)
    assert transport.request("GET", "https://api.example.com") == {"ok": True}
    assert len(session.calls) == 3
    assert sleeps == [0.5, 1.0]


def test_retries_network_errors(sleeps):
    session = FakeSession([RequestsConnectionError("refused"), FakeResponse(200, [1])])
    transport = HttpTransport(RetryPolicy(retries=1, base_delay=2), session=session)
    assert transport.request("GET", "https://api.example.com") == [1]
    assert sleeps == [2]


def test_gives_up_after_retry_budget(sleeps):
    session = FakeSession([FakeResponse(503, None, "down")] * 3)
    transport = HttpTransport(RetryPolicy(retries=2, base_delay=1), session=session)
    with pytest.raises(TransportError) as exc:
        transport.request("GET", "https://api.example.com", page=4)
    assert exc.value.status_code == 503
    assert exc.value.attempts == 3
    assert exc.value.page == 4
    assert "page 4" in str(exc.value)
    assert isinstance(exc.value, FetchError)
    assert len(session.calls) == 3


def test_4xx_is_not_retried(sleeps):
    session = FakeSession([FakeResponse(404, None, "not found"), FakeResponse(200, [])])
    transport = HttpTransport(RetryPolicy(retries=3, base_delay=1), session=session)
    with pytest.raises(RequestRejectedError) as exc:
        transport.request("GET", "https://api.example.com/missing")
    assert exc.value.status_code == 404
    assert isinstance(exc.value, ConfigurationError)
    assert isinstance(exc.value, FetchError)
    assert len(session.calls) == 1
    assert sleeps == []


def test_empty_body_returns_none(sleeps):
    session = FakeSession([FakeResponse(204, None, "")])
    transport = HttpTransport(RetryPolicy(retries=0), session=session)
    assert transport.request("DELETE", "https://api.example.com/x") is None


def test_non_json_body_is_returned_as_text(sleeps, caplog):
    session = FakeSession([FakeResponse(200, None, "id,name\n1,a\n")])
    transport = HttpTransport(RetryPolicy(retries=0), session=session)
    with caplog.at_level("WARNING"):
        body = transport.request("GET", "https://api.example.com/export.csv")
    assert body == "id,name\n1,a\n"
    assert len(session.calls) == 1
    assert "not valid JSON" in caplog.text


def test_context_manager_closes_session():
    session = FakeSession([])
    with HttpTransport(session=session):
        pass
    assert session.closed
