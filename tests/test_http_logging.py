import json
import logging

from fastapi.testclient import TestClient

from conftest import FIXED_NOW, CountingSettlement, FakeInference, FakeMarketData, make_config

from market_moodboard.api.http_logging import decode_headers, redact
from market_moodboard.api.main import create_app


def test_redact_nested_secrets():
    out = redact({"private_key": "0x11", "nested": [{"JATEVO_API_KEY": "k", "ok": 1}]})
    assert out == {"private_key": "***", "nested": [{"JATEVO_API_KEY": "***", "ok": 1}]}


def test_payment_headers_are_redacted():
    headers = decode_headers([(b"X-Payment", b"eyJzZWNyZXQiOjF9"), (b"content-type", b"application/json")])
    assert headers == {"x-payment": "***", "content-type": "application/json"}


def test_middleware_logs_one_line_without_proof(monkeypatch, caplog):
    monkeypatch.setenv("MOODBOARD_HTTP_LOG", "1")
    monkeypatch.setenv("MOODBOARD_HTTP_LOG_HEADERS", "1")
    app = create_app(
        make_config(),
        settlement=CountingSettlement(),
        market_data=FakeMarketData(),
        inference=FakeInference(),
        clock=lambda: FIXED_NOW,
    )
    client = TestClient(app)
    with caplog.at_level(logging.INFO, logger="market_moodboard.http"):
        client.post(
            "/entrypoints/analyzeMoodboard/invoke",
            content=b"{}",
            headers={"content-type": "application/json", "X-PAYMENT": "c2VjcmV0"},
        )

    records = [r for r in caplog.records if r.name == "market_moodboard.http"]
    assert len(records) == 1
    line = records[0].getMessage()
    assert "c2VjcmV0" not in line
    record = json.loads(line)
    assert record["status"] == 402
    assert record["payment"]["proof_present"] is True
    assert record["payment"]["error"] == "malformed"
    assert record["request"]["headers"]["x-payment"] == "***"


def test_middleware_disabled_by_default(monkeypatch):
    monkeypatch.delenv("MOODBOARD_HTTP_LOG", raising=False)
    app = create_app(make_config(), settlement=CountingSettlement(), market_data=FakeMarketData(), inference=FakeInference())
    assert not any("HttpLoggingMiddleware" in str(m.cls) for m in app.user_middleware)
