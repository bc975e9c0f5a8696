"""Unit tests for the payment gateway adapters.

``httpx.Client.post`` is monkeypatched; each fake records the calls it
received so retries and headers can be asserted.
"""

from __future__ import annotations

from decimal import Decimal

import httpx
import pytest

from modules.checkout.exceptions import PaymentGatewayTimeout
from modules.checkout.payments import (
    HttpPaymentGateway,
    SandboxPaymentGateway,
    get_payment_gateway,
)
from modules.core.middleware import correlation_id_var

pytestmark = pytest.mark.unit


class DummyResp:
    """Minimal httpx-like response stub."""

    def __init__(self, status_code=200, json_data=None):
        self.status_code = status_code
        self._json = json_data or {}

    def json(self):
        return self._json


def _fake_post(monkeypatch, *outcomes):
    """Patch ``post`` to answer with ``outcomes`` in turn; exceptions are raised."""
    calls = []
    queue = list(outcomes)

    def fake_post(self, url, json=None, headers=None, **kw):
        calls.append({"url": url, "json": json, "headers": dict(headers or {})})
        outcome = queue.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    return calls


@pytest.fixture()
def gateway():
    return HttpPaymentGateway(
        base_url="http://payments:9002/", api_key="sk_test_123", timeout=2.0
    )


def _charge(gateway, amount="108.00"):
    return gateway.create_charge(
        Decimal(amount), "USD", {"attempt_id": "a-1"}, idempotency_key="checkout-key-0001"
    )


# ---------------------------------------------------------------------------
# HttpPaymentGateway
# ---------------------------------------------------------------------------


class TestHttpPaymentGateway:
    def test_success_returns_reference(self, monkeypatch, gateway):
        calls = _fake_post(monkeypatch, DummyResp(201, {"id": "ch_123"}))

        result = _charge(gateway)

        assert result.success is True
        assert result.reference == "ch_123"
        assert calls[0]["url"] == "http://payments:9002/charges"
        assert calls[0]["json"] == {
            "amount_cents": 10800,
            "currency": "USD",
            "metadata": {"attempt_id": "a-1"},
        }

    def test_sends_idempotency_and_auth_headers(self, monkeypatch, gateway):
        calls = _fake_post(monkeypatch, DummyResp(200, {"reference": "ch_9"}))
        token = correlation_id_var.set("req-42")
        try:
            _charge(gateway)
        finally:
            correlation_id_var.reset(token)

        headers = calls[0]["headers"]
        assert headers["Idempotency-Key"] == "checkout-key-0001"
        assert headers["Authorization"] == "Bearer sk_test_123"
        assert headers["X-Request-ID"] == "req-42"
        assert headers["X-Retry-Count"] == "0"

    def test_decline_is_final(self, monkeypatch, gateway):
        calls = _fake_post(monkeypatch, DummyResp(402, {"reason": "insufficient_funds"}))

        result = _charge(gateway)

        assert result.success is False
        assert result.reason == "insufficient_funds"
        assert len(calls) == 1

    def test_unexpected_client_error_is_a_decline(self, monkeypatch, gateway):
        _fake_post(monkeypatch, DummyResp(400, {}))
        result = _charge(gateway)
        assert result.success is False
        assert result.reason == "http_400"

    def test_server_error_retried_once(self, monkeypatch, gateway):
        calls = _fake_post(
            monkeypatch, DummyResp(503), DummyResp(201, {"id": "ch_retry"})
        )

        result = _charge(gateway)

        assert result.success is True
        assert result.reference == "ch_retry"
        assert [c["headers"]["X-Retry-Count"] for c in calls] == ["0", "1"]
        assert {c["headers"]["Idempotency-Key"] for c in calls} == {"checkout-key-0001"}

    def test_persistent_server_error_is_timeout(self, monkeypatch, gateway):
        calls = _fake_post(monkeypatch, DummyResp(500), DummyResp(502))
        with pytest.raises(PaymentGatewayTimeout):
            _charge(gateway)
        assert len(calls) == 2

    def test_connection_error_retried_then_timeout(self, monkeypatch, gateway):
        calls = _fake_post(
            monkeypatch, httpx.ConnectError("boom"), httpx.ConnectError("boom")
        )
        with pytest.raises(PaymentGatewayTimeout):
            _charge(gateway)
        assert len(calls) == 2

    def test_connection_error_then_success(self, monkeypatch, gateway):
        _fake_post(monkeypatch, httpx.ConnectError("boom"), DummyResp(201, {"id": "ch_1"}))
        assert _charge(gateway).reference == "ch_1"

    def test_timeout_is_not_retried(self, monkeypatch, gateway):
        calls = _fake_post(monkeypatch, httpx.ReadTimeout("slow"))
        with pytest.raises(PaymentGatewayTimeout):
            _charge(gateway)
        assert len(calls) == 1

    def test_amount_sent_in_cents(self, monkeypatch, gateway):
        calls = _fake_post(monkeypatch, DummyResp(201, {"id": "ch_1"}))
        _charge(gateway, amount="0.5")
        assert calls[0]["json"]["amount_cents"] == 50


# ---------------------------------------------------------------------------
# SandboxPaymentGateway
# ---------------------------------------------------------------------------


class TestSandboxPaymentGateway:
    def test_approves_and_records_charge(self):
        gateway = SandboxPaymentGateway()
        result = gateway.create_charge(Decimal("50.00"), "USD", {}, "checkout-key-0001")
        assert result.success is True
        assert result.reference.startswith("sbx_")
        assert gateway.charges == [
            {
                "amount": Decimal("50.00"),
                "currency": "USD",
                "idempotency_key": "checkout-key-0001",
            }
        ]

    def test_same_key_same_reference(self):
        gateway = SandboxPaymentGateway()
        first = gateway.create_charge(Decimal("1.00"), "USD", {}, "key-aaaaaaaa")
        second = gateway.create_charge(Decimal("1.00"), "USD", {}, "key-aaaaaaaa")
        assert first.reference == second.reference

    def test_declines_above_limit(self):
        result = SandboxPaymentGateway().create_charge(
            Decimal("10000.01"), "USD", {}, "key-bbbbbbbb"
        )
        assert result.success is False
        assert result.reason == "card_limit_exceeded"

    def test_backend_selected_from_settings(self, settings):
        settings.PAYMENT_GATEWAY_BACKEND = "modules.checkout.payments.HttpPaymentGateway"
        assert isinstance(get_payment_gateway(), HttpPaymentGateway)
