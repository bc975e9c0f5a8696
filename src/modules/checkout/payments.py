"""Payment gateway adapters.

The orchestrator only sees ``PaymentGateway.create_charge``. Two
implementations, selected by ``PAYMENT_GATEWAY_BACKEND``:

- ``HttpPaymentGateway``: the external processor over HTTP (``httpx``).
  Sends ``Idempotency-Key`` so a retried charge is never captured twice,
  and forwards ``X-Request-ID`` for cross-service correlation.
- ``SandboxPaymentGateway``: deterministic in-process gateway for local
  development and tests.

Retry policy: one retry on a connection error or a 5xx answer. Declines
(402/409/422) are final. A timeout, or a transient failure that persists
after the retry, raises ``PaymentGatewayTimeout``: the charge outcome is
unknown and the caller must treat it as not captured.
"""

from __future__ import annotations

import hashlib
from decimal import Decimal
from typing import Any, Dict, Optional, Protocol

import httpx
import structlog
from django.conf import settings
from django.utils.module_loading import import_string
from pydantic import BaseModel, ConfigDict

from modules.checkout.exceptions import PaymentGatewayTimeout
from modules.core.middleware import correlation_id_var
from modules.core.money import to_money

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 2
DECLINE_STATUSES = {402, 409, 422}


class ChargeResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    reference: Optional[str] = None
    reason: str = ""


class PaymentGateway(Protocol):
    def create_charge(
        self,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, Any],
        idempotency_key: str,
    ) -> ChargeResult: ...


def _amount_cents(amount: Decimal) -> int:
    return int(to_money(amount) * 100)


class HttpPaymentGateway:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = (base_url or settings.PAYMENT_GATEWAY_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.PAYMENT_GATEWAY_API_KEY
        self.timeout = timeout or settings.PAYMENT_GATEWAY_TIMEOUT_SECS

    def _headers(self, idempotency_key: str) -> Dict[str, str]:
        headers = {"Idempotency-Key": idempotency_key}
        request_id = correlation_id_var.get()
        if request_id:
            headers["X-Request-ID"] = request_id
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def create_charge(
        self,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, Any],
        idempotency_key: str,
    ) -> ChargeResult:
        payload = {
            "amount_cents": _amount_cents(amount),
            "currency": currency,
            "metadata": metadata,
        }
        headers = self._headers(idempotency_key)
        log = logger.bind(idempotency_key=idempotency_key, amount=str(amount))

        with httpx.Client(timeout=self.timeout) as client:
            for attempt in range(1, MAX_ATTEMPTS + 1):
                headers["X-Retry-Count"] = str(attempt - 1)
                try:
                    resp = client.post(
                        f"{self.base_url}/charges", json=payload, headers=headers
                    )
                except httpx.TimeoutException as exc:
                    log.warning("payment.gateway_timeout", attempt=attempt)
                    raise PaymentGatewayTimeout() from exc
                except httpx.TransportError as exc:
                    log.warning(
                        "payment.gateway_unreachable", attempt=attempt, error=str(exc)
                    )
                    if attempt < MAX_ATTEMPTS:
                        continue
                    raise PaymentGatewayTimeout() from exc

                if resp.status_code in (200, 201):
                    data = resp.json()
                    reference = data.get("id") or data.get("reference")
                    log.info("payment.captured", reference=reference)
                    return ChargeResult(success=True, reference=reference)

                if 500 <= resp.status_code < 600:
                    log.warning(
                        "payment.gateway_error", attempt=attempt, status=resp.status_code
                    )
                    if attempt < MAX_ATTEMPTS:
                        continue
                    raise PaymentGatewayTimeout()

                reason = _decline_reason(resp)
                log.info("payment.declined", status=resp.status_code, reason=reason)
                return ChargeResult(success=False, reason=reason)

        raise PaymentGatewayTimeout()  # pragma: no cover


def _decline_reason(resp: httpx.Response) -> str:
    if resp.status_code not in DECLINE_STATUSES:
        return f"http_{resp.status_code}"
    try:
        data = resp.json()
    except ValueError:
        return "declined"
    return data.get("reason") or data.get("decline_code") or "declined"


class SandboxPaymentGateway:
    """Approves every charge up to ``decline_above``; declines larger ones.

    References derive from the idempotency key, so a repeated key yields
    the same reference like a real processor would.
    """

    decline_above = Decimal("10000.00")

    def __init__(self) -> None:
        self.charges: list[Dict[str, Any]] = []

    def create_charge(
        self,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, Any],
        idempotency_key: str,
    ) -> ChargeResult:
        self.charges.append(
            {"amount": amount, "currency": currency, "idempotency_key": idempotency_key}
        )
        if amount > self.decline_above:
            logger.info("payment.sandbox_declined", amount=str(amount))
            return ChargeResult(success=False, reason="card_limit_exceeded")
        digest = hashlib.sha256(idempotency_key.encode("utf-8")).hexdigest()[:24]
        return ChargeResult(success=True, reference=f"sbx_{digest}")


def get_payment_gateway() -> PaymentGateway:
    return import_string(settings.PAYMENT_GATEWAY_BACKEND)()
