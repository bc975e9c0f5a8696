"""Checkout idempotency keys.

One ``CheckoutAttempt`` per key. The first request creates it; a repeat
with the same request hash gets the stored response; a repeat with a
different hash is a conflict. The create runs in a savepoint so a
concurrent duplicate surfaces as ``IntegrityError`` and falls through to
the locked read.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from django.db import IntegrityError, transaction

from modules.checkout.exceptions import IdempotencyConflict
from modules.checkout.models import CheckoutAttempt


@transaction.atomic
def begin_attempt(
    key: str, request_hash: str, user_id: Optional[str], currency: str
) -> Tuple[bool, CheckoutAttempt]:
    """Return ``(existing, attempt)``.

    Raises:
        IdempotencyConflict: the key was used with a different request.
    """
    try:
        with transaction.atomic():
            attempt = CheckoutAttempt.objects.create(
                idempotency_key=key,
                request_hash=request_hash,
                user_id=user_id,
                currency=currency,
            )
            return False, attempt
    except IntegrityError:
        attempt = CheckoutAttempt.objects.select_for_update().get(idempotency_key=key)
        if attempt.request_hash != request_hash:
            raise IdempotencyConflict()
        return True, attempt


def finalize(
    attempt: CheckoutAttempt, status_code: int, body: Dict[str, Any]
) -> None:
    """Store the response replayed for later requests with the same key."""
    attempt.response_status = status_code
    attempt.response_body = body
    attempt.save(update_fields=["response_status", "response_body"])
