"""Discount domain exceptions.

Validation outcomes are returned as ``DiscountError`` values; these
exceptions cover administration and the redemption step, which runs
inside the order persistence transaction.
"""

from __future__ import annotations


class DiscountCodeNotFound(Exception):
    """The requested discount code does not exist."""


class DiscountCodeAlreadyExists(Exception):
    """Another discount code already uses this code string."""


class DiscountCodeInUse(Exception):
    """The code has redemptions and cannot be deleted; deactivate it instead."""


class RedemptionRejected(Exception):
    """The usage or per-user limit was reached between validation and persistence."""

    def __init__(self, reason: str, message: str = "") -> None:
        self.reason = reason
        super().__init__(message or reason)
