"""Discount domain constants."""

from django.db import models


class DiscountType(models.TextChoices):
    PERCENTAGE = "percentage", "Percentage"
    FIXED = "fixed", "Fixed amount"
    FREE_SHIPPING = "free_shipping", "Free shipping"
    BUY_X_GET_Y = "buy_x_get_y", "Buy X get Y"


class DiscountErrorReason(models.TextChoices):
    CODE_NOT_FOUND = "CodeNotFound", "Code not found"
    CODE_NOT_YET_ACTIVE = "CodeNotYetActive", "Code not yet active"
    CODE_EXPIRED = "CodeExpired", "Code expired"
    MINIMUM_NOT_MET = "MinimumNotMet", "Minimum purchase not met"
    USAGE_LIMIT_EXCEEDED = "UsageLimitExceeded", "Usage limit exceeded"
    PER_USER_LIMIT_EXCEEDED = "PerUserLimitExceeded", "Per-user limit exceeded"
    UNSUPPORTED_DISCOUNT_TYPE = "UnsupportedDiscountType", "Unsupported type"


# Stored as ``DiscountRedemption.user_id`` for guest checkouts.
GUEST_USER = "guest"
