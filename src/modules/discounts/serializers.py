"""Discount DRF serializers."""

from __future__ import annotations

from rest_framework import serializers

from modules.discounts.constants import DiscountType
from modules.discounts.models import DiscountCode


class DiscountCodeInputSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)
    description = serializers.CharField(
        max_length=255, required=False, allow_blank=True, default=""
    )
    discount_type = serializers.ChoiceField(choices=DiscountType.choices)
    value = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False
    )
    min_purchase_amount = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False
    )
    max_discount_amount = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True
    )
    usage_limit = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    per_user_limit = serializers.IntegerField(min_value=1, required=False)
    buy_quantity = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    get_quantity = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    valid_from = serializers.DateTimeField(required=False, allow_null=True)
    valid_until = serializers.DateTimeField(required=False, allow_null=True)
    is_active = serializers.BooleanField(required=False)


class DiscountCodeUpdateSerializer(DiscountCodeInputSerializer):
    """Code and type are fixed once created; use with ``partial=True``."""

    code = None
    discount_type = None
    valid_from = serializers.DateTimeField(required=False)


class DiscountCodeSerializer(serializers.ModelSerializer):
    class Meta:
        model = DiscountCode
        fields = [
            "id",
            "code",
            "description",
            "discount_type",
            "value",
            "min_purchase_amount",
            "max_discount_amount",
            "usage_limit",
            "usage_count",
            "per_user_limit",
            "buy_quantity",
            "get_quantity",
            "valid_from",
            "valid_until",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PreviewLineSerializer(serializers.Serializer):
    productId = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1, max_value=100)


class ValidateDiscountSerializer(serializers.Serializer):
    """Order summary "Apply" button payload.

    Send ``cart`` to price the preview from the catalog (needed for
    ``buy_x_get_y`` codes); a bare ``subtotal`` is enough for the others.
    """

    code = serializers.CharField(max_length=50)
    subtotal = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False
    )
    cart = PreviewLineSerializer(many=True, required=False, allow_empty=False)

    def validate(self, attrs):
        if "subtotal" not in attrs and "cart" not in attrs:
            raise serializers.ValidationError(
                {"subtotal": ["Send a subtotal or the cart lines."]}
            )
        return attrs
