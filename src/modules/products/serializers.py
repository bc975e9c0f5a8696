"""Product DRF serializers."""

from __future__ import annotations

from rest_framework import serializers

from modules.products.models import Product


class ProductSerializer(serializers.ModelSerializer):
    """Catalog representation; stock columns are read-only here.

    ``stock_quantity`` may be set on creation only. Afterwards stock moves
    exclusively through inventory reservations.
    """

    effective_price = serializers.DecimalField(
        max_digits=10, decimal_places=2, read_only=True
    )
    available_quantity = serializers.IntegerField(read_only=True)
    is_on_sale = serializers.BooleanField(read_only=True)

    class Meta:
        model = Product
        fields = [
            "id",
            "sku",
            "name",
            "description",
            "price",
            "sale_price",
            "effective_price",
            "is_on_sale",
            "stock_quantity",
            "available_quantity",
            "status",
            "category",
            "size",
            "color",
            "featured",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate_sku(self, value: str) -> str:
        return value.strip().upper()

    def validate(self, attrs):
        price = attrs.get("price", getattr(self.instance, "price", None))
        sale_price = attrs.get("sale_price", getattr(self.instance, "sale_price", None))
        if sale_price is not None and price is not None and sale_price >= price:
            raise serializers.ValidationError(
                {"sale_price": "Sale price must be lower than the regular price."}
            )
        if self.instance is not None and "stock_quantity" in attrs:
            raise serializers.ValidationError(
                {"stock_quantity": "Stock is managed by the inventory ledger."}
            )
        return attrs
