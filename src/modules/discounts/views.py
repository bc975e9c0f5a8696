"""Discount API views.

- ``DiscountCodeViewSet``: staff administration (list, create, edit,
  delete, toggle active).
- ``ValidateDiscountView``: storefront preview behind the order summary
  "Apply" button. It never consumes a use.
"""

from __future__ import annotations

from typing import Sequence

from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.mixins import ListModelMixin
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet

from modules.checkout.cart import CartLine, build_cart_snapshot
from modules.checkout.dtos import CheckoutLineDTO
from modules.checkout.exceptions import ProductUnavailableError
from modules.checkout.pricing import (
    ShippingRule,
    amount_for_free_shipping,
    price_subtotal,
)
from modules.core.authentication import resolve_user_id
from modules.core.exceptions import error_body
from modules.core.money import ZERO
from modules.discounts.dtos import CreateDiscountDTO, DiscountError, UpdateDiscountDTO
from modules.discounts.exceptions import (
    DiscountCodeAlreadyExists,
    DiscountCodeInUse,
    DiscountCodeNotFound,
)
from modules.discounts.filters import DiscountCodeFilter
from modules.discounts.models import DiscountCode
from modules.discounts.serializers import (
    DiscountCodeInputSerializer,
    DiscountCodeSerializer,
    DiscountCodeUpdateSerializer,
    ValidateDiscountSerializer,
)
from modules.discounts.services import DiscountService
from modules.discounts.validator import DiscountValidator


def _not_found() -> Response:
    return Response(
        error_body("NotFound", "Discount code not found."),
        status=status.HTTP_404_NOT_FOUND,
    )


class DiscountCodeViewSet(ListModelMixin, GenericViewSet):
    queryset = DiscountCode.objects.all()
    serializer_class = DiscountCodeSerializer
    permission_classes = [IsAdminUser]
    filterset_class = DiscountCodeFilter
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    search_fields = ["code", "description"]
    ordering_fields = ["created_at", "code", "usage_count"]
    ordering = ["-created_at"]
    lookup_value_regex = "[0-9a-fA-F-]{36}"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = DiscountService()

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/discounts/{pk}/"""
        try:
            discount = self._service.get_code(pk)
        except DiscountCodeNotFound:
            return _not_found()
        return Response(DiscountCodeSerializer(discount).data)

    def create(self, request: Request) -> Response:
        """POST /api/v1/discounts/"""
        serializer = DiscountCodeInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dto = CreateDiscountDTO(**serializer.validated_data)
        except (PydanticValidationError, ValueError) as exc:
            return Response(
                error_body("ValidationError", str(exc)),
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            discount = self._service.create_code(dto)
        except DiscountCodeAlreadyExists as exc:
            return Response(
                error_body("DiscountCodeAlreadyExists", str(exc)),
                status=status.HTTP_409_CONFLICT,
            )
        return Response(
            DiscountCodeSerializer(discount).data, status=status.HTTP_201_CREATED
        )

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/discounts/{pk}/"""
        serializer = DiscountCodeUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        dto = UpdateDiscountDTO(**serializer.validated_data)
        try:
            discount = self._service.update_code(pk, dto)
        except DiscountCodeNotFound:
            return _not_found()
        except ValueError as exc:
            return Response(
                error_body("ValidationError", str(exc)),
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(DiscountCodeSerializer(discount).data)

    def destroy(self, request: Request, pk: str | None = None) -> Response:
        """DELETE /api/v1/discounts/{pk}/"""
        try:
            self._service.delete_code(pk)
        except DiscountCodeNotFound:
            return _not_found()
        except DiscountCodeInUse as exc:
            return Response(
                error_body("DiscountCodeInUse", str(exc)),
                status=status.HTTP_409_CONFLICT,
            )
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"])
    def toggle(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/discounts/{pk}/toggle/"""
        try:
            discount = self._service.toggle_active(pk)
        except DiscountCodeNotFound:
            return _not_found()
        return Response(DiscountCodeSerializer(discount).data)


class ValidateDiscountView(APIView):
    """POST /api/v1/discounts/validate/

    Returns the discount and resulting totals for a subtotal, or a 422
    ``DiscountCodeInvalid`` body carrying the ``reason``.
    """

    permission_classes = [AllowAny]
    throttle_scope = "discount_validation"

    def post(self, request: Request) -> Response:
        serializer = ValidateDiscountSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        code = serializer.validated_data["code"]
        subtotal = serializer.validated_data.get("subtotal")
        lines: Sequence[CartLine] = ()
        if "cart" in serializer.validated_data:
            try:
                snapshot = build_cart_snapshot(
                    [
                        CheckoutLineDTO(
                            product_id=line["productId"], quantity=line["quantity"]
                        )
                        for line in serializer.validated_data["cart"]
                    ]
                )
            except ProductUnavailableError as exc:
                return Response(exc.to_body(), status=exc.http_status)
            lines, subtotal = snapshot.lines, snapshot.subtotal

        result = DiscountValidator().validate(
            code, subtotal, user_id=resolve_user_id(request.user), lines=lines
        )
        if isinstance(result, DiscountError):
            return Response(
                error_body("DiscountCodeInvalid", result.message, reason=result.reason),
                status=status.HTTP_422_UNPROCESSABLE_ENTITY,
            )

        rule = ShippingRule.from_settings()
        breakdown = price_subtotal(subtotal, result, rule)
        remaining = (
            ZERO
            if breakdown.shipping_waived
            else amount_for_free_shipping(subtotal, rule)
        )
        return Response(
            {
                "code": result.code,
                "discountType": result.discount_type,
                "discountAmount": str(breakdown.discount_amount),
                "freeShipping": result.free_shipping,
                "subtotal": str(breakdown.subtotal),
                "shippingCost": str(breakdown.shipping_cost),
                "total": str(breakdown.total),
                "amountForFreeShipping": str(remaining),
            }
        )
