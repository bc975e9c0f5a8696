"""Order API views.

Shoppers list and read their own orders; staff see every order and move
it through fulfilment. Domain exceptions are caught and translated into
HTTP status codes.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.authentication import resolve_user_id
from modules.core.exceptions import error_body
from modules.inventory.ledger import InventoryLedger
from modules.orders.exceptions import InvalidOrderStatus, OrderNotFound
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    OrderListSerializer,
    OrderSerializer,
    UpdateOrderStatusSerializer,
)
from modules.orders.services import OrderService


def _not_found() -> Response:
    return Response(
        error_body("NotFound", "Order not found."),
        status=status.HTTP_404_NOT_FOUND,
    )


def _invalid_status(exc: Exception) -> Response:
    return Response(
        error_body("InvalidOrderStatus", str(exc)),
        status=status.HTTP_400_BAD_REQUEST,
    )


class OrderViewSet(GenericViewSet):
    """List / retrieve for shoppers, status updates and cancel for staff."""

    queryset = Order.objects.all()
    serializer_class = OrderSerializer
    filterset_class = OrderFilter
    search_fields = ["order_number", "discount_code"]
    ordering_fields = ["created_at", "total", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    lookup_value_regex = "[0-9a-fA-F-]{36}"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService(
            order_repository=OrderDjangoRepository(),
            ledger=InventoryLedger(),
        )

    def get_permissions(self):
        if self.action in {"partial_update", "cancel"}:
            return [IsAdminUser()]
        return [IsAuthenticated()]

    def get_throttles(self) -> list[BaseThrottle]:
        self.throttle_scope = (
            "order_listing" if self.action in {"list", "retrieve"} else None
        )
        return super().get_throttles()

    def _owner_scope(self, request: Request) -> Optional[str]:
        """``None`` for staff (every order), else the caller's user id."""
        if request.user.is_staff:
            return None
        return resolve_user_id(request.user) or ""

    def _actor(self, request: Request) -> str:
        return resolve_user_id(request.user) or ""

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return Order.objects.none()
        return self._service.list_orders(self._owner_scope(self.request))

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/"""
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = OrderListSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._service.get_order(pk, user_id=self._owner_scope(request))
        except OrderNotFound:
            return _not_found()
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Fulfilment (staff)
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/"""
        serializer = UpdateOrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = self._service.update_status(
                order_id=UUID(pk),
                new_status=serializer.validated_data["status"],
                notes=serializer.validated_data["notes"],
                changed_by=self._actor(request),
            )
        except (OrderNotFound, ValueError):
            return _not_found()
        except InvalidOrderStatus as exc:
            return _invalid_status(exc)
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/"""
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = self._service.cancel_order(
                order_id=UUID(pk),
                notes=serializer.validated_data["notes"],
                changed_by=self._actor(request),
            )
        except (OrderNotFound, ValueError):
            return _not_found()
        except InvalidOrderStatus as exc:
            return _invalid_status(exc)
        return Response(OrderSerializer(order).data)
