"""Checkout API views.

``CheckoutView`` accepts guest and signed-in shoppers. The idempotency
key comes from the body (``idempotencyKey``) or the ``Idempotency-Key``
header; replayed responses carry ``Idempotent-Replay: true``.
"""

from __future__ import annotations

import django_filters
from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import mixins, status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet

from modules.checkout.dtos import CheckoutCommand
from modules.checkout.models import ReconciliationAlert
from modules.checkout.orchestrator import get_checkout_orchestrator
from modules.checkout.serializers import (
    ReconciliationAlertSerializer,
    ResolveAlertSerializer,
)
from modules.checkout.services import (
    AlertAlreadyResolved,
    AlertNotFound,
    ReconciliationService,
)
from modules.core.authentication import resolve_user_id
from modules.core.exceptions import error_body


def _validation_errors(exc: PydanticValidationError) -> list[dict]:
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]


class CheckoutView(APIView):
    """POST /api/v1/checkout/"""

    permission_classes = [AllowAny]
    throttle_scope = "checkout"

    def post(self, request: Request) -> Response:
        if not isinstance(request.data, dict):
            return Response(
                error_body("ValidationError", "Some fields are missing or invalid."),
                status=status.HTTP_400_BAD_REQUEST,
            )
        data = {
            **request.data,
            "userId": resolve_user_id(request.user),
        }
        if not data.get("idempotencyKey"):
            data["idempotencyKey"] = request.headers.get("Idempotency-Key", "")

        try:
            command = CheckoutCommand.model_validate(data)
        except PydanticValidationError as exc:
            return Response(
                error_body(
                    "ValidationError",
                    "Some fields are missing or invalid.",
                    errors=_validation_errors(exc),
                ),
                status=status.HTTP_400_BAD_REQUEST,
            )

        outcome = get_checkout_orchestrator().submit(command)
        response = Response(outcome.body, status=outcome.status_code)
        if outcome.replayed:
            response["Idempotent-Replay"] = "true"
        return response


class ReconciliationAlertFilter(django_filters.FilterSet):
    resolved = django_filters.BooleanFilter(
        field_name="resolved_at", lookup_expr="isnull", exclude=True
    )

    class Meta:
        model = ReconciliationAlert
        fields = ["resolved", "currency"]


class ReconciliationAlertViewSet(
    mixins.ListModelMixin, mixins.RetrieveModelMixin, GenericViewSet
):
    """Staff list of captured payments without an order."""

    queryset = ReconciliationAlert.objects.select_related("attempt")
    serializer_class = ReconciliationAlertSerializer
    permission_classes = [IsAdminUser]
    filter_backends = [DjangoFilterBackend]
    filterset_class = ReconciliationAlertFilter
    lookup_value_regex = "[0-9a-fA-F-]{36}"

    @action(detail=True, methods=["post"])
    def resolve(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/checkout/alerts/{pk}/resolve/"""
        serializer = ResolveAlertSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            alert = ReconciliationService().resolve(
                pk,
                resolved_by=resolve_user_id(request.user) or "",
                notes=serializer.validated_data["notes"],
            )
        except AlertNotFound:
            return Response(
                error_body("NotFound", "Alert not found."),
                status=status.HTTP_404_NOT_FOUND,
            )
        except AlertAlreadyResolved as exc:
            return Response(
                error_body("AlertAlreadyResolved", str(exc)),
                status=status.HTTP_409_CONFLICT,
            )
        return Response(ReconciliationAlertSerializer(alert).data)
