from django.urls import include, path
from rest_framework.routers import DefaultRouter

from modules.discounts.views import DiscountCodeViewSet, ValidateDiscountView

router = DefaultRouter()
router.register(r"discounts", DiscountCodeViewSet, basename="discount")

urlpatterns = [
    path(
        "discounts/validate/",
        ValidateDiscountView.as_view(),
        name="discount-validate",
    ),
    path("", include(router.urls)),
]
