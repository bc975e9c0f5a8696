from django.urls import include, path
from rest_framework.routers import DefaultRouter

from modules.checkout.views import CheckoutView, ReconciliationAlertViewSet

router = DefaultRouter()
router.register("checkout/alerts", ReconciliationAlertViewSet, basename="checkout-alert")

urlpatterns = [
    path("checkout/", CheckoutView.as_view(), name="checkout"),
    path("", include(router.urls)),
]
