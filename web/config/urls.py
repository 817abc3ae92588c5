from django.urls import include, path

from apps.orders.views import CheckoutCancelView, CheckoutSuccessView

urlpatterns = [
    path("", include("apps.monitoring.urls")),
    path("api/catalog/", include("apps.catalog.urls")),
    path("api/orders/", include("apps.orders.urls")),
    path("api/payments/", include("apps.orders.checkout_urls")),
    path("api/webhooks/", include("apps.webhooks.urls")),
    path("payment/success", CheckoutSuccessView.as_view(), name="checkout-success"),
    path("payment/cancel", CheckoutCancelView.as_view(), name="checkout-cancel"),
]
