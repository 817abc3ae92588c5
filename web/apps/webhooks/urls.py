from django.urls import path
from .views import PaymentWebhookView

app_name = "webhooks"

urlpatterns = [
    path("payments/", PaymentWebhookView.as_view(), name="payments"),
]
