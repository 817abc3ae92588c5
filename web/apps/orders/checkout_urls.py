from django.urls import path
from .views import CheckoutSessionView
app_name = "checkout"

urlpatterns = [
    path("checkout-session/", CheckoutSessionView.as_view(), name="checkout-session"),
]
