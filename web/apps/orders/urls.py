from django.urls import path

from .views import OrdersCollectionView, OrdersPingView, RetrieveOrderView

app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("", OrdersCollectionView.as_view(), name="collection"),  # GET list of own orders / POST create
    path("<uuid:oid>/", RetrieveOrderView.as_view(), name="detail"),
]
