from django.urls import path
from .views import CatalogCollectionView, CatalogItemView

app_name = "catalog"

urlpatterns = [
    path("items/", CatalogCollectionView.as_view(), name="items-collection"),
    path("items/<uuid:item_id>/", CatalogItemView.as_view(), name="items-detail"),
]
