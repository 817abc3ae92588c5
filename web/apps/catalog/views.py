"""HTTP views for the catalog.

Listing and retrieval are open to any authenticated caller; creating items
is reserved to staff users.
"""

from gateway.pagination import paginate
from pydantic import ValidationError
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from .models import CatalogItemModel
from .schemas import CatalogItemReadDTO, CreateCatalogItemDTO


def _read(obj: CatalogItemModel) -> dict:
    dto = CatalogItemReadDTO(
        id=obj.id,
        name=obj.name,
        description=obj.description,
        price_cents=obj.price_cents,
        currency=obj.currency,
        is_active=obj.is_active,
    )
    return dto.model_dump(mode="json")


class CatalogCollectionView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "catalog"

    def get_permissions(self):
        if self.request.method == "POST":
            return [IsAdminUser()]
        return [IsAuthenticated()]

    def get(self, request):
        qs = CatalogItemModel.objects.all()
        if request.GET.get("active") in ("1", "true"):
            qs = qs.filter(is_active=True)
        return Response(paginate(request, qs, _read))

    def post(self, request):
        try:
            dto = CreateCatalogItemDTO.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        obj = CatalogItemModel.objects.create(**dto.model_dump())
        return Response(_read(obj), status=status.HTTP_201_CREATED)


class CatalogItemView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "catalog"

    def get(self, request, item_id):
        obj = CatalogItemModel.objects.filter(id=item_id).first()
        if obj is None:
            return Response({"detail": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)
        return Response(_read(obj))
