"""HTTP views for the orders app.

Views are kept intentionally small: they validate requests (via Pydantic),
delegate to a domain service, and map the result or the domain error to an
HTTP response. Domain errors carry a stable code which becomes the
``detail`` of the response body, so clients see a small fixed vocabulary
and never a raw processor error.

Services are obtained from ``providers`` at request time, which lets tests
swap the processor without touching view logic.

Idempotency: order creation honours an optional ``Idempotency-Key`` header.
The first request stores its response; retries with the same payload get
the stored response back with ``Idempotent-Replay: true``; the same key with
a different payload returns HTTP 409.
"""
import logging

from gateway.pagination import paginate
from pydantic import ValidationError
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import providers
from .domain import (
    Conflict,
    Forbidden,
    NotFound,
    PaymentFlowError,
    ProcessorRejected,
    TransientStorageError,
    UpstreamUnavailable,
)
from .idempotency import finalize, get_or_create_idempotent, release
from .schemas import CheckoutSessionReadDTO, CreateCheckoutSessionDTO, CreateOrderDTO, OrderReadDTO

logger = logging.getLogger("orders.api")

_STATUS_BY_CODE = {
    "ITEM_UNAVAILABLE": status.HTTP_422_UNPROCESSABLE_ENTITY,
}
_STATUS_BY_TYPE = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (Forbidden, status.HTTP_403_FORBIDDEN),
    (Conflict, status.HTTP_409_CONFLICT),
    (ProcessorRejected, status.HTTP_502_BAD_GATEWAY),
    (UpstreamUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (TransientStorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def error_status(e: PaymentFlowError) -> int:
    if e.code in _STATUS_BY_CODE:
        return _STATUS_BY_CODE[e.code]
    for cls, code in _STATUS_BY_TYPE:
        if isinstance(e, cls):
            return code
    return status.HTTP_400_BAD_REQUEST


def error_response(e: PaymentFlowError) -> Response:
    resp = Response({"detail": e.code}, status=error_status(e))
    if e.retryable:
        resp["Retry-After"] = "1"
    return resp


class OrdersPingView(APIView):
    """Liveness endpoint for the orders module."""

    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(APIView):
    """List the caller's orders (GET) or create an order (POST)."""

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        try:
            orders = providers.get_order_service().list_for_owner(str(request.user.pk))
        except PaymentFlowError as e:
            return error_response(e)

        body = paginate(request, orders, lambda o: OrderReadDTO.from_order(o).model_dump(mode="json"))
        return Response(body, status=200)

    def post(self, request):
        """Create a new PENDING order for a catalog item.

        Returns:
            Response: One of the following responses.
            - 201 with the order when it is created.
            - 200/other with the stored body when the same idempotency key
              and payload are retried.
            - 409 ``IDEMPOTENCY_CONFLICT`` when a key is reused with a
              different payload.
            - 400 for DTO validation errors.
            - 404 ``ITEM_NOT_FOUND`` / 422 ``ITEM_UNAVAILABLE``.
            - 503 ``STORAGE_UNAVAILABLE``; the idempotency key is released so
              a retry with the same key runs again.
        """
        owner_id = str(request.user.pk)
        idem_key = request.headers.get("Idempotency-Key")

        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(owner_id, idem_key, request.data)
            except ValueError:
                return Response({"detail": "IDEMPOTENCY_CONFLICT"}, status=status.HTTP_409_CONFLICT)
            if existing:
                if not rec.response_status:
                    return Response({"detail": "IDEMPOTENCY_IN_PROGRESS"}, status=status.HTTP_409_CONFLICT)
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        try:
            order = providers.get_order_service().create_order(owner_id, dto.item_id)
        except PaymentFlowError as e:
            resp = error_response(e)
            if rec and e.retryable:
                release(rec)
            elif rec:
                finalize(rec, resp.status_code, resp.data)
            return resp

        body = OrderReadDTO.from_order(order).model_dump(mode="json")
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=order.id)
        logger.info("order created", extra={"order_id": str(order.id), "amount_cents": order.amount_cents})
        return Response(body, status=status.HTTP_201_CREATED)


class RetrieveOrderView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        try:
            order = providers.get_order_service().get_for_owner(oid, str(request.user.pk))
        except PaymentFlowError as e:
            return error_response(e)
        return Response(OrderReadDTO.from_order(order).model_dump(mode="json"), status=200)


class CheckoutSessionView(APIView):
    """Open a hosted checkout session for one of the caller's orders.

    Responses: 200 ``{redirect_url, session_id}``; 400 invalid body;
    404 ``ORDER_NOT_FOUND``; 403 ``FORBIDDEN``; 409 ``ORDER_NOT_PENDING``;
    503 ``UPSTREAM_UNAVAILABLE`` or ``STORAGE_UNAVAILABLE`` (retryable).
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout"

    def post(self, request):
        try:
            dto = CreateCheckoutSessionDTO.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        try:
            session = providers.get_checkout_issuer().create_session(dto.order_id, str(request.user.pk))
        except PaymentFlowError as e:
            logger.info("checkout session refused", extra={"order_id": str(dto.order_id), "code": e.code})
            return error_response(e)

        body = CheckoutSessionReadDTO(redirect_url=session.redirect_url, session_id=session.session_key)
        return Response(body.model_dump(), status=status.HTTP_200_OK)


class CheckoutSuccessView(APIView):
    """Landing page after the hosted flow reports success.

    Informational only: the order changes state when the processor's
    notification arrives, never because a browser reached this URL.
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        return Response(
            {
                "detail": "PAYMENT_SUBMITTED",
                "session_id": request.GET.get("session_id"),
                "message": "Payment received. The order status updates once the processor confirms it.",
            }
        )


class CheckoutCancelView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        return Response(
            {
                "detail": "PAYMENT_CANCELLED",
                "message": "Payment cancelled. The order stays PENDING and its checkout link stays valid until it expires.",
            }
        )
