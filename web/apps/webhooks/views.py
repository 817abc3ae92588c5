"""Inbound processor notifications.

The endpoint authenticates the raw body before anything else reads it, then
hands the decoded event to the reconciler. Response codes tell the processor
whether to redeliver:

- 200 for every event that was accepted, already applied, ignored, or is
  permanently unprocessable (unknown session, terminal-state conflict,
  rejected). Redelivering those can never change the result.
- 400 when the signature does not verify or the body is not an event.
- 503 when storage failed; nothing was committed and a redelivery is safe.
"""
import hashlib
import logging

from django.conf import settings
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.orders.domain import (
    Conflict,
    NotFound,
    PermanentEventError,
    TransientStorageError,
    Unauthenticated,
)

from . import providers

logger = logging.getLogger("webhooks.api")


def _signature_header(request):
    name = "HTTP_" + settings.PAYMENTS_SIGNATURE_HEADER.upper().replace("-", "_")
    return request.META.get(name)


class PaymentWebhookView(APIView):
    """POST endpoint the processor delivers events to."""

    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = []

    def post(self, request):
        raw = request.body
        digest = hashlib.sha256(raw).hexdigest()[:16]

        try:
            event = providers.get_authenticator().authenticate(raw, _signature_header(request))
        except Unauthenticated as e:
            logger.warning("webhook rejected", extra={"reason": e.code, "body_sha256": digest})
            return Response({"detail": e.code}, status=status.HTTP_400_BAD_REQUEST)
        except PermanentEventError as e:
            logger.warning("webhook body unparsable", extra={"reason": e.code, "body_sha256": digest})
            return Response({"detail": e.code}, status=status.HTTP_400_BAD_REQUEST)

        try:
            result = providers.get_reconciler().process(event)
        except (NotFound, Conflict, PermanentEventError) as e:
            return Response({"received": True, "event_id": event.id, "outcome": e.code})
        except TransientStorageError as e:
            logger.error("webhook storage failure", extra={"event_id": event.id, "reason": e.code})
            resp = Response({"detail": e.code}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
            resp["Retry-After"] = "1"
            return resp

        return Response(
            {
                "received": True,
                "event_id": result.event_id,
                "outcome": result.outcome.value,
                "replayed": result.replayed,
            }
        )
