"""Health and metrics endpoints.

``/health/`` reports database reachability and the state of the circuit breaker
guarding the payment processor. Only the database decides the status code:
with the breaker open checkouts fail fast with 503, but webhooks are still
accepted, so the instance stays in rotation.

``/health/metrics/`` counts orders by status and processed events by outcome.
"""
import logging

from django.db import DatabaseError, connection
from django.db.models import Count
from django.http import JsonResponse

from apps.orders.http_adapters import processor_cb
from apps.orders.models import OrderModel
from apps.webhooks.models import ProcessedEvent

logger = logging.getLogger("monitoring")


def _db_ok() -> bool:
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
    except DatabaseError:
        logger.exception("health check: database unreachable")
        return False
    return True


def health_view(_request):
    db_ok = _db_ok()
    breaker = processor_cb.state
    return JsonResponse(
        {
            "ok": db_ok,
            "components": {
                "db": {"ok": db_ok},
                "processor": {"ok": breaker != "OPEN", "circuit": breaker},
            },
        },
        status=200 if db_ok else 503,
    )


def _counts(qs, field: str) -> dict:
    return {row[field]: row["n"] for row in qs.values(field).annotate(n=Count("pk")).order_by(field)}


def metrics_view(_request):
    try:
        by_status = _counts(OrderModel.objects.all(), "status")
        # reservations still in progress have no outcome yet
        by_outcome = _counts(ProcessedEvent.objects.exclude(outcome=""), "outcome")
    except DatabaseError:
        logger.exception("metrics: database unreachable")
        return JsonResponse({"detail": "STORAGE_UNAVAILABLE"}, status=503)

    orders = {"total": sum(by_status.values())}
    orders.update({s: by_status.get(s, 0) for s in OrderModel.Status.values})
    return JsonResponse(
        {
            "orders": orders,
            "events": {"total": sum(by_outcome.values()), "by_outcome": by_outcome},
        }
    )
