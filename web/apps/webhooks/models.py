from django.db import models


class ProcessedEvent(models.Model):
    """Idempotency ledger: one row per processor event id ever handled.

    The unique constraint on ``event_id`` is what makes redelivery safe; the
    row is inserted in the same transaction as the order mutation it guards.
    """

    event_id = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=128)
    outcome = models.CharField(max_length=32, blank=True, default="")
    order_id = models.UUIDField(null=True, blank=True)
    processed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "processed_events"

    def __str__(self):
        return f"{self.event_id} ({self.event_type}) -> {self.outcome or '?'}"
