import uuid
from django.db import models


class OrderModel(models.Model):
    # UUID PK exposed in the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Status(models.TextChoices):
        PENDING = "PENDING"
        PAID = "PAID"
        FAILED = "FAILED"

    owner_id = models.CharField(max_length=64, db_index=True, editable=False)
    item_id = models.UUIDField(editable=False)
    amount_cents = models.PositiveIntegerField(editable=False)
    currency = models.CharField(max_length=3, default="USD")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    # correlation key for inbound processor notifications; written once
    external_session_key = models.CharField(max_length=255, unique=True, null=True, blank=True)
    checkout_url = models.URLField(max_length=2048, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["owner_id", "-created_at"], name="orders_owner_created_idx")]


class IdempotencyKey(models.Model):
    """Stored response for a client-supplied ``Idempotency-Key``.

    Keys are scoped per caller so two users can never replay each other's
    responses.
    """

    owner_id = models.CharField(max_length=64)
    key = models.CharField(max_length=200)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    order_id = models.UUIDField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
        constraints = [
            models.UniqueConstraint(fields=["owner_id", "key"], name="ux_idempotency_owner_key"),
        ]
