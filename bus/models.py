# vtl-backend/bus/models.py
from django.db import models
from django.utils import timezone


class DomainEvent(models.Model):
    """
    Outbox row. Written in the same transaction as the state change it
    announces; the monotonic `id` defines delivery order within an activity.
    """
    tenant = models.ForeignKey(
        "core.Tenant",
        on_delete=models.PROTECT,
        related_name="domain_events",
    )
    activity = models.ForeignKey(
        "activities.Activity",
        on_delete=models.PROTECT,
        related_name="domain_events",
    )
    topic = models.CharField(max_length=64, db_index=True)
    sequence_no = models.PositiveIntegerField()
    payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["activity", "topic", "sequence_no"],
                name="event_unique_activity_topic_seq",
            ),
        ]

    def __str__(self):
        return f"{self.topic} {self.activity_id}#{self.sequence_no}"

    def envelope(self) -> dict:
        """What consumers receive."""
        return {
            "event_id": self.id,
            "topic": self.topic,
            "tenant_id": self.tenant_id,
            "activity_id": str(self.activity_id),
            "sequence_no": self.sequence_no,
            "timestamp": self.created_at.isoformat(),
            "payload": self.payload,
        }


class EventDelivery(models.Model):
    STATUS_PENDING = "pending"
    STATUS_DELIVERED = "delivered"
    STATUS_DEAD_LETTERED = "dead_lettered"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_DELIVERED, "Delivered"),
        (STATUS_DEAD_LETTERED, "Dead-lettered"),
    ]

    event = models.ForeignKey(
        DomainEvent,
        on_delete=models.CASCADE,
        related_name="deliveries",
    )
    consumer = models.CharField(max_length=64)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)

    attempts = models.PositiveIntegerField(default=0)
    next_attempt_at = models.DateTimeField(default=timezone.now)
    last_error = models.TextField(blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    dead_lettered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["event_id", "consumer"]
        constraints = [
            models.UniqueConstraint(
                fields=["event", "consumer"],
                name="delivery_unique_event_consumer",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "next_attempt_at"], name="delivery_due_idx"),
            models.Index(fields=["consumer", "status"], name="delivery_consumer_idx"),
        ]

    def __str__(self):
        return f"{self.event} -> {self.consumer} ({self.status})"

    @property
    def is_final(self) -> bool:
        return self.status != self.STATUS_PENDING
