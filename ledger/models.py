# vtl-backend/ledger/models.py
from django.conf import settings
from django.db import models
from django.utils import timezone

from core.constants import FACT_CHOICES
from core.exceptions import ImmutableRecord


class AppendOnlyQuerySet(models.QuerySet):
    """
    Ledger tables are insert-only: bulk update/delete are refused.
    """

    def update(self, **kwargs):
        raise ImmutableRecord(f"{self.model.__name__} rows cannot be updated")

    def delete(self):
        raise ImmutableRecord(f"{self.model.__name__} rows cannot be deleted")


class AppendOnlyModel(models.Model):
    objects = AppendOnlyQuerySet.as_manager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecord(f"{self.__class__.__name__} is immutable once written")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecord(f"{self.__class__.__name__} cannot be deleted")


class TransitionRecord(AppendOnlyModel):
    """
    Immutable fact describing one status change of one activity.

    sequence_no is 1-based, gap-free and strictly increasing per activity;
    the activity's current status is the to_status of its highest record.
    """
    tenant = models.ForeignKey(
        "core.Tenant",
        on_delete=models.PROTECT,
        related_name="transition_records",
    )
    activity = models.ForeignKey(
        "activities.Activity",
        on_delete=models.PROTECT,
        related_name="transition_records",
    )
    sequence_no = models.PositiveIntegerField()

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="transition_records",
    )
    # Snapshot: role at the time of the action, not the user's current role
    actor_role = models.CharField(max_length=30)

    from_status = models.CharField(max_length=32)
    to_status = models.CharField(max_length=32)
    action = models.CharField(max_length=32)
    comment = models.TextField(blank=True)

    recorded_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["activity", "sequence_no"]
        constraints = [
            models.UniqueConstraint(
                fields=["activity", "sequence_no"],
                name="transition_unique_sequence",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant", "activity", "sequence_no"], name="transition_lookup_idx"),
            models.Index(fields=["tenant", "recorded_at"], name="transition_tenant_time_idx"),
        ]

    def __str__(self):
        return f"{self.activity_id}#{self.sequence_no} {self.from_status}->{self.to_status}"

    def same_fact_as(self, other: "TransitionRecord") -> bool:
        """Used by idempotent append: a replay carries identical content."""
        return (
            self.activity_id == other.activity_id
            and self.sequence_no == other.sequence_no
            and self.actor_id == other.actor_id
            and self.from_status == other.from_status
            and self.to_status == other.to_status
            and self.action == other.action
        )


class OperationalRecord(AppendOnlyModel):
    """
    Audited facts that are not status transitions: issuance, revocation,
    dead letters, replays, detected inconsistencies, rejected integrations.
    """
    tenant = models.ForeignKey(
        "core.Tenant",
        on_delete=models.PROTECT,
        related_name="operational_records",
        null=True,
        blank=True,
    )
    activity = models.ForeignKey(
        "activities.Activity",
        on_delete=models.PROTECT,
        related_name="operational_records",
        null=True,
        blank=True,
    )
    kind = models.CharField(max_length=64, choices=FACT_CHOICES, db_index=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="operational_records",
        null=True,
        blank=True,
    )
    detail = models.JSONField(default=dict, blank=True)
    recorded_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["-recorded_at"]
        indexes = [
            models.Index(fields=["tenant", "kind", "-recorded_at"], name="opfact_tenant_kind_idx"),
            models.Index(fields=["activity", "-recorded_at"], name="opfact_activity_idx"),
        ]

    def __str__(self):
        return f"{self.kind} @ {self.recorded_at}"
