# notifications/models.py
from django.db import models
from django.conf import settings


class Notification(models.Model):
    TYPE_ACTIVITY_SUBMITTED = "activity_submitted"
    TYPE_ACTIVITY_VERIFIED = "activity_verified"
    TYPE_ACTIVITY_REJECTED = "activity_rejected"
    TYPE_INFO_REQUESTED = "info_requested"
    TYPE_ACTIVITY_RESUBMITTED = "activity_resubmitted"
    TYPE_ACTIVITY_WITHDRAWN = "activity_withdrawn"
    TYPE_CREDENTIAL_ISSUED = "credential_issued"
    TYPE_CREDENTIAL_REVOKED = "credential_revoked"
    TYPE_SYSTEM = "system"

    TYPE_CHOICES = [
        (TYPE_ACTIVITY_SUBMITTED, "Activity Submitted"),
        (TYPE_ACTIVITY_VERIFIED, "Activity Verified"),
        (TYPE_ACTIVITY_REJECTED, "Activity Rejected"),
        (TYPE_INFO_REQUESTED, "More Information Requested"),
        (TYPE_ACTIVITY_RESUBMITTED, "Activity Resubmitted"),
        (TYPE_ACTIVITY_WITHDRAWN, "Activity Withdrawn"),
        (TYPE_CREDENTIAL_ISSUED, "Credential Issued"),
        (TYPE_CREDENTIAL_REVOKED, "Credential Revoked"),
        (TYPE_SYSTEM, "System"),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
    )
    type = models.CharField(max_length=64, choices=TYPE_CHOICES)
    title = models.CharField(max_length=255)
    body = models.TextField(blank=True)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    # Optional linking to activity
    activity = models.ForeignKey(
        "activities.Activity",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="notifications",
    )

    # "<topic>:<activity_id>:<sequence_no>": redelivered events never notify twice
    dedup_key = models.CharField(max_length=200, blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "is_read"], name="notif_user_read_idx"),
            models.Index(fields=["type"], name="notif_type_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "dedup_key"],
                condition=~models.Q(dedup_key=""),
                name="notif_unique_user_dedup",
            ),
        ]

    def __str__(self):
        return f"{self.user} - {self.type} - {self.title}"
