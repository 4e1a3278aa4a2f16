# vtl-backend/credentials/models.py
from django.conf import settings
from django.db import models
from django.utils import timezone
import uuid


class Credential(models.Model):
    """
    Signed attestation that an activity was verified.

    Never deleted: withdrawal of the activity revokes it. At most one
    non-revoked credential exists per activity.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant = models.ForeignKey(
        "core.Tenant",
        on_delete=models.PROTECT,
        related_name="credentials",
    )
    activity = models.ForeignKey(
        "activities.Activity",
        on_delete=models.PROTECT,
        related_name="credentials",
    )
    subject = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="credentials",
    )

    issued_at = models.DateTimeField(default=timezone.now)

    # Canonical document and its signature
    payload = models.JSONField()
    payload_hash = models.CharField(max_length=64)
    signature = models.CharField(max_length=128, help_text="Hex Ed25519 signature over the payload hash")
    key_id = models.CharField(max_length=64)
    verify_key = models.CharField(max_length=64, help_text="Hex Ed25519 public key")

    revoked_at = models.DateTimeField(null=True, blank=True)
    revocation_reason = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["-issued_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["activity"],
                condition=models.Q(revoked_at__isnull=True),
                name="credential_one_active_per_activity",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant", "subject"], name="credential_tenant_subject_idx"),
        ]

    def __str__(self):
        state = "revoked" if self.revoked_at else "active"
        return f"Credential {self.id} ({state})"

    def delete(self, *args, **kwargs):
        raise ValueError("Credentials are revoked, never deleted")

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None
