# vtl-backend/activities/models.py
from django.conf import settings
from django.db import models
from django.utils import timezone
import uuid


class Activity(models.Model):
    """
    A claimed student achievement subject to verification.

    `status` and `version` are only ever changed by the verification engine,
    through a conditional update that is atomic with the matching
    TransitionRecord. `version` equals the sequence_no of the latest
    transition record and doubles as the optimistic concurrency token.
    """
    STATUS_DRAFT = "draft"
    STATUS_PENDING = "pending"
    STATUS_PENDING_INFO = "pending_info"
    STATUS_VERIFIED = "verified"
    STATUS_REJECTED = "rejected"
    STATUS_WITHDRAWN = "withdrawn"

    STATUS_CHOICES = [
        (STATUS_DRAFT, "Draft"),
        (STATUS_PENDING, "Pending"),
        (STATUS_PENDING_INFO, "Pending Info"),
        (STATUS_VERIFIED, "Verified"),
        (STATUS_REJECTED, "Rejected"),
        (STATUS_WITHDRAWN, "Withdrawn"),
    ]

    TYPE_CONFERENCE = "conference"
    TYPE_CERTIFICATION = "certification"
    TYPE_CLUB = "club"
    TYPE_COMPETITION = "competition"
    TYPE_INTERNSHIP = "internship"
    TYPE_VOLUNTEERING = "volunteering"
    TYPE_COMMUNITY_SERVICE = "community_service"
    TYPE_OTHER = "other"

    TYPE_CHOICES = [
        (TYPE_CONFERENCE, "Conference"),
        (TYPE_CERTIFICATION, "Certification"),
        (TYPE_CLUB, "Club"),
        (TYPE_COMPETITION, "Competition"),
        (TYPE_INTERNSHIP, "Internship"),
        (TYPE_VOLUNTEERING, "Volunteering"),
        (TYPE_COMMUNITY_SERVICE, "Community Service"),
        (TYPE_OTHER, "Other"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant = models.ForeignKey(
        "core.Tenant",
        on_delete=models.PROTECT,
        related_name="activities",
    )
    student = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="activities",
    )

    type = models.CharField(max_length=32, choices=TYPE_CHOICES, default=TYPE_OTHER)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    department = models.CharField(max_length=120, blank=True, default="")

    # Routing: an explicit assignment wins over department matching
    assigned_verifier = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_activities",
    )

    proof_waived = models.BooleanField(
        default=False,
        help_text="Explicit waiver: activity may leave Draft without proof.",
    )
    waiver_reason = models.CharField(max_length=255, blank=True)

    status = models.CharField(
        max_length=32,
        choices=STATUS_CHOICES,
        default=STATUS_DRAFT,
        editable=False,
    )
    version = models.PositiveIntegerField(default=0, editable=False)

    # Inbound integrations: the external system's own id, unique per tenant
    external_ref = models.CharField(max_length=128, null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="created_activities",
    )
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    last_transition_at = models.DateTimeField(null=True, blank=True, editable=False)

    class Meta:
        verbose_name_plural = "Activities"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["tenant", "status"], name="activity_tenant_status_idx"),
            models.Index(fields=["tenant", "student"], name="activity_tenant_student_idx"),
            models.Index(fields=["tenant", "department", "status"], name="activity_dept_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "external_ref"],
                condition=models.Q(external_ref__isnull=False),
                name="activity_unique_external_ref",
            ),
        ]

    def __str__(self):
        return f"{self.title} ({self.get_status_display()})"

    def save(self, *args, **kwargs):
        # tenant_id is immutable after creation
        if not self._state.adding:
            stored_tenant = (
                Activity.objects.filter(pk=self.pk).values_list("tenant_id", flat=True).first()
            )
            if stored_tenant is not None and stored_tenant != self.tenant_id:
                raise ValueError("Activity tenant cannot be changed")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        # Retention: rejection/withdrawal is a status, never a row deletion
        raise ValueError("Activities are never deleted; withdraw them instead")

    @property
    def has_evidence(self) -> bool:
        return self.proof_waived or self.proof_refs.exists()

    @property
    def proofs_editable(self) -> bool:
        return self.status in (self.STATUS_DRAFT, self.STATUS_PENDING_INFO)


class ProofRef(models.Model):
    """
    Pointer to evidence bytes held by the proof store.

    `content_hash` is the SHA-256 the store computed when the bytes were
    written. It is re-checked against the stored bytes at submit/resubmit
    and at credential issuance.
    """
    activity = models.ForeignKey(
        Activity,
        on_delete=models.PROTECT,
        related_name="proof_refs",
    )
    position = models.PositiveIntegerField()
    content_hash = models.CharField(max_length=64, db_index=True)
    media_type = models.CharField(max_length=127, default="application/octet-stream")
    size = models.PositiveIntegerField(null=True, blank=True)
    original_name = models.CharField(max_length=255, blank=True)

    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="uploaded_proofs",
    )
    uploaded_at = models.DateTimeField(default=timezone.now)
    verified_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["activity", "position"]
        constraints = [
            models.UniqueConstraint(
                fields=["activity", "position"],
                name="proofref_unique_position",
            ),
        ]

    def __str__(self):
        return f"{self.content_hash[:12]}… ({self.media_type})"
