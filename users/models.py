# users/models.py
from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    ROLE_STUDENT = "student"
    ROLE_VERIFIER = "verifier"
    ROLE_ADMIN = "admin"

    ROLE_CHOICES = (
        (ROLE_STUDENT, 'Student'),
        (ROLE_VERIFIER, 'Verifier'),
        (ROLE_ADMIN, 'Admin'),
    )

    role = models.CharField(
        max_length=30,
        choices=ROLE_CHOICES,
        default=ROLE_STUDENT
    )

    # Identity context: every call is made on behalf of exactly one tenant
    tenant = models.ForeignKey(
        "core.Tenant",
        on_delete=models.PROTECT,
        related_name="users",
        null=True,
        blank=True,
    )

    # Verifiers may approve activities of their own department
    department = models.CharField(max_length=120, blank=True, default="")

    class Meta:
        indexes = [
            models.Index(fields=["tenant", "role"], name="user_tenant_role_idx"),
        ]

    def __str__(self):
        return self.username

    @property
    def effective_role(self) -> str:
        """Superusers act as tenant admins."""
        if self.is_superuser:
            return self.ROLE_ADMIN
        return self.role
