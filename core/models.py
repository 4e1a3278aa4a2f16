#  vtl-backend/core/models.py
from django.db import models
import secrets


class Tenant(models.Model):
    """
    An institution. The unit of data isolation: activities, ledger records,
    credentials and domain events are always scoped to exactly one tenant.
    """
    name = models.CharField(max_length=255, unique=True)
    slug = models.SlugField(max_length=64, unique=True)

    # Shared secret for inbound LMS/ERP requests (HMAC-SHA256)
    integration_secret = models.CharField(
        max_length=128,
        blank=True,
        help_text="Shared secret used to sign inbound integration requests.",
    )

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["slug"], name="tenant_slug_idx"),
        ]

    def __str__(self):
        return self.name

    @classmethod
    def generate_secret(cls) -> str:
        """
        Generate a random, URL-safe integration secret.
        """
        return secrets.token_urlsafe(48)[:64]

    def rotate_integration_secret(self, save: bool = True) -> str:
        self.integration_secret = self.generate_secret()
        if save:
            self.save(update_fields=["integration_secret"])
        return self.integration_secret
