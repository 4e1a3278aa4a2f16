from django.contrib import admin
from .models import Credential


@admin.register(Credential)
class CredentialAdmin(admin.ModelAdmin):
    list_display = ('id', 'tenant', 'activity', 'subject', 'issued_at', 'revoked_at', 'key_id')
    list_filter = ('tenant', 'revoked_at', 'key_id')
    search_fields = ('id', 'activity__title', 'subject__username', 'payload_hash')
    readonly_fields = (
        'tenant', 'activity', 'subject', 'issued_at', 'payload', 'payload_hash',
        'signature', 'key_id', 'verify_key', 'revoked_at', 'revocation_reason',
    )

    # Issued by the issuer consumer, revoked by withdrawal
    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
