from django.contrib import admin
from .models import Activity, ProofRef


class ProofRefInline(admin.TabularInline):
    model = ProofRef
    extra = 0
    can_delete = False
    readonly_fields = ('position', 'content_hash', 'media_type', 'size', 'original_name', 'uploaded_by', 'uploaded_at', 'verified_at')

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Activity)
class ActivityAdmin(admin.ModelAdmin):
    list_display = ('title', 'tenant', 'student', 'type', 'status', 'version', 'assigned_verifier', 'created_at')
    list_filter = ('status', 'type', 'tenant', 'proof_waived')
    search_fields = ('title', 'student__username', 'external_ref', 'department')
    # Status only moves through the verification engine
    readonly_fields = ('status', 'version', 'last_transition_at', 'created_at', 'tenant')
    inlines = [ProofRefInline]

    def get_readonly_fields(self, request, obj=None):
        fields = list(super().get_readonly_fields(request, obj))
        # Evidence and claim text are frozen once the activity left Draft
        if obj is not None and obj.status != Activity.STATUS_DRAFT:
            fields += ["title", "type", "department", "proof_waived", "waiver_reason", "student"]
        return fields

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
