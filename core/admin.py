from django.contrib import admin, messages
from .models import Tenant


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ('name', 'slug', 'is_active', 'created_at')
    search_fields = ('name', 'slug')
    list_filter = ('is_active', 'created_at')
    prepopulated_fields = {'slug': ('name',)}
    exclude = ('integration_secret',)
    actions = ['rotate_secret']

    @admin.action(description="Rotate integration secret")
    def rotate_secret(self, request, queryset):
        for tenant in queryset:
            secret = tenant.rotate_integration_secret()
            # Shown once here; share it with the institution's LMS operator
            self.message_user(request, f"{tenant.slug}: {secret}", level=messages.WARNING)
