from django.contrib import admin

from .models import OperationalRecord, TransitionRecord


class ReadOnlyAdmin(admin.ModelAdmin):
    """Ledger rows are append-only; the admin only browses them."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(TransitionRecord)
class TransitionRecordAdmin(ReadOnlyAdmin):
    list_display = ('activity', 'sequence_no', 'action', 'from_status', 'to_status', 'actor', 'actor_role', 'recorded_at')
    list_filter = ('action', 'to_status', 'tenant')
    search_fields = ('activity__id', 'activity__title', 'actor__username', 'comment')
    ordering = ('-recorded_at',)


@admin.register(OperationalRecord)
class OperationalRecordAdmin(ReadOnlyAdmin):
    list_display = ('kind', 'tenant', 'activity', 'actor', 'recorded_at')
    list_filter = ('kind', 'tenant')
    search_fields = ('activity__id',)
