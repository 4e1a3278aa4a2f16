from django.contrib import admin, messages

from core.exceptions import LedgerError
from . import services
from .models import DomainEvent, EventDelivery


class EventDeliveryInline(admin.TabularInline):
    model = EventDelivery
    extra = 0
    can_delete = False
    readonly_fields = ('consumer', 'status', 'attempts', 'next_attempt_at', 'delivered_at', 'last_error')


@admin.register(DomainEvent)
class DomainEventAdmin(admin.ModelAdmin):
    list_display = ('id', 'topic', 'activity', 'sequence_no', 'tenant', 'created_at')
    list_filter = ('topic', 'tenant')
    search_fields = ('activity__id',)
    readonly_fields = ('tenant', 'activity', 'topic', 'sequence_no', 'payload', 'created_at')
    inlines = [EventDeliveryInline]


@admin.register(EventDelivery)
class EventDeliveryAdmin(admin.ModelAdmin):
    list_display = ('id', 'event', 'consumer', 'status', 'attempts', 'next_attempt_at', 'delivered_at')
    list_filter = ('status', 'consumer')
    search_fields = ('event__activity__id', 'last_error')
    readonly_fields = ('event', 'consumer', 'status', 'attempts', 'next_attempt_at', 'last_error', 'delivered_at', 'dead_lettered_at')
    actions = ['replay_selected']

    @admin.action(description="Replay selected dead letters")
    def replay_selected(self, request, queryset):
        replayed = 0
        for delivery in queryset.filter(status=EventDelivery.STATUS_DEAD_LETTERED):
            try:
                services.replay_dead_letter(delivery.pk, actor=request.user)
                replayed += 1
            except LedgerError as exc:
                self.message_user(request, f"#{delivery.pk}: {exc.detail}", level=messages.ERROR)
        self.message_user(request, f"{replayed} deliveries replayed.")
