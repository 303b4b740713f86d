"""
Django Admin for the ticket domain.

History and the event journal are read only: corrections go through
the override endpoint so they are audited.
"""

from django.contrib import admin
from django.utils.html import format_html

from .models import (
    DomainEventModel,
    EscalationModel,
    TicketModel,
    TicketStatusHistoryModel,
)


STATUS_COLORS = {
    'new': '#17a2b8',
    'completed': '#28a745',
    'not_fixed': '#fd7e14',
    'cancelled': '#343a40',
}

LEVEL_COLORS = {
    'l1': '#ffc107',
    'l2': '#fd7e14',
    'l3': '#dc3545',
}


def _badge(color: str, text: str):
    return format_html(
        '<span style="background-color: {}; color: white; padding: 3px 8px; '
        'border-radius: 3px; font-size: 11px;">{}</span>',
        color,
        text,
    )


class StatusHistoryInline(admin.TabularInline):
    model = TicketStatusHistoryModel
    extra = 0
    can_delete = False
    fields = ['timestamp', 'from_status', 'to_status', 'actor_role', 'actor_id', 'is_override', 'notes']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(TicketModel)
class TicketAdmin(admin.ModelAdmin):
    """Admin for TicketModel."""

    list_display = [
        'ticket_number',
        'customer_name',
        'status_badge',
        'priority',
        'device_type',
        'technician_id',
        'scheduled_date',
        'scheduled_slot',
        'created_at',
    ]

    list_filter = [
        'status',
        'priority',
        'device_type',
        'scheduled_slot',
    ]

    search_fields = [
        'id',
        'ticket_number',
        'customer_name',
        'customer_phone',
        'technician_id',
    ]

    # status moves only through transitions or the audited override
    readonly_fields = [
        'id',
        'status',
        'version',
        'created_at',
        'updated_at',
    ]

    fieldsets = [
        ('Identification', {
            'fields': ['id', 'ticket_number', 'status', 'priority', 'device_type', 'problem_description'],
        }),
        ('Customer', {
            'fields': ['customer_name', 'customer_phone', 'customer_address',
                       'customer_latitude', 'customer_longitude'],
        }),
        ('Schedule', {
            'fields': ['technician_id', 'scheduled_date', 'scheduled_slot'],
        }),
        ('Field work', {
            'fields': ['diagnosis_notes', 'repair_notes', 'internal_notes',
                       'not_fixed_reasons', 'pickup_reason', 'cancellation_reason',
                       'confirmation_type'],
        }),
        ('Warranty', {
            'fields': ['warranty_status', 'warranty_expires_at'],
        }),
        ('Timestamps', {
            'fields': ['scheduled_set_at', 'trip_started_at', 'arrived_at',
                       'inspection_started_at', 'diagnosed_at', 'repair_started_at',
                       'completed_at', 'closed_at', 'created_at', 'updated_at', 'version'],
            'classes': ['collapse'],
        }),
    ]

    inlines = [StatusHistoryInline]

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    def status_badge(self, obj):
        return _badge(STATUS_COLORS.get(obj.status, '#6c757d'), obj.get_status_display())
    status_badge.short_description = 'Status'


@admin.register(TicketStatusHistoryModel)
class TicketStatusHistoryAdmin(admin.ModelAdmin):
    """Read-only transition log."""

    list_display = [
        'timestamp',
        'short_ticket_id',
        'from_status',
        'to_status',
        'actor_role',
        'actor_id',
        'is_override',
    ]

    list_filter = [
        'to_status',
        'actor_role',
        'is_override',
    ]

    search_fields = [
        'ticket__id',
        'ticket__ticket_number',
        'actor_id',
    ]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def short_ticket_id(self, obj):
        return obj.ticket_id[:8] + '...'
    short_ticket_id.short_description = 'Ticket'


@admin.register(EscalationModel)
class EscalationAdmin(admin.ModelAdmin):
    """Admin for escalations."""

    list_display = [
        'created_at',
        'short_ticket_id',
        'type',
        'level_badge',
        'reason',
        'resolved',
        'resolved_at',
    ]

    list_filter = [
        'resolved',
        'level',
        'type',
    ]

    search_fields = [
        'ticket__id',
        'ticket__ticket_number',
        'reason',
    ]

    readonly_fields = [
        'id',
        'ticket',
        'type',
        'level',
        'reason',
        'created_at',
        'resolved',
        'resolved_at',
    ]

    def has_add_permission(self, request):
        return False

    def level_badge(self, obj):
        return _badge(LEVEL_COLORS.get(obj.level, '#6c757d'), obj.level.upper())
    level_badge.short_description = 'Level'

    def short_ticket_id(self, obj):
        return obj.ticket_id[:8] + '...'
    short_ticket_id.short_description = 'Ticket'


@admin.register(DomainEventModel)
class DomainEventAdmin(admin.ModelAdmin):
    """Admin for the event journal."""

    list_display = [
        'short_event_id',
        'event_type',
        'aggregate_type',
        'short_aggregate_id',
        'sequence',
        'occurred_at',
    ]

    list_filter = [
        'event_type',
        'aggregate_type',
    ]

    search_fields = [
        'event_id',
        'aggregate_id',
        'event_type',
    ]

    readonly_fields = [
        'event_id',
        'event_type',
        'aggregate_type',
        'aggregate_id',
        'event_data',
        'version',
        'sequence',
        'occurred_at',
        'recorded_at',
    ]

    def short_event_id(self, obj):
        return obj.event_id[:8] + '...'
    short_event_id.short_description = 'Event ID'

    def short_aggregate_id(self, obj):
        return obj.aggregate_id[:8] + '...'
    short_aggregate_id.short_description = 'Aggregate'
