"""
Admin configuration for the events app.
"""

from django.contrib import admin
from .models import EventOccurrence, Registration


class RegistrationInline(admin.TabularInline):
    model = Registration
    extra = 0
    readonly_fields = ['created_at']


@admin.register(EventOccurrence)
class EventOccurrenceAdmin(admin.ModelAdmin):
    """Admin interface for EventOccurrence model."""

    list_display = ['title', 'start_time', 'end_time', 'visibility', 'series_id', 'external_calendar_id', 'deleted_at']
    list_filter = ['visibility', 'event_type', 'created_at']
    search_fields = ['title', 'description', 'series_id']
    date_hierarchy = 'start_time'
    inlines = [RegistrationInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('title', 'description', 'location', 'visibility', 'event_type', 'created_by')
        }),
        ('Links', {
            'fields': ('external_registration_url', 'image_url')
        }),
        ('Schedule', {
            'fields': ('start_time', 'end_time', 'series_id')
        }),
        ('Calendar Sync', {
            'fields': ('external_calendar_id',)
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at', 'deleted_at'),
            'classes': ('collapse',)
        }),
    )

    readonly_fields = ['series_id', 'external_calendar_id', 'created_at', 'updated_at']


@admin.register(Registration)
class RegistrationAdmin(admin.ModelAdmin):
    """Admin interface for Registration model."""

    list_display = ['user_id', 'occurrence', 'status', 'guest_count', 'created_at']
    list_filter = ['status']
    search_fields = ['user_id']
    readonly_fields = ['created_at', 'updated_at']
