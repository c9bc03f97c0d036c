"""
Models for the event occurrence engine.

This implementation uses the Occurrence Materialization Pattern where:
- EventOccurrence stores ALL calendar-displayable instances (standalone and recurring)
- Rows of one recurring series share a series_id; there is no series table
- Registration stores per-occurrence RSVP state
"""

from django.db import models
from django.core.exceptions import ValidationError
from django.utils import timezone

from .managers import EventOccurrenceManager, RegistrationManager


class EventOccurrence(models.Model):
    """
    One concrete, calendar-displayable instance of an event.

    Standalone events: series_id = null
    Recurring events: every member of the series carries the same series_id
    """

    VISIBILITY_CHOICES = [
        ('PUBLIC', 'Public'),
        ('MEMBER_ONLY', 'Members only'),
    ]

    EVENT_TYPE_CHOICES = [
        ('internal', 'Internal'),
        ('external', 'External'),
    ]

    series_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Shared by all occurrences of one recurring series (null for standalone events)"
    )

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default='')
    location = models.CharField(max_length=255, blank=True, default='')
    visibility = models.CharField(
        max_length=20,
        choices=VISIBILITY_CHOICES,
        default='PUBLIC'
    )
    event_type = models.CharField(
        max_length=20,
        choices=EVENT_TYPE_CHOICES,
        default='internal'
    )
    external_registration_url = models.URLField(max_length=500, blank=True, default='')
    image_url = models.URLField(max_length=500, blank=True, default='')
    created_by = models.CharField(max_length=64, help_text="Id of the user who created the event")

    start_time = models.DateTimeField()
    end_time = models.DateTimeField()

    external_calendar_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Remote calendar event id (one recurring event for a whole series)"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = EventOccurrenceManager()

    class Meta:
        ordering = ['start_time', 'id']
        indexes = [
            models.Index(fields=['start_time', 'visibility']),
            models.Index(fields=['series_id', 'start_time']),
            models.Index(fields=['deleted_at']),
        ]

    def __str__(self):
        deleted_str = " [deleted]" if self.deleted_at else ""
        return f"{self.title} - {self.start_time.strftime('%Y-%m-%d %H:%M')}{deleted_str}"

    @property
    def is_recurring(self):
        """Check if this occurrence belongs to a series."""
        return self.series_id is not None

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def clean(self):
        """Validate occurrence data."""
        super().clean()

        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError({
                'end_time': 'End time must be after start time.'
            })

    def save(self, *args, **kwargs):
        """Save with validation."""
        self.full_clean()
        super().save(*args, **kwargs)

    def soft_delete(self):
        """Mark this occurrence deleted without touching its siblings."""
        self.deleted_at = timezone.now()
        self.save(update_fields=['deleted_at', 'updated_at'])


class Registration(models.Model):
    """RSVP state of one user for one occurrence."""

    STATUS_CHOICES = [
        ('REGISTERED', 'Registered'),
    ]

    occurrence = models.ForeignKey(
        EventOccurrence,
        on_delete=models.CASCADE,
        related_name='registrations'
    )
    user_id = models.CharField(max_length=64)
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default='REGISTERED'
    )
    guest_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = RegistrationManager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['occurrence', 'user_id'],
                name='unique_registration_per_user'
            ),
        ]

    def __str__(self):
        return f"{self.user_id} -> {self.occurrence_id} [{self.status}]"
