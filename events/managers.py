"""
Custom managers and querysets for event models.

QuerySets define chainable query methods.
Managers use QuerySets to enable method chaining.
No business logic should be here - only query operations.
"""

from django.db import models
from django.utils import timezone


class EventOccurrenceQuerySet(models.QuerySet):
    """Custom queryset for EventOccurrence model with chainable methods."""

    def active(self):
        """Get occurrences that have not been soft-deleted."""
        return self.filter(deleted_at__isnull=True)

    def upcoming(self):
        """Get live occurrences that have not started yet."""
        return self.active().filter(start_time__gte=timezone.now())

    def in_range(self, start_time, end_time):
        """
        Get live occurrences starting within a datetime range.

        Args:
            start_time: datetime object
            end_time: datetime object
        """
        return self.active().filter(
            start_time__gte=start_time,
            start_time__lte=end_time
        )

    def standalone(self):
        """Get occurrences that are not part of a series."""
        return self.filter(series_id__isnull=True)

    def recurring(self):
        """Get occurrences that belong to a series."""
        return self.filter(series_id__isnull=False)

    def in_series(self, series_id):
        """
        Get all members of a series, soft-deleted ones included.

        Args:
            series_id: UUID shared by the series
        """
        return self.filter(series_id=series_id)

    def unsynced(self):
        """Get occurrences without a remote calendar event."""
        return self.filter(external_calendar_id__isnull=True)


class EventOccurrenceManager(models.Manager):
    """Custom manager for EventOccurrence model."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return EventOccurrenceQuerySet(self.model, using=self._db)

    def active(self):
        """Get occurrences that have not been soft-deleted."""
        return self.get_queryset().active()

    def upcoming(self):
        """Get live occurrences that have not started yet."""
        return self.get_queryset().upcoming()

    def in_range(self, start_time, end_time):
        """
        Get live occurrences starting within a datetime range.

        Args:
            start_time: datetime object
            end_time: datetime object
        """
        return self.get_queryset().in_range(start_time, end_time)

    def standalone(self):
        """Get occurrences that are not part of a series."""
        return self.get_queryset().standalone()

    def recurring(self):
        """Get occurrences that belong to a series."""
        return self.get_queryset().recurring()

    def in_series(self, series_id):
        """
        Get all members of a series, soft-deleted ones included.

        Args:
            series_id: UUID shared by the series
        """
        return self.get_queryset().in_series(series_id)

    def unsynced(self):
        """Get occurrences without a remote calendar event."""
        return self.get_queryset().unsynced()


class RegistrationQuerySet(models.QuerySet):
    """Custom queryset for Registration model."""

    def registered(self):
        return self.filter(status='REGISTERED')

    def for_occurrence(self, occurrence):
        """
        Get registrations of one occurrence.

        Args:
            occurrence: EventOccurrence instance or primary key
        """
        return self.filter(occurrence=occurrence)


class RegistrationManager(models.Manager):
    """Custom manager for Registration model."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return RegistrationQuerySet(self.model, using=self._db)

    def registered(self):
        return self.get_queryset().registered()

    def for_occurrence(self, occurrence):
        return self.get_queryset().for_occurrence(occurrence)
