"""
Service layer for event occurrence business logic.
Services are framework-agnostic and handle all business operations.

A recurring series is materialized up front: every occurrence the recurrence
spec yields becomes its own EventOccurrence row, and all rows of the series
share a series_id. Remote calendar work is scheduled to run after commit
and never affects the result returned here.
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from . import calendar_sync, registrations
from .exceptions import Conflict, NotFound, ValidationFailed
from .models import EventOccurrence, Registration
from .recurrence import OccurrenceGenerator
from .types import (
    MAX_OCCURRENCES,
    MAX_RECURRENCE_MONTHS,
    TEMPLATE_FIELDS,
    OccurrenceTemplate,
    OccurrenceUpdateData,
    OccurrenceWindow,
    RecurrenceSpec,
)

logger = logging.getLogger(__name__)


def get_generator() -> OccurrenceGenerator:
    """OccurrenceGenerator bounded by EVENTS_RECURRENCE_LIMITS."""
    limits = getattr(settings, 'EVENTS_RECURRENCE_LIMITS', {})
    return OccurrenceGenerator(
        max_recurrence_months=limits.get('MAX_RECURRENCE_MONTHS', MAX_RECURRENCE_MONTHS),
        max_occurrences=limits.get('MAX_OCCURRENCES', MAX_OCCURRENCES)
    )


@transaction.atomic
def create_single_event(
    template: OccurrenceTemplate,
    start_time: datetime,
    end_time: datetime
) -> EventOccurrence:
    """
    Create a standalone (non-recurring) occurrence.

    Args:
        template: Shared event fields
        start_time: When the event starts
        end_time: When the event ends

    Returns:
        Created EventOccurrence instance

    Raises:
        ValidationFailed: If the event data is invalid
    """
    occurrence = EventOccurrence(
        **template.as_model_fields(),
        start_time=_to_local(start_time),
        end_time=_to_local(end_time)
    )
    _full_clean(occurrence)
    occurrence.save()

    logger.info("Created occurrence %s", occurrence.pk)
    calendar_sync.schedule(calendar_sync.create_remote_event, occurrence.pk)
    return occurrence


@transaction.atomic
def create_recurring_series(
    template: OccurrenceTemplate,
    start_time: datetime,
    end_time: datetime,
    recurrence: RecurrenceSpec
) -> EventOccurrence:
    """
    Create every occurrence of a new recurring series in one transaction.

    Args:
        template: Shared event fields
        start_time: Start of the first (template) occurrence
        end_time: End of the first (template) occurrence
        recurrence: RecurrenceSpec describing the repetition

    Returns:
        The first generated occurrence, which represents the series

    Raises:
        ValidationFailed: If the recurrence yields no occurrences or data is invalid
    """
    start_time, end_time = _to_local(start_time), _to_local(end_time)
    windows = _generate_windows(start_time, end_time, recurrence)

    series_id = uuid.uuid4()
    rows = _build_occurrence_rows(template.as_model_fields(), windows, series_id)
    _bulk_save_occurrences(rows)

    first = EventOccurrence.objects.in_series(series_id).order_by('start_time', 'id').first()
    logger.info("Created series %s with %d occurrence(s)", series_id, len(rows))

    until = get_generator().resolve_end_date(start_time, recurrence.recurring_end_date)
    calendar_sync.schedule(calendar_sync.create_remote_event, first.pk, recurrence, until)
    return first


@transaction.atomic
def convert_to_series(
    occurrence_id: int,
    recurrence: RecurrenceSpec,
    update_data: Optional[OccurrenceUpdateData] = None
) -> EventOccurrence:
    """
    Turn a standalone occurrence into the first member of a new series.

    The existing row keeps its id (and its registrations) and takes the
    first generated window; the other windows become new rows.

    Args:
        occurrence_id: Id of the standalone occurrence
        recurrence: RecurrenceSpec describing the repetition
        update_data: Field overrides, including the new start/end times

    Returns:
        The converted occurrence, first member of the series

    Raises:
        NotFound: If the occurrence does not exist
        Conflict: If the occurrence already belongs to a series
        ValidationFailed: If the recurrence yields no occurrences or data is invalid
    """
    occurrence = _get_live_occurrence(occurrence_id, for_update=True)
    if occurrence.series_id is not None:
        raise Conflict(
            f"Occurrence {occurrence_id} already belongs to series {occurrence.series_id}"
        )

    overrides = update_data.changed_fields() if update_data else {}
    start_time = _to_local(overrides.pop('start_time', occurrence.start_time))
    end_time = _to_local(overrides.pop('end_time', occurrence.end_time))
    template = {name: getattr(occurrence, name) for name in TEMPLATE_FIELDS}
    template.update(overrides)

    windows = _generate_windows(start_time, end_time, recurrence)

    series_id = uuid.uuid4()
    _apply_field_updates(occurrence, template)
    occurrence.start_time, occurrence.end_time = windows[0]
    occurrence.series_id = series_id
    _full_clean(occurrence)
    occurrence.save()

    rows = _build_occurrence_rows(template, windows[1:], series_id)
    _bulk_save_occurrences(rows)

    logger.info(
        "Converted occurrence %s into series %s with %d occurrence(s)",
        occurrence.pk, series_id, len(windows)
    )

    until = get_generator().resolve_end_date(start_time, recurrence.recurring_end_date)
    calendar_sync.schedule(calendar_sync.create_remote_event, occurrence.pk, recurrence, until)
    return occurrence


@transaction.atomic
def update_occurrence(
    occurrence_id: int,
    update_data: OccurrenceUpdateData
) -> EventOccurrence:
    """
    Update one occurrence. Sibling rows of its series are never touched.

    Args:
        occurrence_id: Id of the occurrence to update
        update_data: OccurrenceUpdateData with fields to update

    Returns:
        Updated EventOccurrence instance

    Raises:
        NotFound: If the occurrence does not exist
        ValidationFailed: If the resulting data is invalid
    """
    occurrence = _get_live_occurrence(occurrence_id, for_update=True)

    changes = update_data.changed_fields()
    for name in ('start_time', 'end_time'):
        if name in changes:
            changes[name] = _to_local(changes[name])
    _apply_field_updates(occurrence, changes)
    _full_clean(occurrence)
    occurrence.save()

    # The remote event of a series is shared, so per-row edits stay local.
    if changes and occurrence.external_calendar_id and occurrence.series_id is None:
        calendar_sync.schedule(calendar_sync.update_remote_event, occurrence.pk, list(changes))
    return occurrence


@transaction.atomic
def delete_occurrence(occurrence_id: int) -> bool:
    """
    Soft-delete exactly one occurrence.

    Raises:
        NotFound: If the occurrence does not exist or is already deleted
    """
    occurrence = _get_live_occurrence(occurrence_id, for_update=True)
    occurrence.soft_delete()
    logger.info("Soft-deleted occurrence %s", occurrence.pk)

    if occurrence.external_calendar_id:
        calendar_sync.schedule(calendar_sync.delete_remote_event, occurrence.pk)
    return True


@transaction.atomic
def rsvp(
    occurrence_id: int,
    user_id: str,
    attendee_email: Optional[str] = None,
    attendee_name: Optional[str] = None,
    guest_count: int = 0,
    add_to_calendar: bool = True
) -> Registration:
    """
    Register a user for an occurrence.

    Members-only occurrences with a remote event also get the user added as
    an attendee of that event when an email is supplied. With
    add_to_calendar False the attendee is added without an invitation email.

    Raises:
        NotFound: If the occurrence does not exist
    """
    occurrence = _get_live_occurrence(occurrence_id)
    registration = registrations.add_registration(occurrence, user_id, guest_count)

    if attendee_email and _mirrors_attendees(occurrence):
        calendar_sync.schedule(
            calendar_sync.mutate_remote_attendee,
            'add', occurrence.pk, attendee_email, attendee_name,
            'all' if add_to_calendar else 'none'
        )
    return registration


@transaction.atomic
def cancel_rsvp(
    occurrence_id: int,
    user_id: str,
    attendee_email: Optional[str] = None
) -> bool:
    """
    Cancel a user's registration. Returns whether a registration existed.

    The remote attendee is removed only when a registration was cancelled
    and, for a series, the user holds no registration on another live row
    of it, since all rows share one remote event.

    Raises:
        NotFound: If the occurrence does not exist
    """
    occurrence = _get_live_occurrence(occurrence_id)
    cancelled = registrations.cancel_registration(occurrence, user_id)

    if (
        cancelled
        and attendee_email
        and _mirrors_attendees(occurrence)
        and not _registered_elsewhere_in_series(occurrence, user_id)
    ):
        calendar_sync.schedule(
            calendar_sync.mutate_remote_attendee,
            'remove', occurrence.pk, attendee_email
        )
    return cancelled


def get_occurrence(occurrence_id: int) -> EventOccurrence:
    """
    Get a live occurrence.

    Raises:
        NotFound: If the occurrence does not exist
    """
    return _get_live_occurrence(occurrence_id)


def get_series(series_id: uuid.UUID) -> List[EventOccurrence]:
    """
    Get the live occurrences of a series in start order.

    Raises:
        NotFound: If no live occurrence carries the series id
    """
    occurrences = list(EventOccurrence.objects.in_series(series_id).active())
    if not occurrences:
        raise NotFound(f"Series {series_id} not found")
    return occurrences


def get_occurrences_in_range(
    start_time: datetime,
    end_time: datetime,
    visibility: Optional[str] = None
) -> List[EventOccurrence]:
    """
    Get live occurrences starting within a datetime range.

    Args:
        start_time: Range start
        end_time: Range end
        visibility: Optional visibility filter ('PUBLIC', 'MEMBER_ONLY')

    Returns:
        List of EventOccurrence instances

    Raises:
        ValidationFailed: If start_time >= end_time
    """
    if start_time >= end_time:
        raise ValidationFailed("Start time must be before end time")

    queryset = EventOccurrence.objects.in_range(start_time, end_time)

    if visibility:
        queryset = queryset.filter(visibility=visibility)

    return list(queryset)


def _generate_windows(
    start_time: datetime,
    end_time: datetime,
    recurrence: RecurrenceSpec
) -> List[OccurrenceWindow]:
    """Generate windows, rejecting a recurrence that yields none."""
    windows = get_generator().generate(start_time, end_time, recurrence)
    if not windows:
        raise ValidationFailed("No occurrences could be generated")
    return windows


def _build_occurrence_rows(
    template: dict,
    windows: List[OccurrenceWindow],
    series_id: uuid.UUID
) -> List[EventOccurrence]:
    """Create occurrence objects (not yet saved to DB)."""
    rows = []
    for window in windows:
        row = EventOccurrence(
            **template,
            series_id=series_id,
            start_time=window.start,
            end_time=window.end
        )
        _full_clean(row)
        rows.append(row)
    return rows


def _bulk_save_occurrences(occurrences: List[EventOccurrence]) -> List[EventOccurrence]:
    """Bulk create occurrences in database."""
    if occurrences:
        EventOccurrence.objects.bulk_create(occurrences)
    return occurrences


def _get_live_occurrence(occurrence_id: int, for_update: bool = False) -> EventOccurrence:
    queryset = EventOccurrence.objects.active()
    if for_update:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=occurrence_id)
    except EventOccurrence.DoesNotExist:
        raise NotFound(f"Occurrence {occurrence_id} not found") from None


def _mirrors_attendees(occurrence: EventOccurrence) -> bool:
    """Attendees are mirrored only for members-only events with a remote event."""
    return occurrence.visibility == 'MEMBER_ONLY' and bool(occurrence.external_calendar_id)


def _registered_elsewhere_in_series(occurrence: EventOccurrence, user_id: str) -> bool:
    """Whether the user is registered for another live row of the occurrence's series."""
    if occurrence.series_id is None:
        return False
    return Registration.objects.registered().filter(
        user_id=user_id,
        occurrence__series_id=occurrence.series_id,
        occurrence__deleted_at__isnull=True
    ).exclude(occurrence=occurrence).exists()


def _to_local(value: datetime) -> datetime:
    """Express a datetime in the configured local time zone."""
    if timezone.is_naive(value):
        return timezone.make_aware(value)
    return timezone.localtime(value)


def _full_clean(occurrence: EventOccurrence) -> None:
    """Run model validation, reporting failures as ValidationFailed."""
    try:
        occurrence.full_clean()
    except DjangoValidationError as exc:
        errors = getattr(exc, 'message_dict', {'__all__': exc.messages})
        raise ValidationFailed("Invalid occurrence data", errors=errors) from exc


def _apply_field_updates(obj, fields: dict) -> None:
    """Apply field updates to object if values are not None (DRY helper)."""
    for field_name, value in fields.items():
        if value is not None:
            setattr(obj, field_name, value)
