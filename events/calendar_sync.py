"""
Best-effort mirroring of occurrences to the external calendar.

Local rows are authoritative. A whole series maps to ONE remote recurring
event whose id is copied onto every member row; a standalone occurrence maps
to one plain remote event. Remote work is scheduled with
``transaction.on_commit`` so it never runs inside, blocks, or rolls back the
local transaction, and every failure ends in a log record.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone as dt_timezone
from typing import Iterable, Optional

from django.conf import settings
from django.db import connection, transaction
from django.utils import timezone
from django.utils.module_loading import import_string

from .exceptions import ExternalSyncFailed
from .models import EventOccurrence
from .types import RecurrenceSpec

logger = logging.getLogger(__name__)

DEFAULT_CLIENT = 'events.calendar_client.GoogleCalendarClient'

RRULE_DAY_CODES = {
    'Sun': 'SU',
    'Mon': 'MO',
    'Tue': 'TU',
    'Wed': 'WE',
    'Thu': 'TH',
    'Fri': 'FR',
    'Sat': 'SA',
}
UNTIL_FORMAT = '%Y%m%dT%H%M%SZ'

PUBLIC_TAG = '[PUBLIC]'

ATTENDEE_ACTIONS = ('add', 'remove')

ATTENDEE_ACTIONS = ('add', 'remove')

# Remote payload keys affected by each local field.
PAYLOAD_KEYS_BY_FIELD = {
    'title': ('summary',),
    'description': ('description',),
    'visibility': ('description',),
    'external_registration_url': ('description',),
    'location': ('location',),
    'start_time': ('start',),
    'end_time': ('end',),
}


def build_recurrence_rule(spec: RecurrenceSpec, until: Optional[datetime] = None) -> str:
    """
    Build the RRULE body sent to the remote calendar.

    Only FREQ, BYDAY and UNTIL are emitted. Monthly patterns are not encoded,
    so the remote rule approximates the locally generated occurrences.
    """
    rule = f"FREQ={spec.frequency.upper()}"
    if spec.frequency == 'weekly' and spec.days_of_week:
        rule += ';BYDAY=' + ','.join(RRULE_DAY_CODES[tag] for tag in spec.days_of_week)
    if until is not None:
        rule += f";UNTIL={_format_until(until)}"
    return rule


def _format_until(until: datetime) -> str:
    if timezone.is_naive(until):
        until = timezone.make_aware(until)
    return until.astimezone(dt_timezone.utc).strftime(UNTIL_FORMAT)


def format_event_description(
    description: str,
    visibility: str,
    external_registration_url: str = ''
) -> str:
    """Encode visibility and registration link as description tags."""
    parts = [description.strip()] if description and description.strip() else []
    if visibility == 'PUBLIC':
        parts.append(PUBLIC_TAG)
    if external_registration_url:
        parts.append(f"[REGISTER: {external_registration_url}]")
    return '\n\n'.join(parts)


def build_event_payload(
    occurrence: EventOccurrence,
    recurrence: Optional[RecurrenceSpec] = None,
    until: Optional[datetime] = None
) -> dict:
    """Remote event body for an occurrence, recurring when a RecurrenceSpec is given."""
    payload = {
        'summary': occurrence.title,
        'description': format_event_description(
            occurrence.description,
            occurrence.visibility,
            occurrence.external_registration_url
        ),
        'location': occurrence.location,
        'start': _event_time(occurrence.start_time),
        'end': _event_time(occurrence.end_time),
    }
    if recurrence is not None:
        payload['recurrence'] = [f"RRULE:{build_recurrence_rule(recurrence, until)}"]
    return payload


def _event_time(value: datetime) -> dict:
    if timezone.is_aware(value):
        value = timezone.localtime(value)
    return {'dateTime': value.isoformat(), 'timeZone': settings.TIME_ZONE}


def get_calendar_client():
    """Instantiate the configured external calendar client."""
    config = settings.CALENDAR_SYNC
    client_class = import_string(config.get('CLIENT', DEFAULT_CLIENT))
    return client_class(
        calendar_id=config.get('CALENDAR_ID'),
        credentials_file=config.get('CREDENTIALS_FILE'),
        timeout=config.get('TIMEOUT', 10)
    )


class CalendarSyncAdapter:
    """
    Bridge between local occurrence rows and remote calendar events.

    No method raises on a remote failure: the failure is logged and the
    method returns None or False.
    """

    def __init__(self, client=None):
        self.client = client if client is not None else get_calendar_client()

    def sync_create(
        self,
        occurrence: EventOccurrence,
        recurrence: Optional[RecurrenceSpec] = None,
        until: Optional[datetime] = None
    ) -> Optional[str]:
        """
        Create the remote event for a standalone occurrence or a whole series.

        A row that already has a remote id (a standalone event just converted
        into a series) has that remote event patched instead, so the series
        keeps a single remote counterpart.

        Returns:
            The remote id written back to the local rows, or None
        """
        payload = build_event_payload(occurrence, recurrence, until)
        remote_id = occurrence.external_calendar_id
        try:
            if remote_id:
                if not self.client.update(remote_id, payload):
                    return None
            else:
                remote_id = self.client.create(payload)
        except ExternalSyncFailed as exc:
            logger.warning("Calendar create failed for occurrence %s: %s", occurrence.pk, exc)
            return None

        if not remote_id:
            logger.info("Calendar sync skipped for occurrence %s: no remote id", occurrence.pk)
            return None

        self._attach_remote_id(occurrence, remote_id)
        return remote_id

    def sync_update(self, remote_id: str, partial_payload: dict) -> bool:
        try:
            return bool(self.client.update(remote_id, partial_payload))
        except ExternalSyncFailed as exc:
            logger.warning("Calendar update failed for remote event %s: %s", remote_id, exc)
            return False

    def sync_delete(self, occurrence: EventOccurrence) -> bool:
        """
        Delete the remote event of a standalone occurrence.

        Series members share one remote recurring event, so deleting a
        single member never reaches the remote calendar.
        """
        if occurrence.series_id is not None:
            logger.info(
                "Remote delete suppressed for occurrence %s of series %s",
                occurrence.pk, occurrence.series_id
            )
            return False

        if not occurrence.external_calendar_id:
            return False

        try:
            return bool(self.client.delete(occurrence.external_calendar_id))
        except ExternalSyncFailed as exc:
            logger.warning("Calendar delete failed for occurrence %s: %s", occurrence.pk, exc)
            return False

    def sync_attendee(
        self,
        action: str,
        remote_id: str,
        email: str,
        name: Optional[str] = None,
        send_updates: str = 'all'
    ) -> bool:
        """
        Add or remove an attendee on a remote event.

        Args:
            action: 'add' or 'remove'
            remote_id: Remote event id
            email: Attendee email
            name: Display name, only used when adding
            send_updates: 'all' to email the attendee, 'none' to add silently
        """
        if action not in ATTENDEE_ACTIONS:
            logger.warning("Unknown attendee action %r for remote event %s", action, remote_id)
            return False

        try:
            if action == 'add':
                return bool(self.client.add_attendee(
                    remote_id, email, name, send_updates=send_updates
                ))
            return bool(self.client.remove_attendee(remote_id, email))
        except ExternalSyncFailed as exc:
            logger.warning(
                "Calendar attendee %s failed for %s on remote event %s: %s",
                action, email, remote_id, exc
            )
            return False

    def _attach_remote_id(self, occurrence: EventOccurrence, remote_id: str) -> None:
        """Store the remote id on the row, or on every row of its series."""
        if occurrence.series_id is not None:
            rows = EventOccurrence.objects.in_series(occurrence.series_id)
        else:
            rows = EventOccurrence.objects.filter(pk=occurrence.pk)
        updated = rows.update(external_calendar_id=remote_id)
        occurrence.external_calendar_id = remote_id
        logger.info("Linked remote event %s to %d occurrence(s)", remote_id, updated)


# Tasks. They take primary keys and reload rows, since they may run on a
# worker thread after the request that scheduled them has finished.

def create_remote_event(
    occurrence_id: int,
    recurrence: Optional[RecurrenceSpec] = None,
    until: Optional[datetime] = None
) -> Optional[str]:
    occurrence = EventOccurrence.objects.active().filter(pk=occurrence_id).first()
    if occurrence is None:
        return None
    return CalendarSyncAdapter().sync_create(occurrence, recurrence, until)


def update_remote_event(occurrence_id: int, changed_fields: Iterable[str]) -> bool:
    occurrence = EventOccurrence.objects.active().filter(pk=occurrence_id).first()
    if occurrence is None or not occurrence.external_calendar_id:
        return False

    payload = build_event_payload(occurrence)
    keys = {key for name in changed_fields for key in PAYLOAD_KEYS_BY_FIELD.get(name, ())}
    if not keys:
        return False
    partial_payload = {key: payload[key] for key in keys}
    return CalendarSyncAdapter().sync_update(occurrence.external_calendar_id, partial_payload)


def delete_remote_event(occurrence_id: int) -> bool:
    # Soft-deleted rows are the expected input here.
    occurrence = EventOccurrence.objects.filter(pk=occurrence_id).first()
    if occurrence is None:
        return False
    return CalendarSyncAdapter().sync_delete(occurrence)


def mutate_remote_attendee(
    action: str,
    occurrence_id: int,
    email: str,
    name: Optional[str] = None,
    send_updates: str = 'all'
) -> bool:
    occurrence = EventOccurrence.objects.active().filter(pk=occurrence_id).first()
    if occurrence is None or not occurrence.external_calendar_id:
        return False
    if occurrence.visibility != 'MEMBER_ONLY':
        return False
    return CalendarSyncAdapter().sync_attendee(
        action, occurrence.external_calendar_id, email, name, send_updates
    )


_executor = None
_executor_lock = threading.Lock()


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=settings.CALENDAR_SYNC.get('MAX_WORKERS', 2),
                thread_name_prefix='calendar-sync'
            )
        return _executor


def schedule(task, *args, **kwargs) -> None:
    """
    Run a sync task once the current transaction commits.

    With CALENDAR_SYNC['ASYNC'] the task goes to a worker thread and the
    caller does not wait for it.
    """
    transaction.on_commit(lambda: _dispatch(task, args, kwargs))


def _dispatch(task, args, kwargs) -> None:
    if settings.CALENDAR_SYNC.get('ASYNC', True):
        _get_executor().submit(_run_in_worker, task, args, kwargs)
    else:
        _run(task, args, kwargs)


def _run_in_worker(task, args, kwargs) -> None:
    try:
        _run(task, args, kwargs)
    finally:
        connection.close()


def _run(task, args, kwargs) -> None:
    try:
        task(*args, **kwargs)
    except Exception:
        logger.exception("Calendar sync task %s failed", task.__name__)
