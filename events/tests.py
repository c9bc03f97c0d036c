"""
Tests for the event occurrence engine.

Tests cover:
- OccurrenceGenerator (daily, weekly, monthly patterns and bounds)
- Recurrence rule and remote payload construction
- EventOccurrence model and managers
- Registration ledger
- Series services (create, convert, update, delete, RSVP)
- Calendar sync behaviour (series vs standalone, failures, unconfigured client)
- API endpoints
- Management commands
"""

from datetime import date, datetime, timedelta, timezone as dt_timezone
from io import StringIO
from unittest.mock import Mock, patch
from zoneinfo import ZoneInfo

from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from . import registrations, services
from .calendar_client import GoogleCalendarClient
from .calendar_sync import (
    CalendarSyncAdapter,
    build_recurrence_rule,
    format_event_description,
)
from .exceptions import Conflict, ExternalSyncFailed, NotFound, ValidationFailed
from .models import EventOccurrence, Registration
from .recurrence import OccurrenceGenerator, weekday_tag
from .types import OccurrenceTemplate, OccurrenceUpdateData, RecurrenceSpec


SYNC_SETTINGS = {
    'CALENDAR_ID': 'club@example.com',
    'CREDENTIALS_FILE': None,
    'TIMEOUT': 5,
    'ASYNC': False,
    'MAX_WORKERS': 1,
    'CLIENT': 'events.calendar_client.GoogleCalendarClient',
}


def aware(*args):
    return timezone.make_aware(datetime(*args))


def make_template(**overrides):
    fields = {'title': 'Club Meeting', 'created_by': 'user-1'}
    fields.update(overrides)
    return OccurrenceTemplate(**fields)


class CalendarMockMixin:
    """Replace the external calendar client with a Mock."""

    def setUp(self):
        super().setUp()
        self.calendar = Mock()
        self.calendar.create.return_value = 'remote-1'
        self.calendar.update.return_value = True
        self.calendar.delete.return_value = True
        self.calendar.add_attendee.return_value = True
        self.calendar.remove_attendee.return_value = True

        patcher = patch('events.calendar_sync.get_calendar_client', return_value=self.calendar)
        patcher.start()
        self.addCleanup(patcher.stop)


class OccurrenceGeneratorTests(SimpleTestCase):
    """Test OccurrenceGenerator."""

    def setUp(self):
        self.generator = OccurrenceGenerator()

    def test_weekly_multiple_days(self):
        """Every occurrence falls on a requested weekday, in order, within bounds."""
        start = datetime(2026, 3, 2, 14, 0)  # Monday
        spec = RecurrenceSpec('weekly', days_of_week=('Mon', 'Wed'))

        windows = self.generator.generate(start, datetime(2026, 3, 2, 16, 0), spec)
        until = self.generator.resolve_end_date(start, None)

        self.assertGreater(len(windows), 0)
        for window in windows:
            self.assertIn(window.start.weekday(), (0, 2))
            self.assertGreaterEqual(window.start, start)
            self.assertLessEqual(window.start, until)
        starts = [w.start for w in windows]
        self.assertEqual(starts, sorted(set(starts)))

    def test_daily_with_interval(self):
        """Test every third day up to an inclusive end date."""
        spec = RecurrenceSpec('daily', interval=3, recurring_end_date=date(2026, 1, 10))

        windows = self.generator.generate(
            datetime(2026, 1, 1, 9, 0),
            datetime(2026, 1, 1, 10, 0),
            spec
        )

        self.assertEqual([w.start.day for w in windows], [1, 4, 7, 10])
        for window in windows:
            self.assertEqual(window.end - window.start, timedelta(hours=1))

    def test_weekly_default_end_date(self):
        """Test one Monday per week for the default six months."""
        spec = RecurrenceSpec('weekly', days_of_week=('Mon',))

        windows = self.generator.generate(
            datetime(2026, 3, 2, 14, 0),
            datetime(2026, 3, 2, 16, 0),
            spec
        )

        self.assertEqual(len(windows), 27)
        self.assertEqual(windows[0].start, datetime(2026, 3, 2, 14, 0))
        self.assertEqual(windows[-1].start, datetime(2026, 8, 31, 14, 0))
        for window in windows:
            self.assertEqual(window.start.weekday(), 0)
            self.assertEqual(window.end - window.start, timedelta(hours=2))

    def test_weekly_defaults_to_start_weekday(self):
        spec = RecurrenceSpec('weekly', recurring_end_date=date(2026, 3, 20))

        windows = self.generator.generate(
            datetime(2026, 3, 4, 10, 0),  # Wednesday
            datetime(2026, 3, 4, 11, 0),
            spec
        )

        self.assertEqual([w.start.day for w in windows], [4, 11, 18])

    def test_weekly_first_week_boundary(self):
        """Earlier weekdays of the first week are dropped, later ones kept."""
        spec = RecurrenceSpec(
            'weekly',
            days_of_week=('Mon', 'Wed', 'Fri'),
            recurring_end_date=date(2026, 3, 13)
        )

        windows = self.generator.generate(
            datetime(2026, 3, 4, 10, 0),  # Wednesday
            datetime(2026, 3, 4, 11, 0),
            spec
        )

        self.assertEqual([w.start.day for w in windows], [4, 6, 9, 11, 13])

    def test_weekly_scan_starts_on_sunday(self):
        spec = RecurrenceSpec(
            'weekly',
            days_of_week=('Sat', 'Sun'),
            recurring_end_date=date(2026, 3, 8)
        )

        windows = self.generator.generate(
            datetime(2026, 3, 1, 10, 0),  # Sunday
            datetime(2026, 3, 1, 11, 0),
            spec
        )

        self.assertEqual([w.start.day for w in windows], [1, 7, 8])

    def test_weekly_every_other_week(self):
        spec = RecurrenceSpec(
            'weekly',
            interval=2,
            days_of_week=('Mon',),
            recurring_end_date=date(2026, 3, 31)
        )

        windows = self.generator.generate(
            datetime(2026, 3, 2, 18, 0),
            datetime(2026, 3, 2, 19, 0),
            spec
        )

        self.assertEqual([w.start.day for w in windows], [2, 16, 30])

    def test_end_date_before_start_yields_nothing(self):
        spec = RecurrenceSpec('weekly', recurring_end_date=date(2026, 2, 1))

        windows = self.generator.generate(
            datetime(2026, 3, 2, 14, 0),
            datetime(2026, 3, 2, 16, 0),
            spec
        )

        self.assertEqual(windows, [])

    def test_monthly_day_of_month_clamps(self):
        """Test day 31 is clamped in shorter months without drifting."""
        spec = RecurrenceSpec('monthly', recurring_end_date=date(2026, 5, 31))

        windows = self.generator.generate(
            datetime(2026, 1, 31, 9, 0),
            datetime(2026, 1, 31, 10, 0),
            spec
        )

        self.assertEqual(
            [w.start.date() for w in windows],
            [
                date(2026, 1, 31),
                date(2026, 2, 28),
                date(2026, 3, 31),
                date(2026, 4, 30),
                date(2026, 5, 31),
            ]
        )

    def test_monthly_nth_weekday(self):
        """Test the first Friday of each month."""
        spec = RecurrenceSpec(
            'monthly',
            monthly_pattern='nth_weekday',
            recurring_end_date=date(2026, 6, 30)
        )

        windows = self.generator.generate(
            datetime(2026, 1, 2, 10, 0),
            datetime(2026, 1, 2, 11, 0),
            spec
        )

        self.assertEqual(len(windows), 6)
        self.assertEqual([w.start.month for w in windows], [1, 2, 3, 4, 5, 6])
        for window in windows:
            self.assertEqual(window.start.weekday(), 4)
            self.assertLessEqual(window.start.day, 7)

    def test_monthly_nth_weekday_skips_short_months(self):
        """Test months without a fifth Friday are skipped."""
        spec = RecurrenceSpec(
            'monthly',
            monthly_pattern='nth_weekday',
            recurring_end_date=date(2026, 12, 31)
        )

        windows = self.generator.generate(
            datetime(2026, 1, 30, 19, 0),  # 5th Friday of January
            datetime(2026, 1, 30, 21, 0),
            spec
        )

        self.assertEqual(
            [w.start.date() for w in windows],
            [date(2026, 1, 30), date(2026, 5, 29), date(2026, 7, 31), date(2026, 10, 30)]
        )

    def test_monthly_nth_weekday_terminates_without_matches(self):
        spec = RecurrenceSpec(
            'monthly',
            monthly_pattern='nth_weekday',
            recurring_end_date=date(2026, 1, 29)
        )

        windows = self.generator.generate(
            datetime(2026, 1, 30, 19, 0),
            datetime(2026, 1, 30, 21, 0),
            spec
        )

        self.assertEqual(windows, [])

    def test_never_exceeds_max_occurrences(self):
        spec = RecurrenceSpec('daily', recurring_end_date=date(2028, 1, 1))

        windows = self.generator.generate(
            datetime(2026, 1, 1, 9, 0),
            datetime(2026, 1, 1, 10, 0),
            spec
        )

        self.assertEqual(len(windows), 365)

    def test_injected_bounds(self):
        generator = OccurrenceGenerator(max_recurrence_months=1, max_occurrences=3)
        start = datetime(2026, 1, 1, 9, 0)

        self.assertEqual(generator.resolve_end_date(start, None), datetime(2026, 2, 1, 9, 0))
        windows = generator.generate(
            start,
            datetime(2026, 1, 1, 10, 0),
            RecurrenceSpec('weekly', days_of_week=('Mon', 'Tue', 'Wed', 'Thu'))
        )
        self.assertEqual(len(windows), 3)

    def test_end_date_is_inclusive(self):
        """Test an explicit end date covers the whole day."""
        spec = RecurrenceSpec('daily', recurring_end_date=datetime(2026, 1, 3, 0, 0))

        windows = self.generator.generate(
            datetime(2026, 1, 1, 21, 0),
            datetime(2026, 1, 1, 22, 0),
            spec
        )

        self.assertEqual([w.start.day for w in windows], [1, 2, 3])

    def test_invalid_specs(self):
        start = datetime(2026, 1, 1, 9, 0)
        end = datetime(2026, 1, 1, 10, 0)

        with self.assertRaises(ValidationFailed):
            self.generator.generate(start, end, RecurrenceSpec('daily', interval=0))
        with self.assertRaises(ValidationFailed):
            self.generator.generate(start, end, RecurrenceSpec('yearly'))
        with self.assertRaises(ValidationFailed):
            self.generator.generate(start, end, RecurrenceSpec('weekly', days_of_week=('Funday',)))
        with self.assertRaises(ValidationFailed):
            self.generator.generate(end, start, RecurrenceSpec('daily'))

    def test_weekday_tag(self):
        self.assertEqual(weekday_tag(datetime(2026, 3, 1)), 'Sun')
        self.assertEqual(weekday_tag(datetime(2026, 3, 2)), 'Mon')


@override_settings(TIME_ZONE='UTC')
class RecurrenceRuleTests(SimpleTestCase):
    """Test remote recurrence rule and description construction."""

    def test_weekly_rule_with_days(self):
        spec = RecurrenceSpec('weekly', days_of_week=('Mon', 'Wed'))
        until = datetime(2026, 8, 31, 23, 59, 59, tzinfo=dt_timezone.utc)

        self.assertEqual(
            build_recurrence_rule(spec, until),
            'FREQ=WEEKLY;BYDAY=MO,WE;UNTIL=20260831T235959Z'
        )

    def test_rule_without_days_or_end(self):
        self.assertEqual(build_recurrence_rule(RecurrenceSpec('weekly')), 'FREQ=WEEKLY')
        self.assertEqual(
            build_recurrence_rule(RecurrenceSpec('daily', days_of_week=('Mon',))),
            'FREQ=DAILY'
        )

    def test_monthly_patterns_are_not_encoded(self):
        spec = RecurrenceSpec('monthly', monthly_pattern='nth_weekday')
        until = datetime(2026, 6, 30, 23, 59, 59, tzinfo=dt_timezone.utc)

        self.assertEqual(build_recurrence_rule(spec, until), 'FREQ=MONTHLY;UNTIL=20260630T235959Z')

    def test_until_is_converted_to_utc(self):
        until = datetime(2026, 1, 10, 23, 59, 59, tzinfo=ZoneInfo('America/New_York'))

        self.assertEqual(
            build_recurrence_rule(RecurrenceSpec('daily'), until),
            'FREQ=DAILY;UNTIL=20260111T045959Z'
        )

    def test_description_tags(self):
        self.assertEqual(
            format_event_description('Bring snacks', 'PUBLIC', 'https://example.com/r'),
            'Bring snacks\n\n[PUBLIC]\n\n[REGISTER: https://example.com/r]'
        )
        self.assertEqual(format_event_description('', 'MEMBER_ONLY'), '')


class EventOccurrenceModelTests(TestCase):
    """Test EventOccurrence model and manager."""

    def test_end_time_must_follow_start_time(self):
        with self.assertRaises(ValidationError):
            EventOccurrence.objects.create(
                title="Backwards",
                created_by='user-1',
                start_time=aware(2026, 1, 1, 10, 0),
                end_time=aware(2026, 1, 1, 9, 0)
            )

    def test_soft_delete(self):
        occurrence = EventOccurrence.objects.create(
            title="Picnic",
            created_by='user-1',
            start_time=aware(2026, 5, 1, 12, 0),
            end_time=aware(2026, 5, 1, 14, 0)
        )

        occurrence.soft_delete()

        self.assertTrue(occurrence.is_deleted)
        self.assertFalse(EventOccurrence.objects.active().filter(pk=occurrence.pk).exists())
        self.assertTrue(EventOccurrence.objects.filter(pk=occurrence.pk).exists())

    def test_manager_filters(self):
        EventOccurrence.objects.create(
            title="Standalone",
            created_by='user-1',
            start_time=aware(2026, 5, 1, 12, 0),
            end_time=aware(2026, 5, 1, 13, 0)
        )
        member = EventOccurrence.objects.create(
            title="Member",
            created_by='user-1',
            series_id='6f1c5a1e-2d7a-4b8e-9a53-0b3f4f9c2b11',
            start_time=aware(2026, 5, 2, 12, 0),
            end_time=aware(2026, 5, 2, 13, 0)
        )

        self.assertEqual(EventOccurrence.objects.standalone().count(), 1)
        self.assertEqual(EventOccurrence.objects.recurring().get(), member)
        self.assertTrue(member.is_recurring)
        self.assertEqual(
            EventOccurrence.objects.in_range(aware(2026, 5, 1), aware(2026, 5, 3)).count(),
            2
        )


class RegistrationLedgerTests(TestCase):
    """Test the registration ledger."""

    def setUp(self):
        self.occurrence = EventOccurrence.objects.create(
            title="Workshop",
            created_by='user-1',
            start_time=aware(2026, 4, 4, 10, 0),
            end_time=aware(2026, 4, 4, 12, 0)
        )

    def test_add_registration_is_idempotent(self):
        registrations.add_registration(self.occurrence, 'user-2')
        registration = registrations.add_registration(self.occurrence, 'user-2', guest_count=2)

        self.assertEqual(registration.guest_count, 2)
        self.assertEqual(registrations.count(self.occurrence), 1)
        self.assertEqual(registrations.get_status(self.occurrence, 'user-2'), 'REGISTERED')

    def test_cancel_registration(self):
        registrations.add_registration(self.occurrence, 'user-2')

        self.assertTrue(registrations.cancel_registration(self.occurrence, 'user-2'))
        self.assertFalse(registrations.cancel_registration(self.occurrence, 'user-2'))
        self.assertIsNone(registrations.get_status(self.occurrence, 'user-2'))
        self.assertEqual(registrations.count(self.occurrence), 0)


@override_settings(CALENDAR_SYNC=SYNC_SETTINGS, TIME_ZONE='UTC')
class SeriesServiceTests(CalendarMockMixin, TestCase):
    """Test series creation, conversion, update and deletion."""

    def create_series(self, **template_overrides):
        with self.captureOnCommitCallbacks(execute=True):
            return services.create_recurring_series(
                make_template(**template_overrides),
                aware(2026, 1, 1, 9, 0),
                aware(2026, 1, 1, 10, 0),
                RecurrenceSpec('daily', recurring_end_date=date(2026, 1, 3))
            )

    def create_single(self, **template_overrides):
        with self.captureOnCommitCallbacks(execute=True):
            return services.create_single_event(
                make_template(**template_overrides),
                aware(2026, 2, 1, 18, 0),
                aware(2026, 2, 1, 20, 0)
            )

    def test_create_series_returns_first_occurrence(self):
        first = self.create_series()

        rows = list(EventOccurrence.objects.in_series(first.series_id))
        self.assertEqual(len(rows), 3)
        self.assertEqual(rows[0], first)
        self.assertEqual(first.start_time, aware(2026, 1, 1, 9, 0))
        for row in rows:
            self.assertEqual(row.title, 'Club Meeting')
            self.assertEqual(row.end_time - row.start_time, timedelta(hours=1))

    def test_series_sync_yields_one_remote_id(self):
        first = self.create_series()

        self.calendar.create.assert_called_once()
        payload = self.calendar.create.call_args[0][0]
        self.assertEqual(payload['recurrence'], ['RRULE:FREQ=DAILY;UNTIL=20260103T235959Z'])
        self.assertEqual(
            set(EventOccurrence.objects.in_series(first.series_id)
                .values_list('external_calendar_id', flat=True)),
            {'remote-1'}
        )

    def test_zero_occurrences_rejected_before_persisting(self):
        with self.captureOnCommitCallbacks(execute=True):
            with self.assertRaises(ValidationFailed):
                services.create_recurring_series(
                    make_template(),
                    aware(2026, 3, 2, 14, 0),
                    aware(2026, 3, 2, 16, 0),
                    RecurrenceSpec('weekly', recurring_end_date=date(2026, 3, 1))
                )

        self.assertEqual(EventOccurrence.objects.count(), 0)
        self.calendar.create.assert_not_called()

    def test_generation_limits_come_from_settings(self):
        with override_settings(EVENTS_RECURRENCE_LIMITS={'MAX_RECURRENCE_MONTHS': 6, 'MAX_OCCURRENCES': 5}):
            first = services.create_recurring_series(
                make_template(),
                aware(2026, 1, 1, 9, 0),
                aware(2026, 1, 1, 10, 0),
                RecurrenceSpec('daily')
            )

        self.assertEqual(EventOccurrence.objects.in_series(first.series_id).count(), 5)

    def test_create_single_event_syncs_plain_event(self):
        occurrence = self.create_single()

        occurrence.refresh_from_db()
        self.assertIsNone(occurrence.series_id)
        self.assertEqual(occurrence.external_calendar_id, 'remote-1')
        payload = self.calendar.create.call_args[0][0]
        self.assertNotIn('recurrence', payload)
        self.assertEqual(payload['summary'], 'Club Meeting')

    def test_sync_failure_does_not_block_creation(self):
        self.calendar.create.side_effect = ExternalSyncFailed('calendar unavailable')

        with self.assertLogs('events.calendar_sync', level='WARNING'):
            first = self.create_series()

        self.assertEqual(EventOccurrence.objects.in_series(first.series_id).count(), 3)
        self.assertFalse(
            EventOccurrence.objects.in_series(first.series_id)
            .filter(external_calendar_id__isnull=False).exists()
        )

    def test_unexpected_sync_error_is_logged(self):
        self.calendar.create.side_effect = RuntimeError('unexpected')

        with self.assertLogs('events.calendar_sync', level='ERROR'):
            occurrence = self.create_single()

        occurrence.refresh_from_db()
        self.assertIsNone(occurrence.external_calendar_id)

    def test_convert_keeps_original_id(self):
        occurrence = self.create_single()
        registrations.add_registration(occurrence, 'user-2')
        spec = RecurrenceSpec('weekly', recurring_end_date=date(2026, 2, 28))
        expected = services.get_generator().generate(
            occurrence.start_time, occurrence.end_time, spec
        )

        with self.captureOnCommitCallbacks(execute=True):
            converted = services.convert_to_series(occurrence.pk, spec)

        self.assertEqual(converted.pk, occurrence.pk)
        rows = list(EventOccurrence.objects.in_series(converted.series_id))
        self.assertEqual(len(rows), len(expected))
        self.assertEqual([row.pk for row in rows].count(occurrence.pk), 1)
        self.assertEqual(registrations.count(converted), 1)

    def test_convert_patches_existing_remote_event(self):
        occurrence = self.create_single()

        with self.captureOnCommitCallbacks(execute=True):
            converted = services.convert_to_series(
                occurrence.pk,
                RecurrenceSpec('daily', recurring_end_date=date(2026, 2, 3))
            )

        self.calendar.create.assert_called_once()
        remote_id, payload = self.calendar.update.call_args[0]
        self.assertEqual(remote_id, 'remote-1')
        self.assertEqual(payload['recurrence'], ['RRULE:FREQ=DAILY;UNTIL=20260203T235959Z'])
        self.assertEqual(
            set(EventOccurrence.objects.in_series(converted.series_id)
                .values_list('external_calendar_id', flat=True)),
            {'remote-1'}
        )

    def test_convert_applies_overrides(self):
        occurrence = self.create_single()

        converted = services.convert_to_series(
            occurrence.pk,
            RecurrenceSpec('daily', recurring_end_date=date(2026, 3, 4)),
            OccurrenceUpdateData(
                title='Morning Run',
                start_time=aware(2026, 3, 2, 7, 0),
                end_time=aware(2026, 3, 2, 8, 0)
            )
        )

        rows = list(EventOccurrence.objects.in_series(converted.series_id))
        self.assertEqual([row.start_time.day for row in rows], [2, 3, 4])
        self.assertEqual({row.title for row in rows}, {'Morning Run'})
        self.assertEqual(converted.start_time, aware(2026, 3, 2, 7, 0))

    def test_convert_recurring_occurrence_conflicts(self):
        first = self.create_series()

        with self.assertRaises(Conflict):
            services.convert_to_series(first.pk, RecurrenceSpec('daily'))

        self.assertEqual(EventOccurrence.objects.in_series(first.series_id).count(), 3)

    def test_convert_missing_occurrence(self):
        with self.assertRaises(NotFound):
            services.convert_to_series(9999, RecurrenceSpec('daily'))

    def test_convert_with_zero_occurrences_leaves_row_untouched(self):
        occurrence = self.create_single()

        with self.assertRaises(ValidationFailed):
            services.convert_to_series(
                occurrence.pk,
                RecurrenceSpec('weekly', days_of_week=('Mon',), recurring_end_date=date(2026, 1, 1))
            )

        occurrence.refresh_from_db()
        self.assertIsNone(occurrence.series_id)

    def test_update_does_not_cascade(self):
        first = self.create_series()

        with self.captureOnCommitCallbacks(execute=True):
            services.update_occurrence(first.pk, OccurrenceUpdateData(title='Rescheduled'))

        titles = list(
            EventOccurrence.objects.in_series(first.series_id).values_list('title', flat=True)
        )
        self.assertEqual(titles, ['Rescheduled', 'Club Meeting', 'Club Meeting'])
        self.calendar.update.assert_not_called()

    def test_update_standalone_patches_remote_event(self):
        occurrence = self.create_single()

        with self.captureOnCommitCallbacks(execute=True):
            services.update_occurrence(occurrence.pk, OccurrenceUpdateData(title='New title'))

        self.calendar.update.assert_called_once_with('remote-1', {'summary': 'New title'})

    def test_update_rejects_invalid_times(self):
        occurrence = self.create_single()

        with self.assertRaises(ValidationFailed):
            services.update_occurrence(
                occurrence.pk,
                OccurrenceUpdateData(end_time=aware(2026, 2, 1, 17, 0))
            )

    def test_delete_series_member_never_deletes_remote_event(self):
        first = self.create_series()

        with self.captureOnCommitCallbacks(execute=True):
            self.assertTrue(services.delete_occurrence(first.pk))

        self.calendar.delete.assert_not_called()
        self.assertEqual(EventOccurrence.objects.in_series(first.series_id).active().count(), 2)

    def test_delete_standalone_deletes_remote_event_once(self):
        occurrence = self.create_single()

        with self.captureOnCommitCallbacks(execute=True):
            services.delete_occurrence(occurrence.pk)

        self.calendar.delete.assert_called_once_with('remote-1')
        with self.assertRaises(NotFound):
            services.delete_occurrence(occurrence.pk)

    def test_get_series(self):
        first = self.create_series()
        services.delete_occurrence(first.pk)

        self.assertEqual(len(services.get_series(first.series_id)), 2)
        with self.assertRaises(NotFound):
            services.get_series('00000000-0000-0000-0000-000000000000')


@override_settings(CALENDAR_SYNC=SYNC_SETTINGS, TIME_ZONE='UTC')
class RsvpServiceTests(CalendarMockMixin, TestCase):
    """Test RSVP services and attendee mirroring."""

    def setUp(self):
        super().setUp()
        self.member_event = EventOccurrence.objects.create(
            title="Members Dinner",
            created_by='user-1',
            visibility='MEMBER_ONLY',
            external_calendar_id='remote-9',
            start_time=aware(2026, 6, 1, 18, 0),
            end_time=aware(2026, 6, 1, 21, 0)
        )
        self.public_event = EventOccurrence.objects.create(
            title="Open House",
            created_by='user-1',
            visibility='PUBLIC',
            external_calendar_id='remote-10',
            start_time=aware(2026, 6, 2, 18, 0),
            end_time=aware(2026, 6, 2, 21, 0)
        )

    def test_rsvp_member_only_adds_attendee(self):
        with self.captureOnCommitCallbacks(execute=True):
            services.rsvp(self.member_event.pk, 'user-2', 'ann@example.com', 'Ann')
            services.rsvp(self.member_event.pk, 'user-2', 'ann@example.com', 'Ann')

        self.assertEqual(registrations.count(self.member_event), 1)
        self.calendar.add_attendee.assert_called_with(
            'remote-9', 'ann@example.com', 'Ann', send_updates='all'
        )

    def test_rsvp_public_event_stays_local(self):
        with self.captureOnCommitCallbacks(execute=True):
            services.rsvp(self.public_event.pk, 'user-2', 'ann@example.com')

        self.assertEqual(registrations.count(self.public_event), 1)
        self.calendar.add_attendee.assert_not_called()

    def test_cancel_rsvp(self):
        services.rsvp(self.member_event.pk, 'user-2')

        with self.captureOnCommitCallbacks(execute=True):
            self.assertTrue(services.cancel_rsvp(self.member_event.pk, 'user-2', 'ann@example.com'))
            self.assertFalse(services.cancel_rsvp(self.member_event.pk, 'user-2', 'ann@example.com'))

        self.calendar.remove_attendee.assert_called_once_with('remote-9', 'ann@example.com')

    def test_rsvp_missing_occurrence(self):
        with self.assertRaises(NotFound):
            services.rsvp(9999, 'user-2')

    def test_attendee_failure_is_swallowed(self):
        self.calendar.add_attendee.side_effect = ExternalSyncFailed('quota exceeded')

        with self.assertLogs('events.calendar_sync', level='WARNING'):
            with self.captureOnCommitCallbacks(execute=True):
                registration = services.rsvp(self.member_event.pk, 'user-2', 'ann@example.com')

        self.assertEqual(registration.status, 'REGISTERED')

    def test_rsvp_without_calendar_invite(self):
        """Test the attendee is added silently when add_to_calendar is False."""
        with self.captureOnCommitCallbacks(execute=True):
            services.rsvp(
                self.member_event.pk, 'user-2', 'ann@example.com', 'Ann',
                add_to_calendar=False
            )

        self.calendar.add_attendee.assert_called_once_with(
            'remote-9', 'ann@example.com', 'Ann', send_updates='none'
        )

    def test_cancel_keeps_attendee_while_registered_for_sibling(self):
        """Test the shared remote event keeps a user still registered elsewhere in the series."""
        series_id = '0d9b7c3e-5f4a-4f7e-8d2c-7a1b9e6c4d21'
        rows = [
            EventOccurrence.objects.create(
                title="Members Training",
                created_by='user-1',
                visibility='MEMBER_ONLY',
                series_id=series_id,
                external_calendar_id='remote-1',
                start_time=aware(2026, 7, day, 18, 0),
                end_time=aware(2026, 7, day, 19, 0)
            )
            for day in (1, 2, 3)
        ]
        services.rsvp(rows[0].pk, 'user-2')
        services.rsvp(rows[1].pk, 'user-2')

        with self.captureOnCommitCallbacks(execute=True):
            self.assertTrue(services.cancel_rsvp(rows[0].pk, 'user-2', 'ann@example.com'))

        self.assertEqual(registrations.get_status(rows[1], 'user-2'), 'REGISTERED')
        self.calendar.remove_attendee.assert_not_called()

        with self.captureOnCommitCallbacks(execute=True):
            self.assertTrue(services.cancel_rsvp(rows[1].pk, 'user-2', 'ann@example.com'))

        self.calendar.remove_attendee.assert_called_once_with('remote-1', 'ann@example.com')

    def test_cancel_ignores_registration_on_deleted_sibling(self):
        series_id = '4c2e8a61-9b3d-4e57-a0f1-6d8c2b7e9a35'
        first, second = [
            EventOccurrence.objects.create(
                title="Members Training",
                created_by='user-1',
                visibility='MEMBER_ONLY',
                series_id=series_id,
                external_calendar_id='remote-1',
                start_time=aware(2026, 8, day, 18, 0),
                end_time=aware(2026, 8, day, 19, 0)
            )
            for day in (1, 2)
        ]
        services.rsvp(first.pk, 'user-2')
        services.rsvp(second.pk, 'user-2')
        services.delete_occurrence(second.pk)

        with self.captureOnCommitCallbacks(execute=True):
            services.cancel_rsvp(first.pk, 'user-2', 'ann@example.com')

        self.calendar.remove_attendee.assert_called_once_with('remote-1', 'ann@example.com')

    def test_unknown_attendee_action(self):
        adapter = CalendarSyncAdapter(client=self.calendar)

        with self.assertLogs('events.calendar_sync', level='WARNING'):
            self.assertFalse(adapter.sync_attendee('invite', 'remote-9', 'a@b.org'))

        self.calendar.add_attendee.assert_not_called()
        self.calendar.remove_attendee.assert_not_called()


@override_settings(CALENDAR_SYNC=dict(SYNC_SETTINGS, CALENDAR_ID=''), TIME_ZONE='UTC')
class UnconfiguredCalendarTests(TestCase):
    """Test behaviour when no calendar is configured."""

    def test_occurrences_created_without_remote_id(self):
        with self.captureOnCommitCallbacks(execute=True):
            occurrence = services.create_single_event(
                make_template(),
                aware(2026, 2, 1, 18, 0),
                aware(2026, 2, 1, 20, 0)
            )

        occurrence.refresh_from_db()
        self.assertIsNone(occurrence.external_calendar_id)

    def test_client_calls_are_noops(self):
        client = GoogleCalendarClient(calendar_id='')

        self.assertIsNone(client.create({'summary': 'x'}))
        self.assertFalse(client.update('remote-1', {}))
        self.assertFalse(client.delete('remote-1'))
        self.assertFalse(client.add_attendee('remote-1', 'a@b.org'))
        self.assertFalse(client.remove_attendee('remote-1', 'a@b.org'))


class GoogleCalendarClientTests(SimpleTestCase):
    """Test GoogleCalendarClient against a mocked API service."""

    def setUp(self):
        self.calendar_client = GoogleCalendarClient(calendar_id='club@example.com')
        self.calendar_client._service = Mock()
        self.events = self.calendar_client._service.events.return_value

    def test_create_returns_remote_id(self):
        self.events.insert.return_value.execute.return_value = {'id': 'abc123'}

        self.assertEqual(self.calendar_client.create({'summary': 'Meeting'}), 'abc123')
        self.events.insert.assert_called_once_with(
            calendarId='club@example.com',
            body={'summary': 'Meeting'}
        )

    def test_add_existing_attendee_is_noop(self):
        self.events.get.return_value.execute.return_value = {
            'attendees': [{'email': 'Ann@Example.com'}]
        }

        self.assertTrue(self.calendar_client.add_attendee('abc123', 'ann@example.com', 'Ann'))
        self.events.patch.assert_not_called()

    def test_add_attendee(self):
        self.events.get.return_value.execute.return_value = {'attendees': []}

        self.assertTrue(self.calendar_client.add_attendee('abc123', 'ann@example.com', 'Ann'))
        self.events.patch.assert_called_once_with(
            calendarId='club@example.com',
            eventId='abc123',
            body={'attendees': [{'email': 'ann@example.com', 'displayName': 'Ann'}]},
            sendUpdates='all'
        )

    def test_add_attendee_without_notification(self):
        self.events.get.return_value.execute.return_value = {'attendees': []}

        self.calendar_client.add_attendee('abc123', 'ann@example.com', send_updates='none')

        self.events.patch.assert_called_once_with(
            calendarId='club@example.com',
            eventId='abc123',
            body={'attendees': [{'email': 'ann@example.com'}]},
            sendUpdates='none'
        )

    def test_remove_missing_attendee_succeeds(self):
        self.events.get.return_value.execute.return_value = {}

        self.assertTrue(self.calendar_client.remove_attendee('abc123', 'ann@example.com'))
        self.events.patch.assert_not_called()

    def test_timeout_raises_sync_failure(self):
        self.events.delete.return_value.execute.side_effect = TimeoutError('timed out')

        with self.assertRaises(ExternalSyncFailed):
            self.calendar_client.delete('abc123')


@override_settings(CALENDAR_SYNC=SYNC_SETTINGS, TIME_ZONE='UTC')
class OccurrenceAPITests(CalendarMockMixin, APITestCase):
    """Test event occurrence API endpoints."""

    def series_payload(self, **overrides):
        payload = {
            "title": "Weekly Practice",
            "created_by": "user-1",
            "visibility": "MEMBER_ONLY",
            "start_time": "2026-03-02T14:00:00Z",
            "end_time": "2026-03-02T16:00:00Z",
            "recurrence": {
                "frequency": "weekly",
                "days_of_week": ["Mon", "Wed"],
                "recurring_end_date": "2026-03-31",
            },
        }
        payload.update(overrides)
        return payload

    def test_create_series(self):
        response = self.client.post('/api/series/', self.series_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['occurrences_created'], 9)
        self.assertIsNotNone(response.data['occurrence']['series_id'])

        series_id = response.data['occurrence']['series_id']
        response = self.client.get(f'/api/series/{series_id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 9)

    def test_create_series_without_occurrences(self):
        payload = self.series_payload(recurrence={
            "frequency": "weekly",
            "recurring_end_date": "2026-03-01",
        })

        response = self.client.post('/api/series/', payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['detail'], 'No occurrences could be generated')
        self.assertEqual(EventOccurrence.objects.count(), 0)

    def test_create_series_rejects_unknown_weekday(self):
        payload = self.series_payload(recurrence={
            "frequency": "weekly",
            "days_of_week": ["Someday"],
        })

        response = self.client.post('/api/series/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_and_update_single_occurrence(self):
        response = self.client.post('/api/occurrences/', {
            "title": "Bake Sale",
            "created_by": "user-1",
            "start_time": "2026-04-10T09:00:00Z",
            "end_time": "2026-04-10T12:00:00Z",
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertFalse(response.data['is_recurring'])
        occurrence_id = response.data['id']

        response = self.client.patch(
            f'/api/occurrences/{occurrence_id}/',
            {"title": "Spring Bake Sale"},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['title'], "Spring Bake Sale")

    def test_list_occurrences_in_range(self):
        self.client.post('/api/series/', self.series_payload(), format='json')

        response = self.client.get('/api/occurrences/', {
            'start': '2026-03-01T00:00:00Z',
            'end': '2026-03-08T00:00:00Z'
        })

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 2)

    def test_delete_occurrence(self):
        response = self.client.post('/api/series/', self.series_payload(), format='json')
        occurrence_id = response.data['occurrence']['id']

        response = self.client.delete(f'/api/occurrences/{occurrence_id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

        response = self.client.get(f'/api/occurrences/{occurrence_id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_convert_occurrence(self):
        response = self.client.post('/api/occurrences/', {
            "title": "Book Club",
            "created_by": "user-1",
            "start_time": "2026-01-02T18:00:00Z",
            "end_time": "2026-01-02T19:30:00Z",
        }, format='json')
        occurrence_id = response.data['id']

        response = self.client.post(f'/api/occurrences/{occurrence_id}/convert/', {
            "recurrence": {
                "frequency": "monthly",
                "monthly_pattern": "nth_weekday",
                "recurring_end_date": "2026-06-30",
            },
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['occurrence']['id'], occurrence_id)
        self.assertEqual(response.data['occurrences_created'], 6)

    def test_convert_series_member_conflicts(self):
        response = self.client.post('/api/series/', self.series_payload(), format='json')
        occurrence_id = response.data['occurrence']['id']

        response = self.client.post(f'/api/occurrences/{occurrence_id}/convert/', {
            "recurrence": {"frequency": "daily"},
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_rsvp_and_cancel(self):
        response = self.client.post('/api/series/', self.series_payload(), format='json')
        occurrence_id = response.data['occurrence']['id']

        response = self.client.post(
            f'/api/occurrences/{occurrence_id}/rsvp/',
            {"user_id": "user-2", "email": "ann@example.com", "name": "Ann"},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'REGISTERED')

        response = self.client.get(f'/api/occurrences/{occurrence_id}/')
        self.assertEqual(response.data['registration_count'], 1)

        response = self.client.delete(
            f'/api/occurrences/{occurrence_id}/rsvp/',
            {"user_id": "user-2"},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['cancelled'])
        self.assertFalse(Registration.objects.exists())

    def test_rsvp_without_calendar_invite(self):
        occurrence = EventOccurrence.objects.create(
            title="Members Dinner",
            created_by='user-1',
            visibility='MEMBER_ONLY',
            external_calendar_id='remote-9',
            start_time=aware(2026, 6, 1, 18, 0),
            end_time=aware(2026, 6, 1, 21, 0)
        )

        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post(
                f'/api/occurrences/{occurrence.pk}/rsvp/',
                {"user_id": "user-2", "email": "ann@example.com", "add_to_calendar": False},
                format='json'
            )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.calendar.add_attendee.assert_called_once_with(
            'remote-9', 'ann@example.com', None, send_updates='none'
        )


@override_settings(CALENDAR_SYNC=SYNC_SETTINGS, TIME_ZONE='UTC')
class ManagementCommandTests(CalendarMockMixin, TestCase):
    """Test management commands."""

    def setUp(self):
        super().setUp()
        start = timezone.now() + timedelta(days=3)
        self.pending = EventOccurrence.objects.create(
            title="Cleanup Day",
            created_by='user-1',
            start_time=start,
            end_time=start + timedelta(hours=2)
        )
        EventOccurrence.objects.create(
            title="Series Member",
            created_by='user-1',
            series_id='6f1c5a1e-2d7a-4b8e-9a53-0b3f4f9c2b11',
            start_time=start,
            end_time=start + timedelta(hours=1)
        )

    def test_sync_calendar_command(self):
        out = StringIO()
        call_command('sync_calendar', stdout=out)

        self.assertIn('Successfully synced 1', out.getvalue())
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.external_calendar_id, 'remote-1')
        self.calendar.create.assert_called_once()

    def test_sync_calendar_dry_run(self):
        out = StringIO()
        call_command('sync_calendar', '--dry-run', stdout=out)

        self.assertIn('Found 1 unsynced', out.getvalue())
        self.calendar.create.assert_not_called()
