"""
Management command to push unsynced standalone occurrences to the external calendar.

Remote creation is best-effort, so an occurrence can end up without an
external_calendar_id. Run this periodically (e.g., hourly via cron) to retry.
Series are skipped: their recurrence spec is not stored, so the remote
recurring event cannot be rebuilt from the rows.
"""

from django.core.management.base import BaseCommand
from events import calendar_sync
from events.models import EventOccurrence


class Command(BaseCommand):
    help = 'Create remote calendar events for upcoming standalone occurrences that lack one'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the occurrences that would be synced without calling the calendar'
        )

    def handle(self, *args, **options):
        pending = EventOccurrence.objects.upcoming().standalone().unsynced()

        self.stdout.write(f'Found {pending.count()} unsynced occurrence(s)')

        if options['dry_run']:
            for occurrence in pending:
                self.stdout.write(f'  {occurrence.pk}: {occurrence}')
            return

        adapter = calendar_sync.CalendarSyncAdapter()
        synced = 0
        for occurrence in pending:
            if adapter.sync_create(occurrence):
                synced += 1

        self.stdout.write(
            self.style.SUCCESS(
                f'Successfully synced {synced} occurrence(s)'
            )
        )
