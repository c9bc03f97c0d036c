"""
Occurrence generation for recurring events.

Pure date arithmetic: expands a RecurrenceSpec and a template start/end into
an ordered list of OccurrenceWindow values. No database access happens here;
persistence is the job of the service layer.
"""

import calendar
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Union

from dateutil.relativedelta import relativedelta

from .exceptions import ValidationFailed
from .types import (
    FREQUENCY_CHOICES,
    MAX_OCCURRENCES,
    MAX_RECURRENCE_MONTHS,
    MONTHLY_PATTERN_CHOICES,
    WEEKDAY_TAGS,
    OccurrenceWindow,
    RecurrenceSpec,
)


def weekday_tag(value: datetime) -> str:
    """Weekday tag ('Sun'..'Sat') of a date or datetime."""
    return WEEKDAY_TAGS[_days_since_sunday(value)]


def _days_since_sunday(value: datetime) -> int:
    return (value.weekday() + 1) % 7


class OccurrenceGenerator:
    """
    Expands recurrence specs into occurrence windows.

    The bounds are fixed at construction: a series without an explicit end
    date spans ``max_recurrence_months`` and no series ever yields more than
    ``max_occurrences`` windows.
    """

    def __init__(
        self,
        max_recurrence_months: int = MAX_RECURRENCE_MONTHS,
        max_occurrences: int = MAX_OCCURRENCES
    ):
        self.max_recurrence_months = max_recurrence_months
        self.max_occurrences = max_occurrences

    def resolve_end_date(
        self,
        start: datetime,
        recurring_end_date: Optional[Union[date, datetime]]
    ) -> datetime:
        """
        Work out the last instant an occurrence may start at.

        Args:
            start: Template start
            recurring_end_date: Requested end date (None = default span)

        Returns:
            The default span end, or the last instant of the requested day
        """
        if recurring_end_date is None:
            return start + relativedelta(months=self.max_recurrence_months)

        if isinstance(recurring_end_date, datetime):
            if recurring_end_date.tzinfo is None:
                recurring_end_date = recurring_end_date.replace(tzinfo=start.tzinfo)
            elif start.tzinfo is not None:
                recurring_end_date = recurring_end_date.astimezone(start.tzinfo)
            end_day = recurring_end_date.date()
            tzinfo = recurring_end_date.tzinfo
        else:
            end_day = recurring_end_date
            tzinfo = start.tzinfo

        return datetime.combine(end_day, time.max, tzinfo=tzinfo)

    def generate(
        self,
        start: datetime,
        end: datetime,
        spec: RecurrenceSpec
    ) -> List[OccurrenceWindow]:
        """
        Generate the occurrence windows of a recurring event.

        Args:
            start: Start of the template occurrence
            end: End of the template occurrence
            spec: RecurrenceSpec describing the repetition

        Returns:
            Ascending list of OccurrenceWindow, possibly empty

        Raises:
            ValidationFailed: If the template window or the recurrence is malformed
        """
        _validate_spec(start, end, spec)

        until = self.resolve_end_date(start, spec.recurring_end_date)
        if spec.frequency == 'daily':
            starts = self._daily(start, until, spec.interval)
        elif spec.frequency == 'weekly':
            starts = self._weekly(start, until, spec)
        elif spec.monthly_pattern == 'nth_weekday':
            starts = self._monthly_nth_weekday(start, until, spec.interval)
        else:
            starts = self._monthly_day_of_month(start, until, spec.interval)

        duration = end - start
        return [OccurrenceWindow(s, s + duration) for s in starts]

    def _daily(self, start: datetime, until: datetime, interval: int) -> List[datetime]:
        starts = []
        step = timedelta(days=interval)
        candidate = start
        while candidate <= until and len(starts) < self.max_occurrences:
            starts.append(candidate)
            candidate += step
        return starts

    def _weekly(self, start: datetime, until: datetime, spec: RecurrenceSpec) -> List[datetime]:
        """
        Scan whole weeks from the Sunday of the week containing start.

        Target weekdays that fall before start in the first week are
        skipped; later ones in that same week are kept.
        """
        tags = spec.days_of_week or (weekday_tag(start),)
        offsets = sorted({WEEKDAY_TAGS.index(tag) for tag in tags})

        starts = []
        week_start = start - timedelta(days=_days_since_sunday(start))
        step = timedelta(weeks=spec.interval)
        while week_start <= until and len(starts) < self.max_occurrences:
            for offset in offsets:
                candidate = week_start + timedelta(days=offset)
                if candidate < start or candidate > until:
                    continue
                starts.append(candidate)
                if len(starts) >= self.max_occurrences:
                    break
            week_start += step
        return starts

    def _monthly_day_of_month(
        self,
        start: datetime,
        until: datetime,
        interval: int
    ) -> List[datetime]:
        """
        Same day of the month as start, clamped to the month's last day.

        Each step is computed from start itself, so a clamp in a short month
        does not carry over to the months after it.
        """
        starts = []
        step = 0
        while len(starts) < self.max_occurrences:
            candidate = start + relativedelta(months=step * interval)
            if candidate > until:
                break
            starts.append(candidate)
            step += 1
        return starts

    def _monthly_nth_weekday(
        self,
        start: datetime,
        until: datetime,
        interval: int
    ) -> List[datetime]:
        """
        The Nth weekday of each month, e.g. the 2nd Tuesday.

        Months without an Nth such weekday are skipped. The scan ends when a
        candidate month begins after until, whether or not anything matched.
        """
        target_weekday = start.weekday()
        ordinal = (start.day + 6) // 7
        first_month = start.replace(day=1)

        starts = []
        step = 0
        while len(starts) < self.max_occurrences:
            month_start = first_month + relativedelta(months=step * interval)
            if month_start > until:
                break
            step += 1

            day = _nth_weekday_of_month(month_start, target_weekday, ordinal)
            if day is None:
                continue
            candidate = month_start.replace(day=day)
            if start <= candidate <= until:
                starts.append(candidate)
        return starts


def _nth_weekday_of_month(month_start: datetime, weekday: int, ordinal: int) -> Optional[int]:
    """Day number of the Nth given weekday in the month, or None."""
    first = 1 + (weekday - month_start.weekday()) % 7
    day = first + 7 * (ordinal - 1)
    _, days_in_month = calendar.monthrange(month_start.year, month_start.month)
    if day > days_in_month:
        return None
    return day


def _validate_spec(start: datetime, end: datetime, spec: RecurrenceSpec) -> None:
    """Validate the template window and recurrence spec."""
    if end <= start:
        raise ValidationFailed("End time must be after start time")

    if spec.frequency not in dict(FREQUENCY_CHOICES):
        raise ValidationFailed(f"Unsupported frequency: {spec.frequency}")

    if spec.interval < 1:
        raise ValidationFailed("Interval must be at least 1")

    if spec.monthly_pattern not in dict(MONTHLY_PATTERN_CHOICES):
        raise ValidationFailed(f"Unsupported monthly pattern: {spec.monthly_pattern}")

    unknown = [tag for tag in spec.days_of_week if tag not in WEEKDAY_TAGS]
    if unknown:
        raise ValidationFailed(f"Unknown weekday(s): {', '.join(unknown)}")
