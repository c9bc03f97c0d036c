"""
Data types and constants for the event occurrence engine.

This module contains:
- DTOs (Data Transfer Objects) for service layer operations
- Constants used across the application
"""

from dataclasses import dataclass, field, fields
from typing import NamedTuple, Optional, Tuple, Union
from datetime import datetime, date


MAX_RECURRENCE_MONTHS = 6
MAX_OCCURRENCES = 365

FREQUENCY_CHOICES = [
    ('daily', 'Daily'),
    ('weekly', 'Weekly'),
    ('monthly', 'Monthly'),
]

MONTHLY_PATTERN_CHOICES = [
    ('day_of_month', 'Same day of the month'),
    ('nth_weekday', 'Same weekday of the month'),
]

# Ordered from Sunday; the index is the offset from the start of a scan week.
WEEKDAY_CHOICES = [
    ('Sun', 'Sunday'),
    ('Mon', 'Monday'),
    ('Tue', 'Tuesday'),
    ('Wed', 'Wednesday'),
    ('Thu', 'Thursday'),
    ('Fri', 'Friday'),
    ('Sat', 'Saturday'),
]

WEEKDAY_TAGS = [tag for tag, _ in WEEKDAY_CHOICES]


class OccurrenceWindow(NamedTuple):
    """Start and end of one generated occurrence."""
    start: datetime
    end: datetime


@dataclass(frozen=True)
class RecurrenceSpec:
    """
    Transient description of how a series repeats. Never persisted.

    days_of_week is only read for weekly series and monthly_pattern only
    for monthly ones.
    """
    frequency: str
    interval: int = 1
    days_of_week: Tuple[str, ...] = ()
    monthly_pattern: str = 'day_of_month'
    recurring_end_date: Optional[Union[date, datetime]] = None

    def __post_init__(self):
        object.__setattr__(self, 'days_of_week', tuple(self.days_of_week or ()))


@dataclass
class OccurrenceTemplate:
    """DTO for the fields shared by every row created from one request."""
    title: str
    created_by: str
    description: str = ''
    location: str = ''
    visibility: str = 'PUBLIC'
    event_type: str = 'internal'
    external_registration_url: str = ''
    image_url: str = ''

    def as_model_fields(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class OccurrenceUpdateData:
    """DTO for occurrence update operations."""
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    visibility: Optional[str] = None
    event_type: Optional[str] = None
    external_registration_url: Optional[str] = None
    image_url: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def changed_fields(self) -> dict:
        """Fields that carry a value, keyed by model field name."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


TEMPLATE_FIELDS = [f.name for f in fields(OccurrenceTemplate)]
