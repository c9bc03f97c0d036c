"""
Serializers for the event occurrence API.
"""

from rest_framework import serializers

from . import registrations
from .models import EventOccurrence, Registration
from .types import (
    FREQUENCY_CHOICES,
    MONTHLY_PATTERN_CHOICES,
    WEEKDAY_CHOICES,
    OccurrenceTemplate,
    OccurrenceUpdateData,
    RecurrenceSpec,
)


class OccurrenceReadSerializer(serializers.ModelSerializer):
    """Serializer for reading/displaying EventOccurrence (output)."""

    is_recurring = serializers.BooleanField(read_only=True)
    registration_count = serializers.SerializerMethodField()

    class Meta:
        model = EventOccurrence
        fields = [
            'id',
            'series_id',
            'title',
            'description',
            'location',
            'visibility',
            'event_type',
            'external_registration_url',
            'image_url',
            'created_by',
            'start_time',
            'end_time',
            'external_calendar_id',
            'is_recurring',
            'registration_count',
            'created_at',
            'updated_at',
        ]

    def get_registration_count(self, obj):
        return registrations.count(obj)


class RegistrationReadSerializer(serializers.ModelSerializer):
    """Serializer for reading Registration (output)."""

    class Meta:
        model = Registration
        fields = ['id', 'occurrence', 'user_id', 'status', 'guest_count', 'created_at']


class RecurrenceSerializer(serializers.Serializer):
    """Serializer for the recurrence part of a series request."""

    frequency = serializers.ChoiceField(choices=FREQUENCY_CHOICES)
    interval = serializers.IntegerField(min_value=1, default=1)
    days_of_week = serializers.ListField(
        child=serializers.ChoiceField(choices=WEEKDAY_CHOICES),
        required=False,
        default=list
    )
    monthly_pattern = serializers.ChoiceField(
        choices=MONTHLY_PATTERN_CHOICES,
        default='day_of_month'
    )
    recurring_end_date = serializers.DateField(required=False, allow_null=True)


def recurrence_from_data(data: dict) -> RecurrenceSpec:
    """Build a RecurrenceSpec from validated RecurrenceSerializer data."""
    return RecurrenceSpec(
        frequency=data['frequency'],
        interval=data.get('interval', 1),
        days_of_week=tuple(data.get('days_of_week') or ()),
        monthly_pattern=data.get('monthly_pattern', 'day_of_month'),
        recurring_end_date=data.get('recurring_end_date')
    )


class OccurrenceCreateSerializer(serializers.Serializer):
    """Serializer for creating a standalone occurrence."""

    title = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    location = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    visibility = serializers.ChoiceField(
        choices=EventOccurrence.VISIBILITY_CHOICES,
        default='PUBLIC'
    )
    event_type = serializers.ChoiceField(
        choices=EventOccurrence.EVENT_TYPE_CHOICES,
        default='internal'
    )
    external_registration_url = serializers.URLField(
        max_length=500, required=False, allow_blank=True, default=''
    )
    image_url = serializers.URLField(max_length=500, required=False, allow_blank=True, default='')
    created_by = serializers.CharField(max_length=64)
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()

    def validate(self, data):
        """Ensure the event ends after it starts."""
        if data['end_time'] <= data['start_time']:
            raise serializers.ValidationError({
                'end_time': 'End time must be after start time.'
            })
        return data

    def to_template(self) -> OccurrenceTemplate:
        data = self.validated_data
        return OccurrenceTemplate(
            title=data['title'],
            created_by=data['created_by'],
            description=data.get('description', ''),
            location=data.get('location', ''),
            visibility=data.get('visibility', 'PUBLIC'),
            event_type=data.get('event_type', 'internal'),
            external_registration_url=data.get('external_registration_url', ''),
            image_url=data.get('image_url', '')
        )


class SeriesCreateSerializer(OccurrenceCreateSerializer):
    """Serializer for creating a recurring series."""

    recurrence = RecurrenceSerializer()


class OccurrenceUpdateSerializer(serializers.Serializer):
    """Serializer for updating an occurrence."""

    title = serializers.CharField(max_length=200, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    location = serializers.CharField(max_length=255, required=False, allow_blank=True)
    visibility = serializers.ChoiceField(
        choices=EventOccurrence.VISIBILITY_CHOICES,
        required=False
    )
    event_type = serializers.ChoiceField(
        choices=EventOccurrence.EVENT_TYPE_CHOICES,
        required=False
    )
    external_registration_url = serializers.URLField(
        max_length=500, required=False, allow_blank=True
    )
    image_url = serializers.URLField(max_length=500, required=False, allow_blank=True)
    start_time = serializers.DateTimeField(required=False)
    end_time = serializers.DateTimeField(required=False)

    def validate(self, data):
        """Ensure the event ends after it starts when both are given."""
        start_time = data.get('start_time')
        end_time = data.get('end_time')
        if start_time and end_time and end_time <= start_time:
            raise serializers.ValidationError({
                'end_time': 'End time must be after start time.'
            })
        return data

    def to_update_data(self) -> OccurrenceUpdateData:
        data = self.validated_data
        return OccurrenceUpdateData(
            title=data.get('title'),
            description=data.get('description'),
            location=data.get('location'),
            visibility=data.get('visibility'),
            event_type=data.get('event_type'),
            external_registration_url=data.get('external_registration_url'),
            image_url=data.get('image_url'),
            start_time=data.get('start_time'),
            end_time=data.get('end_time')
        )


class ConvertToSeriesSerializer(OccurrenceUpdateSerializer):
    """Serializer for converting a standalone occurrence into a series."""

    recurrence = RecurrenceSerializer()


class RsvpSerializer(serializers.Serializer):
    """Serializer for RSVP requests."""

    user_id = serializers.CharField(max_length=64)
    email = serializers.EmailField(required=False)
    name = serializers.CharField(max_length=200, required=False)
    guest_count = serializers.IntegerField(min_value=0, default=0)
    add_to_calendar = serializers.BooleanField(default=True)


class CancelRsvpSerializer(serializers.Serializer):
    """Serializer for RSVP cancellation requests."""

    user_id = serializers.CharField(max_length=64)
    email = serializers.EmailField(required=False)


class DateRangeQuerySerializer(serializers.Serializer):
    """Serializer for date range query parameters."""

    start = serializers.DateTimeField(required=True)
    end = serializers.DateTimeField(required=True)
    visibility = serializers.ChoiceField(
        choices=EventOccurrence.VISIBILITY_CHOICES,
        required=False,
        allow_null=True
    )

    def validate(self, data):
        """Ensure start is before end."""
        if data['start'] >= data['end']:
            raise serializers.ValidationError(
                "Start datetime must be before end datetime."
            )
        return data
