"""Views for the event occurrence API."""

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.views import exception_handler as drf_exception_handler

from . import services
from .exceptions import Conflict, NotFound, ValidationFailed
from .serializers import (
    CancelRsvpSerializer,
    ConvertToSeriesSerializer,
    DateRangeQuerySerializer,
    OccurrenceCreateSerializer,
    OccurrenceReadSerializer,
    OccurrenceUpdateSerializer,
    RegistrationReadSerializer,
    RsvpSerializer,
    SeriesCreateSerializer,
    recurrence_from_data,
)


def exception_handler(exc, context):
    """Map service errors to HTTP responses, then defer to REST framework."""
    if isinstance(exc, ValidationFailed):
        return Response(
            {'detail': str(exc), 'errors': exc.errors},
            status=status.HTTP_400_BAD_REQUEST
        )
    if isinstance(exc, NotFound):
        return Response({'detail': str(exc)}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, Conflict):
        return Response({'detail': str(exc)}, status=status.HTTP_409_CONFLICT)
    return drf_exception_handler(exc, context)


class OccurrenceListCreateView(APIView):
    """
    List occurrences within a date range or create a standalone occurrence.

    GET /api/occurrences/?start=X&end=Y - List occurrences in range
    POST /api/occurrences/ - Create a standalone occurrence
    """

    def get(self, request):
        """List occurrences within a date range."""
        query_serializer = DateRangeQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        occurrences = services.get_occurrences_in_range(
            query_serializer.validated_data['start'],
            query_serializer.validated_data['end'],
            query_serializer.validated_data.get('visibility')
        )

        serializer = OccurrenceReadSerializer(occurrences, many=True)
        return Response(serializer.data)

    def post(self, request):
        """Create a standalone occurrence."""
        serializer = OccurrenceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        occurrence = services.create_single_event(
            template=serializer.to_template(),
            start_time=serializer.validated_data['start_time'],
            end_time=serializer.validated_data['end_time']
        )

        response_serializer = OccurrenceReadSerializer(occurrence)
        return Response(response_serializer.data, status=status.HTTP_201_CREATED)


class OccurrenceDetailView(APIView):
    """
    Retrieve, update, or delete a single occurrence.

    GET /api/occurrences/{id}/ - Retrieve occurrence
    PATCH /api/occurrences/{id}/ - Update this occurrence only
    DELETE /api/occurrences/{id}/ - Soft-delete this occurrence only
    """

    def get(self, request, pk):
        occurrence = services.get_occurrence(pk)
        serializer = OccurrenceReadSerializer(occurrence)
        return Response(serializer.data)

    def patch(self, request, pk):
        serializer = OccurrenceUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        occurrence = services.update_occurrence(pk, serializer.to_update_data())

        response_serializer = OccurrenceReadSerializer(occurrence)
        return Response(response_serializer.data)

    def delete(self, request, pk):
        services.delete_occurrence(pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


class OccurrenceConvertView(APIView):
    """
    Convert a standalone occurrence into the first member of a series.

    POST /api/occurrences/{id}/convert/
    """

    def post(self, request, pk):
        serializer = ConvertToSeriesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        occurrence = services.convert_to_series(
            pk,
            recurrence_from_data(serializer.validated_data['recurrence']),
            serializer.to_update_data()
        )
        series = services.get_series(occurrence.series_id)

        return Response({
            'occurrence': OccurrenceReadSerializer(occurrence).data,
            'occurrences_created': len(series),
        })


class OccurrenceRsvpView(APIView):
    """
    Register for, or cancel a registration for, an occurrence.

    POST /api/occurrences/{id}/rsvp/
    DELETE /api/occurrences/{id}/rsvp/
    """

    def post(self, request, pk):
        serializer = RsvpSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = serializer.validated_data
        registration = services.rsvp(
            pk,
            data['user_id'],
            attendee_email=data.get('email'),
            attendee_name=data.get('name'),
            guest_count=data.get('guest_count', 0),
            add_to_calendar=data.get('add_to_calendar', True)
        )

        response_serializer = RegistrationReadSerializer(registration)
        return Response(response_serializer.data, status=status.HTTP_201_CREATED)

    def delete(self, request, pk):
        serializer = CancelRsvpSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        cancelled = services.cancel_rsvp(
            pk,
            serializer.validated_data['user_id'],
            attendee_email=serializer.validated_data.get('email')
        )
        return Response({'cancelled': cancelled})


class SeriesCreateView(APIView):
    """
    Create a recurring series.

    POST /api/series/
    """

    def post(self, request):
        serializer = SeriesCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        first = services.create_recurring_series(
            template=serializer.to_template(),
            start_time=serializer.validated_data['start_time'],
            end_time=serializer.validated_data['end_time'],
            recurrence=recurrence_from_data(serializer.validated_data['recurrence'])
        )
        series = services.get_series(first.series_id)

        return Response({
            'occurrence': OccurrenceReadSerializer(first).data,
            'occurrences_created': len(series),
        }, status=status.HTTP_201_CREATED)


class SeriesDetailView(APIView):
    """
    List the live occurrences of a series.

    GET /api/series/{series_id}/
    """

    def get(self, request, series_id):
        occurrences = services.get_series(series_id)
        serializer = OccurrenceReadSerializer(occurrences, many=True)
        return Response(serializer.data)
