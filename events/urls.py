"""
URL routing for the events API.
"""

from django.urls import path
from .views import (
    OccurrenceListCreateView,
    OccurrenceDetailView,
    OccurrenceConvertView,
    OccurrenceRsvpView,
    SeriesCreateView,
    SeriesDetailView,
)

urlpatterns = [
    path('occurrences/', OccurrenceListCreateView.as_view(), name='occurrence-list-create'),
    path('occurrences/<int:pk>/', OccurrenceDetailView.as_view(), name='occurrence-detail'),
    path('occurrences/<int:pk>/convert/', OccurrenceConvertView.as_view(), name='occurrence-convert'),
    path('occurrences/<int:pk>/rsvp/', OccurrenceRsvpView.as_view(), name='occurrence-rsvp'),
    path('series/', SeriesCreateView.as_view(), name='series-create'),
    path('series/<uuid:series_id>/', SeriesDetailView.as_view(), name='series-detail'),
]
