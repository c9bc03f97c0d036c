"""
Registration ledger: per-occurrence RSVP records.

Independent of recurrence; a registration belongs to exactly one occurrence
row, so converting a standalone event into a series keeps its registrations
on the row that keeps its id.
"""

import logging
from typing import Optional

from .models import EventOccurrence, Registration

logger = logging.getLogger(__name__)


def add_registration(
    occurrence: EventOccurrence,
    user_id: str,
    guest_count: int = 0
) -> Registration:
    """
    Register a user for an occurrence. Repeated calls update the same record.

    Args:
        occurrence: EventOccurrence instance
        user_id: Id of the registering user
        guest_count: Extra guests the user brings

    Returns:
        The REGISTERED Registration
    """
    registration, created = Registration.objects.update_or_create(
        occurrence=occurrence,
        user_id=user_id,
        defaults={'status': 'REGISTERED', 'guest_count': guest_count}
    )
    logger.info(
        "User %s %s for occurrence %s",
        user_id, 'registered' if created else 're-registered', occurrence.pk
    )
    return registration


def cancel_registration(occurrence: EventOccurrence, user_id: str) -> bool:
    """Remove a user's registration. Returns whether one existed."""
    deleted, _ = Registration.objects.filter(
        occurrence=occurrence,
        user_id=user_id
    ).delete()
    if deleted:
        logger.info("User %s cancelled registration for occurrence %s", user_id, occurrence.pk)
    return deleted > 0


def get_status(occurrence: EventOccurrence, user_id: str) -> Optional[str]:
    return (
        Registration.objects.for_occurrence(occurrence)
        .filter(user_id=user_id)
        .values_list('status', flat=True)
        .first()
    )


def count(occurrence: EventOccurrence) -> int:
    """Number of registered users for an occurrence."""
    return Registration.objects.registered().for_occurrence(occurrence).count()
