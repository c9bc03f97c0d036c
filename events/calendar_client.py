"""
Google Calendar client used as the external calendar collaborator.

Every public method either returns its result or raises ExternalSyncFailed.
When no calendar id is configured the client is inert: calls return
None/False without touching the network.
"""

import logging
from typing import List, Optional

import google.auth
import google_auth_httplib2
import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .exceptions import ExternalSyncFailed

logger = logging.getLogger(__name__)

SCOPES = ['https://www.googleapis.com/auth/calendar']


class GoogleCalendarClient:
    """Thin wrapper over the Calendar v3 ``events`` resource."""

    def __init__(
        self,
        calendar_id: Optional[str] = None,
        credentials_file: Optional[str] = None,
        timeout: float = 10
    ):
        self.calendar_id = calendar_id
        self.credentials_file = credentials_file
        self.timeout = timeout
        self._service = None

    @property
    def is_configured(self) -> bool:
        return bool(self.calendar_id)

    def create(self, payload: dict) -> Optional[str]:
        """Insert an event and return its remote id."""
        if not self.is_configured:
            return None
        request = self._events().insert(calendarId=self.calendar_id, body=payload)
        created = self._execute(request, 'create event')
        return created.get('id')

    def update(self, remote_id: str, partial_payload: dict) -> bool:
        if not self.is_configured or not remote_id:
            return False
        request = self._events().patch(
            calendarId=self.calendar_id,
            eventId=remote_id,
            body=partial_payload
        )
        self._execute(request, f'update event {remote_id}')
        return True

    def delete(self, remote_id: str) -> bool:
        if not self.is_configured or not remote_id:
            return False
        request = self._events().delete(calendarId=self.calendar_id, eventId=remote_id)
        self._execute(request, f'delete event {remote_id}')
        return True

    def add_attendee(
        self,
        remote_id: str,
        email: str,
        name: Optional[str] = None,
        send_updates: str = 'all'
    ) -> bool:
        """Add an attendee unless an attendee with the same email exists."""
        if not self.is_configured or not remote_id:
            return False

        attendees = self._get_attendees(remote_id)
        if any(a.get('email', '').lower() == email.lower() for a in attendees):
            logger.info("Attendee %s already on remote event %s", email, remote_id)
            return True

        attendee = {'email': email}
        if name:
            attendee['displayName'] = name
        self._patch_attendees(remote_id, attendees + [attendee], send_updates)
        return True

    def remove_attendee(self, remote_id: str, email: str, send_updates: str = 'all') -> bool:
        """Remove an attendee. Removing someone who is not listed succeeds."""
        if not self.is_configured or not remote_id:
            return False

        attendees = self._get_attendees(remote_id)
        remaining = [a for a in attendees if a.get('email', '').lower() != email.lower()]
        if len(remaining) == len(attendees):
            return True

        self._patch_attendees(remote_id, remaining, send_updates)
        return True

    def _get_attendees(self, remote_id: str) -> List[dict]:
        request = self._events().get(calendarId=self.calendar_id, eventId=remote_id)
        event = self._execute(request, f'get event {remote_id}')
        return list(event.get('attendees') or [])

    def _patch_attendees(self, remote_id: str, attendees: List[dict], send_updates: str) -> None:
        request = self._events().patch(
            calendarId=self.calendar_id,
            eventId=remote_id,
            body={'attendees': attendees},
            sendUpdates=send_updates
        )
        self._execute(request, f'update attendees of event {remote_id}')

    def _events(self):
        if self._service is None:
            self._service = self._build_service()
        return self._service.events()

    def _build_service(self):
        try:
            if self.credentials_file:
                credentials = service_account.Credentials.from_service_account_file(
                    self.credentials_file, scopes=SCOPES
                )
            else:
                credentials, _ = google.auth.default(scopes=SCOPES)
        except (GoogleAuthError, OSError) as exc:
            raise ExternalSyncFailed(f"Could not load calendar credentials: {exc}") from exc

        http = google_auth_httplib2.AuthorizedHttp(
            credentials,
            http=httplib2.Http(timeout=self.timeout)
        )
        return build('calendar', 'v3', http=http, cache_discovery=False)

    def _execute(self, request, action: str) -> dict:
        """Run a prepared API request, translating transport failures."""
        try:
            return request.execute() or {}
        except (HttpError, httplib2.HttpLib2Error, GoogleAuthError, OSError) as exc:
            raise ExternalSyncFailed(f"Failed to {action}: {exc}") from exc
