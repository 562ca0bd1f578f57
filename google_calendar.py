"""
Google Calendar v3 backend.

Wraps the googleapiclient service behind the small set of operations the
reconciler needs, converting between API event dicts and calendar_models.Event.
"""
import logging
import os
import pickle
from datetime import date, datetime, time, timezone

import httplib2
from google.auth.exceptions import TransportError
from google.auth.transport.requests import Request
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from calendar_models import Event, GuestEntry, GuestStatus
from errors import CalendarBackendError

logger = logging.getLogger(__name__)

# Network failures below the HTTP layer (resets, timeouts, DNS, token refresh)
TRANSPORT_ERRORS = (OSError, httplib2.HttpLib2Error, TransportError)

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
SCOPES = ['https://www.googleapis.com/auth/calendar']
DEFAULT_KEY_PATH = os.path.join(SCRIPT_DIR, 'google_calendar_key.json')
DEFAULT_TOKEN_PATH = os.path.join(SCRIPT_DIR, 'token.pickle')


def authenticate_google(key_path=DEFAULT_KEY_PATH, token_path=DEFAULT_TOKEN_PATH):
    """Authenticate with Google Calendar API and return a service object."""
    creds = None
    if os.path.exists(token_path):
        with open(token_path, 'rb') as token:
            creds = pickle.load(token)

    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            creds.refresh(Request())
        else:
            if not os.path.exists(key_path):
                raise FileNotFoundError(
                    f"Google Calendar API key not found at {key_path}. "
                    "Please download it from Google Cloud Console and rename it to google_calendar_key.json"
                )
            flow = InstalledAppFlow.from_client_secrets_file(key_path, SCOPES)
            creds = flow.run_local_server(port=0)

        with open(token_path, 'wb') as token:
            pickle.dump(creds, token)

    return build('calendar', 'v3', credentials=creds)


def parse_event_time(value):
    """Turn an API ``start``/``end`` dict into a datetime, or a date for all-day events."""
    if 'dateTime' in value:
        return datetime.fromisoformat(value['dateTime'].replace('Z', '+00:00'))
    return date.fromisoformat(value['date'])


def to_rfc3339(value):
    """Format a query bound for timeMin/timeMax; dates become UTC midnight, naive datetimes UTC."""
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def format_event_time(value):
    if isinstance(value, datetime):
        return {'dateTime': value.isoformat()}
    return {'date': value.isoformat()}


def _is_own_entry(attendee, calendar_id):
    return bool(attendee.get('self')) or attendee.get('email', '').lower() == calendar_id.lower()


def event_from_google(item, calendar_id):
    """Convert a Google Calendar event resource into an Event seen from ``calendar_id``."""
    organizer = item.get('organizer', {})
    attendees = item.get('attendees', [])

    guests = [
        GuestEntry(attendee['email'], GuestStatus.from_response_status(attendee.get('responseStatus')))
        for attendee in attendees
        if attendee.get('email') and not attendee.get('organizer')
    ]

    if _is_own_entry(organizer, calendar_id):
        owner_status = GuestStatus.OWNER
    else:
        owner_status = GuestStatus.NEEDS_ACTION
        for attendee in attendees:
            if _is_own_entry(attendee, calendar_id):
                owner_status = GuestStatus.from_response_status(attendee.get('responseStatus'))
                break

    return Event(
        event_id=item['id'],
        calendar_id=calendar_id,
        title=item.get('summary', ''),
        start=parse_event_time(item['start']),
        end=parse_event_time(item['end']),
        description=item.get('description'),
        creator=item.get('creator', {}).get('email'),
        guests=guests,
        owner_status=owner_status,
    )


class GoogleCalendarBackend:
    def __init__(self, service):
        self.service = service

    @classmethod
    def from_credentials(cls, key_path=DEFAULT_KEY_PATH, token_path=DEFAULT_TOKEN_PATH):
        return cls(authenticate_google(key_path, token_path))

    def _execute(self, request, action):
        try:
            return request.execute()
        except HttpError as e:
            raise CalendarBackendError(f"Failed to {action}: {e}", status=e.resp.status) from e
        except TRANSPORT_ERRORS as e:
            raise CalendarBackendError(f"Failed to {action}: {e!r}") from e

    def _get_item(self, event):
        return self._execute(
            self.service.events().get(calendarId=event.calendar_id, eventId=event.event_id),
            f"fetch event {event}",
        )

    def list_events(self, calendar_id, start, end):
        """Return every event instance overlapping [start, end) on ``calendar_id``."""
        events = []
        page_token = None
        while True:
            result = self._execute(
                self.service.events().list(
                    calendarId=calendar_id,
                    timeMin=to_rfc3339(start),
                    timeMax=to_rfc3339(end),
                    singleEvents=True,
                    orderBy='startTime',
                    pageToken=page_token,
                ),
                f"list events of {calendar_id}",
            )
            events.extend(event_from_google(item, calendar_id) for item in result.get('items', []))
            page_token = result.get('nextPageToken')
            if not page_token:
                return events

    def get_guest_entry(self, event, identity):
        return event.get_guest(identity)

    def get_creator_identity(self, event):
        return event.creator

    def set_owner_status(self, event, status):
        item = self._get_item(event)
        attendees = item.get('attendees', [])
        for attendee in attendees:
            if _is_own_entry(attendee, event.calendar_id):
                attendee['responseStatus'] = status.value
                break
        else:
            raise CalendarBackendError(f"{event.calendar_id} is not an attendee of {event}")

        self._execute(
            self.service.events().patch(
                calendarId=event.calendar_id,
                eventId=event.event_id,
                body={'attendees': attendees},
            ),
            f"set status of {event}",
        )
        event.owner_status = status

    def add_guest(self, event, identity):
        """
        Invite ``identity`` to ``event`` and return the event as re-read afterwards.

        A rejected invitation is not an error here: callers look for the guest
        in the returned event. Returns None when the event could not be re-read.
        """
        try:
            item = self._get_item(event)
            attendees = item.get('attendees', []) + [{'email': identity}]
            self._execute(
                self.service.events().patch(
                    calendarId=event.calendar_id,
                    eventId=event.event_id,
                    body={'attendees': attendees},
                    sendUpdates='all',
                ),
                f"invite {identity} to {event}",
            )
        except CalendarBackendError as e:
            logger.warning(f"Adding {identity} to {event} was rejected: {e}")

        try:
            return event_from_google(self._get_item(event), event.calendar_id)
        except CalendarBackendError as e:
            logger.warning(f"Could not re-read {event} after inviting {identity}: {e}")
            return None

    def create_event(self, calendar_id, title, start, end, guests=(), description=None):
        body = {
            'summary': title,
            'start': format_event_time(start),
            'end': format_event_time(end),
            'attendees': [{'email': guest} for guest in guests],
        }
        if description is not None:
            body['description'] = description

        created = self._execute(
            self.service.events().insert(calendarId=calendar_id, body=body, sendUpdates='all'),
            f"create event {title}",
        )
        return event_from_google(created, calendar_id)

    def set_description(self, event, text):
        self._execute(
            self.service.events().patch(
                calendarId=event.calendar_id,
                eventId=event.event_id,
                body={'description': text},
            ),
            f"update description of {event}",
        )
        event.description = text

    def delete_event(self, event):
        self._execute(
            self.service.events().delete(calendarId=event.calendar_id, eventId=event.event_id),
            f"delete event {event}",
        )
