"""
Pytest configuration and shared fixtures.
"""
import copy
import itertools
from datetime import datetime, timedelta, timezone

import pytest

from calendar_models import Event, GuestEntry, GuestStatus
from calendar_sync import CalendarSync
from errors import CalendarBackendError
from sync_config import CalendarPair, SyncConfig

SOURCE = 'source_01@example.com'
GUEST = 'guest_01@example.net'
NOW = datetime(2026, 10, 20, 9, 0, tzinfo=timezone.utc)


class FakeCalendarBackend:
    """In-memory calendar backend with the same interface as GoogleCalendarBackend."""

    def __init__(self):
        self.events = {}
        self.calls = []
        # Invitations for these identities are silently dropped
        self.reject_guests = set()
        # Operation names that raise CalendarBackendError
        self.failing = set()
        # Operation name -> exception raised as-is, e.g. ConnectionResetError
        self.raise_on = {}
        # When True, add_guest cannot re-read the event afterwards
        self.unreadable_after_invite = False
        self._ids = itertools.count(1)

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.raise_on:
            raise self.raise_on[name]
        if name in self.failing:
            raise CalendarBackendError(f"{name} failed", status=500)

    def add(self, calendar_id, title, start, end, description=None, creator=None,
            guests=(), owner_status=GuestStatus.OWNER):
        event = Event(
            event_id=f"evt{next(self._ids)}",
            calendar_id=calendar_id,
            title=title,
            start=start,
            end=end,
            description=description,
            creator=creator or calendar_id,
            guests=[guest if isinstance(guest, GuestEntry) else GuestEntry(guest) for guest in guests],
            owner_status=owner_status,
        )
        self.events[event.event_id] = event
        return copy.deepcopy(event)

    def on(self, calendar_id):
        return [event for event in self.events.values() if event.calendar_id == calendar_id]

    def titled(self, title):
        return [event for event in self.events.values() if event.title == title]

    def list_events(self, calendar_id, start, end):
        self._call('list_events', calendar_id, start, end)
        return [
            copy.deepcopy(event) for event in self.events.values()
            if event.calendar_id == calendar_id and event.start < end and event.end > start
        ]

    def get_guest_entry(self, event, identity):
        return event.get_guest(identity)

    def get_creator_identity(self, event):
        return event.creator

    def set_owner_status(self, event, status):
        self._call('set_owner_status', event.event_id, status)
        self.events[event.event_id].owner_status = status

    def add_guest(self, event, identity):
        self._call('add_guest', event.event_id, identity)
        stored = self.events[event.event_id]
        if identity not in self.reject_guests:
            stored.guests.append(GuestEntry(identity))
        if self.unreadable_after_invite:
            return None
        return copy.deepcopy(stored)

    def create_event(self, calendar_id, title, start, end, guests=(), description=None):
        self._call('create_event', calendar_id, title)
        return self.add(
            calendar_id, title, start, end,
            description=description,
            guests=[guest for guest in guests if guest != calendar_id],
        )

    def set_description(self, event, text):
        self._call('set_description', event.event_id, text)
        self.events[event.event_id].description = text

    def delete_event(self, event):
        self._call('delete_event', event.event_id)
        del self.events[event.event_id]


class RecordingNotifier:
    def __init__(self):
        self.messages = []

    def notify(self, message):
        self.messages.append(message)
        return True


@pytest.fixture
def backend():
    return FakeCalendarBackend()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def config():
    return SyncConfig(
        calendar_pairs=(CalendarPair(SOURCE, GUEST),),
        slack_webhook_url='https://hooks.slack.test/services/T000/B000/XXX',
    )


@pytest.fixture
def sync(backend, config, notifier):
    return CalendarSync(backend, config, notifier)


@pytest.fixture
def slot():
    """Start and end of a one hour meeting inside the sync window."""
    start = NOW + timedelta(days=1)
    return start, start + timedelta(hours=1)
