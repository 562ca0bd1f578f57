"""
Plain data types shared by the reconciler and the calendar backend.
"""
import enum
from dataclasses import dataclass, field


class GuestStatus(enum.Enum):
    NEEDS_ACTION = 'needsAction'
    YES = 'accepted'
    NO = 'declined'
    MAYBE = 'tentative'
    # Not a Google responseStatus: marks the entry of the event's own creator.
    OWNER = 'owner'

    @classmethod
    def from_response_status(cls, value):
        """Map a Google Calendar ``responseStatus`` string onto a GuestStatus."""
        for status in cls:
            if status.value == value:
                return status
        return cls.NEEDS_ACTION


DECIDED_STATUSES = frozenset({GuestStatus.YES, GuestStatus.NO, GuestStatus.MAYBE})


class InviteOutcome(enum.Enum):
    """Post-condition of a guest addition, observed by re-reading the event."""
    APPLIED = 'applied'
    ABSENT = 'absent'
    UNKNOWN = 'unknown'


@dataclass(frozen=True)
class GuestEntry:
    identity: str
    status: GuestStatus = GuestStatus.NEEDS_ACTION


@dataclass
class Event:
    """
    A single occurrence on a calendar, as seen by the calendar owner.

    ``guests`` never contains the organizer's own entry; the owner's response
    lives in ``owner_status`` instead.
    """
    event_id: str
    calendar_id: str
    title: str
    start: object
    end: object
    description: object = None
    creator: object = None
    guests: list = field(default_factory=list)
    owner_status: GuestStatus = GuestStatus.NEEDS_ACTION

    def get_guest(self, identity):
        """Return the GuestEntry for ``identity`` (case-insensitive) or None."""
        wanted = identity.lower()
        for guest in self.guests:
            if guest.identity.lower() == wanted:
                return guest
        return None

    def __str__(self):
        return f"{self.title} ({self.start})"


class SyncAction(enum.Enum):
    """A mutation the reconciler applied to an event."""
    STATUS_SYNCED = 'status_synced'
    INVITED = 'invited'
    COPY_CREATED = 'copy_created'
    COPY_UPDATED = 'copy_updated'
    COPY_DELETED = 'copy_deleted'
