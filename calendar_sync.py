"""
Keep a source calendar and a guest identity consistent over a rolling window.

For every event on the source calendar:
- if the guest is already invited, copy the guest's RSVP onto the source owner
- otherwise invite the guest, and if the invitation does not stick, create a
  copy event on the source calendar that carries both identities as guests
- if the event is itself such a copy, refresh its description from the
  original or delete it once the original is gone

Runs are idempotent but not atomic. The check for an existing copy and the
creation of a new one are separate calls, so two overlapping runs against the
same pair can both create a copy. Only one run per calendar pair may be in
flight at a time; schedule it accordingly (for example a single cron entry
wrapped in ``flock``).
"""
import logging
from dataclasses import dataclass, fields
from datetime import datetime, timezone

from calendar_models import DECIDED_STATUSES, GuestStatus, InviteOutcome, SyncAction
from copy_markers import (
    copy_description,
    copy_title,
    is_copy_of,
    is_copy_title,
    parse_copy_description,
    strip_copy_prefix,
)
from errors import CalendarBackendError
from notifier import SlackNotifier
from sync_config import StatusConflictPolicy

logger = logging.getLogger(__name__)

# Errors from a backend call that are reported and skipped rather than raised.
# OSError covers connection resets and timeouts from any backend.
BACKEND_ERRORS = (CalendarBackendError, OSError)


@dataclass
class SyncStats:
    events_seen: int = 0
    statuses_updated: int = 0
    invited: int = 0
    copies_created: int = 0
    copies_updated: int = 0
    copies_deleted: int = 0
    conflicts: int = 0
    failures: int = 0

    def __str__(self):
        return ', '.join(f"{f.name}={getattr(self, f.name)}" for f in fields(self))


class MutationExecutor:
    """Applies backend calls, logging and counting failures instead of raising them."""

    def __init__(self, notifier, stats, notify_on_failure=False, dry_run=False):
        self.notifier = notifier
        self.stats = stats
        self.notify_on_failure = notify_on_failure
        self.dry_run = dry_run

    def report_failure(self, description, error):
        self.stats.failures += 1
        message = f"Failed to {description}: {error}"
        logger.error(message)
        if self.notify_on_failure:
            self.notifier.notify(message)

    def query(self, description, operation, *args, **kwargs):
        """Run a read-only call. Returns None if it failed."""
        try:
            return operation(*args, **kwargs)
        except BACKEND_ERRORS as e:
            self.report_failure(description, e)
            return None

    def apply(self, counter, description, operation, /, *args, **kwargs):
        """
        Run a mutating call.

        Args:
            counter (str): SyncStats field to increment on success, or None
            description (str): Human readable action, used in log lines

        Returns:
            (bool, object): whether the call ran and succeeded, and its result
        """
        if self.dry_run:
            logger.info(f"[dry-run] Would {description}")
            return False, None
        try:
            result = operation(*args, **kwargs)
        except BACKEND_ERRORS as e:
            self.report_failure(description, e)
            return False, None
        if counter:
            setattr(self.stats, counter, getattr(self.stats, counter) + 1)
        return True, result


class CalendarSync:
    def __init__(self, backend, config, notifier=None):
        """
        Args:
            backend: Calendar backend (see google_calendar.GoogleCalendarBackend)
            config (SyncConfig): Immutable run configuration
            notifier: Object with a ``notify(message)`` method; defaults to Slack
        """
        self.backend = backend
        self.config = config
        self.notifier = notifier or SlackNotifier(config.slack_webhook_url)
        self._reset_stats()

    def _reset_stats(self):
        self.stats = SyncStats()
        self.executor = MutationExecutor(
            self.notifier,
            self.stats,
            notify_on_failure=self.config.notify_on_failure,
            dry_run=self.config.dry_run,
        )

    def run(self, now=None):
        """Process every configured pair once and return the run's SyncStats."""
        self._reset_stats()
        date_from, date_to = self.config.window(now or datetime.now(timezone.utc))

        for pair in self.config.calendar_pairs:
            logger.info(f"Source: {pair.source} / Guest: {pair.guest}")
            try:
                self.sync_pair(pair, date_from, date_to)
            except BACKEND_ERRORS as e:
                self.executor.report_failure(f"sync {pair.source} / {pair.guest}", e)

        logger.info(f"Sync complete. {self.stats}")
        return self.stats

    def sync_pair(self, pair, date_from, date_to):
        events = self.executor.query(
            f"list events of {pair.source}",
            self.backend.list_events, pair.source, date_from, date_to,
        )
        if events is None:
            return

        logger.info(f"Found {len(events)} events between {date_from} and {date_to}")
        for event in events:
            self.reconcile_event(event, pair.source, pair.guest)

    def reconcile_event(self, event, source_id, guest_id):
        """Apply every rule to one event and return the SyncActions performed."""
        self.stats.events_seen += 1
        actions = []

        guest = self.backend.get_guest_entry(event, guest_id)
        if guest:
            if self.sync_status(event, guest):
                actions.append(SyncAction.STATUS_SYNCED)
        else:
            outcome, copy_event = self.invite(event, guest_id, source_id)
            if outcome is InviteOutcome.APPLIED:
                actions.append(SyncAction.INVITED)
            if copy_event is not None:
                actions.append(SyncAction.COPY_CREATED)

        # The original may have moved or changed since its copy was made
        action = self.reflect_copy_event_if_origin_changed(event, guest_id, source_id)
        if action is not None:
            actions.append(action)
        return actions

    def _is_status_conflict(self, source_status, guest_status):
        if self.config.status_conflict_policy is StatusConflictPolicy.LEGACY_ANY_DIFFERENCE:
            return source_status in DECIDED_STATUSES or source_status != guest_status
        return source_status in DECIDED_STATUSES and source_status != guest_status

    def sync_status(self, event, guest):
        """
        Copy the guest's decided RSVP onto the source owner.

        Returns True if the owner's status was updated.
        """
        source_status = event.owner_status
        guest_status = guest.status

        if guest_status not in DECIDED_STATUSES:
            return False

        if self._is_status_conflict(source_status, guest_status):
            self.stats.conflicts += 1
            logger.info(f"Status not synced, source is {source_status.name} and guest is {guest_status.name}: {event}")
            if self.config.notify_on_conflict:
                self.notifier.notify(f"Failed to sync the status of the event: {event.title} ({event.start})")
            return False

        if source_status == guest_status or source_status is GuestStatus.OWNER:
            return False

        ok, _ = self.executor.apply(
            'statuses_updated', f"set status {guest_status.name} on {event}",
            self.backend.set_owner_status, event, guest_status,
        )
        if ok:
            logger.info(f"Status updated: {event}")
        return ok

    def _invite_outcome(self, refreshed, guest_id):
        if refreshed is None:
            return InviteOutcome.UNKNOWN
        if self.backend.get_guest_entry(refreshed, guest_id):
            return InviteOutcome.APPLIED
        return InviteOutcome.ABSENT

    def invite(self, event, guest_id, source_id):
        """
        Invite the guest, falling back to a copy event when the invitation does not stick.

        Returns:
            (InviteOutcome, Event): the observed outcome and the copy created, if any
        """
        _, refreshed = self.executor.apply(
            None, f"invite {guest_id} to {event}",
            self.backend.add_guest, event, guest_id,
        )
        outcome = self._invite_outcome(refreshed, guest_id)

        if self.config.dry_run:
            logger.info(f"[dry-run] Invitation not sent, skipping copy check: {event}")
            return outcome, None

        if outcome is InviteOutcome.APPLIED:
            self.stats.invited += 1
            logger.info(f"Invited: {event}")
            return outcome, None

        if outcome is InviteOutcome.UNKNOWN:
            logger.warning(f"Could not confirm invitation of {guest_id} to {event}; retrying next run")
            return outcome, None

        if is_copy_title(event.title, self.config.copied_prefix):
            logger.info(f"Invite failed on a copy event, not copying it again: {event}")
            return outcome, None

        logger.info(f"Invite failed, copying instead: {event}")
        return outcome, self.create_copy_event(event, source_id, guest_id)

    def create_copy_event(self, event, source_id, guest_id):
        """Create the copy of ``event`` on the source calendar unless one already exists."""
        existing = self.executor.query(
            f"look up copies of {event}",
            self.backend.list_events, source_id, event.start, event.end,
        )
        if existing is None:
            return None

        if any(is_copy_of(candidate, event, self.config.copied_prefix) for candidate in existing):
            logger.info(f"Copy event already exists: {event}")
            return None

        title = copy_title(event.title, self.config.copied_prefix)
        description = copy_description(
            source_id, event.description, self.config.copied_desc_prefix, self.config.copied_desc_suffix
        )
        ok, created = self.executor.apply(
            'copies_created', f"create copy event {title} ({event.start})",
            self.backend.create_event, source_id, title, event.start, event.end,
            guests=(guest_id, source_id), description=description,
        )
        if ok:
            logger.info(f"Created copy event: {created}")
        return created

    def reflect_copy_event_if_origin_changed(self, copy_event, guest_id, source_id):
        """
        Delete a copy whose original is gone, or refresh its description.

        Returns the SyncAction performed, or None.
        """
        prefix = self.config.copied_prefix
        if not is_copy_title(copy_event.title, prefix):
            return None

        creator = self.backend.get_creator_identity(copy_event)
        if not creator or creator.lower() != source_id.lower():
            logger.debug(f"Skipping copy-like event not created by {source_id}: {copy_event}")
            return None

        candidates = self.executor.query(
            f"look up original of {copy_event}",
            self.backend.list_events, source_id, copy_event.start, copy_event.end,
        )
        if candidates is None:
            return None
        original_title = strip_copy_prefix(copy_event.title, prefix)
        originals = [
            candidate for candidate in candidates
            if candidate.title == original_title
            and candidate.start == copy_event.start
            and candidate.end == copy_event.end
        ]

        if not originals:
            return self._delete_orphaned_copy(copy_event, guest_id, source_id, creator)

        if len(originals) > 1:
            logger.info(f"Found {len(originals)} possible originals, leaving copy untouched: {copy_event}")
            return None

        original = originals[0]
        if copy_event.description is None or original.description is None:
            return None

        embedded = parse_copy_description(
            copy_event.description, source_id, self.config.copied_desc_prefix, self.config.copied_desc_suffix
        )
        if embedded == original.description:
            return None

        expected = copy_description(
            source_id, original.description, self.config.copied_desc_prefix, self.config.copied_desc_suffix
        )

        ok, _ = self.executor.apply(
            'copies_updated', f"update description of {copy_event}",
            self.backend.set_description, copy_event, expected,
        )
        if ok:
            logger.info(f"Updated copy event description: {copy_event}")
            return SyncAction.COPY_UPDATED
        return None

    def _delete_orphaned_copy(self, copy_event, guest_id, source_id, creator):
        only_guest = (
            len(copy_event.guests) == 1
            and self.backend.get_guest_entry(copy_event, guest_id) is not None
        )
        if not only_guest or creator.lower() != source_id.lower():
            logger.info(f"Original not found but copy was edited, keeping it: {copy_event}")
            return None

        ok, _ = self.executor.apply(
            'copies_deleted', f"delete copy event {copy_event}",
            self.backend.delete_event, copy_event,
        )
        if ok:
            logger.info(f"Deleted copy event (original moved or deleted): {copy_event}")
            return SyncAction.COPY_DELETED
        return None
