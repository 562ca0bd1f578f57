from dataclasses import replace

import pytest

from calendar_models import GuestEntry, GuestStatus, SyncAction
from calendar_sync import CalendarSync
from conftest import GUEST, SOURCE
from sync_config import StatusConflictPolicy


def invited_event(backend, slot, owner_status, guest_status):
    start, end = slot
    return backend.add(
        SOURCE, 'Planning', start, end,
        creator='boss@example.com',
        guests=[GuestEntry(SOURCE, owner_status), GuestEntry(GUEST, guest_status)],
        owner_status=owner_status,
    )


def test_guest_yes_propagates_to_owner(sync, backend, slot):
    event = invited_event(backend, slot, GuestStatus.NEEDS_ACTION, GuestStatus.YES)

    actions = sync.reconcile_event(event, SOURCE, GUEST)

    assert actions == [SyncAction.STATUS_SYNCED]
    assert backend.events[event.event_id].owner_status is GuestStatus.YES
    assert sync.stats.statuses_updated == 1


@pytest.mark.parametrize('guest_status', [GuestStatus.NO, GuestStatus.MAYBE])
def test_other_decisions_propagate(sync, backend, slot, guest_status):
    event = invited_event(backend, slot, GuestStatus.NEEDS_ACTION, guest_status)

    assert sync.sync_status(event, event.get_guest(GUEST))
    assert backend.events[event.event_id].owner_status is guest_status


def test_undecided_guest_is_ignored(sync, backend, slot):
    event = invited_event(backend, slot, GuestStatus.NEEDS_ACTION, GuestStatus.NEEDS_ACTION)

    assert not sync.sync_status(event, event.get_guest(GUEST))
    assert not [call for call in backend.calls if call[0] == 'set_owner_status']


def test_owner_entry_is_never_overwritten(sync, backend, slot):
    start, end = slot
    event = backend.add(SOURCE, 'Planning', start, end, guests=[GuestEntry(GUEST, GuestStatus.NO)])

    assert not sync.sync_status(event, event.get_guest(GUEST))
    assert backend.events[event.event_id].owner_status is GuestStatus.OWNER


def test_decided_owner_is_kept_and_counted_as_conflict(sync, backend, slot, notifier):
    event = invited_event(backend, slot, GuestStatus.NO, GuestStatus.YES)

    assert not sync.sync_status(event, event.get_guest(GUEST))
    assert backend.events[event.event_id].owner_status is GuestStatus.NO
    assert sync.stats.conflicts == 1
    assert notifier.messages == []


def test_conflict_notification_when_enabled(backend, config, notifier, slot):
    sync = CalendarSync(backend, replace(config, notify_on_conflict=True), notifier)
    event = invited_event(backend, slot, GuestStatus.MAYBE, GuestStatus.YES)

    sync.sync_status(event, event.get_guest(GUEST))

    assert len(notifier.messages) == 1
    assert notifier.messages[0].startswith('Failed to sync the status of the event: Planning')


def test_matching_status_is_noop(sync, backend, slot):
    event = invited_event(backend, slot, GuestStatus.YES, GuestStatus.YES)

    assert not sync.sync_status(event, event.get_guest(GUEST))
    assert sync.stats.conflicts == 0


def test_legacy_policy_never_writes(backend, config, notifier, slot):
    sync = CalendarSync(
        backend, replace(config, status_conflict_policy=StatusConflictPolicy.LEGACY_ANY_DIFFERENCE), notifier
    )
    event = invited_event(backend, slot, GuestStatus.NEEDS_ACTION, GuestStatus.YES)

    assert not sync.sync_status(event, event.get_guest(GUEST))
    assert backend.events[event.event_id].owner_status is GuestStatus.NEEDS_ACTION
    assert sync.stats.conflicts == 1


def test_failed_status_update_is_not_fatal(sync, backend, slot):
    backend.failing.add('set_owner_status')
    event = invited_event(backend, slot, GuestStatus.NEEDS_ACTION, GuestStatus.YES)

    assert sync.reconcile_event(event, SOURCE, GUEST) == []
    assert sync.stats.failures == 1
    assert sync.stats.statuses_updated == 0
