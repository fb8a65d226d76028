from dataclasses import replace
from unittest.mock import patch

import pytest

from supportdesk.core.errors import AttachmentValidationError
from supportdesk.models.attachment import Attachment, AttachmentState
from supportdesk.services.attachment_reaper import OrphanReaper, start_attachment_reaper_thread
from supportdesk.services.attachment_repository import AttachmentParent


@pytest.fixture
def reaper(repository, store, config, clock, sleeps):
    return OrphanReaper(repository, store, config, clock=clock, sleep=sleeps.append)


@pytest.fixture
def parent(seed):
    return AttachmentParent(ticket_id=seed["ticket_id"])


@pytest.fixture
def pending(service, parent, seed, store):
    def _pending(name="orphan.pdf", uploaded=False):
        slot = service.issue_upload_url(
            parent,
            file_name=name,
            content_type="application/pdf",
            file_size=1024,
            uploaded_by=seed["requester_id"],
        )
        if uploaded:
            store.objects[slot.record.object_key] = 1024
        return slot.record

    return _pending


def ids(session):
    return {row.id for row in session.query(Attachment).all()}


def test_reaps_pending_older_than_max_age(reaper, pending, clock, store, session):
    record = pending(uploaded=True)
    clock.advance(seconds=3600 + 1)

    result = reaper.run_once()

    assert (result.scanned, result.reaped, result.failed) == (1, 1, 0)
    assert ids(session) == set()
    assert store.calls_of("delete") == [("delete", "desk-attachments", record.object_key)]
    assert store.objects == {}


def test_keeps_pending_younger_than_max_age(reaper, pending, clock, store, session):
    record = pending()
    clock.advance(seconds=3600 - 1)

    result = reaper.run_once()

    assert result.scanned == 0
    assert ids(session) == {record.id}
    assert store.calls_of("delete") == []


def test_mixed_ages(reaper, pending, clock, session):
    old = pending("old.pdf")
    clock.advance(seconds=1800)
    young = pending("young.pdf")
    clock.advance(seconds=1801)

    reaper.run_once()

    assert ids(session) == {young.id}
    assert old.id not in ids(session)


def test_never_uploaded_object_is_reaped(reaper, pending, clock, session):
    # client got a URL but never PUT: delete of a missing key succeeds
    pending(uploaded=False)
    clock.advance(hours=2)

    assert reaper.run_once().reaped == 1
    assert ids(session) == set()


def test_terminal_records_are_left_alone(reaper, service, parent, pending, clock, store, session):
    active = pending("active.pdf", uploaded=True)
    service.confirm(parent, active.id)
    failed = pending("failed.pdf")
    with pytest.raises(AttachmentValidationError):
        service.confirm(parent, failed.id)
    clock.advance(days=3)

    result = reaper.run_once()

    assert result.scanned == 0
    assert ids(session) == {active.id, failed.id}
    assert store.calls_of("delete") == []


def test_delete_failure_keeps_record_for_next_run(reaper, pending, clock, store, session, sleeps):
    stuck = pending("stuck.pdf")
    clock.advance(seconds=1)
    fine = pending("fine.pdf")
    clock.advance(hours=2)
    store.delete_failures = 3  # exhausts attempts for the first record only

    result = reaper.run_once()

    assert (result.scanned, result.reaped, result.failed) == (2, 1, 1)
    assert ids(session) == {stuck.id}
    assert sleeps == [0.25, 0.5]

    store.delete_failures = 0
    assert reaper.run_once().reaped == 1
    assert ids(session) == set()
    assert fine.id not in ids(session)


def test_record_confirmed_after_scan_is_kept(
    reaper, service, parent, pending, repository, clock, store, session, monkeypatch
):
    record = pending(uploaded=True)
    clock.advance(hours=2)
    scan = repository.list_pending_before

    def scan_then_confirm(cutoff):
        found = scan(cutoff)
        service.confirm(parent, record.id)
        return found

    monkeypatch.setattr(repository, "list_pending_before", scan_then_confirm)

    result = reaper.run_once()

    assert (result.scanned, result.reaped, result.skipped) == (1, 0, 1)
    assert session.get(Attachment, record.id).state == AttachmentState.ACTIVE.value
    assert record.object_key in store.objects
    assert store.calls_of("delete") == []


def test_confirm_during_object_delete_keeps_row(
    reaper, service, parent, pending, clock, store, session, monkeypatch
):
    record = pending(uploaded=True)
    clock.advance(hours=2)
    delete_object = store.delete

    def confirm_then_delete(bucket, key):
        service.confirm(parent, record.id)
        delete_object(bucket, key)

    monkeypatch.setattr(store, "delete", confirm_then_delete)

    result = reaper.run_once()

    assert (result.reaped, result.skipped) == (0, 1)
    row = session.get(Attachment, record.id)
    assert row is not None
    assert row.state == AttachmentState.ACTIVE.value


def test_delete_if_pending_leaves_confirmed_rows(repository, service, parent, pending, session):
    record = pending(uploaded=True)
    service.confirm(parent, record.id)

    assert repository.delete_if_pending(record.id) is False
    assert ids(session) == {record.id}

    other = pending("other.pdf")
    assert repository.delete_if_pending(other.id) is True
    assert ids(session) == {record.id}


def test_runs_are_idempotent(reaper, pending, clock):
    pending()
    clock.advance(hours=2)
    assert reaper.run_once().reaped == 1
    assert reaper.run_once().scanned == 0


def test_reaper_state_filter_uses_pending_only(repository, pending, clock):
    record = pending()
    clock.advance(hours=2)
    found = repository.list_pending_before(clock.now)
    assert [r.id for r in found] == [record.id]
    assert found[0].state is AttachmentState.PENDING


def test_disabled_reaper_does_not_start(config):
    assert start_attachment_reaper_thread(replace(config, reaper_enabled=False)) is None


def test_reaper_thread_runs_and_stops(config):
    with patch("supportdesk.services.attachment_reaper.reap_orphans_once") as run:
        stop = start_attachment_reaper_thread(config)
        try:
            assert stop is not None
            for _ in range(100):
                if run.called:
                    break
                stop.wait(0.01)
        finally:
            stop.set()
    run.assert_called_with(config)
