from __future__ import annotations

import sqlite3
from datetime import timedelta

import pytest

from helpdesk.core.errors import AlreadyResolvedError, NotFoundError, StoreError, ValidationError
from helpdesk.database.base import utc_now
from helpdesk.database.sqlite_store import SQLiteStore
from helpdesk.models.schemas import RequestStatus
from helpdesk.services.help_request import HelpRequestService


def assert_consistent(request):
    if request.status == RequestStatus.PENDING:
        assert request.resolved_at is None
        assert request.supervisor_answer is None
    else:
        assert request.resolved_at is not None
    if request.status == RequestStatus.RESOLVED:
        assert request.supervisor_answer is not None


async def test_create_starts_pending_with_one_hour_timeout(help_service):
    request = await help_service.create("room-1", "caller-1", "Do you do balayage?")

    assert request.status == RequestStatus.PENDING
    assert request.timeout_at - request.created_at == timedelta(hours=1)
    assert_consistent(request)
    assert help_service.get(request.id) == request


async def test_create_uses_configured_timeout(store):
    service = HelpRequestService(store, timeout=timedelta(minutes=5))

    request = await service.create("room-1", "caller-1", "Do you do balayage?")

    assert request.timeout_at - request.created_at == timedelta(minutes=5)


async def test_create_keeps_metadata(help_service):
    request = await help_service.create("room-1", "caller-1", "Gift cards?", metadata={"channel": "phone"})

    assert help_service.get(request.id).metadata == {"channel": "phone"}


@pytest.mark.parametrize("room,participant,question", [
    ("", "caller-1", "Gift cards?"),
    ("room-1", "  ", "Gift cards?"),
    ("room-1", "caller-1", ""),
])
async def test_create_requires_inputs(help_service, room, participant, question):
    with pytest.raises(ValidationError):
        await help_service.create(room, participant, question)
    assert help_service.list_all() == []


async def test_resolve_sets_answer_and_timestamp(help_service):
    request = await help_service.create("room-1", "caller-1", "Do you do perms?")

    resolved = await help_service.resolve(request.id, "Yes, perms start at $90.")

    assert resolved.status == RequestStatus.RESOLVED
    assert resolved.supervisor_answer == "Yes, perms start at $90."
    assert resolved.resolved_at >= request.created_at
    assert_consistent(resolved)


async def test_second_resolve_is_rejected_and_changes_nothing(help_service):
    request = await help_service.create("room-1", "caller-1", "Do you do perms?")
    first = await help_service.resolve(request.id, "Yes.")

    with pytest.raises(AlreadyResolvedError):
        await help_service.resolve(request.id, "No.")

    current = help_service.get(request.id)
    assert current.supervisor_answer == "Yes."
    assert current.resolved_at == first.resolved_at


async def test_resolve_unknown_request(help_service):
    with pytest.raises(NotFoundError):
        await help_service.resolve("missing", "Yes.")


async def test_resolve_requires_answer(help_service):
    request = await help_service.create("room-1", "caller-1", "Do you do perms?")

    with pytest.raises(ValidationError):
        await help_service.resolve(request.id, "  ")
    assert help_service.get(request.id).status == RequestStatus.PENDING


async def test_mark_unresolved_with_note(help_service):
    request = await help_service.create("room-1", "caller-1", "Do you sell wigs?")

    closed = await help_service.mark_unresolved(request.id, "Owner is checking with suppliers")

    assert closed.status == RequestStatus.UNRESOLVED
    assert closed.supervisor_answer == "Owner is checking with suppliers"
    assert_consistent(closed)
    with pytest.raises(AlreadyResolvedError):
        await help_service.resolve(request.id, "Yes.")


async def test_sweep_expires_overdue_requests_once(help_service):
    first = await help_service.create("room-1", "caller-1", "Do you do perms?")
    second = await help_service.create("room-2", "caller-2", "Do you sell wigs?")
    later = utc_now() + timedelta(hours=2)

    assert await help_service.sweep_timeouts(later) == 2
    assert await help_service.sweep_timeouts(later) == 0

    for request_id in (first.id, second.id):
        swept = help_service.get(request_id)
        assert swept.status == RequestStatus.UNRESOLVED
        assert swept.resolved_at == later
        assert swept.supervisor_answer is None
        assert_consistent(swept)


async def test_sweep_leaves_requests_that_are_not_due(help_service):
    request = await help_service.create("room-1", "caller-1", "Do you do perms?")

    assert await help_service.sweep_timeouts(utc_now() + timedelta(minutes=30)) == 0
    assert help_service.get(request.id).status == RequestStatus.PENDING


async def test_resolve_after_sweep_is_rejected(help_service):
    request = await help_service.create("room-1", "caller-1", "Do you do perms?")
    await help_service.sweep_timeouts(utc_now() + timedelta(hours=2))

    with pytest.raises(AlreadyResolvedError):
        await help_service.resolve(request.id, "Yes.")
    assert help_service.get(request.id).status == RequestStatus.UNRESOLVED


async def test_sweep_after_resolve_changes_nothing(help_service):
    request = await help_service.create("room-1", "caller-1", "Do you do perms?")
    resolved = await help_service.resolve(request.id, "Yes.")

    assert await help_service.sweep_timeouts(utc_now() + timedelta(hours=2)) == 0
    assert help_service.get(request.id) == resolved


class SweepingStore(SQLiteStore):
    """Lets a timeout sweep land between the pending check and the update"""

    def close_help_request(self, request_id, status, resolved_at, supervisor_answer=None):
        self.expire_help_requests(utc_now() + timedelta(hours=2))
        return super().close_help_request(request_id, status, resolved_at, supervisor_answer)


async def test_resolve_losing_race_to_sweep(tmp_path):
    service = HelpRequestService(SweepingStore(db_path=str(tmp_path / "race.db")))
    request = await service.create("room-1", "caller-1", "Do you do perms?")

    with pytest.raises(AlreadyResolvedError) as exc_info:
        await service.resolve(request.id, "Yes.")

    assert exc_info.value.status == RequestStatus.UNRESOLVED.value
    current = service.get(request.id)
    assert current.status == RequestStatus.UNRESOLVED
    assert current.supervisor_answer is None


async def test_list_pending_newest_first(help_service):
    older = await help_service.create("room-1", "caller-1", "Do you do perms?")
    done = await help_service.create("room-2", "caller-2", "Do you sell wigs?")
    newer = await help_service.create("room-3", "caller-3", "Is there parking?")
    await help_service.resolve(done.id, "No.")

    assert [r.id for r in help_service.list_pending()] == [newer.id, older.id]


async def test_list_all_limit_and_status_filter(help_service):
    ids = [
        (await help_service.create("room-1", "caller-1", f"Question {i}")).id
        for i in range(3)
    ]
    await help_service.resolve(ids[0], "Answer")

    assert [r.id for r in help_service.list_all()] == list(reversed(ids))
    assert [r.id for r in help_service.list_all(limit=2)] == [ids[2], ids[1]]
    assert [r.id for r in help_service.list_all(status=RequestStatus.RESOLVED)] == [ids[0]]


async def test_list_all_default_cap(store):
    service = HelpRequestService(store, list_limit=2)
    for i in range(3):
        await service.create("room-1", "caller-1", f"Question {i}")

    assert len(service.list_all()) == 2


def test_store_failure_surfaces_as_store_error(help_service, store):
    conn = sqlite3.connect(store.db_path)
    conn.execute("DROP TABLE help_requests")
    conn.commit()
    conn.close()

    with pytest.raises(StoreError):
        help_service.list_pending()
