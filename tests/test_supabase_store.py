from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest
from postgrest.exceptions import APIError

from helpdesk.core.errors import StoreError
from helpdesk.database.base import utc_now
import helpdesk.database.supabase_store as supabase_store_module
from helpdesk.database.supabase_store import SupabaseStore
from helpdesk.models.schemas import Answered, RequestStatus, SessionContext
from helpdesk.services import EscalationCoordinator, HelpRequestService, KnowledgeBaseService

TIMESTAMP_COLUMNS = {"created_at", "updated_at", "resolved_at", "timeout_at", "last_used_at"}


def _sort_key(column, value):
    if column in TIMESTAMP_COLUMNS and isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


class FakeQuery:
    """Just enough of the postgrest query builder, applied to in-memory rows"""

    def __init__(self, db, table):
        self._db = db
        self._table = table
        self._action = "select"
        self._payload = None
        self._filters = []
        self._orders = []
        self._limit = None

    def select(self, *_args, **_kwargs):
        self._action = "select"
        return self

    def insert(self, row):
        self._action = "insert"
        self._payload = row
        return self

    def update(self, values):
        self._action = "update"
        self._payload = values
        return self

    def eq(self, column, value):
        self._filters.append(lambda r: r.get(column) == value)
        return self

    def lt(self, column, value):
        self._filters.append(
            lambda r: r.get(column) is not None
            and _sort_key(column, r[column]) < _sort_key(column, value)
        )
        return self

    def order(self, column, desc=False):
        self._orders.append((column, desc))
        return self

    def limit(self, count):
        self._limit = count
        return self

    def execute(self):
        if self._db.fail:
            raise APIError({"message": "service unavailable", "code": "503", "hint": None, "details": None})

        rows = self._db.tables.setdefault(self._table, [])
        if self._action == "insert":
            row = {"id": str(uuid.uuid4()), "metadata": None, **self._payload}
            rows.append(row)
            return SimpleNamespace(data=[dict(row)])

        matched = [r for r in rows if all(f(r) for f in self._filters)]
        if self._action == "update":
            for r in matched:
                r.update(self._payload)
            return SimpleNamespace(data=[dict(r) for r in matched])

        for column, desc in reversed(self._orders):
            matched.sort(key=lambda r: _sort_key(column, r[column]), reverse=desc)
        if self._limit is not None:
            matched = matched[:self._limit]
        return SimpleNamespace(data=[dict(r) for r in matched])


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.fail = False

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        assert name == "increment_knowledge_usage"

        def execute():
            if self.fail:
                raise APIError({"message": "service unavailable", "code": "503", "hint": None, "details": None})
            now = utc_now().isoformat()
            updated = []
            for row in self.tables.get("knowledge_base", []):
                if row["id"] == params["kb_id"]:
                    row["usage_count"] += 1
                    row["last_used_at"] = now
                    row["updated_at"] = max(row["updated_at"], now, key=datetime.fromisoformat)
                    updated.append(dict(row))
            return SimpleNamespace(data=updated)

        return SimpleNamespace(execute=execute)


@pytest.fixture
def fake_client() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def supabase_store(fake_client) -> SupabaseStore:
    return SupabaseStore(fake_client)


def _insert_request(store, minutes_ago=0):
    created = utc_now() - timedelta(minutes=minutes_ago)
    return store.insert_help_request("room-1", "caller-1", "Do you do perms?", created, created + timedelta(hours=1))


def test_insert_and_get_help_request(supabase_store):
    request = _insert_request(supabase_store)

    assert request.status == RequestStatus.PENDING
    assert supabase_store.get_help_request(request.id) == request


def test_get_with_malformed_id_returns_none(supabase_store):
    assert supabase_store.get_help_request("not-a-uuid") is None
    assert supabase_store.get_knowledge_entry("not-a-uuid") is None


def test_close_is_conditional_on_pending(supabase_store):
    request = _insert_request(supabase_store)

    closed = supabase_store.close_help_request(request.id, RequestStatus.RESOLVED, utc_now(), "Yes.")
    again = supabase_store.close_help_request(request.id, RequestStatus.RESOLVED, utc_now(), "No.")

    assert closed.status == RequestStatus.RESOLVED
    assert again is None
    assert supabase_store.get_help_request(request.id).supervisor_answer == "Yes."


def test_expire_only_touches_overdue_pending(supabase_store):
    overdue = _insert_request(supabase_store, minutes_ago=90)
    fresh = _insert_request(supabase_store)
    resolved = _insert_request(supabase_store, minutes_ago=120)
    supabase_store.close_help_request(resolved.id, RequestStatus.RESOLVED, utc_now(), "Yes.")

    expired = supabase_store.expire_help_requests(utc_now())

    assert [r.id for r in expired] == [overdue.id]
    assert supabase_store.get_help_request(fresh.id).status == RequestStatus.PENDING
    assert supabase_store.get_help_request(resolved.id).status == RequestStatus.RESOLVED
    assert supabase_store.expire_help_requests(utc_now()) == []


def test_list_help_requests_newest_first(supabase_store):
    older = _insert_request(supabase_store, minutes_ago=10)
    newer = _insert_request(supabase_store)

    assert [r.id for r in supabase_store.list_help_requests()] == [newer.id, older.id]
    assert [r.id for r in supabase_store.list_help_requests(limit=1)] == [newer.id]
    assert supabase_store.list_help_requests(status=RequestStatus.RESOLVED) == []


def test_knowledge_usage_goes_through_rpc(supabase_store):
    entry = supabase_store.insert_knowledge_entry("parking", "Behind the salon.", None, utc_now())

    updated = supabase_store.increment_knowledge_usage(entry.id, utc_now())

    assert updated.usage_count == 1
    assert supabase_store.increment_knowledge_usage(str(uuid.uuid4()), utc_now()) is None


def test_list_knowledge_entries_by_usage(supabase_store):
    low = supabase_store.insert_knowledge_entry("parking", "Behind the salon.", None, utc_now())
    high = supabase_store.insert_knowledge_entry("student discount", "10% off.", None, utc_now())
    supabase_store.increment_knowledge_usage(high.id, utc_now())

    assert [e.id for e in supabase_store.list_knowledge_entries()] == [high.id, low.id]


def test_api_errors_become_store_errors(supabase_store, fake_client):
    fake_client.fail = True

    with pytest.raises(StoreError):
        supabase_store.list_help_requests()
    with pytest.raises(StoreError):
        supabase_store.increment_knowledge_usage(str(uuid.uuid4()), utc_now())


async def test_escalation_round_trip_on_supabase(supabase_store):
    coordinator = EscalationCoordinator(
        KnowledgeBaseService(supabase_store),
        HelpRequestService(supabase_store),
    )
    session = SessionContext(room_name="room-1", participant_identity="caller-1")

    escalated = await coordinator.escalate("Do you do balayage?", session)
    await coordinator.submit_resolution(escalated.request.id, "Yes, from $180.")
    answered = await coordinator.escalate("Do you do balayage?", session)

    assert isinstance(answered, Answered)
    assert answered.entry.source_request_id == escalated.request.id
    assert answered.entry.usage_count == 1


def test_usage_rpc_never_moves_updated_at_backwards():
    schema = (Path(supabase_store_module.__file__).parent / "supabase_schema.sql").read_text()
    function = schema.split("create or replace function increment_knowledge_usage", 1)[1]

    assert "updated_at = greatest(updated_at, now())" in function
