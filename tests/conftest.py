from __future__ import annotations

import pytest

from helpdesk.database.sqlite_store import SQLiteStore
from helpdesk.database.base import utc_now
from helpdesk.models.schemas import SessionContext
from helpdesk.services import EscalationCoordinator, HelpRequestService, KnowledgeBaseService


@pytest.fixture
def store(tmp_path) -> SQLiteStore:
    return SQLiteStore(db_path=str(tmp_path / "helpdesk.db"))


@pytest.fixture
def kb_service(store) -> KnowledgeBaseService:
    return KnowledgeBaseService(store)


@pytest.fixture
def help_service(store) -> HelpRequestService:
    return HelpRequestService(store)


@pytest.fixture
def coordinator(kb_service, help_service) -> EscalationCoordinator:
    return EscalationCoordinator(kb_service, help_service)


@pytest.fixture
def session() -> SessionContext:
    return SessionContext(room_name="salon-room-1", participant_identity="caller-555-0100")


@pytest.fixture
def seed_entry(store):
    """Insert a knowledge entry with a given usage count, bypassing the service"""

    def _seed(question: str, answer: str, usage_count: int = 0):
        entry = store.insert_knowledge_entry(question, answer, None, utc_now())
        for _ in range(usage_count):
            entry = store.increment_knowledge_usage(entry.id, utc_now())
        return entry

    return _seed
