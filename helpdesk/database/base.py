from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from helpdesk.models.schemas import HelpRequest, KnowledgeEntry, RequestStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HelpDeskStore(ABC):
    """
    Typed repository over the two record kinds.

    Every transition out of pending is a conditional update guarded by
    status = 'pending'. A conditional update that loses a race affects zero
    rows and reports that through its return value, never as an error.
    All backend failures are raised as StoreError.
    """

    # Help requests

    @abstractmethod
    def insert_help_request(
        self,
        room_name: str,
        participant_identity: str,
        question: str,
        created_at: datetime,
        timeout_at: datetime,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> HelpRequest:
        ...

    @abstractmethod
    def get_help_request(self, request_id: str) -> Optional[HelpRequest]:
        ...

    @abstractmethod
    def close_help_request(
        self,
        request_id: str,
        status: RequestStatus,
        resolved_at: datetime,
        supervisor_answer: Optional[str] = None,
    ) -> Optional[HelpRequest]:
        """Move one pending request to a terminal status. None if no row was pending."""

    @abstractmethod
    def expire_help_requests(self, now: datetime) -> List[HelpRequest]:
        """Mark every pending request with timeout_at < now unresolved. Returns the changed rows."""

    @abstractmethod
    def list_help_requests(
        self,
        status: Optional[RequestStatus] = None,
        limit: Optional[int] = None,
    ) -> List[HelpRequest]:
        """Newest first."""

    # Knowledge base

    @abstractmethod
    def insert_knowledge_entry(
        self,
        question: str,
        answer: str,
        source_request_id: Optional[str],
        created_at: datetime,
    ) -> KnowledgeEntry:
        ...

    @abstractmethod
    def get_knowledge_entry(self, entry_id: str) -> Optional[KnowledgeEntry]:
        ...

    @abstractmethod
    def list_knowledge_entries(self, limit: Optional[int] = None) -> List[KnowledgeEntry]:
        """Highest usage_count first, then most recently updated."""

    @abstractmethod
    def increment_knowledge_usage(self, entry_id: str, used_at: datetime) -> Optional[KnowledgeEntry]:
        """Atomic usage_count + 1. None if the entry does not exist."""
