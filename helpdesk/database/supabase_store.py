import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from helpdesk.core.errors import StoreError
from helpdesk.core.logging import get_plain_logger
from helpdesk.database.base import HelpDeskStore
from helpdesk.models.schemas import HelpRequest, KnowledgeEntry, RequestStatus

logger = get_plain_logger(__name__)

HELP_REQUESTS = "help_requests"
KNOWLEDGE_BASE = "knowledge_base"


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class SupabaseStore(HelpDeskStore):
    """
    Managed Postgres backend through the Supabase client

    Conditional transitions are filtered PATCH calls that return the updated
    representation; an empty result means no row was pending. The usage
    counter goes through the increment_knowledge_usage RPC so concurrent
    increments are not lost (see supabase_schema.sql).
    """

    def __init__(self, client: Client):
        self.client = client

    @classmethod
    def from_credentials(cls, url: str, key: str) -> "SupabaseStore":
        logger.info(f"Connecting to Supabase at {url}")
        return cls(create_client(url, key))

    @contextmanager
    def _call(self, action: str):
        try:
            yield
        except (APIError, httpx.HTTPError) as e:
            raise StoreError(f"Supabase {action} failed: {e}") from e

    # Help requests

    def insert_help_request(
        self,
        room_name: str,
        participant_identity: str,
        question: str,
        created_at: datetime,
        timeout_at: datetime,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> HelpRequest:
        row = {
            "room_name": room_name,
            "participant_identity": participant_identity,
            "question": question,
            "status": RequestStatus.PENDING.value,
            "created_at": _iso(created_at),
            "timeout_at": _iso(timeout_at),
        }
        if metadata:
            row["metadata"] = metadata

        with self._call("insert help request"):
            response = self.client.table(HELP_REQUESTS).insert(row).execute()
        if not response.data:
            raise StoreError("Supabase insert help request returned no row")
        return HelpRequest(**response.data[0])

    def get_help_request(self, request_id: str) -> Optional[HelpRequest]:
        if not _is_uuid(request_id):
            return None
        with self._call("get help request"):
            response = (
                self.client.table(HELP_REQUESTS)
                .select("*")
                .eq("id", request_id)
                .limit(1)
                .execute()
            )
        return HelpRequest(**response.data[0]) if response.data else None

    def close_help_request(
        self,
        request_id: str,
        status: RequestStatus,
        resolved_at: datetime,
        supervisor_answer: Optional[str] = None,
    ) -> Optional[HelpRequest]:
        if not _is_uuid(request_id):
            return None
        with self._call("close help request"):
            response = (
                self.client.table(HELP_REQUESTS)
                .update({
                    "status": RequestStatus(status).value,
                    "supervisor_answer": supervisor_answer,
                    "resolved_at": _iso(resolved_at),
                })
                .eq("id", request_id)
                .eq("status", RequestStatus.PENDING.value)
                .execute()
            )
        return HelpRequest(**response.data[0]) if response.data else None

    def expire_help_requests(self, now: datetime) -> List[HelpRequest]:
        with self._call("expire help requests"):
            response = (
                self.client.table(HELP_REQUESTS)
                .update({
                    "status": RequestStatus.UNRESOLVED.value,
                    "resolved_at": _iso(now),
                })
                .eq("status", RequestStatus.PENDING.value)
                .lt("timeout_at", _iso(now))
                .execute()
            )
        return [HelpRequest(**r) for r in response.data or []]

    def list_help_requests(
        self,
        status: Optional[RequestStatus] = None,
        limit: Optional[int] = None,
    ) -> List[HelpRequest]:
        query = self.client.table(HELP_REQUESTS).select("*")
        if status is not None:
            query = query.eq("status", RequestStatus(status).value)
        query = query.order("created_at", desc=True)
        if limit is not None:
            query = query.limit(limit)

        with self._call("list help requests"):
            response = query.execute()
        return [HelpRequest(**r) for r in response.data or []]

    # Knowledge base

    def insert_knowledge_entry(
        self,
        question: str,
        answer: str,
        source_request_id: Optional[str],
        created_at: datetime,
    ) -> KnowledgeEntry:
        row = {
            "question": question,
            "answer": answer,
            "source_request_id": source_request_id,
            "usage_count": 0,
            "created_at": _iso(created_at),
            "updated_at": _iso(created_at),
        }
        with self._call("insert knowledge entry"):
            response = self.client.table(KNOWLEDGE_BASE).insert(row).execute()
        if not response.data:
            raise StoreError("Supabase insert knowledge entry returned no row")
        return KnowledgeEntry(**response.data[0])

    def get_knowledge_entry(self, entry_id: str) -> Optional[KnowledgeEntry]:
        if not _is_uuid(entry_id):
            return None
        with self._call("get knowledge entry"):
            response = (
                self.client.table(KNOWLEDGE_BASE)
                .select("*")
                .eq("id", entry_id)
                .limit(1)
                .execute()
            )
        return KnowledgeEntry(**response.data[0]) if response.data else None

    def list_knowledge_entries(self, limit: Optional[int] = None) -> List[KnowledgeEntry]:
        query = (
            self.client.table(KNOWLEDGE_BASE)
            .select("*")
            .order("usage_count", desc=True)
            .order("updated_at", desc=True)
        )
        if limit is not None:
            query = query.limit(limit)

        with self._call("list knowledge entries"):
            response = query.execute()
        return [KnowledgeEntry(**r) for r in response.data or []]

    def increment_knowledge_usage(self, entry_id: str, used_at: datetime) -> Optional[KnowledgeEntry]:
        # used_at is stamped server side by the RPC
        if not _is_uuid(entry_id):
            return None
        with self._call("increment knowledge usage"):
            response = self.client.rpc("increment_knowledge_usage", {"kb_id": entry_id}).execute()
        rows = response.data or []
        if isinstance(rows, dict):
            rows = [rows]
        return KnowledgeEntry(**rows[0]) if rows else None
