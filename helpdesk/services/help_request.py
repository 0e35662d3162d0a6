import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from helpdesk.core.errors import AlreadyResolvedError, NotFoundError, require_text
from helpdesk.core.logging import get_plain_logger
from helpdesk.database.base import HelpDeskStore, utc_now
from helpdesk.models.schemas import HelpRequest, RequestStatus

logger = get_plain_logger(__name__)

DEFAULT_TIMEOUT = timedelta(hours=1)
DEFAULT_LIST_LIMIT = 100


class HelpRequestService:
    """
    Manages help requests from AI to human supervisor

    pending -> resolved | unresolved, nothing leaves a terminal state.
    Every transition is a conditional update on status = pending, so a
    supervisor resolving and the timeout sweep racing on the same request
    end with exactly one winner.
    """

    def __init__(
        self,
        store: HelpDeskStore,
        timeout: timedelta = DEFAULT_TIMEOUT,
        list_limit: int = DEFAULT_LIST_LIMIT,
    ):
        self.store = store
        self.timeout = timeout
        self.list_limit = list_limit

    async def create(
        self,
        room_name: str,
        participant_identity: str,
        question: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> HelpRequest:
        """
        Create new pending help request

        Returns:
            The persisted request, timeout_at = created_at + timeout window
        """
        room_name = require_text(room_name, "room_name")
        participant_identity = require_text(participant_identity, "participant_identity")
        question = require_text(question, "question")

        now = utc_now()
        request = await asyncio.to_thread(
            self.store.insert_help_request,
            room_name=room_name,
            participant_identity=participant_identity,
            question=question,
            created_at=now,
            timeout_at=now + self.timeout,
            metadata=metadata,
        )
        logger.info(f"📝 Created help request {request.id}: {question[:50]}")

        self._notify_supervisor(request)
        return request

    def _notify_supervisor(self, request: HelpRequest):
        """
        Simulate notifying supervisor (console log)
        In production: send SMS, push notification, or webhook
        """
        message = f"""
        🔔 NEW HELP REQUEST {request.id}
        Hey, I need help answering: "{request.question}"
        Room: {request.room_name}
        Participant: {request.participant_identity}
        Expires: {request.timeout_at.strftime('%I:%M %p')} UTC

        → View in supervisor dashboard to respond
        """
        logger.warning(message)

    async def resolve(self, request_id: str, answer: str) -> HelpRequest:
        """
        Supervisor provides answer to a pending help request

        Raises:
            NotFoundError: unknown request_id
            AlreadyResolvedError: the request already left pending, including
                when the timeout sweep won a race against this call
        """
        answer = require_text(answer, "answer")
        request = await asyncio.to_thread(self._close, request_id, RequestStatus.RESOLVED, answer)
        logger.info(f"✅ Resolved request {request_id}")
        return request

    async def mark_unresolved(self, request_id: str, note: Optional[str] = None) -> HelpRequest:
        """Supervisor gives up on a pending request, optionally leaving a note"""
        note = note.strip() if note and note.strip() else None
        request = await asyncio.to_thread(self._close, request_id, RequestStatus.UNRESOLVED, note)
        logger.info(f"⚠️ Marked request {request_id} unresolved")
        return request

    def _close(self, request_id: str, status: RequestStatus, answer: Optional[str]) -> HelpRequest:
        current = self.store.get_help_request(request_id)
        if current is None:
            raise NotFoundError("Request", request_id)
        if not current.is_pending:
            raise AlreadyResolvedError(request_id, current.status.value)

        closed = self.store.close_help_request(
            request_id,
            status=status,
            resolved_at=utc_now(),
            supervisor_answer=answer,
        )
        if closed is None:
            # Lost the race to another transition
            latest = self.store.get_help_request(request_id)
            if latest is None:
                raise NotFoundError("Request", request_id)
            raise AlreadyResolvedError(request_id, latest.status.value)
        return closed

    async def sweep_timeouts(self, now: Optional[datetime] = None) -> int:
        """
        Mark overdue pending requests as unresolved

        Meant to be run periodically (cron, maintenance endpoint or the
        app's sweeper loop). Requests already terminal are untouched, so
        repeating a sweep with the same `now` changes nothing.

        Returns:
            Number of requests transitioned by this call
        """
        expired = await asyncio.to_thread(self.store.expire_help_requests, now or utc_now())
        if expired:
            logger.warning(f"⏰ Marked {len(expired)} requests as unresolved (timeout)")
        return len(expired)

    def get(self, request_id: str) -> Optional[HelpRequest]:
        return self.store.get_help_request(request_id)

    def list_pending(self) -> List[HelpRequest]:
        """Get all pending help requests for admin UI, newest first"""
        return self.store.list_help_requests(status=RequestStatus.PENDING)

    def list_all(
        self,
        limit: Optional[int] = None,
        status: Optional[RequestStatus] = None,
    ) -> List[HelpRequest]:
        """Most recent help requests of any status, newest first"""
        return self.store.list_help_requests(status=status, limit=limit or self.list_limit)
