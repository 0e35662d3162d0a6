from helpdesk.core.errors import HelpDeskError, NotFoundError, require_text
from helpdesk.core.logging import get_plain_logger
from helpdesk.models.schemas import (
    Answered,
    Escalated,
    EscalationOutcome,
    HelpRequest,
    ResolutionOutcome,
    SessionContext,
)
from helpdesk.services.help_request import HelpRequestService
from helpdesk.services.knowledge_base import KnowledgeBaseService

logger = get_plain_logger(__name__)


class EscalationCoordinator:
    """
    Glue between the knowledge base and the help request lifecycle

    Holds services, never records: callers pass ids and the current state
    is always re-read from the store.
    """

    def __init__(self, knowledge_base: KnowledgeBaseService, help_requests: HelpRequestService):
        self.knowledge_base = knowledge_base
        self.help_requests = help_requests

    async def escalate(self, question: str, session: SessionContext) -> EscalationOutcome:
        """
        Answer from the knowledge base, or raise a help request

        Not transactional: two callers asking the same new question at the
        same time may both create a request.
        """
        question = require_text(question, "question")

        entry = await self.knowledge_base.search(question)
        if entry is not None:
            try:
                entry = await self.knowledge_base.increment_usage(entry.id)
            except NotFoundError:
                # Removed after the search matched it
                logger.warning(f"KB entry {entry.id} vanished before use, escalating")
            else:
                logger.info(f"✅ Answered from KB {entry.id} (used {entry.usage_count}x)")
                return Answered(answer=entry.answer, entry=entry)

        request = await self.help_requests.create(
            room_name=session.room_name,
            participant_identity=session.participant_identity,
            question=question,
            metadata=session.metadata,
        )
        return Escalated(request=request)

    async def submit_resolution(
        self,
        request_id: str,
        answer: str,
        promote_to_knowledge: bool = True,
    ) -> ResolutionOutcome:
        """
        Supervisor answers a help request

        Resolution and promotion are separate writes. If promotion fails the
        request stays resolved and the failure is reported in
        promotion_error.
        """
        request = await self.help_requests.resolve(request_id, answer)
        outcome = ResolutionOutcome(request=request)

        if promote_to_knowledge:
            try:
                outcome.knowledge_entry = await self.knowledge_base.add(
                    request.question,
                    request.supervisor_answer,
                    source_request_id=request.id,
                )
            except HelpDeskError as e:
                logger.error(f"Request {request.id} resolved but KB promotion failed: {e}")
                outcome.promotion_error = str(e)

        self._follow_up_with_caller(request)
        return outcome

    def _follow_up_with_caller(self, request: HelpRequest):
        """
        Send answer back to the caller
        Simulated via console log (in production: LiveKit room message or SMS)
        """
        message = f"""
        📱 CALLER FOLLOW-UP (Request {request.id})
        To: {request.participant_identity} (Room: {request.room_name})
        Message: "Hi! I have an answer to your question: {request.question}"
        Answer: "{request.supervisor_answer}"
        """
        logger.info(message)
