import asyncio
from typing import FrozenSet, List

from helpdesk.core.errors import HelpDeskError, ValidationError
from helpdesk.core.logging import get_plain_logger
from helpdesk.models.schemas import Answered, EscalationOutcome, KnowledgeEntry, SessionContext

logger = get_plain_logger(__name__)

ESCALATED_REPLY = (
    "HELP REQUESTED. Tell the customer: 'Let me check with my supervisor and "
    "get back to you shortly.' Do not make up an answer."
)
FALLBACK_REPLY = (
    "ERROR: System issue. Tell customer: 'I apologize, I'm having a technical issue. "
    "Please call us back at 555-123-4567 and we'll help you right away.'"
)
MISSING_QUESTION_REPLY = "ERROR: Ask the customer to repeat their question, then try again."


def reply_for_outcome(outcome: EscalationOutcome) -> str:
    """Instruction handed back to the LLM for a lookup result"""
    if isinstance(outcome, Answered):
        return (
            f"ANSWER FOUND: {outcome.answer}\n"
            "Rephrase it naturally; do not read it word for word or mention a knowledge base."
        )
    return ESCALATED_REPLY


async def answer_caller(coordinator, question: str, session: SessionContext) -> str:
    """
    Run one caller question through the coordinator

    Never raises for help desk failures: the voice session gets a spoken
    fallback instead.
    """
    try:
        outcome = await coordinator.escalate(question, session)
    except ValidationError as e:
        logger.warning(f"Rejected caller question: {e}")
        return MISSING_QUESTION_REPLY
    except HelpDeskError as e:
        logger.error(f"Error handling caller question in room {session.room_name}: {e}")
        return FALLBACK_REPLY

    if isinstance(outcome, Answered):
        logger.info(f"✅ KB answer for {session.participant_identity}")
    else:
        logger.info(f"📞 Escalated as request {outcome.request.id}")
    return reply_for_outcome(outcome)


KNOWLEDGE_HEADER = "## KNOWLEDGE BASE (Use these verified answers when relevant):"


def knowledge_instructions(entries: List[KnowledgeEntry]) -> str:
    """Numbered Q/A block appended to the agent prompt, empty without entries"""
    if not entries:
        return ""
    lines = [f'{i}. Q: "{e.question}" -> A: "{e.answer}"' for i, e in enumerate(entries, 1)]
    return "\n\n" + KNOWLEDGE_HEADER + "\n\n" + "\n".join(lines) + "\n"


async def refresh_instructions(agent, knowledge_base, base_instructions: str, known_ids: FrozenSet[str]) -> FrozenSet[str]:
    """
    Re-read the knowledge base and update the live agent prompt when entries
    were added or removed

    Returns:
        Entry ids now reflected in the prompt
    """
    entries = await asyncio.to_thread(knowledge_base.list_all)
    ids = frozenset(e.id for e in entries)
    if ids != known_ids:
        logger.info(f"🔄 Knowledge base updated: {len(known_ids)} → {len(ids)} entries")
        await agent.update_instructions(base_instructions + knowledge_instructions(entries))
    return ids
