import asyncio
from typing import FrozenSet, List, Optional

from dotenv import load_dotenv
from livekit.agents import (
    Agent,
    AgentSession,
    JobContext,
    JobProcess,
    WorkerOptions,
    cli,
    inference,
    function_tool,
    RunContext,
)
from livekit.plugins import silero

from helpdesk.core.dependencies import get_escalation_coordinator, get_knowledge_base_service
from helpdesk.core.errors import HelpDeskError
from helpdesk.core.logging import get_plain_logger
from helpdesk.models.schemas import KnowledgeEntry, SessionContext
from helpdesk.services.replies import answer_caller, knowledge_instructions, refresh_instructions

logger = get_plain_logger(__name__)

load_dotenv()

KNOWLEDGE_REFRESH_SECONDS = 30

# Salon Business Context (System Prompt)

SALON_INSTRUCTIONS = """
## Identity

You are Jamie, a friendly and professional receptionist for Glamour Hair Salon.

## Business Information:

- Name: Glamour Hair Salon
- Address: 123 Main Street, Downtown
- Phone: (555) 123-4567
- Hours: Monday-Saturday 9 AM to 7 PM, Sunday 10 AM to 5 PM
- Services: Haircuts, coloring, highlights, perms, styling, extensions
- Average haircut price: $45. Average coloring service: $120
- We accept walk-ins but appointments are recommended
- Student discount: 10% off with valid ID

## CRITICAL INSTRUCTIONS - YOU MUST FOLLOW THESE:

1. If the question is answered by the business information above or the knowledge base below, answer directly.
2. For ANYTHING else, call lookup_or_escalate with the customer's exact question.
   - If it returns ANSWER FOUND, give that answer in your own words.
   - If it returns HELP REQUESTED, say the line it gives you. Do not guess.
   - If it returns ERROR, say the line it gives you.
3. Never make up prices, availability, stylists or policies.

## RESPONSE STYLE:

- Keep responses short and conversational
- No emojis, asterisks, or special formatting
- Sound natural like you're on a phone call

## GREETING:

When the call starts, say: "Hello! Thank you for calling Glamour Hair Salon. This is Jamie. How can I help you today?"
"""


class SalonAssistant(Agent):
    def __init__(self, knowledge: Optional[List[KnowledgeEntry]] = None) -> None:
        super().__init__(instructions=SALON_INSTRUCTIONS + knowledge_instructions(knowledge or []))
        logger.info(f"🔧 Agent initialized with {len(knowledge or [])} KB entries")

    @function_tool
    async def lookup_or_escalate(self, context: RunContext[SessionContext], question: str) -> str:
        """Look up an answer the salon has given before, or ask a human supervisor.

        Use this whenever the customer asks something not covered by your business information.

        Args:
            question: The customer's exact question

        Returns:
            Either the answer to pass on, or the line to tell the customer while a supervisor is asked.
        """
        logger.info(f"🔍 Looking up: {question}")
        return await answer_caller(get_escalation_coordinator(), question, context.userdata)


async def keep_knowledge_current(agent: SalonAssistant, known_ids: FrozenSet[str]):
    """Poll the knowledge base so answers promoted mid-call reach the prompt"""
    knowledge_base = get_knowledge_base_service()
    while True:
        await asyncio.sleep(KNOWLEDGE_REFRESH_SECONDS)
        try:
            known_ids = await refresh_instructions(agent, knowledge_base, SALON_INSTRUCTIONS, known_ids)
        except HelpDeskError as e:
            logger.warning(f"Knowledge base refresh failed: {e}")


def prewarm(proc: JobProcess):
    """Preload models before processing jobs"""
    proc.userdata["vad"] = silero.VAD.load()


async def entrypoint(ctx: JobContext):
    """Main LiveKit agent entry point for each incoming call"""

    # Logging setup
    ctx.log_context_fields = {
        "room": ctx.room.name,
    }

    # Load knowledge base at startup
    try:
        knowledge = await asyncio.to_thread(get_knowledge_base_service().list_all)
        logger.info(f"📚 Loaded {len(knowledge)} knowledge base entries")
    except HelpDeskError as e:
        logger.warning(f"Starting without knowledge base entries: {e}")
        knowledge = []

    await ctx.connect()
    participant = await ctx.wait_for_participant()
    logger.info(f"🎙️ Agent started for room: {ctx.room.name}, caller: {participant.identity}")

    # Per-call context, handed to tools through session userdata
    caller = SessionContext(
        room_name=ctx.room.name,
        participant_identity=participant.identity,
    )

    session = AgentSession[SessionContext](
        userdata=caller,
        # Speech-to-text
        stt=inference.STT(model="assemblyai/universal-streaming", language="en"),
        llm=inference.LLM(model="openai/gpt-4.1-mini"),
        tts=inference.TTS(
            model="cartesia/sonic-3", voice="9626c31c-bec5-4cca-baa8-f8ba9e84c8bc"
        ),

        # Voice Activity Detection
        vad=ctx.proc.userdata.get("vad") or silero.VAD.load(),
    )

    assistant = SalonAssistant(knowledge)
    await session.start(
        agent=assistant,
        room=ctx.room,
    )

    refresher = asyncio.create_task(
        keep_knowledge_current(assistant, frozenset(e.id for e in knowledge))
    )

    async def stop_refresher():
        refresher.cancel()

    ctx.add_shutdown_callback(stop_refresher)

    logger.info("✅ Agent connected and ready")


if __name__ == "__main__":
    cli.run_app(
        WorkerOptions(
            entrypoint_fnc=entrypoint,
            prewarm_fnc=prewarm
        )
    )
