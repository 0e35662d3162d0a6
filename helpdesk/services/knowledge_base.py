import asyncio
import string
from typing import Optional, List

from helpdesk.core.errors import NotFoundError, require_text, require_uuid
from helpdesk.core.logging import get_plain_logger
from helpdesk.database.base import HelpDeskStore, utc_now
from helpdesk.models.schemas import KnowledgeEntry

logger = get_plain_logger(__name__)

MIN_TERM_LENGTH = 4
MIN_KEYWORD_SCORE = 2


def extract_terms(text: str) -> List[str]:
    """
    Significant lower-cased words of a question

    Splits on whitespace, strips surrounding punctuation and keeps words
    longer than three characters.
    """
    words = (w.strip(string.punctuation) for w in text.lower().split())
    return [w for w in words if len(w) >= MIN_TERM_LENGTH]


def _terms_match(a: str, b: str) -> bool:
    return a in b or b in a


def keyword_score(query_terms: List[str], entry_terms: List[str]) -> int:
    """Number of query terms that overlap some entry term"""
    return sum(
        1 for term in query_terms
        if any(_terms_match(term, other) for other in entry_terms)
    )


class KnowledgeBaseService:
    """
    Knowledge base of supervisor-vetted answers

    search() is read-only. Usage is counted through increment_usage() only
    when the caller actually speaks the answer.
    """

    def __init__(self, store: HelpDeskStore):
        self.store = store

    async def search(self, question: str) -> Optional[KnowledgeEntry]:
        """
        Find an entry that answers the question

        Phase A: the query contains the stored question or vice versa
        (case-insensitive). Phase B: keyword overlap, accepted at a score of
        two, or one when the query has a single significant word.
        Candidates are visited in store order (usage_count desc) so the
        first hit at the best score wins.

        Returns:
            Matching entry, or None when the caller must escalate
        """
        query = require_text(question, "question")
        entries = await asyncio.to_thread(self.store.list_knowledge_entries)

        needle = query.lower()
        for entry in entries:
            stored = entry.question.strip().lower()
            if stored and (needle in stored or stored in needle):
                logger.info(f"✓ KB hit {entry.id}: '{entry.question}' (phrase)")
                return entry

        query_terms = extract_terms(query)
        if not query_terms:
            logger.info(f"✗ No KB match for: '{query}'")
            return None

        threshold = 1 if len(query_terms) == 1 else MIN_KEYWORD_SCORE
        best_match = None
        best_score = 0
        for entry in entries:
            score = keyword_score(query_terms, extract_terms(entry.question))
            if score > best_score and score >= threshold:
                best_score = score
                best_match = entry

        if best_match:
            logger.info(
                f"✓ KB hit {best_match.id}: '{best_match.question}' "
                f"(score {best_score}/{len(query_terms)})"
            )
        else:
            logger.info(f"✗ No KB match for: '{query}'")
        return best_match

    async def increment_usage(self, entry_id: str) -> KnowledgeEntry:
        entry = await asyncio.to_thread(self.store.increment_knowledge_usage, entry_id, utc_now())
        if entry is None:
            raise NotFoundError("Knowledge entry", entry_id)
        return entry

    async def add(
        self,
        question: str,
        answer: str,
        source_request_id: Optional[str] = None,
    ) -> KnowledgeEntry:
        """
        Add a learned answer. Duplicates of existing questions are allowed.

        Args:
            question: Original customer question
            answer: Supervisor's answer
            source_request_id: Help request the answer came from, if any
        """
        question = require_text(question, "question")
        answer = require_text(answer, "answer")
        if source_request_id is not None:
            source_request_id = require_uuid(source_request_id, "source_request_id")

        entry = await asyncio.to_thread(
            self.store.insert_knowledge_entry,
            question=question,
            answer=answer,
            source_request_id=source_request_id,
            created_at=utc_now(),
        )
        logger.info(f"✨ Added new KB entry {entry.id}: {entry.question}")
        return entry

    def get(self, entry_id: str) -> Optional[KnowledgeEntry]:
        return self.store.get_knowledge_entry(entry_id)

    def list_all(self, limit: Optional[int] = None) -> List[KnowledgeEntry]:
        """Get all learned answers for admin UI"""
        return self.store.list_knowledge_entries(limit=limit)
