from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Literal, Optional, Union


class RequestStatus(str, Enum):
    """Help request lifecycle states"""
    PENDING = "pending"
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


class HelpRequest(BaseModel):
    id: str
    room_name: str
    participant_identity: str
    question: str
    status: RequestStatus = RequestStatus.PENDING
    supervisor_answer: Optional[str] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None
    timeout_at: datetime
    metadata: Optional[Dict[str, Any]] = None

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING


class KnowledgeEntry(BaseModel):
    id: str
    question: str
    answer: str
    source_request_id: Optional[str] = None
    usage_count: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime
    last_used_at: Optional[datetime] = None


class SessionContext(BaseModel):
    """Caller session a question came from. Passed per call, never stored globally."""
    room_name: str
    participant_identity: str
    metadata: Optional[Dict[str, Any]] = None


class Answered(BaseModel):
    outcome: Literal["answered"] = "answered"
    answer: str
    entry: KnowledgeEntry


class Escalated(BaseModel):
    outcome: Literal["escalated"] = "escalated"
    request: HelpRequest


EscalationOutcome = Union[Answered, Escalated]


class ResolutionOutcome(BaseModel):
    request: HelpRequest
    knowledge_entry: Optional[KnowledgeEntry] = None
    promotion_error: Optional[str] = None


# Request bodies

class EscalateBody(BaseModel):
    question: str
    room_name: str
    participant_identity: str
    metadata: Optional[Dict[str, Any]] = None


class ResolveRequestBody(BaseModel):
    answer: str
    add_to_knowledge: bool = True


class UnresolveRequestBody(BaseModel):
    note: Optional[str] = None


class KBEntry(BaseModel):
    question: str
    answer: str
    source_request_id: Optional[str] = None


class KBSearchBody(BaseModel):
    question: str
