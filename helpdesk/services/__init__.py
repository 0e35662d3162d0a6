
from .knowledge_base import KnowledgeBaseService
from .help_request import HelpRequestService
from .escalation import EscalationCoordinator

__all__ = [
    "KnowledgeBaseService",
    "HelpRequestService",
    "EscalationCoordinator",
]
