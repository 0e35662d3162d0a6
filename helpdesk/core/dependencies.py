from datetime import timedelta

from helpdesk.database.base import HelpDeskStore
from helpdesk.services.escalation import EscalationCoordinator
from helpdesk.services.help_request import HelpRequestService
from helpdesk.services.knowledge_base import KnowledgeBaseService
from .config import settings

# Singleton instances (initialized once)
_store = None
_kb_service = None
_help_request_service = None
_coordinator = None


def get_store() -> HelpDeskStore:
    """
    Store selected by STORE_BACKEND
    Returns singleton instance
    """
    global _store
    if _store is None:
        if settings.store_backend == "supabase":
            # supabase client only needed for this backend
            from helpdesk.database.supabase_store import SupabaseStore
            _store = SupabaseStore.from_credentials(
                settings.supabase_url,
                settings.supabase_service_role_key,
            )
        else:
            from helpdesk.database.sqlite_store import SQLiteStore
            _store = SQLiteStore(db_path=settings.database_path)
    return _store


def get_knowledge_base_service() -> KnowledgeBaseService:
    """
    Dependency for knowledge base service
    Returns singleton instance
    """
    global _kb_service
    if _kb_service is None:
        _kb_service = KnowledgeBaseService(get_store())
    return _kb_service


def get_help_request_service() -> HelpRequestService:
    """
    Dependency for help request service
    Returns singleton instance
    """
    global _help_request_service
    if _help_request_service is None:
        _help_request_service = HelpRequestService(
            get_store(),
            timeout=timedelta(minutes=settings.help_request_timeout_minutes),
            list_limit=settings.list_all_limit,
        )
    return _help_request_service


def get_escalation_coordinator() -> EscalationCoordinator:
    """
    Dependency for the escalation coordinator
    Returns singleton instance
    """
    global _coordinator
    if _coordinator is None:
        _coordinator = EscalationCoordinator(
            get_knowledge_base_service(),
            get_help_request_service(),
        )
    return _coordinator
