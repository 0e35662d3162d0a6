
from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional
import logging

from helpdesk.core.dependencies import get_knowledge_base_service
from helpdesk.core.errors import HelpDeskError, NotFoundError, ValidationError
from helpdesk.models.schemas import KBEntry, KBSearchBody
from helpdesk.services import KnowledgeBaseService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/knowledge-base",
    tags=["Knowledge Base"]
)


@router.get("/")
async def get_knowledge_base(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    service: KnowledgeBaseService = Depends(get_knowledge_base_service)
):
    """Get all learned answers"""
    try:
        answers = service.list_all(limit=limit)
        return {
            "success": True,
            "count": len(answers),
            "answers": answers
        }
    except HelpDeskError as e:
        logger.error(f"Error fetching knowledge base: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/")
async def add_to_knowledge_base(entry: KBEntry, service: KnowledgeBaseService = Depends(get_knowledge_base_service)):
    """Manually add entry to knowledge base"""
    try:
        created = await service.add(
            question=entry.question,
            answer=entry.answer,
            source_request_id=entry.source_request_id
        )
        return {
            "success": True,
            "message": "Entry added to knowledge base",
            "entry": created
        }
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HelpDeskError as e:
        logger.error(f"Error adding to knowledge base: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/search")
async def search_knowledge_base(body: KBSearchBody, service: KnowledgeBaseService = Depends(get_knowledge_base_service)):
    """Search knowledge base for answer (does not count usage)"""
    try:
        entry = await service.search(body.question)
        return {
            "success": True,
            "found": entry is not None,
            "entry": entry
        }
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HelpDeskError as e:
        logger.error(f"Error searching knowledge base: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{entry_id}/use")
async def record_usage(entry_id: str, service: KnowledgeBaseService = Depends(get_knowledge_base_service)):
    """Count one use of an entry in a live reply"""
    try:
        entry = await service.increment_usage(entry_id)
        return {
            "success": True,
            "entry": entry
        }
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except HelpDeskError as e:
        logger.error(f"Error recording usage for {entry_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
