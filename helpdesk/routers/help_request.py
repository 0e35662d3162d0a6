"""
Help Request Router
Handles all help request endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional
import logging

from helpdesk.core.dependencies import get_escalation_coordinator, get_help_request_service
from helpdesk.core.errors import (
    AlreadyResolvedError,
    HelpDeskError,
    NotFoundError,
    ValidationError,
)
from helpdesk.models.schemas import (
    EscalateBody,
    RequestStatus,
    ResolveRequestBody,
    SessionContext,
    UnresolveRequestBody,
)
from helpdesk.services.escalation import EscalationCoordinator
from helpdesk.services.help_request import HelpRequestService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/help-requests",
    tags=["Help Requests"]
)


@router.post("/escalate", response_model=dict)
async def escalate(
    body: EscalateBody,
    coordinator: EscalationCoordinator = Depends(get_escalation_coordinator)
):
    """Answer a caller question from the knowledge base or open a help request"""
    session = SessionContext(
        room_name=body.room_name,
        participant_identity=body.participant_identity,
        metadata=body.metadata,
    )
    try:
        outcome = await coordinator.escalate(body.question, session)
        return {
            "success": True,
            "result": outcome
        }
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HelpDeskError as e:
        logger.error(f"Error escalating question: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/maintenance/check-timeouts", response_model=dict)
async def check_timeouts(
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Check and mark timed-out requests as unresolved"""
    try:
        count = await service.sweep_timeouts()
        return {
            "success": True,
            "timed_out_count": count,
            "message": f"Marked {count} requests as unresolved due to timeout"
        }
    except HelpDeskError as e:
        logger.error(f"Error checking timeouts: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/pending", response_model=dict)
async def get_pending_requests(
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Get all pending help requests"""
    try:
        requests = service.list_pending()
        return {
            "success": True,
            "count": len(requests),
            "requests": requests
        }
    except HelpDeskError as e:
        logger.error(f"Error fetching pending requests: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/all", response_model=dict)
async def get_all_requests(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    status: Optional[RequestStatus] = None,
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Get recent help requests, optionally filtered by status"""
    try:
        requests = service.list_all(limit=limit, status=status)
        return {
            "success": True,
            "count": len(requests),
            "requests": requests
        }
    except HelpDeskError as e:
        logger.error(f"Error fetching requests: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{request_id}", response_model=dict)
async def get_request_details(
    request_id: str,
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Get details of specific help request"""
    try:
        request = service.get(request_id)
    except HelpDeskError as e:
        logger.error(f"Error fetching request {request_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if not request:
        raise HTTPException(status_code=404, detail="Request not found")

    return {
        "success": True,
        "request": request
    }


@router.post("/{request_id}/resolve", response_model=dict)
async def resolve_request(
    request_id: str,
    body: ResolveRequestBody,
    coordinator: EscalationCoordinator = Depends(get_escalation_coordinator)
):
    """
    Supervisor resolves a help request
    This triggers:
    1. Update request status to resolved
    2. Add answer to knowledge base (if requested)
    3. Follow up with caller
    """
    try:
        result = await coordinator.submit_resolution(
            request_id=request_id,
            answer=body.answer,
            promote_to_knowledge=body.add_to_knowledge
        )
        return {
            "success": True,
            "message": "Request resolved and caller notified",
            "result": result
        }
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AlreadyResolvedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except HelpDeskError as e:
        logger.error(f"Error resolving request {request_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{request_id}/unresolve", response_model=dict)
async def unresolve_request(
    request_id: str,
    body: UnresolveRequestBody,
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Supervisor closes a help request without an answer"""
    try:
        request = await service.mark_unresolved(request_id, body.note)
        return {
            "success": True,
            "request": request
        }
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AlreadyResolvedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except HelpDeskError as e:
        logger.error(f"Error closing request {request_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
