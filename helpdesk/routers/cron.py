
from fastapi import APIRouter, HTTPException, Depends
import logging

from helpdesk.core.dependencies import get_help_request_service
from helpdesk.core.errors import HelpDeskError
from helpdesk.services.help_request import HelpRequestService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/cron",
    tags=["Cron"]
)


# Called by an external cron job to expire overdue requests
@router.get("/check-timeouts")
async def cron_check_timeouts(service: HelpRequestService = Depends(get_help_request_service)):
    try:
        count = await service.sweep_timeouts()
        return {"success": True, "timed_out_count": count}
    except HelpDeskError as e:
        logger.error(f"Error in cron job: {e}")
        raise HTTPException(status_code=500, detail=str(e))
