import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from helpdesk.core.config import settings
from helpdesk.core.dependencies import get_help_request_service
from helpdesk.core.errors import HelpDeskError
from helpdesk.core.logging import LOG_FORMAT
from helpdesk.routers.cron import router as router_cron
from helpdesk.routers.help_request import router as router_help_requests
from helpdesk.routers.knowledge_base import router as router_knowledge_base

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO, format=LOG_FORMAT)

# Silence noisy loggers
for noisy in ["uvicorn.access", "uvicorn.error", "asyncio", "httpx", "hpack", "postgrest"]:
    logging.getLogger(noisy).setLevel(logging.ERROR)

logger = logging.getLogger("fastapi_server")
logger.setLevel(logging.INFO)


async def run_timeout_sweeper(interval_seconds: float):
    """Sweep overdue help requests every interval until cancelled"""
    service = get_help_request_service()
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await service.sweep_timeouts()
        except HelpDeskError as e:
            logger.error(f"Timeout sweep failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweeper = None
    if settings.sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(run_timeout_sweeper(settings.sweep_interval_seconds))
        logger.info(f"⏰ Timeout sweeper running every {settings.sweep_interval_seconds}s")
    yield
    if sweeper is not None:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,  # Supervisor dashboard
    allow_credentials=True,
    allow_methods=["*"],                      # Allow all HTTP methods
    allow_headers=["*"],                      # Allow all headers
)
# Include routers
app.include_router(router_help_requests)
app.include_router(router_knowledge_base)
app.include_router(router_cron)


@app.get("/")
async def root():
    return {"status": "running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
