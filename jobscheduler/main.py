"""FastAPI application hosting the scheduler with a health endpoint."""

import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException

from jobscheduler import __version__
from jobscheduler.config import settings
from jobscheduler.schemas.jobs import HealthStatus
from jobscheduler.worker import Scheduler

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Job Scheduler",
    description="Polls the job queue and runs jobs against completion providers",
    version=__version__,
)

# Scheduler management
scheduler: Optional[Scheduler] = None


def get_scheduler() -> Scheduler:
    """Return the running scheduler."""
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler not running")
    return scheduler


@app.on_event("startup")
async def startup_event():
    """Start the scheduler when the app starts."""
    global scheduler
    logger.info("Starting application...")

    scheduler = Scheduler()
    await scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Drain the scheduler when the app shuts down."""
    global scheduler
    logger.info("Shutting down application...")

    if scheduler is not None:
        await scheduler.shutdown()
        scheduler = None


@app.get("/health", response_model=HealthStatus)
def health(current: Scheduler = Depends(get_scheduler)):
    """Health check endpoint."""
    return current.health()


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "name": "Job Scheduler",
        "version": __version__,
        "status": "running" if scheduler is not None else "stopped",
    }
