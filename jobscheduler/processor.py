"""Dispatch of claimed jobs to their type-specific handler."""

import logging
from typing import Any, Dict, Type

from jobscheduler.exceptions import UnknownJobTypeError
from jobscheduler.handlers import ContentAnalysisHandler, DatasetProcessingHandler, StoryGenerationHandler
from jobscheduler.handlers.base import BaseHandler
from jobscheduler.schemas.jobs import JobRecord, JobType
from jobscheduler.services.job_store import JobStore
from jobscheduler.services.providers import ProviderChain

logger = logging.getLogger(__name__)


class JobProcessor:
    """Routes a job to the handler registered for its type."""

    def __init__(self, chain: ProviderChain, store: JobStore):
        """Initialize processor."""
        self.chain = chain
        self.store = store

        # Handler registry
        self.handlers: Dict[str, Type[BaseHandler]] = {
            JobType.STORY_GENERATION.value: StoryGenerationHandler,
            JobType.CONTENT_ANALYSIS.value: ContentAnalysisHandler,
            JobType.DATASET_PROCESSING.value: DatasetProcessingHandler,
        }

    async def dispatch(self, job: JobRecord) -> Dict[str, Any]:
        """
        Run the handler for a job and return its result.

        Raises:
            UnknownJobTypeError: If no handler is registered for job.type
        """
        handler_class = self.handlers.get(job.type)
        if handler_class is None:
            raise UnknownJobTypeError(f"Unknown job type: {job.type}")

        logger.info(f"Dispatching job {job.id} to {handler_class.__name__}")
        handler = handler_class(self.chain, self.store)
        return await handler.execute(job.payload)
