"""Base handler with payload validation."""

import logging
from typing import Any, Dict, Type

from pydantic import BaseModel

from jobscheduler.services.job_store import JobStore
from jobscheduler.services.providers import ProviderChain

logger = logging.getLogger(__name__)


class BaseHandler:
    """Base class for job handlers.

    Handlers turn a payload into a prompt, call the provider chain once and
    shape the typed result. They never touch job status.
    """

    payload_model: Type[BaseModel]

    def __init__(self, chain: ProviderChain, store: JobStore):
        """Initialize base handler."""
        self.chain = chain
        self.store = store

    async def execute(self, payload: Any) -> Dict[str, Any]:
        """
        Validate the payload and run the handler.

        Args:
            payload: Raw payload stored on the job

        Returns:
            Result dict with camelCase keys, ready to persist

        Raises:
            pydantic.ValidationError: If the payload does not match the job type
        """
        logger.info(f"Handler {self.__class__.__name__} started")
        data = self.payload_model.model_validate(payload or {})
        result = await self._run(data)
        logger.info(f"Handler {self.__class__.__name__} succeeded")
        return result.model_dump(mode="json", by_alias=True)

    async def _run(self, payload: BaseModel) -> BaseModel:
        """
        Run the handler logic (to be implemented by subclasses).

        Args:
            payload: Validated payload

        Returns:
            Typed result model
        """
        raise NotImplementedError
