"""Dataset processing handler."""

import asyncio
import json
import logging
from datetime import datetime, timezone

from jobscheduler.exceptions import DatasetNotFoundError
from jobscheduler.handlers.base import BaseHandler
from jobscheduler.schemas.jobs import DatasetPayload, DatasetResult

logger = logging.getLogger(__name__)


class DatasetProcessingHandler(BaseHandler):
    """Handler that runs an operation over a stored dataset."""

    payload_model = DatasetPayload

    async def _run(self, payload: DatasetPayload) -> DatasetResult:
        """Fetch the dataset, then prompt with its content."""
        dataset = await asyncio.to_thread(self.store.get_dataset, payload.dataset_id)
        if dataset is None:
            raise DatasetNotFoundError(f"Dataset {payload.dataset_id} not found")

        logger.info(f"Loaded dataset {payload.dataset_id} for {payload.operation}")

        prompt = f"""
Process the following dataset for {payload.operation}.
Provide structured output that can be stored in a database.

Dataset: {json.dumps(dataset.content, default=str)}

Processing Result:"""

        result = await self.chain.complete(prompt)

        return DatasetResult(
            dataset_id=payload.dataset_id,
            operation=payload.operation,
            result=result,
            processed_at=datetime.now(timezone.utc),
        )
