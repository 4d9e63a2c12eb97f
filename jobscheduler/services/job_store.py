"""Job store gateway over the persisted queue."""

import logging
import uuid
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from jobscheduler.config import settings
from jobscheduler.database import get_session_factory
from jobscheduler.models.dataset import Dataset
from jobscheduler.models.job import Job, utcnow
from jobscheduler.schemas.jobs import DatasetRecord, JobRecord, JobStatus

logger = logging.getLogger(__name__)

JobId = Union[str, uuid.UUID]

FINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


def _as_uuid(value: JobId) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


class JobStore:
    """Typed access to the job queue.

    Every call opens its own session, so one store can be shared by
    concurrent worker threads.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None, max_retries: Optional[int] = None):
        """Initialize the store."""
        self.session_factory = session_factory or get_session_factory()
        self.max_retries = settings.MAX_RETRIES if max_retries is None else max_retries

    def ping(self) -> None:
        """Run a trivial query against the jobs table. Raises on failure."""
        with self.session_factory() as db:
            db.execute(select(Job.id).limit(1))

    def fetch_eligible(self, limit: int) -> List[JobRecord]:
        """
        Return up to `limit` queued jobs below the retry ceiling.

        Jobs are ordered by priority (lowest first), then by age (oldest first).
        Store errors are logged and reported as an empty batch.
        """
        if limit <= 0:
            return []

        query = (
            select(Job)
            .where(Job.status == JobStatus.QUEUED.value, Job.attempts < self.max_retries)
            .order_by(Job.priority.asc(), Job.created_at.asc())
            .limit(limit)
        )
        try:
            with self.session_factory() as db:
                jobs = db.execute(query).scalars().all()
                return [JobRecord.model_validate(job) for job in jobs]
        except SQLAlchemyError as e:
            logger.error(f"Error fetching jobs: {e}")
            return []

    def claim(self, job_id: JobId) -> bool:
        """
        Atomically move a job from queued to running.

        The update is conditional on the row still being queued and below the
        retry ceiling, and increments attempts in the same statement. Returns
        True only for the caller whose update matched the row.
        """
        try:
            statement = (
                update(Job)
                .where(
                    Job.id == _as_uuid(job_id),
                    Job.status == JobStatus.QUEUED.value,
                    Job.attempts < self.max_retries,
                )
                .values(
                    status=JobStatus.RUNNING.value,
                    attempts=Job.attempts + 1,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            with self.session_factory() as db:
                claimed = db.execute(statement).rowcount == 1
                db.commit()
        except (SQLAlchemyError, ValueError) as e:
            logger.error(f"Error claiming job {job_id}: {e}")
            return False

        if not claimed:
            logger.debug(f"Job {job_id} already claimed by another worker")
        return claimed

    def record_outcome(
        self,
        job_id: JobId,
        status: Union[JobStatus, str],
        result: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """
        Write the final status of a job.

        Write failures are logged and not retried.
        """
        status = JobStatus(status)
        if status not in FINAL_STATUSES:
            raise ValueError(f"Cannot record outcome with status {status.value}")

        values: Dict[str, Any] = {"status": status.value, "updated_at": utcnow()}
        if result is not None:
            values["result"] = result
        if error_message:
            values["error_message"] = error_message

        try:
            statement = (
                update(Job)
                .where(Job.id == _as_uuid(job_id))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            with self.session_factory() as db:
                db.execute(statement)
                db.commit()
        except (SQLAlchemyError, ValueError) as e:
            logger.error(f"Failed to update job {job_id} status: {e}")

    def get_dataset(self, dataset_id: JobId) -> Optional[DatasetRecord]:
        """Look up a dataset by id. Unknown or malformed ids return None."""
        try:
            key = _as_uuid(dataset_id)
        except ValueError:
            return None

        with self.session_factory() as db:
            dataset = db.get(Dataset, key)
            if dataset is None:
                return None
            return DatasetRecord.model_validate(dataset)
