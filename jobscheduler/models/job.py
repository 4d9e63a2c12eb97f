"""Job model for the scheduler queue."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, Text, Uuid

from jobscheduler.database import Base
from jobscheduler.models.types import JSONType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job(Base):
    """Job represents a queued unit of work for the scheduler."""

    __tablename__ = "jobs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(Text, nullable=False)  # 'story_generation', 'content_analysis', 'dataset_processing'
    payload = Column(JSONType, nullable=False, default=dict)
    status = Column(Text, nullable=False, default="queued")  # 'queued', 'running', 'completed', 'failed'
    priority = Column(Integer, nullable=False, default=0)  # Lower value runs first
    attempts = Column(Integer, nullable=False, default=0)
    result = Column(JSONType)
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_jobs_status_priority", "status", "priority", "created_at"),
    )
