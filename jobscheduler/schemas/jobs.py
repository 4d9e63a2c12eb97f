"""Job payload, result and record schemas."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobType(str, Enum):
    """Kinds of work the scheduler knows how to run."""

    STORY_GENERATION = "story_generation"
    CONTENT_ANALYSIS = "content_analysis"
    DATASET_PROCESSING = "dataset_processing"


class JobStatus(str, Enum):
    """Job lifecycle states."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class CamelModel(BaseModel):
    """Model whose stored JSON uses camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Story generation
class StoryPayload(CamelModel):
    """Input for story generation jobs."""

    prompt: str
    character_limit: int = Field(default=2000, gt=0)
    style: str = "narrative"


class StoryMetadata(CamelModel):
    """Metadata attached to a generated story."""

    character_count: int
    style: str
    generated_at: datetime


class StoryResult(CamelModel):
    """Output of story generation jobs."""

    content: str
    metadata: StoryMetadata


# Content analysis
class ContentPayload(CamelModel):
    """Input for content analysis jobs."""

    content: str
    analysis_type: str = "sentiment"


class ContentResult(CamelModel):
    """Output of content analysis jobs."""

    analysis: str
    analysis_type: str
    content_length: int
    analyzed_at: datetime


# Dataset processing
class DatasetPayload(CamelModel):
    """Input for dataset processing jobs."""

    dataset_id: str
    operation: str = "classify"


class DatasetResult(CamelModel):
    """Output of dataset processing jobs."""

    dataset_id: str
    operation: str
    result: str
    processed_at: datetime


# Records handed between the store and the scheduler
class JobRecord(BaseModel):
    """Detached snapshot of a job row."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    payload: Any = None
    status: str
    priority: int
    attempts: int
    created_at: datetime
    updated_at: datetime
    result: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None


class DatasetRecord(BaseModel):
    """Detached snapshot of a dataset row."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: Optional[str] = None
    content: Any = None


class HealthStatus(BaseModel):
    """Scheduler liveness report."""

    status: str  # 'healthy' or 'shutting_down'
    running: int
    timestamp: datetime
