"""SQLAlchemy ORM models."""

from jobscheduler.models.dataset import Dataset
from jobscheduler.models.job import Job

__all__ = [
    "Dataset",
    "Job",
]
