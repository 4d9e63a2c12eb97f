"""Per-type job handlers."""

from jobscheduler.handlers.content import ContentAnalysisHandler
from jobscheduler.handlers.dataset import DatasetProcessingHandler
from jobscheduler.handlers.story import StoryGenerationHandler

__all__ = [
    "ContentAnalysisHandler",
    "DatasetProcessingHandler",
    "StoryGenerationHandler",
]
