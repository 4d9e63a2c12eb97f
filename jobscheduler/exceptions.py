"""Scheduler exception types."""


class SchedulerError(Exception):
    """Base class for scheduler errors."""


class ProviderError(SchedulerError):
    """A single completion provider failed to produce a completion."""


class AllProvidersFailedError(SchedulerError):
    """Every configured completion provider failed."""


class UnknownJobTypeError(SchedulerError):
    """No handler is registered for the job's type."""


class DatasetNotFoundError(SchedulerError):
    """The dataset referenced by a dataset processing job does not exist."""
