"""Polling job scheduler backed by a shared job queue and a chain of completion providers."""

__version__ = "0.1.0"
