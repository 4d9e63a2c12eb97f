"""Pytest configuration and fixtures."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from jobscheduler.database import Base
from jobscheduler.models import Dataset, Job
from jobscheduler.services.job_store import JobStore

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def session_factory(tmp_path):
    """Create a test database for each test."""
    # File-backed SQLite so store calls from worker threads share one database
    engine = create_engine(
        f"sqlite:///{tmp_path / 'jobs.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    yield TestingSessionLocal

    engine.dispose()


@pytest.fixture
def store(session_factory):
    return JobStore(session_factory, max_retries=3)


@pytest.fixture
def add_job(session_factory):
    """Insert a job row and return its id."""

    def _add_job(
        type="story_generation",
        payload=None,
        status="queued",
        priority=0,
        attempts=0,
        created_offset=0,
    ):
        job = Job(
            id=uuid.uuid4(),
            type=type,
            payload=payload if payload is not None else {"prompt": "a lighthouse"},
            status=status,
            priority=priority,
            attempts=attempts,
            created_at=BASE_TIME + timedelta(seconds=created_offset),
            updated_at=BASE_TIME + timedelta(seconds=created_offset),
        )
        with session_factory() as db:
            db.add(job)
            db.commit()
            return job.id

    return _add_job


@pytest.fixture
def add_dataset(session_factory):
    """Insert a dataset row and return its id."""

    def _add_dataset(content=None, name="sample"):
        dataset = Dataset(id=uuid.uuid4(), name=name, content=content)
        with session_factory() as db:
            db.add(dataset)
            db.commit()
            return dataset.id

    return _add_dataset


@pytest.fixture
def get_job(session_factory):
    """Load a job row by id."""

    def _get_job(job_id):
        with session_factory() as db:
            job = db.get(Job, job_id)
            db.expunge(job)
            return job

    return _get_job


class FakeChain:
    """Provider chain stand-in that records prompts."""

    def __init__(self, response="Once upon a time.", error=None):
        self.response = response
        self.error = error
        self.prompts = []
        self.names = ["fake"]
        self.closed = False

    async def complete(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_chain():
    return FakeChain()


@pytest.fixture
def make_chain():
    return FakeChain
