"""Tests for the scheduler loop, job processing and shutdown."""

import asyncio
import os
import signal

import pytest
from sqlalchemy.exc import OperationalError
from tenacity import wait_none

from jobscheduler import worker
from jobscheduler.exceptions import AllProvidersFailedError
from jobscheduler.worker import STATE_DRAINING, STATE_RUNNING, STATE_TERMINATED, Scheduler


class BlockingChain:
    """Chain whose completions wait until released, tracking peak concurrency."""

    names = ["blocking"]

    def __init__(self, on_call=None):
        self.release = asyncio.Event()
        self.on_call = on_call
        self.active = 0
        self.peak = 0
        self.calls = 0

    async def complete(self, prompt):
        self.calls += 1
        if self.on_call is not None:
            self.on_call()
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await self.release.wait()
        finally:
            self.active -= 1
        return "done"

    async def aclose(self):
        pass


def make_scheduler(store, chain, **kwargs):
    options = {
        "max_concurrency": 4,
        "poll_interval": 0.01,
        "shutdown_timeout": 5.0,
        "shutdown_check_interval": 0.01,
    }
    options.update(kwargs)
    return Scheduler(store=store, chain=chain, **options)


@pytest.mark.asyncio
async def test_story_job_end_to_end(store, add_job, get_job, fake_chain):
    job_id = add_job(payload={"prompt": "a lighthouse", "characterLimit": 500, "style": "whimsical"})
    scheduler = make_scheduler(store, fake_chain)

    assert await scheduler.tick() == 1
    assert await scheduler.drain()

    job = get_job(job_id)
    assert job.status == "completed"
    assert job.attempts == 1
    assert job.error_message is None
    assert job.result["content"] == "Once upon a time."
    assert job.result["metadata"]["characterCount"] == len("Once upon a time.")
    assert job.result["metadata"]["style"] == "whimsical"
    assert "whimsical" in fake_chain.prompts[0]
    assert "500" in fake_chain.prompts[0]


@pytest.mark.asyncio
async def test_running_jobs_never_exceed_max_concurrency(store, add_job, get_job):
    job_ids = [add_job(created_offset=i) for i in range(7)]
    chain = BlockingChain()
    scheduler = make_scheduler(store, chain, max_concurrency=3)

    assert await scheduler.tick() == 3
    assert scheduler.running == 3
    # No free slots, nothing fetched
    assert await scheduler.tick() == 0

    chain.release.set()
    while any(get_job(job_id).status != "completed" for job_id in job_ids):
        await scheduler.tick()
        await asyncio.sleep(0.01)
        assert scheduler.running <= 3

    await scheduler.drain()
    assert chain.peak <= 3
    assert chain.calls == 7


@pytest.mark.asyncio
async def test_tick_does_not_wait_for_jobs(store, add_job):
    add_job()
    chain = BlockingChain()
    scheduler = make_scheduler(store, chain)

    await asyncio.wait_for(scheduler.tick(), timeout=2)
    assert scheduler.running == 1

    chain.release.set()
    assert await scheduler.drain()
    assert scheduler.running == 0


@pytest.mark.asyncio
async def test_provider_exhaustion_marks_job_failed(store, add_job, get_job, make_chain):
    job_id = add_job()
    chain = make_chain(error=AllProvidersFailedError("All AI providers failed. Last error: HTTP 500"))
    scheduler = make_scheduler(store, chain)

    await scheduler.tick()
    await scheduler.drain()

    job = get_job(job_id)
    assert job.status == "failed"
    assert job.error_message == "All AI providers failed. Last error: HTTP 500"
    assert job.result is None


@pytest.mark.asyncio
async def test_unknown_type_marks_job_failed_without_provider_call(store, add_job, get_job, fake_chain):
    job_id = add_job(type="video_render")
    scheduler = make_scheduler(store, fake_chain)

    await scheduler.tick()
    await scheduler.drain()

    job = get_job(job_id)
    assert job.status == "failed"
    assert job.error_message == "Unknown job type: video_render"
    assert fake_chain.prompts == []


@pytest.mark.asyncio
async def test_failed_jobs_are_not_requeued(store, add_job, get_job, make_chain):
    job_id = add_job()
    scheduler = make_scheduler(store, make_chain(error=RuntimeError("provider down")))

    await scheduler.tick()
    await scheduler.drain()
    assert await scheduler.tick() == 0

    job = get_job(job_id)
    assert job.status == "failed"
    assert job.attempts == 1


@pytest.mark.asyncio
async def test_lost_claim_is_skipped(store, add_job, get_job, fake_chain, monkeypatch):
    job_id = add_job()
    scheduler = make_scheduler(store, fake_chain)
    monkeypatch.setattr(store, "claim", lambda job_id: False)

    assert await scheduler.tick() == 1
    assert await scheduler.drain()

    assert fake_chain.prompts == []
    assert scheduler.running == 0
    assert get_job(job_id).status == "queued"


@pytest.mark.asyncio
async def test_tick_is_noop_while_shutting_down(store, add_job, get_job, fake_chain):
    job_id = add_job()
    scheduler = make_scheduler(store, fake_chain)

    scheduler.request_shutdown()

    assert await scheduler.tick() == 0
    assert get_job(job_id).status == "queued"


@pytest.mark.asyncio
async def test_store_outage_makes_tick_a_noop(store, add_job, fake_chain, monkeypatch):
    add_job()
    scheduler = make_scheduler(store, fake_chain)

    def broken_session():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(store, "session_factory", broken_session)

    assert await scheduler.tick() == 0
    assert fake_chain.prompts == []


@pytest.mark.asyncio
async def test_drain_waits_for_in_flight_job(store, add_job, get_job, caplog):
    job_id = add_job()
    chain = BlockingChain()
    scheduler = make_scheduler(store, chain)

    await scheduler.tick()
    scheduler.request_shutdown()
    assert scheduler.state == STATE_DRAINING

    asyncio.get_running_loop().call_later(0.05, chain.release.set)

    assert await scheduler.drain() is True
    assert scheduler.state == STATE_TERMINATED
    assert get_job(job_id).status == "completed"
    assert "All jobs completed, shutting down gracefully" in caplog.text


@pytest.mark.asyncio
async def test_drain_times_out_and_forces_shutdown(store, add_job, get_job, caplog):
    job_id = add_job()
    chain = BlockingChain()
    scheduler = make_scheduler(store, chain, shutdown_timeout=0.1, shutdown_check_interval=0.02)

    await scheduler.tick()
    scheduler.request_shutdown()

    assert await scheduler.drain() is False
    assert scheduler.state == STATE_TERMINATED
    assert "Force shutdown with 1 jobs still running" in caplog.text
    # Abandoned job stays running in the store
    assert get_job(job_id).status == "running"

    chain.release.set()
    await asyncio.sleep(0.05)


@pytest.mark.asyncio
async def test_health_reports_state(store, add_job):
    add_job()
    chain = BlockingChain()
    scheduler = make_scheduler(store, chain)

    await scheduler.tick()
    health = scheduler.health()
    assert health["status"] == "healthy"
    assert health["running"] == 1
    assert "timestamp" in health

    scheduler.request_shutdown()
    assert scheduler.health()["status"] == "shutting_down"

    chain.release.set()
    await scheduler.drain()


@pytest.mark.asyncio
async def test_run_processes_jobs_until_shutdown(store, add_job, get_job, fake_chain):
    job_id = add_job()
    scheduler = make_scheduler(store, fake_chain)
    assert scheduler.state == STATE_RUNNING

    run_task = asyncio.create_task(scheduler.run())
    for _ in range(200):
        if get_job(job_id).status == "completed":
            break
        await asyncio.sleep(0.01)

    scheduler.request_shutdown()
    assert await asyncio.wait_for(run_task, timeout=5) == 0
    assert get_job(job_id).status == "completed"
    assert scheduler.state == STATE_TERMINATED


@pytest.mark.asyncio
async def test_run_exits_nonzero_when_store_unreachable(store, fake_chain, monkeypatch):
    def unreachable(store):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(worker, "check_store_connection", unreachable)
    scheduler = make_scheduler(store, fake_chain)

    assert await scheduler.run() == 1
    assert fake_chain.prompts == []


def test_store_connection_check_retries(store, monkeypatch):
    calls = []

    def failing_ping():
        calls.append(1)
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(store, "ping", failing_ping)

    with pytest.raises(OperationalError):
        worker.check_store_connection.retry_with(wait=wait_none())(store)

    assert len(calls) == 3


@pytest.mark.asyncio
async def test_sigterm_drains_then_forces_shutdown(store, add_job, get_job, caplog):
    job_id = add_job()
    chain = BlockingChain()
    scheduler = make_scheduler(store, chain, shutdown_timeout=0.1, shutdown_check_interval=0.02)

    run_task = asyncio.create_task(scheduler.run())
    # run() installs its signal handlers before the first claim can happen
    for _ in range(200):
        if get_job(job_id).status == "running":
            break
        await asyncio.sleep(0.01)
    assert get_job(job_id).status == "running"

    os.kill(os.getpid(), signal.SIGTERM)

    assert await asyncio.wait_for(run_task, timeout=5) == 0
    assert scheduler.shutting_down
    assert scheduler.state == STATE_TERMINATED
    assert "Force shutdown with 1 jobs still running" in caplog.text
    assert get_job(job_id).status == "running"

    chain.release.set()
    await asyncio.sleep(0.05)


class ShutdownChain:
    """Chain that asks the scheduler to stop while serving a completion."""

    names = ["fake"]

    def __init__(self):
        self.scheduler = None

    async def complete(self, prompt):
        self.scheduler.request_shutdown()
        return "The end."

    async def aclose(self):
        pass


def test_main_exits_zero_after_clean_drain(store, add_job, get_job, monkeypatch):
    job_id = add_job()
    chain = ShutdownChain()
    scheduler = make_scheduler(store, chain)
    chain.scheduler = scheduler
    monkeypatch.setattr(worker, "Scheduler", lambda: scheduler)

    with pytest.raises(SystemExit) as exc_info:
        worker.main()

    assert exc_info.value.code == 0
    assert get_job(job_id).status == "completed"


def test_main_exits_zero_after_forced_drain(store, add_job, get_job, monkeypatch):
    job_id = add_job()
    scheduler = None

    def stop():
        scheduler.request_shutdown()

    chain = BlockingChain(on_call=stop)
    scheduler = make_scheduler(store, chain, shutdown_timeout=0.1, shutdown_check_interval=0.02)
    monkeypatch.setattr(worker, "Scheduler", lambda: scheduler)

    with pytest.raises(SystemExit) as exc_info:
        worker.main()

    assert exc_info.value.code == 0
    assert scheduler.state == STATE_TERMINATED
    # Abandoned mid-execution, no rollback
    assert get_job(job_id).status == "running"


def test_main_exits_nonzero_when_store_unreachable(store, fake_chain, monkeypatch):
    def unreachable(store):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(worker, "check_store_connection", unreachable)
    monkeypatch.setattr(worker, "Scheduler", lambda: make_scheduler(store, fake_chain))

    with pytest.raises(SystemExit) as exc_info:
        worker.main()

    assert exc_info.value.code == 1
    assert fake_chain.prompts == []
