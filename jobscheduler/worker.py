"""Job scheduler: polls the queue, claims jobs and runs them concurrently."""

import asyncio
import logging
import signal
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from tenacity import retry, stop_after_attempt, wait_exponential

from jobscheduler.config import settings
from jobscheduler.processor import JobProcessor
from jobscheduler.schemas.jobs import HealthStatus, JobRecord, JobStatus
from jobscheduler.services.job_store import JobStore
from jobscheduler.services.providers import ProviderChain

logger = logging.getLogger(__name__)

STATE_RUNNING = "running"
STATE_DRAINING = "draining"
STATE_TERMINATED = "terminated"


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    reraise=True,
)
def check_store_connection(store: JobStore) -> None:
    """Ping the job store, retrying while it comes up."""
    store.ping()


class Scheduler:
    """Fixed-interval poller with a bounded number of in-flight jobs."""

    def __init__(
        self,
        store: Optional[JobStore] = None,
        chain: Optional[ProviderChain] = None,
        processor: Optional[JobProcessor] = None,
        max_concurrency: Optional[int] = None,
        poll_interval: Optional[float] = None,
        shutdown_timeout: Optional[float] = None,
        shutdown_check_interval: Optional[float] = None,
    ):
        """
        Initialize scheduler.

        Args:
            store: Job store gateway
            chain: Provider chain used by the handlers
            processor: Job processor, built from store and chain when omitted
            max_concurrency: Maximum jobs in flight at once
            poll_interval: Seconds between tick starts
            shutdown_timeout: Seconds to wait for in-flight jobs on shutdown
            shutdown_check_interval: Seconds between drain progress logs
        """
        self.store = store or JobStore()
        self.chain = chain or ProviderChain.from_settings()
        self.processor = processor or JobProcessor(self.chain, self.store)
        self.max_concurrency = max_concurrency or settings.MAX_CONCURRENCY
        self.poll_interval = poll_interval if poll_interval is not None else settings.POLL_INTERVAL / 1000
        self.shutdown_timeout = shutdown_timeout if shutdown_timeout is not None else settings.SHUTDOWN_TIMEOUT
        self.shutdown_check_interval = shutdown_check_interval or settings.SHUTDOWN_CHECK_INTERVAL

        # Slots held by jobs between fetch and the end of processing
        self.running = 0
        self.shutting_down = False
        self.state = STATE_RUNNING

        self._tasks: Set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._stop_requested = asyncio.Event()
        self._poll_task: Optional[asyncio.Task] = None

    def health(self) -> Dict[str, Any]:
        """Aggregate liveness, never per-job detail."""
        return HealthStatus(
            status="shutting_down" if self.shutting_down else "healthy",
            running=self.running,
            timestamp=datetime.now(timezone.utc),
        ).model_dump(mode="json")

    def _acquire_slot(self):
        self.running += 1
        self._idle.clear()

    def _release_slot(self):
        self.running -= 1
        if self.running <= 0:
            self.running = 0
            self._idle.set()

    async def tick(self) -> int:
        """
        Run one polling step.

        Fetches as many eligible jobs as there are free slots and starts a task
        per job that claims and processes it. Does not wait for those tasks.

        Returns:
            Number of job tasks started
        """
        if self.shutting_down:
            return 0

        capacity = self.max_concurrency - self.running
        if capacity <= 0:
            return 0

        jobs = await asyncio.to_thread(self.store.fetch_eligible, capacity)
        if not jobs or self.shutting_down:
            return 0

        for job in jobs:
            self._acquire_slot()
            task = asyncio.create_task(self._claim_and_process(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        logger.debug(f"Tick started {len(jobs)} job(s), {self.running}/{self.max_concurrency} slots in use")
        return len(jobs)

    async def _claim_and_process(self, job: JobRecord) -> None:
        try:
            claimed = await asyncio.to_thread(self.store.claim, job.id)
            if not claimed:
                return
            await self.process_job(job)
        finally:
            self._release_slot()

    async def process_job(self, job: JobRecord) -> None:
        """Run a claimed job and record its outcome. Never raises."""
        start_time = time.monotonic()
        logger.info(f"Processing job {job.id} (type: {job.type}, attempt: {job.attempts + 1})")

        try:
            result = await self.processor.dispatch(job)
        except Exception as e:
            error_message = str(e) or type(e).__name__
            logger.error(f"Job {job.id} failed: {error_message}")
            await asyncio.to_thread(
                self.store.record_outcome, job.id, JobStatus.FAILED, error_message=error_message
            )
            return

        await asyncio.to_thread(self.store.record_outcome, job.id, JobStatus.COMPLETED, result=result)
        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(f"Job {job.id} completed in {duration_ms}ms")

    async def poll(self) -> None:
        """Tick at a fixed rate until shutdown is requested."""
        loop = asyncio.get_running_loop()

        while not self.shutting_down:
            started = loop.time()
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Error in scheduler tick: {e}", exc_info=True)

            delay = max(0.0, self.poll_interval - (loop.time() - started))
            try:
                await asyncio.wait_for(self._stop_requested.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    def request_shutdown(self) -> None:
        """Stop new ticks from doing work and enter the draining state."""
        if self.shutting_down:
            return
        logger.info("Received shutdown signal, waiting for jobs to complete...")
        self.shutting_down = True
        self.state = STATE_DRAINING
        self._stop_requested.set()

    async def drain(self) -> bool:
        """
        Wait for in-flight jobs, bounded by the shutdown timeout.

        Returns:
            True if every job finished, False if the timeout forced shutdown
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.shutdown_timeout

        while self.running > 0:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(f"Force shutdown with {self.running} jobs still running")
                self.state = STATE_TERMINATED
                return False
            try:
                await asyncio.wait_for(self._idle.wait(), timeout=min(self.shutdown_check_interval, remaining))
            except asyncio.TimeoutError:
                logger.info(f"Waiting for {self.running} jobs to complete...")

        logger.info("All jobs completed, shutting down gracefully")
        self.state = STATE_TERMINATED
        return True

    async def start(self) -> None:
        """
        Check the store and start the poll loop in the background.

        Raises:
            Exception: If the store is still unreachable after retries
        """
        logger.info(
            "Starting job scheduler\n"
            f"    - Max Concurrency: {self.max_concurrency}\n"
            f"    - Poll Interval: {int(self.poll_interval * 1000)}ms\n"
            f"    - Max Retries: {self.store.max_retries}\n"
            f"    - AI Providers: {', '.join(self.chain.names) or 'none'}"
        )
        await asyncio.to_thread(check_store_connection, self.store)
        logger.info("Database connection established")

        self._poll_task = asyncio.create_task(self.poll())
        logger.info("Job scheduler started successfully")

    async def shutdown(self) -> bool:
        """Stop polling and drain. The provider client is closed only after a clean drain."""
        self.request_shutdown()
        if self._poll_task is not None:
            await self._poll_task
        drained = await self.drain()
        if drained:
            await self.chain.aclose()
        return drained

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError):
                logger.warning(f"Cannot install handler for {sig.name} on this platform")

    async def run(self) -> int:
        """
        Run until a termination signal has been handled.

        Returns:
            Process exit code: 1 if the store is unreachable at startup, else 0
        """
        try:
            await self.start()
        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            return 1

        self._install_signal_handlers()
        await self.shutdown_when_requested()
        return 0

    async def shutdown_when_requested(self) -> bool:
        await self._stop_requested.wait()
        return await self.shutdown()


def main():
    """Entry point for the standalone scheduler process."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        exit_code = asyncio.run(Scheduler().run())
    except Exception as e:
        logger.critical(f"Fatal error starting scheduler: {e}", exc_info=True)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
