"""Queue processor: drains pending jobs one at a time through the provider registry.

Jobs move ``pending -> processing -> (deleted | failed)``. A failed job only
returns to ``pending`` through an explicit retry.

Only one drain runs per process. ``trigger()`` is called on every enqueue and
retry: it starts a drain when idle, and otherwise flags the running drain to
scan once more before it exits so work enqueued during its last scan is not
left behind.

Transactions:
- Claim runs in its own unit of work and commits before the provider call
- The provider call runs outside any transaction
- Images, history entries and job removal commit together in one unit of work
- Failure marking runs in a fresh unit of work
"""

import asyncio
import time
from typing import Callable

import structlog

from sakuga.models.history import GenerationType
from sakuga.models.job import QueueJob
from sakuga.services.generation import record_generation
from sakuga.services.providers.base import GenerationParams
from sakuga.services.providers.registry import ProviderRegistry
from sakuga.services.storage import ImageStorage

logger = structlog.get_logger(__name__)


class QueueProcessor:
    """Single logical worker for the durable job queue."""

    def __init__(
        self,
        uow_factory: Callable,
        registry: ProviderRegistry,
        storage: ImageStorage,
    ):
        """Initialize processor.

        Args:
            uow_factory: Factory returned by create_uow_factory()
            registry: Provider registry used to dispatch generations
            storage: Image storage for generated files
        """
        self.uow_factory = uow_factory
        self.registry = registry
        self.storage = storage
        self._busy = False
        self._rescan = False
        self._task: asyncio.Task | None = None

    @property
    def is_busy(self) -> bool:
        return self._busy

    def trigger(self) -> None:
        """Start a drain in the background, or ask the running one to re-scan."""
        if self._busy or (self._task is not None and not self._task.done()):
            self._rescan = True
            return
        self._task = asyncio.create_task(self.drain())
        self._task.add_done_callback(self._on_drain_done)

    def _on_drain_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            logger.info("queue.drain.cancelled")
            return
        exc = task.exception()
        if exc:
            logger.error(
                "queue.drain.crashed",
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=exc,
            )

    async def drain(self) -> int:
        """Process pending jobs oldest first until none are left.

        Returns immediately when a drain is already running.

        Returns:
            Number of jobs processed (succeeded or failed)
        """
        if self._busy:
            self._rescan = True
            return 0

        self._busy = True
        processed = 0
        logger.debug("queue.drain.started")
        try:
            while True:
                self._rescan = False
                job = await self._claim_next()
                if job is None:
                    if self._rescan:
                        continue
                    break
                await self.process_job(job)
                processed += 1
        finally:
            self._busy = False

        logger.debug("queue.drain.finished", processed=processed)
        return processed

    async def _claim_next(self) -> QueueJob | None:
        async with await self.uow_factory() as uow:
            return await uow.jobs.claim_next()

    async def process_job(self, job: QueueJob) -> None:
        """Run one claimed job to completion or failure.

        Any exception from the provider or from recording the result marks the
        job failed with the error message; it never propagates to the loop.
        """
        start_time = time.time()
        logger.info(
            "job.generation.started",
            job_id=str(job.id),
            provider=job.provider,
            model=job.model,
            count=job.count,
            prompt_length=len(job.prompt),
            retry_count=job.retry_count,
        )

        params = GenerationParams(
            prompt=job.prompt,
            model=job.model,
            aspect_ratio=job.aspect_ratio,
            count=job.count,
        )

        try:
            result = await self.registry.generate(job.provider, params)

            async with self.storage.staged() as saved:
                async with await self.uow_factory() as uow:
                    entries = await record_generation(
                        uow,
                        self.storage,
                        result,
                        prompt=job.prompt,
                        generation_type=GenerationType.GENERATE,
                        provider=job.provider,
                        model=job.model,
                        aspect_ratio=job.aspect_ratio,
                        requested_count=job.count,
                        from_queue=True,
                        staged=saved,
                    )
                    await uow.jobs.remove(job.id)

        except asyncio.CancelledError:
            raise

        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(
                "job.generation.failed",
                job_id=str(job.id),
                provider=job.provider,
                error_type=type(e).__name__,
                error_message=message,
                duration_seconds=time.time() - start_time,
            )
            await self._mark_failed(job, message)
            return

        logger.info(
            "job.generation.succeeded",
            job_id=str(job.id),
            provider=job.provider,
            images=len(entries),
            cost=result.cost,
            duration_seconds=time.time() - start_time,
        )

    async def _mark_failed(self, job: QueueJob, message: str) -> None:
        """Record the failure on the job; a failure to do so is logged and the loop goes on."""
        try:
            async with await self.uow_factory() as uow:
                await uow.jobs.mark_failed(job.id, message)
        except Exception as e:
            logger.error(
                "job.mark_failed.failed",
                job_id=str(job.id),
                error_type=type(e).__name__,
                error_message=str(e),
            )

    async def recover_orphaned_jobs(self) -> int:
        """Reset jobs left in 'processing' by a crash or restart back to 'pending'.

        Must run before the first drain of the process.

        Returns:
            Number of jobs reset
        """
        async with await self.uow_factory() as uow:
            recovered = await uow.jobs.reset_processing()

        if recovered > 0:
            logger.info("worker.recovery", orphaned_jobs_reset=recovered)
        return recovered

    async def wait_idle(self) -> None:
        """Wait until the background drain (and any drain it chained) has finished."""
        while self._task is not None and not self._task.done():
            await asyncio.gather(self._task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel a running drain. The in-flight job stays 'processing' until recovery."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        logger.info("worker.stopped")
