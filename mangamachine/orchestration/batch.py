"""Sub-batch planning and bounded concurrent execution of panel jobs."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from typing import Awaitable, Callable, Sequence

from mangamachine.core.exceptions import DuplicateSequenceError
from mangamachine.orchestration.models import (
    BatchPlan,
    ErrorKind,
    GenerationFailure,
    GenerationResult,
    PanelJob,
    PanelResult,
    ProviderName,
)
from mangamachine.orchestration.retry import Sleep

logger = logging.getLogger(__name__)

Worker = Callable[[PanelJob], Awaitable[GenerationResult]]

LARGE_BATCH_THRESHOLD = 30


def ensure_unique_sequence_numbers(jobs: Sequence[PanelJob]) -> None:
    counts = Counter(job.sequence_number for job in jobs)
    duplicates = sorted(number for number, count in counts.items() if count > 1)
    if duplicates:
        raise DuplicateSequenceError(duplicates)


def plan_batches(jobs: Sequence[PanelJob], limit: int) -> BatchPlan:
    """Slice jobs into consecutive sub-batches of at most ``limit`` jobs."""
    if limit < 1:
        raise ValueError("concurrency limit must be at least 1")
    jobs = tuple(jobs)
    return BatchPlan(batches=tuple(jobs[i : i + limit] for i in range(0, len(jobs), limit)))


def choose_concurrency(total: int, provider: ProviderName | None, max_concurrency: int = 5) -> int:
    """Pick a sub-batch size from the job count and the provider's tolerance."""
    if total <= 0:
        return 1
    volcengine = provider is ProviderName.VOLCENGINE
    if total > LARGE_BATCH_THRESHOLD:
        size = 2 if volcengine else 3
    elif total <= 3:
        size = total
    elif volcengine:
        size = min(3, total)
    else:
        size = min(5, total)
    return max(1, min(size, max_concurrency))


def clamp_concurrency(requested: int, max_concurrency: int) -> int:
    return max(1, min(requested, max_concurrency))


def inter_batch_delay(
    average_job_seconds: float,
    base_delay: float = 1.0,
    slow_delay: float = 2.0,
    slow_threshold: float = 10.0,
) -> float:
    return slow_delay if average_job_seconds > slow_threshold else base_delay


class BatchScheduler:
    """Runs sub-batches one after another, jobs inside a sub-batch concurrently.

    Jobs within a sub-batch start ``stagger_seconds`` apart. Between sub-batches
    the scheduler pauses longer when the previous one was slow. Results come
    back in input order whatever the completion order was.
    """

    def __init__(
        self,
        stagger_seconds: float = 0.2,
        delay_seconds: float = 1.0,
        slow_delay_seconds: float = 2.0,
        slow_threshold_seconds: float = 10.0,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.stagger_seconds = stagger_seconds
        self.delay_seconds = delay_seconds
        self.slow_delay_seconds = slow_delay_seconds
        self.slow_threshold_seconds = slow_threshold_seconds
        self._sleep = sleep
        self._clock = clock

    async def _run_job(self, index: int, job: PanelJob, worker: Worker) -> PanelResult:
        if index and self.stagger_seconds > 0:
            await self._sleep(index * self.stagger_seconds)
        try:
            result = await worker(job)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("panel job crashed sequence_number=%s", job.sequence_number)
            result = GenerationFailure(ErrorKind.PROVIDER_ERROR, f"unexpected error: {exc}")
        return PanelResult(sequence_number=job.sequence_number, result=result)

    async def run_batch(
        self,
        jobs: Sequence[PanelJob],
        concurrency_limit: int,
        worker: Worker,
    ) -> list[PanelResult]:
        ensure_unique_sequence_numbers(jobs)
        plan = plan_batches(jobs, concurrency_limit)
        by_sequence: dict[int, PanelResult] = {}

        for batch_index, batch in enumerate(plan.batches):
            started = self._clock()
            logger.info(
                "sub-batch started batch=%d/%d size=%d",
                batch_index + 1,
                len(plan.batches),
                len(batch),
            )
            results = await asyncio.gather(*(self._run_job(i, job, worker) for i, job in enumerate(batch)))
            for item in results:
                by_sequence[item.sequence_number] = item

            if batch_index < len(plan.batches) - 1:
                average = (self._clock() - started) / len(batch)
                delay = inter_batch_delay(
                    average,
                    self.delay_seconds,
                    self.slow_delay_seconds,
                    self.slow_threshold_seconds,
                )
                logger.info("sub-batch finished avg_job_seconds=%.2f pause=%.1fs", average, delay)
                await self._sleep(delay)

        return [by_sequence[job.sequence_number] for job in jobs]
