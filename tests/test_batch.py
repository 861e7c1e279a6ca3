"""Tests for batch planning, concurrency selection and the scheduler."""

import asyncio

import pytest
from hypothesis import given, strategies as st

from mangamachine.core.exceptions import DuplicateSequenceError
from mangamachine.orchestration.batch import (
    BatchScheduler,
    choose_concurrency,
    clamp_concurrency,
    ensure_unique_sequence_numbers,
    inter_batch_delay,
    plan_batches,
)
from mangamachine.orchestration.models import (
    ErrorKind,
    GenerationFailure,
    GenerationSuccess,
    ImageData,
    PanelJob,
    ProviderName,
)


def _jobs(n):
    return [PanelJob(sequence_number=i, description=f"panel {i}") for i in range(1, n + 1)]


class TestPlanBatches:
    def test_seven_jobs_limit_three(self):
        assert plan_batches(_jobs(7), 3).sizes == [3, 3, 1]

    def test_empty(self):
        assert plan_batches([], 3).sizes == []

    def test_rejects_zero_limit(self):
        with pytest.raises(ValueError):
            plan_batches(_jobs(2), 0)

    @given(total=st.integers(min_value=0, max_value=60), limit=st.integers(min_value=1, max_value=8))
    def test_plan_preserves_jobs_in_order(self, total, limit):
        jobs = _jobs(total)
        plan = plan_batches(jobs, limit)
        assert [job for batch in plan.batches for job in batch] == jobs
        assert all(1 <= size <= limit for size in plan.sizes)


class TestChooseConcurrency:
    @pytest.mark.parametrize(
        "total,provider,expected",
        [
            (1, ProviderName.GEMINI, 1),
            (3, ProviderName.VOLCENGINE, 3),
            (4, ProviderName.VOLCENGINE, 3),
            (4, ProviderName.GEMINI, 4),
            (12, ProviderName.GEMINI, 5),
            (31, ProviderName.GEMINI, 3),
            (31, ProviderName.VOLCENGINE, 2),
        ],
    )
    def test_dynamic_size(self, total, provider, expected):
        assert choose_concurrency(total, provider) == expected

    def test_respects_configured_maximum(self):
        assert choose_concurrency(12, ProviderName.GEMINI, max_concurrency=2) == 2

    @pytest.mark.parametrize("requested,expected", [(0, 1), (3, 3), (50, 5)])
    def test_clamp(self, requested, expected):
        assert clamp_concurrency(requested, 5) == expected


class TestInterBatchDelay:
    def test_fast_batches_pause_briefly(self):
        assert inter_batch_delay(2.0) == 1.0

    def test_slow_batches_pause_longer(self):
        assert inter_batch_delay(12.5) == 2.0


class TestUniqueSequenceNumbers:
    def test_duplicates_rejected(self):
        jobs = _jobs(3) + [PanelJob(sequence_number=2, description="again")]
        with pytest.raises(DuplicateSequenceError) as exc_info:
            ensure_unique_sequence_numbers(jobs)
        assert exc_info.value.sequence_numbers == [2]
        assert isinstance(exc_info.value, ValueError)


class TestBatchScheduler:
    @pytest.mark.anyio
    async def test_results_in_input_order_with_failures(self, fake_sleep):
        async def worker(job):
            # Later jobs finish first.
            await asyncio.sleep(0.001 * (10 - job.sequence_number))
            if job.sequence_number == 4:
                return GenerationFailure(ErrorKind.ALL_PROVIDERS_FAILED, "nope", cause=ErrorKind.TIMEOUT)
            return GenerationSuccess(image=ImageData(b"x"), provider_used=ProviderName.GEMINI)

        scheduler = BatchScheduler(sleep=fake_sleep)
        results = await scheduler.run_batch(_jobs(7), 3, worker)

        assert [r.sequence_number for r in results] == [1, 2, 3, 4, 5, 6, 7]
        assert [r.ok for r in results] == [True, True, True, False, True, True, True]

    @pytest.mark.anyio
    async def test_never_exceeds_concurrency_limit(self, fake_sleep):
        in_flight = 0
        peak = 0

        async def worker(job):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.005)
            in_flight -= 1
            return GenerationSuccess(image=ImageData(b"x"), provider_used=ProviderName.GEMINI)

        await BatchScheduler(sleep=fake_sleep).run_batch(_jobs(10), 4, worker)
        assert peak == 4

    @pytest.mark.anyio
    async def test_stagger_and_inter_batch_pauses(self, fake_sleep):
        async def worker(job):
            return GenerationSuccess(image=ImageData(b"x"), provider_used=ProviderName.GEMINI)

        scheduler = BatchScheduler(stagger_seconds=0.2, delay_seconds=1.0, sleep=fake_sleep)
        await scheduler.run_batch(_jobs(5), 3, worker)

        staggers = sorted(d for d in fake_sleep.delays if d < 1.0)
        pauses = [d for d in fake_sleep.delays if d >= 1.0]
        assert staggers == pytest.approx([0.2, 0.2, 0.4])
        # One pause between the two sub-batches, none after the last.
        assert pauses == [1.0]

    @pytest.mark.anyio
    async def test_slow_batch_pauses_longer(self, fake_sleep):
        ticks = iter([0.0, 30.0, 30.0])

        async def worker(job):
            return GenerationSuccess(image=ImageData(b"x"), provider_used=ProviderName.GEMINI)

        scheduler = BatchScheduler(stagger_seconds=0, sleep=fake_sleep, clock=lambda: next(ticks))
        await scheduler.run_batch(_jobs(4), 2, worker)
        assert fake_sleep.delays == [2.0]

    @pytest.mark.anyio
    async def test_worker_crash_becomes_failure(self, fake_sleep):
        async def worker(job):
            raise KeyError("missing")

        results = await BatchScheduler(sleep=fake_sleep).run_batch(_jobs(2), 2, worker)
        assert all(not r.ok for r in results)
        assert results[0].result.error_kind is ErrorKind.PROVIDER_ERROR
