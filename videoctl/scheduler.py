"""Batch execution with a concurrency cap, retries and a batch-wide timeout."""

import asyncio
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .config import resolve_output_path
from .estimator import estimate
from .models import (
    BatchConfig,
    BatchReport,
    JobOutcome,
    JobSpec,
    JobStatus,
    classify,
)
from .retry import should_retry

logger = logging.getLogger(__name__)

# Extra time given to running jobs after the batch timeout before they are
# reported as cancelled.
GRACE_PERIOD = 2.0  # seconds

CANCELLED_REASON = "Job cancelled: batch timed out"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class BatchScheduler:
    """Runs every job of a batch against an executor.

    Each job gets its own task straight away; a semaphore limits how many of
    them talk to the API at once. ``executor`` must provide an async
    ``execute(kind, job, output_path, poll_interval, max_poll_attempts)``
    returning an ``ExecutionResult`` and raising on failure.
    """

    def __init__(
        self,
        executor: Any,
        output_dir: Optional[str] = None,
        allow_any_path: bool = False,
        grace_period: float = GRACE_PERIOD,
    ):
        self.executor = executor
        self.output_dir = output_dir
        self.allow_any_path = allow_any_path
        self.grace_period = grace_period

    async def run(self, config: BatchConfig) -> BatchReport:
        """Execute the batch and return a report with one outcome per job."""
        started_at = _now_iso()
        start = time.monotonic()

        output_dir = config.output_dir or self.output_dir or os.getcwd()
        # resolve everything up front so a bad path fails before any job starts
        output_paths = [
            resolve_output_path(job, i, output_dir, self.allow_any_path)
            for i, job in enumerate(config.jobs)
        ]

        logger.debug(
            "Starting batch execution: %d jobs, max concurrent: %d",
            len(config.jobs),
            config.max_concurrent,
        )

        gate = asyncio.Semaphore(config.max_concurrent)
        outcomes: Dict[int, JobOutcome] = {}

        async def run_one(index: int, job: JobSpec, output_path: str) -> None:
            async with gate:
                outcome = await self._execute_job(index, job, output_path, config)
            outcomes[outcome.index] = outcome

        tasks = [
            asyncio.create_task(run_one(i + 1, job, output_paths[i]))
            for i, job in enumerate(config.jobs)
        ]

        _, pending = await asyncio.wait(tasks, timeout=config.timeout / 1000)
        if pending:
            logger.warning(
                "Batch timed out with %d job(s) unfinished, waiting %.1fs for in-progress jobs",
                len(pending),
                self.grace_period,
            )
            _, pending = await asyncio.wait(pending, timeout=self.grace_period)

        finished = dict(outcomes)
        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for task in tasks:
            if task.done() and not task.cancelled() and task.exception() is not None:
                raise task.exception()

        results = self._reconcile(config, finished)
        report = BatchReport(
            total=len(config.jobs),
            succeeded=sum(1 for r in results if r.status == JobStatus.COMPLETED),
            failed=sum(1 for r in results if r.status == JobStatus.FAILED),
            cancelled=sum(1 for r in results if r.status == JobStatus.CANCELLED),
            results=results,
            started_at=started_at,
            finished_at=_now_iso(),
            total_duration_ms=_elapsed_ms(start),
            estimated_cost=estimate(config).estimated_cost_min,
        )
        logger.debug(
            "Batch finished: %d succeeded, %d failed, %d cancelled",
            report.succeeded,
            report.failed,
            report.cancelled,
        )
        return report

    def _reconcile(self, config: BatchConfig, finished: Dict[int, JobOutcome]) -> List[JobOutcome]:
        results = list(finished.values())
        for i, job in enumerate(config.jobs):
            if i + 1 not in finished:
                results.append(
                    JobOutcome(
                        index=i + 1,
                        prompt=job.prompt,
                        kind=classify(job),
                        status=JobStatus.CANCELLED,
                        error=CANCELLED_REASON,
                    )
                )
        results.sort(key=lambda r: r.index)
        return results

    async def _execute_job(
        self,
        index: int,
        job: JobSpec,
        output_path: str,
        config: BatchConfig,
    ) -> JobOutcome:
        """Run one job with retries. Never raises for job-level failures."""
        kind = classify(job)
        policy = config.retry_policy
        request = config.job_with_defaults(job)
        poll_interval = config.poll_interval / 1000
        start = time.monotonic()
        last_error = ""
        attempts = 0

        for attempt in range(policy.max_retries + 1):
            attempts = attempt + 1
            logger.debug("Job %d: Starting (attempt %d/%d)", index, attempts, policy.max_retries + 1)
            try:
                result = await self.executor.execute(
                    kind, request, output_path, poll_interval, config.max_poll_attempts
                )
            except Exception as e:
                last_error = str(e) or type(e).__name__
                logger.debug("Job %d: Failed (attempt %d): %s", index, attempts, last_error)
                if not should_retry(attempt, last_error, policy):
                    break
                logger.debug("Job %d: Retrying in %dms", index, policy.retry_delay_ms)
                await asyncio.sleep(policy.retry_delay_ms / 1000)
                continue

            duration_ms = _elapsed_ms(start)
            logger.debug("Job %d: Completed in %dms", index, duration_ms)
            return JobOutcome(
                index=index,
                prompt=job.prompt,
                kind=kind,
                status=JobStatus.COMPLETED,
                output_path=result.output_path or output_path,
                video_url=result.video_url,
                video_duration=result.video_duration,
                request_id=result.request_id,
                duration_ms=duration_ms,
                attempts=attempts,
            )

        return JobOutcome(
            index=index,
            prompt=job.prompt,
            kind=kind,
            status=JobStatus.FAILED,
            error=last_error,
            duration_ms=_elapsed_ms(start),
            attempts=attempts,
        )


def run_batch(config: BatchConfig, executor: Any, **kwargs: Any) -> BatchReport:
    """Synchronous entry point for callers without a running event loop."""
    return asyncio.run(BatchScheduler(executor, **kwargs).run(config))
