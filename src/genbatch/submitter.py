"""
Bounded-concurrency submission of pending jobs with retry and rate-limit handling.
"""

from __future__ import annotations

import asyncio
import typing as t
from datetime import datetime, timedelta

import structlog

from genbatch.backoff import compute_backoff_delay, wait
from genbatch.config import EngineSettings
from genbatch.credentials import CredentialPool
from genbatch.exceptions import get_retry_after, is_rate_limit_error
from genbatch.ledger import JobLedger
from genbatch.models import JobRecord
from genbatch.providers.base import BaseProvider
from genbatch.status import RETRYABLE_ERROR_CODES, ErrorCode, JobStatus
from genbatch.utils.logging import logging_context

log = structlog.get_logger(__name__)


class Submitter:
    """
    Drain submittable jobs from the ledger in fixed-size batches.

    Each batch holds ``concurrency`` jobs submitted concurrently through a
    semaphore of the same size; batches are separated by the configured
    pacing delay. A job's failure is recorded on its record and logged, it
    never cancels sibling jobs.
    """

    def __init__(
        self,
        *,
        provider: BaseProvider,
        ledger: JobLedger,
        credential_pool: CredentialPool,
        settings: EngineSettings,
    ) -> None:
        self._provider = provider
        self._ledger = ledger
        self._credential_pool = credential_pool
        self._settings = settings
        self._concurrency = settings.concurrency
        self._batch_delay_seconds = settings.batch_delay_seconds
        self._limiter = asyncio.Semaphore(value=self._concurrency)
        self._sleep: t.Callable[[float], t.Awaitable[None]] = wait

    def submittable(self) -> list[JobRecord]:
        """
        List jobs the next pass will submit.

        Returns
        -------
        list[JobRecord]
            Pending jobs, and failed jobs whose last error is retryable and
            whose attempt budget is not exhausted, in creation order.
        """
        return [
            record
            for record in self._ledger.list(statuses={JobStatus.PENDING, JobStatus.FAILED})
            if record.status == JobStatus.PENDING
            or (
                record.error_code in RETRYABLE_ERROR_CODES
                and record.attempts < record.max_attempts
            )
        ]

    async def submit_pending_tasks(self) -> None:
        """Submit every submittable job, one batch at a time."""
        pending = self.submittable()
        if not pending:
            log.debug(event="No pending jobs to submit")
            return

        batch_size = self._concurrency
        log.info(
            event="Submitting pending jobs",
            provider=self._provider.name,
            job_count=len(pending),
            batch_size=batch_size,
        )
        for index in range(0, len(pending), batch_size):
            batch = pending[index : index + batch_size]
            await asyncio.gather(*(self._submit_isolated(record=record) for record in batch))

            has_next_batch = index + len(batch) < len(pending)
            if has_next_batch and self._batch_delay_seconds > 0:
                log.info(
                    event="Batch submitted, pacing before next batch",
                    delay_seconds=self._batch_delay_seconds,
                    next_batch_starts_at=(
                        datetime.now() + timedelta(seconds=self._batch_delay_seconds)
                    ).isoformat(),
                )
                await self._sleep(self._batch_delay_seconds)

    async def _submit_isolated(self, *, record: JobRecord) -> None:
        async with self._limiter:
            with logging_context(job_id=record.id):
                try:
                    await self.submit_task(job_id=record.id)
                except Exception as error:
                    log.error(
                        event="Job submission failed",
                        job_id=record.id,
                        error=str(error),
                    )

    def retry_delay(self, *, error: BaseException, attempt: int) -> tuple[float, ErrorCode]:
        """
        Classify a submission error and compute the wait before the next attempt.

        Parameters
        ----------
        error : BaseException
            Error raised by the provider.
        attempt : int
            1-based number of the attempt that failed.

        Returns
        -------
        tuple[float, ErrorCode]
            Delay in seconds and the error code recorded on the job.
        """
        if is_rate_limit_error(error=error):
            delay = max(
                self._settings.rate_limit_cooldown_seconds,
                self._batch_delay_seconds,
                get_retry_after(error=error) or 0.0,
            )
            return delay, ErrorCode.RATE_LIMIT
        delay = compute_backoff_delay(
            attempt,
            base=self._settings.backoff_base_seconds,
            factor=self._settings.backoff_factor,
            maximum=self._settings.backoff_max_seconds,
            jitter=self._settings.backoff_jitter,
        )
        return delay, ErrorCode.SUBMIT_ERROR

    async def submit_task(self, *, job_id: str) -> None:
        """
        Submit one job, retrying until success or until its attempts run out.

        Parameters
        ----------
        job_id : str
            Ledger id of the job.

        Raises
        ------
        Exception
            The last provider error once ``max_attempts`` is reached. The ledger
            already holds the job as ``failed`` with that error.
        """
        record = self._ledger.get(job_id)
        if record is None:
            return
        attempt = record.attempts
        while attempt < record.max_attempts:
            attempt += 1
            credential = self._credential_pool.pick()
            submitted = self._ledger.update(
                job_id,
                status=JobStatus.SUBMITTED,
                attempts=attempt,
                credential_name=credential.name,
            )
            if submitted is None:
                log.warning(event="Job left submittable state, skipping", job_id=job_id)
                return
            log.debug(
                event="Submitting job",
                job_id=job_id,
                attempt=attempt,
                max_attempts=record.max_attempts,
                credential_name=credential.name,
            )
            try:
                request_id = await self._provider.submit_job(record.input, credential.secret)
            except Exception as error:
                delay, error_code = self.retry_delay(error=error, attempt=attempt)
                failed = self._ledger.update(
                    job_id,
                    status=JobStatus.FAILED,
                    error_code=error_code,
                    error_message=str(error),
                )
                if failed is None:
                    return
                if attempt >= record.max_attempts:
                    log.error(
                        event="Job submission attempts exhausted",
                        job_id=job_id,
                        attempts=attempt,
                        error_code=error_code,
                    )
                    raise
                if error_code == ErrorCode.RATE_LIMIT:
                    log.warning(
                        event="Submission rate limited, cooling down",
                        job_id=job_id,
                        credential_name=credential.name,
                        delay_seconds=delay,
                    )
                else:
                    log.info(
                        event="Submission failed, backing off",
                        job_id=job_id,
                        attempt=attempt,
                        delay_seconds=delay,
                        error=str(error),
                    )
                await self._sleep(delay)
                continue

            running = self._ledger.update(
                job_id,
                status=JobStatus.RUNNING,
                provider_request_id=request_id,
                error_code=None,
                error_message=None,
            )
            if running is None:
                log.warning(event="Discarded submission of job no longer in flight", job_id=job_id)
                return
            log.info(event="Job submitted", job_id=job_id, request_id=request_id, attempt=attempt)
            return
