"""
Polling loop advancing in-flight jobs to a terminal state.
"""

from __future__ import annotations

import asyncio
import time
import typing as t

import structlog

from genbatch.backoff import wait
from genbatch.config import EngineSettings
from genbatch.credentials import CredentialPool
from genbatch.ledger import JobLedger
from genbatch.models import JobRecord
from genbatch.providers.base import BaseProvider
from genbatch.status import IN_FLIGHT_STATES, ErrorCode, JobStatus

log = structlog.get_logger(__name__)


class Poller:
    """
    Query the provider for every in-flight job until all of them settle.

    Sweeps fan out to all in-flight jobs at once; a failing query is logged
    and retried on the next sweep. One call to :meth:`poll_until_complete`
    never outlives the configured deadline: jobs still running then are
    marked ``timeout``.
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
        self._poll_interval_seconds = settings.poll_interval_seconds
        self._timeout_seconds = settings.poll_timeout_seconds
        self._sleep: t.Callable[[float], t.Awaitable[None]] = wait

    async def poll_until_complete(self) -> None:
        start = time.monotonic()
        deadline = start + self._timeout_seconds
        log.info(
            event="Polling in-flight jobs",
            provider=self._provider.name,
            poll_interval_seconds=self._poll_interval_seconds,
            timeout_seconds=self._timeout_seconds,
        )
        sweep = 0
        while True:
            in_flight = self._ledger.list(statuses=IN_FLIGHT_STATES)
            if not in_flight:
                return

            sweep += 1
            remaining = max(0.0, deadline - time.monotonic())
            await asyncio.gather(
                *(self._poll_isolated(record=record, timeout=remaining) for record in in_flight)
            )

            still_running = self._ledger.list(statuses={JobStatus.RUNNING})
            log.debug(
                event="Poll sweep finished",
                sweep=sweep,
                polled_count=len(in_flight),
                running_count=len(still_running),
            )
            if not still_running:
                return

            now = time.monotonic()
            if now >= deadline:
                self._expire(records=still_running, elapsed=now - start)
                return

            await self._sleep(min(self._poll_interval_seconds, deadline - now))

    def _expire(self, *, records: list[JobRecord], elapsed: float) -> None:
        log.warning(
            event="Polling deadline exceeded",
            timed_out_count=len(records),
            elapsed_seconds=round(elapsed, 3),
        )
        for record in records:
            self._ledger.update(
                record.id,
                status=JobStatus.TIMEOUT,
                error_code=ErrorCode.TIMEOUT,
                error_message=f"Polling deadline of {self._timeout_seconds}s exceeded",
            )

    async def _poll_isolated(self, *, record: JobRecord, timeout: float) -> None:
        try:
            await asyncio.wait_for(self.poll_single(record=record), timeout=timeout)
        except TimeoutError:
            log.warning(
                event="Job query cut off by polling deadline",
                job_id=record.id,
                request_id=record.provider_request_id,
            )
        except Exception as error:
            log.error(
                event="Failed to poll job",
                job_id=record.id,
                request_id=record.provider_request_id,
                error=str(error),
            )

    async def poll_single(self, *, record: JobRecord) -> None:
        """
        Query one job and apply the provider state to the ledger.

        Parameters
        ----------
        record : JobRecord
            In-flight record. Records without a provider request id are skipped.
        """
        if not record.provider_request_id:
            return
        credential = self._credential_pool.get(record.credential_name)
        if credential is None:
            credential = self._credential_pool.peek()
        result = await self._provider.query_job(record.provider_request_id, credential.secret)

        if result.status in ("queued", "running"):
            self._ledger.update(
                record.id,
                status=JobStatus.RUNNING,
                progress=result.progress if result.progress is not None else record.progress,
            )
        elif result.status == "failed":
            # provider-side failures are terminal whatever code the provider reports
            message = result.error_message or "Generation failed on the provider side"
            if result.error_code:
                message = f"{result.error_code}: {message}"
            self._ledger.update(
                record.id,
                status=JobStatus.FAILED,
                progress=result.progress or 0.0,
                error_code=ErrorCode.PROVIDER_ERROR,
                error_message=message,
            )
            log.warning(
                event="Provider reported job failure",
                job_id=record.id,
                provider_error_code=result.error_code,
            )
        elif result.status == "succeeded":
            self._ledger.update(
                record.id,
                status=JobStatus.SUCCEEDED,
                progress=1.0,
                result_url=result.result_url,
            )
            log.info(event="Job succeeded", job_id=record.id, result_url=result.result_url)
