import asyncio
import time

import pytest

from genbatch.config import EngineSettings
from genbatch.credentials import CredentialPool
from genbatch.ledger import JobLedger
from genbatch.models import QueryResult
from genbatch.poller import Poller
from genbatch.status import ErrorCode, JobStatus
from genbatch.submitter import Submitter
from tests.mocks.providers import RejectingProvider, StuckProvider, SuccessProvider
from tests.mocks.records import make_record


def make_poller(provider, settings: EngineSettings, records=()):
    ledger = JobLedger()
    ledger.enqueue(list(records))
    poller = Poller(
        provider=provider,
        ledger=ledger,
        credential_pool=CredentialPool(settings_api_key="settings-key").init(),
        settings=settings,
    )
    return poller, ledger


def running_record(job_id: str, order: int = 0, **fields):
    return make_record(
        job_id,
        status=JobStatus.RUNNING,
        provider_request_id=f"req-{job_id}",
        attempts=1,
        order=order,
        **fields,
    )


@pytest.mark.asyncio
async def test_poll_until_complete_marks_succeeded(settings):
    provider = SuccessProvider()
    poller, ledger = make_poller(
        provider, settings, records=[running_record("a"), running_record("b", order=1)]
    )
    await poller.poll_until_complete()
    for record in ledger.list():
        assert record.status == JobStatus.SUCCEEDED
        assert record.progress == 1.0
        assert record.result_url == f"https://cdn.example.com/videos/req-{record.id}.mp4"


@pytest.mark.asyncio
async def test_poll_uses_submitting_credential(settings):
    provider = SuccessProvider()
    poller, _ = make_poller(
        provider,
        settings,
        records=[
            running_record("a", credential_name="settings"),
            running_record("b", order=1, credential_name="removed-key"),
        ],
    )
    await poller.poll_until_complete()
    assert sorted(provider.queried) == [("req-a", "settings-key"), ("req-b", "test-key")]


@pytest.mark.asyncio
async def test_provider_failure_is_terminal(settings):
    poller, ledger = make_poller(RejectingProvider(), settings, records=[running_record("a")])
    await poller.poll_until_complete()
    record = ledger.get("a")
    assert record.status == JobStatus.FAILED
    assert record.error_code == ErrorCode.PROVIDER_ERROR
    assert record.error_message == "content policy violation"


@pytest.mark.asyncio
async def test_poll_deadline_marks_timeout():
    settings = EngineSettings(poll_interval_seconds=0.01, poll_timeout_seconds=0.05)
    provider = StuckProvider()
    poller, ledger = make_poller(provider, settings, records=[running_record("a")])
    await poller.poll_until_complete()
    record = ledger.get("a")
    assert record.status == JobStatus.TIMEOUT
    assert record.error_code == ErrorCode.TIMEOUT
    assert record.progress == 0.5
    assert len(provider.queried) > 1


@pytest.mark.asyncio
async def test_jobs_without_request_id_are_not_queried(settings):
    provider = SuccessProvider()
    poller, ledger = make_poller(
        provider, settings, records=[make_record("a", status=JobStatus.SUBMITTED, attempts=1)]
    )
    await poller.poll_until_complete()
    assert provider.queried == []
    assert ledger.get("a").status == JobStatus.SUBMITTED


class FlakyQueryProvider(SuccessProvider):
    name = "flaky-query"

    def __init__(self) -> None:
        super().__init__()
        self.query_calls = 0

    async def query_job(self, request_id: str, api_key: str) -> QueryResult:
        self.query_calls += 1
        if self.query_calls == 1:
            raise ConnectionError("connection reset")
        if self.query_calls == 2:
            return QueryResult(status="queued")
        return await super().query_job(request_id, api_key)


@pytest.mark.asyncio
async def test_query_errors_are_retried_on_next_sweep(settings):
    provider = FlakyQueryProvider()
    poller, ledger = make_poller(provider, settings, records=[running_record("a")])
    await poller.poll_until_complete()
    assert provider.query_calls == 3
    assert ledger.get("a").status == JobStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_canceled_job_is_not_resurrected(settings):
    poller, ledger = make_poller(SuccessProvider(), settings, records=[running_record("a")])
    record = ledger.get("a")
    ledger.update("a", status=JobStatus.CANCELED)
    await poller.poll_single(record=record)
    assert ledger.get("a").status == JobStatus.CANCELED


class HangingQueryProvider(SuccessProvider):
    name = "hanging-query"

    async def query_job(self, request_id: str, api_key: str) -> QueryResult:
        self.queried.append((request_id, api_key))
        await asyncio.sleep(3)
        return QueryResult(status="running", progress=0.2)


@pytest.mark.asyncio
async def test_hanging_query_cannot_outlive_deadline():
    settings = EngineSettings(poll_interval_seconds=0.01, poll_timeout_seconds=0.1)
    provider = HangingQueryProvider()
    poller, ledger = make_poller(
        provider, settings, records=[running_record("a", progress=0.3)]
    )
    started = time.monotonic()
    await poller.poll_until_complete()
    assert time.monotonic() - started < 1.0
    record = ledger.get("a")
    assert record.status == JobStatus.TIMEOUT
    assert record.error_code == ErrorCode.TIMEOUT
    assert record.progress == 0.3
    assert provider.queried == [("req-a", "test-key")]


class RetryableCodeFailureProvider(SuccessProvider):
    name = "quota-failure"

    async def query_job(self, request_id: str, api_key: str) -> QueryResult:
        self.queried.append((request_id, api_key))
        return QueryResult(status="failed", error_code="RATE_LIMIT", error_message="quota exhausted")


@pytest.mark.asyncio
async def test_provider_failure_code_never_makes_job_resubmittable(settings):
    provider = RetryableCodeFailureProvider()
    poller, ledger = make_poller(provider, settings, records=[running_record("a")])
    await poller.poll_until_complete()

    record = ledger.get("a")
    assert record.status == JobStatus.FAILED
    assert record.error_code == ErrorCode.PROVIDER_ERROR
    assert record.error_message == "RATE_LIMIT: quota exhausted"

    submitter = Submitter(
        provider=provider,
        ledger=ledger,
        credential_pool=CredentialPool(settings_api_key="settings-key").init(),
        settings=settings,
    )
    assert submitter.submittable() == []
