import asyncio

import pytest

from genbatch.ledger import JobLedger
from genbatch.status import ErrorCode, JobStatus
from tests.mocks.records import make_record


def test_enqueue_and_list_in_creation_order():
    ledger = JobLedger()
    ledger.enqueue([make_record("b", order=2), make_record("a", order=1)])
    assert [record.id for record in ledger.list()] == ["a", "b"]
    assert len(ledger) == 2


def test_enqueue_rejects_empty_id():
    ledger = JobLedger()
    with pytest.raises(ValueError):
        ledger.enqueue([make_record("job").model_copy(update={"id": ""})])


def test_list_filters_by_status():
    ledger = JobLedger()
    ledger.enqueue([make_record("a"), make_record("b", status=JobStatus.RUNNING, order=1)])
    assert [record.id for record in ledger.list(statuses={JobStatus.RUNNING})] == ["b"]


def test_update_merges_patch_and_stamps_updated_at():
    ledger = JobLedger()
    [original] = ledger.enqueue([make_record("a")])
    updated = ledger.update("a", status=JobStatus.SUBMITTED, attempts=1)
    assert updated is not None
    assert updated.status == JobStatus.SUBMITTED
    assert updated.attempts == 1
    assert updated.input == original.input
    assert updated.updated_at > original.updated_at
    assert ledger.get("a") == updated


def test_update_unknown_job_returns_none():
    assert JobLedger().update("missing", progress=0.5) is None


def test_update_rejects_illegal_transition():
    ledger = JobLedger()
    ledger.enqueue([make_record("a")])
    assert ledger.update("a", status=JobStatus.SUCCEEDED) is None
    assert ledger.update("a", status="exploded") is None
    assert ledger.get("a").status == JobStatus.PENDING


def test_update_rejects_invalid_patch():
    ledger = JobLedger()
    ledger.enqueue([make_record("a")])
    assert ledger.update("a", progress=1.5) is None
    assert ledger.update("a", attempts=10) is None
    assert ledger.get("a").progress == 0.0


def test_update_can_clear_optional_fields():
    ledger = JobLedger()
    ledger.enqueue(
        [
            make_record(
                "a",
                status=JobStatus.FAILED,
                error_code=ErrorCode.SUBMIT_ERROR,
                error_message="boom",
                attempts=1,
            )
        ]
    )
    updated = ledger.update("a", status=JobStatus.SUBMITTED, error_code=None, error_message=None)
    assert updated.error_code is None
    assert updated.error_message is None


def test_find_by_fingerprint():
    ledger = JobLedger()
    first = make_record("a", prompt="same prompt")
    second = make_record("b", prompt="same prompt", status=JobStatus.SUCCEEDED, order=1)
    ledger.enqueue([first, second])
    assert ledger.find_by_fingerprint(first.fingerprint).id == "a"
    assert ledger.find_by_fingerprint(first.fingerprint, status=JobStatus.SUCCEEDED).id == "b"
    assert ledger.find_by_fingerprint("0" * 64) is None


def test_sync_listener_receives_every_write():
    seen = []
    ledger = JobLedger(listener=seen.append)
    ledger.enqueue([make_record("a")])
    ledger.update("a", status=JobStatus.SUBMITTED)
    ledger.enqueue([make_record("b")], notify=False)
    assert [(record.id, record.status) for record in seen] == [
        ("a", JobStatus.PENDING),
        ("a", JobStatus.SUBMITTED),
    ]


def test_listener_failure_does_not_roll_back_write():
    def broken_listener(record):
        raise RuntimeError("disk full")

    ledger = JobLedger(listener=broken_listener)
    ledger.enqueue([make_record("a")])
    assert ledger.update("a", status=JobStatus.SUBMITTED) is not None
    assert ledger.get("a").status == JobStatus.SUBMITTED


@pytest.mark.asyncio
async def test_async_listener_runs_in_background():
    seen = []

    async def listener(record):
        await asyncio.sleep(0.01)
        seen.append(record.status)

    ledger = JobLedger(listener=listener)
    ledger.enqueue([make_record("a")])
    ledger.update("a", status=JobStatus.SUBMITTED)
    assert seen == []
    await ledger.flush()
    assert sorted(seen) == sorted([JobStatus.PENDING, JobStatus.SUBMITTED])


def test_async_listener_without_running_loop():
    seen = []

    async def listener(record):
        seen.append(record.id)

    ledger = JobLedger(listener=listener)
    ledger.enqueue([make_record("a")])
    assert seen == ["a"]
