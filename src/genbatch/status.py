from __future__ import annotations

import typing as t
from enum import StrEnum

if t.TYPE_CHECKING:
    from genbatch.models import JobRecord


class JobStatus(StrEnum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELED = "canceled"


class ErrorCode(StrEnum):
    SUBMIT_ERROR = "SUBMIT_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    TIMEOUT = "TIMEOUT"
    DOWNLOAD_ERROR = "DOWNLOAD_ERROR"


TERMINAL_STATES = frozenset(
    {JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.TIMEOUT, JobStatus.CANCELED}
)
IN_FLIGHT_STATES = frozenset({JobStatus.SUBMITTED, JobStatus.RUNNING})
RETRYABLE_ERROR_CODES = frozenset({ErrorCode.SUBMIT_ERROR, ErrorCode.RATE_LIMIT})

_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.SUBMITTED, JobStatus.CANCELED}),
    JobStatus.SUBMITTED: frozenset(
        {
            JobStatus.RUNNING,
            JobStatus.FAILED,
            JobStatus.SUCCEEDED,
            JobStatus.TIMEOUT,
            JobStatus.CANCELED,
        }
    ),
    JobStatus.RUNNING: frozenset(
        {JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.TIMEOUT, JobStatus.CANCELED}
    ),
    # failed -> submitted is the submitter retry bounce
    JobStatus.FAILED: frozenset({JobStatus.SUBMITTED}),
    # succeeded -> failed only happens when the artifact cannot be downloaded
    JobStatus.SUCCEEDED: frozenset({JobStatus.FAILED}),
    JobStatus.TIMEOUT: frozenset(),
    JobStatus.CANCELED: frozenset(),
}


def is_allowed_transition(*, current: JobStatus, target: JobStatus) -> bool:
    """
    Check whether the job state machine allows moving ``current`` to ``target``.

    Parameters
    ----------
    current : JobStatus
        Status stored in the ledger.
    target : JobStatus
        Status requested by a patch.

    Returns
    -------
    bool
        ``True`` when the transition is allowed. Same-status patches always are.
    """
    if current == target:
        return True
    return target in _TRANSITIONS[current]


def display_label(record: JobRecord) -> str:
    """
    Map a job record to the human-readable label shown to operators.

    Parameters
    ----------
    record : JobRecord
        Job record to describe.

    Returns
    -------
    str
        One of ``Waiting``, ``Generating``, ``Downloading``, ``Succeeded`` or ``Failed``.
    """
    status = record.status
    if status == JobStatus.PENDING:
        return "Waiting"
    if status in IN_FLIGHT_STATES:
        return "Generating"
    if status == JobStatus.SUCCEEDED:
        return "Succeeded" if record.local_path else "Downloading"
    return "Failed"


def display_progress(record: JobRecord) -> int:
    """Progress as an integer percentage."""
    return round(record.progress * 100)
