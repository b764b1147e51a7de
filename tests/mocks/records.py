from datetime import datetime, timedelta

from genbatch.fingerprint import compute_fingerprint
from genbatch.models import JobInput, JobRecord
from genbatch.status import JobStatus

_EPOCH = datetime(2024, 1, 1, 12, 0, 0)


def make_record(
    job_id: str,
    *,
    prompt: str | None = None,
    status: JobStatus = JobStatus.PENDING,
    order: int = 0,
    **fields,
) -> JobRecord:
    """Build a job record; ``order`` spaces creation times one second apart."""
    job_input = JobInput(prompt=prompt or f"a cat playing piano, take {job_id}")
    created_at = _EPOCH + timedelta(seconds=order)
    values = {
        "id": job_id,
        "status": status,
        "input": job_input,
        "created_at": created_at,
        "updated_at": created_at,
        "fingerprint": compute_fingerprint(job_input),
    }
    values.update(fields)
    return JobRecord(**values)
