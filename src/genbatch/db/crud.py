import typing as t
from datetime import datetime

from sqlalchemy import asc, delete, desc, select, update
from sqlalchemy.exc import IntegrityError

from genbatch.db.models import Credential, Job
from genbatch.models import CredentialEntry, JobRecord

if t.TYPE_CHECKING:
    from sqlalchemy.orm import Session


def _job_to_record(job: Job) -> JobRecord:
    return JobRecord.model_validate(
        {
            "id": job.id,
            "status": job.status,
            "progress": job.progress,
            "input": job.input,
            "provider_request_id": job.provider_request_id,
            "credential_name": job.credential_name,
            "attempts": job.attempts,
            "max_attempts": job.max_attempts,
            "created_at": job.created_at,
            "updated_at": job.updated_at,
            "fingerprint": job.fingerprint,
            "result_url": job.result_url,
            "local_path": job.local_path,
            "actual_filename": job.actual_filename,
            "error_code": job.error_code,
            "error_message": job.error_message,
        }
    )


def _record_values(record: JobRecord) -> dict[str, t.Any]:
    values = record.model_dump(exclude={"input"})
    values["status"] = str(record.status)
    values["input"] = record.input.model_dump(mode="json")
    return values


def upsert_job(db: "Session", record: JobRecord) -> bool:
    """Insert or update a job

    Parameters
    ----------
    db : Session
        The database session
    record : JobRecord
        The job record to store

    Returns
    -------
    bool
        False when the stored row is newer than the record, which is then ignored
    """
    values = _record_values(record)
    stmt = (
        update(Job)
        .where(Job.id == record.id, Job.updated_at <= record.updated_at)
        .values(**values)
    )
    if db.execute(stmt).rowcount:
        db.commit()
        return True
    if db.get(Job, record.id) is not None:
        db.rollback()
        return False
    db.add(Job(**values))
    try:
        db.commit()
    except IntegrityError:
        # inserted concurrently by another writer
        db.rollback()
        result = db.execute(stmt)
        db.commit()
        return bool(result.rowcount)
    return True


def get_job(db: "Session", job_id: str) -> JobRecord | None:
    """Get a job

    Parameters
    ----------
    db : Session
        The database session
    job_id : str
        The id of the job

    Returns
    -------
    JobRecord | None
        The job, if stored
    """
    job = db.get(Job, job_id)
    return _job_to_record(job) if job is not None else None


def list_jobs(
    db: "Session",
    status: str | None = None,
    order_by: str = "created_at",
    ascending: bool = True,
    limit: int | None = None,
) -> list[JobRecord]:
    """List jobs

    Parameters
    ----------
    db : Session
        The database session
    status : str | None
        Only return jobs in this status
    order_by : str
        The field to order by
    ascending : bool
        Whether to order in ascending order (default is ascending)
    limit : int | None
        The maximum number of jobs to return

    Returns
    -------
    list[JobRecord]
        The list of jobs
    """
    direction = asc if ascending else desc
    stmt = select(Job)
    if status is not None:
        stmt = stmt.where(Job.status == status)
    stmt = stmt.order_by(direction(getattr(Job, order_by)), direction(Job.id))
    if limit is not None:
        stmt = stmt.limit(limit)
    return [_job_to_record(job) for job in db.execute(stmt).scalars().all()]


def delete_job(db: "Session", job_id: str) -> bool:
    """Delete a job, returns whether a row was deleted"""
    result = db.execute(delete(Job).where(Job.id == job_id))
    db.commit()
    return bool(result.rowcount)


def create_credential(
    db: "Session", name: str, secret: str, platform: str = ""
) -> CredentialEntry:
    """Create or replace a credential in the library

    Parameters
    ----------
    db : Session
        The database session
    name : str
        Unique name of the credential
    secret : str
        The API key
    platform : str
        The platform the key belongs to, stored lower-cased

    Returns
    -------
    CredentialEntry
        The stored credential
    """
    credential = db.get(Credential, name)
    if credential is None:
        credential = Credential(name=name, created_at=datetime.now())
        db.add(credential)
    credential.secret = secret
    credential.platform = platform.strip().lower()
    db.commit()
    db.refresh(credential)
    return _credential_to_entry(credential)


def _credential_to_entry(credential: Credential) -> CredentialEntry:
    return CredentialEntry(
        name=credential.name,
        secret=credential.secret,
        platform=credential.platform,
        source="library",
        last_used=credential.last_used,
    )


def list_credentials(db: "Session") -> list[CredentialEntry]:
    stmt = select(Credential).order_by(asc(Credential.created_at), asc(Credential.name))
    return [_credential_to_entry(credential) for credential in db.execute(stmt).scalars().all()]


def touch_credential(db: "Session", name: str, used_at: datetime) -> None:
    db.execute(update(Credential).where(Credential.name == name).values(last_used=used_at))
    db.commit()


def delete_credential(db: "Session", name: str) -> bool:
    result = db.execute(delete(Credential).where(Credential.name == name))
    db.commit()
    return bool(result.rowcount)
