"""
SQLite-backed collaborators of the engine: job persistence and credential library.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

import structlog

from genbatch.db.crud import (
    create_credential,
    delete_credential,
    delete_job,
    list_credentials,
    list_jobs,
    touch_credential,
    upsert_job,
)
from genbatch.db.session import get_db, init_db
from genbatch.models import CredentialEntry, JobRecord

log = structlog.get_logger(__name__)


class JobStore:
    """
    Ledger listener persisting every job record it receives.

    Writes run in a worker thread; rows never move back to an older
    ``updated_at``, so out-of-order writes cannot resurrect stale state.
    """

    def __init__(self) -> None:
        init_db()

    async def __call__(self, record: JobRecord) -> None:
        await asyncio.to_thread(self.save, record)

    def save(self, record: JobRecord) -> bool:
        with get_db() as db:
            written = upsert_job(db=db, record=record)
        if not written:
            log.debug(event="Skipped stale job write", job_id=record.id)
        return written

    def load(
        self,
        status: str | None = None,
        order_by: str = "created_at",
        ascending: bool = True,
    ) -> list[JobRecord]:
        with get_db() as db:
            return list_jobs(db=db, status=status, order_by=order_by, ascending=ascending)

    def delete(self, job_id: str) -> bool:
        with get_db() as db:
            return delete_job(db=db, job_id=job_id)


class SqlCredentialLibrary:
    """Credential library stored in the ``credentials`` table."""

    def __init__(self) -> None:
        init_db()

    def list_credentials(self) -> list[CredentialEntry]:
        with get_db() as db:
            return list_credentials(db=db)

    def touch(self, name: str, used_at: datetime) -> None:
        with get_db() as db:
            touch_credential(db=db, name=name, used_at=used_at)

    def add(self, name: str, secret: str, platform: str = "") -> CredentialEntry:
        with get_db() as db:
            return create_credential(db=db, name=name, secret=secret, platform=platform)

    def delete(self, name: str) -> bool:
        with get_db() as db:
            return delete_credential(db=db, name=name)
