"""
In-memory job ledger: the only shared mutable state of the engine.
"""

from __future__ import annotations

import asyncio
import inspect
import threading
import typing as t
from datetime import datetime

import structlog
from pydantic import ValidationError

from genbatch.models import JobRecord
from genbatch.status import JobStatus, is_allowed_transition

log = structlog.get_logger(__name__)

UpdateListener = t.Callable[[JobRecord], t.Awaitable[None] | None]


class JobLedger:
    """
    Addressable collection of job records with update notifications.

    Every mutation happens inside one critical section and replaces the stored
    record with a new validated instance, so partial writes are never
    observable. The optional listener is called after the write; when it
    returns an awaitable, the awaitable runs in the background and its failure
    is logged without rolling the write back.
    """

    def __init__(self, listener: UpdateListener | None = None) -> None:
        self._listener = listener
        self._records: dict[str, JobRecord] = {}
        self._lock = threading.Lock()
        self._notifications: set[asyncio.Task[None]] = set()

    def __len__(self) -> int:
        return len(self._records)

    def enqueue(self, records: t.Iterable[JobRecord], *, notify: bool = True) -> list[JobRecord]:
        """
        Insert records, overwriting any record with the same id.

        Parameters
        ----------
        records : typing.Iterable[JobRecord]
            Records to insert.
        notify : bool, optional
            Forward inserted records to the listener. Disabled when restoring
            records that came from the listener's own store.

        Returns
        -------
        list[JobRecord]
            Inserted records.
        """
        inserted: list[JobRecord] = []
        with self._lock:
            for record in records:
                if not record.id:
                    raise ValueError("job id cannot be empty")
                self._records[record.id] = record
                inserted.append(record)
        log.debug(event="Enqueued jobs", job_count=len(inserted))
        if notify:
            for record in inserted:
                self._notify(record=record)
        return inserted

    def list(self, *, statuses: t.Container[JobStatus] | None = None) -> list[JobRecord]:
        """
        List records ordered by creation time.

        Parameters
        ----------
        statuses : typing.Container[JobStatus] | None, optional
            Only return records in one of these statuses.

        Returns
        -------
        list[JobRecord]
            Records sorted by ``created_at``; ties keep insertion order.
        """
        with self._lock:
            records = list(self._records.values())
        if statuses is not None:
            records = [record for record in records if record.status in statuses]
        return sorted(records, key=lambda record: record.created_at)

    def get(self, job_id: str) -> JobRecord | None:
        with self._lock:
            return self._records.get(job_id)

    def update(self, job_id: str, **patch: t.Any) -> JobRecord | None:
        """
        Merge ``patch`` into a record and stamp ``updated_at``.

        Parameters
        ----------
        job_id : str
            Id of the record to patch.
        **patch : typing.Any
            Fields to replace. ``None`` clears optional fields.

        Returns
        -------
        JobRecord | None
            The new record, or ``None`` when the id is unknown, the status
            transition is not allowed, or the patched record is invalid.
        """
        with self._lock:
            current = self._records.get(job_id)
            if current is None:
                log.debug(event="Ignored update for unknown job", job_id=job_id)
                return None
            target_status = patch.get("status", current.status)
            if target_status not in set(JobStatus) or not is_allowed_transition(
                current=current.status, target=JobStatus(target_status)
            ):
                log.warning(
                    event="Rejected job status transition",
                    job_id=job_id,
                    current_status=current.status,
                    target_status=target_status,
                )
                return None
            merged = {**current.model_dump(), **patch, "updated_at": datetime.now()}
            try:
                updated = JobRecord.model_validate(merged)
            except ValidationError as error:
                log.error(event="Rejected invalid job patch", job_id=job_id, error=str(error))
                return None
            self._records[job_id] = updated
        self._notify(record=updated)
        return updated

    def find_by_fingerprint(
        self, fingerprint: str, *, status: JobStatus | None = None
    ) -> JobRecord | None:
        """First record, in creation order, with this fingerprint and optionally this status."""
        for record in self.list():
            if record.fingerprint == fingerprint and (status is None or record.status == status):
                return record
        return None

    async def flush(self) -> None:
        """Wait for background listener calls scheduled so far."""
        while self._notifications:
            await asyncio.gather(*list(self._notifications), return_exceptions=True)

    def _notify(self, *, record: JobRecord) -> None:
        if self._listener is None:
            return
        try:
            outcome = self._listener(record)
        except Exception as error:
            log.error(event="Job update listener failed", job_id=record.id, error=str(error))
            return
        if not inspect.isawaitable(outcome):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self._await_notification(awaitable=outcome, job_id=record.id))
            return
        task = loop.create_task(
            self._await_notification(awaitable=outcome, job_id=record.id),
            name=f"job_update_{record.id}",
        )
        self._notifications.add(task)
        task.add_done_callback(self._notifications.discard)

    @staticmethod
    async def _await_notification(*, awaitable: t.Awaitable[None], job_id: str) -> None:
        try:
            await awaitable
        except Exception as error:
            log.error(event="Job update listener failed", job_id=job_id, error=str(error))
