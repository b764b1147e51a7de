"""
Batch engine façade: import, deduplicate, then drive submit, poll and download.
"""

from __future__ import annotations

import typing as t
from datetime import datetime
from pathlib import Path

import structlog

from genbatch.config import EngineSettings
from genbatch.credentials import CredentialPool
from genbatch.fingerprint import compute_fingerprint
from genbatch.ledger import JobLedger, UpdateListener
from genbatch.materializer import ResultMaterializer
from genbatch.models import JobInput, JobRecord
from genbatch.poller import Poller
from genbatch.providers.base import BaseProvider
from genbatch.rows import BulkRow, parse_rows, row_from_record, serialize_rows
from genbatch.status import TERMINAL_STATES, JobStatus
from genbatch.submitter import Submitter

log = structlog.get_logger(__name__)

_PRESET_DEFAULTS = {
    "ratio": "default_ratio",
    "seed": "default_seed",
    "watermark": "default_watermark",
    "callback_url": "default_callback",
    "translate": "default_translate",
}


class BatchEngine:
    """
    Single entry point of a batch of generation jobs.

    Parameters
    ----------
    provider : BaseProvider
        Provider adapter implementing the wire protocol.
    credential_pool : CredentialPool
        Initialized credential pool shared by submissions and queries.
    settings : EngineSettings | None, optional
        Engine settings, defaults to :class:`EngineSettings` defaults.
    preset : dict[str, typing.Any] | None, optional
        Provider preset; its ``default_*`` keys fill blank row fields and the
        whole preset is stored in each input's extra bag.
    listener : UpdateListener | None, optional
        Called with every inserted or updated record, e.g. to persist it.
    """

    def __init__(
        self,
        *,
        provider: BaseProvider,
        credential_pool: CredentialPool,
        settings: EngineSettings | None = None,
        preset: dict[str, t.Any] | None = None,
        listener: UpdateListener | None = None,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._provider = provider
        self._credential_pool = credential_pool
        self._preset = dict(preset or {})
        self._ledger = JobLedger(listener=listener)
        self._submitter = Submitter(
            provider=provider,
            ledger=self._ledger,
            credential_pool=credential_pool,
            settings=self._settings,
        )
        self._poller = Poller(
            provider=provider,
            ledger=self._ledger,
            credential_pool=credential_pool,
            settings=self._settings,
        )
        self._materializer = ResultMaterializer(ledger=self._ledger, settings=self._settings)

    @property
    def ledger(self) -> JobLedger:
        return self._ledger

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    def import_batch(self, source: str | bytes | Path) -> list[JobRecord]:
        """
        Convert bulk CSV rows to pending job records, without enqueuing them.

        Parameters
        ----------
        source : str | bytes | Path
            CSV text, raw bytes or a path to a CSV file.

        Returns
        -------
        list[JobRecord]
            One ``pending`` record per row, fingerprint computed.
        """
        if isinstance(source, Path):
            text = source.read_text(encoding="utf-8")
        elif isinstance(source, bytes):
            text = source.decode("utf-8")
        else:
            text = source
        rows = parse_rows(text)
        records = [self.create_record(row=row) for row in rows]
        log.info(event="Imported batch rows", row_count=len(records))
        return records

    def build_input(self, *, row: BulkRow) -> JobInput:
        values: dict[str, t.Any] = {
            "prompt": row.prompt,
            "image_url": row.image_url,
            "ratio": row.ratio,
            "seed": row.seed,
            "watermark": row.watermark,
            "callback_url": row.callback_url,
            "translate": row.translate,
        }
        for field_name, preset_key in _PRESET_DEFAULTS.items():
            if values[field_name] is None:
                values[field_name] = self._preset.get(preset_key)
        extra = dict(row.extra)
        if self._preset:
            extra["preset"] = self._preset
        return JobInput(extra=extra, **values)

    def create_record(self, *, row: BulkRow) -> JobRecord:
        job_input = self.build_input(row=row)
        now = datetime.now()
        return JobRecord(
            id=row.id,
            status=JobStatus.PENDING,
            input=job_input,
            max_attempts=self._settings.max_attempts,
            created_at=now,
            updated_at=now,
            fingerprint=compute_fingerprint(job_input),
        )

    def enqueue(self, records: t.Iterable[JobRecord]) -> list[JobRecord]:
        """
        Insert records, skipping work that already succeeded.

        Parameters
        ----------
        records : typing.Iterable[JobRecord]
            Records to insert.

        Returns
        -------
        list[JobRecord]
            For each input record, the prior succeeded record with the same
            fingerprint when one exists, otherwise the inserted record.
        """
        surfaced: list[JobRecord] = []
        insertable: list[JobRecord] = []
        skipped = 0
        for record in records:
            existing = self._ledger.find_by_fingerprint(
                record.fingerprint, status=JobStatus.SUCCEEDED
            )
            if existing is not None:
                skipped += 1
                surfaced.append(existing)
                continue
            insertable.append(record)
            surfaced.append(record)
        if insertable:
            self._ledger.enqueue(insertable)
        log.info(event="Enqueued batch", inserted_count=len(insertable), skipped_count=skipped)
        return surfaced

    def restore(self, records: t.Iterable[JobRecord]) -> None:
        """Load records from the persistence collaborator without notifying it back."""
        restored = self._ledger.enqueue(records, notify=False)
        log.info(event="Restored jobs", job_count=len(restored))

    def cancel(self, job_id: str) -> JobRecord | None:
        """
        Cancel a job that is not terminal yet.

        Returns
        -------
        JobRecord | None
            The canceled record, ``None`` for unknown or terminal jobs.
        """
        record = self._ledger.get(job_id)
        if record is None or record.status in TERMINAL_STATES:
            return None
        return self._ledger.update(job_id, status=JobStatus.CANCELED)

    async def run(self) -> list[JobRecord]:
        """
        Run one full pass: submit pending work, poll it, download results.

        Returns
        -------
        list[JobRecord]
            Ledger snapshot after the pass.
        """
        log.info(
            event="Starting batch run",
            provider=self._provider.name,
            job_count=len(self._ledger),
        )
        await self._submitter.submit_pending_tasks()
        await self._poller.poll_until_complete()
        await self._materializer.materialize()
        await self._ledger.flush()
        await self._credential_pool.flush()
        snapshot = self.snapshot()
        log.info(
            event="Batch run finished",
            **{
                f"{status}_count": sum(1 for record in snapshot if record.status == status)
                for status in JobStatus
            },
        )
        return snapshot

    def export_batch(self) -> str:
        """Serialize ledger inputs back to the bulk CSV format."""
        return serialize_rows(row_from_record(record) for record in self._ledger.list())

    def snapshot(self) -> list[JobRecord]:
        return self._ledger.list()

    def get(self, job_id: str) -> JobRecord | None:
        return self._ledger.get(job_id)
