"""
Retrieval of generated artifacts into local storage.
"""

from __future__ import annotations

import asyncio
import posixpath
import typing as t
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx
import structlog

from genbatch.config import EngineSettings
from genbatch.exceptions import DownloadError
from genbatch.fingerprint import compute_fingerprint
from genbatch.ledger import JobLedger
from genbatch.models import JobInput, JobRecord
from genbatch.status import ErrorCode, JobStatus
from genbatch.utils.files import dated_directory, ensure_dir, safe_filename_component

log = structlog.get_logger(__name__)

DOWNLOAD_CHUNK_SIZE = 1024 * 64


def build_artifact_filename(
    *, job_id: str, job_input: JobInput, url: str, default_suffix: str = ".mp4"
) -> str:
    """
    Build the deterministic local file name of an artifact.

    Parameters
    ----------
    job_id : str
        Ledger id of the job.
    job_input : JobInput
        Job input; only its prompt and image reference are hashed.
    url : str
        Remote artifact URL.
    default_suffix : str, optional
        Suffix appended when the remote name has none.

    Returns
    -------
    str
        ``<job id>_<8 hex chars>_<remote name>``.
    """
    short_fingerprint = compute_fingerprint(
        JobInput(prompt=job_input.prompt, image_url=job_input.image_url)
    )[:8]
    remote_name = posixpath.basename(unquote(urlparse(url).path))
    remote_name = safe_filename_component(remote_name, fallback="artifact")
    if not Path(remote_name).suffix:
        remote_name = f"{remote_name}{default_suffix}"
    return f"{safe_filename_component(job_id, fallback='job')}_{short_fingerprint}_{remote_name}"


async def download_artifact(*, client: httpx.AsyncClient, url: str, target: Path) -> int:
    """
    Stream a remote artifact to ``target``.

    The payload is written to a ``.part`` sibling first and renamed once
    complete, so ``target`` never holds a truncated file.

    Parameters
    ----------
    client : httpx.AsyncClient
        Client used for the request.
    url : str
        Remote artifact URL.
    target : Path
        Final file path.

    Returns
    -------
    int
        Number of bytes written.

    Raises
    ------
    DownloadError
        If the request fails, returns an error status or the file cannot be written.
    """
    partial = target.with_name(f"{target.name}.part")
    written = 0
    try:
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            handle = await asyncio.to_thread(partial.open, "wb")
            try:
                async for chunk in response.aiter_bytes(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    await asyncio.to_thread(handle.write, chunk)
                    written += len(chunk)
            finally:
                await asyncio.to_thread(handle.close)
        await asyncio.to_thread(partial.replace, target)
    except (httpx.HTTPError, OSError) as error:
        partial.unlink(missing_ok=True)
        raise DownloadError(f"Failed to download artifact from {url}: {error}") from error
    except BaseException:
        # cancellation included, a truncated file must not survive
        partial.unlink(missing_ok=True)
        raise
    return written


class ResultMaterializer:
    """
    Download the artifact of every succeeded job that has no local copy yet.

    An artifact that cannot be downloaded fails the job with
    ``DOWNLOAD_ERROR``: callers expect a usable local file, not a remote URL.
    """

    def __init__(self, *, ledger: JobLedger, settings: EngineSettings) -> None:
        self._ledger = ledger
        self._storage_dir = Path(settings.storage_dir)
        self._default_suffix = settings.artifact_suffix
        self._limiter = asyncio.Semaphore(value=settings.concurrency)
        self._client_factory: t.Callable[[], httpx.AsyncClient] = lambda: httpx.AsyncClient(
            timeout=httpx.Timeout(30.0, read=300.0), follow_redirects=True
        )

    def pending(self) -> list[JobRecord]:
        return [
            record
            for record in self._ledger.list(statuses={JobStatus.SUCCEEDED})
            if record.result_url and not record.local_path
        ]

    async def materialize(self) -> list[JobRecord]:
        """
        Download all pending artifacts.

        Returns
        -------
        list[JobRecord]
            Updated records of the processed jobs.
        """
        records = self.pending()
        if not records:
            return []
        log.info(
            event="Downloading artifacts",
            job_count=len(records),
            storage_dir=self._storage_dir.as_posix(),
        )
        async with self._client_factory() as client:
            results = await asyncio.gather(
                *(self._materialize_isolated(client=client, record=record) for record in records)
            )
        return [record for record in results if record is not None]

    async def _materialize_isolated(
        self, *, client: httpx.AsyncClient, record: JobRecord
    ) -> JobRecord | None:
        async with self._limiter:
            try:
                return await self.materialize_one(client=client, record=record)
            except Exception as error:
                log.error(
                    event="Artifact download failed",
                    job_id=record.id,
                    result_url=record.result_url,
                    error=str(error),
                )
                return self._ledger.update(
                    record.id,
                    status=JobStatus.FAILED,
                    error_code=ErrorCode.DOWNLOAD_ERROR,
                    error_message=str(error) or "Artifact download failed",
                    local_path=None,
                    actual_filename=None,
                )

    async def materialize_one(
        self, *, client: httpx.AsyncClient, record: JobRecord
    ) -> JobRecord | None:
        """
        Download one artifact and record its local path.

        Parameters
        ----------
        client : httpx.AsyncClient
            Client used for the download.
        record : JobRecord
            Succeeded record with a ``result_url``.

        Returns
        -------
        JobRecord | None
            Updated record, ``None`` if the job left the ledger meanwhile.
        """
        if not record.result_url:
            raise DownloadError(f"Job {record.id} has no result URL")
        filename = build_artifact_filename(
            job_id=record.id,
            job_input=record.input,
            url=record.result_url,
            default_suffix=self._default_suffix,
        )
        target_dir = ensure_dir(dated_directory(self._storage_dir))
        target = target_dir / filename
        size = await download_artifact(client=client, url=record.result_url, target=target)
        log.info(event="Artifact saved", job_id=record.id, local_path=target.as_posix(), size=size)
        return self._ledger.update(
            record.id,
            local_path=target.as_posix(),
            actual_filename=filename,
            progress=1.0,
            error_code=None,
            error_message=None,
        )
