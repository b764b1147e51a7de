import asyncio
import itertools

from genbatch.models import JobInput, QueryResult
from genbatch.providers.base import BaseProvider

CDN_BASE_URL = "https://cdn.example.com/videos"


class SuccessProvider(BaseProvider):
    """Accepts every submission; every query reports the job as succeeded."""

    name = "success"

    def __init__(self, submit_delay: float = 0.0) -> None:
        self.submit_delay = submit_delay
        self.submitted: list[tuple[str, str]] = []
        self.queried: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._ids = itertools.count(1)

    async def submit_job(self, job_input: JobInput, api_key: str) -> str:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.submit_delay:
                await asyncio.sleep(self.submit_delay)
            self.submitted.append((job_input.prompt, api_key))
            return f"req-{next(self._ids)}"
        finally:
            self.in_flight -= 1

    async def query_job(self, request_id: str, api_key: str) -> QueryResult:
        self.queried.append((request_id, api_key))
        return QueryResult(
            status="succeeded", progress=1.0, result_url=f"{CDN_BASE_URL}/{request_id}.mp4"
        )


class ScriptedSubmitProvider(SuccessProvider):
    """Raises the scripted errors in order on submission, then succeeds."""

    name = "scripted"

    def __init__(self, errors: list[Exception]) -> None:
        super().__init__()
        self.errors = list(errors)
        self.calls = 0

    async def submit_job(self, job_input: JobInput, api_key: str) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return await super().submit_job(job_input, api_key)


class AlwaysFailingProvider(SuccessProvider):
    name = "failing"

    def __init__(self, error: Exception) -> None:
        super().__init__()
        self.error = error
        self.calls = 0

    async def submit_job(self, job_input: JobInput, api_key: str) -> str:
        self.calls += 1
        raise self.error


class StuckProvider(SuccessProvider):
    """Jobs never leave the provider queue."""

    name = "stuck"

    async def query_job(self, request_id: str, api_key: str) -> QueryResult:
        self.queried.append((request_id, api_key))
        return QueryResult(status="running", progress=0.5)


class RejectingProvider(SuccessProvider):
    """Generation fails on the provider side."""

    name = "rejecting"

    async def query_job(self, request_id: str, api_key: str) -> QueryResult:
        self.queried.append((request_id, api_key))
        return QueryResult(status="failed", error_message="content policy violation")
