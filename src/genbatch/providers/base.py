from __future__ import annotations

from abc import ABC, abstractmethod

from genbatch.models import JobInput, QueryResult


class BaseProvider(ABC):
    """
    Standard interface of an asynchronous submit-then-poll generation provider.

    Concrete providers live outside the engine and own the wire protocol.
    Providers implement:
    - submit_job: start a generation and return the provider request id
    - query_job: report the state of a previously submitted generation

    Errors should be raised as :class:`genbatch.exceptions.ProviderError`
    (or :class:`genbatch.exceptions.RateLimitError`) so the submitter can tell
    rate limiting from other failures without parsing messages.
    """

    name: str = "base"

    @abstractmethod
    async def submit_job(self, job_input: JobInput, api_key: str) -> str:
        """
        Submit one generation request.

        Parameters
        ----------
        job_input : JobInput
            Input to generate from.
        api_key : str
            Credential secret to authenticate with.

        Returns
        -------
        str
            Opaque provider request id.
        """

    @abstractmethod
    async def query_job(self, request_id: str, api_key: str) -> QueryResult:
        """
        Query the state of a submitted request.

        Parameters
        ----------
        request_id : str
            Provider request id returned by :meth:`submit_job`.
        api_key : str
            Credential secret to authenticate with.

        Returns
        -------
        QueryResult
            Normalized provider state, progress in ``[0, 1]``.
        """
